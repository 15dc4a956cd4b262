"""Help text, Block Kit modal builders, and message formatters for the bot.

WHY: The bot sends many small messages (queued, started, artifacts,
plugins) and opens two modals (build parameters, job creation).
Centralizing the wording and the Block Kit structures keeps commands.py
focused on flow and makes the texts testable on their own.

HOW: Modal builders return a view dict ready for client.views_open().
Submission extractors turn view state back into plain dicts. Formatters
return str for chat_postMessage/chat_postEphemeral.

RULES:
- callback_id and action_id values must match the registrations in bot.py
- Modal private_metadata is JSON carrying job_name and channel_id
- Parameter inputs use the parameter name as block_id
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from jenkins_slack.api.models import BuildRecord, ParameterDefinition, PluginInfo
from jenkins_slack.api.parameters import BOOLEAN_TYPE, CHOICE_TYPE
from jenkins_slack.errors import CredentialError, RemoteError, UserInputError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Callback and action IDs, registered with app.view()/app.action() in bot.py
MODAL_BUILD_PARAMETERS = "jenkins_build_parameters"
MODAL_CREATE_JOB = "jenkins_create_job"
ACTION_PARAMETER_VALUE = "parameter_value"
ACTION_JOB_NAME = "create_job_name"
ACTION_JOB_CONFIG = "create_job_config"

BLOCK_JOB_NAME = "job_name"
BLOCK_JOB_CONFIG = "job_config"

# Slack limits
_SELECT_OPTIONS_MAX = 100
_PLUGINS_LIST_MAX = 200

HELP_TEXT = """*Jenkins Slash Command Help*
• `/jenkins connect <username> <API Token>` - Connect your Slack account to Jenkins.
• `/jenkins build <jobname>` - Trigger a build for the given job.
    ◦ If the job resides in a folder, specify the job as `folder1/jobname`. Note the slash character.
    ◦ If the folder/job name has spaces in it, wrap the job name in double quotes as `"job name with space"` or `"folder with space/jobname"`.
• `/jenkins get-artifacts <jobname> [build number]` - Get artifacts of the given build (last build by default).
• `/jenkins test-results <jobname> [build number]` - Get the test report URL of the given build.
• `/jenkins get-log <jobname> [build number]` - Get the console log of the given build.
• `/jenkins abort <jobname> [build number]` - Abort the given build (last build by default).
• `/jenkins disable <jobname>` - Disable a job.
• `/jenkins enable <jobname>` - Enable a job.
• `/jenkins delete <jobname>` - Delete a job.
• `/jenkins createjob` - Create a new job from a config.xml document.
• `/jenkins plugins` - List the plugins installed on Jenkins.
• `/jenkins safe-restart` - Restart Jenkins once running builds finish.
• `/jenkins me` - Show the Jenkins account you are connected as.
• `/jenkins disconnect` - Disconnect your Jenkins account.
• `/jenkins help` - Show this help text."""

CREDENTIALS_HELP = (
    "Error fetching your Jenkins info. "
    "Please connect your account with `/jenkins connect <username> <API Token>`."
)


# ---------------------------------------------------------------------------
# Modal builders
# ---------------------------------------------------------------------------


def build_parameters_modal(
    job_name: str,
    definitions: List[ParameterDefinition],
    channel_id: str,
) -> Dict[str, Any]:
    """Build the modal that collects build parameters for a job.

    WHY: Parameterized jobs cannot be built from the slash command alone;
    the user fills in (or accepts) each parameter first.

    HOW: One input block per parameter, block_id = parameter name.
    Booleans and choices become static selects, everything else a text
    input prefilled with the default. Job and channel travel in
    private_metadata.

    RULES:
    - All inputs are optional; omitted values fall back to defaults
    - Choice lists are truncated to Slack's 100-option limit
    """
    blocks: List[Dict[str, Any]] = [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": "Parameters for *{}*".format(job_name),
            },
        }
    ]

    for definition in definitions:
        blocks.append(_parameter_input(definition))

    return {
        "type": "modal",
        "callback_id": MODAL_BUILD_PARAMETERS,
        "title": {"type": "plain_text", "text": "Build Jenkins job"},
        "submit": {"type": "plain_text", "text": "Build"},
        "close": {"type": "plain_text", "text": "Cancel"},
        "private_metadata": json.dumps({"job_name": job_name, "channel_id": channel_id}),
        "blocks": blocks,
    }


def build_create_job_modal(channel_id: str) -> Dict[str, Any]:
    """Build the modal that collects a job name and its config.xml."""
    return {
        "type": "modal",
        "callback_id": MODAL_CREATE_JOB,
        "title": {"type": "plain_text", "text": "Create Jenkins job"},
        "submit": {"type": "plain_text", "text": "Create"},
        "close": {"type": "plain_text", "text": "Cancel"},
        "private_metadata": json.dumps({"channel_id": channel_id}),
        "blocks": [
            {
                "type": "input",
                "block_id": BLOCK_JOB_NAME,
                "label": {"type": "plain_text", "text": "Job name"},
                "hint": {
                    "type": "plain_text",
                    "text": "Use folder/jobname to create the job inside an existing folder.",
                },
                "element": {
                    "type": "plain_text_input",
                    "action_id": ACTION_JOB_NAME,
                },
            },
            {
                "type": "input",
                "block_id": BLOCK_JOB_CONFIG,
                "label": {"type": "plain_text", "text": "Job config (config.xml)"},
                "element": {
                    "type": "plain_text_input",
                    "action_id": ACTION_JOB_CONFIG,
                    "multiline": True,
                },
            },
        ],
    }


def _parameter_input(definition: ParameterDefinition) -> Dict[str, Any]:
    label = definition.name[:2000]
    block: Dict[str, Any] = {
        "type": "input",
        "block_id": definition.name,
        "optional": True,
        "label": {"type": "plain_text", "text": label},
    }
    if definition.description:
        block["hint"] = {"type": "plain_text", "text": definition.description[:2000]}

    if definition.type == BOOLEAN_TYPE:
        element = _static_select(["true", "false"], definition.default or "false")
    elif definition.type == CHOICE_TYPE and definition.choices:
        initial = definition.default or definition.choices[0]
        element = _static_select(definition.choices[:_SELECT_OPTIONS_MAX], initial)
    else:
        element = {"type": "plain_text_input", "action_id": ACTION_PARAMETER_VALUE}
        if definition.default:
            element["initial_value"] = definition.default

    block["element"] = element
    return block


def _static_select(values: List[str], initial: Optional[str]) -> Dict[str, Any]:
    options = [
        {"text": {"type": "plain_text", "text": v[:75] or " "}, "value": v}
        for v in values
    ]
    element: Dict[str, Any] = {
        "type": "static_select",
        "action_id": ACTION_PARAMETER_VALUE,
        "options": options,
    }
    for option in options:
        if option["value"] == initial:
            element["initial_option"] = option
            break
    return element


# ---------------------------------------------------------------------------
# Submission extractors
# ---------------------------------------------------------------------------


def extract_parameter_values(state_values: Dict[str, Any]) -> Dict[str, str]:
    """Turn a parameters-modal view state into {parameter name: value}.

    RULES:
    - Text inputs contribute "value"; selects contribute selected_option.value
    - Inputs left empty are omitted (defaults apply downstream)
    """
    result: Dict[str, str] = {}
    for block_id, actions in state_values.items():
        data = actions.get(ACTION_PARAMETER_VALUE)
        if not data:
            continue
        if data.get("type") == "static_select" or "selected_option" in data:
            selected = data.get("selected_option") or {}
            value = selected.get("value")
        else:
            value = data.get("value")
        if value is not None:
            result[block_id] = value
    return result


def extract_create_job_values(state_values: Dict[str, Any]) -> Dict[str, str]:
    """Return {"job_name": ..., "config": ...} from the create-job modal."""
    name = state_values.get(BLOCK_JOB_NAME, {}).get(ACTION_JOB_NAME, {}).get("value") or ""
    config = state_values.get(BLOCK_JOB_CONFIG, {}).get(ACTION_JOB_CONFIG, {}).get("value") or ""
    return {"job_name": name.strip(), "config": config}


def parse_private_metadata(view: Dict[str, Any]) -> Dict[str, Any]:
    """Decode a view's private_metadata JSON; {} when absent or invalid."""
    try:
        data = json.loads(view.get("private_metadata") or "{}")
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Message formatters
# ---------------------------------------------------------------------------


def format_build_queued(job_name: str) -> str:
    return "Build for the job '{}' has been triggered and is in queue.".format(job_name)


def format_build_started(record: BuildRecord) -> str:
    return "Build #{} for the job '{}' has been started.\nHere's the build URL : {}".format(
        record.number, record.job_name, record.url
    )


def format_artifacts_found(count: int, record: BuildRecord) -> str:
    if count == 0:
        return "No artifacts found in build #{} of the job '{}'.".format(
            record.number, record.job_name
        )
    return "{} Artifact(s) found in build #{} of the job '{}'.".format(
        count, record.number, record.job_name
    )


def format_test_report(job_name: str, number: int, url: Optional[str]) -> str:
    if url is None:
        return "Test reports for the job '{}' (build #{}) don't exist.".format(job_name, number)
    return "Test reports URL: {}".format(url)


def format_plugins(plugins: List[PluginInfo]) -> str:
    """Format installed plugins as a bullet list, longest lists truncated.

    RULES:
    - One line per plugin: long name (short name) version
    - "(disabled)" and "(update available)" markers when relevant
    """
    if not plugins:
        return "No plugins are installed."

    lines = ["Installed plugins ({}):".format(len(plugins))]
    for plugin in plugins[:_PLUGINS_LIST_MAX]:
        markers = []
        if not plugin.active:
            markers.append("disabled")
        if plugin.has_update:
            markers.append("update available")
        suffix = " ({})".format(", ".join(markers)) if markers else ""
        lines.append(
            "* {} (`{}`) v{}{}".format(
                plugin.long_name, plugin.short_name, plugin.version, suffix
            )
        )
    hidden = len(plugins) - _PLUGINS_LIST_MAX
    if hidden > 0:
        lines.append("...and {} more.".format(hidden))
    return "\n".join(lines)


def log_filename(job_name: str, number: int) -> str:
    """File name for an uploaded console log, e.g. folder_app-12.log."""
    safe = job_name.replace("/", "_").replace(" ", "_")
    return "{}-{}.log".format(safe, number)


def format_error(exc: Exception) -> str:
    """Paraphrase a package error for the chat user without leaking details.

    RULES:
    - UserInputError text is shown as-is (it is already a usage hint)
    - CredentialError always maps to CREDENTIALS_HELP
    - RemoteError names the failed operation, never the raw response
    """
    if isinstance(exc, UserInputError):
        return str(exc)
    if isinstance(exc, CredentialError):
        return CREDENTIALS_HELP
    if isinstance(exc, RemoteError):
        if exc.status_code == 404:
            cause = "the job or build was not found"
        elif exc.status_code in (401, 403):
            cause = "Jenkins denied access; check your permissions or reconnect your account"
        elif exc.status_code is None:
            cause = "Jenkins could not be reached or sent an unexpected response"
        else:
            cause = "Jenkins returned HTTP {}".format(exc.status_code)
        return "Error while trying to {}: {}.".format(exc.operation, cause)
    return "Something went wrong while talking to Jenkins."
