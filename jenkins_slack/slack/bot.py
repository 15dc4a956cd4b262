"""Slack bot: Socket Mode handlers for `/jenkins` and the bot's modals.

WHY: Users drive Jenkins from Slack. This module is the glue between
Slack's slash command and view submission events and the command
handlers: it acknowledges each event in time and moves the real work
(Jenkins calls, polling, uploads) off Slack's request path.

HOW: Uses slack-bolt with Socket Mode (no public URL needed). The slash
command handler acks, then runs CommandHandler.handle() in a background
thread. Modal submissions are validated, acked, and forwarded with httpx
to the callback API (server.app), which triggers the parameterized build
or creates the job and reports to the channel itself.

RULES:
- All Slack events must be ack()'d within 3 seconds
- Heavy work runs after ack() in a background thread
- Uses httpx for HTTP calls to the callback API
- Forwarded submissions carry the user in the X-Chat-User-Id header
- Invalid configuration stops the bot at startup (ConfigError)
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
- Runnable as: python -m jenkins_slack.slack.bot
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler

from jenkins_slack.config import SLASH_COMMAND, USER_ID_HEADER, get_settings, reload_settings
from jenkins_slack.core.vault import get_vault
from jenkins_slack.errors import ConfigError
from jenkins_slack.slack.commands import CommandHandler
from jenkins_slack.slack.dispatcher import ResponseDispatcher
from jenkins_slack.slack.messages import (
    ACTION_PARAMETER_VALUE,
    BLOCK_JOB_CONFIG,
    BLOCK_JOB_NAME,
    MODAL_BUILD_PARAMETERS,
    MODAL_CREATE_JOB,
    extract_create_job_values,
    extract_parameter_values,
    parse_private_metadata,
)

logger = logging.getLogger(__name__)

# Extra time on top of the polling timeout before the forward gives up
_FORWARD_GRACE_S = 60.0

# Set on shutdown so in-flight trigger-and-poll waits stop promptly
shutdown_event = threading.Event()


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------


def create_app(bot_token: Optional[str] = None) -> App:
    """Create and configure the Slack Bolt app with all handlers.

    WHY: Factory function allows tests to inject a custom bot_token
    and avoids module-level side effects.

    RULES:
    - If bot_token is None, reads from SLACK_BOT_TOKEN env var
    - All handlers are registered before returning
    """
    token = bot_token or os.environ.get("SLACK_BOT_TOKEN", "")

    app = App(token=token)

    app.command(SLASH_COMMAND)(handle_jenkins_command)
    app.view(MODAL_BUILD_PARAMETERS)(handle_build_parameters_submit)
    app.view(MODAL_CREATE_JOB)(handle_create_job_submit)
    app.action(ACTION_PARAMETER_VALUE)(handle_parameter_select)

    return app


# ---------------------------------------------------------------------------
# Slash command
# ---------------------------------------------------------------------------


def handle_jenkins_command(ack: Any, command: Dict[str, Any], client: Any, logger: Any) -> None:
    """Handle `/jenkins ...`: ack, then run the command in a thread.

    RULES:
    - ack() FIRST, with no text (replies are posted by the dispatcher)
    - trigger_id is passed on so handlers can open modals
    """
    ack()

    t = threading.Thread(
        target=_run_command,
        args=(client, command),
        daemon=True,
    )
    t.start()


def _run_command(client: Any, command: Dict[str, Any]) -> None:
    """Run one slash command in a background thread."""
    handler = CommandHandler(
        get_vault(),
        ResponseDispatcher(client),
        shutdown_event=shutdown_event,
    )
    try:
        handler.handle(
            command.get("text", ""),
            command.get("user_id", ""),
            command.get("channel_id", ""),
            command.get("trigger_id", ""),
        )
    except Exception:
        logger.exception("Unhandled error in %s command", SLASH_COMMAND)
        ResponseDispatcher(client).post_ephemeral(
            command.get("channel_id", ""),
            command.get("user_id", ""),
            "Something went wrong while running the command.",
        )


# ---------------------------------------------------------------------------
# Modal handlers
# ---------------------------------------------------------------------------


def handle_parameter_select(ack: Any, body: Any, logger: Any) -> None:
    """Acknowledge a parameter select change (no-op beyond ack)."""
    ack()


def handle_build_parameters_submit(
    ack: Any, body: Any, client: Any, view: Any, logger: Any
) -> None:
    """Handle the build-parameters modal: close it and forward the values.

    RULES:
    - ack() closes the modal; the build runs in a background thread
    - Values left empty are not sent (defaults apply)
    """
    ack()

    metadata = parse_private_metadata(view)
    user_id = body.get("user", {}).get("id", "")
    submission = extract_parameter_values(view.get("state", {}).get("values", {}))

    t = threading.Thread(
        target=_forward_submission,
        args=(
            client,
            "triggerBuild",
            metadata.get("job_name", ""),
            user_id,
            metadata.get("channel_id", ""),
            submission,
        ),
        daemon=True,
    )
    t.start()


def handle_create_job_submit(
    ack: Any, body: Any, client: Any, view: Any, logger: Any
) -> None:
    """Handle the create-job modal: validate, close it, and forward.

    RULES:
    - Empty job name or config → inline errors, modal stays open
    """
    values = extract_create_job_values(view.get("state", {}).get("values", {}))

    errors = {}
    if not values["job_name"].strip('\\"'):
        errors[BLOCK_JOB_NAME] = "Please specify the job name."
    if not values["config"].strip():
        errors[BLOCK_JOB_CONFIG] = "Please provide the job configuration."
    if errors:
        ack(response_action="errors", errors=errors)
        return

    ack()

    metadata = parse_private_metadata(view)
    user_id = body.get("user", {}).get("id", "")

    t = threading.Thread(
        target=_forward_submission,
        args=(
            client,
            "createJob",
            values["job_name"],
            user_id,
            metadata.get("channel_id", ""),
            {"config": values["config"]},
        ),
        daemon=True,
    )
    t.start()


def _forward_submission(
    client: Any,
    route: str,
    job_name: str,
    user_id: str,
    channel_id: str,
    submission: Dict[str, str],
) -> None:
    """POST a modal submission to the callback API.

    WHY: The API owns the long trigger-and-poll wait and reports results to
    the channel. The bot only tells the user when the callback itself fails.

    RULES:
    - Job name goes in the path with slashes kept (folder/job)
    - Non-2xx responses → the response detail posted to the user
    - Network failures → logged, generic message to the user
    """
    settings = get_settings()
    dispatcher = ResponseDispatcher(client)
    url = "{}/{}/{}".format(settings.bot_api_url, route, quote(job_name, safe="/"))

    try:
        with httpx.Client(timeout=settings.poll_timeout_s + _FORWARD_GRACE_S) as http:
            resp = http.post(
                url,
                json={"channel_id": channel_id, "submission": submission},
                headers={USER_ID_HEADER: user_id},
            )
    except httpx.HTTPError:
        logger.exception("Failed to forward %s submission for %s", route, job_name)
        dispatcher.post_ephemeral(
            channel_id, user_id, "Could not reach the Jenkins bot API. Please try again later."
        )
        return

    if resp.status_code >= 400:
        detail = _error_detail(resp)
        logger.warning(
            "%s for %s returned %d: %s", route, job_name, resp.status_code, detail
        )
        dispatcher.post_ephemeral(channel_id, user_id, detail)


def _error_detail(resp: httpx.Response) -> str:
    try:
        detail = resp.json().get("detail")
    except ValueError:
        detail = None
    if isinstance(detail, str) and detail:
        return detail
    return "The request failed (HTTP {}).".format(resp.status_code)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _install_reload_handler() -> None:
    """Reload settings on SIGHUP (where the platform has it)."""
    sighup = getattr(signal, "SIGHUP", None)
    if sighup is None:
        return

    def _reload(signum: int, frame: Any) -> None:
        try:
            reload_settings()
        except ConfigError as exc:
            logger.error("Configuration reload rejected, keeping previous settings: %s", exc)
            return
        logger.info("Configuration reloaded")

    signal.signal(sighup, _reload)


def main() -> None:
    """Start the Slack bot in Socket Mode.

    RULES:
    - Requires SLACK_BOT_TOKEN and SLACK_APP_TOKEN environment variables
    - Validates the plugin settings before connecting (ConfigError stops it)
    - Blocks on the SocketModeHandler.start() call
    """
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    bot_token = os.environ.get("SLACK_BOT_TOKEN", "")
    app_token = os.environ.get("SLACK_APP_TOKEN", "")

    if not bot_token:
        raise ValueError("SLACK_BOT_TOKEN environment variable is required")
    if not app_token:
        raise ValueError("SLACK_APP_TOKEN environment variable is required")

    settings = reload_settings()
    _install_reload_handler()

    app = create_app(bot_token=bot_token)

    logger.info("Starting Slack bot in Socket Mode...")
    logger.info("Jenkins URL: %s", settings.base_url)
    logger.info("Callback API URL: %s", settings.bot_api_url)

    handler = SocketModeHandler(app, app_token)
    try:
        handler.start()
    finally:
        shutdown_event.set()


if __name__ == "__main__":
    main()
