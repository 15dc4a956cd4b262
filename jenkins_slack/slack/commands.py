"""Slash command handlers for `/jenkins <action> ...`.

WHY: Every action follows the same shape: resolve the caller's Jenkins
credentials, parse the job reference, perform one or two Jenkins calls,
and report back. Keeping that flow in one class with one error boundary
means each handler is a few lines and every failure is reported the
same way.

HOW: CommandHandler.handle() splits the command text, looks the first
token up in a dispatch table, and runs the handler with a CommandContext
that pins the settings snapshot for the whole request. Handlers raise
package errors; handle() turns them into ephemeral replies through
messages.format_error() and logs them with the action name.
trigger_and_report() is shared with the HTTP callback for parameterized
builds.

RULES:
- Unknown or missing action → help text
- The settings snapshot is taken once per command
- connect arguments (the API token) are never logged
- Parameterized jobs open the parameters modal instead of building
- A missing build number means the job's last build
- build, disable, enable and delete reject a trailing build number
- Runs in a worker thread; may block for the whole trigger-and-poll wait
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from jenkins_slack.api.client import JenkinsAdapter, create_adapter, verify_credentials
from jenkins_slack.api.trigger import FailureReason, TriggerOutcome, TriggerPollEngine
from jenkins_slack.config import Settings, get_settings
from jenkins_slack.core.models import ParsedJobReference
from jenkins_slack.core.parser import parse_job_reference
from jenkins_slack.core.vault import CredentialVault
from jenkins_slack.errors import (
    CredentialError,
    CredentialNotFoundError,
    JenkinsBotError,
    RemoteError,
    UserInputError,
)
from jenkins_slack.slack.dispatcher import ResponseDispatcher
from jenkins_slack.slack.messages import (
    HELP_TEXT,
    build_create_job_modal,
    build_parameters_modal,
    format_artifacts_found,
    format_build_queued,
    format_build_started,
    format_error,
    format_plugins,
    format_test_report,
    log_filename,
)

logger = logging.getLogger(__name__)


@dataclass
class CommandContext:
    """One command invocation: who, where, and with which settings."""

    user_id: str
    channel_id: str
    trigger_id: str
    args: List[str]
    settings: Settings


# ---------------------------------------------------------------------------
# Shared build flow
# ---------------------------------------------------------------------------


def trigger_and_report(
    adapter: JenkinsAdapter,
    settings: Settings,
    dispatcher: ResponseDispatcher,
    user_id: str,
    channel_id: str,
    job_name: str,
    parameters: Optional[Mapping[str, str]] = None,
    cancel_event: Optional[threading.Event] = None,
    wait: Optional[Callable[[threading.Event, float], bool]] = None,
) -> TriggerOutcome:
    """Trigger a build, wait for it to start, and report each step.

    HOW: Runs TriggerPollEngine with the snapshot's polling bounds. The
    "in queue" notice goes to the user as soon as a queue id exists; the
    "started" notice with the build URL goes to the whole channel.
    Failures are reported to the user only.

    RULES:
    - Returns the engine's outcome unchanged
    - Never raises RemoteError (the engine folds it into the outcome)
    """
    engine = TriggerPollEngine(
        adapter,
        poll_interval_s=settings.poll_interval_s,
        max_attempts=settings.poll_max_attempts,
        timeout_s=settings.poll_timeout_s,
        wait=wait,
    )

    def on_queued(queue_id: int) -> None:
        dispatcher.post_ephemeral(channel_id, user_id, format_build_queued(job_name))

    outcome = engine.run(
        job_name,
        parameters=parameters,
        on_queued=on_queued,
        cancel_event=cancel_event,
    )

    if outcome.succeeded and outcome.build is not None:
        dispatcher.post_message(channel_id, format_build_started(outcome.build))
    else:
        logger.warning(
            "Build of %s for user %s did not start: %s",
            job_name, user_id, outcome.message,
        )
        dispatcher.post_ephemeral(channel_id, user_id, _outcome_text(outcome))
    return outcome


def _outcome_text(outcome: TriggerOutcome) -> str:
    if outcome.reason == FailureReason.REMOTE_ERROR:
        return "Error while trying to trigger build for the job '{}'.".format(outcome.job_name)
    return outcome.message


# ---------------------------------------------------------------------------
# Command handler
# ---------------------------------------------------------------------------


class CommandHandler:
    """Dispatch table and handlers for the `/jenkins` slash command.

    RULES:
    - adapter_factory and verifier are injectable (tests)
    - shutdown_event aborts any trigger-and-poll wait in progress
    """

    def __init__(
        self,
        vault: CredentialVault,
        dispatcher: ResponseDispatcher,
        settings_provider: Callable[[], Settings] = get_settings,
        adapter_factory: Callable[[str, CredentialVault, Settings], JenkinsAdapter] = create_adapter,
        verifier: Callable[[str, str, str], bool] = verify_credentials,
        shutdown_event: Optional[threading.Event] = None,
        wait: Optional[Callable[[threading.Event, float], bool]] = None,
    ) -> None:
        self._vault = vault
        self._dispatcher = dispatcher
        self._settings_provider = settings_provider
        self._adapter_factory = adapter_factory
        self._verifier = verifier
        self._shutdown_event = shutdown_event
        self._wait = wait
        self._actions: Dict[str, Callable[[CommandContext], None]] = {
            "connect": self._connect,
            "build": self._build,
            "get-artifacts": self._get_artifacts,
            "test-results": self._test_results,
            "get-log": self._get_log,
            "abort": self._abort,
            "disable": self._disable,
            "enable": self._enable,
            "delete": self._delete,
            "me": self._me,
            "disconnect": self._disconnect,
            "safe-restart": self._safe_restart,
            "plugins": self._plugins,
            "createjob": self._create_job,
            "help": self._help,
        }

    @property
    def actions(self) -> List[str]:
        return list(self._actions)

    def handle(
        self,
        text: str,
        user_id: str,
        channel_id: str,
        trigger_id: str = "",
    ) -> None:
        """Run one `/jenkins` command.

        Args:
            text: Everything after the slash command, e.g. "build my-job".
            user_id: Slack ID of the invoking user.
            channel_id: Channel the command was typed in.
            trigger_id: Interaction trigger, needed to open modals.
        """
        tokens = text.split()
        action = tokens[0].lower() if tokens else "help"
        handler = self._actions.get(action, self._help)

        ctx = CommandContext(
            user_id=user_id,
            channel_id=channel_id,
            trigger_id=trigger_id,
            args=tokens[1:],
            settings=self._settings_provider(),
        )

        try:
            handler(ctx)
        except UserInputError as exc:
            self._reply(ctx, format_error(exc))
        except CredentialError as exc:
            logger.warning("Credentials unavailable for user %s: %s", user_id, exc)
            self._reply(ctx, format_error(exc))
        except RemoteError as exc:
            logger.error(
                "Action '%s' for user %s failed: %s (args: %s)",
                action, user_id, exc, self._loggable_args(action, ctx.args),
            )
            self._reply(ctx, format_error(exc))
        except JenkinsBotError as exc:
            logger.error("Action '%s' for user %s failed: %s", action, user_id, exc)
            self._reply(ctx, format_error(exc))

    # -- helpers ------------------------------------------------------------

    def _reply(self, ctx: CommandContext, text: str) -> None:
        self._dispatcher.post_ephemeral(ctx.channel_id, ctx.user_id, text)

    def _adapter(self, ctx: CommandContext) -> JenkinsAdapter:
        return self._adapter_factory(ctx.user_id, self._vault, ctx.settings)

    @staticmethod
    def _loggable_args(action: str, args: List[str]) -> str:
        if action == "connect":
            return "<redacted>"
        return " ".join(args)

    # -- account ------------------------------------------------------------

    def _connect(self, ctx: CommandContext) -> None:
        if len(ctx.args) != 2:
            raise UserInputError("Please specify both username and API token.")
        username, token = ctx.args

        if not self._verifier(ctx.settings.base_url, username, token):
            self._reply(ctx, "Incorrect username or token.")
            return

        self._vault.store(ctx.user_id, username, token)
        self._reply(ctx, "Your Jenkins account has been connected as '{}'.".format(username))

    def _me(self, ctx: CommandContext) -> None:
        try:
            credential = self._vault.fetch(ctx.user_id)
        except CredentialNotFoundError:
            self._reply(ctx, "You are not connected to Jenkins. Use `/jenkins connect` first.")
            return
        self._reply(ctx, "You are connected to Jenkins as '{}'.".format(credential.username))

    def _disconnect(self, ctx: CommandContext) -> None:
        if self._vault.delete(ctx.user_id):
            self._reply(ctx, "Your Jenkins account has been disconnected.")
        else:
            self._reply(ctx, "You are not connected to Jenkins.")

    def _help(self, ctx: CommandContext) -> None:
        self._reply(ctx, HELP_TEXT)

    # -- builds -------------------------------------------------------------

    def _build(self, ctx: CommandContext) -> None:
        ref = self._job_only_reference(ctx)
        adapter = self._adapter(ctx)

        job = adapter.get_job(ref.job_path)
        if job.is_parameterized:
            view = build_parameters_modal(ref.job_path, job.parameters, ctx.channel_id)
            if not self._dispatcher.open_modal(ctx.trigger_id, view):
                self._reply(ctx, "Could not open the build parameters dialog.")
            return

        trigger_and_report(
            adapter,
            ctx.settings,
            self._dispatcher,
            ctx.user_id,
            ctx.channel_id,
            ref.job_path,
            cancel_event=self._shutdown_event,
            wait=self._wait,
        )

    def _abort(self, ctx: CommandContext) -> None:
        ref = self._job_reference(ctx)
        adapter = self._adapter(ctx)

        build = adapter.get_build(ref.job_path, ref.build_number_int)
        if not build.building:
            self._reply(
                ctx,
                "Build #{} of the job '{}' is not running.".format(build.number, ref.job_path),
            )
            return

        adapter.stop_build(ref.job_path, build.number)
        self._dispatcher.post_message(
            ctx.channel_id,
            "Build #{} of the job '{}' has been aborted by <@{}>.".format(
                build.number, ref.job_path, ctx.user_id
            ),
        )

    def _get_artifacts(self, ctx: CommandContext) -> None:
        ref = self._job_reference(ctx)
        adapter = self._adapter(ctx)

        record = adapter.get_artifacts(ref.job_path, ref.build_number_int)
        self._reply(ctx, format_artifacts_found(len(record.artifacts), record))

        for artifact in record.artifacts:
            self._reply(ctx, "Uploading artifact '{}' ...".format(artifact.file_name))
            try:
                content = adapter.download_artifact(ref.job_path, record.number, artifact)
            except RemoteError as exc:
                logger.error(
                    "Artifact %s of %s #%d could not be downloaded: %s",
                    artifact.relative_path, ref.job_path, record.number, exc,
                )
                self._reply(ctx, format_error(exc))
                continue
            self._dispatcher.upload_file(
                ctx.channel_id,
                content,
                artifact.file_name,
                title="Artifact - {}".format(artifact.file_name),
            )

    def _test_results(self, ctx: CommandContext) -> None:
        ref = self._job_reference(ctx)
        adapter = self._adapter(ctx)

        build = adapter.get_build(ref.job_path, ref.build_number_int)
        url = None
        if adapter.has_test_report(ref.job_path, build.number):
            url = adapter.test_report_url(ref.job_path, build.number)
        self._reply(ctx, format_test_report(ref.job_path, build.number, url))

    def _get_log(self, ctx: CommandContext) -> None:
        ref = self._job_reference(ctx)
        adapter = self._adapter(ctx)

        build = adapter.get_build(ref.job_path, ref.build_number_int)
        console = adapter.get_console_output(ref.job_path, build.number)
        if not console:
            self._reply(
                ctx,
                "The console log of build #{} of the job '{}' is empty.".format(
                    build.number, ref.job_path
                ),
            )
            return

        self._dispatcher.upload_file(
            ctx.channel_id,
            console,
            log_filename(ref.job_path, build.number),
            initial_comment="Console log of build #{} of the job '{}'".format(
                build.number, ref.job_path
            ),
        )

    # -- jobs ---------------------------------------------------------------

    def _disable(self, ctx: CommandContext) -> None:
        ref = self._job_only_reference(ctx)
        self._adapter(ctx).disable_job(ref.job_path)
        self._reply(ctx, "Job '{}' has been disabled.".format(ref.job_path))

    def _enable(self, ctx: CommandContext) -> None:
        ref = self._job_only_reference(ctx)
        self._adapter(ctx).enable_job(ref.job_path)
        self._reply(ctx, "Job '{}' has been enabled.".format(ref.job_path))

    def _delete(self, ctx: CommandContext) -> None:
        ref = self._job_only_reference(ctx)
        self._adapter(ctx).delete_job(ref.job_path)
        self._dispatcher.post_message(
            ctx.channel_id,
            "Job '{}' has been deleted by <@{}>.".format(ref.job_path, ctx.user_id),
        )

    def _create_job(self, ctx: CommandContext) -> None:
        # Resolve credentials first so an unconnected user gets the hint, not a modal
        self._vault.fetch(ctx.user_id)
        view = build_create_job_modal(ctx.channel_id)
        if not self._dispatcher.open_modal(ctx.trigger_id, view):
            self._reply(ctx, "Could not open the create job dialog.")

    # -- server -------------------------------------------------------------

    def _plugins(self, ctx: CommandContext) -> None:
        plugins = self._adapter(ctx).get_plugins()
        self._reply(ctx, format_plugins(plugins))

    def _safe_restart(self, ctx: CommandContext) -> None:
        self._adapter(ctx).safe_restart()
        self._dispatcher.post_message(
            ctx.channel_id,
            "Jenkins will restart once running builds finish (requested by <@{}>).".format(
                ctx.user_id
            ),
        )

    @staticmethod
    def _job_reference(ctx: CommandContext) -> ParsedJobReference:
        if not ctx.args:
            raise UserInputError("Please specify the job name.")
        return parse_job_reference(ctx.args)

    @staticmethod
    def _job_only_reference(ctx: CommandContext) -> ParsedJobReference:
        """Job reference for actions that take no build number."""
        if not ctx.args:
            raise UserInputError("Please specify the job name.")
        return parse_job_reference(ctx.args, allow_build_number=False)
