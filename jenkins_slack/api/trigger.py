"""Trigger-and-poll engine: request a build and wait until it is executing.

WHY: Jenkins accepts a build request by putting it in a queue; the build
number only exists once an executor picks it up. The user asked for "the
build", so the bot has to wait for that moment and then report the build
URL. The wait must be bounded: a job stuck in the queue (no executor,
blocked by another build) must not hold a worker forever.

HOW: TriggerPollEngine.run() walks a small state machine:

    SUBMITTED → QUEUED → STARTED → RESOLVED
         \\________\\_________\\______→ FAILED

It submits the build, calls on_queued() as soon as a queue id exists,
then polls the queue item every poll_interval_s until the item exposes an
executable URL, and finally fetches the build metadata. Waiting goes
through a threading.Event so the caller can cancel.

RULES:
- Queue id 0 → FAILED(still_queued) immediately, no polling
- on_queued() is called exactly once, right after a queue id is obtained
- Cancelled queue item → FAILED(cancelled)
- max_attempts polls or timeout_s elapsed → FAILED(timeout)
- cancel_event set → FAILED(aborted)
- Any RemoteError → FAILED(remote_error); never retried
- run() never raises RemoteError; the outcome carries the reason
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional

from jenkins_slack.errors import RemoteError
from jenkins_slack.api.client import JenkinsAdapter
from jenkins_slack.api.models import BuildRecord, QueueItem

logger = logging.getLogger(__name__)


class BuildState(str, enum.Enum):
    """States of one trigger-and-poll run."""

    SUBMITTED = "submitted"
    QUEUED = "queued"
    STARTED = "started"
    RESOLVED = "resolved"
    FAILED = "failed"


class FailureReason(str, enum.Enum):
    """Why a run ended in FAILED."""

    STILL_QUEUED = "still_queued"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    ABORTED = "aborted"
    REMOTE_ERROR = "remote_error"


@dataclass
class TriggerOutcome:
    """Terminal result of TriggerPollEngine.run().

    RULES:
    - state is RESOLVED or FAILED
    - build is set only when state is RESOLVED
    - reason and message are set only when state is FAILED
    - history lists every state visited, in order
    """

    state: BuildState
    job_name: str
    queue_id: int = 0
    build: Optional[BuildRecord] = None
    reason: Optional[FailureReason] = None
    message: str = ""
    history: List[BuildState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == BuildState.RESOLVED


def _wait_on_event(event: threading.Event, timeout: float) -> bool:
    return event.wait(timeout)


class TriggerPollEngine:
    """Submits a build and polls its queue item until it starts.

    RULES:
    - poll_interval_s, max_attempts, timeout_s come from Settings
    - wait(event, seconds) returns True when cancelled; injectable in tests
    - clock is injectable for timeout tests
    """

    def __init__(
        self,
        adapter: JenkinsAdapter,
        poll_interval_s: float,
        max_attempts: int,
        timeout_s: float,
        wait: Optional[Callable[[threading.Event, float], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._adapter = adapter
        self._poll_interval_s = poll_interval_s
        self._max_attempts = max_attempts
        self._timeout_s = timeout_s
        self._wait = wait or _wait_on_event
        self._clock = clock

    def run(
        self,
        job_name: str,
        parameters: Optional[Mapping[str, str]] = None,
        on_queued: Optional[Callable[[int], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> TriggerOutcome:
        """Trigger a build of job_name and block until it is executing.

        Args:
            job_name: Slash-separated job path as typed by the user.
            parameters: Validated build parameters, or None.
            on_queued: Called with the queue id once the build is queued.
            cancel_event: Set it from another thread to stop waiting.

        Returns:
            TriggerOutcome in state RESOLVED or FAILED.
        """
        event = cancel_event or threading.Event()
        outcome = TriggerOutcome(
            state=BuildState.SUBMITTED,
            job_name=job_name,
            history=[BuildState.SUBMITTED],
        )

        try:
            queue_id = self._adapter.build_job(job_name, parameters)
        except RemoteError as exc:
            return self._fail(outcome, FailureReason.REMOTE_ERROR, str(exc))

        if not queue_id:
            return self._fail(
                outcome,
                FailureReason.STILL_QUEUED,
                "A build for the job '{}' is still in queue.".format(job_name),
            )

        outcome.queue_id = queue_id
        self._advance(outcome, BuildState.QUEUED)
        if on_queued:
            on_queued(queue_id)

        item = self._poll_queue(outcome, event)
        if item is None:
            return outcome

        self._advance(outcome, BuildState.STARTED)
        try:
            outcome.build = self._adapter.get_build(job_name, item.executable_number)
        except RemoteError as exc:
            return self._fail(outcome, FailureReason.REMOTE_ERROR, str(exc))

        self._advance(outcome, BuildState.RESOLVED)
        logger.info(
            "Build %s #%s started (queue item %d)",
            job_name, outcome.build.number, queue_id,
        )
        return outcome

    def _poll_queue(
        self,
        outcome: TriggerOutcome,
        event: threading.Event,
    ) -> Optional[QueueItem]:
        """Poll until the queue item has an executable; None if the run failed."""
        start = self._clock()
        attempts = 0

        while True:
            if event.is_set():
                self._fail(outcome, FailureReason.ABORTED, "Waiting for the build was aborted.")
                return None

            try:
                item = self._adapter.get_queue_item(outcome.queue_id)
            except RemoteError as exc:
                self._fail(outcome, FailureReason.REMOTE_ERROR, str(exc))
                return None
            attempts += 1

            if item.cancelled:
                self._fail(
                    outcome,
                    FailureReason.CANCELLED,
                    "The queued build for '{}' was cancelled.".format(outcome.job_name),
                )
                return None

            if item.executable_url:
                return item

            elapsed = self._clock() - start
            if attempts >= self._max_attempts or elapsed >= self._timeout_s:
                self._fail(
                    outcome,
                    FailureReason.TIMEOUT,
                    "The build for '{}' did not start after {} checks ({:.0f}s). {}".format(
                        outcome.job_name, attempts, elapsed, item.why
                    ).strip(),
                )
                return None

            logger.debug(
                "Queue item %d not started yet (attempt %d): %s",
                outcome.queue_id, attempts, item.why,
            )
            if self._wait(event, self._poll_interval_s):
                self._fail(outcome, FailureReason.ABORTED, "Waiting for the build was aborted.")
                return None

    @staticmethod
    def _advance(outcome: TriggerOutcome, state: BuildState) -> None:
        outcome.state = state
        outcome.history.append(state)

    @staticmethod
    def _fail(
        outcome: TriggerOutcome,
        reason: FailureReason,
        message: str,
    ) -> TriggerOutcome:
        outcome.state = BuildState.FAILED
        outcome.history.append(BuildState.FAILED)
        outcome.reason = reason
        outcome.message = message
        logger.warning(
            "Trigger of %s failed (%s): %s", outcome.job_name, reason.value, message
        )
        return outcome
