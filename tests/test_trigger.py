"""Tests for the trigger-and-poll engine.

WHY: The engine is where a build request turns into a build URL, and
where a stuck queue could otherwise pin a worker forever. Each exit of
the state machine is exercised with a mocked adapter and a fake wait
function, so no test ever sleeps.
"""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from jenkins_slack.api.client import JenkinsAdapter
from jenkins_slack.api.models import BuildRecord, QueueItem
from jenkins_slack.api.trigger import (
    BuildState,
    FailureReason,
    TriggerOutcome,
    TriggerPollEngine,
)
from jenkins_slack.errors import RemoteError

JOB = "folder/app"
STARTED_ITEM = QueueItem(
    id=42, executable_number=13, executable_url="https://jenkins.example.com/job/folder/job/app/13/"
)


@pytest.fixture
def adapter():
    mock = MagicMock(spec=JenkinsAdapter)
    mock.build_job.return_value = 42
    mock.get_build.return_value = BuildRecord(
        job_name=JOB, number=13, url="https://jenkins.example.com/job/folder/job/app/13/"
    )
    return mock


class FakeWait:
    """Records waits; returns True (cancelled) once cancel_after waits happened."""

    def __init__(self, cancel_after=None):
        self.calls = []
        self._cancel_after = cancel_after

    def __call__(self, event, seconds):
        self.calls.append(seconds)
        return self._cancel_after is not None and len(self.calls) >= self._cancel_after


def _engine(adapter, wait=None, max_attempts=5, timeout_s=600.0, clock=None):
    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    return TriggerPollEngine(
        adapter,
        poll_interval_s=10.0,
        max_attempts=max_attempts,
        timeout_s=timeout_s,
        wait=wait or FakeWait(),
        **kwargs
    )


class TestTriggerPollEngine:
    """State machine exits."""

    def test_resolves_when_executable_appears(self, adapter):
        adapter.get_queue_item.side_effect = [
            QueueItem(id=42, why="Waiting for next available executor"),
            QueueItem(id=42, why="Waiting for next available executor"),
            STARTED_ITEM,
        ]
        wait = FakeWait()
        queued = []

        outcome = _engine(adapter, wait).run(JOB, on_queued=queued.append)

        assert outcome.succeeded is True
        assert outcome.state == BuildState.RESOLVED
        assert outcome.history == [
            BuildState.SUBMITTED,
            BuildState.QUEUED,
            BuildState.STARTED,
            BuildState.RESOLVED,
        ]
        assert outcome.queue_id == 42
        assert outcome.build.number == 13
        assert queued == [42]
        assert wait.calls == [10.0, 10.0]
        adapter.get_build.assert_called_once_with(JOB, 13)

    def test_parameters_passed_to_build(self, adapter):
        adapter.get_queue_item.return_value = STARTED_ITEM
        _engine(adapter).run(JOB, parameters={"BRANCH": "dev"})
        adapter.build_job.assert_called_once_with(JOB, {"BRANCH": "dev"})

    def test_queue_id_zero_fails_without_polling(self, adapter):
        adapter.build_job.return_value = 0
        wait = FakeWait()
        on_queued = MagicMock()

        outcome = _engine(adapter, wait).run(JOB, on_queued=on_queued)

        assert outcome.state == BuildState.FAILED
        assert outcome.reason == FailureReason.STILL_QUEUED
        assert "still in queue" in outcome.message
        assert wait.calls == []
        on_queued.assert_not_called()
        adapter.get_queue_item.assert_not_called()

    def test_trigger_failure(self, adapter):
        adapter.build_job.side_effect = RemoteError("trigger build", "forbidden", 403)

        outcome = _engine(adapter).run(JOB)

        assert outcome.reason == FailureReason.REMOTE_ERROR
        assert outcome.history == [BuildState.SUBMITTED, BuildState.FAILED]
        assert "trigger build" in outcome.message

    def test_timeout_after_max_attempts(self, adapter):
        adapter.get_queue_item.return_value = QueueItem(id=42, why="Blocked")
        wait = FakeWait()

        outcome = _engine(adapter, wait, max_attempts=3).run(JOB)

        assert outcome.reason == FailureReason.TIMEOUT
        assert adapter.get_queue_item.call_count == 3
        assert len(wait.calls) == 2
        assert "Blocked" in outcome.message

    def test_timeout_after_elapsed_time(self, adapter):
        adapter.get_queue_item.return_value = QueueItem(id=42)
        ticks = iter([0.0, 5.0, 30.0, 61.0])

        outcome = _engine(
            adapter, max_attempts=100, timeout_s=60.0, clock=lambda: next(ticks)
        ).run(JOB)

        assert outcome.reason == FailureReason.TIMEOUT
        assert adapter.get_queue_item.call_count == 3

    def test_cancelled_queue_item(self, adapter):
        adapter.get_queue_item.return_value = QueueItem(id=42, cancelled=True)

        outcome = _engine(adapter).run(JOB)

        assert outcome.reason == FailureReason.CANCELLED
        adapter.get_build.assert_not_called()

    def test_abort_during_wait(self, adapter):
        adapter.get_queue_item.return_value = QueueItem(id=42)

        outcome = _engine(adapter, FakeWait(cancel_after=2)).run(JOB)

        assert outcome.reason == FailureReason.ABORTED
        assert adapter.get_queue_item.call_count == 2

    def test_abort_before_first_poll(self, adapter):
        event = threading.Event()
        event.set()

        outcome = _engine(adapter).run(JOB, cancel_event=event)

        assert outcome.reason == FailureReason.ABORTED
        assert outcome.queue_id == 42
        adapter.get_queue_item.assert_not_called()

    def test_queue_poll_failure(self, adapter):
        adapter.get_queue_item.side_effect = RemoteError("fetch queue item", "gone", 404)

        outcome = _engine(adapter).run(JOB)

        assert outcome.reason == FailureReason.REMOTE_ERROR
        assert outcome.history[-2:] == [BuildState.QUEUED, BuildState.FAILED]

    def test_build_fetch_failure(self, adapter):
        adapter.get_queue_item.return_value = STARTED_ITEM
        adapter.get_build.side_effect = RemoteError("fetch build", "timeout")

        outcome = _engine(adapter).run(JOB)

        assert outcome.reason == FailureReason.REMOTE_ERROR
        assert BuildState.STARTED in outcome.history
        assert outcome.build is None

    def test_outcome_defaults(self):
        outcome = TriggerOutcome(state=BuildState.FAILED, job_name=JOB)
        assert outcome.succeeded is False
        assert outcome.history == []
