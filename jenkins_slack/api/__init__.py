"""Jenkins integration: per-user client adapter and trigger-and-poll engine.

WHY: All Jenkins communication goes through one adapter so the nested
folder path convention, error wrapping, and credential lookup live in a
single place.

RULES:
- All HTTP calls to Jenkins go through JenkinsAdapter
- Authentication is per Slack user (username + API token from the vault)
- Only the trigger engine waits; nothing here retries automatically
"""

from jenkins_slack.api.client import (
    JenkinsAdapter,
    create_adapter,
    rewrite_job_path,
    verify_credentials,
)
from jenkins_slack.api.trigger import (
    BuildState,
    FailureReason,
    TriggerOutcome,
    TriggerPollEngine,
)

__all__ = [
    "BuildState",
    "FailureReason",
    "JenkinsAdapter",
    "TriggerOutcome",
    "TriggerPollEngine",
    "create_adapter",
    "rewrite_job_path",
    "verify_credentials",
]
