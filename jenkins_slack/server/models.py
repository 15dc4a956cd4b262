"""Pydantic request/response models for the HTTP callback API.

WHY: Modal submissions reach the API as JSON posted by the bot. Typed
schemas validate them before any Jenkins call is made and document the
callbacks in the /docs UI.

HOW: One request model (DialogSubmission) shared by both callbacks, one
response model per endpoint, and a common ErrorResponse.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Submission values are strings; Jenkins receives them form-encoded
- Response models never expose credentials
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class DialogSubmission(BaseModel):
    """Values collected by a Slack modal, forwarded by the bot.

    RULES:
    - channel_id is where progress and results are posted
    - submission maps parameter names to string values; the create-job
      callback expects its config.xml under "config"
    """

    channel_id: str = Field(description="Slack channel the command was typed in.")
    submission: Dict[str, str] = Field(
        default_factory=dict,
        description="Submitted form values keyed by field name.",
    )

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "channel_id": "C0123456789",
                "submission": {"BRANCH": "main", "DEPLOY": "true"},
            }
        ]
    }}


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class BuildTriggeredResponse(BaseModel):
    """Result of a parameterized build trigger.

    WHY: The bot only needs to know whether the build started; the user
    has already been told the details in the channel.
    """

    job_name: str = Field(description="Job path as submitted (folder/job).")
    state: str = Field(description="Final trigger state: 'resolved' or 'failed'.")
    build_number: Optional[int] = Field(
        default=None, description="Build number once the build started."
    )
    build_url: Optional[str] = Field(
        default=None, description="Browser URL of the started build."
    )
    reason: Optional[str] = Field(
        default=None,
        description="Failure reason when state is 'failed' "
        "(still_queued, cancelled, timeout, aborted, remote_error).",
    )


class JobCreatedResponse(BaseModel):
    """Job creation acknowledgement."""

    job_name: str = Field(description="Job path that was created.")
    created: bool = Field(description="Always true on success.")


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is a human-readable message safe to show in chat
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
    configured: bool = Field(description="Whether the plugin configuration is valid.")
