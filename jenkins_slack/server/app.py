"""FastAPI application serving the modal-submission callbacks.

WHY: Parameterized builds and job creation need more input than a slash
command line can carry, so the bot collects it in a Slack modal and
forwards the submission here. Running the callbacks as an HTTP API keeps
the long trigger-and-poll wait out of the bot's event loop and gives the
callbacks a documented, testable surface.

HOW: Two POST routes and a health check. Dependencies resolve, in order,
the active settings (501 when the configuration is invalid), the calling
user from the X-Chat-User-Id header (401 when missing), the credential
vault, and a ResponseDispatcher bound to the bot token. The endpoints are
plain `def` functions, so FastAPI runs them in its threadpool and the
polling wait blocks only that worker.

RULES:
- Settings are checked before the user header (501 before 401)
- Every error response uses the ErrorResponse schema
- Build progress and results are posted to Slack, not only returned
- Dependencies are overridable through app.dependency_overrides (tests)
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from slack_sdk import WebClient

from jenkins_slack import __version__
from jenkins_slack.api.client import create_adapter
from jenkins_slack.api.parameters import validate_parameters
from jenkins_slack.config import USER_ID_HEADER, Settings, get_settings
from jenkins_slack.core.vault import CredentialVault, get_vault
from jenkins_slack.errors import (
    AuthError,
    ConfigError,
    CredentialError,
    JenkinsBotError,
    RemoteError,
    UserInputError,
)
from jenkins_slack.server.models import (
    BuildTriggeredResponse,
    DialogSubmission,
    ErrorResponse,
    HealthResponse,
    JobCreatedResponse,
)
from jenkins_slack.slack.commands import trigger_and_report
from jenkins_slack.slack.dispatcher import ResponseDispatcher
from jenkins_slack.slack.messages import format_error

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "This plugin is not configured."

# Set on shutdown so in-flight trigger-and-poll waits stop promptly
shutdown_event = threading.Event()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Clear the shutdown flag on startup, set it on shutdown."""
    shutdown_event.clear()
    yield
    shutdown_event.set()


app = FastAPI(
    lifespan=lifespan,
    title="Jenkins Slack Bot Callback API",
    description=(
        "Callbacks for Slack modal submissions: trigger a parameterized "
        "Jenkins build and wait until it starts, or create a Jenkins job "
        "from a config.xml document."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def require_settings() -> Settings:
    """Return the active settings, or 501 when the configuration is invalid."""
    try:
        return get_settings()
    except ConfigError as exc:
        logger.error("Rejecting request, configuration is invalid: %s", exc)
        raise HTTPException(status_code=501, detail=NOT_CONFIGURED)


def require_user(
    user_id: Annotated[Optional[str], Header(alias=USER_ID_HEADER)] = None,
) -> str:
    """Return the calling Slack user ID, or 401 when the header is missing."""
    if not user_id or not user_id.strip():
        raise _http_error(AuthError("Missing {} header".format(USER_ID_HEADER)))
    return user_id.strip()


_dispatcher_lock = threading.Lock()
_dispatcher: Optional[ResponseDispatcher] = None


def get_dispatcher() -> ResponseDispatcher:
    """Return a process-wide dispatcher bound to SLACK_BOT_TOKEN."""
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = ResponseDispatcher(
                WebClient(token=os.environ.get("SLACK_BOT_TOKEN", ""))
            )
        return _dispatcher


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _clean_job_name(job_name: str) -> str:
    """Trim stray quotes from a path job name; 400 when nothing is left."""
    cleaned = job_name.strip().strip('\\"')
    if not cleaned:
        raise HTTPException(status_code=400, detail="Please specify the job name.")
    return cleaned


def _http_error(exc: JenkinsBotError) -> HTTPException:
    """Map a package error to an HTTPException with a chat-safe detail.

    RULES:
    - AuthError → 401
    - UserInputError (incl. ParameterValidationError) → 400
    - CredentialError → 403
    - RemoteError → 404 when Jenkins said 404, otherwise 502
    """
    if isinstance(exc, AuthError):
        return HTTPException(status_code=401, detail="Not authorized")
    detail = format_error(exc)
    if isinstance(exc, UserInputError):
        return HTTPException(status_code=400, detail=detail)
    if isinstance(exc, CredentialError):
        return HTTPException(status_code=403, detail=detail)
    if isinstance(exc, RemoteError) and exc.status_code == 404:
        return HTTPException(status_code=404, detail=detail)
    return HTTPException(status_code=502, detail=detail)


_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid job name or parameters"},
    401: {"model": ErrorResponse, "description": "Missing user identity header"},
    403: {"model": ErrorResponse, "description": "No usable Jenkins credentials"},
    404: {"model": ErrorResponse, "description": "Job not found on Jenkins"},
    501: {"model": ErrorResponse, "description": "Plugin configuration is invalid"},
    502: {"model": ErrorResponse, "description": "Jenkins request failed"},
}


# ---------------------------------------------------------------------------
# Endpoints: Builds
# ---------------------------------------------------------------------------


@app.post(
    "/triggerBuild/{job_name:path}",
    response_model=BuildTriggeredResponse,
    tags=["builds"],
    summary="Trigger a parameterized build",
    description=(
        "Validate the submitted parameters against the job's parameter "
        "definitions, trigger the build, and wait until it starts. Progress "
        "and the build URL are posted to the channel."
    ),
    responses=_ERROR_RESPONSES,
)
def trigger_build(
    job_name: str,
    body: DialogSubmission,
    settings: Settings = Depends(require_settings),
    user_id: str = Depends(require_user),
    vault: CredentialVault = Depends(get_vault),
    dispatcher: ResponseDispatcher = Depends(get_dispatcher),
) -> BuildTriggeredResponse:
    job_name = _clean_job_name(job_name)

    try:
        adapter = create_adapter(user_id, vault, settings)
        job = adapter.get_job(job_name)
        parameters = validate_parameters(job.parameters, body.submission)
    except RemoteError as exc:
        logger.error("Build trigger for %s by %s failed: %s", job_name, user_id, exc)
        raise _http_error(exc)
    except JenkinsBotError as exc:
        logger.warning("Build trigger for %s by %s rejected: %s", job_name, user_id, exc)
        raise _http_error(exc)

    outcome = trigger_and_report(
        adapter,
        settings,
        dispatcher,
        user_id,
        body.channel_id,
        job_name,
        parameters=parameters or None,
        cancel_event=shutdown_event,
    )

    return BuildTriggeredResponse(
        job_name=job_name,
        state=outcome.state.value,
        build_number=outcome.build.number if outcome.build else None,
        build_url=outcome.build.url if outcome.build else None,
        reason=outcome.reason.value if outcome.reason else None,
    )


# ---------------------------------------------------------------------------
# Endpoints: Jobs
# ---------------------------------------------------------------------------


@app.post(
    "/createJob/{job_name:path}",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["jobs"],
    summary="Create a job from config.xml",
    description=(
        "Create a Jenkins job (inside a folder when the name contains "
        "slashes) from the config.xml document in submission.config."
    ),
    responses=_ERROR_RESPONSES,
)
def create_job(
    job_name: str,
    body: DialogSubmission,
    settings: Settings = Depends(require_settings),
    user_id: str = Depends(require_user),
    vault: CredentialVault = Depends(get_vault),
    dispatcher: ResponseDispatcher = Depends(get_dispatcher),
) -> JobCreatedResponse:
    job_name = _clean_job_name(job_name)
    config_xml = body.submission.get("config", "")
    if not config_xml.strip():
        raise HTTPException(status_code=400, detail="Please provide the job configuration.")

    try:
        adapter = create_adapter(user_id, vault, settings)
        adapter.create_job(job_name, config_xml)
    except RemoteError as exc:
        logger.error("Creating job %s for %s failed: %s", job_name, user_id, exc)
        raise _http_error(exc)
    except JenkinsBotError as exc:
        logger.warning("Creating job %s for %s rejected: %s", job_name, user_id, exc)
        raise _http_error(exc)

    logger.info("Job %s created by %s", job_name, user_id)
    dispatcher.post_message(
        body.channel_id,
        "Job '{}' has been created by <@{}>.".format(job_name, user_id),
    )
    return JobCreatedResponse(job_name=job_name, created=True)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness check; reports whether the configuration is valid.",
)
def health_check() -> HealthResponse:
    try:
        get_settings()
        configured = True
    except ConfigError:
        configured = False
    return HealthResponse(status="ok", version=__version__, configured=configured)


def run_api():
    """Entry point for the jenkins-slack-api console script."""
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    get_settings()
    uvicorn.run(app, host="127.0.0.1", port=8000)
