"""Per-user Jenkins client adapter built on python-jenkins.

WHY: Every command talks to Jenkins as the calling user, and Jenkins
addresses jobs inside folders as nested items: job "folder/app" lives at
/job/folder/job/app. This module owns that path convention, turns
Jenkins JSON into typed models, and wraps every failure with the name of
the operation that failed.

HOW: JenkinsAdapter holds an authenticated jenkins.Jenkins instance
(python-jenkins) for the user's credentials. Job-scoped operations
rewrite the job path with rewrite_job_path() and issue requests through
the client's jenkins_request()/jenkins_open(), which handle auth, CSRF
crumbs, and HTTP error mapping. Server-scoped operations (whoami, queue
items) use the client's own methods. create_adapter() resolves the
user's credentials from the vault first.

RULES:
- rewrite_job_path("folder/jobname") == "folder/job/jobname"
- Every job-scoped URL is <base>/job/<rewritten path>/..., segments quoted
- Every failure is raised as RemoteError(operation, ...); no retries here
- build_job() returns 0 when Jenkins gives no queue location
- A missing build number means the job's last build
"""

from __future__ import annotations

import json
import logging
import re
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional
from urllib.parse import quote

import jenkins
import requests

from jenkins_slack.config import Settings
from jenkins_slack.core.vault import CredentialVault
from jenkins_slack.errors import RemoteError
from jenkins_slack.api.models import (
    Artifact,
    BuildRecord,
    JobInfo,
    PluginInfo,
    QueueItem,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_REQUEST_TIMEOUT_S = 30
_XML_HEADERS = {"Content-Type": "text/xml; charset=utf-8"}
_STATUS_RE = re.compile(r"\[(\d{3})\]")
_QUEUE_LOCATION_RE = re.compile(r"/queue/item/(\d+)/?$")


def rewrite_job_path(job_path: str) -> str:
    """Rewrite a folder-style job path into Jenkins' nested item path.

    WHY: Jenkins nests items under folders as /job/<folder>/job/<name>.
    Users type "folder/name"; the client needs "folder/job/name".

    RULES:
    - "jobname" → "jobname"
    - "folder/jobname" → "folder/job/jobname"
    - "a/b/c" → "a/job/b/job/c"
    - Stray surrounding quotes are trimmed first
    """
    job_path = job_path.strip('\\"')
    return job_path.replace("/", "/job/")


def job_url_path(job_path: str) -> str:
    """Return the URL-quoted "job/<rewritten path>" suffix for a job."""
    rewritten = rewrite_job_path(job_path)
    return "job/" + "/".join(quote(segment, safe="") for segment in rewritten.split("/"))


@contextmanager
def _remote(operation: str) -> Iterator[None]:
    """Translate python-jenkins and requests failures into RemoteError."""
    try:
        yield
    except jenkins.NotFoundException as exc:
        raise RemoteError(operation, str(exc) or "not found", status_code=404)
    except jenkins.JenkinsException as exc:
        match = _STATUS_RE.search(str(exc))
        status = int(match.group(1)) if match else None
        raise RemoteError(operation, str(exc), status_code=status)
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else None
        raise RemoteError(operation, str(exc), status_code=status)
    except requests.RequestException as exc:
        raise RemoteError(operation, "Jenkins is unreachable: {}".format(exc))
    except ValueError as exc:
        raise RemoteError(operation, "unexpected response from Jenkins: {}".format(exc))


class JenkinsAdapter:
    """Jenkins operations performed with one user's credentials.

    WHY: Handlers should not know about python-jenkins, URL layouts, or
    which exception class means "not found". They call one method per
    action and get typed results or a RemoteError.

    RULES:
    - server may be injected (tests); otherwise a jenkins.Jenkins is built
    - base_url never ends with "/"
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        token: str,
        server: Optional[Any] = None,
        timeout: int = _REQUEST_TIMEOUT_S,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._username = username
        self._server = server or jenkins.Jenkins(
            self._base_url,
            username=username,
            password=token,
            timeout=timeout,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def username(self) -> str:
        return self._username

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return "{}/{}".format(self._base_url, path)

    def _job_url(self, job_path: str, suffix: str = "") -> str:
        url = self._url(job_url_path(job_path))
        if suffix:
            url = "{}/{}".format(url, suffix)
        return url

    def _build_ref(self, number: Optional[int]) -> str:
        return str(number) if number is not None else "lastBuild"

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        text = self._server.jenkins_open(requests.Request("GET", url, params=params))
        return json.loads(text)

    def _post(self, url: str, **kwargs: Any) -> requests.Response:
        return self._server.jenkins_request(requests.Request("POST", url, **kwargs))

    # ------------------------------------------------------------------
    # Server-scoped operations
    # ------------------------------------------------------------------

    def whoami(self) -> Dict[str, Any]:
        """Return the authenticated user's Jenkins identity."""
        with _remote("verify credentials"):
            return self._server.get_whoami()

    def get_queue_item(self, queue_id: int) -> QueueItem:
        with _remote("fetch queue item"):
            return QueueItem.from_dict(self._server.get_queue_item(queue_id))

    def get_plugins(self) -> List[PluginInfo]:
        """List installed plugins, sorted by short name."""
        with _remote("fetch plugins"):
            data = self._get_json(
                self._url("pluginManager/api/json"), params={"depth": 2}
            )
        plugins = [PluginInfo.from_dict(p) for p in data.get("plugins") or []]
        return sorted(plugins, key=lambda p: p.short_name.lower())

    def safe_restart(self) -> None:
        """Ask Jenkins to restart once running builds finish."""
        with _remote("safe restart"):
            self._post(self._url("safeRestart"))
        logger.info("Safe restart requested by Jenkins user %s", self._username)

    # ------------------------------------------------------------------
    # Job-scoped operations
    # ------------------------------------------------------------------

    def get_job(self, job_path: str) -> JobInfo:
        with _remote("fetch job"):
            return JobInfo.from_dict(self._get_json(self._job_url(job_path, "api/json")))

    def create_job(self, job_path: str, config_xml: str) -> None:
        """Create a job from a config.xml document.

        RULES:
        - The last path segment is the new job's name
        - Leading segments are the (existing) folders it is created in
        """
        segments = [s for s in job_path.strip('\\"').split("/") if s]
        if not segments:
            raise RemoteError("create job", "job name is empty")
        folder, name = "/".join(segments[:-1]), segments[-1]
        parent = self._job_url(folder) if folder else self._base_url

        with _remote("create job"):
            self._post(
                "{}/createItem".format(parent),
                params={"name": name},
                data=config_xml.encode("utf-8"),
                headers=_XML_HEADERS,
            )
        logger.info("Created job %s", job_path)

    def enable_job(self, job_path: str) -> None:
        with _remote("enable job"):
            self._post(self._job_url(job_path, "enable"))

    def disable_job(self, job_path: str) -> None:
        with _remote("disable job"):
            self._post(self._job_url(job_path, "disable"))

    def delete_job(self, job_path: str) -> None:
        with _remote("delete job"):
            self._post(self._job_url(job_path, "doDelete"))
        logger.info("Deleted job %s", job_path)

    def build_job(
        self,
        job_path: str,
        parameters: Optional[Mapping[str, str]] = None,
    ) -> int:
        """Request a build and return its queue item id (0 if none).

        WHY: Jenkins answers a build request with a Location header that
        points at the queue item. No location means the request was
        folded into an already-queued build, which the caller reports as
        "still queued".

        RULES:
        - parameters given → POST buildWithParameters with form data
        - Returns 0 when the Location header is missing or unparseable
        """
        suffix = "buildWithParameters" if parameters else "build"
        with _remote("trigger build"):
            response = self._post(
                self._job_url(job_path, suffix),
                data=dict(parameters) if parameters else None,
            )

        location = response.headers.get("Location", "") if response is not None else ""
        match = _QUEUE_LOCATION_RE.search(location or "")
        if not match:
            logger.warning("No queue location returned for job %s", job_path)
            return 0
        return int(match.group(1))

    def get_build(self, job_path: str, number: Optional[int] = None) -> BuildRecord:
        """Fetch one build; the last build when number is None."""
        with _remote("fetch build"):
            data = self._get_json(
                self._job_url(job_path, "{}/api/json".format(self._build_ref(number)))
            )
        return BuildRecord.from_dict(job_path, data)

    def stop_build(self, job_path: str, number: int) -> None:
        with _remote("abort build"):
            self._post(self._job_url(job_path, "{}/stop".format(number)))
        logger.info("Aborted build %s #%d", job_path, number)

    def get_console_output(self, job_path: str, number: Optional[int] = None) -> str:
        with _remote("fetch console log"):
            return self._server.jenkins_open(
                requests.Request(
                    "GET",
                    self._job_url(job_path, "{}/consoleText".format(self._build_ref(number))),
                )
            )

    def get_artifacts(self, job_path: str, number: Optional[int] = None) -> BuildRecord:
        """Return the build record whose artifacts list the archived files."""
        with _remote("fetch artifacts"):
            data = self._get_json(
                self._job_url(job_path, "{}/api/json".format(self._build_ref(number))),
                params={"tree": "number,url,result,building,fullDisplayName,"
                                "artifacts[fileName,relativePath]"},
            )
        return BuildRecord.from_dict(job_path, data)

    def download_artifact(self, job_path: str, number: int, artifact: Artifact) -> bytes:
        with _remote("download artifact"):
            response = self._server.jenkins_request(
                requests.Request(
                    "GET",
                    self._job_url(
                        job_path,
                        "{}/artifact/{}".format(
                            number, quote(artifact.relative_path, safe="/")
                        ),
                    ),
                )
            )
        return response.content

    def has_test_report(self, job_path: str, number: Optional[int] = None) -> bool:
        """True if the build published a test report."""
        try:
            with _remote("fetch test report"):
                self._get_json(
                    self._job_url(
                        job_path,
                        "{}/testReport/api/json".format(self._build_ref(number)),
                    ),
                    params={"tree": "failCount"},
                )
        except RemoteError as exc:
            if exc.status_code == 404:
                return False
            raise
        return True

    def test_report_url(self, job_path: str, number: int) -> str:
        """Browser URL of a build's test report (no credentials in it)."""
        return self._job_url(job_path, "{}/testReport".format(number))


def create_adapter(
    user_id: str,
    vault: CredentialVault,
    settings: Settings,
) -> JenkinsAdapter:
    """Build an adapter authenticated as the given Slack user.

    RULES:
    - CredentialError from the vault propagates unchanged
    - The adapter is bound to settings.base_url
    """
    credential = vault.fetch(user_id)
    return JenkinsAdapter(settings.base_url, credential.username, credential.token)


def verify_credentials(base_url: str, username: str, token: str) -> bool:
    """Check a username/token pair against Jenkins.

    RULES:
    - Returns False when Jenkins rejects the credentials (401/403)
    - Other failures (unreachable, 5xx) raise RemoteError
    """
    adapter = JenkinsAdapter(base_url, username, token)
    try:
        adapter.whoami()
    except RemoteError as exc:
        if exc.status_code in (401, 403):
            return False
        raise
    return True
