"""Tests for the FastAPI callback API.

WHY: The bot forwards modal submissions here, and the status code plus
detail of every error response is what the user ends up reading. These
tests pin the ordering of the checks (configuration, identity, job
name, parameters) and the happy paths of both callbacks.

HOW: FastAPI TestClient with app.dependency_overrides for the settings,
vault, and dispatcher. create_adapter is patched to return a mocked
JenkinsAdapter, so no python-jenkins object is created.

RULES:
- All tests use the FastAPI TestClient (synchronous)
- The TestClient is not used as a context manager (the lifespan would
  set the shutdown flag when it exits)
- Dependency overrides are cleared after every test
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from jenkins_slack.api.client import JenkinsAdapter
from jenkins_slack.api.models import BuildRecord, JobInfo, ParameterDefinition, QueueItem
from jenkins_slack.api.parameters import CHOICE_TYPE
from jenkins_slack.config import USER_ID_HEADER
from jenkins_slack.core.vault import get_vault
from jenkins_slack.errors import ConfigError, CredentialNotFoundError, RemoteError
from jenkins_slack.server.app import (
    NOT_CONFIGURED,
    app,
    get_dispatcher,
    require_settings,
    shutdown_event,
)
from jenkins_slack.slack.dispatcher import ResponseDispatcher

BUILD_URL = "https://jenkins.example.com/job/folder/job/app/13/"
HEADERS = {USER_ID_HEADER: "U1"}
BODY = {"channel_id": "C1", "submission": {}}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def dispatcher():
    return MagicMock(spec=ResponseDispatcher)


@pytest.fixture
def jenkins_adapter():
    mock = MagicMock(spec=JenkinsAdapter)
    mock.get_job.return_value = JobInfo(
        name="app",
        full_name="folder/app",
        url="",
        parameters=[
            ParameterDefinition(
                name="ENV", type=CHOICE_TYPE, default="staging", choices=["staging", "production"]
            )
        ],
    )
    mock.build_job.return_value = 42
    mock.get_queue_item.return_value = QueueItem(id=42, executable_number=13, executable_url=BUILD_URL)
    mock.get_build.return_value = BuildRecord(job_name="folder/app", number=13, url=BUILD_URL)
    return mock


@pytest.fixture
def client(settings, vault, dispatcher, jenkins_adapter):
    """TestClient with settings, vault, dispatcher and adapter replaced."""
    shutdown_event.clear()
    app.dependency_overrides[require_settings] = lambda: settings
    app.dependency_overrides[get_vault] = lambda: vault
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with patch(
        "jenkins_slack.server.app.create_adapter", return_value=jenkins_adapter
    ) as mock_factory:
        test_client = TestClient(app)
        test_client.create_adapter = mock_factory
        yield test_client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Access checks
# ---------------------------------------------------------------------------


class TestAccessChecks:
    """Configuration and identity are checked before any Jenkins call."""

    def test_missing_user_header_401(self, client, jenkins_adapter):
        resp = client.post("/triggerBuild/app", json=BODY)
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Not authorized"}
        jenkins_adapter.get_job.assert_not_called()

    def test_blank_user_header_401(self, client):
        resp = client.post("/createJob/app", json=BODY, headers={USER_ID_HEADER: "  "})
        assert resp.status_code == 401

    @pytest.mark.parametrize("headers", [HEADERS, {}])
    def test_invalid_configuration_501(self, client, headers):
        del app.dependency_overrides[require_settings]
        with patch("jenkins_slack.server.app.get_settings", side_effect=ConfigError("no url")):
            resp = client.post("/triggerBuild/app", json=BODY, headers=headers)
        assert resp.status_code == 501
        assert resp.json()["detail"] == NOT_CONFIGURED


# ---------------------------------------------------------------------------
# POST /triggerBuild
# ---------------------------------------------------------------------------


class TestTriggerBuild:
    """Parameterized build callback."""

    def test_build_started(self, client, jenkins_adapter, dispatcher):
        body = {"channel_id": "C1", "submission": {"ENV": "production"}}
        resp = client.post("/triggerBuild/folder/app", json=body, headers=HEADERS)

        assert resp.status_code == 200
        data = resp.json()
        assert data["job_name"] == "folder/app"
        assert data["state"] == "resolved"
        assert data["build_number"] == 13
        assert data["build_url"] == BUILD_URL
        assert data["reason"] is None
        jenkins_adapter.build_job.assert_called_once_with("folder/app", {"ENV": "production"})
        dispatcher.post_message.assert_called_once()
        assert BUILD_URL in dispatcher.post_message.call_args.args[1]

    def test_user_from_header(self, client, vault):
        client.post("/triggerBuild/app", json=BODY, headers=HEADERS)
        user_id, used_vault, _ = client.create_adapter.call_args.args
        assert user_id == "U1"
        assert used_vault is vault

    def test_encoded_folder_path(self, client, jenkins_adapter):
        resp = client.post("/triggerBuild/my%20folder/my%20job", json=BODY, headers=HEADERS)
        assert resp.status_code == 200
        jenkins_adapter.get_job.assert_called_once_with("my folder/my job")

    def test_defaults_applied(self, client, jenkins_adapter):
        client.post("/triggerBuild/app", json=BODY, headers=HEADERS)
        jenkins_adapter.build_job.assert_called_once_with("app", {"ENV": "staging"})

    def test_invalid_choice_400(self, client, jenkins_adapter):
        body = {"channel_id": "C1", "submission": {"ENV": "qa"}}
        resp = client.post("/triggerBuild/app", json=body, headers=HEADERS)
        assert resp.status_code == 400
        assert "ENV" in resp.json()["detail"]
        jenkins_adapter.build_job.assert_not_called()

    def test_quoted_empty_job_name_400(self, client):
        resp = client.post('/triggerBuild/%22%22', json=BODY, headers=HEADERS)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Please specify the job name."

    def test_job_not_found_404(self, client, jenkins_adapter):
        jenkins_adapter.get_job.side_effect = RemoteError("fetch job", "missing", 404)
        resp = client.post("/triggerBuild/nope", json=BODY, headers=HEADERS)
        assert resp.status_code == 404
        assert "not found" in resp.json()["detail"]

    def test_jenkins_down_502(self, client, jenkins_adapter):
        jenkins_adapter.get_job.side_effect = RemoteError("fetch job", "refused")
        resp = client.post("/triggerBuild/app", json=BODY, headers=HEADERS)
        assert resp.status_code == 502

    def test_not_connected_403(self, client):
        client.create_adapter.side_effect = CredentialNotFoundError("none")
        resp = client.post("/triggerBuild/app", json=BODY, headers=HEADERS)
        assert resp.status_code == 403
        assert "/jenkins connect" in resp.json()["detail"]

    def test_failed_trigger_reported_in_body(self, client, jenkins_adapter, dispatcher):
        jenkins_adapter.build_job.return_value = 0
        resp = client.post("/triggerBuild/app", json=BODY, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["state"] == "failed"
        assert resp.json()["reason"] == "still_queued"
        dispatcher.post_message.assert_not_called()
        dispatcher.post_ephemeral.assert_called_once()

    def test_missing_channel_422(self, client):
        resp = client.post("/triggerBuild/app", json={"submission": {}}, headers=HEADERS)
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# POST /createJob
# ---------------------------------------------------------------------------


class TestCreateJob:
    """Job creation callback."""

    def test_created_201(self, client, jenkins_adapter, dispatcher):
        body = {"channel_id": "C1", "submission": {"config": "<project/>"}}
        resp = client.post("/createJob/folder/new-job", json=body, headers=HEADERS)

        assert resp.status_code == 201
        assert resp.json() == {"job_name": "folder/new-job", "created": True}
        jenkins_adapter.create_job.assert_called_once_with("folder/new-job", "<project/>")
        assert dispatcher.post_message.call_args.args == (
            "C1", "Job 'folder/new-job' has been created by <@U1>."
        )

    def test_missing_config_400(self, client, jenkins_adapter):
        resp = client.post("/createJob/new-job", json=BODY, headers=HEADERS)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Please provide the job configuration."
        jenkins_adapter.create_job.assert_not_called()

    def test_create_denied_502(self, client, jenkins_adapter, dispatcher):
        jenkins_adapter.create_job.side_effect = RemoteError("create job", "exists", 400)
        body = {"channel_id": "C1", "submission": {"config": "<project/>"}}
        resp = client.post("/createJob/app", json=body, headers=HEADERS)
        assert resp.status_code == 502
        assert "create job" in resp.json()["detail"]
        dispatcher.post_message.assert_not_called()


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------


class TestHealth:
    """Liveness endpoint."""

    def test_configured(self, client, settings):
        with patch("jenkins_slack.server.app.get_settings", return_value=settings):
            resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["configured"] is True

    def test_not_configured(self, client):
        with patch("jenkins_slack.server.app.get_settings", side_effect=ConfigError("bad")):
            resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["configured"] is False
