"""Shared test fixtures for the jenkins_slack test suite.

WHY: Most test modules need the same settings snapshot, an in-memory
credential vault, and a fake python-jenkins client. Centralizing them
keeps every test independent of the environment and of a real Jenkins.

HOW: Settings are built directly (no .env lookup). The fake Jenkins
server is a MagicMock exposing the python-jenkins methods the adapter
calls (jenkins_open, jenkins_request, get_whoami, get_queue_item).

RULES:
- No test talks to a real Jenkins or Slack
- The active settings snapshot is reset after every test
- ENCRYPTION_KEY is 16 bytes (AES-128)
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest

from jenkins_slack import config
from jenkins_slack.api.client import JenkinsAdapter
from jenkins_slack.config import Settings
from jenkins_slack.core.storage import MemoryKVStore
from jenkins_slack.core.vault import CredentialVault

JENKINS_URL = "https://jenkins.example.com"
ENCRYPTION_KEY = "0123456789abcdef"


@pytest.fixture(autouse=True)
def _reset_active_settings():
    """Keep the process-wide settings snapshot from leaking between tests."""
    config._active_settings = None
    yield
    config._active_settings = None


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jenkins_url=JENKINS_URL,
        encryption_key=ENCRYPTION_KEY,
        profile_image_url="https://example.com/jenkins.png",
        poll_interval_s=0.01,
        poll_max_attempts=5,
        poll_timeout_s=60.0,
    )


@pytest.fixture
def kv_store() -> MemoryKVStore:
    return MemoryKVStore()


@pytest.fixture
def vault(kv_store) -> CredentialVault:
    return CredentialVault(kv_store, lambda: ENCRYPTION_KEY.encode("utf-8"))


@pytest.fixture
def fake_server() -> MagicMock:
    """A stand-in for jenkins.Jenkins with no default responses."""
    return MagicMock()


@pytest.fixture
def adapter(fake_server) -> JenkinsAdapter:
    return JenkinsAdapter(JENKINS_URL, "alice", "api-token", server=fake_server)


def make_response(headers: Optional[Dict[str, str]] = None, content: bytes = b"") -> MagicMock:
    """Build a requests.Response-like mock."""
    response = MagicMock()
    response.headers = headers or {}
    response.content = content
    return response


def job_json(name: str = "app", parameters: Optional[list] = None) -> str:
    """Serialized job JSON as Jenkins returns it from job/<path>/api/json."""
    data: Dict[str, Any] = {
        "name": name,
        "fullName": name,
        "url": "{}/job/{}/".format(JENKINS_URL, name),
        "buildable": True,
        "color": "blue",
        "lastBuild": {"number": 7},
        "property": [],
    }
    if parameters:
        data["property"] = [
            {
                "_class": "hudson.model.ParametersDefinitionProperty",
                "parameterDefinitions": parameters,
            }
        ]
    return json.dumps(data)
