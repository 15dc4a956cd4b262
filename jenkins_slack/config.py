"""Plugin configuration: .env loading, immutable settings snapshot, validation.

WHY: The Jenkins URL, the encryption key for stored tokens, and the bot's
profile image are deployment settings, not code. Every request handler
needs a consistent view of them, and a reload must never leave a handler
reading half-old, half-new values.

HOW: python-dotenv loads the .env file on import. load_settings() builds a
frozen Settings dataclass from the environment. The active snapshot lives
behind get_settings(); reload_settings() builds and validates a new
snapshot and swaps the reference under a lock (copy-on-write). Handlers
take one reference at the start of a request and use it throughout.

RULES:
- JENKINS_URL must include a scheme (http:// or https://) and a host
- JENKINS_ENCRYPTION_KEY must be 16, 24 or 32 bytes (AES-128/192/256)
- JENKINS_PROFILE_IMAGE_URL is optional; when set it must include a scheme
- Invalid configuration raises ConfigError; the process does not start
- Settings are never mutated after construction
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from jenkins_slack.errors import ConfigError

# Load .env from the project root (where the process is started from)
load_dotenv()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BOT_USERNAME = "Jenkins Plugin"
"""Display name used for every message the bot posts."""

SLASH_COMMAND = "/jenkins"

USER_ID_HEADER = "X-Chat-User-Id"
"""Header carrying the authenticated Slack user ID on HTTP callbacks."""

VALID_KEY_LENGTHS = (16, 24, 32)

DEFAULT_POLL_INTERVAL_S = 10.0
DEFAULT_POLL_MAX_ATTEMPTS = 60
DEFAULT_POLL_TIMEOUT_S = 900.0
DEFAULT_BOT_API_URL = "http://localhost:8000"


@dataclass(frozen=True)
class Settings:
    """One immutable snapshot of the plugin configuration.

    RULES:
    - encryption_key is kept as str; use key_bytes for crypto
    - repr never shows the encryption key
    """

    jenkins_url: str
    encryption_key: str = field(repr=False)
    profile_image_url: str = ""
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS
    poll_timeout_s: float = DEFAULT_POLL_TIMEOUT_S
    kv_path: str = ""
    bot_api_url: str = DEFAULT_BOT_API_URL

    @property
    def key_bytes(self) -> bytes:
        return self.encryption_key.encode("utf-8")

    @property
    def base_url(self) -> str:
        """Jenkins URL without a trailing slash."""
        return self.jenkins_url.rstrip("/")


def load_settings() -> Settings:
    """Build a Settings snapshot from environment variables.

    WHY: One place reads the environment, so tests can monkeypatch
    variables and reload instead of patching module constants.

    RULES:
    - Numeric variables that fail to parse raise ConfigError
    - Does not validate; call validate_settings() on the result
    """
    try:
        poll_interval = float(
            os.getenv("JENKINS_POLL_INTERVAL_S", str(DEFAULT_POLL_INTERVAL_S))
        )
        max_attempts = int(
            os.getenv("JENKINS_POLL_MAX_ATTEMPTS", str(DEFAULT_POLL_MAX_ATTEMPTS))
        )
        timeout = float(
            os.getenv("JENKINS_POLL_TIMEOUT_S", str(DEFAULT_POLL_TIMEOUT_S))
        )
    except ValueError as exc:
        raise ConfigError("Invalid polling configuration: {}".format(exc))

    return Settings(
        jenkins_url=os.getenv("JENKINS_URL", "").strip(),
        encryption_key=os.getenv("JENKINS_ENCRYPTION_KEY", ""),
        profile_image_url=os.getenv("JENKINS_PROFILE_IMAGE_URL", "").strip(),
        poll_interval_s=poll_interval,
        poll_max_attempts=max_attempts,
        poll_timeout_s=timeout,
        kv_path=os.getenv("JENKINS_KV_PATH", "").strip(),
        bot_api_url=os.getenv("JENKINS_BOT_API_URL", DEFAULT_BOT_API_URL).rstrip("/"),
    )


def validate_settings(settings: Settings) -> None:
    """Raise ConfigError if the settings cannot run the plugin.

    WHY: A missing scheme or a key of the wrong length would otherwise
    fail much later, inside a user's command, with a confusing message.
    Failing at activation keeps the plugin from ever becoming active.

    RULES:
    - Empty JENKINS_URL → "Please add Jenkins URL in plugin settings"
    - URL without scheme → "Please add scheme to the URL. HTTP or HTTPS"
    - Key length not in 16/24/32 bytes → ConfigError
    - Poll interval and attempts must be positive
    """
    if not settings.jenkins_url:
        raise ConfigError("Please add Jenkins URL in plugin settings")

    parsed = urlparse(settings.jenkins_url)
    if not parsed.scheme:
        raise ConfigError("Please add scheme to the URL. HTTP or HTTPS")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(
            "Invalid Jenkins URL '{}'".format(settings.jenkins_url)
        )

    if len(settings.key_bytes) not in VALID_KEY_LENGTHS:
        raise ConfigError(
            "Encryption key must be 16, 24 or 32 bytes long, got {}".format(
                len(settings.key_bytes)
            )
        )

    if settings.profile_image_url and not urlparse(settings.profile_image_url).scheme:
        raise ConfigError("Profile image URL must include a scheme")

    if (
        settings.poll_interval_s <= 0
        or settings.poll_max_attempts <= 0
        or settings.poll_timeout_s <= 0
    ):
        raise ConfigError("Polling interval, max attempts and timeout must be positive")


# ---------------------------------------------------------------------------
# Active snapshot
# ---------------------------------------------------------------------------

_settings_lock = threading.Lock()
_active_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the active settings snapshot, loading it on first use."""
    global _active_settings
    current = _active_settings
    if current is not None:
        return current
    return reload_settings()


def reload_settings(settings: Optional[Settings] = None) -> Settings:
    """Validate and atomically install a new settings snapshot.

    HOW: Builds (or accepts) a snapshot, validates it outside the lock,
    then swaps the module reference under the lock. Handlers that already
    hold the previous snapshot keep using it until they finish.

    RULES:
    - An invalid snapshot raises ConfigError and the old one stays active
    """
    global _active_settings
    new_settings = settings if settings is not None else load_settings()
    validate_settings(new_settings)
    with _settings_lock:
        _active_settings = new_settings
    return new_settings
