"""Credential vault: encrypted per-user Jenkins credentials in a KV store.

WHY: Each Slack user talks to Jenkins with their own username and API
token, so permissions on the Jenkins side stay meaningful. The token has
to be kept between commands, encrypted under a key that never sits next
to the ciphertext.

HOW: store() encrypts the token with crypto.encrypt() under the
process-wide key, serializes {UserID, Username, Token} as JSON and writes
it under "<user_id>_jenkinsToken". fetch() reads and decrypts it back into
a UserCredential. The key is read from a callable on every operation, so a
configuration reload takes effect without rebuilding the vault.

RULES:
- Record key: user_id + "_jenkinsToken"
- Record JSON field names are UserID, Username, Token (encrypted)
- fetch() raises CredentialNotFoundError when no record exists
- fetch() raises DecryptError on a wrong key or corrupted record
- Plaintext tokens are never logged or persisted
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Callable, Optional

from jenkins_slack.config import get_settings
from jenkins_slack.core import crypto
from jenkins_slack.core.models import UserCredential
from jenkins_slack.core.storage import KVStore, create_kv_store
from jenkins_slack.errors import CredentialNotFoundError, DecryptError

logger = logging.getLogger(__name__)

TOKEN_KEY_SUFFIX = "_jenkinsToken"


def record_key(user_id: str) -> str:
    """Return the KV key of a user's credential record."""
    return user_id + TOKEN_KEY_SUFFIX


class CredentialVault:
    """Encrypts, persists, and restores per-user Jenkins credentials."""

    def __init__(self, store: KVStore, key_provider: Callable[[], bytes]) -> None:
        self._store = store
        self._key_provider = key_provider

    def store(self, user_id: str, username: str, token: str) -> None:
        """Encrypt token and persist the user's record (last write wins)."""
        encrypted = crypto.encrypt(self._key_provider(), token)
        record = {"UserID": user_id, "Username": username, "Token": encrypted}
        self._store.set(record_key(user_id), json.dumps(record))
        logger.info("Stored Jenkins credentials for user %s", user_id)

    def fetch(self, user_id: str) -> UserCredential:
        """Load and decrypt the user's record.

        RULES:
        - Missing record → CredentialNotFoundError
        - Unparseable record → DecryptError
        - Bad key or corrupted ciphertext → DecryptError
        """
        raw = self._store.get(record_key(user_id))
        if raw is None:
            raise CredentialNotFoundError(
                "No Jenkins credentials stored for user {}".format(user_id)
            )

        try:
            record = json.loads(raw)
            username = record["Username"]
            encrypted = record["Token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise DecryptError("Stored credential record is malformed: {}".format(exc))

        try:
            token = crypto.decrypt(self._key_provider(), encrypted)
        except DecryptError:
            logger.error("Failed to decrypt Jenkins token for user %s", user_id)
            raise

        return UserCredential(user_id=user_id, username=username, token=token)

    def delete(self, user_id: str) -> bool:
        """Remove the user's record; return True if one existed."""
        removed = self._store.delete(record_key(user_id))
        if removed:
            logger.info("Deleted Jenkins credentials for user %s", user_id)
        return removed

    def has_credentials(self, user_id: str) -> bool:
        return self._store.get(record_key(user_id)) is not None


def create_vault(kv_path: str = "") -> CredentialVault:
    """Build the process-wide vault over the configured KV store.

    RULES:
    - The key is read from the active settings on every operation
    """
    return CredentialVault(create_kv_store(kv_path), lambda: get_settings().key_bytes)


_vault_lock = threading.Lock()
_vault: Optional[CredentialVault] = None


def get_vault() -> CredentialVault:
    """Return the process-wide vault, creating it from the active settings."""
    global _vault
    with _vault_lock:
        if _vault is None:
            _vault = create_vault(get_settings().kv_path)
        return _vault
