"""Tests for the KV stores and the credential vault.

WHY: The vault is the only place API tokens are kept. Records must use
the agreed key and field names, never hold the token in plaintext, and
fail explicitly when the key is wrong or a record is damaged.

HOW: MemoryKVStore for vault behavior; JsonFileKVStore against pytest's
tmp_path for persistence and corruption handling.
"""

from __future__ import annotations

import json

import pytest

from jenkins_slack.core.storage import JsonFileKVStore, MemoryKVStore, create_kv_store
from jenkins_slack.core.vault import CredentialVault, record_key
from jenkins_slack.errors import CredentialNotFoundError, DecryptError

TOKEN = "11d4c1ae2b0c8f3e9a7d6b5c4a3f2e1d0c"


# ---------------------------------------------------------------------------
# Tests: KV stores
# ---------------------------------------------------------------------------


class TestMemoryKVStore:
    """In-memory store semantics."""

    def test_get_missing_returns_none(self):
        assert MemoryKVStore().get("nope") is None

    def test_set_then_get(self):
        store = MemoryKVStore()
        store.set("k", "v1")
        store.set("k", "v2")
        assert store.get("k") == "v2"

    def test_delete_reports_presence(self):
        store = MemoryKVStore()
        store.set("k", "v")
        assert store.delete("k") is True
        assert store.delete("k") is False
        assert store.get("k") is None


class TestJsonFileKVStore:
    """File-backed store shared by the bot and API processes."""

    def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileKVStore(tmp_path / "kv.json")
        assert store.get("k") is None

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "kv.json"
        JsonFileKVStore(path).set("k", "v")
        assert JsonFileKVStore(path).get("k") == "v"
        assert json.loads(path.read_text(encoding="utf-8")) == {"k": "v"}

    def test_delete(self, tmp_path):
        store = JsonFileKVStore(tmp_path / "kv.json")
        store.set("a", "1")
        store.set("b", "2")
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert store.get("b") == "2"

    def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileKVStore(tmp_path / "kv.json")
        store.set("k", "v")
        assert [p.name for p in tmp_path.iterdir()] == ["kv.json"]

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "kv.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValueError):
            JsonFileKVStore(path).get("k")

    def test_non_object_file_raises(self, tmp_path):
        path = tmp_path / "kv.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            JsonFileKVStore(path).get("k")

    def test_factory_picks_store(self, tmp_path):
        assert isinstance(create_kv_store(""), MemoryKVStore)
        store = create_kv_store(str(tmp_path / "kv.json"))
        assert isinstance(store, JsonFileKVStore)
        assert store.path == tmp_path / "kv.json"


# ---------------------------------------------------------------------------
# Tests: CredentialVault
# ---------------------------------------------------------------------------


class TestCredentialVault:
    """Store/fetch/delete lifecycle of encrypted credentials."""

    def test_record_key(self):
        assert record_key("U123") == "U123_jenkinsToken"

    def test_store_then_fetch(self, vault):
        vault.store("U1", "alice", TOKEN)
        credential = vault.fetch("U1")
        assert credential.user_id == "U1"
        assert credential.username == "alice"
        assert credential.token == TOKEN

    def test_record_layout_and_no_plaintext(self, vault, kv_store):
        vault.store("U1", "alice", TOKEN)
        raw = kv_store.get("U1_jenkinsToken")
        assert TOKEN not in raw
        record = json.loads(raw)
        assert set(record) == {"UserID", "Username", "Token"}
        assert record["UserID"] == "U1"
        assert record["Username"] == "alice"

    def test_repr_hides_token(self, vault):
        vault.store("U1", "alice", TOKEN)
        assert TOKEN not in repr(vault.fetch("U1"))

    def test_last_write_wins(self, vault):
        vault.store("U1", "alice", TOKEN)
        vault.store("U1", "alice2", "another-token-value-0000")
        credential = vault.fetch("U1")
        assert credential.username == "alice2"
        assert credential.token == "another-token-value-0000"

    def test_fetch_missing(self, vault):
        with pytest.raises(CredentialNotFoundError):
            vault.fetch("nobody")

    def test_fetch_with_wrong_key(self, kv_store):
        CredentialVault(kv_store, lambda: b"0123456789abcdef").store("U1", "alice", TOKEN)
        other = CredentialVault(kv_store, lambda: b"fedcba9876543210")
        with pytest.raises(DecryptError):
            other.fetch("U1")

    def test_fetch_malformed_record(self, vault, kv_store):
        kv_store.set("U1_jenkinsToken", "{broken")
        with pytest.raises(DecryptError):
            vault.fetch("U1")

    def test_fetch_record_missing_fields(self, vault, kv_store):
        kv_store.set("U1_jenkinsToken", json.dumps({"UserID": "U1"}))
        with pytest.raises(DecryptError):
            vault.fetch("U1")

    def test_delete(self, vault):
        vault.store("U1", "alice", TOKEN)
        assert vault.has_credentials("U1") is True
        assert vault.delete("U1") is True
        assert vault.has_credentials("U1") is False
        assert vault.delete("U1") is False

    def test_key_read_on_every_operation(self, kv_store):
        keys = [b"0123456789abcdef"]
        vault = CredentialVault(kv_store, lambda: keys[0])
        vault.store("U1", "alice", TOKEN)
        keys[0] = b"fedcba9876543210"
        with pytest.raises(DecryptError):
            vault.fetch("U1")
