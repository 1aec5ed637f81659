"""Tests for persistence, audit logging, configuration and secure files."""

import json
import os
import stat
import sys
from pathlib import Path

import pytest

from vaultix.config import VaultConfig
from vaultix.core.audit_log import AuditLogger, EventSeverity, EventType
from vaultix.core.kv_store import MemoryKeyValueStore, SQLiteKeyValueStore
from vaultix.exceptions import InvalidConfigurationError, StorageIOError
from vaultix.storage.capacity import DiskCapacityProvider
from vaultix.storage.secure_fs import SecureFileSystem


# ── KeyValueStore Tests ─────────────────────────────────────────────


@pytest.fixture(params=["memory", "sqlite"])
def any_kv(request, tmp_path):
    if request.param == "memory":
        return MemoryKeyValueStore()
    return SQLiteKeyValueStore(tmp_path / "kv" / "vaultix.db")


class TestKeyValueStore:
    def test_get_set_remove(self, any_kv):
        assert any_kv.get("k") is None
        assert any_kv.get("k", "fallback") == "fallback"
        any_kv.set("k", "v1")
        any_kv.set("k", "v2")
        assert any_kv.get("k") == "v2"
        assert any_kv.remove("k") is True
        assert any_kv.remove("k") is False
        assert any_kv.get("k") is None

    def test_json_helpers(self, any_kv):
        any_kv.set_json("doc", {"a": [1, 2]})
        assert any_kv.get_json("doc") == {"a": [1, 2]}
        assert any_kv.get_json("missing", []) == []

    def test_corrupt_json(self, any_kv):
        any_kv.set("doc", "{not json")
        with pytest.raises(StorageIOError):
            any_kv.get_json("doc")

    def test_rejects_non_string(self, any_kv):
        with pytest.raises(TypeError):
            any_kv.set("k", 5)

    def test_keys(self, any_kv):
        any_kv.set("b", "1")
        any_kv.set("a", "2")
        assert list(any_kv.keys()) == ["a", "b"]


class TestSQLiteKeyValueStore:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "vaultix.db"
        SQLiteKeyValueStore(path).set("vaultix_failed_attempts", "3")
        assert SQLiteKeyValueStore(path).get("vaultix_failed_attempts") == "3"

    def test_unopenable_path(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        with pytest.raises((StorageIOError, OSError)):
            SQLiteKeyValueStore(blocker / "vaultix.db")


# ── AuditLogger Tests ───────────────────────────────────────────────


class TestAuditLogger:
    def test_writes_json_lines(self, tmp_path):
        audit = AuditLogger(tmp_path / "audit")
        event_id = audit.log_event(EventType.AUTH_FAILED, EventSeverity.INVESTIGATE,
                                   "Unlock attempt failed", {"attempts": 1})
        audit.close()

        lines = audit_lines(tmp_path / "audit")
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["event_id"] == event_id
        assert record["event_type"] == "auth.failed"
        assert record["severity"] == "investigate"
        assert record["details"] == {"attempts": 1}

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_log_file_owner_only(self, tmp_path):
        audit = AuditLogger(tmp_path / "audit")
        audit.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "locked")
        mode = stat.S_IMODE(os.stat(audit.log_file).st_mode)
        audit.close()
        assert mode == 0o600

    def test_memory_only(self):
        audit = AuditLogger()
        audit.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "locked")
        assert audit.log_file is None
        assert len(audit.query_events()) == 1

    def test_query_filters(self):
        audit = AuditLogger()
        audit.log_event(EventType.AUTH_FAILED, EventSeverity.INVESTIGATE, "one")
        audit.log_event(EventType.AUTH_LOCKED_OUT, EventSeverity.ALERT, "two")
        audit.log_event(EventType.AUTH_FAILED, EventSeverity.INVESTIGATE, "three")

        failed = audit.query_events(event_types=[EventType.AUTH_FAILED])
        assert [e["message"] for e in failed] == ["three", "one"]
        alerts = audit.query_events(severity=EventSeverity.ALERT)
        assert [e["message"] for e in alerts] == ["two"]
        assert len(audit.query_events(limit=2)) == 2

    def test_instances_isolated(self, tmp_path):
        first = AuditLogger(tmp_path / "a")
        second = AuditLogger(tmp_path / "b")
        first.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "only first")
        first.close()
        second.close()
        assert len(audit_lines(tmp_path / "a")) == 1
        assert audit_lines(tmp_path / "b") == []


def audit_lines(log_dir: Path):
    lines = []
    for path in sorted(log_dir.glob("audit_*.log")):
        lines.extend(l for l in path.read_text(encoding="utf-8").splitlines() if l.strip())
    return lines


# ── VaultConfig Tests ───────────────────────────────────────────────


class TestVaultConfig:
    def test_defaults(self, tmp_path):
        config = VaultConfig(data_dir=tmp_path)
        assert config.max_attempts == 5
        assert config.retention_days == 7
        assert config.backup_history_limit == 20
        assert config.self_destruct_enabled is False
        assert config.log_dir == tmp_path / "audit_logs"
        assert config.db_path == tmp_path / "vaultix.db"

    def test_from_environ(self, tmp_path):
        config = VaultConfig.from_env(environ={
            "VAULTIX_DATA_DIR": str(tmp_path),
            "VAULTIX_MAX_ATTEMPTS": "3",
            "VAULTIX_SELF_DESTRUCT": "yes",
            "VAULTIX_KDF_ITERATIONS": "1000",
            "VAULTIX_CLOUD_URL": "https://blobs.example.test",
        })
        assert config.data_dir == tmp_path
        assert config.max_attempts == 3
        assert config.self_destruct_enabled is True
        assert config.kdf_iterations == 1000
        assert config.cloud_base_url == "https://blobs.example.test"
        assert config.cloud_token is None

    def test_from_dotenv_file(self, tmp_path, monkeypatch):
        # load_dotenv writes into os.environ; give it a throwaway copy
        environ = {k: v for k, v in os.environ.items() if not k.startswith("VAULTIX_")}
        monkeypatch.setattr(os, "environ", environ)
        env_file = tmp_path / ".env"
        env_file.write_text(f"VAULTIX_DATA_DIR={tmp_path}\nVAULTIX_RETENTION_DAYS=14\n")

        config = VaultConfig.from_env(env_file=env_file)
        assert config.retention_days == 14
        assert config.data_dir == tmp_path

    @pytest.mark.parametrize("environ", [
        {"VAULTIX_MAX_ATTEMPTS": "many"},
        {"VAULTIX_MAX_ATTEMPTS": "0"},
        {"VAULTIX_SELF_DESTRUCT": "maybe"},
        {"VAULTIX_RETENTION_DAYS": "-1"},
    ])
    def test_invalid_values(self, environ):
        with pytest.raises(InvalidConfigurationError):
            VaultConfig.from_env(environ=environ)


# ── SecureFileSystem Tests ──────────────────────────────────────────


class TestSecureFileSystem:
    def test_write_read_delete(self, tmp_path):
        fs = SecureFileSystem(tmp_path / "secure")
        fs.write("backups/one.vbak", b"blob")
        assert fs.exists("backups/one.vbak")
        assert fs.read("backups/one.vbak") == b"blob"
        assert fs.list("backups") == ["backups/one.vbak"]
        assert fs.delete("backups/one.vbak") is True
        assert fs.delete("backups/one.vbak") is False

    def test_missing_read(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SecureFileSystem(tmp_path).read("nope")

    @pytest.mark.parametrize("name", ["../escape", "/etc/passwd", ""])
    def test_rejects_escaping_names(self, tmp_path, name):
        with pytest.raises(ValueError):
            SecureFileSystem(tmp_path / "secure").write(name, b"x")

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_owner_only_permissions(self, tmp_path):
        fs = SecureFileSystem(tmp_path / "secure")
        path = fs.write("vault.key", b"k" * 32)
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(fs.root).st_mode) == 0o700


class TestCapacity:
    def test_disk_capacity(self, tmp_path):
        total, available = DiskCapacityProvider(tmp_path).capacity()
        assert total > 0
        assert 0 <= available <= total
