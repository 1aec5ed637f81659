"""End-to-end tests for VaultService: session guard, lockout and self-destruct."""

import pytest

from vaultix.auth.auth_config import AuthConfig
from vaultix.auth.governor import AuthOutcome, GovernorState
from vaultix.core.audit_log import EventType
from vaultix.exceptions import NotAuthenticatedError, SelfDestructedError
from vaultix.vault.keyring import KEY_ARTIFACT


def _fail_until_locked(service, attempts=5):
    results = [service.unlock("0000") for _ in range(attempts)]
    return results[-1]


class TestSession:
    def test_fresh_service(self, service):
        assert not service.is_set_up
        assert not service.is_authenticated
        assert service.state is GovernorState.UNLOCKED

    def test_setup_opens_session(self, unlocked):
        assert unlocked.is_set_up
        assert unlocked.is_authenticated
        assert unlocked.store.list_files() == []

    def test_locked_guards_components(self, unlocked):
        unlocked.lock()
        for attr in ("store", "recycle_bin", "backups", "scheduler"):
            with pytest.raises(NotAuthenticatedError):
                getattr(unlocked, attr)
        with pytest.raises(NotAuthenticatedError):
            unlocked.get_setting("theme")

    def test_unlock_reopens(self, unlocked):
        unlocked.lock()
        result = unlocked.unlock("1234")
        assert result.ok
        assert unlocked.is_authenticated

    def test_wrong_credential_keeps_locked(self, unlocked):
        unlocked.lock()
        result = unlocked.unlock("9999")
        assert result.outcome is AuthOutcome.CREDENTIAL_MISMATCH
        assert result.remaining == 4
        assert not unlocked.is_authenticated
        assert unlocked.state is GovernorState.COUNTING

    def test_setup_refused_while_locked(self, unlocked):
        unlocked.lock()
        with pytest.raises(NotAuthenticatedError):
            unlocked.setup_credential("5555")
        assert unlocked.unlock("1234").ok

    def test_change_credential(self, unlocked):
        assert unlocked.change_credential("1234", "4321") is True
        unlocked.lock()
        assert not unlocked.unlock("1234").ok
        assert unlocked.unlock("4321").ok

    def test_failed_password_recorded_by_kind(self, service):
        service.setup_credential("correct horse", "password")
        service.lock()
        service.unlock("wrong")
        assert service.break_in_log.list_records()[0]["kind"] == "failed_password"

    def test_unlock_before_setup_not_counted(self, service):
        for _ in range(5):
            result = service.unlock("0000")
            assert result.outcome is AuthOutcome.NOT_SET_UP
        assert service.state is GovernorState.UNLOCKED
        assert service.governor.attempts == 0
        assert service.break_in_log.list_records() == []

        service.setup_credential("1234")
        service.lock()
        assert service.unlock("1234").ok

    def test_setup_clears_stale_attempt_state(self, service, kv):
        kv.set("vaultix_failed_attempts", "5")
        kv.set("vaultix_lock_status", "locked")
        assert service.state is GovernorState.LOCKED

        service.setup_credential("1234")
        assert service.state is GovernorState.UNLOCKED
        assert service.governor.attempts == 0
        service.lock()
        assert service.unlock("1234").ok

    def test_settings(self, unlocked):
        assert unlocked.get_setting("theme", "light") == "light"
        unlocked.set_setting("theme", "dark")
        assert unlocked.get_setting("theme") == "dark"


class TestLockout:
    def test_lockout_and_recovery(self, unlocked):
        code = unlocked.issue_recovery_code()
        unlocked.lock()

        last = _fail_until_locked(unlocked)
        assert last.remaining == 0
        assert unlocked.state is GovernorState.LOCKED

        # Correct credential is refused while locked
        assert unlocked.unlock("1234").outcome is AuthOutcome.LOCKED_OUT

        assert unlocked.reset_lockout("not-the-code") is False
        assert unlocked.reset_lockout(code) is True
        assert unlocked.state is GovernorState.UNLOCKED
        assert unlocked.unlock("1234").ok

    def test_recovery_code_requires_session(self, unlocked):
        unlocked.lock()
        with pytest.raises(NotAuthenticatedError):
            unlocked.issue_recovery_code()

    def test_update_auth_config(self, unlocked):
        config = unlocked.update_auth_config(max_attempts=3)
        assert config.max_attempts == 3
        assert AuthConfig.load(unlocked.kv).max_attempts == 3

        unlocked.lock()
        last = _fail_until_locked(unlocked, attempts=3)
        assert last.attempts == 3
        assert unlocked.state is GovernorState.LOCKED


class TestSelfDestruct:
    @pytest.fixture
    def armed(self, unlocked):
        unlocked.update_auth_config(self_destruct_enabled=True)
        unlocked.store.add_file(b"secret", "secret.txt")
        doomed = unlocked.store.add_file(b"old", "old.txt")
        unlocked.store.delete_file(doomed.id)
        unlocked.backups.create_backup("backup-pass")
        unlocked.lock()
        return unlocked

    def test_lockout_destroys_everything(self, armed, fs, kv):
        last = _fail_until_locked(armed)
        assert last.outcome is AuthOutcome.SELF_DESTRUCTED
        assert armed.state is GovernorState.DESTROYED

        assert not fs.exists(KEY_ARTIFACT)
        assert fs.list("backups") == []
        assert kv.get("vaultix_catalog") is None
        assert kv.get("vaultix_recycle_bin") is None
        assert kv.get("vaultix_backup_history") is None
        assert kv.get("vaultix_breakin_logs") is None
        assert not armed.credentials.has_credential()

    def test_destroyed_is_terminal(self, armed):
        _fail_until_locked(armed)
        with pytest.raises(SelfDestructedError):
            armed.unlock("1234")
        with pytest.raises(SelfDestructedError):
            armed.store
        with pytest.raises(SelfDestructedError):
            armed.setup_credential("1234")

    def test_audit_records_destruction(self, armed, audit):
        _fail_until_locked(armed)
        events = audit.query_events(event_types=[EventType.SELF_DESTRUCT])
        assert len(events) == 1
        assert events[0]["details"]["reason"] == "lockout"
        assert all(events[0]["details"]["steps"].values())

    def test_lockout_without_self_destruct_keeps_data(self, unlocked):
        unlocked.store.add_file(b"keep", "keep.txt")
        unlocked.lock()
        _fail_until_locked(unlocked)
        assert unlocked.state is GovernorState.LOCKED
        assert unlocked.kv.get("vaultix_catalog") is not None

    def test_manual_self_destruct(self, unlocked, fs):
        unlocked.store.add_file(b"secret", "secret.txt")
        results = unlocked.self_destruct()
        assert all(results.values())
        assert unlocked.state is GovernorState.DESTROYED
        assert not fs.exists(KEY_ARTIFACT)
        with pytest.raises(SelfDestructedError):
            unlocked.store

    def test_manual_self_destruct_requires_session(self, unlocked):
        unlocked.lock()
        with pytest.raises(NotAuthenticatedError):
            unlocked.self_destruct()
