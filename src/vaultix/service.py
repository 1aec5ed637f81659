# Vaultix - Vault Service
#
# Wires one instance of every component for a single vault:
#
#   CredentialStore -> AttemptGovernor -> session
#                                          |
#          VaultStore <-> RecycleBin       |  (guarded by the session)
#          BackupEngine / BackupScheduler  |
#
# Nothing here is a module-level singleton: two VaultService objects over
# different data directories are fully isolated.

import logging
from typing import Any, Optional, Union

from .auth.auth_config import AUTH_CONFIG_KEY, AuthConfig, AuthMethod
from .auth.credentials import CredentialStore
from .auth.governor import AttemptGovernor, AuthOutcome, AuthResult, GovernorState
from .auth.intrusion import BreakInLog
from .backup.backup_crypto import BackupCrypto
from .backup.backup_history import BackupHistory
from .backup.backup_manager import BackupEngine
from .backup.schedule import BackupScheduler
from .config import VaultConfig
from .core.audit_log import AuditLogger, EventSeverity, EventType
from .core.kv_store import KeyValueStore, SQLiteKeyValueStore
from .exceptions import NotAuthenticatedError
from .panic.self_destruct import SelfDestruct
from .storage.capacity import DiskCapacityProvider, StorageCapacityProvider
from .storage.cloud_storage import CloudStorage, HttpCloudStorage
from .storage.secure_fs import SecureFileSystem
from .vault.keyring import VaultKeyring
from .vault.recycle_bin import RecycleBin
from .vault.vault_store import VaultStore

logger = logging.getLogger(__name__)

APP_SETTINGS_KEY = "vaultix_app_settings"


class VaultService:
    """
    One vault: authentication session plus the stores it protects.

    Collaborators default to on-disk implementations under
    ``config.data_dir``; pass your own to isolate tests.
    """

    def __init__(
        self,
        config: Optional[VaultConfig] = None,
        kv: Optional[KeyValueStore] = None,
        fs: Optional[SecureFileSystem] = None,
        cloud: Optional[CloudStorage] = None,
        capacity: Optional[StorageCapacityProvider] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.config = config or VaultConfig()
        self.kv = kv or SQLiteKeyValueStore(self.config.db_path)
        self.fs = fs or SecureFileSystem(self.config.secure_dir)
        if cloud is None and self.config.cloud_base_url:
            cloud = HttpCloudStorage(self.config.cloud_base_url, token=self.config.cloud_token)
        self.cloud = cloud
        self.audit = audit or AuditLogger(self.config.log_dir)
        capacity = capacity or DiskCapacityProvider(self.fs.root)

        if self.kv.get(AUTH_CONFIG_KEY) is None:
            AuthConfig(
                max_attempts=self.config.max_attempts,
                self_destruct_enabled=self.config.self_destruct_enabled,
            ).save(self.kv)

        # Authentication
        self.credentials = CredentialStore(self.kv, iterations=self.config.kdf_iterations)
        self.break_in_log = BreakInLog(self.kv, audit=self.audit)
        self.governor = AttemptGovernor(
            self.kv,
            intrusion=self.break_in_log,
            on_destroy=self._destroy_on_lockout,
            audit=self.audit,
        )

        # Storage
        self.keyring = VaultKeyring(self.fs)
        self._recycle_bin = RecycleBin(
            self.kv, retention_days=self.config.retention_days, audit=self.audit
        )
        self._store = VaultStore(
            self.kv, self.keyring, self._recycle_bin, capacity, audit=self.audit
        )
        self._backups = BackupEngine(
            self._store,
            self.kv,
            self.fs,
            BackupHistory(self.kv, limit=self.config.backup_history_limit),
            crypto=BackupCrypto(iterations=self.config.kdf_iterations),
            cloud=self.cloud,
            audit=self.audit,
        )
        self._scheduler = BackupScheduler(self._backups, self.kv)

        self._self_destruct = SelfDestruct(
            [
                ("credentials", self.credentials.wipe),
                ("auth_config", lambda: self.kv.remove(AUTH_CONFIG_KEY)),
                ("catalog", self._store.wipe),
                ("recycle_bin", self._recycle_bin.wipe),
                ("backups", self._backups.wipe),
                ("vault_key", self.keyring.wipe),
                ("break_in_log", self.break_in_log.wipe),
                ("attempt_state", self.governor.wipe),
            ],
            audit=self.audit,
        )
        self._authenticated = False

    # ── Session ──────────────────────────────────────────────────────

    @property
    def is_set_up(self) -> bool:
        return self.credentials.has_credential()

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated and not self.governor.destroyed

    @property
    def state(self) -> GovernorState:
        return self.governor.state

    @property
    def auth_config(self) -> AuthConfig:
        return AuthConfig.load(self.kv)

    def setup_credential(self, credential: str, method: Union[AuthMethod, str] = AuthMethod.PIN) -> None:
        """Create (or, from an unlocked session, replace) the primary credential."""
        self.governor.ensure_alive()
        if self.is_set_up and not self._authenticated:
            raise NotAuthenticatedError("Unlock the vault before replacing its credential")
        record = self.credentials.setup(credential, method)
        self.governor.record_success()
        self._authenticated = True
        self.audit.log_event(EventType.AUTH_SETUP, EventSeverity.INFO,
                             f"{record.method.value} credential set up",
                             {"method": record.method.value})

    def unlock(self, credential: str, method: Union[AuthMethod, str, None] = None) -> AuthResult:
        """One governed unlock attempt.

        A vault without a credential is never counted against the threshold.
        """
        self.governor.ensure_alive()
        if not self.is_set_up:
            self._authenticated = False
            return AuthResult(AuthOutcome.NOT_SET_UP)
        resolved = AuthMethod(method) if method is not None else self.credentials.primary_method
        kind = f"failed_{resolved.value}" if resolved is not None else "failed_pin"
        result = self.governor.authenticate(
            lambda: self.credentials.verify(credential, resolved), kind
        )
        self._authenticated = result.outcome is AuthOutcome.OK
        return result

    def lock(self) -> None:
        if self._authenticated:
            self.audit.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "Vault locked")
        self._authenticated = False

    def change_credential(self, old: str, new: str, method: Union[AuthMethod, str, None] = None) -> bool:
        self._require_session()
        changed = self.credentials.change(old, new, method)
        if changed:
            self.audit.log_event(EventType.AUTH_CHANGED, EventSeverity.INFO, "Credential changed")
        return changed

    def issue_recovery_code(self) -> str:
        """Return a new lockout recovery code. Shown once, only its hash is kept."""
        self._require_session()
        return self.governor.issue_recovery_code()

    def reset_lockout(self, recovery_code: str) -> bool:
        return self.governor.reset(recovery_code)

    def update_auth_config(
        self,
        max_attempts: Optional[int] = None,
        self_destruct_enabled: Optional[bool] = None,
    ) -> AuthConfig:
        self._require_session()
        config = AuthConfig.load(self.kv)
        if max_attempts is not None:
            config.max_attempts = max_attempts
        if self_destruct_enabled is not None:
            config.self_destruct_enabled = self_destruct_enabled
        config.save(self.kv)
        return config

    def self_destruct(self) -> dict:
        """Panic wipe from an unlocked session."""
        self._require_session()
        self._authenticated = False
        results = self._self_destruct.execute(reason="manual")
        self.governor.mark_destroyed()
        return results

    # ── Guarded components ───────────────────────────────────────────

    @property
    def store(self) -> VaultStore:
        self._require_session()
        return self._store

    @property
    def recycle_bin(self) -> RecycleBin:
        self._require_session()
        return self._recycle_bin

    @property
    def backups(self) -> BackupEngine:
        self._require_session()
        return self._backups

    @property
    def scheduler(self) -> BackupScheduler:
        self._require_session()
        return self._scheduler

    # ── App settings ─────────────────────────────────────────────────

    def get_setting(self, key: str, default: Any = None) -> Any:
        self._require_session()
        return self.kv.get_json(APP_SETTINGS_KEY, {}).get(key, default)

    def set_setting(self, key: str, value: Any) -> None:
        self._require_session()
        settings = self.kv.get_json(APP_SETTINGS_KEY, {})
        settings[key] = value
        self.kv.set_json(APP_SETTINGS_KEY, settings)

    def close(self) -> None:
        self.audit.close()

    # ── Internals ────────────────────────────────────────────────────

    def _require_session(self) -> None:
        self.governor.ensure_alive()
        if not self._authenticated:
            raise NotAuthenticatedError("Vault is locked")

    def _destroy_on_lockout(self) -> None:
        self._authenticated = False
        self._self_destruct.execute(reason="lockout")
