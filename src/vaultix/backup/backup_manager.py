"""Backup engine: create, list, restore, and delete encrypted backup artifacts.

Each backup is a single ``backups/<id>.vbak`` artifact in the secure
filesystem containing a ZIP (deflated) with:
  - catalog.json   files (plaintext content, base64) and folders
  - settings.json  app/security/theme settings and the backup schedule (optional)
  - manifest.json  format version, ids and counts

The ZIP is encrypted as one blob with AES-256-GCM under a passphrase-derived
key. The SHA-256 checksum in the history entry covers the encrypted bytes,
so corruption is detected before any decryption is attempted.

Restore stages the new catalog entirely in memory; the live catalog is only
touched by one final write.
"""

import base64
import hashlib
import hmac
import io
import json
import logging
import threading
import time
import zipfile
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..core.kv_store import KeyValueStore
from ..exceptions import (
    BackupError,
    BackupNotFoundError,
    CloudNotFoundError,
    DecryptionError,
    IntegrityViolationError,
    NetworkError,
    RestoreError,
    StorageIOError,
)
from ..storage.cloud_storage import CloudStorage
from ..storage.secure_fs import SecureFileSystem
from ..vault.models import Catalog, FileType, VaultFile, VaultFolder
from ..vault.vault_store import VaultStore
from .backup_crypto import BackupCrypto
from .backup_history import BackupHistory
from .models import BackupMetadata, BackupType, RestoreProgress, RestoreResult, RestoreStage

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"
BACKUP_PREFIX = "backups"

# Settings carried inside a backup (key/value store keys)
SETTINGS_KEYS: List[str] = [
    "vaultix_app_settings",
    "vaultix_security_settings",
    "vaultix_theme_settings",
    "vaultix_backup_schedule",
]

ProgressCallback = Callable[[RestoreProgress], None]


class BackupEngine:
    """Orchestrates backup creation, listing, restoration, and deletion.

    Args:
        store: Live vault catalog.
        kv: Key/value store holding settings.
        fs: Secure filesystem for artifacts.
        history: Backup history (bounded).
        crypto: Passphrase encryption.
        cloud: Optional cloud collaborator.
        audit: Security audit logger.
    """

    def __init__(
        self,
        store: VaultStore,
        kv: KeyValueStore,
        fs: SecureFileSystem,
        history: BackupHistory,
        crypto: Optional[BackupCrypto] = None,
        cloud: Optional[CloudStorage] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._kv = kv
        self._fs = fs
        self.history = history
        self._crypto = crypto or BackupCrypto()
        self._cloud = cloud
        self._audit = audit
        self._lock = threading.Lock()

    # ── Create ───────────────────────────────────────────────────────

    def create_backup(
        self,
        passphrase: str,
        include_settings: bool = True,
        backup_type: BackupType = BackupType.MANUAL,
    ) -> BackupMetadata:
        """Snapshot the vault into a new encrypted artifact.

        Raises:
            BackupError: Empty passphrase or artifact write failure.
        """
        if not passphrase:
            raise BackupError("Passphrase must not be empty.")

        with self._lock:
            return self._create_backup_locked(passphrase, include_settings, backup_type)

    def _create_backup_locked(
        self, passphrase: str, include_settings: bool, backup_type: BackupType
    ) -> BackupMetadata:
        backup_id = f"backup_{int(time.time() * 1000)}_{uuid4().hex[:6]}"
        created_at = datetime.now(timezone.utc).isoformat()
        catalog = self._store.snapshot()

        # 1. Build the ZIP
        settings = self._collect_settings() if include_settings else None
        manifest = {
            "version": BACKUP_VERSION,
            "backup_id": backup_id,
            "created_at": created_at,
            "file_count": len(catalog.files),
            "folder_count": len(catalog.folders),
            "include_settings": include_settings,
        }
        zip_buf = io.BytesIO()
        with zipfile.ZipFile(zip_buf, "w", zipfile.ZIP_DEFLATED) as zf:
            zf.writestr("catalog.json", json.dumps(self._export_catalog(catalog)))
            if settings is not None:
                zf.writestr("settings.json", json.dumps(settings))
            zf.writestr("manifest.json", json.dumps(manifest, indent=2))

        # 2. Encrypt, then checksum the encrypted bytes
        encrypted = self._crypto.encrypt_bytes(zip_buf.getvalue(), passphrase)
        checksum = hashlib.sha256(encrypted).hexdigest()

        metadata = BackupMetadata(
            id=backup_id,
            timestamp=created_at,
            version=BACKUP_VERSION,
            file_count=len(catalog.files),
            total_size=len(encrypted),
            type=backup_type,
            encrypted=True,
            checksum=checksum,
        )

        # 3. Write artifact
        try:
            self._fs.write(self._artifact_path(metadata), encrypted)
        except StorageIOError as exc:
            raise BackupError(f"Could not write backup artifact: {exc}") from exc

        # 4. Record in history; drop evicted artifacts
        for evicted in self.history.record(metadata):
            self._remove_artifacts(evicted)
            logger.info("Evicted backup %s from history", evicted.id)

        self._log(EventType.BACKUP_CREATED, f"Backup created: {backup_id}", {
            "backup_id": backup_id,
            "file_count": metadata.file_count,
            "size_bytes": metadata.total_size,
            "type": backup_type.value,
            "include_settings": include_settings,
        })
        return metadata

    def create_cloud_backup(self, passphrase: str, include_settings: bool = True) -> BackupMetadata:
        """Create a backup and upload it.

        On upload failure the local backup stays in history and the
        NetworkError propagates.
        """
        if self._cloud is None:
            raise BackupError("Cloud storage is not configured.")

        metadata = self.create_backup(passphrase, include_settings, BackupType.LOCAL)
        blob = self._fs.read(self._artifact_path(metadata))
        try:
            self._cloud.upload(metadata.artifact_name, blob)
        except NetworkError:
            logger.warning("Upload of backup %s failed; kept local copy", metadata.id)
            raise

        promoted = replace(metadata, type=BackupType.CLOUD)
        self.history.update(promoted)
        self._log(EventType.BACKUP_UPLOADED, f"Backup uploaded: {metadata.id}",
                  {"backup_id": metadata.id})
        return promoted

    # ── List / Info ──────────────────────────────────────────────────

    def list_backups(self) -> List[BackupMetadata]:
        return self.history.list()

    def get_backup(self, backup_id: str) -> BackupMetadata:
        metadata = self.history.get(backup_id)
        if metadata is None:
            raise BackupNotFoundError(f"Backup not found: {backup_id}")
        return metadata

    # ── Delete ───────────────────────────────────────────────────────

    def delete_backup(self, backup_id: str) -> bool:
        """Delete an artifact (local and cloud) and its history entry.

        Returns True if the backup existed.
        """
        metadata = self.history.get(backup_id)
        if metadata is None:
            return False
        self._remove_artifacts(metadata)
        self.history.remove(backup_id)
        self._log(EventType.BACKUP_DELETED, f"Backup deleted: {backup_id}", {"backup_id": backup_id})
        return True

    def wipe(self) -> None:
        """Delete every local artifact and the history."""
        for name in self._fs.list(BACKUP_PREFIX):
            self._fs.delete(name)
        self.history.wipe()

    # ── Restore ──────────────────────────────────────────────────────

    def restore_backup(
        self,
        backup_id: str,
        passphrase: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RestoreResult:
        """Replace the live catalog (and settings) with a backup's content.

        Progress is reported through ``on_progress``. On failure a final
        COMPLETE event carrying the error is emitted, then the error is raised.

        Raises:
            BackupNotFoundError: Unknown backup id.
            IntegrityViolationError: Checksum mismatch; nothing applied.
            DecryptionError: Wrong passphrase; nothing applied.
            RestoreError: Any other failure, with ``stage`` set.
        """
        tracker = _ProgressTracker(on_progress)
        try:
            with self._lock:
                result = self._restore_locked(backup_id, passphrase, tracker)
        except BackupNotFoundError as exc:
            tracker.fail(str(exc))
            raise
        except RestoreError as exc:
            if exc.stage is None:
                exc.stage = tracker.stage
            tracker.fail(str(exc))
            self._log(EventType.BACKUP_RESTORE_FAILED, f"Restore of {backup_id} failed: {exc}",
                      {"backup_id": backup_id, "stage": exc.stage.value,
                       "error": type(exc).__name__},
                      severity=EventSeverity.ALERT)
            raise

        tracker.emit(RestoreStage.COMPLETE, 100, total_files=result.files_restored,
                     processed_files=result.files_restored)
        self._log(EventType.BACKUP_RESTORED, f"Backup restored: {backup_id}", result.to_dict())
        return result

    def _restore_locked(self, backup_id: str, passphrase: str, tracker: "_ProgressTracker") -> RestoreResult:
        # 1. Prepare
        tracker.emit(RestoreStage.PREPARING, 0)
        metadata = self.get_backup(backup_id)

        # 2. Fetch artifact bytes
        blob = None
        if metadata.type == BackupType.CLOUD and self._cloud is not None:
            tracker.emit(RestoreStage.DOWNLOADING, 10)
            try:
                blob = self._cloud.download(metadata.artifact_name)
            except NetworkError as exc:
                logger.warning("Download of %s failed (%s); trying local copy", backup_id, exc)
        if blob is None:
            blob = self._read_local(metadata)

        # 3. Verify, then decrypt
        tracker.emit(RestoreStage.DECRYPTING, 30)
        actual = hashlib.sha256(blob).hexdigest()
        if not hmac.compare_digest(actual, metadata.checksum):
            raise IntegrityViolationError(
                f"Backup {backup_id} failed checksum verification", stage=RestoreStage.DECRYPTING
            )
        try:
            zip_bytes = self._crypto.decrypt_bytes(blob, passphrase)
        except RestoreError as exc:
            exc.stage = RestoreStage.DECRYPTING
            raise
        staged_catalog, settings = self._parse_archive(zip_bytes)

        # 4. Stage files in memory (re-encrypted under the vault key)
        total = len(staged_catalog.files)
        tracker.emit(RestoreStage.RESTORING, 50, total_files=total)
        for index, vault_file in enumerate(staged_catalog.files, start=1):
            vault_file.payload = self._store.encrypt_payload(vault_file.payload)
            tracker.emit(
                RestoreStage.RESTORING,
                50 + int(40 * index / total),
                current_file=vault_file.name,
                total_files=total,
                processed_files=index,
            )

        # 5. Swap: settings first, catalog in one write, settings rolled back on failure
        previous: Dict[str, Optional[str]] = {}
        try:
            if settings:
                self._apply_settings(settings, previous)
            self._store.replace_catalog(staged_catalog)
        except StorageIOError as exc:
            self._rollback_settings(previous)
            raise RestoreError(f"Could not write restored catalog: {exc}",
                               stage=RestoreStage.RESTORING) from exc

        return RestoreResult(
            backup_id=backup_id,
            files_restored=total,
            folders_restored=len(staged_catalog.folders),
            settings_restored=sorted(settings or {}),
        )

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _artifact_path(metadata: BackupMetadata) -> str:
        return f"{BACKUP_PREFIX}/{metadata.artifact_name}"

    def _read_local(self, metadata: BackupMetadata) -> bytes:
        """Read the local artifact, retrying once on I/O failure."""
        path = self._artifact_path(metadata)
        try:
            try:
                return self._fs.read(path)
            except StorageIOError as exc:
                logger.warning("Read of %s failed, retrying once: %s", path, exc)
            return self._fs.read(path)
        except FileNotFoundError as exc:
            raise RestoreError(f"Backup artifact missing: {path}",
                               stage=RestoreStage.PREPARING) from exc
        except StorageIOError as exc:
            raise RestoreError(f"Could not read backup artifact: {exc}",
                               stage=RestoreStage.PREPARING) from exc

    def _remove_artifacts(self, metadata: BackupMetadata) -> None:
        try:
            self._fs.delete(self._artifact_path(metadata))
        except StorageIOError as exc:
            logger.warning("Could not delete artifact of %s: %s", metadata.id, exc)
        if metadata.type == BackupType.CLOUD and self._cloud is not None:
            try:
                self._cloud.delete(metadata.artifact_name)
            except CloudNotFoundError:
                pass
            except NetworkError as exc:
                logger.warning("Could not delete cloud copy of %s: %s", metadata.id, exc)

    def _collect_settings(self) -> Dict[str, str]:
        settings = {}
        for key in SETTINGS_KEYS:
            value = self._kv.get(key)
            if value is not None:
                settings[key] = value
        return settings

    def _apply_settings(self, settings: Dict[str, str], previous: Dict[str, Optional[str]]) -> None:
        """Write restored settings, recording prior values in ``previous``."""
        for key, value in settings.items():
            if key not in SETTINGS_KEYS:
                continue
            previous[key] = self._kv.get(key)
            self._kv.set(key, value)

    def _rollback_settings(self, previous: Dict[str, Optional[str]]) -> None:
        for key, value in previous.items():
            try:
                if value is None:
                    self._kv.remove(key)
                else:
                    self._kv.set(key, value)
            except StorageIOError:
                logger.error("Could not roll back setting %s", key)

    def _export_catalog(self, catalog: Catalog) -> dict:
        files = []
        for vault_file in catalog.files:
            entry = vault_file.summary()
            try:
                plaintext = self._store.decrypt_payload(vault_file)
            except DecryptionError as exc:
                raise BackupError(f"Cannot read vault file {vault_file.id}: {exc}") from exc
            entry["data"] = base64.b64encode(plaintext).decode("ascii")
            files.append(entry)
        return {"files": files, "folders": [f.to_dict() for f in catalog.folders]}

    @staticmethod
    def _parse_archive(zip_bytes: bytes):
        """Return (catalog with plaintext payloads, settings or None)."""
        try:
            with zipfile.ZipFile(io.BytesIO(zip_bytes), "r") as zf:
                names = set(zf.namelist())
                manifest = json.loads(zf.read("manifest.json"))
                raw_catalog = json.loads(zf.read("catalog.json"))
                settings = json.loads(zf.read("settings.json")) if "settings.json" in names else None
            files = [
                VaultFile(
                    id=entry["id"],
                    name=entry["name"],
                    type=FileType(entry.get("type", "other")),
                    size=int(entry["size"]),
                    date_added=entry["date_added"],
                    date_modified=entry.get("date_modified", entry["date_added"]),
                    payload=base64.b64decode(entry["data"]),
                    folder_id=entry.get("folder_id"),
                    tags=set(entry.get("tags", [])),
                    is_favorite=bool(entry.get("is_favorite", False)),
                )
                for entry in raw_catalog.get("files", [])
            ]
            folders = [VaultFolder.from_dict(f) for f in raw_catalog.get("folders", [])]
        except (zipfile.BadZipFile, KeyError, ValueError) as exc:
            raise RestoreError(f"Corrupt backup archive: {exc}", stage=RestoreStage.DECRYPTING) from exc

        if manifest.get("version") != BACKUP_VERSION:
            raise RestoreError(f"Unsupported backup version: {manifest.get('version')}",
                               stage=RestoreStage.DECRYPTING)
        return Catalog(files=files, folders=folders), settings

    def _log(self, event_type, message, details=None, severity=EventSeverity.INFO) -> None:
        if self._audit is not None:
            self._audit.log_event(event_type, severity, message, details)


class _ProgressTracker:
    """Remembers the current stage and forwards events to the callback."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback
        self.stage = RestoreStage.PREPARING
        self.progress = 0

    def emit(self, stage: RestoreStage, progress: int, **fields) -> None:
        self.stage = stage
        self.progress = progress
        if self._callback is not None:
            self._callback(RestoreProgress(stage=stage, progress=progress, **fields))

    def fail(self, error: str) -> None:
        if self._callback is not None:
            self._callback(RestoreProgress(
                stage=RestoreStage.COMPLETE,
                progress=self.progress,
                error=error,
                failed_stage=self.stage,
            ))
