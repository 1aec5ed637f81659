"""
Vault Store - the encrypted file/folder catalog.

Every mutation is a read-modify-write of the whole catalog under one
re-entrant lock, persisted with a single key/value write. Payloads are
sealed with the vault key before they enter the catalog.

Deletion asymmetry:
    delete_file() soft-deletes through the recycle bin.
    delete_folder() permanently destroys the files directly inside the
    folder (no recycle bin) and moves its child folders up one level.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, Iterator, List, Optional
from uuid import uuid4

from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..core.kv_store import KeyValueStore
from ..exceptions import (
    DuplicateFileError,
    FileNotFoundInVaultError,
    FolderNotFoundError,
    RecycleBinItemNotFoundError,
    StorageIOError,
)
from ..storage.capacity import StorageCapacityProvider
from .duplicates import DuplicateGroup, find_duplicates
from .encryption import EncryptionService
from .keyring import VaultKeyring
from .models import (
    CATALOG_KEY,
    Catalog,
    FileType,
    StorageUsage,
    VaultFile,
    VaultFolder,
    utc_now,
)
from .recycle_bin import RecycleBin

logger = logging.getLogger(__name__)


class SearchResults:
    """Lazy search over the catalog.

    Each iteration re-reads the catalog and scans it in full, so the same
    object can be iterated again to see later changes.
    """

    def __init__(self, store: "VaultStore", query: str):
        self._store = store
        self.query = query.lower()

    def __iter__(self) -> Iterator[VaultFile]:
        for f in self._store.list_files():
            if self.query in f.name.lower() or any(self.query in t.lower() for t in f.tags):
                yield f


class VaultStore:
    """
    Catalog of encrypted files and folders.

    Args:
        kv: Key/value persistence (catalog lives under ``vaultix_catalog``).
        keyring: Supplies the vault-wide payload key.
        recycle_bin: Receives soft-deleted files.
        capacity: Device capacity for storage usage.
        audit: Security audit logger.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        keyring: VaultKeyring,
        recycle_bin: RecycleBin,
        capacity: StorageCapacityProvider,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._kv = kv
        self._keyring = keyring
        self.recycle_bin = recycle_bin
        self._capacity = capacity
        self._audit = audit
        self._clock = clock
        self._lock = threading.RLock()

    # ── Reads ────────────────────────────────────────────────────────

    def list_files(self, folder_id: Optional[str] = None, *, root_only: bool = False) -> List[VaultFile]:
        """Files in the catalog, optionally only those in one folder.

        ``root_only`` selects files that are not in any folder.
        """
        files = self._load().files
        if root_only:
            return [f for f in files if f.folder_id is None]
        if folder_id is not None:
            return [f for f in files if f.folder_id == folder_id]
        return files

    def list_folders(self) -> List[VaultFolder]:
        return self._load().folders

    def get_file(self, file_id: str) -> VaultFile:
        for f in self._load().files:
            if f.id == file_id:
                return f
        raise FileNotFoundInVaultError(f"File not found: {file_id}")

    def get_folder(self, folder_id: str) -> VaultFolder:
        folder = self._load().folder_index().get(folder_id)
        if folder is None:
            raise FolderNotFoundError(f"Folder not found: {folder_id}")
        return folder

    def read_file(self, file_id: str) -> bytes:
        """Decrypt and return a file's content."""
        return self.decrypt_payload(self.get_file(file_id))

    def search_files(self, query: str) -> SearchResults:
        """Case-insensitive substring match over names and tags."""
        return SearchResults(self, query)

    def get_storage_usage(self) -> StorageUsage:
        used = sum(f.size for f in self._load().files)
        total, available = self._capacity.capacity()
        percentage = round(used / total * 100, 2) if total > 0 else 0.0
        return StorageUsage(used=used, total=total, available=available, percentage=percentage)

    def find_duplicates(self) -> List[DuplicateGroup]:
        return find_duplicates(self._load().files, self.decrypt_payload)

    def snapshot(self) -> Catalog:
        """Copy of the current catalog (backup input)."""
        return self._load()

    # ── Files ────────────────────────────────────────────────────────

    def add_file(
        self,
        data: bytes,
        name: str,
        mime_type: Optional[str] = None,
        folder_id: Optional[str] = None,
    ) -> VaultFile:
        """Encrypt ``data`` and add it to the catalog.

        Raises:
            FolderNotFoundError: ``folder_id`` is not a live folder.
        """
        if not name:
            raise ValueError("File name must not be empty")
        now = self._clock().isoformat()
        with self._lock:
            catalog = self._load()
            self._require_folder(catalog, folder_id)
            vault_file = VaultFile(
                id=uuid4().hex,
                name=name,
                type=FileType.infer(name, mime_type),
                size=len(data),
                date_added=now,
                date_modified=now,
                payload=EncryptionService.encrypt_bytes(data, self._keyring.get_key()),
                folder_id=folder_id,
            )
            catalog.files.append(vault_file)
            self._save(catalog)

        self._log(EventType.VAULT_FILE_ADDED, f"File added: {vault_file.id}",
                  {"file_id": vault_file.id, "size": vault_file.size, "type": vault_file.type.value})
        return vault_file

    def delete_file(self, file_id: str, permanent: bool = False) -> bool:
        """Soft-delete (default) or permanently delete a file.

        Returns False for an unknown id.
        """
        with self._lock:
            catalog = self._load()
            target = self._find_file(catalog, file_id)
            if target is None:
                return False
            if not permanent:
                self.recycle_bin.add_to_recycle_bin(target)
            catalog.files.remove(target)
            self._save(catalog)

        self._log(EventType.VAULT_FILE_DELETED,
                  f"File {'permanently deleted' if permanent else 'moved to recycle bin'}: {file_id}",
                  {"file_id": file_id, "permanent": permanent})
        return True

    def restore_from_recycle_bin(self, file_id: str) -> VaultFile:
        """Move a file from the recycle bin back into the catalog.

        If its original folder no longer exists the file lands in root.
        The bin entry is only dropped once the catalog write succeeded.

        Raises:
            RecycleBinItemNotFoundError: Not in the bin (or already expired).
            DuplicateFileError: A file with the same id is already live.
        """
        with self._lock:
            item = self.recycle_bin.get_item(file_id)
            if item is None:
                raise RecycleBinItemNotFoundError(f"File {file_id} is not in the recycle bin")
            catalog = self._load()
            if self._find_file(catalog, file_id) is not None:
                raise DuplicateFileError(f"File {file_id} is already in the vault")

            restored = item.file
            restored.folder_id = item.original_folder_id
            if restored.folder_id is not None and restored.folder_id not in catalog.folder_index():
                logger.info("Original folder of %s is gone, restoring to root", file_id)
                restored.folder_id = None
            catalog.files.append(restored)
            self._save(catalog)
            self.recycle_bin.permanently_delete(file_id)

        self._log(EventType.VAULT_FILE_RESTORED, f"File restored: {file_id}", {"file_id": file_id})
        return restored

    def move_file(self, file_id: str, folder_id: Optional[str]) -> VaultFile:
        return self.move_files([file_id], folder_id)[0]

    def move_files(self, file_ids: Iterable[str], folder_id: Optional[str]) -> List[VaultFile]:
        """Move files into a folder (None = root). All or nothing."""
        file_ids = list(file_ids)
        with self._lock:
            catalog = self._load()
            self._require_folder(catalog, folder_id)
            targets = [self._require_file(catalog, fid) for fid in file_ids]
            for f in targets:
                f.folder_id = folder_id
            self._save(catalog)
        return targets

    def rename_file(self, file_id: str, name: str) -> VaultFile:
        if not name:
            raise ValueError("File name must not be empty")
        with self._lock:
            catalog = self._load()
            target = self._require_file(catalog, file_id)
            if target.name != name:
                target.name = name
                target.date_modified = self._clock().isoformat()
                self._save(catalog)
        return target

    def toggle_favorite(self, file_id: str) -> bool:
        """Flip the favorite flag. Returns the new value."""
        with self._lock:
            catalog = self._load()
            target = self._require_file(catalog, file_id)
            target.is_favorite = not target.is_favorite
            target.date_modified = self._clock().isoformat()
            self._save(catalog)
            return target.is_favorite

    def add_tag(self, file_id: str, tag: str) -> VaultFile:
        with self._lock:
            catalog = self._load()
            target = self._require_file(catalog, file_id)
            if tag not in target.tags:
                target.tags.add(tag)
                target.date_modified = self._clock().isoformat()
                self._save(catalog)
        return target

    def remove_tag(self, file_id: str, tag: str) -> VaultFile:
        with self._lock:
            catalog = self._load()
            target = self._require_file(catalog, file_id)
            if tag in target.tags:
                target.tags.discard(tag)
                target.date_modified = self._clock().isoformat()
                self._save(catalog)
        return target

    # ── Folders ──────────────────────────────────────────────────────

    def add_folder(self, name: str, parent_id: Optional[str] = None) -> VaultFolder:
        if not name:
            raise ValueError("Folder name must not be empty")
        with self._lock:
            catalog = self._load()
            self._require_folder(catalog, parent_id)
            folder = VaultFolder(
                id=uuid4().hex,
                name=name,
                date_created=self._clock().isoformat(),
                parent_id=parent_id,
            )
            catalog.folders.append(folder)
            self._save(catalog)
        return folder

    def rename_folder(self, folder_id: str, name: str) -> VaultFolder:
        if not name:
            raise ValueError("Folder name must not be empty")
        with self._lock:
            catalog = self._load()
            self._require_folder(catalog, folder_id)
            folder = catalog.folder_index()[folder_id]
            folder.name = name
            self._save(catalog)
        return folder

    def delete_folder(self, folder_id: str) -> int:
        """Remove a folder and permanently delete the files directly in it.

        These files bypass the recycle bin. Child folders are re-parented to
        the deleted folder's parent.

        Returns:
            Number of files destroyed.
        """
        with self._lock:
            catalog = self._load()
            self._require_folder(catalog, folder_id)
            folder = catalog.folder_index()[folder_id]

            doomed = [f for f in catalog.files if f.folder_id == folder_id]
            catalog.files = [f for f in catalog.files if f.folder_id != folder_id]
            for child in catalog.folders:
                if child.parent_id == folder_id:
                    child.parent_id = folder.parent_id
            catalog.folders = [f for f in catalog.folders if f.id != folder_id]
            self._save(catalog)

        self._log(EventType.VAULT_FOLDER_DELETED,
                  f"Folder deleted with {len(doomed)} files: {folder_id}",
                  {"folder_id": folder_id, "files_destroyed": len(doomed)},
                  severity=EventSeverity.INVESTIGATE if doomed else EventSeverity.INFO)
        return len(doomed)

    # ── Whole-catalog operations ─────────────────────────────────────

    def replace_catalog(self, catalog: Catalog) -> None:
        """Swap in a complete catalog with a single write (restore).

        Recycle bin entries whose ids are live again afterwards are dropped.
        """
        with self._lock:
            index = catalog.folder_index()
            for f in catalog.files:
                if f.folder_id is not None and f.folder_id not in index:
                    f.folder_id = None
            for folder in catalog.folders:
                if folder.parent_id is not None and folder.parent_id not in index:
                    folder.parent_id = None
            self._save(catalog)

            live = {f.id for f in catalog.files}
            try:
                for item in self.recycle_bin.list_items():
                    if item.id in live:
                        self.recycle_bin.permanently_delete(item.id)
            except StorageIOError as exc:
                # restore_from_recycle_bin refuses live ids, so stale entries are harmless
                logger.warning("Could not drop restored files from recycle bin: %s", exc)

    def encrypt_payload(self, data: bytes) -> bytes:
        return EncryptionService.encrypt_bytes(data, self._keyring.get_key())

    def wipe(self) -> None:
        with self._lock:
            self._kv.remove(CATALOG_KEY)

    # ── Internals ────────────────────────────────────────────────────

    def _load(self) -> Catalog:
        return Catalog.from_dict(self._kv.get_json(CATALOG_KEY))

    def _save(self, catalog: Catalog) -> None:
        catalog.recount()
        self._kv.set_json(CATALOG_KEY, catalog.to_dict())

    def decrypt_payload(self, vault_file: VaultFile) -> bytes:
        return EncryptionService.decrypt_bytes(vault_file.payload, self._keyring.get_key())

    @staticmethod
    def _find_file(catalog: Catalog, file_id: str) -> Optional[VaultFile]:
        for f in catalog.files:
            if f.id == file_id:
                return f
        return None

    def _require_file(self, catalog: Catalog, file_id: str) -> VaultFile:
        found = self._find_file(catalog, file_id)
        if found is None:
            raise FileNotFoundInVaultError(f"File not found: {file_id}")
        return found

    @staticmethod
    def _require_folder(catalog: Catalog, folder_id: Optional[str]) -> None:
        if folder_id is not None and folder_id not in catalog.folder_index():
            raise FolderNotFoundError(f"Folder not found: {folder_id}")

    def _log(self, event_type, message, details=None, severity=EventSeverity.INFO) -> None:
        if self._audit is not None:
            self._audit.log_event(event_type, severity, message, details)
