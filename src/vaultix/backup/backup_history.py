"""Backup history, newest first, bounded in length.

Stored as one JSON list under ``vaultix_backup_history``.
"""

import logging
import threading
from typing import List, Optional

from ..core.kv_store import KeyValueStore
from .models import BackupMetadata

logger = logging.getLogger(__name__)

HISTORY_KEY = "vaultix_backup_history"
DEFAULT_HISTORY_LIMIT = 20


class BackupHistory:
    def __init__(self, kv: KeyValueStore, limit: int = DEFAULT_HISTORY_LIMIT):
        self._kv = kv
        self.limit = limit
        self._lock = threading.Lock()

    def record(self, metadata: BackupMetadata) -> List[BackupMetadata]:
        """Prepend an entry. Returns the entries pushed out by the limit."""
        with self._lock:
            entries = self._load()
            entries.insert(0, metadata)
            evicted = entries[self.limit:]
            self._save(entries[: self.limit])
        return evicted

    def list(self) -> List[BackupMetadata]:
        with self._lock:
            return self._load()

    def get(self, backup_id: str) -> Optional[BackupMetadata]:
        for entry in self.list():
            if entry.id == backup_id:
                return entry
        return None

    def update(self, metadata: BackupMetadata) -> None:
        """Replace the entry with the same id, keeping its position."""
        with self._lock:
            entries = self._load()
            self._save([metadata if e.id == metadata.id else e for e in entries])

    def remove(self, backup_id: str) -> bool:
        with self._lock:
            entries = self._load()
            remaining = [e for e in entries if e.id != backup_id]
            if len(remaining) == len(entries):
                return False
            self._save(remaining)
            return True

    def wipe(self) -> None:
        with self._lock:
            self._kv.remove(HISTORY_KEY)

    def _load(self) -> List[BackupMetadata]:
        return [BackupMetadata.from_dict(d) for d in self._kv.get_json(HISTORY_KEY, [])]

    def _save(self, entries: List[BackupMetadata]) -> None:
        self._kv.set_json(HISTORY_KEY, [e.to_dict() for e in entries])
