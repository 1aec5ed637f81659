# Vaultix Vault - Recycle Bin
#
# Soft-deleted files wait here for a bounded retention window (default 7
# days) before permanent purge. Expired entries are purged lazily whenever
# the bin is loaded, so no background timer is needed.
#
# Persisted separately from the live catalog under vaultix_recycle_bin.

import logging
import math
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..core.kv_store import KeyValueStore
from ..exceptions import RecycleBinItemNotFoundError
from .models import DeletedFile, VaultFile, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

RECYCLE_BIN_KEY = "vaultix_recycle_bin"
DEFAULT_RETENTION_DAYS = 7


class RecycleBin:
    """Time-bounded holding area for soft-deleted files.

    Args:
        kv: Key/value persistence.
        retention_days: Days an entry survives after deletion.
        clock: Returns the current UTC time (injectable for tests).
        audit: Security audit logger.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], datetime] = utc_now,
        audit: Optional[AuditLogger] = None,
    ):
        self._kv = kv
        self.retention = timedelta(days=retention_days)
        self._clock = clock
        self._audit = audit
        self._lock = threading.RLock()

    # ── Public API ───────────────────────────────────────────────────

    def add_to_recycle_bin(self, file: VaultFile) -> DeletedFile:
        """Stamp the deletion time and keep the original folder reference."""
        item = DeletedFile(
            file=file,
            deleted_at=self._clock().isoformat(),
            original_folder_id=file.folder_id,
        )
        with self._lock:
            items = self._load()
            items = [i for i in items if i.id != file.id]
            items.append(item)
            self._save(items)
        logger.debug("Moved %s to recycle bin", file.id)
        return item

    def list_items(self) -> List[DeletedFile]:
        with self._lock:
            return self._load()

    def get_item(self, file_id: str) -> Optional[DeletedFile]:
        with self._lock:
            for item in self._load():
                if item.id == file_id:
                    return item
        return None

    def restore_file(self, file_id: str) -> VaultFile:
        """Take a file back out of the bin.

        The caller re-inserts it into the live catalog.

        Raises:
            RecycleBinItemNotFoundError: Not in the bin (or already expired).
        """
        with self._lock:
            items = self._load()
            for index, item in enumerate(items):
                if item.id == file_id:
                    del items[index]
                    self._save(items)
                    item.file.folder_id = item.original_folder_id
                    return item.file
        raise RecycleBinItemNotFoundError(f"File {file_id} is not in the recycle bin")

    def permanently_delete(self, file_id: str) -> bool:
        with self._lock:
            items = self._load()
            remaining = [i for i in items if i.id != file_id]
            if len(remaining) == len(items):
                return False
            self._save(remaining)
            return True

    def empty_recycle_bin(self) -> int:
        """Destroy every entry. Returns the number removed."""
        with self._lock:
            count = len(self._load())
            self._kv.remove(RECYCLE_BIN_KEY)
        if count and self._audit is not None:
            self._audit.log_event(
                EventType.RECYCLE_BIN_PURGED, EventSeverity.INFO,
                f"Recycle bin emptied ({count} files)", {"count": count},
            )
        return count

    def purge_expired(self) -> int:
        """Remove expired entries now. Returns the number purged."""
        with self._lock:
            raw = self._kv.get_json(RECYCLE_BIN_KEY, [])
            before = len(raw)
            after = len(self._load())
        return before - after

    def remaining_days(self, item: DeletedFile, now: Optional[datetime] = None) -> int:
        """Whole days (rounded up) until the entry expires, never negative."""
        now = now or self._clock()
        left = self._expiry(item) - now
        return max(0, math.ceil(left.total_seconds() / 86400))

    def stats(self) -> dict:
        items = self.list_items()
        return {
            "count": len(items),
            "total_size": sum(i.file.size for i in items),
        }

    def wipe(self) -> None:
        with self._lock:
            self._kv.remove(RECYCLE_BIN_KEY)

    # ── Internals ────────────────────────────────────────────────────

    def _expiry(self, item: DeletedFile) -> datetime:
        return parse_timestamp(item.deleted_at) + self.retention

    def _load(self) -> List[DeletedFile]:
        """Load entries, dropping (and persisting the drop of) expired ones."""
        raw = self._kv.get_json(RECYCLE_BIN_KEY, [])
        items = [DeletedFile.from_dict(d) for d in raw]
        now = self._clock()
        live = [i for i in items if self._expiry(i) > now]
        if len(live) != len(items):
            purged = len(items) - len(live)
            self._save(live)
            logger.info("Purged %d expired recycle bin entries", purged)
            if self._audit is not None:
                self._audit.log_event(
                    EventType.RECYCLE_BIN_PURGED, EventSeverity.INFO,
                    f"Purged {purged} expired recycle bin entries", {"count": purged},
                )
        return live

    def _save(self, items: List[DeletedFile]) -> None:
        if items:
            self._kv.set_json(RECYCLE_BIN_KEY, [i.to_dict() for i in items])
        else:
            self._kv.remove(RECYCLE_BIN_KEY)
