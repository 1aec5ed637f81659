"""Break-in attempt log.

Every failed unlock is recorded with its kind (``failed_pin``,
``failed_pattern``, ``failed_password``, ``multiple_attempts``). Only the last
50 records are kept. Callers treat logging as fire-and-forget.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..core.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

BREAKIN_LOG_KEY = "vaultix_breakin_logs"
MAX_BREAKIN_RECORDS = 50


class IntrusionLogger:
    """Interface for break-in reporting."""

    def log_break_in_attempt(self, kind: str) -> None:
        raise NotImplementedError


class BreakInLog(IntrusionLogger):
    def __init__(self, kv: KeyValueStore, audit: Optional[AuditLogger] = None):
        self._kv = kv
        self._audit = audit
        self._lock = threading.Lock()

    def log_break_in_attempt(self, kind: str) -> None:
        record = {
            "id": uuid4().hex,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "kind": kind,
        }
        with self._lock:
            records = self._kv.get_json(BREAKIN_LOG_KEY, [])
            records.insert(0, record)
            self._kv.set_json(BREAKIN_LOG_KEY, records[:MAX_BREAKIN_RECORDS])

        if self._audit is not None:
            severity = EventSeverity.ALERT if kind == "multiple_attempts" else EventSeverity.INVESTIGATE
            self._audit.log_event(
                EventType.BREAK_IN_ATTEMPT,
                severity,
                f"Break-in attempt recorded: {kind}",
                details={"kind": kind},
            )

    def list_records(self) -> List[dict]:
        """Newest first."""
        return self._kv.get_json(BREAKIN_LOG_KEY, [])

    def wipe(self) -> None:
        with self._lock:
            self._kv.remove(BREAKIN_LOG_KEY)
