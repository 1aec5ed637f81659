"""
Self-destruct: irreversible erasure of all vault data.

Triggered by the attempt governor when the lockout threshold is reached with
self-destruct enabled, or manually from an authenticated session. There is no
confirmation step. Every wipe step runs even if an earlier one fails, so one
broken collaborator cannot leave the rest of the data behind.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from ..core.audit_log import AuditLogger, EventSeverity, EventType

logger = logging.getLogger(__name__)

WipeStep = Tuple[str, Callable[[], None]]


class SelfDestruct:
    """Runs an ordered list of named wipe steps.

    Args:
        steps: (name, callable) pairs, e.g. ("credentials", store.wipe).
        audit: Security audit logger. The audit trail itself is kept.
    """

    def __init__(self, steps: List[WipeStep], audit: Optional[AuditLogger] = None):
        self._steps = list(steps)
        self._audit = audit
        self.executed = False

    def execute(self, reason: str = "lockout") -> Dict[str, bool]:
        """Wipe everything. Returns step name -> succeeded."""
        results: Dict[str, bool] = {}
        for name, wipe in self._steps:
            try:
                wipe()
                results[name] = True
            except Exception:
                logger.error("Self-destruct step %s failed", name, exc_info=True)
                results[name] = False
        self.executed = True

        if self._audit is not None:
            self._audit.log_event(
                EventType.SELF_DESTRUCT,
                EventSeverity.CRITICAL,
                f"Vault data destroyed ({reason})",
                details={"reason": reason, "steps": results},
            )
        return results
