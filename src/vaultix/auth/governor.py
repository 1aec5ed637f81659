"""Attempt governor: failed-unlock counting, lockout and self-destruct.

State machine::

    UNLOCKED (count=0) --fail--> COUNTING (1..max-1) --fail--> LOCKED (count=max)
         ^                            |                          |
         +---------- success ---------+                          | self-destruct enabled
         +---------- reset(recovery code) -----------------------+
                                                                 v
                                                             DESTROYED (terminal)

The count and the lock flag are persisted (``vaultix_failed_attempts``,
``vaultix_lock_status``) so a restart does not clear a lockout. All attempts
go through ``authenticate()``, which holds the governor lock for the whole
check-verify-increment sequence.
"""

import hashlib
import hmac
import logging
import secrets
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..core.kv_store import KeyValueStore
from ..exceptions import SelfDestructedError
from .auth_config import AuthConfig
from .intrusion import IntrusionLogger

logger = logging.getLogger(__name__)

FAILED_ATTEMPTS_KEY = "vaultix_failed_attempts"
LOCK_STATUS_KEY = "vaultix_lock_status"
RECOVERY_HASH_KEY = "vaultix_recovery_hash"


# ── States and results ───────────────────────────────────────────────


class GovernorState(str, Enum):
    UNLOCKED = "unlocked"
    COUNTING = "counting"
    LOCKED = "locked"
    DESTROYED = "destroyed"


class AuthOutcome(str, Enum):
    OK = "ok"
    CREDENTIAL_MISMATCH = "credential_mismatch"
    LOCKED_OUT = "locked_out"
    SELF_DESTRUCTED = "self_destructed"
    NOT_SET_UP = "not_set_up"


@dataclass(frozen=True)
class AuthResult:
    """Outcome of one unlock attempt."""

    outcome: AuthOutcome
    attempts: int = 0
    remaining: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome is AuthOutcome.OK

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "attempts": self.attempts,
            "remaining": self.remaining,
        }


@dataclass
class AttemptState:
    count: int = 0
    locked: bool = False


# ── Governor ─────────────────────────────────────────────────────────


class AttemptGovernor:
    """Serializes unlock attempts and enforces the failure threshold.

    Args:
        kv: Persistence for the attempt state and the recovery hash.
        intrusion: Receives a record for every failure. Its errors are logged
            and ignored.
        on_destroy: Called once when the lockout triggers self-destruct.
        audit: Security audit logger.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        intrusion: Optional[IntrusionLogger] = None,
        on_destroy: Optional[Callable[[], None]] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._kv = kv
        self._intrusion = intrusion
        self._on_destroy = on_destroy
        self._audit = audit
        self._lock = threading.RLock()
        self._destroyed = False

    # ── State ────────────────────────────────────────────────────────

    @property
    def state(self) -> GovernorState:
        with self._lock:
            if self._destroyed:
                return GovernorState.DESTROYED
            current = self._load()
            if current.locked:
                return GovernorState.LOCKED
            if current.count > 0:
                return GovernorState.COUNTING
            return GovernorState.UNLOCKED

    @property
    def attempts(self) -> int:
        with self._lock:
            return self._load().count

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def mark_destroyed(self) -> None:
        """Move to the terminal state (manual self-destruct)."""
        with self._lock:
            self._destroyed = True

    def ensure_alive(self) -> None:
        if self._destroyed:
            raise SelfDestructedError("Vault data has been destroyed")

    # ── Attempts ─────────────────────────────────────────────────────

    def authenticate(self, verify: Callable[[], bool], kind: str = "failed_pin") -> AuthResult:
        """Run one unlock attempt.

        ``verify`` is not called while locked. Break-in records are written
        after the governor lock is released; self-destruct runs after them,
        so the wipe also removes them.

        Args:
            verify: Performs the credential check.
            kind: Break-in record kind used if the attempt fails.

        Raises:
            SelfDestructedError: The vault has already been destroyed.
        """
        reports: List[str] = []
        with self._lock:
            result = self._attempt(verify, kind, reports)

        for report_kind in reports:
            self._report(report_kind)
        if result.outcome is AuthOutcome.SELF_DESTRUCTED and self._on_destroy is not None:
            self._on_destroy()
        return result

    def _attempt(self, verify: Callable[[], bool], kind: str, reports: List[str]) -> AuthResult:
        self.ensure_alive()
        config = AuthConfig.load(self._kv)
        current = self._load()

        if current.locked:
            self._log(EventType.AUTH_REJECTED, EventSeverity.ALERT,
                      "Unlock attempt rejected while locked out",
                      {"attempts": current.count})
            return AuthResult(AuthOutcome.LOCKED_OUT, attempts=current.count)

        if verify():
            self._save(AttemptState())
            self._log(EventType.AUTH_UNLOCKED, EventSeverity.INFO, "Vault unlocked")
            return AuthResult(AuthOutcome.OK, remaining=config.max_attempts)

        current.count = min(current.count + 1, config.max_attempts)
        reports.append(kind)

        if current.count < config.max_attempts:
            self._save(current)
            remaining = config.max_attempts - current.count
            self._log(EventType.AUTH_FAILED, EventSeverity.INVESTIGATE,
                      "Unlock attempt failed",
                      {"attempts": current.count, "remaining": remaining})
            return AuthResult(AuthOutcome.CREDENTIAL_MISMATCH,
                              attempts=current.count, remaining=remaining)

        current.locked = True
        self._save(current)
        reports.append("multiple_attempts")
        self._log(EventType.AUTH_LOCKED_OUT, EventSeverity.ALERT,
                  f"Locked out after {current.count} failed attempts",
                  {"attempts": current.count})

        if config.self_destruct_enabled:
            # Set under the lock so concurrent attempts see the terminal state
            self._destroyed = True
            return AuthResult(AuthOutcome.SELF_DESTRUCTED, attempts=current.count)

        return AuthResult(AuthOutcome.CREDENTIAL_MISMATCH, attempts=current.count)

    def record_success(self) -> None:
        """Clear the attempt state after a credential is (re)established."""
        with self._lock:
            self.ensure_alive()
            self._save(AttemptState())

    # ── Recovery ─────────────────────────────────────────────────────

    def issue_recovery_code(self) -> str:
        """Create a new recovery code and store only its hash.

        The code is returned exactly once. A new code replaces the old one.
        """
        with self._lock:
            self.ensure_alive()
            code = secrets.token_urlsafe(24)
            self._kv.set(RECOVERY_HASH_KEY, _digest(code))
            return code

    def has_recovery_code(self) -> bool:
        return self._kv.get(RECOVERY_HASH_KEY) is not None

    def reset(self, recovery_code: str) -> bool:
        """Clear the lockout. Only a valid recovery code is accepted."""
        with self._lock:
            self.ensure_alive()
            stored = self._kv.get(RECOVERY_HASH_KEY)
            if stored is None or not hmac.compare_digest(_digest(recovery_code), stored):
                self._log(EventType.AUTH_RESET_DENIED, EventSeverity.ALERT,
                          "Lockout reset refused: invalid recovery code")
                return False
            self._save(AttemptState())
            self._log(EventType.AUTH_RESET, EventSeverity.ALERT, "Lockout cleared with recovery code")
            return True

    def wipe(self) -> None:
        with self._lock:
            for key in (FAILED_ATTEMPTS_KEY, LOCK_STATUS_KEY, RECOVERY_HASH_KEY):
                self._kv.remove(key)

    # ── Internals ────────────────────────────────────────────────────

    def _load(self) -> AttemptState:
        raw_count = self._kv.get(FAILED_ATTEMPTS_KEY, "0")
        try:
            count = max(int(raw_count), 0)
        except ValueError:
            logger.warning("Ignoring corrupt failed-attempt counter %r", raw_count)
            count = 0
        return AttemptState(count=count, locked=self._kv.get(LOCK_STATUS_KEY) == "locked")

    def _save(self, state: AttemptState) -> None:
        self._kv.set(FAILED_ATTEMPTS_KEY, str(state.count))
        if state.locked:
            self._kv.set(LOCK_STATUS_KEY, "locked")
        else:
            self._kv.remove(LOCK_STATUS_KEY)

    def _report(self, kind: str) -> None:
        if self._intrusion is None:
            return
        try:
            self._intrusion.log_break_in_attempt(kind)
        except Exception:
            logger.warning("Break-in logging failed", exc_info=True)

    def _log(self, event_type, severity, message, details=None) -> None:
        if self._audit is not None:
            self._audit.log_event(event_type, severity, message, details)


def _digest(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()
