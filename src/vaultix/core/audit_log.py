# Vaultix Core - Security Audit Log
#
# Append-only structured log for every security-relevant vault event:
# unlock attempts, lockouts, self-destruct, file and backup operations.
#
# Events are rendered as JSON lines by structlog. With a log directory they
# go to a daily file (audit_YYYY-MM-DD.log); the most recent events are also
# kept in memory for query_events().
#
# Never log credentials, hashes, passphrases, keys or file payloads.

import logging
import os
import socket
import sys
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional
from uuid import uuid4

import structlog


class EventType(str, Enum):
    """Types of security events that can be logged."""

    # Authentication
    AUTH_SETUP = "auth.setup"
    AUTH_CHANGED = "auth.changed"
    AUTH_UNLOCKED = "auth.unlocked"
    AUTH_FAILED = "auth.failed"
    AUTH_LOCKED_OUT = "auth.locked_out"
    AUTH_REJECTED = "auth.rejected"
    AUTH_RESET = "auth.reset"
    AUTH_RESET_DENIED = "auth.reset_denied"
    BREAK_IN_ATTEMPT = "auth.break_in"

    # Vault
    VAULT_LOCKED = "vault.locked"
    VAULT_FILE_ADDED = "vault.file.added"
    VAULT_FILE_DELETED = "vault.file.deleted"
    VAULT_FILE_RESTORED = "vault.file.restored"
    VAULT_FOLDER_DELETED = "vault.folder.deleted"
    VAULT_ERROR = "vault.error"

    # Recycle bin
    RECYCLE_BIN_PURGED = "recycle_bin.purged"

    # Backups
    BACKUP_CREATED = "backup.created"
    BACKUP_UPLOADED = "backup.uploaded"
    BACKUP_RESTORED = "backup.restored"
    BACKUP_RESTORE_FAILED = "backup.restore_failed"
    BACKUP_DELETED = "backup.deleted"

    # Panic
    SELF_DESTRUCT = "panic.self_destruct"


class EventSeverity(str, Enum):
    """
    Severity levels for security events.

    - INFO: normal activity, logged only
    - INVESTIGATE: unusual but expected (a wrong PIN)
    - ALERT: a protection kicked in (lockout)
    - CRITICAL: data was destroyed or an integrity check failed
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


_SEVERITY_LEVELS = {
    EventSeverity.INFO: logging.INFO,
    EventSeverity.INVESTIGATE: logging.INFO,
    EventSeverity.ALERT: logging.WARNING,
    EventSeverity.CRITICAL: logging.CRITICAL,
}

_RECENT_EVENTS = 500


class AuditLogger:
    """
    Append-only audit logger for vault security events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - Host context capture
    - Recent-event buffer for forensic queries
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for daily audit files. None keeps events in
                     memory only.
        """
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self._recent: Deque[Dict[str, Any]] = deque(maxlen=_RECENT_EVENTS)

        # Private stdlib logger: not registered with logging.getLogger(), so
        # two vaults in one process never share handlers.
        self._stdlib_logger = logging.Logger("vaultix.audit", level=logging.INFO)
        self._handler: Optional[logging.Handler] = None
        if self.log_dir is not None:
            self._setup_file_handler()
        else:
            self._stdlib_logger.addHandler(logging.NullHandler())

        self.logger = structlog.wrap_logger(
            self._stdlib_logger,
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
        )

    def _setup_file_handler(self):
        """Attach the daily append-only log file."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(message)s"))  # structlog renders
        self._stdlib_logger.addHandler(file_handler)
        self._handler = file_handler

        try:
            os.chmod(log_file, 0o600)
        except OSError:
            pass  # not supported on every filesystem

    @property
    def log_file(self) -> Optional[Path]:
        if isinstance(self._handler, logging.FileHandler):
            return Path(self._handler.baseFilename)
        return None

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log a security event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (no secrets)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())
        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {},
            "host_context": self._get_host_context(),
        }
        self._recent.append(event_data)

        self.logger.log(_SEVERITY_LEVELS[severity], "security_event", **event_data)
        return event_id

    def query_events(
        self,
        event_types: Optional[List[EventType]] = None,
        severity: Optional[EventSeverity] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        Query recent audit events, newest first.

        Args:
            event_types: Only events of these types
            severity: Only events of this severity
            limit: Maximum number of events to return
        """
        wanted = {e.value for e in event_types} if event_types else None
        matches = []
        for event in reversed(self._recent):
            if wanted is not None and event["event_type"] not in wanted:
                continue
            if severity is not None and event["severity"] != severity.value:
                continue
            matches.append(event)
            if len(matches) >= limit:
                break
        return matches

    def close(self) -> None:
        """Flush and detach the log file."""
        if self._handler is not None:
            self._handler.close()
            self._stdlib_logger.removeHandler(self._handler)
            self._handler = None

    @staticmethod
    def _get_host_context() -> Dict[str, Any]:
        """Get default host context (OS user, hostname, platform)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }
