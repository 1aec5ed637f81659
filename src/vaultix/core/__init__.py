# Vaultix Core - Shared Utilities
#
# - Key/value persistence (SQLite and in-memory)
# - Security audit logging

from .audit_log import AuditLogger, EventSeverity, EventType
from .kv_store import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore

__all__ = [
    # Persistence
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
]
