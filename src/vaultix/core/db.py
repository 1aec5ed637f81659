# Vaultix Core - SQLite Connection Helper
#
# Every Vaultix SQLite database goes through `connect()` instead of raw
# `sqlite3.connect()`. This ensures:
#
#   - WAL journal mode (readers never block the single catalog writer)
#   - busy_timeout to avoid SQLITE_BUSY under contention
#   - synchronous=FULL so a replace-whole-catalog write survives power loss

import sqlite3
from pathlib import Path
from typing import Union


def connect(
    db_path: Union[str, Path],
    *,
    row_factory: bool = False,
    check_same_thread: bool = True,
) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and safe PRAGMAs.

    Args:
        db_path: Path to the database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.
        check_same_thread: Passed to sqlite3.connect().

    Returns:
        sqlite3.Connection with WAL mode, busy_timeout, and full sync.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=check_same_thread)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA synchronous=FULL")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn
