"""
Database access for Music Catalog.

Connections are short-lived and opened per operation. Reads run against the
last committed state (WAL); writes are serialized through a single
process-wide writer lock and always run as one explicit transaction.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from loguru import logger

from .config import get_data_dir

# At most one write transaction in flight per process
_writer_lock = threading.Lock()


def get_database_path() -> Path:
    """Get the path to the SQLite database file."""
    return get_data_dir() / "music_catalog.db"


@contextmanager
def get_db_connection() -> Iterator[sqlite3.Connection]:
    """Get a database connection with proper cleanup and concurrency support."""
    db_path = get_database_path()
    # Long timeout: a large batch may hold the write lock for a while
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row  # Enable dict-like access

    # WAL lets readers proceed while a batch is being written
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def write_transaction() -> Iterator[sqlite3.Connection]:
    """Open a connection and run one serialized write transaction.

    Commits when the block exits normally, rolls back and re-raises
    otherwise. Not re-entrant: never open a write transaction from inside
    another one on the same thread.
    """
    with _writer_lock:
        with get_db_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.commit()
            except BaseException:
                conn.rollback()
                raise


def placeholders(count: int) -> str:
    """Generate SQL placeholders for an IN clause."""
    return ",".join("?" * count)


def init_database() -> list[str]:
    """Create the data directory and bring the schema up to date.

    Returns:
        Identifiers of migrations applied by this call

    Raises:
        MigrationError: If any migration fails; the store must not be used
    """
    from .migrations import apply_migrations

    db_path = get_database_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with _writer_lock:
        with get_db_connection() as conn:
            applied = apply_migrations(conn)

    if applied:
        logger.info(f"Database {db_path} migrated: {', '.join(applied)}")
    return applied
