"""Database connection manager for SQLite."""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from clinic_queue import config
from clinic_queue.errors import LockTimeoutError

from .schema import SCHEMA

logger = logging.getLogger(__name__)


def get_connection(db_path: Path | str | None = None, timeout: float | None = None) -> sqlite3.Connection:
    """Get a database connection with row factory enabled.

    The connection runs in autocommit mode; writes that must be atomic go
    through transaction().
    """
    conn = sqlite3.connect(
        db_path or config.DB_PATH,
        timeout=config.LOCK_TIMEOUT if timeout is None else timeout,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database(db_path: Path | str | None = None) -> None:
    """Initialize the database with schema."""
    path = Path(db_path or config.DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(path)
    conn.execute("PRAGMA journal_mode = WAL")
    conn.executescript(SCHEMA)
    conn.close()


def is_lock_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


@contextmanager
def transaction(db_path: Path | str | None = None, timeout: float | None = None):
    """Run a block of writes under the database write lock.

    BEGIN IMMEDIATE takes the write lock before anything is read, so two
    commands cannot compute positions or queue numbers from the same state.
    Yields a cursor; commits on success, rolls back on any error. A lock
    that cannot be acquired within the timeout surfaces as LockTimeoutError.
    """
    conn = get_connection(db_path, timeout)
    cursor = conn.cursor()
    try:
        try:
            cursor.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            if is_lock_error(e):
                raise LockTimeoutError("Queue is busy, could not acquire the write lock") from e
            raise
        try:
            yield cursor
            conn.commit()
        except sqlite3.OperationalError as e:
            conn.rollback()
            if is_lock_error(e):
                raise LockTimeoutError("Queue is busy, write lock lost before commit") from e
            raise
        except BaseException:
            conn.rollback()
            raise
    finally:
        conn.close()
