"""
Transactional metadata index backed by SQLite.

Each unit of work opens its own connection, so callers on different threads
never share one. Writers take the database lock up front with
BEGIN IMMEDIATE; uniqueness is enforced by the schema's constraints, which
is what makes check-then-insert safe across processes as well as threads.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from chunkvault.core.errors import MetadataError
from chunkvault.storage.schema import SCHEMA

logger = logging.getLogger(__name__)


def translate_error(error: sqlite3.Error, message: str, **context) -> MetadataError:
    """
    Map a sqlite3 error to MetadataError.

    Lock contention is retryable; constraint violations and everything else
    are not.
    """
    text = str(error).lower()
    retryable = isinstance(error, sqlite3.OperationalError) and (
        "locked" in text or "busy" in text
    )
    return MetadataError(f"{message}: {error}", retryable=retryable, **context)


class MetadataIndex:
    """SQLite database holding the chunk index and file manifests."""

    def __init__(self, path: Path, timeout: float = 30.0):
        """
        Args:
            path: Database file
            timeout: Seconds to wait for a competing writer's lock
        """
        self.path = Path(path)
        self.timeout = timeout

    def connect(self) -> sqlite3.Connection:
        """Open a connection in autocommit mode; transactions are explicit."""
        try:
            conn = sqlite3.connect(
                self.path,
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise translate_error(e, f"Cannot open metadata database {self.path}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for read-only access."""
        conn = self.connect()
        try:
            yield conn
        except sqlite3.Error as e:
            raise translate_error(e, "Metadata query failed") from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for one atomic unit of work.

        Commits when the block exits normally; rolls back everything on any
        exception, including exceptions that are not database errors.
        """
        conn = self.connect()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise translate_error(e, "Cannot begin metadata transaction") from e

            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                if isinstance(e, sqlite3.Error):
                    raise translate_error(e, "Metadata transaction failed") from e
                raise
        finally:
            conn.close()

    def initialize(self):
        """Create schema if not exists."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            # WAL lets readers proceed while a put holds the write lock
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)

    def reset(self):
        """Delete every manifest row, completion marker, chunk row and store setting."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM file_chunks")
            conn.execute("DELETE FROM file_status")
            conn.execute("DELETE FROM chunks")
            conn.execute("DELETE FROM store_info")
        logger.warning(f"Metadata index reset: {self.path}")

    def get_info(self, key: str) -> Optional[str]:
        """Retrieve a store setting by key."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT value FROM store_info WHERE key = ?", (key,)
            ).fetchone()
            return row["value"] if row else None

    def set_info(self, key: str, value: str):
        """Store a setting, keeping an existing value."""
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO store_info (key, value) VALUES (?, ?)",
                (key, value),
            )
