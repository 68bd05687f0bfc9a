"""Connection management for the shared tracker database.

One ConnectionManager owns exactly one sqlite3 connection. The file is
shared with the producer process, so the connection runs in WAL mode
with a bounded busy timeout: readers proceed during the producer's
writes, and a blocked writer waits up to the timeout, then fails.

Not thread-safe; callers serialize access.
"""

import contextlib
import logging
import sqlite3
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence

from .errors import ConnectionFailure, StatementPrepareFailure, WriteFailure

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_MS = 5000


def _translate(e: sqlite3.Error, sql: str, write: bool) -> Exception:
    """Map a sqlite3 error onto the storage taxonomy."""
    message = str(e).lower()
    statement = " ".join(sql.split())[:80]
    if isinstance(e, sqlite3.IntegrityError):
        return WriteFailure(f"Constraint violation in '{statement}': {e}")
    if write and ("locked" in message or "busy" in message):
        return WriteFailure(f"Database busy during '{statement}': {e}")
    return StatementPrepareFailure(f"Statement failed '{statement}': {e}")


class ConnectionManager:
    """Owns the database handle and heals stale connections."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._reconnect_listeners: List[Callable[[], None]] = []

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def add_reconnect_listener(self, listener: Callable[[], None]) -> None:
        """Register a callback run whenever a stale connection is replaced."""
        self._reconnect_listeners.append(listener)

    def open(self) -> sqlite3.Connection:
        """Open the database file, enabling WAL and the busy timeout.

        Raises:
            ConnectionFailure: If the file cannot be opened or configured.
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=BUSY_TIMEOUT_MS / 1000,
                isolation_level=None,
            )
        except (sqlite3.Error, OSError) as e:
            raise ConnectionFailure(f"Cannot open database at {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            with contextlib.closing(conn.cursor()) as cur:
                cur.execute("PRAGMA journal_mode=WAL")
                cur.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        except sqlite3.Error as e:
            conn.close()
            raise ConnectionFailure(f"Cannot configure database at {self.db_path}: {e}") from e

        self._conn = conn
        logger.debug(f"Opened database at {self.db_path}")
        return conn

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except sqlite3.Error as e:
            logger.debug(f"Error closing database: {e}")
        self._conn = None

    def ensure_connection(self) -> bool:
        """Probe the connection, reopening it if the probe fails.

        Returns:
            True if a usable connection is available, False otherwise.
        """
        if self._conn is not None:
            try:
                with contextlib.closing(self._conn.cursor()) as cur:
                    cur.execute("SELECT 1").fetchone()
                return True
            except sqlite3.Error as e:
                logger.info(f"Connection probe failed, reconnecting: {e}")
                self.close()
                for listener in self._reconnect_listeners:
                    listener()

        try:
            self.open()
        except ConnectionFailure as e:
            logger.warning(f"No database available: {e}")
            return False
        return True

    def _require(self) -> sqlite3.Connection:
        if self._conn is None:
            raise ConnectionFailure("Database connection is not open")
        return self._conn

    @contextlib.contextmanager
    def cursor(self) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor that is closed on every exit path."""
        cur = self._require().cursor()
        try:
            yield cur
        finally:
            cur.close()

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        """Run a read statement and return all rows."""
        try:
            with self.cursor() as cur:
                cur.execute(sql, tuple(params))
                return cur.fetchall()
        except sqlite3.Error as e:
            raise _translate(e, sql, write=False) from e

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        try:
            with self.cursor() as cur:
                cur.execute(sql, tuple(params))
                return cur.fetchone()
        except sqlite3.Error as e:
            raise _translate(e, sql, write=False) from e

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement and return the affected row count."""
        try:
            with self.cursor() as cur:
                cur.execute(sql, tuple(params))
                return cur.rowcount
        except sqlite3.Error as e:
            raise _translate(e, sql, write=True) from e

    @contextlib.contextmanager
    def transaction(self) -> Iterator["ConnectionManager"]:
        """Run the enclosed statements in one IMMEDIATE transaction.

        Commits on success; rolls back and re-raises on any exception.
        """
        conn = self._require()
        try:
            conn.execute("BEGIN IMMEDIATE").close()
        except sqlite3.Error as e:
            raise _translate(e, "BEGIN IMMEDIATE", write=True) from e
        try:
            yield self
        except BaseException:
            self._rollback(conn)
            raise
        try:
            conn.execute("COMMIT").close()
        except sqlite3.Error as e:
            self._rollback(conn)
            raise _translate(e, "COMMIT", write=True) from e

    def _rollback(self, conn: sqlite3.Connection) -> None:
        try:
            conn.execute("ROLLBACK").close()
        except sqlite3.Error as e:
            logger.debug(f"Rollback failed: {e}")
