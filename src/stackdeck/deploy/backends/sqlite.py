"""SQLite deployment state backend.

Stores one JSON state blob per stack, one exclusive TTL lock per stack and
an append-only audit log in a single SQLite database file.

Lock acquisition reads the current lock, purges it if expired and inserts
the new row. The three steps run in one ``BEGIN IMMEDIATE`` transaction, so
writers sharing the database file are serialized by SQLite's write lock.
This is still a single-host lock: there is no fencing token and a holder
that outlives its TTL is not notified.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from stackdeck.deploy.backends.base import BaseBackend
from stackdeck.lib.clock import now_ms
from stackdeck.lib.errors import LockConflictError, StateBackendError
from stackdeck.models.state import AuditEntry, LockRecord, StateRecord

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS state (
        stack_name TEXT PRIMARY KEY,
        state_data TEXT NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS locks (
        stack_name TEXT PRIMARY KEY,
        holder TEXT NOT NULL,
        acquired_at INTEGER NOT NULL,
        ttl REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        stack_name TEXT NOT NULL,
        entry_data TEXT NOT NULL,
        created_at INTEGER NOT NULL
    )
    """,
)


class SQLiteBackend(BaseBackend):
    """State backend persisted in a SQLite database.

    Example:
        >>> backend = SQLiteBackend(":memory:")
        >>> backend.save_state("dev", {"nodes": []})
        >>> backend.get_state("dev")
        {'nodes': []}
        >>> backend.acquire_lock("dev", "worker-1", ttl_seconds=60)
        >>> backend.check_lock("dev").holder
        'worker-1'
        >>> backend.close()
    """

    def __init__(
        self,
        db_path: str | Path = "stackdeck-state.db",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Open (and create if needed) the state database.

        Args:
            db_path: Database file path, or ":memory:"
            clock: Returns the current time in epoch milliseconds

        Raises:
            StateBackendError: If the database cannot be opened
        """
        self.db_path = str(db_path)
        self._clock = clock
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; multi-statement operations open explicit
            # transactions in _transaction()
            self._conn = sqlite3.connect(
                self.db_path, isolation_level=None, check_same_thread=False
            )
            self._conn.row_factory = sqlite3.Row
            for statement in SCHEMA:
                self._conn.execute(statement)
        except (OSError, sqlite3.Error) as exc:
            raise StateBackendError(
                operation="open",
                message=f"Cannot open state database {self.db_path}: {exc}",
            ) from exc

    def __enter__(self) -> SQLiteBackend:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SQLiteBackend({self.db_path!r})"

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run statements in an immediate (write-locked) transaction."""
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise StateBackendError(operation=operation, message=str(exc)) from exc
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        else:
            self._conn.execute("COMMIT")

    def _execute(self, operation: str, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StateBackendError(operation=operation, message=str(exc)) from exc

    # === State ===

    def get_state_record(self, stack_name: str) -> StateRecord | None:
        """Return the raw state row for a stack."""
        row = self._execute(
            "get_state",
            "SELECT stack_name, state_data, updated_at FROM state WHERE stack_name = ?",
            (stack_name,),
        ).fetchone()
        if row is None:
            return None
        return StateRecord(**dict(row))

    def get_state(self, stack_name: str) -> Any | None:
        """Return the decoded state for a stack, or None.

        Undecodable state is logged and reported as absent.
        """
        record = self.get_state_record(stack_name)
        if record is None:
            return None
        try:
            return json.loads(record.state_data)
        except json.JSONDecodeError as exc:
            logger.error(f"Failed to parse state for {stack_name}: {exc}")
            return None

    def save_state(self, stack_name: str, state: Any) -> None:
        """Upsert the state for a stack; the last write wins."""
        try:
            state_data = json.dumps(state)
        except (TypeError, ValueError) as exc:
            raise StateBackendError(
                operation="save_state",
                message=f"State for {stack_name} is not JSON serializable: {exc}",
            ) from exc

        self._execute(
            "save_state",
            """
            INSERT INTO state (stack_name, state_data, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(stack_name) DO UPDATE SET
                state_data = excluded.state_data,
                updated_at = excluded.updated_at
            """,
            (stack_name, state_data, self._clock()),
        )

    # === Locks ===

    def acquire_lock(self, stack_name: str, holder: str, ttl_seconds: float) -> None:
        """Take the lock for a stack, purging an expired lock first.

        Raises:
            LockConflictError: If a non-expired lock exists
            StateBackendError: If the TTL is not a finite number of seconds,
                or the database operation fails
        """
        _check_ttl(ttl_seconds)
        try:
            with self._transaction("acquire_lock") as conn:
                row = conn.execute(
                    "SELECT stack_name, holder, acquired_at, ttl FROM locks "
                    "WHERE stack_name = ?",
                    (stack_name,),
                ).fetchone()

                now = self._clock()
                if row is not None:
                    existing = _lock_from_row(row, "acquire_lock")
                    if not existing.is_expired(now):
                        raise LockConflictError(
                            stack_name=stack_name,
                            holder=existing.holder,
                            age_seconds=existing.age_ms(now) // 1000,
                            ttl=existing.ttl,
                        )
                    logger.info(
                        f"Purging expired lock on {stack_name} held by {existing.holder}"
                    )
                    conn.execute("DELETE FROM locks WHERE stack_name = ?", (stack_name,))

                conn.execute(
                    "INSERT INTO locks (stack_name, holder, acquired_at, ttl) "
                    "VALUES (?, ?, ?, ?)",
                    (stack_name, holder, now, ttl_seconds),
                )
        except sqlite3.Error as exc:
            raise StateBackendError(operation="acquire_lock", message=str(exc)) from exc

        logger.debug(f"Lock on {stack_name} acquired by {holder} (TTL {ttl_seconds}s)")

    def release_lock(self, stack_name: str) -> None:
        """Delete the lock row for a stack, if any."""
        self._execute(
            "release_lock", "DELETE FROM locks WHERE stack_name = ?", (stack_name,)
        )
        logger.debug(f"Lock on {stack_name} released")

    def check_lock(self, stack_name: str) -> LockRecord | None:
        """Return the lock row for a stack as stored, expired or not."""
        row = self._execute(
            "check_lock",
            "SELECT stack_name, holder, acquired_at, ttl FROM locks WHERE stack_name = ?",
            (stack_name,),
        ).fetchone()
        if row is None:
            return None
        return _lock_from_row(row, "check_lock")

    # === Audit log ===

    def append_audit_log(self, stack_name: str, entry: Any) -> None:
        """Append an entry to the audit log for a stack."""
        try:
            entry_data = json.dumps(entry)
        except (TypeError, ValueError) as exc:
            raise StateBackendError(
                operation="append_audit_log",
                message=f"Audit entry for {stack_name} is not JSON serializable: {exc}",
            ) from exc

        self._execute(
            "append_audit_log",
            "INSERT INTO audit_log (stack_name, entry_data, created_at) VALUES (?, ?, ?)",
            (stack_name, entry_data, self._clock()),
        )

    def list_audit_log(self, stack_name: str) -> list[AuditEntry]:
        """Return the audit entries for a stack in insertion order."""
        rows = self._execute(
            "list_audit_log",
            "SELECT id, stack_name, entry_data, created_at FROM audit_log "
            "WHERE stack_name = ? ORDER BY id",
            (stack_name,),
        ).fetchall()
        return [
            AuditEntry(
                id=row["id"],
                stack_name=row["stack_name"],
                entry=json.loads(row["entry_data"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


def _check_ttl(ttl_seconds: object) -> None:
    """Reject TTLs that are not a finite number of seconds."""
    if (
        isinstance(ttl_seconds, bool)
        or not isinstance(ttl_seconds, (int, float))
        or not math.isfinite(ttl_seconds)
    ):
        raise StateBackendError(
            operation="acquire_lock",
            message=f"Lock TTL must be a finite number of seconds, got {ttl_seconds!r}",
        )


def _lock_from_row(row: sqlite3.Row, operation: str) -> LockRecord:
    try:
        return LockRecord(**dict(row))
    except ValidationError as exc:
        raise StateBackendError(
            operation=operation,
            message=f"Invalid lock row for {row['stack_name']}: {exc}",
        ) from exc
