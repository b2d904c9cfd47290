"""
Relational sink for the content indexer.

This module owns the single SQLite connection the projector writes
through, and the DDL of the projected tables:
- content_cards: one row per content card, soft-deleted on removal
- permissions: one row per permission grant, soft-deleted on removal

The tables are a materialized view of the chain. They can be rebuilt by
replaying blocks from genesis (see tools/replay.py).

Invariants:
    - One long-lived connection per sink, opened by connect(), released by close()
    - Autocommit: every execute() is one statement and one transaction
    - With no live connection every call is a silent no-op
    - External strings only ever reach SQL as bound parameters

How to change safely:
    - Column names, types and unique keys are consumed downstream; only add
    - Keep every DDL statement idempotent (IF NOT EXISTS)

Table schema:
    content_cards:
        - id INTEGER PRIMARY KEY
        - content_card_id TEXT UNIQUE
        - subject_account TEXT
        - hash, url, type, description, content_key, storage_data TEXT
        - block_num INTEGER, block_time TIMESTAMP, trx_id TEXT
        - operation_type SMALLINT
        - is_removed BOOLEAN DEFAULT FALSE
        - created_at TIMESTAMP

    permissions:
        - id INTEGER PRIMARY KEY
        - permission_id TEXT UNIQUE
        - subject_account, operator_account TEXT
        - permission_type TEXT, object_id TEXT, content_key TEXT
        - block_num INTEGER, block_time TIMESTAMP, trx_id TEXT
        - operation_type SMALLINT
        - is_removed BOOLEAN DEFAULT FALSE
        - created_at TIMESTAMP
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from ..errors import SchemaBootstrapError, SinkConnectionError

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS content_cards (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        content_card_id VARCHAR(64) NOT NULL,
        subject_account VARCHAR(32) NOT NULL,
        hash VARCHAR(256),
        url TEXT,
        type VARCHAR(64),
        description TEXT,
        content_key TEXT,
        storage_data TEXT,
        block_num BIGINT NOT NULL,
        block_time TIMESTAMP NOT NULL,
        trx_id VARCHAR(64),
        operation_type SMALLINT NOT NULL,
        is_removed BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (content_card_id)
    );

    CREATE INDEX IF NOT EXISTS idx_cc_subject ON content_cards(subject_account);
    CREATE INDEX IF NOT EXISTS idx_cc_block_time ON content_cards(block_time DESC);
    CREATE INDEX IF NOT EXISTS idx_cc_type ON content_cards(type);
    CREATE INDEX IF NOT EXISTS idx_cc_is_removed ON content_cards(is_removed);

    CREATE TABLE IF NOT EXISTS permissions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        permission_id VARCHAR(96) NOT NULL,
        subject_account VARCHAR(32) NOT NULL,
        operator_account VARCHAR(32) NOT NULL,
        permission_type VARCHAR(64),
        object_id VARCHAR(32),
        content_key TEXT,
        block_num BIGINT NOT NULL,
        block_time TIMESTAMP NOT NULL,
        trx_id VARCHAR(64),
        operation_type SMALLINT NOT NULL,
        is_removed BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (permission_id)
    );

    CREATE INDEX IF NOT EXISTS idx_perm_subject ON permissions(subject_account);
    CREATE INDEX IF NOT EXISTS idx_perm_operator ON permissions(operator_account);
    CREATE INDEX IF NOT EXISTS idx_perm_object ON permissions(object_id);
    CREATE INDEX IF NOT EXISTS idx_perm_block_time ON permissions(block_time DESC);
    CREATE INDEX IF NOT EXISTS idx_perm_is_removed ON permissions(is_removed);
"""

TABLES = ("content_cards", "permissions")


class RelationalSink:
    """Statement executor over one persistent SQLite connection.

    Thread safety:
        Not thread-safe. The sink is owned by the projector for the whole
        session and used from a single thread.

    Example:
        >>> with RelationalSink("/var/lib/indexer/content.db") as sink:
        ...     sink.create_schema()
        ...     sink.execute("UPDATE content_cards SET is_removed = TRUE WHERE content_card_id = ?", ("1.7.3",))
    """

    def __init__(
        self,
        database: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the sink.

        Args:
            database: SQLite file path, or ":memory:"
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.database = database
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        """Open the connection.

        Raises:
            SinkConnectionError: If the database cannot be opened
        """
        if self._conn is not None:
            return

        try:
            if self.database != ":memory:":
                Path(self.database).parent.mkdir(parents=True, exist_ok=True)

            conn = sqlite3.connect(
                self.database,
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit, one statement per write
            )
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode and self.database != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Relational store connection failed: {e}")
            raise SinkConnectionError(
                f"Failed to open relational store at {self.database}: {e}",
                database=self.database,
            ) from e

        self._conn = conn
        logger.info("Relational store connection successful", extra={"database": self.database})

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        if self._conn is None:
            return
        try:
            self._conn.close()
        except sqlite3.Error as e:
            logger.warning(f"Error closing relational store: {e}")
        self._conn = None
        logger.info("Relational store connection closed")

    def __enter__(self) -> RelationalSink:
        self.connect()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def create_schema(self) -> None:
        """Create tables and indexes if they don't exist.

        Raises:
            SchemaBootstrapError: If not connected or the DDL fails
        """
        if self._conn is None:
            raise SchemaBootstrapError("Cannot create tables: relational store not connected")
        try:
            self._conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            logger.error("Failed to create tables")
            raise SchemaBootstrapError(f"Failed to create tables: {e}") from e
        logger.info("Relational tables created/verified")

    def escape(self, literal: Any) -> Any:
        """Render a value as a quoted SQL literal.

        Strings are single-quoted with embedded quotes doubled; None renders
        as NULL and integers as themselves. Without a live connection the
        input is returned unchanged.
        """
        if self._conn is None:
            return literal
        if literal is None:
            return "NULL"
        if isinstance(literal, bool):
            return "TRUE" if literal else "FALSE"
        if isinstance(literal, int):
            return str(literal)
        return "'" + str(literal).replace("'", "''") + "'"

    def render(self, statement: str, params: Sequence[Any] = ()) -> str:
        """Inline bound parameters into a statement, for logging only."""
        pieces = statement.split("?")
        if len(pieces) - 1 != len(params):
            return statement
        out = [pieces[0]]
        for value, piece in zip(params, pieces[1:]):
            out.append(str(self.escape(value)))
            out.append(piece)
        return "".join(out)

    def execute(self, statement: str, params: Sequence[Any] = ()) -> bool:
        """Execute one statement.

        Args:
            statement: SQL with ``?`` placeholders
            params: Bound parameter values

        Returns:
            True on success; False on failure or when not connected
        """
        if self._conn is None:
            return False

        try:
            self._conn.execute(statement, tuple(params))
        except sqlite3.Error as e:
            logger.error(f"SQLite error: {e}")
            logger.error(f"SQL: {self.render(statement, params)}")
            return False
        return True

    def query(self, statement: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a read statement and return all rows ([] when not connected)."""
        if self._conn is None:
            return []
        cursor = self._conn.execute(statement, tuple(params))
        return cursor.fetchall()

    def get_stats(self) -> dict[str, int]:
        """Row counts per projected table, plus soft-deleted counts."""
        stats: dict[str, int] = {}
        if self._conn is None:
            return stats
        for table in TABLES:
            row = self._conn.execute(
                f"SELECT COUNT(*), COALESCE(SUM(is_removed), 0) FROM {table}"
            ).fetchone()
            stats[table] = row[0]
            stats[f"{table}_removed"] = row[1]
        return stats
