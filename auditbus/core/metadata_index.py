"""Metadata index of ingested events, backed by SQLite.

Design:
- One row per event, keyed by ``event_id``.  Writes are upserts, so
  re-running an ingestion yields the same observable row.
- Secondary orderings by (entity_id, ts) and (author, ts), both ascending.
- WAL journal mode; a fresh connection per call so concurrent workflow
  instances can share one index.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol, runtime_checkable

from auditbus.core.errors import ConstraintViolation, PermissionDenied, StoreUnavailable
from auditbus.models.records import IndexRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_EVENTS = """
CREATE TABLE IF NOT EXISTS audit_events (
    event_id     TEXT PRIMARY KEY CHECK (event_id <> ''),
    entity_type  TEXT NOT NULL,
    entity_id    TEXT NOT NULL,
    operation    TEXT NOT NULL,
    s3_key       TEXT NOT NULL DEFAULT '',
    author       TEXT NOT NULL,
    ts           INTEGER NOT NULL
);
"""

_CREATE_IDX_ENTITY = """
CREATE INDEX IF NOT EXISTS search_by_entity_id ON audit_events(entity_id, ts);
"""

_CREATE_IDX_AUTHOR = """
CREATE INDEX IF NOT EXISTS search_by_author ON audit_events(author, ts);
"""

_COLUMNS = "event_id, entity_type, entity_id, operation, s3_key, author, ts"


@runtime_checkable
class MetadataIndex(Protocol):
    """Capability interface the Ingestion Workflow depends on."""

    def put_record(self, record: IndexRecord) -> None:
        """Write one record.  Raises ``StoreUnavailable`` or ``ConstraintViolation``."""
        ...

    def get(self, event_id: str) -> IndexRecord | None:
        """Point lookup by event id."""
        ...


class SqliteMetadataIndex:
    """SQLite implementation of the metadata index.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    timeout:
        Seconds to wait on a locked database before giving up.
    """

    def __init__(self, db_path: Path | str, *, timeout: float = 5.0) -> None:
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path), timeout=self._timeout, check_same_thread=False
        )
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _session(self, action: str) -> Iterator[sqlite3.Connection]:
        """Open a connection and translate sqlite errors to store errors."""
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Index unavailable to {action}: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError as exc:
            raise ConstraintViolation(f"Index rejected {action}: {exc}") from exc
        except sqlite3.OperationalError as exc:
            if "readonly" in str(exc).lower():
                raise PermissionDenied(f"Index is read-only, cannot {action}: {exc}") from exc
            raise StoreUnavailable(f"Index unavailable to {action}: {exc}") from exc
        except sqlite3.DatabaseError as exc:
            raise StoreUnavailable(f"Index unavailable to {action}: {exc}") from exc
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._session("initialize schema") as conn:
            conn.execute(_CREATE_EVENTS)
            conn.execute(_CREATE_IDX_ENTITY)
            conn.execute(_CREATE_IDX_AUTHOR)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def put_record(self, record: IndexRecord) -> None:
        """Insert or replace the record for ``record.event_id``."""
        with self._session(f"write record {record.event_id}") as conn:
            conn.execute(
                f"""
                INSERT INTO audit_events ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(event_id) DO UPDATE SET
                    entity_type = excluded.entity_type,
                    entity_id   = excluded.entity_id,
                    operation   = excluded.operation,
                    s3_key      = excluded.s3_key,
                    author      = excluded.author,
                    ts          = excluded.ts
                """,
                (
                    record.event_id,
                    record.entity_type,
                    record.entity_id,
                    record.operation,
                    record.s3_key,
                    record.author,
                    record.ts,
                ),
            )
        logger.debug("SqliteMetadataIndex: wrote record %s", record.event_id)

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    def get(self, event_id: str) -> IndexRecord | None:
        """Return the record for *event_id*, or None."""
        with self._session(f"read record {event_id}") as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM audit_events WHERE event_id = ?",
                (event_id,),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def query_by_entity(
        self,
        entity_id: str,
        *,
        since: int | None = None,
        until: int | None = None,
        limit: int | None = None,
    ) -> list[IndexRecord]:
        """Return records for an entity, ascending on ts.

        *since* and *until* are inclusive epoch-millisecond bounds.
        """
        return self._range_query("entity_id", entity_id, since, until, limit)

    def query_by_author(
        self,
        author: str,
        *,
        since: int | None = None,
        until: int | None = None,
        limit: int | None = None,
    ) -> list[IndexRecord]:
        """Return records written by *author*, ascending on ts."""
        return self._range_query("author", author, since, until, limit)

    def count(self) -> int:
        """Return the number of indexed events."""
        with self._session("count records") as conn:
            (total,) = conn.execute("SELECT COUNT(*) FROM audit_events").fetchone()
        return total

    def _range_query(
        self,
        column: str,
        value: str,
        since: int | None,
        until: int | None,
        limit: int | None,
    ) -> list[IndexRecord]:
        sql = f"SELECT {_COLUMNS} FROM audit_events WHERE {column} = ?"
        params: list[object] = [value]
        if since is not None:
            sql += " AND ts >= ?"
            params.append(since)
        if until is not None:
            sql += " AND ts <= ?"
            params.append(until)
        sql += " ORDER BY ts ASC, event_id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._session(f"query by {column}") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row: tuple) -> IndexRecord:
        """Convert a SQLite row tuple to an IndexRecord."""
        event_id, entity_type, entity_id, operation, s3_key, author, ts = row
        return IndexRecord(
            event_id=event_id,
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            s3_key=s3_key,
            author=author,
            ts=ts,
        )
