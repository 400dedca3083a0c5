"""Audit store backends.

The forensic logger persists through the ``AuditStore`` interface. Two
backends are provided: an in-memory store for tests and single-process use,
and a SQLite store for durable audit trails.
"""

import json
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.audit.models import AuditEntry, AuditFilters
from src.errors import AuditPersistenceError

logger = structlog.get_logger(__name__)


class AuditStore(ABC):
    """Append-only persistence for audit entries.

    Implementations assign ``id`` and ``sequence`` atomically on append and
    never mutate stored entries.
    """

    @abstractmethod
    async def append(self, entry: AuditEntry) -> AuditEntry:
        """Persist an entry.

        Args:
            entry: Entry without id/sequence.

        Returns:
            The stored entry with id and sequence assigned.

        Raises:
            AuditPersistenceError: If the entry could not be persisted.
        """

    @abstractmethod
    async def query(self, filters: AuditFilters) -> list[AuditEntry]:
        """Return matching entries, newest first, paginated by the filters."""

    @abstractmethod
    async def count(self, filters: AuditFilters) -> int:
        """Count matching entries, ignoring pagination."""

    @abstractmethod
    async def last(self, domain: str) -> AuditEntry | None:
        """Return the most recently appended entry for a domain."""

    @abstractmethod
    async def history(self, domain: str) -> list[AuditEntry]:
        """Return every entry for a domain in append order."""

    async def close(self) -> None:  # noqa: B027
        """Release any held resources."""


def _matches(entry: AuditEntry, filters: AuditFilters) -> bool:
    if filters.domain is not None and entry.domain != filters.domain:
        return False
    if filters.actor_id is not None and entry.actor.id != filters.actor_id:
        return False
    if filters.operation_type is not None and entry.operation_type != filters.operation_type:
        return False
    if filters.approved is not None and entry.approved != filters.approved:
        return False
    return True


class InMemoryAuditStore(AuditStore):
    """Audit store backed by a process-local list."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._sequence = 0

    async def append(self, entry: AuditEntry) -> AuditEntry:
        self._sequence += 1
        stored = entry.model_copy(
            update={"id": uuid.uuid4().hex, "sequence": self._sequence}
        )
        self._entries.append(stored)
        return stored

    async def query(self, filters: AuditFilters) -> list[AuditEntry]:
        matching = [e for e in reversed(self._entries) if _matches(e, filters)]
        return matching[filters.offset : filters.offset + filters.limit]

    async def count(self, filters: AuditFilters) -> int:
        return sum(1 for e in self._entries if _matches(e, filters))

    async def last(self, domain: str) -> AuditEntry | None:
        for entry in reversed(self._entries):
            if entry.domain == domain:
                return entry
        return None

    async def history(self, domain: str) -> list[AuditEntry]:
        return [e for e in self._entries if e.domain == domain]


class SQLiteAuditStore(AuditStore):
    """SQLite-based audit store.

    Entries are stored as JSON documents alongside indexed columns for the
    fields audit queries filter on. ``sequence`` is the table's rowid, so
    append order survives restarts.

    Example:
        store = SQLiteAuditStore("data/audit.db")
        stored = await store.append(entry)
        entries = await store.query(AuditFilters(domain="example"))
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the audit store.

        Args:
            db_path: Path to the SQLite database, or ``:memory:``.
        """
        self.db_path = str(db_path)
        self._connection: aiosqlite.Connection | None = None
        self._logger = logger.bind(component="audit_store")

    async def initialize(self) -> None:
        """Open the database and create tables."""
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS audit_log (
                sequence INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                domain TEXT NOT NULL,
                operation_type TEXT NOT NULL,
                actor_id TEXT NOT NULL,
                approved INTEGER NOT NULL,
                timestamp TEXT NOT NULL,
                entry_json TEXT NOT NULL
            )
        """)
        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_domain ON audit_log(domain)
        """)
        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_actor ON audit_log(actor_id)
        """)
        await self._connection.commit()

        self._logger.info("audit_store_initialized", db_path=self.db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _conn(self) -> aiosqlite.Connection:
        await self.initialize()
        assert self._connection is not None
        return self._connection

    async def append(self, entry: AuditEntry) -> AuditEntry:
        entry_id = uuid.uuid4().hex
        try:
            db = await self._conn()
            cursor = await db.execute(
                """
                INSERT INTO audit_log
                (id, domain, operation_type, actor_id, approved, timestamp, entry_json)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry_id,
                    entry.domain,
                    entry.operation_type,
                    entry.actor.id,
                    1 if entry.approved else 0,
                    entry.timestamp.isoformat(),
                    entry.model_dump_json(exclude={"id", "sequence"}),
                ),
            )
            await db.commit()
        except (aiosqlite.Error, ValueError) as e:
            raise AuditPersistenceError(
                f"Failed to persist audit entry: {e}",
                details={"domain": entry.domain, "operation_type": entry.operation_type},
            ) from e

        return entry.model_copy(update={"id": entry_id, "sequence": cursor.lastrowid})

    def _where(self, filters: AuditFilters) -> tuple[str, list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []

        if filters.domain is not None:
            conditions.append("domain = ?")
            params.append(filters.domain)
        if filters.actor_id is not None:
            conditions.append("actor_id = ?")
            params.append(filters.actor_id)
        if filters.operation_type is not None:
            conditions.append("operation_type = ?")
            params.append(filters.operation_type)
        if filters.approved is not None:
            conditions.append("approved = ?")
            params.append(1 if filters.approved else 0)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return where, params

    async def query(self, filters: AuditFilters) -> list[AuditEntry]:
        db = await self._conn()
        where, params = self._where(filters)
        async with db.execute(
            f"SELECT * FROM audit_log {where} ORDER BY sequence DESC LIMIT ? OFFSET ?",
            (*params, filters.limit, filters.offset),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def count(self, filters: AuditFilters) -> int:
        db = await self._conn()
        where, params = self._where(filters)
        async with db.execute(
            f"SELECT COUNT(*) FROM audit_log {where}", params
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def last(self, domain: str) -> AuditEntry | None:
        db = await self._conn()
        async with db.execute(
            "SELECT * FROM audit_log WHERE domain = ? ORDER BY sequence DESC LIMIT 1",
            (domain,),
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_entry(row) if row else None

    async def history(self, domain: str) -> list[AuditEntry]:
        db = await self._conn()
        async with db.execute(
            "SELECT * FROM audit_log WHERE domain = ? ORDER BY sequence ASC",
            (domain,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    def _row_to_entry(self, row: aiosqlite.Row) -> AuditEntry:
        data = json.loads(row["entry_json"])
        data["id"] = row["id"]
        data["sequence"] = row["sequence"]
        return AuditEntry.model_validate(data)
