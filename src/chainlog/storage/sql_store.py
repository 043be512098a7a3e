"""
SQLAlchemy-backed log store.

Entries live in a single table with a polymorphic owner reference and a
JSON metadata column (JSONB on PostgreSQL). Owner, time range, ordering and
limit are pushed down to SQL; metadata predicates (level, status, category,
chain, data presence, deep keys) are evaluated with the same matcher the
in-memory store uses, so both stores answer queries identically.

Table layout:
    id             integer primary key
    loggable_type  owner type, not null
    loggable_id    owner id as text, not null
    message        text, default ""
    metadata       JSON / JSONB
    created_at     UTC timestamp, not null
    updated_at     UTC timestamp, not null

Atomicity:
    insert_batch runs every row inside one transaction, so on
    transactional engines (PostgreSQL, SQLite, MySQL/InnoDB) a batch is
    all-or-nothing. On engines without transactions (e.g. MySQL/MyISAM)
    a failure part-way leaves the rows inserted so far in place; the
    batch is then best-effort only.

Query cost:
    Without metadata predicates, LIMIT runs in SQL. With them (level,
    status, category, chain, data presence, deep keys) LIMIT is applied
    after the Python matcher, so the query reads every row left after the
    owner and time conditions: O(rows of the owner), or of the table for
    unscoped queries. On PostgreSQL status, category and chain are also
    narrowed with ``metadata->>field`` conditions. Scope queries by owner or
    time range on large tables.

Timestamps are stored as naive UTC and read back timezone-aware.

Example:
    >>> store = SQLAlchemyLogStore("sqlite:///logs.db")
    >>> entry = store.insert(NewLogEntry(OwnerRef("User", 1), "Signed in"))
"""

import json
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    create_engine,
    delete,
    insert,
    select,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from chainlog.core.config.settings import settings
from chainlog.core.exceptions.custom_exceptions import StoreError
from chainlog.core.logging.logger import get_logger
from chainlog.models.log_entry import LogEntry, NewLogEntry, OwnerRef
from chainlog.models.metadata import MetadataTree
from chainlog.storage.base import LogFilter, LogStore, utc, utcnow

logger = get_logger(__name__)

# keeps "IN (...)" lists under common driver parameter limits
DELETE_CHUNK_SIZE = 500


def build_log_table(metadata_obj: MetaData, name: str) -> Table:
    """Declare the log entry table on ``metadata_obj``."""
    return Table(
        name,
        metadata_obj,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("loggable_type", String(255), nullable=False),
        Column("loggable_id", String(255), nullable=False),
        Column("message", Text, nullable=False, default=""),
        Column("metadata", JSON().with_variant(JSONB(), "postgresql")),
        Column("created_at", DateTime, nullable=False),
        Column("updated_at", DateTime, nullable=False),
        Index(f"ix_{name}_owner", "loggable_type", "loggable_id"),
        Index(f"ix_{name}_created_at", "created_at"),
    )


def _to_db_time(moment: datetime) -> datetime:
    return utc(moment).replace(tzinfo=None)


class SQLAlchemyLogStore(LogStore):
    """
    LogStore on any database SQLAlchemy supports.

    Args:
        url: SQLAlchemy database URL (ignored when ``engine`` is given)
        engine: Existing engine to reuse
        table_name: Table holding the entries
        create_schema: Create the table and indexes if missing
        echo: Echo SQL statements
        clock: Callable returning the current time (defaults to UTC now)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        engine: Optional[Engine] = None,
        table_name: Optional[str] = None,
        create_schema: bool = True,
        echo: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._clock = clock
        self._owns_engine = engine is None
        self._engine = engine or self._create_engine(url or settings.DATABASE_URL, echo)
        self._metadata = MetaData()
        self.table = build_log_table(
            self._metadata, table_name or settings.LOG_TABLE_NAME
        )
        if create_schema:
            with self._wrap("create_schema"):
                self._metadata.create_all(self._engine)
        logger.info(
            "SQL log store ready",
            dialect=self._engine.dialect.name,
            table=self.table.name,
        )

    @staticmethod
    def _create_engine(url: str, echo: bool) -> Engine:
        if url.startswith("sqlite"):
            options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # one shared connection, otherwise each checkout sees an empty db
                options["poolclass"] = StaticPool
            return create_engine(url, echo=echo, future=True, **options)
        return create_engine(url, echo=echo, future=True, pool_pre_ping=True)

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def _wrap(self, operation: str, **details: Any) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error(
                "Log store operation failed",
                operation=operation,
                error=str(exc),
                **details,
            )
            raise StoreError(
                f"Log store {operation} failed: {exc}",
                error_code=f"STORE_{operation.upper()}_ERROR",
                details={"operation": operation, **details},
            ) from exc

    # -- row conversion --------------------------------------------------

    def _row_values(
        self,
        entry: NewLogEntry,
        created_at: datetime,
        updated_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        return {
            "loggable_type": entry.owner.owner_type,
            "loggable_id": entry.owner.owner_id,
            "message": entry.message or "",
            "metadata": entry.metadata.to_value(),
            "created_at": _to_db_time(created_at),
            "updated_at": _to_db_time(updated_at or created_at),
        }

    def _to_entry(self, row: Any) -> LogEntry:
        mapping = row._mapping
        raw = mapping["metadata"]
        if isinstance(raw, str):
            # rows written by hand into a TEXT column
            raw = json.loads(raw) if raw else None
        tree = MetadataTree.from_value(raw if raw is not None else {})
        return LogEntry(
            id=mapping["id"],
            owner=OwnerRef(mapping["loggable_type"], mapping["loggable_id"]),
            message=mapping["message"] or "",
            metadata=tree,
            created_at=utc(mapping["created_at"]),
            updated_at=utc(mapping["updated_at"]),
        )

    def _conditions(self, where: LogFilter) -> List[Any]:
        columns = self.table.c
        conditions = []
        if where.owner is not None:
            conditions.append(columns.loggable_type == where.owner.owner_type)
            conditions.append(columns.loggable_id == where.owner.owner_id)
        if where.owner_type is not None:
            conditions.append(columns.loggable_type == where.owner_type)
        if where.created_from is not None:
            conditions.append(columns.created_at >= _to_db_time(where.created_from))
        if where.created_to is not None:
            conditions.append(columns.created_at <= _to_db_time(where.created_to))
        if where.created_before is not None:
            conditions.append(columns.created_at < _to_db_time(where.created_before))
        if where.exclude_ids:
            conditions.append(columns.id.notin_(sorted(where.exclude_ids)))
        return conditions

    def _metadata_conditions(self, where: LogFilter, dialect_name: str) -> List[Any]:
        """
        Narrowing conditions on top-level metadata strings (PostgreSQL only).

        They only pre-filter rows; the Python matcher still decides.
        """
        if dialect_name != "postgresql":
            return []
        column = self.table.c.metadata
        conditions = []
        for field, value in (
            ("status", where.status),
            ("category", where.category),
            ("log_chain", where.log_chain),
        ):
            if value is not None:
                conditions.append(column[field].as_string() == value)
        return conditions

    def _select(self, where: LogFilter):
        columns = self.table.c
        conditions = self._conditions(where) + self._metadata_conditions(
            where, self._engine.dialect.name
        )
        statement = select(self.table).where(and_(true(), *conditions))
        if where.order == "desc":
            statement = statement.order_by(columns.created_at.desc(), columns.id.desc())
        else:
            statement = statement.order_by(columns.created_at.asc(), columns.id.asc())
        if where.limit is not None and not where.needs_metadata_scan:
            statement = statement.limit(where.limit)
        return statement

    # -- writes ------------------------------------------------------------

    def _insert_row(self, connection, values: Dict[str, Any]) -> int:
        result = connection.execute(insert(self.table).values(**values))
        return result.inserted_primary_key[0]

    def _stored(self, new_id: int, entry: NewLogEntry, values: Dict[str, Any]) -> LogEntry:
        return LogEntry(
            id=new_id,
            owner=entry.owner,
            message=values["message"],
            metadata=entry.metadata,
            created_at=utc(values["created_at"]),
            updated_at=utc(values["updated_at"]),
        )

    def insert(self, entry: NewLogEntry) -> LogEntry:
        values = self._row_values(entry, self._clock())
        with self._wrap("insert", owner=entry.owner.key):
            with self._engine.begin() as connection:
                new_id = self._insert_row(connection, values)
        return self._stored(new_id, entry, values)

    def insert_batch(self, entries: Sequence[NewLogEntry]) -> List[LogEntry]:
        if not entries:
            return []
        now = self._clock()
        rows = [self._row_values(entry, now) for entry in entries]
        with self._wrap("insert_batch", size=len(rows)):
            with self._engine.begin() as connection:
                ids = [self._insert_row(connection, values) for values in rows]
        return [
            self._stored(new_id, entry, values)
            for new_id, entry, values in zip(ids, entries, rows)
        ]

    def insert_backdated(
        self,
        entry: NewLogEntry,
        created_at: datetime,
        updated_at: Optional[datetime] = None,
    ) -> LogEntry:
        values = self._row_values(entry, created_at, updated_at)
        with self._wrap("insert_backdated", owner=entry.owner.key):
            with self._engine.begin() as connection:
                new_id = self._insert_row(connection, values)
        logger.warning(
            "Inserted backdated log entry",
            owner=entry.owner.key,
            created_at=utc(created_at).isoformat(),
        )
        return self._stored(new_id, entry, values)

    # -- reads -------------------------------------------------------------

    def query(self, where: Optional[LogFilter] = None) -> List[LogEntry]:
        where = where or LogFilter()
        with self._wrap("query"):
            with self._engine.connect() as connection:
                rows = connection.execute(self._select(where)).all()
        entries = [self._to_entry(row) for row in rows]
        if where.needs_metadata_scan:
            entries = [entry for entry in entries if where.matches_metadata(entry)]
            if where.limit is not None:
                entries = entries[: where.limit]
        return entries

    def delete_where(
        self, owner: Optional[OwnerRef], where: Optional[LogFilter] = None
    ) -> int:
        where = where or LogFilter()
        where = where.with_changes(owner=owner or where.owner, limit=None)
        if where.needs_metadata_scan:
            ids = [entry.id for entry in self.query(where)]
            if not ids:
                return 0
            deleted = 0
            with self._wrap("delete_where", count=len(ids)):
                with self._engine.begin() as connection:
                    for start in range(0, len(ids), DELETE_CHUNK_SIZE):
                        chunk = ids[start : start + DELETE_CHUNK_SIZE]
                        result = connection.execute(
                            delete(self.table).where(self.table.c.id.in_(chunk))
                        )
                        deleted += result.rowcount
            return deleted

        statement = delete(self.table).where(and_(true(), *self._conditions(where)))
        with self._wrap("delete_where"):
            with self._engine.begin() as connection:
                result = connection.execute(statement)
        return result.rowcount

    def distinct_owners(self, where: Optional[LogFilter] = None) -> List[OwnerRef]:
        where = (where or LogFilter()).with_changes(limit=None)
        if where.needs_metadata_scan:
            owners = {entry.owner for entry in self.query(where)}
        else:
            columns = self.table.c
            statement = (
                select(columns.loggable_type, columns.loggable_id)
                .where(and_(true(), *self._conditions(where)))
                .distinct()
            )
            with self._wrap("distinct_owners"):
                with self._engine.connect() as connection:
                    rows = connection.execute(statement).all()
            owners = {OwnerRef(owner_type, owner_id) for owner_type, owner_id in rows}
        return sorted(owners, key=lambda ref: (ref.owner_type, ref.owner_id))

    def close(self) -> None:
        if self._owns_engine:
            self._engine.dispose()
