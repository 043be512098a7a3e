"""
Read-only query helpers composed over a LogStore.

LogQuery is an immutable builder: every method returns a new query with
one more predicate, and nothing touches the store until a terminal method
(``all``, ``count``, ``first``, ``exists``, iteration) runs.

Example:
    >>> user_logs = LogQuery(store, owner=OwnerRef("User", 1))
    >>> user_logs.by_level("error").recent(5).all()
    >>> user_logs.with_keys("email", "sms").count()
    >>> user_logs.in_range(start, end).by_category("payment").first()
"""

from datetime import datetime
from typing import Iterator, List, Optional, Union

from chainlog.core.exceptions.custom_exceptions import ValidationError
from chainlog.models.log_entry import LogEntry, LogLevel, OwnerRef
from chainlog.storage.base import LogFilter, LogStore


class LogQuery:
    """
    Chainable, lazily evaluated query over log entries.

    Args:
        store: Store to read from
        owner: Restrict to one owner (None queries every owner)
        where: Starting filter
    """

    def __init__(
        self,
        store: LogStore,
        owner: Optional[OwnerRef] = None,
        where: Optional[LogFilter] = None,
    ):
        self._store = store
        self._where = where or LogFilter()
        if owner is not None:
            self._where = self._where.with_changes(owner=owner)

    @property
    def filter(self) -> LogFilter:
        return self._where

    def _refine(self, **changes) -> "LogQuery":
        return LogQuery(self._store, where=self._where.with_changes(**changes))

    # -- predicates --------------------------------------------------------

    def by_level(self, level: Union[LogLevel, str]) -> "LogQuery":
        return self._refine(level=LogLevel.parse(level))

    def by_status(self, status: str) -> "LogQuery":
        return self._refine(status=status)

    def by_category(self, category: str) -> "LogQuery":
        return self._refine(category=category)

    def by_chain(self, log_chain: str) -> "LogQuery":
        return self._refine(log_chain=log_chain)

    def by_owner_type(self, owner_type: str) -> "LogQuery":
        return self._refine(owner_type=owner_type)

    def with_data(self) -> "LogQuery":
        """Entries whose ``data`` field is present and non-empty."""
        return self._refine(has_data=True)

    def with_keys(self, *keys: str) -> "LogQuery":
        """
        Entries whose metadata contains every key at any depth.

        Keys are matched independently: ``with_keys("email", "sms")``
        matches an entry with ``email`` under one object and ``sms`` under
        another.
        """
        if not keys:
            raise ValidationError(
                "with_keys needs at least one key", error_code="NO_KEYS_GIVEN"
            )
        return self._refine(keys=tuple(self._where.keys) + tuple(keys))

    def in_range(self, start: datetime, end: datetime) -> "LogQuery":
        """Entries created between ``start`` and ``end``, both inclusive."""
        return self._refine(created_from=start, created_to=end)

    def since(self, start: datetime) -> "LogQuery":
        return self._refine(created_from=start)

    def before(self, moment: datetime) -> "LogQuery":
        return self._refine(created_before=moment)

    def recent(self, limit: int = 10) -> "LogQuery":
        """Most recent ``limit`` entries, newest first."""
        return self._refine(order="desc", limit=limit)

    newest = recent

    def oldest(self, limit: int = 10) -> "LogQuery":
        return self._refine(order="asc", limit=limit)

    def chronological(self) -> "LogQuery":
        return self._refine(order="asc")

    def error_logs(self) -> "LogQuery":
        return self.by_level(LogLevel.ERROR)

    def warn_logs(self) -> "LogQuery":
        return self.by_level(LogLevel.WARN)

    def info_logs(self) -> "LogQuery":
        return self.by_level(LogLevel.INFO)

    def debug_logs(self) -> "LogQuery":
        return self.by_level(LogLevel.DEBUG)

    # -- terminals ---------------------------------------------------------

    def all(self) -> List[LogEntry]:
        return self._store.query(self._where)

    def count(self) -> int:
        return self._store.count(self._where)

    def first(self) -> Optional[LogEntry]:
        limit = 1 if self._where.limit is None else min(1, self._where.limit)
        entries = self._store.query(self._where.with_changes(limit=limit))
        return entries[0] if entries else None

    def exists(self) -> bool:
        return self.first() is not None

    def owners(self) -> List[OwnerRef]:
        return self._store.distinct_owners(self._where)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.all())

    def __len__(self) -> int:
        return self.count()

    def __repr__(self) -> str:
        return f"LogQuery({self._where!r})"
