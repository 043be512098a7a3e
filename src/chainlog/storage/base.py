"""
Log store contract and shared filter semantics.

A LogStore is the persistence collaborator behind every EntityLogger. The
library only relies on the primitives declared here; the physical storage
engine, schema migrations and JSON column choices belong to the store
implementation.

Classes:
    LogFilter: Immutable query/delete predicate with ordering and limit
    LogStore: Abstract base class for store implementations

Ordering:
    Entries are ordered by ``created_at`` and then by ``id``; ``desc``
    returns the most recent first, with the higher id winning ties.

Example:
    >>> recent_errors = store.query(
    ...     LogFilter(owner=OwnerRef("User", 1), level=LogLevel.ERROR, limit=5)
    ... )
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from chainlog.core.exceptions.custom_exceptions import ValidationError
from chainlog.models.log_entry import LogEntry, LogLevel, NewLogEntry, OwnerRef
from chainlog.models.metadata import extract, has_all_keys

ORDERS = ("desc", "asc")


def utc(moment: datetime) -> datetime:
    """Normalize a datetime to timezone-aware UTC; naive values are UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LogFilter:
    """
    Predicate over log entries plus ordering and limit.

    Every attribute left as None is ignored. ``created_from``/``created_to``
    bound an inclusive range; ``created_before`` is a strict upper bound
    used by retention. ``keys`` requires every key to be present somewhere
    in the entry metadata (deep-key match).

    Attributes:
        owner: Only entries of this owner
        owner_type: Only entries whose owner has this type
        level: Only entries at this level (missing levels read as info)
        status: Only entries with this status
        category: Only entries with this category
        log_chain: Only entries of this chain
        has_data: True for entries with a non-empty ``data`` field
        created_from: Inclusive lower bound on created_at
        created_to: Inclusive upper bound on created_at
        created_before: Strict upper bound on created_at
        keys: Metadata keys that must all be present at any depth
        exclude_ids: Entry ids never matched
        limit: Maximum number of entries returned
        order: "desc" (newest first) or "asc"
    """

    owner: Optional[OwnerRef] = None
    owner_type: Optional[str] = None
    level: Optional[LogLevel] = None
    status: Optional[str] = None
    category: Optional[str] = None
    log_chain: Optional[str] = None
    has_data: Optional[bool] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    created_before: Optional[datetime] = None
    keys: Tuple[str, ...] = ()
    exclude_ids: FrozenSet[int] = frozenset()
    limit: Optional[int] = None
    order: str = "desc"

    def __post_init__(self) -> None:
        if self.order not in ORDERS:
            raise ValidationError(
                f"order must be one of {ORDERS}",
                error_code="INVALID_ORDER",
                details={"order": self.order},
            )
        if self.limit is not None and self.limit < 0:
            raise ValidationError(
                "limit must not be negative",
                error_code="INVALID_LIMIT",
                details={"limit": self.limit},
            )
        if self.level is not None:
            object.__setattr__(self, "level", LogLevel.parse(self.level))
        for name in ("created_from", "created_to", "created_before"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, utc(value))
        object.__setattr__(self, "keys", tuple(self.keys))
        object.__setattr__(self, "exclude_ids", frozenset(self.exclude_ids))

    def with_changes(self, **changes) -> "LogFilter":
        return replace(self, **changes)

    @property
    def needs_metadata_scan(self) -> bool:
        """True when some predicate has to look inside entry metadata."""
        return any(
            value is not None
            for value in (
                self.level,
                self.status,
                self.category,
                self.log_chain,
                self.has_data,
            )
        ) or bool(self.keys)

    def matches(self, entry: LogEntry) -> bool:
        """Evaluate every predicate except ordering and limit."""
        if self.owner is not None and entry.owner != self.owner:
            return False
        if self.owner_type is not None and entry.owner_type != self.owner_type:
            return False
        if entry.id in self.exclude_ids:
            return False
        if self.created_from is not None and entry.created_at < self.created_from:
            return False
        if self.created_to is not None and entry.created_at > self.created_to:
            return False
        if self.created_before is not None and entry.created_at >= self.created_before:
            return False
        return self.matches_metadata(entry)

    def matches_metadata(self, entry: LogEntry) -> bool:
        """Evaluate only the metadata predicates."""
        tree = entry.metadata
        if self.level is not None and entry.log_level is not self.level:
            return False
        if self.status is not None and extract(tree, "status") != self.status:
            return False
        if self.category is not None and extract(tree, "category") != self.category:
            return False
        if self.log_chain is not None and extract(tree, "log_chain") != self.log_chain:
            return False
        if self.has_data is not None:
            data = tree.get("data")
            present = data is not None and not data.is_empty()
            if present != self.has_data:
                return False
        if self.keys and not has_all_keys(tree, self.keys):
            return False
        return True


def sort_entries(entries: Iterable[LogEntry], order: str = "desc") -> List[LogEntry]:
    """Order by created_at then id."""
    return sorted(
        entries,
        key=lambda entry: (entry.created_at, entry.id),
        reverse=(order == "desc"),
    )


def apply_window(entries: Sequence[LogEntry], where: LogFilter) -> List[LogEntry]:
    """Filter, order and limit an in-memory sequence of entries."""
    selected = sort_entries((e for e in entries if where.matches(e)), where.order)
    if where.limit is not None:
        selected = selected[: where.limit]
    return selected


class LogStore(ABC):
    """
    Abstract persistence collaborator for log entries.

    Implementations must be safe to call from multiple threads and must
    raise StoreError (never a driver exception) when an operation fails.
    Nothing is retried.
    """

    @abstractmethod
    def insert(self, entry: NewLogEntry) -> LogEntry:
        """Persist one entry, stamping id, created_at and updated_at."""
        pass

    @abstractmethod
    def insert_batch(self, entries: Sequence[NewLogEntry]) -> List[LogEntry]:
        """
        Persist several entries in one call.

        All-or-nothing where the backend supports it; implementations
        document any weaker guarantee.
        """
        pass

    @abstractmethod
    def insert_backdated(
        self,
        entry: NewLogEntry,
        created_at: datetime,
        updated_at: Optional[datetime] = None,
    ) -> LogEntry:
        """
        Administrative override: persist an entry with explicit timestamps.

        Only for importing or simulating historical data; never used by
        normal write traffic.
        """
        pass

    @abstractmethod
    def query(self, where: Optional[LogFilter] = None) -> List[LogEntry]:
        pass

    def count(self, where: Optional[LogFilter] = None) -> int:
        return len(self.query(where or LogFilter()))

    @abstractmethod
    def delete_where(
        self, owner: Optional[OwnerRef], where: Optional[LogFilter] = None
    ) -> int:
        """
        Delete matching entries and return how many were removed.

        ``owner=None`` deletes across every owner (administrative bulk
        deletion). Ordering and limit on ``where`` are ignored.
        """
        pass

    @abstractmethod
    def distinct_owners(self, where: Optional[LogFilter] = None) -> List[OwnerRef]:
        """Owners having at least one entry matching ``where``."""
        pass

    def close(self) -> None:
        """Release resources held by the store."""
        pass

    def __enter__(self) -> "LogStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
