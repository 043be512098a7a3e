"""
In-process log store.

Keeps entries in a list guarded by a re-entrant lock. Batches are fully
atomic: entries are stamped first and appended together under the lock,
so readers see either the whole batch or none of it. Used by the test
suite and by hosts that only need logs for the lifetime of the process.
"""

import itertools
import threading
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from chainlog.core.logging.logger import get_logger
from chainlog.models.log_entry import LogEntry, NewLogEntry, OwnerRef
from chainlog.storage.base import LogFilter, LogStore, apply_window, utc, utcnow

logger = get_logger(__name__)


class InMemoryLogStore(LogStore):
    """
    Thread-safe list-backed LogStore.

    Args:
        clock: Callable returning the current time (defaults to UTC now)
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._entries: List[LogEntry] = []
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def _stamp(
        self,
        entry: NewLogEntry,
        created_at: datetime,
        updated_at: Optional[datetime] = None,
    ) -> LogEntry:
        return LogEntry(
            id=next(self._ids),
            owner=entry.owner,
            message=entry.message,
            metadata=entry.metadata,
            created_at=utc(created_at),
            updated_at=utc(updated_at or created_at),
        )

    def insert(self, entry: NewLogEntry) -> LogEntry:
        with self._lock:
            stored = self._stamp(entry, self._clock())
            self._entries.append(stored)
        return stored

    def insert_batch(self, entries: Sequence[NewLogEntry]) -> List[LogEntry]:
        with self._lock:
            now = self._clock()
            stored = [self._stamp(entry, now) for entry in entries]
            self._entries.extend(stored)
        return stored

    def insert_backdated(
        self,
        entry: NewLogEntry,
        created_at: datetime,
        updated_at: Optional[datetime] = None,
    ) -> LogEntry:
        with self._lock:
            stored = self._stamp(entry, created_at, updated_at)
            self._entries.append(stored)
        logger.warning(
            "Inserted backdated log entry",
            owner=entry.owner.key,
            created_at=stored.created_at.isoformat(),
        )
        return stored

    def query(self, where: Optional[LogFilter] = None) -> List[LogEntry]:
        where = where or LogFilter()
        with self._lock:
            snapshot = list(self._entries)
        return apply_window(snapshot, where)

    def delete_where(
        self, owner: Optional[OwnerRef], where: Optional[LogFilter] = None
    ) -> int:
        where = where or LogFilter()
        where = where.with_changes(owner=owner or where.owner, limit=None)
        with self._lock:
            kept = [entry for entry in self._entries if not where.matches(entry)]
            deleted = len(self._entries) - len(kept)
            self._entries = kept
        return deleted

    def distinct_owners(self, where: Optional[LogFilter] = None) -> List[OwnerRef]:
        where = (where or LogFilter()).with_changes(limit=None)
        with self._lock:
            snapshot = list(self._entries)
        owners = {entry.owner for entry in snapshot if where.matches(entry)}
        return sorted(owners, key=lambda ref: (ref.owner_type, ref.owner_id))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
