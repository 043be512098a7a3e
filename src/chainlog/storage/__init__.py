"""
chainlog Storage Module - Log Store Contract and Implementations.

Stores persist log entries and answer filtered queries. The library talks
to them only through the LogStore contract:

    insert(entry)                      -> LogEntry
    insert_batch(entries)              -> [LogEntry]   (atomic where possible)
    insert_backdated(entry, created)   -> LogEntry     (administrative only)
    query(filter)                      -> [LogEntry]
    count(filter)                      -> int
    delete_where(owner, filter)        -> deleted count
    distinct_owners(filter)            -> [OwnerRef]

Implementations:
    - InMemoryLogStore: thread-safe, process-lifetime storage
    - SQLAlchemyLogStore: any SQLAlchemy database, JSON metadata column

Failures surface as StoreError and are never retried.

Example:
    >>> from chainlog.storage import LogFilter, create_store
    >>> store = create_store("sqlite:///logs.db")
    >>> store.count(LogFilter(category="payment"))
"""

from chainlog.storage.base import LogFilter, LogStore
from chainlog.storage.factory import StoreFactory, create_store
from chainlog.storage.memory_store import InMemoryLogStore
from chainlog.storage.sql_store import SQLAlchemyLogStore, build_log_table

__all__ = [
    "InMemoryLogStore",
    "LogFilter",
    "LogStore",
    "SQLAlchemyLogStore",
    "StoreFactory",
    "build_log_table",
    "create_store",
]
