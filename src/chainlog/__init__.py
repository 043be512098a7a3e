"""
ChainLog - Correlation-aware structured event logging for domain entities

ChainLog lets any domain entity (a user, an order, a device) carry its own
append-only stream of structured log entries. Entries emitted as part of
the same unit of work share a log chain id, so a whole workflow can be
read back as one story.

Key Features:
    - Structured metadata with level, audience, status, category and data
    - Per-owner correlation chains with automatic reuse and minting
    - Batch logging in a single store call
    - Block logging that records start, completion and failure
    - Deep-key metadata queries at any nesting depth
    - Age and count bounded retention with per-type policies
    - In-memory and SQLAlchemy backed stores

Modules:
    core: Configuration, diagnostics logging and exceptions
    models: LogEntry, OwnerRef and the metadata tree
    chain: Chain id cache with per-owner locking
    storage: LogStore contract and implementations
    loggable: EntityLogger capability and the ChainLog service
    query: Chainable query helpers
    retention: Retention manager and policies
    cli: Command-line interface tools

Example:
    >>> from chainlog import ChainLog
    >>> chainlog = ChainLog.from_settings()
    >>> order_logger = chainlog.for_owner(order)
    >>> order_logger.log("Payment captured", status="success", data={"amount": 42})
    >>> order_logger.logs.recent(5).all()
"""

__version__ = "0.1.0"
__description__ = (
    "Structured, correlation-aware event logging attachable to arbitrary "
    "domain entities, with chained workflows, deep metadata queries and "
    "bounded retention."
)

from chainlog.chain.cache import ChainCache
from chainlog.core.config.settings import Settings
from chainlog.core.logging.logger import get_logger
from chainlog.loggable.capability import BlockHandle, EntityLogger, LoggableConfig
from chainlog.loggable.service import ChainLog
from chainlog.models.log_entry import LogEntry, LogLevel, OwnerRef
from chainlog.models.metadata import MetadataTree
from chainlog.query.helpers import LogQuery
from chainlog.retention.manager import RetentionManager
from chainlog.storage.base import LogFilter, LogStore

__all__ = [
    "BlockHandle",
    "ChainCache",
    "ChainLog",
    "EntityLogger",
    "LogEntry",
    "LogFilter",
    "LogLevel",
    "LogQuery",
    "LogStore",
    "LoggableConfig",
    "MetadataTree",
    "OwnerRef",
    "RetentionManager",
    "Settings",
    "get_logger",
]
