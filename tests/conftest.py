"""
Pytest configuration and fixtures for ChainLog tests
"""

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from chainlog.chain.cache import ChainCache
from chainlog.core.config.settings import Settings
from chainlog.loggable.capability import EntityLogger
from chainlog.loggable.service import ChainLog
from chainlog.models.log_entry import NewLogEntry, OwnerRef
from chainlog.models.metadata import MetadataTree
from chainlog.retention.manager import RetentionManager
from chainlog.storage.memory_store import InMemoryLogStore
from chainlog.storage.sql_store import SQLAlchemyLogStore

START = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock; every call returns the current moment."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class User:
    """Minimal host entity."""

    def __init__(self, id):
        self.id = id


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with an in-memory store"""
    return Settings(
        ENVIRONMENT="testing",
        DEBUG=True,
        DATABASE_URL="memory://",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def chain_ids():
    """Deterministic chain id factory: chain-1, chain-2, ..."""
    counter = count(1)
    return lambda: f"chain-{next(counter)}"


@pytest.fixture
def chain_cache(chain_ids) -> ChainCache:
    return ChainCache(id_factory=chain_ids)


@pytest.fixture
def memory_store(clock) -> InMemoryLogStore:
    return InMemoryLogStore(clock=clock)


@pytest.fixture
def sql_store(clock):
    store = SQLAlchemyLogStore(url="sqlite://", clock=clock)
    yield store
    store.close()


@pytest.fixture(params=["memory", "sql"])
def store(request, clock):
    """Every store implementation, for contract tests"""
    if request.param == "memory":
        yield InMemoryLogStore(clock=clock)
    else:
        sql = SQLAlchemyLogStore(url="sqlite://", clock=clock)
        yield sql
        sql.close()


@pytest.fixture
def user() -> User:
    return User(1)


@pytest.fixture
def owner() -> OwnerRef:
    return OwnerRef("User", 1)


@pytest.fixture
def entity_logger(user, memory_store, chain_cache, clock) -> EntityLogger:
    return EntityLogger(
        user,
        memory_store,
        chain_cache,
        retention=RetentionManager(memory_store, clock=clock),
    )


@pytest.fixture
def service(memory_store, chain_cache, clock) -> ChainLog:
    return ChainLog(store=memory_store, chain_cache=chain_cache, clock=clock)


@pytest.fixture
def make_entry():
    """Build an unsaved entry with the given top-level metadata fields"""

    def build(owner: OwnerRef, message: str = "", **metadata) -> NewLogEntry:
        return NewLogEntry(owner, message, MetadataTree.from_value(metadata))

    return build
