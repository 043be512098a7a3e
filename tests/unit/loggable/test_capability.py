from datetime import timedelta

import pytest
from pydantic import ValidationError as SchemaError

from chainlog.core.exceptions.custom_exceptions import StoreError, ValidationError
from chainlog.loggable.capability import EntityLogger, LoggableConfig
from chainlog.models.log_entry import LogLevel, OwnerRef
from chainlog.retention.manager import RetentionManager
from chainlog.retention.policy import RetentionPolicy
from chainlog.storage.base import LogFilter


class ExplodingStore:
    """Store double whose writes always fail"""

    def __init__(self, inner, fail_on=("insert", "insert_batch")):
        self._inner = inner
        self._fail_on = fail_on

    def __getattr__(self, name):
        if name in self._fail_on:
            def fail(*args, **kwargs):
                raise StoreError("store down", details={"operation": name})

            return fail
        return getattr(self._inner, name)


class TestLog:
    def test_default_metadata(self, entity_logger):
        entry = entity_logger.log("Signed in")
        assert entry.owner == OwnerRef("User", 1)
        assert entry.message == "Signed in"
        assert entry.metadata.to_value() == {
            "log_level": "info",
            "visible_to": "admin",
            "log_chain": "chain-1",
        }

    def test_conventional_fields(self, entity_logger):
        entry = entity_logger.log(
            "Payment captured",
            log_level="warning",
            visible_to="user",
            status="success",
            category="billing",
            data={"amount": 42},
        )
        assert entry.log_level is LogLevel.WARN
        assert entry.visible_to == "user"
        assert entry.status == "success"
        assert entry.category == "billing"
        assert entry.data == {"amount": 42}

    def test_extra_metadata_merges_and_keywords_win(self, entity_logger):
        entry = entity_logger.log(
            "m",
            status="from-kwarg",
            metadata={"status": "from-metadata", "request_id": "r-1", "log_level": "debug"},
        )
        value = entry.metadata.to_value()
        assert value["status"] == "from-kwarg"
        assert value["request_id"] == "r-1"
        assert value["log_level"] == "debug"

    def test_metadata_must_be_a_mapping(self, entity_logger, memory_store):
        with pytest.raises(ValidationError):
            entity_logger.log("m", metadata=["not", "a", "mapping"])
        assert len(memory_store) == 0

    def test_invalid_level_writes_nothing(self, entity_logger, memory_store):
        with pytest.raises(ValidationError):
            entity_logger.log("m", log_level="loud")
        assert len(memory_store) == 0
        assert entity_logger.current_chain is None

    def test_chain_reuse_and_explicit_switch(self, entity_logger):
        m1 = entity_logger.log("m1")
        m2 = entity_logger.log("m2")
        m3 = entity_logger.log("m3", log_chain="X")
        m4 = entity_logger.log("m4")
        assert m1.log_chain == m2.log_chain == "chain-1"
        assert m3.log_chain == m4.log_chain == "X"

    def test_chain_from_metadata(self, entity_logger):
        entry = entity_logger.log("m", metadata={"log_chain": "from-meta"})
        assert entry.log_chain == "from-meta"
        assert entity_logger.current_chain == "from-meta"

    def test_blank_chain_falls_back(self, entity_logger):
        entity_logger.log("m1", log_chain="kept")
        assert entity_logger.log("m2", log_chain="  ").log_chain == "kept"

    def test_reset_chain_mints_new_one(self, entity_logger):
        assert entity_logger.log("m1").log_chain == "chain-1"
        entity_logger.reset_chain()
        assert entity_logger.current_chain is None
        assert entity_logger.log("m2").log_chain == "chain-2"

    def test_none_message_becomes_empty(self, entity_logger):
        assert entity_logger.log(None).message == ""

    def test_per_host_defaults(self, user, memory_store, chain_cache):
        config = LoggableConfig(default_visible_to="user", default_log_level="debug")
        host_logger = EntityLogger(user, memory_store, chain_cache, config=config)
        entry = host_logger.log("m")
        assert entry.visible_to == "user"
        assert entry.log_level is LogLevel.DEBUG

    def test_invalid_config_level(self):
        with pytest.raises(SchemaError):
            LoggableConfig(default_log_level="loud")

    def test_store_failure_propagates(self, user, memory_store, chain_cache):
        failing = EntityLogger(user, ExplodingStore(memory_store), chain_cache)
        with pytest.raises(StoreError):
            failing.log("lost")


class TestLogBatch:
    def test_batch_shares_resolved_chain(self, entity_logger, memory_store):
        entries = entity_logger.log_batch(
            [
                {"message": "Step 1", "status": "success"},
                {"message": "Step 2", "level": "warn"},
                {"message": "Step 3", "data": {"n": 3}},
            ]
        )
        assert [e.message for e in entries] == ["Step 1", "Step 2", "Step 3"]
        assert {e.log_chain for e in entries} == {"chain-1"}
        assert entries[1].log_level is LogLevel.WARN
        assert len(memory_store) == 3

    def test_explicit_chain_switches_following_entries(self, entity_logger):
        entries = entity_logger.log_batch(
            [
                {"message": "1"},
                {"message": "2"},
                {"message": "3", "log_chain": "B"},
                {"message": "4"},
            ]
        )
        assert [e.log_chain for e in entries] == ["chain-1", "chain-1", "B", "B"]
        assert entity_logger.current_chain == "B"
        assert entity_logger.log("after").log_chain == "B"

    def test_first_entry_explicit_chain(self, entity_logger):
        entity_logger.log("before")
        entries = entity_logger.log_batch([{"message": "1", "log_chain": "A"}, {"message": "2"}])
        assert [e.log_chain for e in entries] == ["A", "A"]

    def test_batch_uses_one_store_call(self, entity_logger, memory_store, monkeypatch):
        calls = []
        original = memory_store.insert_batch

        def spy(drafts):
            calls.append(len(drafts))
            return original(drafts)

        monkeypatch.setattr(memory_store, "insert_batch", spy)
        monkeypatch.setattr(
            memory_store, "insert", lambda draft: pytest.fail("insert called")
        )
        entity_logger.log_batch([{"message": str(i)} for i in range(5)])
        assert calls == [5]

    def test_empty_batch(self, entity_logger, memory_store):
        assert entity_logger.log_batch([]) == []
        assert entity_logger.current_chain is None
        assert len(memory_store) == 0

    def test_malformed_entry_writes_nothing(self, entity_logger, memory_store):
        with pytest.raises(ValidationError):
            entity_logger.log_batch([{"message": "ok"}, {"mesage": "typo"}])
        with pytest.raises(ValidationError):
            entity_logger.log_batch([{"message": "ok"}, "not a mapping"])
        assert len(memory_store) == 0

    def test_failed_batch_keeps_cache(self, user, memory_store, chain_cache):
        chain_cache.set(OwnerRef.of(user), "before")
        failing = EntityLogger(user, ExplodingStore(memory_store), chain_cache)
        with pytest.raises(StoreError):
            failing.log_batch([{"message": "1"}, {"message": "2", "log_chain": "B"}])
        assert failing.current_chain == "before"


class TestLogBlock:
    def test_success(self, entity_logger, memory_store):
        def work(block):
            block.log("charged", data={"amount": 10})
            return "receipt"

        result = entity_logger.log_block("checkout", work, category="orders")

        assert result == "receipt"
        entries = memory_store.query(LogFilter(order="asc"))
        assert [e.message for e in entries] == [
            "checkout started",
            "charged",
            "checkout completed",
        ]
        assert {e.log_chain for e in entries} == {"chain-1"}
        assert entries[0].status == "started"
        assert entries[2].status == "completed"
        assert entries[0].category == "orders"
        assert entries[0].metadata.get("block").to_value() == "checkout"

    def test_failure_is_logged_and_reraised(self, entity_logger, memory_store):
        def work(block):
            block.log("about to fail")
            raise ValueError("card declined")

        with pytest.raises(ValueError, match="card declined"):
            entity_logger.log_block("checkout", work)

        entries = memory_store.query(LogFilter(order="asc"))
        assert [e.message for e in entries][:2] == ["checkout started", "about to fail"]
        failure = entries[-1]
        assert failure.message.startswith("checkout failed")
        assert failure.log_level is LogLevel.ERROR
        assert failure.status == "failed"
        assert failure.data == {
            "error_class": "ValueError",
            "error_message": "card declined",
        }
        assert len({e.log_chain for e in entries}) == 1
        assert not any(e.message == "checkout completed" for e in entries)

    def test_failure_entry_error_does_not_mask_original(
        self, user, memory_store, chain_cache, monkeypatch
    ):
        block_logger = EntityLogger(user, memory_store, chain_cache)
        original = memory_store.insert

        def insert(draft):
            if draft.message.startswith("job failed"):
                raise StoreError("store down")
            return original(draft)

        monkeypatch.setattr(memory_store, "insert", insert)

        def work(block):
            raise KeyError("missing")

        with pytest.raises(KeyError):
            block_logger.log_block("job", work)

    def test_block_chain_is_fixed(self, entity_logger):
        chains = []

        def work(block):
            # a concurrent explicit chain elsewhere must not leak into the block
            entity_logger.log("side", log_chain="other")
            chains.append(block.log("inside").log_chain)
            return block.chain

        block_chain = entity_logger.log_block("job", work)
        assert chains == [block_chain]
        assert block_chain == "chain-1"

    def test_explicit_block_chain(self, entity_logger):
        chain = entity_logger.log_block("job", lambda block: block.chain, log_chain="J")
        assert chain == "J"
        assert entity_logger.current_chain == "J"

    def test_context_manager_form(self, entity_logger, memory_store):
        with entity_logger.block("import") as block:
            block.log("row 1")
            block.log("row 2")

        assert [e.message for e in block.entries] == [
            "import started",
            "row 1",
            "row 2",
            "import completed",
        ]
        assert len(memory_store) == 4


class TestCleanupAndQueries:
    def test_logs_scoped_to_owner(self, entity_logger, memory_store, make_entry):
        memory_store.insert(make_entry(OwnerRef("User", 2), "someone else"))
        entity_logger.log("mine", log_level="error")
        assert [e.message for e in entity_logger.logs.all()] == ["mine"]
        assert entity_logger.query().error_logs().count() == 1

    def test_cleanup_uses_explicit_bounds(self, entity_logger, memory_store, clock, make_entry):
        owner = entity_logger.owner
        for days in range(1, 6):
            memory_store.insert_backdated(
                make_entry(owner, f"{days}d"), clock.now - timedelta(days=days)
            )
        deleted = entity_logger.cleanup(older_than=timedelta(days=2), keep_recent=1)
        assert deleted == 3
        assert {e.message for e in entity_logger.logs} == {"1d", "2d"}

    def test_cleanup_defaults_from_config(self, user, memory_store, chain_cache, clock, make_entry):
        config = LoggableConfig(retention=RetentionPolicy(older_than_days=1, keep_recent=0))
        host_logger = EntityLogger(
            user,
            memory_store,
            chain_cache,
            config=config,
            retention=RetentionManager(memory_store, clock=clock),
        )
        memory_store.insert_backdated(
            make_entry(host_logger.owner, "old"), clock.now - timedelta(days=3)
        )
        host_logger.log("new")
        assert host_logger.cleanup() == 1
        assert [e.message for e in host_logger.logs] == ["new"]


class TestBlockEntryFailures:
    def test_completion_entry_failure_keeps_result(
        self, user, memory_store, chain_cache, monkeypatch
    ):
        block_logger = EntityLogger(user, memory_store, chain_cache)
        original = memory_store.insert

        def insert(draft):
            if draft.message == "sync completed":
                raise StoreError("store down")
            return original(draft)

        monkeypatch.setattr(memory_store, "insert", insert)

        assert block_logger.log_block("sync", lambda block: 42) == 42
        assert [e.message for e in memory_store.query()] == ["sync started"]
