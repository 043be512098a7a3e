from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, insert, inspect
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from chainlog.core.exceptions.custom_exceptions import StoreError
from chainlog.models.log_entry import OwnerRef
from chainlog.storage.base import LogFilter
from chainlog.storage.sql_store import SQLAlchemyLogStore

ALICE = OwnerRef("User", 1)


def test_schema_is_created(sql_store):
    inspector = inspect(sql_store.engine)
    assert sql_store.table.name in inspector.get_table_names()
    columns = {column["name"] for column in inspector.get_columns(sql_store.table.name)}
    assert columns == {
        "id",
        "loggable_type",
        "loggable_id",
        "message",
        "metadata",
        "created_at",
        "updated_at",
    }


def test_custom_table_name(clock):
    store = SQLAlchemyLogStore(url="sqlite://", table_name="audit_logs", clock=clock)
    assert store.table.name == "audit_logs"
    store.close()


def test_entries_persist_across_store_instances(tmp_path, clock, make_entry):
    url = f"sqlite:///{tmp_path / 'logs.db'}"
    with SQLAlchemyLogStore(url=url, clock=clock) as first:
        first.insert(make_entry(ALICE, "persisted", log_chain="c1"))

    with SQLAlchemyLogStore(url=url, clock=clock) as second:
        [entry] = second.query(LogFilter(owner=ALICE))
    assert entry.message == "persisted"
    assert entry.log_chain == "c1"
    assert entry.created_at == clock.now


def test_shared_engine_is_not_disposed(clock):
    engine = create_engine("sqlite://")
    store = SQLAlchemyLogStore(engine=engine, clock=clock)
    store.close()
    with engine.connect():
        pass
    engine.dispose()


def test_batch_insert_is_atomic(sql_store, monkeypatch, make_entry):
    original = sql_store._insert_row
    calls = []

    def failing_insert(connection, values):
        calls.append(values)
        if len(calls) == 3:
            raise OperationalError("INSERT", {}, Exception("disk full"))
        return original(connection, values)

    monkeypatch.setattr(sql_store, "_insert_row", failing_insert)

    with pytest.raises(StoreError) as exc_info:
        sql_store.insert_batch([make_entry(ALICE, str(i)) for i in range(4)])

    assert exc_info.value.error_code == "STORE_INSERT_BATCH_ERROR"
    assert exc_info.value.details["operation"] == "insert_batch"
    assert isinstance(exc_info.value.__cause__, OperationalError)
    assert sql_store.count() == 0


def test_driver_errors_become_store_errors(sql_store, make_entry):
    sql_store.table.drop(sql_store.engine)
    with pytest.raises(StoreError) as exc_info:
        sql_store.insert(make_entry(ALICE, "lost"))
    assert exc_info.value.details["operation"] == "insert"


def test_reads_metadata_stored_as_json_text(sql_store):
    moment = datetime(2024, 1, 1)
    with sql_store.engine.begin() as connection:
        connection.execute(
            insert(sql_store.table).values(
                loggable_type="User",
                loggable_id="1",
                message="imported",
                metadata='{"log_level": "error", "log_chain": "legacy"}',
                created_at=moment,
                updated_at=moment,
            )
        )

    [entry] = sql_store.query(LogFilter(owner=ALICE))
    assert entry.log_chain == "legacy"
    assert entry.created_at == moment.replace(tzinfo=timezone.utc)


def test_delete_with_metadata_predicate(sql_store, make_entry):
    for i in range(3):
        sql_store.insert(make_entry(ALICE, f"err-{i}", log_level="error"))
    sql_store.insert(make_entry(ALICE, "fine", log_level="info"))

    assert sql_store.delete_where(ALICE, LogFilter(level="error")) == 3
    assert [e.message for e in sql_store.query()] == ["fine"]


def test_metadata_conditions_only_on_postgresql(sql_store):
    where = LogFilter(status="failed", category="billing", log_chain="c1", level="error")
    assert sql_store._metadata_conditions(where, "sqlite") == []

    conditions = sql_store._metadata_conditions(where, "postgresql")
    assert len(conditions) == 3
    compiled = [str(c.compile(dialect=postgresql.dialect())) for c in conditions]
    assert all("->>" in sql for sql in compiled)


def test_metadata_filters_with_limit_still_exact(sql_store, clock, make_entry):
    for i in range(6):
        sql_store.insert(make_entry(ALICE, f"e{i}", log_level="error" if i % 2 else "info"))
        clock.advance(seconds=1)
    errors = sql_store.query(LogFilter(owner=ALICE, level="error", limit=2))
    assert [e.message for e in errors] == ["e5", "e3"]
