"""Tests for visitor ledger backends."""
import os
import uuid
from datetime import datetime, timezone

import pytest

from chat_relay.config import RelayConfig
from chat_relay.errors import LedgerFailure
from chat_relay.ledger import (
    MemoryVisitorLedger, SqlVisitorLedger, VisitorRecord, create_ledger, ledger_timestamp,
)
from chat_relay.ledger.sql_visitor_ledger import metadata

MONGODB_URI = os.environ.get("MONGODB_CONNECTION")


@pytest.fixture(params=["memory", "sql"])
def any_ledger(request):
    if request.param == "memory":
        return MemoryVisitorLedger()
    return SqlVisitorLedger("sqlite://")


def test_ledger_timestamp_format():
    moment = datetime(2024, 3, 9, 7, 5, 1, tzinfo=timezone.utc)
    assert ledger_timestamp(moment) == "2024-03-09 07:05:01"


@pytest.mark.asyncio
async def test_insert_and_list(any_ledger):
    first = await any_ledger.insert("u1", "s1", 1, "2024-01-01 10:00:00")
    second = await any_ledger.insert("u2", "s2", 2, "2024-01-01 10:00:05")

    assert second == first + 1
    records = await any_ledger.list_all()
    assert records == [
        VisitorRecord(id=first, user_id="u1", session_id="s1", count=1, time="2024-01-01 10:00:00"),
        VisitorRecord(id=second, user_id="u2", session_id="s2", count=2, time="2024-01-01 10:00:05"),
    ]


@pytest.mark.asyncio
async def test_remove_by_session(any_ledger):
    await any_ledger.insert("u1", "s1", 1, "2024-01-01 10:00:00")
    await any_ledger.insert("u1", "s2", 2, "2024-01-01 10:00:01")

    await any_ledger.remove("s1")
    assert [r.session_id for r in await any_ledger.list_all()] == ["s2"]

    # Unknown and repeated removals are no-ops
    await any_ledger.remove("s1")
    await any_ledger.remove("nope")
    assert [r.session_id for r in await any_ledger.list_all()] == ["s2"]


@pytest.mark.asyncio
async def test_ids_are_not_reused_after_remove(any_ledger):
    first = await any_ledger.insert("u1", "s1", 1, "2024-01-01 10:00:00")
    await any_ledger.remove("s1")
    second = await any_ledger.insert("u1", "s2", 1, "2024-01-01 10:00:01")
    assert second > first


@pytest.mark.asyncio
async def test_sql_errors_become_ledger_failures():
    ledger = SqlVisitorLedger("sqlite://")
    metadata.drop_all(ledger._engine)

    with pytest.raises(LedgerFailure) as exc_info:
        await ledger.insert("u1", "s1", 1, "2024-01-01 10:00:00")
    assert exc_info.value.operation == "insert"
    assert exc_info.value.session_id == "s1"

    with pytest.raises(LedgerFailure):
        await ledger.remove("s1")
    with pytest.raises(LedgerFailure):
        await ledger.list_all()


@pytest.mark.asyncio
async def test_sql_ledger_file_database(tmp_path):
    url = f"sqlite:///{tmp_path / 'visitors.db'}"
    ledger = SqlVisitorLedger(url)
    await ledger.insert("u1", "s1", 1, "2024-01-01 10:00:00")
    await ledger.close()

    reopened = SqlVisitorLedger(url)
    assert [r.user_id for r in await reopened.list_all()] == ["u1"]
    await reopened.close()


def test_create_ledger_backends():
    assert create_ledger(RelayConfig(ledger="none")) is None
    assert isinstance(create_ledger(RelayConfig(ledger="memory")), MemoryVisitorLedger)
    assert isinstance(create_ledger(RelayConfig(ledger="sql")), SqlVisitorLedger)


def test_create_ledger_mongodb_requires_uri():
    with pytest.raises(ValueError) as exc_info:
        create_ledger(RelayConfig(ledger="mongodb"))
    assert "MONGODB_CONNECTION" in str(exc_info.value)


@pytest.mark.skipif(not MONGODB_URI, reason="MONGODB_CONNECTION not set")
@pytest.mark.asyncio
async def test_mongodb_ledger_roundtrip():
    from chat_relay.ledger import MongoDBVisitorLedger

    db_name = "test_chat_relay"
    collection = f"visitors_test_{uuid.uuid4().hex[:8]}"
    ledger = MongoDBVisitorLedger(mongo_uri=MONGODB_URI, mongo_db=db_name, mongo_collection=collection)
    try:
        first = await ledger.insert("u1", "s1", 1, "2024-01-01 10:00:00")
        second = await ledger.insert("u2", "s2", 2, "2024-01-01 10:00:01")
        assert second == first + 1

        await ledger.remove("s1")
        records = await ledger.list_all()
        assert [(r.id, r.session_id) for r in records] == [(second, "s2")]
    finally:
        await ledger._client[db_name].drop_collection(collection)
        await ledger._client[db_name].drop_collection(f"{collection}_counters")
        await ledger.close()
