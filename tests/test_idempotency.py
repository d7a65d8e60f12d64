"""Tests for the idempotency ledger."""

import pytest

from tts_vtex_bridge.db.models import IdempotencyRecord
from tts_vtex_bridge.db.repository import IdempotencyRepository
from tts_vtex_bridge.services.idempotency import IdempotencyService
from tts_vtex_bridge.utils.payload import create_payload_hash


@pytest.fixture
def idempotency(session_factory):
    return IdempotencyService(session_factory)


async def test_handler_runs_once(idempotency):
    calls = []

    async def handler():
        calls.append(1)

    assert await idempotency.register("key-1", {"a": 1}, handler) == "processed"
    assert await idempotency.register("key-1", {"a": 1}, handler) == "skipped"
    assert calls == [1]


async def test_ledger_stores_payload_hash(idempotency, session_factory):
    async def handler():
        return None

    await idempotency.register("key-1", {"b": 2, "a": 1}, handler)

    async with session_factory() as session:
        record = await session.get(IdempotencyRecord, "key-1")
    assert record.payload_hash == create_payload_hash({"a": 1, "b": 2})


async def test_failed_handler_leaves_key_free(idempotency):
    attempts = []

    async def failing():
        attempts.append("fail")
        raise RuntimeError("boom")

    async def succeeding():
        attempts.append("ok")

    with pytest.raises(RuntimeError):
        await idempotency.register("key-1", {}, failing)

    assert not await idempotency.already_processed("key-1")
    assert await idempotency.register("key-1", {}, succeeding) == "processed"
    assert attempts == ["fail", "ok"]


async def test_losing_a_race_reports_skipped(idempotency, session_factory):
    async def handler():
        # A concurrent delivery commits the same key while this handler runs
        async with session_factory() as session:
            await IdempotencyRepository(session).insert("key-1", "other")

    assert await idempotency.register("key-1", {}, handler) == "skipped"
    assert await idempotency.already_processed("key-1")
