"""Tests for SQLiteGateway."""

import asyncio
from contextlib import suppress

import pytest

from acl_docstore import AclBackend, TransactionConflictError
from acl_docstore.gateways import SQLiteGateway


@pytest.fixture
async def gw(tmp_path):
    gateway = SQLiteGateway(str(tmp_path / "docs.db"))
    yield gateway
    await gateway.close()


async def test_get_nonexistent(gw):
    assert await gw.get_document("r.k") is None


async def test_set_and_get(gw):
    await gw.set_document("r.k", {"a": True, "@@bucket": "r"})
    assert await gw.get_document("r.k") == {"a": True, "@@bucket": "r"}


async def test_overwrite(gw):
    await gw.set_document("r.k", {"a": True})
    await gw.set_document("r.k", {"b": True})
    assert await gw.get_document("r.k") == {"b": True}


async def test_delete(gw):
    await gw.set_document("r.k", {"a": True})
    await gw.delete_document("r.k")
    assert await gw.get_document("r.k") is None


async def test_get_all_preserves_order(gw):
    await gw.set_document("r.a", {"a": True})
    assert await gw.get_all(["r.b", "r.a"]) == [None, {"a": True}]


async def test_collections_are_isolated(tmp_path):
    path = str(tmp_path / "shared.db")
    acl = SQLiteGateway(path, collection="acl")
    other = SQLiteGateway(path, collection="other")
    try:
        await acl.set_document("r.k", {"a": True})
        assert await other.get_document("r.k") is None
        await other.clear()
        assert await acl.get_document("r.k") == {"a": True}
    finally:
        await acl.close()
        await other.close()


async def test_persists_across_connections(tmp_path):
    path = str(tmp_path / "durable.db")
    first = SQLiteGateway(path)
    await first.set_document("r.k", {"a": True})
    await first.close()

    second = SQLiteGateway(path)
    try:
        assert await second.get_document("r.k") == {"a": True}
    finally:
        await second.close()


async def test_db_path_from_env(tmp_path, monkeypatch):
    path = tmp_path / "env.db"
    monkeypatch.setenv("ACL_DOCSTORE_DB", str(path))
    gw = SQLiteGateway()
    try:
        await gw.set_document("r.k", {"a": True})
    finally:
        await gw.close()
    assert path.exists()


async def test_transaction_applies_writes(gw):
    await gw.set_document("r.old", {"x": True})

    async def fn(tx):
        await tx.get_all(["r.old"])
        tx.delete("r.old")
        tx.set("r.new", {"y": True})

    await gw.run_transaction(fn)
    assert await gw.get_all(["r.old", "r.new"]) == [None, {"y": True}]


async def test_transaction_error_discards_writes(gw):
    async def fn(tx):
        tx.set("r.k", {"y": True})
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await gw.run_transaction(fn)
    assert await gw.get_document("r.k") is None


async def test_transaction_retries_on_conflict(gw):
    attempts = 0

    async def fn(tx):
        nonlocal attempts
        attempts += 1
        (doc,) = await tx.get_all(["r.k"])
        if attempts == 1:
            await gw.set_document("r.k", {"other": True})
        tx.set("r.k", {**(doc or {}), "mine": True})

    await gw.run_transaction(fn)
    assert attempts == 2
    assert await gw.get_document("r.k") == {"other": True, "mine": True}


async def test_recreate_after_delete_is_a_conflict(gw):
    """Versions survive deletion, so delete + re-create is still detected."""
    await gw.set_document("r.k", {"a": True})
    attempts = 0

    async def fn(tx):
        nonlocal attempts
        attempts += 1
        await tx.get_all(["r.k"])
        if attempts == 1:
            await gw.delete_document("r.k")
            await gw.set_document("r.k", {"a": True})
        tx.set("r.other", {"b": True})

    await gw.run_transaction(fn)
    assert attempts == 2


async def test_transaction_gives_up(tmp_path):
    gw = SQLiteGateway(str(tmp_path / "conflict.db"), max_attempts=2)

    async def fn(tx):
        await tx.get_all(["r.k"])
        await gw.set_document("r.k", {"other": True})
        tx.set("r.k", {"mine": True})

    try:
        with pytest.raises(TransactionConflictError):
            await gw.run_transaction(fn)
        assert await gw.get_document("r.k") == {"other": True}
    finally:
        await gw.close()


# ── atomicity & cancellation ─────────────────────────────────


async def test_failed_write_rolls_back_whole_transaction(gw):
    await gw.set_document("r.a", {"old": True})

    async def fn(tx):
        await tx.get_all(["r.a"])
        tx.set("r.a", {"new": True})
        tx.set("r.b", {"b": True})
        tx.set("r.bad", {"x": {1, 2}})  # not JSON serializable

    with pytest.raises(TypeError):
        await gw.run_transaction(fn)
    assert await gw.get_all(["r.a", "r.b", "r.bad"]) == [{"old": True}, None, None]

    async def ok(tx):
        tx.set("r.c", {"c": True})

    await gw.run_transaction(ok)
    assert await gw.get_document("r.c") == {"c": True}


async def test_cancelled_commits_leave_gateway_usable(tmp_path):
    path = str(tmp_path / "cancel.db")
    gw = SQLiteGateway(path)

    def writer(i):
        async def fn(tx):
            tx.set(f"r.k{i}", {"a": True})
            tx.set(f"r.j{i}", {"a": True})

        return fn

    for i in range(100):
        with suppress(TimeoutError):
            await asyncio.wait_for(gw.run_transaction(writer(i)), timeout=(i % 4) * 0.0005)

    async def final(tx):
        tx.set("r.final", {"done": True})

    await gw.run_transaction(final)
    await gw.set_document("r.direct", {"done": True})
    await gw.close()

    reopened = SQLiteGateway(path)
    try:
        assert await reopened.get_document("r.final") == {"done": True}
        assert await reopened.get_document("r.direct") == {"done": True}
        for i in range(100):
            pair = await reopened.get_all([f"r.k{i}", f"r.j{i}"])
            assert pair in ([None, None], [{"a": True}, {"a": True}])
    finally:
        await reopened.close()


@pytest.mark.parametrize("yields", range(8))
async def test_cancelled_batch_is_all_or_nothing(tmp_path, yields):
    path = str(tmp_path / "batch.db")
    gw = SQLiteGateway(path)
    backend = AclBackend(gw)
    keys = [f"k{i}" for i in range(20)]
    batch = backend.begin()
    for key in keys:
        backend.add(batch, "r", key, "a")

    task = asyncio.create_task(backend.commit(batch))
    for _ in range(yields):
        await asyncio.sleep(0)
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
    await gw.close()

    reopened = SQLiteGateway(path)
    try:
        docs = await reopened.get_all([f"r.{key}" for key in keys])
        assert docs in ([None] * len(keys), [{"a": True, "@@bucket": "r"}] * len(keys))
    finally:
        await reopened.close()


async def test_reader_never_sees_rolled_back_writes(gw):
    seen = []
    done = asyncio.Event()

    async def reader():
        while not done.is_set():
            seen.append(await gw.get_document("r.k0"))
            await asyncio.sleep(0)

    async def fn(tx):
        for i in range(50):
            tx.set(f"r.k{i}", {"a": True})
        tx.set("r.bad", {"x": {1}})  # fails after the earlier rows were written

    task = asyncio.create_task(reader())
    with pytest.raises(TypeError):
        await gw.run_transaction(fn)
    done.set()
    await task

    assert seen
    assert all(doc is None for doc in seen)
    assert await gw.get_document("r.k0") is None
