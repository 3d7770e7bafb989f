"""Tests for bounded-concurrency streaming (sync and async)."""

from __future__ import annotations

import asyncio
import gc
import threading
import time

import pytest

from piq.core.errors import MalformedFacetError
from piq.core.query.engine import QueryEngine
from piq.resolvers.memory import MemoryMetaResolver, MemorySearchResolver

N_ITEMS = 1000


@pytest.fixture
def many_ids():
    return [f"{i:04d}.md" for i in range(N_ITEMS)]


@pytest.fixture
def many_meta(many_ids):  # pylint: disable=redefined-outer-name
    return {item_id: {"title": f"t{item_id}", "even": int(item_id[:4]) % 2 == 0} for item_id in many_ids}


def make_engine(ids, meta):
    return QueryEngine(MemorySearchResolver("{n}.md", ids), meta=meta)


def test_stream_yields_every_row(many_ids, many_meta):  # pylint: disable=redefined-outer-name
    engine = make_engine(many_ids, MemoryMetaResolver(many_meta))
    rows = list(engine.select("params.n", "meta.title").stream(concurrency_limit=8))
    assert len(rows) == N_ITEMS
    assert {r["n"] for r in rows} == {i[:4] for i in many_ids}
    assert all(r["title"] == f"t{r['n']}.md" for r in rows)


def test_stream_applies_filter(many_ids, many_meta):  # pylint: disable=redefined-outer-name
    engine = make_engine(many_ids, MemoryMetaResolver(many_meta))
    rows = list(engine.filter({"even": True}).select("params.n").stream(16))
    assert len(rows) == N_ITEMS // 2
    assert all(int(r["n"]) % 2 == 0 for r in rows)


@pytest.mark.parametrize("limit", [1, 4, 10])
def test_early_stop_bounds_resolution(many_ids, many_meta, counting_meta, limit):  # pylint: disable=redefined-outer-name
    meta = counting_meta(many_meta)
    stream = make_engine(many_ids, meta).select("params.n", "meta.title").stream(limit)
    first = next(stream)
    stream.close()
    assert "n" in first
    assert 1 <= meta.calls <= 1 + limit


def test_in_flight_never_exceeds_limit(many_ids, many_meta):  # pylint: disable=redefined-outer-name
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    class SlowMeta(MemoryMetaResolver):
        def resolve(self, item_id, fields=None):
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.001)
            with lock:
                state["active"] -= 1
            return super().resolve(item_id, fields)

    ids = many_ids[:100]
    rows = list(make_engine(ids, SlowMeta(many_meta)).select("meta.title").stream(5))
    assert len(rows) == 100
    assert state["peak"] <= 5


def test_stream_propagates_resolver_errors(many_ids):  # pylint: disable=redefined-outer-name
    class BrokenMeta(MemoryMetaResolver):
        def resolve(self, item_id, fields=None):
            if item_id == "0003.md":
                raise MalformedFacetError(item_id, "never closed")
            return super().resolve(item_id, fields)

    engine = make_engine(many_ids[:10], BrokenMeta({}))
    with pytest.raises(MalformedFacetError):
        list(engine.select("meta.title").stream(2))


def test_stream_rejects_bad_limit(many_ids, many_meta):  # pylint: disable=redefined-outer-name
    engine = make_engine(many_ids, MemoryMetaResolver(many_meta)).select("params.n")
    with pytest.raises(ValueError):
        engine.stream(0)


def test_astream_yields_every_row(many_ids, many_meta):  # pylint: disable=redefined-outer-name
    engine = make_engine(many_ids[:50], MemoryMetaResolver(many_meta))

    async def collect():
        return [row async for row in engine.select("params.n", "meta.title").astream(4)]

    rows = asyncio.run(collect())
    assert sorted(r["n"] for r in rows) == [i[:4] for i in many_ids[:50]]


def test_astream_early_stop(many_ids, many_meta, counting_meta):  # pylint: disable=redefined-outer-name
    meta = counting_meta(many_meta)
    engine = make_engine(many_ids, meta).select("meta.title")

    async def first_row():
        stream = engine.astream(3)
        try:
            return await stream.__anext__()
        finally:
            await stream.aclose()

    row = asyncio.run(first_row())
    assert "title" in row
    assert 1 <= meta.calls <= 4


def test_astream_close_retrieves_abandoned_errors(many_ids, many_meta):  # pylint: disable=redefined-outer-name
    class LateBrokenMeta(MemoryMetaResolver):
        def resolve(self, item_id, fields=None):
            if item_id != "0000.md":
                time.sleep(0.05)
                raise MalformedFacetError(item_id, "never closed")
            return super().resolve(item_id, fields)

    engine = make_engine(many_ids[:10], LateBrokenMeta(many_meta)).select("meta.title")
    unhandled = []

    async def first_row():
        asyncio.get_running_loop().set_exception_handler(
            lambda loop, context: unhandled.append(context)
        )
        stream = engine.astream(3)
        try:
            return await stream.__anext__()
        finally:
            await stream.aclose()
            del stream
            gc.collect()

    row = asyncio.run(first_row())
    gc.collect()
    assert row == {"title": "t0000.md"}
    assert unhandled == []
