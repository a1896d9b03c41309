"""Tests for loader.py (client loader state machine)."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from codemask.errors import ChunkExecutionError, ChunkLoadError, LoaderNotReadyError
from codemask.loader import (
    READY_EVENT,
    CodeMaskLoader,
    CompiledChunk,
    DispatchTable,
    SourceCompiler,
)
from codemask.schemas import FetchPayload

BASE_URL = "http://codemask.test"

PAYLOADS = {
    "chunk_fn": {"ok": True, "kind": "function", "name": "double", "code": "(x) => { return x*2; }"},
    "chunk_raw": {"ok": True, "kind": "raw", "code": "const TABLE = [1,2,3];"},
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_loader(calls: list[httpx.Request], **kwargs) -> CodeMaskLoader:
    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(0)
        if request.url.params.get("key") != "k":
            return httpx.Response(403, json={"error": "Invalid key"})
        chunk_id = request.url.path.rsplit("/", 1)[-1]
        if chunk_id not in PAYLOADS:
            return httpx.Response(404, json={"error": "Chunk not found"})
        return httpx.Response(200, json=PAYLOADS[chunk_id])

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CodeMaskLoader(client=client, **kwargs)


# ---------------------------------------------------------------------------
# Queuing and readiness
# ---------------------------------------------------------------------------


def test_queued_loads_resolve_in_order_after_ready() -> None:
    calls: list[httpx.Request] = []
    events: list[tuple[str, str]] = []

    async def scenario():
        loader = _make_loader(calls)
        loader.ready.subscribe(lambda name, state: events.append(("ready", name)))

        async def load_and_record(chunk_id: str):
            fn = await loader.load(chunk_id)
            events.append(("resolved", chunk_id))
            return fn

        first = asyncio.create_task(load_and_record("chunk_fn"))
        second = asyncio.create_task(load_and_record("chunk_raw"))
        for _ in range(5):
            await asyncio.sleep(0)

        assert loader.pending == 2
        assert not first.done() and not second.done()
        assert events == []
        assert calls == []

        loader.init(BASE_URL, "proj", "k")
        results = await asyncio.gather(first, second)
        await loader.aclose()
        return results

    fn, raw = asyncio.run(scenario())

    assert events == [
        ("ready", READY_EVENT),
        ("resolved", "chunk_fn"),
        ("resolved", "chunk_raw"),
    ]
    assert [r.url.path for r in calls] == ["/api/fetch/proj/chunk_fn", "/api/fetch/proj/chunk_raw"]
    assert fn.kind == "function"
    assert raw.kind == "raw"


def test_queued_load_failure_rejects_after_init() -> None:
    async def scenario():
        loader = _make_loader([])
        pending = asyncio.create_task(loader.load("chunk_missing"))
        await asyncio.sleep(0)
        loader.init(BASE_URL, "proj", "k")
        with pytest.raises(ChunkLoadError, match="chunk_missing"):
            await pending
        await loader.aclose()

    asyncio.run(scenario())


def test_ready_barrier_is_awaitable_and_state_updates() -> None:
    async def scenario():
        loader = _make_loader([])
        assert loader.ready.is_set is False
        assert loader.state.initialized is False

        waiter = asyncio.create_task(loader.ready.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        returned = loader.init(BASE_URL + "/", "proj", "k")
        state = await waiter
        awaited = await loader.ready
        await loader.aclose()
        return returned, state, awaited

    returned, state, awaited = asyncio.run(scenario())
    assert returned == state == awaited
    assert state.initialized is True
    assert state.base_url == BASE_URL
    assert state.project_id == "proj"
    assert state.init_count == 1


def test_reinit_overwrites_and_resignals() -> None:
    seen: list[int] = []

    async def scenario():
        loader = _make_loader([])
        loader.ready.subscribe(lambda name, state: seen.append(state.init_count))
        loader.init(BASE_URL, "proj-a", "k")
        loader.init("http://other.test", "proj-b", "k2")
        await loader.aclose()
        return loader.state

    state = asyncio.run(scenario())
    assert seen == [1, 2]
    assert state.project_id == "proj-b"
    assert state.base_url == "http://other.test"
    assert state.init_count == 2


def test_failing_subscriber_does_not_block_others() -> None:
    seen: list[str] = []

    def broken(name, state):
        raise RuntimeError("boom")

    async def scenario():
        loader = _make_loader([])
        loader.ready.subscribe(broken)
        loader.ready.subscribe(lambda name, state: seen.append(name))
        loader.init(BASE_URL, "proj", "k")
        await loader.aclose()

    asyncio.run(scenario())
    assert seen == [READY_EVENT]


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


def test_function_payload_is_fetched_once() -> None:
    calls: list[httpx.Request] = []

    async def scenario():
        loader = _make_loader(calls)
        loader.init(BASE_URL, "proj", "k")
        first = await loader.load("chunk_fn")
        second = await loader.inject("chunk_fn")
        state = loader.state
        await loader.aclose()
        return first, second, state

    first, second, state = asyncio.run(scenario())
    assert len(calls) == 1
    assert first is second
    assert state.cached_chunks == ["chunk_fn"]


def test_raw_payload_is_fetched_every_time() -> None:
    calls: list[httpx.Request] = []

    async def scenario():
        loader = _make_loader(calls)
        loader.init(BASE_URL, "proj", "k")
        await loader.load("chunk_raw")
        await loader.load("chunk_raw")
        state = loader.state
        await loader.aclose()
        return state

    state = asyncio.run(scenario())
    assert len(calls) == 2
    assert state.cached_chunks == []


def test_concurrent_loads_are_not_deduplicated() -> None:
    calls: list[httpx.Request] = []

    async def scenario():
        loader = _make_loader(calls)
        loader.init(BASE_URL, "proj", "k")
        await asyncio.gather(loader.load("chunk_fn"), loader.load("chunk_fn"))
        await loader.aclose()

    asyncio.run(scenario())
    assert len(calls) == 2


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_key_is_sent_as_query_parameter() -> None:
    calls: list[httpx.Request] = []

    async def scenario():
        loader = _make_loader(calls)
        loader.init(BASE_URL, "proj", "wrong")
        with pytest.raises(ChunkLoadError, match="chunk_fn"):
            await loader.load("chunk_fn")
        await loader.aclose()

    asyncio.run(scenario())
    assert calls[0].url.params["key"] == "wrong"


def test_transport_error_becomes_chunk_load_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async def scenario():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        loader = CodeMaskLoader(client=client)
        loader.init(BASE_URL, "proj", "k")
        with pytest.raises(ChunkLoadError, match="chunk_fn"):
            await loader.load("chunk_fn")
        await client.aclose()

    asyncio.run(scenario())


def _make_static_loader(response: httpx.Response) -> CodeMaskLoader:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0)
        return response

    return CodeMaskLoader(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_non_json_success_becomes_chunk_load_error() -> None:
    async def scenario():
        loader = _make_static_loader(
            httpx.Response(200, text="<html>oops</html>", headers={"content-type": "text/html"})
        )
        loader.init(BASE_URL, "proj", "k")
        with pytest.raises(ChunkLoadError, match="chunk_zz"):
            await loader.load("chunk_zz")
        await loader.aclose()

    asyncio.run(scenario())


def test_payload_missing_fields_becomes_chunk_load_error() -> None:
    async def scenario():
        loader = _make_static_loader(httpx.Response(200, json={"ok": True, "kind": "function"}))
        loader.init(BASE_URL, "proj", "k")
        with pytest.raises(ChunkLoadError, match="malformed payload"):
            await loader.fetch_payload("chunk_zz")
        assert loader.state.cached_chunks == []
        await loader.aclose()

    asyncio.run(scenario())


def test_fetch_payload_before_init_is_not_ready() -> None:
    async def scenario():
        loader = _make_loader([])
        with pytest.raises(LoaderNotReadyError):
            await loader.fetch_payload("chunk_fn")
        await loader.aclose()

    asyncio.run(scenario())


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def test_compiled_chunk_without_executor_refuses_to_run() -> None:
    compiled = SourceCompiler()("chunk_fn", FetchPayload(**PAYLOADS["chunk_fn"]))
    assert isinstance(compiled, CompiledChunk)
    assert compiled.code == "(x) => { return x*2; }"
    with pytest.raises(ChunkExecutionError):
        compiled(3)


def test_dispatch_table_runs_registered_handlers() -> None:
    table = DispatchTable()

    @table.register("double")
    def double(x):
        return x * 2

    table.register("chunk_raw", lambda: "ran")

    async def scenario():
        loader = _make_loader([], compiler=SourceCompiler(table))
        loader.init(BASE_URL, "proj", "k")
        fn = await loader.load("chunk_fn")
        raw = await loader.load("chunk_raw")
        await loader.aclose()
        return fn(21), raw()

    assert asyncio.run(scenario()) == (42, "ran")
    assert "double" in table


def test_dispatch_table_missing_handler() -> None:
    table = DispatchTable()
    compiled = CompiledChunk(chunk_id="chunk_x", kind="raw", code="x();", executor=table)
    with pytest.raises(ChunkExecutionError, match="chunk_x"):
        compiled()
