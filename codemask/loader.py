"""
CodeMask Client Loader
-----------------------
Async rendition of the browser loader (app/static/codemask-sdk.js) for
Python callers.  Same state machine, same wire contract:

    Uninitialized --init()--> Initialized

    load(chunk_id) before init  -> queued, resolved after init (FIFO)
    load(chunk_id) after init   -> cache hit, or one GET /api/fetch/...

Payloads of kind "function" are compiled once and memoised forever; any
other kind is compiled on every load and never cached, so repeated loads of
a raw chunk always re-fetch.

Readiness is a single ReadinessBarrier: an awaitable flag, a subscriber
list and the public state snapshot, all updated by one fire() call.
init() is not idempotent: calling it again overwrites the connection
settings and fires the barrier (and every subscriber) again.

There is no timeout, no retry and no de-duplication of concurrent loads of
the same uncached chunk; each load() issues its own request.

Fetched code is never evaluated here.  Compilation is an injected
capability: the default SourceCompiler wraps the payload in a
CompiledChunk that delegates to an executor such as a DispatchTable of
pre-registered Python callables.

Usage:
    async with CodeMaskLoader() as loader:
        loader.init("http://localhost:8080", project_id, key)
        fn = await loader.load("chunk_AbC9_x-Q")
"""
from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from codemask.errors import ChunkExecutionError, ChunkLoadError, LoaderNotReadyError
from codemask.schemas import FetchPayload, LoaderState

READY_EVENT = "CodeMaskReady"

ChunkCompiler = Callable[[str, FetchPayload], Callable[..., Any]]
ReadySubscriber = Callable[[str, LoaderState], None]


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CompiledChunk:
    """Invocable wrapper around fetched source text."""

    chunk_id: str
    kind: str
    code: str
    name: Optional[str] = None
    executor: Optional[Callable[..., Any]] = None

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if self.executor is None:
            raise ChunkExecutionError(
                f"No executor configured for chunk {self.chunk_id} ({self.kind})"
            )
        return self.executor(self, *args, **kwargs)


class DispatchTable:
    """
    Executor that runs Python callables registered ahead of time under a
    chunk id or a chunk name.  Ids take precedence over names.

    Usage:
        table = DispatchTable()

        @table.register("add")
        def add(a, b):
            return a + b
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[..., Any]] = {}

    def register(self, key: str, func: Optional[Callable[..., Any]] = None):
        if func is not None:
            self._handlers[key] = func
            return func

        def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
            self._handlers[key] = f
            return f

        return decorator

    def __contains__(self, key: str) -> bool:
        return key in self._handlers

    def __call__(self, chunk: CompiledChunk, *args: Any, **kwargs: Any) -> Any:
        handler = self._handlers.get(chunk.chunk_id)
        if handler is None and chunk.name:
            handler = self._handlers.get(chunk.name)
        if handler is None:
            raise ChunkExecutionError(f"No handler registered for chunk {chunk.chunk_id}")
        return handler(*args, **kwargs)


class SourceCompiler:
    """Default ChunkCompiler: payload -> CompiledChunk bound to `executor`."""

    def __init__(self, executor: Optional[Callable[..., Any]] = None) -> None:
        self.executor = executor

    def __call__(self, chunk_id: str, payload: FetchPayload) -> CompiledChunk:
        return CompiledChunk(
            chunk_id=chunk_id,
            kind=payload.kind,
            code=payload.code,
            name=payload.name,
            executor=self.executor,
        )


# ---------------------------------------------------------------------------
# Readiness
# ---------------------------------------------------------------------------

class ReadinessBarrier:
    """
    Awaitable readiness flag with a subscriber list and a state snapshot.

    fire() sets the flag, stores the snapshot and notifies every subscriber
    synchronously, in subscription order.  Firing again re-notifies.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._subscribers: list[ReadySubscriber] = []
        self.state = LoaderState()

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def subscribe(self, callback: ReadySubscriber) -> None:
        self._subscribers.append(callback)

    def fire(self, state: LoaderState) -> None:
        self.state = state
        self._event.set()
        for callback in list(self._subscribers):
            try:
                callback(READY_EVENT, state)
            except Exception as exc:
                logger.error(f"[Loader] Ready subscriber {callback!r} failed: {exc}")

    async def wait(self) -> LoaderState:
        await self._event.wait()
        return self.state

    def __await__(self):
        return self.wait().__await__()


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

class CodeMaskLoader:
    """Fetches, compiles and caches masked chunks for one project."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        compiler: Optional[ChunkCompiler] = None,
        fetch_path: str = "/api/fetch",
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self.compiler: ChunkCompiler = compiler or SourceCompiler()
        self.fetch_path = fetch_path
        self.ready = ReadinessBarrier()

        self._base_url = ""
        self._project_id = ""
        self._key = ""
        self._initialized = False
        self._init_count = 0
        self._cache: dict[str, Callable[..., Any]] = {}
        self._waiters: deque[tuple[str, asyncio.Future]] = deque()
        self._drain_tasks: set[asyncio.Task] = set()

    async def __aenter__(self) -> "CodeMaskLoader":
        return self

    async def __aexit__(self, *_) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # --- State ----------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def pending(self) -> int:
        """Number of loads queued while uninitialised."""
        return len(self._waiters)

    @property
    def state(self) -> LoaderState:
        return LoaderState(
            initialized=self._initialized,
            base_url=self._base_url,
            project_id=self._project_id,
            cached_chunks=sorted(self._cache),
            init_count=self._init_count,
        )

    def init(self, base_url: str, project_id: str, key: str) -> LoaderState:
        """
        Enter the Initialized state, fire readiness, then start draining any
        queued loads in the order they were issued.
        """
        self._base_url = base_url.rstrip("/")
        self._project_id = project_id
        self._key = key
        self._initialized = True
        self._init_count += 1

        state = self.state
        self.ready.fire(state)
        logger.info(
            f"[Loader] Initialised | project={project_id} base={self._base_url} "
            f"| queued={len(self._waiters)} init_count={self._init_count}"
        )

        queued = list(self._waiters)
        self._waiters.clear()
        if queued:
            loop = queued[0][1].get_loop()
            task = loop.create_task(self._drain(queued))
            self._drain_tasks.add(task)
            task.add_done_callback(self._drain_tasks.discard)
        return state

    # --- Public API -------------------------------------------------------------

    async def load(self, chunk_id: str) -> Callable[..., Any]:
        if self._initialized:
            return await self._load_impl(chunk_id)

        future = asyncio.get_running_loop().create_future()
        self._waiters.append((chunk_id, future))
        logger.debug(f"[Loader] Queued {chunk_id} until init() | pending={len(self._waiters)}")
        return await future

    async def inject(self, chunk_id: str) -> Callable[..., Any]:
        return await self.load(chunk_id)

    async def fetch_payload(self, chunk_id: str) -> FetchPayload:
        """One GET against the fetch endpoint; no cache involved."""
        if not self._initialized:
            raise LoaderNotReadyError(f"Loader not initialised; cannot fetch {chunk_id}")

        url = f"{self._base_url}{self.fetch_path}/{self._project_id}/{chunk_id}"
        try:
            resp = await self._http().get(url, params={"key": self._key})
        except httpx.HTTPError as exc:
            logger.error(f"[Loader] Transport error for {chunk_id}: {exc}")
            raise ChunkLoadError(chunk_id, str(exc)) from exc

        if not resp.is_success:
            logger.warning(f"[Loader] {chunk_id} -> HTTP {resp.status_code}")
            raise ChunkLoadError(chunk_id, f"HTTP {resp.status_code}")
        try:
            return FetchPayload.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            logger.warning(f"[Loader] {chunk_id} -> malformed payload: {exc}")
            raise ChunkLoadError(chunk_id, "malformed payload") from exc

    # --- Internals --------------------------------------------------------------

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=None)
        return self._client

    async def _load_impl(self, chunk_id: str) -> Callable[..., Any]:
        cached = self._cache.get(chunk_id)
        if cached is not None:
            return cached

        payload = await self.fetch_payload(chunk_id)
        compiled = self.compiler(chunk_id, payload)
        if payload.kind == "function":
            self._cache[chunk_id] = compiled
        logger.debug(f"[Loader] Loaded {chunk_id} | kind={payload.kind}")
        return compiled

    async def _drain(self, queued: list[tuple[str, asyncio.Future]]) -> None:
        for chunk_id, future in queued:
            if future.cancelled():
                continue
            try:
                result = await self._load_impl(chunk_id)
            except Exception as exc:
                if not future.done():
                    future.set_exception(exc)
                continue
            if not future.done():
                future.set_result(result)
