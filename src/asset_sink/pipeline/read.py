"""
ReadStream — relays a backend object to the caller unchanged.

Signals:
    - "file found"     — ``FileFound(key)``, once the backend has responded
    - "file not found" — ``FileNotFound(key, error)``, backend not-found status
    - "error"          — any other failure, carrying the wrapped error

Errors never escape the iteration: the iterator simply ends and the
outcome is available from ``found()`` / ``result()``. No retry is done here.

Usage::

    stream = sink.reader("3f2a...9c.json")
    async for chunk in stream:
        out.write(chunk)
    outcome = await stream.result()
"""
import asyncio
from typing import Any, AsyncIterator, Callable, Optional, Union

from asset_sink.errors import BackendProtocolError, NotFoundError, wrap_error
from asset_sink.events import (
    ERROR,
    FILE_FOUND,
    FILE_NOT_FOUND,
    EventEmitter,
    FileFound,
    FileNotFound,
    ReadFinished,
    StreamFailed,
)
from asset_sink.logging_config import get_logger
from asset_sink.metrics import BYTES_STREAMED, READS_TOTAL
from asset_sink.readiness import ReadinessGate
from asset_sink.storage.interface import ObjectReader, ObjectStoreBackend
from asset_sink.tracing import get_tracer

logger = get_logger(__name__)
tracer = get_tracer(__name__)

OpenOutcome = Union[FileFound, FileNotFound, StreamFailed]
ReadOutcome = Union[ReadFinished, FileNotFound, StreamFailed]


class ReadStream:
    """Single-use async iterator over the bytes of one object."""

    def __init__(
        self,
        backend: ObjectStoreBackend,
        gate: ReadinessGate,
        key: str,
        *,
        chunk_size: int = 64 * 1024,
    ) -> None:
        self.key = key
        self.bytes_read = 0
        self._backend = backend
        self._gate = gate
        self._chunk_size = chunk_size
        self._emitter = EventEmitter()
        self._opened: Optional[asyncio.Future] = None
        self._outcome: Optional[asyncio.Future] = None
        self._open_task: Optional[asyncio.Task] = None
        self._consumed = False

    def on(self, event: str, listener: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return self._emitter.on(event, listener)

    def _futures(self) -> None:
        if self._outcome is None:
            loop = asyncio.get_running_loop()
            self._opened = loop.create_future()
            self._outcome = loop.create_future()

    def _ensure_open(self) -> asyncio.Task:
        """Start the backend request once; iteration and waiters share it."""
        self._futures()
        if self._open_task is None:
            self._open_task = asyncio.ensure_future(self._open())
        return self._open_task

    async def found(self) -> OpenOutcome:
        """Wait until the backend has responded (or failed) for this key."""
        self._ensure_open()
        return await asyncio.shield(self._opened)

    async def result(self) -> ReadOutcome:
        """
        Wait for the end of iteration.

        Not-found and open failures resolve without iterating; a found
        object resolves once the stream has been consumed.
        """
        self._ensure_open()
        return await asyncio.shield(self._outcome)

    async def read_all(self) -> bytes:
        """Consume the stream into memory; check ``result()`` for the outcome."""
        return b"".join([chunk async for chunk in self])

    async def _open(self) -> Optional[ObjectReader]:
        with tracer.start_as_current_span("sink.read") as span:
            span.set_attribute("key", self.key)
            try:
                await self._gate.wait()
                reader = self._backend.open_read_stream(self.key)
                await reader.open()
            except Exception as e:
                error = wrap_error(e)
                if isinstance(error, NotFoundError):
                    READS_TOTAL.labels(outcome="not_found").inc()
                    logger.info("read_not_found", key=self.key)
                    self._settle(FILE_NOT_FOUND, FileNotFound(self.key, error))
                else:
                    self._fail(error)
                return None
        if not self._opened.done():
            found = FileFound(self.key)
            self._opened.set_result(found)
            self._emitter.emit(FILE_FOUND, found)
        return reader

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("a read stream can only be consumed once")
        self._consumed = True

        reader = await asyncio.shield(self._ensure_open())
        if reader is None:
            return
        try:
            while True:
                try:
                    chunk = await reader.read(self._chunk_size)
                except Exception as e:
                    self._fail(e)
                    return
                if not chunk:
                    break
                self.bytes_read += len(chunk)
                BYTES_STREAMED.labels(direction="out").inc(len(chunk))
                yield chunk
            READS_TOTAL.labels(outcome="completed").inc()
            self._settle(None, ReadFinished(self.key, self.bytes_read))
        finally:
            if not self._outcome.done():
                # Caller stopped consuming before the end of the object.
                self._fail(BackendProtocolError(f"read of '{self.key}' abandoned"))
            await reader.close()

    def _fail(self, err: BaseException) -> None:
        error = wrap_error(err)
        READS_TOTAL.labels(outcome="failed").inc()
        logger.error("read_failed", key=self.key, error=error.message)
        self._settle(ERROR, StreamFailed(error), payload=error)

    def _settle(self, event: Optional[str], outcome: ReadOutcome, payload: Any = None) -> None:
        if not self._opened.done():
            self._opened.set_result(outcome)
        if self._outcome.done():
            return
        self._outcome.set_result(outcome)
        if event is not None:
            self._emitter.emit(event, outcome if payload is None else payload)
