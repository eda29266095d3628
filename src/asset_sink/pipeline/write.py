"""
WriteStream — content-addressed write pipeline.

States: ``open → streaming → finalizing → saved | failed``.

Input chunks are fanned out to two bounded queues:

    caller ──┬─► store queue ─► [raw hasher tee] ─► backend writer (temp key)
             └─► hash queue  ─► structured hasher          (json only)

For raw types the hasher is a transparent tee on the store branch, so
there is a single queue. Once the backend writer's ``close()`` confirms
durability, the temporary object is moved to ``<hash>.<type>``.

Terminal outcomes (exactly one per pipeline):
    - ``FileSaved(hash, key)``        — "file saved"
    - ``FileNotSaved(error, temp_key)`` — "file not saved"; the temporary
      object is left in place for an external sweep
    - ``StreamFailed(error)``         — "error"; any branch failed

Usage::

    stream = sink.writer("json")
    stream.on("file saved", lambda saved: print(saved.key))
    async with stream:
        await stream.write(b'[{"a": 1}]')
    outcome = await stream.result()
"""
import asyncio
import time
from typing import Any, Callable, List, Optional, Union

from asset_sink.errors import (
    BackendProtocolError,
    PipelineTimeoutError,
    SinkError,
    wrap_error,
)
from asset_sink.events import (
    ERROR,
    FILE_NOT_SAVED,
    FILE_SAVED,
    EventEmitter,
    FileNotSaved,
    FileSaved,
    StreamFailed,
)
from asset_sink.hashing import get_hasher
from asset_sink.logging_config import get_logger
from asset_sink.metrics import BYTES_STREAMED, OPERATION_DURATION, WRITES_TOTAL
from asset_sink.mime import is_structured
from asset_sink.naming import allocate_temp_key, finalized_key
from asset_sink.readiness import ReadinessGate
from asset_sink.storage.interface import ObjectStoreBackend, ObjectWriter, WriteOptions
from asset_sink.tracing import get_tracer

logger = get_logger(__name__)
tracer = get_tracer(__name__)

_END = None

WriteOutcome = Union[FileSaved, FileNotSaved, StreamFailed]


class WriteStream:
    """Streaming writer that finalizes under a content-derived key."""

    def __init__(
        self,
        backend: ObjectStoreBackend,
        gate: ReadinessGate,
        declared_type: str,
        options: WriteOptions,
        *,
        algorithm: str = "sha1",
        queue_size: int = 16,
        idle_timeout: Optional[float] = None,
    ) -> None:
        self.declared_type = declared_type
        self.options = options
        self.temp_key = allocate_temp_key(declared_type)
        self.hasher = get_hasher(declared_type, algorithm)
        self.state = "open"
        self.bytes_written = 0

        self._backend = backend
        self._gate = gate
        self._idle_timeout = idle_timeout
        self._emitter = EventEmitter()
        self._store_queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._hash_queue: Optional[asyncio.Queue] = (
            asyncio.Queue(maxsize=queue_size) if is_structured(declared_type) else None
        )
        self._task: Optional[asyncio.Task] = None
        self._outcome: Optional[asyncio.Future] = None
        self._branches: List[asyncio.Task] = []
        self._abort_error: Optional[SinkError] = None
        self._ended = False

    # ------------------------------------------------------------------
    # Caller side
    # ------------------------------------------------------------------

    def on(self, event: str, listener: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return self._emitter.on(event, listener)

    @property
    def _queues(self) -> List[asyncio.Queue]:
        if self._hash_queue is None:
            return [self._store_queue]
        return [self._store_queue, self._hash_queue]

    def _ensure_started(self) -> None:
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._outcome = loop.create_future()
        self.state = "streaming"
        logger.debug("write_started", temp_key=self.temp_key, declared_type=self.declared_type)
        self._task = loop.create_task(self._run())

    async def write(self, chunk: Union[bytes, bytearray, str]) -> None:
        """
        Feed *chunk* into both branches.

        Waits while a branch is saturated (backpressure). After a branch
        failure writes are dropped; the failure is reported through
        ``result()`` and the "error" signal, never raised here.
        """
        if self._ended:
            raise RuntimeError("write() after end()")
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        chunk = bytes(chunk)
        if not chunk:
            return
        self._ensure_started()
        for queue in self._queues:
            if self.state == "failed":
                return
            await queue.put(chunk)
        self.bytes_written += len(chunk)

    async def end(self) -> WriteOutcome:
        """Signal end of input and wait for the terminal outcome."""
        self._ensure_started()
        if not self._ended:
            self._ended = True
            for queue in self._queues:
                if self.state == "failed":
                    break
                await queue.put(_END)
        return await self.result()

    async def abort(self, reason: Any = None) -> WriteOutcome:
        """Terminate the pipeline; the outcome is ``StreamFailed``."""
        self._ensure_started()
        self._ended = True
        if not self._outcome.done() and self._abort_error is None:
            self._abort_error = (
                wrap_error(reason) if reason is not None
                else BackendProtocolError("write aborted by caller")
            )
            for task in self._branches:
                task.cancel()
        return await self.result()

    async def result(self) -> WriteOutcome:
        self._ensure_started()
        return await asyncio.shield(self._outcome)

    async def __aenter__(self) -> "WriteStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            await self.abort(exc)
        else:
            await self.end()

    # ------------------------------------------------------------------
    # Pipeline side
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        started = time.monotonic()
        with tracer.start_as_current_span("sink.write") as span:
            span.set_attribute("declared_type", self.declared_type)
            span.set_attribute("temp_key", self.temp_key)
            try:
                await self._stream()
            except Exception as e:
                self._fail(e)
            finally:
                OPERATION_DURATION.labels(operation="write").observe(time.monotonic() - started)
            span.set_attribute("state", self.state)

    async def _stream(self) -> None:
        await self._gate.wait()
        writer = await self._backend.open_write_stream(self.temp_key, self.options)
        if self._abort_error is not None:
            await writer.abort()
            self._fail(self._abort_error)
            return

        self._branches = [asyncio.ensure_future(self._store_branch(writer))]
        if self._hash_queue is not None:
            self._branches.append(asyncio.ensure_future(self._hash_branch()))

        done, pending = await asyncio.wait(self._branches, return_when=asyncio.FIRST_EXCEPTION)

        error: Optional[BaseException] = self._abort_error
        if error is None:
            for task in done:
                if task.cancelled():
                    error = BackendProtocolError("write branch cancelled")
                elif task.exception() is not None:
                    error = task.exception()
                    break

        if error is not None:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            await writer.abort()
            self._fail(error)
            return

        # Both branches consumed the same input; the backend has confirmed
        # durability, so the digest is final.
        await self._finalize(self.hasher.hexdigest)

    async def _next(self, queue: asyncio.Queue) -> Optional[bytes]:
        if self._idle_timeout is None:
            return await queue.get()
        try:
            return await asyncio.wait_for(queue.get(), self._idle_timeout)
        except asyncio.TimeoutError:
            raise PipelineTimeoutError(
                f"no input for {self._idle_timeout}s on '{self.temp_key}'"
            ) from None

    async def _store_branch(self, writer: ObjectWriter) -> None:
        tee = self._hash_queue is None
        while True:
            chunk = await self._next(self._store_queue)
            if chunk is _END:
                if tee:
                    self.hasher.finish()
                await writer.close()
                return
            if tee:
                chunk = self.hasher.tee(chunk)
            await writer.write(chunk)
            BYTES_STREAMED.labels(direction="in").inc(len(chunk))

    async def _hash_branch(self) -> None:
        while True:
            chunk = await self._next(self._hash_queue)
            if chunk is _END:
                self.hasher.finish()
                return
            self.hasher.update(chunk)

    async def _finalize(self, content_hash: str) -> None:
        self.state = "finalizing"
        key = finalized_key(content_hash, self.declared_type)
        try:
            await self._backend.move(self.temp_key, key)
        except Exception as e:
            error = wrap_error(e)
            self.state = "failed"
            WRITES_TOTAL.labels(declared_type=self.declared_type, outcome="not_saved").inc()
            logger.warning(
                "file_not_saved",
                temp_key=self.temp_key,
                key=key,
                error=error.message,
            )
            self._resolve(FILE_NOT_SAVED, FileNotSaved(error, self.temp_key))
            return

        self.state = "saved"
        WRITES_TOTAL.labels(declared_type=self.declared_type, outcome="saved").inc()
        logger.info(
            "file_saved",
            key=key,
            declared_type=self.declared_type,
            bytes=self.bytes_written,
        )
        self._resolve(FILE_SAVED, FileSaved(content_hash, key))

    def _fail(self, err: BaseException) -> None:
        if self._outcome.done():
            return
        error = wrap_error(err)
        self.state = "failed"
        # Unblock a caller waiting on a saturated queue.
        for queue in self._queues:
            while not queue.empty():
                queue.get_nowait()
        WRITES_TOTAL.labels(declared_type=self.declared_type, outcome="failed").inc()
        logger.error("write_failed", temp_key=self.temp_key, error=error.message)
        self._resolve(ERROR, StreamFailed(error), payload=error)

    def _resolve(self, event: str, outcome: WriteOutcome, payload: Any = None) -> None:
        if self._outcome.done():
            return
        self._outcome.set_result(outcome)
        self._emitter.emit(event, outcome if payload is None else payload)
