"""
Sink — content-addressed object store front-end.

Streaming surface:
    - ``writer(type)`` → ``WriteStream``; finalizes under ``<hash>.<type>``
    - ``reader(key)``  → ``ReadStream``

Whole-value surface (each operation awaits the readiness gate first):
    - ``get(key)``          — NotFound when absent, bounded retry on download
    - ``set(key, content)`` — extension/MIME validated before any I/O,
      bounded retry on save, public by default
    - ``has(key)``          — existence probe normalised to ``bool``
    - ``dir(prefix)``       — single-level listing with content

Wiring a sink from configuration
---------------------------------

.. code-block:: python

    from asset_sink.sink import Sink

    sink = Sink.from_settings()
    sink.on("storage info", print)

    stream = sink.writer("json")
    await stream.write(b'[{"id": 1}]')
    saved = await stream.end()
    print(await sink.get(saved.key))
"""
import asyncio
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Awaitable, Callable, Iterator, List, Mapping, Optional, TypeVar, Union

from asset_sink.config import Settings, settings
from asset_sink.errors import (
    BackendProtocolError,
    InvalidArgumentError,
    ListingError,
    NotFoundError,
    ServiceUnavailableError,
    wrap_error,
)
from asset_sink.events import STORAGE_INFO, EventEmitter
from asset_sink.logging_config import configure_logging, get_logger
from asset_sink.metrics import OPERATION_DURATION, OPERATIONS_TOTAL, RETRIES_TOTAL
from asset_sink.mime import content_type_for, is_textual, resolve_content_type
from asset_sink.naming import list_query_prefix, normalize_dir_prefix, parent_of
from asset_sink.pipeline.read import ReadStream
from asset_sink.pipeline.write import WriteStream
from asset_sink.readiness import ReadinessGate, ensure_container
from asset_sink.storage.interface import ObjectStoreBackend, WriteOptions
from asset_sink.storage.s3 import get_backend
from asset_sink.tracing import get_tracer, init_tracing

logger = get_logger(__name__)
tracer = get_tracer(__name__)

T = TypeVar("T")
Content = Union[str, bytes]


@dataclass(frozen=True)
class DirEntry:
    key: str
    content: Content


def _require(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f'"{name}" is missing')
    return value


def _write_options(content_type: str, options: Optional[Mapping[str, Any]]) -> WriteOptions:
    """Build backend options; only ``metadata``, ``public`` and ``resumable`` are honoured."""
    options = options or {}
    metadata = options.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        raise InvalidArgumentError('"options.metadata" must be a mapping')
    flags = {}
    for name in ("public", "resumable"):
        value = options.get(name, True)
        if not isinstance(value, bool):
            raise InvalidArgumentError(f'"options.{name}" must be a boolean, got {value!r}')
        flags[name] = value
    return WriteOptions(
        content_type=content_type,
        metadata={str(k): str(v) for k, v in metadata.items()},
        **flags,
    )


def _decode(key: str, content: Any, encoding: Optional[str]) -> Content:
    """Text for textual MIME types when *encoding* is set; ``bytes`` otherwise."""
    extension = PurePosixPath(key).suffix.lstrip(".")
    if encoding is None or not is_textual(resolve_content_type(extension)):
        return content.encode("utf-8") if isinstance(content, str) else bytes(content)
    if isinstance(content, str):
        return content
    try:
        return bytes(content).decode(encoding)
    except UnicodeDecodeError as e:
        raise BackendProtocolError(f"'{key}' is not valid {encoding} text") from e


def _exists_flag(raw: Any) -> bool:
    """Backends answer ``True``, ``[True]``, ``[]`` or ``None``; anything unclear is ``False``."""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (list, tuple)):
        return bool(raw) and raw[0] is True
    return False


@contextmanager
def _track(operation: str, **attributes: Any) -> Iterator[Any]:
    started = time.monotonic()
    with tracer.start_as_current_span(f"sink.{operation}") as span:
        for name, value in attributes.items():
            span.set_attribute(name, value)
        try:
            yield span
        except Exception as e:
            OPERATIONS_TOTAL.labels(operation=operation, outcome=type(e).__name__).inc()
            raise
        else:
            OPERATIONS_TOTAL.labels(operation=operation, outcome="ok").inc()
        finally:
            OPERATION_DURATION.labels(operation=operation).observe(time.monotonic() - started)


class Sink:
    """Object store facade plus the streaming write/read pipelines."""

    def __init__(self, backend: ObjectStoreBackend, *, config: Optional[Settings] = None) -> None:
        if backend is None:
            raise InvalidArgumentError('"backend" must be provided')
        self.backend = backend
        self.config = config or settings
        self._emitter = EventEmitter()
        self._gate = ReadinessGate(lambda: ensure_container(backend), on_ready=self._storage_ready)

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "Sink":
        """Build the configured backend and install the package log handler and tracer."""
        configure_logging(config)
        init_tracing(config)
        return cls(get_backend(config), config=config)

    def on(self, event: str, listener: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return self._emitter.on(event, listener)

    def _storage_ready(self, message: str) -> None:
        self._emitter.emit(STORAGE_INFO, message)

    async def ready(self) -> str:
        """Await the readiness gate; raises the bootstrap error if it failed."""
        return await self._gate.wait()

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def writer(self, declared_type: str, options: Optional[Mapping[str, Any]] = None) -> WriteStream:
        """
        Open a write pipeline for content of *declared_type*.

        Raises:
            InvalidArgumentError: type missing or without a known MIME type.
        """
        declared_type = _require(declared_type, "type").strip().lstrip(".").lower()
        write_options = _write_options(content_type_for(declared_type), options)
        return WriteStream(
            self.backend,
            self._gate,
            declared_type,
            write_options,
            algorithm=self.config.hash_algorithm,
            queue_size=self.config.stream_queue_size,
            idle_timeout=self.config.stream_idle_timeout_seconds,
        )

    def reader(self, key: str) -> ReadStream:
        return ReadStream(
            self.backend,
            self._gate,
            _require(key, "key"),
            chunk_size=self.config.read_chunk_bytes,
        )

    # ------------------------------------------------------------------
    # Whole-value operations
    # ------------------------------------------------------------------

    async def _retry(self, operation: str, key: str, call: Callable[[], Awaitable[T]]) -> T:
        attempts = max(1, self.config.retry_attempts)
        last_error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            try:
                return await call()
            except Exception as e:
                last_error = e
                if attempt == attempts:
                    break
                RETRIES_TOTAL.labels(operation=operation).inc()
                logger.warning(
                    "retrying",
                    operation=operation,
                    key=key,
                    attempt=attempt,
                    error=str(e),
                )
                if self.config.retry_backoff_seconds:
                    await asyncio.sleep(self.config.retry_backoff_seconds * attempt)
        logger.error("retries_exhausted", operation=operation, key=key, attempts=attempts)
        raise ServiceUnavailableError(key, attempts, wrap_error(last_error))

    async def _backend_call(self, call: Awaitable[T]) -> T:
        try:
            return await call
        except Exception as e:
            raise wrap_error(e) from e

    async def get(self, key: str, encoding: Optional[str] = "utf-8") -> Content:
        """
        Return the content of *key*.

        Textual MIME types are decoded with *encoding*; binary types, or any
        type when *encoding* is ``None``, come back as ``bytes``.

        Raises:
            NotFoundError: the object does not exist.
            ServiceUnavailableError: every download attempt failed.
        """
        key = _require(key, "key")
        with _track("get", key=key):
            await self._gate.wait()
            if not _exists_flag(await self._backend_call(self.backend.exists(key))):
                raise NotFoundError(key)
            content = await self._retry("get", key, lambda: self.backend.download(key))
            return _decode(key, content, encoding)

    async def set(self, key: str, content: Content, options: Optional[Mapping[str, Any]] = None) -> None:
        """
        Store *content* at *key*; public unless ``options["public"]`` is false.

        Raises:
            InvalidArgumentError: key, extension, MIME type or content invalid.
            ServiceUnavailableError: every save attempt failed.
        """
        key = _require(key, "key")
        extension = PurePosixPath(key).suffix.lstrip(".")
        if not extension:
            raise InvalidArgumentError(f'"key" {key!r} has no file extension')
        write_options = _write_options(content_type_for(extension), options)
        if content is None:
            raise InvalidArgumentError('"content" is missing')
        body = content.encode("utf-8") if isinstance(content, str) else bytes(content)

        with _track("set", key=key):
            await self._gate.wait()
            await self._retry("set", key, lambda: self.backend.save(key, body, write_options))
            logger.info("object_set", key=key, bytes=len(body), public=write_options.public)

    async def has(self, key: str) -> bool:
        key = _require(key, "key")
        with _track("has", key=key):
            await self._gate.wait()
            return _exists_flag(await self._backend_call(self.backend.exists(key)))

    async def dir(self, prefix: Optional[str] = "/", encoding: Optional[str] = "utf-8") -> List[DirEntry]:
        """
        List the objects directly inside *prefix*, with their content.

        Non-recursive: keys in deeper "subdirectories" are excluded. A
        missing prefix, an empty listing and a listing with no direct
        children all raise the same ``ListingError``.
        """
        directory = normalize_dir_prefix(prefix)
        with _track("dir", prefix=directory):
            await self._gate.wait()
            entries = await self._backend_call(
                self.backend.list_with_prefix(list_query_prefix(directory))
            )
            if not entries:
                raise ListingError(prefix or "/")

            children = [entry for entry in entries if parent_of(entry.key) == directory]
            if not children:
                raise ListingError(prefix or "/")

            contents = await self._backend_call(
                asyncio.gather(*(entry.download() for entry in children))
            )
            logger.info("dir_listed", prefix=directory, entries=len(children))
            return [
                DirEntry(key=entry.key, content=_decode(entry.key, content, encoding))
                for entry, content in zip(children, contents)
            ]
