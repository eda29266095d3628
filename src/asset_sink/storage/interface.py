"""
ObjectStoreBackend — vendor-neutral interface for the durable object store.

Implementations must handle:
    - Idempotent container bootstrap (``ConflictError`` when it already exists)
    - Streaming writes whose ``close()`` confirms durability
    - Streaming reads whose ``open()`` raises ``NotFoundError`` for absent keys
    - Whole-value ``download``/``save``, ``move`` and prefix listing

Only the create-then-rename primitives are required; content addressing is
layered on top by the write pipeline.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class WriteOptions:
    """Per-write backend options."""

    content_type: str = "application/octet-stream"
    public: bool = True
    # False disables the resumable (multipart) protocol, for small objects.
    resumable: bool = True
    metadata: Dict[str, str] = field(default_factory=dict)


class ObjectWriter(ABC):
    """Writable sink for one object."""

    @abstractmethod
    async def write(self, chunk: bytes) -> None:
        """Append *chunk*; may wait for the backend (backpressure)."""

    @abstractmethod
    async def close(self) -> None:
        """Flush and return only once the object is durable."""

    @abstractmethod
    async def abort(self) -> None:
        """Discard the in-flight upload; must not raise for partial state."""


class ObjectReader(ABC):
    """Readable source for one object."""

    @abstractmethod
    async def open(self) -> None:
        """
        Issue the request and wait for the first response.

        Raises:
            NotFoundError: the object does not exist.
        """

    @abstractmethod
    async def read(self, size: int = -1) -> bytes:
        """Return up to *size* bytes; ``b""`` at end of object."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""


class ListEntry(ABC):
    """Handle returned by ``list_with_prefix``."""

    key: str

    @abstractmethod
    async def download(self) -> bytes:
        """Download the full content of this entry."""


class ObjectStoreBackend(ABC):
    """Abstract base for durable object stores."""

    @abstractmethod
    async def container_exists(self) -> bool:
        """Check whether the configured container exists."""

    @abstractmethod
    async def create_container(self) -> None:
        """
        Create the configured container.

        Raises:
            ConflictError: the container already exists.
        """

    @abstractmethod
    async def open_write_stream(self, key: str, options: WriteOptions) -> ObjectWriter:
        """Return a writer for *key* annotated with *options*."""

    @abstractmethod
    def open_read_stream(self, key: str) -> ObjectReader:
        """Return an unopened reader for *key*."""

    @abstractmethod
    async def exists(self, key: str) -> Any:
        """
        Existence probe.

        May return a bool, a one-element sequence (``[True]``), or ``None``;
        the facade normalises the answer.
        """

    @abstractmethod
    async def download(self, key: str) -> bytes:
        """Return the full content of *key*."""

    @abstractmethod
    async def save(self, key: str, content: bytes, options: WriteOptions) -> None:
        """Store *content* at *key* in one call."""

    @abstractmethod
    async def move(self, key: str, new_key: str) -> None:
        """Rename *key* to *new_key*, removing *key*."""

    @abstractmethod
    async def list_with_prefix(self, prefix: str) -> Optional[List[ListEntry]]:
        """Return every entry whose key starts with *prefix* (recursive)."""
