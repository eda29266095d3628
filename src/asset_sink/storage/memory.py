"""
MemoryBackend — in-process implementation of ObjectStoreBackend.

Used for local development and tests. Writes become visible only on
``close()``, mirroring the durability signal of a real object store.
"""
import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional

from asset_sink.errors import ConflictError, NotFoundError
from asset_sink.storage.interface import (
    ListEntry,
    ObjectReader,
    ObjectStoreBackend,
    ObjectWriter,
    WriteOptions,
)


@dataclass
class StoredObject:
    content: bytes
    options: WriteOptions


class _MemoryWriter(ObjectWriter):
    def __init__(self, backend: "MemoryBackend", key: str, options: WriteOptions) -> None:
        self._backend = backend
        self._key = key
        self._options = options
        self._parts: List[bytes] = []
        self._closed = False

    async def write(self, chunk: bytes) -> None:
        if self._closed:
            raise ValueError(f"write after close on '{self._key}'")
        self._parts.append(bytes(chunk))
        await asyncio.sleep(0)

    async def close(self) -> None:
        self._closed = True
        self._backend.objects[self._key] = StoredObject(b"".join(self._parts), self._options)

    async def abort(self) -> None:
        self._closed = True
        self._parts = []


class _MemoryReader(ObjectReader):
    def __init__(self, backend: "MemoryBackend", key: str) -> None:
        self._backend = backend
        self._key = key
        self._content: Optional[bytes] = None
        self._offset = 0

    async def open(self) -> None:
        stored = self._backend.objects.get(self._key)
        if stored is None:
            raise NotFoundError(self._key)
        self._content = stored.content

    async def read(self, size: int = -1) -> bytes:
        if self._content is None:
            raise RuntimeError("reader is not open")
        end = len(self._content) if size < 0 else self._offset + size
        chunk = self._content[self._offset:end]
        self._offset += len(chunk)
        await asyncio.sleep(0)
        return chunk

    async def close(self) -> None:
        self._content = None


class _MemoryEntry(ListEntry):
    def __init__(self, backend: "MemoryBackend", key: str) -> None:
        self._backend = backend
        self.key = key

    async def download(self) -> bytes:
        return await self._backend.download(self.key)


class MemoryBackend(ObjectStoreBackend):
    """Dict-backed object store."""

    def __init__(self, container: str = "memory", container_exists: bool = False) -> None:
        self.container = container
        self.has_container = container_exists
        self.objects: Dict[str, StoredObject] = {}

    async def container_exists(self) -> bool:
        return self.has_container

    async def create_container(self) -> None:
        if self.has_container:
            raise ConflictError(f"container '{self.container}' already exists")
        self.has_container = True

    async def open_write_stream(self, key: str, options: WriteOptions) -> ObjectWriter:
        return _MemoryWriter(self, key, options)

    def open_read_stream(self, key: str) -> ObjectReader:
        return _MemoryReader(self, key)

    async def exists(self, key: str) -> bool:
        return key in self.objects

    async def download(self, key: str) -> bytes:
        stored = self.objects.get(key)
        if stored is None:
            raise NotFoundError(key)
        return stored.content

    async def save(self, key: str, content: bytes, options: WriteOptions) -> None:
        self.objects[key] = StoredObject(bytes(content), options)

    async def move(self, key: str, new_key: str) -> None:
        stored = self.objects.pop(key, None)
        if stored is None:
            raise NotFoundError(key)
        self.objects[new_key] = stored

    async def list_with_prefix(self, prefix: str) -> Optional[List[ListEntry]]:
        return [
            _MemoryEntry(self, key)
            for key in sorted(self.objects)
            if key.startswith(prefix)
        ]
