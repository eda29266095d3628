"""
Streaming content hashers.

Two variants, selected by declared type:

- ``RawHasher`` — digest over the raw bytes as they stream through. Also
  acts as a transparent tee: ``tee(chunk)`` returns the chunk unchanged.
- ``StructuredHasher`` — incremental parse of a JSON array (``ijson`` push
  interface); each element is re-serialised canonically and folded into the
  digest, so formatting and key order do not affect the hash.

``hexdigest`` is only available after ``finish()``.
"""
import hashlib
import json
from typing import Any, Dict

import ijson

from asset_sink.mime import is_structured

# Element terminator; canonical JSON never contains a raw newline.
_ELEMENT_SEPARATOR = b"\n"


class ContentHasher:
    """Base class for streaming hashers."""

    def __init__(self, algorithm: str = "sha1") -> None:
        self._digest = hashlib.new(algorithm)
        self._hexdigest: str | None = None

    def update(self, chunk: bytes) -> None:
        raise NotImplementedError

    def finish(self) -> str:
        """Signal end-of-stream and return the final hex digest."""
        if self._hexdigest is None:
            self._hexdigest = self._digest.hexdigest()
        return self._hexdigest

    @property
    def finished(self) -> bool:
        return self._hexdigest is not None

    @property
    def hexdigest(self) -> str:
        if self._hexdigest is None:
            raise RuntimeError("hash is not available before end of stream")
        return self._hexdigest


class RawHasher(ContentHasher):
    """Digest over raw bytes, no parsing."""

    def update(self, chunk: bytes) -> None:
        if self.finished:
            raise RuntimeError("hasher already finished")
        self._digest.update(chunk)

    def tee(self, chunk: bytes) -> bytes:
        self.update(chunk)
        return chunk


class StructuredHasher(ContentHasher):
    """
    Digest folded over the elements of a top-level JSON array.

    The stream is fed to ``ijson.items_coro`` chunk by chunk; complete
    elements are drained after every chunk so memory stays bounded by the
    largest single element, not the document.
    """

    def __init__(self, algorithm: str = "sha1") -> None:
        super().__init__(algorithm)
        self._elements = ijson.sendable_list()
        self._coro = ijson.items_coro(self._elements, "item", use_float=True)
        self._started = False
        self.element_count = 0

    def update(self, chunk: bytes) -> None:
        if self.finished:
            raise RuntimeError("hasher already finished")
        if not chunk:
            return
        if not self._started:
            head = chunk.lstrip()
            if not head:
                return
            if head[:1] != b"[":
                raise ValueError("structured content must be a JSON array")
            self._started = True
        self._coro.send(chunk)
        self._drain()

    def finish(self) -> str:
        if self.finished:
            return self._hexdigest
        if not self._started:
            raise ValueError("structured content is empty")
        # close() flushes the parser and raises on truncated documents
        self._coro.close()
        self._drain()
        return super().finish()

    def _drain(self) -> None:
        for element in self._elements:
            self._digest.update(canonical_bytes(element))
            self._digest.update(_ELEMENT_SEPARATOR)
            self.element_count += 1
        del self._elements[:]


def canonical_bytes(element: Any) -> bytes:
    """Canonical serialisation: sorted keys, compact separators, UTF-8."""
    return json.dumps(
        element, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


HASHER_REGISTRY: Dict[str, type] = {
    "structured": StructuredHasher,
    "raw": RawHasher,
}


def get_hasher(declared_type: str, algorithm: str = "sha1") -> ContentHasher:
    """Resolve the hasher variant for *declared_type*."""
    variant = "structured" if is_structured(declared_type) else "raw"
    return HASHER_REGISTRY[variant](algorithm)
