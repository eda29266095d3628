"""MIME type resolution for declared types and key extensions."""
import mimetypes
from typing import Dict, Optional

from asset_sink.errors import InvalidArgumentError

# Asset types resolved explicitly; the platform mimetypes table varies by OS.
_OVERRIDES: Dict[str, str] = {
    "json": "application/json",
    "js": "application/javascript",
    "css": "text/css",
    "map": "application/json",
    "txt": "text/plain",
    "html": "text/html",
    "svg": "image/svg+xml",
}

# Declared types hashed over parsed elements instead of raw bytes.
STRUCTURED_TYPES = frozenset({"json"})


def resolve_content_type(declared_type: Optional[str]) -> Optional[str]:
    """Return the MIME type for *declared_type* (``json`` or ``.json``), or ``None``."""
    if not declared_type:
        return None
    token = declared_type.strip().lstrip(".").lower()
    if not token:
        return None
    if token in _OVERRIDES:
        return _OVERRIDES[token]
    return mimetypes.types_map.get(f".{token}")


def content_type_for(declared_type: Optional[str]) -> str:
    """Like ``resolve_content_type`` but raises ``InvalidArgumentError`` when unknown."""
    content_type = resolve_content_type(declared_type)
    if content_type is None:
        raise InvalidArgumentError(f'"type" {declared_type!r} has no known MIME type')
    return content_type


def is_structured(declared_type: str) -> bool:
    return declared_type.lower() in STRUCTURED_TYPES


_TEXTUAL_APPLICATION_TYPES = frozenset({
    "application/json",
    "application/javascript",
    "application/xml",
    "image/svg+xml",
})


def is_textual(content_type: Optional[str]) -> bool:
    """True for MIME types whose payload is character data."""
    if not content_type:
        return False
    content_type = content_type.split(";", 1)[0].strip().lower()
    return (
        content_type.startswith("text/")
        or content_type in _TEXTUAL_APPLICATION_TYPES
        or content_type.endswith(("+json", "+xml"))
    )
