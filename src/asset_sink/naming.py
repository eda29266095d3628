"""
Object key helpers.

Temporary keys carry the ``tmp-`` sentinel and are never produced by
``finalized_key``, which only ever yields ``<hash>.<type>``.
"""
import secrets
import time

TEMP_PREFIX = "tmp-"


def allocate_temp_key(declared_type: str) -> str:
    """
    Return a temporary key ``tmp-<epoch-ms>-<random>.<type>``.

    Pure generation: does not consult storage and does not block. Unique
    with overwhelming probability for the write-then-rename window only.
    """
    stamp = time.time_ns() // 1_000_000
    return f"{TEMP_PREFIX}{stamp}-{secrets.token_hex(6)}.{declared_type}"


def finalized_key(content_hash: str, declared_type: str) -> str:
    return f"{content_hash}.{declared_type}"


def is_temp_key(key: str) -> bool:
    """True for keys produced by ``allocate_temp_key`` (used by external GC sweeps)."""
    return key.rsplit("/", 1)[-1].startswith(TEMP_PREFIX)


def normalize_dir_prefix(prefix: str | None) -> str:
    """Strip leading/trailing slashes; ``None``, ``""`` and ``"/"`` are the root (``""``)."""
    return (prefix or "").strip("/")


def list_query_prefix(normalized: str) -> str:
    """Backend list prefix for a normalized directory: root lists everything."""
    return f"{normalized}/" if normalized else ""


def parent_of(key: str) -> str:
    """Parent directory segment of *key* (``""`` for root-level keys)."""
    key = key.strip("/")
    if "/" not in key:
        return ""
    return key.rsplit("/", 1)[0]
