"""
Error taxonomy for the sink.

- ``InvalidArgumentError`` — bad caller input, raised synchronously before any I/O
- ``NotFoundError`` — object absent on ``get`` or on a read pipeline
- ``ServiceUnavailableError`` — retry budget exhausted on ``get``/``set``
- ``ConflictError`` — container already exists during bootstrap
- ``BackendProtocolError`` — any other backend-reported failure
- ``ListingError`` — the single "missing folder or empty result" error of ``dir``

Backends may surface plain data (dicts, strings) instead of exceptions;
``wrap_error`` normalises everything into a ``SinkError`` carrying
``message`` and an optional ``data`` list of collected sub-errors.
"""
from typing import Any, List, Optional


class SinkError(Exception):
    """Base exception for every error surfaced by the sink."""

    def __init__(self, message: str, data: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data


class InvalidArgumentError(SinkError, ValueError):
    """Raised when a required parameter is missing or cannot be resolved."""


class NotFoundError(SinkError):
    """Raised when the requested object does not exist."""

    def __init__(self, key: str, message: Optional[str] = None, data: Optional[List[Any]] = None) -> None:
        super().__init__(message or f"object '{key}' not found", data)
        self.key = key


class ServiceUnavailableError(SinkError):
    """Raised when a facade operation exhausted its retry budget."""

    def __init__(self, key: str, attempts: int, cause: BaseException) -> None:
        super().__init__(
            f"backend unavailable for '{key}' after {attempts} attempts: {cause}",
            [cause],
        )
        self.key = key
        self.attempts = attempts
        self.__cause__ = cause


class ConflictError(SinkError):
    """Raised by a backend when a container already exists."""


class BackendProtocolError(SinkError):
    """Raised for any other failure reported by the backend."""


class PipelineTimeoutError(BackendProtocolError):
    """Raised when a streaming pipeline sees no input within the idle timeout."""


class ListingError(SinkError):
    """Raised by ``dir`` when the folder is missing or the result is empty."""

    def __init__(self, prefix: str) -> None:
        super().__init__(f"missing folder or empty result for '{prefix}'")
        self.prefix = prefix


def wrap_error(err: Any) -> SinkError:
    """
    Normalise *err* into a ``SinkError``.

    ``SinkError`` instances pass through unchanged. Other exceptions become
    a ``BackendProtocolError`` chained to the original. Dicts are read for
    ``message`` and ``errors``/``data``; anything else is stringified.
    """
    if isinstance(err, SinkError):
        return err

    if isinstance(err, BaseException):
        wrapped = BackendProtocolError(str(err) or type(err).__name__)
        wrapped.__cause__ = err
        return wrapped

    if isinstance(err, dict):
        message = err.get("message") or err.get("error") or "backend reported an error"
        data = err.get("errors") or err.get("data")
        if data is not None and not isinstance(data, list):
            data = [data]
        return BackendProtocolError(str(message), data)

    if err is None:
        return BackendProtocolError("backend reported an unknown error")

    return BackendProtocolError(str(err))
