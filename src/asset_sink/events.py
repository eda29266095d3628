"""
Pipeline events and a minimal emitter.

Terminal outcomes are frozen dataclasses. Pipelines publish them both as
named signals (``on("file saved", cb)``) and through a single future, so a
caller can either subscribe or ``await pipeline.result()``.
"""
import asyncio
import inspect
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, List

from asset_sink.errors import SinkError
from asset_sink.logging_config import get_logger

logger = get_logger(__name__)

FILE_SAVED = "file saved"
FILE_NOT_SAVED = "file not saved"
FILE_FOUND = "file found"
FILE_NOT_FOUND = "file not found"
ERROR = "error"
STORAGE_INFO = "storage info"


@dataclass(frozen=True)
class FileSaved:
    hash: str
    key: str


@dataclass(frozen=True)
class FileNotSaved:
    """Finalize (rename) failed; the object remains at ``temp_key``."""

    error: SinkError
    temp_key: str


@dataclass(frozen=True)
class FileFound:
    key: str


@dataclass(frozen=True)
class FileNotFound:
    key: str
    error: SinkError


@dataclass(frozen=True)
class StreamFailed:
    """A branch of the pipeline errored; no saved/not-saved event follows."""

    error: SinkError


@dataclass(frozen=True)
class ReadFinished:
    key: str
    bytes_read: int


Listener = Callable[[Any], Any]


class EventEmitter:
    """
    Named-signal subscription.

    Listeners may be plain callables or coroutine functions; coroutines are
    scheduled on the running loop. A raising listener is logged and does not
    stop delivery to the remaining listeners.
    """

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._tasks: set = set()

    def on(self, event: str, listener: Listener) -> Listener:
        self._listeners[event].append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        def _once(payload: Any) -> Any:
            self.off(event, _once)
            return listener(payload)

        return self.on(event, _once)

    def off(self, event: str, listener: Listener) -> None:
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    def emit(self, event: str, payload: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                result = listener(payload)
            except Exception:
                logger.error("listener_failed", signal=event, exc_info=True)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
