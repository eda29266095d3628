"""
Readiness gate: one-time asynchronous bootstrap of the storage container.

The first ``wait()`` starts the bootstrap; every caller, including the
first, awaits the same shared task. A failed bootstrap is permanent for
the gate: every pending and future ``wait()`` re-raises the same error.
"""
import asyncio
from typing import Awaitable, Callable, Optional

from asset_sink.errors import ConflictError, wrap_error
from asset_sink.logging_config import get_logger
from asset_sink.storage.interface import ObjectStoreBackend
from asset_sink.tracing import get_tracer

logger = get_logger(__name__)
tracer = get_tracer(__name__)


async def ensure_container(backend: ObjectStoreBackend) -> str:
    """
    Use the container if it exists, otherwise create it.

    A ``ConflictError`` from ``create_container`` means another process won
    the race; the existing container is used. Any other failure is fatal.
    """
    with tracer.start_as_current_span("sink.bootstrap"):
        try:
            if await backend.container_exists():
                return "using existing storage container"
            try:
                await backend.create_container()
            except ConflictError:
                logger.info("container_conflict_recovered")
                return "using existing storage container"
            return "created storage container"
        except Exception as e:
            raise wrap_error(e) from e


class ReadinessGate:
    """Lazily-initialised, single-flight bootstrap future."""

    def __init__(
        self,
        bootstrap: Callable[[], Awaitable[str]],
        on_ready: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._bootstrap = bootstrap
        self._on_ready = on_ready
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> str:
        if self._task is None:
            return "unresolved"
        if not self._task.done():
            return "resolving"
        if self._task.cancelled() or self._task.exception() is not None:
            return "rejected"
        return "resolved"

    async def _run(self) -> str:
        try:
            message = await self._bootstrap()
        except Exception as e:
            logger.error("storage_bootstrap_failed", error=str(e))
            raise
        logger.info("storage_ready", message=message)
        if self._on_ready is not None:
            self._on_ready(message)
        return message

    async def wait(self) -> str:
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        # shield: one cancelled caller must not cancel the shared bootstrap
        return await asyncio.shield(self._task)
