import pytest

from asset_sink.config import Settings
from asset_sink.sink import Sink
from asset_sink.storage.memory import MemoryBackend


@pytest.fixture
def config() -> Settings:
    """Immediate retries and a short idle timeout keep unit tests fast."""
    return Settings(
        retry_attempts=3,
        retry_backoff_seconds=0,
        stream_queue_size=4,
        stream_idle_timeout_seconds=5,
        read_chunk_bytes=4,
    )


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend(container="test-assets")


@pytest.fixture
def sink(backend, config) -> Sink:
    return Sink(backend, config=config)
