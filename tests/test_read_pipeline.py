"""Unit tests for ReadStream — found / not-found / error signalling."""
import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from asset_sink.errors import InvalidArgumentError, NotFoundError
from asset_sink.events import FileFound, FileNotFound, ReadFinished, StreamFailed
from asset_sink.storage.interface import ObjectReader, WriteOptions


@pytest.mark.asyncio
async def test_reader_relays_bytes_unchanged(sink, backend):
    await backend.save("abc.css", b"body { margin: 0 }", WriteOptions())
    found = []
    stream = sink.reader("abc.css")
    stream.on("file found", found.append)

    chunks = [chunk async for chunk in stream]

    assert b"".join(chunks) == b"body { margin: 0 }"
    assert all(len(chunk) <= 4 for chunk in chunks)
    assert found == [FileFound("abc.css")]
    assert await stream.found() == FileFound("abc.css")
    assert await stream.result() == ReadFinished("abc.css", 18)


@pytest.mark.asyncio
async def test_found_resolves_before_iteration_starts(sink, backend):
    await backend.save("abc.css", b"a{}", WriteOptions())
    stream = sink.reader("abc.css")

    assert await asyncio.wait_for(stream.found(), timeout=1) == FileFound("abc.css")
    assert await stream.read_all() == b"a{}"
    assert await stream.result() == ReadFinished("abc.css", 3)


@pytest.mark.asyncio
async def test_open_is_requested_once_when_found_precedes_iteration(sink, backend):
    reader = AsyncMock(spec=ObjectReader)
    reader.read.side_effect = [b"a{}", b""]
    backend.open_read_stream = MagicMock(return_value=reader)
    stream = sink.reader("abc.css")

    await asyncio.wait_for(stream.found(), timeout=1)
    assert await stream.read_all() == b"a{}"

    backend.open_read_stream.assert_called_once_with("abc.css")
    reader.open.assert_awaited_once()


@pytest.mark.asyncio
async def test_result_of_missing_object_resolves_without_iterating(sink):
    stream = sink.reader("missing.json")

    outcome = await asyncio.wait_for(stream.result(), timeout=1)

    assert isinstance(outcome, FileNotFound)
    assert await stream.found() == outcome


@pytest.mark.asyncio
async def test_missing_object_emits_not_found(sink):
    not_found, errors = [], []
    stream = sink.reader("missing.json")
    stream.on("file not found", not_found.append)
    stream.on("error", errors.append)

    assert await stream.read_all() == b""

    outcome = await stream.result()
    assert isinstance(outcome, FileNotFound)
    assert outcome.key == "missing.json"
    assert isinstance(outcome.error, NotFoundError)
    assert not_found == [outcome]
    assert errors == []


@pytest.mark.asyncio
async def test_other_backend_errors_are_generic(sink, backend):
    reader = AsyncMock(spec=ObjectReader)
    reader.open.side_effect = TimeoutError("read timed out")
    backend.open_read_stream = MagicMock(return_value=reader)
    not_found, errors = [], []
    stream = sink.reader("abc.css")
    stream.on("file not found", not_found.append)
    stream.on("error", errors.append)

    assert await stream.read_all() == b""

    outcome = await stream.found()
    assert isinstance(outcome, StreamFailed)
    assert errors == [outcome.error]
    assert not_found == []


@pytest.mark.asyncio
async def test_error_mid_stream_is_reported(sink, backend):
    reader = AsyncMock(spec=ObjectReader)
    reader.read.side_effect = [b"part", ConnectionResetError("reset by peer")]
    backend.open_read_stream = MagicMock(return_value=reader)
    stream = sink.reader("abc.css")

    assert await stream.read_all() == b"part"

    assert await stream.found() == FileFound("abc.css")
    outcome = await stream.result()
    assert isinstance(outcome, StreamFailed)
    assert outcome.error.message == "reset by peer"
    reader.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_stream_is_single_use(sink, backend):
    await backend.save("a.txt", b"x", WriteOptions())
    stream = sink.reader("a.txt")
    await stream.read_all()
    with pytest.raises(RuntimeError):
        await stream.read_all()


def test_reader_requires_key(sink):
    with pytest.raises(InvalidArgumentError, match='"key" is missing'):
        sink.reader("")
