"""Tests for incremental SSE parsing."""

import pytest

from providers.errors import ErrorCode, ProviderError
from providers.streaming import collect_text, iter_sse_data, parse_json_payload
from providers.types import StreamChunk


async def chunks(*parts):
    for part in parts:
        yield part


async def stream_of(*items):
    for item in items:
        yield item


@pytest.mark.asyncio
async def test_lines_split_across_reads():
    reads = chunks(b'data: {"a"', b": 1}\n\ndata: caf\xc3", b"\xa9\n", b"data: tail")
    assert [data async for data in iter_sse_data(reads)] == ['{"a": 1}', "café", "tail"]


@pytest.mark.asyncio
async def test_non_data_lines_ignored():
    reads = chunks(": keep-alive\n", "event: message_start\n", "data: one\r\n", "\n", "id: 4\n")
    assert [data async for data in iter_sse_data(reads)] == ["one"]


@pytest.mark.asyncio
async def test_custom_marker():
    reads = chunks(b"data:compact\n")
    assert [data async for data in iter_sse_data(reads, marker="data:")] == ["compact"]


def test_parse_json_payload():
    assert parse_json_payload('{"x": 1}') == {"x": 1}
    assert parse_json_payload('{"x": ') is None
    assert parse_json_payload("[1, 2]") is None


@pytest.mark.asyncio
async def test_collect_text():
    text = await collect_text(
        stream_of(StreamChunk.token("Hello"), StreamChunk.meta(input_tokens=1), StreamChunk.token(" world"), StreamChunk.complete())
    )
    assert text == "Hello world"


@pytest.mark.asyncio
async def test_collect_text_raises_error_chunk():
    error = ProviderError(ErrorCode.STREAM_ERROR, "connection reset", True)
    with pytest.raises(ProviderError) as exc_info:
        await collect_text(stream_of(StreamChunk.token("Hel"), StreamChunk.failed(error)))
    assert exc_info.value is error


def test_chunk_terminality():
    assert StreamChunk.complete().is_terminal
    assert StreamChunk.failed(ProviderError(ErrorCode.STREAM_ERROR, "x")).is_terminal
    assert not StreamChunk.token("x").is_terminal
    assert not StreamChunk.meta(finish_reason="stop").is_terminal
