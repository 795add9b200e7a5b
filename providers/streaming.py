"""Incremental server-sent-event parsing for token streams."""

import codecs
import json
import logging
from typing import Any, AsyncIterable, AsyncIterator

from providers.errors import ErrorCode, ProviderError
from providers.types import StreamChunk

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


async def iter_sse_data(chunks: AsyncIterable[bytes | str], marker: str = DATA_PREFIX) -> AsyncIterator[str]:
    """Yield the payload of every complete line that starts with ``marker``.

    A read may end mid-line (or mid UTF-8 sequence), so the trailing partial
    line is carried over to the next read.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""

    async for chunk in chunks:
        buffer += decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        lines = buffer.split("\n")
        buffer = lines.pop()
        for line in lines:
            line = line.rstrip("\r")
            if line.startswith(marker):
                yield line[len(marker):]

    buffer += decoder.decode(b"", final=True)
    line = buffer.rstrip("\r")
    if line.startswith(marker):
        yield line[len(marker):]


def parse_json_payload(data: str) -> dict | None:
    """Parse one event payload. Truncated or non-object lines give None."""
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping unparseable stream line: %.80s", data)
        return None
    return payload if isinstance(payload, dict) else None


def error_message(error: Any, default: str) -> str:
    """Message from an in-stream error field, which vendors send as an object or a plain string."""
    if isinstance(error, dict):
        return str(error.get("message") or default)
    if isinstance(error, str) and error:
        return error
    return default


async def collect_text(stream: AsyncIterable[StreamChunk]) -> str:
    """Drain a stream into its text, raising the error chunk if one arrives."""
    parts: list[str] = []
    async for chunk in stream:
        if chunk.type == "token" and chunk.content:
            parts.append(chunk.content)
        elif chunk.type == "error":
            raise chunk.error or ProviderError(ErrorCode.STREAM_ERROR, "Stream failed")
        elif chunk.type == "complete":
            break
    return "".join(parts)
