from __future__ import annotations

import json
from typing import Any, AsyncIterator

from chatbridge.providers.types import Dialect

DONE_MARKER = "[DONE]"
_ANTHROPIC_STOP_EVENT = "message_stop"
_ANTHROPIC_DELTA_EVENT = "content_block_delta"


def parse_stream_line(dialect: Dialect, line: str, event: str = "") -> tuple[str | None, bool]:
    """Parse one server-sent line into ``(fragment, finished)``.

    Lines that are not ``data:`` lines, and data chunks that fail to parse,
    yield no fragment and do not end the stream.
    """
    stripped = line.strip()
    if not stripped.startswith("data:"):
        return None, False
    data = stripped[5:].strip()
    if data == DONE_MARKER:
        return None, True
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError:
        return None, False
    if not isinstance(chunk, dict):
        return None, False

    if dialect.is_anthropic:
        return _anthropic_fragment(chunk, event)
    return _openai_fragment(chunk), False


async def iter_stream_text(dialect: Dialect, lines: AsyncIterator[str]) -> AsyncIterator[str]:
    current_event = ""
    async for line in lines:
        if line.startswith("event:"):
            current_event = line[6:].strip()
            continue
        fragment, finished = parse_stream_line(dialect, line, current_event)
        if fragment:
            yield fragment
        if finished:
            break


def _openai_fragment(chunk: dict[str, Any]) -> str | None:
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    content = (choices[0].get("delta") or {}).get("content")
    return content if isinstance(content, str) else None


def _anthropic_fragment(chunk: dict[str, Any], event: str) -> tuple[str | None, bool]:
    chunk_type = chunk.get("type") or event
    if chunk_type == _ANTHROPIC_STOP_EVENT:
        return None, True
    if chunk_type != _ANTHROPIC_DELTA_EVENT:
        return None, False
    text = (chunk.get("delta") or {}).get("text")
    return (text if isinstance(text, str) else None), False
