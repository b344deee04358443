"""Dialect selection and tolerant response parsing.

Providers and the custom proxy answer in several historical shapes. Each
shape is tried in a fixed priority order through an explicit predicate:

1. ``choices`` array (OpenAI-style) or ``content`` block array (Anthropic-style)
2. top-level ``response`` field
3. top-level ``answer`` field
4. top-level ``result`` field
5. the whole object, stringified

Strict dialects stop with :class:`UnrecognizedShape` when an object matches
none of 1-4. Proxy dialects always end at 5, and fall back to the raw body
text when it is not JSON at all.
"""

from __future__ import annotations

import json
from typing import Any

from chatbridge.errors import MalformedResponse, ToolArgumentsDecodeError, UnrecognizedShape
from chatbridge.providers.types import (
    AuthCredential,
    CustomCredential,
    Dialect,
    NormalizedResponse,
    ProviderType,
    ToolCallRequest,
)

FALLBACK_FIELDS = ("response", "answer", "result")
_MAX_DECODE_DEPTH = 3
_PREVIEW_CHARS = 200


def provider_mode(provider_type: ProviderType, credential: AuthCredential) -> Dialect:
    custom = isinstance(credential, CustomCredential)
    if provider_type == ProviderType.ANTHROPIC:
        return Dialect.ANTHROPIC_PROXY if custom else Dialect.ANTHROPIC
    return Dialect.CUSTOM_PROXY if custom else Dialect.OPENAI


def normalize(dialect: Dialect, raw_body: str | bytes | dict[str, Any] | list[Any]) -> NormalizedResponse:
    payload, decoded = decode_body(raw_body)
    if not decoded:
        if not dialect.is_proxy:
            raise MalformedResponse(f"Response is not valid JSON: {_preview(payload)}")
        return NormalizedResponse(text=payload, tool_calls=[], raw=raw_body)
    if not isinstance(payload, dict):
        if not dialect.is_proxy:
            raise UnrecognizedShape(f"Response matches no known shape: {_preview(payload)}")
        return NormalizedResponse(text=_as_text(payload), tool_calls=[], raw=payload)

    if dialect.is_anthropic:
        return _normalize_anthropic(dialect, payload)
    return _normalize_openai(dialect, payload)


def _normalize_openai(dialect: Dialect, payload: dict[str, Any]) -> NormalizedResponse:
    primary = _extract_openai(payload)
    if primary is not None and (primary.text or primary.tool_calls):
        return primary
    fallback = _extract_fallback(payload)
    if fallback is not None:
        return fallback
    if primary is None and not dialect.is_proxy:
        raise UnrecognizedShape(f"Response matches no known shape: {_preview(payload)}")
    return NormalizedResponse(text=_as_text(payload), tool_calls=[], raw=payload)


def _normalize_anthropic(dialect: Dialect, payload: dict[str, Any]) -> NormalizedResponse:
    primary = _extract_anthropic(payload)
    if primary is not None:
        return primary
    if not dialect.is_proxy:
        raise UnrecognizedShape(f"Response has no content blocks: {_preview(payload)}")
    fallback = _extract_fallback(payload)
    if fallback is not None:
        return fallback
    return NormalizedResponse(text=_as_text(payload), tool_calls=[], raw=payload)


def _extract_fallback(payload: dict[str, Any]) -> NormalizedResponse | None:
    for key in FALLBACK_FIELDS:
        if has_field(payload, key):
            return NormalizedResponse(text=_as_text(payload[key]), tool_calls=[], raw=payload)
    return None


def decode_body(raw_body: Any) -> tuple[Any, bool]:
    """Return the parsed payload and whether it was JSON.

    Proxies may wrap the real payload in a JSON string, so decoding repeats
    while the result is still a string.
    """
    if isinstance(raw_body, bytes):
        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            return raw_body.decode("utf-8", errors="replace"), False
    else:
        payload = raw_body
    depth = 0
    while isinstance(payload, str):
        if depth >= _MAX_DECODE_DEPTH:
            return payload, False
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            return payload, False
        depth += 1
    return payload, True


def has_choices(payload: dict[str, Any]) -> bool:
    choices = payload.get("choices")
    return isinstance(choices, list) and len(choices) > 0 and isinstance(choices[0], dict)


def has_content_blocks(payload: dict[str, Any]) -> bool:
    return isinstance(payload.get("content"), list)


def has_field(payload: dict[str, Any], key: str) -> bool:
    value = payload.get(key)
    return value is not None and value != ""


def parse_tool_arguments(index: int, raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if raw is None or raw == "":
        return {}
    if not isinstance(raw, str):
        raise ToolArgumentsDecodeError(index, repr(raw), f"unexpected type {type(raw).__name__}")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolArgumentsDecodeError(index, raw, str(exc)) from exc
    if not isinstance(parsed, dict):
        raise ToolArgumentsDecodeError(index, raw, "arguments must decode to an object")
    return parsed


def _extract_openai(payload: dict[str, Any]) -> NormalizedResponse | None:
    if not has_choices(payload):
        return None
    message = payload["choices"][0].get("message") or {}
    content = message.get("content")
    text = content if isinstance(content, str) else ""

    tool_calls: list[ToolCallRequest] = []
    for index, tc in enumerate(message.get("tool_calls") or []):
        function = tc.get("function") or {}
        tool_calls.append(
            ToolCallRequest(
                id=tc.get("id") or f"call_{index + 1}",
                name=function.get("name", ""),
                arguments=parse_tool_arguments(index, function.get("arguments")),
            )
        )
    return NormalizedResponse(text=text, tool_calls=tool_calls, raw=payload)


def _extract_anthropic(payload: dict[str, Any]) -> NormalizedResponse | None:
    if not has_content_blocks(payload):
        return None
    text_parts: list[str] = []
    tool_calls: list[ToolCallRequest] = []
    for block in payload["content"]:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            text_parts.append(block.get("text") or "")
        elif block_type == "tool_use":
            tool_calls.append(
                ToolCallRequest(
                    id=block.get("id") or f"toolu_{len(tool_calls) + 1}",
                    name=block.get("name", ""),
                    arguments=parse_tool_arguments(len(tool_calls), block.get("input")),
                )
            )
    return NormalizedResponse(text="".join(text_parts), tool_calls=tool_calls, raw=payload)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _preview(value: Any) -> str:
    return _as_text(value)[:_PREVIEW_CHARS]
