from __future__ import annotations

import json
from typing import Any, Sequence

from chatbridge.errors import EmptyConversation, InvalidConversation
from chatbridge.providers.types import (
    AssistantTurn,
    ConversationTurn,
    Dialect,
    SystemTurn,
    ToolDefinition,
    ToolTurn,
    UserTurn,
    WireRequest,
)

TOOL_RESULT_LABEL = "결과"
TOOL_CALL_LABEL = "호출"


def flatten_tool_result(turn: ToolTurn) -> str:
    name = turn.tool_name or "tool"
    return f"{name} {TOOL_RESULT_LABEL}: {turn.result_text}"


def describe_tool_calls(turn: AssistantTurn) -> str:
    return ", ".join(f"{call.name} {TOOL_CALL_LABEL}" for call in turn.tool_calls)


def to_wire_format(
    dialect: Dialect,
    turns: Sequence[ConversationTurn],
    tools: Sequence[ToolDefinition] | None = None,
) -> WireRequest:
    if not turns:
        raise EmptyConversation()
    if not dialect.is_proxy:
        _check_tool_correlation(turns)

    if dialect.is_anthropic:
        request = _to_anthropic(dialect, turns)
    else:
        request = WireRequest(messages=[_to_openai_message(dialect, turn) for turn in turns])

    if tools:
        request.tools = to_wire_tools(dialect, tools)
    return request


def to_wire_tools(dialect: Dialect, tools: Sequence[ToolDefinition]) -> list[dict[str, Any]]:
    if dialect.is_anthropic:
        return [
            {"name": tool.name, "description": tool.description, "input_schema": tool.parameter_schema}
            for tool in tools
        ]
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameter_schema,
            },
        }
        for tool in tools
    ]


def _check_tool_correlation(turns: Sequence[ConversationTurn]) -> None:
    seen: set[str] = set()
    for index, turn in enumerate(turns):
        if isinstance(turn, AssistantTurn):
            seen.update(call.id for call in turn.tool_calls)
        elif isinstance(turn, ToolTurn) and turn.tool_call_id not in seen:
            raise InvalidConversation(
                f"tool turn #{index} references unknown tool call id {turn.tool_call_id!r}"
            )


def _to_openai_message(dialect: Dialect, turn: ConversationTurn) -> dict[str, Any]:
    if isinstance(turn, SystemTurn):
        return {"role": "system", "content": turn.text}
    if isinstance(turn, UserTurn):
        return {"role": "user", "content": turn.text}
    if isinstance(turn, AssistantTurn):
        payload: dict[str, Any] = {"role": "assistant", "content": turn.text}
        # The proxy rejects tool_calls in history, so they are dropped there.
        if turn.tool_calls and dialect == Dialect.OPENAI:
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments, ensure_ascii=False)},
                }
                for call in turn.tool_calls
            ]
            if not turn.text:
                payload["content"] = None
        return payload
    if isinstance(turn, ToolTurn):
        if dialect == Dialect.CUSTOM_PROXY:
            return {"role": "user", "content": flatten_tool_result(turn)}
        return {"role": "tool", "content": turn.result_text, "tool_call_id": turn.tool_call_id}
    raise TypeError(f"Unsupported conversation turn: {type(turn).__name__}")


def _to_anthropic(dialect: Dialect, turns: Sequence[ConversationTurn]) -> WireRequest:
    request = WireRequest(messages=[])
    for index, turn in enumerate(turns):
        if isinstance(turn, SystemTurn):
            if request.system is not None:
                request.warnings.append(f"system turn #{index} overrides an earlier system turn")
            request.system = turn.text
            continue
        request.messages.append(_to_anthropic_message(dialect, turn))
    return request


def _to_anthropic_message(dialect: Dialect, turn: ConversationTurn) -> dict[str, Any]:
    if isinstance(turn, UserTurn):
        return {"role": "user", "content": [{"type": "text", "text": turn.text}]}
    if isinstance(turn, AssistantTurn):
        blocks: list[dict[str, Any]] = []
        if turn.text:
            blocks.append({"type": "text", "text": turn.text})
        if dialect == Dialect.ANTHROPIC:
            blocks.extend(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
                for call in turn.tool_calls
            )
        if not blocks and turn.tool_calls:
            # Anthropic endpoints reject empty text blocks; name the dropped calls instead.
            blocks.append({"type": "text", "text": describe_tool_calls(turn)})
        return {"role": "assistant", "content": blocks or [{"type": "text", "text": ""}]}
    if isinstance(turn, ToolTurn):
        if dialect == Dialect.ANTHROPIC_PROXY:
            return {"role": "user", "content": [{"type": "text", "text": flatten_tool_result(turn)}]}
        return {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": turn.tool_call_id, "content": turn.result_text}],
        }
    raise TypeError(f"Unsupported conversation turn: {type(turn).__name__}")
