from __future__ import annotations

import json

import pytest

from chatbridge.errors import EmptyConversation, InvalidConversation
from chatbridge.providers.translate import to_wire_format, to_wire_tools
from chatbridge.providers.types import (
    AssistantTurn,
    Dialect,
    SystemTurn,
    ToolCallRequest,
    ToolDefinition,
    ToolTurn,
    UserTurn,
)

WEATHER_CALL = ToolCallRequest(id="call_1", name="get_weather", arguments={"city": "Seoul"})


def _tool_conversation() -> list:
    return [
        SystemTurn("You are helpful."),
        UserTurn("Weather in Seoul?"),
        AssistantTurn(text="", tool_calls=(WEATHER_CALL,)),
        ToolTurn(tool_call_id="call_1", tool_name="get_weather", result_text='{"temp": 21}'),
    ]


def test_openai_messages_with_tool_round_trip() -> None:
    wire = to_wire_format(Dialect.OPENAI, _tool_conversation())
    assert [m["role"] for m in wire.messages] == ["system", "user", "assistant", "tool"]

    assistant = wire.messages[2]
    assert assistant["content"] is None
    assert assistant["tool_calls"] == [
        {
            "id": "call_1",
            "type": "function",
            "function": {"name": "get_weather", "arguments": json.dumps({"city": "Seoul"})},
        }
    ]
    assert wire.messages[3] == {"role": "tool", "content": '{"temp": 21}', "tool_call_id": "call_1"}
    assert wire.system is None


def test_openai_assistant_text_is_kept_next_to_tool_calls() -> None:
    turns = [UserTurn("hi"), AssistantTurn(text="checking", tool_calls=(WEATHER_CALL,))]
    wire = to_wire_format(Dialect.OPENAI, turns)
    assert wire.messages[1]["content"] == "checking"


def test_custom_proxy_flattens_tool_turns() -> None:
    wire = to_wire_format(Dialect.CUSTOM_PROXY, _tool_conversation())
    assert [m["role"] for m in wire.messages] == ["system", "user", "assistant", "user"]
    assert wire.messages[2] == {"role": "assistant", "content": ""}
    assert wire.messages[3] == {"role": "user", "content": 'get_weather 결과: {"temp": 21}'}


def test_custom_proxy_does_not_require_tool_correlation() -> None:
    turns = [UserTurn("hi"), ToolTurn(tool_call_id="orphan", tool_name="lookup", result_text="42")]
    wire = to_wire_format(Dialect.CUSTOM_PROXY, turns)
    assert wire.messages[1]["content"] == "lookup 결과: 42"


def test_strict_dialects_reject_uncorrelated_tool_turns() -> None:
    turns = [UserTurn("hi"), ToolTurn(tool_call_id="orphan", tool_name="lookup", result_text="42")]
    with pytest.raises(InvalidConversation):
        to_wire_format(Dialect.OPENAI, turns)
    with pytest.raises(InvalidConversation):
        to_wire_format(Dialect.ANTHROPIC, turns)


def test_anthropic_extracts_system_and_builds_blocks() -> None:
    wire = to_wire_format(Dialect.ANTHROPIC, _tool_conversation())
    assert wire.system == "You are helpful."
    assert [m["role"] for m in wire.messages] == ["user", "assistant", "user"]
    assert wire.messages[0]["content"] == [{"type": "text", "text": "Weather in Seoul?"}]
    assert wire.messages[1]["content"] == [
        {"type": "tool_use", "id": "call_1", "name": "get_weather", "input": {"city": "Seoul"}}
    ]
    assert wire.messages[2]["content"] == [
        {"type": "tool_result", "tool_use_id": "call_1", "content": '{"temp": 21}'}
    ]


def test_anthropic_text_block_precedes_tool_use() -> None:
    turns = [UserTurn("hi"), AssistantTurn(text="let me check", tool_calls=(WEATHER_CALL,))]
    blocks = to_wire_format(Dialect.ANTHROPIC, turns).messages[1]["content"]
    assert [b["type"] for b in blocks] == ["text", "tool_use"]


def test_anthropic_proxy_drops_tool_use_and_flattens_results() -> None:
    wire = to_wire_format(Dialect.ANTHROPIC_PROXY, _tool_conversation())
    assert wire.messages[1]["content"] == [{"type": "text", "text": "get_weather 호출"}]
    assert wire.messages[2]["content"] == [{"type": "text", "text": 'get_weather 결과: {"temp": 21}'}]


def test_anthropic_proxy_names_each_dropped_tool_call() -> None:
    lookup = ToolCallRequest(id="call_2", name="lookup", arguments={})
    turns = [UserTurn("hi"), AssistantTurn(text="", tool_calls=(WEATHER_CALL, lookup))]
    blocks = to_wire_format(Dialect.ANTHROPIC_PROXY, turns).messages[1]["content"]
    assert blocks == [{"type": "text", "text": "get_weather 호출, lookup 호출"}]
    assert all(block["text"] for block in blocks)

    with_text = [UserTurn("hi"), AssistantTurn(text="checking", tool_calls=(WEATHER_CALL,))]
    assert to_wire_format(Dialect.ANTHROPIC_PROXY, with_text).messages[1]["content"] == [
        {"type": "text", "text": "checking"}
    ]


def test_anthropic_last_system_turn_wins_with_warning() -> None:
    turns = [SystemTurn("first"), UserTurn("hi"), SystemTurn("second")]
    wire = to_wire_format(Dialect.ANTHROPIC, turns)
    assert wire.system == "second"
    assert len(wire.warnings) == 1
    assert "#2" in wire.warnings[0]


def test_ordering_of_non_system_turns_is_preserved() -> None:
    turns = [
        UserTurn("a"),
        SystemTurn("sys"),
        AssistantTurn("b"),
        UserTurn("c"),
        AssistantTurn("d"),
    ]
    openai = to_wire_format(Dialect.OPENAI, turns).messages
    anthropic = to_wire_format(Dialect.ANTHROPIC, turns).messages
    assert [m["content"] for m in openai if m["role"] != "system"] == ["a", "b", "c", "d"]
    assert [m["content"][0]["text"] for m in anthropic] == ["a", "b", "c", "d"]


def test_adjacent_same_role_turns_are_not_merged() -> None:
    wire = to_wire_format(Dialect.ANTHROPIC, [UserTurn("a"), UserTurn("b")])
    assert len(wire.messages) == 2


def test_empty_conversation_is_rejected() -> None:
    with pytest.raises(EmptyConversation):
        to_wire_format(Dialect.OPENAI, [])


def test_tool_definitions_per_dialect() -> None:
    schema = {"type": "object", "properties": {"city": {"type": "string"}}, "required": ["city"]}
    tool = ToolDefinition(name="get_weather", description="Current weather", parameter_schema=schema)

    openai = to_wire_tools(Dialect.OPENAI, [tool])
    assert openai == [
        {"type": "function", "function": {"name": "get_weather", "description": "Current weather", "parameters": schema}}
    ]
    anthropic = to_wire_tools(Dialect.ANTHROPIC, [tool])
    assert anthropic == [{"name": "get_weather", "description": "Current weather", "input_schema": schema}]

    wire = to_wire_format(Dialect.OPENAI, [UserTurn("hi")], [tool])
    assert wire.tools == openai


def test_translation_does_not_mutate_input() -> None:
    turns = _tool_conversation()
    snapshot = list(turns)
    to_wire_format(Dialect.ANTHROPIC, turns)
    assert turns == snapshot
