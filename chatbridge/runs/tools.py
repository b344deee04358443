from __future__ import annotations

import inspect
import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Sequence

from chatbridge.core.settings import get_settings
from chatbridge.core.telemetry import emit
from chatbridge.errors import ToolExecutionError
from chatbridge.providers.types import (
    AssistantTurn,
    ChatOptions,
    ConversationTurn,
    NormalizedResponse,
    ToolCallRequest,
    ToolDefinition,
    ToolTurn,
)

if TYPE_CHECKING:
    from chatbridge.providers.adapters import ProviderClient

ToolHandler = Callable[[dict[str, Any]], Any]
_COMMAND_SPAN = re.compile(r"\{[\s\S]*\}")


@dataclass
class ToolRegistry:
    definitions: dict[str, ToolDefinition] = field(default_factory=dict)
    handlers: dict[str, ToolHandler] = field(default_factory=dict)

    def register(self, definition: ToolDefinition, handler: ToolHandler) -> None:
        self.definitions[definition.name] = definition
        self.handlers[definition.name] = handler

    def tool(self, name: str, description: str, parameter_schema: dict[str, Any] | None = None) -> Callable[[ToolHandler], ToolHandler]:
        def decorator(handler: ToolHandler) -> ToolHandler:
            schema = parameter_schema or {"type": "object", "properties": {}}
            self.register(ToolDefinition(name=name, description=description, parameter_schema=schema), handler)
            return handler

        return decorator

    def list_definitions(self) -> list[ToolDefinition]:
        return list(self.definitions.values())

    async def execute(self, tool_name: str, args: dict[str, Any]) -> Any:
        handler = self.handlers.get(tool_name)
        if handler is None:
            raise ToolExecutionError(f"Unknown tool: {tool_name}")
        try:
            result = handler(args)
            if inspect.isawaitable(result):
                result = await result
        except ToolExecutionError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ToolExecutionError(f"{tool_name} failed: {exc}") from exc
        return result


@dataclass
class ToolLoopResult:
    response: NormalizedResponse
    turns: list[ConversationTurn]
    iterations: int
    exhausted: bool


def parse_fallback_tool_command(text: str, call_id: str) -> ToolCallRequest | None:
    """Read a ``{"tool": ..., "args": ...}`` command from a reply without native tool calls."""
    candidates = [text.strip()]
    match = _COMMAND_SPAN.search(text)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            break
    else:
        return None

    name = payload.get("tool")
    args = payload.get("args", {})
    if not isinstance(name, str) or not isinstance(args, dict):
        return None
    return ToolCallRequest(id=call_id, name=name, arguments=args)


def serialize_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


def _requested_calls(client: ProviderClient, response: NormalizedResponse, loop_idx: int) -> list[ToolCallRequest]:
    if response.tool_calls:
        return list(response.tool_calls)
    if client.dialect.is_proxy:
        fallback = parse_fallback_tool_command(response.text, f"fallback_{loop_idx}")
        if fallback is not None:
            return [fallback]
    return []


async def run_tool_loop(
    client: ProviderClient,
    turns: Sequence[ConversationTurn],
    registry: ToolRegistry,
    options: ChatOptions | None = None,
    limit: int | None = None,
) -> ToolLoopResult:
    """Call the model, run requested tools, and feed results back until it stops asking.

    ``limit`` caps the number of model calls and defaults to ``TOOL_LOOP_LIMIT``.
    """
    if limit is None:
        limit = get_settings().tool_loop_limit
    if limit < 1:
        raise ValueError("limit must be at least 1")
    loop_turns: list[ConversationTurn] = list(turns)
    definitions = registry.list_definitions()
    exhausted = False
    iterations = 0

    while True:
        loop_idx = iterations
        iterations += 1
        response = await client.chat_with_tools(loop_turns, definitions, options)
        tool_calls = _requested_calls(client, response, loop_idx)
        if not tool_calls:
            break

        loop_turns.append(AssistantTurn(text=response.text or "", tool_calls=tuple(tool_calls)))
        for call in tool_calls:
            try:
                result = await registry.execute(call.name, call.arguments)
                status = "ok"
            except ToolExecutionError as exc:
                result = {"error": str(exc)}
                status = "error"

            await emit(
                client.on_telemetry,
                "tool.call.executed",
                {"tool_name": call.name, "tool_call_id": call.id, "status": status, "loop": loop_idx},
            )
            loop_turns.append(ToolTurn(tool_call_id=call.id, tool_name=call.name, result_text=serialize_result(result)))

        if iterations >= limit:
            exhausted = True
            await emit(client.on_telemetry, "tool.loop.exhausted", {"limit": limit})
            break

    return ToolLoopResult(response=response, turns=loop_turns, iterations=iterations, exhausted=exhausted)
