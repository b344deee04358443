from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Union


class ProviderType(str, Enum):
    OPENAI = "OPENAI"
    ANTHROPIC = "ANTHROPIC"


class Dialect(str, Enum):
    OPENAI = "OPENAI"
    CUSTOM_PROXY = "CUSTOM_PROXY"
    ANTHROPIC = "ANTHROPIC"
    ANTHROPIC_PROXY = "ANTHROPIC_PROXY"

    @property
    def is_proxy(self) -> bool:
        return self in {Dialect.CUSTOM_PROXY, Dialect.ANTHROPIC_PROXY}

    @property
    def is_anthropic(self) -> bool:
        return self in {Dialect.ANTHROPIC, Dialect.ANTHROPIC_PROXY}


@dataclass(frozen=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameter_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass(frozen=True)
class SystemTurn:
    text: str


@dataclass(frozen=True)
class UserTurn:
    text: str


@dataclass(frozen=True)
class AssistantTurn:
    text: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()


@dataclass(frozen=True)
class ToolTurn:
    tool_call_id: str
    tool_name: str
    result_text: str


ConversationTurn = Union[SystemTurn, UserTurn, AssistantTurn, ToolTurn]


@dataclass(frozen=True)
class PlainCredential:
    api_key: str

    def __repr__(self) -> str:
        return "PlainCredential(api_key=***)"


@dataclass(frozen=True)
class CustomCredential:
    api_key: str
    system_code: str
    company_code: str

    def __repr__(self) -> str:
        return f"CustomCredential(api_key=***, system_code={self.system_code!r}, company_code={self.company_code!r})"


AuthCredential = Union[PlainCredential, CustomCredential]


@dataclass
class WireRequest:
    messages: list[dict[str, Any]]
    system: str | None = None
    tools: list[dict[str, Any]] | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class NormalizedResponse:
    text: str
    tool_calls: list[ToolCallRequest]
    raw: Any


@dataclass
class ChatOptions:
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    tool_choice: str | dict[str, Any] | None = None
    extra_body: dict[str, Any] = field(default_factory=dict)


TelemetryCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class ClientConfig:
    endpoint_url: str
    credential: AuthCredential
    provider: ProviderType = ProviderType.OPENAI
    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 4096
    timeout_seconds: float = 120.0
    top_k: int | None = 5
    proxy_tools: bool | None = None
