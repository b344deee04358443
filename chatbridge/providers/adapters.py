from __future__ import annotations

import time
from typing import Any, AsyncIterator, Sequence, TypeVar

import httpx
from pydantic import BaseModel

from chatbridge.core.settings import DEFAULT_CLAUDE_MODEL, DEFAULT_GPT_MODEL, Settings, get_settings
from chatbridge.core.telemetry import emit
from chatbridge.errors import ConfigurationError, EmptyConversation, ProviderHttpError, auth_hint, localhost_hint
from chatbridge.providers.auth import apply_proxy_hint, build_headers, redact_headers
from chatbridge.providers.normalize import normalize, provider_mode
from chatbridge.providers.streaming import iter_stream_text
from chatbridge.providers.translate import to_wire_format
from chatbridge.providers.types import (
    ChatOptions,
    ClientConfig,
    ConversationTurn,
    CustomCredential,
    Dialect,
    NormalizedResponse,
    ProviderType,
    TelemetryCallback,
    ToolDefinition,
)
from chatbridge.runs.structured import parse_structured

ModelT = TypeVar("ModelT", bound=BaseModel)

_MESSAGES_PATH = "/messages"


class ProviderClient:
    """Chat client for one endpoint in one wire dialect.

    The dialect follows from the provider type and the credential: a custom
    credential routes through the proxy variant of the provider's dialect.
    Instances hold no per-call state and can serve concurrent calls.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        on_telemetry: TelemetryCallback | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not config.endpoint_url:
            raise ConfigurationError("Endpoint URL is not configured.")
        if not config.credential.api_key:
            raise ConfigurationError("API key is not configured.")
        self.config = config
        self.dialect = provider_mode(config.provider, config.credential)
        self.on_telemetry = on_telemetry
        self._transport = transport
        self._headers = build_headers(self.dialect, config.credential)

    @classmethod
    def from_settings(
        cls,
        profile: str,
        provider: ProviderType | None = None,
        settings: Settings | None = None,
        **kwargs: Any,
    ) -> ProviderClient:
        settings = settings or get_settings()
        return cls(settings.client_config(profile, provider), **kwargs)

    @property
    def endpoint(self) -> str:
        url = self.config.endpoint_url
        if self.dialect.is_anthropic and not url.rstrip("/").endswith(_MESSAGES_PATH):
            return f"{url.rstrip('/')}{_MESSAGES_PATH}"
        return url

    @property
    def tools_enabled(self) -> bool:
        if not self.dialect.is_proxy:
            return True
        if self.config.proxy_tools is not None:
            return self.config.proxy_tools
        return self.dialect == Dialect.CUSTOM_PROXY

    async def chat(self, turns: Sequence[ConversationTurn], options: ChatOptions | None = None) -> str:
        response = await self._complete(turns, None, options)
        return response.text

    async def chat_with_tools(
        self,
        turns: Sequence[ConversationTurn],
        tools: Sequence[ToolDefinition],
        options: ChatOptions | None = None,
    ) -> NormalizedResponse:
        response = await self._complete(turns, tools, options)
        if response.tool_calls:
            await emit(
                self.on_telemetry,
                "tool.call.detected",
                {"count": len(response.tool_calls), "tool_names": [call.name for call in response.tool_calls]},
            )
        return response

    async def chat_structured(
        self,
        turns: Sequence[ConversationTurn],
        schema: type[ModelT],
        options: ChatOptions | None = None,
        *,
        description: str | None = None,
    ) -> ModelT:
        response_format = None
        if not self.dialect.is_anthropic:
            response_format = {
                "type": "json_schema",
                "json_schema": {
                    "name": schema.__name__,
                    "description": description,
                    "strict": True,
                    "schema": schema.model_json_schema(),
                },
            }
        response = await self._complete(turns, None, options, response_format=response_format)
        return parse_structured(response.text, schema)

    async def stream_chat(
        self, turns: Sequence[ConversationTurn], options: ChatOptions | None = None
    ) -> AsyncIterator[str]:
        body, warnings = self._build(turns, None, options, stream=True)
        await self._emit_request(body, warnings)
        endpoint = self.endpoint
        try:
            async with self._client() as client:
                async with client.stream("POST", endpoint, headers=self._headers, json=body) as resp:
                    if not resp.is_success:
                        await resp.aread()
                        raise self._status_error(resp)
                    async for fragment in iter_stream_text(self.dialect, resp.aiter_lines()):
                        yield fragment
        except httpx.HTTPError as exc:
            raise self._transport_error(exc) from exc

    def build_body(
        self,
        turns: Sequence[ConversationTurn],
        tools: Sequence[ToolDefinition] | None,
        options: ChatOptions | None = None,
        *,
        stream: bool = False,
        response_format: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        body, _warnings = self._build(turns, tools, options, stream=stream, response_format=response_format)
        return body

    def _build(
        self,
        turns: Sequence[ConversationTurn],
        tools: Sequence[ToolDefinition] | None,
        options: ChatOptions | None = None,
        *,
        stream: bool = False,
        response_format: dict[str, Any] | None = None,
    ) -> tuple[dict[str, Any], list[str]]:
        if not turns:
            raise EmptyConversation()
        options = options or ChatOptions()
        wire = to_wire_format(self.dialect, list(turns), tools if self.tools_enabled else None)

        payload: dict[str, Any] = {
            "model": options.model or self.config.model or self._default_model(),
            "messages": wire.messages,
            "temperature": options.temperature if options.temperature is not None else self.config.temperature,
        }
        if self.dialect.is_anthropic:
            payload["max_tokens"] = options.max_tokens or self.config.max_tokens
            payload["system"] = wire.system
        else:
            payload["max_tokens"] = options.max_tokens
            payload["tool_choice"] = options.tool_choice if wire.tools else None
            payload["response_format"] = response_format
        if self.dialect == Dialect.CUSTOM_PROXY:
            payload["topK"] = self.config.top_k
        if wire.tools:
            payload["tools"] = wire.tools
        if stream:
            payload["stream"] = True
        payload.update(options.extra_body)
        payload = {k: v for k, v in payload.items() if v is not None}
        return apply_proxy_hint(payload, self.config.credential), wire.warnings

    async def _complete(
        self,
        turns: Sequence[ConversationTurn],
        tools: Sequence[ToolDefinition] | None,
        options: ChatOptions | None,
        *,
        response_format: dict[str, Any] | None = None,
    ) -> NormalizedResponse:
        body, warnings = self._build(turns, tools, options, response_format=response_format)
        await self._emit_request(body, warnings)

        endpoint = self.endpoint
        started = time.perf_counter()
        try:
            async with self._client() as client:
                resp = await client.post(endpoint, headers=self._headers, json=body)
        except httpx.HTTPError as exc:
            raise self._transport_error(exc) from exc

        await emit(
            self.on_telemetry,
            "response.received",
            {
                "endpoint": endpoint,
                "status": resp.status_code,
                "latency_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        if not resp.is_success:
            raise self._status_error(resp)
        return normalize(self.dialect, resp.text)

    async def _emit_request(self, body: dict[str, Any], warnings: list[str]) -> None:
        for warning in warnings:
            await emit(self.on_telemetry, "translate.warning", {"dialect": self.dialect.value, "warning": warning})
        await emit(
            self.on_telemetry,
            "request.sent",
            {
                "endpoint": self.endpoint,
                "dialect": self.dialect.value,
                "headers": redact_headers(self._headers),
                "body": body,
            },
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport)

    def _default_model(self) -> str:
        return DEFAULT_CLAUDE_MODEL if self.dialect.is_anthropic else DEFAULT_GPT_MODEL

    def _status_error(self, resp: httpx.Response) -> ProviderHttpError:
        custom = isinstance(self.config.credential, CustomCredential)
        return ProviderHttpError(
            resp.status_code,
            resp.text,
            self.endpoint,
            hints=[auth_hint(resp.status_code, custom), localhost_hint(self.endpoint)],
        )

    def _transport_error(self, exc: httpx.HTTPError) -> ProviderHttpError:
        return ProviderHttpError(
            None,
            "",
            self.endpoint,
            detail=f"{type(exc).__name__}: {exc}",
            hints=[localhost_hint(self.endpoint)],
        )
