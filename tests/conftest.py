from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from chatbridge.providers.types import ClientConfig, CustomCredential, PlainCredential, ProviderType


class Recorder:
    """Mock transport that records requests and replays canned responses."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []
        self._respond = respond
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)

    @property
    def last_body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture()
def recorder_factory() -> Callable[..., Recorder]:
    def make(payload: Any = None, *, status: int = 200, text: str | None = None) -> Recorder:
        def respond(_request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status, text=text)
            return httpx.Response(status, json=payload)

        return Recorder(respond)

    return make


@pytest.fixture()
def openai_config() -> ClientConfig:
    return ClientConfig(endpoint_url="https://api.openai.com/v1/chat/completions", credential=PlainCredential("sk-test-secret"))


@pytest.fixture()
def proxy_config() -> ClientConfig:
    return ClientConfig(
        endpoint_url="https://proxy.example.com/api/chat",
        credential=CustomCredential(api_key="sk-test-secret", system_code="SYS01", company_code="C100"),
    )


@pytest.fixture()
def anthropic_config() -> ClientConfig:
    return ClientConfig(
        endpoint_url="https://api.anthropic.com/v1",
        credential=PlainCredential("sk-ant-secret"),
        provider=ProviderType.ANTHROPIC,
    )


@pytest.fixture()
def anthropic_proxy_config() -> ClientConfig:
    return ClientConfig(
        endpoint_url="https://proxy.example.com/api/claude",
        credential=CustomCredential(api_key="sk-ant-secret", system_code="SYS01", company_code="C100"),
        provider=ProviderType.ANTHROPIC,
    )
