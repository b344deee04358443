from __future__ import annotations

import base64
import json
from typing import Any

from chatbridge.providers.types import AuthCredential, CustomCredential, Dialect, PlainCredential

ANTHROPIC_VERSION = "2023-06-01"
PROXY_HINT_FIELD = "need_origin"

_SENSITIVE_HEADERS = {"authorization", "x-api-key", "api-key"}


def derive_authorization_header(credential: AuthCredential) -> str:
    if isinstance(credential, CustomCredential):
        # Key order and compact separators match what the proxy decodes.
        bundle = json.dumps(
            {
                "apiKey": credential.api_key,
                "systemCode": credential.system_code,
                "companyCode": credential.company_code,
            },
            separators=(",", ":"),
            ensure_ascii=False,
        )
        encoded = base64.b64encode(bundle.encode("utf-8")).decode("ascii")
        return f"Bearer {encoded}"
    if isinstance(credential, PlainCredential):
        return f"Bearer {credential.api_key}"
    raise TypeError(f"Unsupported credential: {type(credential).__name__}")


def derive_provider_headers(dialect: Dialect, credential: AuthCredential) -> dict[str, str]:
    headers: dict[str, str] = {}
    if dialect.is_anthropic:
        headers["anthropic-version"] = ANTHROPIC_VERSION
        if isinstance(credential, PlainCredential):
            headers["x-api-key"] = credential.api_key
    return headers


def build_headers(dialect: Dialect, credential: AuthCredential) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    # Direct Anthropic authenticates with x-api-key alone.
    if not (dialect.is_anthropic and isinstance(credential, PlainCredential)):
        headers["Authorization"] = derive_authorization_header(credential)
    headers.update(derive_provider_headers(dialect, credential))
    return headers


def apply_proxy_hint(body: dict[str, Any], credential: AuthCredential) -> dict[str, Any]:
    if isinstance(credential, CustomCredential):
        return {**body, PROXY_HINT_FIELD: True}
    return body


def redact_secret(value: str) -> str:
    scheme, _, token = value.partition(" ")
    if not token:
        scheme, token = "", value
    preview = f"{token[:4]}***" if len(token) > 8 else "***"
    return f"{scheme} {preview}" if scheme else preview


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    return {
        name: redact_secret(value) if name.lower() in _SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }
