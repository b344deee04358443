from __future__ import annotations

from urllib.parse import urlparse

_BODY_PREVIEW_CHARS = 220


class ChatBridgeError(Exception):
    pass


class ConfigurationError(ChatBridgeError):
    pass


class InvalidConversation(ChatBridgeError):
    pass


class EmptyConversation(InvalidConversation):
    def __init__(self, message: str = "No messages provided.") -> None:
        super().__init__(message)


class ProviderHttpError(ChatBridgeError):
    """Raised for transport failures and non-2xx responses.

    ``status`` is ``None`` when no response was received at all.
    """

    def __init__(
        self,
        status: int | None,
        body: str,
        endpoint: str,
        *,
        detail: str = "",
        hints: list[str] | None = None,
    ) -> None:
        self.status = status
        self.body = body
        self.endpoint = endpoint
        self.hints = [hint for hint in (hints or []) if hint]
        super().__init__(self._format(detail))

    def _format(self, detail: str) -> str:
        if self.status is None:
            details = detail or "no response"
        else:
            details = f"HTTP {self.status}"
            preview = (self.body or "").strip()[:_BODY_PREVIEW_CHARS]
            if preview:
                details = f"{details} response={preview}"
        message = f"Request to {self.endpoint} failed: {details}"
        if self.hints:
            message = f"{message} {' '.join(self.hints)}"
        return message


class ResponseParseError(ChatBridgeError):
    pass


class MalformedResponse(ResponseParseError):
    pass


class UnrecognizedShape(ResponseParseError):
    pass


class ToolArgumentsDecodeError(ResponseParseError):
    def __init__(self, index: int, raw: str, reason: str) -> None:
        self.index = index
        self.raw = raw
        super().__init__(f"tool call #{index} has undecodable arguments: {reason}")


class StructuredOutputError(ChatBridgeError):
    pass


class ToolExecutionError(ChatBridgeError):
    pass


def localhost_hint(endpoint: str) -> str:
    if not endpoint:
        return ""
    try:
        host = urlparse(endpoint).hostname
    except ValueError:
        return ""
    if host in {"localhost", "127.0.0.1", "0.0.0.0"}:
        return "Tip: from inside a container use http://host.docker.internal:<port> to reach host services."
    return ""


def auth_hint(status: int | None, custom_auth: bool) -> str:
    if status != 401:
        return ""
    if custom_auth:
        return "Tip: the proxy rejected the credential bundle. Verify the system code and company code."
    return "Tip: the provider rejected the API key. Verify the key value and account scope."
