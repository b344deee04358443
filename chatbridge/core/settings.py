from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from chatbridge.core.security import DEV_SECRET, decrypt_api_key
from chatbridge.errors import ConfigurationError
from chatbridge.providers.types import (
    AuthCredential,
    ClientConfig,
    CustomCredential,
    PlainCredential,
    ProviderType,
)

DEFAULT_GPT_MODEL = "gpt-4o"
DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-5-20250929"


class Settings(BaseSettings):
    gpt_api_key: str | None = None
    gpt_api_key_encrypted: str | None = None
    gpt_api_url: str | None = None
    gpt_system_code: str | None = None
    gpt_company_code: str | None = None
    gpt_model: str = DEFAULT_GPT_MODEL

    pgpt_api_key: str | None = None
    pgpt_api_key_encrypted: str | None = None
    pgpt_api_url: str | None = None
    pgpt_system_code: str | None = None
    pgpt_company_code: str | None = None
    pgpt_gpt_model: str = DEFAULT_GPT_MODEL
    pgpt_claude_model: str = DEFAULT_CLAUDE_MODEL

    anthropic_api_key: str | None = None
    anthropic_api_key_encrypted: str | None = None
    anthropic_api_url: str = "https://api.anthropic.com/v1"
    anthropic_model: str = DEFAULT_CLAUDE_MODEL

    chatbridge_secret_key: str = DEV_SECRET
    default_temperature: float = 0.7
    anthropic_max_tokens: int = 4096
    request_timeout_seconds: float = 120.0
    custom_top_k: int | None = 5
    proxy_tools: bool | None = None
    tool_loop_limit: int = 3

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def resolve_api_key(self, profile: str) -> tuple[str | None, str]:
        """Return the API key for ``profile`` and where it came from."""
        encrypted = getattr(self, f"{profile}_api_key_encrypted", None)
        if encrypted:
            decrypted = decrypt_api_key(encrypted, self.chatbridge_secret_key)
            if decrypted is None:
                raise ConfigurationError(
                    f"{profile.upper()}_API_KEY_ENCRYPTED could not be decrypted with CHATBRIDGE_SECRET_KEY."
                )
            return decrypted, "encrypted"
        plain = getattr(self, f"{profile}_api_key", None)
        if plain:
            return plain, "plain"
        return None, "none"

    def credential_for(self, profile: str) -> AuthCredential:
        api_key, _source = self.resolve_api_key(profile)
        if not api_key:
            raise ConfigurationError(f"{profile.upper()}_API_KEY is not set.")
        system_code = getattr(self, f"{profile}_system_code", None)
        company_code = getattr(self, f"{profile}_company_code", None)
        # Custom auth needs both codes; one alone falls back to plain bearer auth.
        if system_code and company_code:
            return CustomCredential(api_key=api_key, system_code=system_code, company_code=company_code)
        return PlainCredential(api_key=api_key)

    def client_config(self, profile: str, provider: ProviderType | None = None) -> ClientConfig:
        if profile not in {"gpt", "pgpt", "anthropic"}:
            raise ConfigurationError(f"Unknown profile: {profile}")
        if provider is None:
            provider = ProviderType.ANTHROPIC if profile == "anthropic" else ProviderType.OPENAI

        endpoint_url = getattr(self, f"{profile}_api_url", None)
        if not endpoint_url:
            raise ConfigurationError(f"{profile.upper()}_API_URL is not set.")

        return ClientConfig(
            endpoint_url=endpoint_url,
            credential=self.credential_for(profile),
            provider=provider,
            model=self._model_for(profile, provider),
            temperature=self.default_temperature,
            max_tokens=self.anthropic_max_tokens,
            timeout_seconds=self.request_timeout_seconds,
            top_k=self.custom_top_k,
            proxy_tools=self.proxy_tools,
        )

    def _model_for(self, profile: str, provider: ProviderType) -> str:
        if profile == "pgpt":
            return self.pgpt_claude_model if provider == ProviderType.ANTHROPIC else self.pgpt_gpt_model
        if profile == "anthropic":
            return self.anthropic_model
        return self.gpt_model


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
