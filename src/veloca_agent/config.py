"""
Configuration management for Veloca-Agent

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["openai", "anthropic", "openrouter"]
StorageMode = Literal["localfile", "database"]


class LLMConfig(BaseSettings):
    """Configuration for one model invocation target.

    ``client_options`` are passed to the SDK client constructor and
    ``request_options`` are merged into every request body.
    """

    model_config = SettingsConfigDict(extra="ignore")

    provider: ProviderName = "openai"
    model: str = "gpt-4o"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int | None = 4096
    temperature: float | None = 0.7
    top_p: float | None = None
    tool_choice: str | dict[str, Any] | None = None
    parallel_tool_calls: bool | None = None
    stream: bool = False
    system_prompt: str | None = None
    client_options: dict[str, Any] = Field(default_factory=dict)
    request_options: dict[str, Any] = Field(default_factory=dict)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "Veloca-Agent"
    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool = False

    # LLM Providers (API Keys)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    openai_base_url: str | None = Field(default=None, description="OpenAI-compatible endpoint")

    # Default model settings
    default_provider: ProviderName = "openai"
    default_model: str = ""
    max_tokens: int = 4096
    temperature: float = 0.7

    # Context window management
    context_window: int = Field(default=128_000, description="Model context window in tokens")
    compaction_threshold: float = Field(default=0.8, description="Compact at this fraction of the window")
    compact_ratio: float = Field(default=0.4, description="Fraction of the window kept verbatim")

    # Agent loop
    max_iterations: int = Field(default=10, description="Maximum model calls per invocation")
    tool_iteration_delay: float = Field(default=1.5, description="Seconds to wait between tool iterations")

    # Storage
    storage_mode: StorageMode = "localfile"
    storage_dir: str = Field(default=".veloca/storage", description="Directory for the local JSON store")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./.veloca/veloca.db",
        description="Database connection URL"
    )

    @field_validator("compaction_threshold", "compact_ratio")
    @classmethod
    def check_fraction(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("must be a fraction in (0, 1]")
        return v

    @field_validator("max_iterations")
    @classmethod
    def check_iterations(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    def get_llm_config(self, provider: str | None = None, **overrides: Any) -> LLMConfig:
        """Get LLM configuration for a provider."""
        provider = provider or self.default_provider

        api_key_map = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "openrouter": self.openrouter_api_key,
        }

        model_map = {
            "openai": "gpt-4o",
            "anthropic": "claude-sonnet-4-20250514",
            "openrouter": "openai/gpt-4o",
        }

        base_url_map = {
            "openai": self.openai_base_url,
            "anthropic": None,
            "openrouter": "https://openrouter.ai/api/v1",
        }

        values: dict[str, Any] = {
            "provider": provider,
            "model": self.default_model or model_map.get(provider, ""),
            "api_key": api_key_map.get(provider, ""),
            "base_url": base_url_map.get(provider),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        values.update(overrides)
        return LLMConfig(**values)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
