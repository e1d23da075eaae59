"""
LLM factory for creating provider instances.

Supports: OpenAI GPT, Anthropic Claude, OpenRouter.
"""

from ..config import LLMConfig, Settings
from ..exceptions import ConfigurationError
from .anthropic import AnthropicLLM
from .base import BaseLLM
from .openai import OpenAILLM


def create_llm(config: LLMConfig | None = None, settings: Settings | None = None) -> BaseLLM:
    """Create an LLM instance based on configuration.

    Provider routing:
    - openai -> OpenAILLM (native OpenAI SDK)
    - anthropic -> AnthropicLLM (native Anthropic SDK)
    - openrouter -> OpenAILLM (OpenAI-compatible endpoint)
    """
    if config is None:
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        config = settings.get_llm_config()

    if not config.model:
        raise ConfigurationError("model is required", details={"provider": config.provider})
    if not config.api_key:
        raise ConfigurationError("api_key is required", details={"provider": config.provider})

    provider = config.provider
    options = {
        "api_key": config.api_key,
        "model": config.model,
        "max_tokens": config.max_tokens,
        "temperature": config.temperature,
        "top_p": config.top_p,
        "tool_choice": config.tool_choice,
        "parallel_tool_calls": config.parallel_tool_calls,
        "client_options": config.client_options,
        "request_options": config.request_options,
    }

    if provider == "openai":
        return OpenAILLM(base_url=config.base_url, **options)
    elif provider == "anthropic":
        return AnthropicLLM(base_url=config.base_url, **options)
    elif provider == "openrouter":
        return OpenAILLM(base_url=config.base_url or "https://openrouter.ai/api/v1", **options)
    else:
        raise ConfigurationError(f"Unknown LLM provider: {provider}")
