"""
Engine factory for creating provider instances.

Supports: OpenAI GPT (Responses API) and Anthropic Claude.
"""

from ..config import EngineConfig, Settings
from .anthropic import AnthropicEngine
from .base import ResponseEngine
from .openai import OpenAIEngine

API_KEY_SETTINGS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


def create_engine(config: EngineConfig | None = None, settings: Settings | None = None) -> ResponseEngine:
    """Create a response engine based on configuration.

    Raises:
        ValueError: the provider is unknown or its API key is missing.
    """
    if config is None:
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        config = settings.get_engine_config()

    provider = config.provider

    if provider not in API_KEY_SETTINGS:
        raise ValueError(f"Unknown engine provider: {provider}")

    if not config.api_key:
        raise ValueError(f"{API_KEY_SETTINGS[provider]} is required")

    if provider == "openai":
        return OpenAIEngine(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            system_prompt=config.system_prompt,
        )

    return AnthropicEngine(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        system_prompt=config.system_prompt,
    )
