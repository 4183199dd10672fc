"""
Configuration management for cosmos-imbot

Uses pydantic-settings for environment variable parsing and validation.
Settings are read (highest priority first) from keyword arguments, the
environment, a ``.env`` file and the JSON file named by ``COSMOS_CONFIG``.
"""

import json
import os
from datetime import timedelta
from functools import lru_cache
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

CONFIG_PATH_ENV = "COSMOS_CONFIG"
DEFAULT_CONFIG_FILE = "./cosmos.json"

DEFAULT_SYSTEM_PROMPT = (
    "You are cosmos, a friendly assistant taking part in instant-messaging chats. "
    "Keep replies short and conversational; several people may share one conversation."
)


class BotConfig(BaseModel):
    """Inputs of the messaging core."""

    bot_name: str = "cosmos"
    thread_reclaim_timeout: timedelta = timedelta(minutes=30)
    group_whitelist: list[str] = Field(default_factory=list)
    dm_whitelist: list[str] = Field(default_factory=list)
    refresh_activity_on_failed_send: bool = False


class EngineConfig(BaseModel):
    """Configuration for a single response engine."""

    provider: Literal["openai", "anthropic"] = "openai"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 1024
    temperature: float = 0.7
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


def _split_names(value: str) -> list[str]:
    return [name.strip() for name in value.split(",") if name.strip()]


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "cosmos"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Bot
    bot_name: str = Field(default="cosmos", description="Display name, also the group wake word")
    thread_reclaim_timeout_minutes: int = Field(default=30, description="Idle minutes before a thread is reclaimed")
    thread_reclaim_interval_seconds: int = Field(default=60, description="Seconds between reclamation sweeps")
    refresh_activity_on_failed_send: bool = Field(
        default=False,
        description="Refresh thread activity even when the send fails",
    )
    group_whitelist: str = Field(
        default="",
        validation_alias=AliasChoices("group_whitelist", "channel_whitelist"),
        description="Comma-separated group names the bot serves",
    )
    dm_whitelist: str = Field(
        default="",
        validation_alias=AliasChoices("dm_whitelist", "user_whitelist"),
        description="Comma-separated peer names/aliases the bot serves",
    )

    # Telegram
    telegram_bot_token: str = Field(default="", description="Telegram Bot API token")
    telegram_webhook_url: str = Field(default="", description="Public URL for webhook")
    telegram_webhook_secret: str = Field(default="", description="Webhook secret for validation")

    # Response engine
    engine_provider: Literal["openai", "anthropic"] = "openai"
    openai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("openai_api_key", "chatgpt_key"),
        description="OpenAI API key",
    )
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    default_model: str = ""
    max_tokens: int = 1024
    temperature: float = 0.7
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    engine_timeout_seconds: float = Field(default=120.0, description="Upper bound for one engine call")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        json_file = os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_FILE)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls, json_file=json_file),
            file_secret_settings,
        )

    @field_validator("group_whitelist", "dm_whitelist", mode="before")
    @classmethod
    def join_names(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, str) and v.strip().startswith("["):
            v = json.loads(v)
        if isinstance(v, (list, tuple)):
            return ",".join(str(name).strip() for name in v)
        return str(v).strip()

    @property
    def group_whitelist_list(self) -> list[str]:
        """Get list of whitelisted group names."""
        return _split_names(self.group_whitelist)

    @property
    def dm_whitelist_list(self) -> list[str]:
        """Get list of whitelisted direct-message peers."""
        return _split_names(self.dm_whitelist)

    def get_bot_config(self) -> BotConfig:
        """Get the configuration consumed by the messaging core."""
        return BotConfig(
            bot_name=self.bot_name,
            thread_reclaim_timeout=timedelta(minutes=self.thread_reclaim_timeout_minutes),
            group_whitelist=self.group_whitelist_list,
            dm_whitelist=self.dm_whitelist_list,
            refresh_activity_on_failed_send=self.refresh_activity_on_failed_send,
        )

    def get_engine_config(self, provider: str | None = None) -> EngineConfig:
        """Get response engine configuration for a provider."""
        provider = provider or self.engine_provider

        api_key_map = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }

        model_map = {
            "openai": "gpt-4o-mini",
            "anthropic": "claude-sonnet-4-20250514",
        }

        model = self.default_model if provider == self.engine_provider and self.default_model else None

        return EngineConfig(
            provider=provider,  # type: ignore
            model=model or model_map.get(provider, "gpt-4o-mini"),
            api_key=api_key_map.get(provider, ""),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system_prompt=self.system_prompt,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
