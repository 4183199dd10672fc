"""
Base classes for response engines.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class EngineReply:
    """Reply from a response engine.

    ``token`` is the continuation token: passing it back with the next turn
    continues the same conversation.
    """

    text: str
    token: str
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    raw_response: Any = None


class ResponseEngine(ABC):
    """Base class for response engine providers."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        system_prompt: str | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.system_prompt = system_prompt

    @abstractmethod
    async def reply(self, text: str, continuation: str | None = None) -> EngineReply:
        """Produce a reply to ``text``, continuing ``continuation`` if given."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass
