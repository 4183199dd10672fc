"""
Anthropic Claude response engine.

The Messages API is stateless, so the engine keeps the transcript behind each
continuation token in memory. Every reply gets a fresh token; transcripts are
capped in length and the least recently issued ones are forgotten first.
"""

from collections import OrderedDict
from typing import Any
from uuid import uuid4

import anthropic
import structlog

from .base import EngineReply, ResponseEngine

logger = structlog.get_logger()


class AnthropicEngine(ResponseEngine):
    """Anthropic Claude response engine."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        base_url: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        system_prompt: str | None = None,
        max_turns: int = 20,
        max_conversations: int = 1000,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature, system_prompt)
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
        )
        self.max_turns = max_turns
        self.max_conversations = max_conversations
        self._transcripts: OrderedDict[str, list[dict[str, Any]]] = OrderedDict()

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def transcript(self, token: str) -> list[dict[str, Any]]:
        """Get a copy of the transcript behind a token."""
        return list(self._transcripts.get(token, []))

    def _remember(self, token: str, transcript: list[dict[str, Any]]) -> None:
        self._transcripts[token] = transcript
        while len(self._transcripts) > self.max_conversations:
            self._transcripts.popitem(last=False)

    async def reply(self, text: str, continuation: str | None = None) -> EngineReply:
        """Generate a reply with Claude."""
        history: list[dict[str, Any]] = []
        if continuation:
            if continuation in self._transcripts:
                history = self.transcript(continuation)
            else:
                logger.warning("Unknown continuation token, starting a new conversation")

        messages = history + [{"role": "user", "content": text}]

        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": messages,
        }

        if self.system_prompt:
            kwargs["system"] = self.system_prompt

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error("Anthropic API error", error=str(e))
            raise

        content = "".join(block.text for block in response.content if block.type == "text")

        # Transcripts alternate user/assistant, so an even cut keeps a user turn first.
        transcript = (messages + [{"role": "assistant", "content": content}])[-self.max_turns * 2:]
        token = str(uuid4())
        self._remember(token, transcript)

        return EngineReply(
            text=content,
            token=token,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            raw_response=response,
        )
