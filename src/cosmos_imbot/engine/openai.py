"""
OpenAI response engine.

Uses the Responses API, whose server-side conversation state gives a natural
continuation token: the id of the previous response.
"""

from typing import Any

import openai
import structlog

from .base import EngineReply, ResponseEngine

logger = structlog.get_logger()


class OpenAIEngine(ResponseEngine):
    """OpenAI GPT response engine."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        system_prompt: str | None = None,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature, system_prompt)
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    async def reply(self, text: str, continuation: str | None = None) -> EngineReply:
        """Generate a reply with GPT."""
        kwargs: dict[str, Any] = {
            "model": self.model,
            "input": text,
            "max_output_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        if self.system_prompt:
            kwargs["instructions"] = self.system_prompt

        if continuation:
            kwargs["previous_response_id"] = continuation

        try:
            response = await self.client.responses.create(**kwargs)
        except openai.APIError as e:
            logger.error("OpenAI API error", error=str(e))
            raise

        usage = response.usage
        return EngineReply(
            text=response.output_text or "",
            token=response.id,
            model=response.model,
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
            raw_response=response,
        )
