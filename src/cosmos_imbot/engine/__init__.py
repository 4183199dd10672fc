"""
Response engine module.

Providers:
- OpenAI GPT (Responses API, server-side continuation)
- Anthropic Claude (in-memory continuation transcripts)
"""

from .anthropic import AnthropicEngine
from .base import EngineReply, ResponseEngine
from .factory import create_engine
from .openai import OpenAIEngine

__all__ = [
    "AnthropicEngine",
    "EngineReply",
    "OpenAIEngine",
    "ResponseEngine",
    "create_engine",
]
