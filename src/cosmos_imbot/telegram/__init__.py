"""Telegram transport."""

from .transport import TelegramTransport

__all__ = ["TelegramTransport"]
