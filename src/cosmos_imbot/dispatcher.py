"""
Dispatcher: turns routed messages into engine replies.

For every thread the dispatcher remembers the continuation token of the
latest turn, so a follow-up in the same thread continues the same engine
conversation. Tokens live in memory only and are overwritten on each turn.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from .engine import ResponseEngine
from .imbot.base import Bot, BotEventType, Message, Thread

logger = structlog.get_logger()

ERROR_REPLY = "Sorry, I couldn't come up with a reply right now."


@dataclass
class ConversationTracker:
    """Continuation state of one thread."""

    token: str
    turns: int = 1
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def tracker_key(thread: Thread) -> tuple[str, str]:
    """Thread ids are only unique within their channel."""
    return (thread.channel.id, thread.id)


class Dispatcher:
    """Routes messages to the response engine and sends the replies back."""

    def __init__(
        self,
        engine: ResponseEngine,
        timeout_seconds: float | None = 120.0,
        error_reply: str | None = ERROR_REPLY,
    ):
        self.engine = engine
        self.timeout_seconds = timeout_seconds
        self.error_reply = error_reply
        self._trackers: dict[tuple[str, str], ConversationTracker] = {}

    def attach(self, bot: Bot) -> None:
        """Subscribe to a bot's message and reclamation events."""
        bot.on(BotEventType.MESSAGE, self.handle_message)
        bot.on(BotEventType.THREAD_RECLAIMED, self.forget)

    def get_tracker(self, thread: Thread) -> ConversationTracker | None:
        return self._trackers.get(tracker_key(thread))

    @property
    def tracker_count(self) -> int:
        return len(self._trackers)

    def forget(self, thread: Thread) -> None:
        """Drop the continuation state of a thread."""
        if self._trackers.pop(tracker_key(thread), None) is not None:
            logger.debug("Conversation forgotten", channel_id=thread.channel.id, thread_id=thread.id)

    async def handle_message(self, message: Message) -> None:
        """Generate a reply for a message and send it to its thread.

        Engine failures and timeouts are logged and answered with a short
        apology. Send failures propagate to the caller.
        """
        thread = message.thread
        key = tracker_key(thread)
        tracker = self._trackers.get(key)

        try:
            reply = await asyncio.wait_for(
                self.engine.reply(message.content, tracker.token if tracker else None),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Engine timed out",
                channel_id=thread.channel.id,
                thread_id=thread.id,
                timeout=self.timeout_seconds,
            )
            await self._send_error(thread)
            return
        except Exception as e:
            logger.error(
                "Engine error",
                channel_id=thread.channel.id,
                thread_id=thread.id,
                error=str(e),
                exc_info=True,
            )
            await self._send_error(thread)
            return

        if thread.channel.find_thread(thread.id) is thread:
            self._trackers[key] = ConversationTracker(
                token=reply.token,
                turns=tracker.turns + 1 if tracker else 1,
            )
        else:
            logger.debug("Thread reclaimed during reply", channel_id=thread.channel.id, thread_id=thread.id)

        logger.info(
            "Reply generated",
            provider=self.engine.provider_name,
            channel_id=thread.channel.id,
            thread_id=thread.id,
            output_tokens=reply.output_tokens,
        )

        if reply.text:
            await thread.send(reply.text)

    async def _send_error(self, thread: Thread) -> None:
        if self.error_reply:
            await thread.send(self.error_reply)
