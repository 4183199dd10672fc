"""
The bot façade.

Receives raw transport events, filters them against the whitelist, resolves
the thread each message belongs to and fans the resulting :class:`Message`
out to registered callbacks.

Group messages are only considered when the bot is mentioned or the text
starts with the bot's name. The people a message addresses (mentioned
participants other than the bot, plus the sender when the bot itself was
mentioned) select the sub-thread inside the room. Direct messages always go
to the default thread of the peer's channel.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Iterable

import structlog

from ..config import BotConfig, get_settings
from .base import Bot, BotEventType, EventCallback, Message
from .channel import ChatChannel, ChatParticipant, ChatThread, Clock
from .registry import ChannelRegistry
from .transport import ChatScope, Contact, ContentType, InboundEvent, Transport, TransportEvent

logger = structlog.get_logger()


def _callback_name(callback: EventCallback) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


def _unique(participants: Iterable[ChatParticipant]) -> tuple[ChatParticipant, ...]:
    seen: set[str] = set()
    result = []
    for participant in participants:
        if participant.id not in seen:
            seen.add(participant.id)
            result.append(participant)
    return tuple(result)


class IMBot(Bot):
    """Network-agnostic instant-messaging bot."""

    def __init__(
        self,
        transport: Transport,
        config: BotConfig | None = None,
        registry: ChannelRegistry | None = None,
        clock: Clock | None = None,
    ):
        self.config = config or get_settings().get_bot_config()
        self.transport = transport
        self.registry = registry or ChannelRegistry()
        self._clock = clock
        self._myself: Contact | None = None
        self._callbacks: dict[BotEventType, list[EventCallback]] = {event: [] for event in BotEventType}
        self._tasks: set[asyncio.Task] = set()

        transport.on(TransportEvent.CHALLENGE, self.handle_challenge)
        transport.on(TransportEvent.LOGIN, self.handle_login)
        transport.on(TransportEvent.LOGOUT, self.handle_logout)
        transport.on(TransportEvent.MESSAGE, self.handle_message)

    @property
    def myself(self) -> Contact | None:
        """The bot's own contact, once logged in."""
        return self._myself

    @property
    def channels(self) -> list[ChatChannel]:
        return self.registry.all_channels

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def run(self) -> None:
        """Start the transport. Channels are built once the session is ready."""
        logger.info("Starting bot", network=self.transport.name, bot_name=self.config.bot_name)
        await self.transport.start()

    async def stop(self) -> None:
        """Stop the transport, cancel pending callbacks and drop all channels."""
        await self.transport.stop()

        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self.registry.clear()
        logger.info("Bot stopped", network=self.transport.name)

    async def drain(self) -> None:
        """Wait until every callback task scheduled so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #
    async def find_channel(self, name: str) -> ChatChannel | None:
        room = await self.transport.find_room(name)
        if room is None:
            return None
        return self.registry.room(room.id)

    async def find_dm(self, name: str) -> ChatChannel | None:
        contact = await self.transport.find_contact(name)
        if contact is None:
            return None
        return self.registry.contact(contact.id)

    # ------------------------------------------------------------------ #
    # Callbacks
    # ------------------------------------------------------------------ #
    def on(self, event: BotEventType, callback: EventCallback) -> None:
        """Register a callback. Callbacks may be plain or coroutine functions."""
        self._callbacks[event].append(callback)

    def _dispatch(self, event: BotEventType, payload: object) -> None:
        """Invoke every callback in registration order without waiting on any."""
        for callback in self._callbacks[event]:
            try:
                result = callback(payload)
            except Exception:
                logger.error(
                    "Event callback failed",
                    event_type=event.value,
                    callback=_callback_name(callback),
                    exc_info=True,
                )
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(self._run_callback(event, callback, result))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def _run_callback(self, event: BotEventType, callback: EventCallback, result: Awaitable) -> None:
        try:
            await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error(
                "Event callback failed",
                event_type=event.value,
                callback=_callback_name(callback),
                exc_info=True,
            )

    # ------------------------------------------------------------------ #
    # Thread reclamation
    # ------------------------------------------------------------------ #
    def reclaim_threads(self) -> list[ChatThread]:
        """Sweep all channels, notifying THREAD_RECLAIMED callbacks."""
        reclaimed = self.registry.reclaim_threads()
        for thread in reclaimed:
            self._dispatch(BotEventType.THREAD_RECLAIMED, thread)
        return reclaimed

    # ------------------------------------------------------------------ #
    # Transport events
    # ------------------------------------------------------------------ #
    async def handle_challenge(self, payload: object) -> None:
        logger.info("Login challenge received", network=self.transport.name, payload=payload)

    async def handle_login(self, myself: Contact) -> None:
        """Build the channel registry from the whitelist.

        Names that cannot be resolved are skipped with a warning.
        """
        logger.info("Session ready", network=self.transport.name, user_id=myself.id, name=myself.name)

        self._myself = myself
        self.registry.clear()

        channel_kwargs = {
            "clock": self._clock,
            "refresh_activity_on_failed_send": self.config.refresh_activity_on_failed_send,
        }
        timeout = self.config.thread_reclaim_timeout

        self.registry.add_contact(ChatChannel.for_contact(myself, self.transport, timeout, **channel_kwargs))

        for group_name in self.config.group_whitelist:
            try:
                room = await self.transport.find_room(group_name)
                members = await self.transport.room_members(room) if room else []
            except Exception as e:
                logger.warning("Room lookup failed", room=group_name, error=str(e))
                continue

            if room is None:
                logger.warning("Room not found", room=group_name)
                continue

            channel = ChatChannel.for_room(room, members, self.transport, timeout, **channel_kwargs)
            self.registry.add_room(channel)
            logger.info("Room added", room=group_name, room_id=room.id, members=len(members))

        for peer_name in self.config.dm_whitelist:
            try:
                contact = await self.transport.find_contact(peer_name)
            except Exception as e:
                logger.warning("Friend lookup failed", friend=peer_name, error=str(e))
                continue

            if contact is None:
                logger.warning("Friend name/alias not found", friend=peer_name)
                continue

            channel = ChatChannel.for_contact(contact, self.transport, timeout, **channel_kwargs)
            self.registry.add_contact(channel)
            logger.info("Friend added", friend=peer_name, contact_id=contact.id)

    async def handle_logout(self) -> None:
        logger.info("Session ended", network=self.transport.name)

    async def handle_message(self, event: InboundEvent) -> None:
        """Classify an inbound event and fan the message out, or drop it."""
        if self._is_myself(event.sender) and not self._is_self_chat(event):
            logger.debug("Message sent by myself, ignore it")
            return

        if event.scope is ChatScope.GROUP:
            message = self._route_group(event)
        else:
            message = self._route_direct(event)

        if message is None:
            return

        message.thread.touch()
        logger.debug(
            "Message routed",
            channel_id=message.thread.channel.id,
            thread_id=message.thread.id,
            sender=message.sender.id,
        )
        self._dispatch(BotEventType.MESSAGE, message)

    def _is_myself(self, contact: Contact) -> bool:
        return contact.is_self or (self._myself is not None and contact.id == self._myself.id)

    def _is_self_chat(self, event: InboundEvent) -> bool:
        """A direct message the bot's own account sent to itself."""
        return (
            event.scope is ChatScope.DIRECT
            and event.listener is not None
            and self._is_myself(event.listener)
        )

    def _is_wake_word(self, text: str) -> bool:
        return bool(self.config.bot_name) and text.startswith(self.config.bot_name)

    def _route_group(self, event: InboundEvent) -> Message | None:
        room_id = event.room.id if event.room else None
        channel = self.registry.room(room_id) if room_id else None

        if channel is None:
            logger.debug("Message not from a whitelisted room, ignore it", room_id=room_id)
            return None

        if event.content_type is not ContentType.TEXT:
            logger.debug("Message is not text, ignore it", content_type=event.content_type.value)
            return None

        if not event.mentions_self and not self._is_wake_word(event.text):
            logger.debug("Message does not mention me, ignore it", room_id=room_id)
            return None

        addressed = [ChatParticipant(contact) for contact in event.mentions if not self._is_myself(contact)]

        # Mentioning the bot pulls the sender into the conversation.
        if event.mentions_self:
            addressed.append(ChatParticipant(event.sender))

        cc = _unique(addressed)
        thread = channel.find_or_add_thread(cc)

        return Message(thread=thread, sender=ChatParticipant(event.sender), cc=cc, content=event.text)

    def _route_direct(self, event: InboundEvent) -> Message | None:
        channel = self.registry.contact(event.sender.id)

        if channel is None:
            logger.debug("Message not from a whitelisted friend, ignore it", sender=event.sender.id)
            return None

        if event.listener is None or not self._is_myself(event.listener):
            logger.debug("Message not for me, ignore it", sender=event.sender.id)
            return None

        if event.content_type is not ContentType.TEXT:
            logger.debug("Message is not text, ignore it", content_type=event.content_type.value)
            return None

        return Message(
            thread=channel.default_thread,
            sender=ChatParticipant(event.sender),
            cc=(),
            content=event.text,
        )
