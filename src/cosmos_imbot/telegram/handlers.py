"""
Telegram update handlers.

Converts python-telegram-bot updates into transport-neutral
:class:`InboundEvent` objects and hands them to the transport.
"""

from typing import TYPE_CHECKING

import structlog
from telegram import Message as TelegramMessage
from telegram import MessageEntity, Update
from telegram.constants import ChatType
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from ..imbot.transport import ChatScope, Contact, ContentType, InboundEvent, Room, TransportEvent

if TYPE_CHECKING:
    from .transport import TelegramTransport

logger = structlog.get_logger()

GROUP_CHAT_TYPES = (ChatType.GROUP, ChatType.SUPERGROUP)


def content_type_of(message: TelegramMessage) -> ContentType:
    """Classify the payload of a Telegram message."""
    if message.text is not None:
        return ContentType.TEXT
    if message.photo:
        return ContentType.IMAGE
    if message.voice or message.audio:
        return ContentType.AUDIO
    if message.video or message.video_note:
        return ContentType.VIDEO
    if message.document:
        return ContentType.FILE
    if message.sticker:
        return ContentType.STICKER
    return ContentType.OTHER


def message_to_event(message: TelegramMessage, transport: "TelegramTransport") -> InboundEvent | None:
    """Build an inbound event from a Telegram message.

    Returns None for messages the core has no model for (channel posts,
    anonymous senders, unknown chat types).
    """
    user = message.from_user
    if user is None:
        return None

    sender = transport.contact_from_user(user)
    content_type = content_type_of(message)
    text = message.text or message.caption or ""
    chat = message.chat

    if chat.type == ChatType.PRIVATE:
        return InboundEvent(
            scope=ChatScope.DIRECT,
            sender=sender,
            text=text,
            content_type=content_type,
            listener=transport.myself,
            raw=message,
        )

    if chat.type not in GROUP_CHAT_TYPES:
        return None

    mentions: list[Contact] = []
    mentions_self = False

    if content_type is ContentType.TEXT:
        entities = message.parse_entities([MessageEntity.MENTION, MessageEntity.TEXT_MENTION])
        for entity, entity_text in entities.items():
            if entity.type == MessageEntity.TEXT_MENTION and entity.user is not None:
                contact = transport.contact_from_user(entity.user)
            else:
                contact = transport.contact_from_username(entity_text.lstrip("@"))

            if contact.is_self:
                mentions_self = True
            else:
                mentions.append(contact)

    return InboundEvent(
        scope=ChatScope.GROUP,
        sender=sender,
        text=text,
        content_type=content_type,
        room=Room(id=str(chat.id), topic=chat.title or ""),
        mentions=mentions,
        mentions_self=mentions_self,
        raw=message,
    )


def setup_handlers(app: Application, transport: "TelegramTransport") -> None:
    """Set up the message handler feeding the transport."""

    async def message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Forward new messages to the transport."""
        if update.message is None:
            return

        event = message_to_event(update.message, transport)
        if event is None:
            logger.debug("Unsupported Telegram message, ignore it", chat_id=update.message.chat_id)
            return

        await transport.emit(TransportEvent.MESSAGE, event)

    async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error("Telegram handler error", error=str(context.error), exc_info=context.error)

    app.add_handler(MessageHandler(filters.UpdateType.MESSAGE, message_handler))
    app.add_error_handler(error_handler)

    logger.info("Telegram handlers set up")
