"""
Telegram transport implementation.

Group names in the whitelist are chat ids or public ``@usernames``; peers
are numeric user ids or ``@usernames`` of people who have started the bot.
The Bot API cannot enumerate ordinary group members, so a room's roster is
its administrators plus the bot.

A user with a username is identified as ``@username`` (lower-cased), anyone
else by numeric user id. A plain ``@username`` mention carries no user id,
so this is the only key that stays the same whether or not the user has
been seen before.
"""

import html
from collections.abc import Sequence
from typing import Any

import structlog
from telegram import Update, User
from telegram.constants import ChatType, ParseMode
from telegram.error import TelegramError
from telegram.ext import Application

from ..config import Settings, get_settings
from ..imbot.transport import Contact, Room, Transport, TransportEvent
from .handlers import GROUP_CHAT_TYPES, setup_handlers

logger = structlog.get_logger()

MAX_MESSAGE_LENGTH = 4000


def _split_message(text: str, max_len: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a long message into chunks, trying to break at newlines."""
    if len(text) <= max_len:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_len:
            chunks.append(text)
            break
        # Try to break at a newline
        split_at = text.rfind("\n", 0, max_len)
        if split_at < max_len // 2:
            # No good newline, break at max_len
            split_at = max_len
        chunks.append(text[:split_at])
        text = text[split_at:].lstrip("\n")

    return chunks


def chat_ref(name: str) -> int | str:
    """Turn a configured name into a Bot API chat reference."""
    name = name.strip()
    if name.lstrip("-").isdigit():
        return int(name)
    return name if name.startswith("@") else f"@{name}"


def user_key(user_id: int | str, username: str | None) -> str:
    """Stable contact id for a Telegram user."""
    if username:
        return f"@{username.lower()}"
    return str(user_id)


class TelegramTransport(Transport):
    """Transport over the Telegram Bot API."""

    def __init__(
        self,
        token: str,
        webhook_url: str = "",
        webhook_secret: str = "",
    ):
        super().__init__()
        if not token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required")

        self.token = token
        self.webhook_url = webhook_url
        self.webhook_secret = webhook_secret
        self.application: Application | None = None
        self.myself: Contact | None = None
        # contact id -> numeric chat id, for contacts keyed by username
        self._chat_ids: dict[str, int] = {}

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "TelegramTransport":
        settings = settings or get_settings()
        return cls(
            settings.telegram_bot_token,
            webhook_url=settings.telegram_webhook_url,
            webhook_secret=settings.telegram_webhook_secret,
        )

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def _bot(self):
        if self.application is None:
            raise RuntimeError("Telegram transport not initialized")
        return self.application.bot

    # ------------------------------------------------------------------ #
    # Contacts
    # ------------------------------------------------------------------ #
    def _remember(self, contact: Contact, chat_id: int) -> Contact:
        if contact.id != str(chat_id):
            self._chat_ids[contact.id] = chat_id
        return contact

    def contact_from_user(self, user: User) -> Contact:
        """Build a contact from a Telegram user."""
        key = user_key(user.id, user.username)
        if self.myself is not None and key == self.myself.id:
            return self.myself

        contact = Contact(
            id=key,
            name=user.username or user.first_name,
            alias=user.full_name,
        )
        return self._remember(contact, user.id)

    def contact_from_username(self, username: str) -> Contact:
        """Resolve an ``@username`` mention to a contact."""
        key = user_key(0, username)
        if self.myself is not None and key == self.myself.id:
            return self.myself

        return Contact(id=key, name=username)

    def mention(self, contact: Contact) -> str:
        """Usernames mention as ``@name``; anyone else needs an inline user link."""
        if contact.id.startswith("@"):
            return html.escape(contact.id)
        return f'<a href="tg://user?id={contact.id}">{html.escape(contact.name)}</a>'

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def initialize(self) -> None:
        """Initialize the bot application."""
        self.application = Application.builder().token(self.token).build()

        setup_handlers(self.application, self)

        await self.application.initialize()

        me = await self.application.bot.get_me()
        self.myself = self._remember(
            Contact(
                id=user_key(me.id, me.username),
                name=me.username or me.first_name,
                is_self=True,
                alias=me.first_name,
            ),
            me.id,
        )
        logger.info("Telegram transport initialized", username=me.username)

    async def start(self) -> None:
        """Start receiving updates, by webhook when configured, else polling."""
        if self.application is None:
            await self.initialize()

        await self.application.start()  # type: ignore

        if self.webhook_url:
            await self._bot.set_webhook(
                url=self.webhook_url,
                secret_token=self.webhook_secret or None,
            )
            logger.info("Webhook set", url=self.webhook_url)
        else:
            await self.application.updater.start_polling(drop_pending_updates=True)  # type: ignore
            logger.info("Telegram transport started polling")

        await self.emit(TransportEvent.LOGIN, self.myself)

    async def stop(self) -> None:
        """Stop the transport."""
        if self.application is None:
            return

        await self.emit(TransportEvent.LOGOUT)

        if self.application.updater and self.application.updater.running:
            await self.application.updater.stop()
        if self.application.running:
            await self.application.stop()
        await self.application.shutdown()

        self.application = None
        logger.info("Telegram transport stopped")

    async def process_update(self, update_data: dict[str, Any]) -> None:
        """Process an incoming webhook update."""
        if self.application is None:
            raise RuntimeError("Telegram transport not initialized")

        update = Update.de_json(update_data, self.application.bot)
        await self.application.process_update(update)

    # ------------------------------------------------------------------ #
    # Transport primitives
    # ------------------------------------------------------------------ #
    async def _get_chat(self, name: str):
        try:
            return await self._bot.get_chat(chat_id=chat_ref(name))
        except TelegramError as e:
            logger.debug("Chat lookup failed", name=name, error=str(e))
            return None

    async def find_room(self, name: str) -> Room | None:
        chat = await self._get_chat(name)
        if chat is None or chat.type not in GROUP_CHAT_TYPES:
            return None
        return Room(id=str(chat.id), topic=chat.title or name)

    async def room_members(self, room: Room) -> list[Contact]:
        members: list[Contact] = []
        try:
            administrators = await self._bot.get_chat_administrators(chat_id=int(room.id))
            members = [self.contact_from_user(member.user) for member in administrators]
        except TelegramError as e:
            logger.warning("Could not list room administrators", room_id=room.id, error=str(e))

        if self.myself is not None and all(member.id != self.myself.id for member in members):
            members.append(self.myself)

        return members

    async def find_contact(self, name: str) -> Contact | None:
        chat = await self._get_chat(name)
        if chat is None or chat.type != ChatType.PRIVATE:
            return None

        contact = Contact(
            id=user_key(chat.id, chat.username),
            name=chat.username or chat.first_name or name,
            alias=chat.first_name or "",
        )
        return self._remember(contact, chat.id)

    async def say(self, target_id: str, text: str, mentions: Sequence[Contact] = ()) -> None:
        """Send text as HTML, split into Telegram-sized chunks. Errors propagate.

        Mentions are prepended to the first chunk only.
        """
        chat_id = self._chat_ids.get(target_id) or chat_ref(target_id)
        prefix = "".join(f"{self.mention(contact)} " for contact in mentions)

        for index, chunk in enumerate(_split_message(text)):
            body = html.escape(chunk, quote=False)
            await self._bot.send_message(
                chat_id=chat_id,
                text=f"{prefix}{body}" if index == 0 else body,
                parse_mode=ParseMode.HTML,
            )
