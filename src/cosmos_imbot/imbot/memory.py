"""
In-memory transport.

Simulates a messaging network inside the process: a directory of contacts
and rooms, a log of everything the bot sent, and helpers that inject
inbound messages as if they arrived from the wire. Used by the test-suite
and handy for trying the bot without a network account.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from .transport import ChatScope, Contact, ContentType, InboundEvent, Room, Transport, TransportEvent

logger = structlog.get_logger()


@dataclass
class SentMessage:
    """A message sent through the memory transport."""

    target_id: str
    text: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MemoryTransport(Transport):
    """A simulated network for local runs and tests."""

    def __init__(self, myself: Contact | None = None):
        super().__init__()
        self.myself = myself or Contact(id="bot", name="cosmos", is_self=True)
        self.contacts: dict[str, Contact] = {}
        self.rooms: dict[str, Room] = {}
        self.members: dict[str, list[Contact]] = {}
        self.sent: list[SentMessage] = []
        self.fail_sends: Exception | None = None
        self.running = False

    @property
    def name(self) -> str:
        return "memory"

    # ------------------------------------------------------------------ #
    # Directory
    # ------------------------------------------------------------------ #
    def add_contact(self, contact: Contact) -> Contact:
        self.contacts[contact.id] = contact
        return contact

    def add_room(self, room: Room, members: list[Contact]) -> Room:
        self.rooms[room.id] = room
        self.members[room.id] = list(members)
        for member in members:
            if not member.is_self:
                self.contacts.setdefault(member.id, member)
        return room

    # ------------------------------------------------------------------ #
    # Transport interface
    # ------------------------------------------------------------------ #
    async def start(self) -> None:
        self.running = True
        logger.info("Memory transport started", user_id=self.myself.id)
        await self.emit(TransportEvent.LOGIN, self.myself)

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        await self.emit(TransportEvent.LOGOUT)
        logger.info("Memory transport stopped")

    async def find_room(self, name: str) -> Room | None:
        for room in self.rooms.values():
            if room.topic == name:
                return room
        return None

    async def room_members(self, room: Room) -> list[Contact]:
        return list(self.members.get(room.id, []))

    async def find_contact(self, name: str) -> Contact | None:
        if name == self.myself.name:
            return self.myself
        for contact in self.contacts.values():
            if name in (contact.name, contact.alias):
                return contact
        return None

    async def say(self, target_id: str, text: str, mentions: Sequence[Contact] = ()) -> None:
        if self.fail_sends is not None:
            raise self.fail_sends
        prefix = "".join(f"{self.mention(contact)} " for contact in mentions)
        self.sent.append(SentMessage(target_id=target_id, text=f"{prefix}{text}"))

    # ------------------------------------------------------------------ #
    # Simulation helpers
    # ------------------------------------------------------------------ #
    async def receive(self, event: InboundEvent) -> None:
        """Deliver an inbound event to the bot."""
        await self.emit(TransportEvent.MESSAGE, event)

    async def receive_group(
        self,
        room_id: str,
        sender: Contact,
        text: str,
        mentions: list[Contact] | None = None,
        content_type: ContentType = ContentType.TEXT,
    ) -> None:
        """Simulate a group message. Mentioning the bot sets ``mentions_self``."""
        mentions = list(mentions or [])
        room = self.rooms.get(room_id) or Room(id=room_id, topic=room_id)
        await self.receive(InboundEvent(
            scope=ChatScope.GROUP,
            sender=sender,
            text=text,
            content_type=content_type,
            room=room,
            mentions=mentions,
            mentions_self=any(contact.id == self.myself.id for contact in mentions),
        ))

    async def receive_direct(
        self,
        sender: Contact,
        text: str,
        listener: Contact | None = None,
        content_type: ContentType = ContentType.TEXT,
    ) -> None:
        """Simulate a direct message, addressed to the bot unless told otherwise."""
        await self.receive(InboundEvent(
            scope=ChatScope.DIRECT,
            sender=sender,
            text=text,
            content_type=content_type,
            listener=listener or self.myself,
        ))

    def sent_to(self, target_id: str) -> list[str]:
        """Texts sent to one target, oldest first."""
        return [message.text for message in self.sent if message.target_id == target_id]
