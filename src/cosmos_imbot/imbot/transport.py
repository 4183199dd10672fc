"""
Transport collaborator interface.

A transport is the physical link to one messaging network: it owns the
login handshake, the wire protocol and name lookups. The messaging core only
sees the normalized objects defined here and the handful of primitives on
:class:`Transport`.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ChatScope(str, Enum):
    """Where an inbound message was posted."""
    GROUP = "group"
    DIRECT = "direct"


class ContentType(str, Enum):
    """Payload kind of an inbound message."""
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    FILE = "file"
    STICKER = "sticker"
    OTHER = "other"


class TransportEvent(str, Enum):
    """Session and message signals emitted by a transport."""
    CHALLENGE = "challenge"
    LOGIN = "login"
    LOGOUT = "logout"
    MESSAGE = "message"


@dataclass(frozen=True)
class Contact:
    """A network-native contact as reported by the transport."""

    id: str
    name: str
    is_self: bool = False
    alias: str = ""


@dataclass(frozen=True)
class Room:
    """A network-native group conversation."""

    id: str
    topic: str


@dataclass
class InboundEvent:
    """A message received from the network, before classification."""

    scope: ChatScope
    sender: Contact
    text: str
    content_type: ContentType = ContentType.TEXT
    room: Room | None = None
    listener: Contact | None = None
    mentions: list[Contact] = field(default_factory=list)
    mentions_self: bool = False
    raw: Any = None


TransportHandler = Callable[..., Awaitable[None]]


class Transport(ABC):
    """Abstract base class for messaging network transports.

    Handlers registered with :meth:`on` are awaited one after another by
    :meth:`emit`, so a transport that emits from a single loop delivers its
    events to the core strictly serialized.
    """

    def __init__(self) -> None:
        self._handlers: dict[TransportEvent, list[TransportHandler]] = {}

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable network name."""
        ...

    def on(self, event: TransportEvent, handler: TransportHandler) -> None:
        """Register an async handler for a transport event."""
        self._handlers.setdefault(event, []).append(handler)

    async def emit(self, event: TransportEvent, *args: Any) -> None:
        """Deliver an event to every registered handler, in order."""
        for handler in self._handlers.get(event, []):
            await handler(*args)

    @abstractmethod
    async def start(self) -> None:
        """Connect to the network. Emits LOGIN once the session is ready."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect from the network. Emits LOGOUT."""
        ...

    @abstractmethod
    async def find_room(self, name: str) -> Room | None:
        """Resolve a group name to a room, or None when it is unknown."""
        ...

    @abstractmethod
    async def room_members(self, room: Room) -> list[Contact]:
        """List the known members of a room."""
        ...

    @abstractmethod
    async def find_contact(self, name: str) -> Contact | None:
        """Resolve a peer name or alias to a contact, or None."""
        ...

    def mention(self, contact: Contact) -> str:
        """Render a mention of a contact in this network's message syntax."""
        return f"@{contact.name}"

    @abstractmethod
    async def say(self, target_id: str, text: str, mentions: Sequence[Contact] = ()) -> None:
        """Send plain text to a room or contact, addressing ``mentions`` first.

        Raises on failure.
        """
        ...
