"""
Network-agnostic messaging abstractions.

Every messaging network supported by cosmos shares the same four concepts:

- Participant: an identity able to send and receive in a channel.
- Channel: a network conversation surface, either a group or a direct peer.
- Thread: a conversational context inside a channel, scoped to a set of
  participants. Each channel has a default thread for the whole channel.
- Message: one inbound utterance, routed to a thread.

These are capability interfaces. Concrete variants are chosen when the bot
is constructed, never by inspecting types at runtime.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class Sender(ABC):
    """Anything text can be sent to."""

    @abstractmethod
    async def send(self, content: str) -> None:
        """Send plain text. Raises when the network refuses it."""
        ...


class Participant(ABC):
    """An identity inside a channel. Equal when ids are equal."""

    @property
    @abstractmethod
    def id(self) -> str:
        """Stable network identifier."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Current display name."""
        ...

    @property
    @abstractmethod
    def is_myself(self) -> bool:
        """Whether this participant is the bot's own identity."""
        ...

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Participant):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


class Thread(Sender):
    """A conversation scoped to one channel and one participant set."""

    @property
    @abstractmethod
    def id(self) -> str:
        ...

    @property
    @abstractmethod
    def channel(self) -> "Channel":
        ...

    @property
    @abstractmethod
    def participants(self) -> Sequence[Participant]:
        ...

    @property
    @abstractmethod
    def last_active(self) -> datetime:
        ...

    @property
    @abstractmethod
    def is_default(self) -> bool:
        """Whether this is the whole-channel thread."""
        ...


class Channel(Sender):
    """A network conversation surface owning its threads."""

    @property
    @abstractmethod
    def id(self) -> str:
        ...

    @property
    @abstractmethod
    def participants(self) -> Sequence[Participant]:
        ...

    @property
    @abstractmethod
    def default_thread(self) -> Thread:
        ...

    @abstractmethod
    def find_thread(self, thread_id: str) -> Thread | None:
        ...

    @abstractmethod
    def find_or_add_thread(self, participants: Sequence[Participant]) -> Thread:
        ...

    @abstractmethod
    def reclaim_threads(self) -> list[Thread]:
        """Remove idle threads and return them."""
        ...


@dataclass(frozen=True)
class Message:
    """An inbound message, already routed to its thread."""

    thread: Thread
    sender: Participant
    cc: tuple[Participant, ...]
    content: str


class BotEventType(str, Enum):
    """Events a bot fans out to registered callbacks."""
    MESSAGE = "message"
    THREAD_RECLAIMED = "thread_reclaimed"


EventCallback = Callable[[Any], Awaitable[None] | None]


class Bot(ABC):
    """The messaging façade seen by applications."""

    @abstractmethod
    async def run(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def find_channel(self, name: str) -> Channel | None:
        """Look up a whitelisted group channel by its network name."""
        ...

    @abstractmethod
    async def find_dm(self, name: str) -> Channel | None:
        """Look up a whitelisted direct-message channel by peer name."""
        ...

    @abstractmethod
    def on(self, event: BotEventType, callback: EventCallback) -> None:
        ...
