"""
Channels, threads and participants.

A channel keeps one default thread for the whole conversation plus any
number of sub-threads, one per set of addressed participants. Sub-threads
are created lazily and reclaimed once idle for longer than the channel's
timeout. The default thread is held outside the sub-thread map, so no sweep
can ever remove it.
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
from types import MappingProxyType

import structlog

from .base import Channel, Participant, Thread
from .transport import ChatScope, Contact, Room, Transport

logger = structlog.get_logger()

DEFAULT_THREAD_ID = "#default"
THREAD_KEY_SEPARATOR = "|"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_participants(participants: Iterable[Participant]) -> tuple[Participant, ...]:
    """Deduplicate by id and order by id."""
    unique: dict[str, Participant] = {}
    for participant in participants:
        unique.setdefault(participant.id, participant)
    return tuple(unique[key] for key in sorted(unique))


def thread_key(participants: Iterable[Participant]) -> str:
    """Derive the thread id for a participant set.

    The key does not depend on the order the participants were supplied
    in, so the same group of people always lands in the same thread.

        >>> a = ChatParticipant(Contact(id="u2", name="Bob"))
        >>> b = ChatParticipant(Contact(id="u1", name="Ann"))
        >>> thread_key([a, b]) == thread_key([b, a]) == "u1|u2"
        True
    """
    return THREAD_KEY_SEPARATOR.join(p.id for p in canonical_participants(participants))


class ChatParticipant(Participant):
    """Participant backed by a transport contact."""

    __slots__ = ("contact",)

    def __init__(self, contact: Contact):
        self.contact = contact

    @property
    def id(self) -> str:
        return self.contact.id

    @property
    def name(self) -> str:
        return self.contact.name

    @property
    def is_myself(self) -> bool:
        return self.contact.is_self

    def __repr__(self) -> str:
        return f"ChatParticipant(id={self.id!r}, name={self.name!r})"


class ChatThread(Thread):
    """A thread inside a :class:`ChatChannel`."""

    def __init__(
        self,
        thread_id: str,
        channel: "ChatChannel",
        participants: Sequence[ChatParticipant],
        is_default: bool = False,
    ):
        self._id = thread_id
        self._channel = channel
        self._participants = tuple(participants)
        self._is_default = is_default
        self._last_active = channel.now()

    @property
    def id(self) -> str:
        return self._id

    @property
    def channel(self) -> "ChatChannel":
        return self._channel

    @property
    def participants(self) -> tuple[ChatParticipant, ...]:
        return self._participants

    @property
    def last_active(self) -> datetime:
        return self._last_active

    @property
    def is_default(self) -> bool:
        return self._is_default

    def touch(self) -> None:
        """Mark the thread active now."""
        self._last_active = self._channel.now()

    async def send(self, content: str) -> None:
        """Send to the channel, addressing this thread's participants.

        The default thread addresses nobody. The transport renders the
        mentions in its own syntax.

        Activity is refreshed once the transport accepts the text. When the
        channel is configured with ``refresh_activity_on_failed_send`` it is
        refreshed on failure too. Transport errors always propagate.
        """
        try:
            await self._channel.send(content, mentions=() if self._is_default else self._participants)
        except Exception:
            if self._channel.refresh_activity_on_failed_send:
                self.touch()
            raise
        self.touch()

    def __repr__(self) -> str:
        return f"ChatThread(id={self._id!r}, channel={self._channel.id!r})"


class ChatChannel(Channel):
    """A group room or direct peer, owning its threads."""

    def __init__(
        self,
        channel_id: str,
        name: str,
        transport: Transport,
        participants: Sequence[ChatParticipant],
        thread_timeout: timedelta,
        kind: ChatScope = ChatScope.GROUP,
        clock: Clock | None = None,
        refresh_activity_on_failed_send: bool = False,
    ):
        self._id = channel_id
        self.name = name
        self.kind = kind
        self.thread_timeout = thread_timeout
        self.refresh_activity_on_failed_send = refresh_activity_on_failed_send
        self._transport = transport
        self._participants = tuple(participants)
        self._clock = clock or utcnow
        self._threads: dict[str, ChatThread] = {}
        self._default_thread = ChatThread(DEFAULT_THREAD_ID, self, self._participants, is_default=True)

    @classmethod
    def for_room(
        cls,
        room: Room,
        members: Iterable[Contact],
        transport: Transport,
        thread_timeout: timedelta,
        **kwargs,
    ) -> "ChatChannel":
        """Build a group channel from a room and its roster."""
        return cls(
            room.id,
            room.topic,
            transport,
            [ChatParticipant(member) for member in members],
            thread_timeout,
            kind=ChatScope.GROUP,
            **kwargs,
        )

    @classmethod
    def for_contact(
        cls,
        contact: Contact,
        transport: Transport,
        thread_timeout: timedelta,
        **kwargs,
    ) -> "ChatChannel":
        """Build a direct-message channel with a single peer."""
        return cls(
            contact.id,
            contact.name,
            transport,
            [ChatParticipant(contact)],
            thread_timeout,
            kind=ChatScope.DIRECT,
            **kwargs,
        )

    def now(self) -> datetime:
        return self._clock()

    @property
    def id(self) -> str:
        return self._id

    @property
    def participants(self) -> tuple[ChatParticipant, ...]:
        return self._participants

    @property
    def default_thread(self) -> ChatThread:
        return self._default_thread

    @property
    def threads(self) -> Mapping[str, ChatThread]:
        """Live sub-threads keyed by thread id (read-only view)."""
        return MappingProxyType(self._threads)

    def find_thread(self, thread_id: str) -> ChatThread | None:
        if thread_id == DEFAULT_THREAD_ID:
            return self._default_thread
        return self._threads.get(thread_id)

    def find_or_add_thread(self, participants: Sequence[ChatParticipant]) -> ChatThread:
        """Resolve the thread for a participant set, creating it if needed.

        An empty set resolves to the default thread.
        """
        members = canonical_participants(participants)
        if not members:
            return self._default_thread

        key = thread_key(members)
        thread = self._threads.get(key)
        if thread is None:
            thread = ChatThread(key, self, members)
            self._threads[key] = thread
            logger.debug("Thread created", channel_id=self._id, thread_id=key)

        return thread

    def reclaim_threads(self) -> list[ChatThread]:
        """Remove sub-threads idle for longer than the timeout."""
        now = self.now()
        expired = [
            thread for thread in self._threads.values()
            if now - thread.last_active > self.thread_timeout
        ]

        for thread in expired:
            del self._threads[thread.id]

        if expired:
            logger.info(
                "Threads reclaimed",
                channel_id=self._id,
                count=len(expired),
                remaining=len(self._threads),
            )

        return expired

    async def send(self, content: str, mentions: Sequence[ChatParticipant] = ()) -> None:
        await self._transport.say(self._id, content, [participant.contact for participant in mentions])

    def __repr__(self) -> str:
        return f"ChatChannel(id={self._id!r}, name={self.name!r}, kind={self.kind.value!r})"
