"""
Channel registry.

Holds the channels built from the whitelist for the current session: group
rooms and direct-message contacts, each keyed by resolved network id.
"""

import structlog

from .channel import ChatChannel, ChatThread

logger = structlog.get_logger()


class ChannelRegistry:
    """Registry of whitelisted channels.

    Populated when the transport session becomes ready and torn down when
    the bot stops.
    """

    def __init__(self):
        self._rooms: dict[str, ChatChannel] = {}
        self._contacts: dict[str, ChatChannel] = {}

    def add_room(self, channel: ChatChannel) -> None:
        """Register a group channel."""
        self._rooms[channel.id] = channel

    def add_contact(self, channel: ChatChannel) -> None:
        """Register a direct-message channel."""
        self._contacts[channel.id] = channel

    def room(self, room_id: str) -> ChatChannel | None:
        """Get a group channel by room id."""
        return self._rooms.get(room_id)

    def contact(self, contact_id: str) -> ChatChannel | None:
        """Get a direct-message channel by contact id."""
        return self._contacts.get(contact_id)

    @property
    def rooms(self) -> list[ChatChannel]:
        return list(self._rooms.values())

    @property
    def contacts(self) -> list[ChatChannel]:
        return list(self._contacts.values())

    @property
    def all_channels(self) -> list[ChatChannel]:
        """Get all registered channels, rooms first."""
        return self.rooms + self.contacts

    def reclaim_threads(self) -> list[ChatThread]:
        """Sweep every channel and return the reclaimed threads."""
        reclaimed: list[ChatThread] = []
        for channel in self.all_channels:
            reclaimed.extend(channel.reclaim_threads())
        return reclaimed

    def clear(self) -> None:
        """Drop every channel."""
        if self._rooms or self._contacts:
            logger.info(
                "Channel registry cleared",
                rooms=len(self._rooms),
                contacts=len(self._contacts),
            )
        self._rooms.clear()
        self._contacts.clear()

    def __len__(self) -> int:
        return len(self._rooms) + len(self._contacts)
