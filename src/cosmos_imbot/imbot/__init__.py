"""
Messaging abstraction layer.

Channels, threads, participants and messages, plus the bot façade that maps
raw network events onto them. Concrete networks plug in as transports.
"""

from .base import Bot, BotEventType, Channel, EventCallback, Message, Participant, Sender, Thread
from .bot import IMBot
from .channel import DEFAULT_THREAD_ID, ChatChannel, ChatParticipant, ChatThread, thread_key
from .memory import MemoryTransport
from .registry import ChannelRegistry
from .transport import ChatScope, Contact, ContentType, InboundEvent, Room, Transport, TransportEvent

__all__ = [
    "Bot",
    "BotEventType",
    "Channel",
    "ChannelRegistry",
    "ChatChannel",
    "ChatParticipant",
    "ChatScope",
    "ChatThread",
    "Contact",
    "ContentType",
    "DEFAULT_THREAD_ID",
    "EventCallback",
    "IMBot",
    "InboundEvent",
    "MemoryTransport",
    "Message",
    "Participant",
    "Room",
    "Sender",
    "Thread",
    "Transport",
    "TransportEvent",
    "thread_key",
]
