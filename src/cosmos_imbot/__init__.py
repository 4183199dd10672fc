"""
cosmos-imbot: an instant-messaging adapter for conversational AI.

Maps raw network events (group mentions, direct messages) onto a stable
model of channels, threads and participants, and hands each message to a
response engine through the dispatcher.
"""

__version__ = "0.3.0"
