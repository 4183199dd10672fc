"""
Shared fixtures for the test-suite.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cosmos_imbot.config import get_settings
from cosmos_imbot.imbot import Contact, MemoryTransport, Room


class FakeClock:
    """A controllable clock for reclamation tests."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


BOT = Contact(id="bot", name="cosmos", is_self=True)
ANN = Contact(id="u1", name="Ann", alias="friend1")
BOB = Contact(id="u2", name="Bob")
CAROL = Contact(id="u3", name="Carol")
MALLORY = Contact(id="u9", name="Mallory")

TEAM = Room(id="r1", topic="Team")
ELSEWHERE = Room(id="r9", topic="Elsewhere")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    """A memory network with one whitelisted-looking room and a stranger."""
    transport = MemoryTransport(myself=BOT)
    transport.add_room(TEAM, [BOT, ANN, BOB, CAROL])
    transport.add_room(ELSEWHERE, [BOT, ANN, MALLORY])
    return transport


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
