"""
Tests for the periodic thread reclaimer.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from cosmos_imbot.config import BotConfig
from cosmos_imbot.imbot import IMBot
from cosmos_imbot.scheduler import ThreadReclaimer

from conftest import ANN, BOB, BOT


@pytest.mark.asyncio
async def test_sweep_counts_reclaimed(transport, clock):
    """Test a single sweep."""
    bot = IMBot(transport, BotConfig(group_whitelist=["Team"]), clock=clock)
    await bot.run()
    await transport.receive_group("r1", ANN, "hi", mentions=[BOT])
    await transport.receive_group("r1", ANN, "hi", mentions=[BOT, BOB])

    reclaimer = ThreadReclaimer(bot)

    assert reclaimer.sweep() == 0
    clock.advance(minutes=31)
    assert reclaimer.sweep() == 2
    assert reclaimer.sweeps == 2


@pytest.mark.asyncio
async def test_start_and_stop():
    """Test that the loop sweeps until stopped."""
    bot = MagicMock()
    bot.reclaim_threads.return_value = []
    reclaimer = ThreadReclaimer(bot, interval_seconds=0.01)

    reclaimer.start()
    assert reclaimer.running
    await asyncio.sleep(0.05)
    reclaimer.stop()

    assert not reclaimer.running
    assert reclaimer.sweeps >= 1
    assert bot.reclaim_threads.called


@pytest.mark.asyncio
async def test_loop_survives_errors():
    """Test that a failing sweep does not end the loop."""
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("sweep failed")
        return []

    bot = MagicMock()
    bot.reclaim_threads.side_effect = flaky
    reclaimer = ThreadReclaimer(bot, interval_seconds=0.01)

    reclaimer.start()
    await asyncio.sleep(0.1)
    reclaimer.stop()

    assert len(calls) >= 2
    assert reclaimer.sweeps >= 1
