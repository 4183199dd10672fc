"""
Tests for the bot façade: session setup, routing and callback fan-out.
"""

import asyncio
from datetime import timedelta

import pytest
from structlog.testing import capture_logs

from cosmos_imbot.config import BotConfig
from cosmos_imbot.imbot import (
    DEFAULT_THREAD_ID,
    BotEventType,
    ChatScope,
    ContentType,
    IMBot,
    InboundEvent,
)

from conftest import ANN, BOB, BOT, CAROL, MALLORY, TEAM

CONFIG = BotConfig(
    bot_name="cosmos",
    thread_reclaim_timeout=timedelta(minutes=30),
    group_whitelist=["Team"],
    dm_whitelist=["friend1"],
)


async def start_bot(transport, config=CONFIG, clock=None):
    bot = IMBot(transport, config, clock=clock)
    received = []
    bot.on(BotEventType.MESSAGE, received.append)
    await bot.run()
    return bot, received


@pytest.mark.asyncio
async def test_login_builds_registry(transport):
    """Test that the whitelist is resolved into channels on login."""
    bot, _ = await start_bot(transport)

    assert bot.myself == BOT
    assert [c.id for c in bot.registry.rooms] == ["r1"]
    assert {c.id for c in bot.registry.contacts} == {"bot", "u1"}
    assert [p.id for p in bot.registry.room("r1").participants] == ["bot", "u1", "u2", "u3"]


@pytest.mark.asyncio
async def test_login_skips_unknown_names(transport):
    """Test that unresolvable whitelist names are skipped."""
    config = CONFIG.model_copy(update={
        "group_whitelist": ["Nowhere", "Team"],
        "dm_whitelist": ["ghost", "friend1"],
    })
    bot, _ = await start_bot(transport, config)

    assert [c.id for c in bot.registry.rooms] == ["r1"]
    assert bot.registry.contact("u1") is not None
    assert len(bot.registry) == 3


@pytest.mark.asyncio
async def test_scenario_group_mention(transport):
    """Test a group message mentioning the bot and another member."""
    _, received = await start_bot(transport)

    await transport.receive_group("r1", ANN, "cosmos hello", mentions=[BOT, BOB])

    assert len(received) == 1
    message = received[0]
    assert message.sender.id == "u1"
    assert [p.id for p in message.cc] == ["u2", "u1"]
    assert message.content == "cosmos hello"
    assert message.thread.id == "u1|u2"
    assert message.thread.channel.id == "r1"


@pytest.mark.asyncio
async def test_scenario_direct_message(transport):
    """Test a whitelisted peer's direct message."""
    bot, received = await start_bot(transport)

    await transport.receive_direct(ANN, "hi there")

    assert len(received) == 1
    message = received[0]
    assert message.thread is bot.registry.contact("u1").default_thread
    assert message.thread.id == DEFAULT_THREAD_ID
    assert message.cc == ()


@pytest.mark.asyncio
async def test_scenario_unlisted_room(transport):
    """Test that rooms outside the whitelist are ignored."""
    _, received = await start_bot(transport)

    await transport.receive_group("r9", ANN, "cosmos hello", mentions=[BOT])

    assert received == []


@pytest.mark.asyncio
async def test_scenario_reclaim_idle_thread(transport, clock):
    """Test that an idle sub-thread is gone after a sweep."""
    bot, received = await start_bot(transport, clock=clock)
    await transport.receive_group("r1", ANN, "hi", mentions=[BOT, BOB])
    channel = bot.registry.room("r1")
    thread_id = received[0].thread.id

    clock.advance(minutes=31)
    bot.reclaim_threads()

    assert channel.find_thread(thread_id) is None
    assert thread_id not in channel.threads
    assert channel.find_thread(DEFAULT_THREAD_ID) is channel.default_thread


@pytest.mark.asyncio
async def test_mention_order_selects_same_thread(transport):
    """Test that mention order does not split a conversation."""
    _, received = await start_bot(transport)

    await transport.receive_group("r1", ANN, "one", mentions=[BOT, BOB, CAROL])
    await transport.receive_group("r1", ANN, "two", mentions=[CAROL, BOT, BOB])

    assert received[0].thread is received[1].thread
    assert received[0].thread.id == "u1|u2|u3"


@pytest.mark.asyncio
async def test_group_wake_word(transport):
    """Test that the bot name prefix admits a message without mentions."""
    bot, received = await start_bot(transport)

    await transport.receive_group("r1", ANN, "cosmos what time is it?")

    assert len(received) == 1
    assert received[0].cc == ()
    assert received[0].thread is bot.registry.room("r1").default_thread


@pytest.mark.asyncio
async def test_group_wake_word_with_mentions(transport):
    """Test that mentions without the bot exclude the sender."""
    _, received = await start_bot(transport)

    await transport.receive_group("r1", ANN, "cosmos ask Bob", mentions=[BOB])

    assert [p.id for p in received[0].cc] == ["u2"]
    assert received[0].thread.id == "u2"


@pytest.mark.asyncio
async def test_group_wake_word_is_case_sensitive(transport):
    """Test that only the exact name prefix wakes the bot."""
    _, received = await start_bot(transport)

    await transport.receive_group("r1", ANN, "Cosmos hello")
    await transport.receive_group("r1", ANN, "hello cosmos")

    assert received == []


@pytest.mark.asyncio
async def test_group_non_text_dropped(transport):
    """Test that non-text group content is dropped."""
    _, received = await start_bot(transport)

    await transport.receive_group("r1", ANN, "", mentions=[BOT], content_type=ContentType.IMAGE)

    assert received == []


@pytest.mark.asyncio
async def test_group_message_from_bot_ignored(transport):
    """Test that the bot never reacts to its own messages."""
    _, received = await start_bot(transport)

    await transport.receive_group("r1", BOT, "cosmos hello", mentions=[BOB])

    assert received == []


@pytest.mark.asyncio
async def test_direct_message_to_self_routed(transport):
    """Test that the bot's own account can talk to its self channel."""
    bot, received = await start_bot(transport)

    await transport.receive_direct(BOT, "cosmos hi", listener=BOT)

    assert len(received) == 1
    assert received[0].thread is bot.registry.contact("bot").default_thread
    assert received[0].cc == ()


@pytest.mark.asyncio
async def test_direct_message_from_bot_to_peer_ignored(transport):
    """Test that the bot's outgoing direct messages are not routed."""
    _, received = await start_bot(transport)

    await transport.receive_direct(BOT, "hello Ann", listener=ANN)

    assert received == []


@pytest.mark.asyncio
async def test_group_message_touches_thread(transport, clock):
    """Test that inbound messages keep their thread alive."""
    bot, received = await start_bot(transport, clock=clock)
    await transport.receive_group("r1", ANN, "one", mentions=[BOT])

    clock.advance(minutes=25)
    await transport.receive_group("r1", ANN, "two", mentions=[BOT])
    clock.advance(minutes=25)
    bot.reclaim_threads()

    assert received[0].thread.id in bot.registry.room("r1").threads


@pytest.mark.asyncio
async def test_direct_from_unlisted_peer(transport):
    """Test that strangers are ignored."""
    _, received = await start_bot(transport)

    await transport.receive_direct(MALLORY, "hi")

    assert received == []


@pytest.mark.asyncio
async def test_direct_to_other_listener(transport):
    """Test that messages not addressed to the bot are ignored."""
    _, received = await start_bot(transport)

    await transport.receive_direct(ANN, "hi", listener=BOB)

    assert received == []


@pytest.mark.asyncio
async def test_direct_non_text_dropped(transport):
    """Test that non-text direct content is dropped."""
    _, received = await start_bot(transport)

    await transport.receive_direct(ANN, "", content_type=ContentType.AUDIO)

    assert received == []


@pytest.mark.asyncio
async def test_direct_without_listener(transport):
    """Test that an event with no listener is ignored."""
    _, received = await start_bot(transport)

    await transport.receive(InboundEvent(scope=ChatScope.DIRECT, sender=ANN, text="hi"))

    assert received == []


@pytest.mark.asyncio
async def test_callbacks_run_in_registration_order(transport):
    """Test that every callback sees the message."""
    bot = IMBot(transport, CONFIG)
    calls = []
    bot.on(BotEventType.MESSAGE, lambda m: calls.append("first"))
    bot.on(BotEventType.MESSAGE, lambda m: calls.append("second"))
    await bot.run()

    await transport.receive_direct(ANN, "hi")

    assert calls == ["first", "second"]


@pytest.mark.asyncio
async def test_failing_callback_is_isolated(transport):
    """Test that one failing callback does not affect the others."""
    bot = IMBot(transport, CONFIG)
    seen = []

    def broken(message):
        raise RuntimeError("boom")

    async def broken_async(message):
        raise RuntimeError("async boom")

    async def working(message):
        seen.append(message.content)

    bot.on(BotEventType.MESSAGE, broken)
    bot.on(BotEventType.MESSAGE, broken_async)
    bot.on(BotEventType.MESSAGE, working)
    await bot.run()

    await transport.receive_direct(ANN, "hi")
    await bot.drain()

    assert seen == ["hi"]


@pytest.mark.asyncio
async def test_callback_failures_are_logged(transport):
    """Test that sync and async callback failures are logged, not raised."""
    bot = IMBot(transport, CONFIG)

    def broken(message):
        raise RuntimeError("boom")

    async def broken_async(message):
        raise RuntimeError("async boom")

    bot.on(BotEventType.MESSAGE, broken)
    bot.on(BotEventType.MESSAGE, broken_async)
    await bot.run()

    with capture_logs() as logs:
        await transport.receive_direct(ANN, "hi")
        await bot.drain()

    failures = [entry for entry in logs if entry["event"] == "Event callback failed"]
    assert [entry["event_type"] for entry in failures] == ["message", "message"]
    assert {entry["log_level"] for entry in failures} == {"error"}


@pytest.mark.asyncio
async def test_async_callbacks_do_not_block_routing(transport):
    """Test that slow callbacks run concurrently with the next message."""
    bot = IMBot(transport, CONFIG)
    release = asyncio.Event()
    finished = []

    async def slow(message):
        await release.wait()
        finished.append(message.content)

    bot.on(BotEventType.MESSAGE, slow)
    await bot.run()

    await transport.receive_direct(ANN, "one")
    await transport.receive_direct(ANN, "two")
    assert finished == []

    release.set()
    await bot.drain()

    assert sorted(finished) == ["one", "two"]


@pytest.mark.asyncio
async def test_reclaim_notifies_callbacks(transport, clock):
    """Test that reclaimed threads are announced."""
    bot, _ = await start_bot(transport, clock=clock)
    reclaimed = []
    bot.on(BotEventType.THREAD_RECLAIMED, reclaimed.append)
    await transport.receive_group("r1", ANN, "hi", mentions=[BOT])

    clock.advance(hours=1)
    result = bot.reclaim_threads()

    assert reclaimed == result
    assert [t.id for t in reclaimed] == ["u1"]


@pytest.mark.asyncio
async def test_find_channel_and_dm(transport):
    """Test looking up channels by network name."""
    bot, _ = await start_bot(transport)

    assert (await bot.find_channel("Team")) is bot.registry.room(TEAM.id)
    assert await bot.find_channel("Elsewhere") is None
    assert await bot.find_channel("Nowhere") is None
    assert (await bot.find_dm("Ann")) is bot.registry.contact("u1")
    assert await bot.find_dm("Mallory") is None


@pytest.mark.asyncio
async def test_stop_tears_down(transport):
    """Test that stopping cancels pending callbacks and clears channels."""
    bot = IMBot(transport, CONFIG)
    cancelled = []

    async def forever(message):
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.append(message.content)
            raise

    bot.on(BotEventType.MESSAGE, forever)
    await bot.run()
    await transport.receive_direct(ANN, "hi")
    await asyncio.sleep(0)

    await bot.stop()

    assert cancelled == ["hi"]
    assert len(bot.registry) == 0
    assert not transport.running


@pytest.mark.asyncio
async def test_relogin_rebuilds_registry(transport):
    """Test that a new session replaces the previous channels."""
    bot, _ = await start_bot(transport)
    old_room = bot.registry.room("r1")

    await transport.start()

    assert bot.registry.room("r1") is not old_room
    assert len(bot.registry) == 3
