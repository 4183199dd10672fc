"""
Runtime wiring.

Builds the transport, bot, response engine, dispatcher and reclaimer from
settings and manages their lifecycle as one unit.
"""

from dataclasses import dataclass

import structlog

from .config import Settings, get_settings
from .dispatcher import Dispatcher
from .engine import ResponseEngine, create_engine
from .imbot.bot import IMBot
from .imbot.transport import Transport
from .scheduler import ThreadReclaimer

logger = structlog.get_logger()


@dataclass
class Runtime:
    """A running cosmos instance."""

    transport: Transport
    bot: IMBot
    dispatcher: Dispatcher
    reclaimer: ThreadReclaimer

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: Transport | None = None,
        engine: ResponseEngine | None = None,
    ) -> "Runtime":
        """Wire every component. Missing credentials raise ValueError."""
        settings = settings or get_settings()
        engine = engine or create_engine(settings=settings)

        if transport is None:
            from .telegram import TelegramTransport
            transport = TelegramTransport.from_settings(settings)

        bot = IMBot(transport, settings.get_bot_config())
        dispatcher = Dispatcher(engine, timeout_seconds=settings.engine_timeout_seconds)
        dispatcher.attach(bot)
        reclaimer = ThreadReclaimer(bot, settings.thread_reclaim_interval_seconds)

        return cls(transport=transport, bot=bot, dispatcher=dispatcher, reclaimer=reclaimer)

    async def start(self) -> None:
        await self.bot.run()
        self.reclaimer.start()
        logger.info("Runtime started", network=self.transport.name, channels=len(self.bot.channels))

    async def stop(self) -> None:
        self.reclaimer.stop()
        await self.bot.stop()
        logger.info("Runtime stopped")
