"""
Thread reclaimer - periodic sweep of idle threads.

The messaging core never schedules its own reclamation; this task calls
``IMBot.reclaim_threads()`` at a fixed interval for as long as it runs.
"""

import asyncio
from typing import Optional

import structlog

from ..imbot.bot import IMBot

logger = structlog.get_logger()


class ThreadReclaimer:
    """Runs reclamation sweeps on an asyncio task."""

    def __init__(self, bot: IMBot, interval_seconds: float = 60):
        self.bot = bot
        self.interval_seconds = interval_seconds
        self.sweeps = 0
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    def sweep(self) -> int:
        """Run one sweep. Returns the number of reclaimed threads."""
        reclaimed = self.bot.reclaim_threads()
        self.sweeps += 1
        return len(reclaimed)

    async def _run_loop(self):
        """Main reclamation loop."""
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Thread reclamation error", error=str(e))

    def start(self):
        """Start the reclaimer."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Thread reclaimer started", interval=self.interval_seconds)

    def stop(self):
        """Stop the reclaimer."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        logger.info("Thread reclaimer stopped")
