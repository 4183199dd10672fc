"""
FastAPI application factory.

Manages the lifecycle of the runtime (transport, bot, dispatcher and thread
reclaimer) and exposes health, channel inspection and the Telegram webhook.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Header, HTTPException, Request

from .. import __version__
from ..config import Settings, get_settings
from ..imbot.channel import ChatChannel, ChatThread
from ..runtime import Runtime

logger = structlog.get_logger()

runtime: Runtime | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    global runtime

    settings = get_settings()

    runtime = Runtime.from_settings(settings)
    await runtime.start()

    yield

    # Shutdown
    if runtime:
        await runtime.stop()
        runtime = None

    logger.info("Application shutdown complete")


def _thread_to_dict(thread: ChatThread) -> dict[str, Any]:
    return {
        "id": thread.id,
        "default": thread.is_default,
        "participants": [p.id for p in thread.participants],
        "last_active": thread.last_active.isoformat(),
    }


def _channel_to_dict(channel: ChatChannel) -> dict[str, Any]:
    threads = [channel.default_thread, *channel.threads.values()]
    return {
        "id": channel.id,
        "name": channel.name,
        "kind": channel.kind.value,
        "participants": [{"id": p.id, "name": p.name} for p in channel.participants],
        "threads": [_thread_to_dict(thread) for thread in threads],
    }


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Instant-messaging adapter for conversational AI",
        version=__version__,
        lifespan=lifespan,
    )

    # ------------------------------------------------------------------ #
    # Health & Channels
    # ------------------------------------------------------------------ #
    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "bot_running": runtime is not None,
            "network": runtime.transport.name if runtime else None,
            "logged_in": bool(runtime and runtime.bot.myself),
            "channels": len(runtime.bot.channels) if runtime else 0,
            "conversations": runtime.dispatcher.tracker_count if runtime else 0,
            "reclaimer_running": bool(runtime and runtime.reclaimer.running),
        }

    @app.get("/api/channels")
    async def list_channels():
        """List whitelisted channels with their live threads."""
        if runtime is None:
            raise HTTPException(status_code=503, detail="Bot not running")

        return {"channels": [_channel_to_dict(channel) for channel in runtime.bot.channels]}

    # ------------------------------------------------------------------ #
    # Telegram Webhook
    # ------------------------------------------------------------------ #
    @app.post("/webhook/telegram")
    async def telegram_webhook(
        request: Request,
        x_telegram_bot_api_secret_token: str | None = Header(None),
    ):
        """Handle Telegram webhook updates."""
        from ..telegram import TelegramTransport

        if settings.telegram_webhook_secret:
            if x_telegram_bot_api_secret_token != settings.telegram_webhook_secret:
                raise HTTPException(status_code=401, detail="Invalid secret token")

        if runtime is None or not isinstance(runtime.transport, TelegramTransport):
            raise HTTPException(status_code=503, detail="Telegram transport not running")

        update_data = await request.json()

        try:
            await runtime.transport.process_update(update_data)
        except Exception as e:
            logger.error("Webhook processing error", error=str(e))

        return {"ok": True}

    return app
