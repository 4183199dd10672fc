"""
Command-line interface for cosmos-imbot.
"""

import argparse
import asyncio
import logging
import signal
import sys

import structlog

from .config import Settings, get_settings


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog on top of the standard library logger."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="cosmos",
        description="cosmos - an instant-messaging adapter for conversational AI",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Run the bot (long polling, no HTTP server)")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP server with the bot")
    serve_parser.add_argument("--host", default=None, help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    configure_logging("DEBUG" if settings.debug else settings.log_level)

    if args.command == "run":
        run_bot(settings)
    elif args.command == "serve":
        run_server(settings, args.host, args.port, args.reload)
    elif args.command == "config":
        show_config(settings, args.check)
    else:
        parser.print_help()


def run_bot(settings: Settings) -> None:
    """Run the bot until interrupted."""
    from .runtime import Runtime

    try:
        runtime = Runtime.from_settings(settings)
    except ValueError as e:
        logger.error("Startup failed", error=str(e))
        sys.exit(1)

    asyncio.run(_run_until_signalled(runtime))


async def _run_until_signalled(runtime) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await runtime.start()
    try:
        await stop.wait()
    finally:
        await runtime.stop()


def run_server(settings: Settings, host: str | None, port: int | None, reload: bool) -> None:
    """Run the FastAPI server."""
    import uvicorn

    problems = check_config(settings)
    if problems:
        for problem in problems:
            logger.error("Startup failed", error=problem)
        sys.exit(1)

    host = host or settings.host
    port = port or settings.port
    logger.info("Starting cosmos server", host=host, port=port)

    uvicorn.run(
        "cosmos_imbot.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
        log_level=settings.log_level.lower(),
    )


def check_config(settings: Settings) -> list[str]:
    """Return the fatal configuration problems, if any."""
    problems = []

    if not settings.telegram_bot_token:
        problems.append("TELEGRAM_BOT_TOKEN is required")

    engine_config = settings.get_engine_config()
    if not engine_config.api_key:
        problems.append(f"{engine_config.provider.upper()}_API_KEY is required")

    return problems


def show_config(settings: Settings, check: bool) -> None:
    """Show current configuration."""

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== cosmos Configuration ===\n")

    print("Bot:")
    print(f"  Name / wake word: {settings.bot_name}")
    print(f"  Thread timeout: {settings.thread_reclaim_timeout_minutes} min")
    print(f"  Reclaim interval: {settings.thread_reclaim_interval_seconds} s")
    print(f"  Groups: {', '.join(settings.group_whitelist_list) or '(none)'}")
    print(f"  Friends: {', '.join(settings.dm_whitelist_list) or '(none)'}")

    print("\nTelegram:")
    print(f"  Bot Token: {mask(settings.telegram_bot_token)}")
    print(f"  Webhook URL: {settings.telegram_webhook_url or '(polling mode)'}")

    engine_config = settings.get_engine_config()
    print("\nResponse engine:")
    print(f"  Provider: {engine_config.provider}")
    print(f"  Model: {engine_config.model}")
    print(f"  API Key: {mask(engine_config.api_key)}")
    print(f"  Timeout: {settings.engine_timeout_seconds} s")

    if check:
        problems = check_config(settings)
        print()
        if problems:
            for problem in problems:
                print(f"ERROR: {problem}")
            sys.exit(1)

        if not settings.group_whitelist_list and not settings.dm_whitelist_list:
            print("WARNING: whitelists are empty, the bot will ignore every message")
        print("Configuration OK")


if __name__ == "__main__":
    main()
