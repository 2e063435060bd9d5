"""
KKN WhatsApp Bot
================

Group moderation (anti-spam, word filter, link control, bans, mutes and
warnings), schedule reminders and chat commands for KKN student groups.

Running ``kknbot`` starts the bot on the local console transport.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. KKNBOT_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this package.
    """
    if env_home := os.getenv("KKNBOT_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dotenv import load_dotenv

load_dotenv(dotenv_path=BASE_DIR / ".env")

from kknbot.command.context import BotServices
from kknbot.command.dispatcher import CommandDispatcher
from kknbot.configuration.app_configuration import app_config
from kknbot.database.database import Database
from kknbot.errors import PersistenceError
from kknbot.listener.message_listener import MessageListener
from kknbot.moderation.moderation_engine import ModerationEngine
from kknbot.registry.group_registry import GroupRegistry
from kknbot.scheduler.schedule_scheduler import ScheduleScheduler
from kknbot.transport.console import ConsoleTransport
from kknbot.util.logger import get_logger, handle_exception

logger = get_logger("main")


def build_services(transport: ConsoleTransport) -> BotServices:
    """Wire every long-lived component around the shared configuration."""
    database = Database(app_config.database_path, backups_to_keep=app_config.backups_to_keep)
    registry = GroupRegistry(database, app_config)
    engine = ModerationEngine(registry, transport, app_config)
    scheduler = ScheduleScheduler(database, registry, transport, app_config)
    return BotServices(
        config=app_config,
        database=database,
        registry=registry,
        engine=engine,
        scheduler=scheduler,
        transport=transport,
    )


async def startup(services: BotServices) -> None:
    """Open the store, load group state, snapshot the database and re-arm timers."""
    await services.database.initialize()
    await services.registry.load_from_disk()
    try:
        await services.database.backup()
    except PersistenceError as exc:
        logger.warning("Startup backup failed: %s", exc)
    await services.scheduler.recover_on_startup()


async def shutdown_runtime(services: BotServices) -> None:
    """Stop timers, flush pending writes and close the store, in that order."""
    try:
        await services.engine.shutdown()
    except Exception as exc:
        logger.exception("Error during moderation engine shutdown: %s", exc)

    try:
        await services.scheduler.shutdown()
    except Exception as exc:
        logger.exception("Error during scheduler shutdown: %s", exc)

    try:
        await services.registry.shutdown()
    except Exception as exc:
        logger.exception("Error during group registry shutdown: %s", exc)

    try:
        await services.database.shutdown()
    except Exception as exc:
        logger.exception("Error during database shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the bot and run it on the console transport, returning an exit code."""
    transport = ConsoleTransport()
    services = build_services(transport)

    try:
        logger.info("Initializing database and loading group state...")
        await startup(services)
    except Exception as exc:
        logger.critical("Failed to initialize storage: %s", exc)
        await shutdown_runtime(services)
        return 1

    listener = MessageListener(services, CommandDispatcher(services))
    exit_code = 0
    try:
        await transport.run(listener.on_message)
    except asyncio.CancelledError:
        logger.info("Console transport cancelled; proceeding to shutdown")
    except Exception as exc:
        logger.critical("Bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(services)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    sys.excepthook = handle_exception
    logger.info("Starting KKN Bot…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
