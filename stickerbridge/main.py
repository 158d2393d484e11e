"""stickerbridge — Main entry point."""

import asyncio
import logging
import os
from typing import Optional

from .channels.telegram import TelegramChannel
from .config import BridgeSettings, load_settings
from .dispatcher import Dispatcher
from .media import MediaRelay
from .packs import CollectionExpander
from .whatsapp import ConnectionSupervisor, WhatsAppCommands

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("stickerbridge")


def setup_logging(settings: BridgeSettings):
    """Console + optional file logging, configured once per process."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(os.path.expanduser(settings.log_file), encoding="utf-8"))

    logging.basicConfig(level=logging.INFO, format=_log_format, handlers=handlers)
    if settings.debug:
        logging.getLogger("stickerbridge").setLevel(logging.DEBUG)
    # Bridge frames and Telegram polling are noisy at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


async def run(settings: Optional[BridgeSettings] = None):
    """Main run loop."""
    settings = settings or load_settings()
    setup_logging(settings)

    supervisor = ConnectionSupervisor(settings)
    commands = WhatsAppCommands(supervisor, prefix=settings.command_prefix)
    supervisor.on_message(commands.handle)

    telegram: Optional[TelegramChannel] = None
    dispatcher: Optional[Dispatcher] = None

    try:
        logger.info("🚀 Starting TG ↔ WA media bot...")

        # WhatsApp first so the first photo has a chance of finding it open
        await supervisor.start()

        if settings.telegram_bot_token:
            telegram = TelegramChannel(settings.telegram_bot_token, settings)
            relay = MediaRelay(supervisor, telegram.source, settings)
            expander = CollectionExpander(relay, telegram.source, item_delay=settings.pack_item_delay)
            dispatcher = Dispatcher(settings, supervisor, telegram.source, relay, expander)
            telegram.attach(dispatcher)
            await telegram.start()
            logger.info("Telegram channel active.")
        else:
            logger.warning(
                "No Telegram bot token configured. Set STICKERBRIDGE_TELEGRAM_BOT_TOKEN in .env."
            )

        logger.info("stickerbridge is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(1)

    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
    finally:
        if dispatcher:
            await dispatcher.shutdown()
        if telegram:
            await telegram.stop()
        await supervisor.stop()


def main():
    """Entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
