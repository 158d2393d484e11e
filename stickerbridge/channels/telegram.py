"""Telegram channel adapter."""

import logging
from typing import Optional

from telegram import Bot, BotCommand, Update
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..config import BridgeSettings
from ..models import (
    AnimationEvent,
    CollectionDescriptor,
    PhotoEvent,
    RelayItem,
    SourceEvent,
    StickerEvent,
    TextEvent,
)

logger = logging.getLogger("stickerbridge.telegram")

CONCURRENT_UPDATES = 256


class TelegramSource:
    """Outbound Telegram calls used by the relay pipeline."""

    def __init__(self, bot: Bot):
        self._bot = bot

    async def download(self, file_id: str) -> bytes:
        tg_file = await self._bot.get_file(file_id)
        data = await tg_file.download_as_bytearray()
        return bytes(data)

    async def send_text(self, chat_id: int, text: str):
        await self._bot.send_message(chat_id=chat_id, text=text)

    async def fetch_sticker_set(self, name: str) -> CollectionDescriptor:
        sticker_set = await self._bot.get_sticker_set(name)
        members = [
            RelayItem.from_sticker(s.file_id, bool(s.is_animated), bool(s.is_video))
            for s in sticker_set.stickers
        ]
        return CollectionDescriptor(name=sticker_set.name, title=sticker_set.title, members=members)


def update_to_event(update: Update) -> Optional[SourceEvent]:
    """Map a Telegram update to a source event (None if it carries nothing we relay)."""
    message = update.effective_message
    user = update.effective_user
    chat = update.effective_chat
    if message is None or user is None or chat is None:
        return None

    scope = {"user_id": user.id, "chat_id": chat.id}
    if message.sticker:
        sticker = message.sticker
        return StickerEvent(
            **scope,
            file_ref=sticker.file_id,
            is_animated=bool(sticker.is_animated),
            is_video=bool(sticker.is_video),
            set_name=sticker.set_name or None,
        )
    if message.animation:
        return AnimationEvent(**scope, file_ref=message.animation.file_id)
    if message.photo:
        # Largest size is last
        return PhotoEvent(**scope, file_ref=message.photo[-1].file_id)
    if message.text:
        return TextEvent(**scope, body=message.text.strip())
    return None


class TelegramChannel:
    """Telegram bot adapter for stickerbridge."""

    def __init__(self, bot_token: str, settings: BridgeSettings):
        self.settings = settings
        # One slow relay must not hold back other users' updates
        self.app: Application = (
            Application.builder()
            .token(bot_token)
            .concurrent_updates(CONCURRENT_UPDATES)
            .build()
        )
        self.source = TelegramSource(self.app.bot)
        self._dispatcher = None

    def attach(self, dispatcher):
        """Set the dispatcher that receives every relayable update."""
        self._dispatcher = dispatcher

    def _register_handlers(self):
        # Debug log for every inbound message; group -1 runs before the real handlers
        self.app.add_handler(MessageHandler(filters.ALL, self._log_message), group=-1)

        self.app.add_handler(CommandHandler("start", self._cmd_start))
        self.app.add_handler(CommandHandler("ping", self._cmd_ping))

        self.app.add_handler(MessageHandler(filters.PHOTO, self._handle_update))
        self.app.add_handler(MessageHandler(filters.ANIMATION, self._handle_update))
        self.app.add_handler(MessageHandler(filters.Sticker.ALL, self._handle_update))
        self.app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_update))

        self.app.add_error_handler(self._handle_error)

    async def start(self):
        """Start the Telegram bot (long polling)."""
        self._register_handlers()

        logger.info("Starting Telegram bot...")
        await self.app.initialize()
        await self.app.start()
        await self.app.updater.start_polling(drop_pending_updates=True)

        await self.app.bot.set_my_commands([
            BotCommand("start", "How to use this bot"),
            BotCommand("ping", "Check the bot is alive"),
        ])
        logger.info("🤖 Telegram bot is ready.")

    async def stop(self):
        """Stop the Telegram bot."""
        if self.app.updater and self.app.updater.running:
            await self.app.updater.stop()
        if self.app.running:
            await self.app.stop()
        await self.app.shutdown()
        logger.info("Telegram bot stopped.")

    async def _log_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        user = update.effective_user
        if not message or not user:
            return
        kinds = [
            name for name in ("text", "photo", "animation", "sticker", "document", "video")
            if getattr(message, name, None)
        ]
        logger.debug(f"TG message from {user.username or user.id} type: {kinds}")

    async def _handle_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if self._dispatcher is None:
            logger.warning("Telegram update received before dispatcher was attached")
            return
        event = update_to_event(update)
        if event is None:
            return
        await self._dispatcher.dispatch(event)

    async def _cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(
            "👋 Yo!\n"
            "Send me:\n"
            "• Photo → I make sticker on WhatsApp\n"
            "• Static sticker → I send sticker or full pack on WhatsApp\n"
            "• GIF/animation → I send GIF on WhatsApp\n"
            "• t.me/addstickers/<pack> link → I send the full pack\n\n"
            f"Sticker author: {self.settings.pack_author}"
        )

    async def _cmd_ping(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text("Pong from Telegram ✅")

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        """Handle errors."""
        logger.error(f"Telegram error: {context.error}", exc_info=context.error)
