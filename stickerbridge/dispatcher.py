"""Telegram-side event handling.

Every source event goes through Dispatcher.dispatch(). Handlers are short:
anything long (a full pack) runs as a tracked background task. Each handler
catches its own failures, logs the detail and sends one notice.
"""

import asyncio
import logging
import re
from typing import Optional

from .config import BridgeSettings
from .errors import NOT_READY_MESSAGE, RelayError, describe, user_message
from .models import (
    AnimationEvent,
    ChoiceAction,
    PendingChoice,
    PhotoEvent,
    SourceEvent,
    StickerEvent,
    TextEvent,
)
from .pending import PendingChoiceRegistry

logger = logging.getLogger("stickerbridge.dispatcher")

# e.g. https://t.me/addstickers/Animals_pack
PACK_LINK_RE = re.compile(r"(?:https?://)?[\w.-]+/addstickers/([A-Za-z0-9_]+)", re.IGNORECASE)


def find_pack_link(text: str) -> Optional[str]:
    """Return the pack name from an addstickers link, if the text has one."""
    match = PACK_LINK_RE.search(text or "")
    return match.group(1) if match else None


class Dispatcher:
    """Routes Telegram events to the relay, the pack expander and the choice registry."""

    def __init__(
        self,
        settings: BridgeSettings,
        supervisor,
        source,
        relay,
        expander,
        registry: Optional[PendingChoiceRegistry] = None,
    ):
        self._settings = settings
        self._wa = supervisor
        self._source = source
        self._relay = relay
        self._expander = expander
        self.registry = registry if registry is not None else PendingChoiceRegistry()
        self._tasks: set[asyncio.Task] = set()

    async def dispatch(self, event: SourceEvent) -> bool:
        """Handle one event. Returns False for text nobody claimed."""
        if isinstance(event, PhotoEvent):
            await self.handle_photo(event)
        elif isinstance(event, AnimationEvent):
            await self.handle_animation(event)
        elif isinstance(event, StickerEvent):
            await self.handle_sticker(event)
        elif isinstance(event, TextEvent):
            return await self.handle_text(event)
        else:
            logger.warning(f"Unhandled event type: {type(event).__name__}")
            return False
        return True

    # ── Handlers ──────────────────────────────────────────────

    async def handle_photo(self, event: PhotoEvent):
        if not await self._check_ready(event.chat_id):
            return
        await self._reply(event.chat_id, "🖼️ Converting photo to WhatsApp sticker…")
        await self._relay_single(event.chat_id, event.file_ref, animated=False)

    async def handle_animation(self, event: AnimationEvent):
        if not await self._check_ready(event.chat_id):
            return
        await self._reply(event.chat_id, "🎞️ Sending GIF to WhatsApp…")
        await self._relay_single(event.chat_id, event.file_ref, animated=True)

    async def handle_sticker(self, event: StickerEvent):
        if not event.to_item().supported:
            await self._reply(
                event.chat_id,
                "❌ Animated/video stickers are not supported. Send a static sticker.",
            )
            return
        if not await self._check_ready(event.chat_id):
            return

        choice = self.registry.open(
            event.user_id,
            event.file_ref,
            event.set_name,
            on_expire=self._on_choice_expired,
            ttl=self._settings.choice_timeout,
            chat_id=event.chat_id,
        )
        timeout = int(self._settings.choice_timeout)
        if choice.collection_name:
            await self._reply(
                event.chat_id,
                f"🤔 Reply \"one\" for just this sticker or \"pack\" for the full pack "
                f"\"{choice.collection_name}\".\nNo reply in {timeout}s → full pack.",
            )
        else:
            await self._reply(
                event.chat_id,
                f"🤔 Reply \"one\" to convert this sticker (it has no pack).\n"
                f"No reply in {timeout}s → just this sticker.",
            )

    async def handle_text(self, event: TextEvent) -> bool:
        """Resolve a pending choice, else look for a pack link."""
        resolution = self.registry.resolve(event.user_id, event.body)
        if resolution is not None and resolution.action != ChoiceAction.UNRECOGNIZED:
            await self._apply_choice(resolution.choice, resolution.action, resolution.pack_missing)
            return True

        pack_name = find_pack_link(event.body)
        if pack_name:
            logger.info(f"Pack link from user {event.user_id}: {pack_name}")
            if not await self._check_ready(event.chat_id):
                return True
            self.start_expansion(pack_name, event.chat_id)
            return True

        return False

    # ── Choice resolution ─────────────────────────────────────

    async def _on_choice_expired(self, choice: PendingChoice):
        await self._apply_choice(choice, choice.default_action, pack_missing=False)

    async def _apply_choice(self, choice: PendingChoice, action: ChoiceAction, pack_missing: bool):
        chat_id = choice.chat_id if choice.chat_id is not None else choice.user_id

        if action == ChoiceAction.CONVERT_COLLECTION and choice.collection_name:
            if not await self._check_ready(chat_id):
                return
            self.start_expansion(choice.collection_name, chat_id)
            return

        if pack_missing:
            await self._reply(chat_id, "ℹ️ This sticker has no pack — converting just this one.")
        if not await self._check_ready(chat_id):
            return
        await self._reply(chat_id, "🧩 Converting this sticker…")
        await self._relay_single(chat_id, choice.item_ref, animated=False)

    # ── Packs ─────────────────────────────────────────────────

    def start_expansion(self, pack_name: str, chat_id: int) -> asyncio.Task:
        """Run a full pack conversion in the background."""

        async def notify(text: str):
            await self._reply(chat_id, text)

        task = asyncio.create_task(self._expander.expand(pack_name, notify))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Pack conversion crashed: {describe(exc)}", exc_info=exc)

    async def shutdown(self):
        """Cancel pending choices and running pack conversions."""
        self.registry.clear()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    # ── Helpers ───────────────────────────────────────────────

    async def _relay_single(self, chat_id: int, file_ref: str, animated: bool):
        try:
            if animated:
                await self._relay.relay_animated_ref(file_ref)
            else:
                await self._relay.relay_image_ref(file_ref)
        except RelayError as e:
            logger.error(f"Relay failed ({'gif' if animated else 'sticker'}): {describe(e)}")
            await self._reply(chat_id, user_message(e))
            return
        except Exception as e:
            logger.error(f"Unexpected relay error: {e}", exc_info=True)
            await self._reply(chat_id, user_message(e))
            return
        await self._reply(chat_id, "✅ Sent to WhatsApp.")

    async def _check_ready(self, chat_id: int) -> bool:
        if self._wa.is_ready():
            return True
        await self._reply(chat_id, NOT_READY_MESSAGE)
        return False

    async def _reply(self, chat_id: int, text: str):
        try:
            await self._source.send_text(chat_id, text)
        except Exception as e:
            logger.warning(f"Telegram reply to {chat_id} failed: {e}")
