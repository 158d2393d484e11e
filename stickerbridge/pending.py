"""Pending "one sticker or the whole pack?" choices, one per user.

Each entry owns a timer task that sleeps until the deadline. Opening a new
choice for the same user cancels the previous timer before the new entry is
stored, so a superseded default can never fire. Both resolve() and expiry
remove the entry before doing anything else; whichever runs first wins and
the other finds nothing.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .models import ChoiceAction, PendingChoice, Resolution

logger = logging.getLogger("stickerbridge.pending")

ExpireCallback = Callable[[PendingChoice], Awaitable[None]]


def classify_reply(text: str, has_collection: bool) -> tuple[ChoiceAction, bool]:
    """Classify a reply. Returns (action, pack_missing).

    "one" wins over "pack" so that "one, not the pack" means one.
    """
    lowered = (text or "").lower()
    if "one" in lowered:
        return ChoiceAction.CONVERT_SINGLE, False
    if "pack" in lowered:
        if has_collection:
            return ChoiceAction.CONVERT_COLLECTION, False
        return ChoiceAction.CONVERT_SINGLE, True
    return ChoiceAction.UNRECOGNIZED, False


class PendingChoiceRegistry:
    """Per-user store of outstanding choices with deadline defaults."""

    def __init__(self):
        self._entries: dict[int, PendingChoice] = {}
        self._timers: dict[int, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._entries

    def get(self, user_id: int) -> Optional[PendingChoice]:
        return self._entries.get(user_id)

    def open(
        self,
        user_id: int,
        item_ref: str,
        collection_name: Optional[str],
        on_expire: ExpireCallback,
        ttl: float,
        chat_id: Optional[int] = None,
    ) -> PendingChoice:
        """Store a new choice for user_id, replacing (and disarming) any older one."""
        if self.cancel(user_id):
            logger.debug(f"Superseded pending choice for user {user_id}")

        loop = asyncio.get_running_loop()
        default = ChoiceAction.CONVERT_COLLECTION if collection_name else ChoiceAction.CONVERT_SINGLE
        choice = PendingChoice(
            user_id=user_id,
            item_ref=item_ref,
            collection_name=collection_name or None,
            deadline=loop.time() + ttl,
            default_action=default,
            chat_id=chat_id,
        )
        self._entries[user_id] = choice
        self._timers[user_id] = asyncio.create_task(self._expire(choice, ttl, on_expire))
        return choice

    def resolve(self, user_id: int, reply_text: str) -> Optional[Resolution]:
        """Consume the user's choice and classify the reply. None if nothing is pending."""
        choice = self._entries.pop(user_id, None)
        if choice is None:
            return None
        timer = self._timers.pop(user_id, None)
        if timer is not None and not timer.done():
            timer.cancel()

        action, pack_missing = classify_reply(reply_text, bool(choice.collection_name))
        logger.info(f"Pending choice for user {user_id} resolved by reply: {action.value}")
        return Resolution(choice=choice, action=action, pack_missing=pack_missing)

    def cancel(self, user_id: int) -> bool:
        """Drop the user's choice without firing its default."""
        choice = self._entries.pop(user_id, None)
        timer = self._timers.pop(user_id, None)
        if timer is not None and not timer.done():
            timer.cancel()
        return choice is not None

    def clear(self):
        for user_id in list(self._entries):
            self.cancel(user_id)

    async def _expire(self, choice: PendingChoice, ttl: float, on_expire: ExpireCallback):
        try:
            await asyncio.sleep(ttl)
        except asyncio.CancelledError:
            return

        # Only the entry this timer was armed for may expire
        if self._entries.get(choice.user_id) is not choice:
            return
        del self._entries[choice.user_id]
        self._timers.pop(choice.user_id, None)

        logger.info(
            f"Pending choice for user {choice.user_id} timed out → {choice.default_action.value}"
        )
        try:
            await on_expire(choice)
        except Exception as e:
            logger.error(f"Default action for user {choice.user_id} failed: {e}", exc_info=True)
