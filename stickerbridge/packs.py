"""Full sticker pack conversion."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .errors import CollectionFetchFailedError, describe, user_message
from .models import CollectionDescriptor

logger = logging.getLogger("stickerbridge.packs")

Notify = Callable[[str], Awaitable[None]]


@dataclass
class ExpansionReport:
    name: str
    title: str = ""
    total: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    fetch_failed: bool = False


class CollectionExpander:
    """Walks a pack in order and relays every static member, best effort.

    One member failing never stops the walk; the only fatal step is the
    initial pack lookup.
    """

    def __init__(self, relay, source, item_delay: float = 0.3):
        self._relay = relay
        self._source = source
        self._item_delay = item_delay

    async def fetch(self, collection_name: str) -> CollectionDescriptor:
        try:
            return await self._source.fetch_sticker_set(collection_name)
        except Exception as e:
            raise CollectionFetchFailedError(f"Sticker pack '{collection_name}' lookup failed") from e

    async def expand(self, collection_name: str, notify: Optional[Notify] = None) -> ExpansionReport:
        report = ExpansionReport(name=collection_name)

        try:
            pack = await self.fetch(collection_name)
        except CollectionFetchFailedError as e:
            logger.error(f"Pack fetch failed: {describe(e)}")
            report.fetch_failed = True
            await self._notify(notify, user_message(e))
            return report

        report.title = pack.title
        report.total = len(pack.members)
        report.skipped = pack.skipped_count
        static = len(pack.static_members)
        await self._notify(
            notify,
            f"📦 Converting full pack \"{pack.title}\" — {static} of {report.total} stickers…",
        )

        for index, item in enumerate(pack.members, start=1):
            if not item.supported:
                logger.info(f"[{pack.name}] #{index} skipped: {item.media_kind.value}")
                continue
            try:
                await self._relay.relay_image_ref(item.source_ref)
                report.sent += 1
                await asyncio.sleep(self._item_delay)
            except Exception as e:
                report.failed += 1
                logger.error(f"[{pack.name}] #{index} failed: {describe(e)}")

        logger.info(
            f"Pack '{pack.name}' done: sent={report.sent} failed={report.failed} "
            f"skipped={report.skipped} total={report.total}"
        )
        summary = f"✅ Done with \"{pack.title}\": sent {report.sent}/{static} stickers to WhatsApp."
        if report.failed:
            summary += f" {report.failed} failed."
        if report.skipped:
            summary += f" Skipped {report.skipped} animated/video."
        await self._notify(notify, summary)
        return report

    async def _notify(self, notify: Optional[Notify], text: str):
        if notify is None:
            return
        try:
            await notify(text)
        except Exception as e:
            logger.warning(f"Pack progress notice failed: {e}")
