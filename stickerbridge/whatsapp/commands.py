"""WhatsApp-side commands: hello, ping and mention-everyone."""

import logging
from typing import Optional

from ..errors import RelayError

logger = logging.getLogger("stickerbridge.whatsapp.commands")

GROUP_SUFFIX = "@g.us"
DEFAULT_MENTION_TEXT = "👋 Hello everyone!"


def parse_text(msg: dict) -> str:
    """Pull the visible text out of a Baileys WAMessage."""
    m = msg.get("message") or {}
    if m.get("conversation"):
        return m["conversation"]
    for key, field in (
        ("extendedTextMessage", "text"),
        ("imageMessage", "caption"),
        ("videoMessage", "caption"),
    ):
        value = (m.get(key) or {}).get(field)
        if value:
            return value
    return ""


def parse_command(text: str, prefix: str) -> Optional[tuple[str, str]]:
    """Split '<prefix>cmd arg text' into (cmd, arg text). None if not a command."""
    if not prefix or not text.startswith(prefix):
        return None
    parts = text[len(prefix):].strip().split()
    if not parts:
        return None
    return parts[0].lower(), " ".join(parts[1:])


class WhatsAppCommands:
    """Handles inbound WhatsApp messages delivered by the supervisor."""

    def __init__(self, supervisor, prefix: str = "!"):
        self._wa = supervisor
        self._prefix = prefix

    async def handle(self, msg: dict):
        jid = (msg.get("key") or {}).get("remoteJid")
        if not jid:
            return

        text = parse_text(msg)
        is_group = jid.endswith(GROUP_SUFFIX)

        try:
            if text.lower() == "hello bot":
                await self._wa.send_text(jid, "Hi 👋 I am alive on WhatsApp.", quoted=msg)
                return

            parsed = parse_command(text, self._prefix)
            if parsed is None:
                return
            cmd, arg_text = parsed
            logger.info(f"[whatsapp] command '{cmd}' in {jid}")

            if cmd == "ping":
                await self._wa.send_text(jid, "Pong from WhatsApp ✅", quoted=msg)
            elif cmd in ("all", "mentionall"):
                if not is_group:
                    await self._wa.send_text(jid, "❌ This command only works in groups.", quoted=msg)
                    return
                await self.mention_all(jid, arg_text or DEFAULT_MENTION_TEXT)
        except RelayError as e:
            logger.error(f"WhatsApp command reply failed in {jid}: {e}")

    async def mention_all(self, group_jid: str, message_text: str):
        """Mention every participant while only showing @everyone in the text."""
        try:
            meta = await self._wa.group_metadata(group_jid)
            participants = meta.get("participants") or []
            mentions = [p["id"] for p in participants if isinstance(p, dict) and p.get("id")]
            await self._wa.send_text(group_jid, f"{message_text}\n\n@everyone", mentions=mentions)
        except RelayError as e:
            logger.error(f"WA mentionAll error: {e}")
            await self._wa.send_text(group_jid, "⚠️ Failed to mention all users.")
