"""stickerbridge configuration management."""

import logging
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger("stickerbridge.config")

# WhatsApp address suffix for personal accounts
WA_USER_SUFFIX = "@s.whatsapp.net"


class BridgeSettings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    # Telegram
    telegram_bot_token: Optional[str] = Field(default=None, description="Telegram bot token")

    # WhatsApp: country code, no '+' (e.g. 91XXXXXXXXXX)
    wa_phone_number: Optional[str] = Field(default=None, description="WhatsApp number used for pairing")
    owner_whatsapp_number: Optional[str] = Field(
        default=None,
        description="Where stickers/GIFs are delivered (defaults to wa_phone_number)",
    )

    # Pairing code behavior (first time only)
    use_custom_pairing_code: bool = Field(default=False, description="Request a fixed pairing code")
    custom_pairing_code: Optional[str] = Field(default=None, description="8-char custom pairing code")

    # Sticker pack metadata embedded in every sticker
    pack_author: str = Field(default="stickerbridge", description="Sticker author")
    pack_name: str = Field(default="stickerbridge Universal Pack", description="Sticker pack name")

    # WhatsApp-side commands
    command_prefix: str = Field(default="!", description="Command prefix on WhatsApp")

    # Baileys sidecar
    bridge_url: str = Field(default="ws://127.0.0.1:3001", description="WhatsApp bridge WebSocket URL")
    bridge_request_timeout: float = Field(default=60.0, description="Seconds to wait for a bridge reply")

    # Timing
    reconnect_delay: float = Field(default=2.0, description="Seconds before reconnecting to WhatsApp")
    pack_item_delay: float = Field(default=0.3, description="Pause after each sticker of a pack")
    choice_timeout: float = Field(default=20.0, description="Seconds to wait for a one/pack reply")

    # Logging
    log_file: Optional[str] = Field(default="~/stickerbridge.log", description="Log file path (empty = console only)")
    debug: bool = Field(default=False, description="Debug logging")

    model_config = {"env_prefix": "STICKERBRIDGE_", "env_file": ".env", "extra": "ignore"}

    @property
    def owner_number(self) -> Optional[str]:
        return self.owner_whatsapp_number or self.wa_phone_number

    @property
    def owner_jid(self) -> Optional[str]:
        """Fixed destination address for every relayed item."""
        number = self.owner_number
        if not number:
            return None
        return f"{number}{WA_USER_SUFFIX}"


def load_settings() -> BridgeSettings:
    """Load settings from environment."""
    settings = BridgeSettings()

    if not settings.telegram_bot_token:
        logger.warning("❌ STICKERBRIDGE_TELEGRAM_BOT_TOKEN not set — Telegram side will not start.")
    if not settings.wa_phone_number:
        logger.warning("❌ STICKERBRIDGE_WA_PHONE_NUMBER not set — WhatsApp side will not start.")
    if settings.use_custom_pairing_code and not settings.custom_pairing_code:
        logger.warning(
            "use_custom_pairing_code is on but custom_pairing_code is empty; "
            "WhatsApp will generate the pairing code."
        )

    return settings
