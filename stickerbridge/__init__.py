"""stickerbridge — relay Telegram photos, GIFs and stickers to WhatsApp."""

__version__ = "0.3.0"
