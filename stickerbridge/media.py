"""Single-item relay: download from Telegram, convert, send to WhatsApp."""

import hashlib
import io
import json
import logging

from PIL import Image, UnidentifiedImageError

from .config import BridgeSettings
from .errors import (
    ConversionFailedError,
    DownloadFailedError,
    NotReadyError,
    RelayError,
    SendFailedError,
)

logger = logging.getLogger("stickerbridge.media")

STICKER_SIZE = 512

# TIFF header with a single 0x5741 IFD entry holding the sticker JSON.
# Bytes 14..17 carry the JSON length (little endian).
_EXIF_HEADER = bytes([
    0x49, 0x49, 0x2A, 0x00, 0x08, 0x00, 0x00, 0x00,
    0x01, 0x00, 0x41, 0x57, 0x07, 0x00, 0x00, 0x00,
    0x00, 0x00, 0x16, 0x00, 0x00, 0x00,
])


def build_sticker_exif(pack_name: str, author: str) -> bytes:
    """WhatsApp sticker metadata, as read by the WhatsApp sticker tray."""
    pack_id = hashlib.sha1(f"{pack_name}|{author}".encode("utf-8")).hexdigest()
    data = json.dumps({
        "sticker-pack-id": pack_id,
        "sticker-pack-name": pack_name,
        "sticker-pack-publisher": author,
        "emojis": [""],
    }, ensure_ascii=False).encode("utf-8")
    exif = bytearray(_EXIF_HEADER + data)
    exif[14:18] = len(data).to_bytes(4, "little")
    return bytes(exif)


def to_sticker_webp(raw: bytes, pack_name: str = "", author: str = "") -> bytes:
    """Fit an image into a transparent 512×512 canvas and encode lossless WebP.

    The longest edge is scaled to 512 (up or down), aspect ratio kept,
    image centred. Only the first frame of animated input is used.
    """
    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            frame = img.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ConversionFailedError(f"Unreadable image ({len(raw)} bytes)") from e

    width, height = frame.size
    if not width or not height:
        raise ConversionFailedError("Image has no pixels")

    scale = STICKER_SIZE / max(width, height)
    new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
    resampling = getattr(Image, "Resampling", Image)
    frame = frame.resize(new_size, resampling.LANCZOS)

    canvas = Image.new("RGBA", (STICKER_SIZE, STICKER_SIZE), (0, 0, 0, 0))
    canvas.paste(frame, ((STICKER_SIZE - new_size[0]) // 2, (STICKER_SIZE - new_size[1]) // 2))

    buffered = io.BytesIO()
    try:
        canvas.save(
            buffered,
            format="WEBP",
            lossless=True,
            exif=build_sticker_exif(pack_name, author),
        )
    except (OSError, ValueError) as e:
        raise ConversionFailedError(f"WebP encoding failed: {e}") from e
    return buffered.getvalue()


class MediaRelay:
    """Relays one item to the owner's WhatsApp through the supervisor."""

    def __init__(self, supervisor, source, settings: BridgeSettings):
        self._wa = supervisor
        self._source = source
        self._settings = settings

    def _destination(self) -> str:
        jid = self._settings.owner_jid
        if not jid:
            raise SendFailedError("OWNER_WHATSAPP_NUMBER not configured")
        return jid

    def _ensure_ready(self):
        if not self._wa.is_ready():
            raise NotReadyError("WhatsApp connection is not open")

    async def download(self, file_ref: str) -> bytes:
        """Fetch a Telegram file. Any failure becomes DownloadFailedError."""
        try:
            data = await self._source.download(file_ref)
        except RelayError:
            raise
        except Exception as e:
            raise DownloadFailedError(f"Telegram download failed for {file_ref}") from e
        if not data:
            raise DownloadFailedError(f"Telegram returned an empty file for {file_ref}")
        return bytes(data)

    async def relay_image(self, raw: bytes):
        """Convert to a WhatsApp sticker and send it."""
        self._ensure_ready()
        webp = to_sticker_webp(raw, self._settings.pack_name, self._settings.pack_author)
        await self._wa.send_sticker(
            self._destination(),
            webp,
            pack_name=self._settings.pack_name,
            author=self._settings.pack_author,
        )
        logger.info(f"Sticker sent to WhatsApp ({len(raw)} → {len(webp)} bytes)")

    async def relay_animated(self, raw: bytes):
        """Send a clip untouched, flagged to loop like a GIF."""
        self._ensure_ready()
        await self._wa.send_video(self._destination(), raw, gif_playback=True)
        logger.info(f"GIF sent to WhatsApp ({len(raw)} bytes)")

    async def relay_image_ref(self, file_ref: str):
        self._ensure_ready()
        await self.relay_image(await self.download(file_ref))

    async def relay_animated_ref(self, file_ref: str):
        self._ensure_ready()
        await self.relay_animated(await self.download(file_ref))
