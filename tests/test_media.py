"""Tests for sticker conversion and single-item relay."""

import io
import json

import pytest
from PIL import Image

from stickerbridge.errors import (
    ConversionFailedError,
    DownloadFailedError,
    NotReadyError,
    SendFailedError,
)
from stickerbridge.media import STICKER_SIZE, MediaRelay, build_sticker_exif, to_sticker_webp

from conftest import make_png


def _open_webp(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


class TestConversion:
    """to_sticker_webp() output shape."""

    def test_wide_image_is_fitted_and_centred(self):
        webp = to_sticker_webp(make_png(200, 100), "Pack", "Me")
        img = _open_webp(webp)

        assert img.format == "WEBP"
        assert img.size == (STICKER_SIZE, STICKER_SIZE)
        rgba = img.convert("RGBA")
        # 512×256 content band in the middle, transparent above and below
        assert rgba.getpixel((256, 0))[3] == 0
        assert rgba.getpixel((256, 511))[3] == 0
        assert rgba.getpixel((256, 256))[3] == 255
        assert rgba.getpixel((0, 256))[3] == 255

    def test_tall_image(self):
        rgba = _open_webp(to_sticker_webp(make_png(50, 400))).convert("RGBA")

        assert rgba.size == (STICKER_SIZE, STICKER_SIZE)
        assert rgba.getpixel((0, 256))[3] == 0
        assert rgba.getpixel((256, 0))[3] == 255

    def test_small_image_is_upscaled(self):
        rgba = _open_webp(to_sticker_webp(make_png(10, 10))).convert("RGBA")

        assert rgba.getpixel((0, 0))[3] == 255
        assert rgba.getpixel((511, 511))[3] == 255

    def test_exif_carries_pack_metadata(self):
        webp = to_sticker_webp(make_png(), "My Pack", "Alice")

        assert b"My Pack" in webp
        assert b"Alice" in webp

    def test_garbage_input(self):
        with pytest.raises(ConversionFailedError):
            to_sticker_webp(b"definitely not an image")

    def test_empty_input(self):
        with pytest.raises(ConversionFailedError):
            to_sticker_webp(b"")

    def test_oversized_image_is_rejected(self, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)

        with pytest.raises(ConversionFailedError) as exc_info:
            to_sticker_webp(make_png(100, 100))
        assert isinstance(exc_info.value.__cause__, Image.DecompressionBombError)


class TestStickerExif:

    def test_layout(self):
        exif = build_sticker_exif("Pack", "Author")

        assert exif[:4] == b"II*\x00"
        length = int.from_bytes(exif[14:18], "little")
        body = json.loads(exif[22:].decode("utf-8"))
        assert length == len(exif) - 22
        assert body["sticker-pack-name"] == "Pack"
        assert body["sticker-pack-publisher"] == "Author"
        assert body["sticker-pack-id"]

    def test_pack_id_is_stable(self):
        assert build_sticker_exif("A", "B") == build_sticker_exif("A", "B")
        assert build_sticker_exif("A", "B") != build_sticker_exif("A", "C")


class TestMediaRelay:
    """MediaRelay against a supervisor double and fake Telegram source."""

    @pytest.mark.asyncio
    async def test_relay_image_ref_sends_sticker_to_owner(self, ready_supervisor, fake_source, settings):
        relay = MediaRelay(ready_supervisor, fake_source, settings)

        await relay.relay_image_ref("photo-1")

        assert fake_source.downloads == ["photo-1"]
        ready_supervisor.send_sticker.assert_awaited_once()
        args, kwargs = ready_supervisor.send_sticker.await_args
        assert args[0] == "919876543210@s.whatsapp.net"
        assert _open_webp(args[1]).size == (STICKER_SIZE, STICKER_SIZE)
        assert kwargs == {"pack_name": "Test Pack", "author": "Test Author"}

    @pytest.mark.asyncio
    async def test_relay_animated_ref_sends_bytes_unchanged(self, ready_supervisor, fake_source, settings):
        fake_source.files["gif-1"] = b"\x00\x00\x00\x18ftypmp42"
        relay = MediaRelay(ready_supervisor, fake_source, settings)

        await relay.relay_animated_ref("gif-1")

        ready_supervisor.send_video.assert_awaited_once_with(
            "919876543210@s.whatsapp.net", b"\x00\x00\x00\x18ftypmp42", gif_playback=True
        )
        ready_supervisor.send_sticker.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_ready_skips_download(self, ready_supervisor, fake_source, settings):
        ready_supervisor.is_ready.return_value = False
        relay = MediaRelay(ready_supervisor, fake_source, settings)

        with pytest.raises(NotReadyError):
            await relay.relay_image_ref("photo-1")

        assert fake_source.downloads == []
        ready_supervisor.send_sticker.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_download_failure(self, ready_supervisor, fake_source, settings):
        fake_source.failing_files.add("photo-1")
        relay = MediaRelay(ready_supervisor, fake_source, settings)

        with pytest.raises(DownloadFailedError):
            await relay.relay_image_ref("photo-1")
        ready_supervisor.send_sticker.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_download(self, ready_supervisor, fake_source, settings):
        fake_source.files["photo-1"] = b""
        relay = MediaRelay(ready_supervisor, fake_source, settings)

        with pytest.raises(DownloadFailedError):
            await relay.relay_image_ref("photo-1")

    @pytest.mark.asyncio
    async def test_conversion_failure(self, ready_supervisor, fake_source, settings):
        fake_source.files["photo-1"] = b"<html>nope</html>"
        relay = MediaRelay(ready_supervisor, fake_source, settings)

        with pytest.raises(ConversionFailedError):
            await relay.relay_image_ref("photo-1")
        ready_supervisor.send_sticker.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_failure_propagates(self, ready_supervisor, fake_source, settings):
        ready_supervisor.send_sticker.side_effect = SendFailedError("WhatsApp send_message failed")
        relay = MediaRelay(ready_supervisor, fake_source, settings)

        with pytest.raises(SendFailedError):
            await relay.relay_image_ref("photo-1")

    @pytest.mark.asyncio
    async def test_missing_owner(self, ready_supervisor, fake_source, settings):
        settings.owner_whatsapp_number = None
        settings.wa_phone_number = None
        relay = MediaRelay(ready_supervisor, fake_source, settings)

        with pytest.raises(SendFailedError):
            await relay.relay_image(make_png())
