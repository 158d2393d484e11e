"""Pytest configuration and shared fixtures."""

import asyncio
import io
from typing import Optional

import pytest
from PIL import Image
from unittest.mock import AsyncMock, MagicMock

from stickerbridge.config import BridgeSettings
from stickerbridge.models import CollectionDescriptor, RelayItem


def make_png(width: int = 100, height: int = 50, color=(255, 0, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeTransport:
    """Stands in for BridgeTransport; tests drive events by hand."""

    def __init__(self, on_event, on_closed, fail_open: bool = False, open_gate=None):
        self.on_event = on_event
        self.on_closed = on_closed
        self.fail_open = fail_open
        self.open_gate: Optional[asyncio.Event] = open_gate
        self.opened = False
        self.closed = False
        self.closed_after_open = False
        self.requests: list[tuple[str, dict]] = []
        self.responses: dict = {}

    async def open(self):
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self.fail_open:
            raise OSError("Connect call failed")
        self.opened = True

    async def close(self):
        self.closed = True
        self.closed_after_open = self.opened

    async def request(self, command, payload, timeout=None):
        self.requests.append((command, payload))
        response = self.responses.get(command, {"ok": True})
        if isinstance(response, Exception):
            raise response
        return response

    def emit(self, kind: str, payload: dict):
        self.on_event(kind, payload)

    def drop(self, reason: str = "connection closed"):
        self.on_closed(reason)


class TransportFactory:
    def __init__(self, fail_open: bool = False):
        self.fail_open = fail_open
        self.open_gate: Optional[asyncio.Event] = None
        self.created: list[FakeTransport] = []

    def __call__(self, on_event, on_closed):
        transport = FakeTransport(on_event, on_closed, fail_open=self.fail_open, open_gate=self.open_gate)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class FakeSource:
    """Telegram side: records replies, serves files and packs."""

    def __init__(self):
        self.sent: list[tuple[int, str]] = []
        self.files: dict[str, bytes] = {}
        self.packs: dict[str, CollectionDescriptor] = {}
        self.failing_files: set[str] = set()
        self.downloads: list[str] = []

    async def download(self, file_id: str) -> bytes:
        self.downloads.append(file_id)
        if file_id in self.failing_files:
            raise RuntimeError("File is too big")
        return self.files.get(file_id, make_png())

    async def send_text(self, chat_id: int, text: str):
        self.sent.append((chat_id, text))

    async def fetch_sticker_set(self, name: str) -> CollectionDescriptor:
        if name not in self.packs:
            raise RuntimeError("Stickerset_invalid")
        return self.packs[name]

    def texts(self) -> list[str]:
        return [text for _, text in self.sent]


@pytest.fixture
def settings():
    return BridgeSettings(
        _env_file=None,
        telegram_bot_token="123456:test-token",
        wa_phone_number="911234567890",
        owner_whatsapp_number="919876543210",
        use_custom_pairing_code=True,
        custom_pairing_code="STICKERS",
        pack_author="Test Author",
        pack_name="Test Pack",
        reconnect_delay=0.01,
        pack_item_delay=0.0,
        choice_timeout=0.05,
        log_file=None,
    )


@pytest.fixture
def transport_factory():
    return TransportFactory()


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def ready_supervisor():
    """Supervisor double that is open and accepts every send."""
    supervisor = MagicMock()
    supervisor.is_ready.return_value = True
    supervisor.send_sticker = AsyncMock(return_value={"ok": True})
    supervisor.send_video = AsyncMock(return_value={"ok": True})
    supervisor.send_text = AsyncMock(return_value={"ok": True})
    supervisor.group_metadata = AsyncMock(return_value={"participants": []})
    return supervisor


@pytest.fixture
def sample_pack():
    return CollectionDescriptor(
        name="Foo",
        title="Foo Friends",
        members=[
            RelayItem.from_sticker("foo-1"),
            RelayItem.from_sticker("foo-2", is_animated=True),
            RelayItem.from_sticker("foo-3"),
            RelayItem.from_sticker("foo-4", is_video=True),
            RelayItem.from_sticker("foo-5"),
        ],
    )


@pytest.fixture
def png_bytes():
    return make_png()
