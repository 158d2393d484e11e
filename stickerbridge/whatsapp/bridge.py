"""WebSocket transport to the Baileys sidecar.

One BridgeTransport is one socket session. The supervisor builds a new
instance on every (re)connect and never reuses a closed one.

Frames are JSON objects:
    command   →  {"type": "command", "requestId": ..., "command": ..., "payload": {...}}
    response  ←  {"type": "response", "requestId": ..., "payload": {"ok": bool, ...}}
    event     ←  {"type": "connection" | "creds" | "messages", "payload": {...}}
"""

import asyncio
import contextlib
import json
import logging
import uuid
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from ..errors import BridgeError

logger = logging.getLogger("stickerbridge.whatsapp.bridge")

# Stickers are small but GIF clips can reach a few MB once base64-encoded
_MAX_FRAME_BYTES = 64 * 1024 * 1024

EventCallback = Callable[[str, dict], None]
ClosedCallback = Callable[[str], None]


class BridgeTransport:
    """Single WebSocket session with request/response correlation."""

    def __init__(
        self,
        url: str,
        on_event: EventCallback,
        on_closed: ClosedCallback,
        request_timeout: float = 60.0,
    ):
        self._url = url
        self._on_event = on_event
        self._on_closed = on_closed
        self._request_timeout = request_timeout
        self._ws: Any = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: dict[str, asyncio.Future] = {}
        self._send_lock = asyncio.Lock()
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closing

    async def open(self):
        """Connect the socket and start reading frames."""
        self._ws = await websockets.connect(
            self._url,
            max_size=_MAX_FRAME_BYTES,
            ping_interval=20,
            ping_timeout=20,
        )
        self._reader_task = asyncio.create_task(self._read_loop())
        logger.info(f"Connected to WhatsApp bridge at {self._url}")

    async def close(self):
        """Close the socket without reporting a drop."""
        self._closing = True
        if self._reader_task and not self._reader_task.done():
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
        self._reader_task = None
        if self._ws is not None:
            with contextlib.suppress(Exception):
                await self._ws.close()
            self._ws = None
        self._fail_pending("Bridge transport closed")

    async def request(self, command: str, payload: dict, timeout: Optional[float] = None) -> dict:
        """Send a command and wait for its response payload.

        Raises BridgeError when the bridge answers ok=false, the socket is
        gone, or no answer arrives in time.
        """
        if not self.is_open:
            raise BridgeError("Bridge transport is not open", code="not_connected")

        request_id = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        frame = json.dumps({
            "type": "command",
            "requestId": request_id,
            "command": command,
            "payload": payload,
        })

        try:
            async with self._send_lock:
                if not self.is_open:
                    raise BridgeError(f"Bridge closed during '{command}'", code="closed")
                await self._ws.send(frame)
            response = await asyncio.wait_for(future, timeout=timeout or self._request_timeout)
        except asyncio.TimeoutError as e:
            raise BridgeError(f"Bridge command '{command}' timed out", code="timeout") from e
        except ConnectionClosed as e:
            raise BridgeError(f"Bridge closed during '{command}'", code="closed") from e
        finally:
            self._pending.pop(request_id, None)
            if not future.done():
                future.cancel()
            elif not future.cancelled():
                # Marks a failure set by _fail_pending as retrieved
                future.exception()

        if not response.get("ok", False):
            raise BridgeError(
                str(response.get("error") or f"Bridge command '{command}' failed"),
                code=str(response.get("code") or "command_failed"),
            )
        return response

    async def _read_loop(self):
        reason = "connection closed"
        try:
            async for raw in self._ws:
                self._handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            reason = f"connection closed ({e})"
        except Exception as e:
            reason = f"reader error: {e}"
            logger.error(f"Error in WhatsApp bridge reader: {e}", exc_info=True)
        finally:
            self._fail_pending("Bridge connection closed")

        if not self._closing:
            self._closing = True
            self._ws = None
            logger.warning(f"WhatsApp bridge dropped: {reason}")
            self._on_closed(reason)

    def _handle_frame(self, raw):
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            logger.warning("Invalid JSON from WhatsApp bridge")
            return

        if not isinstance(data, dict):
            logger.warning("Invalid bridge frame shape")
            return

        msg_type = data.get("type")
        payload = data.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if msg_type == "response":
            request_id = data.get("requestId")
            future = self._pending.get(request_id) if isinstance(request_id, str) else None
            if future is not None and not future.done():
                future.set_result(payload)
            return

        if not isinstance(msg_type, str):
            logger.warning("Bridge frame without type")
            return

        try:
            self._on_event(msg_type, payload)
        except Exception as e:
            logger.error(f"Error handling bridge event '{msg_type}': {e}", exc_info=True)

    def _fail_pending(self, reason: str):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(BridgeError(reason, code="closed"))
        self._pending.clear()
