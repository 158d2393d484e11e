"""WhatsApp connection supervisor.

Owns the one destination connection of the process:

- builds a fresh BridgeTransport on every start() and drops it on every
  disconnect (dependents only ever hold the supervisor)
- tracks ConnectionState; is_ready() gates every outbound send
- requests a pairing code once when the credential store is unregistered
- reconnects after a fixed delay on transient drops, never after logout
- announces readiness to the owner once per process
"""

import asyncio
import base64
import logging
from typing import Awaitable, Callable, Optional

from ..config import BridgeSettings
from ..errors import BridgeError, NotReadyError, SendFailedError
from ..models import ConnectionState
from .bridge import BridgeTransport

logger = logging.getLogger("stickerbridge.whatsapp")

# Baileys DisconnectReason.loggedOut
LOGGED_OUT_STATUS = 401

READY_ANNOUNCEMENT = "Bot: ✅ fully initialized & ready."

StateCallback = Callable[[ConnectionState, ConnectionState], None]
MessageCallback = Callable[[dict], Awaitable[None]]


class ConnectionSupervisor:
    """Connection lifecycle state machine for the WhatsApp side."""

    def __init__(
        self,
        settings: BridgeSettings,
        transport_factory: Optional[Callable] = None,
        reconnect_delay: Optional[float] = None,
    ):
        self._settings = settings
        self._transport_factory = transport_factory or self._default_transport
        self._reconnect_delay = settings.reconnect_delay if reconnect_delay is None else reconnect_delay
        self._state = ConnectionState.DISCONNECTED
        self._transport = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._state_callbacks: list[StateCallback] = []
        self._message_callbacks: list[MessageCallback] = []
        self._announced = False
        self._pairing_requested = False
        self._stopped = False

    def _default_transport(self, on_event, on_closed) -> BridgeTransport:
        return BridgeTransport(
            self._settings.bridge_url,
            on_event=on_event,
            on_closed=on_closed,
            request_timeout=self._settings.bridge_request_timeout,
        )

    # ── State ─────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_ready(self) -> bool:
        return self._state == ConnectionState.OPEN

    def on_state_change(self, callback: StateCallback):
        self._state_callbacks.append(callback)

    def on_message(self, callback: MessageCallback):
        self._message_callbacks.append(callback)

    def _set_state(self, new: ConnectionState):
        old = self._state
        if old == new:
            return
        self._state = new
        logger.info(f"WA state: {old.value} → {new.value}")
        for callback in list(self._state_callbacks):
            try:
                callback(old, new)
            except Exception as e:
                logger.error(f"State observer failed: {e}", exc_info=True)

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self):
        """Open a new bridge session. Callers serialize starts."""
        if not self._settings.wa_phone_number:
            logger.error("❌ WA_PHONE_NUMBER not set — WhatsApp will not connect.")
            return

        self._stopped = False
        self._set_state(ConnectionState.CONNECTING)

        transport = None

        def on_event(kind: str, payload: dict):
            if transport is self._transport:
                self._handle_event(kind, payload)

        def on_closed(reason: str):
            if transport is self._transport:
                self._handle_drop(reason)

        transport = self._transport_factory(on_event, on_closed)
        previous, self._transport = self._transport, transport
        if previous is not None:
            await previous.close()

        try:
            await transport.open()
        except Exception as e:
            logger.warning(f"WhatsApp bridge connection failed: {e}")
            if transport is self._transport:
                self._handle_drop(f"connect failed: {e}")
            return

        if self._stopped or transport is not self._transport:
            logger.info("WhatsApp bridge session superseded while opening; closing it.")
            await transport.close()

    async def stop(self):
        """Close the connection for good (no reconnect)."""
        self._stopped = True
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
        if self._state != ConnectionState.LOGGED_OUT:
            self._set_state(ConnectionState.DISCONNECTED)
        logger.info("WhatsApp supervisor stopped.")

    def _detach_transport(self):
        transport, self._transport = self._transport, None
        if transport is not None:
            self._spawn(transport.close())

    def _handle_drop(self, reason: str):
        """Non-terminal disconnect: mark not ready and schedule one reconnect."""
        if self._stopped or self._state == ConnectionState.LOGGED_OUT:
            return
        self._detach_transport()
        self._set_state(ConnectionState.DISCONNECTED)

        if self._reconnect_task and not self._reconnect_task.done():
            return
        logger.info(f"WA reconnecting in {self._reconnect_delay}s ({reason})")
        self._reconnect_task = asyncio.create_task(self._reconnect())

    def _handle_logout(self):
        self._detach_transport()
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None
        self._set_state(ConnectionState.LOGGED_OUT)
        logger.error("WA logged out. Reset the bridge credential store to re-pair, then restart.")

    async def _reconnect(self):
        try:
            await asyncio.sleep(self._reconnect_delay)
        except asyncio.CancelledError:
            return
        # Clear first so a failing start() can schedule the next attempt
        self._reconnect_task = None
        if self._stopped or self._state == ConnectionState.LOGGED_OUT:
            return
        logger.info("WA reconnecting...")
        try:
            await self.start()
        except Exception as e:
            logger.error(f"WA reconnection error: {e}", exc_info=True)
            self._handle_drop(f"reconnect error: {e}")

    # ── Bridge events ─────────────────────────────────────────

    def _handle_event(self, kind: str, payload: dict):
        if kind == "connection":
            self._handle_connection_update(payload)
        elif kind == "creds":
            self._handle_creds(payload)
        elif kind == "messages":
            self._handle_messages(payload)
        else:
            logger.debug(f"Ignoring bridge event '{kind}'")

    def _handle_connection_update(self, payload: dict):
        connection = payload.get("connection") or ""
        logger.info(f"WA connection update: {connection} {payload.get('statusCode') or ''}".rstrip())

        if connection == "connecting":
            self._set_state(ConnectionState.CONNECTING)
        elif connection == "open":
            self._set_state(ConnectionState.OPEN)
            logger.info(f"📲 WhatsApp connected as: {payload.get('user') or 'unknown'}")
            if not self._announced:
                self._announced = True
                self._spawn(self._announce())
        elif connection == "close":
            try:
                status = int(payload.get("statusCode") or 0)
            except (TypeError, ValueError):
                status = 0
            if status == LOGGED_OUT_STATUS:
                self._handle_logout()
            else:
                self._handle_drop(f"closed with status {status}")

    def _handle_creds(self, payload: dict):
        registered = bool(payload.get("registered", False))
        if registered:
            self._pairing_requested = False
            return
        if not self._pairing_requested:
            self._pairing_requested = True
            self._spawn(self._request_pairing_code())

    def _handle_messages(self, payload: dict):
        if payload.get("type", "notify") != "notify":
            return
        inbound = []
        for msg in payload.get("messages") or []:
            if not isinstance(msg, dict):
                continue
            key = msg.get("key") or {}
            if not key.get("remoteJid") or key.get("fromMe"):
                continue
            inbound.append(msg)
        if inbound and self._message_callbacks:
            self._spawn(self._deliver_messages(inbound))

    async def _deliver_messages(self, messages: list[dict]):
        for msg in messages:
            for callback in list(self._message_callbacks):
                try:
                    await callback(msg)
                except Exception as e:
                    logger.error(f"Error handling WhatsApp message: {e}", exc_info=True)

    # ── Pairing / announcement ────────────────────────────────

    async def _request_pairing_code(self):
        settings = self._settings
        transport = self._transport
        if transport is None:
            self._pairing_requested = False
            return

        payload = {"phone": settings.wa_phone_number}
        use_custom = settings.use_custom_pairing_code and bool(settings.custom_pairing_code)
        if use_custom:
            payload["code"] = settings.custom_pairing_code

        try:
            response = await transport.request("pair", payload)
        except Exception as e:
            logger.error(f"❌ Failed to request pairing code: {e}")
            self._pairing_requested = False
            return

        logger.info("===============================")
        logger.info(f"📲 WhatsApp pairing code: {response.get('code')}")
        if use_custom:
            logger.info(f"Custom pairing code requested: {settings.custom_pairing_code}")
        logger.info("On your phone: WhatsApp → Linked Devices → Link with phone number")
        logger.info(f"Enter your number: {settings.wa_phone_number}")
        logger.info("Then enter this code (only once).")
        logger.info("===============================")

    async def _announce(self):
        owner = self._settings.owner_jid
        if not owner:
            return
        try:
            await self.send_text(owner, READY_ANNOUNCEMENT)
            logger.info("✅ Telegram & WhatsApp are ready.")
        except Exception as e:
            logger.error(f"WA ready-msg error: {e}")

    # ── Outbound ──────────────────────────────────────────────

    async def send(self, jid: str, content: dict, quoted: Optional[dict] = None) -> dict:
        """Send one message. Fails fast with NotReadyError when not open."""
        payload = {"to": jid, "content": content}
        if quoted is not None:
            payload["quoted"] = quoted
        return await self._request("send_message", payload)

    async def send_sticker(self, jid: str, webp: bytes, pack_name: str = "", author: str = ""):
        content = {
            "sticker": base64.b64encode(webp).decode("ascii"),
            "packName": pack_name,
            "author": author,
        }
        return await self.send(jid, content)

    async def send_video(self, jid: str, data: bytes, gif_playback: bool = True):
        content = {
            "video": base64.b64encode(data).decode("ascii"),
            "gifPlayback": gif_playback,
        }
        return await self.send(jid, content)

    async def send_text(
        self,
        jid: str,
        text: str,
        quoted: Optional[dict] = None,
        mentions: Optional[list[str]] = None,
    ):
        content: dict = {"text": text}
        if mentions:
            content["mentions"] = mentions
        return await self.send(jid, content, quoted=quoted)

    async def group_metadata(self, jid: str) -> dict:
        return await self._request("group_metadata", {"jid": jid})

    async def _request(self, command: str, payload: dict) -> dict:
        transport = self._transport
        if not self.is_ready() or transport is None:
            raise NotReadyError("WhatsApp connection is not open")
        try:
            return await transport.request(command, payload)
        except BridgeError as e:
            raise SendFailedError(f"WhatsApp {command} failed: {e}") from e

    # ── Internal ──────────────────────────────────────────────

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
