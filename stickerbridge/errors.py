"""Relay error taxonomy and user-facing failure messages."""

import asyncio


class RelayError(Exception):
    """Base for every failure surfaced by the relay pipeline."""


class NotReadyError(RelayError):
    """WhatsApp connection is not open."""


class DownloadFailedError(RelayError):
    """Fetching the file from Telegram failed."""


class ConversionFailedError(RelayError):
    """Image could not be converted to a WhatsApp sticker."""


class SendFailedError(RelayError):
    """WhatsApp rejected or never acknowledged the send."""


class CollectionFetchFailedError(RelayError):
    """Sticker pack lookup failed."""


class BridgeError(RuntimeError):
    """The WhatsApp bridge returned an error or dropped a request."""

    def __init__(self, message: str, code: str = "bridge_error"):
        super().__init__(message)
        self.code = code


NOT_READY_MESSAGE = "⏳ WhatsApp is not ready yet. Try again in a moment."
GENERIC_FAILURE_MESSAGE = "❌ Failed to send to WhatsApp. Try again."
TIMEOUT_MESSAGE = "⌛ WhatsApp took too long to answer. Try again."


def timed_out(e: BaseException) -> bool:
    """True if e, or anything in its cause chain, is a timeout."""
    while e is not None:
        if isinstance(e, asyncio.TimeoutError):
            return True
        if isinstance(e, BridgeError) and e.code == "timeout":
            return True
        e = e.__cause__
    return False


def user_message(e: Exception) -> str:
    """Map an exception to the single notice shown to the Telegram user.

    Per-item failures map to GENERIC_FAILURE_MESSAGE, except a WhatsApp send
    that timed out, which gets TIMEOUT_MESSAGE. Details go to the log.
    """
    if isinstance(e, NotReadyError):
        return NOT_READY_MESSAGE
    if isinstance(e, CollectionFetchFailedError):
        return "❌ Could not load that sticker pack. Check the name and try again."
    if isinstance(e, SendFailedError) and timed_out(e):
        return TIMEOUT_MESSAGE
    return GENERIC_FAILURE_MESSAGE


def describe(e: BaseException) -> str:
    """Short log-friendly description: type name plus the first line of the message."""
    text = str(e).strip().splitlines()[0] if str(e).strip() else ""
    cause = e.__cause__
    if cause is not None and not text:
        return describe(cause)
    name = type(e).__name__
    if cause is not None:
        return f"{name}: {text} (caused by {type(cause).__name__}: {str(cause)[:200]})"
    return f"{name}: {text}" if text else name
