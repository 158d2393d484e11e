"""Shared data types: connection state, relay items, packs, pending choices, source events."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    LOGGED_OUT = "logged_out"  # terminal, credentials must be reset


class MediaKind(str, Enum):
    STATIC_IMAGE = "static_image"
    ANIMATED_CLIP = "animated_clip"
    STATIC_STICKER = "static_sticker"
    UNSUPPORTED_STICKER = "unsupported_sticker"  # TGS / WEBM stickers


class ChoiceAction(str, Enum):
    CONVERT_SINGLE = "convert_single"
    CONVERT_COLLECTION = "convert_collection"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class RelayItem:
    source_ref: str     # Telegram file_id
    media_kind: MediaKind

    @classmethod
    def from_sticker(cls, file_id: str, is_animated: bool = False, is_video: bool = False) -> "RelayItem":
        kind = MediaKind.UNSUPPORTED_STICKER if (is_animated or is_video) else MediaKind.STATIC_STICKER
        return cls(source_ref=file_id, media_kind=kind)

    @property
    def supported(self) -> bool:
        return self.media_kind != MediaKind.UNSUPPORTED_STICKER


@dataclass
class CollectionDescriptor:
    """A sticker pack as fetched from Telegram. Never cached."""
    name: str
    title: str
    members: list[RelayItem] = field(default_factory=list)

    @property
    def static_members(self) -> list[RelayItem]:
        return [m for m in self.members if m.supported]

    @property
    def skipped_count(self) -> int:
        return len(self.members) - len(self.static_members)


@dataclass(frozen=True)
class PendingChoice:
    """An outstanding "one sticker or the whole pack?" question for one user."""
    user_id: int
    item_ref: str
    collection_name: Optional[str]
    deadline: float                 # event loop time
    default_action: ChoiceAction
    chat_id: Optional[int] = None


@dataclass(frozen=True)
class Resolution:
    choice: PendingChoice
    action: ChoiceAction
    pack_missing: bool = False  # asked for the pack, but the sticker has none


# ── Source (Telegram) events ─────────────────────────────────


@dataclass(frozen=True)
class SourceEvent:
    user_id: int
    chat_id: int


@dataclass(frozen=True)
class PhotoEvent(SourceEvent):
    file_ref: str = ""


@dataclass(frozen=True)
class AnimationEvent(SourceEvent):
    file_ref: str = ""


@dataclass(frozen=True)
class StickerEvent(SourceEvent):
    file_ref: str = ""
    is_animated: bool = False
    is_video: bool = False
    set_name: Optional[str] = None

    def to_item(self) -> RelayItem:
        return RelayItem.from_sticker(self.file_ref, self.is_animated, self.is_video)


@dataclass(frozen=True)
class TextEvent(SourceEvent):
    body: str = ""
