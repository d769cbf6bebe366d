"""Closed set of content kinds the bot can relay.

``classify_message`` inspects which capability fields an inbound Telegram
message carries and maps it onto exactly one variant; anything else becomes
``Unsupported`` rather than an exception.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from ..core.exceptions import ValidationError

Entities = tuple[dict[str, Any], ...]


@dataclass(frozen=True)
class ForwardedPost:
    from_chat_id: int
    message_id: int


@dataclass(frozen=True)
class TextContent:
    text: str
    entities: Entities = field(default_factory=tuple)


@dataclass(frozen=True)
class StickerContent:
    file_id: str


@dataclass(frozen=True)
class PhotoContent:
    file_id: str
    caption: Optional[str] = None
    caption_entities: Entities = field(default_factory=tuple)


@dataclass(frozen=True)
class VideoContent:
    file_id: str
    caption: Optional[str] = None
    caption_entities: Entities = field(default_factory=tuple)


@dataclass(frozen=True)
class DocumentContent:
    file_id: str
    caption: Optional[str] = None
    caption_entities: Entities = field(default_factory=tuple)


@dataclass(frozen=True)
class Unsupported:
    reason: str = "Unsupported message type"


Content = Union[
    ForwardedPost,
    TextContent,
    StickerContent,
    PhotoContent,
    VideoContent,
    DocumentContent,
    Unsupported,
]

SUPPORTED_KINDS = (
    ForwardedPost,
    TextContent,
    StickerContent,
    PhotoContent,
    VideoContent,
    DocumentContent,
)


def classify_message(message: Mapping[str, Any]) -> Content:
    if _is_forwarded(message):
        chat = message.get("chat")
        chat_id = chat.get("id") if isinstance(chat, Mapping) else None
        message_id = message.get("message_id")
        if isinstance(chat_id, int) and isinstance(message_id, int):
            return ForwardedPost(from_chat_id=chat_id, message_id=message_id)
        return Unsupported("Forwarded message has no source")

    text = message.get("text")
    if isinstance(text, str):
        return TextContent(text=text, entities=_entities(message.get("entities")))

    sticker = message.get("sticker")
    if isinstance(sticker, Mapping):
        file_id = _file_id(sticker)
        if file_id:
            return StickerContent(file_id=file_id)

    caption = message.get("caption")
    caption = caption if isinstance(caption, str) else None
    caption_entities = _entities(message.get("caption_entities"))

    photo = message.get("photo")
    if isinstance(photo, list) and photo:
        # Sizes are listed smallest first.
        file_id = _file_id(photo[-1])
        if file_id:
            return PhotoContent(file_id, caption, caption_entities)

    video = message.get("video")
    if isinstance(video, Mapping):
        file_id = _file_id(video)
        if file_id:
            return VideoContent(file_id, caption, caption_entities)

    document = message.get("document")
    if isinstance(document, Mapping):
        file_id = _file_id(document)
        if file_id:
            return DocumentContent(file_id, caption, caption_entities)

    return Unsupported()


def require_supported(content: Content) -> Content:
    if isinstance(content, Unsupported):
        raise ValidationError(content.reason, user_message=content.reason)
    if not isinstance(content, SUPPORTED_KINDS):
        raise ValidationError(
            f"unknown content kind: {type(content).__name__}",
            user_message="Unsupported message type",
        )
    return content


def _is_forwarded(message: Mapping[str, Any]) -> bool:
    return "forward_origin" in message or "forward_date" in message


def _file_id(payload: Any) -> Optional[str]:
    if not isinstance(payload, Mapping):
        return None
    value = payload.get("file_id")
    return value if isinstance(value, str) and value else None


def _entities(value: Any) -> Entities:
    if not isinstance(value, list):
        return ()
    return tuple(dict(item) for item in value if isinstance(item, Mapping))
