"""Telegram implementation of the ``ContentRelay`` contract."""

from __future__ import annotations

from typing import Any, Optional

from ...holes.callbacks import NotifyToken, encode_callback_token, fit_notify_text
from ...holes.content import (
    Content,
    DocumentContent,
    ForwardedPost,
    PhotoContent,
    StickerContent,
    TextContent,
    VideoContent,
)
from ...holes.relay import Affordance, SendOptions
from .client import TelegramBotClient
from .constants import TELEGRAM_MAX_CAPTION_LENGTH
from .errors import TelegramAPIError

_MEDIA_METHODS: dict[type, tuple[str, str]] = {
    PhotoContent: ("sendPhoto", "photo"),
    VideoContent: ("sendVideo", "video"),
    DocumentContent: ("sendDocument", "document"),
}


def affordance_markup(affordance: Optional[Affordance]) -> Optional[dict[str, Any]]:
    if affordance is None:
        return None
    return {
        "inline_keyboard": [
            [
                {
                    "text": affordance.label,
                    "callback_data": encode_callback_token(affordance.token),
                }
            ]
        ]
    }


class TelegramContentRelay:
    def __init__(self, bot: TelegramBotClient) -> None:
        self._bot = bot

    async def send(
        self,
        destination: int,
        content: Content,
        options: SendOptions = SendOptions(),
    ) -> int:
        affordance = options.affordance
        if affordance is None and options.pseudonym_label:
            label = options.pseudonym_label
            affordance = Affordance(
                f"From {label}", NotifyToken(fit_notify_text(label))
            )
        markup = affordance_markup(affordance)
        reply_to = options.reply_target_id or None
        if isinstance(content, ForwardedPost):
            # Forwarded copies keep their origin header and take no markup.
            message = await self._bot.forward_message(
                destination, content.from_chat_id, content.message_id
            )
        elif isinstance(content, TextContent):
            message = await self._bot.send_message(
                destination,
                content.text,
                entities=list(content.entities),
                reply_to_message_id=reply_to,
                reply_markup=markup,
            )
        elif isinstance(content, StickerContent):
            message = await self._bot.send_sticker(
                destination,
                content.file_id,
                reply_to_message_id=reply_to,
                reply_markup=markup,
            )
        elif isinstance(content, (PhotoContent, VideoContent, DocumentContent)):
            method, field_name = _MEDIA_METHODS[type(content)]
            caption = content.caption
            message = await self._bot.send_media(
                method,
                field_name,
                destination,
                content.file_id,
                caption=caption[:TELEGRAM_MAX_CAPTION_LENGTH] if caption else None,
                caption_entities=list(content.caption_entities),
                reply_to_message_id=reply_to,
                reply_markup=markup,
            )
        else:
            raise TelegramAPIError(
                f"cannot relay content kind {type(content).__name__}",
                user_message="Unsupported message type",
            )
        return _message_id(message)

    async def attach_affordance(
        self, destination: int, message_id: int, affordance: Affordance
    ) -> None:
        await self._bot.edit_message_reply_markup(
            destination, message_id, affordance_markup(affordance)
        )

    async def acknowledge(self, callback_id: str, text: Optional[str] = None) -> None:
        await self._bot.answer_callback_query(callback_id, text=text)


def _message_id(message: dict[str, Any]) -> int:
    value = message.get("message_id")
    if not isinstance(value, int) or isinstance(value, bool):
        raise TelegramAPIError(f"Telegram returned invalid message_id: {value!r}")
    return value
