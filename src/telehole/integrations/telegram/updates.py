"""Normalize raw Telegram updates into the events the hole bot routes.

Only the fields the router needs are lifted out; the raw message mapping is
kept on ``MessageEvent`` so content classification can look at the payload
directly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

_COMMAND_NAME_RE = re.compile(r"^[a-z0-9_]{1,32}$")


@dataclass(frozen=True)
class BotCommand:
    name: str
    args: str = ""


@dataclass(frozen=True)
class MessageEvent:
    update_id: int
    chat_id: int
    chat_type: str
    message_id: int
    from_user_id: Optional[int]
    sender_chat_id: Optional[int]
    is_automatic_forward: bool
    forward_from_message_id: Optional[int]
    text: Optional[str]
    command: Optional[BotCommand]
    message: Mapping[str, Any] = field(repr=False, default_factory=dict)

    @property
    def is_private(self) -> bool:
        return self.chat_type == "private"


@dataclass(frozen=True)
class CallbackEvent:
    update_id: int
    callback_id: str
    from_user_id: int
    data: Optional[str]


UpdateEvent = Union[MessageEvent, CallbackEvent]


def parse_update(
    update: Mapping[str, Any], *, bot_username: Optional[str] = None
) -> Optional[UpdateEvent]:
    """Return the routed event for ``update`` or ``None`` when it is ignored."""
    update_id = update.get("update_id")
    if not _is_int(update_id):
        return None
    message = update.get("message")
    if isinstance(message, Mapping):
        return _parse_message(update_id, message, bot_username=bot_username)
    callback = update.get("callback_query")
    if isinstance(callback, Mapping):
        return _parse_callback(update_id, callback)
    return None


def _parse_message(
    update_id: int,
    message: Mapping[str, Any],
    *,
    bot_username: Optional[str],
) -> Optional[MessageEvent]:
    chat = message.get("chat")
    if not isinstance(chat, Mapping):
        return None
    chat_id = chat.get("id")
    message_id = message.get("message_id")
    if not _is_int(chat_id) or not _is_int(message_id):
        return None
    text = message.get("text")
    text = text if isinstance(text, str) else None
    command = None
    if text is not None:
        parsed = parse_command_payload(
            text, entities=message.get("entities"), bot_username=bot_username
        )
        if parsed is not None:
            command = BotCommand(name=parsed[0], args=parsed[1])
    return MessageEvent(
        update_id=update_id,
        chat_id=chat_id,
        chat_type=str(chat.get("type") or ""),
        message_id=message_id,
        from_user_id=_nested_int(message, "from", "id"),
        sender_chat_id=_nested_int(message, "sender_chat", "id"),
        is_automatic_forward=bool(message.get("is_automatic_forward")),
        forward_from_message_id=_forward_origin_message_id(message),
        text=text,
        command=command,
        message=message,
    )


def _parse_callback(
    update_id: int, callback: Mapping[str, Any]
) -> Optional[CallbackEvent]:
    callback_id = callback.get("id")
    user_id = _nested_int(callback, "from", "id")
    if not isinstance(callback_id, str) or not callback_id or user_id is None:
        return None
    data = callback.get("data")
    return CallbackEvent(
        update_id=update_id,
        callback_id=callback_id,
        from_user_id=user_id,
        data=data if isinstance(data, str) else None,
    )


def _forward_origin_message_id(message: Mapping[str, Any]) -> Optional[int]:
    value = message.get("forward_from_message_id")
    if _is_int(value):
        return value
    origin = message.get("forward_origin")
    if isinstance(origin, Mapping) and _is_int(origin.get("message_id")):
        return origin["message_id"]
    return None


def parse_command_payload(
    text: Optional[str],
    *,
    entities: Optional[Sequence[Any]] = None,
    bot_username: Optional[str] = None,
) -> Optional[Tuple[str, str]]:
    """Return ``(name, args)`` for a bot command, else ``None``.

    A ``/name@bot`` suffix addressed to another bot is not a command for us.
    """
    if not text:
        return None
    if isinstance(entities, list) and entities:
        command_entity = next(
            (
                entity
                for entity in entities
                if isinstance(entity, Mapping)
                and entity.get("type") == "bot_command"
                and entity.get("offset") == 0
            ),
            None,
        )
        if command_entity is None:
            return None
        length = command_entity.get("length")
        if not _is_int(length) or length > len(text):
            return None
        return _split_command(text[:length], text[length:], bot_username)

    trimmed = text.strip()
    parts = trimmed.split(None, 1)
    if not parts:
        return None
    return _split_command(parts[0], parts[1] if len(parts) > 1 else "", bot_username)


def _split_command(
    head: str, tail: str, bot_username: Optional[str]
) -> Optional[Tuple[str, str]]:
    if not head.startswith("/"):
        return None
    command = head[1:]
    if "@" in command:
        name, _, target = command.partition("@")
        if bot_username and target.lower() != bot_username.lower():
            return None
        command = name
    command = command.lower()
    if not _COMMAND_NAME_RE.fullmatch(command):
        return None
    return command, tail.strip()


def _nested_int(payload: Mapping[str, Any], key: str, inner: str) -> Optional[int]:
    value = payload.get(key)
    if not isinstance(value, Mapping):
        return None
    result = value.get(inner)
    return result if _is_int(result) else None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
