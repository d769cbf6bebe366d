"""Compact callback tokens carried by inline buttons.

Wire format (at most ``CALLBACK_DATA_LIMIT`` UTF-8 bytes):

* ``note:<text>`` for a transient notification,
* ``reply:<thread_id>:<anchor_id>`` to resume a user into writing a reply.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

from ..core.exceptions import CallbackDecodeError

CALLBACK_DATA_LIMIT = 64

_NOTIFY_PREFIX = "note"
_REPLY_PREFIX = "reply"
_ID_RE = re.compile(r"[0-9]{1,19}")
_ID_MAX = 2**63 - 1


@dataclass(frozen=True)
class NotifyToken:
    text: str


@dataclass(frozen=True)
class ReplyRequestToken:
    thread_id: int
    anchor_id: int = 0


CallbackToken = Union[NotifyToken, ReplyRequestToken]


def encode_callback_token(token: CallbackToken) -> str:
    if isinstance(token, NotifyToken):
        if not isinstance(token.text, str):
            raise ValueError("notify text must be a string")
        data = f"{_NOTIFY_PREFIX}:{token.text}"
    elif isinstance(token, ReplyRequestToken):
        thread_id = _require_id(token.thread_id, "thread_id", allow_zero=False)
        anchor_id = _require_id(token.anchor_id, "anchor_id", allow_zero=True)
        data = f"{_REPLY_PREFIX}:{thread_id}:{anchor_id}"
    else:
        raise ValueError(f"unsupported callback token: {token!r}")
    if len(data.encode("utf-8")) > CALLBACK_DATA_LIMIT:
        raise ValueError("callback data exceeds the platform limit")
    return data


def decode_callback_token(data: Optional[str]) -> CallbackToken:
    if not data:
        raise CallbackDecodeError("empty callback data")
    if len(data.encode("utf-8")) > CALLBACK_DATA_LIMIT:
        raise CallbackDecodeError("callback data exceeds the platform limit")
    prefix, sep, rest = data.partition(":")
    if not sep:
        raise CallbackDecodeError(f"malformed callback data: {data!r}")
    if prefix == _NOTIFY_PREFIX:
        return NotifyToken(text=rest)
    if prefix == _REPLY_PREFIX:
        thread_raw, sep, anchor_raw = rest.partition(":")
        if (
            not sep
            or not _ID_RE.fullmatch(thread_raw)
            or not _ID_RE.fullmatch(anchor_raw)
        ):
            raise CallbackDecodeError(f"malformed reply callback: {data!r}")
        thread_id = int(thread_raw)
        anchor_id = int(anchor_raw)
        if thread_id <= 0 or max(thread_id, anchor_id) > _ID_MAX:
            raise CallbackDecodeError(f"malformed reply callback: {data!r}")
        return ReplyRequestToken(thread_id=thread_id, anchor_id=anchor_id)
    raise CallbackDecodeError(f"unknown callback kind: {prefix!r}")


def fit_notify_text(text: str, *, limit: int = CALLBACK_DATA_LIMIT) -> str:
    """Trim ``text`` so that its notify token fits into ``limit`` bytes."""
    budget = limit - len(_NOTIFY_PREFIX) - 1
    encoded = text.encode("utf-8")
    if len(encoded) <= budget:
        return text
    return encoded[:budget].decode("utf-8", errors="ignore")


def _require_id(value: object, name: str, *, allow_zero: bool) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an integer")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"{name} must be positive")
    if value > _ID_MAX:
        raise ValueError(f"{name} does not fit into 64 bits")
    return value
