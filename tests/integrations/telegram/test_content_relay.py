from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from telehole.holes.callbacks import NotifyToken, ReplyRequestToken
from telehole.holes.content import (
    DocumentContent,
    ForwardedPost,
    PhotoContent,
    StickerContent,
    TextContent,
    Unsupported,
)
from telehole.holes.relay import Affordance, ContentRelay, SendOptions
from telehole.integrations.telegram.client import TelegramBotClient
from telehole.integrations.telegram.errors import TelegramAPIError
from telehole.integrations.telegram.relay import TelegramContentRelay


class _Recorder:
    def __init__(self, result: Any = None) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.result = {"message_id": 321} if result is None else result

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        self.calls.append((method, json.loads(request.content)))
        return httpx.Response(200, json={"ok": True, "result": self.result})


def _relay(recorder: _Recorder) -> tuple[TelegramContentRelay, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    bot = TelegramBotClient("t", client=http_client, base_url="https://telegram.test")
    return TelegramContentRelay(bot), http_client


@pytest.mark.anyio
async def test_relay_satisfies_protocol() -> None:
    relay, http_client = _relay(_Recorder())
    await http_client.aclose()
    assert isinstance(relay, ContentRelay)


@pytest.mark.anyio
async def test_text_reply_carries_entities_target_and_button() -> None:
    recorder = _Recorder()
    relay, http_client = _relay(recorder)
    entities = ({"type": "bold", "offset": 0, "length": 2},)
    try:
        message_id = await relay.send(
            -100,
            TextContent("hi there", entities),
            SendOptions(
                reply_target_id=55,
                pseudonym_label="Commenter №0001",
                affordance=Affordance(
                    "From Commenter №0001", NotifyToken("sent from Commenter №0001")
                ),
            ),
        )
    finally:
        await http_client.aclose()

    assert message_id == 321
    method, payload = recorder.calls[0]
    assert method == "sendMessage"
    assert payload == {
        "chat_id": -100,
        "text": "hi there",
        "entities": [{"type": "bold", "offset": 0, "length": 2}],
        "reply_to_message_id": 55,
        "reply_markup": {
            "inline_keyboard": [
                [
                    {
                        "text": "From Commenter №0001",
                        "callback_data": "note:sent from Commenter №0001",
                    }
                ]
            ]
        },
    }


@pytest.mark.anyio
async def test_pseudonym_label_alone_becomes_notify_button() -> None:
    recorder = _Recorder()
    relay, http_client = _relay(recorder)
    try:
        await relay.send(
            -100, StickerContent("stk"), SendOptions(pseudonym_label="Author")
        )
    finally:
        await http_client.aclose()

    method, payload = recorder.calls[0]
    assert method == "sendSticker"
    assert payload["sticker"] == "stk"
    assert payload["reply_markup"]["inline_keyboard"][0][0] == {
        "text": "From Author",
        "callback_data": "note:Author",
    }


@pytest.mark.anyio
async def test_media_use_matching_methods_with_captions() -> None:
    recorder = _Recorder()
    relay, http_client = _relay(recorder)
    try:
        await relay.send(5, PhotoContent("ph", "look", ()))
        await relay.send(5, DocumentContent("doc"))
    finally:
        await http_client.aclose()

    assert recorder.calls == [
        ("sendPhoto", {"chat_id": 5, "photo": "ph", "caption": "look"}),
        ("sendDocument", {"chat_id": 5, "document": "doc"}),
    ]


@pytest.mark.anyio
async def test_forwarded_post_uses_forward_message() -> None:
    recorder = _Recorder()
    relay, http_client = _relay(recorder)
    try:
        await relay.send(-100, ForwardedPost(from_chat_id=7, message_id=8))
    finally:
        await http_client.aclose()

    assert recorder.calls == [
        ("forwardMessage", {"chat_id": -100, "from_chat_id": 7, "message_id": 8})
    ]


@pytest.mark.anyio
async def test_unsupported_content_and_missing_message_id_fail() -> None:
    relay, http_client = _relay(_Recorder(result={"chat": {}}))
    try:
        with pytest.raises(TelegramAPIError):
            await relay.send(1, Unsupported())
        with pytest.raises(TelegramAPIError, match="message_id"):
            await relay.send(1, TextContent("x"))
    finally:
        await http_client.aclose()


@pytest.mark.anyio
async def test_attach_affordance_and_acknowledge() -> None:
    recorder = _Recorder(result=True)
    relay, http_client = _relay(recorder)
    try:
        await relay.attach_affordance(
            -100, 9, Affordance("Reply to Author", ReplyRequestToken(50, 9))
        )
        await relay.acknowledge("cb-1", "Goto bot and reply")
    finally:
        await http_client.aclose()

    assert recorder.calls == [
        (
            "editMessageReplyMarkup",
            {
                "chat_id": -100,
                "message_id": 9,
                "reply_markup": {
                    "inline_keyboard": [
                        [{"text": "Reply to Author", "callback_data": "reply:50:9"}]
                    ]
                },
            },
        ),
        (
            "answerCallbackQuery",
            {"callback_query_id": "cb-1", "text": "Goto bot and reply"},
        ),
    ]
