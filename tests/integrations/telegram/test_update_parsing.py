from __future__ import annotations

import pytest

from telehole.integrations.telegram.updates import (
    BotCommand,
    CallbackEvent,
    MessageEvent,
    parse_command_payload,
    parse_update,
)


def _private_message(text: str, **extra):
    return {
        "update_id": 10,
        "message": {
            "message_id": 3,
            "chat": {"id": 42, "type": "private"},
            "from": {"id": 42, "is_bot": False},
            "text": text,
            **extra,
        },
    }


def test_private_command_with_entities() -> None:
    event = parse_update(
        _private_message(
            "/auth  secret words ",
            entities=[{"type": "bot_command", "offset": 0, "length": 5}],
        )
    )
    assert isinstance(event, MessageEvent)
    assert event.is_private
    assert event.from_user_id == 42
    assert event.command == BotCommand(name="auth", args="secret words")


def test_plain_text_is_not_a_command() -> None:
    event = parse_update(_private_message("12345"))
    assert isinstance(event, MessageEvent)
    assert event.command is None
    assert event.text == "12345"


def test_command_addressed_to_other_bot_is_ignored() -> None:
    assert parse_command_payload("/post@other_bot", bot_username="hole_bot") is None
    assert parse_command_payload("/Post@Hole_Bot x", bot_username="hole_bot") == (
        "post",
        "x",
    )
    assert parse_command_payload("/start@hole_bot") == ("start", "")


@pytest.mark.parametrize("text", ["", "hello /post", "/", "/bad-name", "/ post"])
def test_non_commands(text: str) -> None:
    assert parse_command_payload(text) is None


def test_entities_without_leading_command_mean_no_command() -> None:
    assert (
        parse_command_payload(
            "see /post", entities=[{"type": "bot_command", "offset": 4, "length": 5}]
        )
        is None
    )


def test_automatic_forward_in_discussion_group() -> None:
    event = parse_update(
        {
            "update_id": 11,
            "message": {
                "message_id": 900,
                "chat": {"id": -1002, "type": "supergroup"},
                "sender_chat": {"id": -1001, "type": "channel"},
                "is_automatic_forward": True,
                "forward_origin": {
                    "type": "channel",
                    "chat": {"id": -1001},
                    "message_id": 55,
                    "date": 1,
                },
                "text": "hello",
            },
        }
    )
    assert isinstance(event, MessageEvent)
    assert not event.is_private
    assert event.is_automatic_forward
    assert event.sender_chat_id == -1001
    assert event.forward_from_message_id == 55
    assert event.from_user_id is None


def test_legacy_forward_field_is_accepted() -> None:
    event = parse_update(_private_message("x", forward_from_message_id=77))
    assert isinstance(event, MessageEvent)
    assert event.forward_from_message_id == 77


def test_callback_query() -> None:
    event = parse_update(
        {
            "update_id": 12,
            "callback_query": {
                "id": "cb-1",
                "from": {"id": 42},
                "data": "reply:5:0",
            },
        }
    )
    assert event == CallbackEvent(
        update_id=12, callback_id="cb-1", from_user_id=42, data="reply:5:0"
    )


@pytest.mark.parametrize(
    "update",
    [
        {},
        {"update_id": 1},
        {"update_id": 1, "edited_message": {"message_id": 1}},
        {"update_id": 1, "message": {"message_id": 1}},
        {"update_id": 1, "callback_query": {"id": "cb"}},
        {"update_id": True, "message": {"message_id": 1, "chat": {"id": 1}}},
    ],
)
def test_ignored_updates(update) -> None:
    assert parse_update(update) is None
