"""Tests for update parsing."""
import pytest

from core.errors import DecodeError
from core.models import Message, UpdateType, parse_update
from fakes import raw_message


def test_parse_message_update():
    update = parse_update(raw_message(5, "hello there", chat_id=42))

    assert update.update_id == 5
    assert update.type is UpdateType.MESSAGE
    assert isinstance(update.message, Message)
    assert update.message.chat.id == 42
    assert update.message.from_user.first_name == "Ada"
    assert update.message.text == "hello there"


def test_parse_edited_message_and_channel_post():
    raw = raw_message(6, "fixed")
    raw["edited_message"] = raw.pop("message")
    assert parse_update(raw).type is UpdateType.EDITED_MESSAGE

    raw = raw_message(7, "news")
    raw["channel_post"] = raw.pop("message")
    assert parse_update(raw).type is UpdateType.CHANNEL_POST


def test_non_message_kinds_keep_raw_payload():
    update = parse_update({"update_id": 8, "callback_query": {"id": "q", "data": "yes"}})

    assert update.type is UpdateType.CALLBACK_QUERY
    assert update.payload == {"id": "q", "data": "yes"}
    assert update.message is None


@pytest.mark.parametrize(
    "raw",
    [
        [],
        {"message": {}},
        {"update_id": "1", "message": {}},
        {"update_id": 1},
        {"update_id": 1, "message": {"message_id": 1, "chat": {"id": 1}}, "poll": {"id": "p"}},
        {"update_id": 1, "message": {"text": "no chat"}},
    ],
)
def test_malformed_updates_raise_decode_error(raw):
    with pytest.raises(DecodeError):
        parse_update(raw)


def test_command_from_entity_strips_bot_name():
    update = parse_update(raw_message(1, "/Start@my_bot now"))
    assert update.message.command() == "start"


def test_command_without_entities_uses_leading_token():
    update = parse_update(raw_message(1, "/help me", command=False))
    assert update.message.command() == "help"


def test_plain_text_has_no_command():
    update = parse_update(raw_message(1, "start the engine"))
    assert update.message.command() is None
