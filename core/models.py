"""Data models for inbound updates.

Defines the Update tagged variant, the Message payload shared by the
message-like kinds, and parsing utilities that turn raw JSON objects from the
remote service into these models.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.errors import DecodeError
from utils.matching import command_token


class UpdateType(str, enum.Enum):
    """Every inbound event kind, valued by its wire name."""

    MESSAGE = "message"
    EDITED_MESSAGE = "edited_message"
    CHANNEL_POST = "channel_post"
    EDITED_CHANNEL_POST = "edited_channel_post"
    BUSINESS_CONNECTION = "business_connection"
    BUSINESS_MESSAGE = "business_message"
    EDITED_BUSINESS_MESSAGE = "edited_business_message"
    DELETED_BUSINESS_MESSAGES = "deleted_business_messages"
    MESSAGE_REACTION = "message_reaction"
    MESSAGE_REACTION_COUNT = "message_reaction_count"
    INLINE_QUERY = "inline_query"
    CHOSEN_INLINE_RESULT = "chosen_inline_result"
    CALLBACK_QUERY = "callback_query"
    SHIPPING_QUERY = "shipping_query"
    PRE_CHECKOUT_QUERY = "pre_checkout_query"
    PURCHASED_PAID_MEDIA = "purchased_paid_media"
    POLL = "poll"
    POLL_ANSWER = "poll_answer"
    MY_CHAT_MEMBER = "my_chat_member"
    CHAT_MEMBER = "chat_member"
    CHAT_JOIN_REQUEST = "chat_join_request"
    CHAT_BOOST = "chat_boost"
    REMOVED_CHAT_BOOST = "removed_chat_boost"


# Kinds whose payload is a Message object.
MESSAGE_KINDS = frozenset(
    {
        UpdateType.MESSAGE,
        UpdateType.EDITED_MESSAGE,
        UpdateType.CHANNEL_POST,
        UpdateType.EDITED_CHANNEL_POST,
        UpdateType.BUSINESS_MESSAGE,
        UpdateType.EDITED_BUSINESS_MESSAGE,
    }
)


@dataclass
class User:
    id: int
    is_bot: bool
    first_name: str
    username: Optional[str] = None
    language_code: Optional[str] = None


@dataclass
class Chat:
    id: int
    type: str
    title: Optional[str] = None
    username: Optional[str] = None


@dataclass
class MessageEntity:
    type: str
    offset: int
    length: int


@dataclass
class Message:  # pylint: disable=too-many-instance-attributes
    """A message carried by any of the message-like update kinds.

    Attributes:
        message_id: Identifier of the message inside its chat
        date: Unix time the message was sent
        chat: Chat the message belongs to
        from_user: Sender, absent for channel posts
        text: Text content for text messages
        entities: Special entities (commands, mentions, ...) in the text
        raw: Original JSON object from the remote service
    """
    message_id: int
    date: int
    chat: Chat
    from_user: Optional[User] = None
    text: Optional[str] = None
    entities: List[MessageEntity] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def command(self) -> Optional[str]:
        """Return the command token this message starts with, if any."""
        if not self.text:
            return None
        for ent in self.entities:
            if ent.type == "bot_command" and ent.offset == 0:
                return command_token(self.text[: ent.length])
        return command_token(self.text)


@dataclass
class Update:
    """One inbound event; exactly one kind is populated per instance.

    Attributes:
        update_id: Monotonically increasing sequence id
        type: The populated kind
        payload: Message for message-like kinds, the raw mapping otherwise
        raw: Original JSON object from the remote service
    """
    update_id: int
    type: UpdateType
    payload: Any
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def message(self) -> Optional[Message]:
        if self.type in MESSAGE_KINDS:
            return self.payload
        return None


def _parse_user(data: Optional[Dict[str, Any]]) -> Optional[User]:
    if not data:
        return None
    return User(
        id=data["id"],
        is_bot=data.get("is_bot", False),
        first_name=data.get("first_name", ""),
        username=data.get("username"),
        language_code=data.get("language_code"),
    )


def parse_message(data: Dict[str, Any]) -> Message:
    """Parse a raw message object.

    Args:
        data: Message JSON object

    Returns:
        Parsed Message

    Raises:
        DecodeError: If required fields are missing or malformed
    """
    if not isinstance(data, dict):
        raise DecodeError("message must be a JSON object")
    try:
        chat = data["chat"]
        return Message(
            message_id=data["message_id"],
            date=data.get("date", 0),
            chat=Chat(
                id=chat["id"],
                type=chat.get("type", ""),
                title=chat.get("title"),
                username=chat.get("username"),
            ),
            from_user=_parse_user(data.get("from")),
            text=data.get("text"),
            entities=[
                MessageEntity(type=e["type"], offset=e["offset"], length=e["length"])
                for e in data.get("entities") or []
            ],
            raw=data,
        )
    except (KeyError, TypeError) as exc:
        raise DecodeError(f"malformed message: {exc!r}") from exc


def parse_update(data: Any) -> Update:
    """Parse a raw update object into an Update.

    Args:
        data: Decoded JSON value received from the remote service

    Returns:
        Update with exactly one populated kind

    Raises:
        DecodeError: If the object is not a well-formed update
    """
    if not isinstance(data, dict):
        raise DecodeError("update must be a JSON object")
    update_id = data.get("update_id")
    if not isinstance(update_id, int) or isinstance(update_id, bool):
        raise DecodeError("update_id is missing or not an integer")

    kinds = [t for t in UpdateType if data.get(t.value) is not None]
    if len(kinds) != 1:
        raise DecodeError(
            f"update {update_id} must carry exactly one kind, found {len(kinds)}"
        )

    kind = kinds[0]
    payload = data[kind.value]
    if kind in MESSAGE_KINDS:
        payload = parse_message(payload)
    return Update(update_id=update_id, type=kind, payload=payload, raw=data)
