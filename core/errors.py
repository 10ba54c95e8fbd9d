"""Error taxonomy for the bot runtime.

Configuration problems are detected before serving starts, transport and
decode failures describe the network edge, and ApiError with its subclasses
describes a call the remote service rejected.
"""
from typing import Iterable, List, Optional


class BotError(Exception):
    """Base class for every error raised by the bot runtime."""


class ConfigurationError(BotError):
    """Invalid setup detected before serving.

    Attributes:
        problems: Every individual problem that was found
    """

    def __init__(self, problems: Iterable[str]) -> None:
        self.problems: List[str] = list(problems)
        super().__init__("; ".join(self.problems) or "invalid configuration")


class TransportError(BotError):
    """Network or HTTP level failure talking to the remote service."""


class DecodeError(BotError):
    """An inbound payload could not be decoded into an update."""


class ApiError(BotError):
    """The remote service rejected a call.

    Attributes:
        error_code: Numeric error code from the response envelope
        description: Human readable explanation from the response envelope
    """

    def __init__(self, error_code: int, description: str) -> None:
        self.error_code = error_code
        self.description = description
        super().__init__(f"{error_code}: {description}")


class ChatMigratedError(ApiError):
    """The group was migrated to a supergroup with a new identifier."""

    def __init__(self, error_code: int, description: str, migrate_to_chat_id: int) -> None:
        super().__init__(error_code, description)
        self.migrate_to_chat_id = migrate_to_chat_id


class RateLimitedError(ApiError):
    """Flood control was hit; the call may be repeated after retry_after seconds."""

    def __init__(self, error_code: int, description: str, retry_after: float) -> None:
        super().__init__(error_code, description)
        self.retry_after = retry_after


class BadRequestError(ApiError):
    """Generic rejection carrying only a description."""


def error_from_envelope(
    error_code: Optional[int], description: Optional[str], parameters: Optional[dict]
) -> ApiError:
    """Map a failed response envelope onto the most specific ApiError.

    Args:
        error_code: ``error_code`` field of the envelope
        description: ``description`` field of the envelope
        parameters: ``parameters`` field of the envelope, if any

    Returns:
        ChatMigratedError, RateLimitedError or BadRequestError
    """
    code = error_code or 0
    text = description or "request failed"
    params = parameters or {}
    if params.get("migrate_to_chat_id") is not None:
        return ChatMigratedError(code, text, int(params["migrate_to_chat_id"]))
    if params.get("retry_after") is not None:
        return RateLimitedError(code, text, float(params["retry_after"]))
    return BadRequestError(code, text)
