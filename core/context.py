"""Per-update handler context.

A Context is created by a worker for a single update, handed to the handler
and dropped once the handler returns.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

import trio

from core.methods import ApiMethod, send_message
from core.models import Message, Update, UpdateType

Handler = Callable[["Context"], Awaitable[None]]
Middleware = Callable[[Handler], Handler]


@dataclass
class RequestInfo:
    """Diagnostics for one outbound call made while handling an update."""
    method: str
    content_type: str
    duration: float


class Context:
    """
    Handle bound to the dispatcher for one update.

    Exposes outbound sending and the shared stop event. Handlers doing
    long I/O should check ``cancelled`` or wait on ``stop_event``.
    """

    def __init__(self, client: Any, update: Update, stop_event: trio.Event) -> None:
        self.client = client
        self.update = update
        self.stop_event = stop_event
        self.requests: List[RequestInfo] = []

    @property
    def update_type(self) -> UpdateType:
        return self.update.type

    @property
    def update_id(self) -> int:
        return self.update.update_id

    @property
    def cancelled(self) -> bool:
        return self.stop_event.is_set()

    @property
    def message(self) -> Message:
        """The message of a message-like update.

        Raises:
            TypeError: If the update does not carry a message
        """
        msg = self.update.message
        if msg is None:
            raise TypeError(
                f"update {self.update_id} is {self.update_type.value}, not a message"
            )
        return msg

    def try_message(self) -> Optional[Message]:
        return self.update.message

    async def send(self, method: ApiMethod) -> Any:
        """Send a method through the dispatcher's client and record its timing."""
        start = trio.current_time()
        try:
            return await self.client.send(method)
        finally:
            self.requests.append(
                RequestInfo(
                    method=method.name,
                    content_type=method.content_type,
                    duration=trio.current_time() - start,
                )
            )

    async def send_raw(self, method_name: str, **params: Any) -> Any:
        return await self.send(ApiMethod(method_name, params))

    async def reply(self, text: str, **extra: Any) -> Any:
        """Send a text message to the chat this update came from."""
        return await self.send(send_message(self.message.chat.id, text, **extra))
