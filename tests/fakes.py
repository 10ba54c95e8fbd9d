"""Test doubles shared by the test modules."""
import inspect
import json
import socket
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import trio

from core.client import ApiResponse
from core.methods import ApiMethod
from core.models import Update, parse_update


def raw_message(update_id: int, text: str, chat_id: int = 100, command: bool = True) -> Dict[str, Any]:
    """Raw message update as the remote service would send it."""
    message: Dict[str, Any] = {
        "message_id": update_id * 10,
        "date": 1700000000,
        "chat": {"id": chat_id, "type": "private"},
        "from": {"id": 7, "is_bot": False, "first_name": "Ada"},
        "text": text,
    }
    if command and text.startswith("/"):
        message["entities"] = [
            {"type": "bot_command", "offset": 0, "length": len(text.split()[0])}
        ]
    return {"update_id": update_id, "message": message}


def message_update(update_id: int, text: str, chat_id: int = 100) -> Update:
    return parse_update(raw_message(update_id, text, chat_id))


def callback_update(update_id: int) -> Update:
    return parse_update(
        {"update_id": update_id, "callback_query": {"id": "cb1", "data": "x"}}
    )


def _scope_key(method: ApiMethod) -> Tuple[str, str]:
    params = method.payload()
    return (
        json.dumps(params.get("scope"), sort_keys=True),
        params.get("language_code") or "",
    )


class FakeClient:
    """
    In-memory stand-in for BotApiClient.
    Keeps remote command menus so getMyCommands reflects earlier setMyCommands.
    """

    def __init__(self) -> None:
        self.calls: List[ApiMethod] = []
        self.retry_flags: List[bool] = []
        self.menus: Dict[Tuple[str, str], List[Dict[str, str]]] = {}
        self._handlers: Dict[str, Callable[[ApiMethod], Any]] = {}

    def on(self, method_name: str, handler: Callable[[ApiMethod], Any]) -> None:
        """Script the result of a method; the handler may raise or return an awaitable."""
        self._handlers[method_name] = handler

    def calls_to(self, method_name: str) -> List[ApiMethod]:
        return [m for m in self.calls if m.name == method_name]

    async def send(self, method: ApiMethod, retry: bool = True) -> ApiResponse:
        self.calls.append(method)
        self.retry_flags.append(retry)

        handler: Optional[Callable[[ApiMethod], Any]] = self._handlers.get(method.name)
        if handler is not None:
            result = handler(method)
            if inspect.isawaitable(result):
                result = await result
            return ApiResponse(ok=True, result=result)

        if method.name == "getMyCommands":
            return ApiResponse(ok=True, result=list(self.menus.get(_scope_key(method), [])))
        if method.name == "setMyCommands":
            self.menus[_scope_key(method)] = list(method.payload()["commands"])
        return ApiResponse(ok=True, result=True)


def free_port() -> int:
    """A loopback port that was free a moment ago."""
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def post_when_listening(url: str, payload: Dict[str, Any], attempts: int = 200) -> httpx.Response:
    """POST once the listener at url accepts connections."""
    async with httpx.AsyncClient() as client:
        for _ in range(attempts):
            try:
                return await client.post(url, json=payload)
            except httpx.ConnectError:
                await trio.sleep(0.05)
    raise AssertionError(f"nothing listening at {url}")
