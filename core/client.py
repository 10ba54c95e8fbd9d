"""Trio-friendly client for the bot HTTP API.

Rate Limiting Strategy:
----------------------
The remote service answers flood-controlled calls with ``ok=false`` and a
``parameters.retry_after`` value in seconds.

1. Rate limit detection: every response envelope is classified. A
   ``retry_after`` parameter becomes a RateLimitedError.

2. Single retry: the client sleeps for the indicated duration and re-issues
   the identical request exactly once. A second rate-limit response is
   surfaced to the caller unchanged; there is no retry loop.

3. Other rejections (migrated chats, bad requests) are never retried here.

Encoding and decoding go through a BufferPool, so concurrent workers share
nothing else than the pool and the underlying httpx connection pool.
"""
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import httpx
import trio

from core.errors import RateLimitedError, TransportError, error_from_envelope
from core.methods import JSON_CONTENT_TYPE, ApiMethod, get_me
from utils.buffers import BufferPool

logger = logging.getLogger(__name__)

DEFAULT_API_HOST = "https://api.telegram.org"


@dataclass
class ApiResponse:
    """Decoded response envelope.

    Attributes:
        ok: Whether the call succeeded
        result: Method result when ok
        description: Explanation of the error, or of the result
        error_code: Numeric error code when not ok
        parameters: Extra data for automatic error handling
    """
    ok: bool
    result: Any = None
    description: Optional[str] = None
    error_code: Optional[int] = None
    parameters: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ApiResponse":
        if not isinstance(data, dict) or "ok" not in data:
            raise TransportError("response is not an API envelope")
        return cls(
            ok=bool(data["ok"]),
            result=data.get("result"),
            description=data.get("description"),
            error_code=data.get("error_code"),
            parameters=data.get("parameters"),
        )

    def raise_for_error(self) -> None:
        """Raise the ApiError matching this envelope if the call failed."""
        if not self.ok:
            raise error_from_envelope(self.error_code, self.description, self.parameters)


class BotApiClient:
    """
    Async client for ``POST <host>/bot<token>/<method>`` calls.
    Safe to share between worker tasks.
    """

    def __init__(
        self,
        token: str,
        host: str = DEFAULT_API_HOST,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        pool: Optional[BufferPool] = None,
    ) -> None:
        self._token = token
        self._host = host.rstrip("/")
        self._pool = pool if pool is not None else BufferPool()
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "BotApiClient":
        """Create a client from the "api" section of the bot configuration."""
        api = config["api"]
        return cls(
            token=api["token"],
            host=api.get("host") or DEFAULT_API_HOST,
            timeout=float(api.get("timeout_seconds", 60)),
        )

    async def __aenter__(self) -> "BotApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def endpoint(self, method_name: str) -> str:
        return f"{self._host}/bot{self._token}/{method_name}"

    def _redacted(self, method_name: str) -> str:
        return f"{self._host}/bot<token len={len(self._token)}>/{method_name}"

    async def send(self, method: ApiMethod, retry: bool = True) -> ApiResponse:
        """Send a method, retrying once if the service asks us to wait.

        Args:
            method: Method descriptor to send
            retry: Whether a rate-limited call is repeated after retry_after

        Returns:
            The successful response envelope

        Raises:
            TransportError: On network failure or an undecodable response
            ApiError: If the remote service rejected the call
        """
        try:
            return await self._send_once(method)
        except RateLimitedError as exc:
            if not retry:
                raise
            logger.warning(
                "Rate limit hit calling %s. Waiting %s seconds before retry",
                method.name,
                exc.retry_after,
            )
            await trio.sleep(exc.retry_after)
        return await self._send_once(method)

    async def send_raw(self, method_name: str, **params: Any) -> ApiResponse:
        """Send a method by name with keyword parameters."""
        return await self.send(ApiMethod(method_name, params))

    async def get_me(self) -> Dict[str, Any]:
        """Get the bot's own user object."""
        res = await self.send(get_me())
        return res.result or {}

    @contextlib.contextmanager
    def _encode(self, method: ApiMethod) -> Iterator[Dict[str, Any]]:
        """Yield httpx request arguments; only JSON bodies use a pooled buffer."""
        payload = method.payload()
        files = method.files()
        if files:
            for f in files.values():
                # a retried upload must start from the beginning again
                if hasattr(f.data, "seek"):
                    f.data.seek(0)
            data = {
                k: v if isinstance(v, str) else json.dumps(v)
                for k, v in payload.items()
                if k not in files
            }
            yield {
                "data": data,
                "files": {k: (f.name, f.data) for k, f in files.items()},
            }
            return

        with self._pool.buffer() as body:
            body.write(json.dumps(payload).encode("utf-8"))
            yield {
                "content": body.getvalue(),
                "headers": {"Content-Type": JSON_CONTENT_TYPE},
            }

    async def _send_once(self, method: ApiMethod) -> ApiResponse:
        url = self._redacted(method.name)
        logger.debug("POST %s (%s)", url, method.content_type)

        with self._encode(method) as request_kwargs, self._pool.buffer() as received:
            try:
                async with self._http.stream(
                    "POST", self.endpoint(method.name), **request_kwargs
                ) as resp:
                    async for chunk in resp.aiter_bytes():
                        received.write(chunk)
            except httpx.HTTPError as exc:
                raise TransportError(f"sending request to {url}: {exc}") from exc

            try:
                envelope = json.loads(received.getvalue())
            except ValueError as exc:
                raise TransportError(
                    f"reading API response from {url} (HTTP {resp.status_code}): {exc}"
                ) from exc

        response = ApiResponse.from_dict(envelope)
        response.raise_for_error()
        return response
