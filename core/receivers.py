"""Update sources.

Both receivers implement ``receive(stop, send_channel, allowed_updates)``:
they push parsed updates into the send channel, in arrival order, until the
stop event is set or an unrecoverable error occurs. The caller owns the
channel and closes it once ``receive`` has returned.
"""
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import trio
from hypercorn.config import Config as HypercornConfig
from hypercorn.trio import serve
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from core.errors import DecodeError, TransportError
from core.methods import InputFile, get_updates, set_webhook
from core.models import Update, parse_update

logger = logging.getLogger(__name__)

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"


async def run_until_stopped(stop: trio.Event, fn: Callable[..., Awaitable[None]], *args: Any) -> None:
    """Run fn until it returns or stop is set.

    An error raised by fn is re-raised as-is rather than wrapped in an
    exception group by the nursery.
    """
    failures: List[Exception] = []

    async with trio.open_nursery() as nursery:

        async def _runner() -> None:
            try:
                await fn(*args)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                failures.append(exc)
            finally:
                nursery.cancel_scope.cancel()

        nursery.start_soon(_runner)
        await stop.wait()
        nursery.cancel_scope.cancel()

    if failures:
        raise failures[0]


class UpdateReceiver:
    """
    Interface for update sources.
    """

    async def receive(
        self,
        stop: trio.Event,
        send_channel: trio.MemorySendChannel,
        allowed_updates: List[str],
    ) -> None:
        """Produce updates into send_channel until stopped.

        Args:
            stop: Set when serving should end
            send_channel: Queue feeding the worker pool
            allowed_updates: Update kinds the dispatcher has handlers for
        """
        raise NotImplementedError


@dataclass
class PollingReceiver(UpdateReceiver):
    """Long-polling source with a single request in flight at a time.

    Attributes:
        client: Wire client used for getUpdates
        offset: Next update id to ask for
        limit: Maximum batch size per request
        timeout: Server-side long-poll timeout in seconds
        idle_delay: Pause after an empty batch, in seconds
    """
    client: Any
    offset: int = 0
    limit: int = 100
    timeout: int = 30
    idle_delay: float = 1.0

    @classmethod
    def from_config(cls, client: Any, section: Dict[str, Any]) -> "PollingReceiver":
        return cls(
            client=client,
            limit=int(section.get("limit", 100)),
            timeout=int(section.get("timeout", 30)),
            idle_delay=float(section.get("idle_delay_seconds", 1.0)),
        )

    async def receive(
        self,
        stop: trio.Event,
        send_channel: trio.MemorySendChannel,
        allowed_updates: List[str],
    ) -> None:
        logger.info("Polling for updates (timeout=%ss)", self.timeout)
        await run_until_stopped(stop, self._poll, send_channel, allowed_updates)
        logger.info("Polling stopped at offset %s", self.offset)

    async def _poll(self, send_channel: trio.MemorySendChannel, allowed_updates: List[str]) -> None:
        while True:
            res = await self.client.send(
                get_updates(self.offset, self.limit, self.timeout, allowed_updates)
            )
            batch = res.result or []
            if not isinstance(batch, list):
                raise TransportError(f"getUpdates returned {type(batch).__name__}, not a list")

            # No activity: wait a little instead of hammering the service
            if not batch:
                await trio.sleep(self.idle_delay)
                continue

            for raw in batch:
                update_id = raw.get("update_id") if isinstance(raw, dict) else None
                try:
                    update = parse_update(raw)
                except DecodeError as exc:
                    logger.warning("Skipping malformed update %s: %s", update_id, exc)
                else:
                    await send_channel.send(update)
                if isinstance(update_id, int):
                    self.offset = max(self.offset, update_id + 1)


@dataclass
class WebhookReceiver(UpdateReceiver):  # pylint: disable=too-many-instance-attributes
    """Push source: registers a webhook and serves it over HTTP.

    Attributes:
        client: Wire client used for the setWebhook registration
        domain: Public base address, e.g. "https://bot.example.com"
        path: Path the listener serves and the remote service posts to
        listen: Local bind address for the listener
        exposed_port: Public port, when it differs from 443
        certificate: Optional self-signed certificate to upload
        ip_address: Fixed IP the remote service should use
        max_connections: Maximum simultaneous deliveries
        drop_pending_updates: Discard updates queued before registration
        secret_token: Value the secret header must carry
        grace_period: Seconds in-flight requests get to finish on shutdown
    """
    client: Any
    domain: str
    path: str = "/webhook"
    listen: str = "0.0.0.0:8443"
    exposed_port: str = ""
    certificate: Optional[InputFile] = None
    ip_address: Optional[str] = None
    max_connections: Optional[int] = None
    drop_pending_updates: bool = False
    secret_token: Optional[str] = None
    grace_period: float = 30.0

    def __post_init__(self) -> None:
        if not self.path.startswith("/"):
            self.path = "/" + self.path

    @classmethod
    def from_config(cls, client: Any, section: Dict[str, Any]) -> "WebhookReceiver":
        certificate = section.get("certificate")
        return cls(
            client=client,
            domain=section.get("domain", ""),
            path=section.get("path", "/webhook"),
            listen=section.get("listen", "0.0.0.0:8443"),
            exposed_port=str(section.get("exposed_port") or ""),
            certificate=InputFile.from_path(certificate) if certificate else None,
            ip_address=section.get("ip_address"),
            max_connections=section.get("max_connections"),
            drop_pending_updates=bool(section.get("drop_pending_updates", False)),
            secret_token=section.get("secret_token"),
            grace_period=float(section.get("grace_period_seconds", 30)),
        )

    @property
    def url(self) -> str:
        """Public callback address declared to the remote service."""
        port = self.exposed_port.lstrip(":")
        suffix = f":{port}" if port and port != "443" else ""
        return f"{self.domain.rstrip('/')}{suffix}{self.path}"

    async def register(self, allowed_updates: List[str]) -> None:
        """Declare the callback address and wanted update kinds."""
        await self.client.send(
            set_webhook(
                url=self.url,
                certificate=self.certificate,
                ip_address=self.ip_address,
                max_connections=self.max_connections,
                allowed_updates=allowed_updates,
                drop_pending_updates=self.drop_pending_updates or None,
                secret_token=self.secret_token or None,
            )
        )
        logger.info("Webhook registered at %s for %s", self.url, allowed_updates)

    def build_app(self, send_channel: trio.MemorySendChannel, stop: trio.Event) -> Starlette:
        """ASGI application accepting one JSON-encoded update per POST."""

        async def deliver(request: Request) -> Response:
            if stop.is_set():
                return Response(status_code=503)

            if self.secret_token:
                given = request.headers.get(SECRET_TOKEN_HEADER, "")
                if not hmac.compare_digest(given.encode(), self.secret_token.encode()):
                    logger.warning("Rejected webhook call with a wrong secret token")
                    return Response(status_code=401)

            body = await request.body()
            try:
                update: Update = parse_update(json.loads(body))
            except (ValueError, DecodeError) as exc:
                logger.warning("Rejected malformed webhook body: %s", exc)
                return Response(status_code=400)

            await send_channel.send(update)
            return Response(status_code=200)

        return Starlette(routes=[Route(self.path, deliver, methods=["POST"])])

    async def receive(
        self,
        stop: trio.Event,
        send_channel: trio.MemorySendChannel,
        allowed_updates: List[str],
    ) -> None:
        await self.register(allowed_updates)

        config = HypercornConfig()
        config.bind = [self.listen]
        config.graceful_timeout = self.grace_period

        logger.info("Listening on %s, serving %s", self.listen, self.path)
        try:
            await serve(self.build_app(send_channel, stop), config, shutdown_trigger=stop.wait)
        except OSError as exc:
            raise TransportError(f"webhook listener on {self.listen}: {exc}") from exc
        logger.info("Webhook listener stopped")
