"""Event dispatching system for routing updates to handlers.

The Dispatcher owns the event queue and a fixed pool of worker tasks. An
update source fills the queue; each worker takes one update at a time and
routes it by the following precedence:

1. a text message starting with a registered command goes to that command
2. otherwise the handler registered for the update's kind
3. otherwise the update is dropped
"""
import enum
import logging
import os
from typing import Any, Dict, List, Optional, Union

import trio

from core.commands import CommandRegistry, ScopeKey
from core.context import Context, Handler, Middleware
from core.errors import ConfigurationError, RateLimitedError
from core.methods import close
from core.models import Update, UpdateType
from core.receivers import PollingReceiver, UpdateReceiver, WebhookReceiver

logger = logging.getLogger(__name__)


class State(enum.Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class FeatureHandler:
    """
    Interface for feature modules.
    """

    def register(self, dispatcher: "Dispatcher") -> None:
        """Register this feature's handlers and commands.

        Args:
            dispatcher: Dispatcher to register with
        """
        raise NotImplementedError


class Dispatcher:  # pylint: disable=too-many-instance-attributes
    """Routes updates from one update source to registered handlers.

    Handlers, commands and middleware must be registered before ``serve``;
    the registry is read-only while serving.

    Attributes:
        client: Wire client shared by receivers and handler contexts
        polling: Long-polling source, if configured
        webhook: Push source, if configured
        workers: Number of worker tasks
        queue_size: Capacity of the event queue (0 hands updates over directly)
        close_on_shutdown: Whether to issue a final "close" call
        commands: Command registry
    """

    def __init__(
        self,
        client: Any,
        polling: Optional[PollingReceiver] = None,
        webhook: Optional[WebhookReceiver] = None,
        workers: Optional[int] = None,
        queue_size: int = 100,
        close_on_shutdown: bool = False,
    ) -> None:
        self.client = client
        self.polling = polling
        self.webhook = webhook
        self.workers = workers or os.cpu_count() or 1
        self.queue_size = queue_size
        self.close_on_shutdown = close_on_shutdown
        self.commands = CommandRegistry()
        self._handlers: Dict[UpdateType, Handler] = {}
        self._middlewares: List[Middleware] = []
        self._stop = trio.Event()
        self._state = State.IDLE

    @classmethod
    def from_config(cls, client: Any, config: Dict[str, Any]) -> "Dispatcher":
        """Create a dispatcher from the bot configuration dictionary."""
        dispatch = config.get("dispatch") or {}
        polling = config.get("polling") or {}
        webhook = config.get("webhook") or {}
        use_webhook = bool(webhook.get("enabled"))
        # Polling is the fallback source unless a webhook is enabled
        use_polling = bool(polling.get("enabled")) or not use_webhook
        return cls(
            client,
            polling=PollingReceiver.from_config(client, polling) if use_polling else None,
            webhook=WebhookReceiver.from_config(client, webhook) if use_webhook else None,
            workers=dispatch.get("workers"),
            queue_size=int(dispatch.get("queue_size", 100)),
            close_on_shutdown=bool(dispatch.get("close_on_shutdown", False)),
        )

    @property
    def state(self) -> State:
        return self._state

    def _ensure_idle(self) -> None:
        if self._state is not State.IDLE:
            raise RuntimeError("handlers must be registered before serving starts")

    def handle(self, update_type: Union[UpdateType, str], handler: Handler) -> None:
        """Register the handler for one update kind, replacing any previous one."""
        self._ensure_idle()
        self._handlers[UpdateType(update_type)] = handler

    def handle_command(
        self, name: str, description: str, handler: Handler, *scopes: ScopeKey
    ) -> None:
        self._ensure_idle()
        self.commands.add_command(name, description, handler, *scopes)

    def handle_localized_command(
        self, name: str, descriptions: Dict[str, str], handler: Handler, *scopes: ScopeKey
    ) -> None:
        self._ensure_idle()
        self.commands.add_localized_command(name, descriptions, handler, *scopes)

    def use(self, *middlewares: Middleware) -> None:
        """Wrap every handler in the given middleware, first one outermost."""
        self._ensure_idle()
        self._middlewares.extend(middlewares)

    def register_feature(self, feature: FeatureHandler) -> None:
        """Let a feature register its handlers and commands."""
        self._ensure_idle()
        feature.register(self)

    def allowed_updates(self) -> List[str]:
        """Update kinds worth receiving, derived from registered handlers."""
        kinds = list(self._handlers)
        if len(self.commands) and UpdateType.MESSAGE not in kinds:
            kinds.append(UpdateType.MESSAGE)
        return [k.value for k in kinds]

    def route(self, update: Update) -> Optional[Handler]:
        """Pick the handler for an update, or None to drop it."""
        if update.type is UpdateType.MESSAGE:
            token = update.message.command()
            if token:
                handler = self.commands.get_handler(token)
                if handler is not None:
                    return handler
        return self._handlers.get(update.type)

    async def dispatch(self, update: Update) -> None:
        """Run the routed handler for one update, wrapped in middleware."""
        handler = self.route(update)
        if handler is None:
            logger.debug("No handler for %s id=%s", update.type.value, update.update_id)
            return
        for middleware in reversed(self._middlewares):
            handler = middleware(handler)
        await handler(Context(self.client, update, self._stop))

    def stop(self) -> None:
        """Signal cooperative shutdown; ``serve`` returns once everything drained."""
        if self._state is State.RUNNING:
            self._state = State.SHUTTING_DOWN
            logger.info("Shutting down")
        self._stop.set()

    def _select_receiver(self) -> UpdateReceiver:
        if self.polling is not None and self.webhook is not None:
            raise ConfigurationError(
                ["both a webhook and long polling are configured; enable only one"]
            )
        if self.webhook is not None:
            return self.webhook
        if self.polling is None:
            self.polling = PollingReceiver(self.client)
        return self.polling

    async def serve(self) -> None:
        """Validate, publish commands, and serve until stopped.

        Raises:
            ConfigurationError: If the setup is invalid
            TransportError: If the update source fails
            ApiError: If the remote service rejects startup calls
        """
        if self._state is not State.IDLE:
            raise RuntimeError("a dispatcher can only serve once")

        self._state = State.INITIALIZING
        try:
            receiver = self._select_receiver()
            self.commands.raise_for_errors()
            await self.commands.sync(self.client)

            send_channel, receive_channel = trio.open_memory_channel(self.queue_size)
            if self._state is State.INITIALIZING:
                self._state = State.RUNNING
            logger.info(
                "Serving with %d workers via %s", self.workers, type(receiver).__name__
            )

            async with trio.open_nursery() as nursery:
                async with receive_channel:
                    for worker_id in range(self.workers):
                        nursery.start_soon(self._work, worker_id, receive_channel.clone())
                failure = await self._run_receiver(receiver, send_channel)

            if failure is not None:
                raise failure

            self._state = State.SHUTTING_DOWN
            if self.close_on_shutdown:
                await self._close_remote()
        finally:
            self._stop.set()
            self._state = State.STOPPED
            logger.info("Stopped")

    async def _run_receiver(
        self, receiver: UpdateReceiver, send_channel: trio.MemorySendChannel
    ) -> Optional[Exception]:
        # The queue is closed only after the source has returned.
        try:
            async with send_channel:
                await receiver.receive(self._stop, send_channel, self.allowed_updates())
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # Re-raised by serve() once the workers have exited
            logger.error("Update source failed: %s", exc)
            self._stop.set()
            return exc
        return None

    async def _work(self, worker_id: int, receive_channel: trio.MemoryReceiveChannel) -> None:
        async with receive_channel:
            async for update in receive_channel:
                # Drain without dispatching once stopping
                if self._stop.is_set():
                    continue
                await self.dispatch(update)
        logger.debug("Worker %d exited", worker_id)

    async def _close_remote(self) -> None:
        try:
            await self.client.send(close(), retry=False)
        except RateLimitedError as exc:
            logger.warning(
                "Final close call was rate limited (retry after %ss), ignoring",
                exc.retry_after,
            )
