"""Handler middleware.

A middleware takes a handler and returns a wrapped handler. They are applied
with ``Dispatcher.use``; the first one registered runs outermost.
"""
import functools
import logging

import trio

from core.context import Context, Handler

logger = logging.getLogger(__name__)


def logging_middleware(handler: Handler) -> Handler:
    """Log each handled update with the time spent outside outbound requests."""

    @functools.wraps(handler)
    async def wrapper(ctx: Context) -> None:
        start = trio.current_time()
        try:
            await handler(ctx)
        finally:
            elapsed = trio.current_time() - start
            elapsed -= sum(r.duration for r in ctx.requests)
            logger.info(
                "Handled %s id=%s in %.3fs (%d requests)",
                ctx.update_type.value,
                ctx.update_id,
                elapsed,
                len(ctx.requests),
            )

    return wrapper


def recovery_middleware(handler: Handler) -> Handler:
    """Log and swallow handler errors so one bad update cannot stop serving."""

    @functools.wraps(handler)
    async def wrapper(ctx: Context) -> None:
        try:
            await handler(ctx)
        except Exception:  # pylint: disable=broad-exception-caught
            # Intentionally catch all exceptions to prevent one handler
            # from crashing the entire bot
            logger.exception(
                "Error handling %s id=%s", ctx.update_type.value, ctx.update_id
            )

    return wrapper
