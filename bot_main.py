"""Main entry point for the bot.

This module loads the configuration and runs the dispatcher with:
- Long polling or a webhook listener as the update source
- A fixed pool of workers routing updates to handlers
- Command menus published before serving starts
"""
import logging
import os
import signal
from typing import Any, Dict

import trio

from config import ConfigManager
from core.client import BotApiClient
from core.dispatcher import Dispatcher
from core.middleware import logging_middleware, recovery_middleware
from features.greeting import GreetingFeature


logger = logging.getLogger(__name__)


async def stop_on_signals(dispatcher: Dispatcher) -> None:
    """Stop the dispatcher on the first SIGINT or SIGTERM."""
    with trio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.info("Received signal %s", signal.Signals(signum).name)
            dispatcher.stop()
            return


def load_config(path: str) -> Dict[str, Any]:
    """Set up logging and load the configuration at path.

    Logging starts at INFO so messages from loading the file are kept, then
    switches to the configured level.
    """
    logging.basicConfig(format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    config = ConfigManager(path).load()
    root.setLevel(config["logging"].get("level", "INFO"))
    return config


async def main() -> None:
    """Load configuration and serve until stopped."""
    config = load_config(os.environ.get("BOT_CONFIG", "config.yaml"))
    logger.info("Starting bot")

    async with BotApiClient.from_config(config) as client:
        me = await client.get_me()
        logger.info("Bot authenticated as: @%s (id: %s)", me.get("username"), me.get("id"))

        dispatcher = Dispatcher.from_config(client, config)
        dispatcher.use(recovery_middleware, logging_middleware)
        dispatcher.register_feature(GreetingFeature())

        async with trio.open_nursery() as nursery:
            nursery.start_soon(stop_on_signals, dispatcher)
            await dispatcher.serve()
            nursery.cancel_scope.cancel()


def run() -> None:
    trio.run(main)


if __name__ == "__main__":
    run()
