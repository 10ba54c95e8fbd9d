"""Greeting feature for the bot.

Provides /start and /help commands and echoes plain text messages back to
the chat they came from.
"""
import logging
from dataclasses import dataclass

from core.context import Context
from core.dispatcher import Dispatcher, FeatureHandler
from core.models import UpdateType

logger = logging.getLogger(__name__)


@dataclass
class GreetingFeature(FeatureHandler):
    """Welcome, help and echo handlers.

    Attributes:
        welcome_text: Reply to /start
        echo: Whether plain messages are echoed back
    """
    welcome_text: str = "Hello! Send me a message and I will repeat it."
    echo: bool = True

    def register(self, dispatcher: Dispatcher) -> None:
        dispatcher.handle_command("/start", "begin", self.start)
        dispatcher.handle_command("/help", "show available commands", self.help)
        if self.echo:
            dispatcher.handle(UpdateType.MESSAGE, self.echo_message)

    async def start(self, ctx: Context) -> None:
        await ctx.reply(self.welcome_text)

    async def help(self, ctx: Context) -> None:
        await ctx.reply("/start - begin\n/help - show available commands")

    async def echo_message(self, ctx: Context) -> None:
        text = ctx.message.text
        if not text:
            return
        logger.debug("Echoing message in chat %s", ctx.message.chat.id)
        await ctx.reply(text)
