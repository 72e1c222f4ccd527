import contextlib
from sys import exception

import discord
from pydis_core import BotBase
from pydis_core.utils._extensions import walk_extensions
from pydis_core.utils.error_handling import handle_forbidden_from_block
from sentry_sdk import new_scope, start_transaction

from gatekeeper import exts
from gatekeeper.log import get_logger

log = get_logger("gatekeeper")


class Bot(BotBase):
    """The gatekeeper bot: `BotBase` with extensions loaded on startup and listener errors sent to Sentry."""

    async def load_extension(self, name: str, *args, **kwargs) -> None:
        """Load an extension inside a Sentry transaction so slow cog loads show up in performance data."""
        with start_transaction(op="cog-load", name=name):
            await super().load_extension(name, *args, **kwargs)

    async def setup_hook(self) -> None:
        """
        Load every extension in `gatekeeper.exts`.

        `BotBase.load_extensions` holds off until the home guild is available. The gate has to work in
        every guild it is added to from the first event, so extensions are loaded here directly.
        """
        await super().setup_hook()

        self.all_extensions = walk_extensions(exts)
        for extension in sorted(self.all_extensions):
            await self.load_extension(extension)

        log.info(f"Loaded {len(self.all_extensions)} extensions.")

    async def on_error(self, event: str, *args, **kwargs) -> None:
        """Report an exception raised by an event listener, unless it came from a user blocking the bot."""
        error = exception()

        if isinstance(error, discord.Forbidden):
            message = args[0] if event == "on_message" else None
            # Re-raises if the 403 wasn't caused by a block, which is then reported like any other error.
            with contextlib.suppress(discord.Forbidden):
                await handle_forbidden_from_block(error, message)
                return

        self.stats.incr(f"errors.event.{event}")

        with new_scope() as scope:
            scope.set_tag("event", event)
            scope.set_extra("args", args)
            scope.set_extra("kwargs", kwargs)

            log.exception(f"Unhandled exception in {event}.")
