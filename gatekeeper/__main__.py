import asyncio

import aiohttp
import discord
from discord.ext import commands
from pydis_core import StartupError

import gatekeeper
from gatekeeper import constants
from gatekeeper.bot import Bot
from gatekeeper.log import get_logger, setup_sentry

LOCALHOST = "127.0.0.1"


class MissingTokenError(Exception):
    """Raised when no bot token is configured."""


async def main() -> None:
    """Build the bot and run it until it is closed."""
    if not constants.Bot.token:
        raise StartupError(MissingTokenError("BOT_TOKEN is not set."))

    setup_sentry()

    statsd_url = constants.Stats.statsd_host
    if constants.DEBUG_MODE:
        # statsd is UDP, so pointing it at localhost silently drops stats during development.
        statsd_url = LOCALHOST

    intents = discord.Intents.default()
    intents.members = True
    intents.message_content = True

    async with aiohttp.ClientSession() as session:
        gatekeeper.instance = Bot(
            guild_id=constants.Guild.id,
            http_session=session,
            statsd_url=statsd_url,
            command_prefix=commands.when_mentioned_or(constants.Bot.prefix),
            case_insensitive=True,
            allowed_mentions=discord.AllowedMentions(everyone=False, roles=False, users=True),
            intents=intents,
            allowed_roles=[],
        )
        async with gatekeeper.instance as _bot:
            await _bot.start(constants.Bot.token)


try:
    asyncio.run(main())
except StartupError as e:
    message = "Unknown Startup Error Occurred."
    if isinstance(e.exception, MissingTokenError):
        message = "No bot token configured. Set BOT_TOKEN in the environment or a .env file."
    elif isinstance(e.exception, aiohttp.ClientConnectorError | aiohttp.ServerDisconnectedError):
        message = "Could not connect to Discord. Is the network available?"

    # Traceback first, so the readable message ends up on the last line.
    log = get_logger("gatekeeper")
    log.fatal("", exc_info=e.exception)
    log.fatal(message)

    exit(69)
