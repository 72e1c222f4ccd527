import discord
from discord.ext import commands
from discord.ext.commands import Context, guild_only

from gatekeeper.bot import Bot
from gatekeeper.log import get_logger

log = get_logger(__name__)

ROUND_LATENCY = 3


class ServerInfo(commands.Cog):
    """Small informational commands about the bot and the current server."""

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    @commands.command()
    async def ping(self, ctx: Context) -> None:
        """Reply with the Discord gateway latency."""
        # Gateway latency is reported in seconds.
        await ctx.send(f"Pong! {self.bot.latency * 1000:.{ROUND_LATENCY}f} ms")

    @commands.command()
    @guild_only()
    async def owner(self, ctx: Context) -> None:
        """Show who owns this server."""
        try:
            owner = ctx.guild.owner or await ctx.guild.fetch_member(ctx.guild.owner_id)
        except discord.HTTPException:
            log.exception(f"Error fetching the owner of guild {ctx.guild.id}")
            await ctx.send("Failed to fetch server owner. Please try again later.")
            return

        log.trace(f"Owner of guild {ctx.guild.id} is {owner} ({owner.id})")
        await ctx.send(f"Server Owner: {owner} (ID: {owner.id})")


async def setup(bot: Bot) -> None:
    """Load the ServerInfo cog."""
    await bot.add_cog(ServerInfo(bot))
