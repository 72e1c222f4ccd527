from discord import Embed, Forbidden
from discord.ext.commands import Cog, Context, errors
from pydis_core.utils.error_handling import handle_forbidden_from_block
from sentry_sdk import new_scope

from gatekeeper.bot import Bot
from gatekeeper.constants import Colours
from gatekeeper.log import get_logger

log = get_logger(__name__)

MSG_BOT_MISSING_PERMISSIONS = "Sorry, it looks like I don't have the permissions I need to do that."
MSG_MISSING_PERMISSIONS = "Sorry, you don't have permission to use that command."
MSG_BAD_INPUT = "Something about your input seems off. Check the arguments and try again."


class ErrorHandler(Cog):
    """Replies to failed commands and reports the ones nobody expected."""

    def __init__(self, bot: Bot):
        self.bot = bot

    @staticmethod
    def _error_embed(title: str, body: str) -> Embed:
        return Embed(title=title, colour=Colours.soft_red, description=body)

    @Cog.listener()
    async def on_command_error(self, ctx: Context, e: errors.CommandError) -> None:
        """
        Handle an error raised while invoking a command.

        Errors with a `handled` attribute were already dealt with by a local handler and are skipped.
        Unknown commands are only traced, since most chat in a gated guild isn't meant for the bot.
        Input errors and failed checks get an explanation, cooldowns echo the error, and anything
        else goes to `handle_unexpected_error`.
        """
        if hasattr(e, "handled"):
            log.trace(f"Command {ctx.command} had its error already handled locally; ignoring.")
            return

        summary = f"Command {ctx.command} invoked by {ctx.message.author} failed with {e.__class__.__name__}: {e}"

        if isinstance(e, errors.CommandNotFound):
            log.trace(summary)
        elif isinstance(e, errors.UserInputError):
            log.debug(summary)
            await self.handle_user_input_error(ctx, e)
        elif isinstance(e, errors.CheckFailure):
            log.debug(summary)
            await self.handle_check_failure(ctx, e)
        elif isinstance(e, errors.CommandOnCooldown | errors.MaxConcurrencyReached):
            log.debug(summary)
            await ctx.send(e)
        elif isinstance(e, errors.DisabledCommand):
            log.debug(summary)
        elif isinstance(e, errors.CommandInvokeError) and isinstance(e.original, Forbidden):
            try:
                await handle_forbidden_from_block(e.original, ctx.message)
            except Forbidden:
                await self.handle_unexpected_error(ctx, e.original)
        elif isinstance(e, errors.CommandInvokeError):
            await self.handle_unexpected_error(ctx, e.original)
        else:
            await self.handle_unexpected_error(ctx, e)

    async def handle_user_input_error(self, ctx: Context, e: errors.UserInputError) -> None:
        """Explain what was wrong with the arguments, in an embed."""
        if isinstance(e, errors.MissingRequiredArgument):
            embed = self._error_embed("Missing required argument", e.param.name)
            stat = "errors.missing_required_argument"
        elif isinstance(e, errors.BadArgument):
            embed = self._error_embed("Bad argument", str(e))
            stat = "errors.bad_argument"
        else:
            embed = self._error_embed("Input error", MSG_BAD_INPUT)
            stat = "errors.other_user_input_error"

        self.bot.stats.incr(stat)
        await ctx.send(embed=embed)

    @staticmethod
    async def handle_check_failure(ctx: Context, e: errors.CheckFailure) -> None:
        """
        Explain a failed permission or guild-only check.

        Other check failures are left silent.
        """
        if isinstance(e, errors.BotMissingPermissions):
            ctx.bot.stats.incr("errors.bot_permission_error")
            await ctx.send(MSG_BOT_MISSING_PERMISSIONS)
        elif isinstance(e, errors.MissingPermissions):
            ctx.bot.stats.incr("errors.missing_permissions")
            await ctx.send(MSG_MISSING_PERMISSIONS)
        elif isinstance(e, errors.NoPrivateMessage):
            ctx.bot.stats.incr("errors.wrong_channel_or_dm_error")
            await ctx.send(e)

    @staticmethod
    async def handle_unexpected_error(ctx: Context, e: Exception) -> None:
        """Tell the invoker something broke, then log the exception with the command's context attached."""
        await ctx.send(f"Sorry, an unexpected error occurred.\n\n```{e.__class__.__name__}: {e}```")

        ctx.bot.stats.incr("errors.unexpected")

        with new_scope() as scope:
            scope.user = {"id": ctx.author.id, "username": str(ctx.author)}

            scope.set_tag("command", ctx.command.qualified_name if ctx.command else None)
            scope.set_tag("message_id", ctx.message.id)
            scope.set_tag("channel_id", ctx.channel.id)
            scope.set_extra("full_message", ctx.message.content)

            guild_id = ctx.guild.id if ctx.guild is not None else None
            log.error(
                f"Error executing command invoked by {ctx.message.author} in guild {guild_id}: {ctx.message.content}",
                exc_info=e,
            )


async def setup(bot: Bot) -> None:
    """Load the ErrorHandler cog."""
    await bot.add_cog(ErrorHandler(bot))
