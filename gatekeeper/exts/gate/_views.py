from collections.abc import Awaitable, Callable

import discord
from discord import ButtonStyle, Interaction

from gatekeeper.log import get_logger

log = get_logger(__name__)

START_BUTTON_ID = "gatekeeper:start-verification"


class VerificationPromptView(discord.ui.View):
    """
    A persistent view holding the button that starts verification.

    The button has a fixed custom ID and the view never times out, so once an instance is registered
    with `Bot.add_view`, clicks on prompts posted before a restart are still handled.
    """

    def __init__(self, on_start: Callable[[Interaction], Awaitable[None]]):
        super().__init__(timeout=None)
        self.on_start = on_start

    @discord.ui.button(label="Verify", style=ButtonStyle.success, custom_id=START_BUTTON_ID)
    async def start_verification(self, interaction: Interaction, button: discord.ui.Button) -> None:
        """Hand the click over to the gate."""
        await self.on_start(interaction)

    async def on_error(self, interaction: Interaction, error: Exception, item: discord.ui.Item) -> None:
        """Log errors raised while handling a click, with the user and guild involved."""
        guild_id = interaction.guild.id if interaction.guild else None
        log.error(
            f"Unhandled exception handling {item} for {interaction.user} ({interaction.user.id}) in guild {guild_id}.",
            exc_info=error,
        )
