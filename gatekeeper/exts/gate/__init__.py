from gatekeeper.bot import Bot
from gatekeeper.exts.gate._cog import Gatekeeper


async def setup(bot: Bot) -> None:
    """Load the Gatekeeper cog."""
    await bot.add_cog(Gatekeeper(bot))
