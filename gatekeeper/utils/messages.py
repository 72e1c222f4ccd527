import discord

from gatekeeper.errors import DeliveryFailureError
from gatekeeper.log import get_logger

log = get_logger(__name__)

# Discord error code for "Cannot send messages to this user".
DMS_DISABLED = 50_007


async def send_dm(recipient: discord.abc.User, content: str, **kwargs) -> discord.Message:
    """
    Send `content` to `recipient` as a direct message.

    The 50_007 error code indicates that the target user does not accept DMs.
    As it turns out, this error code can appear on both 400 and 403 statuses,
    we therefore catch any Discord exception and raise `DeliveryFailureError` for all of them.
    """
    try:
        return await recipient.send(content, **kwargs)
    except discord.HTTPException as discord_exc:
        log.trace(f"DM dispatch failed on status {discord_exc.status} with code: {discord_exc.code}")
        if discord_exc.code == DMS_DISABLED:
            reason = "the user does not accept direct messages"
        else:
            reason = f"HTTP {discord_exc.status}: {discord_exc.text or 'no details'}"
        raise DeliveryFailureError(recipient, reason) from discord_exc


async def reply_or_log(message: discord.Message, content: str) -> None:
    """Reply to `message`, logging instead of raising if the reply is rejected."""
    try:
        await message.reply(content, mention_author=False)
    except discord.HTTPException as e:
        guild_id = message.guild.id if message.guild else None
        log.warning(
            f"Could not reply to {message.author} ({message.author.id}) in guild {guild_id}: "
            f"{e.status} {e.text}"
        )
