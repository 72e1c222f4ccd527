"""Contains the Cog that receives discord.py events and defers most actions to other files in the module."""

from collections.abc import Awaitable, Callable
from datetime import timedelta
from enum import Enum

import discord
from discord import Interaction
from discord.ext.commands import Cog, Context, command, guild_only, has_guild_permissions
from pydis_core.utils.members import get_or_fetch_member
from pydis_core.utils.scheduling import Scheduler

from gatekeeper import constants
from gatekeeper.bot import Bot
from gatekeeper.errors import DeliveryFailureError, StoreIOError
from gatekeeper.exts.gate import _messages
from gatekeeper.exts.gate._allow_list import AllowList
from gatekeeper.exts.gate._challenges import ChallengeRegistry, StartStatus, SubmitStatus
from gatekeeper.exts.gate._rate_watch import RateTracker
from gatekeeper.exts.gate._roles import RoleOutcome, RoleProvisioner, RoleSpec, has_capability
from gatekeeper.exts.gate._views import VerificationPromptView
from gatekeeper.log import get_logger
from gatekeeper.utils.lock import KeyedLock
from gatekeeper.utils.messages import reply_or_log, send_dm

log = get_logger(__name__)


class EventKind(Enum):
    """The events the gate reacts to."""

    GUILD_JOINED = "guild_joined"
    GUILD_MESSAGE = "guild_message"
    DIRECT_MESSAGE = "direct_message"
    START_VERIFICATION = "start_verification"
    MEMBER_UPDATED = "member_updated"


class Gatekeeper(Cog):
    """
    Gate posting behind a verification question and tag members who post in bursts.

    Unverified members get a prompt with a button; clicking it sends them a question by DM, and
    answering it correctly adds them to the allow-list and gives them the verified role. Separately,
    anyone who sends too many messages within the rate window is given the rate-limit role.

    All state lives on the cog instance. Every event goes through `dispatch`, which looks its
    handler up in a single table keyed by `EventKind`.

    Statistics are collected in the 'verification.' and 'rate_watch.' namespaces.
    """

    def __init__(self, bot: Bot, allow_list: AllowList | None = None):
        self.bot = bot
        self.scheduler = Scheduler(self.__class__.__name__)

        self.allow_list = allow_list or AllowList(constants.Verification.users_file)
        self.challenges = ChallengeRegistry(
            self.allow_list,
            ttl=timedelta(seconds=constants.Verification.challenge_ttl),
        )
        self.rate_tracker = RateTracker(
            window=timedelta(seconds=constants.RateWatch.window),
            threshold=constants.RateWatch.threshold,
        )
        self.roles = RoleProvisioner()

        self.verified_role = RoleSpec(constants.Verification.role_name, constants.Verification.role_colour)
        self.rate_role = RoleSpec(constants.RateWatch.role_name, constants.RateWatch.role_colour)

        self._prompt_locks = KeyedLock("prompts")
        self._handlers: dict[EventKind, Callable[..., Awaitable[None]]] = {
            EventKind.GUILD_JOINED: self._handle_guild_joined,
            EventKind.GUILD_MESSAGE: self._handle_guild_message,
            EventKind.DIRECT_MESSAGE: self._handle_direct_message,
            EventKind.START_VERIFICATION: self._handle_start_verification,
            EventKind.MEMBER_UPDATED: self._handle_member_updated,
        }

    async def cog_load(self) -> None:
        """Load the allow-list and register the prompt view so buttons on old prompts keep working."""
        self.allow_list.load()
        self.bot.add_view(VerificationPromptView(self.start_verification))

    async def cog_unload(self) -> None:
        """Cancel all scheduled prompt deletions on unload."""
        self.scheduler.cancel_all()

    @property
    def challenge_minutes(self) -> int:
        """How long a challenge stays open, in whole minutes, for user-facing text."""
        return max(1, round(self.challenges.ttl.total_seconds() / 60))

    async def dispatch(self, kind: EventKind, *args) -> None:
        """Run the handler registered for `kind`."""
        handler = self._handlers[kind]
        log.trace(f"Dispatching {kind.name} to {handler.__name__}.")
        await handler(*args)

    # region: listeners

    @Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        """Warn the owner of a newly joined guild straight away if roles can't be managed there."""
        await self.dispatch(EventKind.GUILD_JOINED, guild)

    @Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        """Route guild messages to the gate and rate watch, and direct messages to answer checking."""
        if message.author.bot:
            return

        if message.guild is None:
            await self.dispatch(EventKind.DIRECT_MESSAGE, message)
        else:
            await self.dispatch(EventKind.GUILD_MESSAGE, message)

    @Cog.listener()
    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        """Log username and nickname changes."""
        await self.dispatch(EventKind.MEMBER_UPDATED, before, after)

    async def start_verification(self, interaction: Interaction) -> None:
        """Called by the prompt view when its button is clicked."""
        await self.dispatch(EventKind.START_VERIFICATION, interaction)

    # endregion
    # region: handlers

    async def _handle_guild_joined(self, guild: discord.Guild) -> None:
        if has_capability(guild):
            log.info(f"Joined guild {guild.name} ({guild.id}) with the Manage Roles permission.")
            return

        log.info(f"Joined guild {guild.name} ({guild.id}) without the Manage Roles permission, warning the owner.")
        await self.roles.notify_missing_capability(
            guild,
            f"create or assign the **{self.verified_role.name}** and **{self.rate_role.name}** roles",
        )

    async def _handle_guild_message(self, message: discord.Message) -> None:
        if await self.rate_tracker.record(message.author.id, message.created_at):
            await self._apply_rate_role(message)

        if str(message.author.id) not in self.allow_list:
            await self._prompt_verification(message)

    async def _handle_direct_message(self, message: discord.Message) -> None:
        user = message.author
        challenge = self.challenges.get(user.id)
        if challenge is None:
            log.trace(f"Ignoring DM from {user} ({user.id}): no pending challenge.")
            return

        log.trace(f"Checking an answer from {user} ({user.id}) to a challenge from guild {challenge.origin_guild_id}.")

        result = await self.challenges.submit(user.id, message.content)

        if result.status is SubmitStatus.NO_CHALLENGE:
            return
        if result.status is SubmitStatus.INCORRECT:
            self.bot.stats.incr("verification.incorrect")
            await reply_or_log(message, _messages.ANSWER_INCORRECT)
        elif result.status is SubmitStatus.EXPIRED:
            self.bot.stats.incr("verification.expired")
            await reply_or_log(message, _messages.ANSWER_EXPIRED)
        else:
            await self._complete_verification(message, result.guild_id)

    async def _handle_start_verification(self, interaction: Interaction) -> None:
        # Discord reports the click as failed unless it is acknowledged within 3 seconds,
        # so this has to happen before anything else that awaits.
        await interaction.response.defer(ephemeral=True, thinking=True)

        user = interaction.user
        if interaction.guild is None:
            await self._edit_acknowledgment(interaction, _messages.START_OUTSIDE_GUILD)
            return

        result = await self.challenges.start(user.id, interaction.guild.id)

        if result.status is StartStatus.ALREADY_VERIFIED:
            content = _messages.START_ALREADY_VERIFIED
        elif result.status is StartStatus.ALREADY_PENDING:
            content = _messages.START_ALREADY_PENDING
        else:
            self.bot.stats.incr("verification.started")
            try:
                await send_dm(
                    user,
                    _messages.CHALLENGE.format(
                        guild=interaction.guild.name,
                        question=result.challenge.question,
                        minutes=self.challenge_minutes,
                    ),
                )
            except DeliveryFailureError as e:
                log.info(f"Cancelling challenge from guild {interaction.guild.id}: {e}")
                await self.challenges.cancel(user.id)
                content = _messages.START_DM_FAILED
            else:
                content = _messages.START_SUCCESS.format(minutes=self.challenge_minutes)

        await self._edit_acknowledgment(interaction, content)

    async def _handle_member_updated(self, before: discord.Member, after: discord.Member) -> None:
        if before.name == after.name and before.nick == after.nick:
            return

        log.info(
            f"Member update in guild {after.guild.id}: {before} ({after.id}) "
            f"username {before.name!r} -> {after.name!r}, nickname {before.nick!r} -> {after.nick!r}."
        )

    # endregion
    # region: actions

    async def _apply_rate_role(self, message: discord.Message) -> None:
        """Give the author of `message` the rate-limit role and tell them how it went."""
        author = message.author
        self.bot.stats.incr("rate_watch.tripped")
        log.info(f"{author} ({author.id}) tripped the rate watch in guild {message.guild.id}.")

        if isinstance(author, discord.Member):
            outcome = await self.roles.grant(message.guild, author, self.rate_role)
        else:
            log.debug(f"{author} ({author.id}) is no longer a member of guild {message.guild.id}.")
            outcome = RoleOutcome.PLATFORM_ERROR

        await reply_or_log(
            message,
            _messages.RATE_LIMITED[outcome].format(mention=author.mention, role=self.rate_role.name),
        )

    async def _prompt_verification(self, message: discord.Message) -> None:
        """Post a verification prompt for the author unless one of theirs is still up."""
        author = message.author
        async with self._prompt_locks(author.id):
            if author.id in self.scheduler:
                log.trace(f"{author} ({author.id}) already has a live verification prompt.")
                return

            try:
                prompt = await message.channel.send(
                    _messages.PROMPT.format(mention=author.mention),
                    view=VerificationPromptView(self.start_verification),
                )
            except discord.HTTPException as e:
                log.warning(
                    f"Failed to prompt {author} ({author.id}) in #{message.channel} "
                    f"(guild {message.guild.id}): {e.status} {e.text}"
                )
                await self.roles.notify_owner(
                    message.guild,
                    _messages.OWNER_PROMPT_FAILED.format(channel=message.channel.mention, guild=message.guild.name),
                )
                return

            self.bot.stats.incr("verification.prompted")
            log.debug(f"Prompted {author} ({author.id}) to verify in #{message.channel} (guild {message.guild.id}).")
            self.scheduler.schedule_later(
                constants.Verification.prompt_lifetime,
                author.id,
                self._delete_prompt(prompt),
            )

    async def _delete_prompt(self, prompt: discord.Message) -> None:
        try:
            await prompt.delete()
        except discord.NotFound:
            log.debug(f"Verification prompt {prompt.id} was already deleted.")
        except discord.HTTPException as e:
            log.warning(f"Failed to delete verification prompt {prompt.id}: {e.status} {e.text}")

    async def _complete_verification(self, message: discord.Message, guild_id: int) -> None:
        """Grant the verified role in the guild the challenge came from, then remember the user."""
        user = message.author
        self.bot.stats.incr("verification.completed")

        outcome = await self._grant_verified_role(guild_id, user.id)
        await self._remember(user)

        await reply_or_log(message, _messages.VERIFIED[outcome].format(role=self.verified_role.name))

    async def _grant_verified_role(self, guild_id: int, user_id: int) -> RoleOutcome:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            log.warning(f"Cannot give {user_id} the verified role: guild {guild_id} is not available.")
            return RoleOutcome.PLATFORM_ERROR

        try:
            member = await get_or_fetch_member(guild, user_id)
        except discord.HTTPException as e:
            log.warning(f"Failed to fetch member {user_id} in guild {guild_id}: {e.status} {e.text}")
            return RoleOutcome.PLATFORM_ERROR

        if member is None:
            log.info(f"Cannot give {user_id} the verified role: they are no longer in guild {guild_id}.")
            return RoleOutcome.PLATFORM_ERROR

        return await self.roles.grant(guild, member, self.verified_role)

    async def _remember(self, user: discord.abc.User) -> None:
        """Add the user to the allow-list, logging if it couldn't be written to disk."""
        try:
            await self.allow_list.add(str(user.id))
        except StoreIOError as e:
            log.error(f"{user} ({user.id}) is verified for this session only: {e}")

    async def _edit_acknowledgment(self, interaction: Interaction, content: str) -> None:
        try:
            await interaction.edit_original_response(content=content)
        except discord.HTTPException as e:
            guild_id = interaction.guild.id if interaction.guild else None
            log.warning(
                f"Failed to answer the verify button for {interaction.user} ({interaction.user.id}) "
                f"in guild {guild_id}: {e.status} {e.text}"
            )

    # endregion
    # region: commands

    @command(name="verify")
    @guild_only()
    @has_guild_permissions(manage_roles=True)
    async def verify_command(self, ctx: Context, member: discord.Member) -> None:
        """Verify a member without asking them a question."""
        log.trace(f"verify command called by {ctx.author} for {member.id}.")

        if str(member.id) in self.allow_list:
            await ctx.send(_messages.MANUAL_ALREADY_VERIFIED.format(member=member.mention))
            return

        await self.challenges.cancel(member.id)
        outcome = await self.roles.grant(ctx.guild, member, self.verified_role)
        await self._remember(member)

        await ctx.send(_messages.MANUAL_VERIFIED[outcome].format(member=member.mention, role=self.verified_role.name))

    # endregion
