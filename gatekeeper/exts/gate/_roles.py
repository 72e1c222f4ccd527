from dataclasses import dataclass
from enum import Enum

import discord
from pydis_core.utils.members import get_or_fetch_member

from gatekeeper.errors import CapabilityMissingError, DeliveryFailureError, HierarchyViolationError
from gatekeeper.log import get_logger
from gatekeeper.utils.lock import KeyedLock
from gatekeeper.utils.messages import send_dm

log = get_logger(__name__)

MANAGE_ROLES = "Manage Roles"

OWNER_MISSING_CAPABILITY = (
    "Hi! I'm missing the **{permission}** permission in **{guild}**, so I can't {action}.\n"
    "To fix this, open **Server Settings → Roles**, select my role and enable **{permission}**."
)
OWNER_HIERARCHY_TOO_LOW = (
    "Hi! I can't assign the **{role}** role in **{guild}** because it sits at or above my highest role.\n"
    "To fix this, open **Server Settings → Roles** and drag my role above **{role}**."
)


class RoleOutcome(Enum):
    """Outcome of provisioning or assigning a role."""

    ASSIGNED = "assigned"
    ALREADY_ASSIGNED = "already_assigned"
    HIERARCHY_TOO_LOW = "hierarchy_too_low"
    INSUFFICIENT_PRIVILEGE = "insufficient_privilege"
    PLATFORM_ERROR = "platform_error"


@dataclass(frozen=True)
class RoleSpec:
    """The name and display colour of a role the gate manages."""

    name: str
    colour: int


def has_capability(guild: discord.Guild) -> bool:
    """Return True if the bot may manage roles in `guild`."""
    return guild.me.guild_permissions.manage_roles


class RoleProvisioner:
    """
    Find, create and grant the roles the gate depends on.

    Every mutation is preceded by a check of the bot's own permissions and role position, so
    missing privileges are reported to the guild owner in plain terms instead of surfacing as
    a bare 403 from Discord.

    Resolved roles are cached per guild by name, but the cache is only a hint: a cached role is
    looked up again on every use in case it was deleted or renamed.
    """

    def __init__(self):
        self._role_ids: dict[tuple[int, str], int] = {}
        self._locks = KeyedLock("roles")

    def _cached_role(self, guild: discord.Guild, name: str) -> discord.Role | None:
        """Return the cached role for `name` if it still exists under that name."""
        role_id = self._role_ids.get((guild.id, name))
        if role_id is None:
            return None

        role = guild.get_role(role_id)
        if role is None or role.name != name:
            log.debug(f"Cached role {name!r} ({role_id}) in guild {guild.id} is gone or renamed, dropping it.")
            del self._role_ids[(guild.id, name)]
            return None
        return role

    @staticmethod
    def _require_capability(guild: discord.Guild) -> None:
        if not has_capability(guild):
            raise CapabilityMissingError(guild, MANAGE_ROLES)

    @staticmethod
    def _require_hierarchy(guild: discord.Guild, role: discord.Role) -> None:
        top_position = guild.me.top_role.position
        if top_position <= role.position:
            raise HierarchyViolationError(role, top_position)

    async def notify_owner(self, guild: discord.Guild, content: str) -> None:
        """
        Send `content` to the owner of `guild`.

        This is best effort: failures are logged and never raised or retried.
        """
        try:
            owner = guild.owner or await get_or_fetch_member(guild, guild.owner_id)
            if owner is None:
                log.warning(f"Could not find the owner ({guild.owner_id}) of guild {guild.id} to notify them.")
                return
            await send_dm(owner, content)
        except (discord.HTTPException, DeliveryFailureError) as e:
            log.warning(f"Failed to notify the owner of guild {guild.id}: {e}")
        else:
            log.info(f"Notified {owner} ({owner.id}), owner of guild {guild.id}, about a privilege problem.")

    async def notify_missing_capability(self, guild: discord.Guild, action: str) -> None:
        """Tell the owner of `guild` that the bot can't `action` without the Manage Roles permission."""
        await self.notify_owner(
            guild,
            OWNER_MISSING_CAPABILITY.format(permission=MANAGE_ROLES, guild=guild.name, action=action),
        )

    async def ensure_role(self, guild: discord.Guild, spec: RoleSpec) -> discord.Role | RoleOutcome:
        """
        Return the role named `spec.name` in `guild`, creating it if it doesn't exist.

        Return `RoleOutcome.INSUFFICIENT_PRIVILEGE` without attempting creation if the bot can't
        manage roles, or `RoleOutcome.PLATFORM_ERROR` if Discord rejects the creation.
        """
        async with self._locks((guild.id, spec.name)):
            role = self._cached_role(guild, spec.name) or discord.utils.get(guild.roles, name=spec.name)
            if role is not None:
                self._role_ids[(guild.id, spec.name)] = role.id
                return role

            try:
                self._require_capability(guild)
            except CapabilityMissingError as e:
                log.info(f"Not creating role {spec.name!r}: {e}")
                await self.notify_missing_capability(guild, f"create the **{spec.name}** role")
                return RoleOutcome.INSUFFICIENT_PRIVILEGE

            try:
                role = await guild.create_role(
                    name=spec.name,
                    colour=discord.Colour(spec.colour),
                    permissions=discord.Permissions.none(),
                    reason="Role required by the verification gate.",
                )
            except discord.HTTPException as e:
                log.warning(f"Failed to create role {spec.name!r} in guild {guild.id}: {e.status} {e.text}")
                return RoleOutcome.PLATFORM_ERROR

            log.info(f"Created role {spec.name!r} ({role.id}) in guild {guild.id}.")
            self._role_ids[(guild.id, spec.name)] = role.id
            return role

    async def assign_role(self, guild: discord.Guild, member: discord.Member, role: discord.Role) -> RoleOutcome:
        """
        Give `role` to `member`.

        The role's position is checked first: if it is not strictly below the bot's highest role,
        the result is `HIERARCHY_TOO_LOW` whatever the bot's permissions are. Both privilege
        failures notify the guild owner.
        """
        try:
            self._require_hierarchy(guild, role)
            self._require_capability(guild)
        except HierarchyViolationError as e:
            log.info(f"Not assigning {role.name!r} to {member} ({member.id}) in guild {guild.id}: {e}")
            await self.notify_owner(guild, OWNER_HIERARCHY_TOO_LOW.format(role=role.name, guild=guild.name))
            return RoleOutcome.HIERARCHY_TOO_LOW
        except CapabilityMissingError as e:
            log.info(f"Not assigning {role.name!r} to {member} ({member.id}): {e}")
            await self.notify_missing_capability(guild, f"assign the **{role.name}** role")
            return RoleOutcome.INSUFFICIENT_PRIVILEGE

        if role in member.roles:
            log.trace(f"{member} ({member.id}) already has {role.name!r}.")
            return RoleOutcome.ALREADY_ASSIGNED

        try:
            await member.add_roles(role, reason="Granted by the verification gate.")
        except discord.HTTPException as e:
            log.warning(
                f"Failed to assign {role.name!r} to {member} ({member.id}) in guild {guild.id}: {e.status} {e.text}"
            )
            return RoleOutcome.PLATFORM_ERROR

        log.info(f"Assigned {role.name!r} to {member} ({member.id}) in guild {guild.id}.")
        return RoleOutcome.ASSIGNED

    async def grant(self, guild: discord.Guild, member: discord.Member, spec: RoleSpec) -> RoleOutcome:
        """Ensure the role described by `spec` exists in `guild`, then assign it to `member`."""
        role = await self.ensure_role(guild, spec)
        if isinstance(role, RoleOutcome):
            return role
        return await self.assign_role(guild, member, role)
