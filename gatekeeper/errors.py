from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import discord


class CapabilityMissingError(Exception):
    """
    Raised when the bot lacks a guild permission an action depends on.

    Attributes:
        `guild` -- the guild the permission is missing in
        `permission` -- the name of the missing permission, as shown in the Discord client
    """

    def __init__(self, guild: discord.Guild, permission: str):
        self.guild = guild
        self.permission = permission

        super().__init__(f"Missing the {permission} permission in guild {guild.id}.")


class HierarchyViolationError(Exception):
    """
    Raised when a role sits at or above the bot's highest role and therefore cannot be granted by it.

    Attributes:
        `role` -- the role that could not be granted
        `top_position` -- position of the bot's highest role at the time of the check
    """

    def __init__(self, role: discord.Role, top_position: int):
        self.role = role
        self.top_position = top_position

        super().__init__(
            f"Role {role.name!r} (position {role.position}) is not below the bot's highest role "
            f"(position {top_position})."
        )


class DeliveryFailureError(Exception):
    """
    Raised when a direct message could not be delivered to a user.

    Attributes:
        `recipient` -- the user or member the message was meant for
    """

    def __init__(self, recipient: discord.abc.User, reason: str):
        self.recipient = recipient
        self.reason = reason

        super().__init__(f"Could not deliver a direct message to {recipient} ({recipient.id}): {reason}")


class StoreIOError(OSError):
    """Raised when the allow-list file cannot be written."""
