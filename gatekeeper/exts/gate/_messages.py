"""User-facing text for every outcome of the gate. Tests match against these strings."""

from gatekeeper.constants import Emojis
from gatekeeper.exts.gate._roles import RoleOutcome

# Posted in a guild channel when an unverified user sends a message.
PROMPT = "{mention}, you need to verify your account before chatting here. Click the button below to get started."

# Edits of the deferred response to the verify button.
START_SUCCESS = (
    f"{Emojis.check_mark} I've sent you a direct message with your verification question. "
    "Reply to it within {minutes} minutes."
)
START_ALREADY_VERIFIED = f"{Emojis.check_mark} You're already verified."
START_ALREADY_PENDING = (
    f"{Emojis.stopwatch} You already have a verification question waiting. Check your direct messages from me."
)
START_DM_FAILED = (
    f"{Emojis.cross_mark} I couldn't send you a direct message. "
    "Allow direct messages from server members, then click the button again."
)
START_OUTSIDE_GUILD = f"{Emojis.cross_mark} Verification can only be started from inside a server."

# Direct message carrying the question.
CHALLENGE = (
    "Hi! To verify your account in **{guild}**, reply to this message with the answer to this question:\n\n"
    "**{question}**\n\n"
    "You have {minutes} minutes."
)

# Replies to answers sent by direct message.
ANSWER_INCORRECT = f"{Emojis.cross_mark} That's not the right answer. Please try again."
ANSWER_EXPIRED = (
    f"{Emojis.stopwatch} Your verification question has expired. "
    "Click the verify button in the server to start again."
)
VERIFIED = {
    RoleOutcome.ASSIGNED: f"{Emojis.check_mark} You're verified! You've been given the **{{role}}** role.",
    RoleOutcome.ALREADY_ASSIGNED: f"{Emojis.check_mark} You're verified! You already have the **{{role}}** role.",
    RoleOutcome.INSUFFICIENT_PRIVILEGE: (
        f"{Emojis.check_mark} You're verified, but I'm missing the Manage Roles permission so I couldn't "
        "give you the **{role}** role. The server owner has been notified."
    ),
    RoleOutcome.HIERARCHY_TOO_LOW: (
        f"{Emojis.check_mark} You're verified, but the **{{role}}** role is positioned above my highest role "
        "so I couldn't give it to you. The server owner has been notified."
    ),
    RoleOutcome.PLATFORM_ERROR: (
        f"{Emojis.check_mark} You're verified, but something went wrong while giving you the **{{role}}** role. "
        "Please ask a moderator for help."
    ),
}

# Replies in the guild channel when a user trips the rate watch.
RATE_LIMITED = {
    RoleOutcome.ASSIGNED: (
        f"{Emojis.warning} {{mention}}, you're sending messages too quickly. "
        "You've been given the **{role}** role."
    ),
    RoleOutcome.ALREADY_ASSIGNED: (
        f"{Emojis.warning} {{mention}}, you're still sending messages too quickly "
        "and already have the **{role}** role."
    ),
    RoleOutcome.INSUFFICIENT_PRIVILEGE: (
        f"{Emojis.warning} {{mention}}, you're sending messages too quickly. I couldn't apply the **{{role}}** role "
        "because I'm missing the Manage Roles permission. The server owner has been notified."
    ),
    RoleOutcome.HIERARCHY_TOO_LOW: (
        f"{Emojis.warning} {{mention}}, you're sending messages too quickly. I couldn't apply the **{{role}}** role "
        "because it is positioned above my highest role. The server owner has been notified."
    ),
    RoleOutcome.PLATFORM_ERROR: (
        f"{Emojis.warning} {{mention}}, you're sending messages too quickly. "
        "Something went wrong while applying the **{role}** role."
    ),
}

# Replies to the manual `verify` command.
MANUAL_ALREADY_VERIFIED = f"{Emojis.cross_mark} {{member}} is already verified."
MANUAL_VERIFIED = {
    RoleOutcome.ASSIGNED: f"{Emojis.check_mark} {{member}} is now verified and has the **{{role}}** role.",
    RoleOutcome.ALREADY_ASSIGNED: (
        f"{Emojis.check_mark} {{member}} is now verified and already had the **{{role}}** role."
    ),
    RoleOutcome.INSUFFICIENT_PRIVILEGE: (
        f"{Emojis.check_mark} {{member}} is now verified, but I'm missing the Manage Roles permission "
        "to give them the **{role}** role."
    ),
    RoleOutcome.HIERARCHY_TOO_LOW: (
        f"{Emojis.check_mark} {{member}} is now verified, but the **{{role}}** role is positioned above my "
        "highest role."
    ),
    RoleOutcome.PLATFORM_ERROR: (
        f"{Emojis.check_mark} {{member}} is now verified, but something went wrong while giving them the "
        "**{role}** role."
    ),
}

# Direct messages to guild owners that aren't about roles.
OWNER_PROMPT_FAILED = (
    "Hi! I couldn't post a verification prompt in {channel} in **{guild}**.\n"
    "Please make sure I have the **Send Messages** and **View Channel** permissions there."
)
