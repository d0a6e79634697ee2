"""Built-in validation checks: developer restriction and permissions.

Both checks reply to the interaction with an ephemeral message when they
veto, and neither runs for autocomplete interactions.
"""

import re
from typing import Iterable, List, Optional

from ..commands.base import ValidationContext
from ..logging_config import get_logger
from ..outcome import Outcome

logger = get_logger("validations")

NOT_DEV_GUILD_MESSAGE = "❌ This command can only be used inside development servers."
NOT_DEVELOPER_MESSAGE = "❌ This command can only be used by developers."

# Discord "Red"
MISSING_PERMISSIONS_COLOR = 0xED4245

_CAMEL_BOUNDARY = re.compile(r"([a-z])([A-Z])|([A-Z]+)([A-Z][a-z])")


def autocomplete_aware(check):
    """Mark a validation check to also run for autocomplete interactions."""
    check.autocomplete_aware = True
    return check


def humanize_permission(name: str) -> str:
    """``ManageMessages`` -> ``Manage Messages``; ``manage_messages`` likewise."""
    if "_" in name:
        return " ".join(part.capitalize() for part in name.split("_") if part)
    return _CAMEL_BOUNDARY.sub(
        lambda m: f"{m.group(1) or m.group(3)} {m.group(2) or m.group(4)}", name
    )


def format_list(items: List[str]) -> str:
    """English conjunction list: ``a``, ``a and b``, ``a, b, and c``."""
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return f"{items[0]} and {items[1]}"
    return f"{', '.join(items[:-1])}, and {items[-1]}"


def _permission_key(name: str) -> str:
    return name.replace("_", "").replace(" ", "").lower()


def missing_permissions(required: Iterable[str], held: Optional[Iterable[str]]) -> List[str]:
    """Required permissions not in ``held``. Unknown ``held`` means none missing."""
    if held is None:
        return []
    held_keys = {_permission_key(permission) for permission in held}
    return [permission for permission in required if _permission_key(permission) not in held_keys]


def _permission_line(subject: str, verb: str, permissions: List[str]) -> str:
    formatted = format_list([f"`{humanize_permission(p)}`" for p in permissions])
    word = "permission" if len(permissions) == 1 else "permissions"
    return f"- {subject} must have the {formatted} {word} to be able to {verb} this command.\n"


async def dev_only_check(context: ValidationContext) -> Outcome:
    """Reject dev-only commands outside dev guilds or from non-developers."""
    if not context.command.dev_only:
        return Outcome.CONTINUE
    interaction = context.interaction
    audience = context.audience

    if interaction.in_guild and interaction.guild_id not in audience.guild_ids:
        await interaction.reply(NOT_DEV_GUILD_MESSAGE, ephemeral=True)
        logger.info(
            "validation_dev_guild_rejected",
            command=context.command.name,
            guild_id=interaction.guild_id,
        )
        return Outcome.STOP

    if not audience.is_developer(interaction.user_id, interaction.member_role_ids):
        await interaction.reply(NOT_DEVELOPER_MESSAGE, ephemeral=True)
        logger.info(
            "validation_developer_rejected",
            command=context.command.name,
            user_id=interaction.user_id,
        )
        return Outcome.STOP

    return Outcome.CONTINUE


async def permissions_check(context: ValidationContext) -> Outcome:
    """Reject when the member or the bot lacks a required permission."""
    options = context.command.options
    if not options.user_permissions and not options.bot_permissions:
        return Outcome.CONTINUE
    interaction = context.interaction

    missing_user = missing_permissions(options.user_permissions, interaction.member_permissions)
    missing_bot = missing_permissions(options.bot_permissions, interaction.bot_permissions)
    if not missing_user and not missing_bot:
        return Outcome.CONTINUE

    description = ""
    if missing_user:
        description += _permission_line("You", "run", missing_user)
    if missing_bot:
        description += _permission_line("I", "execute", missing_bot)

    embed = {
        "title": ":x: Missing permissions!",
        "description": description,
        "color": MISSING_PERMISSIONS_COLOR,
    }
    await interaction.reply(embeds=[embed], ephemeral=True)
    logger.info(
        "validation_permissions_rejected",
        command=context.command.name,
        missing_user=missing_user,
        missing_bot=missing_bot,
    )
    return Outcome.STOP


BUILTIN_VALIDATIONS = (dev_only_check, permissions_check)
