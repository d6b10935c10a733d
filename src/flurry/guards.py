"""Pre-run checks for ``run`` handlers.

Each guard raises :class:`~flurry.errors.PreRunError`, which the engine shows
to the user as a warning instead of reporting it as a failure::

    async def run(ctx, interaction):
        in_guild_guard(interaction)
        has_permissions_guard(interaction, ["ban_members"])
        ...
"""

from __future__ import annotations

from collections.abc import Collection, Iterable

import discord

from .errors import PreRunError
from .interactions import Interaction


def in_guild_guard(interaction: Interaction) -> None:
    if interaction.guild_id is None:
        raise PreRunError("This command can only be used in a server.")


def _pretty(flag: str) -> str:
    return flag.replace("_", " ").title()


def missing_permissions(
    interaction: Interaction, permissions: Iterable[str]
) -> list[str]:
    granted = discord.Permissions(interaction.permissions or 0)
    flags = list(permissions)
    for flag in flags:
        if flag not in discord.Permissions.VALID_FLAGS:
            raise ValueError(f"unknown permission flag: {flag!r}")
    if granted.administrator:
        return []
    missing = []
    for flag in flags:
        if not getattr(granted, flag):
            missing.append(flag)
    return missing


def has_permissions_guard(
    interaction: Interaction, permissions: Iterable[str]
) -> None:
    in_guild_guard(interaction)
    missing = missing_permissions(interaction, permissions)
    if missing:
        names = ", ".join(_pretty(flag) for flag in missing)
        raise PreRunError(f"You are missing the following permissions: {names}")


def is_owner_guard(
    interaction: Interaction, owner_ids: Collection[int | str]
) -> None:
    owners = {str(owner_id) for owner_id in owner_ids}
    if interaction.user_id is None or str(interaction.user_id) not in owners:
        raise PreRunError("Only the bot owner can use this command.")
