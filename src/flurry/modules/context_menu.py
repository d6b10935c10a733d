from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from ..interactions import CommandType
from .base import Command, Handlers, Module

if TYPE_CHECKING:
    from ..context import FlurryContext
    from ..interactions import Interaction


class UserCommand(Command):
    """Context-menu command on a user; ``run(ctx, interaction, user, member)``.

    From pycord, ``user`` is a ``discord.User`` and ``member`` a
    ``discord.Member``, or ``None`` outside a cached guild.
    """

    command_type = CommandType.USER

    def __init__(
        self,
        body: Mapping[str, Any],
        handlers: Handlers,
        modules: Sequence[Module] = (),
    ) -> None:
        body = {**body, "type": int(CommandType.USER)}
        super().__init__(body, handlers, modules)

    async def run(
        self, context: FlurryContext, interaction: Interaction, *args: Any
    ) -> Any:
        return await super().run(
            context, interaction, interaction.target_user, interaction.target_member
        )


class MessageCommand(Command):
    """Context-menu command on a message; ``run(ctx, interaction, message)``.

    From pycord, ``message`` is a ``discord.Message``.
    """

    command_type = CommandType.MESSAGE

    def __init__(
        self,
        body: Mapping[str, Any],
        handlers: Handlers,
        modules: Sequence[Module] = (),
    ) -> None:
        body = {**body, "type": int(CommandType.MESSAGE)}
        super().__init__(body, handlers, modules)

    async def run(
        self, context: FlurryContext, interaction: Interaction, *args: Any
    ) -> Any:
        return await super().run(context, interaction, interaction.target_message)
