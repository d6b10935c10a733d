"""Engine-facing view of inbound interactions.

The dispatch engine only relies on the :class:`Interaction` protocol below.
:class:`PycordInteraction` adapts pycord's ``discord.Interaction``; tests use
small fakes implementing the same surface.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Literal, Protocol

import discord

type InteractionKind = Literal["command", "autocomplete"]
type ChoiceValue = str | int | float


class CommandType(IntEnum):
    CHAT_INPUT = 1
    USER = 2
    MESSAGE = 3


class OptionType(IntEnum):
    SUB_COMMAND = 1
    SUB_COMMAND_GROUP = 2
    STRING = 3
    INTEGER = 4
    BOOLEAN = 5
    USER = 6
    CHANNEL = 7
    ROLE = 8
    MENTIONABLE = 9
    NUMBER = 10
    ATTACHMENT = 11


AUTOCOMPLETEABLE_TYPES: frozenset[OptionType] = frozenset(
    {OptionType.STRING, OptionType.INTEGER, OptionType.NUMBER}
)


@dataclass(frozen=True, slots=True)
class Choice:
    name: str
    value: ChoiceValue

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True, slots=True)
class FocusedOption:
    name: str
    value: ChoiceValue
    type: OptionType


@dataclass(frozen=True, slots=True)
class CommandOptions:
    subcommand_group: str | None = None
    subcommand: str | None = None
    values: Mapping[str, Any] = field(default_factory=dict)
    focused: FocusedOption | None = None

    @classmethod
    def from_payload(
        cls, options: Sequence[Mapping[str, Any]] | None
    ) -> CommandOptions:
        """Walk the nested option payload of an interaction.

        Discord nests value options under at most one subcommand group and one
        subcommand, each of which is the single element of its parent's list.
        """
        group: str | None = None
        subcommand: str | None = None
        current = list(options or ())

        if current and current[0].get("type") == OptionType.SUB_COMMAND_GROUP:
            group = current[0]["name"]
            current = list(current[0].get("options") or ())
        if current and current[0].get("type") == OptionType.SUB_COMMAND:
            subcommand = current[0]["name"]
            current = list(current[0].get("options") or ())

        values: dict[str, Any] = {}
        focused: FocusedOption | None = None
        for option in current:
            name = option["name"]
            value = option.get("value")
            values[name] = value
            if option.get("focused"):
                focused = FocusedOption(
                    name=name, value=value, type=OptionType(option["type"])
                )

        return cls(
            subcommand_group=group,
            subcommand=subcommand,
            values=values,
            focused=focused,
        )

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)


class Interaction(Protocol):
    kind: InteractionKind
    command_name: str
    command_type: CommandType
    options: CommandOptions
    guild_id: int | None
    user_id: int | None
    permissions: int | None

    @property
    def deferred(self) -> bool: ...

    @property
    def responded(self) -> bool: ...

    @property
    def target_user(self) -> Any: ...

    @property
    def target_member(self) -> Any: ...

    @property
    def target_message(self) -> Any: ...

    async def defer(self, *, ephemeral: bool = False) -> None: ...

    async def reply(self, content: str, *, ephemeral: bool = False) -> None: ...

    async def edit_reply(self, content: str) -> None: ...

    async def follow_up(self, content: str, *, ephemeral: bool = False) -> None: ...

    async def respond(self, choices: Sequence[Choice]) -> None: ...


class PycordInteraction:
    """Adapter from ``discord.Interaction`` to :class:`Interaction`.

    Context-menu targets are built from the resolved payloads Discord sends,
    keyed by ``target_id``, into ``discord.User``, ``discord.Member`` and
    ``discord.Message`` objects. A member needs a cached guild and is ``None``
    without one.

    pycord only records *that* an interaction was answered, so deferral is
    tracked here: an interaction counts as deferred once it was answered by
    anything but :meth:`reply` or :meth:`respond`. Answering through
    ``raw.response.send_message`` directly therefore looks like a deferral.
    """

    def __init__(self, interaction: discord.Interaction) -> None:
        self.raw = interaction
        data: dict[str, Any] = dict(interaction.data or {})
        self._data = data
        if interaction.type == discord.InteractionType.auto_complete:
            self.kind: InteractionKind = "autocomplete"
        else:
            self.kind = "command"
        self.command_name: str = data.get("name", "")
        self.command_type = CommandType(data.get("type", CommandType.CHAT_INPUT))
        self.options = CommandOptions.from_payload(data.get("options"))
        self.guild_id: int | None = interaction.guild_id
        user = interaction.user
        self.user_id: int | None = user.id if user is not None else None
        permissions = getattr(interaction, "permissions", None)
        self.permissions: int | None = (
            permissions.value if permissions is not None else None
        )
        self._replied = False

    def __repr__(self) -> str:
        return (
            f"PycordInteraction(kind={self.kind!r}, "
            f"command_name={self.command_name!r}, guild_id={self.guild_id!r})"
        )

    @property
    def responded(self) -> bool:
        return self.raw.response.is_done()

    @property
    def deferred(self) -> bool:
        return self.responded and not self._replied

    def _resolved(self, kind: str) -> dict[str, Any] | None:
        target_id = self._data.get("target_id")
        if target_id is None:
            return None
        resolved = self._data.get("resolved") or {}
        return (resolved.get(kind) or {}).get(str(target_id))

    @property
    def target_user(self) -> discord.User | None:
        data = self._resolved("users")
        if data is None:
            return None
        return discord.User(state=self.raw._state, data=data)

    @property
    def target_member(self) -> discord.Member | None:
        data = self._resolved("members")
        user = self._resolved("users")
        guild = self.raw.guild
        if data is None or user is None or guild is None:
            return None
        return discord.Member(
            data={**data, "user": user}, guild=guild, state=self.raw._state
        )

    @property
    def target_message(self) -> discord.Message | None:
        data = self._resolved("messages")
        if data is None:
            return None
        return discord.Message(
            state=self.raw._state, channel=self.raw.channel, data=data
        )

    async def defer(self, *, ephemeral: bool = False) -> None:
        await self.raw.response.defer(ephemeral=ephemeral)

    async def reply(self, content: str, *, ephemeral: bool = False) -> None:
        await self.raw.response.send_message(content, ephemeral=ephemeral)
        self._replied = True

    async def edit_reply(self, content: str) -> None:
        await self.raw.edit_original_response(content=content)

    async def follow_up(self, content: str, *, ephemeral: bool = False) -> None:
        await self.raw.followup.send(content, ephemeral=ephemeral)

    async def respond(self, choices: Sequence[Choice]) -> None:
        await self.raw.response.send_autocomplete_result(
            choices=[
                discord.OptionChoice(name=choice.name, value=choice.value)
                for choice in choices
            ]
        )
        self._replied = True
