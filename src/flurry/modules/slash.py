"""Slash commands, subcommand groups and subcommands.

Each node parses its declarative ``options`` list once, at construction, into
the wire-format option list plus indexes of child subcommands, child groups
and per-option autocomplete handlers.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..context import module_scope
from ..errors import RegistrationError, RoutingError
from ..interactions import CommandType, OptionType
from .autocompleteable import (
    AutocompleteOption,
    Autocompleteable,
    RoutedAutocompleteable,
    is_autocompleteable_option,
)
from .base import Command, Handlers, Module, Runnable, noop

if TYPE_CHECKING:
    from ..context import FlurryContext
    from ..interactions import Interaction


@dataclass(frozen=True, slots=True)
class ValueOption:
    payload: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class SubcommandOption:
    subcommand: SlashSubcommand


@dataclass(frozen=True, slots=True)
class GroupOption:
    group: SlashCommandGroup


type ParsedOption = ValueOption | SubcommandOption | GroupOption


@dataclass(slots=True)
class ParsedOptions:
    json: list[dict[str, Any]] = field(default_factory=list)
    subcommands: dict[str, SlashSubcommand] = field(default_factory=dict)
    groups: dict[str, SlashCommandGroup] = field(default_factory=dict)
    autocomplete: dict[str, AutocompleteOption] = field(default_factory=dict)


def _classify(option: object, *, owner: str) -> ParsedOption:
    match option:
        case SlashSubcommand():
            return SubcommandOption(option)
        case SlashCommandGroup():
            return GroupOption(option)
        case Mapping():
            return ValueOption(option)
        case _:
            raise RegistrationError(f"Invalid option {option!r} for '{owner}'")


def _value_option_json(
    payload: Mapping[str, Any], parsed: ParsedOptions, *, owner: str
) -> dict[str, Any]:
    name = payload.get("name")
    if not isinstance(name, str) or not name:
        raise RegistrationError(f"Option without a name in '{owner}'")
    if not callable(payload.get("autocomplete")):
        return dict(payload)
    if not is_autocompleteable_option(payload):
        raise RegistrationError(
            f"Option '{name}' in '{owner}' has an autocomplete handler but is not "
            "a string, integer or number option"
        )
    if payload.get("choices"):
        raise RegistrationError(
            f"Option '{name}' in '{owner}' cannot have both choices and autocomplete"
        )
    parsed.autocomplete[name] = AutocompleteOption(
        name=name,
        type=OptionType(payload["type"]),
        handler=payload["autocomplete"],
    )
    json = {key: value for key, value in payload.items() if key != "choices"}
    json["autocomplete"] = True
    return json


def parse_options(
    options: Iterable[object] | None,
    *,
    owner: str,
    allow_subcommands: bool = True,
    allow_groups: bool = True,
    allow_values: bool = True,
) -> ParsedOptions:
    parsed = ParsedOptions()
    has_values = False
    has_children = False

    for option in options or ():
        match _classify(option, owner=owner):
            case ValueOption(payload):
                if not allow_values:
                    raise RegistrationError(
                        f"Invalid option '{payload.get('name')}' for '{owner}'; "
                        "expected a subcommand"
                    )
                has_values = True
                parsed.json.append(_value_option_json(payload, parsed, owner=owner))
            case SubcommandOption(subcommand):
                if not allow_subcommands:
                    raise RegistrationError(
                        f"Subcommand '{subcommand.name}' is not allowed in '{owner}'"
                    )
                has_children = True
                parsed.subcommands[subcommand.name] = subcommand
                parsed.json.append(subcommand.body)
            case GroupOption(group):
                if not allow_groups:
                    raise RegistrationError(
                        f"Subcommand group '{group.name}' is not allowed in '{owner}'"
                    )
                has_children = True
                parsed.groups[group.name] = group
                parsed.json.append(group.body)

    if has_values and has_children:
        raise RegistrationError(
            f"Options for '{owner}' mix value options with subcommands or groups"
        )
    return parsed


async def _delegate_run(
    child: Runnable, context: FlurryContext, interaction: Interaction
) -> Any:
    with module_scope(child):
        return await child.run(context, interaction)


class SlashSubcommand(Autocompleteable, Runnable):
    def __init__(
        self,
        body: Mapping[str, Any],
        handlers: Handlers,
        modules: Sequence[Module] = (),
    ) -> None:
        body = dict(body)
        owner = str(body.get("name"))
        parsed = parse_options(
            body.get("options"),
            owner=owner,
            allow_subcommands=False,
            allow_groups=False,
        )
        body["type"] = int(OptionType.SUB_COMMAND)
        body["options"] = parsed.json
        super().__init__(body, handlers, modules)
        self.autocomplete_handlers = parsed.autocomplete


class SlashCommandGroup(RoutedAutocompleteable, Runnable):
    def __init__(
        self,
        body: Mapping[str, Any],
        handlers: Handlers | None = None,
        modules: Sequence[Module] = (),
    ) -> None:
        body = dict(body)
        owner = str(body.get("name"))
        parsed = parse_options(
            body.get("options"),
            owner=owner,
            allow_groups=False,
            allow_values=False,
        )
        body["type"] = int(OptionType.SUB_COMMAND_GROUP)
        body["options"] = parsed.json
        handlers = dict(handlers or {})
        handlers.setdefault("run", noop)
        super().__init__(body, handlers, [*parsed.subcommands.values(), *modules])
        self.subcommands = parsed.subcommands
        self.groups = {}
        self.autocomplete_handlers = {}

    async def run(self, context: FlurryContext, interaction: Interaction) -> Any:
        # A group's own handler may raise to veto every subcommand below it.
        await super().run(context, interaction)

        subcommand = interaction.options.subcommand
        if not subcommand:
            return None
        handler = self.subcommands.get(subcommand)
        if handler is None:
            raise RoutingError(
                f"Unknown subcommand '{subcommand}' for subcommand group '{self.name}'"
            )
        return await _delegate_run(handler, context, interaction)


class SlashCommand(RoutedAutocompleteable, Command):
    """A chat-input command.

    ``options`` is either a list of value options (dicts in Discord's wire
    format, where string/integer/number options may carry an ``autocomplete``
    callable), or a list of :class:`SlashSubcommand` /
    :class:`SlashCommandGroup` objects. A command without subcommands or
    groups must provide ``run``.
    """

    command_type = CommandType.CHAT_INPUT

    def __init__(
        self,
        body: Mapping[str, Any],
        handlers: Handlers | None = None,
        modules: Sequence[Module] = (),
    ) -> None:
        body = dict(body)
        owner = str(body.get("name"))
        parsed = parse_options(body.get("options"), owner=owner)
        handlers = dict(handlers or {})
        if not parsed.subcommands and not parsed.groups and handlers.get("run") is None:
            raise RegistrationError(
                f"No run handler provided for command '{owner}', either provide a "
                "run handler or use subcommands/subcommand groups."
            )
        handlers.setdefault("run", noop)
        body["type"] = int(CommandType.CHAT_INPUT)
        body["options"] = parsed.json
        super().__init__(
            body,
            handlers,
            [*parsed.subcommands.values(), *parsed.groups.values(), *modules],
        )
        self.subcommands = parsed.subcommands
        self.groups = parsed.groups
        self.autocomplete_handlers = parsed.autocomplete

    async def run(self, context: FlurryContext, interaction: Interaction) -> Any:
        # The command's own handler runs first so it can guard everything below.
        await super().run(context, interaction)

        options = interaction.options
        if options.subcommand_group:
            group = self.groups.get(options.subcommand_group)
            if group is None:
                raise RoutingError(
                    f"Unknown group '{options.subcommand_group}' "
                    f"for command '{self.name}'"
                )
            return await _delegate_run(group, context, interaction)

        if options.subcommand:
            subcommand = self.subcommands.get(options.subcommand)
            if subcommand is None:
                raise RoutingError(
                    f"Unknown subcommand '{options.subcommand}' "
                    f"for command '{self.name}'"
                )
            return await _delegate_run(subcommand, context, interaction)

        return None
