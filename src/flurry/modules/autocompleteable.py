from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..context import module_scope
from ..errors import AutocompleteResponseError, AutocompleteTypeError
from ..interactions import AUTOCOMPLETEABLE_TYPES, Choice, ChoiceValue, OptionType
from .base import maybe_await

if TYPE_CHECKING:
    from ..context import FlurryContext
    from ..interactions import Interaction
    from .slash import SlashCommandGroup, SlashSubcommand


@dataclass(frozen=True, slots=True)
class AutocompleteArguments:
    context: FlurryContext
    interaction: Interaction
    name: str
    value: ChoiceValue


type ChoiceLike = Choice | Mapping[str, Any]
type AutocompleteHandler = Callable[
    [AutocompleteArguments], Iterable[ChoiceLike] | Awaitable[Iterable[ChoiceLike]]
]


@dataclass(frozen=True, slots=True)
class AutocompleteOption:
    name: str
    type: OptionType
    handler: AutocompleteHandler

    def accepts(self, value: object) -> bool:
        if self.type == OptionType.STRING:
            return isinstance(value, str)
        if isinstance(value, bool):
            return False
        if self.type == OptionType.INTEGER:
            return isinstance(value, int)
        return isinstance(value, (int, float))


def is_autocompleteable_option(option: Mapping[str, Any]) -> bool:
    try:
        option_type = OptionType(option.get("type"))
    except ValueError:
        return False
    return option_type in AUTOCOMPLETEABLE_TYPES and callable(
        option.get("autocomplete")
    )


def to_choices(response: Iterable[ChoiceLike]) -> list[Choice]:
    choices: list[Choice] = []
    for item in response:
        if isinstance(item, Choice):
            choices.append(item)
        else:
            choices.append(Choice(name=str(item["name"]), value=item["value"]))
    return choices


class Autocompleteable:
    """Resolves autocomplete requests against per-option handlers.

    A dedicated handler indexed under the focused option's name wins; otherwise
    the module's own ``autocomplete`` handler (if any) is called with
    ``(context, interaction, name, value)``.
    """

    name: str
    handlers: dict[str, Callable[..., Any]]
    autocomplete_handlers: dict[str, AutocompleteOption]

    async def autocomplete(
        self, context: FlurryContext, interaction: Interaction
    ) -> list[Choice] | None:
        focused = interaction.options.focused
        if focused is None:
            return None
        name, value = focused.name, focused.value

        option = self.autocomplete_handlers.get(name)
        if option is not None:
            if not option.accepts(value):
                expected = "string" if option.type == OptionType.STRING else "number"
                raise AutocompleteTypeError(
                    self.name, name=name, value=value, expected=expected
                )
            response = await maybe_await(
                option.handler(
                    AutocompleteArguments(
                        context=context,
                        interaction=interaction,
                        name=name,
                        value=value,
                    )
                )
            )
            if response is None:
                raise AutocompleteResponseError(self.name, name=name)
            choices = to_choices(response)
            await interaction.respond(choices)
            return choices

        fallback = self.handlers.get("autocomplete")
        if fallback is None:
            return None
        response = await maybe_await(fallback(context, interaction, name, value))
        if response is None:
            return None
        choices = to_choices(response)
        await interaction.respond(choices)
        return choices


class RoutedAutocompleteable(Autocompleteable):
    """Autocomplete for nodes that own subcommands (and, for commands, groups)."""

    subcommands: dict[str, SlashSubcommand]
    groups: dict[str, SlashCommandGroup]

    async def autocomplete(
        self, context: FlurryContext, interaction: Interaction
    ) -> list[Choice] | None:
        options = interaction.options

        if options.subcommand_group:
            group = self.groups.get(options.subcommand_group)
            if group is not None:
                with module_scope(group):
                    return await group.autocomplete(context, interaction)

        if options.subcommand:
            subcommand = self.subcommands.get(options.subcommand)
            if subcommand is not None:
                with module_scope(subcommand):
                    return await subcommand.autocomplete(context, interaction)

        return await super().autocomplete(context, interaction)
