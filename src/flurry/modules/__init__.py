from .autocompleteable import (
    AutocompleteArguments,
    AutocompleteHandler,
    AutocompleteOption,
    Autocompleteable,
)
from .base import Command, Module, Runnable
from .context_menu import MessageCommand, UserCommand
from .slash import SlashCommand, SlashCommandGroup, SlashSubcommand, parse_options

__all__ = [
    "AutocompleteArguments",
    "AutocompleteHandler",
    "AutocompleteOption",
    "Autocompleteable",
    "Command",
    "MessageCommand",
    "Module",
    "Runnable",
    "SlashCommand",
    "SlashCommandGroup",
    "SlashSubcommand",
    "UserCommand",
    "parse_options",
]
