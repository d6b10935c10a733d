"""Module registration and interaction dispatch for Discord bots."""

from __future__ import annotations

from .client import FlurryClient, ScopeResult
from .context import FlurryContext, current_module
from .errors import (
    AutocompleteResponseError,
    AutocompleteTypeError,
    CommandSyncError,
    ConfigError,
    FlurryError,
    PreRunError,
    RegistrationError,
    RoutingError,
)
from .events import EventDetails, SkipReason
from .interactions import Choice
from .modules import (
    AutocompleteArguments,
    Command,
    MessageCommand,
    Module,
    Runnable,
    SlashCommand,
    SlashCommandGroup,
    SlashSubcommand,
    UserCommand,
)

__version__ = "0.1.0"

__all__ = [
    "AutocompleteArguments",
    "AutocompleteResponseError",
    "AutocompleteTypeError",
    "Choice",
    "Command",
    "CommandSyncError",
    "ConfigError",
    "EventDetails",
    "FlurryClient",
    "FlurryContext",
    "FlurryError",
    "MessageCommand",
    "Module",
    "PreRunError",
    "RegistrationError",
    "RoutingError",
    "Runnable",
    "ScopeResult",
    "SkipReason",
    "SlashCommand",
    "SlashCommandGroup",
    "SlashSubcommand",
    "UserCommand",
    "__version__",
    "current_module",
]
