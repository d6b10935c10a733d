from __future__ import annotations


class FlurryError(RuntimeError):
    pass


class ConfigError(FlurryError):
    pass


class RegistrationError(FlurryError):
    """A module definition cannot be registered as written."""


class RoutingError(FlurryError):
    """An inbound interaction references a part of the command tree we don't know.

    Raised for unknown groups/subcommands, which means the definition stored on
    the platform drifted from the modules loaded in this process.
    """


class AutocompleteTypeError(RoutingError):
    def __init__(
        self, command: str, *, name: str, value: object, expected: str
    ) -> None:
        super().__init__(
            f"Interaction {command} received {{ name: {name}, value: "
            f"<{type(value).__name__}> {value} }} as an autocomplete request "
            f"but expected a {expected}"
        )
        self.command = command
        self.name = name
        self.value = value
        self.expected = expected


class AutocompleteResponseError(RoutingError):
    """A dedicated autocomplete handler returned no choice list at all."""

    def __init__(self, command: str, *, name: str) -> None:
        super().__init__(
            f"Autocomplete handler for '{name}' on {command} returned no choices"
        )
        self.command = command
        self.name = name


class PreRunError(FlurryError):
    """A pre-run check failed; the message is shown to the user as-is.

    Typical uses are permission, in-guild and owner checks::

        if interaction.guild_id is None:
            raise PreRunError("This command only works in a server!")
    """


class CommandSyncError(FlurryError):
    def __init__(self, scope: str, issue: str) -> None:
        super().__init__(f"failed to put commands for {scope}: {issue}")
        self.scope = scope
        self.issue = issue
