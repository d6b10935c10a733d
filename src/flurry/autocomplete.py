"""Ready-made autocomplete handlers."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from .interactions import Choice, ChoiceValue
from .modules.autocompleteable import AutocompleteArguments

MAX_CHOICES = 25

type Matcher = Callable[[str, str], bool]


def make_choices(values: Iterable[ChoiceValue]) -> list[Choice]:
    """One choice per value, shown as its own name."""
    return [Choice(name=str(value), value=value) for value in values]


def _starts_with(candidate: str, typed: str) -> bool:
    return candidate.startswith(typed)


def autocomplete_for_strings(
    values: Iterable[str],
    *,
    case_sensitive: bool = False,
    matcher: Matcher | None = None,
) -> Callable[[AutocompleteArguments], list[Choice]]:
    """Build a handler suggesting the ``values`` that match what was typed.

    ``matcher(candidate, typed)`` defaults to a prefix match. At most 25
    choices are returned, which is all Discord will accept.
    """
    options = list(values)
    match = matcher or _starts_with

    def handler(args: AutocompleteArguments) -> list[Choice]:
        typed = str(args.value)
        if not case_sensitive:
            typed = typed.casefold()
        matched = [
            value
            for value in options
            if match(value if case_sensitive else value.casefold(), typed)
        ]
        return make_choices(matched[:MAX_CHOICES])

    return handler
