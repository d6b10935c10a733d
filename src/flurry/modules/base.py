from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, ClassVar

import discord

from ..errors import RegistrationError
from ..interactions import CommandType

if TYPE_CHECKING:
    from ..context import FlurryContext
    from ..interactions import Interaction

type Handler = Callable[..., Any]
type Handlers = Mapping[str, Handler]


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def noop(*_args: Any, **_kwargs: Any) -> None:
    return None


class Module:
    """A named set of event handlers, optionally with child modules.

    ``name`` should be unique among siblings: registering two top-level
    ``logging`` modules overwrites the first, but ``archive/logging`` and
    ``automod/logging`` live side by side because children are namespaced
    under their parent's qualified name.
    """

    def __init__(
        self,
        name: str,
        handlers: Handlers | None = None,
        modules: Sequence[Module] = (),
    ) -> None:
        if not isinstance(name, str) or not name.strip():
            raise RegistrationError("module name must be a non-empty string")
        self.name = name
        self.handlers: dict[str, Handler] = dict(handlers or {})
        self.modules: list[Module] = list(modules)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def handler(self, key: str) -> Handler | None:
        return self.handlers.get(key)

    def walk(self, prefix: str = "") -> Iterable[tuple[str, Module]]:
        qualified_name = f"{prefix}{self.name}"
        yield qualified_name, self
        for child in self.modules:
            yield from child.walk(f"{qualified_name}/")


class Runnable(Module):
    """A module that terminates in a ``run`` handler for an interaction."""

    def __init__(
        self,
        body: Mapping[str, Any],
        handlers: Handlers,
        modules: Sequence[Module] = (),
    ) -> None:
        body = dict(body)
        name = body.get("name")
        if not isinstance(name, str) or not name:
            raise RegistrationError("command body requires a non-empty `name`")
        if handlers.get("run") is None:
            raise RegistrationError(f"No run handler provided for '{name}'")
        super().__init__(name, handlers, modules)
        self.body: dict[str, Any] = body

    async def run(
        self, context: FlurryContext, interaction: Interaction, *args: Any
    ) -> Any:
        return await maybe_await(self.handlers["run"](context, interaction, *args))


def permissions_to_bitfield(value: str | Iterable[str] | None) -> str | None:
    """Normalise ``default_member_permissions`` to Discord's string bitfield."""
    if value is None or isinstance(value, str):
        return value
    names = list(value)
    try:
        permissions = discord.Permissions(**{name: True for name in names})
    except TypeError as exc:
        raise RegistrationError(f"invalid permission in {names!r}: {exc}") from exc
    return str(permissions.value)


class Command(Runnable):
    """A top-level runnable that the platform can invoke by name.

    ``register_only_in_guilds`` only affects :meth:`FlurryClient.put_commands`;
    it does nothing at runtime. ``None`` means "everywhere", an empty list means
    "nowhere unless forced".
    """

    command_type: ClassVar[CommandType] = CommandType.CHAT_INPUT

    def __init__(
        self,
        body: Mapping[str, Any],
        handlers: Handlers,
        modules: Sequence[Module] = (),
    ) -> None:
        body = dict(body)
        restricted = body.pop("register_only_in_guilds", None)
        body["default_member_permissions"] = permissions_to_bitfield(
            body.get("default_member_permissions")
        )
        super().__init__(body, handlers, modules)
        self.register_only_in_guilds: list[str] | None = None
        if restricted is not None:
            self.register_only_in_guilds = [str(guild_id) for guild_id in restricted]

    def accepts(self, interaction: Interaction) -> bool:
        return interaction.command_type == self.command_type
