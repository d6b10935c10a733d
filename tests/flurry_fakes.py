from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any
from unittest.mock import MagicMock

import discord

from flurry.errors import CommandSyncError
from flurry.interactions import (
    Choice,
    CommandOptions,
    CommandType,
    InteractionKind,
    OptionType,
)


class FakePlatform:
    """Stands in for ``discord.Client``: a listener table plus ``dispatch``."""

    def __init__(self) -> None:
        self.listeners: dict[str, list[Callable[..., Any]]] = {}
        self.started_with: str | None = None
        self.closed = False

    def add_listener(self, func: Callable[..., Any], name: str) -> None:
        self.listeners.setdefault(name, []).append(func)

    def remove_listener(self, func: Callable[..., Any], name: str) -> None:
        listeners = self.listeners.get(name, [])
        if func in listeners:
            listeners.remove(func)

    def count(self, name: str) -> int:
        return len(self.listeners.get(name, ()))

    async def dispatch(self, event: str, *args: Any) -> None:
        for listener in list(self.listeners.get(f"on_{event}", ())):
            await listener(*args)

    async def start(self, token: str) -> None:
        self.started_with = token

    async def close(self) -> None:
        self.closed = True


def http_error(message: str = "Interaction has already been acknowledged.") -> Exception:
    return discord.HTTPException(MagicMock(status=400, reason="Bad Request"), message)


class FakeInteraction:
    def __init__(
        self,
        command_name: str,
        *,
        kind: InteractionKind = "command",
        command_type: CommandType = CommandType.CHAT_INPUT,
        options: CommandOptions | None = None,
        guild_id: int | None = 1,
        user_id: int | None = 42,
        permissions: int | None = 0,
        deferred: bool = False,
        reply_errors: Iterable[Exception] = (),
        edit_errors: Iterable[Exception] = (),
        target_user: Any = None,
        target_member: Any = None,
        target_message: Any = None,
    ) -> None:
        self.kind = kind
        self.command_name = command_name
        self.command_type = command_type
        self.options = options or CommandOptions()
        self.guild_id = guild_id
        self.user_id = user_id
        self.permissions = permissions
        self._deferred = deferred
        self._responded = deferred
        self._reply_errors = list(reply_errors)
        self._edit_errors = list(edit_errors)
        self.target_user = target_user
        self.target_member = target_member
        self.target_message = target_message
        self.replies: list[dict[str, Any]] = []
        self.edits: list[str] = []
        self.followups: list[dict[str, Any]] = []
        self.choices: list[list[Choice]] = []

    @property
    def deferred(self) -> bool:
        return self._deferred

    @property
    def responded(self) -> bool:
        return self._responded

    async def defer(self, *, ephemeral: bool = False) -> None:
        self._deferred = True
        self._responded = True

    async def reply(self, content: str, *, ephemeral: bool = False) -> None:
        if self._reply_errors:
            raise self._reply_errors.pop(0)
        self.replies.append({"content": content, "ephemeral": ephemeral})
        self._responded = True

    async def edit_reply(self, content: str) -> None:
        if self._edit_errors:
            raise self._edit_errors.pop(0)
        self.edits.append(content)

    async def follow_up(self, content: str, *, ephemeral: bool = False) -> None:
        self.followups.append({"content": content, "ephemeral": ephemeral})

    async def respond(self, choices: Sequence[Choice]) -> None:
        self.choices.append(list(choices))
        self._responded = True


def _payload(
    *,
    group: str | None,
    subcommand: str | None,
    values: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    payload = values
    if subcommand is not None:
        payload = [
            {"name": subcommand, "type": int(OptionType.SUB_COMMAND), "options": payload}
        ]
    if group is not None:
        payload = [
            {
                "name": group,
                "type": int(OptionType.SUB_COMMAND_GROUP),
                "options": payload,
            }
        ]
    return payload


def command_interaction(
    name: str,
    *,
    group: str | None = None,
    subcommand: str | None = None,
    values: dict[str, Any] | None = None,
    **kwargs: Any,
) -> FakeInteraction:
    raw_values = [
        {"name": key, "type": int(OptionType.STRING), "value": value}
        for key, value in (values or {}).items()
    ]
    options = CommandOptions.from_payload(
        _payload(group=group, subcommand=subcommand, values=raw_values)
    )
    return FakeInteraction(name, options=options, **kwargs)


def autocomplete_interaction(
    name: str,
    *,
    focused: str,
    value: Any,
    option_type: OptionType = OptionType.STRING,
    group: str | None = None,
    subcommand: str | None = None,
    **kwargs: Any,
) -> FakeInteraction:
    raw_values = [
        {"name": focused, "type": int(option_type), "value": value, "focused": True}
    ]
    options = CommandOptions.from_payload(
        _payload(group=group, subcommand=subcommand, values=raw_values)
    )
    return FakeInteraction(name, kind="autocomplete", options=options, **kwargs)


@dataclass(frozen=True, slots=True)
class PutCall:
    scope: str | None
    names: list[str]


class FakeRegistrar:
    def __init__(self, *, fail_for: Iterable[str | None] = ()) -> None:
        self.calls: list[PutCall] = []
        self.fail_for = set(fail_for)
        self.closed = False

    def _record(self, scope: str | None, commands: Sequence[dict[str, Any]]) -> list:
        self.calls.append(PutCall(scope, [command["name"] for command in commands]))
        if scope in self.fail_for:
            label = "global" if scope is None else f"guild {scope}"
            raise CommandSyncError(label, "HTTP 500: boom")
        return [dict(command, id=str(index)) for index, command in enumerate(commands)]

    async def put_commands(self, commands: Sequence[dict[str, Any]]) -> list:
        return self._record(None, commands)

    async def put_guild_commands(
        self, commands: Sequence[dict[str, Any]], guild_id: str
    ) -> list:
        return self._record(guild_id, commands)

    async def close(self) -> None:
        self.closed = True

    def guild_calls(self) -> list[PutCall]:
        return [call for call in self.calls if call.scope is not None]

    def global_calls(self) -> list[PutCall]:
        return [call for call in self.calls if call.scope is None]


class Recorder:
    """Collects lifecycle emissions from a client: ``client.on(event, rec)``."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    async def __call__(self, *args: Any) -> None:
        self.calls.append(args)

    def __len__(self) -> int:
        return len(self.calls)


# entry points, as in the plugin fixtures of the CLI tests


@dataclass(frozen=True, slots=True)
class FakeDist:
    name: str


class FakeEntryPoint:
    def __init__(
        self,
        name: str,
        value: str,
        group: str,
        *,
        loader: Callable[[], Any] | None = None,
        dist_name: str | None = "flurry-extras",
    ) -> None:
        self.name = name
        self.value = value
        self.group = group
        self._loader = loader or (lambda: None)
        self.dist = FakeDist(dist_name) if dist_name else None

    def load(self) -> Any:
        return self._loader()


class FakeEntryPoints(list):
    def select(self, *, group: str) -> list[FakeEntryPoint]:
        return [ep for ep in self if ep.group == group]


def install_entrypoints(monkeypatch, entrypoints: Iterable[FakeEntryPoint]) -> None:
    from flurry import loader

    def _entry_points() -> FakeEntryPoints:
        return FakeEntryPoints(entrypoints)

    monkeypatch.setattr(loader, "entry_points", _entry_points)
