"""The dispatch engine.

:class:`FlurryClient` owns the module registry, the flat command registry, the
skip-handler chain and the table of listeners bound per module. It turns
native interactions into directed ``run``/``autocomplete`` calls and maps
handler errors to replies.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import anyio
import discord
from anyio.abc import TaskGroup

from .context import FlurryContext, module_scope
from .errors import (
    CommandSyncError,
    ConfigError,
    PreRunError,
    RegistrationError,
    RoutingError,
)
from .events import EventDetails, EventKind, SkipReason, classify_event
from .interactions import Choice, Interaction, PycordInteraction
from .logging import get_logger, log_context
from .modules.autocompleteable import Autocompleteable
from .modules.base import Command, Module, maybe_await
from .rest import CommandRegistrar

logger = get_logger(__name__)

DEFAULT_REPLY_RETRY_DELAY = 1.0

UNEXPECTED_ERROR_REPLY = (
    ":warning: An unexpected error occurred while running this command, "
    "please try again later."
)

type Listener = Callable[..., Awaitable[None]]
type ModuleRunner = Callable[
    [Module, Callable[..., Awaitable[Any]], EventDetails], Awaitable[Any]
]


async def default_module_runner(
    module: Module, callback: Callable[..., Awaitable[Any]], event: EventDetails
) -> Any:
    _ = module
    return await callback(*event.arguments)


class PlatformClient(Protocol):
    def add_listener(self, func: Listener, name: str) -> None: ...

    def remove_listener(self, func: Listener, name: str) -> None: ...


@dataclass(frozen=True, slots=True)
class EventRegistration:
    event: str
    kind: EventKind
    listener: Listener | None = None


@dataclass(frozen=True, slots=True)
class ScopeResult:
    scope: str | None
    commands: tuple[str, ...]
    ok: bool
    response: Any = None
    error: str | None = None

    @property
    def label(self) -> str:
        return "global" if self.scope is None else f"guild {self.scope}"


def _coerce_skip_reason(value: object) -> SkipReason:
    if isinstance(value, SkipReason):
        return value
    if isinstance(value, str):
        return SkipReason(message=value)
    if isinstance(value, dict):
        return SkipReason(
            message=str(value.get("message", "")),
            ephemeral=bool(value.get("ephemeral", False)),
        )
    return SkipReason(message=str(value))


class FlurryClient:
    def __init__(
        self,
        platform: PlatformClient,
        *,
        registrar: CommandRegistrar | None = None,
        module_runner: ModuleRunner | None = None,
        reply_retry_delay: float = DEFAULT_REPLY_RETRY_DELAY,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
        task_group: TaskGroup | None = None,
    ) -> None:
        self.platform = platform
        # when set, load handlers run here and add_modules does not wait on them
        self.task_group = task_group
        self.registrar = registrar
        self.module_runner: ModuleRunner = module_runner or default_module_runner
        self.reply_retry_delay = reply_retry_delay
        self._sleep = sleep
        # qualified name -> module
        self.modules: dict[str, Module] = {}
        # bare command name -> command
        self.commands: dict[str, Command] = {}
        self.registered_events: dict[Module, list[EventRegistration]] = {}
        # ordered set, in registration order
        self.skip_handlers: dict[Module, None] = {}
        self._listeners: dict[str, list[Listener]] = {}
        self.context = FlurryContext(client=self, platform=platform)
        platform.add_listener(self._on_interaction, "on_interaction")

    # lifecycle emitter

    def on(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    async def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, ())):
            try:
                await listener(*args)
            except Exception as exc:
                logger.exception(
                    "emit.listener_failed",
                    event_name=event,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
                if event != "framework_error":
                    await self.emit(
                        "framework_error", f"Listener for '{event}' failed", exc
                    )

    async def _error(
        self, log_event: str, message: str, error: BaseException, **fields: Any
    ) -> None:
        logger.error(
            log_event,
            message=message,
            error=str(error),
            error_type=error.__class__.__name__,
            **fields,
        )
        await self.emit("framework_error", message, error)

    async def _warn(
        self, log_event: str, message: str, data: Any = None, **fields: Any
    ) -> None:
        logger.warning(log_event, message=message, **fields)
        await self.emit("framework_warn", message, data)

    async def _debug(
        self, log_event: str, message: str, data: Any = None, **fields: Any
    ) -> None:
        logger.debug(log_event, message=message, **fields)
        await self.emit("framework_debug", message, data)

    # registration

    def _validate(self, modules: Iterable[object]) -> None:
        for module in modules:
            if not isinstance(module, Module):
                raise RegistrationError(
                    f"{module!r} is not a Module, but was being registered for events"
                )
            for key, handler in module.handlers.items():
                if handler is None:
                    continue
                if classify_event(key) is None:
                    raise RegistrationError(
                        f"Unknown event '{key}' while processing {module.name}"
                    )
                if not callable(handler):
                    raise RegistrationError(
                        f"Handler for '{key}' in {module.name} is not callable"
                    )
            self._validate(module.modules)

    def _make_listener(
        self, module: Module, event: str, handler: Callable[..., Any]
    ) -> Listener:
        async def callback(*args: Any) -> Any:
            with module_scope(module):
                return await maybe_await(handler(self.context, *args))

        async def listener(*args: Any) -> None:
            details = EventDetails(name=event, arguments=args)
            try:
                if await self._should_skip_event(details, module):
                    return
            except Exception as exc:
                if event == "framework_error":
                    logger.exception(
                        "skip_chain.error_handler_failed", module=module.name
                    )
                    return
                await self._error(
                    "skip_chain.failed",
                    f"Skip chain failed for '{event}' on {module.name}",
                    exc,
                    module=module.name,
                )
                return

            if event != "event_handled":
                await self.emit("event_handled", details, module)

            try:
                await maybe_await(self.module_runner(module, callback, details))
            except Exception as exc:
                if event == "framework_error":
                    logger.exception("module.error_handler_failed", module=module.name)
                    return
                await self._error(
                    "module.handler_failed",
                    f"Module {module.name} failed handling '{event}'",
                    exc,
                    module=module.name,
                    event_name=event,
                )

        listener.__name__ = f"on_{event}"
        return listener

    async def _register_events(self, module: Module) -> None:
        if module in self.registered_events:
            self._unregister_events(module)

        registrations: list[EventRegistration] = []
        for event, handler in module.handlers.items():
            if handler is None:
                continue
            kind = classify_event(event)
            if kind is None:
                raise RegistrationError(
                    f"Unknown event '{event}' while processing {module.name}"
                )
            await self._debug(
                "module.register_event",
                f"Registering event '{event}' for '{module.name}'",
                module=module.name,
                event_name=event,
            )
            if kind == "directed":
                if event == "should_skip_event":
                    self.skip_handlers[module] = None
                registrations.append(EventRegistration(event=event, kind=kind))
                continue
            if event in ("load", "unload"):
                # called directly by add_modules/remove_modules
                registrations.append(EventRegistration(event=event, kind=kind))
                continue

            listener = self._make_listener(module, event, handler)
            if kind == "native":
                self.platform.add_listener(listener, f"on_{event}")
            else:
                self.on(event, listener)
            registrations.append(
                EventRegistration(event=event, kind=kind, listener=listener)
            )

        self.registered_events[module] = registrations

    def _unregister_events(self, module: Module) -> None:
        registrations = self.registered_events.pop(module, None)
        if registrations is None:
            return
        for registration in registrations:
            if registration.kind == "native" and registration.listener is not None:
                self.platform.remove_listener(
                    registration.listener, f"on_{registration.event}"
                )
            elif registration.kind == "lifecycle" and registration.listener is not None:
                self.off(registration.event, registration.listener)
        self.skip_handlers.pop(module, None)

    async def _register_tree(
        self, module: Module, prefix: str, loaded: list[tuple[Module, str]]
    ) -> None:
        qualified_name = f"{prefix}{module.name}"

        previous = self.modules.get(qualified_name)
        if previous is not None and previous is not module:
            await self._warn(
                "module.overwritten",
                "Overwriting existing module",
                module,
                qualified_name=qualified_name,
            )
            self._unregister_events(previous)

        await self._register_events(module)
        self.modules[qualified_name] = module

        if isinstance(module, Command):
            existing = self.commands.get(module.name)
            replaced = existing is previous or existing is module
            if existing is not None and not replaced:
                await self._warn(
                    "command.overwritten",
                    "Overwriting existing command",
                    module,
                    command=module.name,
                )
            self.commands[module.name] = module

        for child in module.modules:
            await self._register_tree(child, f"{qualified_name}/", loaded)

        loaded.append((module, qualified_name))

    async def add_modules(
        self, modules: Sequence[Module], prefix: str = ""
    ) -> FlurryClient:
        """Register modules (and, recursively, their children).

        Children are namespaced as ``parent/child``. The whole batch is
        validated before anything is attached, so an unknown handler key
        leaves the registry untouched. ``load`` handlers then run
        concurrently; a failing one is reported and never affects siblings.

        Without a client ``task_group`` this waits for every ``load``, so a
        ``load`` must not wait on anything that only happens after
        :meth:`start` (such as the ``ready`` event). With one, the loads are
        started there and this returns right after registration.
        """
        self._validate(modules)
        loaded: list[tuple[Module, str]] = []
        for module in modules:
            await self._register_tree(module, prefix, loaded)

        if self.task_group is not None:
            for module, qualified_name in loaded:
                self.task_group.start_soon(
                    self._run_lifecycle, "load", module, qualified_name
                )
            return self

        async with anyio.create_task_group() as tg:
            for module, qualified_name in loaded:
                tg.start_soon(self._run_lifecycle, "load", module, qualified_name)
        return self

    async def remove_modules(
        self, modules: Sequence[Module], prefix: str = ""
    ) -> FlurryClient:
        """Structural inverse of :meth:`add_modules`.

        A child can only be removed on its own by passing its parent's
        qualified name plus ``/`` as ``prefix``.
        """
        unloaded: list[tuple[Module, str]] = []
        for module in modules:
            self._unregister_tree(module, prefix, unloaded)

        async with anyio.create_task_group() as tg:
            for module, qualified_name in unloaded:
                tg.start_soon(self._run_lifecycle, "unload", module, qualified_name)
        return self

    def _unregister_tree(
        self, module: Module, prefix: str, unloaded: list[tuple[Module, str]]
    ) -> None:
        qualified_name = f"{prefix}{module.name}"
        self._unregister_events(module)
        if self.modules.get(qualified_name) is module:
            del self.modules[qualified_name]
        if isinstance(module, Command) and self.commands.get(module.name) is module:
            del self.commands[module.name]
        for child in module.modules:
            self._unregister_tree(child, f"{qualified_name}/", unloaded)
        unloaded.append((module, qualified_name))

    async def _run_lifecycle(
        self, event: str, module: Module, qualified_name: str
    ) -> None:
        handler = module.handlers.get(event)

        async def callback(*_args: Any) -> Any:
            with module_scope(module):
                return await maybe_await(handler(self.context))

        try:
            if handler is not None:
                await maybe_await(
                    self.module_runner(module, callback, EventDetails(name=event))
                )
            await self.emit(f"{event}_module", module, qualified_name)
        except Exception as exc:
            await self._error(
                f"module.{event}_failed",
                f"Module {module.name} failed to {event}",
                exc,
                module=module.name,
                qualified_name=qualified_name,
            )

    # skip chain

    async def _should_skip_event(
        self, details: EventDetails, module: Module
    ) -> SkipReason | None:
        """Return the first skip reason any skip handler gives, or ``None``.

        Skip handlers run one at a time in registration order, each inside its
        own module scope. A handler that raises aborts the chain and the
        exception propagates, so the event is not handled.
        """
        for skipper in list(self.skip_handlers):
            handler = skipper.handlers["should_skip_event"]

            async def callback(
                *_args: Any, _skipper: Module = skipper, _handler: Any = handler
            ) -> Any:
                with module_scope(_skipper):
                    return await maybe_await(_handler(self.context, details, module))

            result = await maybe_await(self.module_runner(skipper, callback, details))
            if result is None or result is False:
                continue
            reason = _coerce_skip_reason(result)
            logger.debug(
                "event.skipped",
                event_name=details.name,
                module=module.name,
                skipped_by=skipper.name,
                reason=reason.message,
            )
            if details.name != "event_skipped":
                await self.emit("event_skipped", details, module, skipper, reason)
            return reason
        return None

    # interactions

    async def _on_interaction(self, raw: discord.Interaction) -> None:
        if raw.type not in (
            discord.InteractionType.application_command,
            discord.InteractionType.auto_complete,
        ):
            return
        await self.handle_interaction(PycordInteraction(raw))

    async def handle_interaction(self, interaction: Interaction) -> None:
        with log_context(
            command=interaction.command_name, guild_id=interaction.guild_id
        ):
            if interaction.kind == "autocomplete":
                await self._handle_autocomplete_interaction(interaction)
            else:
                await self._handle_application_interaction(interaction)

    async def _handle_application_interaction(self, interaction: Interaction) -> None:
        module = self.commands.get(interaction.command_name)
        if module is None:
            await self._warn(
                "interaction.unhandled",
                "No module registered for this interaction",
                interaction,
            )
            return

        details = EventDetails(name="interaction", arguments=(interaction,))
        try:
            reason = await self._should_skip_event(details, module)
        except Exception as exc:
            await self._handle_application_interaction_error(interaction, module, exc)
            return

        if reason is not None:
            try:
                await interaction.reply(
                    f'This interaction was skipped for "{reason.message}"',
                    ephemeral=reason.ephemeral,
                )
            except discord.HTTPException as exc:
                await self._error(
                    "interaction.skip_reply_failed",
                    "Failed to send skip notice",
                    exc,
                )
            return

        if not module.accepts(interaction):
            await self._warn(
                "interaction.mismatched",
                "Module could not handle incoming interaction",
                interaction,
                module=module.name,
                command_type=int(interaction.command_type),
            )
            return

        async def callback(*_args: Any) -> None:
            with module_scope(module):
                await self.emit("run_module", module, interaction)
                try:
                    await module.run(self.context, interaction)
                except Exception as exc:
                    await self._handle_application_interaction_error(
                        interaction, module, exc
                    )

        await maybe_await(self.module_runner(module, callback, details))

    async def _handle_autocomplete_interaction(self, interaction: Interaction) -> None:
        module = self.commands.get(interaction.command_name)
        if module is None:
            await self._warn(
                "interaction.unhandled",
                "No module registered for this interaction",
                interaction,
            )
            await interaction.respond(
                [
                    Choice(
                        name="No module registered for this interaction",
                        value="ERROR",
                    )
                ]
            )
            return

        details = EventDetails(name="interaction", arguments=(interaction,))
        try:
            reason = await self._should_skip_event(details, module)
        except Exception as exc:
            await self._handle_autocomplete_interaction_error(interaction, module, exc)
            return

        if reason is not None:
            await interaction.respond(
                [
                    Choice(
                        name=f'This interaction was skipped for "{reason.message}"',
                        value="SKIPPED",
                    )
                ]
            )
            return

        async def callback(*_args: Any) -> None:
            with module_scope(module):
                try:
                    if isinstance(module, Autocompleteable):
                        await module.autocomplete(self.context, interaction)
                except Exception as exc:
                    await self._handle_autocomplete_interaction_error(
                        interaction, module, exc
                    )

        await maybe_await(self.module_runner(module, callback, details))

    async def _handle_autocomplete_interaction_error(
        self, interaction: Interaction, module: Module, error: Exception
    ) -> None:
        logger.error(
            "autocomplete.failed",
            module=module.name,
            error=str(error),
            error_type=error.__class__.__name__,
        )
        await self.emit("autocomplete_interaction_error", module, interaction, error)
        if isinstance(error, RoutingError):
            await self.emit("framework_error", str(error), error)
        if interaction.responded:
            return
        try:
            await interaction.respond(
                [
                    Choice(
                        name=(
                            "An error occurred while handling autocomplete "
                            f"for {module.name}"
                        ),
                        value="ERROR",
                    )
                ]
            )
        except Exception as exc:
            await self._error(
                "autocomplete.error_reply_failed",
                "Error while handling autocomplete error",
                exc,
            )

    async def _handle_application_interaction_error(
        self, interaction: Interaction, module: Module, error: Exception
    ) -> None:
        try:
            if isinstance(error, PreRunError):
                logger.info(
                    "interaction.guard_failed", module=module.name, reason=str(error)
                )
                await self._conditional_reply(interaction, f":warning: {error}")
                return
            logger.error(
                "interaction.failed",
                module=module.name,
                error=str(error),
                error_type=error.__class__.__name__,
                exc_info=error,
            )
            await self.emit("application_interaction_error", module, interaction, error)
            if isinstance(error, RoutingError):
                await self.emit("framework_error", str(error), error)
            await self._conditional_reply(
                interaction, f"{UNEXPECTED_ERROR_REPLY}\n{error}"
            )
        except Exception as exc:
            await self._error(
                "interaction.error_reply_failed",
                "Error while handling interaction error",
                exc,
            )

    async def _conditional_reply(self, interaction: Interaction, content: str) -> None:
        """Reply, edit the deferred reply, or follow up an earlier reply.

        ``deferred`` only flips once the platform acknowledged the deferral, so
        a reply racing an in-flight defer fails; by the time the retry runs the
        deferral has landed and editing works. A reply the handler already sent
        is never overwritten.
        """
        try:
            if interaction.deferred:
                await interaction.edit_reply(content)
            elif interaction.responded:
                await interaction.follow_up(content, ephemeral=True)
            else:
                await interaction.reply(content, ephemeral=True)
            return
        except (discord.HTTPException, discord.InteractionResponded) as exc:
            logger.debug("interaction.reply_deferred_race", error=str(exc))

        await self._sleep(self.reply_retry_delay)
        try:
            await interaction.edit_reply(content)
        except (discord.HTTPException, discord.InteractionResponded) as exc:
            logger.warning(
                "interaction.reply_retry_failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    # command registration

    async def put_commands(
        self,
        commands: Sequence[Command] | None = None,
        *,
        guild_id: str | int | None = None,
        override_guild_check: bool = False,
        register_guild_restricted_commands: bool = False,
    ) -> list[ScopeResult]:
        """Overwrite the platform's stored commands for one or more scopes.

        Without ``guild_id`` commands go to the global scope; guild-restricted
        commands are left out unless ``override_guild_check`` is set (which may
        publish commands you don't want published). With
        ``register_guild_restricted_commands`` every guild named by some
        command's ``register_only_in_guilds`` also gets its own call carrying
        only the commands restricted to it.

        Scopes are independent: a failing scope is reported in its
        :class:`ScopeResult` and nothing is rolled back.
        """
        if self.registrar is None:
            raise ConfigError("No command registrar configured; cannot put commands.")

        pool = list(self.commands.values()) if commands is None else list(commands)
        scope = str(guild_id) if guild_id is not None else None

        if override_guild_check:
            to_add = pool
        elif scope is not None:
            to_add = [
                command
                for command in pool
                if command.register_only_in_guilds is None
                or scope in command.register_only_in_guilds
            ]
        else:
            to_add = [
                command for command in pool if command.register_only_in_guilds is None
            ]

        batches: list[tuple[str | None, list[Command]]] = []
        if register_guild_restricted_commands:
            restricted: dict[str, list[Command]] = {}
            for command in pool:
                for restricted_guild in command.register_only_in_guilds or ():
                    restricted.setdefault(restricted_guild, []).append(command)
            batches.extend(restricted.items())
        batches.append((scope, to_add))

        results: list[ScopeResult | None] = [None] * len(batches)

        async def put(
            index: int, batch_scope: str | None, batch: list[Command]
        ) -> None:
            results[index] = await self._put_scope(batch_scope, batch)

        async with anyio.create_task_group() as tg:
            for index, (batch_scope, batch) in enumerate(batches):
                tg.start_soon(put, index, batch_scope, batch)

        return [result for result in results if result is not None]

    async def _put_scope(
        self, scope: str | None, commands: list[Command]
    ) -> ScopeResult:
        assert self.registrar is not None
        names = tuple(command.name for command in commands)
        where = "globally" if scope is None else f"in {scope}"
        await self._debug(
            "commands.put",
            f"Putting commands ({where}) to api: {', '.join(names)}",
            scope=scope,
            commands=list(names),
        )
        body = [command.body for command in commands]
        try:
            if scope is None:
                response = await self.registrar.put_commands(body)
            else:
                response = await self.registrar.put_guild_commands(body, scope)
        except CommandSyncError as exc:
            await self._error("commands.put_failed", str(exc), exc, scope=scope)
            return ScopeResult(scope=scope, commands=names, ok=False, error=exc.issue)
        return ScopeResult(scope=scope, commands=names, ok=True, response=response)

    # connection

    async def start(self, token: str) -> None:
        """Connect the platform client; register modules before calling this."""
        await self.platform.start(token)  # type: ignore[attr-defined]

    async def close(self) -> None:
        roots = [module for name, module in self.modules.items() if "/" not in name]
        await self.remove_modules(roots)
        self.platform.remove_listener(self._on_interaction, "on_interaction")
        if self.registrar is not None:
            await self.registrar.close()
