from __future__ import annotations

from functools import partial
from pathlib import Path

import anyio
import discord
import typer

from . import __version__
from .client import FlurryClient, ScopeResult
from .errors import ConfigError
from .loader import load_modules
from .logging import get_logger, setup_logging
from .modules.base import Module
from .rest import DiscordRegistrar
from .settings import (
    FlurrySettings,
    load_settings,
    require_application_id,
    require_token,
)

logger = get_logger(__name__)


def _print_version_and_exit() -> None:
    typer.echo(__version__)
    raise typer.Exit()


def _version_callback(value: bool) -> None:
    if value:
        _print_version_and_exit()


def _fail(message: str) -> typer.Exit:
    typer.echo(message, err=True)
    return typer.Exit(code=1)


def build_platform(settings: FlurrySettings) -> discord.Client:
    return discord.Client(intents=settings.build_intents())


def build_registrar(settings: FlurrySettings, config_path: Path) -> DiscordRegistrar:
    return DiscordRegistrar(
        require_token(settings, config_path),
        require_application_id(settings, config_path),
    )


def _load(config: Path | None) -> tuple[FlurrySettings, Path, list[Module]]:
    try:
        settings, config_path = load_settings(config)
        modules = load_modules(settings.modules)
    except ConfigError as e:
        raise _fail(str(e)) from None
    return settings, config_path, modules


async def _run_bot(
    settings: FlurrySettings, config_path: Path, modules: list[Module]
) -> None:
    token = require_token(settings, config_path)
    platform = build_platform(settings)
    registrar = (
        build_registrar(settings, config_path)
        if settings.application_id is not None
        else None
    )
    async with anyio.create_task_group() as tg:
        client = FlurryClient(
            platform,
            registrar=registrar,
            reply_retry_delay=settings.reply_retry_delay,
            task_group=tg,
        )
        await client.add_modules(modules)
        logger.info(
            "flurry.startup",
            modules=sorted(client.modules),
            commands=sorted(client.commands),
        )
        try:
            await client.start(token)
        finally:
            # pending loads would otherwise hold the task group open
            tg.cancel_scope.cancel()
            with anyio.CancelScope(shield=True):
                await client.close()
                await platform.close()
            logger.info("flurry.shutdown")


async def _sync(
    settings: FlurrySettings,
    config_path: Path,
    modules: list[Module],
    *,
    guild_id: int | None,
    restricted: bool,
    override_guild_check: bool,
) -> list[ScopeResult]:
    registrar = build_registrar(settings, config_path)
    platform = build_platform(settings)
    client = FlurryClient(platform, registrar=registrar)
    try:
        await client.add_modules(modules)
        return await client.put_commands(
            guild_id=guild_id,
            override_guild_check=override_guild_check,
            register_guild_restricted_commands=restricted,
        )
    finally:
        await client.close()
        await platform.close()


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Run and manage a flurry bot.",
)


@app.callback()
def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Flurry CLI."""


@app.command()
def run(
    config: Path | None = typer.Option(
        None, "--config", help="Path to flurry.toml (default ~/.flurry/flurry.toml)."
    ),
    debug: bool = typer.Option(
        False, "--debug/--no-debug", help="Log registrations and dispatch details."
    ),
) -> None:
    """Connect to Discord and dispatch events to the configured modules."""
    setup_logging(debug=debug)
    settings, config_path, modules = _load(config)
    try:
        anyio.run(_run_bot, settings, config_path, modules)
    except ConfigError as e:
        raise _fail(str(e)) from None
    except KeyboardInterrupt:
        logger.info("flurry.interrupted")


@app.command()
def sync(
    config: Path | None = typer.Option(None, "--config", help="Path to flurry.toml."),
    guild: int | None = typer.Option(
        None, "--guild", help="Put commands in this guild instead of globally."
    ),
    restricted: bool | None = typer.Option(
        None,
        "--restricted/--no-restricted",
        help="Also put guild-restricted commands in each guild they name.",
    ),
    override_guild_check: bool | None = typer.Option(
        None,
        "--override-guild-check/--no-override-guild-check",
        help="Ignore guild restrictions entirely (publishes every command).",
    ),
) -> None:
    """Overwrite the command definitions stored on Discord."""
    setup_logging()
    settings, config_path, modules = _load(config)
    try:
        results = anyio.run(
            partial(
                _sync,
                settings,
                config_path,
                modules,
                guild_id=guild if guild is not None else settings.guild_id,
                restricted=(
                    restricted
                    if restricted is not None
                    else settings.register_guild_restricted_commands
                ),
                override_guild_check=(
                    override_guild_check
                    if override_guild_check is not None
                    else settings.override_guild_check
                ),
            )
        )
    except ConfigError as e:
        raise _fail(str(e)) from None

    failed = False
    for result in results:
        names = ", ".join(result.commands) or "(none)"
        if result.ok:
            typer.echo(f"{result.label}: ok ({names})")
        else:
            failed = True
            typer.echo(f"{result.label}: failed ({result.error})", err=True)
    if failed:
        raise typer.Exit(code=1)


@app.command("modules")
def modules_cmd(
    config: Path | None = typer.Option(None, "--config", help="Path to flurry.toml."),
) -> None:
    """List the configured module tree by qualified name."""
    _, _, modules = _load(config)
    if not modules:
        typer.echo("(none)")
        return
    for root in modules:
        for qualified_name, module in root.walk():
            indent = "  " * qualified_name.count("/")
            typer.echo(f"{indent}{qualified_name} ({type(module).__name__})")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
