from pathlib import Path

import pytest
from typer.testing import CliRunner

from flurry import __version__, cli
from tests.flurry_fakes import FakePlatform, FakeRegistrar, install_entrypoints

BOT_SOURCE = """
from flurry.modules import Module, SlashCommand, SlashSubcommand

def _run(ctx, interaction):
    return None

add = SlashSubcommand({"name": "add", "description": "x"}, {"run": _run})
modules = [
    SlashCommand({"name": "ping", "description": "x"}, {"run": _run}),
    SlashCommand(
        {"name": "admin", "description": "x", "register_only_in_guilds": ["G1"]},
        {"run": _run},
    ),
    SlashCommand({"name": "todo", "description": "x", "options": [add]}),
    Module("logger"),
]
"""

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch) -> None:
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)


@pytest.fixture
def config_path(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "flurry_cli_bot.py").write_text(BOT_SOURCE, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    install_entrypoints(monkeypatch, [])
    path = tmp_path / "flurry.toml"
    path.write_text(
        'token = "tok"\napplication_id = 1\nmodules = ["flurry_cli_bot:modules"]\n',
        encoding="utf-8",
    )
    return path


@pytest.fixture
def fake_registrar(monkeypatch) -> FakeRegistrar:
    registrar = FakeRegistrar()
    monkeypatch.setattr(cli, "build_registrar", lambda settings, path: registrar)
    monkeypatch.setattr(cli, "build_platform", lambda settings: FakePlatform())
    return registrar


def test_version() -> None:
    result = runner.invoke(cli.app, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_modules_lists_qualified_names(config_path: Path) -> None:
    result = runner.invoke(cli.app, ["modules", "--config", str(config_path)])

    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert "ping (SlashCommand)" in lines
    assert "  todo/add (SlashSubcommand)" in lines
    assert "logger (Module)" in lines


def test_missing_config_fails(tmp_path: Path) -> None:
    result = runner.invoke(cli.app, ["modules", "--config", str(tmp_path / "nope.toml")])

    assert result.exit_code == 1
    assert "Missing config file" in result.output


def test_sync_puts_global_commands(config_path: Path, fake_registrar: FakeRegistrar) -> None:
    result = runner.invoke(cli.app, ["sync", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    assert [(call.scope, call.names) for call in fake_registrar.calls] == [
        (None, ["ping", "todo"])
    ]
    assert "global: ok (ping, todo)" in result.output
    assert fake_registrar.closed


def test_sync_restricted(config_path: Path, fake_registrar: FakeRegistrar) -> None:
    result = runner.invoke(cli.app, ["sync", "--config", str(config_path), "--restricted"])

    assert result.exit_code == 0, result.output
    assert {call.scope: call.names for call in fake_registrar.calls} == {
        "G1": ["admin"],
        None: ["ping", "todo"],
    }
    assert "guild G1: ok (admin)" in result.output


def test_sync_guild(config_path: Path, fake_registrar: FakeRegistrar) -> None:
    result = runner.invoke(cli.app, ["sync", "--config", str(config_path), "--guild", "55"])

    assert result.exit_code == 0, result.output
    assert [(call.scope, call.names) for call in fake_registrar.calls] == [
        ("55", ["ping", "todo"])
    ]


def test_sync_reports_failures(config_path: Path, monkeypatch) -> None:
    registrar = FakeRegistrar(fail_for={None})
    monkeypatch.setattr(cli, "build_registrar", lambda settings, path: registrar)
    monkeypatch.setattr(cli, "build_platform", lambda settings: FakePlatform())

    result = runner.invoke(cli.app, ["sync", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "global: failed (HTTP 500: boom)" in result.output


def test_run_starts_the_platform(config_path: Path, monkeypatch) -> None:
    platform = FakePlatform()
    registrar = FakeRegistrar()
    monkeypatch.setattr(cli, "build_platform", lambda settings: platform)
    monkeypatch.setattr(cli, "build_registrar", lambda settings, path: registrar)

    result = runner.invoke(cli.app, ["run", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    assert platform.started_with == "tok"
    assert platform.closed
    assert platform.count("on_interaction") == 0


def test_run_without_token_fails(tmp_path: Path, monkeypatch) -> None:
    install_entrypoints(monkeypatch, [])
    path = tmp_path / "flurry.toml"
    path.write_text("modules = []\n", encoding="utf-8")
    monkeypatch.setattr(cli, "build_platform", lambda settings: FakePlatform())

    result = runner.invoke(cli.app, ["run", "--config", str(path)])

    assert result.exit_code == 1
    assert "Missing bot token" in result.output
