from __future__ import annotations

from pathlib import Path
from typing import Any

import discord
from pydantic import (
    Field,
    SecretStr,
    ValidationError,
    field_serializer,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import TomlConfigSettingsSource

from .errors import ConfigError

HOME_CONFIG_PATH = Path.home() / ".flurry" / "flurry.toml"


class FlurrySettings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        env_prefix="FLURRY__",
        env_nested_delimiter="__",
    )

    token: SecretStr | None = None
    application_id: int | None = None
    modules: list[str] = Field(default_factory=list)
    guild_id: int | None = None
    register_guild_restricted_commands: bool = False
    override_guild_check: bool = False
    reply_retry_delay: float = Field(default=1.0, ge=0)
    intents: list[str] = Field(default_factory=list)

    @field_validator("token", mode="before")
    @classmethod
    def _validate_token(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("token must be a string")
        return value.strip() or None

    @field_validator("modules", mode="before")
    @classmethod
    def _validate_modules(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, list):
            raise ValueError("modules must be a list of import paths")
        cleaned = []
        for item in value:
            if not isinstance(item, str) or not item.strip():
                raise ValueError("modules entries must be non-empty strings")
            cleaned.append(item.strip())
        return cleaned

    @field_validator("intents")
    @classmethod
    def _validate_intents(cls, value: list[str]) -> list[str]:
        known = set(discord.Intents.VALID_FLAGS)
        unknown = [name for name in value if name not in known]
        if unknown:
            raise ValueError(f"unknown intents: {', '.join(unknown)}")
        return value

    @field_serializer("token")
    def _dump_token(self, value: SecretStr | None) -> str | None:
        return value.get_secret_value() if value else None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def build_intents(self) -> discord.Intents:
        if not self.intents:
            return discord.Intents.default()
        return discord.Intents(**{name: True for name in self.intents})


def load_settings(path: str | Path | None = None) -> tuple[FlurrySettings, Path]:
    cfg_path = _resolve_config_path(path)
    if cfg_path.exists() and not cfg_path.is_file():
        raise ConfigError(f"Config path {cfg_path} exists but is not a file.") from None
    if not cfg_path.exists():
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    return _load_settings_from_path(cfg_path), cfg_path


def validate_settings_data(
    data: dict[str, Any], *, config_path: Path
) -> FlurrySettings:
    try:
        return FlurrySettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {config_path}: {exc}") from exc


def require_token(settings: FlurrySettings, config_path: Path) -> str:
    if settings.token is None or not settings.token.get_secret_value().strip():
        raise ConfigError(f"Missing bot token in {config_path}.")
    return settings.token.get_secret_value().strip()


def require_application_id(settings: FlurrySettings, config_path: Path) -> int:
    if settings.application_id is None:
        raise ConfigError(f"Missing application_id in {config_path}.")
    return settings.application_id


def _resolve_config_path(path: str | Path | None) -> Path:
    return Path(path).expanduser() if path else HOME_CONFIG_PATH


def _load_settings_from_path(cfg_path: Path) -> FlurrySettings:
    cfg = dict(FlurrySettings.model_config)
    cfg["toml_file"] = cfg_path
    Bound = type(
        "FlurrySettingsBound",
        (FlurrySettings,),
        {"model_config": SettingsConfigDict(**cfg)},
    )
    try:
        return Bound()
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {cfg_path}: {exc}") from exc
