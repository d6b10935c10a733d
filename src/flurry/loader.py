"""Resolve module trees from import paths and installed entry points."""

from __future__ import annotations

import importlib
from collections.abc import Iterable
from importlib.metadata import EntryPoint, entry_points
from typing import Any

from .errors import ConfigError
from .logging import get_logger
from .modules.base import Module

logger = get_logger(__name__)

MODULES_GROUP = "flurry.modules"


class ModuleLoadError(ConfigError):
    pass


def list_entrypoints(group: str = MODULES_GROUP) -> list[EntryPoint]:
    eps = entry_points()
    selected = list(eps.select(group=group))
    return sorted(selected, key=lambda ep: ep.name)


def _coerce_modules(value: Any, *, source: str) -> list[Module]:
    if isinstance(value, Module):
        return [value]
    if callable(value):
        return _coerce_modules(value(), source=source)
    if isinstance(value, Iterable) and not isinstance(value, (str, bytes)):
        modules = list(value)
        bad = [item for item in modules if not isinstance(item, Module)]
        if bad:
            raise ModuleLoadError(f"{source} contains non-module values: {bad!r}")
        return modules
    raise ModuleLoadError(
        f"{source} must be a Module, an iterable of Modules, or a factory "
        f"returning one; got {type(value).__name__}"
    )


def import_object(path: str) -> Any:
    module_path, sep, attribute = path.partition(":")
    if not sep or not module_path or not attribute:
        raise ModuleLoadError(
            f"Invalid module path {path!r}; expected 'package.module:attribute'."
        )
    try:
        imported = importlib.import_module(module_path)
    except ImportError as exc:
        raise ModuleLoadError(f"Failed to import {module_path!r}: {exc}") from exc
    value: Any = imported
    for part in attribute.split("."):
        try:
            value = getattr(value, part)
        except AttributeError as exc:
            raise ModuleLoadError(
                f"{module_path!r} has no attribute {attribute!r}"
            ) from exc
    return value


def load_path(path: str) -> list[Module]:
    return _coerce_modules(import_object(path), source=path)


def load_entrypoint(ep: EntryPoint) -> list[Module]:
    try:
        loaded = ep.load()
    except Exception as exc:
        raise ModuleLoadError(f"Failed to load entry point {ep.name!r}: {exc}") from exc
    return _coerce_modules(loaded, source=f"entry point {ep.name!r}")


def load_modules(
    paths: Iterable[str] = (), *, include_entrypoints: bool = True
) -> list[Module]:
    """Import configured module trees, then those published by installed packages.

    Entry points are looked up in the ``flurry.modules`` group.
    """
    modules: list[Module] = []
    for path in paths:
        loaded = load_path(path)
        logger.debug("modules.loaded", source=path, count=len(loaded))
        modules.extend(loaded)
    if include_entrypoints:
        for ep in list_entrypoints():
            loaded = load_entrypoint(ep)
            logger.debug(
                "modules.loaded", source=f"entrypoint:{ep.name}", count=len(loaded)
            )
            modules.extend(loaded)
    return modules
