"""Execution context shared by every handler invocation.

Handlers receive a :class:`FlurryContext` as their first argument. The module
that is currently executing is tracked in a :class:`contextvars.ContextVar`,
so each asyncio task (one per inbound event or interaction) sees its own
value, and nested scopes restore the outer module on exit.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .client import FlurryClient
    from .modules.base import Module

_running_module: ContextVar[Module | None] = ContextVar(
    "flurry_running_module", default=None
)


def current_module() -> Module | None:
    """Return the module whose handler is running in this call chain."""
    return _running_module.get()


@contextmanager
def module_scope(module: Module) -> Iterator[Module]:
    token = _running_module.set(module)
    try:
        yield module
    finally:
        _running_module.reset(token)


@dataclass(frozen=True, slots=True)
class FlurryContext:
    client: FlurryClient
    platform: Any

    @property
    def module(self) -> Module | None:
        return current_module()
