from __future__ import annotations

import logging
import re
import sys
from collections.abc import MutableMapping
from contextlib import AbstractContextManager
from typing import Any

import structlog

_SECRET_PATTERNS = (
    # Discord bot tokens: <base64 user id>.<timestamp>.<hmac>
    re.compile(r"[A-Za-z0-9_-]{23,28}\.[A-Za-z0-9_-]{6,7}\.[A-Za-z0-9_-]{27,40}"),
    re.compile(r"(Bot\s+)[A-Za-z0-9._-]{20,}"),
)
_REDACTED = "[REDACTED]"
_SECRET_KEYS = frozenset({"token", "bot_token", "authorization"})


def _redact_text(value: str) -> str:
    for pattern in _SECRET_PATTERNS:
        if pattern.groups:
            value = pattern.sub(lambda m: f"{m.group(1)}{_REDACTED}", value)
        else:
            value = pattern.sub(_REDACTED, value)
    return value


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, dict):
        return {
            k: (_REDACTED if k.lower() in _SECRET_KEYS else _redact_value(v))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_value(item) for item in value)
    return value


def redact_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key, value in list(event_dict.items()):
        if key.lower() in _SECRET_KEYS and value is not None:
            event_dict[key] = _REDACTED
        else:
            event_dict[key] = _redact_value(value)
    return event_dict


def setup_logging(*, debug: bool = False, json: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    Safe to call more than once; the last call wins.
    """
    level = logging.DEBUG if debug else logging.INFO

    renderer: Any
    if json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    # pycord and httpx log through the stdlib
    logging.basicConfig(level=level if debug else logging.WARNING, force=True)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_context(**fields: Any) -> AbstractContextManager[None]:
    return structlog.contextvars.bound_contextvars(**fields)
