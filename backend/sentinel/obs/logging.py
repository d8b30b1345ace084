"""JSON logging with request-scoped context for the sentinel service.

Every record is rendered as a single JSON line carrying the service
identity, whatever request context is bound, and the record's ``extra``
fields. Fields whose names suggest credentials or free-text user input
(review notes, request bodies) are replaced with ``[redacted]``.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sentinel.settings import settings

ROOT_LOGGER = "sentinel"

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("sentinel_log_context", default={})

# context key -> emitted field name
_CONTEXT_FIELDS = {"request_id": "request_id", "route": "route", "user_id": "user_id", "client_ip": "ip"}

_REDACT_MARKERS = ("token", "secret", "authorization", "password", "email", "payload", "body", "notes")
_STRING_LIMIT = 256
_ITEM_LIMIT = 10
_ELLIPSIS = "…"

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Token:
    """Merge the non-empty ``fields`` into the current context.

    Returns the token :func:`reset_context` needs to restore the previous
    context.
    """
    merged = dict(_CONTEXT.get())
    merged.update({key: value for key, value in fields.items() if value})
    return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
    _CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
    return _CONTEXT.get().get("request_id")


def redact(key: str, value: Any) -> Any:
    if any(marker in key.lower() for marker in _REDACT_MARKERS):
        return "[redacted]"
    return _clip(value)


def _clip(value: Any) -> Any:
    if isinstance(value, str):
        return value if len(value) <= _STRING_LIMIT else value[:_STRING_LIMIT] + _ELLIPSIS
    if isinstance(value, Mapping):
        items = list(value.items())
        clipped: dict[str, Any] = {str(key): redact(str(key), nested) for key, nested in items[:_ITEM_LIMIT]}
        if len(items) > _ITEM_LIMIT:
            clipped[_ELLIPSIS] = f"+{len(items) - _ITEM_LIMIT} keys"
        return clipped
    if isinstance(value, (list, tuple, set, frozenset)):
        seq = list(value)
        clipped_items = [_clip(item) for item in seq[:_ITEM_LIMIT]]
        if len(seq) > _ITEM_LIMIT:
            clipped_items.append(_ELLIPSIS)
        return clipped_items
    return value


class JSONLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (logging api)
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "service": settings.service_name,
            "env": settings.environment,
            "commit": settings.git_commit,
        }
        for key, value in _CONTEXT.get().items():
            entry[_CONTEXT_FIELDS.get(key, key)] = value
        for key, value in vars(record).items():
            if key not in _STANDARD_ATTRS:
                entry[key] = redact(key, value)
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, separators=(",", ":"), default=str)


class InfoSampler(logging.Filter):
    """Keep a random fraction of INFO records; other levels always pass."""

    def __init__(self, rate: float) -> None:
        super().__init__()
        self._rate = max(0.0, min(1.0, rate))

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if record.levelno != logging.INFO or self._rate >= 1.0:
            return True
        return random.random() < self._rate


def configure_logging() -> logging.Logger:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONLogFormatter())
    handler.addFilter(InfoSampler(settings.obs_log_sampling_rate_info))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(settings.obs_log_level)
    return logging.getLogger(ROOT_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or ROOT_LOGGER)
