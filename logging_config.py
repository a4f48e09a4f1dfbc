from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Iterable, Sequence

from settings import get_settings

CONTEXT_KEYS = (
    "topic",
    "subscription",
    "measurement",
    "database",
    "reason",
    "status_code",
    "queue_size",
    "path",
)

# httpx logs every write request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

_configured = False


class ContextualFormatter(logging.Formatter):
    """Appends ``key=value`` pairs for known ``extra`` fields to each record."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        context_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._context_keys: Sequence[str] = tuple(context_keys or CONTEXT_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            _render_pair(key, getattr(record, key))
            for key in self._context_keys
            if getattr(record, key, None) is not None
        ]
        if not context:
            return message
        return f"{message} | {' '.join(context)}"


def _render_pair(key: str, value: Any) -> str:
    text = str(value)
    # topics and reasons may contain spaces
    if not text or any(ch.isspace() for ch in text):
        text = repr(text)
    return f"{key}={text}"


def _logging_dict(level: str | int) -> Dict[str, Any]:
    loggers: Dict[str, Any] = {name: {"level": "WARNING"} for name in _NOISY_LOGGERS}
    for name in _SERVER_LOGGERS:
        loggers[name] = {"handlers": [], "propagate": True}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": "logging_config.ContextualFormatter",
                "fmt": "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
                "style": "%",
                "context_keys": list(CONTEXT_KEYS),
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "contextual",
            }
        },
        "loggers": loggers,
        "root": {"handlers": ["default"], "level": level},
    }


def configure_logging(level: str | int | None = None) -> None:
    """Configure process-wide logging once; later calls are no-ops."""
    global _configured
    if _configured:
        return

    dictConfig(_logging_dict(level if level is not None else get_settings().log_level))
    _configured = True
