"""Logging helpers shared by the resolver, sandbox and entry points.

Structured context travels on records through ``extra=extra_context(...)``
and is rendered as ``key=value`` pairs by :class:`ContextFormatter`.
"""
from __future__ import annotations

import logging
import os
import sys
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants

_CONTEXT_ATTR = "evalgate_context"


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build the ``extra`` mapping for a structured log call, dropping None values."""
    return {_CONTEXT_ATTR: {k: v for k, v in fields.items() if v is not None}}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def safe_url(url: str) -> str:
    """Strip credentials and query strings from a URL before logging it."""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urllib.parse.urlunsplit((parts.scheme, host, parts.path, "", ""))


class Timer:
    """Context manager measuring wall-clock duration in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000.0, 2)


class ContextFormatter(logging.Formatter):
    """Formatter appending structured context fields to the message."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        ctx = getattr(record, _CONTEXT_ATTR, None)
        if not ctx:
            return base
        pairs = " ".join(f"{k}={v}" for k, v in ctx.items())
        return f"{base} [{pairs}]"


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger once for the process.

    Records go to stderr because stdout carries the MCP stdio transport.
    ``level`` falls back to ``$EVALGATE_LOG_LEVEL`` and then INFO.
    """
    name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    numeric = getattr(logging, name, None)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_evalgate", False):
            root.removeHandler(handler)
            handler.close()

    formatter = ContextFormatter(Constants.LOG_FORMAT)
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler._evalgate = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(numeric)
