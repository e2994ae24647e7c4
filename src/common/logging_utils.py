"""Logging helpers shared across igprep modules.

Provides the root logger setup used by the CLI, structured ``extra``
payloads for DEBUG traces, a small timer, and redaction of credentials in
URLs before they reach a log record.
"""
from __future__ import annotations

import logging
import os
import re
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from constants import Constants

_SENSITIVE_QUERY_KEYS = re.compile(r"(token|password|secret|key|auth)", re.IGNORECASE)


def configure_logging(level: Optional[str] = None, logfile: Optional[str] = None) -> None:
    """Install console (and optional file) handlers on the root logger.

    The level falls back to the ``IGPREP_LOG_LEVEL`` environment variable and
    then to INFO. Calling this more than once replaces the handlers.
    """
    level_name = (level or os.environ.get(f"{Constants.ENV_PREFIX}LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(Constants.LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if logfile:
        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s " + Constants.LOG_FORMAT))
        root.addHandler(file_handler)

    root.setLevel(getattr(logging, level_name, logging.INFO))


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True if DEBUG records of the given logger would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping for structured log records, dropping None values."""
    return {k: v for k, v in fields.items() if v is not None}


def redact(value: Optional[str]) -> str:
    """Mask a secret, keeping nothing but its presence."""
    if not value:
        return ""
    return "[REDACTED]"


def safe_url(url: str) -> str:
    """Return url with user info and sensitive query values redacted."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    netloc = parts.netloc
    if "@" in netloc:
        userinfo, host = netloc.rsplit("@", 1)
        netloc = f"{redact(userinfo)}@{host}"
    query = parts.query
    if query:
        pairs = []
        for pair in query.split("&"):
            name, sep, value = pair.partition("=")
            if sep and _SENSITIVE_QUERY_KEYS.search(name):
                value = redact(value)
            pairs.append(f"{name}{sep}{value}")
        query = "&".join(pairs)
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring wall clock duration."""

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
        """Elapsed milliseconds, up to now if the block is still running."""
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000.0, 2)
