"""Centralized logging helpers.

Provides one place to configure the root logger plus small utilities used
by modules that emit structured DEBUG traces:

- ``extra_context`` builds the ``extra=`` mapping for a log call.
- ``is_debug_enabled`` guards expensive trace construction.
- ``safe_url``/``redact`` keep tokens and credentials out of log output.
- ``Timer`` measures durations for request/extract traces.
"""
from __future__ import annotations

import logging
import os
import re
import time
import urllib.parse
from typing import Any, Dict, Optional

from buildvault.constants import Constants

_SENSITIVE_QUERY_KEYS = {"token", "access_token", "api_key", "apikey", "key", "password", "secret"}
_TOKEN_PATTERN = re.compile(r"(gh[pousr]_[A-Za-z0-9]{16,}|[A-Fa-f0-9]{40})")
REDACTED = "[REDACTED]"


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger once per process.

    Level precedence: explicit ``level`` argument, then the
    ``BUILDVAULT_LOG_LEVEL`` environment variable, then INFO.
    """
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not any(getattr(h, "_buildvault", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        handler._buildvault = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level_value)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(Constants.LOG_FILE_FORMAT))
        root.addHandler(file_handler)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping for structured log records.

    ``None`` values are dropped so records only carry meaningful fields.
    """
    return {key: value for key, value in fields.items() if value is not None}


def redact(text: str) -> str:
    """Mask anything that looks like an access token or full commit-length secret."""
    if not text:
        return text
    return _TOKEN_PATTERN.sub(REDACTED, text)


def safe_url(url: str) -> str:
    """Strip credentials and sensitive query parameters from a URL for logging."""
    if not url:
        return url
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return redact(url)

    netloc = parts.netloc
    if "@" in netloc:
        netloc = f"{REDACTED}@{netloc.rsplit('@', 1)[1]}"

    query = parts.query
    if query:
        pairs = urllib.parse.parse_qsl(query, keep_blank_values=True)
        query = urllib.parse.urlencode(
            [(k, REDACTED if k.lower() in _SENSITIVE_QUERY_KEYS else v) for k, v in pairs]
        )
    return urllib.parse.urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self) -> None:
        self.start: float = 0.0
        self.end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        self.end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end = time.perf_counter()

    def duration_ms(self) -> float:
        """Elapsed milliseconds, measured up to now while the block is still running."""
        end = self.end if self.end is not None else time.perf_counter()
        return round((end - self.start) * 1000.0, 2)
