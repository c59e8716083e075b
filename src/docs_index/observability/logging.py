"""Structured JSON logging correlated with spans and index names."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
import sys
from typing import IO, Any

import orjson

from docs_index.errors import DocsIndexError
from docs_index.observability.context import get_trace_context


# Attributes present on every LogRecord; anything else came in via ``extra=``.
_RESERVED_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}

PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Records carry the active trace/span ids and the index bound to the
    current context. ``DocsIndexError`` failures are flattened into
    ``error_code``/``error_details`` so log queries can filter on codes.
    Document bodies passed as ``extra={"content": ...}`` are logged by size only.
    """

    REDACT_KEYS = frozenset({"password", "token", "api_key", "secret", "authorization"})
    SIZE_ONLY_KEYS = frozenset({"content", "text", "body"})
    MAX_MESSAGE_LEN = 2000
    MAX_FIELD_LEN = 500

    def __init__(self, *, service_name: str | None = None) -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_trace_context()
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._truncate(record.getMessage(), self.MAX_MESSAGE_LEN),
            "trace_id": ctx.get("trace_id", ""),
            "span_id": ctx.get("span_id", ""),
        }
        if self.service_name:
            entry["service"] = self.service_name
        if "." in record.name:
            entry["component"] = record.name.rsplit(".", 1)[-1]
        if index_name := ctx.get("index"):
            entry["index"] = index_name

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
            error = record.exc_info[1]
            if isinstance(error, DocsIndexError):
                entry["error_code"] = error.code
                entry["error_details"] = error.details

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            entry[key] = self._scrub(key, value)

        return orjson.dumps(entry, default=self._json_default).decode("utf-8")

    @staticmethod
    def _truncate(value: str, limit: int) -> str:
        return value if len(value) <= limit else value[:limit] + "..."

    def _scrub(self, key: str, value: Any) -> Any:
        lowered = key.lower()
        if lowered in self.REDACT_KEYS:
            return "[REDACTED]"
        if lowered in self.SIZE_ONLY_KEYS and isinstance(value, str):
            return f"<{len(value)} chars>"
        if isinstance(value, str):
            return self._truncate(value, self.MAX_FIELD_LEN)
        return value

    @staticmethod
    def _json_default(value: Any) -> Any:
        if isinstance(value, (set, frozenset)):
            try:
                return sorted(value)
            except TypeError:
                return list(value)
        if isinstance(value, Path):
            return str(value)
        if isinstance(value, (bytes, bytearray)):
            return value.decode("utf-8", errors="replace")
        if isinstance(value, DocsIndexError):
            return value.to_dict()
        if isinstance(value, Exception):
            return str(value)
        return repr(value)


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    *,
    logger_levels: dict[str, str] | None = None,
    service_name: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Replace the root handlers with a single structured or plain handler.

    Args:
        level: Root log level name (case-insensitive); unknown names fall back to INFO
        json_output: Use ``JsonFormatter`` when True, a plain line format otherwise
        logger_levels: Per-logger level overrides, e.g. ``{"docs_index.search": "debug"}``
        service_name: Added as ``service`` to every JSON record
        stream: Destination stream, stdout by default

    Returns:
        The installed handler.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter(service_name=service_name) if json_output else logging.Formatter(PLAIN_FORMAT))
    root.addHandler(handler)

    for logger_name, logger_level in (logger_levels or {}).items():
        logging.getLogger(logger_name).setLevel(getattr(logging, logger_level.upper(), logging.INFO))
    return handler
