"""Storehost logging configuration.

Call :func:`configure_logging` once at process startup, with the level and
format taken from :class:`~storehost.core.settings.Settings` (or the CLI
overrides).  Every other module defines its own module-scope logger::

    logger = logging.getLogger(__name__)

Records tied to one listing or rental pass the ids through ``extra``::

    logger.info("Booked ...", extra={"event": events.BOOKING_CREATED,
                                     "listing_id": listing.id,
                                     "rental_id": rental.id})

In JSON mode those ids become top-level keys of the log line, next to the
request id bound by :func:`request_scope`, so a single booking can be
followed across stores with a plain ``jq 'select(.listing_id == ...)'``.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "CONTEXT_FIELDS",
    "JsonFormatter",
    "REQUEST_ID_CTX",
    "RequestContextFilter",
    "configure_logging",
    "request_scope",
]

#: Id of the operation being served (one CLI command, one search, ...).
#: Inherited by tasks spawned inside :func:`request_scope`.
REQUEST_ID_CTX: ContextVar[str] = ContextVar("request_id", default="-")

#: Record attributes promoted to top-level keys of a JSON log line.
CONTEXT_FIELDS: tuple[str, ...] = (
    "request_id",
    "event",
    "listing_id",
    "rental_id",
    "renter_id",
)

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS = ("text", "json")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty below WARNING and never about marketplace state.
_QUIET_LOGGERS = ("aiosqlite", "asyncio")


@contextmanager
def request_scope(request_id: str | None = None) -> Iterator[str]:
    """Bind a request id to every log record emitted inside the ``with`` block.

    Args:
        request_id: Explicit id to bind.  A short random hex id is generated
            when omitted.

    Yields:
        The bound request id.
    """
    rid = request_id or uuid.uuid4().hex[:8]
    token = REQUEST_ID_CTX.set(rid)
    try:
        yield rid
    finally:
        REQUEST_ID_CTX.reset(token)


class RequestContextFilter(logging.Filter):
    """Stamp ``record.request_id`` from :data:`REQUEST_ID_CTX`."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.request_id = REQUEST_ID_CTX.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Shape::

        {"ts": "2024-02-01T09:30:00.123Z", "level": "INFO",
         "logger": "storehost.engine.allocator", "message": "Booked 4 box(es) ...",
         "request_id": "a3f2b1c0", "event": "BOOKING_CREATED",
         "listing_id": "3f1c...", "rental_id": "9be0..."}

    Only the :data:`CONTEXT_FIELDS` a record actually carries are emitted.
    """

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    *,
    force: bool = False,
) -> None:
    """Install one stderr handler on the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive).
        fmt: ``"text"`` or ``"json"``.
        force: Replace handlers that are already installed.  Without it an
            already-configured process only has its level adjusted.

    Raises:
        ValueError: Unknown *level* or *fmt*.
    """
    level = level.upper()
    fmt = fmt.lower()
    if level not in _LEVELS:
        raise ValueError(f"Unknown LOG_LEVEL {level!r}. Must be one of: {', '.join(_LEVELS)}")
    if fmt not in _FORMATS:
        raise ValueError(f"Unknown LOG_FORMAT {fmt!r}. Must be one of: {', '.join(_FORMATS)}")

    root = logging.getLogger()
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level == "DEBUG" else logging.WARNING)

    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(RequestContextFilter())
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)
