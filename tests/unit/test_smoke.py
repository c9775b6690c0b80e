"""Smoke tests — verify the test harness itself is wired up correctly.

These tests assert nothing about business logic.  They confirm:

1. pytest discovers and runs tests in this suite.
2. pytest-asyncio's ``asyncio_mode = "auto"`` setting works.
3. Core storehost modules import without errors.
4. ``configure_logging()`` executes without raising.
5. The exception taxonomy is importable and the hierarchy is intact.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import pytest

from storehost.core import (
    CapacityError,
    ConcurrencyConflict,
    ConfigError,
    JsonFormatter,
    NotFoundError,
    RentalStateError,
    SearchError,
    StorageError,
    StorehostError,
    ValidationError,
    configure_logging,
    request_scope,
)
from storehost.core.logging_config import REQUEST_ID_CTX, RequestContextFilter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Import & startup smoke
# ---------------------------------------------------------------------------


def test_core_imports_succeed() -> None:
    assert configure_logging is not None
    assert JsonFormatter is not None
    assert StorehostError is not None


def test_configure_logging_text() -> None:
    configure_logging(level="INFO", fmt="text", force=True)


def test_configure_logging_json() -> None:
    configure_logging(level="DEBUG", fmt="json", force=True)
    configure_logging(level="DEBUG", fmt="text", force=True)


def test_configure_logging_invalid_level() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_LEVEL"):
        configure_logging(level="VERBOSE", force=True)


def test_configure_logging_invalid_format() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_FORMAT"):
        configure_logging(fmt="xml", force=True)


async def test_async_mode_works() -> None:
    """Async tests run without an explicit marker."""
    await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "exc_type",
    [
        ConfigError,
        ValidationError,
        NotFoundError,
        CapacityError,
        ConcurrencyConflict,
        RentalStateError,
        StorageError,
        SearchError,
    ],
)
def test_every_error_derives_from_root(exc_type: type[Exception]) -> None:
    assert issubclass(exc_type, StorehostError)


def test_not_found_message_names_entity() -> None:
    exc = NotFoundError("listing", "abc")
    assert exc.entity == "listing"
    assert exc.entity_id == "abc"
    assert "listing" in str(exc) and "abc" in str(exc)


def test_capacity_error_carries_numbers() -> None:
    exc = CapacityError("L1", requested=7, available=6)
    assert (exc.requested, exc.available) == (7, 6)
    assert "6" in str(exc) and "7" in str(exc)


def test_validation_error_is_not_pydantics() -> None:
    import pydantic

    assert not issubclass(ValidationError, pydantic.ValidationError)


# ---------------------------------------------------------------------------
# Request-scoped logging context
# ---------------------------------------------------------------------------


def test_request_scope_binds_and_resets() -> None:
    assert REQUEST_ID_CTX.get() == "-"
    with request_scope("req-1") as rid:
        assert rid == "req-1"
        assert REQUEST_ID_CTX.get() == "req-1"
    assert REQUEST_ID_CTX.get() == "-"


def test_request_scope_generates_id() -> None:
    with request_scope() as rid:
        assert len(rid) == 8
        assert REQUEST_ID_CTX.get() == rid


def test_request_filter_stamps_records() -> None:
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "hello", None, None)
    with request_scope("abc12345"):
        assert RequestContextFilter().filter(record) is True
    assert record.request_id == "abc12345"  # type: ignore[attr-defined]


def test_json_formatter_promotes_context_fields() -> None:
    record = logging.LogRecord("storehost.test", logging.INFO, __file__, 1, "booked %d", (4,), None)
    record.event = "BOOKING_CREATED"
    record.listing_id = "L1"
    record.rental_id = "R1"
    record.request_id = "abc12345"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "booked 4"
    assert payload["level"] == "INFO"
    assert payload["event"] == "BOOKING_CREATED"
    assert (payload["listing_id"], payload["rental_id"]) == ("L1", "R1")
    assert payload["request_id"] == "abc12345"
    assert payload["ts"].endswith("Z")


def test_json_formatter_omits_absent_fields() -> None:
    record = logging.LogRecord("storehost.test", logging.WARNING, __file__, 1, "plain", None, None)
    payload = json.loads(JsonFormatter().format(record))
    assert set(payload) == {"ts", "level", "logger", "message"}


def test_json_formatter_includes_traceback() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord(
            "storehost.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )
    payload = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in payload["exc_info"]


def test_configure_logging_adjusts_level_without_force() -> None:
    configure_logging(level="warning")
    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("aiosqlite").level == logging.WARNING
    configure_logging(level="DEBUG")
    assert logging.getLogger("aiosqlite").level == logging.DEBUG
