"""Shared pytest fixtures and configuration for the Storehost test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across the unit tests.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from datetime import UTC, datetime

import pytest
from pydantic_settings import SettingsConfigDict

from storehost.core import configure_logging
from storehost.core.models import HostProfile, Listing
from storehost.core.settings import Settings
from storehost.marketplace import Marketplace, build_marketplace
from storehost.storage.database import MEMORY_DB, open_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test."""
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove Storehost env vars and disable ``.env`` loading for the test."""
    prefixes = ("DATABASE_", "BOOKING_", "SEARCH_", "LOG_LEVEL", "LOG_FORMAT")
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Marketplace over an in-memory database
# ---------------------------------------------------------------------------

#: Availability window used by most listing fixtures.
WINDOW_START = datetime(2024, 1, 1, tzinfo=UTC)
WINDOW_END = datetime(2024, 12, 31, tzinfo=UTC)


@pytest.fixture()
async def market(clean_env: None) -> AsyncIterator[Marketplace]:
    """A fully wired :class:`Marketplace` on a fresh in-memory database."""
    client = await open_db(MEMORY_DB)
    try:
        yield build_marketplace(client, Settings(booking_retry_wait_max=0.0))
    finally:
        await client.close()


@pytest.fixture()
async def host(market: Marketplace) -> HostProfile:
    return await market.users.register("Hana", "Host", email="hana@example.com", phone="555-0100")


@pytest.fixture()
async def renter(market: Marketplace) -> HostProfile:
    return await market.users.register("Rory", "Renter", email="rory@example.com")


@pytest.fixture()
async def listing_a(market: Marketplace, host: HostProfile) -> Listing:
    """Listing A: (33.78, -84.39), 10 boxes, 50/month, open through 2024."""
    return await market.listings.create(
        host.id,
        33.78,
        -84.39,
        10,
        WINDOW_START,
        WINDOW_END,
        price=50,
    )


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to test code."""
    return logging.getLogger("tests")
