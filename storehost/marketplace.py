"""Component wiring: one storage client, every store and engine on top of it.

:func:`open_marketplace` is the single place where the object graph is
assembled.  Every component receives its collaborators explicitly; nothing
is held in module globals.

Component wiring
----------------
1. Open the storage client (:func:`~storehost.storage.database.open_db`).
2. Build :class:`~storehost.storage.users.UserDirectory`,
   :class:`~storehost.storage.listings.ListingStore` and
   :class:`~storehost.storage.rentals.RentalStore` over it.
3. Build :class:`~storehost.engine.search.SearchEngine` and
   :class:`~storehost.engine.allocator.CapacityAllocator` with limits and
   retry budget taken from :class:`~storehost.core.settings.Settings`.
4. Close the client on exit, including on exceptions.

Typical usage::

    async with open_marketplace(settings) as market:
        results = await market.search.search(33.75, -84.40, max_price=60)
        rental = await market.allocator.book(listing_id, renter_id, 4, dropoff, pickup)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from storehost.core.settings import Settings
from storehost.engine.allocator import CapacityAllocator
from storehost.engine.search import SearchEngine
from storehost.storage.database import StorageClient, open_db
from storehost.storage.listings import ListingStore
from storehost.storage.rentals import RentalStore
from storehost.storage.users import UserDirectory

__all__ = ["Marketplace", "build_marketplace", "open_marketplace"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Marketplace:
    """Every component, sharing one storage client."""

    client: StorageClient
    users: UserDirectory
    listings: ListingStore
    rentals: RentalStore
    search: SearchEngine
    allocator: CapacityAllocator


def build_marketplace(client: StorageClient, settings: Settings) -> Marketplace:
    """Assemble the components over an already-open *client*."""
    users = UserDirectory(client)
    listings = ListingStore(client, users)
    rentals = RentalStore(client)
    return Marketplace(
        client=client,
        users=users,
        listings=listings,
        rentals=rentals,
        search=SearchEngine(
            listings,
            max_results=settings.result_limit,
            max_distance_km=settings.radius_km,
        ),
        allocator=CapacityAllocator(
            client,
            listings,
            rentals,
            users,
            max_attempts=settings.booking_max_attempts,
            retry_wait_max=settings.booking_retry_wait_max,
        ),
    )


@asynccontextmanager
async def open_marketplace(
    settings: Settings | None = None,
    db_path: Path | str | None = None,
) -> AsyncIterator[Marketplace]:
    """Open the database and yield a fully wired :class:`Marketplace`.

    Args:
        settings: Loaded settings; a fresh :class:`Settings` is read when omitted.
        db_path: Overrides ``settings.database_path`` (e.g. ``":memory:"``).
    """
    settings = settings or Settings()
    client = await open_db(db_path or settings.database_path_resolved)
    try:
        yield build_marketplace(client, settings)
    finally:
        await client.close()
        logger.debug("Storage client closed")
