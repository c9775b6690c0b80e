"""Listing persistence and constrained lookups.

Provides :class:`ListingStore`, the single data-access object for the
``listings`` table.  It never computes distances; ranking is the search
engine's job.

Host references are resolved with an explicit second read through
:class:`~storehost.storage.users.UserDirectory` after the listing rows are
fetched.  Only profile fields (name, e-mail, phone) are ever attached.

``rem_space`` is written in exactly three places, all conditional updates
meant to run inside a :meth:`~storehost.storage.database.StorageClient.transaction`
owned by :class:`~storehost.engine.allocator.CapacityAllocator`:

* :meth:`ListingStore.try_reserve` — decrement only if enough boxes remain.
* :meth:`ListingStore.release` — increment only up to ``capacity``.
* :meth:`ListingStore.set_rem_space` — reconciliation overwrite.

Typical usage::

    store = ListingStore(client, users)
    listing = await store.create(host.id, 33.78, -84.39, capacity=10, price=50)
    matches = await store.find_nearby(SearchFilter(max_price=60))
"""

from __future__ import annotations

import logging
from datetime import datetime

import aiosqlite
import pydantic

from storehost.core import events
from storehost.core.criteria import SearchFilter
from storehost.core.exceptions import NotFoundError, ValidationError
from storehost.core.ids import new_id
from storehost.core.models import LISTING_DEFAULT_END, Listing
from storehost.storage.database import StorageClient, format_ts, parse_ts, utc_now
from storehost.storage.users import UserDirectory

__all__ = ["ListingStore"]

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, host_id, lat, lon, capacity, rem_space, start_date, end_date, "
    "price, image, created_at, updated_at"
)


def _row_to_listing(row: aiosqlite.Row) -> Listing:
    return Listing(
        id=row["id"],
        host_id=row["host_id"],
        lat=row["lat"],
        lon=row["lon"],
        capacity=row["capacity"],
        rem_space=row["rem_space"],
        start_date=parse_ts(row["start_date"]),
        end_date=parse_ts(row["end_date"]),
        price=row["price"],
        image=row["image"],
        created_at=parse_ts(row["created_at"]),
        updated_at=parse_ts(row["updated_at"]),
    )


class ListingStore:
    """Data-access object for the ``listings`` table.

    Args:
        client: Shared :class:`~storehost.storage.database.StorageClient`.
        users: Identity lookup used to resolve ``host_id``.
    """

    def __init__(self, client: StorageClient, users: UserDirectory) -> None:
        self._client = client
        self._users = users

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        host_id: str,
        lat: float,
        lon: float,
        capacity: int,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        *,
        price: float,
        image: str | None = None,
    ) -> Listing:
        """Create and persist a listing with ``rem_space = capacity``.

        Args:
            host_id: Owning user.
            lat: Latitude in degrees.
            lon: Longitude in degrees.
            capacity: Total boxes on offer.
            start_date: Availability start; defaults to now.
            end_date: Availability end; defaults to 2200-02-01 UTC.
            price: Price per month.
            image: Optional opaque image reference.

        Returns:
            The stored listing with id, timestamps and host resolved.

        Raises:
            ValidationError: capacity < 1, price < 0, coordinates out of range,
                or ``start_date`` after ``end_date``.
            NotFoundError: *host_id* does not resolve to a user.
        """
        now = utc_now()
        try:
            listing = Listing(
                id=new_id(),
                host_id=host_id,
                lat=lat,
                lon=lon,
                capacity=capacity,
                rem_space=capacity,
                start_date=start_date if start_date is not None else now,
                end_date=end_date if end_date is not None else LISTING_DEFAULT_END,
                price=price,
                image=image,
                created_at=now,
                updated_at=now,
            )
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid listing: {exc}") from exc

        host = await self._users.get(host_id)

        async with self._client.transaction() as conn:
            await conn.execute(
                f"INSERT INTO listings ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    listing.id,
                    listing.host_id,
                    listing.lat,
                    listing.lon,
                    listing.capacity,
                    listing.rem_space,
                    format_ts(listing.start_date),
                    format_ts(listing.end_date),
                    listing.price,
                    listing.image,
                    format_ts(now),
                    format_ts(now),
                ),
            )

        logger.info(
            "Created listing %s (host=%s capacity=%d price=%s)",
            listing.id,
            host_id,
            listing.capacity,
            listing.price,
            extra={"event": events.LISTING_CREATED, "listing_id": listing.id},
        )
        return listing.model_copy(update={"host": host})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_nearby(self, flt: SearchFilter) -> list[Listing]:
        """Return every listing satisfying *flt*, in insertion order.

        Predicates: ``rem_space >= min_capacity``, ``price <= max_price``
        (when set), ``start_date <= flt.start_date``,
        ``end_date >= flt.end_date``.  Hosts are resolved.
        """
        clauses = ["rem_space >= ?", "start_date <= ?", "end_date >= ?"]
        params: list[object] = [
            flt.min_capacity,
            format_ts(flt.start_date),
            format_ts(flt.end_date),
        ]
        if flt.max_price is not None:
            clauses.append("price <= ?")
            params.append(flt.max_price)

        rows = await self._client.fetch_all(
            f"SELECT {_COLUMNS} FROM listings WHERE {' AND '.join(clauses)} ORDER BY seq",
            params,
        )
        listings = [_row_to_listing(row) for row in rows]
        logger.debug("find_nearby matched %d listing(s) for %s", len(listings), flt)
        return await self._resolve_hosts(listings)

    async def find_by_host(self, host_id: str) -> list[Listing]:
        """Return a host's listings, latest ``end_date`` first."""
        rows = await self._client.fetch_all(
            f"SELECT {_COLUMNS} FROM listings WHERE host_id = ? ORDER BY end_date DESC, seq",
            (host_id,),
        )
        return [_row_to_listing(row) for row in rows]

    async def find_by_id(self, listing_id: str) -> Listing:
        """Return one listing with its host resolved.

        Raises:
            NotFoundError: If no listing has this id.
        """
        row = await self._client.fetch_one(
            f"SELECT {_COLUMNS} FROM listings WHERE id = ?",
            (listing_id,),
        )
        if row is None:
            raise NotFoundError("listing", listing_id)
        listing = _row_to_listing(row)
        host = await self._users.find(listing.host_id)
        return listing.model_copy(update={"host": host})

    async def _resolve_hosts(self, listings: list[Listing]) -> list[Listing]:
        profiles = await self._users.get_many(listing.host_id for listing in listings)
        return [
            listing.model_copy(update={"host": profiles.get(listing.host_id)})
            for listing in listings
        ]

    # ------------------------------------------------------------------
    # Conditional capacity updates (call inside a transaction)
    # ------------------------------------------------------------------

    async def try_reserve(self, conn: aiosqlite.Connection, listing_id: str, boxes: int) -> bool:
        """Decrement ``rem_space`` by *boxes* only if at least *boxes* remain.

        Returns:
            ``True`` if the row was updated, ``False`` if the guard failed
            (not enough boxes, or no such listing).
        """
        cursor = await conn.execute(
            "UPDATE listings SET rem_space = rem_space - ?, updated_at = ? "
            "WHERE id = ? AND rem_space >= ?",
            (boxes, format_ts(utc_now()), listing_id, boxes),
        )
        return cursor.rowcount == 1

    async def release(self, conn: aiosqlite.Connection, listing_id: str, boxes: int) -> bool:
        """Increment ``rem_space`` by *boxes* only if it stays within ``capacity``."""
        cursor = await conn.execute(
            "UPDATE listings SET rem_space = rem_space + ?, updated_at = ? "
            "WHERE id = ? AND rem_space + ? <= capacity",
            (boxes, format_ts(utc_now()), listing_id, boxes),
        )
        return cursor.rowcount == 1

    async def set_rem_space(
        self,
        conn: aiosqlite.Connection,
        listing_id: str,
        rem_space: int,
        expected: int,
    ) -> bool:
        """Overwrite ``rem_space`` if it still equals *expected* (reconciliation only)."""
        cursor = await conn.execute(
            "UPDATE listings SET rem_space = ?, updated_at = ? WHERE id = ? AND rem_space = ?",
            (rem_space, format_ts(utc_now()), listing_id, expected),
        )
        return cursor.rowcount == 1

