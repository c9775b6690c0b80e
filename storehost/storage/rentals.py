"""Rental persistence.

Provides :class:`RentalStore` for the ``rentals`` table.  Rentals are never
deleted: cancelling one flips its ``status`` to ``cancelled`` and stamps
``cancelled_at``.  Only ``active`` rentals count against a listing's
capacity.

The write methods take the connection of an open transaction because they
are always one half of a capacity change driven by
:class:`~storehost.engine.allocator.CapacityAllocator`.
"""

from __future__ import annotations

import logging

import aiosqlite

from storehost.core.exceptions import NotFoundError
from storehost.core.models import Rental, RentalStatus
from storehost.storage.database import StorageClient, format_ts, parse_ts, utc_now

__all__ = ["RentalStore"]

logger = logging.getLogger(__name__)

_COLUMNS = "id, listing_id, renter_id, boxes, dropoff, pickup, status, created_at, cancelled_at"


def _row_to_rental(row: aiosqlite.Row) -> Rental:
    return Rental(
        id=row["id"],
        listing_id=row["listing_id"],
        renter_id=row["renter_id"],
        boxes=row["boxes"],
        dropoff=parse_ts(row["dropoff"]),
        pickup=parse_ts(row["pickup"]),
        status=RentalStatus(row["status"]),
        created_at=parse_ts(row["created_at"]),
        cancelled_at=parse_ts(row["cancelled_at"]),
    )


class RentalStore:
    """Data-access object for the ``rentals`` table.

    Args:
        client: Shared :class:`~storehost.storage.database.StorageClient`.
    """

    def __init__(self, client: StorageClient) -> None:
        self._client = client

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, rental_id: str) -> Rental:
        """Return one rental.

        Raises:
            NotFoundError: If no rental has this id.
        """
        row = await self._client.fetch_one(
            f"SELECT {_COLUMNS} FROM rentals WHERE id = ?",
            (rental_id,),
        )
        if row is None:
            raise NotFoundError("rental", rental_id)
        return _row_to_rental(row)

    async def list_by_renter(self, renter_id: str) -> list[Rental]:
        """Full booking history of a renter, most recent dropoff first.

        Rentals sharing a dropoff are ordered newest booking first.
        """
        rows = await self._client.fetch_all(
            f"SELECT {_COLUMNS} FROM rentals WHERE renter_id = ? ORDER BY dropoff DESC, seq DESC",
            (renter_id,),
        )
        return [_row_to_rental(row) for row in rows]

    async def list_by_listing(self, listing_id: str, *, active_only: bool = False) -> list[Rental]:
        """Rentals against a listing, in booking order."""
        sql = f"SELECT {_COLUMNS} FROM rentals WHERE listing_id = ?"
        params: list[object] = [listing_id]
        if active_only:
            sql += " AND status = ?"
            params.append(str(RentalStatus.ACTIVE))
        rows = await self._client.fetch_all(sql + " ORDER BY seq", params)
        return [_row_to_rental(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes (call inside a transaction)
    # ------------------------------------------------------------------

    async def insert(self, conn: aiosqlite.Connection, rental: Rental) -> Rental:
        """Insert *rental* and return it with ``created_at`` set."""
        created_at = rental.created_at or utc_now()
        await conn.execute(
            f"INSERT INTO rentals ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                rental.id,
                rental.listing_id,
                rental.renter_id,
                rental.boxes,
                format_ts(rental.dropoff),
                format_ts(rental.pickup),
                str(rental.status),
                format_ts(created_at),
                None,
            ),
        )
        return rental.model_copy(update={"created_at": created_at})

    async def read_for_update(self, conn: aiosqlite.Connection, rental_id: str) -> Rental:
        """Read a rental from inside an open transaction.

        Raises:
            NotFoundError: If no rental has this id.
        """
        cursor = await conn.execute(f"SELECT {_COLUMNS} FROM rentals WHERE id = ?", (rental_id,))
        row = await cursor.fetchone()
        if row is None:
            raise NotFoundError("rental", rental_id)
        return _row_to_rental(row)

    async def mark_cancelled(self, conn: aiosqlite.Connection, rental_id: str) -> bool:
        """Flip an active rental to cancelled.

        Returns:
            ``True`` if the rental was active and is now cancelled; ``False``
            if it was already cancelled or does not exist.
        """
        cursor = await conn.execute(
            "UPDATE rentals SET status = ?, cancelled_at = ? WHERE id = ? AND status = ?",
            (
                str(RentalStatus.CANCELLED),
                format_ts(utc_now()),
                rental_id,
                str(RentalStatus.ACTIVE),
            ),
        )
        return cursor.rowcount == 1

