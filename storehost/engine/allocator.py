"""Capacity allocation: book and cancel rentals against a listing.

:class:`CapacityAllocator` is the only writer of ``listings.rem_space``.  It
keeps the invariant

    rem_space == capacity - sum(boxes of active rentals)

by pairing every capacity change with its rental change inside one
:meth:`~storehost.storage.database.StorageClient.transaction`.

Booking protocol
----------------
1. Validate the request (boxes, dates) and resolve the renter.
2. Read the listing fresh; reject with
   :exc:`~storehost.core.exceptions.CapacityError` if it cannot hold the
   boxes.
3. In one transaction: conditionally decrement ``rem_space`` (the UPDATE
   only matches while ``rem_space >= boxes``) and insert the rental.  If the
   UPDATE matches no row another booking got there first:
   :exc:`~storehost.core.exceptions.ConcurrencyConflict` rolls the
   transaction back.
4. A conflict retries the whole protocol (fresh read included) under
   :mod:`tenacity`.  If capacity really ran out, step 2 of the retry raises
   ``CapacityError``.  If the retry budget runs out first, the listing is
   read once more: ``CapacityError`` when it can no longer hold the boxes,
   otherwise ``ConcurrencyConflict`` is re-raised.

Nothing from a failed attempt is ever visible: the decrement and the insert
commit together or not at all.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

import pydantic
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from storehost.core import events
from storehost.core.exceptions import (
    CapacityError,
    ConcurrencyConflict,
    RentalStateError,
    StorageError,
    ValidationError,
)
from storehost.core.ids import new_id
from storehost.core.models import Listing, Rental
from storehost.storage.database import StorageClient
from storehost.storage.listings import ListingStore
from storehost.storage.rentals import RentalStore
from storehost.storage.users import UserDirectory

__all__ = ["CapacityAllocator"]

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class CapacityAllocator:
    """Reserve and release listing capacity as rentals come and go.

    Args:
        client: Storage client whose transactions make each change atomic.
        listings: Listing store (conditional ``rem_space`` updates).
        rentals: Rental store.
        users: Identity lookup, used to check the renter exists.
        max_attempts: Attempts per operation when the conditional update
            loses a race.
        retry_wait_max: Upper bound in seconds of the random pause between
            attempts.
    """

    def __init__(
        self,
        client: StorageClient,
        listings: ListingStore,
        rentals: RentalStore,
        users: UserDirectory,
        *,
        max_attempts: int = 3,
        retry_wait_max: float = 0.05,
    ) -> None:
        self._client = client
        self._listings = listings
        self._rentals = rentals
        self._users = users
        self._max_attempts = max_attempts
        self._retry_wait_max = retry_wait_max

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def book(
        self,
        listing_id: str,
        renter_id: str,
        boxes: int,
        dropoff: datetime,
        pickup: datetime,
    ) -> Rental:
        """Book *boxes* on a listing from *dropoff* to *pickup*.

        Returns:
            The stored, active rental.

        Raises:
            ValidationError: ``boxes < 1``, ``dropoff > pickup``, or the dates
                fall outside the listing's availability window.
            NotFoundError: Unknown listing or renter.
            CapacityError: Fewer than *boxes* remain.
            ConcurrencyConflict: Kept losing the race for the listing until
                the retry budget ran out.
        """
        if boxes < 1:
            raise ValidationError(f"boxes must be at least 1, got {boxes}")
        try:
            draft = Rental(
                id=new_id(),
                listing_id=listing_id,
                renter_id=renter_id,
                boxes=boxes,
                dropoff=dropoff,
                pickup=pickup,
            )
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid booking: {exc}") from exc

        await self._users.get(renter_id)
        try:
            return await self._with_retry(listing_id, lambda: self._book_once(draft))
        except ConcurrencyConflict as exc:
            # The last lost race may have been to a booking that took the space.
            listing = await self._listings.find_by_id(listing_id)
            if listing.rem_space < boxes:
                raise CapacityError(
                    listing_id, requested=boxes, available=listing.rem_space
                ) from exc
            raise

    async def cancel(self, rental_id: str) -> Rental:
        """Cancel an active rental and give its boxes back to the listing.

        Returns:
            The rental in its cancelled state.

        Raises:
            NotFoundError: Unknown rental.
            RentalStateError: The rental is already cancelled.
            StorageError: Returning the boxes would push ``rem_space`` above
                ``capacity`` (stored state already inconsistent).
        """
        async with self._client.transaction() as conn:
            rental = await self._rentals.read_for_update(conn, rental_id)
            if not rental.is_active or not await self._rentals.mark_cancelled(conn, rental_id):
                raise RentalStateError(rental_id, str(rental.status))
            if not await self._listings.release(conn, rental.listing_id, rental.boxes):
                logger.error(
                    "Releasing %d box(es) from rental %s would exceed capacity of listing %s",
                    rental.boxes,
                    rental_id,
                    rental.listing_id,
                    extra={
                        "event": events.CAPACITY_DRIFT,
                        "listing_id": rental.listing_id,
                        "rental_id": rental_id,
                    },
                )
                raise StorageError(
                    f"Listing {rental.listing_id!r} cannot take back {rental.boxes} box(es)"
                )

        logger.info(
            "Cancelled rental %s; %d box(es) returned to listing %s",
            rental_id,
            rental.boxes,
            rental.listing_id,
            extra={
                "event": events.RENTAL_CANCELLED,
                "listing_id": rental.listing_id,
                "rental_id": rental_id,
            },
        )
        return await self._rentals.get(rental_id)

    async def reconcile(self, listing_id: str) -> Listing:
        """Recompute ``rem_space`` from the listing's active rentals.

        Writes only when the stored value has drifted, and only if nothing
        changed it since it was read (compare-and-swap).

        Returns:
            The listing after reconciliation.

        Raises:
            NotFoundError: Unknown listing.
        """
        return await self._with_retry(listing_id, lambda: self._reconcile_once(listing_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _with_retry(self, listing_id: str, operation: Callable[[], Awaitable[_T]]) -> _T:
        """Run *operation*, retrying it on :exc:`ConcurrencyConflict`."""

        def _before_sleep(rs: RetryCallState) -> None:
            logger.warning(
                "Listing %s changed underneath attempt %d/%d; retrying",
                listing_id,
                rs.attempt_number,
                self._max_attempts,
                extra={"event": events.BOOKING_CONFLICT, "listing_id": listing_id},
            )

        result: _T | None = None
        async for attempt in AsyncRetrying(
            wait=wait_random(0, self._retry_wait_max),
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception_type(ConcurrencyConflict),
            reraise=True,
            before_sleep=_before_sleep,
        ):
            with attempt:
                result = await operation()
        return result  # type: ignore[return-value]

    async def _book_once(self, draft: Rental) -> Rental:
        listing = await self._listings.find_by_id(draft.listing_id)

        if not listing.covers(draft.dropoff, draft.pickup):
            logger.info(
                "Rejected booking on %s: %s..%s outside window %s..%s",
                listing.id,
                draft.dropoff.isoformat(),
                draft.pickup.isoformat(),
                listing.start_date.isoformat(),
                listing.end_date.isoformat(),
                extra={
                    "event": events.BOOKING_REJECTED,
                    "listing_id": listing.id,
                    "renter_id": draft.renter_id,
                },
            )
            raise ValidationError(
                f"Rental dates must fall within the listing window "
                f"{listing.start_date.isoformat()}..{listing.end_date.isoformat()}"
            )
        if draft.boxes > listing.rem_space:
            logger.info(
                "Rejected booking on %s: %d box(es) requested, %d left",
                listing.id,
                draft.boxes,
                listing.rem_space,
                extra={
                    "event": events.BOOKING_REJECTED,
                    "listing_id": listing.id,
                    "renter_id": draft.renter_id,
                },
            )
            raise CapacityError(listing.id, requested=draft.boxes, available=listing.rem_space)

        async with self._client.transaction() as conn:
            if not await self._listings.try_reserve(conn, listing.id, draft.boxes):
                raise ConcurrencyConflict(listing.id)
            rental = await self._rentals.insert(conn, draft)

        logger.info(
            "Booked %d box(es) on listing %s for renter %s (rental %s)",
            rental.boxes,
            listing.id,
            rental.renter_id,
            rental.id,
            extra={
                "event": events.BOOKING_CREATED,
                "listing_id": listing.id,
                "rental_id": rental.id,
                "renter_id": rental.renter_id,
            },
        )
        return rental

    async def _reconcile_once(self, listing_id: str) -> Listing:
        # Listing first: a booking landing between the two reads then fails the CAS.
        listing = await self._listings.find_by_id(listing_id)
        active = await self._rentals.list_by_listing(listing_id, active_only=True)
        held = sum(rental.boxes for rental in active)
        target = listing.capacity - held

        if target < 0:
            logger.error(
                "Listing %s is overbooked: %d box(es) held, capacity %d",
                listing_id,
                held,
                listing.capacity,
                extra={"event": events.CAPACITY_DRIFT, "listing_id": listing_id},
            )
            raise StorageError(f"Listing {listing_id!r} holds more boxes than its capacity")

        if target == listing.rem_space:
            logger.debug("Listing %s is consistent (rem_space=%d)", listing_id, target)
            return listing

        logger.warning(
            "Listing %s drifted: rem_space=%d, expected %d",
            listing_id,
            listing.rem_space,
            target,
            extra={"event": events.CAPACITY_DRIFT, "listing_id": listing_id},
        )
        async with self._client.transaction() as conn:
            if not await self._listings.set_rem_space(conn, listing_id, target, listing.rem_space):
                raise ConcurrencyConflict(listing_id)

        logger.info(
            "Reconciled listing %s: rem_space %d -> %d",
            listing_id,
            listing.rem_space,
            target,
            extra={"event": events.CAPACITY_RECONCILED, "listing_id": listing_id},
        )
        return await self._listings.find_by_id(listing_id)
