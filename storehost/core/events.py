"""Structured log event name constants.

Every state change in the engine emits a log record with an ``event`` field
(passed via ``extra={"event": events.X}``).  In ``LOG_FORMAT=json`` mode the
value appears under ``extra.event``; in text mode the message is
self-describing and the event name is not printed.

Usage example::

    import logging
    from storehost.core import events

    logger = logging.getLogger(__name__)

    logger.info("Booked %d box(es)", boxes, extra={"event": events.BOOKING_CREATED})
"""

from __future__ import annotations

__all__ = [
    # Listings
    "LISTING_CREATED",
    # Search
    "SEARCH_COMPLETE",
    "SEARCH_ERROR",
    # Booking lifecycle
    "BOOKING_CREATED",
    "BOOKING_REJECTED",
    "BOOKING_CONFLICT",
    "RENTAL_CANCELLED",
    # Maintenance
    "CAPACITY_RECONCILED",
    "CAPACITY_DRIFT",
]

# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

#: A host created a new listing.
LISTING_CREATED: str = "LISTING_CREATED"

# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

#: A search finished ranking its results (possibly zero).
SEARCH_COMPLETE: str = "SEARCH_COMPLETE"

#: Ranking failed for an internal reason; the search was rejected.
SEARCH_ERROR: str = "SEARCH_ERROR"

# ---------------------------------------------------------------------------
# Booking lifecycle
# ---------------------------------------------------------------------------

#: Capacity was reserved and a rental row inserted.
BOOKING_CREATED: str = "BOOKING_CREATED"

#: A booking was refused (not enough boxes, bad dates, unknown ids).
BOOKING_REJECTED: str = "BOOKING_REJECTED"

#: The conditional capacity update matched no row; the booking will retry.
BOOKING_CONFLICT: str = "BOOKING_CONFLICT"

#: A rental was cancelled and its boxes returned to the listing.
RENTAL_CANCELLED: str = "RENTAL_CANCELLED"

# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

#: ``rem_space`` was recomputed from the active rentals.
CAPACITY_RECONCILED: str = "CAPACITY_RECONCILED"

#: The stored ``rem_space`` disagreed with the active rentals.
CAPACITY_DRIFT: str = "CAPACITY_DRIFT"
