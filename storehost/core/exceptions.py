"""Storehost exception taxonomy.

Every custom exception inherits from :class:`StorehostError`.  Callers can
catch at the granularity they need:

    Hierarchy
    ---------
    StorehostError
    ├── ConfigError
    ├── ValidationError
    ├── NotFoundError
    ├── CapacityError
    ├── ConcurrencyConflict
    ├── RentalStateError
    ├── StorageError
    └── SearchError

Validation, not-found and capacity errors are caller mistakes and are never
retried by the engine.  :class:`ConcurrencyConflict` is retried internally
by :class:`~storehost.engine.allocator.CapacityAllocator` and only escapes
once the retry budget is spent.

Usage:

    from storehost.core.exceptions import CapacityError

    raise CapacityError(listing.id, requested=7, available=6)
"""

from __future__ import annotations

import logging

__all__ = [
    "StorehostError",
    "ConfigError",
    "ValidationError",
    "NotFoundError",
    "CapacityError",
    "ConcurrencyConflict",
    "RentalStateError",
    "StorageError",
    "SearchError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class StorehostError(Exception):
    """Root exception for all Storehost errors."""


class ConfigError(StorehostError):
    """Raised when the application configuration is invalid or incomplete."""


# ---------------------------------------------------------------------------
# Caller errors
# ---------------------------------------------------------------------------


class ValidationError(StorehostError):
    """Raised for malformed input.

    Examples:
        - Listing capacity below 1 or a negative price.
        - Coordinates outside ``[-90, 90]`` / ``[-180, 180]``.
        - A booking for fewer than one box, or a pickup before the dropoff.
    """


class NotFoundError(StorehostError):
    """Raised when a referenced listing, rental or user does not exist.

    Args:
        entity: Kind of entity that was looked up (``"listing"``, ``"rental"``,
            ``"user"``).
        entity_id: The identifier that did not resolve.
    """

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id!r}")


class CapacityError(StorehostError):
    """Raised when a booking asks for more boxes than the listing has left.

    The caller may retry with a smaller quantity.

    Args:
        listing_id: Listing the booking targeted.
        requested: Boxes requested.
        available: Boxes remaining at the time of the check.
    """

    def __init__(self, listing_id: str, requested: int, available: int) -> None:
        self.listing_id = listing_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Listing {listing_id!r} has {available} box(es) left, {requested} requested"
        )


class RentalStateError(StorehostError):
    """Raised when a rental is not in a state that allows the operation.

    Args:
        rental_id: The rental in question.
        status: Its current status.
    """

    def __init__(self, rental_id: str, status: str) -> None:
        self.rental_id = rental_id
        self.status = status
        super().__init__(f"Rental {rental_id!r} is {status}")


# ---------------------------------------------------------------------------
# Engine / storage errors
# ---------------------------------------------------------------------------


class ConcurrencyConflict(StorehostError):
    """Raised when the conditional capacity update matched zero rows.

    Another booking changed ``rem_space`` between the read and the write.

    Args:
        listing_id: Listing whose update lost the race.
    """

    def __init__(self, listing_id: str) -> None:
        self.listing_id = listing_id
        super().__init__(f"Concurrent update on listing {listing_id!r}")


class StorageError(StorehostError):
    """Raised when a database or persistence operation fails."""


class SearchError(StorehostError):
    """Raised when ranking search results fails for an internal reason."""
