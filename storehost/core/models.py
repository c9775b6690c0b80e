"""Storehost core domain models.

This module defines the entities shared by the storage and engine layers:

* :class:`HostProfile` — the minimal view of a user the marketplace needs
  (name and contact details, never credentials).
* :class:`Listing` — a host's offer of storage boxes at a location, time
  window and monthly price.
* :class:`Rental` — a renter's booking of some boxes within a listing.
* :class:`SearchResult` — a listing ranked by distance from a query point.

All models are **frozen**.  State changes (``rem_space`` going down on a
booking, a rental being cancelled) happen in storage and are observed by
re-reading, never by mutating an instance in place.

Timestamps are normalised to timezone-aware UTC.  A naive ``datetime`` is
taken to already be in UTC.

Typical usage::

    from storehost.core.models import Listing

    listing = Listing(
        id="4f0c…",
        host_id="a81e…",
        lat=33.78,
        lon=-84.39,
        capacity=10,
        rem_space=10,
        start_date=datetime(2024, 1, 1, tzinfo=UTC),
        end_date=datetime(2024, 12, 31, tzinfo=UTC),
        price=50,
    )
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator

__all__ = [
    "LISTING_DEFAULT_END",
    "HostProfile",
    "Listing",
    "Rental",
    "RentalStatus",
    "SearchResult",
    "ensure_utc",
]

logger = logging.getLogger(__name__)

#: End of the availability window when a host does not give one.
LISTING_DEFAULT_END: datetime = datetime(2200, 2, 1, tzinfo=UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as a timezone-aware UTC datetime.

    Naive datetimes are assumed to be UTC already and are tagged, not shifted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RentalStatus(StrEnum):
    """Lifecycle state of a :class:`Rental`.

    Only ``ACTIVE`` rentals count against a listing's capacity.
    """

    ACTIVE = "active"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class HostProfile(BaseModel):
    """Name and contact fields of a user, as exposed alongside listings.

    Attributes:
        id: Opaque user identifier.
        first_name: Given name.
        last_name: Family name.
        email: Contact e-mail address.
        phone: Contact phone number; ``None`` if not given.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    first_name: str = Field(default="")
    last_name: str = Field(default="")
    email: str = Field(default="")
    phone: str | None = Field(default=None)

    @field_validator("phone", mode="before")
    @classmethod
    def _blank_phone_to_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def full_name(self) -> str:
        """``"<first> <last>"``, as shown next to a listing in search results."""
        return f"{self.first_name} {self.last_name}".strip()


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class Listing(BaseModel):
    """A unit of offered storage.

    ``rem_space`` is stored rather than derived: it always equals
    ``capacity`` minus the boxes of every active rental against the listing.
    Only :class:`~storehost.engine.allocator.CapacityAllocator` changes it.

    Attributes:
        id: Opaque listing identifier generated by the store.
        host_id: Identifier of the owning user.
        host: The owner's profile, when the store resolved it.
        lat: Latitude in degrees, ``[-90, 90]``.
        lon: Longitude in degrees, ``[-180, 180]``.
        capacity: Total boxes on offer (at least 1).
        rem_space: Boxes not yet booked, ``0 <= rem_space <= capacity``.
        start_date: First moment the space is available.
        end_date: Last moment the space is available.
        price: Price per month (non-negative).
        image: Opaque image reference; ``None`` if absent.
        created_at: Set by the store on insert.
        updated_at: Set by the store on every write.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    host_id: str = Field(..., min_length=1)
    host: HostProfile | None = Field(default=None)
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    capacity: int = Field(..., ge=1)
    rem_space: int = Field(..., ge=0)
    start_date: datetime
    end_date: datetime
    price: float = Field(..., ge=0.0)
    image: str | None = Field(default=None)
    created_at: datetime | None = Field(default=None)
    updated_at: datetime | None = Field(default=None)

    @field_validator("start_date", "end_date", "created_at", "updated_at")
    @classmethod
    def _to_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @field_validator("image", mode="before")
    @classmethod
    def _blank_image_to_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _check_invariants(self) -> Listing:
        if self.rem_space > self.capacity:
            raise ValueError(
                f"rem_space ({self.rem_space}) exceeds capacity ({self.capacity})"
            )
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date ({self.start_date.isoformat()}) "
                f"is after end_date ({self.end_date.isoformat()})"
            )
        return self

    @property
    def booked(self) -> int:
        """Boxes currently held by active rentals."""
        return self.capacity - self.rem_space

    def covers(self, start: datetime, end: datetime) -> bool:
        """Return ``True`` if ``[start, end]`` lies inside the availability window."""
        return self.start_date <= ensure_utc(start) and ensure_utc(end) <= self.end_date


# ---------------------------------------------------------------------------
# Rentals
# ---------------------------------------------------------------------------


class Rental(BaseModel):
    """A booking of ``boxes`` within a listing, from ``dropoff`` to ``pickup``."""

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    listing_id: str = Field(..., min_length=1)
    renter_id: str = Field(..., min_length=1)
    boxes: int = Field(..., ge=1)
    dropoff: datetime
    pickup: datetime
    status: RentalStatus = Field(default=RentalStatus.ACTIVE)
    created_at: datetime | None = Field(default=None)
    cancelled_at: datetime | None = Field(default=None)

    @field_validator("dropoff", "pickup", "created_at", "cancelled_at")
    @classmethod
    def _to_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @model_validator(mode="after")
    def _dropoff_before_pickup(self) -> Rental:
        if self.dropoff > self.pickup:
            raise ValueError(
                f"dropoff ({self.dropoff.isoformat()}) is after pickup ({self.pickup.isoformat()})"
            )
        return self

    @property
    def is_active(self) -> bool:
        return self.status == RentalStatus.ACTIVE


# ---------------------------------------------------------------------------
# Search output
# ---------------------------------------------------------------------------


class SearchResult(BaseModel):
    """One ranked search hit.

    Attributes:
        listing: The matching listing, host resolved.
        distance_km: Distance from the query point in kilometres, rounded to
            two decimals.
        host_name: The host's display name; empty if the profile is missing.
    """

    model_config = {"frozen": True}

    listing: Listing
    distance_km: float = Field(..., ge=0.0)
    host_name: str = Field(default="")
