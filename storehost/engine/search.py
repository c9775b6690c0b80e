"""Availability search: filter, score by distance, rank.

:class:`SearchEngine` turns a query point plus optional constraints into an
ordered list of :class:`~storehost.core.models.SearchResult`:

1. **Filter** — build a :class:`~storehost.core.criteria.SearchFilter` and
   delegate to :meth:`~storehost.storage.listings.ListingStore.find_nearby`.
2. **Score** — Haversine distance in km from the query point, rounded to two
   decimals.
3. **Rank** — ascending distance.  :func:`sorted` is stable and the store
   returns rows in insertion order, so equal distances keep insertion order
   and the output is a pure function of the data and the query.
4. **Trim** — optional radius and result-count limits.

No matches is an empty list, not an error.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime

import pydantic

from storehost.core import events
from storehost.core.criteria import SearchFilter
from storehost.core.exceptions import SearchError, ValidationError
from storehost.core.geo import DistanceUnit, distance
from storehost.core.models import Listing, SearchResult
from storehost.storage.listings import ListingStore

__all__ = ["SearchEngine", "build_filter"]

logger = logging.getLogger(__name__)


def build_filter(
    min_capacity: int | None = None,
    max_price: float | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> SearchFilter:
    """Build a :class:`SearchFilter`, leaving omitted constraints at their defaults.

    Raises:
        ValidationError: If a constraint is out of range (e.g. ``min_capacity < 1``).
    """
    given = {
        "min_capacity": min_capacity,
        "max_price": max_price,
        "start_date": start_date,
        "end_date": end_date,
    }
    try:
        return SearchFilter(**{k: v for k, v in given.items() if v is not None})
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid search constraints: {exc}") from exc


class SearchEngine:
    """Rank available listings by distance from a point.

    Args:
        listings: Store to query.
        max_results: Keep at most this many ranked results; ``None`` = all.
        max_distance_km: Drop results further away than this; ``None`` = no
            radius.
        clock: Source of "now", the default ``end_date`` of a search.
    """

    def __init__(
        self,
        listings: ListingStore,
        *,
        max_results: int | None = None,
        max_distance_km: float | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._listings = listings
        self._clock = clock
        self._max_results = max_results
        self._max_distance_km = max_distance_km

    async def search(
        self,
        lat: float,
        lon: float,
        min_capacity: int | None = None,
        max_price: float | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[SearchResult]:
        """Return listings matching every constraint, nearest first.

        Args:
            lat: Query latitude in degrees.
            lon: Query longitude in degrees.
            min_capacity: Minimum free boxes (default 1).
            max_price: Maximum monthly price (default unbounded).
            start_date: The listing must be open by this moment
                (default far future).
            end_date: The listing must still be open at this moment
                (default now).

        Returns:
            Ranked results; empty when nothing matches.

        Raises:
            ValidationError: Non-finite query point or invalid constraints.
            StorageError: Propagated from the store.
            SearchError: Scoring failed for an internal reason.
        """
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise ValidationError(f"Query point must be finite, got ({lat}, {lon})")
        if end_date is None:
            end_date = self._clock()
        flt = build_filter(min_capacity, max_price, start_date, end_date)
        candidates = await self._listings.find_nearby(flt)

        try:
            ranked = sorted(
                (self._score(lat, lon, listing) for listing in candidates),
                key=lambda result: result.distance_km,
            )
        except (ArithmeticError, TypeError, ValueError) as exc:
            logger.exception(
                "Ranking failed for query (%s, %s)",
                lat,
                lon,
                extra={"event": events.SEARCH_ERROR},
            )
            raise SearchError(f"Could not rank results for ({lat}, {lon})") from exc

        if self._max_distance_km is not None:
            ranked = [r for r in ranked if r.distance_km <= self._max_distance_km]
        if self._max_results is not None:
            ranked = ranked[: self._max_results]

        logger.info(
            "Search at (%s, %s): %d candidate(s), %d returned",
            lat,
            lon,
            len(candidates),
            len(ranked),
            extra={"event": events.SEARCH_COMPLETE},
        )
        return ranked

    @staticmethod
    def _score(lat: float, lon: float, listing: Listing) -> SearchResult:
        km = round(distance(lat, lon, listing.lat, listing.lon, DistanceUnit.KM), 2)
        host_name = listing.host.full_name if listing.host is not None else ""
        return SearchResult(listing=listing, distance_km=km, host_name=host_name)
