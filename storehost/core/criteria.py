"""Search constraints for listing lookups.

Defines :class:`SearchFilter`, the value object passed from
:class:`~storehost.engine.search.SearchEngine` to
:meth:`~storehost.storage.listings.ListingStore.find_nearby`.

A listing matches when **all** of the following hold:

* ``rem_space >= min_capacity``
* ``price <= max_price`` (skipped when ``max_price`` is ``None``)
* ``listing.start_date <= filter.start_date``
* ``listing.end_date >= filter.end_date``

In words: the space has enough boxes left, is affordable, and is already
open by ``start_date`` and still open at ``end_date``.  With the defaults
(``start_date`` far in the future, ``end_date`` = now) every listing whose
window has not closed yet matches.

Typical usage::

    from storehost.core.criteria import SearchFilter

    flt = SearchFilter(min_capacity=3, max_price=60)
    if flt.matches(listing):
        ...
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

from storehost.core.models import ensure_utc

if TYPE_CHECKING:
    from storehost.core.models import Listing

__all__ = ["SEARCH_DEFAULT_START", "SearchFilter"]

logger = logging.getLogger(__name__)

#: ``start_date`` used when the caller gives none: late enough that any
#: listing's window has opened by then.
SEARCH_DEFAULT_START: datetime = datetime(2300, 2, 1, tzinfo=UTC)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SearchFilter(BaseModel):
    """Capacity, price and date constraints of a listing search.

    All bounds are *inclusive*.

    Attributes:
        min_capacity: Minimum boxes that must still be free.
        max_price: Maximum monthly price; ``None`` means no upper bound.
        start_date: The listing must be available from this moment or earlier.
        end_date: The listing must still be available at this moment.
    """

    model_config = {"frozen": True}

    min_capacity: int = Field(
        default=1,
        ge=1,
        description="Minimum remaining boxes (inclusive).",
    )
    max_price: float | None = Field(
        default=None,
        ge=0.0,
        description="Maximum monthly price (inclusive); None = no upper bound.",
    )
    start_date: datetime = Field(
        default=SEARCH_DEFAULT_START,
        description="Latest acceptable availability start.",
    )
    end_date: datetime = Field(
        default_factory=_utc_now,
        description="Earliest acceptable availability end.",
    )

    @field_validator("start_date", "end_date")
    @classmethod
    def _to_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def matches(self, listing: Listing) -> bool:
        """Return ``True`` if *listing* satisfies every constraint.

        In-memory twin of the SQL predicate in
        :meth:`~storehost.storage.listings.ListingStore.find_nearby`.
        """
        if listing.rem_space < self.min_capacity:
            return False
        if self.max_price is not None and listing.price > self.max_price:
            return False
        if listing.start_date > self.start_date:
            return False
        return listing.end_date >= self.end_date
