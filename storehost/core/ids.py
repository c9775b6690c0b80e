"""Identifier strategy for stored entities.

Listings, rentals and users are keyed by opaque strings generated by the
storage layer on insert.  Callers must treat them as opaque: no ordering,
no embedded meaning.

Typical usage::

    from storehost.core.ids import new_id

    listing_id = new_id()
"""

from __future__ import annotations

import uuid

__all__ = ["new_id"]


def new_id() -> str:
    """Return a fresh 32-character hex identifier (uuid4)."""
    return uuid.uuid4().hex
