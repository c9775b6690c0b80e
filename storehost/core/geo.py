"""Great-circle distance between two coordinates.

Uses the Haversine formula on a spherical Earth.  The result ignores the
Earth's flattening, which is well below the precision search ranking needs.

Typical usage::

    from storehost.core.geo import DistanceUnit, distance

    km = distance(33.75, -84.40, 33.78, -84.39)
    mi = distance(33.75, -84.40, 33.78, -84.39, DistanceUnit.MI)
"""

from __future__ import annotations

import math
from enum import StrEnum

__all__ = ["DistanceUnit", "TWO_R", "distance"]


class DistanceUnit(StrEnum):
    """Output unit of :func:`distance`."""

    KM = "km"
    MI = "mi"


#: Twice the mean Earth radius per unit (6371 km, 3959 statute miles).
TWO_R: dict[DistanceUnit, float] = {
    DistanceUnit.KM: 12742.0,
    DistanceUnit.MI: 7918.0,
}


def distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    unit: DistanceUnit = DistanceUnit.KM,
) -> float:
    """Return the Haversine distance between two points given in degrees.

    No range validation is performed; out-of-range coordinates still yield a
    number.

    Args:
        lat1: Latitude of the first point.
        lon1: Longitude of the first point.
        lat2: Latitude of the second point.
        lon2: Longitude of the second point.
        unit: :attr:`DistanceUnit.KM` (default) or :attr:`DistanceUnit.MI`.

    Returns:
        Distance in the requested unit.  Exactly ``0.0`` for identical points.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    half_dlat = math.radians(lat2 - lat1) / 2
    half_dlon = math.radians(lon2 - lon1) / 2

    a = math.sin(half_dlat) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(half_dlon) ** 2
    # Rounding can push sqrt(a) a hair above 1 for antipodal points.
    return TWO_R[DistanceUnit(unit)] * math.asin(min(math.sqrt(a), 1.0))
