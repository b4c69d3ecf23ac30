from __future__ import annotations

from typing import Sequence

import numpy as np

from ..errors import EmptyInputError
from .models import Location

EARTH_RADIUS_MILES = 3959.0
GROUP_CENTER_LABEL = "Group Center"


def distances_miles(
    origin_lat: float,
    origin_lng: float,
    latitudes: Sequence[float] | np.ndarray,
    longitudes: Sequence[float] | np.ndarray,
) -> np.ndarray:
    """Haversine distance from one point to many, in miles."""
    lat1 = np.radians(np.asarray(latitudes, dtype=float))
    lng1 = np.radians(np.asarray(longitudes, dtype=float))
    lat2 = np.radians(origin_lat)
    lng2 = np.radians(origin_lng)

    d_lat = lat2 - lat1
    d_lng = lng2 - lng1
    a = np.sin(d_lat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(d_lng / 2) ** 2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def distance_miles(a: Location, b: Location) -> float:
    return float(distances_miles(a.latitude, a.longitude, [b.latitude], [b.longitude])[0])


def centroid(locations: Sequence[Location]) -> Location:
    """Arithmetic mean of latitude and longitude, equally weighted."""
    if not locations:
        raise EmptyInputError("Cannot compute the centre of zero locations")

    lats = np.array([loc.latitude for loc in locations], dtype=float)
    lngs = np.array([loc.longitude for loc in locations], dtype=float)
    return Location(
        latitude=float(lats.mean()),
        longitude=float(lngs.mean()),
        address=GROUP_CENTER_LABEL,
    )
