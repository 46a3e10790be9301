"""Great-circle helpers shared by the clusterer and the location labeler."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

EARTH_RADIUS_KM = 6371.0
KM_PER_MILE = 1.609344


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two points in degrees."""
    lat1, lon1, lat2, lon2 = map(np.radians, (lat1, lon1, lat2, lon2))
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    return float(2 * EARTH_RADIUS_KM * np.arctan2(np.sqrt(a), np.sqrt(1 - a)))


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_km(lat1, lon1, lat2, lon2) / KM_PER_MILE


def centroid(latitudes: Sequence[float], longitudes: Sequence[float]) -> tuple[float, float]:
    """Arithmetic mean of the coordinates; ``(0.0, 0.0)`` for no points."""
    if len(latitudes) == 0:
        return (0.0, 0.0)
    return (float(np.mean(latitudes)), float(np.mean(longitudes)))


def max_spread_km(
    center: tuple[float, float],
    latitudes: Sequence[float],
    longitudes: Sequence[float],
) -> float:
    """Distance from ``center`` to the farthest of the given points."""
    if len(latitudes) == 0:
        return 0.0
    return max(haversine_km(center[0], center[1], lat, lon) for lat, lon in zip(latitudes, longitudes))


def min_distance_miles(point: tuple[float, float], others: Sequence[tuple[float, float]]) -> float:
    """Smallest distance in miles from ``point`` to any of ``others`` (inf if empty)."""
    return min(
        (haversine_miles(point[0], point[1], lat, lon) for lat, lon in others),
        default=float("inf"),
    )
