#!/usr/bin/env python3
"""
Spherical geodesy helpers.

The tile grid and every raster work in radians; people read degrees.  These
helpers convert between the two and measure along the Earth's surface.

Usage:
    from proxterrain.utils.geodesy import haversine_km, to_degrees_lat_long

    km = haversine_km(lat1, lon1, lat2, lon2)
"""

import math
from typing import Tuple

import numpy as np

from proxterrain.utils.constants import EARTH_MEAN_RADIUS_KM


# =============================================================================
# Distances
# =============================================================================

def central_angle(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Angle subtended at the Earth's centre between two points.

    Args:
        lat1, lon1: First point in radians
        lat2, lon2: Second point in radians

    Returns:
        Angle in radians
    """
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2)
    return 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float,
                 radius_km: float = EARTH_MEAN_RADIUS_KM) -> float:
    """Great-circle distance in km between two points given in radians."""
    return radius_km * central_angle(lat1, lon1, lat2, lon2)


def unit_vectors(longitudes, latitudes) -> np.ndarray:
    """Unit vectors (..., 3) for arrays of longitude/latitude in radians."""
    longitudes = np.asarray(longitudes, dtype=np.float64)
    latitudes = np.asarray(latitudes, dtype=np.float64)
    cos_lat = np.cos(latitudes)
    return np.stack([cos_lat * np.cos(longitudes), cos_lat * np.sin(longitudes), np.sin(latitudes)], axis=-1)


# =============================================================================
# Conversions
# =============================================================================

def to_degrees_lat_long(lat: float, long: float) -> Tuple[float, float]:
    return math.degrees(lat), math.degrees(long)


def to_radians_lat_long(lat: float, long: float) -> Tuple[float, float]:
    return math.radians(lat), math.radians(long)
