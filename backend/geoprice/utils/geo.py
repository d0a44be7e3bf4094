# geoprice/utils/geo.py
import re
from typing import Optional, Tuple

import numpy as np
from geopy.geocoders import Nominatim
from geopy.exc import GeopyError

from geoprice.core.config import SETTINGS

EARTH_RADIUS_KM = 6371.0

COORD_PATTERN = r'^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$'


def haversine(lat1, lon1, lat2, lon2):
    """Distance in km between points using the Haversine formula.

    Accepts scalars or numpy arrays; arrays broadcast against each other.
    """
    lat1, lon1, lat2, lon2 = map(np.radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def valid_coordinates(lat, lon) -> bool:
    """True when both values are finite numbers within WGS84 ranges."""
    if lat is None or lon is None:
        return False
    try:
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError):
        return False
    if not (np.isfinite(lat) and np.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def get_coordinates(address: str, geolocator=None) -> Optional[Tuple[float, float]]:
    """
    Resolve an address to (lat, lon).

    A "lat, lon" string is parsed directly; anything else goes through
    Nominatim. Returns None when nothing is found.
    """
    if not address or not address.strip():
        return None

    if match := re.match(COORD_PATTERN, address):
        lat, lon = float(match.group(1)), float(match.group(2))
        if valid_coordinates(lat, lon):
            return lat, lon
        return None

    if geolocator is None:
        geolocator = Nominatim(user_agent=SETTINGS['user_agent'], timeout=SETTINGS['geocoder_timeout'])
    try:
        location = geolocator.geocode(address.strip())
    except GeopyError as e:
        print(f"Geocoding error for '{address}': {e}")
        return None

    if location is None:
        return None
    return location.latitude, location.longitude
