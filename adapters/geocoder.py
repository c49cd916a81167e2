"""Best-effort geocoding biased toward the home region."""
import logging
import math
import re
from typing import Optional, Tuple

import requests
from cachetools import TTLCache

logger = logging.getLogger(__name__)

GEOCODE_URL = 'https://maps.googleapis.com/maps/api/geocode/json'

CACHE_TTL_SECONDS = 7 * 24 * 60 * 60
EARTH_RADIUS_KM = 6371

STATE_HINT_PATTERN = re.compile(r'\b(?:WA|Washington)\b|\b\d{5}\b|,\s*[A-Z]{2}\s*$')

Coordinates = Tuple[float, float]


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    lat1, lng1 = map(math.radians, a)
    lat2, lng2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


class Geocoder:
    """
    Google Geocoding API client.

    Addresses without a state or postal code get the home-region hint
    appended. A hinted result further than max_distance_km from home is
    treated as a mismatch and the lookup is retried without the hint.
    Lookups never raise; failures return None.
    """

    def __init__(
        self,
        api_key: Optional[str],
        home_region: str = 'Yakima, WA',
        home_location: Coordinates = (46.600825, -120.503357),
        max_distance_km: float = 160,
        timeout: int = 10,
        cache_size: int = 1024
    ):
        self.api_key = api_key
        self.home_region = home_region
        self.home_location = home_location
        self.max_distance_km = max_distance_km
        self.timeout = timeout
        self.cache = TTLCache(maxsize=cache_size, ttl=CACHE_TTL_SECONDS)

    def is_available(self) -> bool:
        return bool(self.api_key)

    def geocode(self, address: Optional[str]) -> Optional[Coordinates]:
        """
        Resolve free-text address to (latitude, longitude).

        Args:
            address: Location or street address text

        Returns:
            Coordinates, or None when unconfigured, not found or failed
        """
        if not self.is_available() or not address or not address.strip():
            return None

        key = address.strip().lower()
        if key in self.cache:
            return self.cache[key]

        result = None
        if self.home_region and not STATE_HINT_PATTERN.search(address):
            result = self._lookup(f"{address.strip()}, {self.home_region}")
            if result and haversine_km(result, self.home_location) > self.max_distance_km:
                logger.info(f"Geocode for '{address}' too far from home region, retrying without hint")
                result = self._lookup(address.strip())
        else:
            result = self._lookup(address.strip())

        if result is not None:
            self.cache[key] = result
        return result

    def _lookup(self, query: str) -> Optional[Coordinates]:
        params = {'address': query, 'key': self.api_key, 'region': 'us'}
        try:
            response = requests.get(GEOCODE_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Geocoding request failed for '{query}': {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Geocoding returned unexpected payload for '{query}'")
            return None

        status = data.get('status')
        if status != 'OK' or not data.get('results'):
            if status not in ('OK', 'ZERO_RESULTS'):
                logger.warning(f"Geocoding returned {status} for '{query}'")
            return None

        try:
            location = data['results'][0]['geometry']['location']
            return float(location['lat']), float(location['lng'])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Geocoding returned malformed result for '{query}': {e!r}")
            return None
