"""
Geocoding

Resolves normalized addresses to coordinates through a Nominatim-compatible
search endpoint. Answers are cached in-process so reruns over the same
listings do not repeat lookups.
"""
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests

from config.settings import settings
from src.harvester.errors import SourceConnectionError
from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GeocodingResult:
    """Coordinates returned for one address."""
    latitude: float
    longitude: float
    formatted_address: Optional[str] = None


class Geocoder(Protocol):
    def geocode(self, address: str) -> Optional[GeocodingResult]:
        ...


class NominatimGeocoder:
    """
    Geocoder backed by the Nominatim search API.

    Args:
        base_url: Search endpoint (defaults to settings.geocoding_url)
        cache_size: Maximum cached answers, least recently used evicted first
        session: requests session override (for testing)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        cache_size: Optional[int] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[int] = None,
    ):
        self.base_url = base_url or settings.geocoding_url
        self.cache_size = cache_size or settings.geocoding_cache_size
        self.timeout = timeout or settings.http_timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": settings.http_user_agent})
        self._cache: "OrderedDict[str, Optional[GeocodingResult]]" = OrderedDict()
        self._lock = threading.Lock()

    def geocode(self, address: str) -> Optional[GeocodingResult]:
        """
        Look up one address.

        Args:
            address: Full normalized address

        Returns:
            GeocodingResult, or None when the service has no match

        Raises:
            SourceConnectionError: When the service cannot be reached
        """
        key = address.strip().upper()
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]

        params = {"q": address, "format": "json", "limit": 1}
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            matches = response.json()
        except (requests.RequestException, ValueError) as e:
            raise SourceConnectionError(
                f"Geocoding request failed: {e}",
                details={"address": address[:100]},
            ) from e

        try:
            result = self._parse_matches(matches)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise SourceConnectionError(
                f"Malformed geocoding response: {type(e).__name__}: {e}",
                details={"address": address[:100]},
            ) from e

        with self._lock:
            self._cache[key] = result
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)

        logger.debug("address_geocoded", address=address[:50], found=result is not None)
        return result

    @staticmethod
    def _parse_matches(matches: Any) -> Optional[GeocodingResult]:
        if not matches:
            return None
        best = matches[0]
        return GeocodingResult(
            latitude=float(best["lat"]),
            longitude=float(best["lon"]),
            formatted_address=best.get("display_name"),
        )
