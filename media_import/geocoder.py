"""
Reverse geocoding through a Nominatim-compatible HTTP service.

Lookups go through the location cache first. A miss waits for a slot on
the shared DispatchGate, performs one GET request and extracts a place name
from the response. Failed or empty lookups return None and are not cached,
so they are retried on the next run.
"""

import logging
import threading
from typing import Any, Callable

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from media_import.config import DEFAULT_NOMINATIM_URL, DEFAULT_USER_AGENT
from media_import.geocode_cache import GeocodeCache, round_coordinates
from media_import.rate_limiter import DispatchGate
from media_import.results import ErrorKind, ErrorTally, capture, recover

logger = logging.getLogger(__name__)

NOMINATIM_ZOOM = 10


class GeocodeError(Exception):
    """Raised when a reverse geocoding response yields no place name."""
    pass


# ────────────────────────────────────────────────────────────────────────────────
# Place name extraction
# ────────────────────────────────────────────────────────────────────────────────

def _address_field(name: str) -> Callable[[dict], str | None]:
    def extract(payload: dict) -> str | None:
        address = payload.get("address")
        if not isinstance(address, dict):
            return None
        value = address.get(name)
        return value if isinstance(value, str) and value.strip() else None

    extract.__name__ = f"address_{name}"
    return extract


def _display_name(payload: dict) -> str | None:
    value = payload.get("display_name")
    return value if isinstance(value, str) and value.strip() else None


# Most specific first; the first extractor returning a value wins
PLACE_NAME_EXTRACTORS: tuple[Callable[[dict], str | None], ...] = (
    _address_field("city"),
    _address_field("town"),
    _address_field("village"),
    _address_field("hamlet"),
    _address_field("county"),
    _address_field("state"),
    _address_field("country"),
    _display_name,
)


def extract_place_name(payload: Any) -> str | None:
    """
    Pick the most specific place name from a reverse geocoding response.

    Args:
        payload: Decoded JSON body.

    Returns:
        Place name, or None if no known field holds a value.
    """
    if not isinstance(payload, dict):
        return None
    for extractor in PLACE_NAME_EXTRACTORS:
        name = extractor(payload)
        if name:
            return name
    return None


# ────────────────────────────────────────────────────────────────────────────────
# Geocoder
# ────────────────────────────────────────────────────────────────────────────────

def create_session(user_agent: str = DEFAULT_USER_AGENT, pool_size: int = 10) -> requests.Session:
    """
    Create a pooled HTTP session for geocoding requests.

    Transport retries are disabled: every request must pass the dispatch gate.
    """
    session = requests.Session()
    session.headers.update({
        "User-Agent": user_agent,
        "Accept": "application/json",
    })
    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=pool_size,
        max_retries=Retry(total=0, raise_on_status=False),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class RateLimitedGeocoder:
    """
    Resolve coordinates to place names with caching and a global rate limit.

    Attributes:
        cache: Shared location cache.
        gate: Dispatch gate serializing outbound requests.
        dispatch_count: Requests sent over the network.
        cache_hits: Lookups answered from the cache.
        failures: Lookups that resolved to None.
    """

    def __init__(
        self,
        cache: GeocodeCache | None = None,
        gate: DispatchGate | None = None,
        session: requests.Session | None = None,
        base_url: str = DEFAULT_NOMINATIM_URL,
        timeout: float = 10.0,
        tally: ErrorTally | None = None
    ):
        """
        Initialize the geocoder.

        Args:
            cache: Location cache. Defaults to an in-memory cache.
            gate: Dispatch gate. Defaults to one slot every 1.1 seconds.
            session: HTTP session (anything with a requests-style ``get``).
            base_url: Reverse geocoding endpoint.
            timeout: Request timeout in seconds.
            tally: Optional shared failure counter.
        """
        self.cache = cache if cache is not None else GeocodeCache()
        self.gate = gate or DispatchGate()
        self.session = session or create_session()
        self.base_url = base_url
        self.timeout = timeout
        self.tally = tally
        self.dispatch_count = 0
        self.cache_hits = 0
        self.failures = 0
        self._stats_lock = threading.Lock()

    def find_location(self, lat: float, lon: float) -> str | None:
        """
        Resolve a coordinate pair to a place name.

        Never raises; network and parsing failures are logged and yield None.

        Args:
            lat: Latitude in decimal degrees.
            lon: Longitude in decimal degrees.

        Returns:
            Place name, or None if it could not be resolved.
        """
        key = round_coordinates(lat, lon)
        cached = self.cache.get(key)
        if cached is not None:
            self._increment("cache_hits")
            logger.debug(f"Location cache hit for {key}: {cached}")
            return cached

        result = capture(ErrorKind.GEOCODE, f"[{lat}, {lon}]", self._resolve, lat, lon)
        location = recover(result, lambda: None, tally=self.tally)

        if location:
            self.cache.set(key, location)
            logger.debug(f"Geocoded {key} -> {location}")
        else:
            self._increment("failures")
        return location

    def _resolve(self, lat: float, lon: float) -> str:
        payload = self.gate.run(self._dispatch, lat, lon)
        name = extract_place_name(payload)
        if not name:
            raise GeocodeError("no address found")
        return name

    def _dispatch(self, lat: float, lon: float) -> Any:
        self._increment("dispatch_count")
        response = self.session.get(
            self.base_url,
            params={
                "format": "json",
                "lat": lat,
                "lon": lon,
                "zoom": NOMINATIM_ZOOM,
            },
            timeout=self.timeout,
        )
        if not 200 <= response.status_code < 300:
            raise GeocodeError(f"HTTP error, status {response.status_code}")
        return response.json()

    def _increment(self, counter: str) -> None:
        with self._stats_lock:
            setattr(self, counter, getattr(self, counter) + 1)

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
        logger.debug("Geocoder session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
