"""
Persistent cache of reverse-geocoded place names.

Coordinates are keyed at roughly 100 m resolution so that nearby photos
share one lookup. The cache lives in memory during a run and is stored on
disk as a JSON array of ``[key, value]`` pairs.
"""

import json
import logging
import threading
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

logger = logging.getLogger(__name__)

# 3 decimal places ~ 100 m
COORDINATE_PRECISION = Decimal("0.001")


def _round_coordinate(value: float) -> str:
    rounded = Decimal(str(value)).quantize(COORDINATE_PRECISION, rounding=ROUND_HALF_UP)
    if rounded.is_zero():
        rounded = abs(rounded)
    return str(rounded)


def round_coordinates(lat: float, lon: float) -> str:
    """
    Build the cache key for a coordinate pair.

    Each coordinate is rounded half-up to 3 decimals on its decimal
    representation, so ``(48.8584, 2.2945)`` becomes ``"48.858,2.295"``.

    Args:
        lat: Latitude in decimal degrees.
        lon: Longitude in decimal degrees.

    Returns:
        Key of the form ``"<lat>,<lon>"``.
    """
    return f"{_round_coordinate(lat)},{_round_coordinate(lon)}"


class GeocodeCache:
    """
    Thread-safe map of rounded coordinate keys to place names.

    Attributes:
        path: File the cache is loaded from and saved to.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else None
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: str) -> None:
        if not value:
            raise ValueError(f"Refusing to cache empty location for {key}")
        with self._lock:
            self._entries[key] = value

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def items(self) -> list[tuple[str, str]]:
        with self._lock:
            return list(self._entries.items())

    def load(self) -> int:
        """
        Merge entries from the cache file into memory.

        A missing or unreadable file is treated as an empty cache.

        Returns:
            Number of entries loaded from disk.
        """
        if self.path is None:
            return 0

        if not self.path.exists():
            logger.info(f"No location cache at {self.path}, a new one will be created")
            return 0

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, list):
                raise ValueError("expected a JSON array of [key, value] pairs")
            entries = {}
            for pair in data:
                if not isinstance(pair, list) or len(pair) != 2:
                    raise ValueError(f"malformed cache entry: {pair!r}")
                key, value = pair
                if value:
                    entries[str(key)] = str(value)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable location cache {self.path}: {e}")
            return 0

        with self._lock:
            self._entries.update(entries)

        logger.info(f"Loaded {len(entries)} locations from cache")
        return len(entries)

    def save(self) -> None:
        """
        Write every entry to the cache file, replacing its contents.

        Raises:
            OSError: If the file cannot be written.
        """
        if self.path is None:
            return

        data = [list(pair) for pair in self.items()]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(data, ensure_ascii=False, indent=2),
            encoding="utf-8"
        )
        logger.info(f"Saved {len(data)} locations to cache")
