"""
Runtime configuration for the media import pipeline.

Values come from environment variables (a ``.env`` file is honoured) and
can be overridden by command line flags.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_FORMATS = frozenset({".jpg", ".jpeg", ".png", ".webp"})
SUPPORTED_VIDEO_FORMATS = frozenset({".mp4", ".webm", ".mov"})

DEFAULT_VIGNETTE_WIDTH = 640
DEFAULT_QUALITY = 75
DEFAULT_GEOCODE_INTERVAL = 1.1
DEFAULT_GEOCODE_TIMEOUT = 10.0
DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org/reverse"
DEFAULT_USER_AGENT = "media-import/0.1 (gallery importer)"


def default_concurrency() -> int:
    """Number of hardware cores, at least one."""
    return os.cpu_count() or 1


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class ImportConfig:
    """Settings for one import run."""
    media_dir: Path | None = None
    assets_dir: Path = Path("assets")
    content_dir: Path = Path("src/content/galleries")
    cache_path: Path = Path("cached-locations.json")
    vignette_width: int = DEFAULT_VIGNETTE_WIDTH
    quality: int = DEFAULT_QUALITY
    concurrency: int = field(default_factory=default_concurrency)
    nominatim_url: str = DEFAULT_NOMINATIM_URL
    user_agent: str = DEFAULT_USER_AGENT
    geocode_interval: float = DEFAULT_GEOCODE_INTERVAL
    geocode_timeout: float = DEFAULT_GEOCODE_TIMEOUT

    def __post_init__(self):
        if self.vignette_width <= 0:
            raise ValueError(f"Vignette width must be positive: {self.vignette_width}")
        if not 1 <= self.quality <= 100:
            raise ValueError(f"Quality must be between 1 and 100: {self.quality}")
        if self.concurrency <= 0:
            raise ValueError(f"Concurrency must be positive: {self.concurrency}")

    def with_overrides(self, **overrides) -> "ImportConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


def load_config() -> ImportConfig:
    """
    Build configuration from environment variables.

    Returns:
        ImportConfig populated from the environment with defaults.

    Raises:
        ValueError: If a numeric variable cannot be parsed or is out of range.
    """
    media_dir = os.getenv("MEDIA_DIR")

    return ImportConfig(
        media_dir=Path(media_dir) if media_dir else None,
        assets_dir=Path(os.getenv("ASSETS_DIR", "assets")),
        content_dir=Path(os.getenv("CONTENT_DIR", "src/content/galleries")),
        cache_path=Path(os.getenv("GEOCODE_CACHE_PATH", "cached-locations.json")),
        vignette_width=_env_int("VIGNETTE_WIDTH", DEFAULT_VIGNETTE_WIDTH),
        quality=_env_int("JPEG_QUALITY", DEFAULT_QUALITY),
        concurrency=_env_int("CONCURRENCY", default_concurrency()),
        nominatim_url=os.getenv("NOMINATIM_URL", DEFAULT_NOMINATIM_URL),
        user_agent=os.getenv("NOMINATIM_USER_AGENT", DEFAULT_USER_AGENT),
        geocode_interval=_env_float("GEOCODE_INTERVAL", DEFAULT_GEOCODE_INTERVAL),
        geocode_timeout=_env_float("GEOCODE_TIMEOUT", DEFAULT_GEOCODE_TIMEOUT),
    )
