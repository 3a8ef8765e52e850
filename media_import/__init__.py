"""
Media import pipeline.

This package provides a complete batch import for photo/video trees:
- Scanning directories into galleries
- Extracting EXIF capture metadata
- Reverse geocoding GPS coordinates with a persistent, rate-limited cache
- Generating vignette and full-size derivatives
- Writing one manifest per gallery for the site renderer
"""

from media_import.config import ImportConfig, load_config
from media_import.file_scanner import DirectoryScanner
from media_import.geocode_cache import GeocodeCache, round_coordinates
from media_import.geocoder import RateLimitedGeocoder
from media_import.manifest_writer import ManifestWriter
from media_import.metadata_extractor import MetadataExtractor
from media_import.models import GalleryInfo, MediaMetadata
from media_import.processor import FatalSetupError, ImportProcessor, ImportStats
from media_import.rate_limiter import DispatchGate
from media_import.scheduler import ConcurrencyScheduler
from media_import.transcoder import MediaTranscoder

__all__ = [
    "ImportConfig",
    "load_config",
    "DirectoryScanner",
    "GeocodeCache",
    "round_coordinates",
    "RateLimitedGeocoder",
    "ManifestWriter",
    "MetadataExtractor",
    "GalleryInfo",
    "MediaMetadata",
    "FatalSetupError",
    "ImportProcessor",
    "ImportStats",
    "DispatchGate",
    "ConcurrencyScheduler",
    "MediaTranscoder",
]
