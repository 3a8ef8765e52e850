"""
Metadata extraction module for media files.

Reads EXIF capture data from images:
- Capture date (DateTimeOriginal, then DateTime)
- Camera, lens and exposure settings
- GPS coordinates, resolved to a place name by the geocoder

Videos and unreadable files get a default record; extraction never raises.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import piexif
from PIL import Image

from media_import.config import SUPPORTED_IMAGE_FORMATS
from media_import.geocoder import RateLimitedGeocoder
from media_import.models import (
    NOT_AVAILABLE,
    UNKNOWN_CAMERA,
    UNKNOWN_LENS,
    UNKNOWN_LOCATION,
    MediaMetadata,
)
from media_import.results import ErrorKind, ErrorTally, capture, recover

logger = logging.getLogger(__name__)


class MetadataExtractor:
    """
    Extracts capture metadata from media files.

    Attributes:
        geocoder: Resolves GPS coordinates to place names. Without one,
            photos keep the default location.
        tally: Optional shared failure counter.
    """

    def __init__(
        self,
        geocoder: RateLimitedGeocoder | None = None,
        tally: ErrorTally | None = None
    ):
        self.geocoder = geocoder
        self.tally = tally

    def extract(
        self,
        filepath: str | Path,
        default_location: str = UNKNOWN_LOCATION
    ) -> MediaMetadata:
        """
        Extract metadata from a media file.

        Args:
            filepath: Path to the media file.
            default_location: Location used when no GPS data resolves.

        Returns:
            MediaMetadata; populated with defaults if extraction fails.
        """
        filepath = Path(filepath)

        if filepath.suffix.lower() not in SUPPORTED_IMAGE_FORMATS:
            return MediaMetadata.default(filepath, location=default_location)

        result = capture(
            ErrorKind.EXTRACTION,
            str(filepath),
            self._extract_image,
            filepath,
            default_location
        )
        return recover(
            result,
            lambda: MediaMetadata.default(
                filepath,
                location=UNKNOWN_LOCATION,
                camera=UNKNOWN_CAMERA,
                lens=UNKNOWN_LENS
            ),
            tally=self.tally
        )

    def _extract_image(self, filepath: Path, default_location: str) -> MediaMetadata:
        """Read EXIF tags from an image. Raises on unreadable files."""
        logger.debug(f"Extracting metadata from: {filepath.name}")

        with Image.open(filepath) as img:
            exif_bytes = img.info.get("exif")

        exif_dict = piexif.load(exif_bytes) if exif_bytes else {}
        ifd_0 = exif_dict.get("0th", {})
        exif_ifd = exif_dict.get("Exif", {})
        gps_ifd = exif_dict.get("GPS", {})

        metadata = MediaMetadata.default(
            filepath,
            location=default_location,
            camera=UNKNOWN_CAMERA,
            lens=UNKNOWN_LENS
        )

        date_taken = (
            self._parse_exif_date(exif_ifd.get(piexif.ExifIFD.DateTimeOriginal))
            or self._parse_exif_date(ifd_0.get(piexif.ImageIFD.DateTime))
        )
        if date_taken:
            metadata.iso_date_time = date_taken.isoformat(timespec="seconds")

        make = self._decode_exif_string(ifd_0.get(piexif.ImageIFD.Make))
        model = self._decode_exif_string(ifd_0.get(piexif.ImageIFD.Model))
        if make and model:
            metadata.camera = f"{make} {model}"

        lens = self._decode_exif_string(exif_ifd.get(piexif.ExifIFD.LensModel))
        if lens:
            metadata.lens = lens

        metadata.iso = self._parse_iso(exif_ifd.get(piexif.ExifIFD.ISOSpeedRatings))
        metadata.shutter_speed = self._format_exposure(
            self._rational(exif_ifd.get(piexif.ExifIFD.ExposureTime))
        )

        f_number = self._rational(exif_ifd.get(piexif.ExifIFD.FNumber))
        if f_number:
            metadata.aperture = f"f/{f_number:g}"

        focal_length = self._rational(exif_ifd.get(piexif.ExifIFD.FocalLength))
        if focal_length:
            metadata.focal_length = f"{focal_length:g}mm"

        lat, lon = self._extract_gps_coords(gps_ifd)
        if lat is not None and lon is not None:
            metadata.gps_coords = (lat, lon)
            if self.geocoder is not None:
                metadata.location = self.geocoder.find_location(lat, lon) or default_location

        return metadata

    def _decode_exif_string(self, value: bytes | str | None) -> str | None:
        """Decode EXIF string value."""
        if value is None:
            return None
        if isinstance(value, bytes):
            try:
                text = value.decode("utf-8")
            except UnicodeDecodeError:
                text = value.decode("latin-1")
        else:
            text = str(value)
        text = text.replace("\x00", "").strip()
        return text or None

    def _parse_exif_date(self, value: bytes | str | None) -> datetime | None:
        """Parse EXIF date string to datetime."""
        date_str = self._decode_exif_string(value)
        if not date_str:
            return None
        # EXIF format: "YYYY:MM:DD HH:MM:SS"
        for fmt in ("%Y:%m:%d %H:%M:%S", "%Y-%m-%d %H:%M:%S"):
            try:
                return datetime.strptime(date_str, fmt)
            except ValueError:
                continue
        logger.debug(f"Could not parse date: {date_str}")
        return None

    def _rational(self, value: Any) -> float | None:
        """Convert an EXIF rational (numerator, denominator) to float."""
        if value is None:
            return None
        if isinstance(value, (int, float)):
            return float(value)
        try:
            numerator, denominator = value
            return numerator / denominator if denominator else None
        except (TypeError, ValueError):
            return None

    def _parse_iso(self, value: Any) -> int:
        if isinstance(value, (tuple, list)):
            value = value[0] if value else None
        try:
            return int(value) if value is not None else 0
        except (TypeError, ValueError):
            return 0

    def _format_exposure(self, exposure: float | None) -> str:
        if not exposure or exposure <= 0:
            return NOT_AVAILABLE
        if exposure >= 1:
            return f"{exposure:g}s"
        return f"1/{round(1 / exposure)}"

    def _extract_gps_coords(
        self,
        gps_ifd: dict
    ) -> tuple[float | None, float | None]:
        """Extract GPS coordinates from EXIF GPS IFD."""
        if not gps_ifd:
            return None, None

        lat_dms = gps_ifd.get(piexif.GPSIFD.GPSLatitude)
        lat_ref = gps_ifd.get(piexif.GPSIFD.GPSLatitudeRef, b"N")
        lon_dms = gps_ifd.get(piexif.GPSIFD.GPSLongitude)
        lon_ref = gps_ifd.get(piexif.GPSIFD.GPSLongitudeRef, b"E")

        lat = self._dms_to_decimal(lat_dms, lat_ref)
        lon = self._dms_to_decimal(lon_dms, lon_ref)
        return lat, lon

    def _dms_to_decimal(
        self,
        dms: tuple | None,
        ref: bytes | str
    ) -> float | None:
        """Convert DMS (degrees, minutes, seconds) to decimal degrees."""
        if not dms:
            return None

        try:
            degrees = dms[0][0] / dms[0][1]
            minutes = dms[1][0] / dms[1][1]
            seconds = dms[2][0] / dms[2][1]
        except (TypeError, ZeroDivisionError, IndexError):
            return None

        decimal = degrees + minutes / 60 + seconds / 3600

        if isinstance(ref, bytes):
            ref = ref.decode("ascii", errors="ignore")
        if ref.strip().upper() in ("S", "W"):
            decimal = -decimal

        return round(decimal, 7)
