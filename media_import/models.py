"""
Data containers shared by the import pipeline stages.

MediaMetadata is created once during extraction; only ``file_name`` is
rewritten afterwards, by the transcoder. GalleryInfo groups the media of a
single source directory.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

UNKNOWN_LOCATION = "Unknown Location"
UNKNOWN_CAMERA = "Unknown Camera"
UNKNOWN_LENS = "Unknown Lens"
NOT_AVAILABLE = "N/A"


@dataclass
class MediaMetadata:
    """Capture metadata for one media file."""
    file_name: str
    original_path: str
    iso_date_time: str
    camera: str = NOT_AVAILABLE
    lens: str = NOT_AVAILABLE
    iso: int = 0
    shutter_speed: str = NOT_AVAILABLE
    aperture: str = NOT_AVAILABLE
    focal_length: str = NOT_AVAILABLE
    gps_coords: tuple[float, float] | None = None
    location: str = UNKNOWN_LOCATION

    @classmethod
    def default(
        cls,
        filepath: str | Path,
        location: str = UNKNOWN_LOCATION,
        camera: str = NOT_AVAILABLE,
        lens: str = NOT_AVAILABLE
    ) -> "MediaMetadata":
        """Build a record with no capture information, stamped with the current time."""
        filepath = Path(filepath)
        return cls(
            file_name=filepath.name,
            original_path=str(filepath),
            iso_date_time=datetime.now().isoformat(timespec="seconds"),
            camera=camera,
            lens=lens,
            location=location,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase mapping used in gallery manifests."""
        return {
            "fileName": self.file_name,
            "originalPath": self.original_path,
            "isoDateTime": self.iso_date_time,
            "camera": self.camera,
            "lens": self.lens,
            "iso": self.iso,
            "shutterSpeed": self.shutter_speed,
            "aperture": self.aperture,
            "focalLength": self.focal_length,
            "gpsCoords": list(self.gps_coords) if self.gps_coords else None,
            "location": self.location,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MediaMetadata":
        coords = data.get("gpsCoords")
        return cls(
            file_name=data["fileName"],
            original_path=data["originalPath"],
            iso_date_time=data["isoDateTime"],
            camera=data.get("camera", NOT_AVAILABLE),
            lens=data.get("lens", NOT_AVAILABLE),
            iso=int(data.get("iso", 0)),
            shutter_speed=data.get("shutterSpeed", NOT_AVAILABLE),
            aperture=data.get("aperture", NOT_AVAILABLE),
            focal_length=data.get("focalLength", NOT_AVAILABLE),
            gps_coords=(coords[0], coords[1]) if coords else None,
            location=data.get("location", UNKNOWN_LOCATION),
        )


@dataclass(frozen=True)
class GalleryInfo:
    """Media found directly inside one source directory."""
    name: str
    path: str
    medias: list[MediaMetadata] = field(default_factory=list)
