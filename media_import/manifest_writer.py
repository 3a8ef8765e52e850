"""
Gallery manifest files consumed by the site renderer.

A manifest is an ``index.md`` whose front matter holds the gallery name,
source path and media array as JSON values (valid YAML), followed by a
heading for the gallery.
"""

import json
import logging
from pathlib import Path
from typing import Any

from media_import.models import GalleryInfo

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "index.md"
FRONT_MATTER_DELIMITER = "---"


class ManifestError(Exception):
    """Raised when a manifest file cannot be parsed."""
    pass


class ManifestWriter:
    """Writes one manifest per gallery directory."""

    def __init__(self, filename: str = MANIFEST_FILENAME):
        self.filename = filename

    def render(self, gallery: GalleryInfo) -> str:
        medias = json.dumps(
            [media.to_dict() for media in gallery.medias],
            indent=2,
            ensure_ascii=False
        )
        return (
            f"{FRONT_MATTER_DELIMITER}\n"
            f"name: {json.dumps(gallery.name, ensure_ascii=False)}\n"
            f"path: {json.dumps(gallery.path, ensure_ascii=False)}\n"
            f"medias: {medias}\n"
            f"{FRONT_MATTER_DELIMITER}\n"
            f"\n"
            f"# {gallery.name} ({len(gallery.medias)} media files)\n"
        )

    def write(self, gallery: GalleryInfo, output_dir: str | Path) -> Path:
        """
        Write the manifest for ``gallery``, replacing any existing one.

        Args:
            gallery: Gallery whose media have all been processed.
            output_dir: Content directory of the gallery.

        Returns:
            Path of the written manifest.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        manifest_path = output_dir / self.filename
        manifest_path.write_text(self.render(gallery), encoding="utf-8")

        logger.debug(f"Wrote manifest {manifest_path} ({len(gallery.medias)} media)")
        return manifest_path

    def read(self, manifest_path: str | Path) -> dict[str, Any]:
        """
        Parse a manifest written by this class.

        Returns:
            Mapping with ``name``, ``path`` and ``medias`` keys.

        Raises:
            ManifestError: If the front matter is missing or malformed.
        """
        text = Path(manifest_path).read_text(encoding="utf-8")
        parts = text.split(f"\n{FRONT_MATTER_DELIMITER}\n", 1)
        if not text.startswith(f"{FRONT_MATTER_DELIMITER}\n") or len(parts) != 2:
            raise ManifestError(f"No front matter in {manifest_path}")

        front_matter = parts[0][len(FRONT_MATTER_DELIMITER) + 1:]
        data: dict[str, Any] = {}
        try:
            head, medias = front_matter.split("\nmedias: ", 1)
            for line in head.splitlines():
                key, value = line.split(": ", 1)
                data[key] = json.loads(value)
            data["medias"] = json.loads(medias)
        except ValueError as e:
            raise ManifestError(f"Malformed front matter in {manifest_path}: {e}")

        return data
