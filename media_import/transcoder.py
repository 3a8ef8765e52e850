"""
Derivative generation for imported media.

Each image is decoded once, orientation-corrected from its EXIF tag, and
saved twice from that decode: a reduced-width vignette next to the gallery
assets and a recompressed full-size copy under ``_fullsize/``. Videos, and
images that fail to transcode, are copied byte for byte to the full-size
location instead.
"""

import logging
import re
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageOps

from media_import.config import DEFAULT_QUALITY, DEFAULT_VIGNETTE_WIDTH, SUPPORTED_IMAGE_FORMATS
from media_import.models import MediaMetadata
from media_import.results import ErrorKind, ErrorTally, capture, recover

logger = logging.getLogger(__name__)

FULLSIZE_DIRNAME = "_fullsize"
VIGNETTE_SUFFIX = "_vignette"

# Pillow encoder per output extension
OUTPUT_FORMATS = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".webp": "WEBP",
}


def build_base_name(media: MediaMetadata) -> str:
    """
    Build the ``<timestamp>_<location>`` stem for a media's derivatives.

    The timestamp is the capture time as ``YYYYMMDDHHMMSS``; every
    non-alphanumeric character of the location becomes an underscore.
    """
    timestamp = re.sub(r"[:\-T]", "", media.iso_date_time)[:14]
    location = re.sub(r"[^a-zA-Z0-9]", "_", media.location)
    return f"{timestamp}_{location}"


@dataclass
class TranscodeOutput:
    """Files produced for one media item; no paths when even the copy failed."""
    full_size_path: Path | None = None
    vignette_path: Path | None = None

    @property
    def transcoded(self) -> bool:
        return self.vignette_path is not None

    @property
    def written(self) -> bool:
        return self.full_size_path is not None


class MediaTranscoder:
    """
    Produces vignette and full-size derivatives for gallery media.

    Attributes:
        vignette_width: Target vignette width in pixels (height is proportional).
        quality: Encoder quality (1-100) for JPEG and WEBP output.
        tally: Optional shared failure counter.
    """

    def __init__(
        self,
        vignette_width: int = DEFAULT_VIGNETTE_WIDTH,
        quality: int = DEFAULT_QUALITY,
        tally: ErrorTally | None = None
    ):
        self.vignette_width = vignette_width
        self.quality = quality
        self.tally = tally
        self._reserved: set[Path] = set()
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Forget reserved names; call whenever the output roots are emptied."""
        with self._lock:
            self._reserved.clear()

    def process(self, media: MediaMetadata, gallery_assets_dir: str | Path) -> TranscodeOutput:
        """
        Write the derivatives of one media file and rename its record.

        Never raises for a bad item: an image that cannot be transcoded is
        copied verbatim with no vignette, and a source that cannot be copied
        is logged and counted as a transcode failure with no files written.

        Args:
            media: Metadata of the source file; ``file_name`` is rewritten.
            gallery_assets_dir: Asset directory of the media's gallery.

        Returns:
            TranscodeOutput describing the files written.
        """
        gallery_assets_dir = Path(gallery_assets_dir)
        full_size_dir = gallery_assets_dir / FULLSIZE_DIRNAME
        full_size_dir.mkdir(parents=True, exist_ok=True)

        source = Path(media.original_path)
        ext = source.suffix.lower()
        base_name = self._reserve_base_name(full_size_dir, build_base_name(media), ext)

        full_size_path = full_size_dir / f"{base_name}{ext}"
        vignette_path = gallery_assets_dir / f"{base_name}{VIGNETTE_SUFFIX}{ext}"

        if ext in SUPPORTED_IMAGE_FORMATS:
            result = capture(
                ErrorKind.TRANSCODE,
                str(source),
                self._encode_derivatives,
                source,
                vignette_path,
                full_size_path
            )
            output = recover(
                result,
                lambda: self._fallback_copy(source, vignette_path, full_size_path),
                tally=self.tally
            )
        else:
            output = self._copy_verbatim(source, full_size_path, tally=self.tally)

        media.file_name = full_size_path.name
        logger.debug(f"Imported {source.name} -> {media.file_name}")
        return output

    def _reserve_base_name(self, directory: Path, base_name: str, ext: str) -> str:
        """Claim a base name unused in ``directory``, adding _001, _002... on collision."""
        with self._lock:
            candidate = base_name
            counter = 1
            while (directory / f"{candidate}{ext}") in self._reserved:
                candidate = f"{base_name}_{counter:03d}"
                counter += 1
            self._reserved.add(directory / f"{candidate}{ext}")
        if candidate != base_name:
            logger.info(f"Filename collision: {base_name}{ext} -> {candidate}{ext}")
        return candidate

    def _encode_derivatives(
        self,
        source: Path,
        vignette_path: Path,
        full_size_path: Path
    ) -> TranscodeOutput:
        """Decode ``source`` once and save both derivatives from it."""
        output_format = OUTPUT_FORMATS[source.suffix.lower()]

        with Image.open(source) as img:
            img.load()
            decoded = ImageOps.exif_transpose(img)

        # exif_transpose drops the orientation tag once applied
        exif = decoded.getexif()
        icc_profile = decoded.info.get("icc_profile")

        if output_format == "JPEG" and decoded.mode not in ("RGB", "L", "CMYK"):
            decoded = decoded.convert("RGB")

        aspect_ratio = decoded.height / decoded.width
        vignette_height = max(1, round(self.vignette_width * aspect_ratio))
        vignette = decoded.resize(
            (self.vignette_width, vignette_height),
            Image.Resampling.LANCZOS
        )

        save_options = self._save_options(output_format, exif, icc_profile)
        vignette.save(vignette_path, format=output_format, **save_options)
        decoded.save(full_size_path, format=output_format, **save_options)

        return TranscodeOutput(full_size_path=full_size_path, vignette_path=vignette_path)

    def _save_options(self, output_format: str, exif, icc_profile: bytes | None) -> dict:
        options = {"optimize": True}
        if exif:
            options["exif"] = exif
        if output_format in ("JPEG", "WEBP"):
            options["quality"] = self.quality
        if icc_profile:
            options["icc_profile"] = icc_profile
        return options

    def _fallback_copy(
        self,
        source: Path,
        vignette_path: Path,
        full_size_path: Path
    ) -> TranscodeOutput:
        vignette_path.unlink(missing_ok=True)
        # The failed transcode has already been counted for this item
        return self._copy_verbatim(source, full_size_path)

    def _copy_verbatim(
        self,
        source: Path,
        full_size_path: Path,
        tally: ErrorTally | None = None
    ) -> TranscodeOutput:
        result = capture(
            ErrorKind.TRANSCODE,
            str(source),
            shutil.copyfile,
            source,
            full_size_path
        )
        copied = recover(result, lambda: None, tally=tally)
        return TranscodeOutput(full_size_path=full_size_path if copied else None)
