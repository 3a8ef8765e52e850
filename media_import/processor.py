"""
Main media import orchestrator.

Coordinates all import stages:
1. Location cache load
2. Output directory reset
3. Directory scan with metadata extraction (worker pool)
4. Derivative generation (worker pool)
5. Manifest writing
6. Location cache save, on success and on failure
"""

import logging
import shutil
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from media_import.config import ImportConfig
from media_import.file_scanner import DirectoryScanner
from media_import.geocode_cache import GeocodeCache
from media_import.geocoder import RateLimitedGeocoder, create_session
from media_import.manifest_writer import ManifestWriter
from media_import.metadata_extractor import MetadataExtractor
from media_import.models import GalleryInfo, MediaMetadata
from media_import.rate_limiter import DispatchGate
from media_import.results import ErrorKind, ErrorTally
from media_import.scheduler import ConcurrencyScheduler
from media_import.transcoder import MediaTranscoder

logger = logging.getLogger(__name__)


class FatalSetupError(Exception):
    """Raised when the run cannot start: bad input or unusable output roots."""
    pass


@dataclass
class ImportStats:
    """Statistics for an import run."""
    galleries: int = 0
    media_files: int = 0
    transcoded: int = 0
    copied: int = 0
    skipped: int = 0
    manifests: int = 0
    extraction_failures: int = 0
    geocode_failures: int = 0
    transcode_failures: int = 0
    geocode_requests: int = 0
    geocode_cache_hits: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        """Get total duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    def summary(self) -> str:
        """Generate summary string."""
        lines = [
            "=" * 50,
            "Media Import Complete",
            "=" * 50,
            f"Galleries: {self.galleries}",
            f"Media files imported: {self.media_files}",
            f"  Transcoded: {self.transcoded}",
            f"  Copied verbatim: {self.copied}",
            f"  Skipped (unreadable source): {self.skipped}",
            f"Manifests written: {self.manifests}",
            f"Geocoding requests: {self.geocode_requests} "
            f"(cache hits: {self.geocode_cache_hits})",
        ]

        failures = (
            self.extraction_failures + self.geocode_failures + self.transcode_failures
        )
        if failures:
            lines.extend([
                "",
                "Recovered failures:",
                f"  Metadata extraction: {self.extraction_failures}",
                f"  Geocoding: {self.geocode_failures}",
                f"  Transcoding: {self.transcode_failures}",
            ])

        lines.append(f"Duration: {self.duration_seconds:.1f} seconds")
        return "\n".join(lines)


class ImportProcessor:
    """
    Runs a complete import of a media tree into gallery assets and manifests.

    Components can be injected for testing; otherwise they are built from
    the configuration.
    """

    def __init__(
        self,
        config: ImportConfig,
        cache: GeocodeCache | None = None,
        geocoder: RateLimitedGeocoder | None = None,
        scheduler_factory: Callable[[int], ConcurrencyScheduler] = ConcurrencyScheduler,
        progress_callback: Callable[[int, int, str], None] | None = None
    ):
        """
        Initialize the import processor.

        Args:
            config: Run configuration.
            cache: Location cache. Defaults to one stored at ``config.cache_path``.
            geocoder: Geocoder. Defaults to a Nominatim client sharing ``cache``.
            scheduler_factory: Builds the worker pool from a worker count.
            progress_callback: Callback(current, total, filename) during transcoding.
        """
        self.config = config
        self.tally = ErrorTally()
        self.cache = cache if cache is not None else GeocodeCache(config.cache_path)

        if geocoder is None:
            geocoder = RateLimitedGeocoder(
                cache=self.cache,
                gate=DispatchGate(interval=config.geocode_interval),
                session=create_session(config.user_agent, pool_size=config.concurrency),
                base_url=config.nominatim_url,
                timeout=config.geocode_timeout,
            )
        geocoder.tally = self.tally
        self.geocoder = geocoder

        self.scanner = DirectoryScanner()
        self.extractor = MetadataExtractor(geocoder=self.geocoder, tally=self.tally)
        self.transcoder = MediaTranscoder(
            vignette_width=config.vignette_width,
            quality=config.quality,
            tally=self.tally
        )
        self.manifest_writer = ManifestWriter()
        self.scheduler_factory = scheduler_factory
        self.progress_callback = progress_callback

    def run(self, media_dir: str | Path | None = None) -> ImportStats:
        """
        Import every gallery under ``media_dir``.

        The location cache is saved when the run ends, whether it succeeds
        or fails.

        Args:
            media_dir: Source directory. Defaults to ``config.media_dir``.

        Returns:
            ImportStats with run results.

        Raises:
            FatalSetupError: If the input is invalid or outputs cannot be reset.
        """
        stats = ImportStats()

        try:
            self.cache.load()
            source = self._validate_source(media_dir or self.config.media_dir)
            self._reset_output_roots()

            logger.info(f"Starting media import from {source} with {self.config.concurrency} workers")

            with self.scheduler_factory(self.config.concurrency) as scheduler:
                logger.info("Scanning directories and extracting metadata...")
                galleries = self.scanner.scan(source, self.extractor.extract, scheduler)

                self._transcode_all(galleries, source, scheduler, stats)

            logger.info("Writing gallery manifests...")
            for gallery in galleries:
                output_dir = self.config.content_dir / self._relative(gallery, source)
                self.manifest_writer.write(gallery, output_dir)
                stats.manifests += 1

            stats.galleries = len(galleries)
        finally:
            self._save_cache()
            self._collect_counters(stats)
            stats.end_time = datetime.now()

        logger.info(stats.summary())
        return stats

    def _validate_source(self, media_dir: str | Path | None) -> Path:
        if not media_dir:
            raise FatalSetupError(
                "No media directory given; pass a path or set MEDIA_DIR"
            )

        source = Path(media_dir).resolve()
        if not source.exists():
            raise FatalSetupError(f"Media path does not exist: {source}")
        if not source.is_dir():
            raise FatalSetupError(f"Media path {source} is not a directory")

        for root in (self.config.assets_dir, self.config.content_dir):
            root = Path(root).resolve()
            if source == root or root in source.parents:
                raise FatalSetupError(
                    f"Media path {source} lies inside output directory {root}"
                )
        return source

    def _reset_output_roots(self) -> None:
        """Delete and recreate the asset and content roots before any work starts."""
        logger.info("Cleaning assets and content directories...")
        for root in (self.config.assets_dir, self.config.content_dir):
            root = Path(root)
            try:
                if root.exists():
                    shutil.rmtree(root)
                root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FatalSetupError(f"Could not reset output directory {root}: {e}")
        self.transcoder.reset()

    def _transcode_all(
        self,
        galleries: list[GalleryInfo],
        source: Path,
        scheduler: ConcurrencyScheduler,
        stats: ImportStats
    ) -> None:
        tasks: list[tuple[MediaMetadata, Path]] = []
        for gallery in galleries:
            assets_dir = self.config.assets_dir / self._relative(gallery, source)
            tasks.extend((media, assets_dir) for media in gallery.medias)

        total = len(tasks)
        logger.info(f"Importing {total} files to gallery assets...")

        done = 0
        done_lock = threading.Lock()

        def transcode(task: tuple[MediaMetadata, Path]):
            nonlocal done
            media, assets_dir = task
            output = self.transcoder.process(media, assets_dir)
            with done_lock:
                done += 1
                current = done
            if self.progress_callback:
                self.progress_callback(current, total, media.file_name)
            return output

        outputs = scheduler.map(transcode, tasks)

        stats.media_files = total
        stats.transcoded = sum(1 for output in outputs if output.transcoded)
        stats.copied = sum(1 for output in outputs if output.written and not output.transcoded)
        stats.skipped = sum(1 for output in outputs if not output.written)

    def _relative(self, gallery: GalleryInfo, source: Path) -> Path:
        return Path(gallery.path).relative_to(source)

    def _save_cache(self) -> None:
        try:
            self.cache.save()
        except OSError as e:
            logger.error(f"Failed to save location cache: {e}")

    def _collect_counters(self, stats: ImportStats) -> None:
        stats.extraction_failures = self.tally.count(ErrorKind.EXTRACTION)
        stats.geocode_failures = self.tally.count(ErrorKind.GEOCODE)
        stats.transcode_failures = self.tally.count(ErrorKind.TRANSCODE)
        stats.geocode_requests = self.geocoder.dispatch_count
        stats.geocode_cache_hits = self.geocoder.cache_hits

    def close(self) -> None:
        self.geocoder.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
