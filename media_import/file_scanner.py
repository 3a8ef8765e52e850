"""
Directory scanner that groups media files into galleries.

Every directory holding at least one supported image or video becomes its
own gallery. Directories without media are still walked, and galleries are
never merged across levels.
"""

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator

from media_import.config import SUPPORTED_IMAGE_FORMATS, SUPPORTED_VIDEO_FORMATS
from media_import.models import GalleryInfo, MediaMetadata
from media_import.scheduler import ConcurrencyScheduler

logger = logging.getLogger(__name__)

MEDIA_EXTENSIONS = SUPPORTED_IMAGE_FORMATS | SUPPORTED_VIDEO_FORMATS

ExtractFunc = Callable[[Path, str], MediaMetadata]


@dataclass
class MediaDirectory:
    """A directory and the supported media files directly inside it."""
    path: Path
    files: list[Path] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.name


class DirectoryScanner:
    """
    Walks a source tree and builds one GalleryInfo per media directory.

    Attributes:
        extensions: Lowercase file extensions treated as media.
    """

    def __init__(self, extensions: set[str] | frozenset[str] | None = None):
        self.extensions = extensions or MEDIA_EXTENSIONS

    def walk(self, root: str | Path) -> Iterator[MediaDirectory]:
        """
        Yield every directory under ``root`` (inclusive), parents first.

        Uses an explicit stack so deep trees do not grow the call stack.
        Entries are visited sorted by lowercase name.

        Args:
            root: Directory to walk.

        Yields:
            MediaDirectory for each readable directory, possibly with no files.
        """
        stack = [Path(root)]

        while stack:
            directory = stack.pop()
            try:
                entries = sorted(directory.iterdir(), key=lambda p: p.name.lower())
            except OSError as e:
                logger.warning(f"Skipping unreadable directory {directory}: {e}")
                continue

            files = []
            subdirs = []
            for entry in entries:
                if entry.is_dir():
                    if entry.name.startswith(".") or entry.is_symlink():
                        logger.debug(f"Skipping directory {entry}")
                        continue
                    subdirs.append(entry)
                elif self._is_media(entry):
                    files.append(entry)

            yield MediaDirectory(path=directory, files=files)

            # Reversed so the first subdirectory is popped next
            stack.extend(reversed(subdirs))

    def scan(
        self,
        root: str | Path,
        extract: ExtractFunc,
        scheduler: ConcurrencyScheduler
    ) -> list[GalleryInfo]:
        """
        Build galleries for every media directory under ``root``.

        Metadata extraction for each file is queued on ``scheduler`` while
        the walk continues; galleries are assembled once all their files
        have been extracted.

        Args:
            root: Source directory.
            extract: Called as ``extract(path, default_location)``; must not raise.
            scheduler: Pool running the extraction work.

        Returns:
            Galleries in walk order, each with media in file order.
        """
        pending: list[tuple[MediaDirectory, list[Future]]] = []

        for media_dir in self.walk(root):
            if not media_dir.files:
                continue
            futures = [
                scheduler.submit(extract, path, media_dir.name)
                for path in media_dir.files
            ]
            pending.append((media_dir, futures))

        galleries = []
        for media_dir, futures in pending:
            galleries.append(GalleryInfo(
                name=media_dir.name,
                path=str(media_dir.path),
                medias=[f.result() for f in futures],
            ))
            logger.debug(f"Gallery {media_dir.path}: {len(futures)} media file(s)")

        logger.info(
            f"Found {sum(len(g.medias) for g in galleries)} media file(s) "
            f"in {len(galleries)} galleries under {root}"
        )
        return galleries

    def _is_media(self, path: Path) -> bool:
        return path.is_file() and path.suffix.lower() in self.extensions
