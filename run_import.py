#!/usr/bin/env python3
"""
CLI entry point for the media import pipeline.

Scans a media tree, builds gallery assets (vignettes and full-size copies)
and writes one manifest per gallery. The location cache is kept between
runs.

Usage:
    python run_import.py /path/to/photos
    MEDIA_DIR=/path/to/photos python run_import.py
    python run_import.py /path/to/photos --workers 4 --quality 80 -v
"""

import argparse
import logging
import sys
from pathlib import Path

from media_import.config import ImportConfig, load_config
from media_import.processor import FatalSetupError, ImportProcessor

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """Configure logging for the import run."""
    level = logging.DEBUG if verbose else logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers
    )


def print_progress(current: int, total: int, filename: str) -> None:
    """Print progress to console."""
    pct = (current / total) * 100 if total > 0 else 0
    print(f"[{current:4d}/{total:4d}] ({pct:5.1f}%) {filename}")


def build_config(args: argparse.Namespace) -> ImportConfig:
    """Merge command line flags over the environment configuration."""
    config = load_config()
    return config.with_overrides(
        media_dir=Path(args.path) if args.path else None,
        assets_dir=Path(args.assets_dir) if args.assets_dir else None,
        content_dir=Path(args.content_dir) if args.content_dir else None,
        cache_path=Path(args.cache_file) if args.cache_file else None,
        concurrency=args.workers,
        vignette_width=args.vignette_width,
        quality=args.quality,
    )


def run_import(config: ImportConfig, verbose: bool = False) -> int:
    """Run the import and print its summary."""
    print("Import Configuration:")
    print(f"  Media path: {config.media_dir}")
    print(f"  Assets dir: {config.assets_dir}")
    print(f"  Content dir: {config.content_dir}")
    print(f"  Location cache: {config.cache_path}")
    print(f"  Workers: {config.concurrency}")
    print(f"  Vignette width: {config.vignette_width}px")
    print(f"  Quality: {config.quality}")
    print()

    with ImportProcessor(
        config,
        progress_callback=print_progress if verbose else None
    ) as processor:
        stats = processor.run()

    print("\n" + stats.summary())
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Import a media tree into gallery assets and manifests.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment variables (flags take precedence):
  MEDIA_DIR             Source directory when no path is given
  ASSETS_DIR            Output directory for derivatives (default: assets)
  CONTENT_DIR           Output directory for manifests (default: src/content/galleries)
  GEOCODE_CACHE_PATH    Location cache file (default: cached-locations.json)
  VIGNETTE_WIDTH        Vignette width in pixels (default: 640)
  JPEG_QUALITY          Recompression quality (default: 75)
  CONCURRENCY           Worker count (default: number of CPU cores)
  NOMINATIM_URL         Reverse geocoding endpoint
  NOMINATIM_USER_AGENT  User-Agent sent to the geocoding service

Examples:
  python run_import.py /path/to/photos
  python run_import.py /path/to/photos --workers 2 -v
        """
    )

    parser.add_argument(
        "path",
        nargs="?",
        help="Path to directory containing media (default: $MEDIA_DIR)"
    )

    # Output options
    parser.add_argument(
        "--assets-dir",
        help="Directory receiving vignettes and full-size files"
    )
    parser.add_argument(
        "--content-dir",
        help="Directory receiving gallery manifests"
    )
    parser.add_argument(
        "--cache-file",
        help="Location cache file"
    )

    # Processing options
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of parallel workers (default: CPU count)"
    )
    parser.add_argument(
        "--vignette-width",
        type=int,
        help="Vignette width in pixels (default: 640)"
    )
    parser.add_argument(
        "--quality",
        type=int,
        help="Recompression quality 1-100 (default: 75)"
    )

    # Logging options
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show detailed progress output"
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file"
    )

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_file)

    try:
        config = build_config(args)
        return run_import(config, verbose=args.verbose)
    except (FatalSetupError, ValueError) as e:
        logger.error(f"Error during media import: {e}")
        return 1
    except KeyboardInterrupt:
        print("\n\nImport interrupted by user.")
        return 130
    except Exception as e:
        logger.error(f"Error during media import: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
