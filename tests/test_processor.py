"""End-to-end tests for the import orchestrator and the command line entry point."""

import json
from pathlib import Path

import pytest

import run_import
from media_import.config import ImportConfig
from media_import.geocode_cache import GeocodeCache
from media_import.manifest_writer import ManifestWriter
from media_import.processor import FatalSetupError, ImportProcessor
from media_import.transcoder import FULLSIZE_DIRNAME


@pytest.fixture
def media_tree(tmp_path: Path, make_image) -> Path:
    root = tmp_path / "photos"
    make_image(
        root / "eiffel.jpg",
        size=(800, 600),
        date_original="2023:07:14 18:30:05",
        make="Canon",
        model="EOS R5",
        gps=(48.8584, 2.2945),
    )
    make_image(root / "trip" / "b.png", size=(400, 300))
    (root / "trip" / "clip.mp4").write_bytes(b"\x00\x00\x00\x18ftypmp42")
    (root / "trip" / "broken.jpg").write_bytes(b"not an image")
    (root / "empty").mkdir()
    return root


@pytest.fixture
def config(tmp_path: Path, media_tree: Path) -> ImportConfig:
    return ImportConfig(
        media_dir=media_tree,
        assets_dir=tmp_path / "assets",
        content_dir=tmp_path / "content",
        cache_path=tmp_path / "cached-locations.json",
        vignette_width=100,
        concurrency=2,
    )


@pytest.fixture
def processor_for(make_geocoder):
    def _make(config: ImportConfig, **kwargs) -> tuple[ImportProcessor, GeocodeCache]:
        cache = GeocodeCache(config.cache_path)
        geocoder = make_geocoder(cache=cache)
        return ImportProcessor(config, cache=cache, geocoder=geocoder, **kwargs), cache

    return _make


def test_full_import(config: ImportConfig, processor_for) -> None:
    stale = config.assets_dir / "old-gallery" / "stale.jpg"
    stale.parent.mkdir(parents=True)
    stale.write_bytes(b"old")
    progress: list[tuple[int, int, str]] = []

    processor, _ = processor_for(config, progress_callback=lambda *args: progress.append(args))
    with processor:
        stats = processor.run()

    assert not stale.exists()

    assert stats.galleries == 2
    assert stats.media_files == 4
    assert stats.transcoded == 2
    assert stats.copied == 2
    assert stats.skipped == 0
    assert stats.manifests == 2
    assert stats.extraction_failures == 1
    assert stats.transcode_failures == 1
    assert stats.geocode_failures == 0
    assert stats.geocode_requests == 1
    assert stats.end_time is not None
    assert sorted(current for current, _, _ in progress) == [1, 2, 3, 4]

    assert (config.assets_dir / "20230714183005_Paris_vignette.jpg").exists()
    assert (config.assets_dir / FULLSIZE_DIRNAME / "20230714183005_Paris.jpg").exists()
    assert not list((config.assets_dir / "trip").glob("*.mp4"))
    assert len(list((config.assets_dir / "trip" / FULLSIZE_DIRNAME).iterdir())) == 3


def test_manifests_point_at_written_files(config: ImportConfig, processor_for) -> None:
    processor, _ = processor_for(config)
    processor.run()

    writer = ManifestWriter()
    root_manifest = writer.read(config.content_dir / "index.md")
    trip_manifest = writer.read(config.content_dir / "trip" / "index.md")
    assert not (config.content_dir / "empty").exists()

    assert root_manifest["name"] == "photos"
    [eiffel] = root_manifest["medias"]
    assert eiffel["location"] == "Paris"
    assert eiffel["camera"] == "Canon EOS R5"
    assert eiffel["gpsCoords"] == pytest.approx([48.8584, 2.2945])

    assert trip_manifest["name"] == "trip"
    by_source = {Path(m["originalPath"]).name: m for m in trip_manifest["medias"]}
    assert set(by_source) == {"b.png", "broken.jpg", "clip.mp4"}
    assert by_source["b.png"]["location"] == "trip"
    assert by_source["broken.jpg"]["location"] == "Unknown Location"
    for media in trip_manifest["medias"]:
        assert (config.assets_dir / "trip" / FULLSIZE_DIRNAME / media["fileName"]).exists()


def test_cache_is_saved_and_reused(config: ImportConfig, processor_for) -> None:
    processor, _ = processor_for(config)
    processor.run()

    assert json.loads(config.cache_path.read_text(encoding="utf-8")) == [["48.858,2.295", "Paris"]]

    second, _ = processor_for(config)
    stats = second.run()
    assert stats.geocode_requests == 0
    assert stats.geocode_cache_hits == 1


def test_file_input_is_fatal_but_cache_is_saved(tmp_path: Path, config: ImportConfig, processor_for) -> None:
    not_a_dir = tmp_path / "photo.jpg"
    not_a_dir.write_bytes(b"data")
    processor, cache = processor_for(config)
    cache.set("40.689,-74.045", "New York")

    with pytest.raises(FatalSetupError, match="not a directory"):
        processor.run(not_a_dir)

    assert json.loads(config.cache_path.read_text(encoding="utf-8")) == [["40.689,-74.045", "New York"]]
    assert not config.assets_dir.exists()


def test_missing_input_is_fatal(tmp_path: Path, config: ImportConfig, processor_for) -> None:
    processor, _ = processor_for(config)
    with pytest.raises(FatalSetupError, match="does not exist"):
        processor.run(tmp_path / "nowhere")


def test_source_inside_output_root_is_fatal(tmp_path: Path, make_image, processor_for) -> None:
    source = tmp_path / "assets" / "photos"
    make_image(source / "a.jpg")
    config = ImportConfig(
        media_dir=source,
        assets_dir=tmp_path / "assets",
        content_dir=tmp_path / "content",
        cache_path=tmp_path / "cache.json",
        concurrency=1,
    )
    processor, _ = processor_for(config)

    with pytest.raises(FatalSetupError, match="inside output directory"):
        processor.run()

    assert (source / "a.jpg").exists()


def test_cli_reports_missing_directory(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("sys.argv", [
        "media-import",
        str(tmp_path / "missing"),
        "--assets-dir", str(tmp_path / "assets"),
        "--content-dir", str(tmp_path / "content"),
        "--cache-file", str(tmp_path / "cache.json"),
        "--workers", "1",
    ])

    assert run_import.main() == 1
    assert not (tmp_path / "assets").exists()


def test_cli_rejects_bad_quality(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("sys.argv", [
        "media-import",
        str(tmp_path),
        "--cache-file", str(tmp_path / "cache.json"),
        "--quality", "0",
    ])

    assert run_import.main() == 1


def test_source_vanishing_before_transcode_does_not_abort(config: ImportConfig, media_tree: Path, processor_for) -> None:
    processor, _ = processor_for(config)
    extract = processor.extractor.extract
    clip = media_tree / "trip" / "clip.mp4"

    def extract_then_delete_clip(path, default_location):
        media = extract(path, default_location)
        if Path(path) == clip:
            clip.unlink()
        return media

    processor.extractor.extract = extract_then_delete_clip
    stats = processor.run()

    assert stats.manifests == 2
    assert stats.skipped == 1
    assert stats.copied == 1
    assert stats.transcode_failures == 2
    assert (config.content_dir / "index.md").exists()
    trip_manifest = ManifestWriter().read(config.content_dir / "trip" / "index.md")
    assert {Path(m["originalPath"]).name for m in trip_manifest["medias"]} == {"b.png", "broken.jpg", "clip.mp4"}
    assert (config.assets_dir / "20230714183005_Paris_vignette.jpg").exists()


def test_second_run_on_same_processor_reuses_names(config: ImportConfig, processor_for) -> None:
    processor, _ = processor_for(config)

    processor.run()
    processor.run()

    full_size = sorted(p.name for p in (config.assets_dir / FULLSIZE_DIRNAME).iterdir())
    assert full_size == ["20230714183005_Paris.jpg"]
    assert not list(config.assets_dir.rglob("*_001*"))
