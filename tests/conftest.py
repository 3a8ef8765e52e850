"""Shared fixtures: synthetic photos with EXIF, a fake HTTP session and an instant gate."""

from pathlib import Path
from typing import Any, Callable

import piexif
import pytest
from PIL import Image

from media_import.geocode_cache import GeocodeCache
from media_import.geocoder import RateLimitedGeocoder
from media_import.rate_limiter import DispatchGate


def _to_dms(value: float) -> tuple:
    value = abs(value)
    degrees = int(value)
    minutes = int((value - degrees) * 60)
    seconds = round((value - degrees - minutes / 60) * 3600 * 10000)
    return ((degrees, 1), (minutes, 1), (seconds, 10000))


def build_exif(
    *,
    date_original: str | None = None,
    date_time: str | None = None,
    make: str | None = None,
    model: str | None = None,
    lens: str | None = None,
    iso: int | None = None,
    exposure: tuple[int, int] | None = None,
    f_number: tuple[int, int] | None = None,
    focal_length: tuple[int, int] | None = None,
    gps: tuple[float, float] | None = None,
    orientation: int | None = None,
) -> bytes:
    """Build an EXIF block with piexif from the given tag values."""
    zeroth: dict[int, Any] = {}
    exif: dict[int, Any] = {}
    gps_ifd: dict[int, Any] = {}

    if make:
        zeroth[piexif.ImageIFD.Make] = make.encode()
    if model:
        zeroth[piexif.ImageIFD.Model] = model.encode()
    if date_time:
        zeroth[piexif.ImageIFD.DateTime] = date_time.encode()
    if orientation:
        zeroth[piexif.ImageIFD.Orientation] = orientation
    if date_original:
        exif[piexif.ExifIFD.DateTimeOriginal] = date_original.encode()
    if lens:
        exif[piexif.ExifIFD.LensModel] = lens.encode()
    if iso is not None:
        exif[piexif.ExifIFD.ISOSpeedRatings] = iso
    if exposure:
        exif[piexif.ExifIFD.ExposureTime] = exposure
    if f_number:
        exif[piexif.ExifIFD.FNumber] = f_number
    if focal_length:
        exif[piexif.ExifIFD.FocalLength] = focal_length
    if gps:
        lat, lon = gps
        gps_ifd[piexif.GPSIFD.GPSLatitudeRef] = b"N" if lat >= 0 else b"S"
        gps_ifd[piexif.GPSIFD.GPSLatitude] = _to_dms(lat)
        gps_ifd[piexif.GPSIFD.GPSLongitudeRef] = b"E" if lon >= 0 else b"W"
        gps_ifd[piexif.GPSIFD.GPSLongitude] = _to_dms(lon)

    return piexif.dump({"0th": zeroth, "Exif": exif, "GPS": gps_ifd, "1st": {}, "thumbnail": None})


@pytest.fixture
def make_image() -> Callable[..., Path]:
    """Factory writing a solid-colour image, optionally with EXIF tags."""

    def _make(
        path: Path,
        size: tuple[int, int] = (320, 240),
        color: tuple[int, int, int] = (200, 120, 40),
        **exif_tags: Any,
    ) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        image = Image.new("RGB", size, color)
        fmt = {".png": "PNG", ".webp": "WEBP"}.get(path.suffix.lower(), "JPEG")
        if exif_tags:
            image.save(path, fmt, exif=build_exif(**exif_tags))
        else:
            image.save(path, fmt)
        return path

    return _make


class FakeResponse:
    """Stand-in for requests.Response."""

    def __init__(self, payload: Any = None, status_code: int = 200):
        self.payload = payload
        self.status_code = status_code

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """Records GET calls and answers them through ``responder(lat, lon)``."""

    def __init__(self, responder: Callable[[float, float], FakeResponse]):
        self.responder = responder
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def get(self, url: str, params: dict | None = None, timeout: float | None = None) -> FakeResponse:
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        return self.responder(params["lat"], params["lon"])

    def close(self) -> None:
        self.closed = True


def paris_responder(lat: float, lon: float) -> FakeResponse:
    return FakeResponse({
        "display_name": "Tour Eiffel, Paris, France",
        "address": {"city": "Paris", "state": "Ile-de-France", "country": "France"},
    })


@pytest.fixture
def fake_session_factory() -> Callable[..., FakeSession]:
    def _factory(responder: Callable[[float, float], FakeResponse] = paris_responder) -> FakeSession:
        return FakeSession(responder)

    return _factory


@pytest.fixture
def fake_response() -> type[FakeResponse]:
    return FakeResponse


@pytest.fixture
def instant_gate() -> DispatchGate:
    return DispatchGate(interval=0)


@pytest.fixture
def make_geocoder(fake_session_factory, instant_gate) -> Callable[..., RateLimitedGeocoder]:
    """Factory for a geocoder backed by a fake session and an instant gate."""

    def _make(
        responder: Callable[[float, float], FakeResponse] = paris_responder,
        cache: GeocodeCache | None = None,
    ) -> RateLimitedGeocoder:
        return RateLimitedGeocoder(
            cache=cache if cache is not None else GeocodeCache(),
            gate=instant_gate,
            session=fake_session_factory(responder),
        )

    return _make
