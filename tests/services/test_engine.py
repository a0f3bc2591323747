from __future__ import annotations

import io

import pytest
from PIL import Image

from image_service.errors import EngineError
from image_service.image.params import parse_params
from image_service.image.types import Angle, FitType, ImageType, TransformOptions
from image_service.services import engine as engine_module
from image_service.services.engine import (
    MAX_DIMENSION,
    EngineOptions,
    PillowEngine,
    determine_image_type,
    engine_options,
    image_mime_type,
    is_svg_image,
)
from image_service.services.mime import resolve_mime_type


def _size(buf: bytes) -> tuple[int, int]:
    return Image.open(io.BytesIO(buf)).size


def test_engine_options_defaults() -> None:
    opts = engine_options(TransformOptions())
    assert opts.width == 0 and opts.height == 0
    assert opts.quality == 75
    assert opts.extract is None
    assert opts.background is None
    assert opts.fit is FitType.CONTAIN


def test_engine_options_translation() -> None:
    opts = engine_options(
        parse_params({"w": "100", "h": "50", "dpr": "2", "q": "500", "crop": "10,20,1,2", "bg": "red"}),
        default_quality=80,
    )
    assert (opts.width, opts.height) == (200, 100)
    assert opts.quality == 100
    assert opts.extract == (1, 2, 10, 20)
    assert opts.background == (255, 0, 0)


def test_engine_options_caps_dpr_and_uses_default_quality() -> None:
    opts = engine_options(parse_params({"w": "10", "dpr": "50"}), default_quality=60)
    assert opts.width == 80
    assert opts.quality == 60



def test_engine_options_clamps_huge_dimensions() -> None:
    opts = engine_options(parse_params({"w": "1e308", "h": "70000", "dpr": "2"}))
    assert opts.width == MAX_DIMENSION
    assert opts.height == MAX_DIMENSION

    opts = engine_options(parse_params({"w": "1e308"}))
    assert opts.width == MAX_DIMENSION


def test_image_mime_type_table() -> None:
    assert image_mime_type(ImageType.PNG) == "image/png"
    assert image_mime_type(ImageType.PDF) == "application/pdf"
    assert image_mime_type(ImageType.SVG) == "image/svg+xml"
    assert image_mime_type(ImageType.JPEG) == "image/jpeg"
    assert image_mime_type(ImageType.BMP) == "image/jpeg"
    assert image_mime_type(ImageType.UNKNOWN) == "image/jpeg"


def test_is_svg_image() -> None:
    assert is_svg_image(b"<svg viewBox='0 0 1 1'><rect/></svg>")
    assert not is_svg_image(b"<svg><rect/>")
    assert is_svg_image(b"<?xml version='1.0'?><!-- c --><svg></svg>\n")
    assert not is_svg_image(b"<html></html>")


def test_determine_image_type(make_image) -> None:
    assert determine_image_type(make_image("PNG")) is ImageType.PNG
    assert determine_image_type(make_image("JPEG")) is ImageType.JPEG
    assert determine_image_type(make_image("TIFF")) is ImageType.TIFF
    assert determine_image_type(make_image("BMP")) is ImageType.BMP
    assert determine_image_type(b"nothing") is ImageType.UNKNOWN


@pytest.mark.parametrize(
    "fit, expected",
    [
        (FitType.CONTAIN, (100, 62)),
        (FitType.FILL, (100, 100)),
        (FitType.CROP, (100, 100)),
        (FitType.STRETCH, (100, 100)),
    ],
)
def test_fit_policies(jpeg_bytes: bytes, fit: FitType, expected: tuple[int, int]) -> None:
    out = PillowEngine().transform(jpeg_bytes, EngineOptions(width=100, height=100, fit=fit))
    assert _size(out) == expected


def test_max_does_not_enlarge(jpeg_bytes: bytes) -> None:
    out = PillowEngine().transform(jpeg_bytes, EngineOptions(width=1000, height=1000, fit=FitType.MAX))
    assert _size(out) == (320, 200)


def test_single_dimension_keeps_aspect(jpeg_bytes: bytes) -> None:
    out = PillowEngine().transform(jpeg_bytes, EngineOptions(width=160))
    assert _size(out) == (160, 100)


def test_rotation(jpeg_bytes: bytes) -> None:
    out = PillowEngine().transform(jpeg_bytes, EngineOptions(rotate=Angle.D90))
    assert _size(out) == (200, 320)


def test_extract_area(jpeg_bytes: bytes) -> None:
    out = PillowEngine().transform(jpeg_bytes, EngineOptions(extract=(10, 10, 50, 40)))
    assert _size(out) == (50, 40)


def test_extract_outside_image_is_engine_error(jpeg_bytes: bytes) -> None:
    with pytest.raises(EngineError):
        PillowEngine().transform(jpeg_bytes, EngineOptions(extract=(1000, 0, 5, 5)))


def test_adjustments_keep_size(png_bytes: bytes) -> None:
    opts = EngineOptions(brightness=20, contrast=30, gamma=2.2, sharpen=10, blur=4, pixelate=8)
    out = PillowEngine().transform(png_bytes, opts)
    assert _size(out) == (120, 80)
    assert determine_image_type(out) is ImageType.PNG


def test_format_conversion(jpeg_bytes: bytes) -> None:
    out = PillowEngine().transform(jpeg_bytes, EngineOptions(type=ImageType.WEBP, quality=60))
    assert determine_image_type(out) is ImageType.WEBP


def test_unencodable_input_type_falls_back_to_jpeg(make_image) -> None:
    out = PillowEngine().transform(make_image("BMP"), EngineOptions(width=10))
    assert determine_image_type(out) is ImageType.JPEG


def test_svg_output_is_engine_error(jpeg_bytes: bytes) -> None:
    with pytest.raises(EngineError):
        PillowEngine().transform(jpeg_bytes, EngineOptions(type=ImageType.SVG))


def test_garbage_input_is_engine_error() -> None:
    with pytest.raises(EngineError):
        PillowEngine().transform(b"definitely not an image" + b"\x00" * 16, EngineOptions())


def test_pixel_limit(jpeg_bytes: bytes) -> None:
    with pytest.raises(EngineError):
        PillowEngine(max_pixels=1000).transform(jpeg_bytes, EngineOptions())
    with pytest.raises(EngineError):
        PillowEngine(max_pixels=100_000).transform(
            jpeg_bytes, EngineOptions(width=1000, height=1000, fit=FitType.STRETCH)
        )


@pytest.mark.parametrize(
    "fmt",
    [ImageType.JPEG, ImageType.PNG, ImageType.WEBP, ImageType.GIF, ImageType.TIFF, ImageType.PDF],
)
def test_output_resolves_to_reported_mime(png_bytes: bytes, fmt: ImageType) -> None:
    engine = PillowEngine()
    out = engine.transform(png_bytes, EngineOptions(width=40, type=fmt))
    reported = image_mime_type(engine.determine_image_type(out))
    assert resolve_mime_type(out) == reported


def test_svg_input_without_rasterizer_is_engine_error(monkeypatch) -> None:
    monkeypatch.setattr(engine_module, "cairosvg", None)
    svg = b'<svg xmlns="http://www.w3.org/2000/svg" width="4" height="4"></svg>'
    with pytest.raises(EngineError, match="cairosvg"):
        PillowEngine().transform(svg, EngineOptions())
