from __future__ import annotations

import dataclasses
from urllib.parse import parse_qs

import pytest
from starlette.datastructures import QueryParams

from image_service.image.params import ALLOWED_PARAMS, build_options, parse_param, parse_params
from image_service.image.types import (
    Angle,
    CropSpec,
    FitType,
    ImageType,
    TransformOptions,
)


def test_empty_query_yields_defaults() -> None:
    opts = parse_params({})
    assert opts == TransformOptions()
    assert opts.fit is FitType.CONTAIN
    assert opts.orientation is Angle.D0
    assert opts.crop == CropSpec(-1, -1, -1, -1)
    assert opts.background == ()


def test_full_query() -> None:
    opts = parse_params(
        {
            "w": "100",
            "h": "50.4",
            "fit": "crop",
            "dpr": "2",
            "q": "80",
            "fm": "webp",
            "or": "180",
            "bg": "#fff",
            "bri": "-10",
            "con": "20",
            "gam": "1.5",
            "sharp": "5",
            "blur": "3",
            "pixel": "4",
            "crop": "10,10,5,5",
            "ignored": "x",
        }
    )
    assert opts.width == 100
    assert opts.height == 50
    assert opts.fit is FitType.CROP
    assert opts.dpr == 2.0
    assert opts.quality == 80
    assert opts.format is ImageType.WEBP
    assert opts.orientation is Angle.D180
    assert opts.background == (255, 255, 255)
    assert opts.brightness == 10
    assert opts.contrast == 20
    assert opts.gamma == 1.5
    assert opts.sharpen == 5
    assert opts.blur == 3
    assert opts.pixel == 4
    assert opts.crop == CropSpec(10, 10, 5, 5)


def test_malformed_values_degrade_to_defaults() -> None:
    opts = parse_params({"w": "abc", "fit": "zoom", "bg": "notacolor", "crop": "1,2,3"})
    assert opts.width == 0
    assert opts.fit is FitType.CONTAIN
    assert opts.background == ()
    assert opts.crop.is_set is False


def test_accepts_query_params_and_parse_qs_shapes() -> None:
    qp = QueryParams("w=10&w=20&h=5")
    assert parse_params(qp).width == 10
    assert parse_params(qp).height == 5

    qs = parse_qs("w=30&h=40")
    opts = parse_params(qs)
    assert (opts.width, opts.height) == (30, 40)


def test_options_are_immutable() -> None:
    opts = parse_params({"w": "10"})
    with pytest.raises(dataclasses.FrozenInstanceError):
        opts.width = 20  # type: ignore[misc]


def test_build_options_rejects_missing_key() -> None:
    parsed = {key: parse_param("", kind) for key, kind in ALLOWED_PARAMS.items()}
    del parsed["w"]
    with pytest.raises(AssertionError):
        build_options(parsed)


def test_build_options_rejects_wrong_type() -> None:
    parsed = {key: parse_param("", kind) for key, kind in ALLOWED_PARAMS.items()}
    parsed["crop"] = "10,10,5,5"
    with pytest.raises(AssertionError):
        build_options(parsed)
