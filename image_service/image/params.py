"""Query parameter parsing for image transformations.

Every recognised query key is parsed according to a semantic tag. Parsing
is total: a malformed value degrades to a documented default instead of
rejecting the request, so a typo in ``bg`` never turns into a 4xx.
"""

from __future__ import annotations

import binascii
import math
import re
from types import MappingProxyType
from typing import Any, Dict, Mapping

from image_service.image.colors import COLORS_TO_RGB
from image_service.image.types import (
    FIT_TO_TYPE,
    NO_CROP,
    ORIENTATION_TO_TYPE,
    Angle,
    ColorSpec,
    CropSpec,
    FitType,
    ImageType,
    TransformOptions,
    extension_to_type,
)

ALLOWED_PARAMS: Mapping[str, str] = MappingProxyType(
    {
        "or": "orientation",
        "w": "int",
        "h": "int",
        "fit": "fit",
        "dpr": "float",
        "bri": "int",
        "con": "int",
        "gam": "float",
        "sharp": "int",
        "blur": "int",
        "pixel": "int",
        "bg": "color",
        "q": "int",
        "fm": "format",
        "crop": "crop",
    }
)

# query key -> (TransformOptions field, expected type)
_FIELDS: Mapping[str, tuple[str, type]] = MappingProxyType(
    {
        "w": ("width", int),
        "h": ("height", int),
        "dpr": ("dpr", float),
        "q": ("quality", int),
        "fm": ("format", ImageType),
        "or": ("orientation", Angle),
        "fit": ("fit", FitType),
        "crop": ("crop", CropSpec),
        "bg": ("background", tuple),
        "bri": ("brightness", int),
        "con": ("contrast", int),
        "gam": ("gamma", float),
        "sharp": ("sharpen", int),
        "blur": ("blur", int),
        "pixel": ("pixel", int),
    }
)

_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_RE_INT = re.compile(r"^[+-]?\d+$")
_RE_UINT = re.compile(r"^\d+$")


def _first(query: Mapping[str, Any], key: str) -> str:
    # starlette QueryParams.get() returns the last value; keep the first one
    getlist = getattr(query, "getlist", None)
    if callable(getlist):
        values = getlist(key)
        value: Any = values[0] if values else ""
    else:
        value = query.get(key, "")
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return value if isinstance(value, str) else ""


def parse_params(query: Mapping[str, Any]) -> TransformOptions:
    """Parse all recognised keys of ``query`` into TransformOptions.

    ``query`` may be a plain ``{key: value}`` mapping, a starlette
    ``QueryParams`` or the ``{key: [values]}`` shape of ``parse_qs``.
    Unknown keys are ignored.
    """
    params: Dict[str, Any] = {}
    for key, kind in ALLOWED_PARAMS.items():
        params[key] = parse_param(_first(query, key), kind)
    return build_options(params)


def parse_param(param: str, kind: str) -> Any:
    if kind == "int":
        return parse_int(param)
    if kind == "float":
        return parse_float(param)
    if kind == "color":
        return parse_color(param)
    if kind == "bool":
        return parse_bool(param)
    if kind == "orientation":
        return parse_orientation(param)
    if kind == "fit":
        return parse_fit(param)
    if kind == "format":
        return parse_format(param)
    if kind == "crop":
        return parse_crop(param)
    return param


def build_options(params: Mapping[str, Any]) -> TransformOptions:
    """Assemble TransformOptions from fully parsed values.

    A missing key or a wrongly typed value is a bug in the parser, not bad
    user input, hence ``assert``.
    """
    fields: Dict[str, Any] = {}
    for key, (name, expected) in _FIELDS.items():
        assert key in params, f"missing parsed value for {key!r}"
        value = params[key]
        assert isinstance(value, expected), (
            f"parsed value for {key!r} is {type(value).__name__}, expected {expected.__name__}"
        )
        fields[name] = value
    return TransformOptions(**fields)


def parse_bool(val: str) -> bool:
    if val in _TRUE:
        return True
    if val in _FALSE:
        return False
    return False


def parse_int(param: str) -> int:
    return int(math.floor(parse_float(param) + 0.5))


def parse_float(param: str) -> float:
    try:
        val = float(param)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(val):
        return 0.0
    return abs(val)


def parse_color(val: str) -> ColorSpec:
    if not val:
        return ()

    named = COLORS_TO_RGB.get(val)
    if named is not None:
        return named

    if "," in val:
        parts = val.split(",")
        if len(parts) != 3:
            return ()
        rgb = []
        for part in parts:
            num = part.strip(" ")
            n = int(num) if _RE_UINT.match(num) else 0
            rgb.append(min(n, 255))
        return tuple(rgb)

    if val.startswith("#"):
        val = val[1:]

    if len(val) == 3:
        val = "".join(ch * 2 for ch in val)

    try:
        data = binascii.unhexlify(val)
    except (binascii.Error, ValueError):
        return ()
    if len(data) < 3:
        return ()
    return (data[0], data[1], data[2])


def parse_orientation(val: str) -> Angle:
    return ORIENTATION_TO_TYPE.get(val, Angle.D0)


def parse_fit(val: str) -> FitType:
    return FIT_TO_TYPE.get(val, FitType.CONTAIN)


def parse_format(val: str) -> ImageType:
    return extension_to_type(val)


def parse_crop(val: str) -> CropSpec:
    parts = val.split(",")
    if len(parts) != 4:
        return NO_CROP
    if not all(_RE_INT.match(p) for p in parts):
        return NO_CROP
    w, h, x, y = (int(p) for p in parts)
    return CropSpec(width=w, height=h, x=x, y=y)


__all__ = [
    "ALLOWED_PARAMS",
    "build_options",
    "parse_bool",
    "parse_color",
    "parse_crop",
    "parse_fit",
    "parse_float",
    "parse_format",
    "parse_int",
    "parse_orientation",
    "parse_param",
    "parse_params",
]
