"""Typed model for image transformation requests.

Everything in here is immutable: enums, frozen dataclasses and read-only
lookup tables built once at import time. Request handlers share these tables
across threads without locking.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Mapping, Tuple

# 0 or 3 components (r, g, b); empty means "unset".
ColorSpec = Tuple[int, ...]


class ImageType(IntEnum):
    UNKNOWN = 0
    JPEG = 1
    WEBP = 2
    PNG = 3
    TIFF = 4
    GIF = 5
    PDF = 6
    SVG = 7
    BMP = 8


class Angle(IntEnum):
    D0 = 0
    D90 = 90
    D180 = 180
    D270 = 270
    # Rotate according to the EXIF orientation tag.
    AUTO = -1


class FitType(str, Enum):
    CONTAIN = "contain"
    MAX = "max"
    FILL = "fill"
    STRETCH = "stretch"
    CROP = "crop"


@dataclass(frozen=True)
class CropSpec:
    """Source area to extract before resizing.

    All fields set to -1 is the sentinel for "no crop". A malformed crop
    value collapses to the same sentinel, so callers cannot tell the two
    apart.
    """

    width: int = -1
    height: int = -1
    x: int = -1
    y: int = -1

    @property
    def is_set(self) -> bool:
        return (self.width, self.height, self.x, self.y) != (-1, -1, -1, -1)


NO_CROP = CropSpec()


@dataclass(frozen=True)
class TransformOptions:
    width: int = 0
    height: int = 0
    dpr: float = 0.0
    quality: int = 0
    format: ImageType = ImageType.UNKNOWN
    orientation: Angle = Angle.D0
    fit: FitType = FitType.CONTAIN
    crop: CropSpec = NO_CROP
    background: ColorSpec = ()
    brightness: int = 0
    contrast: int = 0
    gamma: float = 0.0
    sharpen: int = 0
    blur: int = 0
    pixel: int = 0


ORIENTATION_TO_TYPE: Mapping[str, Angle] = MappingProxyType(
    {
        "0": Angle.D0,
        "90": Angle.D90,
        "180": Angle.D180,
        "270": Angle.D270,
        "auto": Angle.AUTO,
    }
)

FIT_TO_TYPE: Mapping[str, FitType] = MappingProxyType({f.value: f for f in FitType})

EXTENSION_TO_TYPE: Mapping[str, ImageType] = MappingProxyType(
    {
        "jpg": ImageType.JPEG,
        "jpeg": ImageType.JPEG,
        "png": ImageType.PNG,
        "webp": ImageType.WEBP,
        "tif": ImageType.TIFF,
        "tiff": ImageType.TIFF,
        "gif": ImageType.GIF,
        "svg": ImageType.SVG,
        "pdf": ImageType.PDF,
    }
)


def extension_to_type(ext: str) -> ImageType:
    """Map a file extension (``"png"``, ``".JPG"``) to an ImageType."""
    key = (ext or "").strip().lower().lstrip(".")
    return EXTENSION_TO_TYPE.get(key, ImageType.UNKNOWN)


__all__ = [
    "Angle",
    "ColorSpec",
    "CropSpec",
    "EXTENSION_TO_TYPE",
    "FIT_TO_TYPE",
    "FitType",
    "ImageType",
    "NO_CROP",
    "ORIENTATION_TO_TYPE",
    "TransformOptions",
    "extension_to_type",
]
