"""
Pillow-backed transformation engine.

- Translates TransformOptions into engine-native EngineOptions.
- Decodes, transforms and re-encodes a buffer in a single call.
- Reports ordinary failures (undecodable input, oversized images, unsupported
  output) as EngineError. Anything else escaping ``transform`` is treated by
  the caller as an abnormal termination.
"""

from __future__ import annotations

import io
import math
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Protocol, Tuple

from PIL import Image, ImageEnhance, ImageFilter, ImageOps, UnidentifiedImageError

from image_service.errors import EngineError
from image_service.image.types import Angle, FitType, ImageType, TransformOptions

# Optional SVG rasteriser; SVG input fails with EngineError when missing.
try:
    import cairosvg
except Exception:  # pragma: no cover
    cairosvg = None

DEFAULT_QUALITY = 75
DEFAULT_MAX_PIXELS = 50_000_000
MAX_DPR = 8.0
# Largest output edge (the JPEG limit).
MAX_DIMENSION = 65535
MAX_GAMMA = 9.99
MAX_PIXELATE = 1000

_RE_HTML_COMMENT = re.compile(rb"(?i)<!--([\s\S]*?)-->")
_RE_SVG = re.compile(
    rb"(?i)^\s*(?:<\?xml[^>]*>\s*)?(?:<!doctype svg[^>]*>\s*)?<svg[^>]*>[^*]*</svg>\s*$"
)

IMAGE_TYPE_TO_MIME: Mapping[ImageType, str] = MappingProxyType(
    {
        ImageType.PNG: "image/png",
        ImageType.WEBP: "image/webp",
        ImageType.TIFF: "image/tiff",
        ImageType.GIF: "image/gif",
        ImageType.SVG: "image/svg+xml",
        ImageType.PDF: "application/pdf",
    }
)

# Output encoders, keyed by ImageType.
_SAVE_FORMATS: Mapping[ImageType, str] = MappingProxyType(
    {
        ImageType.JPEG: "JPEG",
        ImageType.PNG: "PNG",
        ImageType.WEBP: "WEBP",
        ImageType.TIFF: "TIFF",
        ImageType.GIF: "GIF",
        ImageType.PDF: "PDF",
    }
)

_ROTATIONS: Mapping[Angle, Image.Transpose] = MappingProxyType(
    {
        Angle.D90: Image.Transpose.ROTATE_270,
        Angle.D180: Image.Transpose.ROTATE_180,
        Angle.D270: Image.Transpose.ROTATE_90,
    }
)


def image_mime_type(code: ImageType) -> str:
    return IMAGE_TYPE_TO_MIME.get(code, "image/jpeg")


def is_svg_image(buf: bytes) -> bool:
    text = _RE_HTML_COMMENT.sub(b"", bytes(buf))
    return _RE_SVG.match(text) is not None


def determine_image_type(buf: bytes) -> ImageType:
    head = bytes(buf[:16])
    if head.startswith(b"\xff\xd8\xff"):
        return ImageType.JPEG
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return ImageType.PNG
    if head.startswith(b"GIF8"):
        return ImageType.GIF
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return ImageType.WEBP
    if head[:4] in (b"II*\x00", b"MM\x00*"):
        return ImageType.TIFF
    if head.startswith(b"%PDF"):
        return ImageType.PDF
    if head.startswith(b"BM"):
        return ImageType.BMP
    if is_svg_image(buf):
        return ImageType.SVG
    return ImageType.UNKNOWN


@dataclass(frozen=True)
class EngineOptions:
    width: int = 0
    height: int = 0
    quality: int = DEFAULT_QUALITY
    type: ImageType = ImageType.UNKNOWN
    rotate: Angle = Angle.D0
    fit: FitType = FitType.CONTAIN
    # (left, top, width, height) in source pixels
    extract: Optional[Tuple[int, int, int, int]] = None
    background: Optional[Tuple[int, int, int]] = None
    brightness: int = 0
    contrast: int = 0
    gamma: float = 0.0
    sharpen: int = 0
    blur: int = 0
    pixelate: int = 0


def _scaled(size: int, dpr: float) -> int:
    value = size * dpr
    if not math.isfinite(value) or value > MAX_DIMENSION:
        return MAX_DIMENSION
    return int(round(value))


def engine_options(options: TransformOptions, *, default_quality: int = DEFAULT_QUALITY) -> EngineOptions:
    """Translate request options into engine-native parameters."""
    dpr = min(options.dpr, MAX_DPR) if options.dpr > 0 else 1.0

    crop = options.crop
    extract = None
    if crop.is_set and crop.width > 0 and crop.height > 0 and crop.x >= 0 and crop.y >= 0:
        extract = (crop.x, crop.y, crop.width, crop.height)

    background = None
    if len(options.background) == 3:
        r, g, b = options.background
        background = (r, g, b)

    return EngineOptions(
        width=_scaled(options.width, dpr),
        height=_scaled(options.height, dpr),
        quality=min(options.quality or default_quality, 100),
        type=options.format,
        rotate=options.orientation,
        fit=options.fit,
        extract=extract,
        background=background,
        brightness=min(options.brightness, 100),
        contrast=min(options.contrast, 100),
        gamma=min(options.gamma, MAX_GAMMA),
        sharpen=min(options.sharpen, 100),
        blur=min(options.blur, 100),
        pixelate=min(options.pixel, MAX_PIXELATE),
    )


class ImageEngine(Protocol):
    """Surface the pipeline needs from a transformation engine."""

    def transform(self, buf: bytes, options: EngineOptions) -> bytes: ...

    def determine_image_type(self, buf: bytes) -> ImageType: ...

    def is_svg_image(self, buf: bytes) -> bool: ...


class PillowEngine:
    def __init__(self, max_pixels: int = DEFAULT_MAX_PIXELS) -> None:
        self.max_pixels = max_pixels

    def determine_image_type(self, buf: bytes) -> ImageType:
        return determine_image_type(buf)

    def is_svg_image(self, buf: bytes) -> bool:
        return is_svg_image(buf)

    def transform(self, buf: bytes, options: EngineOptions) -> bytes:
        in_type = determine_image_type(buf)
        out_type = _output_type(options.type, in_type)

        image = self._load(buf, in_type)
        image = _orient(image, options.rotate)
        if options.extract is not None:
            image = _extract(image, options.extract)
        image = self._resize(image, options)
        image = _adjust(image, options)
        return _encode(image, out_type, options)

    def _check_pixels(self, width: int, height: int) -> None:
        if self.max_pixels and width * height > self.max_pixels:
            raise EngineError(
                f"image of {width}x{height} exceeds the limit of {self.max_pixels} pixels"
            )

    def _load(self, buf: bytes, in_type: ImageType) -> Image.Image:
        if in_type == ImageType.SVG:
            if cairosvg is None:
                raise EngineError("SVG input requires the optional 'cairosvg' package")
            try:
                buf = cairosvg.svg2png(bytestring=buf)
            except Exception as exc:
                raise EngineError(f"cannot rasterize SVG input: {exc}") from exc
        try:
            image = Image.open(io.BytesIO(buf))
            self._check_pixels(*image.size)
            image.load()
        except Image.DecompressionBombError as exc:
            raise EngineError(str(exc)) from exc
        except UnidentifiedImageError as exc:
            raise EngineError("cannot decode input image") from exc
        except OSError as exc:
            raise EngineError(f"cannot decode input image: {exc}") from exc

        has_alpha = image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info
        return image.convert("RGBA" if has_alpha else "RGB")

    def _resize(self, image: Image.Image, options: EngineOptions) -> Image.Image:
        width, height = options.width, options.height
        if not width and not height:
            return image

        src_w, src_h = image.size
        if not width:
            width = max(1, round(src_w * height / src_h))
        elif not height:
            height = max(1, round(src_h * width / src_w))
        self._check_pixels(width, height)

        fit = options.fit
        if fit == FitType.STRETCH:
            return image.resize((width, height), Image.Resampling.LANCZOS)
        if fit == FitType.CROP:
            return ImageOps.fit(image, (width, height), method=Image.Resampling.LANCZOS)

        scale = min(width / src_w, height / src_h)
        if fit == FitType.MAX:
            scale = min(scale, 1.0)
        size = (max(1, round(src_w * scale)), max(1, round(src_h * scale)))
        if size != image.size:
            image = image.resize(size, Image.Resampling.LANCZOS)

        if fit == FitType.FILL and image.size != (width, height):
            canvas = Image.new(image.mode, (width, height), _fill_color(image.mode, options.background))
            offset = ((width - image.width) // 2, (height - image.height) // 2)
            canvas.paste(image, offset)
            image = canvas
        return image


def _output_type(requested: ImageType, in_type: ImageType) -> ImageType:
    if requested == ImageType.SVG:
        raise EngineError("SVG output is not supported")
    if requested != ImageType.UNKNOWN:
        return requested
    if in_type in _SAVE_FORMATS:
        return in_type
    return ImageType.JPEG


def _fill_color(mode: str, background: Optional[Tuple[int, int, int]]) -> Tuple[int, ...]:
    if mode == "RGBA":
        return (*background, 255) if background else (0, 0, 0, 0)
    return background or (255, 255, 255)


def _orient(image: Image.Image, angle: Angle) -> Image.Image:
    if angle == Angle.AUTO:
        return ImageOps.exif_transpose(image)
    method = _ROTATIONS.get(angle)
    return image.transpose(method) if method is not None else image


def _extract(image: Image.Image, area: Tuple[int, int, int, int]) -> Image.Image:
    left, top, width, height = area
    if left >= image.width or top >= image.height:
        raise EngineError(
            f"crop area {width}x{height}+{left}+{top} is outside a {image.width}x{image.height} image"
        )
    box = (left, top, min(left + width, image.width), min(top + height, image.height))
    return image.crop(box)


def _on_rgb(image: Image.Image, fn) -> Image.Image:
    # Enhancers would otherwise touch the alpha band too
    if image.mode != "RGBA":
        return fn(image)
    alpha = image.getchannel("A")
    out = fn(image.convert("RGB")).convert("RGBA")
    out.putalpha(alpha)
    return out


def _adjust(image: Image.Image, options: EngineOptions) -> Image.Image:
    if options.brightness:
        factor = 1.0 + options.brightness / 100.0
        image = _on_rgb(image, lambda im: ImageEnhance.Brightness(im).enhance(factor))
    if options.contrast:
        factor = 1.0 + options.contrast / 100.0
        image = _on_rgb(image, lambda im: ImageEnhance.Contrast(im).enhance(factor))
    if options.gamma and options.gamma != 1.0:
        inv = 1.0 / options.gamma
        lut = [min(255, round(255 * ((i / 255.0) ** inv))) for i in range(256)]
        image = _on_rgb(image, lambda im: im.point(lut * 3))
    if options.sharpen:
        sharpen = ImageFilter.UnsharpMask(radius=1, percent=options.sharpen * 3, threshold=0)
        image = _on_rgb(image, lambda im: im.filter(sharpen))
    if options.blur:
        image = image.filter(ImageFilter.GaussianBlur(radius=options.blur / 2.0))
    if options.pixelate > 1:
        size = image.size
        small = (max(1, size[0] // options.pixelate), max(1, size[1] // options.pixelate))
        image = image.resize(small, Image.Resampling.NEAREST).resize(size, Image.Resampling.NEAREST)
    return image


def _flatten(image: Image.Image, background: Optional[Tuple[int, int, int]]) -> Image.Image:
    if image.mode != "RGBA":
        return image.convert("RGB")
    canvas = Image.new("RGB", image.size, background or (255, 255, 255))
    canvas.paste(image, mask=image.getchannel("A"))
    return canvas


def _encode(image: Image.Image, out_type: ImageType, options: EngineOptions) -> bytes:
    fmt = _SAVE_FORMATS.get(out_type)
    if fmt is None:
        raise EngineError(f"unsupported output type: {out_type.name.lower()}")

    params: dict = {}
    if out_type in (ImageType.JPEG, ImageType.PDF):
        image = _flatten(image, options.background)
    if out_type in (ImageType.JPEG, ImageType.WEBP):
        params["quality"] = options.quality

    out = io.BytesIO()
    try:
        image.save(out, format=fmt, **params)
    except OSError as exc:
        raise EngineError(f"cannot encode {fmt} output: {exc}") from exc
    return out.getvalue()


__all__ = [
    "DEFAULT_QUALITY",
    "EngineOptions",
    "IMAGE_TYPE_TO_MIME",
    "ImageEngine",
    "PillowEngine",
    "determine_image_type",
    "engine_options",
    "image_mime_type",
    "is_svg_image",
]
