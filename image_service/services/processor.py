"""
Image processing pipeline.

READ -> DETECT -> VALIDATE -> TRANSFORM -> COMMIT, strictly in that order.

The engine is untrusted. Its ordinary failures (EngineError) propagate as-is;
anything else raised while transforming or typing the output, SystemExit
included, is converted into a ProcessingError at this boundary. With
``isolation="process"`` both calls run in a dedicated spawned worker process,
so a native crash (segfault, ``os._exit``) only kills that worker and is
reported the same way.

Nothing in here logs or retries; callers own both.
"""

from __future__ import annotations

import multiprocessing
from concurrent.futures import ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass
from typing import Literal, Optional, Tuple

from image_service.errors import (
    GENERIC_PROCESSING_ERROR,
    EngineError,
    ProcessingError,
    UnsupportedMimeTypeError,
)
from image_service.image.types import ImageType, TransformOptions
from image_service.resource import Resource
from image_service.services.engine import (
    DEFAULT_QUALITY,
    EngineOptions,
    ImageEngine,
    PillowEngine,
    engine_options,
    image_mime_type,
)
from image_service.services.mime import resolve_mime_type

Isolation = Literal["inline", "process"]

SUPPORTED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/gif",
        "image/tiff",
        "image/bmp",
        "image/svg+xml",
    }
)


@dataclass(frozen=True)
class TransformResult:
    body: bytes
    mime_type: str


def is_mime_type_supported(mime_type: str) -> bool:
    return mime_type in SUPPORTED_MIME_TYPES


def _termination_message(exc: BaseException) -> str:
    # Prefer the failure's own text; bare exceptions carry none.
    if not exc.args:
        return GENERIC_PROCESSING_ERROR
    first = exc.args[0]
    if isinstance(first, (str, BaseException)):
        text = str(first).strip()
    else:
        text = str(exc).strip()
    return text or GENERIC_PROCESSING_ERROR


def _invoke(engine: ImageEngine, buf: bytes, opts: EngineOptions) -> Tuple[bytes, ImageType]:
    out = engine.transform(buf, opts)
    return out, engine.determine_image_type(out)


def _run_isolated(
    engine: ImageEngine, buf: bytes, opts: EngineOptions
) -> Tuple[bytes, ImageType]:
    # Workers are spawned, never forked: callers run on server threads.
    ctx = multiprocessing.get_context("spawn")
    with ProcessPoolExecutor(max_workers=1, mp_context=ctx) as pool:
        future = pool.submit(_invoke, engine, buf, opts)
        try:
            return future.result()
        except BrokenProcessPool as exc:
            raise ProcessingError(GENERIC_PROCESSING_ERROR) from exc


def process(
    buf: bytes,
    opts: EngineOptions,
    *,
    engine: Optional[ImageEngine] = None,
    isolation: Isolation = "inline",
) -> TransformResult:
    """Invoke the engine once and describe its output."""
    eng = engine or PillowEngine()
    try:
        if isolation == "process":
            out, out_type = _run_isolated(eng, buf, opts)
        else:
            out, out_type = _invoke(eng, buf, opts)
    except (EngineError, ProcessingError, KeyboardInterrupt, GeneratorExit):
        raise
    except BaseException as exc:
        # SystemExit raised by an engine is an abnormal termination too.
        raise ProcessingError(_termination_message(exc)) from exc

    # Output type comes from the produced bytes, never from the input MIME.
    return TransformResult(body=out, mime_type=image_mime_type(out_type))


def process_image(
    resource: Resource,
    options: TransformOptions,
    *,
    engine: Optional[ImageEngine] = None,
    isolation: Isolation = "inline",
    default_quality: int = DEFAULT_QUALITY,
) -> None:
    """Transform ``resource`` in place according to ``options``.

    Raises whatever ``resource.read()`` raises, UnsupportedMimeTypeError when
    the detected content type is not an accepted image, EngineError for
    ordinary engine failures and ProcessingError for abnormal ones. The
    resource is left untouched on any failure.
    """
    eng = engine or PillowEngine()

    buf = resource.read()

    mime_type = resolve_mime_type(buf, is_svg=eng.is_svg_image)

    if not is_mime_type_supported(mime_type):
        raise UnsupportedMimeTypeError(mime_type)

    result = process(
        buf,
        engine_options(options, default_quality=default_quality),
        engine=eng,
        isolation=isolation,
    )

    resource.mime_type = result.mime_type
    resource.body = result.body


__all__ = [
    "SUPPORTED_MIME_TYPES",
    "TransformResult",
    "is_mime_type_supported",
    "process",
    "process_image",
]
