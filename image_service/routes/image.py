"""Image transformation endpoints.

    POST /transform?w=..&h=..     body is the source image
    GET  /images/{path}?w=..      source image read from IMAGE_SOURCE_ROOT

The response carries the transformed bytes with the Content-Type detected
from the output, not the one the client declared.
"""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from image_service.errors import (
    EngineError,
    ProcessingError,
    UnsupportedMimeTypeError,
)
from image_service.image.params import parse_params
from image_service.resource import BytesResource, FileResource, Resource
from image_service.services.processor import process_image
from image_service.telemetry.logging import bind
from image_service.telemetry.metrics import record_transform

router = APIRouter(tags=["image"])

_log = logging.getLogger(__name__)


async def _transform(request: Request, resource: Resource, route: str) -> Response:
    settings = request.app.state.settings
    options = parse_params(request.query_params)
    log = bind(_log, route=route)

    outcome = "ok"
    start = time.perf_counter()
    try:
        await run_in_threadpool(
            process_image,
            resource,
            options,
            engine=request.app.state.engine,
            isolation=settings.ENGINE_ISOLATION,
            default_quality=settings.DEFAULT_QUALITY,
        )
    except FileNotFoundError:
        outcome = "read_error"
        raise HTTPException(status_code=404, detail="source image not found")
    except PermissionError:
        outcome = "read_error"
        raise HTTPException(status_code=403, detail="source image not accessible")
    except OSError as exc:
        outcome = "read_error"
        log.warning("source read failed", extra={"error": str(exc)})
        raise HTTPException(status_code=502, detail="cannot read source image")
    except UnsupportedMimeTypeError as exc:
        outcome = "unsupported"
        log.info("rejected input", extra={"mime_type": exc.mime_type})
        raise
    except ProcessingError as exc:
        outcome = "processing_error"
        log.error("engine terminated abnormally", extra={"error": str(exc)})
        raise
    except EngineError as exc:
        outcome = "engine_error"
        log.info("engine error", extra={"error": str(exc)})
        raise
    finally:
        elapsed = time.perf_counter() - start
        record_transform(outcome, elapsed)

    log.info(
        "image transformed",
        extra={
            "mime_type": resource.mime_type,
            "bytes_out": len(resource.body),
            "duration_ms": round(elapsed * 1000.0, 2),
        },
    )
    return Response(content=resource.body, media_type=resource.mime_type)


@router.post("/transform")
async def transform(request: Request) -> Response:
    limit = request.app.state.settings.MAX_BODY_BYTES
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise HTTPException(status_code=413, detail="request body too large")

    body = await request.body()
    if len(body) > limit:
        raise HTTPException(status_code=413, detail="request body too large")

    resource = BytesResource(body, mime_type=request.headers.get("content-type", ""))
    return await _transform(request, resource, "transform")


@router.get("/images/{path:path}")
async def transform_file(path: str, request: Request) -> Response:
    resource = FileResource(request.app.state.settings.IMAGE_SOURCE_ROOT, path)
    return await _transform(request, resource, "images")
