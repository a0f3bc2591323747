from __future__ import annotations

import os
import platform
import sys
import time
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from image_service import config
from image_service.services.engine import cairosvg

router = APIRouter(tags=["ops"])


def _ok(name: str, detail: Any | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"status": "ok"}
    if detail is not None:
        payload["detail"] = detail
    return {name: payload}


def _fail(name: str, detail: Any | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"status": "fail"}
    if detail is not None:
        payload["detail"] = detail
    return {name: payload}


def _check_source_root(app: Any) -> Dict[str, Any]:
    root = Path(app.state.settings.IMAGE_SOURCE_ROOT)
    if root.is_dir():
        return _ok("source_root", str(root))
    return _fail("source_root", f"not a directory: {root}")


def _check_engine(app: Any) -> Dict[str, Any]:
    engine = getattr(app.state, "engine", None)
    if engine is None:
        return _fail("engine", "not initialised")
    return _ok("engine", {"name": type(engine).__name__, "svg": cairosvg is not None})


@router.get("/livez")
async def livez() -> JSONResponse:
    payload = {"status": "ok", "ok": True, "time": time.time()}
    return JSONResponse(payload)


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    app = request.app
    checks: Dict[str, Any] = {}
    checks.update(_check_engine(app))
    checks.update(_check_source_root(app))

    overall = "ok"
    for value in checks.values():
        if isinstance(value, dict) and value.get("status") == "fail":
            overall = "fail"
            break

    status_code = 200 if overall == "ok" else 503
    payload = {"status": overall, "ok": overall == "ok", "checks": checks}
    return JSONResponse(payload, status_code=status_code)


@router.get("/version")
def version(request: Request) -> dict[str, object]:
    settings = request.app.state.settings
    return {
        "service": config.SERVICE_NAME,
        "env": settings.ENV,
        "version": settings.VERSION,
        "git_sha": os.getenv("GIT_SHA", config.GIT_SHA),
        "build_ts": os.getenv("BUILD_TS", config.BUILD_TS),
        "runtime": {
            "python": sys.version.split(" ")[0],
            "platform": platform.platform(),
        },
        "features": {
            "engine_isolation": settings.ENGINE_ISOLATION,
            "svg_input": cairosvg is not None,
        },
    }
