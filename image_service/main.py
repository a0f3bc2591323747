# image_service/main.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from image_service.config import Settings, get_settings
from image_service.middleware.nosniff import install_nosniff
from image_service.middleware.request_id import RequestIDMiddleware
from image_service.routes import health, image, metrics_route
from image_service.services.engine import PillowEngine
from image_service.telemetry.errors import register_error_handlers
from image_service.telemetry.logging import configure_root_logging

log = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "image", "description": "Image transformation endpoints."},
    {"name": "ops", "description": "Liveness, readiness and build info."},
    {"name": "metrics", "description": "Prometheus metrics."},
]


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_root_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

    app = FastAPI(
        title="Image Service",
        description="On-the-fly image transformation driven by query parameters.",
        version=settings.VERSION,
        openapi_tags=OPENAPI_TAGS,
    )
    app.state.settings = settings
    app.state.engine = PillowEngine(max_pixels=settings.MAX_IMAGE_PIXELS)

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(image.router)
    if settings.METRICS_ENABLED:
        app.include_router(metrics_route.router)

    install_nosniff(app)
    # Added last so it wraps everything else and the id is set first.
    app.add_middleware(RequestIDMiddleware)

    log.info(
        "image service configured",
        extra={
            "env": settings.ENV,
            "source_root": settings.IMAGE_SOURCE_ROOT,
            "engine_isolation": settings.ENGINE_ISOLATION,
        },
    )
    return app


app = create_app()
