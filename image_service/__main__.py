"""Run the service: ``python -m image_service``."""

from __future__ import annotations

import uvicorn

from image_service.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "image_service.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
