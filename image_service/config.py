# image_service/config.py
from __future__ import annotations

import os
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

SERVICE_NAME = "image-service"

APP_VERSION = os.getenv("APP_VERSION", "0.1.0")
GIT_SHA = os.getenv("GIT_SHA", "")
BUILD_TS = os.getenv("BUILD_TS", "")


class Settings(BaseSettings):
    # --- Identity / Build ---
    ENV: str = Field(default=os.environ.get("ENV", "dev"))
    VERSION: str = Field(default=APP_VERSION)

    # --- Server ---
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8080, ge=1, le=65535)

    # --- Source images for GET /images/{path} ---
    IMAGE_SOURCE_ROOT: str = Field(default="./images")

    # --- Limits ---
    MAX_BODY_BYTES: int = Field(default=20 * 1024 * 1024, ge=1)
    MAX_IMAGE_PIXELS: int = Field(default=50_000_000, ge=1)

    # --- Engine ---
    DEFAULT_QUALITY: int = Field(default=75, ge=1, le=100)
    # "process" runs every engine call in a throwaway worker process
    ENGINE_ISOLATION: Literal["inline", "process"] = Field(default="inline")

    # --- Metrics ---
    METRICS_ENABLED: bool = True

    # --- Logging ---
    LOG_JSON: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


def get_settings() -> Settings:
    return Settings()

