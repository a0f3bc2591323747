# tests/conftest.py
from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest
from PIL import Image
from starlette.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from image_service.config import Settings  # noqa: E402
from image_service.main import create_app  # noqa: E402


def _make_image(fmt: str = "JPEG", size: tuple[int, int] = (64, 48), color=(200, 30, 30)) -> bytes:
    mode = "RGBA" if fmt == "PNG" and len(color) == 4 else "RGB"
    img = Image.new(mode, size, color)
    out = io.BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


@pytest.fixture()
def make_image():
    return _make_image


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return _make_image("JPEG", (320, 200))


@pytest.fixture()
def png_bytes() -> bytes:
    return _make_image("PNG", (120, 80), (10, 20, 30, 128))


@pytest.fixture()
def source_root(tmp_path: Path) -> Path:
    root = tmp_path / "images"
    root.mkdir()
    (root / "photo.jpg").write_bytes(_make_image("JPEG", (200, 100)))
    (root / "notes.txt").write_bytes(b"just some plain text, not an image")
    return root


@pytest.fixture()
def settings(source_root: Path) -> Settings:
    return Settings(IMAGE_SOURCE_ROOT=str(source_root), MAX_BODY_BYTES=1024 * 1024)


@pytest.fixture()
def app(settings: Settings):
    # Function scope: new app for each test to pick up per-test settings.
    return create_app(settings)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c
