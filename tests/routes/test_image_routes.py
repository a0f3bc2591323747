from __future__ import annotations

import io

from PIL import Image
from prometheus_client import REGISTRY

from image_service.errors import EngineError
from image_service.services.engine import PillowEngine


def transforms_total(outcome: str) -> float:
    value = REGISTRY.get_sample_value("image_transforms_total", {"outcome": outcome})
    return float(value or 0.0)


class _CrashingEngine(PillowEngine):
    def transform(self, buf, options):
        raise RuntimeError("segfault-ish")


class _BrokenEngine(PillowEngine):
    def transform(self, buf, options):
        raise EngineError("cannot decode input image")


def test_transform_body(client, jpeg_bytes: bytes) -> None:
    before = transforms_total("ok")
    r = client.post("/transform?w=100&h=100&fit=contain", content=jpeg_bytes)
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/jpeg"
    assert r.headers["x-content-type-options"] == "nosniff"
    assert r.headers.get("x-request-id")
    assert Image.open(io.BytesIO(r.content)).size == (100, 62)
    assert transforms_total("ok") == before + 1


def test_transform_converts_format(client, jpeg_bytes: bytes) -> None:
    r = client.post("/transform?fm=webp&q=50", content=jpeg_bytes)
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/webp"


def test_malformed_params_do_not_fail_request(client, jpeg_bytes: bytes) -> None:
    r = client.post("/transform?w=abc&bg=notacolor&crop=1,2,3&fit=zoom", content=jpeg_bytes)
    assert r.status_code == 200
    assert Image.open(io.BytesIO(r.content)).size == (320, 200)


def test_unsupported_body_is_415(client) -> None:
    r = client.post(
        "/transform",
        content=b"\x00\x01\x02\x03garbage",
        headers={"content-type": "image/png", "X-Request-ID": "rid-1"},
    )
    assert r.status_code == 415
    body = r.json()
    assert body["code"] == "unsupported_media_type"
    assert body["mime_type"] == "application/octet-stream"
    assert "unsupported MIME type" in body["detail"]
    assert body["request_id"] == "rid-1"
    assert r.headers["x-content-type-options"] == "nosniff"


def test_body_too_large(client, settings) -> None:
    r = client.post("/transform", content=b"x" * (settings.MAX_BODY_BYTES + 1))
    assert r.status_code == 413
    assert r.json()["code"] == "payload_too_large"


def test_overflowing_dimensions_are_422(client, jpeg_bytes: bytes) -> None:
    r = client.post("/transform?w=1e308&dpr=2", content=jpeg_bytes)
    assert r.status_code == 422
    assert r.json()["code"] == "engine_error"


def test_engine_error_is_422(app, client, jpeg_bytes: bytes) -> None:
    app.state.engine = _BrokenEngine()
    r = client.post("/transform", content=jpeg_bytes)
    assert r.status_code == 422
    assert r.json()["code"] == "engine_error"


def test_abnormal_engine_termination_is_500(app, client, jpeg_bytes: bytes) -> None:
    app.state.engine = _CrashingEngine()
    r = client.post("/transform", content=jpeg_bytes)
    assert r.status_code == 500
    body = r.json()
    assert body["code"] == "processing_error"
    assert body["detail"] == "segfault-ish"

    # the service keeps serving afterwards
    app.state.engine = PillowEngine()
    assert client.post("/transform?w=10", content=jpeg_bytes).status_code == 200


def test_images_from_source_root(client) -> None:
    r = client.get("/images/photo.jpg?w=50")
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/jpeg"
    assert Image.open(io.BytesIO(r.content)).size == (50, 25)


def test_images_missing_file_is_404(client) -> None:
    r = client.get("/images/nope.jpg")
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


def test_images_text_file_is_415(client) -> None:
    r = client.get("/images/notes.txt")
    assert r.status_code == 415


def test_images_path_traversal_is_403(client) -> None:
    r = client.get("/images/..%2F..%2Fetc%2Fpasswd")
    assert r.status_code in (403, 404)
