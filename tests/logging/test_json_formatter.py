from __future__ import annotations

import json
import logging

from image_service.telemetry.logging import JsonFormatter, bind


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("image_service.test", logging.INFO, __file__, 1, msg, (), None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_formatter_emits_stable_keys() -> None:
    line = JsonFormatter().format(_record("image transformed", mime_type="image/png"))
    obj = json.loads(line)
    assert obj["level"] == "INFO"
    assert obj["logger"] == "image_service.test"
    assert obj["message"] == "image transformed"
    assert obj["mime_type"] == "image/png"
    assert obj["ts"].endswith("Z")


def test_formatter_never_dumps_raw_bytes() -> None:
    obj = json.loads(JsonFormatter().format(_record("x", body=b"\x89PNG....")))
    assert obj["body"] == "<8 bytes>"


def test_bind_merges_context() -> None:
    captured = []

    class _Capture(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            captured.append(json.loads(JsonFormatter().format(record)))

    logger = logging.getLogger("image_service.bind_test")
    logger.propagate = False
    logger.setLevel(logging.INFO)
    handler = _Capture()
    logger.addHandler(handler)
    try:
        bind(logger, route="transform").info("done", extra={"outcome": "ok"})
    finally:
        logger.removeHandler(handler)

    assert captured[0]["route"] == "transform"
    assert captured[0]["outcome"] == "ok"
