from __future__ import annotations

from prometheus_client import REGISTRY, Counter, Histogram

# Outcomes: ok | read_error | unsupported | engine_error | processing_error
image_transforms_total = Counter(
    "image_transforms_total",
    "Image transform requests by outcome.",
    ["outcome"],
    registry=REGISTRY,
)

image_transform_seconds = Histogram(
    "image_transform_seconds",
    "Wall time spent in the image pipeline.",
    ["outcome"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)


def record_transform(outcome: str, seconds: float) -> None:
    image_transforms_total.labels(outcome).inc()
    image_transform_seconds.labels(outcome).observe(max(0.0, float(seconds)))

