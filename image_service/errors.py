"""Exception types raised by the image pipeline.

Input read failures are not wrapped: whatever ``Resource.read()`` raises
(usually an ``OSError`` subclass) reaches the caller unchanged.
"""

from __future__ import annotations

GENERIC_PROCESSING_ERROR = "internal processing error"


class ImageServiceError(Exception):
    """Base class for pipeline errors."""


class UnsupportedMimeTypeError(ImageServiceError):
    def __init__(self, mime_type: str) -> None:
        super().__init__(f"unsupported MIME type: {mime_type}")
        self.mime_type = mime_type


class EngineError(ImageServiceError):
    """Ordinary failure reported by the transformation engine."""


class ProcessingError(ImageServiceError):
    """The engine terminated abnormally; converted into a regular error."""

    def __init__(self, message: str = GENERIC_PROCESSING_ERROR) -> None:
        super().__init__(message or GENERIC_PROCESSING_ERROR)


__all__ = [
    "EngineError",
    "GENERIC_PROCESSING_ERROR",
    "ImageServiceError",
    "ProcessingError",
    "UnsupportedMimeTypeError",
]
