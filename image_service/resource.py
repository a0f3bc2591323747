"""Input resources handed to the image pipeline.

A resource is read once and, when the transform succeeds, its ``body`` and
``mime_type`` are overwritten in place with the output.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class Resource(Protocol):
    mime_type: str
    body: bytes

    def read(self) -> bytes: ...


class BytesResource:
    """In-memory resource, e.g. a request body."""

    def __init__(self, data: bytes, mime_type: str = "") -> None:
        self._data = bytes(data)
        self.mime_type = mime_type
        self.body = b""

    def read(self) -> bytes:
        return self._data


class FileResource:
    """Resource backed by a file below ``root``.

    ``read()`` raises the filesystem error as-is. A path that resolves
    outside ``root`` raises ``PermissionError`` without being opened.
    """

    def __init__(self, root: str | Path, name: str) -> None:
        self.root = Path(root).resolve()
        self.name = name
        self.mime_type = ""
        self.body = b""

    @property
    def path(self) -> Path:
        return (self.root / self.name.lstrip("/")).resolve()

    def read(self) -> bytes:
        path = self.path
        if path != self.root and self.root not in path.parents:
            raise PermissionError(f"path escapes source root: {self.name}")
        return path.read_bytes()


__all__ = ["BytesResource", "FileResource", "Resource"]
