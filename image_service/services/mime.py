"""Content type resolution for untrusted input buffers.

Three stages, each consulted only when the previous one is inconclusive:

1. WHATWG-style MIME sniffing over the first 512 bytes.
2. A secondary magic-number table for formats the sniffer does not know
   (TIFF, HEIF, PSD, ...), used only when stage 1 fell back to
   ``application/octet-stream``.
3. Textual buffers that parse as a minimal SVG document become
   ``image/svg+xml``. Any ``text/*`` result counts as textual, not only
   ``text/plain``: SVG files opening with an XML declaration sniff as
   ``text/xml`` and are accepted on purpose.

Declared metadata (file extension, client Content-Type) is never trusted.
"""

from __future__ import annotations

import struct
from typing import Callable, Optional, Sequence, Tuple

from image_service.services.engine import is_svg_image

OCTET_STREAM = "application/octet-stream"
SVG_MIME = "image/svg+xml"

SNIFF_LEN = 512
MIN_SVG_LEN = 8

# WHATWG whitespace bytes skipped before markup signatures.
_WS = b"\t\n\x0c\r "

Matcher = Callable[[bytes, int], Optional[str]]


def _exact(prefix: bytes, mime: str) -> Matcher:
    def match(data: bytes, _: int) -> Optional[str]:
        return mime if data.startswith(prefix) else None

    return match


def _masked(pattern: bytes, mask: bytes, mime: str, skip_ws: bool = False) -> Matcher:
    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        if skip_ws:
            data = data[first_non_ws:]
        if len(data) < len(pattern):
            return None
        for i, pb in enumerate(pattern):
            if data[i] & mask[i] != pb:
                return None
        return mime

    return match


def _html(tag: bytes) -> Matcher:
    # case-insensitive tag followed by a tag-terminating byte
    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        data = data[first_non_ws:]
        if len(data) < len(tag) + 1:
            return None
        for i, b in enumerate(tag):
            db = data[i]
            if 0x41 <= b <= 0x5A:
                db &= 0xDF
            if b != db:
                return None
        if data[len(tag)] not in b" >":
            return None
        return "text/html; charset=utf-8"

    return match


def _mp4(data: bytes, _: int) -> Optional[str]:
    if len(data) < 12:
        return None
    box_size = struct.unpack(">I", data[:4])[0]
    if len(data) < box_size or box_size % 4 != 0:
        return None
    if data[4:8] != b"ftyp":
        return None
    for st in range(8, box_size, 4):
        if st == 12:
            # minor version, not a brand
            continue
        if data[st : st + 3] == b"mp4":
            return "video/mp4"
    return None


def _is_binary_byte(b: int) -> bool:
    return b <= 0x08 or b == 0x0B or 0x0E <= b <= 0x1A or 0x1C <= b <= 0x1F


def _text(data: bytes, first_non_ws: int) -> Optional[str]:
    if any(_is_binary_byte(b) for b in data[first_non_ws:]):
        return None
    return "text/plain; charset=utf-8"


_RIFF_MASK = b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff"

SNIFF_SIGNATURES: Tuple[Matcher, ...] = (
    _html(b"<!DOCTYPE HTML"),
    _html(b"<HTML"),
    _html(b"<HEAD"),
    _html(b"<SCRIPT"),
    _html(b"<IFRAME"),
    _html(b"<H1"),
    _html(b"<DIV"),
    _html(b"<FONT"),
    _html(b"<TABLE"),
    _html(b"<A"),
    _html(b"<STYLE"),
    _html(b"<TITLE"),
    _html(b"<B"),
    _html(b"<BODY"),
    _html(b"<BR"),
    _html(b"<P"),
    _html(b"<!--"),
    _masked(b"<?xml", b"\xff\xff\xff\xff\xff", "text/xml; charset=utf-8", skip_ws=True),
    _exact(b"%PDF-", "application/pdf"),
    _exact(b"%!PS-Adobe-", "application/postscript"),
    _masked(b"\xfe\xff\x00\x00", b"\xff\xff\x00\x00", "text/plain; charset=utf-16be"),
    _masked(b"\xff\xfe\x00\x00", b"\xff\xff\x00\x00", "text/plain; charset=utf-16le"),
    _masked(b"\xef\xbb\xbf\x00", b"\xff\xff\xff\x00", "text/plain; charset=utf-8"),
    _exact(b"\x00\x00\x01\x00", "image/x-icon"),
    _exact(b"\x00\x00\x02\x00", "image/x-icon"),
    _exact(b"BM", "image/bmp"),
    _exact(b"GIF87a", "image/gif"),
    _exact(b"GIF89a", "image/gif"),
    _masked(
        b"RIFF\x00\x00\x00\x00WEBPVP",
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff\xff\xff",
        "image/webp",
    ),
    _exact(b"\x89PNG\x0d\x0a\x1a\x0a", "image/png"),
    _exact(b"\xff\xd8\xff", "image/jpeg"),
    _masked(b"FORM\x00\x00\x00\x00AIFF", _RIFF_MASK, "audio/aiff"),
    _exact(b"ID3", "audio/mpeg"),
    _exact(b"OggS\x00", "application/ogg"),
    _exact(b"MThd\x00\x00\x00\x06", "audio/midi"),
    _masked(b"RIFF\x00\x00\x00\x00AVI ", _RIFF_MASK, "video/avi"),
    _masked(b"RIFF\x00\x00\x00\x00WAVE", _RIFF_MASK, "audio/wave"),
    _mp4,
    _exact(b"\x1a\x45\xdf\xa3", "video/webm"),
    _exact(b"\x00\x01\x00\x00", "font/ttf"),
    _exact(b"OTTO", "font/otf"),
    _exact(b"ttcf", "font/collection"),
    _exact(b"wOFF", "font/woff"),
    _exact(b"wOF2", "font/woff2"),
    _exact(b"\x1f\x8b\x08", "application/x-gzip"),
    _exact(b"PK\x03\x04", "application/zip"),
    _exact(b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    _exact(b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    _exact(b"\x00\x61\x73\x6d", "application/wasm"),
    _text,
)


def detect_content_type(buf: bytes) -> str:
    """Stage 1: sniff ``buf``; never returns an empty string."""
    data = bytes(buf[:SNIFF_LEN])
    first_non_ws = 0
    while first_non_ws < len(data) and data[first_non_ws] in _WS:
        first_non_ws += 1
    for matcher in SNIFF_SIGNATURES:
        mime = matcher(data, first_non_ws)
        if mime:
            return mime
    return OCTET_STREAM


def _ftyp_brand(buf: bytes, brands: Sequence[bytes]) -> bool:
    return len(buf) >= 12 and buf[4:8] == b"ftyp" and buf[8:12] in brands


MagicMatcher = Callable[[bytes], bool]

MAGIC_TABLE: Tuple[Tuple[str, MagicMatcher], ...] = (
    ("image/x-canon-cr2", lambda b: b[:4] in (b"II*\x00", b"MM\x00*") and b[8:10] == b"CR"),
    ("image/tiff", lambda b: b[:4] in (b"II*\x00", b"MM\x00*")),
    ("image/avif", lambda b: _ftyp_brand(b, (b"avif", b"avis"))),
    (
        "image/heif",
        lambda b: _ftyp_brand(b, (b"heic", b"heix", b"hevc", b"hevx", b"mif1", b"msf1")),
    ),
    ("image/vnd.adobe.photoshop", lambda b: b.startswith(b"8BPS")),
    ("image/jp2", lambda b: b.startswith(b"\x00\x00\x00\x0cjP  \r\n\x87\n")),
    ("image/jxl", lambda b: b.startswith(b"\xff\x0a")),
    ("image/vnd.ms-photo", lambda b: b.startswith(b"II\xbc")),
    ("image/vnd.microsoft.icon", lambda b: b.startswith(b"\x00\x00\x01\x00")),
    ("application/x-7z-compressed", lambda b: b.startswith(b"7z\xbc\xaf\x27\x1c")),
    ("application/x-bzip2", lambda b: b.startswith(b"BZh")),
    ("application/x-xz", lambda b: b.startswith(b"\xfd7zXZ\x00")),
    ("application/x-tar", lambda b: b[257:262] == b"ustar"),
)


def match_magic(buf: bytes) -> str:
    """Stage 2: secondary magic numbers; empty string when nothing matches."""
    for mime, matcher in MAGIC_TABLE:
        if matcher(buf):
            return mime
    return ""


def resolve_mime_type(buf: bytes, *, is_svg: Callable[[bytes], bool] = is_svg_image) -> str:
    mime = detect_content_type(buf)

    if mime == OCTET_STREAM:
        kind = match_magic(buf)
        if kind:
            mime = kind

    if mime.startswith("text/") and len(buf) > MIN_SVG_LEN and is_svg(buf):
        mime = SVG_MIME

    return mime


__all__ = [
    "MAGIC_TABLE",
    "OCTET_STREAM",
    "SNIFF_SIGNATURES",
    "SVG_MIME",
    "detect_content_type",
    "match_magic",
    "resolve_mime_type",
]
