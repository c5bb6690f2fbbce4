"""Image format and dimension sniffing from raw header bytes.

Archived and proxied responses often misreport Content-Type, so these checks
look only at the bytes.
"""
from __future__ import annotations
import struct
from typing import Optional, Tuple

FORMAT_EXT = {
    "png": ".png",
    "jpeg": ".jpg",
    "gif": ".gif",
    "bmp": ".bmp",
}

# SOF0..SOF15 minus DHT (C4), JPG (C8) and DAC (CC)
_JPEG_SOF = set(range(0xC0, 0xD0)) - {0xC4, 0xC8, 0xCC}


def sniff_format(data: bytes) -> Optional[str]:
    if not data:
        return None
    if data[:4] == b"\x89PNG":
        return "png"
    if data[:2] == b"\xff\xd8":
        return "jpeg"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if data[:2] == b"BM":
        return "bmp"
    return None


def is_image(data: bytes) -> bool:
    return sniff_format(data) is not None


def looks_like_html(data: bytes) -> bool:
    if not data:
        return True
    sample = data[:256].lstrip().lower()
    return sample.startswith((b"<!doctype", b"<html", b"<head", b"<body", b"<?xml"))


def _png_size(data: bytes) -> Optional[Tuple[int, int]]:
    if len(data) < 24 or data[12:16] != b"IHDR":
        return None
    w, h = struct.unpack(">II", data[16:24])
    return w, h


def _jpeg_size(data: bytes) -> Optional[Tuple[int, int]]:
    offset = 2
    size = len(data)
    while offset < size:
        while offset < size and data[offset] != 0xFF:
            offset += 1
        # skip fill bytes
        while offset < size and data[offset] == 0xFF:
            offset += 1
        if offset >= size:
            return None
        marker = data[offset]
        offset += 1
        if marker in (0xD8, 0x01) or 0xD0 <= marker <= 0xD7:
            continue
        if marker in (0xD9, 0xDA):
            return None
        if offset + 2 > size:
            return None
        (length,) = struct.unpack(">H", data[offset:offset + 2])
        if length < 2:
            return None
        if marker in _JPEG_SOF:
            if offset + 7 > size:
                return None
            h, w = struct.unpack(">HH", data[offset + 3:offset + 7])
            return w, h
        offset += length
    return None


def _gif_size(data: bytes) -> Optional[Tuple[int, int]]:
    if len(data) < 10:
        return None
    return struct.unpack("<HH", data[6:10])


def _bmp_size(data: bytes) -> Optional[Tuple[int, int]]:
    if len(data) < 26:
        return None
    (header_size,) = struct.unpack("<I", data[14:18])
    if header_size == 12:
        # OS/2 BITMAPCOREHEADER
        w, h = struct.unpack("<HH", data[18:22])
        return w, h
    w, h = struct.unpack("<ii", data[18:26])
    return abs(w), abs(h)


_READERS = {
    "png": _png_size,
    "jpeg": _jpeg_size,
    "gif": _gif_size,
    "bmp": _bmp_size,
}


def get_image_dimensions(data: bytes) -> Optional[Tuple[int, int]]:
    """Return (width, height) parsed from the header, or None when unknown."""
    fmt = sniff_format(data)
    if fmt is None:
        return None
    return _READERS[fmt](data)


def is_small(data: bytes, limit: int) -> bool:
    dim = get_image_dimensions(data)
    if dim is None:
        return False
    w, h = dim
    return w < limit and h < limit
