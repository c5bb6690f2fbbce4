import struct
from typing import Dict

import pytest

from viprpg_archive.config import FestivalConfig
from viprpg_archive.sources import FetchError, Fetched


def png_bytes(w: int, h: int, tail: bytes = b"") -> bytes:
    return (b"\x89PNG\r\n\x1a\n" + struct.pack(">I", 13) + b"IHDR"
            + struct.pack(">II", w, h) + b"\x08\x06\x00\x00\x00" + tail)


def jpeg_bytes(w: int, h: int) -> bytes:
    app0 = b"\xff\xe0" + struct.pack(">H", 16) + b"JFIF\x00" + b"\x00" * 9
    sof = b"\xff\xc0" + struct.pack(">H", 17) + b"\x08" + struct.pack(">HH", h, w) + b"\x03" + b"\x00" * 9
    return b"\xff\xd8" + app0 + sof + b"\xff\xd9"


def gif_bytes(w: int, h: int) -> bytes:
    return b"GIF89a" + struct.pack("<HH", w, h) + b"\x00" * 8


def bmp_bytes(w: int, h: int) -> bytes:
    return b"BM" + b"\x00" * 12 + struct.pack("<I", 40) + struct.pack("<ii", w, -h) + b"\x00" * 28


class FakeLocator:
    """Serves canned text pages and binaries keyed by URL."""

    def __init__(self, pages: Dict[str, str] | None = None, binaries: Dict[str, bytes] | None = None,
                 broken: Dict[str, Exception] | None = None):
        self.pages = dict(pages or {})
        self.binaries = dict(binaries or {})
        self.broken = dict(broken or {})
        self.session = object()

    def locate(self, url, kind="text", skip=()):
        if url in self.broken:
            raise self.broken[url]
        if kind == "binary" and url in self.binaries:
            return Fetched(url, self.binaries[url], "", "fake")
        if kind == "text" and url in self.pages:
            return Fetched(url, self.pages[url].encode("utf-8"), "text/html; charset=utf-8", "fake")
        raise FetchError(url, [("fake", "not found")])

    def fetch_text(self, url, required=True, skip=()):
        try:
            return self.locate(url, "text", skip).text()
        except FetchError:
            if required:
                raise
            return None

    def fetch_binary(self, url, required=False):
        try:
            return self.locate(url, "binary")
        except FetchError:
            if required:
                raise
            return None


@pytest.fixture
def festival():
    return FestivalConfig(id="2099-test", base_urls=["https://example.com/fes/"])


@pytest.fixture
def paths(festival, tmp_path):
    return festival.paths(tmp_path)
