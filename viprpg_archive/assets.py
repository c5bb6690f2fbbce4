from __future__ import annotations
import hashlib
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from .config import FestivalConfig, Paths
from .images import FORMAT_EXT, is_small, looks_like_html, sniff_format
from .sources import FetchError


@dataclass
class ScreenshotSkip:
    source: str
    reason: str  # "small" | "duplicate"


@dataclass
class DownloadResult:
    paths: List[str] = field(default_factory=list)
    skipped: List[ScreenshotSkip] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    def report(self) -> Dict[str, object]:
        rep: Dict[str, object] = {"saved": len(self.paths)}
        if self.skipped:
            rep["skipped"] = [asdict(s) for s in self.skipped]
        if self.failures:
            rep["failures"] = list(self.failures)
        return rep


class AssetError(Exception):
    pass


def content_hash(data: bytes, algorithm: str = "md5") -> str:
    return hashlib.new(algorithm, data).hexdigest()


def classify(data: bytes, seen: Set[str], limit: int, algorithm: str = "md5") -> Optional[str]:
    """'small', 'duplicate', or None for an accepted screenshot (its hash is then recorded)."""
    if is_small(data, limit):
        return "small"
    digest = content_hash(data, algorithm)
    if digest in seen:
        return "duplicate"
    seen.add(digest)
    return None


def screenshot_name(index: str, order: int, ext: str) -> str:
    if order == 1:
        return f"{index}{ext}"
    return f"{index}-{order:02d}{ext}"


def purge(directory: Path, index: str) -> int:
    """Remove files written for this entry by a previous run."""
    if not directory.is_dir():
        return 0
    removed = 0
    for p in directory.iterdir():
        if not p.is_file():
            continue
        if p.stem == index or p.stem.startswith(f"{index}-"):
            p.unlink()
            removed += 1
    return removed


class AssetStore:
    def __init__(self, festival: FestivalConfig, paths: Paths, locator, log: Callable[[str], None] | None = None):
        self.festival = festival
        self.paths = paths
        self.locator = locator
        self.log = log or (lambda msg: print(f"[{festival.slug}] {msg}", flush=True))

    def _read_local(self, source: str) -> bytes:
        p = Path(source)
        if source.startswith("/") and not p.exists():
            p = self.paths.public_dir / source.lstrip("/")
        if not p.is_file():
            raise AssetError(f"missing local file {p}")
        return p.read_bytes()

    def fetch_image(self, source: str) -> Tuple[bytes, str]:
        """Image bytes and extension, validated by magic bytes."""
        if source.startswith(("http://", "https://")):
            try:
                fetched = self.locator.locate(source, "binary")
            except FetchError as e:
                raise AssetError(str(e))
            data, ctype = fetched.content, fetched.content_type
        else:
            data, ctype = self._read_local(source), ""
        fmt = sniff_format(data)
        if fmt is None:
            kind = "html" if looks_like_html(data) else (ctype or "unknown")
            raise AssetError(f"not image: {kind}")
        return data, FORMAT_EXT[fmt]

    def _write(self, directory: Path, name: str, data: bytes) -> None:
        os.makedirs(directory, exist_ok=True)
        with open(directory / name, "wb") as f:
            f.write(data)

    def copy_icon(self, index: str, candidates: List[str]) -> Optional[str]:
        """Store the first small image among candidates (else the first valid one) as the icon."""
        chosen: Optional[Tuple[bytes, str]] = None
        for src in candidates:
            if not src:
                continue
            try:
                data, ext = self.fetch_image(src)
            except AssetError as e:
                self.log(f"icon candidate rejected for {index}: {src} ({e})")
                continue
            if is_small(data, self.festival.small_image_limit):
                chosen = (data, ext)
                break
            if chosen is None:
                chosen = (data, ext)
        if chosen is None:
            return None
        data, ext = chosen
        purge(self.paths.icons_dir, index)
        name = f"{index}{ext}"
        self._write(self.paths.icons_dir, name, data)
        return f"{self.paths.icons_rel}/{name}"

    def copy_screenshots(self, index: str, sources: List[str]) -> DownloadResult:
        directory = self.paths.screenshots_dir
        result = DownloadResult()
        seen: Set[str] = set()
        accepted: List[Tuple[str, bytes]] = []
        order = 1
        for src in sources:
            if len(accepted) >= self.festival.max_screenshots:
                break
            try:
                data, ext = self.fetch_image(src)
            except AssetError as e:
                result.failures.append(f"{src} => {e}")
                continue
            reason = classify(data, seen, self.festival.small_image_limit, self.festival.hash_algorithm)
            if reason:
                result.skipped.append(ScreenshotSkip(src, reason))
                continue
            accepted.append((screenshot_name(index, order, ext), data))
            order += 1
        # a merging run that found nothing keeps the previous files, which the merged record still points at
        if not accepted and self.festival.merge:
            return result
        os.makedirs(directory, exist_ok=True)
        purge(directory, index)
        for name, data in accepted:
            self._write(directory, name, data)
            result.paths.append(f"{self.paths.screenshots_rel}/{name}")
        return result

    def save_banner(self, url: str) -> Optional[str]:
        if not url:
            return None
        try:
            data, ext = self.fetch_image(url)
        except AssetError as e:
            self.log(f"banner not saved: {e}")
            return None
        name = f"{self.festival.slug}{ext}"
        for old in self.paths.banners_dir.glob(f"{self.festival.slug}.*") if self.paths.banners_dir.is_dir() else []:
            old.unlink()
        self._write(self.paths.banners_dir, name, data)
        return f"{self.paths.banners_rel}/{name}"
