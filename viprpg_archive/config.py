from __future__ import annotations
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


DEFAULT_CONFIG = os.path.join(os.path.dirname(__file__), "festivals.yaml")

DEFAULT_STRATEGIES = ["direct", "http_downgrade", "impersonate", "reader", "curl", "wayback", "cache"]
KNOWN_STRATEGIES = set(DEFAULT_STRATEGIES)

DEFAULT_COLUMNS = {
    "no": 0,
    "icon": 1,
    "work": 2,
    "type": 3,
    "download": 4,
    "streaming": 5,
    "forum": 6,
}

DEFAULT_DENYLIST = [
    r"counter",
    r"/icons?/",
    r"gstatic",
    r"googleusercontent\.com/a/",
    r"material/product",
    r"/(?:banner|bg|back|title_?logo|line|spacer)[^/]*\.(?:png|jpe?g|gif|bmp)$",
]

AUTHOR_COMMENT_LABELS = ["作者コメント", "作者のコメント", "備考"]
HOST_COMMENT_LABELS = ["管理人コメント", "主催コメント"]


class ConfigError(Exception):
    pass


@dataclass
class RetryPolicy:
    attempts: int = 3
    delay: float = 0.3

    def backoff(self, attempt: int) -> float:
        return self.delay * attempt


@dataclass
class Paths:
    root: Path
    slug: str

    @property
    def catch_dir(self) -> Path:
        return self.root / "catch" / self.slug

    @property
    def summary_path(self) -> Path:
        return self.catch_dir / f"{self.slug}-scrape-summary.json"

    @property
    def public_dir(self) -> Path:
        return self.root / "public"

    @property
    def banners_dir(self) -> Path:
        return self.public_dir / "banners"

    @property
    def icons_dir(self) -> Path:
        return self.public_dir / "icons" / self.slug

    @property
    def screenshots_dir(self) -> Path:
        return self.public_dir / "screenshots" / self.slug

    @property
    def works_path(self) -> Path:
        return self.root / "src" / "data" / "works" / f"{self.slug}.json"

    @property
    def icons_rel(self) -> str:
        return f"/icons/{self.slug}"

    @property
    def screenshots_rel(self) -> str:
        return f"/screenshots/{self.slug}"

    @property
    def banners_rel(self) -> str:
        return "/banners"


@dataclass
class ListingConfig:
    url: str = ""
    format: str = "table"
    columns: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_COLUMNS))
    min_cells: int = 5
    items_key: str = ""
    fields: Dict[str, str] = field(default_factory=dict)


@dataclass
class DetailConfig:
    enabled: bool = True
    url_template: str = ""
    author_labels: List[str] = field(default_factory=lambda: list(AUTHOR_COMMENT_LABELS))
    host_labels: List[str] = field(default_factory=lambda: list(HOST_COMMENT_LABELS))
    denylist: List[str] = field(default_factory=lambda: list(DEFAULT_DENYLIST))


@dataclass
class SourceConfig:
    strategies: List[str] = field(default_factory=lambda: list(DEFAULT_STRATEGIES))
    prefer_cache: bool = False
    reader_prefix: str = "https://r.jina.ai/"
    interstitial: str = r"年齢認証|adult_eula"
    timeout: int = 30


@dataclass
class WaybackConfig:
    prefixes: List[str] = field(default_factory=list)
    index_pattern: str = r"/(?:top|index|menu_entry|menu_top)\.html?$"
    detail_pattern: str = ""
    icon_pattern: str = ""
    screenshot_pattern: str = ""


@dataclass
class FestivalConfig:
    id: str
    slug: str = ""
    base_urls: List[str] = field(default_factory=list)
    listing: ListingConfig = field(default_factory=ListingConfig)
    detail: DetailConfig = field(default_factory=DetailConfig)
    sources: SourceConfig = field(default_factory=SourceConfig)
    wayback: Optional[WaybackConfig] = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    small_image_limit: int = 100
    max_screenshots: int = 6
    hash_algorithm: str = "md5"
    id_style: str = "work"
    merge: bool = False
    banner: Dict[str, str] = field(default_factory=dict)
    internal_hosts: List[str] = field(default_factory=list)
    prefer_live_forum: bool = False
    unknown_author: str = "不明"

    def __post_init__(self) -> None:
        if not self.slug:
            self.slug = self.id
        if self.hash_algorithm not in ("md5", "sha1"):
            raise ConfigError(f"{self.id}: unsupported hash_algorithm {self.hash_algorithm!r}")
        if self.id_style not in ("work", "plain"):
            raise ConfigError(f"{self.id}: unsupported id_style {self.id_style!r}")
        if self.listing.format not in ("table", "wiki", "json"):
            raise ConfigError(f"{self.id}: unsupported listing format {self.listing.format!r}")
        unknown = [s for s in self.sources.strategies if s not in KNOWN_STRATEGIES]
        if unknown:
            raise ConfigError(f"{self.id}: unknown source strategies {unknown}")
        for pat in list(self.detail.denylist) + [self.sources.interstitial or ""]:
            try:
                re.compile(pat)
            except re.error as e:
                raise ConfigError(f"{self.id}: invalid pattern {pat!r}: {e}") from e

    @property
    def base_url(self) -> str:
        if self.listing.url:
            return self.listing.url
        return self.base_urls[0] if self.base_urls else ""

    def work_id(self, index: str) -> str:
        if self.id_style == "plain":
            return f"{self.slug}-{index}"
        return f"{self.id}-work-{index}"

    def paths(self, root: str | Path) -> Paths:
        return Paths(Path(root), self.slug)


def _section(cls, raw: Any, name: str):
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    try:
        return cls(**raw)
    except TypeError as e:
        raise ConfigError(f"invalid '{name}' options: {e}")


def festival_from_dict(data: Dict[str, Any]) -> FestivalConfig:
    data = dict(data or {})
    fid = str(data.pop("id", "") or "").strip()
    if not fid:
        raise ConfigError("festival entry without id")
    listing = _section(ListingConfig, data.pop("listing", None), "listing")
    merged = dict(DEFAULT_COLUMNS)
    merged.update(listing.columns or {})
    listing.columns = merged
    detail = _section(DetailConfig, data.pop("detail", None), "detail")
    sources = _section(SourceConfig, data.pop("sources", None), "sources")
    retry = _section(RetryPolicy, data.pop("retry", None), "retry")
    wb_raw = data.pop("wayback", None)
    wayback = _section(WaybackConfig, wb_raw, "wayback") if wb_raw else None
    base_urls = data.pop("base_urls", None) or []
    if isinstance(base_urls, str):
        base_urls = [base_urls]
    try:
        return FestivalConfig(
            id=fid,
            base_urls=list(base_urls),
            listing=listing,
            detail=detail,
            sources=sources,
            wayback=wayback,
            retry=retry,
            **data,
        )
    except TypeError as e:
        raise ConfigError(f"{fid}: {e}")


def load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_festivals(path: str | None = None) -> List[FestivalConfig]:
    explicit = path or os.environ.get("FESTIVALS_YAML")
    cfg_path = explicit or DEFAULT_CONFIG
    if not os.path.exists(cfg_path):
        if explicit:
            raise ConfigError(f"config not found: {cfg_path}")
        return []
    cfg = load_yaml(cfg_path)
    return [festival_from_dict(f) for f in (cfg.get("festivals") or [])]


def find_festival(festivals: List[FestivalConfig], key: str) -> FestivalConfig:
    for fes in festivals:
        if key in (fes.id, fes.slug):
            return fes
    raise ConfigError(f"unknown festival: {key}")
