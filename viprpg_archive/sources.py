from __future__ import annotations
import hashlib
import os
import re
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import requests
from curl_cffi import requests as curl_requests

from .config import FestivalConfig, Paths, RetryPolicy
from .scrape_utils import safe_filename
from .wayback import build_wayback_url, is_wayback, unwrap_wayback

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/130.0.0.0 Safari/537.36"
)

HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept-Language": "ja-JP,ja;q=0.9,en-US;q=0.8,en;q=0.7",
    "Connection": "close",
}

ACCEPT = {
    "text": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "binary": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
}

DOWNGRADE_POLICY = RetryPolicy(attempts=2, delay=0.4)


class FetchError(Exception):
    def __init__(self, url: str, failures: List[Tuple[str, str]]):
        self.url = url
        self.failures = list(failures)
        detail = "; ".join(f"{name}: {msg}" for name, msg in self.failures) or "no strategy attempted"
        super().__init__(f"all sources failed for {url} ({detail})")


class InterstitialPage(Exception):
    pass


@dataclass
class Fetched:
    url: str
    content: bytes
    content_type: str = ""
    strategy: str = ""
    encoding: str = ""

    def text(self) -> str:
        if self.encoding:
            return self.content.decode(self.encoding, errors="replace")
        return decode_html(self.content, self.content_type)


def _normalize_charset(enc: str) -> str:
    e = enc.strip().strip("\"'").lower()
    if re.search(r"shift[_-]?jis|sjis|windows-31j|x-sjis|cp932", e):
        return "cp932"
    if re.search(r"euc[_-]?jp", e):
        return "euc_jp"
    if re.search(r"utf-?8", e):
        return "utf-8"
    return e


def detect_encoding(content: bytes, content_type: str | None) -> str:
    enc = ""
    m = re.search(r"charset=([^;\s]+)", content_type or "", flags=re.I)
    if m:
        enc = _normalize_charset(m.group(1))
    if not enc or enc == "utf-8":
        head = content[:4096].decode("ascii", errors="ignore")
        m = re.search(r"<meta[^>]+charset\s*=\s*[\"']?([\w-]+)", head, flags=re.I)
        if m:
            enc = _normalize_charset(m.group(1))
    return enc or "utf-8"


def decode_html(content: bytes, content_type: str | None = None) -> str:
    enc = detect_encoding(content, content_type)
    try:
        return content.decode(enc, errors="replace")
    except LookupError:
        return content.decode("utf-8", errors="replace")


def cache_name_for(url: str) -> str:
    p = urlparse(url)
    name = safe_filename(f"{p.netloc}{p.path}" + (f"-{p.query}" if p.query else ""), limit=1000)
    if len(name) > 120:
        name = name[:100] + "-" + hashlib.md5(url.encode("utf-8")).hexdigest()[:10]
    if not re.search(r"\.(html?|json|php|txt|xml)$", name, flags=re.I):
        name += ".html"
    return name


Strategy = Callable[[str, str], Fetched]


class SourceLocator:
    """Fetch a URL by walking an ordered list of transport strategies.

    Each network strategy is retried with linear backoff before moving on.
    Text responses are cached under catch/<slug>/ for reruns.
    """

    def __init__(
        self,
        festival: FestivalConfig,
        paths: Paths,
        session: requests.Session | None = None,
        strategies: List[Tuple[str, Strategy]] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        log: Callable[[str], None] | None = None,
    ):
        self.festival = festival
        self.paths = paths
        self.policy = festival.retry
        self.session = session or requests.Session()
        self.sleep = sleep
        self.log = log or (lambda msg: print(f"[{festival.slug}] {msg}", flush=True))
        self.timeout = festival.sources.timeout
        self._interstitial = re.compile(festival.sources.interstitial, re.I) if festival.sources.interstitial else None
        self.strategies = strategies if strategies is not None else self._build_strategies()

    # ------------------------------------------------------------ strategies
    def _build_strategies(self) -> List[Tuple[str, Strategy]]:
        registry: Dict[str, Strategy] = {
            "direct": self._direct,
            "http_downgrade": self._http_downgrade,
            "impersonate": self._impersonate,
            "reader": self._reader,
            "curl": self._curl,
            "wayback": self._wayback,
            "cache": self._cache,
        }
        names = [n for n in self.festival.sources.strategies if n != "cache"]
        if self.festival.sources.prefer_cache:
            names = ["cache"] + names
        elif "cache" in self.festival.sources.strategies:
            names = names + ["cache"]
        return [(n, registry[n]) for n in names]

    def _headers(self, kind: str, referer: str | None = None) -> Dict[str, str]:
        h = dict(HEADERS)
        h["Accept"] = ACCEPT.get(kind, ACCEPT["text"])
        if referer:
            h["Referer"] = referer
        return h

    def _get(self, url: str, kind: str) -> Fetched:
        resp = self.session.get(url, headers=self._headers(kind), timeout=self.timeout, allow_redirects=True)
        resp.raise_for_status()
        return Fetched(url, resp.content, (resp.headers.get("Content-Type") or "").lower())

    def _direct(self, url: str, kind: str) -> Fetched:
        return self._retry(lambda: self._get(url, kind), self.policy)

    def _http_downgrade(self, url: str, kind: str) -> Fetched:
        if not url.startswith("https://"):
            raise ValueError("not an https url")
        http_url = "http://" + url[len("https://"):]
        return self._retry(lambda: self._get(http_url, kind), DOWNGRADE_POLICY)

    def _impersonated_get(self, url: str, kind: str, imp: str) -> Fetched:
        resp = curl_requests.get(url, headers=self._headers(kind), impersonate=imp, timeout=self.timeout)
        if resp.status_code != 200 or not resp.content:
            raise RuntimeError(f"HTTP {resp.status_code}")
        return Fetched(url, resp.content, (resp.headers.get("Content-Type") or "").lower())

    def _impersonate(self, url: str, kind: str) -> Fetched:
        last: Exception | None = None
        for imp in ("chrome124", "chrome120"):
            try:
                return self._retry(lambda: self._impersonated_get(url, kind, imp), self.policy)
            except Exception as e:
                last = e
        raise last or RuntimeError("impersonation failed")

    def _reader(self, url: str, kind: str) -> Fetched:
        # the reader proxy only returns rendered text
        if kind != "text":
            raise ValueError("reader proxy serves text only")
        proxied = self.festival.sources.reader_prefix + url
        return self._retry(lambda: self._get(proxied, kind), self.policy)

    def _curl(self, url: str, kind: str) -> Fetched:
        return self._retry(lambda: self._curl_once(url, kind), self.policy)

    def _curl_once(self, url: str, kind: str) -> Fetched:
        args = [
            "curl", "-sSL", "--fail", "--http1.1",
            "-A", USER_AGENT,
            "-H", f"Accept: {ACCEPT.get(kind, ACCEPT['text'])}",
            url,
        ]
        proc = subprocess.run(args, capture_output=True, timeout=self.timeout * 2, check=False)
        if proc.returncode != 0:
            err = proc.stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"curl exited {proc.returncode}: {err}")
        return Fetched(url, proc.stdout, "")

    def _wayback(self, url: str, kind: str) -> Fetched:
        if is_wayback(url):
            raise ValueError("already a wayback url")
        original = unwrap_wayback(url) or url
        mode = "id_" if kind == "text" else "im_"
        archived = build_wayback_url("2", original, mode)
        return self._retry(lambda: self._get(archived, kind), self.policy)

    def _cache(self, url: str, kind: str) -> Fetched:
        if kind != "text":
            raise ValueError("only text responses are cached")
        path = self.paths.catch_dir / cache_name_for(url)
        if not path.exists():
            raise FileNotFoundError(str(path))
        return Fetched(url, path.read_bytes(), "text/html", encoding="utf-8")

    def _retry(self, fn: Callable[[], Fetched], policy: RetryPolicy) -> Fetched:
        last: Exception | None = None
        for attempt in range(1, policy.attempts + 1):
            try:
                return fn()
            except Exception as e:
                last = e
                if attempt < policy.attempts:
                    self.sleep(policy.backoff(attempt))
        raise last or RuntimeError("no attempts made")

    # ------------------------------------------------------------- interface
    def locate(self, url: str, kind: str = "text", skip: tuple[str, ...] = ()) -> Fetched:
        failures: List[Tuple[str, str]] = []
        for name, strategy in self.strategies:
            if name in skip:
                continue
            try:
                fetched = strategy(url, kind)
            except Exception as e:
                failures.append((name, str(e) or e.__class__.__name__))
                continue
            fetched.strategy = name
            if kind == "text" and self._interstitial is not None:
                text = fetched.text()
                if self._interstitial.search(text):
                    failures.append((name, str(InterstitialPage("interstitial page"))))
                    continue
            return fetched
        raise FetchError(url, failures)

    def fetch_text(self, url: str, required: bool = True, skip: tuple[str, ...] = ()) -> Optional[str]:
        try:
            fetched = self.locate(url, "text", skip=skip)
        except FetchError as e:
            if required:
                raise
            self.log(f"optional text fetch failed: {e}")
            return None
        text = fetched.text()
        if fetched.strategy != "cache":
            self.write_cache(cache_name_for(url), text)
        return text

    def fetch_binary(self, url: str, required: bool = False) -> Optional[Fetched]:
        try:
            return self.locate(url, "binary")
        except FetchError:
            if required:
                raise
            return None

    def write_cache(self, name: str, text: str) -> None:
        os.makedirs(self.paths.catch_dir, exist_ok=True)
        with open(self.paths.catch_dir / name, "w", encoding="utf-8") as f:
            f.write(text)
