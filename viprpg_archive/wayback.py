from __future__ import annotations
import json
import re
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import quote, urlparse

from .scrape_utils import pad_index

ARCHIVE_HOST = "web.archive.org"
TIMEMAP_FIELDS = ["original", "mimetype", "timestamp", "endtimestamp", "groupcount", "uniqcount"]


@dataclass
class TimemapRow:
    original: str
    mimetype: str = ""
    timestamp: str = ""
    endtimestamp: str = ""
    groupcount: int = 0
    uniqcount: int = 0

    @property
    def latest(self) -> str:
        return self.endtimestamp or self.timestamp


def timemap_url(prefix: str) -> str:
    return (
        f"https://{ARCHIVE_HOST}/web/timemap/json?url={quote(prefix, safe='')}"
        "&matchType=prefix&collapse=urlkey&output=json"
        "&fl=" + quote(",".join(TIMEMAP_FIELDS), safe="")
        + "&filter=" + quote("!statuscode:[45]..", safe="")
        + "&limit=10000"
    )


def _to_int(v) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return 0


def parse_timemap(text: str) -> List[TimemapRow]:
    """Parse the JSON timemap; the first row names the columns."""
    try:
        raw = json.loads(text)
    except ValueError:
        return []
    if not isinstance(raw, list) or len(raw) < 2 or not isinstance(raw[0], list):
        return []
    header = [str(h) for h in raw[0]]
    idx = {name: (header.index(name) if name in header else -1) for name in TIMEMAP_FIELDS}

    def cell(row: list, name: str):
        i = idx[name]
        return row[i] if 0 <= i < len(row) else None

    out: List[TimemapRow] = []
    for row in raw[1:]:
        if not isinstance(row, list):
            continue
        out.append(TimemapRow(
            original=str(cell(row, "original") or ""),
            mimetype=str(cell(row, "mimetype") or ""),
            timestamp=str(cell(row, "timestamp") or ""),
            endtimestamp=str(cell(row, "endtimestamp") or ""),
            groupcount=_to_int(cell(row, "groupcount")),
            uniqcount=_to_int(cell(row, "uniqcount")),
        ))
    return out


def fetch_timemap(locator, prefix: str) -> List[TimemapRow]:
    # the reader proxy would return rendered text instead of JSON
    text = locator.fetch_text(timemap_url(prefix), required=True, skip=("reader", "wayback"))
    return parse_timemap(text or "")


def build_wayback_url(ts: str, original: str, mode: str = "id_") -> str:
    clean_ts = ts if ts and re.search(r"\d", ts) else "2"
    return f"https://{ARCHIVE_HOST}/web/{clean_ts}{mode}/{original}"


def is_wayback(url: str | None) -> bool:
    try:
        return (urlparse(url or "").hostname or "") == ARCHIVE_HOST
    except ValueError:
        return False


def unwrap_wayback(url: str | None) -> Optional[str]:
    if not url:
        return None
    if not is_wayback(url):
        return url
    m = re.match(r"^/web/[0-9]+(?:[a-z]{2}_)?/(https?:/{1,2}.*)$", urlparse(url).path, flags=re.I)
    if not m:
        return url
    original = re.sub(r"^(https?:)/+", r"\1//", m.group(1))
    query = urlparse(url).query
    return original + (f"?{query}" if query else "")


def _index_of(url: str, pattern: re.Pattern) -> Optional[str]:
    m = pattern.search(url)
    if not m:
        return None
    groups = [x for x in m.groups() if x]
    if not groups:
        return None
    return pad_index(groups[0])


def latest_by_index(rows: List[TimemapRow], pattern: str) -> Dict[str, TimemapRow]:
    """Most recent capture per entry index; the index is the regex's first matched group."""
    rx = re.compile(pattern, re.I)
    out: Dict[str, TimemapRow] = {}
    for r in rows:
        idx = _index_of(r.original, rx)
        if idx is None:
            continue
        prev = out.get(idx)
        if prev is None or r.latest > prev.latest:
            out[idx] = r
    return out


def rows_by_index(rows: List[TimemapRow], pattern: str) -> Dict[str, List[TimemapRow]]:
    rx = re.compile(pattern, re.I)
    out: Dict[str, List[TimemapRow]] = {}
    for r in rows:
        idx = _index_of(r.original, rx)
        if idx is None:
            continue
        out.setdefault(idx, []).append(r)
    return out


def snapshot_candidates(rows: List[TimemapRow], mode: str = "fw_") -> List[str]:
    """Snapshot URLs newest first, ending with the archive's best-match redirect."""
    ordered = sorted(rows, key=lambda r: r.latest, reverse=True)
    out: List[str] = []
    for r in ordered:
        u = build_wayback_url(r.latest, r.original, mode)
        if u not in out:
            out.append(u)
    if ordered:
        fallback = f"https://{ARCHIVE_HOST}/web/2/{ordered[0].original}"
        if fallback not in out:
            out.append(fallback)
    return out


def asset_candidates(rows: List[TimemapRow]) -> List[str]:
    out: List[str] = []
    for r in sorted(rows, key=lambda r: r.latest, reverse=True):
        for mode in ("im_", "id_"):
            u = build_wayback_url(r.latest, r.original, mode)
            if u not in out:
                out.append(u)
    return out


def find_index_row(rows: List[TimemapRow], pattern: str) -> List[TimemapRow]:
    rx = re.compile(pattern, re.I)
    return [r for r in rows if rx.search(urlparse(r.original).path or r.original)]
