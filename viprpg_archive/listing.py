from __future__ import annotations
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from .config import ListingConfig
from .scrape_utils import abs_url, g, pad_index, split_br, z2h_digits

DEFAULT_JSON_FIELDS = {
    "no": "no",
    "title": "title",
    "author": "author",
    "category": "category",
    "engine": "engine",
    "streaming": "streaming",
    "icon": "icon",
    "detail": "url",
    "forum": "forum",
    "download": "download",
}


@dataclass
class EntryStub:
    index: str
    no: str
    title: str = ""
    author: str = ""
    category: str = ""
    engine: str = ""
    streaming: str = ""
    icon_url: str = ""
    detail_url: str = ""
    forum_url: str = ""
    download_url: str = ""
    download_label: str = ""
    extra_images: List[str] = field(default_factory=list)


def parse_no(text: str, lenient: bool = False) -> Optional[str]:
    """Return the entry number of a first cell, or None for header/decoration rows."""
    t = g(z2h_digits(text))
    if lenient:
        t = re.sub(r"^(?:No\.?|#|エントリー?)\s*", "", t, flags=re.I)
    if re.fullmatch(r"\d{1,3}", t):
        return t
    return None


def _inner_html(el: Tag | None) -> str:
    if el is None:
        return ""
    return el.decode_contents()


def _first_href(el: Tag | None, base: str) -> str:
    if el is None:
        return ""
    a = el.find("a", href=True)
    return abs_url(a["href"], base) if a else ""


def _cell(cells: List[Tag], columns: Dict[str, Any], key: str) -> Tag | None:
    i = columns.get(key)
    if i is None or not (0 <= int(i) < len(cells)):
        return None
    return cells[int(i)]


def _work_cell_entries(cell: Tag | None, num: str, base: str) -> List[Dict[str, str]]:
    if cell is None:
        return [{"index": num, "title": "", "author": "", "detail": ""}]
    anchors = [a for a in cell.find_all("a", href=True) if g(a.get_text())]
    hrefs = {abs_url(a["href"], base) for a in anchors}
    cell_lines = split_br(_inner_html(cell))
    titles = [g(a.get_text()) for a in anchors]
    rest = [s for s in cell_lines if s not in titles]
    if len(anchors) > 1 and len(hrefs) == len(anchors) and len(rest) == len(anchors):
        # several works share one number, each with its own author line: 01a, 01b, ...
        out = []
        for i, a in enumerate(anchors):
            out.append({
                "index": f"{num}{chr(97 + i)}",
                "title": titles[i],
                "author": rest[i],
                "detail": abs_url(a["href"], base),
            })
        return out
    a = anchors[0] if anchors else None
    lines = split_br(_inner_html(a)) if a is not None else []
    if len(lines) < 2:
        lines = cell_lines
    return [{
        "index": num,
        "title": lines[0] if lines else "",
        "author": lines[1] if len(lines) > 1 else "",
        "detail": abs_url(a["href"], base) if a is not None else "",
    }]


def parse_table_listing(html: str, base_url: str, cfg: ListingConfig | None = None, wiki: bool = False) -> List[EntryStub]:
    cfg = cfg or ListingConfig()
    soup = BeautifulSoup(html, "html.parser")
    stubs: List[EntryStub] = []
    for tr in soup.select("table tr"):
        cells = tr.find_all(["td", "th"] if wiki else "td", recursive=False)
        if len(cells) < cfg.min_cells:
            continue
        no_cell = _cell(cells, cfg.columns, "no")
        no = parse_no(no_cell.get_text() if no_cell else "", lenient=wiki)
        if no is None:
            continue
        num = pad_index(no)

        icon_cell = _cell(cells, cfg.columns, "icon")
        img = icon_cell.find("img", src=True) if icon_cell else None
        if img is None and wiki:
            img = tr.find("img", src=True)
        icon_url = abs_url(img["src"], base_url) if img else ""

        type_lines = split_br(_inner_html(_cell(cells, cfg.columns, "type")))
        streaming_cell = _cell(cells, cfg.columns, "streaming")
        dl_cell = _cell(cells, cfg.columns, "download")
        dl_a = dl_cell.find("a", href=True) if dl_cell else None

        for w in _work_cell_entries(_cell(cells, cfg.columns, "work"), num, base_url):
            stubs.append(EntryStub(
                index=w["index"],
                no=no,
                title=w["title"] or f"Work {num}",
                author=w["author"],
                category=type_lines[0] if type_lines else "",
                engine=type_lines[1] if len(type_lines) > 1 else "",
                streaming=g(streaming_cell.get_text(" ")) if streaming_cell else "",
                icon_url=icon_url,
                detail_url=w["detail"],
                forum_url=_first_href(_cell(cells, cfg.columns, "forum"), base_url),
                download_url=abs_url(dl_a["href"], base_url) if dl_a else "",
                download_label=g(dl_a.get_text()) if dl_a else "",
            ))
    return dedupe(stubs)


def _path(obj: Any, dotted: str) -> Any:
    cur = obj
    for part in [p for p in str(dotted or "").split(".") if p]:
        if isinstance(cur, dict):
            cur = cur.get(part)
        elif isinstance(cur, list) and part.isdigit() and int(part) < len(cur):
            cur = cur[int(part)]
        else:
            return None
    return cur


def _str(v: Any) -> str:
    if v is None or isinstance(v, (dict, list)):
        return ""
    return g(str(v))


def parse_json_listing(text: str, base_url: str, cfg: ListingConfig | None = None) -> List[EntryStub]:
    cfg = cfg or ListingConfig(format="json")
    fields = dict(DEFAULT_JSON_FIELDS)
    fields.update(cfg.fields or {})
    data = json.loads(text)
    if cfg.items_key:
        data = _path(data, cfg.items_key)
    if isinstance(data, dict):
        items = list(data.items())
    elif isinstance(data, list):
        items = [(None, v) for v in data]
    else:
        raise ValueError("listing JSON is neither an array nor an object")

    stubs: List[EntryStub] = []
    for pos, (key, item) in enumerate(items, 1):
        if not isinstance(item, dict):
            continue
        raw_no = _str(_path(item, fields["no"])) or (str(key) if key is not None else str(pos))
        no = parse_no(raw_no, lenient=True)
        if no is None:
            continue
        num = pad_index(no)
        download = _path(item, fields["download"])
        dl_url, dl_label = "", ""
        if isinstance(download, dict):
            dl_url, dl_label = _str(download.get("url")), _str(download.get("label"))
        else:
            dl_url = _str(download)
        stubs.append(EntryStub(
            index=num,
            no=no,
            title=_str(_path(item, fields["title"])) or f"Work {num}",
            author=_str(_path(item, fields["author"])),
            category=_str(_path(item, fields["category"])),
            engine=_str(_path(item, fields["engine"])),
            streaming=_str(_path(item, fields["streaming"])),
            icon_url=abs_url(_str(_path(item, fields["icon"])), base_url),
            detail_url=abs_url(_str(_path(item, fields["detail"])), base_url),
            forum_url=abs_url(_str(_path(item, fields["forum"])), base_url),
            download_url=abs_url(dl_url, base_url),
            download_label=dl_label,
        ))
    return dedupe(stubs)


def dedupe(stubs: List[EntryStub]) -> List[EntryStub]:
    seen: Dict[str, EntryStub] = {}
    for s in stubs:
        if s.index not in seen:
            seen[s.index] = s
    return list(seen.values())


def parse_listing(text: str, base_url: str, cfg: ListingConfig) -> List[EntryStub]:
    if cfg.format == "json":
        return parse_json_listing(text, base_url, cfg)
    return parse_table_listing(text, base_url, cfg, wiki=(cfg.format == "wiki"))


def find_content_frame(html: str, base_url: str) -> str:
    """For a frameset page, the URL of the frame that holds the listing."""
    if not re.search(r"<frameset\b", html or "", flags=re.I):
        return ""
    soup = BeautifulSoup(html, "html.parser")
    frames = [f for f in soup.find_all("frame") if f.get("src")]
    named = soup.find("frame", attrs={"name": "cont"})
    if named is not None and named.get("src"):
        return abs_url(named["src"], base_url)
    if len(frames) > 1:
        return abs_url(frames[1]["src"], base_url)
    if frames:
        return abs_url(frames[0]["src"], base_url)
    return ""


def find_banner_url(html: str, base_url: str, selector: str = "") -> str:
    soup = BeautifulSoup(html or "", "html.parser")
    img = None
    if selector:
        img = soup.select_one(selector)
    if img is None:
        img = soup.select_one("img[src*='banner']") or soup.find("img", src=True)
    if img is None or not img.get("src"):
        return ""
    return abs_url(img["src"], base_url)
