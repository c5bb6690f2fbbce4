from __future__ import annotations
import json
import re
from dataclasses import dataclass, field, fields
from typing import List, Optional

from bs4 import BeautifulSoup, Tag

from .config import DetailConfig
from .listing import EntryStub
from .scrape_utils import abs_url, g, sanitize_multiline, text_with_breaks, uniq

FIELD_LABELS = {
    "author": ["作者", "制作者", "製作者"],
    "category": ["ジャンル"],
    "engine": ["使用ツール", "制作ツール", "ツール"],
    "streaming": ["配信/投稿", "配信／投稿", "配信・投稿", "実況/配信", "配信"],
}

IMAGE_EXT = re.compile(r"\.(?:png|jpe?g|gif|bmp)$", re.I)
QUOTED_IMAGE = re.compile(r"[\"']([^\"']+\.(?:png|jpe?g|gif|bmp))[\"']", re.I)
LABEL_TAGS = ["td", "th", "dt", "dd", "li", "p", "div", "span", "pre", "font"]
OPEN_BRACKETS = "【[(（〔"
CLOSE_BRACKETS = "】])）〕"
LABEL_BOUNDARY = "：:|｜/／・、,，"


@dataclass
class DetailEntry:
    title: str = ""
    author: str = ""
    category: str = ""
    engine: str = ""
    streaming: str = ""
    author_comment: str = ""
    host_comment: str = ""
    icon_url: str = ""
    forum_url: str = ""
    download_url: str = ""
    screenshots: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))


def _norm(text: str) -> str:
    t = re.sub(r"[\s　]+", " ", text or "").strip()
    return t.lstrip(OPEN_BRACKETS)


def _label_re(label: str) -> str:
    # the label must start a word: "作者" does not match inside "原作者"
    return (
        rf"(?<![^\s>{re.escape(OPEN_BRACKETS + LABEL_BOUNDARY)}])"
        rf"[{re.escape(OPEN_BRACKETS)}]?\s*{re.escape(label)}\s*[{re.escape(CLOSE_BRACKETS)}]?\s*"
    )


def _has_label(text: str, label: str) -> bool:
    t = _norm(text)
    if re.search(_label_re(label) + "[:：]", t):
        return True
    if not t.startswith(label):
        return False
    rest = t[len(label):]
    return not rest or rest[0] in " :：" + CLOSE_BRACKETS


def find_labeled_element(soup: BeautifulSoup | Tag, label: str) -> Optional[Tag]:
    """Innermost element whose text carries the label."""
    matches = [el for el in soup.find_all(LABEL_TAGS) if _has_label(el.get_text(" "), label)]
    for el in matches:
        if not any(other is not el and any(p is el for p in other.parents) for other in matches):
            return el
    return None


def _cut_at_labels(value: str, stop_labels: List[str]) -> str:
    cut = len(value)
    for label in stop_labels:
        m = re.search(rf"\s*{_label_re(label)}[:：]", value)
        if m and m.start() > 0:
            cut = min(cut, m.start())
    return value[:cut].strip()


def extract_labeled_html(el: Tag, label: str) -> str:
    """Content of a labeled block with the label stripped.

    With a <br> after the label line, the label line itself is dropped and the
    following lines are returned. Without one, the label prefix is stripped.
    """
    raw = el.decode_contents()
    parts = re.split(r"<br\s*/?\s*>", raw, flags=re.I)
    if len(parts) > 1:
        for i, part in enumerate(parts):
            if _has_label(re.sub(r"<[^>]+>", " ", part), label):
                return sanitize_multiline("<br>".join(parts[i + 1:]))
        return sanitize_multiline("<br>".join(parts[1:]))
    pattern = rf"^[\s\S]*?{_label_re(label)}[:：]?\s*"
    return sanitize_multiline(re.sub(pattern, "", raw, count=1))


def extract_by_label(soup: BeautifulSoup, label: str) -> str:
    el = find_labeled_element(soup, label)
    if el is None:
        return ""
    content = extract_labeled_html(el, label)
    if not content and el.name in ("td", "th", "dt"):
        sib = el.find_next_sibling(["td", "dd"])
        if sib is not None:
            content = sanitize_multiline(sib.decode_contents())
    return content


def extract_from_text(text: str, label: str, stop_labels: List[str]) -> str:
    """Line-oriented fallback: the label line's remainder plus following lines."""
    lines = (text or "").splitlines()
    head = re.compile(rf"^\s*{_label_re(label)}[:：]?\s*(.*)$")
    stops = [re.compile(rf"^\s*{_label_re(s)}[:：]") for s in stop_labels if s != label]
    for i, line in enumerate(lines):
        m = head.match(line)
        if not m or not _has_label(line, label):
            continue
        out = [m.group(1).strip()] if m.group(1).strip() else []
        for nxt in lines[i + 1:]:
            if any(s.match(nxt) for s in stops):
                break
            out.append(nxt.strip())
        return "\n".join(s for s in out if s)
    return ""


def unwrap_apps_script(html: str) -> str:
    """Return the userHtml payload of a Google Apps Script wrapper page, or ''."""
    m = re.search(r"goog\.script\.init\(([\"'])((?:\\.|(?!\1)[^\\])*)\1", html or "")
    if not m:
        return ""
    # JS string literal -> JSON string literal
    arg = re.sub(r"\\x([0-9A-Fa-f]{2})", r"\\u00\1", m.group(2)).replace("\\'", "'")
    try:
        dequoted = json.loads('"' + arg + '"')
        obj = json.loads(dequoted)
    except ValueError:
        return ""
    user_html = obj.get("userHtml") if isinstance(obj, dict) else None
    return user_html if isinstance(user_html, str) else ""


def discover_screenshots(soup: BeautifulSoup, base: str, denylist: List[str], icon_url: str = "") -> List[str]:
    deny = [re.compile(p, re.I) for p in denylist]
    found: List[str] = []

    def add(u: str | None) -> None:
        if not u or not isinstance(u, str):
            return
        full = abs_url(u.strip(), base)
        if not full.startswith(("http://", "https://")):
            return
        if not IMAGE_EXT.search(full.split("?", 1)[0].split("#", 1)[0]):
            return
        if any(p.search(full) for p in deny):
            return
        if icon_url and full == icon_url:
            return
        found.append(full)

    for img in soup.find_all("img"):
        add(img.get("src"))
        for name, val in img.attrs.items():
            if name == "src" or not isinstance(val, str):
                continue
            if name in ("onmouseover", "onmouseout") or name.startswith("data-"):
                m = QUOTED_IMAGE.search(val)
                add(m.group(1) if m else val)
    for a in soup.find_all("a", href=True):
        add(a["href"])
    return uniq(found)


def parse_detail(html: str, url: str, cfg: DetailConfig | None = None) -> DetailEntry:
    cfg = cfg or DetailConfig()
    inner = unwrap_apps_script(html)
    soup = BeautifulSoup(inner or html, "html.parser")
    for s in soup(["script", "style"]):
        s.decompose()
    out = DetailEntry()

    heading = soup.find(["h1", "h2", "h3"])
    if heading is not None:
        out.title = re.sub(r"^No\.?\s*\d+\s*", "", g(heading.get_text()), flags=re.I)

    icon = soup.select_one("img.icon")
    if icon is not None and icon.get("src"):
        out.icon_url = abs_url(icon["src"], url)

    text = text_with_breaks(soup.body or soup)
    all_labels = cfg.author_labels + cfg.host_labels + [l for ls in FIELD_LABELS.values() for l in ls]

    def pick(labels: List[str], multiline: bool) -> str:
        for label in labels:
            value = extract_by_label(soup, label)
            if not value:
                value = extract_from_text(text, label, all_labels)
            if value:
                if multiline:
                    return value
                first = value.splitlines()[0]
                return _cut_at_labels(g(first), [l for l in all_labels if l != label])
        return ""

    out.author_comment = pick(cfg.author_labels, True)
    out.host_comment = pick(cfg.host_labels, True)
    out.author = pick(FIELD_LABELS["author"], False)
    out.category = pick(FIELD_LABELS["category"], False)
    out.engine = pick(FIELD_LABELS["engine"], False)
    out.streaming = pick(FIELD_LABELS["streaming"], False)

    for a in soup.find_all("a", href=True):
        label = g(a.get_text())
        href = abs_url(a["href"], url)
        if not out.forum_url and re.search(r"感想|掲示板", label):
            out.forum_url = href
        if not out.download_url and re.search(r"DL|ダウンロード|Download", label, flags=re.I):
            out.download_url = href

    out.screenshots = discover_screenshots(soup, url, cfg.denylist, out.icon_url)
    return out


def enrich(stub: EntryStub, detail: DetailEntry) -> EntryStub:
    """Fill fields the listing left empty; listing values are kept."""
    for attr, src in (
        ("author", "author"),
        ("category", "category"),
        ("engine", "engine"),
        ("streaming", "streaming"),
        ("icon_url", "icon_url"),
        ("forum_url", "forum_url"),
        ("download_url", "download_url"),
    ):
        if not getattr(stub, attr) and getattr(detail, src):
            setattr(stub, attr, getattr(detail, src))
    if re.fullmatch(r"Work \d+\w?", stub.title or "") and detail.title:
        stub.title = detail.title
    return stub
