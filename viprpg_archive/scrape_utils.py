import re
from urllib.parse import urljoin
from bs4 import BeautifulSoup


def g(s: str | None) -> str:
    if not s:
        return ""
    return re.sub(r"\s+", " ", str(s).strip())


def abs_url(url: str | None, base: str) -> str:
    if not url:
        return ""
    try:
        return urljoin(base, url.strip())
    except Exception:
        return url or ""


def uniq(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for x in items:
        x = str(x or "")
        if not x or x in seen:
            continue
        seen.add(x)
        out.append(x)
    return out


def z2h_digits(s: str) -> str:
    out = []
    for c in str(s or ""):
        code = ord(c)
        if 0xFF10 <= code <= 0xFF19:
            out.append(chr(code - 0xFF10 + 0x30))
        else:
            out.append(c)
    return "".join(out)


def strip_tags(html: str) -> str:
    return re.sub(r"<[^>]+>", "", html or "")


def split_br(html: str) -> list[str]:
    """Split a cell's inner HTML on <br> into whitespace-normalized text lines."""
    parts = re.split(r"<br\s*/?\s*>|\n", html or "", flags=re.I)
    lines = [g(strip_tags(p)) for p in parts]
    return [s for s in lines if s]


def sanitize_multiline(v: str | None) -> str:
    if not v:
        return ""
    v = re.sub(r"<br\s*/?\s*>", "\n", v, flags=re.I)
    lines = [g(line) for line in re.split(r"\r?\n", v)]
    return "\n".join(s for s in lines if s)


_DROP_BLOCKS = re.compile(r"<(script|style)\b[\s\S]*?</\1>|<img[^>]*>", re.I)
_LINE_END = re.compile(r"<br\s*/?\s*>|</(?:p|div|li|h[1-6]|section|ul|ol|table|tr|thead|tbody|tfoot|td|th|dd|dt)>", re.I)


def text_with_breaks(el: BeautifulSoup | None) -> str:
    """Visible text of an element, one line per block or <br>."""
    if el is None:
        return ""
    html = _DROP_BLOCKS.sub("", str(el))
    html = _LINE_END.sub(lambda m: "\n" if m.group(0).lower().startswith("<br") else m.group(0) + "\n", html)
    return "\n".join(s for s in (g(part) for part in strip_tags(html).split("\n")) if s)


def safe_filename(s: str, limit: int = 150) -> str:
    name = re.sub(r"[^A-Za-z0-9_.-]+", "-", str(s or "")).strip("-.")
    return name[:limit] or "index"


def pad_index(no: str | int, width: int = 2) -> str:
    return str(no).strip().zfill(width)
