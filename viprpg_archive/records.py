from __future__ import annotations
import re
from typing import Any, Dict, List, Optional

from .assets import DownloadResult
from .config import FestivalConfig
from .detail import DetailEntry
from .listing import EntryStub

WORK_FIELDS = (
    "id", "festivalId", "no", "title", "author", "category", "engine", "streaming",
    "streamingPolicy", "download", "forum", "authorComment", "hostComment", "icon", "ss",
    "detailDisabled",
)


def classify_streaming(text: str) -> Optional[str]:
    """Map free-form streaming/posting policy text to allow/restricted/forbid."""
    t = (text or "").strip()
    if not t:
        return None
    if re.search(r"不可|禁止|NG|×|✕|お断り", t, flags=re.I):
        if re.search(r"以上|以外|のみ|一部|条件|除く", t):
            return "restricted"
        return "forbid"
    if re.search(r"条件|要連絡|事前|連絡|相談|制限|一部|のみ|ネタバレ|△", t):
        return "restricted"
    if re.search(r"可|OK|○|〇|自由|歓迎", t, flags=re.I):
        return "allow"
    return None


def _clean(d: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k in WORK_FIELDS:
        v = d.get(k)
        if v is None or v == "" or v == [] or v is False:
            continue
        out[k] = v
    return out


def build_work(
    festival: FestivalConfig,
    stub: EntryStub,
    detail: DetailEntry | None = None,
    icon: str | None = None,
    screenshots: List[str] | None = None,
) -> Dict[str, Any]:
    detail = detail or DetailEntry()
    ss = list(screenshots or [])
    download = None
    if stub.download_url.startswith(("http://", "https://")):
        download = {"url": stub.download_url}
        if stub.download_label:
            download["label"] = stub.download_label
    work = {
        "id": festival.work_id(stub.index),
        "festivalId": festival.id,
        "no": stub.no,
        "title": stub.title or f"Work {stub.index}",
        "author": stub.author or festival.unknown_author,
        "category": stub.category,
        "engine": stub.engine,
        "streaming": stub.streaming,
        "streamingPolicy": classify_streaming(stub.streaming),
        "download": download,
        "forum": stub.forum_url if stub.forum_url.startswith(("http://", "https://")) else None,
        "authorComment": detail.author_comment,
        "hostComment": detail.host_comment,
        "icon": icon,
        "ss": ss,
    }
    if not detail.author_comment and not detail.host_comment and not ss:
        work["detailDisabled"] = True
    return _clean(work)


def build_summary(
    stub: EntryStub,
    status: str = "ok",
    icon: str | None = None,
    shots: DownloadResult | None = None,
    note: str = "",
    error: str = "",
    sources_tried: List[str] | None = None,
) -> Dict[str, Any]:
    rec: Dict[str, Any] = {"index": stub.index, "status": status}
    if stub.title:
        rec["title"] = stub.title
    if icon:
        rec["icon"] = icon
    if note:
        rec["note"] = note
    if stub.download_url:
        rec["downloadSource"] = [stub.download_url]
    if sources_tried:
        rec["sourcesTried"] = list(sources_tried)
    if shots is not None:
        rec["screenshotReport"] = shots.report()
    if error:
        rec["error"] = error
    return rec


def sort_works(works: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(works, key=lambda w: str(w.get("id", "")))


def _is_placeholder(key: str, value: Any, placeholders: tuple) -> bool:
    if value in ("", None, []):
        return True
    if key == "title" and isinstance(value, str) and re.fullmatch(r"Work \d+\w?", value):
        return True
    return key == "author" and value in placeholders


def merge_existing(
    works: List[Dict[str, Any]],
    existing: List[Dict[str, Any]],
    placeholders: tuple = (),
) -> List[Dict[str, Any]]:
    """Keep values from a previous works file where this run found nothing."""
    by_id = {str(w.get("id")): w for w in existing if isinstance(w, dict)}
    out: List[Dict[str, Any]] = []
    for w in works:
        prev = by_id.get(str(w.get("id")))
        if prev is None:
            out.append(w)
            continue
        merged = dict(w)
        for k, v in prev.items():
            if k == "detailDisabled":
                continue
            if _is_placeholder(k, merged.get(k), placeholders) and not _is_placeholder(k, v, placeholders):
                merged[k] = v
        if merged.get("authorComment") or merged.get("hostComment") or merged.get("ss"):
            merged.pop("detailDisabled", None)
        out.append(merged)
    return out
