from __future__ import annotations
import argparse
import os
import sys
from typing import Callable, List
from urllib.parse import urlparse

import requests

from .sources import ACCEPT, HEADERS
from .wayback import unwrap_wayback
from .writer import load_json_list, write_json


def _is_internal(url: str, internal_hosts: List[str]) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return any(host == h.lower() or host.endswith("." + h.lower()) for h in internal_hosts)


def check_live(url: str, session: requests.Session | None = None, timeout: int = 20) -> bool:
    s = session or requests.Session()
    headers = dict(HEADERS)
    headers["Accept"] = ACCEPT["text"]
    try:
        resp = s.get(url, headers=headers, timeout=timeout, allow_redirects=True)
        return bool(resp.ok)
    except requests.RequestException:
        return False


def prefer_live_external(url: str, internal_hosts: List[str], is_live: Callable[[str], bool]) -> str:
    """Swap an archived external link for the live one when the live page answers."""
    live = unwrap_wayback(url)
    if not live or live == url:
        return url
    if _is_internal(live, internal_hosts):
        return url
    return live if is_live(live) else url


def normalize_file(path: str, internal_hosts: List[str], is_live: Callable[[str], bool]) -> int:
    works = load_json_list(path)
    changed = 0
    for w in works:
        forum = w.get("forum")
        if not forum:
            continue
        new = prefer_live_external(forum, internal_hosts, is_live)
        if new != forum:
            w["forum"] = new
            changed += 1
    if changed:
        write_json(path, works)
    return changed


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Replace archived forum links with live ones where reachable")
    ap.add_argument("works", help="works JSON file")
    ap.add_argument("--internal-host", action="append", default=[], help="host whose links stay archived")
    args = ap.parse_args(argv)
    path = os.path.abspath(args.works)
    session = requests.Session()
    changed = normalize_file(path, args.internal_host, lambda u: check_live(u, session))
    if changed:
        print(f"[forum] Updated {changed} forum link(s) to live URLs in {args.works}")
    else:
        print("[forum] No changes needed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
