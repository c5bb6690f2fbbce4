from __future__ import annotations
import argparse
import os
import sys
from typing import Any, Dict, List, Tuple

from dotenv import load_dotenv

from .writer import load_json_list

TEXT_FIELDS = ["title", "author", "category", "engine", "streaming", "forum", "authorComment", "hostComment"]


def _public_file(public_dir: str, rel: str) -> bool:
    return os.path.isfile(os.path.join(public_dir, rel.lstrip("/")))


def audit_works(works: List[Dict[str, Any]], public_dir: str) -> Tuple[Dict[str, int], List[Tuple[str, str, List[str]]]]:
    counts = {k: 0 for k in TEXT_FIELDS + ["icon", "ss"]}
    rows: List[Tuple[str, str, List[str]]] = []
    for w in works:
        miss: List[str] = []
        for k in TEXT_FIELDS:
            if not str(w.get(k) or "").strip():
                counts[k] += 1
                miss.append(k)
        icon = str(w.get("icon") or "").strip()
        if not icon or not _public_file(public_dir, icon):
            counts["icon"] += 1
            miss.append("icon")
        ss = w.get("ss") or []
        if not any(_public_file(public_dir, s) for s in ss if s):
            counts["ss"] += 1
            miss.append("ss")
        if miss:
            rows.append((str(w.get("no") or "").zfill(2), str(w.get("title") or ""), miss))
    rows.sort(key=lambda r: r[0])
    return counts, rows


def main(argv: List[str] | None = None) -> int:
    try:
        load_dotenv()
    except Exception:
        pass
    ap = argparse.ArgumentParser(description="Report missing fields and media for a festival's works")
    ap.add_argument("target", help="festival id or path to a works JSON file")
    ap.add_argument("--root", default=os.getcwd(), help="project root holding public/ and src/data/")
    args = ap.parse_args(argv)

    if args.target.endswith(".json"):
        works_path = os.path.abspath(args.target)
    else:
        works_path = os.path.join(args.root, "src", "data", "works", f"{args.target}.json")
    try:
        works = load_json_list(works_path)
    except (OSError, ValueError) as e:
        print(f"[audit] {e}", file=sys.stderr)
        return 1

    counts, rows = audit_works(works, os.path.join(args.root, "public"))
    print(f"TOTAL={len(works)}")
    print("COUNTS=" + ",".join(f"{k}:{v}" for k, v in counts.items()))
    print("ROWS_START")
    for no, title, miss in rows:
        print(f"{no}\t{title}\t{'|'.join(miss)}")
    print("ROWS_END")
    return 0


if __name__ == "__main__":
    sys.exit(main())
