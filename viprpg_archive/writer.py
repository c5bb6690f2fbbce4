from __future__ import annotations
import json
import os
from pathlib import Path
from typing import Any, Dict, List

from .config import FestivalConfig, Paths
from .records import merge_existing, sort_works


def write_json(path: str | Path, data: Any) -> None:
    os.makedirs(os.path.dirname(str(path)) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
        f.write("\n")


def load_json_list(path: str | Path) -> List[Dict[str, Any]]:
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a JSON array")
    return data


def write_works(festival: FestivalConfig, paths: Paths, works: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Overwrite the festival's works file, merging with the previous one in merge mode."""
    if festival.merge:
        works = merge_existing(works, load_json_list(paths.works_path), (festival.unknown_author,))
    works = sort_works(works)
    write_json(paths.works_path, works)
    return works


def write_summary(paths: Paths, summary: List[Dict[str, Any]]) -> None:
    write_json(paths.summary_path, summary)
