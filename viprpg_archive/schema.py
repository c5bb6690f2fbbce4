from __future__ import annotations
import argparse
import json
import os
import sys
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, ValidationError

NonEmpty = Annotated[str, Field(min_length=1)]
ColumnKey = Literal["icon", "work", "type", "streaming", "download", "forum"]


class FestivalModel(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    id: NonEmpty
    year: int
    name: NonEmpty
    slug: NonEmpty
    type: NonEmpty
    banners: Annotated[List[NonEmpty], Field(min_length=1)]
    period: Optional[str] = None
    hasDetail: Optional[bool] = None
    worksFile: NonEmpty
    columns: Annotated[List[ColumnKey], Field(min_length=1)]


class DownloadModel(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    url: AnyUrl
    label: Optional[str] = None


class WorkModel(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    id: NonEmpty
    festivalId: NonEmpty
    no: Optional[str] = None
    title: NonEmpty
    icon: Optional[str] = None
    category: Optional[str] = None
    engine: Optional[str] = None
    author: NonEmpty
    streaming: Optional[str] = None
    streamingPolicy: Optional[Literal["allow", "restricted", "forbid"]] = None
    download: Optional[DownloadModel] = None
    forum: Optional[AnyUrl] = None
    authorComment: Optional[str] = None
    hostComment: Optional[str] = None
    ss: Optional[Annotated[List[NonEmpty], Field(min_length=1)]] = None
    detailDisabled: Optional[bool] = None


def _format(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = "/".join(str(x) for x in e.get("loc", ())) or "."
        parts.append(f"/{loc} {e.get('msg', '')}")
    return "; ".join(parts)


def validate_work(work: Any) -> Optional[str]:
    """None when valid, else a readable error string."""
    if not isinstance(work, dict):
        return "work must be an object"
    if any(v is None for v in work.values()):
        nulls = [k for k, v in work.items() if v is None]
        return "; ".join(f"/{k} must not be null" for k in nulls)
    try:
        # JSON mode so strict validation still accepts URL strings
        WorkModel.model_validate_json(json.dumps(work, ensure_ascii=False))
    except ValidationError as e:
        return _format(e)
    return None


def validate_festival(festival: Any) -> Optional[str]:
    if not isinstance(festival, dict):
        return "festival must be an object"
    try:
        FestivalModel.model_validate_json(json.dumps(festival, ensure_ascii=False))
    except ValidationError as e:
        return _format(e)
    return None


def validate_data_dir(data_dir: str) -> List[Dict[str, str]]:
    errors: List[Dict[str, str]] = []
    festivals_path = os.path.join(data_dir, "festivals.json")
    with open(festivals_path, "r", encoding="utf-8") as f:
        festivals = json.load(f)
    if not isinstance(festivals, list):
        raise ValueError("festivals.json must be an array")

    for festival in festivals:
        fid = festival.get("id", "<unknown>") if isinstance(festival, dict) else "<unknown>"
        err = validate_festival(festival)
        if err:
            errors.append({"file": "festivals.json", "message": f"Festival {fid} invalid", "details": err})
            continue
        works_file = festival["worksFile"]
        with open(os.path.join(data_dir, works_file), "r", encoding="utf-8") as f:
            works = json.load(f)
        if not isinstance(works, list):
            errors.append({"file": works_file, "message": "Work list must be an array"})
            continue
        for work in works:
            wid = work.get("id", "<unknown>") if isinstance(work, dict) else "<unknown>"
            err = validate_work(work)
            if err:
                errors.append({"file": works_file, "message": f"Work {wid} invalid", "details": err})
                continue
            if work["festivalId"] != festival["id"]:
                errors.append({
                    "file": works_file,
                    "message": f"Work {wid} festivalId mismatch",
                    "details": f"Expected {festival['id']}",
                })
    return errors


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Validate festivals.json and the works files it references")
    ap.add_argument("--data-dir", default=os.path.join(os.getcwd(), "src", "data"))
    args = ap.parse_args(argv)
    try:
        errors = validate_data_dir(args.data_dir)
    except (OSError, ValueError) as e:
        print(f"[validate] {e}", file=sys.stderr)
        return 1
    if errors:
        print("Data validation failed:\n", file=sys.stderr)
        for issue in errors:
            print(f"- [{issue['file']}] {issue['message']}", file=sys.stderr)
            if issue.get("details"):
                print(f"  -> {issue['details']}", file=sys.stderr)
        return 1
    print("Data validation passed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
