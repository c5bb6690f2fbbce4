from __future__ import annotations
import argparse
import os
import sys
import traceback
from typing import Any, Dict, List, Tuple

import requests
from dotenv import load_dotenv

from .assets import AssetStore
from .config import ConfigError, FestivalConfig, find_festival, load_festivals
from .detail import DetailEntry, enrich, parse_detail
from .forum_links import check_live, prefer_live_external
from .listing import EntryStub, find_banner_url, find_content_frame, parse_listing
from .records import build_summary, build_work
from .sources import FetchError, SourceLocator
from .wayback import (
    TimemapRow,
    asset_candidates,
    fetch_timemap,
    find_index_row,
    rows_by_index,
    snapshot_candidates,
)
from .writer import write_summary, write_works


def _log(prefix: str | None, message: str) -> None:
    print(f"[{prefix or 'runner'}] {message}", flush=True)


class FestivalRun:
    """One pass over a festival: listing, details, assets, then output files."""

    def __init__(self, festival: FestivalConfig, root: str, session: requests.Session | None = None,
                 locator: SourceLocator | None = None):
        self.festival = festival
        self.paths = festival.paths(root)
        self.log = lambda msg: _log(festival.slug, msg)
        self.locator = locator or SourceLocator(festival, self.paths, session=session, log=self.log)
        self.assets = AssetStore(festival, self.paths, self.locator, log=self.log)
        self.timemap: List[TimemapRow] = []
        self.detail_rows: Dict[str, List[TimemapRow]] = {}
        self.icon_rows: Dict[str, List[TimemapRow]] = {}
        self.ss_rows: Dict[str, List[TimemapRow]] = {}

    # ------------------------------------------------------------ wayback
    def load_timemap(self, required: bool) -> None:
        wb = self.festival.wayback
        if wb is None:
            return
        rows: List[TimemapRow] = []
        for prefix in wb.prefixes:
            try:
                rows.extend(fetch_timemap(self.locator, prefix))
            except FetchError as e:
                if required:
                    raise
                self.log(f"timemap unavailable for {prefix}: {e}")
        self.timemap = rows
        if wb.detail_pattern:
            self.detail_rows = rows_by_index(rows, wb.detail_pattern)
        if wb.icon_pattern:
            self.icon_rows = rows_by_index(rows, wb.icon_pattern)
        if wb.screenshot_pattern:
            self.ss_rows = rows_by_index(rows, wb.screenshot_pattern)
        self.log(f"Timemap rows: {len(rows)}")

    # ------------------------------------------------------------ listing
    def _fetch_listing(self, url: str, required: bool) -> Tuple[str, str] | None:
        skip = ("reader",) if self.festival.listing.format == "json" else ()
        text = self.locator.fetch_text(url, required=required, skip=skip)
        if text is None:
            return None
        frame_url = find_content_frame(text, url)
        if frame_url:
            framed = self.locator.fetch_text(frame_url, required=False)
            if framed:
                return framed, frame_url
        return text, url

    def locate_listing(self) -> Tuple[List[EntryStub], str, str]:
        cfg = self.festival.listing
        url = self.festival.base_url
        if url:
            got = self._fetch_listing(url, required=self.festival.wayback is None)
            if got:
                stubs = parse_listing(got[0], got[1], cfg)
                if stubs:
                    return stubs, got[0], got[1]
                self.log(f"No entries parsed from {got[1]}")
        if self.festival.wayback is not None:
            index_rows = find_index_row(self.timemap, self.festival.wayback.index_pattern)
            for cand in snapshot_candidates(index_rows):
                got = self._fetch_listing(cand, required=False)
                if not got:
                    continue
                stubs = parse_listing(got[0], got[1], cfg)
                if stubs:
                    return stubs, got[0], got[1]
                self.log(f"Snapshot without entries, trying older one: {cand}")
        raise FetchError(url or "<listing>", [("listing", "no usable listing page found")])

    # ------------------------------------------------------------- entries
    def detail_candidates(self, stub: EntryStub) -> List[str]:
        cands: List[str] = []
        if stub.detail_url:
            cands.append(stub.detail_url)
        elif self.festival.detail.url_template:
            cands.append(self.festival.detail.url_template.format(
                index=stub.index, no=stub.no, n=int(stub.no)))
        for u in snapshot_candidates(self.detail_rows.get(stub.index, [])):
            if u not in cands:
                cands.append(u)
        return cands

    def fetch_detail(self, stub: EntryStub, tried: List[str]) -> DetailEntry:
        if not self.festival.detail.enabled:
            return DetailEntry()
        for cand in self.detail_candidates(stub):
            tried.append(cand)
            html = self.locator.fetch_text(cand, required=False)
            if not html:
                continue
            parsed = parse_detail(html, cand, self.festival.detail)
            if parsed.is_empty():
                self.log(f"{stub.index}: nothing usable in {cand}")
                continue
            return parsed
        return DetailEntry()

    def process(self, stub: EntryStub, listing_url: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        tried = [listing_url]
        detail = self.fetch_detail(stub, tried)
        enrich(stub, detail)

        icon_cands = [stub.icon_url, detail.icon_url] + asset_candidates(self.icon_rows.get(stub.index, []))
        icon = self.assets.copy_icon(stub.index, [c for c in icon_cands if c])

        sources = list(detail.screenshots) + list(stub.extra_images)
        for u in asset_candidates(self.ss_rows.get(stub.index, [])):
            if u not in sources:
                sources.append(u)
        shots = self.assets.copy_screenshots(stub.index, sources)

        if self.festival.prefer_live_forum and stub.forum_url:
            stub.forum_url = prefer_live_external(
                stub.forum_url, self.festival.internal_hosts,
                lambda u: check_live(u, self.locator.session, self.festival.sources.timeout))

        work = build_work(self.festival, stub, detail, icon, shots.paths)
        note = "detail page not found" if work.get("detailDisabled") else ""
        summary = build_summary(stub, "ok", icon=icon, shots=shots, note=note, sources_tried=tried)
        return work, summary

    def save_banner(self, listing_html: str, listing_url: str) -> None:
        banner = self.festival.banner or {}
        url = banner.get("url") or find_banner_url(listing_html, listing_url, banner.get("selector", ""))
        if not url:
            return
        saved = self.assets.save_banner(url)
        if saved:
            self.log(f"Banner saved: {saved}")

    def run(self) -> Dict[str, int]:
        self.log(f"Processing festival {self.festival.id}")
        self.load_timemap(required=not self.festival.base_url)
        stubs, listing_html, listing_url = self.locate_listing()
        self.log(f"Listing {listing_url} produced {len(stubs)} entr{'y' if len(stubs) == 1 else 'ies'}")
        self.save_banner(listing_html, listing_url)

        works: List[Dict[str, Any]] = []
        summary: List[Dict[str, Any]] = []
        errors = 0
        for i, stub in enumerate(stubs, 1):
            self.log(f"Entry {i}/{len(stubs)}: {stub.index} {stub.title}")
            try:
                work, rec = self.process(stub, listing_url)
            except Exception as exc:
                errors += 1
                self.log(f"[ERROR] entry {stub.index}: {exc}")
                work = build_work(self.festival, stub)
                rec = build_summary(stub, "error", error=str(exc) or exc.__class__.__name__)
            works.append(work)
            summary.append(rec)

        works = write_works(self.festival, self.paths, works)
        write_summary(self.paths, summary)
        self.log(f"Saved works to {self.paths.works_path}")
        self.log(f"Summary written to {self.paths.summary_path}")
        self.log(f"Captured {len(works)} works. Errors: {errors}")
        return {"works": len(works), "errors": errors}


def run_festival(festival: FestivalConfig, root: str, session: requests.Session | None = None) -> Dict[str, int]:
    return FestivalRun(festival, root, session=session).run()


def main(argv: List[str] | None = None) -> int:
    try:
        load_dotenv()
    except Exception:
        pass
    ap = argparse.ArgumentParser(description="Rebuild festival work listings from live or archived sources")
    ap.add_argument("festivals", nargs="*", help="festival ids or slugs (default: all configured)")
    ap.add_argument("--config", default=None, help="festivals YAML (default: $FESTIVALS_YAML or bundled file)")
    ap.add_argument("--root", default=os.getcwd(), help="project root holding catch/, public/ and src/data/")
    args = ap.parse_args(argv)

    try:
        configured = load_festivals(args.config)
        targets = [find_festival(configured, key) for key in args.festivals] if args.festivals else configured
    except ConfigError as e:
        _log(None, f"[ERROR] {e}")
        return 1
    _log(None, f"Loaded {len(configured)} festival(s); running {len(targets)}")

    exit_code = 0
    for index, festival in enumerate(targets, 1):
        _log(None, f"Processing festival {index}/{len(targets)}: {festival.id}")
        try:
            run_festival(festival, args.root)
        except Exception:
            traceback.print_exc()
            exit_code = 1
    if not targets:
        _log(None, "No festivals configured; nothing to do")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
