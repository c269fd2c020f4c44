# pagesweep/pipeline.py
"""
Extraction pipeline: allowlist gate -> walk -> fee synthesis -> optional
link sweep -> structured candidate -> chunks/prompt preview.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from .allowlist import Allowlist
from .captures import CaptureStore, normalize_page_key
from .chunking import MAX_CHUNK_SIZE, build_structured_prompt, chunk_text
from .clean_text import clean_text, dedupe_preserve_order, normalize_line
from .errors import ExtractionError, NotAllowlistedError
from .log import debug, info, warn
from .memory import LineMemory
from .parsers.boilerplate import select_main_container
from .parsers.fees import (
    FeeSynthesis,
    build_fee_synthesis,
    extract_fee_tables_from_document,
    grid_fee_lines,
    synthesize_fee_lines,
)
from .parsers.nodes import ensure_soup
from .parsers.walker import ExtractResult, WalkerOptions, plain_text, walk
from .tools.link_sweep import LinkSweeper, merge_detached_pages

VERSION = "pagesweep-pipeline-1"
MAX_EXTRA_PAGES = 10
MAX_MERGED_CHARS = 8000
PREVIEW_CHUNKS = 2
PREVIEW_CHARS = 280
SAMPLE_TABLES = 20
NO_CONTENT = "No readable content found on this page"


@dataclass
class PipelineResult:
    url: str
    base: ExtractResult
    fees: FeeSynthesis
    structured_candidate: str
    chunks: List[str]
    extended: bool = False
    extra_pages_merged: str = ""
    extra_pages_count: int = 0
    revealed: List[str] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.base.title

    def to_response(self) -> Dict:
        return {
            "ok": True,
            "version": VERSION,
            "meta": {
                "url": self.url,
                "title": self.base.title,
                "length": self.base.raw_length,
                "tables": len(self.base.tables),
                "feeLines": len(self.fees.lines),
                "extended": self.extended,
                "extraPagesCount": self.extra_pages_count,
            },
            "extract": {
                "base": self.base.to_dict(),
                "fees": list(self.fees.lines),
                "extraPagesMerged": self.extra_pages_merged,
            },
            "structuredCandidate": self.structured_candidate,
            "chunkPromptsPreview": [c[:PREVIEW_CHARS] for c in self.chunks[:PREVIEW_CHUNKS]],
            "structuredPromptExample": build_structured_prompt(
                self.base.title, self.url, self.chunks[0] if self.chunks else ""
            ),
        }


def ensure_allowed(url: str, allowlist: Allowlist) -> None:
    if not allowlist.is_allowed_url(url):
        raise NotAllowlistedError(url)


# ---------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------

def extract_base(document, url: str = "") -> Tuple[ExtractResult, object]:
    """
    Main-container walk with boilerplate exclusion, then a whole-document
    walk, then plain body text. Returns (result, main container).
    """
    soup = ensure_soup(document)
    main = select_main_container(soup)
    opts = dict(base_url=url, max_tables=60, max_links=1200)

    base = walk(soup, WalkerOptions(exclude_boilerplate=True, root=main, **opts))
    if not base.is_empty:
        return base, main

    debug("pipeline: main-container walk empty, walking whole document")
    base = walk(soup, WalkerOptions(**opts))
    if not base.is_empty:
        return base, soup

    body = soup.find("body") or soup
    text = plain_text(body)
    if not text:
        raise ExtractionError(NO_CONTENT)
    debug("pipeline: falling back to plain body text")
    paragraphs = tuple(dedupe_preserve_order(text.split("\n")))
    return replace(base, paragraphs=paragraphs, raw_length=len("\n".join(paragraphs))), body


def synthesize_fees(base: ExtractResult, soup, cards_root) -> FeeSynthesis:
    fees = build_fee_synthesis(base.tables, cards_root=cards_root)
    if fees.lines:
        return fees
    # tables the walk skipped (boilerplate zones, caps) or wide grids
    raw_tables = extract_fee_tables_from_document(soup)
    if not raw_tables:
        return fees
    lines = dedupe_preserve_order(synthesize_fee_lines(raw_tables) + grid_fee_lines(raw_tables))
    return FeeSynthesis(lines=lines, tables=list(base.tables))


def build_structured_candidate(
    base: ExtractResult,
    fee_lines: Iterable[str],
    extra: str = "",
    revealed: Iterable[str] = (),
) -> str:
    fee_lines = list(fee_lines)
    revealed = list(revealed)
    parts: List[str] = []
    if base.title:
        parts += ["== TITLE ==", base.title]
    if base.headings:
        parts += ["\n== HEADINGS ==", *base.headings]
    if base.paragraphs:
        parts += ["\n== PARAGRAPHS ==", *base.paragraphs]
    if base.lists:
        parts += ["\n== LISTS ==", *base.lists]
    if fee_lines:
        parts += ["\n== FEES SYNTHESIS ==", *fee_lines]
    if base.tables:
        parts.append("\n== TABLES (RAW FIRST ROW SAMPLE) ==")
        for t in base.tables[:SAMPLE_TABLES]:
            head = " | ".join(t.rows[0]) if t.rows else ""
            if head:
                parts.append(head)
    if revealed:
        parts += ["\n== REVEALED CONTENT ==", *revealed]
    if extra:
        parts += ["\n== EXTENDED PAGES MERGED ==", extra]
    return clean_text("\n".join(parts).strip())


def _extended_pages(url: str, soup, session=None) -> Tuple[List[str], str, List[str]]:
    """(pages, merged text, fee lines found on those pages); failures degrade to empty."""
    try:
        pages = LinkSweeper(url, soup, session=session).sweep_extended()[:MAX_EXTRA_PAGES]
    except Exception as e:
        warn(f"pipeline: extended sweep failed for {url} :: {e}")
        return [], "", []
    merged = merge_detached_pages(pages, MAX_MERGED_CHARS)
    fee_lines: List[str] = []
    for html in pages:
        fee_lines += synthesize_fee_lines(extract_fee_tables_from_document(html))
    return pages, merged, fee_lines


def _unrevealed(base: ExtractResult, fee_lines: List[str], sweep_lines: Iterable[str]) -> List[str]:
    seen = {normalize_line(l) for l in base.lines() + fee_lines}
    out = []
    for line in sweep_lines:
        norm = normalize_line(line)
        if norm and norm not in seen:
            seen.add(norm)
            out.append(line)
    return out


# ---------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------

def run_pipeline(
    url: str,
    html,
    allowlist: Allowlist,
    extended: bool = False,
    session=None,
    sweep_lines: Optional[Iterable[str]] = None,
    memory: Optional[LineMemory] = None,
    max_chunk_size: int = MAX_CHUNK_SIZE,
) -> PipelineResult:
    ensure_allowed(url, allowlist)

    t0 = time.perf_counter()
    soup = ensure_soup(html)
    base, main = extract_base(soup, url)
    fees = synthesize_fees(base, soup, main)

    extra_merged, extra_count = "", 0
    if extended:
        pages, extra_merged, extra_fees = _extended_pages(url, soup, session)
        extra_count = len(pages)
        if extra_fees:
            fees = FeeSynthesis(lines=dedupe_preserve_order(fees.lines + extra_fees), tables=fees.tables)

    if memory is not None:
        try:
            lines = [*base.headings, *base.paragraphs, *base.lists, *fees.lines]
            memory.remember_lines([normalize_line(l) for l in lines], already_normalized=True)
        except Exception as e:
            debug(f"pipeline: line memory update failed :: {e}")

    revealed = _unrevealed(base, fees.lines, sweep_lines or [])
    candidate = build_structured_candidate(base, fees.lines, extra_merged, revealed)
    chunks = chunk_text(candidate, max_chunk_size=max_chunk_size)

    info(
        f"pipeline: {url} in {int((time.perf_counter() - t0) * 1000)}ms "
        f"fees={len(fees.lines)} tables={len(base.tables)} extended={extended} "
        f"extra={extra_count} revealed={len(revealed)} chunks={len(chunks)}"
    )
    return PipelineResult(
        url=url,
        base=base,
        fees=fees,
        structured_candidate=candidate,
        chunks=chunks,
        extended=extended,
        extra_pages_merged=extra_merged,
        extra_pages_count=extra_count,
        revealed=revealed,
    )


@dataclass
class CaptureOutcome:
    page_key: str
    capture_id: Optional[str]
    result: PipelineResult
    text: str
    new_lines: int

    @property
    def duplicate(self) -> bool:
        return self.capture_id is None


def capture_page(
    url: str,
    html,
    allowlist: Allowlist,
    memory: LineMemory,
    captures: CaptureStore,
    label: str = "",
    extended: bool = False,
    only_new: bool = False,
    force: bool = False,
    session=None,
    sweep_lines: Optional[Iterable[str]] = None,
) -> CaptureOutcome:
    """
    Run the pipeline and store its structured candidate as a capture.
    With `only_new`, lines already in line memory are left out (section
    headers are kept so the text stays readable).
    """
    result = run_pipeline(url, html, allowlist, extended=extended, session=session, sweep_lines=sweep_lines)
    lines = result.structured_candidate.split("\n")
    if only_new:
        fresh = [l for l in lines if l.startswith("== ") or not memory.has_line(l)]
        has_body = any(not l.startswith("== ") for l in fresh)
        text = clean_text("\n".join(fresh)) if has_body else ""
    else:
        text = result.structured_candidate
    added = memory.remember_lines(lines)
    memory.flush()

    if not text:
        info(f"capture: nothing new on {url}")
        return CaptureOutcome(
            page_key=normalize_page_key(url), capture_id=None, result=result, text="", new_lines=added
        )
    key, capture_id = captures.add_capture(url, result.title, label, text, force=force)
    if capture_id is None:
        info(f"capture: duplicate content for {key}, nothing stored")
    return CaptureOutcome(page_key=key, capture_id=capture_id, result=result, text=text, new_lines=added)
