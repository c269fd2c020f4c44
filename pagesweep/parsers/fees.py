# pagesweep/parsers/fees.py
"""
Fee / programme heuristics.

Tables go through two gates: the header row or caption must mention a fee-ish
word, then each rendered row must itself look like a fee line. Card layouts
(no <table>, one small box per programme) are picked up separately by looking
for a period token and an amount token inside the same small container.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Sequence, Union

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..clean_text import dedupe_preserve_order, flatten
from .nodes import ensure_soup
from .walker import HEADING_TAGS, Table, table_caption

FEE_HEADER_RE = re.compile(
    r"(fee|fees|semester|sem|year|tuition|amount|annual|programme|program|course)", re.I
)
FEE_LINE_RE = re.compile(r"(fee|₹|\$|€|£|\brs\.?|\binr\b|amount|semester|sem|year)", re.I)

CARD_PERIOD_RE = re.compile(
    r"(\b\d+\s*(st|nd|rd|th)?\s*(sem|semester|year|yr)s?\b"
    r"|\b(first|second|third|fourth|fifth|sixth|seventh|eighth|final)\s+(sem|semester|year)\b"
    r"|\b(sem|semester|year)\s*[-:]?\s*\d+\b"
    r"|\bannual(ly)?\b"
    r"|\bper\s+(year|annum|semester|sem)\b)",
    re.I,
)
CARD_AMOUNT_RE = re.compile(
    r"(₹|\$|€|£|\brs\.?\s*\d|\binr\b|\b\d{1,3}(,\d{2,3})+\b)", re.I
)

SERIAL_HEADER_RE = re.compile(r"^(s\.?\s*no\.?|sr\.?\s*no\.?|serial|#)$", re.I)
PROGRAM_HEADER_RE = re.compile(r"programme|program|course", re.I)
GRID_HEADER_RE = re.compile(r"fee|year|semester", re.I)

CARD_TAGS = ("div", "li", "article", "section", "dl")
CARD_MAX_CHARS = 600


@dataclass
class FeeLexicon:
    header: Pattern = FEE_HEADER_RE
    line: Pattern = FEE_LINE_RE
    card_period: Pattern = CARD_PERIOD_RE
    card_amount: Pattern = CARD_AMOUNT_RE
    card_max_chars: int = CARD_MAX_CHARS


DEFAULT_LEXICON = FeeLexicon()


@dataclass
class FeeSynthesis:
    lines: List[str] = field(default_factory=list)
    tables: List[Table] = field(default_factory=list)


def _as_table(t: Union[Table, Sequence]) -> Table:
    return t if isinstance(t, Table) else Table.of(t)


# ---------------------------------------------------------------------
# Table gate
# ---------------------------------------------------------------------

def synthesize_fee_lines(tables: Iterable[Table], lexicon: Optional[FeeLexicon] = None) -> List[str]:
    lx = lexicon or DEFAULT_LEXICON
    out: List[str] = []
    for tbl in tables:
        first = tbl.rows[0] if tbl.rows else ()
        header = " ".join(first).lower()
        caption = (tbl.caption or "").lower()
        if not (lx.header.search(header) or lx.header.search(caption)):
            continue
        for r in tbl.rows[1:]:
            if not r:
                continue
            line = f"{r[0]} — {r[1]}" if len(r) == 2 else " | ".join(r)
            if lx.line.search(line):
                out.append(line)
    return dedupe_preserve_order(out)


# ---------------------------------------------------------------------
# Card layouts
# ---------------------------------------------------------------------

def _nearest_heading(el: Tag) -> str:
    inner = el.find(HEADING_TAGS)
    if inner is not None:
        t = flatten(inner.get_text(" "))
        if t:
            return t
    prev = el.find_previous(HEADING_TAGS)
    return flatten(prev.get_text(" ")) if prev is not None else ""


def card_fee_lines(root: Union[str, BeautifulSoup, Tag], lexicon: Optional[FeeLexicon] = None) -> List[str]:
    """
    "{program} — {card text}" for each innermost small container holding
    both a period token and an amount token.
    """
    lx = lexicon or DEFAULT_LEXICON
    root = ensure_soup(root)
    qualifying = []
    for el in root.find_all(CARD_TAGS):
        if el.find_parent("table") is not None:
            continue
        text = flatten(el.get_text(" "))
        if not text or len(text) > lx.card_max_chars:
            continue
        if lx.card_period.search(text) and lx.card_amount.search(text):
            qualifying.append((el, text))

    ids = {id(el) for el, _ in qualifying}
    outer = set()
    for el, _ in qualifying:
        for p in el.parents:
            if id(p) in ids:
                outer.add(id(p))

    out: List[str] = []
    for el, text in qualifying:
        if id(el) in outer:
            continue
        program = _nearest_heading(el)
        body = text
        if program and body.startswith(program):
            body = body[len(program):].strip(" :-—")
        line = f"{program} — {body}" if program and body else (body or program)
        if lx.line.search(line):
            out.append(line)
    return dedupe_preserve_order(out)


# ---------------------------------------------------------------------
# Public entry
# ---------------------------------------------------------------------

def build_fee_synthesis(
    tables: Iterable[Union[Table, Sequence]],
    cards_root: Union[str, BeautifulSoup, Tag, None] = None,
    lexicon: Optional[FeeLexicon] = None,
) -> FeeSynthesis:
    tbls = [_as_table(t) for t in tables]
    lines = synthesize_fee_lines(tbls, lexicon)
    if cards_root is not None:
        lines = dedupe_preserve_order(lines + card_fee_lines(cards_root, lexicon))
    return FeeSynthesis(lines=lines, tables=tbls)


# ---------------------------------------------------------------------
# Raw document scan and wide grids
# ---------------------------------------------------------------------

def extract_fee_tables_from_document(
    document: Union[str, BeautifulSoup, Tag],
    max_tables: int = 40,
    max_rows: int = 200,
    lexicon: Optional[FeeLexicon] = None,
) -> List[Table]:
    """Header-gated <table> scan straight over a (detached) document."""
    lx = lexicon or DEFAULT_LEXICON
    soup = ensure_soup(document)
    out: List[Table] = []
    for t in soup.find_all("table"):
        trs = t.find_all("tr")
        if len(trs) < 2:
            continue
        header = [flatten(c.get_text(" ")) for c in trs[0].find_all(["th", "td"], recursive=False)]
        if not lx.header.search(" ".join(header).lower()):
            continue
        body = []
        for tr in trs[1:max_rows]:
            cols = [flatten(c.get_text(" ")) for c in tr.find_all(["th", "td"], recursive=False)]
            cols = [c for c in cols if c]
            if cols:
                body.append(tuple(cols))
        if not body:
            continue
        rows = ([tuple(header)] if any(header) else []) + body
        out.append(Table(rows=tuple(rows), caption=table_caption(t)))
        if len(out) >= max_tables:
            break
    return out


def grid_fee_lines(tables: Iterable[Union[Table, Sequence]]) -> List[str]:
    """
    Wide fee grids (programme x year/semester columns) rendered as
    "{programme} — {col}: {value}, {col}: {value}".
    """
    out: List[str] = []
    for tbl in (_as_table(t) for t in tables):
        if len(tbl.rows) < 2 or len(tbl.rows[0]) < 3:
            continue
        header = list(tbl.rows[0])
        lowered = [h.lower() for h in header]
        if not (GRID_HEADER_RE.search(" ".join(lowered)) or any(PROGRAM_HEADER_RE.fullmatch(h) for h in lowered)):
            continue
        name_idx = 1 if SERIAL_HEADER_RE.match(lowered[0]) else 0
        for row in tbl.rows[1:]:
            if len(row) <= name_idx:
                continue
            name = row[name_idx]
            parts = []
            for i, val in enumerate(row):
                if i == name_idx or not val:
                    continue
                label = header[i] if i < len(header) else f"col{i + 1}"
                if SERIAL_HEADER_RE.match(label.lower()):
                    continue
                parts.append(f"{label}: {val}")
            if name and parts:
                out.append(f"{name} — {', '.join(parts)}")
    return dedupe_preserve_order(out)
