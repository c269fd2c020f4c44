# pagesweep/parsers/boilerplate.py
"""
Main-content selection.

Candidates come from a priority list of semantic selectors; each is scored
    visible_text_length - penalty * nested_boilerplate_count
and the best one wins. Counting nested furniture (instead of discarding a
candidate that contains any) keeps a content-rich wrapper with a small nav
fragment ahead of a thin but "clean" one.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from bs4 import BeautifulSoup
from bs4.element import NavigableString, Tag

from ..clean_text import flatten
from .nodes import (
    DEFAULT_RULES,
    SKIP_TAGS,
    BoilerplateRules,
    describe,
    ensure_soup,
    is_visible,
    matches_boilerplate,
)

MAIN_SELECTORS: Tuple[str, ...] = (
    "main",
    "[role=main]",
    "article",
    "#content",
    ".content",
    "#primary",
    ".site-content",
    ".container",
)


@dataclass
class SelectorConfig:
    selectors: Tuple[str, ...] = MAIN_SELECTORS
    penalty: int = 200
    header_zone: int = 140
    footer_zone: int = 180
    rules: BoilerplateRules = field(default_factory=lambda: DEFAULT_RULES)


@dataclass
class Candidate:
    element: Tag
    selector: str
    text_length: int
    boilerplate: int
    score: int


def visible_text(el: Tag) -> str:
    """Text of the subtree, skipping script-like tags and hidden elements."""
    parts: List[str] = []
    stack = [el]
    while stack:
        node = stack.pop()
        if isinstance(node, NavigableString):
            if type(node) is NavigableString:
                parts.append(str(node))
            continue
        if not isinstance(node, Tag):
            continue
        if node.name in SKIP_TAGS:
            continue
        if node is not el and not is_visible(describe(node)):
            continue
        stack.extend(reversed(node.contents))
    return flatten(" ".join(parts))


def visible_text_length(el: Tag) -> int:
    return len(visible_text(el))


def count_boilerplate(el: Tag, rules: BoilerplateRules = DEFAULT_RULES) -> int:
    """Descendants that look like furniture by themselves; the root is not counted."""
    n = 0
    for d in el.descendants:
        if isinstance(d, Tag) and d.name not in SKIP_TAGS and matches_boilerplate(describe(d), rules):
            n += 1
    return n


def score_candidate(el: Tag, config: Optional[SelectorConfig] = None, selector: str = "") -> Candidate:
    cfg = config or SelectorConfig()
    length = visible_text_length(el)
    nested = count_boilerplate(el, cfg.rules)
    return Candidate(
        element=el,
        selector=selector,
        text_length=length,
        boilerplate=nested,
        score=length - cfg.penalty * nested,
    )


def gather_candidates(
    document: Union[str, BeautifulSoup, Tag], config: Optional[SelectorConfig] = None
) -> List[Candidate]:
    cfg = config or SelectorConfig()
    soup = ensure_soup(document)
    seen = set()
    out: List[Candidate] = []
    for sel in cfg.selectors:
        for el in soup.select(sel):
            if id(el) in seen:
                continue
            seen.add(id(el))
            out.append(score_candidate(el, cfg, sel))
    return out


def select_main_container(
    document: Union[str, BeautifulSoup, Tag], config: Optional[SelectorConfig] = None
) -> Tag:
    """
    Highest-scoring candidate with some visible text; ties keep priority order.
    Falls back to <body> (or the document itself).
    """
    soup = ensure_soup(document)
    best: Optional[Candidate] = None
    for cand in gather_candidates(soup, config):
        if cand.text_length <= 0:
            continue
        if best is None or cand.score > best.score:
            best = cand
    if best is not None:
        return best.element
    body = soup.find("body") if isinstance(soup, (BeautifulSoup, Tag)) else None
    return body or soup
