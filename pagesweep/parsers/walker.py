# pagesweep/parsers/walker.py
"""
Single-pass DOM walker.

One iterative depth-first traversal in document order produces every
category at once (headings, paragraphs, list items, tables, links, images).
Hidden and boilerplate subtrees are pruned as they are met, so the
"element or any ancestor" tests cost nothing extra.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import NavigableString, Tag

from ..clean_text import clean_text, flatten
from ..log import debug
from .nodes import (
    DEFAULT_RULES,
    SKIP_TAGS,
    BoilerplateRules,
    NodeInfo,
    describe,
    ensure_soup,
    in_positional_zone,
    is_visible,
    landmark,
    matches_boilerplate,
    viewport_height,
)

HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
BULLET = "• "


@dataclass(frozen=True)
class Table:
    rows: Tuple[Tuple[str, ...], ...]
    caption: Optional[str] = None

    @classmethod
    def of(cls, rows, caption: Optional[str] = None) -> "Table":
        return cls(rows=tuple(tuple(r) for r in rows), caption=caption)

    def render_rows(self) -> List[str]:
        out = []
        for r in self.rows:
            if len(r) == 2:
                out.append(f"{r[0]}: {r[1]}")
            elif r:
                out.append(" | ".join(r))
        return out

    def to_dict(self) -> Dict:
        return {"caption": self.caption, "rows": [list(r) for r in self.rows]}


@dataclass(frozen=True)
class Link:
    text: str
    href: str


@dataclass(frozen=True)
class Image:
    alt: str
    src: str
    caption: Optional[str] = None


@dataclass(frozen=True)
class ExtractResult:
    title: str = ""
    headings: Tuple[str, ...] = ()
    paragraphs: Tuple[str, ...] = ()
    lists: Tuple[str, ...] = ()
    tables: Tuple[Table, ...] = ()
    links: Tuple[Link, ...] = ()
    images: Tuple[Image, ...] = ()
    meta: Dict[str, str] = field(default_factory=dict)
    raw_length: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.headings or self.paragraphs or self.lists or self.tables)

    def lines(self) -> List[str]:
        out = [*self.headings, *self.paragraphs, *self.lists]
        for t in self.tables:
            out.extend(t.render_rows())
        return out

    def to_dict(self) -> Dict:
        return {
            "title": self.title,
            "headings": list(self.headings),
            "paragraphs": list(self.paragraphs),
            "lists": list(self.lists),
            "tables": [t.to_dict() for t in self.tables],
            "links": [{"text": l.text, "href": l.href} for l in self.links],
            "images": [
                {"alt": i.alt, "src": i.src, "caption": i.caption} for i in self.images
            ],
            "meta": dict(self.meta),
            "rawLength": self.raw_length,
        }


@dataclass
class WalkerOptions:
    include_hidden: bool = True
    exclude_boilerplate: bool = False
    max_tables: int = 40
    max_table_rows: int = 100
    max_links: int = 800
    max_images: int = 200
    base_url: str = ""
    root: Optional[Tag] = None
    positional_filter: bool = True
    header_zone: int = 140
    footer_zone: int = 180
    rules: BoilerplateRules = field(default_factory=lambda: DEFAULT_RULES)


# ---------------------------------------------------------------------
# Document-level bits
# ---------------------------------------------------------------------

def collect_meta(soup: Union[BeautifulSoup, Tag]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for m in soup.find_all("meta"):
        name = m.get("name") or m.get("property")
        content = m.get("content")
        if name and content and name not in out:
            out[name] = content.strip()
    return out


def page_title(soup: Union[BeautifulSoup, Tag]) -> str:
    t = soup.find("title")
    return clean_text(t.get_text()) if t else ""


def table_caption(el: Tag, max_hops: int = 6) -> Optional[str]:
    cap = el.find("caption")
    if cap is not None:
        text = flatten(cap.get_text(" "))
        if text:
            return text
    sib = el.find_previous_sibling()
    hops = 0
    while sib is not None and hops < max_hops:
        if sib.name in HEADING_TAGS:
            text = flatten(sib.get_text(" "))
            return text or None
        sib = sib.find_previous_sibling()
        hops += 1
    return None


def parse_table(el: Tag, max_rows: int = 100) -> Optional[Table]:
    rows = []
    for tr in el.find_all("tr")[:max_rows]:
        cells = [flatten(c.get_text(" ")) for c in tr.find_all(["th", "td"], recursive=False)]
        cells = [c for c in cells if c]
        if cells:
            rows.append(tuple(cells))
    if not rows:
        return None
    return Table(rows=tuple(rows), caption=table_caption(el))


def plain_text(el: Union[BeautifulSoup, Tag]) -> str:
    """Cleaned text lines of a subtree, script-like content left out."""
    parts = []
    for s in el.find_all(string=True):
        if type(s) is not NavigableString:
            continue
        if any(p.name in SKIP_TAGS for p in s.parents if isinstance(p, Tag)):
            continue
        parts.append(str(s))
    return clean_text("\n".join(parts))


def _resolve(base_url: str, href: str) -> str:
    return urljoin(base_url, href) if base_url else href


# ---------------------------------------------------------------------
# Walk
# ---------------------------------------------------------------------

class _Collector:
    def __init__(self, opts: WalkerOptions):
        self.opts = opts
        self.headings: List[str] = []
        self.paragraphs: List[str] = []
        self.lists: List[str] = []
        self.tables: List[Table] = []
        self.links: List[Link] = []
        self.images: List[Image] = []
        self._seen = set()
        self._seen_links = set()

    def _once(self, category: str, text: str) -> bool:
        key = (category, text)
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def visit(self, el: Tag, tag: str) -> None:
        if tag in HEADING_TAGS:
            t = clean_text(el.get_text(" "))
            if t and self._once("h", t):
                self.headings.append(f"{tag.upper()}: {t}")
        elif tag in ("p", "blockquote"):
            t = clean_text(el.get_text(" "))
            if t and self._once("p", t):
                self.paragraphs.append("> " + t if tag == "blockquote" else t)
        elif tag == "li":
            t = clean_text(el.get_text(" "))
            if t and self._once("li", t):
                self.lists.append(BULLET + t)
        elif tag == "table":
            if len(self.tables) >= self.opts.max_tables:
                return
            tbl = parse_table(el, self.opts.max_table_rows)
            if tbl:
                self.tables.append(tbl)
        elif tag == "a":
            if len(self.links) >= self.opts.max_links:
                return
            href = (el.get("href") or "").strip()
            if not href or href.startswith("#") or href.lower().startswith("javascript:"):
                return
            text = flatten(el.get_text(" "))
            if not text:
                return
            link = Link(text=text, href=_resolve(self.opts.base_url, href))
            if (link.text, link.href) in self._seen_links:
                return
            self._seen_links.add((link.text, link.href))
            self.links.append(link)
        elif tag == "img":
            if len(self.images) >= self.opts.max_images:
                return
            alt = flatten(el.get("alt") or "")
            raw_src = (el.get("src") or el.get("data-src") or el.get("data-lazy-src") or "").strip()
            src = _resolve(self.opts.base_url, raw_src) if raw_src else ""
            if not (alt or src):
                return
            caption = None
            fig = el.find_parent("figure")
            if fig is not None:
                fc = fig.find("figcaption")
                if fc is not None:
                    caption = flatten(fc.get_text(" ")) or None
            self.images.append(Image(alt=alt, src=src, caption=caption))


def _ancestor_flags(root: Tag, opts: WalkerOptions) -> Tuple[bool, Tuple[NodeInfo, ...]]:
    """Boilerplate flag and landmark chain inherited from above a scoped root."""
    boiler = False
    marks: List[NodeInfo] = []
    chain = [root] + [p for p in root.parents if isinstance(p, Tag) and not isinstance(p, BeautifulSoup)]
    for el in reversed(chain):
        info = describe(el)
        if opts.exclude_boilerplate and el is not root and matches_boilerplate(info, opts.rules):
            boiler = True
        if landmark(info):
            marks.append(info)
    return boiler, tuple(marks)


def walk(document: Union[str, bytes, BeautifulSoup, Tag], options: Optional[WalkerOptions] = None) -> ExtractResult:
    """
    Walk the document (or `options.root`) once and return an ExtractResult.
    Title and meta always come from the whole document.
    """
    opts = options or WalkerOptions()
    soup = ensure_soup(document)
    root = opts.root
    if root is None:
        root = soup.find("body") or soup

    vh = viewport_height(soup)
    positional = opts.exclude_boilerplate and opts.positional_filter and vh is not None

    inherited_boiler, root_marks = _ancestor_flags(root, opts)
    col = _Collector(opts)

    if not inherited_boiler:
        stack = [(child, root_marks) for child in reversed(root.contents) if isinstance(child, Tag)]
        while stack:
            el, marks = stack.pop()
            try:
                tag = (el.name or "").lower()
                if tag in SKIP_TAGS:
                    continue
                info = describe(el)
                if not opts.include_hidden and not is_visible(info):
                    continue
                if opts.exclude_boilerplate and matches_boilerplate(info, opts.rules):
                    continue
                if landmark(info):
                    marks = marks + (info,)
                if positional and in_positional_zone(info, vh, marks, opts.header_zone, opts.footer_zone):
                    continue
                col.visit(el, tag)
            except Exception as e:
                debug(f"walker: skipped <{getattr(el, 'name', '?')}> :: {e!r}")
                continue
            stack.extend((child, marks) for child in reversed(el.contents) if isinstance(child, Tag))

    raw_length = (
        len("\n".join(col.headings))
        + len("\n".join(col.paragraphs))
        + len("\n".join(col.lists))
    )
    return ExtractResult(
        title=page_title(soup),
        headings=tuple(col.headings),
        paragraphs=tuple(col.paragraphs),
        lists=tuple(col.lists),
        tables=tuple(col.tables),
        links=tuple(col.links),
        images=tuple(col.images),
        meta=collect_meta(soup),
        raw_length=raw_length,
    )
