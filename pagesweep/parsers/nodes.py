# pagesweep/parsers/nodes.py
"""
Pure node descriptors for the DOM heuristics.

`describe(el)` reads everything the visibility / boilerplate / positional
predicates need from a bs4 Tag into a plain `NodeInfo` value. The predicates
never touch the tree, so tests can feed them hand-built descriptors.

Layout comes from annotations stamped by the browser driver before the page
is snapshotted (see fetchers/browser.py):
    data-ps-hidden="1"               computed style hides the element
    data-ps-box="left,top,w,h"       viewport bounding box in CSS px
    data-ps-vh="<px>"                viewport height, on <html>
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

from bs4 import BeautifulSoup
from bs4.element import Tag

HIDDEN_ATTR = "data-ps-hidden"
BOX_ATTR = "data-ps-box"
VIEWPORT_ATTR = "data-ps-vh"

# Never descended into by any traversal.
SKIP_TAGS = frozenset({"script", "style", "noscript", "template", "svg"})

_STYLE_DECL_RE = re.compile(r"\s*([a-zA-Z-]+)\s*:\s*([^;]+)")


@dataclass(frozen=True)
class Box:
    left: float
    top: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(frozen=True)
class NodeInfo:
    tag: str
    id: str = ""
    classes: str = ""
    role: str = ""
    style: Tuple[Tuple[str, str], ...] = ()
    hidden_attr: bool = False
    aria_hidden: bool = False
    computed_hidden: Optional[bool] = None
    box: Optional[Box] = None

    def style_value(self, prop: str) -> str:
        for k, v in self.style:
            if k == prop:
                return v
        return ""


@dataclass(frozen=True)
class BoilerplateRules:
    """Structural boilerplate markers: header/nav/footer/aside, landmark roles, class/id substrings."""
    tags: frozenset = frozenset({"header", "nav", "footer", "aside"})
    roles: frozenset = frozenset({"navigation", "banner", "contentinfo"})
    class_substrings: Tuple[str, ...] = ("nav", "menu", "footer", "sidebar", "ad-")
    id_substrings: Tuple[str, ...] = ("nav", "footer", "ad-")
    class_tokens: frozenset = frozenset({"ads"})


DEFAULT_RULES = BoilerplateRules()

HEADER_LANDMARK = "header"
FOOTER_LANDMARK = "footer"


# ---------------------------------------------------------------------
# Reading the tree
# ---------------------------------------------------------------------

def ensure_soup(document: Union[str, bytes, BeautifulSoup, Tag, None]) -> Union[BeautifulSoup, Tag]:
    if isinstance(document, (BeautifulSoup, Tag)):
        return document
    return BeautifulSoup(document or "", "lxml")


def parse_style(value: str | None) -> Tuple[Tuple[str, str], ...]:
    if not value:
        return ()
    out = []
    for m in _STYLE_DECL_RE.finditer(value):
        out.append((m.group(1).strip().lower(), m.group(2).strip().lower()))
    return tuple(out)


def parse_box(value: str | None) -> Optional[Box]:
    if not value:
        return None
    try:
        left, top, width, height = (float(p) for p in value.split(","))
    except ValueError:
        return None
    return Box(left, top, width, height)


def _attr_text(el: Tag, name: str) -> str:
    v = el.get(name)
    if v is None:
        return ""
    if isinstance(v, (list, tuple)):
        return " ".join(v)
    return str(v)


def describe(el: Tag) -> NodeInfo:
    hidden = el.get(HIDDEN_ATTR)
    return NodeInfo(
        tag=(el.name or "").lower(),
        id=_attr_text(el, "id").lower(),
        classes=_attr_text(el, "class").lower(),
        role=_attr_text(el, "role").strip().lower(),
        style=parse_style(_attr_text(el, "style")),
        hidden_attr=el.has_attr("hidden"),
        aria_hidden=_attr_text(el, "aria-hidden").strip().lower() == "true",
        computed_hidden=None if hidden is None else str(hidden) == "1",
        box=parse_box(_attr_text(el, BOX_ATTR)),
    )


def viewport_height(document: Union[BeautifulSoup, Tag]) -> Optional[float]:
    root = document.find("html") if isinstance(document, BeautifulSoup) else None
    if root is None and isinstance(document, Tag):
        root = document
    raw = root.get(VIEWPORT_ATTR) if root is not None else None
    if not raw:
        return None
    try:
        vh = float(raw)
    except ValueError:
        return None
    return vh if vh > 0 else None


def has_layout(document: Union[BeautifulSoup, Tag]) -> bool:
    return viewport_height(document) is not None


# ---------------------------------------------------------------------
# Predicates (pure)
# ---------------------------------------------------------------------

def is_visible(info: NodeInfo) -> bool:
    """
    Visible means: not hidden by computed or inline style, not flagged
    hidden, and (when layout is known) a box with positive area.
    """
    if info.computed_hidden:
        return False
    if info.hidden_attr or info.aria_hidden:
        return False
    if info.style_value("display") == "none":
        return False
    if info.style_value("visibility") == "hidden":
        return False
    opacity = info.style_value("opacity")
    if opacity:
        try:
            if float(opacity) == 0:
                return False
        except ValueError:
            pass
    if info.box is not None and (info.box.width <= 0 or info.box.height <= 0):
        return False
    return True


def matches_boilerplate(info: NodeInfo, rules: BoilerplateRules = DEFAULT_RULES) -> bool:
    """Does this element by itself look like page furniture?"""
    if info.tag in rules.tags:
        return True
    if info.role and info.role in rules.roles:
        return True
    if info.classes:
        if any(s in info.classes for s in rules.class_substrings):
            return True
        if rules.class_tokens.intersection(info.classes.split()):
            return True
    if info.id and any(s in info.id for s in rules.id_substrings):
        return True
    return False


HEADER_HINTS = ("header", "masthead", "topbar", "navbar", "sticky-top")
FOOTER_HINTS = ("footer", "bottombar", "bottom-bar", "cookie")


def landmark(info: NodeInfo) -> Optional[str]:
    """Header/footer landmark by tag, role, or a class/id hint (looser than the boilerplate rules)."""
    if info.tag in ("header", "nav") or info.role in ("banner", "navigation"):
        return HEADER_LANDMARK
    if info.tag == "footer" or info.role == "contentinfo":
        return FOOTER_LANDMARK
    names = f"{info.classes} {info.id}"
    if any(h in names for h in HEADER_HINTS):
        return HEADER_LANDMARK
    if any(h in names for h in FOOTER_HINTS):
        return FOOTER_LANDMARK
    return None


def in_positional_zone(
    info: NodeInfo,
    viewport_h: Optional[float],
    chain: Iterable[NodeInfo],
    header_zone: float = 140,
    footer_zone: float = 180,
) -> bool:
    """
    Sticky header/footer filter: the element's box sits in the top band
    under a header/nav landmark, or in the bottom band under a footer landmark.
    `chain` is the element's ancestors (the element itself may be included).
    """
    if info.box is None or not viewport_h:
        return False
    marks = {landmark(n) for n in chain}
    marks.add(landmark(info))
    if HEADER_LANDMARK in marks and info.box.top < header_zone:
        return True
    if FOOTER_LANDMARK in marks and info.box.bottom > viewport_h - footer_zone:
        return True
    return False
