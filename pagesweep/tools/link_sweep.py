# pagesweep/tools/link_sweep.py
"""
Fetch-based pagination / tab sweep.

Finds anchors whose text looks like pagination ("next", "page 2", "older")
or like a section tab ("Fees", "Eligibility"), then fetches each same-origin
target once and hands back the HTML. Nothing is clicked, nothing on the live
page changes. Fetches are single-shot: a failed page is simply left out.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from ..clean_text import flatten, quick_signature
from ..log import debug
from ..fetchers.http_fetcher import browser_headers, is_html_content_type
from ..parsers.nodes import ensure_soup

MAX_PAGINATION_PAGES = 8
MAX_TAB_PAGES = 12
FETCH_TIMEOUT_S = 10.0
MAX_DETACHED_LINES = 400
MAX_MERGED_CHARS = 8000

PAGINATION_TOKEN_RE = re.compile(r"\b(page|pages?|next|prev|previous|older|newer|more)\b", re.I)
TAB_TOKEN_RE = re.compile(
    r"\b(tab|overview|details?|fees?|structure|syllabus|curriculum|eligibility|admission"
    r"|hostel|scholarship|placement)s?\b",
    re.I,
)
BAD_EXT_RE = re.compile(r"\.(pdf|docx?|xlsx?|pptx?|zip|rar|jpg|jpeg|png|gif|svg)(\?|$)", re.I)

_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass
class FetchPageResult:
    url: str
    ok: bool
    status: int = 0
    html: Optional[str] = None
    error: Optional[str] = None


def origin_of(url: str):
    p = urlparse(url)
    scheme = (p.scheme or "").lower()
    try:
        port = p.port
    except ValueError:
        port = None
    return scheme, (p.hostname or "").lower(), port or _DEFAULT_PORTS.get(scheme)


def same_origin(a: str, b: str) -> bool:
    return origin_of(a) == origin_of(b)


class LinkSweeper:
    def __init__(
        self,
        base_url: str,
        soup,
        session=None,
        timeout: float = FETCH_TIMEOUT_S,
        max_pagination: int = MAX_PAGINATION_PAGES,
        max_tabs: int = MAX_TAB_PAGES,
    ):
        self.base_url = base_url
        self.soup = ensure_soup(soup)
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_pagination = max_pagination
        self.max_tabs = max_tabs

    # -- discovery -----------------------------------------------------

    def candidate_links(self, token_re: Pattern, limit: int) -> List[str]:
        out: List[str] = []
        seen = set()
        for a in self.soup.find_all("a", href=True):
            if len(out) >= limit:
                break
            text = flatten(a.get_text(" "))
            if not text or not token_re.search(text):
                continue
            href = (a.get("href") or "").strip()
            if not href or href.startswith("#") or href.lower().startswith("javascript:"):
                continue
            if BAD_EXT_RE.search(href):
                continue
            absolute = urljoin(self.base_url, href)
            if absolute in seen:
                continue
            seen.add(absolute)
            out.append(absolute)
        return out

    # -- fetching ------------------------------------------------------

    def fetch_same_origin(self, url: str) -> FetchPageResult:
        try:
            absolute = urljoin(self.base_url, url)
            if not same_origin(absolute, self.base_url):
                return FetchPageResult(url=absolute, ok=False, status=0, error="cross-origin-skip")
            resp = self.session.get(
                absolute,
                timeout=self.timeout,
                headers=browser_headers(),
                allow_redirects=True,
            )
            # redirects are followed, so the landing url must still be same-origin
            final_url = getattr(resp, "url", None) or absolute
            if not same_origin(final_url, self.base_url):
                debug(f"link-sweep: {absolute} redirected off-origin to {final_url}")
                return FetchPageResult(url=absolute, ok=False, status=resp.status_code, error="cross-origin-skip")
            if not (200 <= resp.status_code < 300):
                return FetchPageResult(
                    url=absolute, ok=False, status=resp.status_code, error=f"http-{resp.status_code}"
                )
            if not is_html_content_type(resp.headers.get("content-type")):
                return FetchPageResult(url=absolute, ok=False, status=resp.status_code, error="non-html")
            return FetchPageResult(url=absolute, ok=True, status=resp.status_code, html=resp.text)
        except Exception as e:
            return FetchPageResult(url=url, ok=False, status=0, error=type(e).__name__)

    def _sweep(self, token_re: Pattern, limit: int, what: str) -> List[str]:
        results: List[str] = []
        for href in self.candidate_links(token_re, limit):
            r = self.fetch_same_origin(href)
            if r.ok and r.html:
                results.append(r.html)
            else:
                debug(f"link-sweep: {what} skip {r.url} ({r.error})")
        if results:
            debug(f"link-sweep: {what} fetched {len(results)} pages")
        return results

    def sweep_pagination(self) -> List[str]:
        return self._sweep(PAGINATION_TOKEN_RE, self.max_pagination, "pagination")

    def sweep_tabs(self) -> List[str]:
        return self._sweep(TAB_TOKEN_RE, self.max_tabs, "tabs")

    def sweep_extended(self) -> List[str]:
        """Pagination then tabs, de-duplicated by a length+prefix signature."""
        merged: List[str] = []
        sigs = set()
        for html in self.sweep_pagination() + self.sweep_tabs():
            key = quick_signature(html)
            if key in sigs:
                continue
            sigs.add(key)
            merged.append(html)
        return merged


def collect_detached_paragraphs(html: str | BeautifulSoup, max_lines: int = MAX_DETACHED_LINES) -> str:
    soup = ensure_soup(html)
    out: List[str] = []
    seen = set()
    for n in soup.find_all(["h1", "h2", "h3", "p", "li"]):
        txt = flatten(n.get_text(" "))
        if not txt:
            continue
        if n.name == "li":
            txt = "• " + txt
        if txt in seen:
            continue
        seen.add(txt)
        out.append(txt)
        if len(out) >= max_lines:
            break
    return "\n".join(out)


def merge_detached_pages(pages: List[str], max_chars: int = MAX_MERGED_CHARS) -> str:
    parts: List[str] = []
    total = 0
    for html in pages:
        if total > max_chars:
            break
        snippet = collect_detached_paragraphs(html)
        if snippet:
            parts.append(snippet)
            total += len(snippet) + 1
    return "\n".join(parts)[:max_chars]
