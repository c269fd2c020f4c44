# pagesweep/captures.py
"""
Capture / session store.

Index document (under STORE_KEY):
    {"pages": {<pageKey>: Page}, "order": [<pageKey>, ...]}   most recent first
Global signature registry (under REGISTRY_KEY):
    {"keys": {<captureId>: [sig, sig2]}, "caps": {<sig>: {"ts", "url", "id"}}}
Bodies live outside the index as blobs keyed "<captureId>:<kind>".
"""
from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from .clean_text import combined_signature, sha256_hex, stable_signature_block
from .log import debug, info, warn

STORE_KEY = "capture_store_v1"
REGISTRY_KEY = "global_sig_registry_v1"
KINDS = ("raw", "llm")
PREVIEW_CHARS = 280


@dataclass
class Capture:
    id: str
    label: str
    preview: str
    len: int
    sig: str
    sig2: str
    timestamp: float
    selected: bool = True


@dataclass
class Page:
    url: str
    title: str
    captures: List[Capture] = field(default_factory=list)
    createdAt: float = 0.0
    updatedAt: float = 0.0
    pageSig: str = ""
    collapsed: bool = False


def normalize_page_key(url: str) -> str:
    """host (lowercase, no www.) + path without trailing slash; query and fragment dropped."""
    p = urlparse(url or "")
    host = (p.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    path = (p.path or "").rstrip("/")
    return f"{host}{path}" if host else (url or "").strip()


def blob_key(capture_id: str, kind: str = "raw") -> str:
    return f"{capture_id}:{kind}"


def _page_from_dict(d: dict) -> Page:
    caps = [Capture(**c) for c in d.get("captures", [])]
    return Page(
        url=d.get("url", ""),
        title=d.get("title", ""),
        captures=caps,
        createdAt=d.get("createdAt", 0.0),
        updatedAt=d.get("updatedAt", 0.0),
        pageSig=d.get("pageSig", ""),
        collapsed=bool(d.get("collapsed", False)),
    )


class CaptureStore:
    def __init__(self, kv, clock: Optional[Callable[[], float]] = None):
        self.kv = kv
        self.clock = clock or time.time
        self.pages: Dict[str, Page] = {}
        self.order: List[str] = []
        self.registry: Dict[str, Dict] = {"keys": {}, "caps": {}}
        self._load()

    # -- persistence ---------------------------------------------------

    def _load(self) -> None:
        try:
            raw = self.kv.get_json(STORE_KEY) or {}
            self.pages = {k: _page_from_dict(v) for k, v in (raw.get("pages") or {}).items()}
            self.order = [k for k in (raw.get("order") or []) if k in self.pages]
            reg = self.kv.get_json(REGISTRY_KEY) or {}
            self.registry = {"keys": dict(reg.get("keys") or {}), "caps": dict(reg.get("caps") or {})}
        except Exception as e:
            warn(f"captures: load failed, starting empty :: {e}")

    def _save(self) -> None:
        try:
            self.kv.set_json(
                STORE_KEY,
                {"pages": {k: asdict(p) for k, p in self.pages.items()}, "order": list(self.order)},
            )
            self.kv.set_json(REGISTRY_KEY, self.registry)
        except Exception as e:
            warn(f"captures: persist failed :: {e}")

    def _put_blob(self, key: str, body: str) -> None:
        try:
            self.kv.set_blob(key, body)
        except Exception as e:
            warn(f"captures: body write failed for {key} :: {e}")

    def _drop_blobs(self, capture_id: str) -> None:
        try:
            self.kv.delete_blobs(blob_key(capture_id, k) for k in KINDS)
        except Exception as e:
            warn(f"captures: body delete failed for {capture_id} :: {e}")

    def _touch(self, key: str) -> None:
        if key in self.order:
            self.order.remove(key)
        self.order.insert(0, key)

    # -- registry ------------------------------------------------------

    def _registry_has(self, sig: str) -> bool:
        return sig in self.registry["caps"]

    def _register(self, capture: Capture, url: str) -> None:
        self.registry["keys"][capture.id] = [capture.sig, capture.sig2]
        for s in (capture.sig, capture.sig2):
            self.registry["caps"].setdefault(s, {"ts": capture.timestamp, "url": url, "id": capture.id})

    def _unregister(self, capture_id: str) -> None:
        sigs = self.registry["keys"].pop(capture_id, [])
        for s in sigs:
            owner = self.registry["caps"].get(s)
            if not owner or owner.get("id") != capture_id:
                continue
            heir = next((cid for cid, held in self.registry["keys"].items() if s in held), None)
            if heir is None:
                self.registry["caps"].pop(s, None)
                continue
            # a forced copy still holds this text: it inherits the entry
            key, cap = self.find_capture(heir)
            self.registry["caps"][s] = {
                "ts": cap.timestamp if cap else owner.get("ts"),
                "url": self.pages[key].url if key else owner.get("url"),
                "id": heir,
            }

    # -- captures ------------------------------------------------------

    def add_capture(
        self, url: str, title: str, label: str, text: str, force: bool = False
    ) -> Tuple[str, Optional[str]]:
        """
        Store a capture. Returns (pageKey, captureId); the id is None when
        the text duplicates a capture on this page or anywhere else.
        """
        key = normalize_page_key(url)
        text = text or ""
        sig = sha256_hex(text)
        sig2 = sha256_hex(stable_signature_block(text))
        page = self.pages.get(key)

        if not force:
            if page and any(c.sig in (sig, sig2) or c.sig2 in (sig, sig2) for c in page.captures):
                debug(f"captures: duplicate on page {key}")
                return key, None
            if self._registry_has(sig) or self._registry_has(sig2):
                debug(f"captures: duplicate in global registry for {key}")
                return key, None

        now = self.clock()
        if page is None:
            page = Page(url=url, title=title or "", createdAt=now, updatedAt=now)
            self.pages[key] = page
        cap = Capture(
            id=uuid.uuid4().hex,
            label=label or f"Capture {len(page.captures) + 1}",
            preview=text[:PREVIEW_CHARS],
            len=len(text),
            sig=sig,
            sig2=sig2,
            timestamp=now,
        )
        page.captures.append(cap)
        page.updatedAt = now
        page.pageSig = combined_signature(text)
        if title and not page.title:
            page.title = title
        self._touch(key)
        self._register(cap, url)
        self._put_blob(blob_key(cap.id, "raw"), text)
        self._save()
        info(f"captures: stored {cap.id[:8]} on {key} ({cap.len} chars)")
        return key, cap.id

    def find_capture(self, capture_id: str) -> Tuple[Optional[str], Optional[Capture]]:
        for key, page in self.pages.items():
            for c in page.captures:
                if c.id == capture_id:
                    return key, c
        return None, None

    def get_text(self, capture_id: str, kind: str = "raw") -> Optional[str]:
        return self.kv.get_blob(blob_key(capture_id, kind))

    def set_text(self, capture_id: str, kind: str, text: str) -> bool:
        if kind not in KINDS:
            raise ValueError(f"unknown body kind: {kind!r}")
        key, cap = self.find_capture(capture_id)
        if cap is None:
            return False
        self._put_blob(blob_key(capture_id, kind), text)
        if kind == "raw":
            cap.preview = text[:PREVIEW_CHARS]
            cap.len = len(text)
            self._save()
        return True

    def set_selected(self, capture_id: str, selected: bool) -> bool:
        _, cap = self.find_capture(capture_id)
        if cap is None:
            return False
        cap.selected = bool(selected)
        self._save()
        return True

    def select_all(self, page_key: str, selected: bool = True) -> int:
        page = self.pages.get(page_key)
        if page is None:
            return 0
        for c in page.captures:
            c.selected = selected
        self._save()
        return len(page.captures)

    def toggle_collapsed(self, page_key: str) -> Optional[bool]:
        page = self.pages.get(page_key)
        if page is None:
            return None
        page.collapsed = not page.collapsed
        self._save()
        return page.collapsed

    def delete_capture(self, capture_id: str) -> bool:
        key, cap = self.find_capture(capture_id)
        if cap is None:
            return False
        page = self.pages[key]
        page.captures = [c for c in page.captures if c.id != capture_id]
        self._drop_blobs(capture_id)
        self._unregister(capture_id)
        if not page.captures:
            self.pages.pop(key, None)
            if key in self.order:
                self.order.remove(key)
        else:
            page.updatedAt = self.clock()
            latest = self.get_text(page.captures[-1].id) or ""
            page.pageSig = combined_signature(latest)
        self._save()
        return True

    def delete_page(self, page_key: str) -> bool:
        page = self.pages.pop(page_key, None)
        if page is None:
            return False
        for c in page.captures:
            self._drop_blobs(c.id)
            self._unregister(c.id)
        if page_key in self.order:
            self.order.remove(page_key)
        self._save()
        return True

    # -- export --------------------------------------------------------

    def combined_text(self, page_key: str, kind: str = "raw") -> str:
        """Selected captures' bodies in capture order, ending with a Source line."""
        page = self.pages.get(page_key)
        if page is None:
            return ""
        bodies = []
        for c in page.captures:
            if not c.selected:
                continue
            body = self.get_text(c.id, kind)
            if body is None and kind != "raw":
                body = self.get_text(c.id, "raw")
            if body:
                bodies.append(body.strip())
        text = "\n\n".join(b for b in bodies if b)
        if not text:
            return ""
        source = f"Source: {page.url}"
        if source not in text:
            text = f"{text}\n\n{source}"
        return text

    def combine_pages(self, keys: Iterable[str], kind: str = "raw") -> str:
        parts = []
        for k in keys:
            page = self.pages.get(k)
            body = self.combined_text(k, kind)
            if not page or not body:
                continue
            header = page.title or page.url
            parts.append(f"{header}\n{'=' * min(len(header), 80)}\n{body}")
        return "\n\n".join(parts)

    def list_pages(self) -> List[Tuple[str, Page]]:
        return [(k, self.pages[k]) for k in self.order if k in self.pages]

    def pages_for_domain(self, domain: str) -> List[str]:
        d = (domain or "").lower()
        if d.startswith("www."):
            d = d[4:]
        out = []
        for k in self.order:
            host = k.split("/", 1)[0]
            if host == d or host.endswith("." + d):
                out.append(k)
        return out
