# pagesweep/bridge.py
"""
Message boundaries to external collaborators.

PDF text:  {"action": "extractPdfText", "url"}  ->  {"ok", "text"?, "error"?}
           text is page-delimited with "-- Page {n} --" lines.
Download:  {"filename", "text"}                  ->  {"ok", "error"?}

Collaborators are plain callables taking and returning dicts; the core never
decodes PDFs or chooses where files end up.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from .errors import BridgeError
from .log import info, warn

Handler = Callable[[Dict], Dict]

PAGE_MARKER_RE = re.compile(r"^-- Page (\d+) --\s*$", re.M)
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._ -]+")


@dataclass
class BridgeReply:
    ok: bool
    text: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        out: Dict = {"ok": self.ok}
        if self.text:
            out["text"] = self.text
        if self.error:
            out["error"] = self.error
        return out


def _reply(raw) -> BridgeReply:
    if not isinstance(raw, dict) or not isinstance(raw.get("ok"), bool):
        raise BridgeError(f"malformed collaborator reply: {raw!r}")
    text = raw.get("text") or ""
    if not isinstance(text, str):
        raise BridgeError("collaborator 'text' must be a string")
    return BridgeReply(ok=raw["ok"], text=text, error=raw.get("error"))


# ---------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------

def is_pdf_url(url: str) -> bool:
    return urlparse(url or "").path.lower().endswith(".pdf")


def split_pdf_pages(text: str) -> List[Tuple[int, str]]:
    """[(page_no, page_text), ...] from marker-delimited text; unmarked text is page 1."""
    if not text:
        return []
    marks = list(PAGE_MARKER_RE.finditer(text))
    if not marks:
        return [(1, text.strip())]
    out = []
    for i, m in enumerate(marks):
        end = marks[i + 1].start() if i + 1 < len(marks) else len(text)
        out.append((int(m.group(1)), text[m.end():end].strip()))
    return out


def unavailable_pdf_handler(message: Dict) -> Dict:
    return {"ok": False, "error": "PDF text extraction is not configured"}


class PdfBridge:
    def __init__(self, handler: Optional[Handler] = None):
        self.handler = handler or unavailable_pdf_handler

    def extract_text(self, url: str) -> BridgeReply:
        reply = _reply(self.handler({"action": "extractPdfText", "url": url}))
        if not reply.ok:
            warn(f"pdf: {url} :: {reply.error or 'unknown error'}")
        return reply


# ---------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------

def sanitize_filename(name: str, default: str = "capture.txt") -> str:
    base = Path(name or "").name
    base = _UNSAFE_NAME_RE.sub("_", base).strip(" ._")
    return base[:150] or default


class LocalDownloadSink:
    """Download collaborator that writes into a directory."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def __call__(self, message: Dict) -> Dict:
        filename = sanitize_filename(str(message.get("filename") or ""))
        text = message.get("text")
        if not isinstance(text, str):
            return {"ok": False, "error": "missing text"}
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            target = self.directory / filename
            target.write_text(text, encoding="utf-8")
        except OSError as e:
            return {"ok": False, "error": str(e)}
        info(f"download: wrote {target}")
        return {"ok": True}


class DownloadBridge:
    def __init__(self, handler: Handler):
        self.handler = handler

    def save(self, filename: str, text: str) -> BridgeReply:
        reply = _reply(self.handler({"filename": filename, "text": text}))
        if not reply.ok:
            warn(f"download: {filename} :: {reply.error or 'unknown error'}")
        return reply
