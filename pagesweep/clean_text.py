# pagesweep/clean_text.py
"""
Text helpers shared by every stage: line cleaning, normalization for
de-duplication, and content signatures.
"""
from __future__ import annotations

import hashlib
import re
from typing import Iterable, List

WS_RE = re.compile(r"\s+")
NEWLINE_RE = re.compile(r"\r\n?")
DIGITS_RE = re.compile(r"[0-9]+")
# Keep letters, digits, currency marks, dot and hyphen; everything else becomes a space.
NORM_STRIP_RE = re.compile(r"[^a-z0-9₹$€£.\- ]+")

STABLE_BLOCK_CHARS = 5000


def clean_text(value: str | None) -> str:
    """Collapse whitespace inside each line, drop empty lines, keep line breaks."""
    if not value:
        return ""
    lines = NEWLINE_RE.sub("\n", value).split("\n")
    out = []
    for line in lines:
        line = WS_RE.sub(" ", line).strip()
        if line:
            out.append(line)
    return "\n".join(out)


def flatten(value: str | None) -> str:
    return WS_RE.sub(" ", value or "").strip()


def normalize_line(line: str) -> str:
    """
    De-duplication key for a line: lowercase, punctuation stripped
    (currency symbols, digits, dot and hyphen survive), whitespace collapsed.
    """
    t = NORM_STRIP_RE.sub(" ", (line or "").lower())
    return WS_RE.sub(" ", t).strip()


def stable_signature_block(text: str) -> str:
    """Numbers masked, whitespace collapsed, truncated; stable across counters and timestamps."""
    t = DIGITS_RE.sub("#", (text or "").lower())
    t = WS_RE.sub(" ", t).strip()
    return t[:STABLE_BLOCK_CHARS]


def sha256_hex(value: str) -> str:
    return hashlib.sha256((value or "").encode("utf-8")).hexdigest()


def fast_hash(value: str) -> str:
    """djb2-xor over code points, base36; cheap key for short strings."""
    h = 5381
    for ch in value:
        h = (((h << 5) + h) ^ ord(ch)) & 0xFFFFFFFF
    return _base36(h)


def _base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(digits[r])
    return "".join(reversed(out))


def combined_signature(text: str) -> str:
    return f"{fast_hash(stable_signature_block(text))}:{len(text or '')}"


def quick_signature(text: str, prefix: int = 200) -> str:
    """Length + prefix fingerprint; cheap and good enough to spot repeated page bodies."""
    text = text or ""
    return f"{len(text)}:{text[:prefix]}"


def dedupe_preserve_order(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


def dedupe_normalized(lines: Iterable[str]) -> List[str]:
    """Drop lines whose normalized form was already seen; the first spelling wins."""
    seen = set()
    out = []
    for line in lines:
        key = normalize_line(line)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(line)
    return out
