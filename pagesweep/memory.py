# pagesweep/memory.py
"""
Normalized-line memory: de-duplication across captures and sessions.

In-memory LRU (ordered mapping, most recent at the end) plus lazy,
best-effort persistence of the normalized keys. Persistence never raises;
the in-memory state is authoritative for the running process.
"""
from __future__ import annotations

import math
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .clean_text import normalize_line
from .log import debug, info, warn

MAX_LINES = 20000
PERSIST_KEY = "extract_line_norms_v1"
PERSIST_VERSION = 1
PERSIST_INTERVAL_S = 15.0
EVICT_RATIO = 0.9


@dataclass
class MemoryEntry:
    line: str
    norm: str
    ts: float
    len: int


class LineMemory:
    def __init__(
        self,
        kv=None,
        max_lines: int = MAX_LINES,
        persist_interval: float = PERSIST_INTERVAL_S,
        clock: Callable[[], float] = time.time,
    ):
        self.kv = kv
        self.max_lines = max_lines
        self.persist_interval = persist_interval
        self.clock = clock
        self._store: "OrderedDict[str, MemoryEntry]" = OrderedDict()
        self._loaded = False
        self._last_persist: Optional[float] = None

    def __len__(self) -> int:
        return len(self._store)

    # -- persistence ---------------------------------------------------

    def load(self) -> int:
        """Restore persisted keys once. Original line text is not recoverable."""
        if self._loaded:
            return 0
        self._loaded = True
        if self.kv is None:
            return 0
        restored = 0
        try:
            raw = self.kv.get_json(PERSIST_KEY)
            if raw and raw.get("version") == PERSIST_VERSION and isinstance(raw.get("norms"), list):
                now = self.clock()
                for norm in reversed(raw["norms"]):
                    if not isinstance(norm, str) or not norm or norm in self._store:
                        continue
                    # persisted order is oldest first; keep existing session entries most recent
                    self._store[norm] = MemoryEntry(line=norm, norm=norm, ts=now, len=len(norm))
                    self._store.move_to_end(norm, last=False)
                    restored += 1
                info(f"memory: loaded {restored} persisted norms")
                if len(self._store) > self.max_lines:
                    self.evict_lru()
            elif raw:
                warn("memory: persisted version mismatch, ignoring")
        except Exception as e:
            warn(f"memory: load failed :: {e}")
        return restored

    def flush(self, force: bool = False) -> bool:
        """Persist keys if the interval elapsed (or force). Returns True if written."""
        if self.kv is None:
            return False
        now = self.clock()
        if not force and self._last_persist is not None and now - self._last_persist < self.persist_interval:
            return False
        self._last_persist = now
        try:
            self.kv.set_json(PERSIST_KEY, {"version": PERSIST_VERSION, "norms": list(self._store.keys())})
            return True
        except Exception as e:
            warn(f"memory: persist skipped :: {e}")
            return False

    # -- core ----------------------------------------------------------

    def remember_line(self, line: str, already_normalized: bool = False) -> bool:
        """True if the line was new and inserted; a repeat only refreshes recency."""
        if not self._loaded:
            self.load()
        trimmed = (line or "").strip()
        if not trimmed:
            return False
        norm = trimmed if already_normalized else normalize_line(trimmed)
        if not norm:
            return False

        existing = self._store.get(norm)
        if existing is not None:
            existing.ts = self.clock()
            self._store.move_to_end(norm)
            return False

        self._store[norm] = MemoryEntry(line=trimmed, norm=norm, ts=self.clock(), len=len(trimmed))
        if len(self._store) > self.max_lines:
            self.evict_lru()
        self.flush()
        return True

    def remember_lines(self, lines: Iterable[str], already_normalized: bool = False) -> int:
        added = 0
        for line in lines:
            if self.remember_line(line, already_normalized):
                added += 1
        return added

    def has_line(self, line: str, already_normalized: bool = False) -> bool:
        """Pure lookup, recency untouched."""
        norm = (line or "").strip() if already_normalized else normalize_line(line or "")
        if not norm:
            return False
        return norm in self._store

    def evict_lru(self) -> int:
        target = math.floor(self.max_lines * EVICT_RATIO)
        removed = 0
        while len(self._store) > target:
            self._store.popitem(last=False)
            removed += 1
        if removed:
            info(f"memory: evicted {removed}, size now {len(self._store)}")
        return removed

    # -- diagnostics ---------------------------------------------------

    def snapshot(self, limit: int = 50) -> List[MemoryEntry]:
        out = []
        for norm in reversed(self._store):
            if len(out) >= limit:
                break
            out.append(MemoryEntry(**asdict(self._store[norm])))
        return out

    def stats(self) -> Dict:
        total = sum(e.len for e in self._store.values())
        n = len(self._store)
        return {
            "lines": n,
            "totalChars": total,
            "avgLen": round(total / n) if n else 0,
            "loaded": self._loaded,
            "maxLines": self.max_lines,
        }

    def new_lines(self, lines: Iterable[str]) -> List[str]:
        """Lines not seen before (checked before inserting any of them)."""
        fresh = [l for l in lines if not self.has_line(l)]
        debug(f"memory: {len(fresh)} unseen lines")
        return fresh
