# pagesweep/allowlist.py
"""
Domain allowlist. A JSON array of lowercase domains; a URL passes when its
host or a parent domain is listed. Anything that goes wrong while loading
leaves the set empty, which allows nothing.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List, Optional, Set
from urllib.parse import urlparse

from . import config
from .log import info, warn


class Allowlist:
    def __init__(self, domains: Optional[Iterable[str]] = None, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self.last_error: Optional[str] = None
        self._domains: Optional[Set[str]] = (
            {d.strip().lower() for d in domains if isinstance(d, str) and d.strip()}
            if domains is not None
            else None
        )

    @classmethod
    def from_file(cls, path: Path | str | None = None) -> "Allowlist":
        return cls(path=Path(path) if path else config.ALLOWLIST_PATH)

    def _load(self) -> Set[str]:
        if self._domains is not None:
            return self._domains
        domains: Set[str] = set()
        try:
            if self.path is None:
                raise FileNotFoundError("no allowlist path configured")
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, list):
                raise ValueError("Invalid JSON structure (expected array)")
            domains = {d.strip().lower() for d in data if isinstance(d, str) and d.strip()}
            info(f"allowlist: loaded {len(domains)} domains")
        except (OSError, ValueError) as e:
            self.last_error = str(e)
            warn(f"allowlist: load failed ({self.path}) :: {e}")
        self._domains = domains
        return domains

    def is_allowed_host(self, host: str) -> bool:
        domains = self._load()
        if not domains or not host:
            return False
        host = host.lower().rstrip(".")
        if host in domains:
            return True
        parts = host.split(".")
        while len(parts) > 2:
            parts.pop(0)
            if ".".join(parts) in domains:
                return True
        return False

    def is_allowed_url(self, url: str) -> bool:
        try:
            host = urlparse(url).hostname or ""
        except ValueError:
            return False
        return self.is_allowed_host(host)

    def snapshot(self) -> List[str]:
        return sorted(self._load())
