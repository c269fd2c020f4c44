# pagesweep/catalog.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from typing import List, Optional
from urllib.parse import urlparse

import yaml  # PyYAML

from . import config
from .tools.sweep import SweepConfig


@dataclass
class SiteProfile:
    domain: str
    js_required: bool = False
    extended: bool = False
    sweep: bool = False
    drill_selector: str = ""
    drill_pattern: str = ""
    wait_timeout_ms: int = 2000
    safety_limit: int = 40
    notes: str = ""

    def sweep_config(self, base: Optional[SweepConfig] = None) -> SweepConfig:
        cfg = replace(
            base or SweepConfig(),
            wait_timeout_ms=self.wait_timeout_ms,
            safety_limit=self.safety_limit,
        )
        if self.drill_selector:
            cfg = replace(cfg, item_selector=self.drill_selector)
            if self.drill_pattern:
                cfg = replace(cfg, toggle_pattern=re.compile(self.drill_pattern, re.I))
        return cfg


def _coerce_profile(raw: dict) -> SiteProfile:
    return SiteProfile(
        domain=(raw.get("domain") or "").strip().lower(),
        js_required=bool(raw.get("js_required", False)),
        extended=bool(raw.get("extended", False)),
        sweep=bool(raw.get("sweep", False)),
        drill_selector=(raw.get("drill_selector") or "").strip(),
        drill_pattern=(raw.get("drill_pattern") or "").strip(),
        wait_timeout_ms=int(raw.get("wait_timeout_ms", 2000)),
        safety_limit=int(raw.get("safety_limit", 40)),
        notes=(raw.get("notes") or "").strip(),
    )


def load_profiles(path: str | None = None) -> List[SiteProfile]:
    """Load per-site profiles from YAML (a list of mappings)."""
    path = str(path or config.SITES_PATH)
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or []
    if not isinstance(data, list):
        raise ValueError(f"Sites YAML must be a list of profiles; got {type(data)}")
    profiles = [_coerce_profile(item) for item in data if isinstance(item, dict)]
    # Keep only rows with a domain
    return [p for p in profiles if p.domain]


def profile_for(url: str, profiles: List[SiteProfile]) -> Optional[SiteProfile]:
    """Most specific profile whose domain is the URL host or one of its parents."""
    host = (urlparse(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    best: Optional[SiteProfile] = None
    for p in profiles:
        if host == p.domain or host.endswith("." + p.domain):
            if best is None or len(p.domain) > len(best.domain):
                best = p
    return best
