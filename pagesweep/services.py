# pagesweep/services.py
"""
Service wiring: one object owning the stores and collaborators, handed to
the message dispatcher, the CLI and the HTTP surface.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional

import requests

from . import config
from .allowlist import Allowlist
from .bridge import DownloadBridge, LocalDownloadSink, PdfBridge
from .captures import CaptureStore
from .catalog import SiteProfile, load_profiles, profile_for
from .db import SqlKeyValueStore, get_engine
from .errors import ExtractionError
from .fetchers.browser import render_page
from .fetchers.http_fetcher import fetch_html
from .log import info
from .memory import LineMemory


@dataclass
class LoadedPage:
    url: str
    html: str
    mode: str
    sweep_lines: List[str] = field(default_factory=list)


@dataclass
class Services:
    kv: Any
    allowlist: Allowlist
    memory: LineMemory
    captures: CaptureStore
    profiles: List[SiteProfile] = field(default_factory=list)
    pdf: PdfBridge = field(default_factory=PdfBridge)
    downloads: Optional[DownloadBridge] = None
    session: Any = None
    renderer: Callable = render_page
    fetcher: Callable = fetch_html

    def profile(self, url: str) -> Optional[SiteProfile]:
        return profile_for(url, self.profiles)

    def wants_extended(self, url: str, requested: bool = False) -> bool:
        """An explicit request wins; otherwise the site profile decides."""
        if requested:
            return True
        prof = self.profile(url)
        return bool(prof and prof.extended)

    def load_page(self, url: str, render: Optional[bool] = None, sweep: Optional[bool] = None) -> LoadedPage:
        """
        Static fetch by default; a JS render (optionally with the click sweep)
        when asked, or when the site profile says so.
        """
        prof = self.profile(url)
        if render is None:
            render = bool(prof and (prof.js_required or prof.sweep))
        if sweep is None:
            sweep = bool(prof and prof.sweep)

        if render or sweep:
            cfg = prof.sweep_config() if prof else None
            res = self.renderer(url, sweep=sweep, sweep_config=cfg)
            if not res.html:
                raise ExtractionError(f"Could not load page: {res.error or 'empty response'}")
            lines = list(res.sweep.lines) if res.sweep else []
            return LoadedPage(url=url, html=res.html, mode=res.mode, sweep_lines=lines)

        html, _status, mode, error = self.fetcher(url, session=self.session)
        if not html:
            raise ExtractionError(f"Could not load page: {error or 'empty response'}")
        return LoadedPage(url=url, html=html, mode=mode or "static")


def build_services(
    db_url: Optional[str] = None,
    allowlist_path: Optional[Path | str] = None,
    sites_path: Optional[Path | str] = None,
    export_dir: Optional[Path | str] = None,
    kv=None,
) -> Services:
    kv = kv or SqlKeyValueStore(get_engine(db_url))
    services = Services(
        kv=kv,
        allowlist=Allowlist.from_file(allowlist_path),
        memory=LineMemory(kv),
        captures=CaptureStore(kv),
        profiles=load_profiles(str(sites_path) if sites_path else None),
        downloads=DownloadBridge(LocalDownloadSink(export_dir or config.EXPORT_DIR)),
        session=requests.Session(),
    )
    info(f"services: {len(services.profiles)} site profiles, {len(services.captures.pages)} pages stored")
    return services
