from pathlib import Path

import pytest
import requests

from pagesweep.allowlist import Allowlist
from pagesweep.bridge import DownloadBridge, LocalDownloadSink, PdfBridge
from pagesweep.captures import CaptureStore
from pagesweep.db import MemoryKeyValueStore
from pagesweep.memory import LineMemory
from pagesweep.services import Services

FIXTURES = Path(__file__).resolve().parent / "fixtures"
PROGRAM_URL = "https://example.edu/programs/btech"


class FakeResponse:
    def __init__(self, text="", status_code=200, content_type="text/html; charset=utf-8", url=None):
        self.text = text
        self.url = url
        self.status_code = status_code
        self.headers = {"content-type": content_type}


class FakeSession:
    """requests.Session stand-in: url -> FakeResponse; unknown urls raise ConnectionError."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, timeout=None, headers=None, allow_redirects=True):
        self.calls.append(url)
        if url not in self.routes:
            raise requests.ConnectionError(f"no route for {url}")
        return self.routes[url]


@pytest.fixture
def program_html():
    return (FIXTURES / "program_page.html").read_text(encoding="utf-8")


@pytest.fixture
def allowlist():
    return Allowlist(["example.edu"])


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def services(kv, allowlist, tmp_path, program_html):
    pages = {PROGRAM_URL: program_html}

    def fetcher(url, session=None):
        html = pages.get(url)
        if html is None:
            return None, 404, "static", "HTTP 404"
        return html, 200, "static", None

    def pdf_handler(message):
        return {"ok": True, "text": f"-- Page 1 --\nFees for {message['url']}"}

    return Services(
        kv=kv,
        allowlist=allowlist,
        memory=LineMemory(kv),
        captures=CaptureStore(kv),
        pdf=PdfBridge(pdf_handler),
        downloads=DownloadBridge(LocalDownloadSink(tmp_path / "exports")),
        session=FakeSession(),
        fetcher=fetcher,
    )
