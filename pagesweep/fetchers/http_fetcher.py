# pagesweep/fetchers/http_fetcher.py
from __future__ import annotations

import time
from urllib.parse import urlparse

import requests

from .. import config
from ..log import debug, warn

BACKOFF_BASE = 2.0

_last_request_time: dict[str, float] = {}


def browser_headers() -> dict:
    return {
        "User-Agent": config.USER_AGENT,
        "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }


def is_html_content_type(ctype: str | None) -> bool:
    ctype = (ctype or "").lower()
    return "text/html" in ctype or "application/xhtml" in ctype


def _host_throttle(host: str):
    last = _last_request_time.get(host)
    if last:
        wait = config.HOST_DELAY - (time.time() - last)
        if wait > 0:
            time.sleep(wait)


def fetch_html(url: str, session=None, max_retries: int | None = None, timeout: float | None = None):
    """
    Fetch URL with browser-like headers, retry/backoff, host throttling.
    Returns (html, status_code, render_mode, error)
    """
    sess = session or requests
    host = urlparse(url).netloc
    retries = 0
    max_r = max_retries if max_retries is not None else config.MAX_RETRIES
    delay = 1.0

    while retries <= max_r:
        _host_throttle(host)
        try:
            resp = sess.get(
                url,
                headers=browser_headers(),
                timeout=timeout or config.HTTP_TIMEOUT,
                allow_redirects=True,
            )
            _last_request_time[host] = time.time()
            sc = resp.status_code

            if sc == 200:
                if not is_html_content_type(resp.headers.get("content-type")):
                    return None, sc, "static", "non-html"
                if (resp.text or "").strip():
                    return resp.text, 200, "static", None
                return None, sc, "static", "empty"

            # polite backoff for 403/429
            if sc in (403, 429):
                debug(f"fetch: {sc} from {host}, backing off {delay:.1f}s")
                time.sleep(delay)
                delay *= BACKOFF_BASE
                retries += 1
                continue

            return None, sc, "static", f"HTTP {sc}"
        except requests.RequestException as e:
            retries += 1
            if retries > max_r:
                warn(f"fetch: giving up on {url} :: {e}")
                return None, None, None, type(e).__name__
            time.sleep(delay)
            delay *= BACKOFF_BASE

    return None, None, None, "max_retries"
