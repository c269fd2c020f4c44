# pagesweep/fetchers/browser.py
"""
Playwright-backed page driver.

The sweep state machine only sees the PageDriver surface; everything
browser-specific (layout stamping, trigger discovery, mutation waits)
lives here as small JS snippets evaluated in the page.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional

from .. import config
from ..log import debug, info, warn
from ..tools.sweep import SweepConfig, SweepResult, Trigger, sweep_page
from .http_fetcher import fetch_html

# Try Playwright for true JS render; otherwise use requests fallback.
try:
    from playwright.sync_api import Error as PlaywrightError
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
    from playwright.sync_api import sync_playwright
    _HAS_PW = True
except Exception:
    _HAS_PW = False


# ---------------------------------------------------------------------
# In-page scripts
# ---------------------------------------------------------------------

STAMP_LAYOUT_JS = """
() => {
  const vh = window.innerHeight || document.documentElement.clientHeight || 0;
  document.documentElement.setAttribute('data-ps-vh', String(vh));
  const all = document.body ? document.body.querySelectorAll('*') : [];
  for (const el of all) {
    const st = getComputedStyle(el);
    if (st.display === 'none' || st.visibility === 'hidden' || st.opacity === '0') {
      el.setAttribute('data-ps-hidden', '1');
    } else {
      el.removeAttribute('data-ps-hidden');
    }
    const r = el.getBoundingClientRect();
    el.setAttribute('data-ps-box',
      [r.left, r.top, r.width, r.height].map(v => Math.round(v)).join(','));
  }
  return vh;
}
"""

SIGNATURE_JS = """
(sel) => {
  const el = document.querySelector(sel) || document.body;
  const t = (el && el.innerText) || '';
  return t.length + ':' + t.slice(0, 200);
}
"""

WAIT_CHANGE_JS = """
([sel, before]) => {
  const el = document.querySelector(sel) || document.body;
  const t = (el && el.innerText) || '';
  return (t.length + ':' + t.slice(0, 200)) !== before;
}
"""

_TRIGGER_HELPERS = """
  const cls = (el) => (el && el.getAttribute && el.getAttribute('class')) || '';
  const label = (el) => ((el.innerText || el.textContent || '').replace(/\\s+/g, ' ').trim())
    || el.getAttribute('aria-label') || '';
  const isDisabled = (el) => !!el.disabled || el.getAttribute('aria-disabled') === 'true'
    || /\\bdisabled\\b/.test(cls(el)) || /\\bdisabled\\b/.test(cls(el.parentElement));
  const isActive = (el) => el.getAttribute('aria-current') === 'page'
    || el.getAttribute('aria-selected') === 'true'
    || /\\b(active|current)\\b/.test(cls(el)) || /\\b(active|current)\\b/.test(cls(el.parentElement));
  let n = 0;
  const stamp = (el) => {
    let h = el.getAttribute('data-ps-trigger');
    if (!h) {
      h = cfg.generation + '-' + (n++);
      el.setAttribute('data-ps-trigger', h);
    }
    return h;
  };
  const seen = new Set();
  const out = [];
  const push = (el, kind) => {
    if (seen.has(el)) return;
    seen.add(el);
    out.push({kind, label: label(el), handle: stamp(el), disabled: isDisabled(el), active: isActive(el)});
  };
"""

FIND_TRIGGERS_JS = """
(cfg) => {
""" + _TRIGGER_HELPERS + """
  const numRe = new RegExp(cfg.numberSource, 'i');
  const nextRe = new RegExp(cfg.nextSource, 'i');
  for (const sel of cfg.tabSelectors) {
    try { document.querySelectorAll(sel).forEach(el => push(el, 'tab')); } catch (e) {}
  }
  for (const sel of cfg.pageSelectors) {
    try {
      document.querySelectorAll(sel).forEach(el => {
        const t = label(el);
        if (numRe.test(t)) push(el, 'page');
        else if (nextRe.test(t) || el.getAttribute('rel') === 'next') push(el, 'next');
      });
    } catch (e) {}
  }
  document.querySelectorAll('a[rel="next"]').forEach(el => push(el, 'next'));
  return out;
}
"""

FIND_TOGGLES_JS = """
(cfg) => {
""" + _TRIGGER_HELPERS + """
  const re = new RegExp(cfg.toggleSource, 'i');
  document.querySelectorAll(cfg.itemSelector).forEach(item => {
    item.querySelectorAll('a, button, summary, [role="button"], [data-toggle], [data-bs-toggle]')
      .forEach(el => { if (re.test(label(el))) push(el, 'toggle'); });
  });
  return out;
}
"""


def _handle_selector(trigger: Trigger) -> str:
    return f'[data-ps-trigger="{trigger.handle}"]'


# ---------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------

class PlaywrightDriver:
    """PageDriver over a Playwright sync `Page`."""

    def __init__(self, page, click_timeout_ms: int = 5000):
        self.page = page
        self.click_timeout_ms = click_timeout_ms
        self._generation = 0

    def viewport_height(self) -> int:
        return int(self.page.evaluate("() => window.innerHeight") or 0)

    def scroll_height(self) -> int:
        return int(
            self.page.evaluate(
                "() => Math.max(document.body ? document.body.scrollHeight : 0,"
                " document.documentElement ? document.documentElement.scrollHeight : 0)"
            )
            or 0
        )

    def scroll_to(self, y: int) -> None:
        self.page.evaluate("(y) => window.scrollTo(0, y)", y)

    def pause(self, ms: int) -> None:
        self.page.wait_for_timeout(ms)

    def signature(self, scope: str) -> str:
        try:
            return self.page.evaluate(SIGNATURE_JS, scope)
        except PlaywrightError as e:
            debug(f"driver: signature failed :: {e}")
            return ""

    def _triggers(self, script: str, payload: dict) -> List[Trigger]:
        self._generation += 1
        payload = dict(payload, generation=self._generation)
        try:
            raw = self.page.evaluate(script, payload) or []
        except PlaywrightError as e:
            debug(f"driver: trigger discovery failed :: {e}")
            return []
        return [
            Trigger(
                kind=r.get("kind", ""),
                label=r.get("label", ""),
                handle=r.get("handle", ""),
                disabled=bool(r.get("disabled")),
                active=bool(r.get("active")),
            )
            for r in raw
        ]

    def find_triggers(self, config: SweepConfig) -> List[Trigger]:
        return self._triggers(
            FIND_TRIGGERS_JS,
            {
                "tabSelectors": list(config.tab_selectors),
                "pageSelectors": list(config.pagination_selectors),
                "numberSource": config.page_number_pattern.pattern,
                "nextSource": config.next_pattern.pattern,
            },
        )

    def find_item_toggles(self, config: SweepConfig) -> List[Trigger]:
        if not config.item_selector:
            return []
        return self._triggers(
            FIND_TOGGLES_JS,
            {"itemSelector": config.item_selector, "toggleSource": config.toggle_pattern.pattern},
        )

    def click(self, trigger: Trigger) -> None:
        self.page.click(_handle_selector(trigger), timeout=self.click_timeout_ms)

    def wait_for_change(self, scope: str, before: str, timeout_ms: int) -> bool:
        timeout_ms = max(1, int(timeout_ms))
        try:
            self.page.wait_for_function(
                WAIT_CHANGE_JS, arg=[scope, before], polling="mutation", timeout=timeout_ms
            )
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            # a link click replaced the document while we were waiting
            debug(f"driver: wait interrupted, checking after load :: {e}")
            try:
                self.page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
            except PlaywrightError:
                return False
            return self.signature(scope) != before

    def stamp_layout(self) -> None:
        try:
            self.page.evaluate(STAMP_LAYOUT_JS)
        except PlaywrightError as e:
            debug(f"driver: layout stamp failed :: {e}")

    def html(self) -> str:
        self.stamp_layout()
        return self.page.content() or ""


# ---------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------

@dataclass
class RenderResult:
    url: str
    html: str
    mode: str
    sweep: Optional[SweepResult] = None
    error: Optional[str] = None


@contextmanager
def open_page(url: str, timeout_ms: int | None = None) -> Iterator:
    """Launch headless Chromium, open `url`, yield the Page; always tears down."""
    timeout_ms = timeout_ms or config.RENDER_TIMEOUT_MS
    with sync_playwright() as p:
        browser = p.chromium.launch(headless=True)
        try:
            context = browser.new_context(user_agent=config.USER_AGENT)
            page = context.new_page()
            page.set_default_timeout(timeout_ms)
            page.goto(url, wait_until="domcontentloaded")
            page.wait_for_timeout(1200)
            yield page
            context.close()
        finally:
            browser.close()


def _requests_fallback(url: str, reason: str = "") -> RenderResult:
    html, _status, _mode, error = fetch_html(url)
    if error:
        warn(f"render: requests fallback failed for {url} :: {error}")
    return RenderResult(url=url, html=html or "", mode="static", error=error or reason or None)


def render_page(
    url: str,
    timeout_ms: int | None = None,
    sweep: bool = False,
    sweep_config: Optional[SweepConfig] = None,
) -> RenderResult:
    """
    Render with JS (Playwright), optionally sweeping tabs/pagination first,
    and return the layout-stamped HTML. Falls back to a static fetch if
    Playwright is not available.
    """
    if not _HAS_PW:
        return _requests_fallback(url)

    try:
        with open_page(url, timeout_ms) as page:
            driver = PlaywrightDriver(page)
            result = sweep_page(driver, sweep_config) if sweep else None
            html = driver.html()
        info(f"render: {url} ({len(html)} chars{', swept' if sweep else ''})")
        return RenderResult(url=url, html=html, mode="js", sweep=result)
    except PlaywrightError as e:
        warn(f"render: playwright failed for {url} :: {e}")
        return _requests_fallback(url, reason=type(e).__name__)
