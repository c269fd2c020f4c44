from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from pagesweep.fetchers import browser
from pagesweep.fetchers.browser import PlaywrightDriver, render_page
from pagesweep.tools.sweep import PAGE, SweepConfig, Trigger


class FakePage:
    def __init__(self, wait_error=None):
        self.wait_error = wait_error
        self.clicked = []
        self.evaluated = []

    def evaluate(self, script, arg=None):
        self.evaluated.append((script, arg))
        if script is browser.FIND_TRIGGERS_JS:
            return [{"kind": "page", "label": "2", "handle": f"{arg['generation']}-0", "active": False}]
        return 0

    def click(self, selector, timeout=None):
        self.clicked.append(selector)

    def wait_for_function(self, script, arg=None, polling=None, timeout=None):
        assert polling == "mutation"
        if self.wait_error:
            raise self.wait_error

    def content(self):
        return "<html><body><p>rendered</p></body></html>"


def test_driver_clicks_stamped_handles():
    page = FakePage()
    driver = PlaywrightDriver(page)
    triggers = driver.find_triggers(SweepConfig())
    assert triggers == [Trigger(PAGE, "2", "1-0")]
    driver.click(triggers[0])
    assert page.clicked == ['[data-ps-trigger="1-0"]']


def test_wait_for_change_timeout_means_no_change():
    assert PlaywrightDriver(FakePage()).wait_for_change("body", "0:", 500) is True
    page = FakePage(wait_error=PlaywrightTimeoutError("timed out"))
    assert PlaywrightDriver(page).wait_for_change("body", "0:", 500) is False


def test_html_is_layout_stamped_first():
    page = FakePage()
    html = PlaywrightDriver(page).html()
    assert page.evaluated[-1][0] is browser.STAMP_LAYOUT_JS
    assert "rendered" in html


def test_toggles_need_an_item_selector():
    assert PlaywrightDriver(FakePage()).find_item_toggles(SweepConfig()) == []


def test_render_falls_back_to_static_fetch(monkeypatch):
    monkeypatch.setattr(browser, "_HAS_PW", False)
    monkeypatch.setattr(browser, "fetch_html", lambda url: ("<p>static</p>", 200, "static", None))
    res = render_page("https://example.edu/", sweep=True)
    assert (res.html, res.mode, res.sweep, res.error) == ("<p>static</p>", "static", None, None)
