from pagesweep.tools.sweep import (
    COMPLETE,
    NEXT,
    NO_TRIGGERS,
    PAGE,
    SAFETY,
    STALE,
    TAB,
    TOGGLE,
    Deadline,
    DrillDownSweep,
    SweepConfig,
    SweepMachine,
    SweepState,
    Trigger,
    sweep_page,
)


class FakeDriver:
    """
    In-memory page: numbered pages (or a single Next control), optional tabs
    that reveal extra lines, optional per-page item toggles.
    """

    def __init__(self, pages, tabs=None, items=None, next_only=False, numbered=True, frozen=False):
        self.pages = pages
        self.current = 0
        self.tabs = tabs or {}
        self.items = items or {}
        self.next_only = next_only
        self.numbered = numbered
        self.frozen = frozen
        self.revealed = []
        self.expanded = set()
        self.clicks = []
        self.scrolls = []

    # -- content -------------------------------------------------------

    def _lines(self):
        lines = list(self.pages[self.current])
        for label in self.revealed:
            lines += self.tabs[label]
        for name, fee in self.items.get(self.current, {}).items():
            lines.append(name)
            if f"t-{self.current}-{name}" in self.expanded:
                lines.append(fee)
        return lines

    def html(self):
        body = "".join(f"<p>{l}</p>" for l in self._lines())
        return f"<html><body><main>{body}</main></body></html>"

    def signature(self, scope):
        t = "\n".join(self._lines())
        return f"{len(t)}:{t[:200]}"

    # -- driver surface ------------------------------------------------

    def viewport_height(self):
        return 800

    def scroll_height(self):
        return 2000

    def scroll_to(self, y):
        self.scrolls.append(y)

    def pause(self, ms):
        pass

    def find_triggers(self, config):
        out = [Trigger(TAB, label, f"tab-{label}", active=label in self.revealed) for label in self.tabs]
        if self.next_only:
            out.append(Trigger(NEXT, "Next", "next", disabled=self.current >= len(self.pages) - 1))
        elif self.numbered:
            for i in range(len(self.pages)):
                out.append(Trigger(PAGE, str(i + 1), f"page-{i + 1}", active=i == self.current))
        return out

    def find_item_toggles(self, config):
        return [
            Trigger(TOGGLE, "View fees", f"t-{self.current}-{name}")
            for name in self.items.get(self.current, {})
        ]

    def click(self, trigger):
        self.clicks.append(trigger.handle)
        if self.frozen:
            return
        if trigger.kind == TAB:
            self.revealed.append(trigger.label)
        elif trigger.kind == PAGE:
            self.current = int(trigger.label) - 1
        elif trigger.kind == NEXT:
            self.current += 1
        elif trigger.kind == TOGGLE:
            self.expanded.add(trigger.handle)

    def wait_for_change(self, scope, before, timeout_ms):
        return self.signature(scope) != before


def _pages(n):
    return [[f"Programme {i}: B.Tech track {i}", "Apply now"] for i in range(1, n + 1)]


def test_numbered_pagination_visits_every_page_once():
    driver = FakeDriver(_pages(5))
    result = SweepMachine(driver).run()

    assert result.terminated_by == COMPLETE
    assert len(result.signatures) == 5
    assert len(set(result.signatures)) == 5
    assert driver.clicks == ["page-2", "page-3", "page-4", "page-5"]
    assert result.iterations == 4
    assert result.reveals == 4
    assert result.lines.count("Apply now") == 1
    assert len(result.lines) == 6
    assert result.lines[0] == "Programme 1: B.Tech track 1"


def test_preload_scrolls_then_returns_to_top():
    driver = FakeDriver(_pages(1), numbered=False)
    machine = SweepMachine(driver)
    assert machine.tick() is SweepState.PRELOAD
    while machine.state is SweepState.PRELOAD:
        machine.tick()
    assert machine.state is SweepState.EXTRACT
    assert driver.scrolls == [0, 720, 1440, 0]


def test_next_only_pagination():
    driver = FakeDriver(_pages(3), next_only=True)
    result = sweep_page(driver)
    assert result.terminated_by == COMPLETE
    assert driver.clicks == ["next", "next"]
    assert len(result.signatures) == 3


def test_tabs_are_revealed_before_pagination():
    driver = FakeDriver(
        [["Overview text"]],
        tabs={"Fees": ["Tuition ₹50,000 per year"], "Eligibility": ["Minimum 60% in Class 12"]},
    )
    result = SweepMachine(driver).run()
    assert driver.clicks == ["tab-Fees", "tab-Eligibility"]
    assert result.terminated_by == COMPLETE
    assert "Tuition ₹50,000 per year" in result.lines
    assert "Minimum 60% in Class 12" in result.lines


def test_unchanged_clicks_end_as_stale():
    driver = FakeDriver(_pages(3), next_only=True, frozen=True)
    result = SweepMachine(driver).run()
    assert result.terminated_by == STALE
    assert result.iterations == 2
    assert result.reveals == 0


def test_safety_limit():
    driver = FakeDriver(_pages(100), next_only=True)
    result = SweepMachine(driver, SweepConfig(safety_limit=5)).run()
    assert result.terminated_by == SAFETY
    assert result.iterations == 5


def test_budget_exhaustion_counts_as_safety():
    driver = FakeDriver(_pages(3))
    result = SweepMachine(driver, SweepConfig(budget_s=0)).run()
    assert result.terminated_by == SAFETY
    assert driver.clicks == []


def test_nothing_to_click():
    driver = FakeDriver(_pages(1), next_only=True)
    result = SweepMachine(driver).run()
    assert result.terminated_by == NO_TRIGGERS
    assert result.iterations == 0
    assert result.lines == ["Programme 1: B.Tech track 1", "Apply now"]


def test_click_failure_is_not_stale():
    class Flaky(FakeDriver):
        def click(self, trigger):
            if trigger.handle == "page-2":
                raise RuntimeError("detached")
            super().click(trigger)

    driver = Flaky(_pages(3))
    result = SweepMachine(driver).run()
    assert result.terminated_by == COMPLETE
    assert driver.clicks == ["page-3"]


def test_drill_down_expands_items_on_every_page():
    items = {
        0: {"Course A1": "A1 fee ₹1,00,000", "Course A2": "A2 fee ₹1,20,000"},
        1: {"Course B1": "B1 fee ₹90,000", "Course B2": "B2 fee ₹95,000"},
    }
    driver = FakeDriver([["Catalog page one"], ["Catalog page two"]], items=items)
    result = DrillDownSweep(driver, item_selector=".course-card", toggle_pattern="fee").run()

    assert result.terminated_by == COMPLETE
    for fee in ("A1 fee ₹1,00,000", "A2 fee ₹1,20,000", "B1 fee ₹90,000", "B2 fee ₹95,000"):
        assert fee in result.lines
    assert driver.clicks == ["t-0-Course A1", "t-0-Course A2", "page-2", "t-1-Course B1", "t-1-Course B2"]
    assert result.reveals == 5
    assert result.iterations == 1


def test_sweep_page_picks_drill_down_from_config():
    items = {0: {"Course A1": "A1 fee ₹1,00,000"}}
    driver = FakeDriver([["Catalog"]], items=items)
    result = sweep_page(driver, SweepConfig(item_selector=".course-card"))
    assert "A1 fee ₹1,00,000" in result.lines


def test_deadline_with_fake_clock():
    now = [100.0]
    d = Deadline(10, clock=lambda: now[0])
    assert d.remaining() == 10
    assert d.cap_ms(2000) == 2000
    now[0] = 108.5
    assert d.cap_ms(2000) == 1500
    assert not d.expired()
    now[0] = 111
    assert d.expired()
    assert d.cap_ms(2000) == 0
