# pagesweep/tools/sweep.py
"""
Dynamic content sweep as an explicit state machine.

    IDLE -> PRELOAD -> EXTRACT -> REVEAL -> (EXTRACT -> REVEAL)* -> DONE

Every `tick()` performs exactly one transition: one scroll step, one trigger
click with its bounded wait, or one extraction. Reveals are strictly
sequential; a click's mutation is awaited (or timed out) before the next
trigger fires.

The machine only talks to the page through `PageDriver`, so the whole flow is
testable with an in-memory fake.
"""
from __future__ import annotations

import re
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Pattern, Protocol, Set, Tuple

from ..clean_text import normalize_line
from ..log import debug, info
from ..parsers.boilerplate import select_main_container
from ..parsers.fees import build_fee_synthesis
from ..parsers.nodes import ensure_soup
from ..parsers.walker import WalkerOptions, walk


class SweepState(str, Enum):
    IDLE = "idle"
    PRELOAD = "preload"
    REVEAL = "reveal"
    EXTRACT = "extract"
    DONE = "done"


TAB = "tab"
PAGE = "page"
NEXT = "next"
TOGGLE = "toggle"

COMPLETE = "complete"
STALE = "stale"
SAFETY = "safety"
NO_TRIGGERS = "no_triggers"


@dataclass(frozen=True)
class Trigger:
    kind: str
    label: str
    handle: str
    disabled: bool = False
    active: bool = False


@dataclass
class SweepConfig:
    scroll_ratio: float = 0.9
    min_scroll_step: int = 300
    scroll_delay_ms: int = 80
    max_scroll_steps: int = 200
    wait_timeout_ms: int = 2000
    safety_limit: int = 40
    stale_limit: int = 2
    budget_s: float = 120.0
    scope: str = "body"
    tab_selectors: Tuple[str, ...] = (
        '[role="tab"]',
        ".accordion-button",
        "[data-toggle='tab']",
        "[data-toggle='collapse']",
        "[data-bs-toggle='tab']",
        "[data-bs-toggle='collapse']",
    )
    pagination_selectors: Tuple[str, ...] = (
        ".pagination a",
        ".pagination button",
        ".pager a",
        ".page-numbers",
        "nav[aria-label*='pagination' i] a",
        "nav[aria-label*='pagination' i] button",
        "[aria-label^='page' i]",
    )
    next_pattern: Pattern = re.compile(r"^\s*(next|next page|›|»|>)\s*$", re.I)
    page_number_pattern: Pattern = re.compile(r"^\s*\d{1,4}\s*$")
    item_selector: str = ""
    toggle_pattern: Pattern = re.compile(r"\bfees?\b", re.I)


class PageDriver(Protocol):
    def viewport_height(self) -> int: ...
    def scroll_height(self) -> int: ...
    def scroll_to(self, y: int) -> None: ...
    def pause(self, ms: int) -> None: ...
    def signature(self, scope: str) -> str: ...
    def find_triggers(self, config: SweepConfig) -> List[Trigger]: ...
    def find_item_toggles(self, config: SweepConfig) -> List[Trigger]: ...
    def click(self, trigger: Trigger) -> None: ...
    def wait_for_change(self, scope: str, before: str, timeout_ms: int) -> bool: ...
    def html(self) -> str: ...


class Deadline:
    """Wall-clock bound with an injectable clock."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self.clock())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def cap_ms(self, ms: int) -> int:
        return int(min(ms, self.remaining() * 1000))


@dataclass
class SweepResult:
    lines: List[str]
    signatures: List[str]
    reveals: int
    iterations: int
    terminated_by: str


def default_extractor(html: str) -> List[str]:
    """Walk the main container with boilerplate exclusion and add fee lines."""
    soup = ensure_soup(html)
    main = select_main_container(soup)
    result = walk(soup, WalkerOptions(exclude_boilerplate=True, root=main))
    fees = build_fee_synthesis(result.tables)
    return result.lines() + fees.lines


# ---------------------------------------------------------------------
# Machine
# ---------------------------------------------------------------------

class SweepMachine:
    drill = False

    def __init__(
        self,
        driver: PageDriver,
        config: Optional[SweepConfig] = None,
        extractor: Optional[Callable[[str], List[str]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.driver = driver
        self.config = config or SweepConfig()
        self.extractor = extractor or default_extractor
        self.clock = clock
        self.state = SweepState.IDLE
        self.terminated_by: Optional[str] = None

        self.lines: List[str] = []
        self._norms: Set[str] = set()
        self.signatures: List[str] = []
        self.reveals = 0
        self.iterations = 0

        self._deadline: Optional[Deadline] = None
        self._scroll_y = 0
        self._scroll_total = 0
        self._scroll_step = 0
        self._scroll_steps = 0

        self._phase = TAB
        self._tab_queue: Optional[List[Trigger]] = None
        self._stale = 0
        self._visited_pages: Set[str] = set()
        self._toggled: Set[str] = set()
        self._drilled_page = False

    # -- bookkeeping ---------------------------------------------------

    def _finish(self, reason: str) -> None:
        self.terminated_by = reason
        self.state = SweepState.DONE
        info(
            f"sweep: done ({reason}) reveals={self.reveals} "
            f"iterations={self.iterations} lines={len(self.lines)}"
        )

    def _record_signature(self, sig: str) -> None:
        if sig not in self.signatures:
            self.signatures.append(sig)

    def merge(self, lines: List[str]) -> int:
        added = 0
        for line in lines:
            norm = normalize_line(line)
            if not norm or norm in self._norms:
                continue
            self._norms.add(norm)
            self.lines.append(line)
            added += 1
        return added

    def _reveal(self, trigger: Trigger) -> Optional[bool]:
        """Click and wait. True/False for changed/unchanged; None if the click itself failed."""
        scope = self.config.scope
        before = self.driver.signature(scope)
        try:
            self.driver.click(trigger)
        except Exception as e:
            debug(f"sweep: click failed on {trigger.kind} '{trigger.label}' :: {e!r}")
            return None
        changed = self.driver.wait_for_change(
            scope, before, self._deadline.cap_ms(self.config.wait_timeout_ms)
        )
        if changed:
            self._record_signature(self.driver.signature(scope))
        return changed

    def _no_clicks_reason(self) -> str:
        return COMPLETE if self.iterations else NO_TRIGGERS

    # -- transitions ---------------------------------------------------

    def tick(self) -> SweepState:
        if self.state is SweepState.IDLE:
            self._start()
        elif self.state is SweepState.PRELOAD:
            self._preload_step()
        elif self.state is SweepState.EXTRACT:
            self._extract()
        elif self.state is SweepState.REVEAL:
            self._reveal_step()
        return self.state

    def run(self) -> SweepResult:
        while self.state is not SweepState.DONE:
            self.tick()
        return self.result()

    def result(self) -> SweepResult:
        return SweepResult(
            lines=list(self.lines),
            signatures=list(self.signatures),
            reveals=self.reveals,
            iterations=self.iterations,
            terminated_by=self.terminated_by or "",
        )

    def _start(self) -> None:
        cfg = self.config
        self._deadline = Deadline(cfg.budget_s, self.clock)
        vh = max(0, int(self.driver.viewport_height() or 0))
        self._scroll_step = max(cfg.min_scroll_step, int(vh * cfg.scroll_ratio))
        self._scroll_total = max(int(self.driver.scroll_height() or 0), vh * 2)
        self._scroll_y = 0
        self._record_signature(self.driver.signature(cfg.scope))
        self.state = SweepState.PRELOAD

    def _preload_step(self) -> None:
        cfg = self.config
        if self._scroll_y < self._scroll_total and self._scroll_steps < cfg.max_scroll_steps:
            self.driver.scroll_to(self._scroll_y)
            self.driver.pause(cfg.scroll_delay_ms)
            self._scroll_y += self._scroll_step
            self._scroll_steps += 1
            return
        self.driver.scroll_to(0)
        self.driver.pause(cfg.scroll_delay_ms)
        self.state = SweepState.EXTRACT

    def _extract(self) -> None:
        try:
            added = self.merge(self.extractor(self.driver.html()))
            debug(f"sweep: extract added {added} lines")
        except Exception as e:
            debug(f"sweep: extract failed :: {e!r}")
        self.state = SweepState.REVEAL

    def _reveal_step(self) -> None:
        if self._deadline.expired() or self.iterations >= self.config.safety_limit:
            self._finish(SAFETY)
            return
        if self._phase == TAB:
            self._tab_step()
        else:
            self._page_step()

    def _after_click(self, changed: Optional[bool]) -> bool:
        """Shared stale accounting; True when the stale limit was hit."""
        if changed:
            self.reveals += 1
            self._stale = 0
            self.state = SweepState.EXTRACT
            return False
        if changed is None:
            return False
        self._stale += 1
        return self._stale >= self.config.stale_limit

    def _tab_step(self) -> None:
        if self._tab_queue is None:
            self._tab_queue = [
                t for t in self.driver.find_triggers(self.config)
                if t.kind == TAB and not t.disabled and not t.active
            ]
            debug(f"sweep: {len(self._tab_queue)} tab/accordion triggers")
        if not self._tab_queue:
            self._enter_pages()
            return
        trigger = self._tab_queue.pop(0)
        self.iterations += 1
        if self._after_click(self._reveal(trigger)):
            debug("sweep: tabs stopped changing, moving to pagination")
            self._enter_pages()

    def _enter_pages(self) -> None:
        self._phase = PAGE
        self._stale = 0

    def _drill_step(self) -> bool:
        """Click the next untouched toggle on this page. False once there are none left."""
        toggles = [
            t for t in self.driver.find_item_toggles(self.config)
            if not t.disabled and t.handle not in self._toggled
        ]
        if not toggles:
            return False
        trigger = toggles[0]
        self._toggled.add(trigger.handle)
        changed = self._reveal(trigger)
        if changed:
            self.reveals += 1
            self.state = SweepState.EXTRACT
        return True

    def _page_step(self) -> None:
        if self.drill and not self._drilled_page:
            if self._drill_step():
                return
            self._drilled_page = True

        triggers = self.driver.find_triggers(self.config)
        numbered = [t for t in triggers if t.kind == PAGE]
        for t in numbered:
            if t.active:
                self._visited_pages.add(t.label)

        if numbered:
            pending = [t for t in numbered if not t.disabled and t.label not in self._visited_pages]
            if not pending:
                self._finish(self._no_clicks_reason())
                return
            trigger = pending[0]
            self._visited_pages.add(trigger.label)
        else:
            nexts = [t for t in triggers if t.kind == NEXT and not t.disabled]
            if not nexts:
                self._finish(self._no_clicks_reason())
                return
            trigger = nexts[0]

        self.iterations += 1
        changed = self._reveal(trigger)
        if changed:
            self._toggled.clear()
            self._drilled_page = False
        if self._after_click(changed):
            self._finish(STALE)


class DrillDownSweep(SweepMachine):
    """
    Grid/list variant: inside each list item, expand toggles matching a text
    pattern (e.g. "View fees") and extract, before every page advance.
    """
    drill = True

    def __init__(
        self,
        driver: PageDriver,
        item_selector: str,
        toggle_pattern: Pattern | str = r"\bfees?\b",
        config: Optional[SweepConfig] = None,
        extractor: Optional[Callable[[str], List[str]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if isinstance(toggle_pattern, str):
            toggle_pattern = re.compile(toggle_pattern, re.I)
        cfg = replace(config or SweepConfig(), item_selector=item_selector, toggle_pattern=toggle_pattern)
        super().__init__(driver, cfg, extractor, clock)


def sweep_page(driver: PageDriver, config: Optional[SweepConfig] = None, **kw) -> SweepResult:
    cfg = config or SweepConfig()
    if cfg.item_selector:
        return DrillDownSweep(driver, cfg.item_selector, cfg.toggle_pattern, cfg, **kw).run()
    return SweepMachine(driver, cfg, **kw).run()
