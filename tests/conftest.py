"""
Shared fixtures: a scripted in-memory "browser" that stands in for
``BrowserSession`` so the traversal engine can be exercised without
launching Chromium.

A ``FakeSite`` maps URLs to ``FakePage``s; each page lists ``FakeElement``s
whose ``action`` decides what a click does:

  - ``None``               — nothing (in-page effect only)
  - ``"nav:<url>"``        — navigate to <url>
  - ``"raise"``            — click raises a Playwright error (interception)
  - ``"stale"``            — selector no longer matches at re-lookup time
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from click_crawler.models import ElementDescriptor
from click_crawler.run_config import CrawlerRunConfig
from click_crawler.storage import CrawlStore


@dataclass
class FakeElement:
    selector: str
    tag_name: str = "button"
    text: str = ""
    href: str = ""
    action: Optional[str] = None


@dataclass
class FakePage:
    text: str = ""
    title: str = ""
    elements: List[FakeElement] = field(default_factory=list)
    links: List[str] = field(default_factory=list)


class FakeBrowser:
    """Records every call in ``self.log`` as ``(op, url, detail)`` tuples."""

    def __init__(self, site: Dict[str, FakePage], failing_urls=()):
        self.site = site
        self.failing_urls = set(failing_urls)
        self.history: List[str] = []
        self.index = -1
        self.log: List[tuple] = []

    # ── engine-facing capabilities ────────────────────────────────

    @property
    def page(self):
        return self

    def current_url(self) -> str:
        return self.history[self.index] if self.index >= 0 else "about:blank"

    def _push(self, url: str) -> None:
        del self.history[self.index + 1:]
        self.history.append(url)
        self.index = len(self.history) - 1

    def navigate(self, url: str) -> None:
        self.log.append(("navigate", url, None))
        if url in self.failing_urls:
            raise PlaywrightTimeout(f"Timeout 10000ms exceeded navigating to {url}")
        self._push(url)

    def navigate_back(self) -> None:
        self.log.append(("back", self.current_url(), None))
        if self.index > 0:
            self.index -= 1

    def refresh(self) -> None:
        self.log.append(("refresh", self.current_url(), None))

    def wait_for_body(self, timeout_ms=None) -> None:
        if self.current_url() not in self.site:
            raise PlaywrightTimeout(f"Timeout waiting for body on {self.current_url()}")

    def wait_for_url(self, url: str, timeout_ms=None) -> None:
        if self.current_url() != url:
            raise PlaywrightTimeout(f"Timeout waiting for URL {url}")

    def wait_until_clickable(self, element, timeout_ms=None) -> None:
        pass

    def settle(self) -> bool:
        return True

    def title(self) -> str:
        return self._current_page().title

    def body_text(self) -> str:
        return self._current_page().text

    def find_one(self, selector: str):
        for element in self._current_page().elements:
            if element.selector == selector:
                return None if element.action == "stale" else element
        return None

    def scroll_into_view(self, element) -> None:
        pass

    def click(self, element: FakeElement) -> None:
        self.log.append(("click", self.current_url(), element.selector))
        if element.action == "raise":
            raise PlaywrightError("Element click intercepted by <div class=overlay>")
        if element.action and element.action.startswith("nav:"):
            self._push(element.action[len("nav:"):])

    # ── injected discoverer / link finder ─────────────────────────

    def discover(self, page) -> List[ElementDescriptor]:
        return [
            ElementDescriptor(
                selector=el.selector,
                tag_name=el.tag_name,
                text_content=el.text,
                href=el.href,
            )
            for el in self._current_page().elements
        ]

    def links(self, page) -> List[str]:
        return list(self._current_page().links)

    # ── test helpers ──────────────────────────────────────────────

    def _current_page(self) -> FakePage:
        return self.site.get(self.current_url(), FakePage())

    def ops(self, op: str) -> List[tuple]:
        return [entry for entry in self.log if entry[0] == op]

    def clicked_selectors(self) -> List[str]:
        return [entry[2] for entry in self.ops("click")]


@pytest.fixture
def store():
    with CrawlStore(":memory:") as s:
        yield s


@pytest.fixture
def config():
    return CrawlerRunConfig(max_depth=2, settle_mode="fixed", settle_interval_s=0)


@pytest.fixture
def make_engine(store, config):
    """Build a ``CrawlEngine`` over a fake site; returns (engine, browser)."""
    from click_crawler.engine import CrawlEngine

    def _make(site, failing_urls=(), **overrides):
        for key, value in overrides.items():
            setattr(config, key, value)
        browser = FakeBrowser(site, failing_urls=failing_urls)
        engine = CrawlEngine(
            browser,
            store,
            config,
            discover=browser.discover,
            find_links=browser.links,
        )
        return engine, browser

    return _make
