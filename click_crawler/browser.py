"""
Browser Session
===============
Thin wrapper over the Playwright sync API exposing exactly the capabilities
the traversal engine needs: navigation, bounded waits, DOM queries and
element interaction on ONE page of ONE browser context.

Timeouts surface as ``playwright.sync_api.TimeoutError``; other driver
failures as ``playwright.sync_api.Error``.  ``find_one`` is the exception:
a selector that no longer matches (or no longer parses) returns ``None``
so the engine can treat staleness as an expected outcome.

Settling after a click has two modes:
  - ``quiescence`` — poll URL + a MutationObserver counter until both are
    unchanged for ``settle_quiet_ms`` and no main-frame navigation request
    is in flight (bounded by ``settle_timeout_ms``)
  - ``fixed``      — sleep ``settle_interval_s``

Pages opened as popups (``target=_blank``) are closed after every settle.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Set

from playwright.sync_api import sync_playwright, Browser, BrowserContext, ElementHandle, Page
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from .run_config import CrawlerRunConfig

logger = logging.getLogger(__name__)

# Installs a page-lifetime mutation counter on first call, returns it after.
_MUTATION_COUNTER_JS = """() => {
    if (window.__clickCrawlerMutations === undefined) {
        window.__clickCrawlerMutations = 0;
        const root = document.documentElement || document;
        new MutationObserver(records => {
            window.__clickCrawlerMutations += records.length;
        }).observe(root, {subtree: true, childList: true, attributes: true, characterData: true});
    }
    return window.__clickCrawlerMutations;
}"""


class BrowserSession:
    """One Chromium browser, one context, one page — driven sequentially."""

    def __init__(self, config: Optional[CrawlerRunConfig] = None):
        self.config = config or CrawlerRunConfig()

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

        self._pending_navigations: Set = set()
        self._popups: List[Page] = []

    # ── Lifecycle ─────────────────────────────────────────────────

    def launch(self) -> "BrowserSession":
        """Start Playwright and open the crawl page."""
        if self._playwright is not None:
            return self

        self._playwright = sync_playwright().start()
        launch_kwargs = {
            'headless': self.config.headless,
            'args': [
                '--disable-gpu',
                '--no-sandbox',
                '--disable-dev-shm-usage',
            ],
        }
        if self.config.browser_path:
            launch_kwargs['executable_path'] = self.config.browser_path

        try:
            self._browser = self._playwright.chromium.launch(**launch_kwargs)
            self._context = self._browser.new_context(
                user_agent=self.config.user_agent,
                viewport={
                    'width': self.config.viewport_width,
                    'height': self.config.viewport_height,
                },
            )
            self.attach(self._context.new_page())
        except Exception:
            self.close()
            raise

        logger.info(
            f"Playwright Chromium launched "
            f"({'headless' if self.config.headless else 'headed'}"
            f"{', ' + self.config.browser_path if self.config.browser_path else ''})"
        )
        return self

    def attach(self, page: Page) -> "BrowserSession":
        """Make *page* the crawl page and start watching its navigations and popups."""
        self._page = page
        self._pending_navigations.clear()
        self._popups.clear()
        page.on('request', self._on_request)
        page.on('requestfinished', self._on_request_done)
        page.on('requestfailed', self._on_request_done)
        page.on('framenavigated', self._on_frame_navigated)
        page.on('popup', self._on_popup)
        return self

    def close(self) -> None:
        """Close page, context, browser and Playwright; never raises."""
        self.close_popups()
        for name in ('_page', '_context', '_browser'):
            obj = getattr(self, name)
            if obj is not None:
                try:
                    obj.close()
                except Exception as exc:
                    logger.debug(f"Error closing {name.strip('_')}: {exc}")
                setattr(self, name, None)

        if self._playwright is not None:
            try:
                self._playwright.stop()
            except Exception as exc:
                logger.debug(f"Error stopping Playwright: {exc}")
            self._playwright = None

    def __enter__(self) -> "BrowserSession":
        return self.launch()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session is not launched")
        return self._page

    # ── Navigation ────────────────────────────────────────────────

    def navigate(self, url: str) -> None:
        self.page.goto(url, timeout=self.config.page_timeout_ms, wait_until='domcontentloaded')

    def navigate_back(self) -> None:
        self.page.go_back(timeout=self.config.page_timeout_ms, wait_until='domcontentloaded')

    def refresh(self) -> None:
        self.page.reload(timeout=self.config.page_timeout_ms, wait_until='domcontentloaded')

    # ── Waits ─────────────────────────────────────────────────────

    def wait_for_body(self, timeout_ms: Optional[int] = None) -> None:
        """Baseline readiness: ``<body>`` is attached."""
        self.page.wait_for_selector(
            'body',
            state='attached',
            timeout=timeout_ms or self.config.page_timeout_ms,
        )

    def wait_for_url(self, url: str, timeout_ms: Optional[int] = None) -> None:
        """Block until the current URL equals *url* exactly."""
        timeout_ms = timeout_ms or self.config.url_timeout_ms
        if self.page.url == url:
            return
        self.page.wait_for_url(lambda current: current == url, timeout=timeout_ms)

    def wait_until_clickable(self, element: ElementHandle, timeout_ms: Optional[int] = None) -> None:
        """Wait for *element* to be visible, then enabled."""
        timeout_ms = timeout_ms or self.config.element_timeout_ms
        element.wait_for_element_state('visible', timeout=timeout_ms)
        element.wait_for_element_state('enabled', timeout=timeout_ms)

    def settle(self) -> bool:
        """
        Let asynchronous effects of an interaction finish.

        Returns True if the page went quiet within the bound (always True
        in ``fixed`` mode).  A timeout is not an error.  Popup pages opened
        by the interaction are closed afterwards.
        """
        if self.config.settle_mode == 'fixed':
            self.page.wait_for_timeout(int(self.config.settle_interval_s * 1000))
            quiet = True
        else:
            quiet = self._wait_for_quiescence()
        self.close_popups()
        return quiet

    def _wait_for_quiescence(self) -> bool:
        """
        Quiet = URL and DOM mutation count unchanged for ``settle_quiet_ms``
        with no main-frame navigation in flight.
        """
        cfg = self.config
        deadline = time.monotonic() + cfg.settle_timeout_ms / 1000
        last_state = None
        stable_since = time.monotonic()

        while time.monotonic() < deadline:
            try:
                state = (self.page.url, self.page.evaluate(_MUTATION_COUNTER_JS))
            except PlaywrightError:
                # Execution context replaced by a navigation in flight
                state = (self.page.url, None)

            now = time.monotonic()
            if state != last_state:
                last_state = state
                stable_since = now
            elif (
                state[1] is not None
                and not self._pending_navigations
                and (now - stable_since) * 1000 >= cfg.settle_quiet_ms
            ):
                return True

            self.page.wait_for_timeout(cfg.settle_poll_ms)

        logger.debug(
            f"[SETTLE] Page not quiet after {cfg.settle_timeout_ms}ms "
            f"({len(self._pending_navigations)} navigation(s) pending) — continuing"
        )
        return False

    # ── Navigation / popup tracking ───────────────────────────────

    def _on_request(self, request) -> None:
        if request.is_navigation_request() and request.frame.parent_frame is None:
            self._pending_navigations.add(request)

    def _on_request_done(self, request) -> None:
        self._pending_navigations.discard(request)

    def _on_frame_navigated(self, frame) -> None:
        if frame.parent_frame is None:
            self._pending_navigations.clear()

    def _on_popup(self, popup: Page) -> None:
        logger.debug(f"[POPUP] Opened {popup.url[:70]}")
        self._popups.append(popup)

    def close_popups(self) -> int:
        """Close every page opened from the crawl page; returns how many."""
        closed = 0
        while self._popups:
            popup = self._popups.pop()
            try:
                popup.close()
                closed += 1
            except PlaywrightError as exc:
                logger.debug(f"[POPUP] Close failed: {exc}")
        return closed

    # ── Page reads ────────────────────────────────────────────────

    def current_url(self) -> str:
        return self.page.url

    def title(self) -> str:
        return self.page.title()

    def body_text(self) -> str:
        """Rendered text content of the whole document body."""
        return self.page.evaluate("() => document.body ? document.body.innerText : ''") or ''

    # ── DOM queries ───────────────────────────────────────────────

    def find_one(self, selector: str) -> Optional[ElementHandle]:
        """First element matching *selector*, or None if it no longer matches."""
        try:
            return self.page.query_selector(selector)
        except PlaywrightTimeout:
            raise
        except PlaywrightError as exc:
            logger.debug(f"[STALE] Selector rejected by browser: {selector[:80]} ({exc})")
            return None

    # ── Element interaction ───────────────────────────────────────

    def scroll_into_view(self, element: ElementHandle) -> None:
        element.scroll_into_view_if_needed(timeout=self.config.element_timeout_ms)

    def click(self, element: ElementHandle) -> None:
        element.click(timeout=self.config.element_timeout_ms)

