"""
Crawl Traversal Engine
======================
Depth-bounded, same-domain, click-driven crawler.

For every admitted (url, depth) the engine:
  1. claims the URL in the run's ``VisitedSet`` (before navigating)
  2. loads the page and waits for ``<body>``
  3. persists the rendered text and a visited-URL audit row
  4. discovers interactive elements and persists each one
  5. clicks every same-domain candidate, re-locating it by selector first
       - click navigated in-domain  → recurse, then return to the checkpoint
       - click navigated off-domain → return to the checkpoint
       - no navigation              → apply the no-navigation policy, refresh
  6. sweeps ``a[href]`` links and recurses into unvisited in-domain ones

SAFETY:
- Per-element faults never abort the page: the page is reset and the loop
  moves on.
- Per-page faults never abort the crawl: the branch ends and is recorded.
- Every click-navigation pushes a return-to-URL checkpoint that is popped
  (and restored) when the excursion ends, so the interaction loop always
  resumes on the page it started from.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from . import discovery
from .domain_guard import DomainGuard
from .models import CrawlTarget, ElementDescriptor, WriteResult
from .run_config import CrawlerRunConfig
from .visited import VisitedSet, normalize_url

logger = logging.getLogger(__name__)


class _PageLost(Exception):
    """The page could not be brought back to a known state after a fault."""


@dataclass
class CrawlResult:
    """Result of a crawl run."""
    pages: List[str] = field(default_factory=list)
    stats: Dict = field(default_factory=dict)
    errors: List[Dict] = field(default_factory=list)


def _new_stats() -> Dict:
    return {
        'pages_crawled': 0,
        'pages_failed': 0,
        'elements_discovered': 0,
        'elements_filtered': 0,
        'elements_stale': 0,
        'elements_clicked': 0,
        'clicks_failed': 0,
        'navigations_followed': 0,
        'navigations_rejected': 0,
        'links_swept': 0,
        'click_snapshots': 0,
        'write_failures': 0,
    }


class CrawlEngine:
    """
    Recursive traversal controller over one browser session.

    Args:
        browser:      ``BrowserSession`` (or anything with the same methods).
        store:        ``CrawlStore`` used for insert-if-absent writes.
        config:       ``CrawlerRunConfig``.
        discover:     ``page -> List[ElementDescriptor]``.
        find_links:   ``page -> List[str]`` raw hrefs for the link sweep.
    """

    def __init__(
        self,
        browser,
        store,
        config: Optional[CrawlerRunConfig] = None,
        discover: Optional[Callable] = None,
        find_links: Optional[Callable] = None,
    ):
        self.browser = browser
        self.store = store
        self.config = config or CrawlerRunConfig()
        self._discover = discover or discovery.discover_elements
        self._find_links = find_links or discovery.discover_links

        self.guard = DomainGuard(deny_patterns=list(self.config.deny_patterns))

        # Run state (reset by crawl())
        self.visited = VisitedSet()
        self._checkpoints: List[str] = []
        self._pages: List[str] = []
        self._errors: List[Dict] = []
        self._stats: Dict = _new_stats()
        self._start_time = 0.0

        self._progress_callback: Optional[Callable] = None
        self._stop_requested = False

    def set_progress_callback(self, callback: Callable) -> None:
        """Set callback for progress updates: callback(pages_crawled, current_url, stats)"""
        self._progress_callback = callback

    def stop(self) -> None:
        """Request crawler to stop after the current step."""
        self._stop_requested = True
        logger.info("Stop requested")

    @property
    def checkpoints(self) -> Tuple[str, ...]:
        """Return-to-URL stack of the click excursions currently in progress."""
        return tuple(self._checkpoints)

    # ------------------------------------------------------------------ #
    #  Run                                                                 #
    # ------------------------------------------------------------------ #

    def crawl(self, seed_urls: List[str]) -> CrawlResult:
        """Crawl every seed at depth 0 and return the run's result."""
        self.visited = VisitedSet()
        self._checkpoints.clear()
        self._pages.clear()
        self._errors.clear()
        self._stats = _new_stats()
        self._stop_requested = False
        self._start_time = time.time()

        logger.info("=" * 60)
        logger.info("CLICK CRAWL STARTED")
        logger.info(f"Seeds: {len(seed_urls)} | max_depth={self.config.max_depth}")
        logger.info("=" * 60)
        self.guard.log_guard()

        for target in (CrawlTarget(url=url, depth=0) for url in seed_urls):
            if self._stop_requested:
                break
            self.crawl_page(target.url, target.depth)

        stop_reason = "User requested stop" if self._stop_requested else "Frontier exhausted"
        elapsed = time.time() - self._start_time
        stats = dict(self._stats)
        stats['elapsed_time'] = round(elapsed, 2)
        stats['stop_reason'] = stop_reason

        logger.info("=" * 60)
        logger.info("CLICK CRAWL COMPLETE")
        logger.info(f"Pages crawled: {stats['pages_crawled']}")
        logger.info(f"Pages failed: {stats['pages_failed']}")
        logger.info(f"Elements clicked: {stats['elements_clicked']} (failed {stats['clicks_failed']})")
        logger.info(f"Elapsed time: {stats['elapsed_time']}s")
        logger.info(f"Stop reason: {stop_reason}")
        logger.info("=" * 60)

        return CrawlResult(pages=list(self._pages), stats=stats, errors=list(self._errors))

    # ------------------------------------------------------------------ #
    #  One page                                                            #
    # ------------------------------------------------------------------ #

    def crawl_page(self, url: str, depth: int) -> bool:
        """
        Process one CrawlTarget.  Returns True if the page was admitted.

        Never raises for page- or element-level failures.
        """
        if self._stop_requested:
            return False
        if depth > self.config.max_depth:
            logger.debug(f"Skipping {url} - exceeds max depth {self.config.max_depth}")
            return False

        page_url = normalize_url(url)
        if page_url is None or not self.visited.claim(page_url):
            return False

        logger.info(f"Crawling [{depth}]: {page_url}")

        try:
            landed_url = self._load_and_persist(page_url)
            descriptors = self._discover_and_persist(page_url)

            self._pages.append(page_url)
            self._stats['pages_crawled'] += 1
            self._report_progress(page_url)

            self._interact_all(page_url, landed_url, depth, descriptors)
            self._sweep_links(depth)

        except PlaywrightTimeout as e:
            self._record_error(page_url, depth, f"Timeout: {e}")
        except _PageLost as e:
            self._record_error(page_url, depth, f"Page state lost: {e.__cause__ or e}")
        except Exception as e:
            self._record_error(page_url, depth, str(e))

        return True

    def _load_and_persist(self, page_url: str) -> str:
        """Navigate, wait for <body>, store text.  Returns the landed URL."""
        self.browser.navigate(page_url)
        self.browser.wait_for_body(self.config.page_timeout_ms)
        landed_url = self.browser.current_url()
        content = self.browser.body_text()

        try:
            title = self.browser.title()
        except PlaywrightError as e:
            logger.debug(f"Could not read title of {page_url}: {e}")
            title = ""

        self._write(self.store.insert_page_content(page_url, content, title))
        self._write(self.store.insert_visited_url(page_url))

        logger.info(
            f"[PAGE OK] {page_url[:70]} — '{title[:50]}' "
            f"{len(content.split()):,} words"
        )
        return landed_url

    def _discover_and_persist(self, page_url: str) -> List[ElementDescriptor]:
        descriptors = self._discover(self.browser.page)
        self._stats['elements_discovered'] += len(descriptors)
        for descriptor in descriptors:
            self._write(self.store.insert_descriptor(page_url, descriptor))
        logger.info(f"Found {len(descriptors)} clickable elements on {page_url}")
        return descriptors

    # ------------------------------------------------------------------ #
    #  Interaction loop                                                    #
    # ------------------------------------------------------------------ #

    def _interact_all(
        self,
        page_url: str,
        landed_url: str,
        depth: int,
        descriptors: List[ElementDescriptor],
    ) -> None:
        budget = self.config.max_interactions_per_page
        attempted = 0

        for descriptor in descriptors:
            if self._stop_requested:
                return

            if descriptor.href and not self.guard.allows(page_url, descriptor.href):
                self._stats['elements_filtered'] += 1
                logger.debug(f"[SKIP] External/denied target {descriptor.href[:70]}")
                continue

            if budget is not None and attempted >= budget:
                logger.info(f"[CLICK] Interaction budget ({budget}) reached on {page_url}")
                return

            try:
                element = self.browser.find_one(descriptor.selector)
                if element is None:
                    self._stats['elements_stale'] += 1
                    logger.info(f"[STALE] Selector no longer matches: {descriptor.selector[:80]}")
                    continue

                attempted += 1
                self._interact(page_url, depth, descriptor, element)

            except _PageLost:
                raise
            except Exception as e:
                self._stats['clicks_failed'] += 1
                logger.warning(
                    f"[CLICK] Error processing element {descriptor.selector[:60]} "
                    f"on {page_url}: {e}"
                )
                self._reset_page(page_url, landed_url)

    def _interact(
        self,
        page_url: str,
        depth: int,
        descriptor: ElementDescriptor,
        element,
    ) -> None:
        """Scroll, wait, click, settle, then branch on the effect."""
        self.browser.scroll_into_view(element)
        self.browser.wait_until_clickable(element, self.config.element_timeout_ms)

        before_url = self.browser.current_url()
        self.browser.click(element)
        self._stats['elements_clicked'] += 1
        self.browser.settle()
        after_url = self.browser.current_url()

        if after_url != before_url:
            if self._is_followable(page_url, after_url):
                self._stats['navigations_followed'] += 1
                logger.info(f"[CLICK] {descriptor.tag_name} navigated → {after_url[:70]}")
                with self._checkpoint(before_url):
                    self.crawl_page(after_url, depth + 1)
            else:
                self._stats['navigations_rejected'] += 1
                logger.info(f"[CLICK] Off-domain navigation → {after_url[:70]} — returning")
                self._restore(before_url)
            return

        if self.config.no_navigation_policy == 'snapshot':
            content = self.browser.body_text()
            result = self.store.insert_click_snapshot(
                page_url, descriptor.selector, descriptor.text_content, content
            )
            self._write(result)
            if result is WriteResult.INSERTED:
                self._stats['click_snapshots'] += 1

        self.browser.refresh()
        self.browser.wait_for_url(before_url, self.config.url_timeout_ms)

    def _is_followable(self, reference_url: str, url: str) -> bool:
        if urlparse(url).scheme not in ('http', 'https'):
            return False
        return self.guard.allows(reference_url, url)

    # ------------------------------------------------------------------ #
    #  Browser-state restoration                                           #
    # ------------------------------------------------------------------ #

    @contextmanager
    def _checkpoint(self, return_url: str):
        """Push *return_url*; on exit restore the browser to it and pop."""
        self._checkpoints.append(return_url)
        try:
            yield
        finally:
            try:
                self._restore(return_url)
            finally:
                self._checkpoints.pop()

    def _restore(self, return_url: str) -> None:
        """Go back in history to *return_url*, navigating directly if history disagrees."""
        try:
            self.browser.navigate_back()
        except Exception as e:
            logger.debug(f"[RESTORE] History back failed: {e}")

        if self.browser.current_url() != return_url:
            logger.debug(f"[RESTORE] Navigating directly to {return_url[:70]}")
            self.browser.navigate(return_url)
        self.browser.wait_for_url(return_url, self.config.url_timeout_ms)

    def _reset_page(self, page_url: str, landed_url: str) -> None:
        """
        Discard any in-page state after an element fault.

        Refresh first; if the page is no longer where it should be, load it
        again.  Raises ``_PageLost`` if neither works.
        """
        try:
            self.browser.refresh()
            self.browser.wait_for_url(landed_url, self.config.url_timeout_ms)
            return
        except Exception as e:
            logger.warning(f"[RESET] Refresh did not restore {page_url}: {e} — reloading")

        try:
            self.browser.navigate(page_url)
            self.browser.wait_for_body(self.config.page_timeout_ms)
        except Exception as e:
            raise _PageLost(page_url) from e

    # ------------------------------------------------------------------ #
    #  Link sweep                                                          #
    # ------------------------------------------------------------------ #

    def _sweep_links(self, depth: int) -> None:
        if depth >= self.config.max_depth:
            logger.debug(f"[LINKS] Depth {depth} is the limit — skipping link sweep")
            return

        base_url = self.browser.current_url()
        try:
            hrefs = self._find_links(self.browser.page)
        except Exception as e:
            logger.warning(f"[LINKS] Could not enumerate links on {base_url}: {e}")
            return

        targets: List[str] = []
        rejected = 0
        for href in hrefs:
            absolute = urljoin(base_url, href)
            if not self._is_followable(base_url, absolute):
                rejected += 1
                continue
            link = normalize_url(absolute)
            if link is None or link in self.visited or link in targets:
                continue
            targets.append(link)

        logger.info(
            f"[LINKS] {base_url[:60]} → hrefs={len(hrefs)} "
            f"to_crawl={len(targets)} rejected={rejected}"
        )

        for link in targets:
            if self._stop_requested:
                return
            if self.crawl_page(link, depth + 1):
                self._stats['links_swept'] += 1

    # ------------------------------------------------------------------ #
    #  Bookkeeping                                                         #
    # ------------------------------------------------------------------ #

    def _write(self, result: WriteResult) -> WriteResult:
        if result is WriteResult.FAILED:
            self._stats['write_failures'] += 1
        return result

    def _record_error(self, url: str, depth: int, error: str) -> None:
        self._stats['pages_failed'] += 1
        self._errors.append({'url': url, 'error': error, 'depth': depth})
        logger.warning(f"Error crawling {url}: {error}")

    def _report_progress(self, url: str) -> None:
        if not self._progress_callback:
            return
        try:
            self._progress_callback(len(self._pages), url, dict(self._stats))
        except Exception as e:
            logger.debug(f"Progress callback failed: {e}")
