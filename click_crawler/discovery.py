"""
Element Discoverer
==================
Finds every interactive element inside ``<body>`` on an already-loaded
Playwright ``page`` and describes it as an ``ElementDescriptor``.

Interactive means (fixed, not configurable): an ``<a>``, a ``<button>``,
or any element carrying ``href``, ``onclick`` or ``role="button"``.

The result is a snapshot — by the time the engine acts on a descriptor the
element may be gone, so it is always re-located through its selector.

This module does NOT navigate or click.
"""

from __future__ import annotations

import logging
from typing import List
from urllib.parse import urljoin

from .css_selector import generate_selector
from .models import ElementDescriptor

logger = logging.getLogger(__name__)

CLICKABLE_XPATH = (
    "xpath=//body//*[self::a or self::button or @href or @onclick or @role='button']"
)
LINK_SELECTOR = "a[href]"

# Only these tags have their href recorded on the descriptor
_LINK_TAGS = frozenset({"a", "link"})

# innerText is undefined on SVG and other non-HTML nodes
_TEXT_JS = "el => (el.innerText ?? el.textContent ?? '')"


def describe_element(page, element) -> ElementDescriptor:
    """Build a descriptor for one element handle; raises on stale handles."""
    tag_name = (element.evaluate("el => el.tagName") or "").lower()
    text_content = (element.evaluate(_TEXT_JS) or "").strip()

    href = ""
    if tag_name in _LINK_TAGS:
        raw_href = element.get_attribute("href")
        if raw_href:
            href = urljoin(page.url, raw_href.strip())

    return ElementDescriptor(
        selector=generate_selector(element),
        tag_name=tag_name,
        text_content=text_content,
        href=href,
    )


def discover_elements(page) -> List[ElementDescriptor]:
    """
    Return descriptors for all interactive elements on *page*.

    A failure on one element (detached node, stale handle) is logged and
    that element skipped; discovery of the rest continues.
    """
    elements = page.query_selector_all(CLICKABLE_XPATH)

    descriptors: List[ElementDescriptor] = []
    skipped = 0
    for element in elements:
        try:
            descriptors.append(describe_element(page, element))
        except Exception as e:
            skipped += 1
            logger.debug(f"[DISCOVER] Skipping element: {e}")

    logger.info(
        f"[DISCOVER] {page.url[:70]} → "
        f"matched={len(elements)} described={len(descriptors)} skipped={skipped}"
    )
    return descriptors


def discover_links(page) -> List[str]:
    """Raw ``href`` values of every anchor on *page*, in document order."""
    hrefs: List[str] = []
    for element in page.query_selector_all(LINK_SELECTOR):
        try:
            href = element.get_attribute("href")
        except Exception as e:
            logger.debug(f"[LINKS] Skipping anchor: {e}")
            continue
        if href and href.strip():
            hrefs.append(href.strip())
    return hrefs
