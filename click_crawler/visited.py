"""
Visited Set
===========
Run-scoped record of URLs the engine has already admitted.

Membership test and insert happen in a single ``claim`` call under a lock,
so re-entrant recursion (or a future multi-context crawl) can never
process the same URL twice.  One instance per crawl run; nothing here is
module-global.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Iterator, Optional, Set
from urllib.parse import urlparse, urlunparse

logger = logging.getLogger(__name__)

# Hash-routed single-page apps address views with these fragments
_ROUTE_FRAGMENT_PREFIXES = ("/", "!")


def _strip_default_port(netloc: str, scheme: str) -> str:
    """Remove ``:80`` for http and ``:443`` for https from *netloc*."""
    if ":" not in netloc or netloc.endswith("]"):
        return netloc
    host, _, port = netloc.rpartition(":")
    if scheme == "http" and port == "80":
        return host
    if scheme == "https" and port == "443":
        return host
    return netloc


def normalize_url(url: str) -> Optional[str]:
    """
    Canonical form used for visited-set membership.

    - surrounding whitespace stripped
    - scheme and host lower-cased, default port removed
    - fragment removed, unless it is a client-side route (``#/...``, ``#!...``)
    - path, trailing slash and query preserved (servers may distinguish them)

    Returns None for empty or unparsable input.
    """
    if not url:
        return None
    url = url.strip()
    if not url:
        return None

    try:
        p = urlparse(url)
    except ValueError:
        return None

    scheme = p.scheme.lower()
    netloc = _strip_default_port(p.netloc.lower(), scheme)
    fragment = p.fragment if p.fragment.startswith(_ROUTE_FRAGMENT_PREFIXES) else ""
    return urlunparse((scheme, netloc, p.path, p.params, p.query, fragment))


class VisitedSet:
    """Idempotent test-and-insert over normalised URLs."""

    def __init__(self):
        self._urls: Set[str] = set()
        self._lock = Lock()

    def claim(self, url: str) -> bool:
        """
        Mark *url* visited.

        Returns True if the caller now owns the URL (it was not visited
        before), False if it was already claimed or is not a usable URL.
        """
        key = normalize_url(url)
        if key is None:
            return False
        with self._lock:
            if key in self._urls:
                return False
            self._urls.add(key)
            return True

    def __contains__(self, url: str) -> bool:
        key = normalize_url(url)
        if key is None:
            return False
        with self._lock:
            return key in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(sorted(self._urls))

    def clear(self) -> None:
        with self._lock:
            self._urls.clear()
