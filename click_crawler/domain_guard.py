"""
Domain Guard
============
Decides whether a candidate URL belongs to the same site as a reference URL.

Same-domain means: the candidate, resolved against the reference as a base
(so relative paths work), has a hostname exactly equal to the reference's.
No ``www.`` folding, no subdomain matching, no scheme check.  Anything that
cannot be parsed, or that has no host (``mailto:``, ``javascript:``), is
treated as foreign.

Public API
----------
- ``is_same_domain(reference_url, candidate_url)`` — one-shot boolean check
- ``DomainGuard``                                 — same check plus optional
                                                     regex deny-patterns
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin, urlparse

logger = logging.getLogger(__name__)


def _hostname(url: str, base: Optional[str] = None) -> Optional[str]:
    """Hostname of *url* (resolved against *base*), or None if unparsable."""
    try:
        if base is not None:
            url = urljoin(base, url)
        return urlparse(url).hostname
    except ValueError:
        return None


def is_same_domain(reference_url: str, candidate_url: str) -> bool:
    """
    Return True if *candidate_url* is on the same host as *reference_url*.

    >>> is_same_domain("https://a.example/x", "/y")
    True
    >>> is_same_domain("https://a.example/", "https://b.example/x")
    False
    """
    if not reference_url or candidate_url is None:
        return False

    reference_host = _hostname(reference_url.strip())
    if not reference_host:
        return False

    candidate_host = _hostname(candidate_url.strip(), base=reference_url.strip())
    if not candidate_host:
        return False

    return candidate_host == reference_host


@dataclass
class DomainGuard:
    """
    Link-following gate for one crawl run.

    Parameters
    ----------
    deny_patterns : list[str]
        Regex patterns; any resolved URL they match is never followed or
        clicked.  Invalid patterns are logged and dropped.
    """

    deny_patterns: List[str] = field(default_factory=list)

    _compiled_deny: List[re.Pattern] = field(init=False, repr=False, default_factory=list)

    def __post_init__(self):
        self._compiled_deny = []
        for pat in self.deny_patterns:
            try:
                self._compiled_deny.append(re.compile(pat, re.IGNORECASE))
            except re.error as exc:
                logger.warning(f"[GUARD] Invalid deny-pattern '{pat}': {exc}")

    def is_same_domain(self, reference_url: str, candidate_url: str) -> bool:
        return is_same_domain(reference_url, candidate_url)

    def is_denied(self, url: str) -> bool:
        """True if *url* matches any deny-pattern."""
        return any(rx.search(url) for rx in self._compiled_deny)

    def allows(self, reference_url: str, candidate_url: str) -> bool:
        """Same-domain and not denied (the candidate is resolved first)."""
        if not is_same_domain(reference_url, candidate_url):
            return False
        if self._compiled_deny:
            resolved = urljoin(reference_url, candidate_url)
            if self.is_denied(resolved):
                logger.debug(f"[GUARD] Deny-pattern rejected: {resolved}")
                return False
        return True

    def log_guard(self) -> None:
        logger.info("[GUARD] Scope: exact hostname of the page being crawled")
        if self._compiled_deny:
            logger.info(f"[GUARD] Deny patterns: {len(self._compiled_deny)}")
