"""
Unified Run Configuration
=========================
Single source of truth for ALL crawler defaults and runtime limits.

Populated, in increasing priority, from:
  1. ``_DEFAULTS`` below
  2. environment variables (``.env`` is loaded by the CLI)
  3. command-line flags

The browser session and the traversal engine both read from this object.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults — the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "seeds_file": "urls.txt",
    "db_path": "crawler_data.db",
    "max_depth": 2,
    "headless": True,
    "browser_path": None,            # None → Playwright-managed Chromium
    "page_timeout_ms": 10000,        # navigation + <body> wait
    "element_timeout_ms": 5000,      # visible / enabled / click
    "url_timeout_ms": 5000,          # wait for URL after back / refresh
    "settle_mode": "quiescence",     # "quiescence" | "fixed"
    "settle_interval_s": 2.0,        # fixed mode pause after a click
    "settle_timeout_ms": 5000,       # quiescence upper bound
    "settle_quiet_ms": 500,          # URL + DOM unchanged for this long
    "settle_poll_ms": 100,
    "no_navigation_policy": "discard",   # "discard" | "snapshot"
    "max_interactions_per_page": None,   # None = click every candidate
    "viewport_width": 1920,
    "viewport_height": 1080,
    "user_agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "output_json": None,
    "output_csv": None,
}

SETTLE_MODES = ("quiescence", "fixed")
NO_NAVIGATION_POLICIES = ("discard", "snapshot")

# Environment variable → config field
_ENV_VARS = {
    "CRAWLER_SEEDS_FILE": "seeds_file",
    "CRAWLER_DB_PATH": "db_path",
    "CRAWLER_MAX_DEPTH": "max_depth",
    "CRAWLER_HEADLESS": "headless",
    "BROWSER_EXECUTABLE_PATH": "browser_path",
}

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def load_seed_urls(path: str) -> List[str]:
    """
    Read a newline-delimited seed list.

    Surrounding whitespace and blank lines are ignored; duplicates are
    dropped keeping the first occurrence.

    Raises:
        ValueError: if the file is missing, unreadable, or has no URLs.
    """
    seeds_path = Path(path)
    try:
        text = seeds_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ValueError(f"Seed file not found: {path}") from None
    except OSError as exc:
        raise ValueError(f"Cannot read seed file {path}: {exc}") from exc

    seeds: List[str] = []
    for line in text.splitlines():
        url = line.strip()
        if url and url not in seeds:
            seeds.append(url)

    if not seeds:
        raise ValueError(f"No seed URLs specified in {path}")
    return seeds


@dataclass
class CrawlerRunConfig:
    """
    Unified configuration consumed by every crawler subsystem.

    Populate via:
      - ``CrawlerRunConfig()``                 → all defaults
      - ``CrawlerRunConfig(max_depth=3)``       → override one value
      - ``CrawlerRunConfig.from_env()``         → defaults + environment
      - ``CrawlerRunConfig.from_cli_args(ns)``  → environment + argparse Namespace
    """

    # ---- Inputs / outputs ----
    seeds_file: str = _DEFAULTS["seeds_file"]
    seed_urls: List[str] = field(default_factory=list)   # extra seeds from --url
    db_path: str = _DEFAULTS["db_path"]
    output_json: Optional[str] = _DEFAULTS["output_json"]
    output_csv: Optional[str] = _DEFAULTS["output_csv"]

    # ---- Crawl limits ----
    max_depth: int = _DEFAULTS["max_depth"]
    max_interactions_per_page: Optional[int] = _DEFAULTS["max_interactions_per_page"]

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    browser_path: Optional[str] = _DEFAULTS["browser_path"]
    viewport_width: int = _DEFAULTS["viewport_width"]
    viewport_height: int = _DEFAULTS["viewport_height"]
    user_agent: str = _DEFAULTS["user_agent"]

    # ---- Timeouts (ms) ----
    page_timeout_ms: int = _DEFAULTS["page_timeout_ms"]
    element_timeout_ms: int = _DEFAULTS["element_timeout_ms"]
    url_timeout_ms: int = _DEFAULTS["url_timeout_ms"]

    # ---- Post-click settling ----
    settle_mode: str = _DEFAULTS["settle_mode"]
    settle_interval_s: float = _DEFAULTS["settle_interval_s"]
    settle_timeout_ms: int = _DEFAULTS["settle_timeout_ms"]
    settle_quiet_ms: int = _DEFAULTS["settle_quiet_ms"]
    settle_poll_ms: int = _DEFAULTS["settle_poll_ms"]

    # ---- Interaction policy ----
    no_navigation_policy: str = _DEFAULTS["no_navigation_policy"]
    deny_patterns: List[str] = field(default_factory=list)

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "CrawlerRunConfig":
        """Defaults overridden by ``CRAWLER_*`` / ``BROWSER_EXECUTABLE_PATH``."""
        environ = os.environ if environ is None else environ
        cfg = cls()
        for var, attr in _ENV_VARS.items():
            raw = environ.get(var)
            if raw is None or not raw.strip():
                continue
            raw = raw.strip()
            if attr == "max_depth":
                try:
                    cfg.max_depth = int(raw)
                except ValueError:
                    logger.warning(f"Ignoring non-integer {var}={raw!r}")
            elif attr == "headless":
                cfg.headless = raw.lower() in _TRUTHY
            else:
                setattr(cfg, attr, raw)
        return cfg

    @classmethod
    def from_cli_args(cls, args, environ: Optional[dict] = None) -> "CrawlerRunConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        cfg = cls.from_env(environ)

        overrides = {
            "seeds_file": getattr(args, "seeds", None),
            "db_path": getattr(args, "db", None),
            "max_depth": getattr(args, "depth", None),
            "browser_path": getattr(args, "browser_path", None),
            "page_timeout_ms": (
                args.timeout * 1000 if getattr(args, "timeout", None) is not None else None
            ),
            "settle_mode": getattr(args, "settle_mode", None),
            "settle_interval_s": getattr(args, "settle", None),
            "no_navigation_policy": getattr(args, "no_nav_policy", None),
            "max_interactions_per_page": getattr(args, "max_interactions", None),
            "output_json": getattr(args, "output_json", None),
            "output_csv": getattr(args, "output_csv", None),
        }
        for attr, value in overrides.items():
            if value is not None:
                setattr(cfg, attr, value)

        if getattr(args, "headed", False):
            cfg.headless = False
        cfg.seed_urls = list(getattr(args, "url", None) or [])
        cfg.deny_patterns = list(getattr(args, "deny_pattern", None) or [])
        return cfg

    # -----------------------------------------------------------------------
    # Startup validation
    # -----------------------------------------------------------------------
    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty when valid)."""
        problems: List[str] = []
        if self.max_depth < 0:
            problems.append(f"max_depth must be >= 0 (got {self.max_depth})")
        for name in ("page_timeout_ms", "element_timeout_ms", "url_timeout_ms",
                     "settle_timeout_ms", "settle_quiet_ms", "settle_poll_ms"):
            if getattr(self, name) <= 0:
                problems.append(f"{name} must be positive (got {getattr(self, name)})")
        if self.settle_interval_s < 0:
            problems.append(f"settle_interval_s must be >= 0 (got {self.settle_interval_s})")
        if self.settle_mode not in SETTLE_MODES:
            problems.append(
                f"settle_mode must be one of {', '.join(SETTLE_MODES)} (got {self.settle_mode!r})"
            )
        if self.no_navigation_policy not in NO_NAVIGATION_POLICIES:
            problems.append(
                f"no_navigation_policy must be one of {', '.join(NO_NAVIGATION_POLICIES)} "
                f"(got {self.no_navigation_policy!r})"
            )
        if self.max_interactions_per_page is not None and self.max_interactions_per_page < 0:
            problems.append(
                f"max_interactions_per_page must be >= 0 (got {self.max_interactions_per_page})"
            )
        if self.browser_path and not Path(self.browser_path).is_file():
            problems.append(f"Browser executable not found: {self.browser_path}")
        return problems

    def resolve_seed_urls(self) -> List[str]:
        """
        Seeds from ``seeds_file`` followed by any ``--url`` seeds.

        Raises:
            ValueError: if no seed URL is available at all.
        """
        seeds: List[str] = []
        if self.seed_urls:
            # Explicit --url seeds make the seed file optional
            try:
                seeds = load_seed_urls(self.seeds_file)
            except ValueError as exc:
                logger.debug(f"Seed file not used: {exc}")
        else:
            seeds = load_seed_urls(self.seeds_file)

        for url in self.seed_urls:
            url = url.strip()
            if url and url not in seeds:
                seeds.append(url)
        if not seeds:
            raise ValueError("No seed URLs specified")
        return seeds

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, seeds: List[str]) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("CRAWL RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  Seeds:            {len(seeds)} ({self.seeds_file})")
        logger.info(f"  Database:         {self.db_path}")
        logger.info(f"  Max Depth:        {self.max_depth}")
        logger.info(f"  Headless:         {self.headless}")
        logger.info(f"  Browser:          {self.browser_path or 'Playwright Chromium'}")
        logger.info(f"  Page Timeout:     {self.page_timeout_ms}ms")
        logger.info(f"  Element Timeout:  {self.element_timeout_ms}ms")
        if self.settle_mode == "fixed":
            logger.info(f"  Settle:           fixed {self.settle_interval_s}s")
        else:
            logger.info(
                f"  Settle:           quiescence {self.settle_quiet_ms}ms "
                f"(max {self.settle_timeout_ms}ms)"
            )
        logger.info(f"  No-nav Policy:    {self.no_navigation_policy}")
        if self.max_interactions_per_page is not None:
            logger.info(f"  Max Interactions: {self.max_interactions_per_page} per page")
        if self.deny_patterns:
            logger.info(f"  Deny Patterns:    {len(self.deny_patterns)} configured")
        logger.info("=" * 60)
