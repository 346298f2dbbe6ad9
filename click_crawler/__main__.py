#!/usr/bin/env python3
"""
Command-line entry point for the click crawler
==============================================
Reads seed URLs, launches one Chromium session and drives the recursive
click traversal, writing everything into the SQLite store.

All configuration flows through ``CrawlerRunConfig``: defaults, then
environment variables (``.env`` is loaded first), then the flags below.

Run with: python -m click_crawler
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .browser import BrowserSession
from .engine import CrawlEngine
from .run_config import NO_NAVIGATION_POLICIES, SETTLE_MODES, CrawlerRunConfig
from .storage import CrawlStore

logger = logging.getLogger(__name__)


def _load_env() -> None:
    """Load ``.env`` from the project root, falling back to the CWD."""
    env_path = Path(__file__).resolve().parent.parent / '.env'
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s | %(levelname)-7s | %(message)s',
        datefmt='%H:%M:%S',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='click-crawler',
        description='Depth-bounded, same-domain crawler that clicks every clickable element',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m click_crawler                                  # seeds from urls.txt
  python -m click_crawler --seeds sites.txt --depth 3
  python -m click_crawler --url https://example.com --headed --settle-mode fixed
  python -m click_crawler --deny-pattern '/logout' --output-json crawl.json
        """
    )

    parser.add_argument('--seeds', type=str, help='Seed file, one URL per line (default: urls.txt)')
    parser.add_argument(
        '--url', type=str, action='append', default=[],
        help='Extra seed URL (repeatable); makes the seed file optional',
    )
    parser.add_argument('--depth', type=int, help='Maximum crawl depth (default: 2)')
    parser.add_argument('--db', type=str, help='SQLite database path (default: crawler_data.db)')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--browser-path', type=str, help='Chromium/Chrome executable to launch')
    parser.add_argument('--timeout', type=int, help='Page load timeout in seconds (default: 10)')
    parser.add_argument(
        '--settle-mode', type=str, choices=SETTLE_MODES,
        help='How to wait after a click (default: quiescence)',
    )
    parser.add_argument('--settle', type=float, help='Pause after a click in fixed mode, seconds (default: 2)')
    parser.add_argument(
        '--no-nav-policy', type=str, choices=NO_NAVIGATION_POLICIES,
        help='What to do with clicks that do not navigate (default: discard)',
    )
    parser.add_argument('--max-interactions', type=int, help='Max clicks per page (default: unlimited)')
    parser.add_argument(
        '--deny-pattern', type=str, action='append', default=[],
        help='Regex deny-pattern for URLs (repeatable)',
    )
    parser.add_argument('--output-json', type=str, help='Export the store to this JSON file')
    parser.add_argument('--output-csv', type=str, help='Export clickable nodes to this CSV file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def print_summary(stats: dict, errors: List[dict]) -> None:
    """Print crawl summary."""
    print("\n" + "=" * 65)
    print("CRAWL COMPLETE")
    print("=" * 65)
    print(f"  Pages crawled:        {stats.get('pages_crawled', 0)}")
    print(f"  Failed pages:         {stats.get('pages_failed', 0)}")
    print(f"  Elements discovered:  {stats.get('elements_discovered', 0)}")
    print(f"  Elements clicked:     {stats.get('elements_clicked', 0)}")
    if stats.get('clicks_failed', 0) > 0:
        print(f"  Clicks failed:        {stats.get('clicks_failed', 0)}")
    print(f"  Navigations followed: {stats.get('navigations_followed', 0)}")
    if stats.get('links_swept', 0) > 0:
        print(f"  Links swept:          {stats.get('links_swept', 0)}")
    if stats.get('click_snapshots', 0) > 0:
        print(f"  Click snapshots:      {stats.get('click_snapshots', 0)}")
    if stats.get('write_failures', 0) > 0:
        print(f"  Write failures:       {stats.get('write_failures', 0)}")
    print(f"  Total time:           {stats.get('elapsed_time', 0):.1f}s")
    print(f"  Stop reason:          {stats.get('stop_reason', 'completed')}")
    for err in errors[:10]:
        print(f"    ! {err['url'][:70]}: {err['error'][:80]}")
    if len(errors) > 10:
        print(f"    ... and {len(errors) - 10} more errors")
    print("=" * 65)


def _export(store: CrawlStore, cfg: CrawlerRunConfig) -> None:
    exported = []
    if cfg.output_json:
        exported.append(store.export_json(cfg.output_json))
    if cfg.output_csv:
        exported.append(store.export_csv(cfg.output_csv))
    if exported:
        print("\n" + "-" * 40)
        for path in exported:
            print(f"  Exported: {path}")
        print("-" * 40)


def main(argv: Optional[List[str]] = None) -> None:
    """Parse argv, build CrawlerRunConfig, run."""
    _load_env()
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    cfg = CrawlerRunConfig.from_cli_args(args)
    problems = cfg.validate()
    if problems:
        for problem in problems:
            logger.error(f"Invalid configuration: {problem}")
        sys.exit(1)

    try:
        seeds = cfg.resolve_seed_urls()
    except ValueError as exc:
        logger.error(str(exc))
        sys.exit(1)

    cfg.log_summary(seeds)

    with CrawlStore(cfg.db_path) as store:
        browser = BrowserSession(cfg)
        try:
            browser.launch()
        except Exception as exc:
            logger.error(f"Could not launch browser: {exc}")
            sys.exit(1)

        try:
            engine = CrawlEngine(browser, store, cfg)
            engine.set_progress_callback(
                lambda pages, url, stats: print(f"[Page {pages}] {url[:70]}...")
            )
            try:
                result = engine.crawl(seeds)
            except KeyboardInterrupt:
                print("\nCrawl interrupted")
                _export(store, cfg)
                sys.exit(0)
        finally:
            browser.close()

        try:
            _export(store, cfg)
        except OSError as exc:
            logger.error(f"Export failed: {exc}")
        print_summary(result.stats, result.errors)


if __name__ == '__main__':
    main()
