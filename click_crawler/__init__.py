"""
Click Crawler Package
A depth-bounded, same-domain crawler that drives a real browser and clicks
every clickable element it finds, following the navigations those clicks
cause.

CLI Usage:
    python -m click_crawler [options]

    Options:
        --seeds             Seed file, one URL per line (default: urls.txt)
        --url               Extra seed URL (repeatable)
        --depth             Maximum crawl depth (default: 2)
        --db                SQLite database path (default: crawler_data.db)
        --headed            Show the browser window
        --browser-path      Chromium/Chrome executable
        --settle-mode       quiescence | fixed
        --no-nav-policy     discard | snapshot
        --deny-pattern      Regex deny-pattern for URLs (repeatable)
        --output-json       Export to JSON file
        --output-csv        Export to CSV file
"""

from .browser import BrowserSession
from .css_selector import generate_selector, selector_from_lineage
from .discovery import discover_elements, discover_links
from .domain_guard import DomainGuard, is_same_domain
from .engine import CrawlEngine, CrawlResult
from .models import ClickableNodeRecord, CrawlTarget, ElementDescriptor, PageRecord, WriteResult
from .run_config import CrawlerRunConfig, load_seed_urls
from .storage import CrawlStore
from .visited import VisitedSet, normalize_url

__all__ = [
    'BrowserSession',
    'generate_selector',
    'selector_from_lineage',
    'discover_elements',
    'discover_links',
    'DomainGuard',
    'is_same_domain',
    'CrawlEngine',
    'CrawlResult',
    # Records
    'ClickableNodeRecord',
    'CrawlTarget',
    'ElementDescriptor',
    'PageRecord',
    'WriteResult',
    # Config / storage
    'CrawlerRunConfig',
    'load_seed_urls',
    'CrawlStore',
    'VisitedSet',
    'normalize_url',
]

__version__ = '0.1.0'
