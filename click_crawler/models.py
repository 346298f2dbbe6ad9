"""
Crawl Data Models
=================
Plain containers passed between the traversal engine, the element
discoverer and the persistence sink.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class CrawlTarget:
    """A (URL, depth) pair awaiting processing."""
    url: str
    depth: int = 0


@dataclass
class ElementDescriptor:
    """Snapshot of one interactive element on a loaded page.

    Not a live handle — the element is re-located through ``selector``
    whenever the engine wants to act on it.
    """
    selector: str
    tag_name: str
    text_content: str = ""
    href: str = ""

    @property
    def other_attributes(self) -> str:
        """Uniqueness key stored alongside the clickable-node row."""
        return f"selector: {self.selector}"


@dataclass
class PageRecord:
    """Rendered text of one crawled page, as stored."""
    url: str
    content: str
    title: str = ""
    date_extracted: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'url': self.url,
            'title': self.title,
            'content': self.content,
            'date_extracted': self.date_extracted.isoformat() if self.date_extracted else None,
        }


@dataclass
class ClickableNodeRecord:
    """Persisted form of an ``ElementDescriptor``."""
    page_url: str
    tag_name: str
    text_content: str = ""
    href: str = ""
    onclick: str = ""
    other_attributes: str = ""

    @classmethod
    def from_descriptor(cls, page_url: str, descriptor: ElementDescriptor) -> "ClickableNodeRecord":
        return cls(
            page_url=page_url,
            tag_name=descriptor.tag_name,
            text_content=descriptor.text_content,
            href=descriptor.href,
            other_attributes=descriptor.other_attributes,
        )

    def to_dict(self) -> dict:
        return {
            'page_url': self.page_url,
            'tag_name': self.tag_name,
            'text_content': self.text_content,
            'href': self.href,
            'onclick': self.onclick,
            'other_attributes': self.other_attributes,
        }


class WriteResult(enum.Enum):
    """Outcome of an insert-if-absent write."""
    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self is not WriteResult.FAILED
