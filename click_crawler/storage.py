"""
Crawl Store
===========
SQLite-backed persistence sink for the traversal engine.

Tables:
  - ``visited_urls(url UNIQUE)``                      — write-only audit log
  - ``page_contents(url UNIQUE, title, content, date_extracted)``
  - ``clickable_nodes(page_url, tag_name, text_content, href, onclick,
    other_attributes, UNIQUE(page_url, other_attributes))``
  - ``click_snapshots(page_url, selector, element_text, content,
    date_extracted, UNIQUE(page_url, selector))`` — only filled when the
    no-navigation policy is ``snapshot``

Every write is ``INSERT OR IGNORE`` and returns a ``WriteResult``: a
duplicate key is an expected no-op, a database error is logged and
reported as ``FAILED`` instead of raised.
"""

from __future__ import annotations

import csv
import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .models import ClickableNodeRecord, ElementDescriptor, PageRecord, WriteResult

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = "crawler_data.db"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS visited_urls (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url TEXT UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS page_contents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url TEXT UNIQUE,
        title TEXT,
        content TEXT,
        date_extracted TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS clickable_nodes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        page_url TEXT,
        tag_name TEXT,
        text_content TEXT,
        href TEXT,
        onclick TEXT,
        other_attributes TEXT,
        UNIQUE (page_url, other_attributes)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS click_snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        page_url TEXT,
        selector TEXT,
        element_text TEXT,
        content TEXT,
        date_extracted TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (page_url, selector)
    )
    """,
)

_TABLES = ("visited_urls", "page_contents", "clickable_nodes", "click_snapshots")

# Columns added after a table was first released: (table, column, type)
_ADDED_COLUMNS = (
    ("page_contents", "title", "TEXT"),
)


class CrawlStore:
    """Insert-if-absent store for visited URLs, page text and clickable nodes."""

    def __init__(self, db_path: str = _DEFAULT_DB_PATH):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    # ── Lifecycle ─────────────────────────────────────────────────

    def open(self) -> "CrawlStore":
        if self._conn is not None:
            return self
        existed = self.db_path != ":memory:" and Path(self.db_path).exists()
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        for statement in _SCHEMA:
            self._conn.execute(statement)
        self._add_missing_columns()
        self._conn.commit()
        logger.info(
            f"[DB] {'Using existing' if existed else 'Created'} database at {self.db_path}"
        )
        return self

    def _add_missing_columns(self) -> None:
        """Upgrade databases written before a column existed."""
        for table, column, col_type in _ADDED_COLUMNS:
            existing = {row["name"] for row in self._conn.execute(f"PRAGMA table_info({table})")}
            if column not in existing:
                self._conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}")
                logger.info(f"[DB] Added column {table}.{column}")

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "CrawlStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        return self._conn

    # ── Writes ────────────────────────────────────────────────────

    def _insert_or_ignore(self, sql: str, params: Sequence[Any], what: str) -> WriteResult:
        try:
            cur = self.conn.execute(sql, params)
            self.conn.commit()
        except sqlite3.Error as exc:
            logger.error(f"[DB] Failed to write {what}: {exc}")
            return WriteResult.FAILED
        return WriteResult.INSERTED if cur.rowcount > 0 else WriteResult.DUPLICATE

    def insert_visited_url(self, url: str) -> WriteResult:
        return self._insert_or_ignore(
            "INSERT OR IGNORE INTO visited_urls (url) VALUES (?)",
            (url,),
            f"visited URL {url}",
        )

    def insert_page_content(self, url: str, content: str, title: str = "") -> WriteResult:
        return self._insert_or_ignore(
            "INSERT OR IGNORE INTO page_contents (url, title, content) VALUES (?, ?, ?)",
            (url, title, content),
            f"page content for {url}",
        )

    def insert_clickable_node(
        self,
        page_url: str,
        tag_name: str,
        text_content: str,
        href: str,
        other_attributes: str,
        onclick: str = "",
    ) -> WriteResult:
        return self._insert_or_ignore(
            """
            INSERT OR IGNORE INTO clickable_nodes
                (page_url, tag_name, text_content, href, onclick, other_attributes)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (page_url, tag_name, text_content, href, onclick, other_attributes),
            f"clickable node on {page_url}",
        )

    def insert_descriptor(self, page_url: str, descriptor: ElementDescriptor) -> WriteResult:
        """Persist an ``ElementDescriptor`` as a clickable-node row."""
        record = ClickableNodeRecord.from_descriptor(page_url, descriptor)
        return self.insert_clickable_node(
            record.page_url,
            record.tag_name,
            record.text_content,
            record.href,
            record.other_attributes,
            onclick=record.onclick,
        )

    def insert_click_snapshot(
        self, page_url: str, selector: str, element_text: str, content: str
    ) -> WriteResult:
        return self._insert_or_ignore(
            """
            INSERT OR IGNORE INTO click_snapshots (page_url, selector, element_text, content)
            VALUES (?, ?, ?, ?)
            """,
            (page_url, selector, element_text, content),
            f"click snapshot on {page_url}",
        )

    # ── Reads ─────────────────────────────────────────────────────

    def count(self, table: str) -> int:
        if table not in _TABLES:
            raise ValueError(f"Unknown table: {table}")
        return self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def visited_urls(self) -> List[str]:
        rows = self.conn.execute("SELECT url FROM visited_urls ORDER BY id").fetchall()
        return [row["url"] for row in rows]

    def page_records(self) -> List[PageRecord]:
        rows = self.conn.execute(
            "SELECT url, title, content, date_extracted FROM page_contents ORDER BY id"
        ).fetchall()
        return [
            PageRecord(
                url=row["url"],
                title=row["title"] or "",
                content=row["content"] or "",
                date_extracted=(
                    datetime.fromisoformat(row["date_extracted"]) if row["date_extracted"] else None
                ),
            )
            for row in rows
        ]

    def clickable_nodes(self, page_url: Optional[str] = None) -> List[ClickableNodeRecord]:
        sql = (
            "SELECT page_url, tag_name, text_content, href, onclick, other_attributes "
            "FROM clickable_nodes"
        )
        params: Sequence[Any] = ()
        if page_url is not None:
            sql += " WHERE page_url = ?"
            params = (page_url,)
        rows = self.conn.execute(sql + " ORDER BY id", params).fetchall()
        return [
            ClickableNodeRecord(
                page_url=row["page_url"],
                tag_name=row["tag_name"] or "",
                text_content=row["text_content"] or "",
                href=row["href"] or "",
                onclick=row["onclick"] or "",
                other_attributes=row["other_attributes"] or "",
            )
            for row in rows
        ]

    def click_snapshots(self) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT page_url, selector, element_text, content, date_extracted "
            "FROM click_snapshots ORDER BY id"
        ).fetchall()
        return [dict(row) for row in rows]

    # ── Export ────────────────────────────────────────────────────

    def export_json(self, filepath: str) -> str:
        """Export pages, their clickable nodes and click snapshots to JSON."""
        nodes_by_page: Dict[str, List[dict]] = {}
        for node in self.clickable_nodes():
            nodes_by_page.setdefault(node.page_url, []).append(node.to_dict())

        data = {
            'visited_urls': self.visited_urls(),
            'pages': [
                {**page.to_dict(), 'clickable_nodes': nodes_by_page.get(page.url, [])}
                for page in self.page_records()
            ],
            'click_snapshots': self.click_snapshots(),
        }
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.info(f"Exported {len(data['pages'])} pages to {filepath}")
        return filepath

    def export_csv(self, filepath: str) -> str:
        """Export one row per clickable node."""
        fieldnames = ['page_url', 'tag_name', 'text_content', 'href', 'onclick', 'other_attributes']
        nodes = self.clickable_nodes()
        with open(filepath, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for node in nodes:
                writer.writerow(node.to_dict())

        logger.info(f"Exported {len(nodes)} clickable nodes to {filepath}")
        return filepath
