"""
Selector Generator
==================
Derives a re-locatable CSS selector for a DOM element.

Rules:
  - An element with an ``id`` is addressed as ``#id`` (ancestry ignored).
  - Otherwise the path is built bottom-up from ``tag.class1.class2`` fragments,
    each with ``:nth-child(k)`` when the node has element siblings.
  - Ascent stops at the first ancestor carrying an ``id`` (prefixed as
    ``#id``) or at the document root.

The DOM walk happens in one ``evaluate`` round-trip (``read_lineage``); the
string is assembled in Python (``selector_from_lineage``) so the algorithm
can be exercised without a browser.

Selectors are deterministic for a fixed DOM shape but may go stale after
mutations or reloads — callers must tolerate a failed re-lookup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

logger = logging.getLogger(__name__)

SELECTOR_SEPARATOR = " > "


@dataclass(frozen=True)
class NodeInfo:
    """One element on the path from the target element to its anchor."""
    tag: str
    id: str = ""
    class_name: str = ""
    index: int = 1            # 1-based position among the parent's element children
    sibling_count: int = 1    # number of element children of the parent

    @classmethod
    def from_dict(cls, data: dict) -> "NodeInfo":
        return cls(
            tag=data.get("tag") or "",
            id=data.get("id") or "",
            class_name=data.get("className") or "",
            index=int(data.get("index") or 1),
            sibling_count=int(data.get("siblingCount") or 1),
        )


# Walks from the element up to (and including) the first ancestor with an id,
# or to the root element.  Uses getAttribute('class') so SVG nodes behave.
_LINEAGE_JS = """el => {
    const out = [];
    let node = el;
    while (node && node.nodeType === Node.ELEMENT_NODE) {
        const parent = node.parentNode;
        const siblings = parent && parent.children ? parent.children : [];
        out.push({
            tag: node.nodeName,
            id: node.id || '',
            className: node.getAttribute('class') || '',
            index: Array.prototype.indexOf.call(siblings, node) + 1,
            siblingCount: siblings.length,
        });
        if (node.id) break;
        node = parent;
    }
    return out;
}"""


def read_lineage(element) -> List[NodeInfo]:
    """Fetch the ancestry of a Playwright ``ElementHandle`` in one call."""
    raw = element.evaluate(_LINEAGE_JS) or []
    return [NodeInfo.from_dict(item) for item in raw]


def _fragment(node: NodeInfo) -> str:
    fragment = node.tag.lower()
    classes = node.class_name.split()
    if classes:
        fragment += "." + ".".join(classes)
    if node.sibling_count > 1:
        fragment += f":nth-child({node.index})"
    return fragment


def selector_from_lineage(lineage: Sequence[NodeInfo]) -> str:
    """
    Build the selector string from a lineage (element first, anchor last).

    Returns ``""`` for an empty lineage.
    """
    if not lineage:
        return ""

    target = lineage[0]
    if target.id:
        return f"#{target.id}"

    path: List[str] = []
    for node in lineage:
        if node is not target and node.id:
            path.insert(0, f"#{node.id}")
            break
        path.insert(0, _fragment(node))
    return SELECTOR_SEPARATOR.join(path)


def generate_selector(element) -> str:
    """Return a stable selector for *element* (a Playwright ``ElementHandle``)."""
    return selector_from_lineage(read_lineage(element))
