"""
Tests for discovery.py — element descriptors and link enumeration.
"""

from playwright.sync_api import Error as PlaywrightError

from click_crawler.discovery import (
    _TEXT_JS,
    CLICKABLE_XPATH,
    LINK_SELECTOR,
    describe_element,
    discover_elements,
    discover_links,
)
from click_crawler.models import ElementDescriptor


class FakeHandle:
    def __init__(self, tag, text="", attrs=None, lineage=None, detached=False, svg=False):
        self.tag = tag
        self.svg = svg
        self.text = text
        self.attrs = attrs or {}
        self.lineage = lineage if lineage is not None else [
            {"tag": tag.upper(), "id": self.attrs.get("id", ""), "className": "",
             "index": 1, "siblingCount": 1},
            {"tag": "BODY", "id": "page", "className": "", "index": 2, "siblingCount": 2},
        ]
        self.detached = detached

    def evaluate(self, js):
        if self.detached:
            raise PlaywrightError("Element is not attached to the DOM")
        if js == "el => el.tagName":
            # SVG elements keep their lower-case tag name
            return self.tag if self.svg else self.tag.upper()
        if js == _TEXT_JS:
            return self.text
        return self.lineage

    def inner_text(self):
        if self.svg:
            raise PlaywrightError("Node is not an HTMLElement")
        return self.text

    def get_attribute(self, name):
        return self.attrs.get(name)


class FakeDomPage:
    def __init__(self, url, handles, anchors=None):
        self.url = url
        self.handles = handles
        self.anchors = anchors or []
        self.queries = []

    def query_selector_all(self, query):
        self.queries.append(query)
        return self.anchors if query == LINK_SELECTOR else self.handles


class TestDescribeElement:

    def test_anchor_href_resolved(self):
        page = FakeDomPage("https://a.example/docs/", [])
        handle = FakeHandle("a", text="  Next page \n", attrs={"href": "intro"})
        d = describe_element(page, handle)
        assert d == ElementDescriptor(
            selector="#page > a",
            tag_name="a",
            text_content="Next page",
            href="https://a.example/docs/intro",
        )

    def test_non_link_tag_has_empty_href(self):
        """href is only recorded for a/link tags."""
        page = FakeDomPage("https://a.example/", [])
        handle = FakeHandle("div", text="Open", attrs={"href": "/x", "id": "opener"})
        d = describe_element(page, handle)
        assert d.href == ""
        assert d.selector == "#opener"
        assert d.other_attributes == "selector: #opener"

    def test_anchor_without_href(self):
        page = FakeDomPage("https://a.example/", [])
        d = describe_element(page, FakeHandle("a", text="js link"))
        assert d.href == ""


class TestDiscoverElements:

    def test_uses_fixed_query(self):
        page = FakeDomPage("https://a.example/", [FakeHandle("button", text="Go")])
        discover_elements(page)
        assert page.queries == [CLICKABLE_XPATH]
        assert "@role='button'" in CLICKABLE_XPATH
        assert CLICKABLE_XPATH.startswith("xpath=//body//")

    def test_failing_element_skipped(self):
        """A detached element is skipped; the rest are still described."""
        handles = [
            FakeHandle("button", text="One", attrs={"id": "one"}),
            FakeHandle("button", text="Two", attrs={"id": "two"}, detached=True),
            FakeHandle("a", text="Three", attrs={"id": "three", "href": "/three"}),
        ]
        page = FakeDomPage("https://a.example/", handles)
        descriptors = discover_elements(page)
        assert [d.selector for d in descriptors] == ["#one", "#three"]
        assert descriptors[1].href == "https://a.example/three"

    def test_empty_page(self):
        assert discover_elements(FakeDomPage("https://a.example/", [])) == []


class TestDiscoverLinks:

    def test_returns_non_blank_hrefs(self):
        anchors = [
            FakeHandle("a", attrs={"href": "/one"}),
            FakeHandle("a", attrs={"href": "   "}),
            FakeHandle("a", attrs={"href": " https://b.example/ "}),
        ]
        page = FakeDomPage("https://a.example/", [], anchors=anchors)
        assert discover_links(page) == ["/one", "https://b.example/"]


class TestSvgElements:

    def test_svg_use_with_href_is_described(self):
        """SVG nodes have no innerText; their textContent is recorded instead."""
        handle = FakeHandle("use", text="", attrs={"href": "#icon-search", "id": "search-icon"}, svg=True)
        page = FakeDomPage("https://a.example/", [handle])
        [d] = discover_elements(page)
        assert d.tag_name == "use"
        assert d.selector == "#search-icon"
        assert d.href == ""

    def test_svg_anchor_keeps_text_and_href(self):
        handle = FakeHandle("a", text=" Chart legend ", attrs={"href": "/chart", "id": "legend"}, svg=True)
        page = FakeDomPage("https://a.example/docs/", [handle])
        [d] = discover_elements(page)
        assert d.text_content == "Chart legend"
        assert d.href == "https://a.example/chart"
