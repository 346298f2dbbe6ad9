"""
Tests for the crawl traversal engine, driven through a scripted fake browser.

Covers:
  1. Admission (depth bound, idempotent revisit)
  2. Domain pruning for links and clickable elements
  3. Fault isolation inside the interaction loop
  4. Browser-state restoration after click excursions (checkpoint stack)
  5. No-navigation policy, interaction budget, page-level failures
"""

from click_crawler.engine import CrawlEngine, CrawlResult
from click_crawler.models import WriteResult

from conftest import FakeElement, FakePage

A = "https://a.example/"


def _chain_site(length: int):
    """a.example/ → /p1 → /p2 … linked only through anchors."""
    urls = [A] + [f"https://a.example/p{i}" for i in range(1, length)]
    site = {}
    for i, url in enumerate(urls):
        nxt = [urls[i + 1]] if i + 1 < len(urls) else []
        site[url] = FakePage(text=f"page {i}", links=nxt)
    return site, urls


# ====================================================================
# 1. Admission
# ====================================================================

class TestAdmission:

    def test_depth_bound_stops_chain(self, make_engine, store):
        """Nothing deeper than max_depth navigations from the seed is stored."""
        site, urls = _chain_site(5)
        engine, _ = make_engine(site, max_depth=2)
        result = engine.crawl([A])

        stored = [p.url for p in store.page_records()]
        assert stored == urls[:3]
        assert result.pages == urls[:3]

    def test_depth_zero_crawls_only_seed(self, make_engine, store):
        site, urls = _chain_site(3)
        engine, browser = make_engine(site, max_depth=0)
        engine.crawl([A])

        assert [p.url for p in store.page_records()] == [A]
        assert [entry[1] for entry in browser.ops("navigate")] == [A]

    def test_same_url_twice_is_processed_once(self, make_engine, store):
        """Duplicate seeds, back-links and in-page anchors never produce a second visit."""
        site = {
            A: FakePage(text="home", links=["/b"]),
            "https://a.example/b": FakePage(text="b", links=[A, "/b#section"]),
            "https://a.example/#/route": FakePage(text="route view"),
        }
        engine, browser = make_engine(site)
        engine.crawl([A, A, " https://a.example/#top ", "https://a.example/#/route"])

        navigated = [entry[1] for entry in browser.ops("navigate")]
        assert navigated.count(A) == 1
        assert navigated.count("https://a.example/b") == 1
        # A hash route is a separate view, an anchor is not
        assert navigated.count("https://a.example/#/route") == 1
        assert store.count("page_contents") == 3
        assert store.count("visited_urls") == 3

    def test_title_stored_with_content(self, make_engine, store):
        engine, _ = make_engine({A: FakePage(text="home", title="Welcome")})
        engine.crawl([A])

        [page] = store.page_records()
        assert (page.url, page.title, page.content) == (A, "Welcome", "home")

    def test_crawl_page_reports_admission(self, make_engine):
        site = {A: FakePage(text="home")}
        engine, _ = make_engine(site, max_depth=1)
        assert engine.crawl_page(A, 0) is True
        assert engine.crawl_page(A, 0) is False
        assert engine.crawl_page("https://a.example/deep", 2) is False

    def test_visited_set_is_per_run(self, make_engine, store):
        """A second crawl() starts with an empty visited set."""
        site = {A: FakePage(text="home")}
        engine, browser = make_engine(site)
        engine.crawl([A])
        engine.crawl([A])

        assert len(browser.ops("navigate")) == 2
        # The store still absorbs the repeat as a no-op
        assert store.count("page_contents") == 1


# ====================================================================
# 2. Domain pruning
# ====================================================================

class TestDomainPruning:

    def test_foreign_links_never_dispatched(self, make_engine):
        site = {
            A: FakePage(text="home", links=["https://b.example/x", "/y", "mailto:x@a.example"]),
            "https://a.example/y": FakePage(text="y"),
            "https://b.example/x": FakePage(text="x"),
        }
        engine, browser = make_engine(site)
        result = engine.crawl([A])

        navigated = [entry[1] for entry in browser.ops("navigate")]
        assert "https://a.example/y" in navigated
        assert "https://b.example/x" not in navigated
        assert result.pages == [A, "https://a.example/y"]

    def test_external_href_persisted_but_not_clicked(self, make_engine, store):
        site = {
            A: FakePage(text="home", elements=[
                FakeElement("#ext", tag_name="a", href="https://b.example/", action="nav:https://b.example/"),
                FakeElement("#btn", tag_name="button"),
            ]),
        }
        engine, browser = make_engine(site)
        result = engine.crawl([A])

        assert browser.clicked_selectors() == ["#btn"]
        assert {n.other_attributes for n in store.clickable_nodes(A)} == {
            "selector: #ext", "selector: #btn",
        }
        assert result.stats["elements_filtered"] == 1

    def test_deny_pattern_blocks_links(self, make_engine):
        site = {
            A: FakePage(text="home", links=["/logout", "/docs"]),
            "https://a.example/logout": FakePage(text="bye"),
            "https://a.example/docs": FakePage(text="docs"),
        }
        engine, browser = make_engine(site, deny_patterns=[r"/logout"])
        engine.crawl([A])

        navigated = [entry[1] for entry in browser.ops("navigate")]
        assert "https://a.example/logout" not in navigated
        assert "https://a.example/docs" in navigated

    def test_off_domain_click_navigation_is_undone(self, make_engine, store):
        site = {
            A: FakePage(text="home", elements=[
                FakeElement("#out", action="nav:https://b.example/landing"),
                FakeElement("#next"),
            ]),
        }
        engine, browser = make_engine(site)
        result = engine.crawl([A])

        assert result.stats["navigations_rejected"] == 1
        assert [p.url for p in store.page_records()] == [A]
        # The following element is clicked back on the original page
        assert ("click", A, "#next") in browser.ops("click")


# ====================================================================
# 3. Fault isolation
# ====================================================================

class TestFaultIsolation:

    def _three_buttons(self, second_action):
        return {
            A: FakePage(text="home", elements=[
                FakeElement("#b1"),
                FakeElement("#b2", action=second_action),
                FakeElement("#b3"),
            ]),
        }

    def test_failing_click_does_not_abort_page(self, make_engine, store):
        """2nd click throws: 1st and 3rd are still attempted and recorded."""
        engine, browser = make_engine(self._three_buttons("raise"))
        result = engine.crawl([A])

        assert browser.clicked_selectors() == ["#b1", "#b2", "#b3"]
        assert len(store.clickable_nodes(A)) == 3
        assert result.stats["clicks_failed"] == 1
        assert result.errors == []

    def test_page_refreshed_between_failure_and_next_element(self, make_engine):
        engine, browser = make_engine(self._three_buttons("raise"))
        engine.crawl([A])

        ops = [(op, detail) for op, _, detail in browser.log]
        failed_at = ops.index(("click", "#b2"))
        next_at = ops.index(("click", "#b3"))
        assert ("refresh", None) in ops[failed_at + 1:next_at]

    def test_stale_selector_is_skipped(self, make_engine, store):
        engine, browser = make_engine(self._three_buttons("stale"))
        result = engine.crawl([A])

        assert browser.clicked_selectors() == ["#b1", "#b3"]
        assert result.stats["elements_stale"] == 1
        assert result.stats["clicks_failed"] == 0
        assert len(store.clickable_nodes(A)) == 3

    def test_page_load_failure_isolated(self, make_engine, store):
        """A seed that times out is recorded; the next seed still runs."""
        bad = "https://a.example/broken"
        site = {A: FakePage(text="home")}
        engine, _ = make_engine(site, failing_urls=[bad])
        result = engine.crawl([bad, A])

        assert result.pages == [A]
        assert result.stats["pages_failed"] == 1
        assert result.errors[0]["url"] == bad
        assert "Timeout" in result.errors[0]["error"]
        assert store.visited_urls() == [A]


# ====================================================================
# 4. Click navigation + checkpoints
# ====================================================================

class TestClickNavigation:

    def _site(self):
        return {
            A: FakePage(text="home", elements=[
                FakeElement("#go", action="nav:https://a.example/next"),
                FakeElement("#after"),
            ]),
            "https://a.example/next": FakePage(text="next page"),
        }

    def test_same_domain_navigation_is_crawled(self, make_engine, store):
        engine, _ = make_engine(self._site())
        result = engine.crawl([A])

        assert result.pages == [A, "https://a.example/next"]
        assert result.stats["navigations_followed"] == 1
        assert {p.url for p in store.page_records()} == {A, "https://a.example/next"}

    def test_browser_returns_to_origin_after_excursion(self, make_engine):
        engine, browser = make_engine(self._site())
        engine.crawl([A])

        assert ("click", A, "#after") in browser.ops("click")
        assert engine.checkpoints == ()

    def test_checkpoint_held_during_excursion(self, make_engine):
        engine, _ = make_engine(self._site())
        seen = {}

        def on_progress(count, url, stats):
            seen[url] = engine.checkpoints

        engine.set_progress_callback(on_progress)
        engine.crawl([A])

        assert seen[A] == ()
        assert seen["https://a.example/next"] == (A,)

    def test_hash_route_click_is_crawled_anchor_is_not(self, make_engine, store):
        """A click that only changes a #/route reaches a new view; #top does not."""
        site = {
            A: FakePage(text="home", elements=[
                FakeElement("#to-about", action="nav:https://a.example/#/about"),
                FakeElement("#to-top", action="nav:https://a.example/#top"),
            ]),
            "https://a.example/#/about": FakePage(text="about view"),
        }
        engine, browser = make_engine(site)
        result = engine.crawl([A])

        assert result.pages == [A, "https://a.example/#/about"]
        assert [p.content for p in store.page_records()] == ["home", "about view"]
        assert ("click", A, "#to-top") in browser.ops("click")
        assert engine.checkpoints == ()

    def test_navigation_beyond_depth_is_still_undone(self, make_engine, store):
        engine, browser = make_engine(self._site(), max_depth=0)
        engine.crawl([A])

        assert [p.url for p in store.page_records()] == [A]
        assert ("click", A, "#after") in browser.ops("click")


# ====================================================================
# 5. Policies, budget, control
# ====================================================================

class TestPolicies:

    def _site(self):
        return {
            A: FakePage(text="home", elements=[
                FakeElement("#tab1", text="Tab 1"),
                FakeElement("#tab2", text="Tab 2"),
                FakeElement("#tab3", text="Tab 3"),
            ]),
        }

    def test_discard_policy_writes_no_snapshot(self, make_engine, store):
        engine, browser = make_engine(self._site())
        engine.crawl([A])

        assert store.count("click_snapshots") == 0
        assert len(browser.ops("refresh")) == 3

    def test_snapshot_policy_writes_post_click_content(self, make_engine, store):
        engine, _ = make_engine(self._site(), no_navigation_policy="snapshot")
        result = engine.crawl([A])

        snapshots = store.click_snapshots()
        assert [s["selector"] for s in snapshots] == ["#tab1", "#tab2", "#tab3"]
        assert snapshots[0]["element_text"] == "Tab 1"
        assert snapshots[0]["content"] == "home"
        assert result.stats["click_snapshots"] == 3

    def test_interaction_budget(self, make_engine, store):
        engine, browser = make_engine(self._site(), max_interactions_per_page=1)
        engine.crawl([A])

        assert browser.clicked_selectors() == ["#tab1"]
        assert len(store.clickable_nodes(A)) == 3

    def test_stop_from_progress_callback(self, make_engine):
        site, _ = _chain_site(4)
        engine, _ = make_engine(site, max_depth=3)
        engine.set_progress_callback(lambda count, url, stats: engine.stop())
        result = engine.crawl([A])

        assert result.pages == [A]
        assert result.stats["stop_reason"] == "User requested stop"

    def test_result_shape(self, make_engine):
        engine, _ = make_engine(self._site())
        result = engine.crawl([A])

        assert isinstance(result, CrawlResult)
        assert result.stats["pages_crawled"] == 1
        assert result.stats["elements_discovered"] == 3
        assert result.stats["elements_clicked"] == 3
        assert result.stats["stop_reason"] == "Frontier exhausted"
        assert result.stats["write_failures"] == 0


class TestWriteFailures:

    def test_failed_writes_are_counted_not_raised(self, make_engine, store):
        store.conn.execute("DROP TABLE page_contents")
        site = {A: FakePage(text="home")}
        engine, _ = make_engine(site)
        result = engine.crawl([A])

        assert result.pages == [A]
        assert result.stats["write_failures"] == 1
        assert store.insert_visited_url("https://a.example/other") is WriteResult.INSERTED


def test_engine_defaults_to_module_discoverers(store):
    """Without injection the engine uses the Playwright-facing discoverers."""
    from click_crawler import discovery

    engine = CrawlEngine(browser=object(), store=store)
    assert engine._discover is discovery.discover_elements
    assert engine._find_links is discovery.discover_links
