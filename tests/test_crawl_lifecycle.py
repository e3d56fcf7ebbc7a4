# tests/test_crawl_lifecycle.py

"""Tests for the event-sourced crawl lifecycle."""

import unittest

from retail_crawler.domain.crawl_lifecycle import (
    CrawlLifecycle,
    CrawlState,
    CrawlStatus,
    InvalidState,
    apply,
    fold,
)
from retail_crawler.models.events import (
    CrawlCompleted,
    CrawlFailed,
    CrawlStarted,
    ListingDiscovered,
)
from retail_crawler.storage.event_store import InMemoryEventStore

URL = "https://www.tesco.com/groceries/en-GB/shop/pets/dog-food/all"


def _started() -> CrawlLifecycle:
    return CrawlLifecycle.start(URL, "tesco", {"kind": "listing"}, crawl_id="c1")


class TestCommands(unittest.TestCase):
    """Command validation against the folded state."""

    def test_start_records_started_event(self) -> None:
        lifecycle = _started()
        self.assertEqual(len(lifecycle.events), 1)
        event = lifecycle.events[0]
        self.assertIsInstance(event, CrawlStarted)
        assert isinstance(event, CrawlStarted)
        self.assertEqual(event.crawl_id, "c1")
        self.assertEqual(event.retailer, "tesco")
        self.assertEqual(event.metadata, {"kind": "listing"})
        self.assertIs(lifecycle.state.status, CrawlStatus.STARTED)

    def test_start_generates_crawl_id(self) -> None:
        first = CrawlLifecycle.start(URL, "tesco")
        second = CrawlLifecycle.start(URL, "tesco")
        self.assertNotEqual(first.crawl_id, second.crawl_id)

    def test_begin_twice(self) -> None:
        lifecycle = _started()
        with self.assertRaises(InvalidState):
            lifecycle.begin(URL, "tesco")

    def test_commands_before_start(self) -> None:
        lifecycle = CrawlLifecycle("c1")
        with self.assertRaises(InvalidState):
            lifecycle.record_listing(URL)
        with self.assertRaises(InvalidState):
            lifecycle.complete()
        with self.assertRaises(InvalidState):
            lifecycle.mark_failed("boom")
        self.assertEqual(lifecycle.events, ())

    def test_complete_counts_listings(self) -> None:
        lifecycle = _started()
        lifecycle.record_listing(URL + "/1", category="dog food")
        lifecycle.record_listing(URL + "/2")
        event = lifecycle.complete({"duration_ms": 1200})
        assert event is not None
        self.assertEqual(event.discovered_count, 2)
        self.assertEqual(event.duration_ms, 1200.0)
        state = lifecycle.state
        self.assertIs(state.status, CrawlStatus.COMPLETED)
        self.assertIs(state.completed_event, event)
        self.assertTrue(state.is_terminal)

    def test_listing_carries_retailer(self) -> None:
        event = _started().record_listing(URL + "/1", category="dog food")
        self.assertEqual(event.retailer, "tesco")
        self.assertEqual(event.category, "dog food")

    def test_complete_twice_is_noop(self) -> None:
        lifecycle = _started()
        lifecycle.complete()
        self.assertIsNone(lifecycle.complete())
        self.assertEqual(len(lifecycle.events), 2)

    def test_fail_twice_is_noop(self) -> None:
        lifecycle = _started()
        lifecycle.mark_failed("timeout")
        self.assertIsNone(lifecycle.mark_failed("timeout again"))
        self.assertEqual(len(lifecycle.events), 2)

    def test_cross_terminal_transitions(self) -> None:
        completed = _started()
        completed.complete()
        with self.assertRaises(InvalidState):
            completed.mark_failed("late error")

        failed = _started()
        failed.mark_failed("boom", {"status_code": 503})
        with self.assertRaises(InvalidState):
            failed.complete()
        state = failed.state
        assert state.failed_event is not None
        self.assertEqual(state.failed_event.context, {"status_code": 503})

    def test_no_listing_after_terminal(self) -> None:
        lifecycle = _started()
        lifecycle.complete()
        with self.assertRaises(InvalidState):
            lifecycle.record_listing(URL + "/late")


class TestFold(unittest.TestCase):
    def test_empty_fold(self) -> None:
        self.assertEqual(fold([]), CrawlState())

    def test_ignores_out_of_order_events(self) -> None:
        """Events that cannot apply to the current state leave it alone."""
        events = [
            ListingDiscovered("c1", url=URL, retailer="tesco"),
            CrawlStarted("c1", url=URL, retailer="tesco"),
            CrawlStarted("c1", url="https://other.test", retailer="asda"),
            ListingDiscovered("c1", url=URL + "/1", retailer="tesco"),
            CrawlFailed("c1", reason="boom"),
            CrawlCompleted("c1", discovered_count=1),
            ListingDiscovered("c1", url=URL + "/2", retailer="tesco"),
        ]
        state = fold(events)
        self.assertEqual(state.retailer, "tesco")
        self.assertEqual(state.url, URL)
        self.assertEqual(state.listings_discovered, 1)
        self.assertIs(state.status, CrawlStatus.FAILED)
        self.assertIsNone(state.completed_event)

    def test_apply_is_pure(self) -> None:
        state = CrawlState()
        apply(state, CrawlStarted("c1", url=URL, retailer="tesco"))
        self.assertIs(state.status, CrawlStatus.NEW)


class TestPersistence(unittest.TestCase):
    def test_persist_appends_pending_once(self) -> None:
        store = InMemoryEventStore()
        lifecycle = _started()
        lifecycle.record_listing(URL + "/1")
        self.assertEqual(lifecycle.persist(store), 2)
        self.assertEqual(lifecycle.pending_events, ())
        self.assertEqual(lifecycle.persist(store), 0)

        lifecycle.complete()
        self.assertEqual(len(lifecycle.pending_events), 1)
        self.assertEqual(lifecycle.persist(store), 1)
        self.assertEqual(
            [e.event_type for e in store.events_for("c1")],
            ["crawl_started", "listing_discovered", "crawl_completed"],
        )

    def test_replay_restores_state(self) -> None:
        store = InMemoryEventStore()
        lifecycle = _started()
        lifecycle.record_listing(URL + "/1")
        lifecycle.persist(store)
        other = CrawlLifecycle.start(URL, "tesco", crawl_id="c2")
        other.persist(store)

        replayed = CrawlLifecycle.replay("c1", store.all_events())
        self.assertEqual(replayed.pending_events, ())
        self.assertEqual(replayed.state.listings_discovered, 1)
        self.assertEqual(len(replayed.events), 2)

        replayed.complete()
        self.assertEqual(replayed.persist(store), 1)
        self.assertIs(
            fold(store.events_for("c1")).status, CrawlStatus.COMPLETED
        )


if __name__ == "__main__":
    unittest.main()
