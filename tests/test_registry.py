"""Unit tests for SubscriptionRegistry."""

import threading

from obsrelay.services.keys import BuildKey, RequestKey
from obsrelay.services.registry import SubscriptionRegistry


class TestSubscribeAndLookup:
    def test_unknown_key_is_empty(self):
        registry = SubscriptionRegistry()
        assert registry.lookup(BuildKey("devel:tools", "gcc")) == []
        assert len(registry) == 0

    def test_insertion_order_is_kept(self):
        registry = SubscriptionRegistry()
        key = BuildKey("devel:tools", "gcc")
        registry.subscribe(key, "!one:example.org")
        registry.subscribe(key, "!two:example.org")
        assert registry.lookup(key) == ["!one:example.org", "!two:example.org"]

    def test_duplicates_are_kept_by_default(self):
        registry = SubscriptionRegistry()
        key = RequestKey("42")
        registry.subscribe(key, "!room:example.org")
        registry.subscribe(key, "!room:example.org")
        assert registry.lookup(key) == ["!room:example.org", "!room:example.org"]

    def test_dedupe_option(self):
        registry = SubscriptionRegistry(dedupe=True)
        key = RequestKey("42")
        registry.subscribe(key, "!room:example.org")
        registry.subscribe(key, "!room:example.org")
        assert registry.lookup(key) == ["!room:example.org"]

    def test_keys_compare_structurally(self):
        registry = SubscriptionRegistry()
        registry.subscribe(BuildKey("a", "b"), "!r:x")
        assert registry.lookup(BuildKey("a", "b")) == ["!r:x"]
        assert registry.lookup(BuildKey("b", "a")) == []

    def test_lookup_returns_a_copy(self):
        registry = SubscriptionRegistry()
        key = RequestKey("1")
        registry.subscribe(key, "!r:x")
        rooms = registry.lookup(key)
        rooms.append("!intruder:x")
        assert registry.lookup(key) == ["!r:x"]


class TestUnsubscribe:
    def test_removes_all_occurrences_and_drops_key(self):
        registry = SubscriptionRegistry()
        key = BuildKey("a", "b")
        registry.subscribe(key, "!r:x")
        registry.subscribe(key, "!r:x")
        assert registry.unsubscribe(key, "!r:x") == 2
        assert registry.lookup(key) == []
        assert registry.snapshot() == {}

    def test_keeps_other_rooms(self):
        registry = SubscriptionRegistry()
        key = BuildKey("a", "b")
        registry.subscribe(key, "!r:x")
        registry.subscribe(key, "!s:x")
        assert registry.unsubscribe(key, "!r:x") == 1
        assert registry.lookup(key) == ["!s:x"]

    def test_unknown_key(self):
        assert SubscriptionRegistry().unsubscribe(RequestKey("9"), "!r:x") == 0


class TestConcurrency:
    def test_parallel_subscribers_do_not_lose_writes(self):
        registry = SubscriptionRegistry()
        key = BuildKey("openSUSE:Factory", "bash")

        def worker(n: int) -> None:
            for i in range(200):
                registry.subscribe(key, f"!room{n}-{i}:x")
                registry.lookup(key)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry.lookup(key)) == 8 * 200
