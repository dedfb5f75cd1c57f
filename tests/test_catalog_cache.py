"""Catalog cache freshness, stale reads and single-flight refresh."""

import threading
import time

from catalog_cache import CatalogCache
from conftest import block_row, make_block


def test_serves_from_memory_until_expiry(catalog, clock):
    calls = []

    def fetch():
        calls.append(1)
        return list(catalog)

    cache = CatalogCache(fetch, ttl_seconds=300, clock=clock)
    assert cache.get_catalog() == catalog
    clock.advance(299)
    cache.get_catalog()
    assert len(calls) == 1
    clock.advance(1)
    cache.get_catalog()
    assert len(calls) == 2


def test_raw_rows_are_converted_to_blocks(clock):
    cache = CatalogCache(lambda: [block_row(5, "humming", "settling")], clock=clock)
    [block] = cache.get_catalog()
    assert block.canonical_name == "humming"
    assert block.state_target.value == "settling"


def test_failure_without_cache_returns_empty(clock):
    def fetch():
        raise RuntimeError("offline")

    assert CatalogCache(fetch, clock=clock).get_catalog() == []


def test_failure_after_expiry_serves_stale_copy(catalog, clock):
    state = {"fail": False}

    def fetch():
        if state["fail"]:
            raise RuntimeError("offline")
        return list(catalog)

    cache = CatalogCache(fetch, ttl_seconds=60, clock=clock)
    cache.get_catalog()
    state["fail"] = True
    clock.advance(120)
    assert cache.get_catalog() == catalog
    # The failed refresh is retried on the next call.
    state["fail"] = False
    cache.get_catalog()
    assert cache.fetch_count == 3


def test_invalidate_forces_refetch(catalog_cache):
    catalog_cache.get_catalog()
    catalog_cache.invalidate()
    catalog_cache.get_catalog()
    assert catalog_cache.fetch_count == 2


class CountingEvent(threading.Event):
    """An Event that records how many threads are waiting on it."""

    def __init__(self):
        super().__init__()
        self.waiters = 0
        self._count_lock = threading.Lock()

    def wait(self, timeout=None):
        with self._count_lock:
            self.waiters += 1
        return super().wait(timeout)


def test_concurrent_misses_share_one_fetch(catalog, clock):
    release = threading.Event()
    started = threading.Event()
    calls = []

    def fetch():
        calls.append(1)
        started.set()
        release.wait(5)
        return list(catalog)

    cache = CatalogCache(fetch, clock=clock, wait_timeout=5)
    results = []

    def worker():
        results.append(cache.get_catalog())

    leader = threading.Thread(target=worker)
    leader.start()
    assert started.wait(5)
    in_flight = cache._flight
    in_flight.done = CountingEvent()
    followers = [threading.Thread(target=worker) for _ in range(4)]
    for thread in followers:
        thread.start()
    deadline = time.monotonic() + 5
    while in_flight.done.waiters < len(followers) and time.monotonic() < deadline:
        time.sleep(0.01)
    assert in_flight.done.waiters == len(followers)
    release.set()
    for thread in [leader] + followers:
        thread.join(5)

    assert len(calls) == 1
    assert len(results) == 5
    assert all(result == catalog for result in results)


def test_malformed_rows_are_skipped(clock):
    broken = block_row(12, "shaking", "activated")
    broken["id"] = None
    rows = [block_row(5, "humming", "settling"), broken]
    cache = CatalogCache(lambda: rows, clock=clock)
    assert [block.canonical_name for block in cache.get_catalog()] == ["humming"]
    assert cache.fetch_count == 1
    cache.get_catalog()
    assert cache.fetch_count == 1


def test_library_excludes_routine_only_blocks(catalog_cache):
    names = {block.canonical_name for block in catalog_cache.library()}
    assert "vagus_reset_lying_down" not in names
    assert "heart_opener" in names


def test_returned_list_is_a_copy(clock):
    cache = CatalogCache(lambda: [make_block(1)], clock=clock)
    cache.get_catalog().clear()
    assert len(cache.get_catalog()) == 1
