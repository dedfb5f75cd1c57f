"""Time-boxed in-memory cache of the active SoMi block catalog."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterable, List, Optional

from models import Block

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_WAIT_TIMEOUT = 10.0

Fetcher = Callable[[], Iterable[Any]]


class _Flight:
    """One in-progress fetch that followers can wait on."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Optional[List[Block]] = None


def _to_blocks(items: Iterable[Any]) -> List[Block]:
    """Convert fetched rows one at a time, skipping rows that do not parse."""
    blocks = []
    for item in items:
        if isinstance(item, Block):
            blocks.append(item)
            continue
        try:
            blocks.append(Block.from_row(item))
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed somi_blocks row %r", item, exc_info=True)
    return blocks


class CatalogCache:
    """Serve the block catalog from memory for ``ttl_seconds`` after each fetch.

    ``fetch`` returns ``Block`` objects or raw ``somi_blocks`` rows. ``clock``
    returns seconds and only needs to be monotonic. A failed refresh keeps
    serving the last good catalog (or an empty one) and is retried on the next
    call. At most one fetch runs at a time: callers that arrive during a miss
    wait for the fetch already under way instead of starting their own.
    """

    def __init__(
        self,
        fetch: Fetcher,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
    ):
        self._fetch = fetch
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.wait_timeout = wait_timeout
        self._lock = threading.Lock()
        self._blocks: Optional[List[Block]] = None
        self._fetched_at: Optional[float] = None
        self._flight: Optional[_Flight] = None
        self.fetch_count = 0

    def _is_fresh(self) -> bool:
        if self._blocks is None or self._fetched_at is None:
            return False
        return (self._clock() - self._fetched_at) < self.ttl_seconds

    def _stale(self) -> List[Block]:
        return list(self._blocks) if self._blocks is not None else []

    def get_catalog(self) -> List[Block]:
        with self._lock:
            if self._is_fresh():
                return list(self._blocks)
            flight = self._flight
            leader = flight is None
            if leader:
                flight = self._flight = _Flight()

        if not leader:
            if not flight.done.wait(self.wait_timeout):
                logger.warning("Timed out waiting for catalog refresh, serving cached copy")
            with self._lock:
                return list(flight.result) if flight.result is not None else self._stale()

        try:
            self.fetch_count += 1
            items = list(self._fetch() or [])
        except Exception:
            with self._lock:
                self._flight = None
                stale = self._stale()
            logger.exception("Catalog refresh failed, serving %s cached blocks", len(stale))
            flight.done.set()
            return stale

        blocks = _to_blocks(items)
        logger.info("Fetched %s blocks into the catalog cache", len(blocks))
        with self._lock:
            self._blocks = blocks
            self._fetched_at = self._clock()
            self._flight = None
            flight.result = blocks
        flight.done.set()
        return list(blocks)

    def invalidate(self) -> None:
        with self._lock:
            self._fetched_at = None

    def library(self) -> List[Block]:
        """Blocks offered for free choice, without routine-only ones."""
        return [block for block in self.get_catalog() if not block.is_routine_only]
