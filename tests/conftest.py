"""Shared fixtures: an in-memory stand-in for the Supabase query builder."""

import datetime
import itertools
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest

from catalog_cache import CatalogCache
from chain_tracker import ChainTracker
from events import EventBus
from local_store import MemoryKeyValueStore
from models import Block
from polyvagal import PolyvagalState


class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload: Optional[Dict[str, Any]] = None
        self.filters = []
        self.order_by = None
        self.limit_n = None
        self._negate = False

    # Operations
    def select(self, columns: str = "*", **_):
        self.op = "select"
        return self

    def insert(self, payload: Dict[str, Any]):
        self.op = "insert"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    # Filters
    def _add(self, predicate):
        if self._negate:
            self._negate = False
            self.filters.append(lambda row: not predicate(row))
        else:
            self.filters.append(predicate)
        return self

    @property
    def not_(self):
        self._negate = True
        return self

    def eq(self, column, value):
        return self._add(lambda row: row.get(column) is not None and row.get(column) == value)

    def neq(self, column, value):
        # SQL semantics: NULL <> x is not true.
        return self._add(lambda row: row.get(column) is not None and row.get(column) != value)

    def in_(self, column, values):
        allowed = list(values)
        return self._add(lambda row: row.get(column) in allowed)

    def is_(self, column, value):
        assert value == "null"
        return self._add(lambda row: row.get(column) is None)

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def execute(self):
        self.db.calls[(self.table, self.op)] += 1
        if self.db.fail or self.table in self.db.fail_tables:
            raise RuntimeError(f"network down ({self.table})")
        rows = self.db.tables[self.table]
        if self.op == "insert":
            row = dict(self.payload)
            row["id"] = next(self.db.ids[self.table])
            row.setdefault("created_at", self.db.next_timestamp())
            rows.append(row)
            return FakeResponse([dict(row)])
        matched = [row for row in rows if all(f(row) for f in self.filters)]
        if self.op == "delete":
            self.db.tables[self.table] = [row for row in rows if row not in matched]
            return FakeResponse([dict(row) for row in matched])
        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)
        if self.limit_n is not None:
            matched = matched[: self.limit_n]
        return FakeResponse([dict(row) for row in matched])


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.ids = defaultdict(lambda: itertools.count(1))
        self.calls = defaultdict(int)
        self.fail = False
        self.fail_tables = set()
        self._clock = datetime.datetime(2026, 1, 1, 8, 0, 0)

    def next_timestamp(self) -> str:
        self._clock += datetime.timedelta(seconds=1)
        return self._clock.isoformat() + "Z"

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


def block_row(id, canonical_name, state_target=None, **extra):
    row = {
        "id": id,
        "canonical_name": canonical_name,
        "name": canonical_name.replace("_", " ").title(),
        "media_url": f"https://cdn.example.com/{canonical_name}.mp4",
        "media_type": "video",
        "block_type": "vagal_toning",
        "state_target": state_target,
        "active": True,
        "is_routine_only": False,
    }
    row.update(extra)
    return row


def make_block(id, canonical_name=None, state=None, **extra) -> Block:
    return Block.from_row(block_row(id, canonical_name or f"block_{id}", state.value if state else None, **extra))


@pytest.fixture
def fake_client() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def tracker(fake_client, store, bus) -> ChainTracker:
    return ChainTracker(fake_client, store, events=bus)


@pytest.fixture
def catalog() -> List[Block]:
    """A small catalog covering every state, plus the SOS block."""
    return [
        make_block(1, "heart_opener", PolyvagalState.CONNECTED),
        make_block(2, "self_havening", PolyvagalState.WITHDRAWN),
        make_block(7, "freeze_roll", PolyvagalState.STIRRING),
        make_block(11, "vagus_reset", PolyvagalState.SETTLING),
        make_block(12, "shaking", PolyvagalState.ACTIVATED),
        make_block(14, "body_tapping", PolyvagalState.ACTIVATED),
        make_block(16, "vagus_reset_lying_down", PolyvagalState.ACTIVATED, is_routine_only=True),
    ]


@pytest.fixture
def seeded_client(fake_client, catalog) -> FakeSupabase:
    for block in catalog:
        fake_client.tables["somi_blocks"].append(
            block_row(
                block.id,
                block.canonical_name,
                block.state_target.value if block.state_target else None,
                is_routine_only=block.is_routine_only,
            )
        )
    fake_client.ids["somi_blocks"] = itertools.count(100)
    return fake_client


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog_cache(catalog, clock) -> CatalogCache:
    return CatalogCache(lambda: list(catalog), ttl_seconds=300, clock=clock)
