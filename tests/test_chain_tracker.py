"""Chain lifecycle, best-effort writes and history reads against a fake Supabase."""

import threading

import events as ev
from chain_tracker import ACTIVE_CHAIN_KEY, ChainTracker
from polyvagal import PolyvagalState


def test_get_or_create_is_stable_until_ended(tracker, fake_client):
    first = tracker.get_or_create_active_chain()
    second = tracker.get_or_create_active_chain()
    assert first == second
    assert fake_client.calls[("somi_chains", "insert")] == 1


def test_end_detaches_without_deleting(tracker, fake_client, store):
    chain_id = tracker.get_or_create_active_chain()
    tracker.end_active_chain()
    assert store.get(ACTIVE_CHAIN_KEY) is None
    assert [row["id"] for row in fake_client.tables["somi_chains"]] == [chain_id]
    assert tracker.get_or_create_active_chain() != chain_id


def test_pointer_to_deleted_chain_is_replaced(tracker, fake_client, store):
    store.set(ACTIVE_CHAIN_KEY, "999")
    chain_id = tracker.get_or_create_active_chain()
    assert chain_id != 999
    assert store.get(ACTIVE_CHAIN_KEY) == str(chain_id)


def test_pointer_is_trusted_when_store_unreachable(tracker, fake_client, store):
    chain_id = tracker.get_or_create_active_chain()
    fake_client.fail = True
    assert tracker.get_or_create_active_chain() == chain_id


def test_concurrent_creation_inserts_once(tracker, fake_client):
    results = []
    threads = [threading.Thread(target=lambda: results.append(tracker.get_or_create_active_chain())) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)
    assert len(set(results)) == 1
    assert fake_client.calls[("somi_chains", "insert")] == 1


def test_check_in_attaches_to_active_chain(tracker, fake_client):
    check = tracker.save_embodiment_check(45)
    assert check.slider_value == 45
    assert check.polyvagal_state is PolyvagalState.ACTIVATED
    assert check.chain_id == tracker.active_chain_id()
    row = fake_client.tables["embodiment_checks"][0]
    assert row["polyvagal_state_code"] == 3


def test_explicit_state_overrides_derived_state(tracker):
    check = tracker.save_embodiment_check(45, "settling", journal_entry="calmer")
    assert check.polyvagal_state is PolyvagalState.SETTLING
    assert check.journal_entry == "calmer"


def test_write_failure_returns_none(tracker, fake_client):
    tracker.get_or_create_active_chain()
    fake_client.fail_tables.add("embodiment_checks")
    assert tracker.save_embodiment_check(60) is None
    fake_client.fail = True
    assert tracker.save_completed_block(1, 60, 0) is None


def test_chain_creation_failure_returns_none(tracker, fake_client, store):
    fake_client.fail = True
    assert tracker.get_or_create_active_chain() is None
    assert tracker.save_embodiment_check(50) is None
    assert store.get(ACTIVE_CHAIN_KEY) is None


def test_unconfigured_client_records_nothing(store):
    tracker = ChainTracker(None, store)
    assert tracker.get_or_create_active_chain() is None
    assert tracker.save_completed_block(1, 60) is None
    assert tracker.chain_history() == []


def test_completed_block_round_trips_through_history(tracker, seeded_client):
    saved = tracker.save_completed_block(12, 58, 2)
    [chain] = tracker.chain_history()
    [entry] = chain.completed_blocks
    assert (entry.block_id, entry.seconds_elapsed, entry.order_index) == (12, 58, 2)
    assert entry.id == saved.id
    assert entry.block.canonical_name == "shaking"


def test_history_groups_checks_and_blocks_per_chain(tracker, seeded_client):
    tracker.save_embodiment_check(30)
    tracker.save_completed_block(11, 60, 1)
    tracker.save_completed_block(1, 60, 0)
    tracker.save_embodiment_check(70)
    tracker.end_active_chain()
    tracker.save_embodiment_check(90)

    latest, earlier = tracker.chain_history()
    assert [c.slider_value for c in earlier.embodiment_checks] == [30, 70]
    assert [e.block_id for e in earlier.completed_blocks] == [1, 11]
    assert earlier.total_seconds == 120
    assert earlier.score_delta == 40
    assert [c.slider_value for c in latest.embodiment_checks] == [90]
    assert tracker.latest_chain().id == latest.id


def test_history_failure_returns_empty(tracker, fake_client):
    tracker.save_embodiment_check(30)
    fake_client.fail = True
    assert tracker.chain_history() == []
    assert tracker.latest_chain() is None


def test_recent_block_ids_newest_first_and_reset_on_end(tracker):
    for i, block_id in enumerate([11, 12, 14, 1]):
        tracker.save_completed_block(block_id, 60, i)
    assert tracker.recent_block_ids(3) == [1, 14, 12]
    tracker.end_active_chain()
    assert tracker.recent_block_ids(3) == []


def test_events_are_emitted(tracker, bus):
    seen = []
    for name in (ev.CHAIN_STARTED, ev.CHECK_IN_SAVED, ev.BLOCK_COMPLETED, ev.CHAIN_ENDED):
        bus.subscribe(name, lambda name=name, **payload: seen.append(name))
    tracker.save_embodiment_check(50)
    tracker.save_completed_block(1, 60)
    tracker.end_active_chain()
    assert seen == [ev.CHAIN_STARTED, ev.CHECK_IN_SAVED, ev.BLOCK_COMPLETED, ev.CHAIN_ENDED]


def test_most_played_blocks(tracker, seeded_client):
    for block_id in (12, 12, 1, 12, 1, 11):
        tracker.save_completed_block(block_id, 60)
    top = tracker.most_played_blocks(limit=2)
    assert [(item["block"].id, item["play_count"]) for item in top] == [(12, 3), (1, 2)]


def test_delete_chain_removes_events_and_pointer(tracker, fake_client, store):
    chain_id = tracker.save_embodiment_check(40).chain_id
    tracker.save_completed_block(1, 60)
    assert tracker.delete_chain(chain_id) is True
    assert fake_client.tables["somi_chains"] == []
    assert fake_client.tables["embodiment_checks"] == []
    assert fake_client.tables["completed_somi_blocks"] == []
    assert store.get(ACTIVE_CHAIN_KEY) is None


def test_recent_plays_survive_a_new_tracker(fake_client, store):
    first = ChainTracker(fake_client, store)
    first.save_completed_block(12, 60, 0)
    first.save_completed_block(14, 60, 1)

    restarted = ChainTracker(fake_client, store)
    assert restarted.active_chain_id() == first.active_chain_id()
    assert restarted.recent_block_ids(3) == [14, 12]
    restarted.save_completed_block(1, 60, 2)
    assert restarted.recent_block_ids(3) == [1, 14, 12]


def test_recent_plays_lookup_failure_returns_empty(fake_client, store):
    ChainTracker(fake_client, store).save_completed_block(12, 60)
    fake_client.fail_tables.add("completed_somi_blocks")
    assert ChainTracker(fake_client, store).recent_block_ids() == []


def test_unconfigured_client_keeps_stored_pointer(store):
    store.set(ACTIVE_CHAIN_KEY, "7")
    tracker = ChainTracker(None, store)
    assert tracker.get_or_create_active_chain() == 7
    assert tracker.save_embodiment_check(50) is None
