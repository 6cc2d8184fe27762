"""
Tests for the filter-state controller, persistence and live search
"""
import asyncio
import itertools
import logging
from datetime import datetime

import pytest

from photo_discovery.config import Settings
from photo_discovery.errors import SearchTimeoutError
from photo_discovery.models.filters import CombinationMode, FilterSnapshot, FilterState
from photo_discovery.services.concurrency import Debouncer, RequestTokens
from photo_discovery.services.filter_state import (
    FilterStateController,
    LiveSearch,
    deserialize_snapshot,
    serialize_snapshot,
)
from photo_discovery.services.photo_index import IndexHandle
from photo_discovery.services.search_engine import SearchEngine
from photo_discovery.services.store import JsonFileStore, MemoryStore, ObservableStore


# ============================================================================
# DEBOUNCE
# ============================================================================

@pytest.mark.asyncio
async def test_debounce_collapses_rapid_calls(settings):
    """Test N calls inside the window propagate once with the last state"""
    controller = FilterStateController(settings, debounce_ms=20)
    received = []
    controller.subscribe(received.append)

    for keyword in ["sunset", "beach", "mountain"]:
        controller.set_filters({"semantic": {"keywords": [keyword]}})

    assert controller.pending
    await controller.wait()

    assert len(received) == 1
    assert received[0].filters.semantic.keywords == ["mountain"]
    controller.close()


@pytest.mark.asyncio
async def test_state_commits_before_propagation(settings):
    """Test readers see the merged state immediately"""
    controller = FilterStateController(settings, debounce_ms=50)

    controller.set_filters({"semantic": {"keywords": ["sunset"]}})
    controller.set_filters({"spatial": {"location": "malibu"}})

    assert controller.filters.semantic.keywords == ["sunset"]
    assert controller.filters.spatial.location == "malibu"
    controller.close()


@pytest.mark.asyncio
async def test_none_clears_a_field(settings):
    """Test a None value resets that field only"""
    controller = FilterStateController(settings, debounce_ms=50)
    controller.set_filters({"semantic": {"keywords": ["sunset"]}, "spatial": {"location": "malibu"}})

    controller.set_filters({"spatial": {"location": None}})

    assert controller.filters.spatial.location is None
    assert controller.filters.semantic.keywords == ["sunset"]
    controller.close()


@pytest.mark.asyncio
async def test_clear_propagates_immediately(settings):
    """Test clear cancels the pending call and propagates an empty state at once"""
    controller = FilterStateController(settings, debounce_ms=50)
    received = []
    controller.subscribe(received.append)

    controller.set_filters({"semantic": {"keywords": ["sunset"]}})
    await controller.clear()

    assert len(received) == 1
    assert received[0].filters.is_empty()
    assert not controller.pending

    await asyncio.sleep(0.08)
    assert len(received) == 1


@pytest.mark.asyncio
async def test_flush_runs_pending_now(settings):
    """Test flush propagates without waiting for the timer"""
    controller = FilterStateController(settings, debounce_ms=10_000)
    received = []
    controller.subscribe(received.append)

    controller.toggle_combination_mode()
    assert await controller.flush() is True

    assert [snapshot.combination_mode for snapshot in received] == [CombinationMode.OR]
    assert await controller.flush() is False


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery(settings):
    """Test unsubscribed listeners receive nothing"""
    controller = FilterStateController(settings, debounce_ms=1)
    received = []
    unsubscribe = controller.subscribe(received.append)
    unsubscribe()

    controller.set_combination_mode("OR")
    await controller.wait()

    assert received == []


@pytest.mark.asyncio
async def test_debouncer_counts_superseded_calls():
    """Test superseded calls are counted and never fire"""
    fired = []
    debouncer = Debouncer(fired.append, 0.01)

    debouncer.call(1)
    debouncer.call(2)
    debouncer.call(3)
    await debouncer.wait()

    assert fired == [3]
    assert debouncer.superseded == 2
    assert debouncer.fired == 1


@pytest.mark.asyncio
async def test_debouncer_logs_failed_callback(caplog):
    """Test a raising callback is logged and counted, and the next call still fires"""
    fired = []

    def callback(value):
        if value == "bad":
            raise RuntimeError("downstream search failed")
        fired.append(value)

    debouncer = Debouncer(callback, 0.01)

    with caplog.at_level(logging.ERROR, logger="photo_discovery.services.concurrency"):
        debouncer.call("bad")
        await debouncer.wait()

    assert debouncer.failed == 1
    assert "downstream search failed" in caplog.text

    debouncer.call("good")
    await debouncer.wait()

    assert fired == ["good"]
    assert debouncer.fired == 2


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others(settings, caplog):
    """Test one raising listener neither stops the others nor later propagations"""
    controller = FilterStateController(settings, debounce_ms=1)
    received = []

    def broken(snapshot):
        raise RuntimeError("listener exploded")

    controller.subscribe(broken)
    controller.subscribe(received.append)

    with caplog.at_level(logging.ERROR, logger="photo_discovery.services.filter_state"):
        controller.set_filters({"semantic": {"keywords": ["sunset"]}})
        await controller.wait()
        controller.set_combination_mode("OR")
        await controller.wait()

    assert [snapshot.combination_mode for snapshot in received] == [CombinationMode.AND, CombinationMode.OR]
    assert len([record for record in caplog.records if "listener exploded" in record.getMessage()]) == 2
    controller.close()


def test_request_tokens_last_wins():
    """Test only the newest token is current"""
    tokens = RequestTokens()
    first = tokens.issue()
    second = tokens.issue()

    assert not tokens.is_current(first)
    assert tokens.is_current(second)


# ============================================================================
# PERSISTENCE
# ============================================================================

def test_snapshot_round_trip():
    """Test serialize then deserialize returns an equal snapshot"""
    snapshot = FilterSnapshot(
        filters=FilterState.model_validate({
            "semantic": {"keywords": ["sunset"], "scenes": ["beach"]},
            "spatial": {"location": "malibu", "coordinates": {"lat": 34.03, "lng": -118.78, "radius_km": 2}},
            "temporal": {"date_range": {"start": datetime(2024, 6, 1), "end": datetime(2024, 8, 31, 23, 59, 59)}},
            "people": {"named_people": ["alice"]},
            "technical": {"camera": "canon eos r5", "file_type": ["jpg", "raw"]},
        }),
        combination_mode=CombinationMode.OR,
    )

    assert deserialize_snapshot(serialize_snapshot(snapshot)) == snapshot


@pytest.mark.asyncio
async def test_state_restored_from_storage(settings):
    """Test a new controller resumes the persisted state"""
    storage = MemoryStore()
    controller = FilterStateController(settings, storage=storage, debounce_ms=50)
    controller.set_filters({"technical": {"file_type": ["raw"]}})
    controller.set_combination_mode(CombinationMode.OR)
    controller.close()

    restored = FilterStateController(settings, storage=storage)

    assert restored.snapshot == controller.snapshot
    assert restored.combination_mode == CombinationMode.OR


def test_corrupt_state_is_discarded(settings):
    """Test unreadable persisted state falls back to defaults"""
    storage = MemoryStore({settings.filter_state_key: "{not json"})

    controller = FilterStateController(settings, storage=storage)

    assert controller.snapshot == FilterSnapshot()


def test_corrupt_state_file_is_discarded(settings, tmp_path):
    """Test a damaged state file is ignored"""
    path = tmp_path / "state.json"
    path.write_text("[1, 2")

    controller = FilterStateController(settings, storage=JsonFileStore(path))

    assert controller.snapshot == FilterSnapshot()


def test_json_file_store(tmp_path):
    """Test slots survive a new store over the same file"""
    path = tmp_path / "nested" / "state.json"
    JsonFileStore(path).set("key", "value")

    store = JsonFileStore(path)
    assert store.get("key") == "value"

    store.delete("key")
    assert store.get("key") is None


def test_observable_store_notifies_subscribers():
    """Test subscribers see every commit until they unsubscribe"""
    store = ObservableStore(0)
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.set(1)
    unsubscribe()
    store.set(2)

    assert seen == [1]
    assert store.state == 2


# ============================================================================
# LIVE SEARCH
# ============================================================================

@pytest.mark.asyncio
async def test_live_search_runs_on_propagation(settings, photos):
    """Test a debounced filter change triggers one search"""
    controller = FilterStateController(settings, debounce_ms=10)
    handle = IndexHandle()
    handle.build(photos)
    results = []
    live = LiveSearch(controller, SearchEngine(settings), handle, on_results=results.append)

    controller.set_filters({"semantic": {"keywords": ["sunset"]}})
    controller.set_filters({"semantic": {"keywords": ["sunset"]}, "spatial": {"location": "zermatt"}})
    await controller.wait()

    assert len(results) == 1
    assert [photo.id for photo in live.latest_result.photos] == ["photo-005"]
    live.close()
    controller.close()


@pytest.mark.asyncio
async def test_live_search_discards_stale_results(settings, photos):
    """Test an older in-flight search is dropped when a newer one was issued"""
    controller = FilterStateController(settings)
    handle = IndexHandle()
    handle.build(photos)
    live = LiveSearch(controller, SearchEngine(settings), handle)

    older = FilterSnapshot(filters=FilterState.model_validate({"semantic": {"keywords": ["beach"]}}))
    newer = FilterSnapshot(filters=FilterState.model_validate({"semantic": {"keywords": ["mountain"]}}))

    first, second = await asyncio.gather(live.run(older), live.run(newer))

    assert first is None
    assert second is not None
    assert live.discarded == 1
    assert live.latest_result is second
    assert {photo.id for photo in second.photos} == {"photo-003", "photo-005"}


@pytest.mark.asyncio
async def test_live_search_timeout_is_reported(photos):
    """Test a live search over budget is kept as latest_error and passed to on_error"""
    settings = Settings(log_dir=None, filter_state_path=None, performance_budget_seconds=3.0)
    ticks = itertools.count()
    engine = SearchEngine(settings, clock=lambda: next(ticks))
    controller = FilterStateController(settings, debounce_ms=1)
    handle = IndexHandle()
    handle.build(photos)
    results, errors = [], []
    live = LiveSearch(controller, engine, handle, on_results=results.append, on_error=errors.append)

    controller.set_filters({"semantic": {"keywords": ["sunset"]}})
    await controller.wait()

    assert results == []
    assert isinstance(live.latest_error, SearchTimeoutError)
    assert errors == [live.latest_error]
    assert live.latest_error.budget_seconds == 3.0
    assert live.latest_result is None
    live.close()
    controller.close()


@pytest.mark.asyncio
async def test_live_search_success_clears_error(settings, photos):
    """Test a later successful search replaces the recorded error"""
    controller = FilterStateController(settings)
    handle = IndexHandle()
    handle.build(photos)
    live = LiveSearch(controller, SearchEngine(settings), handle)
    live.latest_error = SearchTimeoutError(4.0, 3.0)

    result = await live.run(FilterSnapshot(filters=FilterState.model_validate({"semantic": {"keywords": ["cake"]}})))

    assert [photo.id for photo in result.photos] == ["photo-004"]
    assert live.latest_error is None
    live.close()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
