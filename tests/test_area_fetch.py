import asyncio

import pytest

from helpers import FakePoiProvider, make_poi, no_seed

from mountpro.providers.base import NetworkFailureError
from mountpro.src import metrics
from mountpro.src.area_fetch import AreaFetchCoordinator, FetchOutcome
from mountpro.src.connectivity import ConnectivityMonitor
from mountpro.src.models import Bounds, POIType
from mountpro.src.persistence import MemoryStorage
from mountpro.src.store import PoiStore

B1 = Bounds(46.0, 11.0, 46.5, 11.5)
B2 = Bounds(46.2, 11.2, 46.7, 11.7)


def _coordinator(provider, online=True, type_getter=lambda: POIType.BIVOUAC, debounce=0.03):
    store = PoiStore(MemoryStorage(), seed_loader=no_seed)
    connectivity = ConnectivityMonitor(initial=online)
    coordinator = AreaFetchCoordinator(provider, store, connectivity, type_getter, debounce_seconds=debounce)
    return coordinator, store, connectivity


@pytest.mark.asyncio
async def test_viewport_burst_collapses_into_one_fetch():
    provider = FakePoiProvider(area_results=[make_poi("a")])
    coordinator, store, _ = _coordinator(provider)

    last = None
    for i in range(5):
        last = Bounds(46.0 + i / 100, 11.0, 46.5, 11.5)
        coordinator.on_viewport_changed(last)
        await asyncio.sleep(0.005)
    assert provider.area_calls == []
    assert coordinator.debounce_pending

    await asyncio.sleep(0.08)
    await coordinator.settled()
    assert len(provider.area_calls) == 1
    assert provider.area_calls[0][0] == last
    assert "a" in store
    assert coordinator.last_outcome is FetchOutcome.SUCCEEDED
    assert not coordinator.is_searching


@pytest.mark.asyncio
async def test_newer_fetch_supersedes_outstanding_one():
    provider = FakePoiProvider(gated=True)
    coordinator, store, _ = _coordinator(provider)
    outcomes = []
    coordinator.add_listener(lambda outcome, added: outcomes.append((outcome, added)))

    coordinator.on_viewport_changed(B1)
    first = coordinator.fetch_now()
    await asyncio.sleep(0)
    coordinator.on_viewport_changed(B2)
    second = coordinator.fetch_now()
    await asyncio.sleep(0)

    assert first.cancelled() or first.done()
    assert provider.area_calls[0][2].cancelled
    assert coordinator.is_searching

    provider.pending[-1].set_result([make_poi("fresh")])
    await second
    assert [p.id for p in store.all()] == ["fresh"]
    assert not coordinator.is_searching
    assert outcomes[-1] == (FetchOutcome.SUCCEEDED, 1)


@pytest.mark.asyncio
async def test_late_stale_response_is_discarded():
    provider = FakePoiProvider(gated=True)
    coordinator, store, _ = _coordinator(provider)

    # a request that outlives its epoch without being cancelled at the task level
    stale_token = coordinator._epoch.issue()
    stale = asyncio.get_running_loop().create_task(coordinator._fetch(stale_token, B1))
    await asyncio.sleep(0)

    coordinator.on_viewport_changed(B2)
    fresh = coordinator.fetch_now()
    await asyncio.sleep(0)

    provider.pending[1].set_result([make_poi("fresh")])
    await fresh
    provider.pending[0].set_result([make_poi("stale")])
    assert await stale is FetchOutcome.CANCELLED

    assert "stale" not in store
    assert "fresh" in store
    assert not coordinator.is_searching
    assert coordinator.last_outcome is FetchOutcome.SUCCEEDED


@pytest.mark.asyncio
async def test_stale_response_arriving_first_keeps_search_busy():
    provider = FakePoiProvider(gated=True)
    coordinator, store, _ = _coordinator(provider)
    merges = []
    store.add_listener(merges.append)

    stale_token = coordinator._epoch.issue()
    stale = asyncio.get_running_loop().create_task(coordinator._fetch(stale_token, B1))
    await asyncio.sleep(0)

    coordinator.on_viewport_changed(B2)
    fresh = coordinator.fetch_now()
    await asyncio.sleep(0)
    assert len(provider.pending) == 2

    provider.pending[0].set_result([make_poi("stale")])
    assert await stale is FetchOutcome.CANCELLED
    assert "stale" not in store
    assert merges == []
    assert coordinator.is_searching
    assert coordinator.last_outcome is None
    assert not fresh.done()

    provider.pending[1].set_result([make_poi("fresh")])
    assert await fresh is FetchOutcome.SUCCEEDED
    assert [p.id for p in store.all()] == ["fresh"]
    assert merges == [1]
    assert not coordinator.is_searching
    assert coordinator.last_outcome is FetchOutcome.SUCCEEDED


@pytest.mark.asyncio
async def test_failure_leaves_store_untouched():
    provider = FakePoiProvider()
    provider.error = NetworkFailureError("overpass down", "overpass")
    coordinator, store, _ = _coordinator(provider)
    store.merge([make_poi("known")])

    coordinator.on_viewport_changed(B1)
    await coordinator.fetch_now()

    assert [p.id for p in store.all()] == ["known"]
    assert coordinator.last_outcome is FetchOutcome.FAILED
    assert isinstance(coordinator.last_error, NetworkFailureError)
    assert not coordinator.is_searching
    assert len(provider.area_calls) == 1
    data = await metrics.get_metrics()
    assert data["counters"]["area_fetch.failed"] == 1


@pytest.mark.asyncio
async def test_offline_viewport_changes_do_not_fetch():
    provider = FakePoiProvider(area_results=[make_poi("a")])
    coordinator, _, _ = _coordinator(provider, online=False)

    coordinator.on_viewport_changed(B1)
    assert not coordinator.debounce_pending
    assert coordinator.fetch_now() is None
    await asyncio.sleep(0.05)
    assert provider.area_calls == []
    assert coordinator.bounds == B1


@pytest.mark.asyncio
async def test_reconnect_backfills_current_viewport_once():
    provider = FakePoiProvider(area_results=[make_poi("a")])
    coordinator, store, connectivity = _coordinator(provider, online=False)
    coordinator.on_viewport_changed(B1)
    coordinator.on_viewport_changed(B2)

    assert connectivity.set_online(True)
    # immediate, not debounced
    assert coordinator.is_searching
    assert not coordinator.debounce_pending
    await coordinator.settled()
    await asyncio.sleep(0.05)

    assert len(provider.area_calls) == 1
    assert provider.area_calls[0][0] == B2
    assert "a" in store


@pytest.mark.asyncio
async def test_going_offline_cancels_outstanding_fetch():
    provider = FakePoiProvider(gated=True)
    coordinator, store, connectivity = _coordinator(provider)
    coordinator.on_viewport_changed(B1)
    task = coordinator.fetch_now()
    await asyncio.sleep(0)

    connectivity.set_online(False)
    await coordinator.settled()

    assert task.done()
    assert coordinator.last_outcome is FetchOutcome.CANCELLED
    assert not coordinator.is_searching
    assert len(store) == 0


@pytest.mark.asyncio
async def test_type_is_read_when_the_fetch_starts():
    provider = FakePoiProvider()
    selection = {"type": POIType.BIVOUAC}
    coordinator, _, _ = _coordinator(provider, type_getter=lambda: selection["type"])

    coordinator.on_viewport_changed(B1)
    selection["type"] = POIType.FOUNTAIN
    await asyncio.sleep(0.06)
    await coordinator.settled()

    assert provider.area_calls[0][1] is POIType.FOUNTAIN
