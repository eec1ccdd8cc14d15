import pytest

from helpers import FakePoiProvider, make_poi, no_seed

from mountpro.providers.base import ProviderTimeoutError
from mountpro.src import metrics
from mountpro.src.connectivity import ConnectivityMonitor
from mountpro.src.name_search import NameSearchCoordinator, search_local
from mountpro.src.persistence import MemoryStorage
from mountpro.src.store import PoiStore


def _setup(online=True, results=None):
    provider = FakePoiProvider(name_results=results)
    store = PoiStore(MemoryStorage(), seed_loader=no_seed)
    store.merge([make_poi("alpino", name="Rifugio Alpino"), make_poi("baroni", name="Bivacco Baroni")])
    connectivity = ConnectivityMonitor(initial=online)
    return NameSearchCoordinator(provider, store, connectivity), provider, store


def test_search_local_is_case_insensitive_substring():
    _, _, store = _setup()
    assert search_local(store, "ALPINO").id == "alpino"
    assert search_local(store, "bivacco").id == "baroni"
    assert search_local(store, "nonexistent") is None
    assert search_local(store, "  ") is None


@pytest.mark.asyncio
async def test_offline_search_uses_store_without_network():
    search, provider, _ = _setup(online=False)
    assert (await search.search("alpino")).id == "alpino"
    assert await search.search("nonexistent") is None
    assert provider.name_calls == []


@pytest.mark.asyncio
async def test_online_search_merges_every_result():
    results = [make_poi("osm:node:1", name="Bivacco Fanton"), make_poi("osm:node:2", name="Bivacco Fanton Alto")]
    search, provider, store = _setup(results=results)

    match = await search.search("  fanton ")
    assert provider.name_calls == ["fanton"]
    assert match.id == "osm:node:1"
    assert "osm:node:2" in store
    assert not search.is_searching


@pytest.mark.asyncio
async def test_online_search_prefers_stored_record():
    search, _, store = _setup(results=[make_poi("alpino", name="Rifugio Alpino (remote)")])
    match = await search.search("alpino")
    assert match is store.get("alpino")
    assert match.name == "Rifugio Alpino"


@pytest.mark.asyncio
async def test_provider_failure_returns_none():
    search, provider, store = _setup()
    provider.error = ProviderTimeoutError("timed out", "overpass")
    assert await search.search("alpino") is None
    assert len(store) == 2
    assert not search.is_searching
    assert (await metrics.get_metrics())["counters"]["name_search.failed"] == 1


@pytest.mark.asyncio
async def test_empty_query_is_ignored():
    search, provider, _ = _setup()
    assert await search.search("   ") is None
    assert provider.name_calls == []
