import asyncio

import pytest

from helpers import FakePoiProvider, make_poi

from mountpro.providers.base import (
    EnrichmentUnavailableError,
    LiveInfoProvider,
    ProviderMetadata,
    ProviderTimeoutError,
)
from mountpro.src.connectivity import ConnectivityMonitor
from mountpro.src.enrichment import LiveInfoService
from mountpro.src.markers import RecordingSurface
from mountpro.src.models import ALL_TYPES, Bounds, FilterCriteria, POIType
from mountpro.src.persistence import MemoryStorage
from mountpro.src.session import MapSession
from mountpro.src.store import PoiStore


def _seed():
    return [
        make_poi("alpino", name="Rifugio Alpino"),
        make_poi("fanton", name="Bivacco Fanton", altitude=2667),
        make_poi("giau", name="Fontanella Passo Giau", poi_type=POIType.FOUNTAIN),
    ]


def _session(online=True, provider=None):
    surface = RecordingSurface()
    store = PoiStore(MemoryStorage(), seed_loader=_seed)
    session = MapSession(
        store,
        provider or FakePoiProvider(),
        surface,
        connectivity=ConnectivityMonitor(initial=online),
        debounce_seconds=0.02,
    )
    return session, surface


def _marker_ids(surface):
    return sorted(m["id"] for m in surface.markers.values())


@pytest.mark.asyncio
async def test_start_renders_filtered_seed():
    session, surface = _session()
    await session.start()
    try:
        assert [p.id for p in session.filtered()] == ["alpino", "fanton"]
        assert _marker_ids(surface) == ["alpino", "fanton"]
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_criteria_change_reconciles_markers():
    session, surface = _session()
    await session.start()
    try:
        stats = session.set_criteria(FilterCriteria(poi_type=ALL_TYPES))
        assert stats.added == 1 and stats.removed == 0
        session.set_criteria(FilterCriteria(poi_type=POIType.FOUNTAIN))
        assert _marker_ids(surface) == ["giau"]
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_marker_click_selects_poi():
    session, surface = _session()
    await session.start()
    try:
        assert session.reconciler.notify_click("fanton")
        await asyncio.sleep(0.01)
        assert session.selected_id == "fanton"
        assert session.selected.name == "Bivacco Fanton"
        assert surface.snapshot()[-1]["id"] == "fanton"
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_select_unknown_id_keeps_selection():
    session, _ = _session()
    await session.start()
    try:
        assert session.select("alpino")
        assert not session.select("missing")
        assert session.selected_id == "alpino"
        assert session.select(None)
        assert session.selected is None
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_offline_search_selects_local_match():
    provider = FakePoiProvider()
    session, _ = _session(online=False, provider=provider)
    await session.start()
    try:
        match = await session.search("alpino")
        assert match.id == "alpino"
        assert session.selected_id == "alpino"

        assert await session.search("nonexistent") is None
        assert session.selected_id == "alpino"
        assert provider.name_calls == []
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_area_fetch_results_appear_as_markers():
    provider = FakePoiProvider(area_results=[make_poi("osm:node:7", name="Bivacco Mascabroni")])
    session, surface = _session(provider=provider)
    await session.start(Bounds(46.5, 12.2, 46.7, 12.4))
    try:
        await asyncio.sleep(0.05)
        await session.area_fetch.settled()
        assert "osm:node:7" in _marker_ids(surface)
        assert session.status()["storeCount"] == 4
        assert session.status()["lastFetch"] == "succeeded"
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_status_and_live_info_without_enrichment():
    session, _ = _session()
    await session.start()
    try:
        session.select("fanton")
        assert await session.live_info() is None
        status = session.status()
        assert status["online"] is True
        assert status["selectedId"] == "fanton"
        assert status["filteredCount"] == 2
        assert status["markerCount"] == 2
        assert status["criteria"]["type"] == "bivouac"
        assert status["lastError"] is None
    finally:
        await session.close()


class UnreachableLiveInfo(LiveInfoProvider):
    async def get_metadata(self):
        return ProviderMetadata(name="live", version="1", description="", capabilities=["live_info"])

    async def ping(self):
        raise ProviderTimeoutError("no answer", provider_name="live")

    async def fetch_live_info(self, poi):
        raise EnrichmentUnavailableError("no answer")


@pytest.mark.asyncio
async def test_provider_health_reports_every_wired_provider():
    session, _ = _session()
    assert [type(p) for p in session.providers()] == [FakePoiProvider]

    connectivity = ConnectivityMonitor(initial=True)
    session = MapSession(
        PoiStore(MemoryStorage(), seed_loader=_seed),
        FakePoiProvider(),
        RecordingSurface(),
        connectivity=connectivity,
        live_info=LiveInfoService(UnreachableLiveInfo(), connectivity),
    )
    report = await session.provider_health()
    assert report["fake"]["status"] == "healthy"
    assert report["live"]["status"] == "unhealthy"
    assert report["live"]["capabilities"] == ["live_info"]
    assert "no answer" in report["live"]["message"]
