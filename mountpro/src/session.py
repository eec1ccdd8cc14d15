"""
Map session: the single owner of store, criteria, selection and markers.

Every state transition (viewport, criteria, selection, store growth,
connectivity) runs on the event loop and ends in one re-filter plus one
marker reconciliation, so the marker set always mirrors the current
filtered view.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from mountpro.providers.base import PoiProvider, Provider
from mountpro.src.area_fetch import AreaFetchCoordinator
from mountpro.src.connectivity import ConnectivityMonitor
from mountpro.src.enrichment import LiveInfoService
from mountpro.src.filters import evaluate
from mountpro.src.markers import MarkerReconciler, ReconcileStats, RenderingSurface
from mountpro.src.models import POI, Bounds, FilterCriteria, LiveInfo
from mountpro.src.name_search import NameSearchCoordinator
from mountpro.src.store import PoiStore

logger = logging.getLogger(__name__)


class MapSession:
    def __init__(self, store: PoiStore, provider: PoiProvider, surface: RenderingSurface,
                 connectivity: Optional[ConnectivityMonitor] = None,
                 live_info: Optional[LiveInfoService] = None,
                 criteria: Optional[FilterCriteria] = None,
                 debounce_seconds: Optional[float] = None):
        self.store = store
        self.connectivity = connectivity or ConnectivityMonitor()
        self.criteria = criteria or FilterCriteria()
        self.selected_id: Optional[str] = None
        self.reconciler = MarkerReconciler(surface)
        self.area_fetch = AreaFetchCoordinator(
            provider, store, self.connectivity,
            type_getter=lambda: self.criteria.type_filter,
            debounce_seconds=debounce_seconds,
        )
        self.name_search = NameSearchCoordinator(provider, store, self.connectivity)
        self.live_info_service = live_info or LiveInfoService(None, self.connectivity)
        self._filtered: List[POI] = []
        self._click_task: Optional[asyncio.Task] = None
        store.add_listener(self._on_store_changed)

    async def start(self, bounds: Optional[Bounds] = None) -> None:
        """Load the store, render it, and schedule the first area fetch."""
        self.store.load()
        self.refresh()
        self._click_task = asyncio.get_running_loop().create_task(self.handle_clicks())
        if bounds is not None:
            self.set_viewport(bounds)

    async def close(self) -> None:
        self.area_fetch.close()
        if self._click_task is not None:
            self._click_task.cancel()
            try:
                await self._click_task
            except asyncio.CancelledError:
                pass
            self._click_task = None

    def filtered(self) -> List[POI]:
        return list(self._filtered)

    @property
    def selected(self) -> Optional[POI]:
        return self.store.get(self.selected_id) if self.selected_id else None

    def refresh(self) -> ReconcileStats:
        """Re-run the filter pipeline and reconcile markers against it."""
        self._filtered = evaluate(self.store.all(), self.criteria)
        return self.reconciler.reconcile(self._filtered, self.selected_id)

    def _on_store_changed(self, added: int) -> None:
        self.refresh()

    def set_viewport(self, bounds: Bounds) -> None:
        self.area_fetch.on_viewport_changed(bounds)

    def set_criteria(self, criteria: FilterCriteria) -> ReconcileStats:
        self.criteria = criteria
        return self.refresh()

    def select(self, poi_id: Optional[str]) -> bool:
        """Select a POI by id (None clears). Unknown ids leave the selection unchanged."""
        if poi_id is not None and poi_id not in self.store:
            logger.debug(f"[SESSION] ignoring selection of unknown POI {poi_id}")
            return False
        if poi_id == self.selected_id:
            return True
        self.selected_id = poi_id
        self.refresh()
        return True

    async def search(self, query: str) -> Optional[POI]:
        """Search by name and select the best match; no match keeps the prior selection."""
        match = await self.name_search.search(query)
        if match is not None:
            self.select(match.id)
        return match

    def set_online(self, online: bool) -> bool:
        return self.connectivity.set_online(online)

    async def handle_clicks(self) -> None:
        """Drain marker click events and select the clicked POI."""
        while True:
            poi_id = await self.reconciler.clicks.get()
            self.select(poi_id)

    async def live_info(self, poi_id: Optional[str] = None) -> Optional[LiveInfo]:
        poi = self.store.get(poi_id) if poi_id else self.selected
        if poi is None:
            return None
        return await self.live_info_service.get_live_info(poi)

    def providers(self) -> List[Provider]:
        return [p for p in (self.area_fetch.provider, self.live_info_service.provider) if p is not None]

    async def provider_health(self) -> Dict[str, Dict[str, Any]]:
        """Ping every wired provider and report its health keyed by provider name."""
        report = {}
        for provider in self.providers():
            meta = await provider.get_metadata()
            result = await provider.health_check()
            if not result.is_healthy:
                logger.warning(f"[SESSION] provider {meta.name} unhealthy: {result.message}")
            report[meta.name] = {
                "status": result.status.value,
                "latencyMs": round(result.latency_ms, 1),
                "message": result.message,
                "version": meta.version,
                "capabilities": list(meta.capabilities),
            }
        return report

    def status(self) -> Dict[str, Any]:
        bounds = self.area_fetch.bounds
        last_error = self.area_fetch.last_error
        return {
            "online": self.connectivity.online,
            "searchingArea": self.area_fetch.is_searching,
            "searchingName": self.name_search.is_searching,
            "storeCount": len(self.store),
            "filteredCount": len(self._filtered),
            "markerCount": len(self.reconciler),
            "selectedId": self.selected_id,
            "criteria": self.criteria.to_dict(),
            "bounds": bounds.as_tuple() if bounds else None,
            "lastFetch": self.area_fetch.last_outcome.value if self.area_fetch.last_outcome else None,
            "lastError": str(last_error) if last_error else None,
        }
