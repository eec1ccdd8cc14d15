"""
Live info enrichment for the selected POI, plus the detail-panel helpers
(signal level, navigation and review links).

Enrichment is strictly best-effort: offline, disabled or failing providers
produce `None`, never an exception.
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import quote

from mountpro.config import get_config
from mountpro.providers.base import LiveInfoProvider, ProviderError
from mountpro.src import metrics
from mountpro.src.connectivity import ConnectivityMonitor
from mountpro.src.models import POI, LiveInfo, SignalStrength

logger = logging.getLogger(__name__)

SIGNAL_LEVELS = {
    SignalStrength.EXCELLENT: 4,
    SignalStrength.HIGH: 3,
    SignalStrength.MEDIUM: 2,
    SignalStrength.LOW: 1,
    SignalStrength.NONE: 0,
}


def signal_level(poi: POI, live: Optional[LiveInfo] = None) -> int:
    """Signal bars (0-4); a live reading overrides the stored category."""
    if live is not None and live.signal_strength is not None:
        return live.signal_strength
    return SIGNAL_LEVELS.get(poi.signal, 0)


def navigation_url(poi: POI) -> str:
    return (f"https://www.google.com/maps/dir/?api=1&destination="
            f"{poi.coordinates.lat},{poi.coordinates.lng}")


def reviews_url(poi: POI, live: Optional[LiveInfo] = None) -> str:
    if live is not None and live.google_maps_url:
        return live.google_maps_url
    return f"https://www.google.com/maps/search/?api=1&query={quote(poi.name, safe='')}"


class LiveInfoService:
    """Caches live info per POI id for `ttl` seconds."""

    def __init__(self, provider: Optional[LiveInfoProvider], connectivity: ConnectivityMonitor,
                 ttl: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.provider = provider
        self.connectivity = connectivity
        self.ttl = ttl if ttl is not None else get_config().cache_config.ttl_live_info
        self._clock = clock
        self._cache: Dict[str, Tuple[float, LiveInfo]] = {}

    def cached(self, poi_id: str) -> Optional[LiveInfo]:
        hit = self._cache.get(poi_id)
        if hit is None:
            return None
        stored_at, info = hit
        if self._clock() - stored_at > self.ttl:
            del self._cache[poi_id]
            return None
        return info

    async def get_live_info(self, poi: POI) -> Optional[LiveInfo]:
        if self.provider is None or self.connectivity.offline:
            return None
        info = self.cached(poi.id)
        if info is not None:
            return info
        try:
            info = await self.provider.fetch_live_info(poi)
        except ProviderError as e:
            logger.info(f"[LIVE-INFO] enrichment unavailable for {poi.id}: {e}")
            await metrics.increment("live_info.unavailable")
            return None
        self._cache[poi.id] = (self._clock(), info)
        return info
