"""
Name search coordinator: one-shot, user-submitted search by POI name.

Offline, only the local store is searched. Online, the provider is queried
and every result is merged into the store before the best match is returned.
"""

import logging
import time
from typing import Optional

from mountpro.providers.base import PoiProvider, ProviderError
from mountpro.src import metrics
from mountpro.src.connectivity import ConnectivityMonitor
from mountpro.src.models import POI
from mountpro.src.store import PoiStore

logger = logging.getLogger(__name__)


def search_local(store: PoiStore, query: str) -> Optional[POI]:
    """First POI in store order whose name contains `query`, case-insensitively."""
    needle = query.strip().lower()
    if not needle:
        return None
    for poi in store.all():
        if needle in poi.name.lower():
            return poi
    return None


class NameSearchCoordinator:
    def __init__(self, provider: PoiProvider, store: PoiStore, connectivity: ConnectivityMonitor):
        self.provider = provider
        self.store = store
        self.connectivity = connectivity
        self.is_searching = False

    async def search(self, query: str) -> Optional[POI]:
        query = (query or "").strip()
        if not query:
            return None

        if self.connectivity.offline:
            match = search_local(self.store, query)
            logger.info(f"[SEARCH] offline search {query!r} -> {match.id if match else 'no match'}")
            return match

        self.is_searching = True
        start = time.time()
        try:
            results = await self.provider.search_by_name(query)
        except ProviderError as e:
            logger.warning(f"[SEARCH] provider search {query!r} failed: {e}")
            await metrics.increment("name_search.failed")
            return None
        finally:
            self.is_searching = False

        await metrics.observe_latency("name_search", (time.time() - start) * 1000)
        if not results:
            logger.info(f"[SEARCH] no results for {query!r}")
            return None

        self.store.merge(results)
        first = results[0]
        # the stored record wins when the id was already known
        return self.store.get(first.id) or first
