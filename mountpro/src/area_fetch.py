"""
Area fetch coordinator: turns a stream of viewport changes into a minimal
sequence of bounding-box fetches.

Every viewport change restarts a debounce timer. When the timer fires, any
outstanding fetch is cancelled (its token and its task), a new fetch is
issued for the last bounds, and only that fetch's results may be merged
into the POI store. Failures leave the store untouched and are not retried;
the next viewport change naturally triggers another fetch.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from mountpro.config import get_config
from mountpro.providers.base import PoiProvider, ProviderError
from mountpro.src import metrics
from mountpro.src.connectivity import ConnectivityMonitor
from mountpro.src.models import Bounds, POIType
from mountpro.src.scheduling import CancellableTimer, FetchEpoch, FetchToken
from mountpro.src.store import PoiStore

logger = logging.getLogger(__name__)


class FetchOutcome(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AreaFetchCoordinator:
    def __init__(self, provider: PoiProvider, store: PoiStore, connectivity: ConnectivityMonitor,
                 type_getter: Callable[[], Optional[POIType]], debounce_seconds: Optional[float] = None):
        if debounce_seconds is None:
            debounce_seconds = get_config().fetch_config.debounce_seconds
        self.provider = provider
        self.store = store
        self.connectivity = connectivity
        self._type_getter = type_getter
        self._timer = CancellableTimer(debounce_seconds, self._on_timer)
        self._epoch = FetchEpoch()
        self._task: Optional[asyncio.Task] = None
        self._bounds: Optional[Bounds] = None
        self._listeners: List[Callable[[FetchOutcome, int], None]] = []
        self.is_searching = False
        self.last_error: Optional[ProviderError] = None
        self.last_outcome: Optional[FetchOutcome] = None
        connectivity.add_listener(self.on_connectivity_changed)

    @property
    def bounds(self) -> Optional[Bounds]:
        return self._bounds

    @property
    def debounce_pending(self) -> bool:
        return self._timer.pending

    def add_listener(self, listener: Callable[[FetchOutcome, int], None]) -> None:
        """Register a callback invoked with (outcome, added count) when a fetch settles."""
        self._listeners.append(listener)

    def on_viewport_changed(self, bounds: Bounds) -> None:
        """Record new viewport bounds and restart the debounce timer."""
        self._bounds = bounds
        if self.connectivity.offline:
            logger.debug("[AREA-FETCH] offline, viewport change ignored")
            return
        self._timer.schedule()

    def on_connectivity_changed(self, online: bool) -> None:
        if online:
            if self._bounds is not None:
                logger.info("[AREA-FETCH] back online, backfilling current viewport")
                self.fetch_now()
        else:
            self._timer.cancel()
            self.cancel()

    async def _on_timer(self) -> None:
        self.fetch_now()

    def fetch_now(self) -> Optional[asyncio.Task]:
        """Start a fetch for the last bounds immediately, superseding any outstanding one."""
        if self._bounds is None or self.connectivity.offline:
            return None
        self._timer.cancel()
        token = self._epoch.issue()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.is_searching = True
        self._task = asyncio.get_running_loop().create_task(self._fetch(token, self._bounds))
        return self._task

    def cancel(self) -> None:
        """Cancel the outstanding fetch. No-op if it already settled."""
        self._epoch.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        # a task cancelled before it first ran never reaches its own cleanup
        self.is_searching = False

    async def settled(self) -> None:
        """Wait for the current fetch (if any) to settle."""
        while self._task is not None and not self._task.done():
            await asyncio.gather(self._task, return_exceptions=True)

    def close(self) -> None:
        self._timer.cancel()
        self.cancel()

    async def _fetch(self, token: FetchToken, bounds: Bounds) -> FetchOutcome:
        # read at fetch time so a type change during the debounce window is honoured
        poi_type = self._type_getter()
        start = time.time()
        added = 0
        error: Optional[ProviderError] = None
        try:
            pois = await self.provider.search_area(bounds, poi_type, token)
            if not self._epoch.is_current(token):
                raise asyncio.CancelledError()
            added = self.store.merge(pois)
            outcome = FetchOutcome.SUCCEEDED
            logger.info(f"[AREA-FETCH] epoch {token.epoch}: {len(pois)} POIs, {added} new")
        except asyncio.CancelledError:
            outcome = FetchOutcome.CANCELLED
            logger.debug(f"[AREA-FETCH] epoch {token.epoch} superseded, results discarded")
        except ProviderError as e:
            outcome = FetchOutcome.FAILED
            error = e
            logger.warning(f"[AREA-FETCH] epoch {token.epoch} failed: {e}")
        finally:
            is_latest = self._epoch.current is token
            self._epoch.settle(token)
            if is_latest:
                self.is_searching = False

        # a superseded request must not overwrite what the latest one reported
        if is_latest:
            self.last_outcome = outcome
            self.last_error = error
        await metrics.increment(f"area_fetch.{outcome.value}")
        if outcome is not FetchOutcome.CANCELLED:
            await metrics.observe_latency("area_fetch", (time.time() - start) * 1000)
        for listener in list(self._listeners):
            listener(outcome, added)
        return outcome
