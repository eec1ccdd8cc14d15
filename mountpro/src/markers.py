"""
Marker reconciler: keeps the rendered marker set in step with the filtered view.

The reconciler owns the mapping POI id -> marker handle. After every
`reconcile()` its keys equal the ids of the filtered sequence, and the
rendering surface has only seen the operations needed to get there:
- remove markers that left the filtered set
- place markers for ids that entered it
- update appearance in place when selection state changed

Positions never change once placed; POIs do not move.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Protocol

from mountpro.src.models import POI, Coordinates, POIType

logger = logging.getLogger(__name__)

SELECTED_Z_INDEX = 2000


@dataclass(frozen=True)
class MarkerAppearance:
    poi_type: POIType
    selected: bool = False

    @property
    def z_index(self) -> int:
        # selected marker is drawn on top
        return SELECTED_Z_INDEX if self.selected else 0

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.poi_type.value, "selected": self.selected, "zIndex": self.z_index}


class RenderingSurface(Protocol):
    def place_marker(self, poi_id: str, coordinates: Coordinates, appearance: MarkerAppearance) -> Any:
        ...

    def update_appearance(self, handle: Any, appearance: MarkerAppearance) -> None:
        ...

    def remove_marker(self, handle: Any) -> None:
        ...


@dataclass
class ReconcileStats:
    added: int = 0
    updated: int = 0
    removed: int = 0

    @property
    def operations(self) -> int:
        return self.added + self.updated + self.removed


@dataclass
class _MarkerEntry:
    handle: Any
    appearance: MarkerAppearance


class MarkerReconciler:
    """Sole owner of the marker set; surfaces report clicks through `notify_click`."""

    def __init__(self, surface: RenderingSurface):
        self.surface = surface
        self._markers: Dict[str, _MarkerEntry] = {}
        self.clicks: asyncio.Queue = asyncio.Queue()

    def __len__(self):
        return len(self._markers)

    def marker_ids(self) -> FrozenSet[str]:
        return frozenset(self._markers)

    def appearance_of(self, poi_id: str) -> Optional[MarkerAppearance]:
        entry = self._markers.get(poi_id)
        return entry.appearance if entry else None

    def reconcile(self, filtered: Iterable[POI], selected_id: Optional[str] = None) -> ReconcileStats:
        stats = ReconcileStats()
        wanted: Dict[str, POI] = {}
        for poi in filtered:
            wanted.setdefault(poi.id, poi)

        for poi_id in [pid for pid in self._markers if pid not in wanted]:
            entry = self._markers.pop(poi_id)
            self.surface.remove_marker(entry.handle)
            stats.removed += 1

        for poi_id, poi in wanted.items():
            appearance = MarkerAppearance(poi.type, poi_id == selected_id)
            entry = self._markers.get(poi_id)
            if entry is None:
                handle = self.surface.place_marker(poi_id, poi.coordinates, appearance)
                self._markers[poi_id] = _MarkerEntry(handle, appearance)
                stats.added += 1
            elif entry.appearance != appearance:
                self.surface.update_appearance(entry.handle, appearance)
                entry.appearance = appearance
                stats.updated += 1

        if stats.operations:
            logger.debug(f"[MARKERS] +{stats.added} ~{stats.updated} -{stats.removed} (total {len(self._markers)})")
        return stats

    def notify_click(self, poi_id: str) -> bool:
        """Queue a click from the surface; clicks on unknown markers are ignored."""
        if poi_id not in self._markers:
            logger.debug(f"[MARKERS] click on unknown marker {poi_id}")
            return False
        self.clicks.put_nowait(poi_id)
        return True

    def clear(self) -> int:
        """Remove every marker from the surface."""
        count = len(self._markers)
        for entry in self._markers.values():
            self.surface.remove_marker(entry.handle)
        self._markers = {}
        return count


class RecordingSurface:
    """In-memory surface that keeps a JSON-friendly view of placed markers.

    Used by the HTTP facade, where the real map lives in the browser and
    polls `/api/markers`.
    """

    def __init__(self):
        self.markers: Dict[int, Dict[str, Any]] = {}
        self._next_handle = 1
        self.operations: List[tuple] = []

    def place_marker(self, poi_id: str, coordinates: Coordinates, appearance: MarkerAppearance) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self.markers[handle] = {
            "id": poi_id,
            "lat": coordinates.lat,
            "lng": coordinates.lng,
            **appearance.to_dict(),
        }
        self.operations.append(("place", poi_id))
        return handle

    def update_appearance(self, handle: int, appearance: MarkerAppearance) -> None:
        self.markers[handle].update(appearance.to_dict())
        self.operations.append(("update", self.markers[handle]["id"]))

    def remove_marker(self, handle: int) -> None:
        marker = self.markers.pop(handle)
        self.operations.append(("remove", marker["id"]))

    def snapshot(self) -> List[Dict[str, Any]]:
        """Markers sorted so that the selected one is drawn last."""
        return sorted(self.markers.values(), key=lambda m: m["zIndex"])
