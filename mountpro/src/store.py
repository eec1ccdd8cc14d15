"""
POI store: the deduplicated, persisted collection of every known POI.

Merges only ever add: an incoming POI whose id is already known is dropped,
so the store grows monotonically within a session.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from mountpro.providers.base import MalformedResponseError
from mountpro.src.models import POI, pois_from_dicts
from mountpro.src.persistence import (
    PersistenceCorruptError,
    decode_blob,
    encode_blob,
)

logger = logging.getLogger(__name__)

SEED_PATH = Path(__file__).resolve().parent.parent / "data" / "seed_pois.json"
DEFAULT_KEY = "mountpro_pois"


def load_seed_pois(path: Path = SEED_PATH) -> List[POI]:
    """Load the bundled seed dataset; an unreadable seed yields an empty list."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            records = json.load(f)
        return pois_from_dicts(records)
    except (OSError, TypeError, ValueError, MalformedResponseError) as e:
        logger.error(f"[STORE] Seed dataset {path} unreadable: {e}")
        return []


class PoiStore:
    """Insertion-ordered POI collection keyed by id, persisted on every change."""

    def __init__(self, storage, key: str = DEFAULT_KEY, seed_loader: Callable[[], List[POI]] = load_seed_pois):
        self.storage = storage
        self.key = key
        self._seed_loader = seed_loader
        self._pois: Dict[str, POI] = {}
        self._listeners: List[Callable[[int], None]] = []

    def __len__(self):
        return len(self._pois)

    def __contains__(self, poi_id):
        return poi_id in self._pois

    def get(self, poi_id: str) -> Optional[POI]:
        return self._pois.get(poi_id)

    def all(self) -> List[POI]:
        return list(self._pois.values())

    def add_listener(self, listener: Callable[[int], None]) -> None:
        """Register a callback invoked with the added count after each growing merge."""
        self._listeners.append(listener)

    def merge(self, incoming: Iterable[POI]) -> int:
        """Add POIs whose id is unknown; return how many were added."""
        added = 0
        for poi in incoming:
            if poi.id in self._pois:
                continue
            self._pois[poi.id] = poi
            added += 1
        if added:
            logger.debug(f"[STORE] merged {added} new POIs (total {len(self._pois)})")
            self.save()
            for listener in list(self._listeners):
                listener(added)
        return added

    def load(self) -> int:
        """Replace contents with the persisted blob, or the seed dataset if absent or corrupt.

        Never raises; returns the number of POIs loaded.
        """
        pois = None
        try:
            blob = self.storage.load(self.key)
        except Exception as e:
            # storage backends raise their own error types (OSError, redis errors)
            logger.warning(f"[STORE] storage read failed for {self.key}: {e}")
            blob = None
        if blob is not None:
            try:
                pois = pois_from_dicts(decode_blob(blob))
            except (PersistenceCorruptError, MalformedResponseError) as e:
                logger.warning(f"[STORE] persisted blob {self.key} is corrupt, falling back to seed: {e}")
                pois = None
        if pois is None:
            pois = self._seed_loader()
            logger.info(f"[STORE] loaded {len(pois)} seed POIs")
        else:
            logger.info(f"[STORE] loaded {len(pois)} persisted POIs")
        self._pois = {}
        for poi in pois:
            self._pois.setdefault(poi.id, poi)
        return len(self._pois)

    def save(self) -> bool:
        """Persist the full store; failures are logged and reported as False."""
        blob = encode_blob([p.to_dict() for p in self._pois.values()])
        try:
            self.storage.save(self.key, blob)
        except Exception as e:
            logger.error(f"[STORE] failed to persist {len(self._pois)} POIs to {self.key}: {e}")
            return False
        return True
