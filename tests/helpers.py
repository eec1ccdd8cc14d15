"""Shared fakes for MountPro tests."""
import asyncio

from mountpro.providers.base import PoiProvider, ProviderMetadata
from mountpro.src.models import POI, Coordinates, Exposure, POIType, SignalStrength


def make_poi(poi_id, name=None, poi_type=POIType.BIVOUAC, altitude=2000, exposure=Exposure.SOUTH,
             signal=SignalStrength.LOW, lat=46.5, lng=11.9, **amenities):
    return POI(
        id=poi_id,
        type=poi_type,
        name=name or f"Bivacco {poi_id}",
        coordinates=Coordinates(lat, lng),
        altitude=altitude,
        exposure=exposure,
        signal=signal,
        **amenities,
    )


class FakePoiProvider(PoiProvider):
    """Provider whose area calls can be held open and released one by one."""

    def __init__(self, area_results=None, name_results=None, gated=False):
        super().__init__()
        self.area_results = list(area_results or [])
        self.name_results = list(name_results or [])
        self.gated = gated
        self.error = None
        self.area_calls = []
        self.name_calls = []
        self.pending = []

    async def get_metadata(self):
        return ProviderMetadata(name="fake", version="0", description="test double", capabilities=[])

    async def ping(self):
        if self.error is not None:
            raise self.error

    async def search_area(self, bounds, poi_type=None, token=None):
        self.area_calls.append((bounds, poi_type, token))
        if self.gated:
            future = asyncio.get_running_loop().create_future()
            self.pending.append(future)
            result = await future
        else:
            result = self.area_results
        if isinstance(result, Exception):
            raise result
        if self.error is not None:
            raise self.error
        return list(result)

    async def search_by_name(self, query):
        self.name_calls.append(query)
        if self.error is not None:
            raise self.error
        return list(self.name_results)


class FailingStorage:
    def load(self, key):
        raise OSError("disk unavailable")

    def save(self, key, blob):
        raise OSError("disk unavailable")


def no_seed():
    return []
