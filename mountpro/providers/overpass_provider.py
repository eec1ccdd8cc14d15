"""Overpass (OpenStreetMap) POI provider for bivouacs and water sources.

Bounding-box and name queries are sent to the configured Overpass
endpoints in order; the first endpoint that answers wins.
"""
import re
import time
import logging
from typing import Dict, List, Optional

import aiohttp

from mountpro.config import get_config
from mountpro.providers.base import (
    MalformedResponseError,
    NetworkFailureError,
    PoiProvider,
    ProviderMetadata,
)
from mountpro.providers.utils import http_post_json
from mountpro.src.models import (
    POI,
    Bounds,
    Coordinates,
    Exposure,
    POIType,
    SignalStrength,
    UNKNOWN_ALTITUDE,
)

logger = logging.getLogger(__name__)

# OSM tag selectors per POI type
POI_TYPE_SELECTORS = {
    POIType.BIVOUAC: [
        '["tourism"="wilderness_hut"]',
        '["amenity"="shelter"]["shelter_type"="basic_hut"]',
    ],
    POIType.FOUNTAIN: [
        '["amenity"="drinking_water"]',
        '["natural"="spring"]',
        '["amenity"="fountain"]["drinking_water"="yes"]',
    ],
}

DEFAULT_NAMES = {
    POIType.BIVOUAC: "Unnamed bivouac",
    POIType.FOUNTAIN: "Water source",
}

_ELE_RE = re.compile(r"-?\d+(?:[.,]\d+)?")


def build_query(selectors: List[str], area: str, limit: int, name_query: Optional[str] = None,
                timeout: int = 25) -> str:
    """Build an Overpass QL query for nodes and ways matching any selector inside `area`."""
    name_filter = ""
    if name_query:
        # regex metacharacters and quotes become single-char wildcards
        pattern = re.sub(r"[^\w\s'-]", ".", name_query)
        name_filter = f'["name"~"{pattern}",i]'
    parts = []
    for selector in selectors:
        for element in ("node", "way"):
            parts.append(f"{element}{selector}{name_filter}({area});")
    joined = "".join(parts)
    return f"[out:json][timeout:{timeout}];({joined});out center {limit};"


def parse_altitude(raw) -> int:
    """Parse an OSM `ele` tag ("2450", "2450 m", "2,450.5"); unknown or bad values map to 0."""
    if raw is None:
        return UNKNOWN_ALTITUDE
    text = str(raw).strip().replace(" ", "")
    # thousands separator like "2,450" vs decimal comma like "2450,5"
    if re.fullmatch(r"\d{1,2},\d{3}(?:\.\d+)?m?", text):
        text = text.replace(",", "")
    match = _ELE_RE.search(text)
    if not match:
        return UNKNOWN_ALTITUDE
    try:
        value = int(round(float(match.group(0).replace(",", "."))))
    except ValueError:
        return UNKNOWN_ALTITUDE
    return value if value > 0 else UNKNOWN_ALTITUDE


def determine_poi_type(tags: Dict[str, str]) -> Optional[POIType]:
    if tags.get("tourism") == "wilderness_hut":
        return POIType.BIVOUAC
    if tags.get("amenity") == "shelter" and tags.get("shelter_type") == "basic_hut":
        return POIType.BIVOUAC
    if tags.get("amenity") == "drinking_water" or tags.get("natural") == "spring":
        return POIType.FOUNTAIN
    if tags.get("amenity") == "fountain" and tags.get("drinking_water") == "yes":
        return POIType.FOUNTAIN
    return None


def _yes(tags: Dict[str, str], *keys: str) -> bool:
    return any(tags.get(k, "").lower() in ("yes", "true", "1") for k in keys)


def element_to_poi(element: Dict) -> Optional[POI]:
    """Convert one Overpass element to a POI, or None when it is unusable."""
    tags = element.get("tags") or {}
    poi_type = determine_poi_type(tags)
    if poi_type is None:
        return None

    lat = element.get("lat")
    lon = element.get("lon")
    if lat is None and "center" in element:
        lat = element["center"].get("lat")
        lon = element["center"].get("lon")
    if lat is None or lon is None:
        return None

    try:
        coordinates = Coordinates(float(lat), float(lon))
    except (TypeError, ValueError, MalformedResponseError):
        return None

    if poi_type is POIType.FOUNTAIN:
        has_water = True
        has_roof = _yes(tags, "covered")
    else:
        has_water = _yes(tags, "drinking_water", "water_point")
        has_roof = True

    return POI(
        id=f"osm:{element.get('type', 'node')}:{element.get('id')}",
        type=poi_type,
        name=(tags.get("name") or "").strip() or DEFAULT_NAMES[poi_type],
        coordinates=coordinates,
        altitude=parse_altitude(tags.get("ele")),
        exposure=Exposure.VARIOUS,
        signal=SignalStrength.NONE,
        has_water=has_water,
        has_roof=has_roof,
        has_electricity=_yes(tags, "electricity", "power_supply"),
        has_fireplace=_yes(tags, "fireplace", "stove"),
        description=tags.get("description") or tags.get("note") or "",
        image_url=tags.get("image") or "",
    )


def process_elements(elements) -> List[POI]:
    """Convert Overpass elements to POIs, dropping unusable ones and duplicate ids."""
    if not isinstance(elements, list):
        raise MalformedResponseError("Overpass response has no element list", "overpass")
    pois = []
    seen = set()
    for element in elements:
        if not isinstance(element, dict):
            continue
        poi = element_to_poi(element)
        if poi is None or poi.id in seen:
            continue
        seen.add(poi.id)
        pois.append(poi)
    return pois


class OverpassPoiProvider(PoiProvider):
    """POI provider backed by the public Overpass API."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, base_urls: Optional[List[str]] = None,
                 timeout: Optional[float] = None, limit: Optional[int] = None,
                 name_search_bounds: Optional[Bounds] = None):
        super().__init__()
        config = get_config()
        self.session = session
        self.base_urls = base_urls or list(config.fetch_config.overpass_urls)
        self.timeout = timeout or config.get_timeout("overpass")
        self.limit = limit or config.fetch_config.result_limit
        self.name_search_bounds = name_search_bounds or Bounds(*config.fetch_config.name_search_bounds)
        self.headers = {"User-Agent": config.fetch_config.user_agent}

    async def get_metadata(self) -> ProviderMetadata:
        return ProviderMetadata(
            name="overpass",
            version="1.0",
            description="OpenStreetMap bivouacs and water sources via Overpass",
            capabilities=["search_area", "search_by_name"],
        )

    async def ping(self) -> None:
        await self._run_query("[out:json][timeout:5];node(1);out ids;")

    async def search_area(self, bounds: Bounds, poi_type: Optional[POIType] = None, token=None) -> List[POI]:
        selectors = self._selectors_for(poi_type)
        query = build_query(selectors, bounds.to_overpass(), self.limit, timeout=int(self.timeout))
        start = time.time()
        data = await self._run_query(query)
        if token is not None:
            token.raise_if_cancelled()
        pois = process_elements(data.get("elements"))
        logger.info(f"[Overpass] area {bounds.to_overpass()} type={poi_type.value if poi_type else 'all'} "
                    f"-> {len(pois)} POIs in {(time.time() - start) * 1000:.0f}ms")
        return pois

    async def search_by_name(self, query: str) -> List[POI]:
        query = (query or "").strip()
        if not query:
            return []
        ql = build_query(self._selectors_for(None), self.name_search_bounds.to_overpass(), self.limit,
                         name_query=query, timeout=int(self.timeout))
        data = await self._run_query(ql)
        pois = process_elements(data.get("elements"))
        # exact and prefix matches first
        lowered = query.lower()
        pois.sort(key=lambda p: (p.name.lower() != lowered, not p.name.lower().startswith(lowered)))
        logger.info(f"[Overpass] name search {query!r} -> {len(pois)} POIs")
        return pois

    def _selectors_for(self, poi_type: Optional[POIType]) -> List[str]:
        if poi_type is None:
            return [s for selectors in POI_TYPE_SELECTORS.values() for s in selectors]
        return POI_TYPE_SELECTORS[poi_type]

    async def _run_query(self, query: str) -> Dict:
        """Try each base URL in order; raise the last failure if none answers."""
        last_error: Optional[NetworkFailureError] = None
        for base_url in self.base_urls:
            try:
                data = await http_post_json(base_url, data={"data": query}, headers=self.headers,
                                            timeout=self.timeout, session=self.session,
                                            provider_name="overpass")
            except NetworkFailureError as e:
                self.logger.warning(f"[Overpass] {base_url} failed: {e}")
                last_error = e
                continue
            if not isinstance(data, dict):
                raise MalformedResponseError(f"{base_url} returned a non-object payload", "overpass")
            return data
        raise last_error or NetworkFailureError("No Overpass endpoint configured", "overpass")
