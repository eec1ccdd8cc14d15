"""
Domain model for mountain points of interest.

POIs are serialized with camelCase keys (`hasWater`, `imageUrl`,
`coordinates: {lat, lng}`) so persisted blobs stay readable by the web client.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

from mountpro.providers.base import MalformedResponseError


class POIType(Enum):
    BIVOUAC = "bivouac"
    FOUNTAIN = "fountain"


class Exposure(Enum):
    NORTH = "north"
    NORTH_EAST = "north-east"
    EAST = "east"
    SOUTH_EAST = "south-east"
    SOUTH = "south"
    SOUTH_WEST = "south-west"
    WEST = "west"
    NORTH_WEST = "north-west"
    VARIOUS = "various"


class SignalStrength(Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXCELLENT = "excellent"


ALL_TYPES = "all"

# Altitude slider domain (Mont Blanc summit)
ALTITUDE_DOMAIN_MAX = 4810
ALTITUDE_MIN_GAP = 100
UNKNOWN_ALTITUDE = 0


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def __post_init__(self):
        if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
            raise MalformedResponseError(f"Non-finite coordinates: {self.lat}, {self.lng}")


@dataclass(frozen=True)
class Bounds:
    """Viewport bounding box in degrees."""
    south: float
    west: float
    north: float
    east: float

    def to_overpass(self) -> str:
        """Overpass expects (south, west, north, east)."""
        return f"{self.south},{self.west},{self.north},{self.east}"

    def as_tuple(self):
        return (self.south, self.west, self.north, self.east)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bounds":
        try:
            bounds = cls(
                south=float(data["south"]),
                west=float(data["west"]),
                north=float(data["north"]),
                east=float(data["east"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid bounds: {e}")
        if bounds.south > bounds.north:
            raise ValueError("Invalid bounds: south is greater than north")
        return bounds


def _enum_or_default(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class POI:
    id: str
    type: POIType
    name: str
    coordinates: Coordinates
    altitude: int = UNKNOWN_ALTITUDE
    exposure: Exposure = Exposure.VARIOUS
    signal: SignalStrength = SignalStrength.NONE
    has_water: bool = False
    has_roof: bool = False
    has_electricity: bool = False
    has_fireplace: bool = False
    description: str = ""
    image_url: str = ""

    @property
    def altitude_known(self) -> bool:
        return self.altitude != UNKNOWN_ALTITUDE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "coordinates": {"lat": self.coordinates.lat, "lng": self.coordinates.lng},
            "altitude": self.altitude,
            "exposure": self.exposure.value,
            "signal": self.signal.value,
            "hasWater": self.has_water,
            "hasRoof": self.has_roof,
            "hasElectricity": self.has_electricity,
            "hasFireplace": self.has_fireplace,
            "description": self.description,
            "imageUrl": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "POI":
        """Build a POI from its serialized form.

        Raises:
            MalformedResponseError: If identity, type, name or coordinates are unusable
        """
        if not isinstance(data, dict):
            raise MalformedResponseError(f"POI record must be an object, got {type(data).__name__}")
        poi_id = data.get("id")
        if not poi_id or not isinstance(poi_id, str):
            raise MalformedResponseError("POI record without id")
        try:
            poi_type = POIType(data.get("type"))
        except ValueError:
            raise MalformedResponseError(f"Unknown POI type for {poi_id}: {data.get('type')!r}")
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise MalformedResponseError(f"POI {poi_id} has no name")
        coords = data.get("coordinates") or {}
        try:
            coordinates = Coordinates(float(coords["lat"]), float(coords["lng"]))
        except (KeyError, TypeError, ValueError):
            raise MalformedResponseError(f"POI {poi_id} has invalid coordinates")
        try:
            altitude = int(data.get("altitude") or UNKNOWN_ALTITUDE)
        except (TypeError, ValueError, OverflowError):
            altitude = UNKNOWN_ALTITUDE
        return cls(
            id=poi_id,
            type=poi_type,
            name=name.strip(),
            coordinates=coordinates,
            altitude=altitude,
            exposure=_enum_or_default(Exposure, data.get("exposure"), Exposure.VARIOUS),
            signal=_enum_or_default(SignalStrength, data.get("signal"), SignalStrength.NONE),
            has_water=bool(data.get("hasWater", False)),
            has_roof=bool(data.get("hasRoof", False)),
            has_electricity=bool(data.get("hasElectricity", False)),
            has_fireplace=bool(data.get("hasFireplace", False)),
            description=data.get("description") or "",
            image_url=data.get("imageUrl") or "",
        )


TypeSelection = Union[POIType, str]


@dataclass(frozen=True)
class FilterCriteria:
    """Filter state recomputed from the UI on every evaluation."""
    poi_type: TypeSelection = POIType.BIVOUAC
    altitude_min: int = 0
    altitude_max: int = ALTITUDE_DOMAIN_MAX
    exposures: FrozenSet[Exposure] = field(default_factory=frozenset)
    require_signal: bool = False
    require_water: bool = False
    require_roof: bool = False
    require_electricity: bool = False
    require_fireplace: bool = False

    def __post_init__(self):
        if self.poi_type != ALL_TYPES and not isinstance(self.poi_type, POIType):
            raise ValueError(f"Invalid type selection: {self.poi_type!r}")
        if not (0 <= self.altitude_min <= self.altitude_max <= ALTITUDE_DOMAIN_MAX):
            raise ValueError(f"Invalid altitude range: [{self.altitude_min}, {self.altitude_max}]")
        # accept any iterable of exposures
        object.__setattr__(self, "exposures", frozenset(self.exposures))

    @property
    def type_filter(self) -> Optional[POIType]:
        """The concrete type to query providers for, or None for all types."""
        return None if self.poi_type == ALL_TYPES else self.poi_type

    def with_altitude_min(self, value: int) -> "FilterCriteria":
        """Move the lower slider handle, keeping it below the upper one."""
        value = max(0, min(int(value), self.altitude_max - ALTITUDE_MIN_GAP))
        return replace(self, altitude_min=value)

    def with_altitude_max(self, value: int) -> "FilterCriteria":
        """Move the upper slider handle, keeping it above the lower one."""
        value = min(ALTITUDE_DOMAIN_MAX, max(int(value), self.altitude_min + ALTITUDE_MIN_GAP))
        return replace(self, altitude_max=value)

    def toggle_exposure(self, exposure: Exposure) -> "FilterCriteria":
        if exposure in self.exposures:
            return replace(self, exposures=self.exposures - {exposure})
        return replace(self, exposures=self.exposures | {exposure})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.poi_type if self.poi_type == ALL_TYPES else self.poi_type.value,
            "altitudeMin": self.altitude_min,
            "altitudeMax": self.altitude_max,
            "exposures": sorted(e.value for e in self.exposures),
            "signal": self.require_signal,
            "water": self.require_water,
            "roof": self.require_roof,
            "electricity": self.require_electricity,
            "fireplace": self.require_fireplace,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilterCriteria":
        raw_type = data.get("type", POIType.BIVOUAC.value)
        poi_type = ALL_TYPES if str(raw_type).lower() == ALL_TYPES else POIType(raw_type)
        return cls(
            poi_type=poi_type,
            altitude_min=int(data.get("altitudeMin", 0)),
            altitude_max=int(data.get("altitudeMax", ALTITUDE_DOMAIN_MAX)),
            exposures=frozenset(Exposure(e) for e in data.get("exposures", [])),
            require_signal=bool(data.get("signal", False)),
            require_water=bool(data.get("water", False)),
            require_roof=bool(data.get("roof", False)),
            require_electricity=bool(data.get("electricity", False)),
            require_fireplace=bool(data.get("fireplace", False)),
        )


LIVE_INFO_VERSION = 1


@dataclass(frozen=True)
class LiveInfo:
    """Best-effort supplementary info for one POI. Every field may be absent."""
    version: int = LIVE_INFO_VERSION
    summary: Optional[str] = None
    signal_strength: Optional[int] = None
    google_maps_url: Optional[str] = None
    weather: Optional[str] = None
    temperature_c: Optional[float] = None
    sources: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "LiveInfo":
        """Keep only well-typed fields from a loosely structured payload."""
        if not isinstance(payload, dict):
            return cls()

        def _str(key):
            value = payload.get(key)
            return value.strip() if isinstance(value, str) and value.strip() else None

        strength = payload.get("strength", payload.get("signal_strength"))
        if isinstance(strength, bool) or not isinstance(strength, (int, float)):
            strength = None
        else:
            strength = max(0, min(4, int(strength)))

        temperature = payload.get("temperature_c")
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
            temperature = None

        maps_url = _str("google_maps_url")
        if maps_url and not maps_url.startswith(("http://", "https://")):
            maps_url = None

        sources = payload.get("sources")
        if not isinstance(sources, list):
            sources = []

        return cls(
            summary=_str("summary") or _str("text"),
            signal_strength=strength,
            google_maps_url=maps_url,
            weather=_str("weather"),
            temperature_c=float(temperature) if temperature is not None else None,
            sources=[s for s in sources if isinstance(s, str)],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "summary": self.summary,
            "signalStrength": self.signal_strength,
            "googleMapsUrl": self.google_maps_url,
            "weather": self.weather,
            "temperatureC": self.temperature_c,
            "sources": list(self.sources),
        }


def pois_from_dicts(records: Iterable[Dict[str, Any]]) -> List[POI]:
    return [POI.from_dict(r) for r in records]
