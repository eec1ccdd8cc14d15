"""
Filter pipeline: pure predicate evaluation over a store snapshot.

The visible set is recomputed from scratch on every criteria or store
change; nothing here mutates shared state.
"""

from typing import Iterable, List

from mountpro.src.models import (
    ALL_TYPES,
    Exposure,
    FilterCriteria,
    POI,
    SignalStrength,
    UNKNOWN_ALTITUDE,
)


def matches_type(poi: POI, criteria: FilterCriteria) -> bool:
    return criteria.poi_type == ALL_TYPES or poi.type == criteria.poi_type


def matches_altitude(poi: POI, criteria: FilterCriteria) -> bool:
    # unverified altitude is never hidden by the range filter
    if poi.altitude == UNKNOWN_ALTITUDE:
        return True
    return criteria.altitude_min <= poi.altitude <= criteria.altitude_max


def matches_exposure(poi: POI, criteria: FilterCriteria) -> bool:
    if not criteria.exposures:
        return True
    return poi.exposure in criteria.exposures or poi.exposure == Exposure.VARIOUS


def matches_amenities(poi: POI, criteria: FilterCriteria) -> bool:
    if criteria.require_signal and poi.signal == SignalStrength.NONE:
        return False
    if criteria.require_water and not poi.has_water:
        return False
    if criteria.require_roof and not poi.has_roof:
        return False
    if criteria.require_electricity and not poi.has_electricity:
        return False
    if criteria.require_fireplace and not poi.has_fireplace:
        return False
    return True


def matches(poi: POI, criteria: FilterCriteria) -> bool:
    return (matches_type(poi, criteria)
            and matches_altitude(poi, criteria)
            and matches_exposure(poi, criteria)
            and matches_amenities(poi, criteria))


def evaluate(snapshot: Iterable[POI], criteria: FilterCriteria) -> List[POI]:
    """Return the POIs passing every filter, in snapshot order."""
    return [poi for poi in snapshot if matches(poi, criteria)]
