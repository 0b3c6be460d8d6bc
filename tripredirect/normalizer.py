"""Turn the trip API's loosely-specified payload into TripRecords.

The API has exposed its trip list under several keys over time
(``alltrips``, ``trips``, ``data``) and sometimes nests it one level
down, e.g. ``{"user": {"alltrips": [...]}}``. Each strategy below knows
how to look in one place; the first that yields at least one usable
record wins. Missing or empty trip lists are a normal, empty result.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping, Sequence

from pydantic import ValidationError

from tripredirect.errors import MalformedPayloadError
from tripredirect.schemas import TripRecord

TRIP_FIELDS: Sequence[str] = ("alltrips", "trips", "data")

Strategy = Callable[[Mapping[str, Any]], List[TripRecord]]


def coerce_trips(items: Any) -> List[TripRecord]:
    """Coerce each element independently, dropping the ones that don't fit."""
    if not isinstance(items, list):
        return []
    trips: List[TripRecord] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            trips.append(TripRecord.model_validate(item))
        except ValidationError:
            continue
    return trips


def _field_strategy(name: str) -> Strategy:
    def extract(payload: Mapping[str, Any]) -> List[TripRecord]:
        return coerce_trips(payload.get(name))

    extract.__name__ = f"field:{name}"
    return extract


def _nested_strategy(payload: Mapping[str, Any]) -> List[TripRecord]:
    for value in payload.values():
        if not isinstance(value, dict):
            continue
        for name in TRIP_FIELDS:
            trips = coerce_trips(value.get(name))
            if trips:
                return trips
    return []


STRATEGIES: List[Strategy] = [_field_strategy(name) for name in TRIP_FIELDS] + [_nested_strategy]


def normalize_trips(payload: Any, strategies: Sequence[Strategy] = STRATEGIES) -> List[TripRecord]:
    """Return the trips found in ``payload`` in received order.

    Raises ``MalformedPayloadError`` only when ``payload`` is not an object.
    """
    if not isinstance(payload, dict):
        raise MalformedPayloadError(f"expected a JSON object, got {type(payload).__name__}")
    for strategy in strategies:
        trips = strategy(payload)
        if trips:
            return trips
    return []


def parse_payload(raw: bytes | str) -> List[TripRecord]:
    try:
        payload: Dict[str, Any] = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedPayloadError(f"failed to decode JSON: {exc}") from exc
    return normalize_trips(payload)
