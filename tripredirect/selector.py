"""Pick the trip a profile's short domain should point at."""
from __future__ import annotations

from typing import Iterable, List, Optional

from tripredirect.schemas import TripRecord


def is_ongoing(trip: TripRecord, now: float) -> bool:
    return trip.start_instant <= now and (trip.end_instant is None or trip.end_instant >= now)


def select_trip(trips: Iterable[TripRecord], now: float) -> Optional[TripRecord]:
    """Ongoing trip first, then the nearest future one, then the latest past one.

    Among several ongoing trips the first in input order wins. Ties on
    start (future) or end (past) also go to the earlier record.
    """
    future: List[TripRecord] = []
    past: List[TripRecord] = []

    for trip in trips:
        if is_ongoing(trip, now):
            return trip
        if trip.start_instant > now:
            future.append(trip)
        if trip.end_instant is not None and trip.end_instant < now:
            past.append(trip)

    # min/max keep the first of equal keys
    if future:
        return min(future, key=lambda t: t.start_instant)
    if past:
        return max(past, key=lambda t: t.end_instant)
    return None
