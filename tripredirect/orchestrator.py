# tripredirect/orchestrator.py
from __future__ import annotations

import logging
import os
import time
from typing import Awaitable, Callable, List, Optional, Protocol

from tripredirect.cache import FreshnessCache
from tripredirect.config import DEFAULT_PROFILE_BASE_URL
from tripredirect.dispatch import TaskPool
from tripredirect.domains import normalize_host
from tripredirect.errors import MalformedPayloadError, UpstreamError
from tripredirect.schemas import ClientInfo, EventType, Outcome, Resolution, RybbitEvent, TripRecord
from tripredirect.selector import select_trip
from tripredirect.tools.analytics import RybbitClient
from tripredirect.visits import VisitRecorder

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_REDIRECT_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class TripFetcher(Protocol):
    def fetch_trips(self, profile_id: str) -> Awaitable[List[TripRecord]]: ...


def trip_url(base_url: str, profile_id: str, trip: TripRecord) -> str:
    return f"{base_url.rstrip('/')}/{profile_id}/{trip.id}-{trip.slug}"


def profile_url(base_url: str, profile_id: str) -> str:
    return f"{base_url.rstrip('/')}/{profile_id}"


class TripResolver:
    """Resolve a known host to the URL of its profile's best trip.

    The cache is consulted first; on a miss the profile's trips are fetched,
    normalised and ranked. Only a selected trip is cached. Every failure
    along the way degrades to the profile page, so callers always get a
    target back.

    Visit logging and analytics are handed to ``tasks`` and never awaited
    here.
    """

    def __init__(
        self,
        cache: FreshnessCache,
        fetcher: TripFetcher,
        *,
        profile_base_url: str = DEFAULT_PROFILE_BASE_URL,
        analytics: Optional[RybbitClient] = None,
        visits: Optional[VisitRecorder] = None,
        tasks: Optional[TaskPool] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.fetcher = fetcher
        self.profile_base_url = profile_base_url.rstrip("/")
        self.analytics = analytics
        self.visits = visits
        self.tasks = tasks if tasks is not None else TaskPool()
        self.clock = clock

    async def resolve(self, host: str, profile_id: str, client: Optional[ClientInfo] = None) -> Resolution:
        client = client or ClientInfo()
        key = normalize_host(host)
        fallback = profile_url(self.profile_base_url, profile_id)

        if self.visits is not None:
            self._dispatch(self.visits.record(key, profile_id, client.ip), "visit record")

        cached = await self.cache.get(key)
        if cached is not None:
            logger.info("Cache hit for %s -> %s", key, cached)
            return Resolution(target=cached, outcome=Outcome.SUCCESS_TRIP, cached=True)

        logger.info("Cache miss for %s", key)

        try:
            trips = await self.fetcher.fetch_trips(profile_id)
        except (UpstreamError, MalformedPayloadError) as exc:
            logger.warning("Failed to fetch trips for %s: %s", profile_id, exc)
            self._track("error", key, profile_id, client)
            return Resolution(target=fallback, outcome=Outcome.ERROR_FALLBACK)

        if not trips:
            logger.info("No trips found for %s -> redirect to profile", profile_id)
            self._track("pageview", key, profile_id, client)
            return Resolution(target=fallback, outcome=Outcome.FALLBACK_EMPTY)

        selected = select_trip(trips, self.clock())
        if selected is None:
            logger.info("No suitable trip found for %s -> redirect to profile", profile_id)
            self._track("pageview", key, profile_id, client)
            return Resolution(target=fallback, outcome=Outcome.FALLBACK_NO_MATCH)

        target = trip_url(self.profile_base_url, profile_id, selected)
        await self.cache.put(key, target)

        logger.info("Redirecting %s -> %s", profile_id, target)
        self._track("outbound", key, profile_id, client, page_title=f"Trip: {selected.slug}")
        return Resolution(target=target, outcome=Outcome.SUCCESS_TRIP, trip=selected)

    def report_unknown_host(self, host: str, client: Optional[ClientInfo] = None) -> None:
        logger.warning("Unknown host: %s", host)
        self._track("error", normalize_host(host), "", client or ClientInfo())

    def _track(
        self,
        event_type: EventType,
        host: str,
        profile_id: str,
        client: ClientInfo,
        *,
        page_title: str = "",
    ) -> None:
        if self.analytics is None or not self.analytics.enabled:
            return
        event = RybbitEvent(
            type=event_type,
            hostname=host,
            pathname=client.path,
            page_title=page_title,
            user_agent=client.user_agent,
            ip_address=client.ip,
            referrer=client.referrer,
            user_id=profile_id,
        )
        self._dispatch(self.analytics.send(event), f"{event_type} event")

    def _dispatch(self, work: Awaitable[object], label: str) -> None:
        try:
            self.tasks.spawn(work, label)
        except Exception:
            logger.warning("Could not schedule %s", label, exc_info=True)
