from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import RedirectResponse

from tripredirect.cache import FreshnessCache, MidnightResetScheduler
from tripredirect.config import Settings
from tripredirect.dispatch import TaskPool
from tripredirect.domains import DomainTable
from tripredirect.orchestrator import TripResolver
from tripredirect.schemas import ClientInfo
from tripredirect.tools.analytics import RybbitClient
from tripredirect.tools.geo import GeoLocator
from tripredirect.tools.polarsteps import PolarstepsClient
from tripredirect.visits import VisitRecorder, VisitStore

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_REDIRECT_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


def request_host(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-host")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("host", "")


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the peer address."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else ""


def build_resolver(settings: Settings, visit_store: Optional[VisitStore] = None) -> TripResolver:
    visits = None
    if visit_store is not None:
        visits = VisitRecorder(visit_store, GeoLocator(settings.geo_api_url))
    return TripResolver(
        FreshnessCache(),
        PolarstepsClient(settings.api_url, timeout=settings.upstream_timeout),
        profile_base_url=settings.profile_base_url,
        analytics=RybbitClient(settings.rybbit),
        visits=visits,
        tasks=TaskPool(),
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    domains: Optional[DomainTable] = None,
    resolver: Optional[TripResolver] = None,
) -> FastAPI:
    """Wire the redirect service.

    ``domains`` and ``resolver`` are built from ``settings`` at startup when
    not supplied; tests pass their own to avoid touching disk or network.
    """
    settings = settings if settings is not None else Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        table = domains if domains is not None else DomainTable.from_yaml(settings.domains_file)

        visit_store: Optional[VisitStore] = None
        active = resolver
        if active is None:
            visit_store = VisitStore.from_url(settings.database_url)
            await visit_store.create_tables()
            active = build_resolver(settings, visit_store)

        scheduler = MidnightResetScheduler(active.cache)
        scheduler.start()

        app.state.domains = table
        app.state.resolver = active
        app.state.scheduler = scheduler

        logger.info("Redirector serving %d domain(s)", len(table))
        if active.analytics is not None and active.analytics.enabled:
            logger.info("Rybbit analytics enabled (site id: %s)", settings.rybbit.site_id)
        try:
            yield
        finally:
            await scheduler.stop()
            await active.tasks.drain()
            logger.info("Redirector shutdown (%d cached host(s))", await active.cache.size())
            if visit_store is not None:
                logger.info("Visit log holds %d visit(s)", await visit_store.count())
                await visit_store.close()

    app = FastAPI(title="Trip Redirect", lifespan=lifespan)

    @app.get("/")
    async def redirect(request: Request) -> RedirectResponse:
        """Send the visitor to the current trip of the profile mapped to this host."""
        host = request_host(request)
        trip_resolver: TripResolver = request.app.state.resolver
        client = ClientInfo(
            ip=client_ip(request),
            user_agent=request.headers.get("user-agent", ""),
            referrer=request.headers.get("referer", ""),
            path=request.url.path,
        )

        profile_id = request.app.state.domains.lookup(host)
        if profile_id is None:
            trip_resolver.report_unknown_host(host, client)
            raise HTTPException(status_code=404, detail="Not Found")

        resolution = await trip_resolver.resolve(host, profile_id, client)
        return RedirectResponse(resolution.target, status_code=302)

    return app


app = create_app()
