"""SQLite visit log.

One row per request to a known host. Writes happen from background tasks
and are never awaited by the redirect handler.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, func, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tripredirect.schemas import GeoLocation, Visit
from tripredirect.tools.geo import GeoLocator

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_REDIRECT_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class Base(DeclarativeBase):
    """Base class for visit-log tables."""


class VisitModel(Base):
    __tablename__ = "visits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String, nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    country: Mapped[str] = mapped_column(String, nullable=False, default="unknown")
    city: Mapped[str] = mapped_column(String, nullable=False, default="unknown")


class VisitStore:
    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> "VisitStore":
        return cls(create_async_engine(database_url, echo=False))

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def record(self, visit: Visit) -> None:
        async with self._sessions() as session:
            session.add(
                VisitModel(
                    url=visit.url,
                    timestamp=visit.timestamp,
                    country=visit.country,
                    city=visit.city,
                )
            )
            await session.commit()

    async def count(self) -> int:
        async with self._sessions() as session:
            return int(await session.scalar(select(func.count(VisitModel.id))) or 0)

    async def close(self) -> None:
        await self.engine.dispose()


class VisitRecorder:
    """Geolocates the client and appends a visit row."""

    def __init__(self, store: VisitStore, geolocator: Optional[GeoLocator] = None):
        self.store = store
        self.geolocator = geolocator

    async def record(self, host: str, profile_id: str, ip: str, when: Optional[datetime] = None) -> Visit:
        geo: Optional[GeoLocation] = None
        if self.geolocator is not None and ip:
            geo = await self.geolocator.locate(ip)
        geo = geo or GeoLocation()

        if geo.country != "unknown" or geo.city != "unknown":
            logger.info("Request from host=%s -> profile=%s, location=%s, %s", host, profile_id, geo.city, geo.country)
        else:
            logger.info("Request from host=%s -> profile=%s", host, profile_id)

        visit = Visit(url=host, timestamp=when or datetime.now(), country=geo.country, city=geo.city)
        await self.store.record(visit)
        return visit
