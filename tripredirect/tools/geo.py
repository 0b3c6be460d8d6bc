from ipaddress import ip_address
from typing import Optional
import logging
import os

import httpx

from tripredirect.config import DEFAULT_GEO_API_URL
from tripredirect.schemas import GeoLocation

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_REDIRECT_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


def is_public_ip(ip: str) -> bool:
    try:
        addr = ip_address(ip)
    except ValueError:
        return False
    return addr.is_global


class GeoLocator:
    """Best-effort country/city lookup for a client IP."""

    def __init__(self, base_url: str = DEFAULT_GEO_API_URL, *, timeout: float = 3.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def locate(self, ip: str) -> Optional[GeoLocation]:
        if not is_public_ip(ip):
            return None
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.get(f"{self.base_url}/{ip}")
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError):
            logger.warning("Could not get geolocation for IP %s", ip, exc_info=True)
            return None

        if not isinstance(data, dict) or data.get("status") == "fail":
            return None
        return GeoLocation(
            country=data.get("country") or "unknown",
            city=data.get("city") or "unknown",
        )
