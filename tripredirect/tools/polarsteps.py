from typing import List
from urllib.parse import quote
import logging
import os

import httpx

from tripredirect.config import DEFAULT_API_URL
from tripredirect.errors import MalformedPayloadError, UpstreamError
from tripredirect.normalizer import normalize_trips
from tripredirect.schemas import TripRecord

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_REDIRECT_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class PolarstepsClient:
    """
    Fetches a user's trips from the Polarsteps API.

    Only ``fetch_trips`` talks to the network; the payload shape is handled
    by ``tripredirect.normalizer``.
    """

    def __init__(self, base_url: str = DEFAULT_API_URL, *, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def profile_url(self, profile_id: str) -> str:
        return f"{self.base_url}/users/byusername/{quote(profile_id, safe='')}"

    async def fetch_trips(self, profile_id: str) -> List[TripRecord]:
        """Return the profile's trips in API order.

        Raises ``UpstreamError`` on transport failures and non-2xx statuses and
        ``MalformedPayloadError`` when the body is not a JSON object.
        """
        url = self.profile_url(profile_id)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise UpstreamError(f"HTTP request failed: {exc}") from exc

        if not response.is_success:
            raise UpstreamError(
                f"API returned status {response.status_code}", status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedPayloadError(f"failed to decode JSON: {exc}") from exc

        trips = normalize_trips(payload)
        logger.info("Found %d trips for %s", len(trips), profile_id)
        return trips
