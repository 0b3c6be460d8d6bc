from typing import Optional
import logging
import os

import httpx

from tripredirect.config import RybbitSettings
from tripredirect.schemas import RybbitEvent

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_REDIRECT_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

ACCEPTED_STATUSES = (200, 201, 202)


class RybbitClient:
    """Posts tracking events to a Rybbit collector.

    ``send`` is awaited from a background task, never from the request path.
    When the collector is not fully configured every call is a no-op.
    """

    def __init__(self, settings: Optional[RybbitSettings] = None, *, timeout: float = 5.0):
        self.settings = settings if settings is not None else RybbitSettings()
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    async def send(self, event: RybbitEvent) -> bool:
        if not self.enabled:
            return False
        if not event.site_id:
            event = event.model_copy(update={"site_id": self.settings.site_id})

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.settings.api_url,
                json=event.to_payload(),
                headers={"Authorization": f"Bearer {self.settings.api_key}"},
            )

        if response.status_code not in ACCEPTED_STATUSES:
            logger.warning("Rybbit API returned status %d", response.status_code)
            return False
        return True
