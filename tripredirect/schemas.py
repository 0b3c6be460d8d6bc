from datetime import datetime
from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, PositiveInt

# ------- Upstream models -------
class TripRecord(BaseModel):
    """One itinerary entry as exposed by the trip API."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: PositiveInt
    slug: str = Field(..., min_length=1)
    start_instant: float = Field(..., validation_alias=AliasChoices("start_date", "start_instant"))
    end_instant: Optional[float] = Field(None, validation_alias=AliasChoices("end_date", "end_instant"))

# ------- Resolution models -------
class Outcome(str, Enum):
    SUCCESS_TRIP = "success-trip"
    FALLBACK_EMPTY = "success-fallback-empty"
    FALLBACK_NO_MATCH = "success-fallback-no-match"
    ERROR_FALLBACK = "error-fallback"

class Resolution(BaseModel):
    target: str
    outcome: Outcome
    trip: Optional[TripRecord] = None
    cached: bool = False

class ClientInfo(BaseModel):
    ip: str = ""
    user_agent: str = ""
    referrer: str = ""
    path: str = "/"

# ------- Side-effect models -------
EventType = Literal["pageview", "custom_event", "performance", "outbound", "error"]

class RybbitEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: EventType
    site_id: str = ""
    pathname: str = ""
    hostname: str = ""
    page_title: str = ""
    referrer: str = ""
    user_id: str = ""
    user_agent: str = ""
    ip_address: str = ""
    querystring: str = ""
    language: str = ""
    screen_width: int = Field(0, alias="screenWidth")
    screen_height: int = Field(0, alias="screenHeight")

    def to_payload(self) -> dict:
        """Serialise with empty fields dropped, as the collector expects."""
        data = self.model_dump(by_alias=True)
        return {key: value for key, value in data.items() if value not in ("", 0, None)}

class GeoLocation(BaseModel):
    country: str = "unknown"
    city: str = "unknown"

class Visit(BaseModel):
    url: str
    timestamp: datetime
    country: str = "unknown"
    city: str = "unknown"
