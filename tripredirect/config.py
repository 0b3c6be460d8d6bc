"""Environment-driven settings for the redirect service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_REDIRECT_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

DEFAULT_API_URL = "https://api.polarsteps.com"
DEFAULT_PROFILE_BASE_URL = "https://polarsteps.com"
DEFAULT_GEO_API_URL = "http://ip-api.com/json"


@dataclass
class RybbitSettings:
    api_key: str = ""
    api_url: str = ""
    site_id: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.api_url and self.site_id)

    @property
    def partially_configured(self) -> bool:
        return not self.enabled and bool(self.api_key or self.api_url or self.site_id)


@dataclass
class Settings:
    port: int = 3000
    db_path: str = "stats.db"
    domains_file: str = "domains.yaml"
    api_url: str = DEFAULT_API_URL
    profile_base_url: str = DEFAULT_PROFILE_BASE_URL
    upstream_timeout: float = 10.0
    geo_api_url: str = DEFAULT_GEO_API_URL
    rybbit: RybbitSettings = field(default_factory=RybbitSettings)

    @property
    def database_url(self) -> str:
        return f"sqlite+aiosqlite:///{self.db_path}"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and a .env file if present)."""
        load_dotenv()

        settings = cls(
            port=_int_env("PORT", 3000),
            db_path=os.getenv("DB_PATH") or "stats.db",
            domains_file=os.getenv("DOMAINS_FILE") or "domains.yaml",
            api_url=(os.getenv("POLARSTEPS_API_URL") or DEFAULT_API_URL).rstrip("/"),
            profile_base_url=(os.getenv("PROFILE_BASE_URL") or DEFAULT_PROFILE_BASE_URL).rstrip("/"),
            upstream_timeout=_float_env("UPSTREAM_TIMEOUT", 10.0),
            geo_api_url=(os.getenv("GEO_API_URL") or DEFAULT_GEO_API_URL).rstrip("/"),
            rybbit=RybbitSettings(
                api_key=os.getenv("RYBBIT_API_KEY", ""),
                api_url=os.getenv("RYBBIT_API_URL", ""),
                site_id=os.getenv("RYBBIT_SITE_ID", ""),
            ),
        )

        if settings.rybbit.partially_configured:
            logger.warning(
                "Rybbit analytics partially configured - analytics disabled. "
                "Ensure RYBBIT_API_KEY, RYBBIT_API_URL and RYBBIT_SITE_ID are all set."
            )
        return settings


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d", name, raw, default)
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %.1f", name, raw, default)
        return default
    return value if value > 0 else default
