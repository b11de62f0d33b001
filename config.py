import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# ─────────────── Defaults ───────────────
DEFAULT_MAREA_URL = "https://api.marea.ooo/v2"
DEFAULT_CENTER = [37.78825, -122.4324]
DEFAULT_SPACING = 0.001
MIN_SPACING = 0.0001
MAX_SPACING = 0.01
SPACING_STEP = 0.0001


@dataclass(frozen=True)
class Settings:
    firebase_database_url: Optional[str]
    firebase_auth_token: Optional[str]
    marea_api_token: Optional[str]
    marea_base_url: str = DEFAULT_MAREA_URL
    phyphox_url: Optional[str] = None
    request_timeout: float = 10.0
    location_interval: float = 5.0
    compass_interval: float = 0.5
    live_feed_idle_timeout: float = 600.0
    max_lattice_elements: int = 20000


def _float_env(name, default):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def load_settings() -> Settings:
    """Read settings from the environment (and a local .env file if present)."""
    load_dotenv()
    return Settings(
        firebase_database_url=os.getenv("FIREBASE_DATABASE_URL"),
        firebase_auth_token=os.getenv("FIREBASE_AUTH_TOKEN"),
        marea_api_token=os.getenv("MAREA_API_TOKEN"),
        marea_base_url=os.getenv("MAREA_BASE_URL", DEFAULT_MAREA_URL),
        phyphox_url=os.getenv("PHYPHOX_URL") or None,
        request_timeout=_float_env("REQUEST_TIMEOUT", 10.0),
        location_interval=_float_env("LOCATION_INTERVAL", 5.0),
        compass_interval=_float_env("COMPASS_INTERVAL", 0.5),
        live_feed_idle_timeout=_float_env("LIVE_FEED_IDLE_TIMEOUT", 600.0),
        max_lattice_elements=int(_float_env("MAX_LATTICE_ELEMENTS", 20000)),
    )
