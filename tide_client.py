"""
Tide extremes for the surveyor's position.

Uses the Marea tides API (FES2014 model). Only the extremes (highs and lows)
are kept; the hourly heights are ignored.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import List, Optional, Tuple

import requests

from config import DEFAULT_MAREA_URL
from errors import ErrorKind, TideError

logger = logging.getLogger(__name__)

TIDE_PARAMS = {
    "duration": "1440",
    "interval": "60",
    "model": "FES2014",
    "datum": "MSL",
}

NO_TIDE_DATA = "No tide data"


@dataclass(frozen=True)
class TideExtreme:
    time: datetime
    height: float
    state: str

    @property
    def is_high(self) -> bool:
        return "HIGH" in self.state.upper()

    @property
    def is_low(self) -> bool:
        return "LOW" in self.state.upper()


@dataclass
class TideSummary:
    high: List[TideExtreme] = field(default_factory=list)
    low: List[TideExtreme] = field(default_factory=list)
    max_height: Optional[float] = None
    text: str = NO_TIDE_DATA

    @property
    def has_data(self) -> bool:
        return bool(self.high or self.low)


def parse_timestamp(value) -> datetime:
    """Parse an ISO-8601 string or unix seconds into an aware UTC datetime."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_local_time(moment: datetime, tz: Optional[tzinfo] = None) -> str:
    """Render a UTC instant in local (or the given) time, 24h clock with zone name."""
    local = moment.astimezone(tz)
    return local.strftime("%b %d, %Y, %H:%M:%S %Z").strip()


def partition_extremes(extremes: List[TideExtreme]) -> Tuple[List[TideExtreme], List[TideExtreme]]:
    high = [e for e in extremes if e.is_high]
    low = [e for e in extremes if e.is_low]
    return high, low


def summarize(extremes: List[TideExtreme], tz: Optional[tzinfo] = None) -> TideSummary:
    if not extremes:
        return TideSummary()
    high, low = partition_extremes(extremes)
    lines = [f"{e.state} at {format_local_time(e.time, tz)}: {e.height} m" for e in extremes]
    return TideSummary(
        high=high,
        low=low,
        max_height=max(e.height for e in extremes),
        text="\n".join(lines),
    )


class TideClient:
    """Thin client for GET /tides on the Marea API."""

    def __init__(self, api_token: Optional[str], base_url: str = DEFAULT_MAREA_URL,
                 session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_extremes(self, latitude: float, longitude: float) -> List[TideExtreme]:
        if not self.api_token:
            raise TideError("No tide API token configured (set MAREA_API_TOKEN)", ErrorKind.INVALID_INPUT)

        logger.info(f"Fetching tide data for location: {latitude}, {longitude}")
        params = {"latitude": latitude, "longitude": longitude, **TIDE_PARAMS}
        try:
            response = self.session.get(
                f"{self.base_url}/tides",
                params=params,
                headers={"x-marea-api-token": self.api_token},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TideError(f"Failed to fetch tide data: {e}", ErrorKind.NETWORK) from e

        if response.status_code != 200:
            raise TideError(
                f"Failed to fetch tide data: HTTP {response.status_code}",
                ErrorKind.NETWORK,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TideError("No tide data found or invalid response structure",
                            ErrorKind.MALFORMED_RESPONSE) from e

        raw = data.get("extremes") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            raise TideError("No tide data found or invalid response structure",
                            ErrorKind.MALFORMED_RESPONSE)

        if not all(isinstance(item, dict) for item in raw):
            raise TideError("Malformed tide extreme: entries must be objects", ErrorKind.MALFORMED_RESPONSE)

        try:
            extremes = [
                TideExtreme(
                    time=parse_timestamp(item.get("datetime", item.get("timestamp"))),
                    height=float(item["height"]),
                    state=str(item.get("state", "")),
                )
                for item in raw
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise TideError(f"Malformed tide extreme: {e}", ErrorKind.MALFORMED_RESPONSE) from e

        logger.info(f"Received {len(extremes)} tide extremes")
        return extremes

    def fetch_summary(self, latitude: float, longitude: float, tz: Optional[tzinfo] = None) -> TideSummary:
        return summarize(self.fetch_extremes(latitude, longitude), tz)
