"""
Position and compass streams for the live survey feed.

Readings come from a phone running phyphox with remote access enabled
(the phone's GPS and magnetometer buffers are polled over HTTP). When no
phone is connected the app can still place the map from an IP lookup.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

from errors import ErrorKind, SensorError

logger = logging.getLogger(__name__)

IPINFO_URL = "https://ipinfo.io/json"


@dataclass(frozen=True)
class LocationReading:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class CompassReading:
    x: float
    y: float
    z: float


def ip_location(session: Optional[requests.Session] = None, timeout: float = 5.0) -> Optional[LocationReading]:
    """Coarse position from the client's IP address, or None if the lookup fails."""
    session = session or requests.Session()
    try:
        response = session.get(IPINFO_URL, timeout=timeout)
        if response.status_code == 200:
            lat, lon = map(float, response.json()["loc"].split(","))
            return LocationReading(lat, lon)
    except (requests.RequestException, KeyError, ValueError) as e:
        logger.warning(f"Failed to retrieve location: {e}")
    return None


class PhyphoxSource:
    """Reads the latest value of phyphox buffers over its remote-access REST interface."""

    LOCATION_BUFFERS = ("locLat", "locLon", "locAccuracy")
    COMPASS_BUFFERS = ("magX", "magY", "magZ")

    def __init__(self, base_url: Optional[str], session: Optional[requests.Session] = None, timeout: float = 2.0):
        self.base_url = (base_url or "").rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _latest(self, names) -> Optional[List[float]]:
        if not self.base_url:
            raise SensorError("No sensor source configured", ErrorKind.PERMISSION_DENIED)
        url = f"{self.base_url}/get?" + "&".join(names)
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise SensorError(f"Sensor read failed: {e}", ErrorKind.NETWORK) from e
        if response.status_code in (401, 403):
            raise SensorError("Sensor access denied", ErrorKind.PERMISSION_DENIED)
        if response.status_code != 200:
            raise SensorError(f"Sensor read failed: HTTP {response.status_code}", ErrorKind.NETWORK)

        try:
            buffers = response.json()["buffer"]
            values = []
            for name in names:
                data = buffers[name]["buffer"]
                if not data or data[-1] is None:
                    return None
                values.append(float(data[-1]))
        except (KeyError, TypeError, ValueError) as e:
            raise SensorError(f"Unexpected sensor payload: {e}", ErrorKind.MALFORMED_RESPONSE) from e
        return values

    def read_location(self) -> Optional[LocationReading]:
        values = self._latest(self.LOCATION_BUFFERS)
        if values is None:
            return None
        return LocationReading(latitude=values[0], longitude=values[1], accuracy=values[2])

    def read_compass(self) -> Optional[CompassReading]:
        values = self._latest(self.COMPASS_BUFFERS)
        if values is None:
            return None
        return CompassReading(*values)


class Subscription:
    """
    Polls `read` on a background thread and hands each reading to `on_reading`.

    Failed reads and callbacks are logged and skipped; nothing is retried.
    A permission error stops the subscription for good.
    """

    def __init__(self, name: str, read: Callable, on_reading: Callable, interval: float):
        self.name = name
        self.read = read
        self.on_reading = on_reading
        self.interval = interval
        self.disabled_reason: Optional[str] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def start(self) -> "Subscription":
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name=f"sensor-{self.name}", daemon=True)
            self._thread.start()
        return self

    def poll_once(self) -> bool:
        """Take one reading; returns False once the subscription has been disabled."""
        try:
            reading = self.read()
        except SensorError as e:
            if e.kind == ErrorKind.PERMISSION_DENIED:
                logger.info(f"{self.name}: {e}; feed disabled")
                self.disabled_reason = e.message
                return False
            logger.error(f"{self.name}: {e}")
            return True
        if reading is None:
            return True
        try:
            self.on_reading(reading)
        except Exception:
            logger.exception(f"{self.name}: reading handler failed")
        return True

    def _run(self):
        while not self._stop.is_set():
            if not self.poll_once():
                self._stop.set()
                return
            self._stop.wait(self.interval)

    def remove(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)


@contextmanager
def subscriptions(*subs: Subscription):
    """Start every subscription and remove all of them on the way out, whatever happens."""
    started = []
    try:
        for sub in subs:
            started.append(sub.start())
        yield started
    finally:
        for sub in started:
            sub.remove()
