"""
Live survey data pushed to a Firebase Realtime Database.

Every write is a REST PUT, so it replaces whatever was stored at that key.
Nothing is appended and no history is kept.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

import requests

from errors import ErrorKind, StoreError

logger = logging.getLogger(__name__)

MARKERS_KEY = "markers"
LOCATION_KEY = "realtimeLocation"
COMPASS_KEY = "realtimeCompass"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class RealtimeStore:

    def __init__(self, database_url: Optional[str], auth_token: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.database_url = (database_url or "").rstrip("/")
        self.auth_token = auth_token
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.database_url)

    def put(self, key: str, payload: Dict) -> None:
        """Overwrite `key` with `payload`."""
        if not self.configured:
            raise StoreError("No realtime database configured (set FIREBASE_DATABASE_URL)",
                             ErrorKind.INVALID_INPUT)

        params = {"auth": self.auth_token} if self.auth_token else None
        try:
            response = self.session.put(
                f"{self.database_url}/{key}.json",
                json=payload,
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise StoreError(f"Error uploading {key}: {e}", ErrorKind.NETWORK) from e

    def upload_markers(self, points: Iterable, zone: Optional[str] = None) -> Dict:
        payload = {
            "markers": [{"latitude": lat, "longitude": lon} for lat, lon in points],
            "timestamp": utc_timestamp(),
        }
        if zone:
            payload["zone"] = zone
        self.put(MARKERS_KEY, payload)
        logger.info(f"Markers uploaded successfully ({len(payload['markers'])} points)")
        return payload

    def upload_location(self, latitude: float, longitude: float) -> Dict:
        payload = {
            "latitude": latitude,
            "longitude": longitude,
            "timestamp": utc_timestamp(),
        }
        self.put(LOCATION_KEY, payload)
        logger.debug("Location uploaded successfully")
        return payload

    def upload_compass(self, x: float, y: float, z: float) -> Dict:
        payload = {"x": x, "y": y, "z": z, "timestamp": utc_timestamp()}
        self.put(COMPASS_KEY, payload)
        logger.debug("Compass data uploaded successfully")
        return payload


class KeyedWriter:
    """
    One writer thread per key holding at most one pending write.

    Every key is overwrite-only, so a write submitted while another is
    still waiting replaces it: a slow link sends the newest value next
    instead of replaying a backlog. Writes that do go out keep submission
    order. A failed write is logged and dropped.
    """

    def __init__(self, name: str):
        self.name = name
        self.superseded = 0
        self._cond = threading.Condition()
        self._pending = None
        self._busy = False
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=f"writer-{name}", daemon=True)
        self._thread.start()

    def submit(self, write, *args) -> None:
        with self._cond:
            if self._closed:
                logger.warning(f"{self.name}: writer closed, dropping write")
                return
            if self._pending is not None:
                self.superseded += 1
            self._pending = (write, args)
            self._cond.notify_all()

    def _run(self):
        while True:
            with self._cond:
                while self._pending is None and not self._closed:
                    self._cond.wait()
                if self._pending is None:
                    return
                write, args = self._pending
                self._pending = None
                self._busy = True
            try:
                write(*args)
            except StoreError as e:
                logger.error(f"{self.name}: {e}")
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Block until the pending write, if any, has been sent."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending is None and not self._busy, timeout)

    def close(self, timeout: Optional[float] = None):
        """Send the pending write, then stop the thread."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        self._thread.join(timeout)
