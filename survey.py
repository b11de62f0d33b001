"""
State behind the survey map screen.

One configurable session replaces separate screens for the square grid,
the point grid and the tide-zone tools: the grid shape and the optional
tools are switched with SurveyConfig.
"""

import logging
import math
import time
import uuid
from contextlib import ExitStack
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from grid_builder import GridResult, GridShape, LatticeAnchor, build_grid
from config import DEFAULT_SPACING
from errors import ErrorKind, FieldMapError
from realtime_store import COMPASS_KEY, LOCATION_KEY, KeyedWriter, RealtimeStore
from sensors import CompassReading, LocationReading, Subscription, subscriptions
from tide_client import TideSummary

logger = logging.getLogger(__name__)


class TideZone(str, Enum):
    HIGH = "high"
    MID = "mid"
    LOW = "low"


@dataclass(frozen=True)
class BoundaryPoint:
    latitude: float
    longitude: float
    key: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def coordinate(self):
        return (self.latitude, self.longitude)


@dataclass
class SurveyConfig:
    spacing: float = DEFAULT_SPACING
    shape: GridShape = GridShape.POINT
    anchor: LatticeAnchor = LatticeAnchor.BBOX
    upload_enabled: bool = True
    tide_zones_enabled: bool = True
    live_feed_enabled: bool = True
    max_lattice_elements: Optional[int] = None


class SurveySession:
    """Boundary points plus everything derived from them."""

    def __init__(self, config: Optional[SurveyConfig] = None):
        self.config = config or SurveyConfig()
        self.points: List[BoundaryPoint] = []
        self.grid: Optional[GridResult] = None
        self.tide: Optional[TideSummary] = None
        self.zone: Optional[TideZone] = None
        self.location: Optional[LocationReading] = None
        self.compass: Optional[CompassReading] = None

    # ─────────────── Boundary ───────────────
    @property
    def coordinates(self):
        return [p.coordinate for p in self.points]

    @property
    def has_polygon(self) -> bool:
        return len(set(self.coordinates)) >= 3

    def _invalidate(self):
        self.grid = None

    def add_point(self, latitude: float, longitude: float) -> BoundaryPoint:
        point = BoundaryPoint(float(latitude), float(longitude))
        self.points = self.points + [point]
        self._invalidate()
        return point

    def remove_point(self, key: str) -> bool:
        remaining = [p for p in self.points if p.key != key]
        if len(remaining) == len(self.points):
            return False
        self.points = remaining
        self._invalidate()
        return True

    def find_point(self, latitude: float, longitude: float, tolerance: float = 1e-7) -> Optional[BoundaryPoint]:
        """Closest boundary point within `tolerance` degrees, used to map marker clicks back to keys."""
        best, best_dist = None, tolerance
        for point in self.points:
            dist = math.hypot(point.latitude - latitude, point.longitude - longitude)
            if dist <= best_dist:
                best, best_dist = point, dist
        return best

    def remove_nearest(self, latitude: float, longitude: float, tolerance: float = 1e-7) -> bool:
        point = self.find_point(latitude, longitude, tolerance)
        return point is not None and self.remove_point(point.key)

    def tap(self, latitude: float, longitude: float, tolerance: float = 1e-7) -> Optional[BoundaryPoint]:
        """A tap on a pin removes it; a tap anywhere else, drawn shapes included, places a new pin."""
        if self.remove_nearest(latitude, longitude, tolerance):
            return None
        return self.add_point(latitude, longitude)

    # ─────────────── Grid ───────────────
    def set_spacing(self, spacing: float):
        if spacing != self.config.spacing:
            self.config = replace(self.config, spacing=spacing)
            self._invalidate()

    def set_shape(self, shape):
        shape = GridShape(shape)
        if shape != self.config.shape:
            self.config = replace(self.config, shape=shape)
            self._invalidate()

    def set_anchor(self, anchor):
        anchor = LatticeAnchor(anchor)
        if anchor != self.config.anchor:
            self.config = replace(self.config, anchor=anchor)
            self._invalidate()

    def generate_grid(self) -> GridResult:
        """Rebuild the grid from the current boundary; the old result is replaced, never patched."""
        self.grid = build_grid(
            self.coordinates,
            self.config.spacing,
            shape=self.config.shape,
            anchor=self.config.anchor,
            limit=self.config.max_lattice_elements,
        )
        logger.info(f"Generated {self.config.shape.value} grid with {len(self.grid)} elements")
        return self.grid

    @property
    def area_m2(self) -> float:
        return self.grid.area_m2 if self.grid is not None else 0.0

    # ─────────────── Tides ───────────────
    def classify_zone(self, zone) -> TideZone:
        if not self.config.tide_zones_enabled:
            raise FieldMapError("Tide zone classification is turned off", ErrorKind.INVALID_INPUT)
        self.zone = TideZone(zone)
        return self.zone

    def reset(self):
        self.points = []
        self.grid = None
        self.tide = None
        self.zone = None
        self.location = None
        self.compass = None


class LiveFeed:
    """
    Streams position and compass readings into the session and the realtime store.

    Each stream gets its own writer so writes to one key stay in order.
    Use as a context manager, or call stop() from every exit path. With an
    idle_timeout the pollers also stop themselves once touch() has not been
    called for that many seconds, so an abandoned page does not poll forever.
    """

    def __init__(self, session: SurveySession, store: RealtimeStore, location_read, compass_read,
                 location_interval: float = 5.0, compass_interval: float = 0.5,
                 idle_timeout: Optional[float] = None):
        self.session = session
        self.store = store
        self.idle_timeout = idle_timeout
        self.idle = False
        self._last_seen = time.monotonic()
        self.location_sub = Subscription("location", self._guarded(location_read), self._on_location,
                                         location_interval)
        self.compass_sub = Subscription("compass", self._guarded(compass_read), self._on_compass,
                                        compass_interval)
        self._writers = {}
        self._stack: Optional[ExitStack] = None

    @property
    def running(self) -> bool:
        return self.location_sub.active or self.compass_sub.active

    def touch(self):
        """Record that someone is still looking at the page."""
        self._last_seen = time.monotonic()

    def _expired(self) -> bool:
        return self.idle_timeout is not None and time.monotonic() - self._last_seen > self.idle_timeout

    def _guarded(self, read):
        def guarded_read():
            if self._expired():
                self._halt()
                return None
            return read()
        return guarded_read

    def _halt(self):
        # Runs on a poller thread: flag everything to stop but never join here
        if not self.idle:
            logger.info(f"Live feed idle for more than {self.idle_timeout}s, stopping")
        self.idle = True
        for sub in (self.location_sub, self.compass_sub):
            sub.remove(timeout=0)
        for writer in list(self._writers.values()):
            writer.close(timeout=0)

    def _writer(self, key: str) -> KeyedWriter:
        if key not in self._writers:
            self._writers[key] = KeyedWriter(key)
        return self._writers[key]

    def _on_location(self, reading: LocationReading):
        self.session.location = reading
        if self.store.configured:
            self._writer(LOCATION_KEY).submit(self.store.upload_location, reading.latitude, reading.longitude)

    def _on_compass(self, reading: CompassReading):
        self.session.compass = reading
        if self.store.configured:
            self._writer(COMPASS_KEY).submit(self.store.upload_compass, reading.x, reading.y, reading.z)

    def start(self) -> "LiveFeed":
        if self._stack is None:
            self.touch()
            stack = ExitStack()
            stack.enter_context(subscriptions(self.location_sub, self.compass_sub))
            self._stack = stack
        return self

    def stop(self, timeout: Optional[float] = 2.0):
        if self._stack is not None:
            self._stack.close()
            self._stack = None
        for writer in self._writers.values():
            writer.close(timeout)
        self._writers = {}

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
