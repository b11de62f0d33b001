"""
Grid builder for survey boundaries.

Turns the ordered boundary points a surveyor drops on the map into a
covering grid: either square cells that intersect the enclosed polygon, or
sample points strictly inside it joined by grid lines.

Coordinates are (latitude, longitude) in degrees throughout the public API.
Shapely works in (x, y), so polygons are built as (lon, lat).
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from pyproj import Geod
from shapely.geometry import Point, Polygon, box

from errors import ErrorKind, GridError

LatLon = Tuple[float, float]

# Ratios within this distance of an integer count as that integer
_STEP_EPSILON = 1e-9

_GEOD = Geod(ellps="WGS84")


class GridShape(str, Enum):
    SQUARE = "square"
    POINT = "point"


class LatticeAnchor(str, Enum):
    BBOX = "bbox"
    GLOBAL = "global"


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    @property
    def center(self) -> LatLon:
        return ((self.min_lat + self.max_lat) / 2, (self.min_lon + self.max_lon) / 2)


@dataclass(frozen=True)
class LatticeCell:
    row: int
    col: int
    ring: Tuple[LatLon, ...]


@dataclass(frozen=True)
class SamplePoint:
    row: int
    col: int
    latitude: float
    longitude: float


@dataclass(frozen=True)
class GridResult:
    shape: GridShape
    spacing: float
    polygon: Tuple[LatLon, ...] = ()
    bbox: Optional[BoundingBox] = None
    cells: Tuple[LatticeCell, ...] = ()
    points: Tuple[SamplePoint, ...] = ()
    edges: Tuple[Tuple[SamplePoint, SamplePoint], ...] = ()
    area_m2: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.cells and not self.points

    def __len__(self):
        return len(self.cells) if self.shape == GridShape.SQUARE else len(self.points)


@dataclass(frozen=True)
class _Lattice:
    """Lattice lines inside a bounding box: `lat_steps` x `lon_steps` spacings from the origin."""
    lat0: float
    lon0: float
    lat_steps: int
    lon_steps: int
    spacing: float
    row_offset: int = 0
    col_offset: int = 0
    anchored: bool = False

    def lat(self, row: int) -> float:
        if self.anchored:
            return (self.row_offset + row) * self.spacing
        return self.lat0 + row * self.spacing

    def lon(self, col: int) -> float:
        if self.anchored:
            return (self.col_offset + col) * self.spacing
        return self.lon0 + col * self.spacing


def validate_spacing(spacing) -> float:
    try:
        value = float(spacing)
    except (TypeError, ValueError):
        raise GridError(f"Grid spacing must be a number, got {spacing!r}", ErrorKind.INVALID_INPUT)
    if not math.isfinite(value) or value <= 0:
        raise GridError(f"Grid spacing must be positive, got {spacing!r}", ErrorKind.INVALID_INPUT)
    return value


def distinct_points(points: Sequence[LatLon]) -> List[LatLon]:
    seen = set()
    unique = []
    for lat, lon in points:
        key = (float(lat), float(lon))
        if key not in seen:
            seen.add(key)
            unique.append(key)
    return unique


def close_ring(points: Sequence[LatLon]) -> List[LatLon]:
    """Append the first point to the end unless the ring is already closed."""
    ring = [(float(lat), float(lon)) for lat, lon in points]
    if ring and ring[0] != ring[-1]:
        ring.append(ring[0])
    return ring


def build_polygon(points: Sequence[LatLon]) -> Optional[Polygon]:
    """Polygon in (lon, lat) space, or None when there are fewer than 3 distinct points."""
    if len(distinct_points(points)) < 3:
        return None
    ring = close_ring(points)
    return Polygon([(lon, lat) for lat, lon in ring])


def bounding_box(polygon: Polygon) -> BoundingBox:
    min_lon, min_lat, max_lon, max_lat = polygon.bounds
    return BoundingBox(min_lat=min_lat, min_lon=min_lon, max_lat=max_lat, max_lon=max_lon)


def polygon_area(points: Sequence[LatLon]) -> float:
    """Geodesic area in square metres on the WGS84 ellipsoid."""
    polygon = build_polygon(points)
    if polygon is None:
        return 0.0
    area, _ = _GEOD.geometry_area_perimeter(polygon)
    return abs(area)


def lattice_origin(bbox: BoundingBox, spacing: float, anchor=LatticeAnchor.BBOX) -> LatLon:
    """
    First lattice line in each axis.

    BBOX anchors to the box's minimum corner, so the lattice moves whenever
    the boundary does. GLOBAL snaps down to the last multiple of spacing
    (counted from 0, 0) at or below the minimum corner, so the same spacing
    always yields the same lattice lines and the box only crops them.
    """
    if LatticeAnchor(anchor) == LatticeAnchor.GLOBAL:
        return (
            math.floor(bbox.min_lat / spacing + _STEP_EPSILON) * spacing,
            math.floor(bbox.min_lon / spacing + _STEP_EPSILON) * spacing,
        )
    return bbox.min_lat, bbox.min_lon


def _steps(extent: float, spacing: float) -> int:
    return math.floor(extent / spacing + _STEP_EPSILON)


def _global_span(low: float, high: float, spacing: float, for_cells: bool) -> Tuple[int, int]:
    """Index of the first lattice line and the number of steps to the last one that still matters."""
    first = math.floor(low / spacing + _STEP_EPSILON)
    if for_cells:
        last = math.ceil(high / spacing - _STEP_EPSILON)
    else:
        last = math.floor(high / spacing + _STEP_EPSILON)
    return first, last - first


def _lattice(bbox: BoundingBox, spacing: float, anchor, for_cells: bool, limit: Optional[int]) -> _Lattice:
    anchor = LatticeAnchor(anchor)
    lat0, lon0 = lattice_origin(bbox, spacing, anchor)
    if anchor == LatticeAnchor.GLOBAL:
        # Cells straddling the box edges still touch the polygon, so they run to the next line past the box
        row_offset, lat_steps = _global_span(bbox.min_lat, bbox.max_lat, spacing, for_cells)
        col_offset, lon_steps = _global_span(bbox.min_lon, bbox.max_lon, spacing, for_cells)
    else:
        row_offset = col_offset = 0
        lat_steps = _steps(bbox.max_lat - lat0, spacing)
        lon_steps = _steps(bbox.max_lon - lon0, spacing)

    if for_cells:
        count = max(0, lat_steps) * max(0, lon_steps)
    else:
        count = max(0, lat_steps + 1) * max(0, lon_steps + 1)
    if limit is not None and count > limit:
        raise GridError(
            f"Grid spacing {spacing} would generate {count} elements (limit {limit}); "
            "increase the spacing or shrink the boundary",
            ErrorKind.INVALID_INPUT,
        )

    return _Lattice(
        lat0=lat0,
        lon0=lon0,
        lat_steps=lat_steps,
        lon_steps=lon_steps,
        spacing=spacing,
        row_offset=row_offset,
        col_offset=col_offset,
        anchored=anchor == LatticeAnchor.GLOBAL,
    )


def square_grid(points: Sequence[LatLon], spacing: float, anchor=LatticeAnchor.BBOX,
                limit: Optional[int] = None) -> List[LatticeCell]:
    """Lattice cells that intersect the boundary polygon (edges and interior count)."""
    spacing = validate_spacing(spacing)
    polygon = build_polygon(points)
    if polygon is None:
        return []

    lattice = _lattice(bounding_box(polygon), spacing, anchor, for_cells=True, limit=limit)
    cells = []
    for row in range(lattice.lat_steps):
        south, north = lattice.lat(row), lattice.lat(row + 1)
        for col in range(lattice.lon_steps):
            west, east = lattice.lon(col), lattice.lon(col + 1)
            if not polygon.intersects(box(west, south, east, north)):
                continue
            ring = (
                (south, west),
                (north, west),
                (north, east),
                (south, east),
                (south, west),
            )
            cells.append(LatticeCell(row=row, col=col, ring=ring))
    return cells


def point_grid(points: Sequence[LatLon], spacing: float, anchor=LatticeAnchor.BBOX,
               limit: Optional[int] = None) -> List[SamplePoint]:
    """Lattice points strictly inside the boundary polygon; points on an edge are left out."""
    spacing = validate_spacing(spacing)
    polygon = build_polygon(points)
    if polygon is None:
        return []

    lattice = _lattice(bounding_box(polygon), spacing, anchor, for_cells=False, limit=limit)
    samples = []
    for row in range(lattice.lat_steps + 1):
        lat = lattice.lat(row)
        for col in range(lattice.lon_steps + 1):
            lon = lattice.lon(col)
            if polygon.contains(Point(lon, lat)):
                samples.append(SamplePoint(row=row, col=col, latitude=lat, longitude=lon))
    return samples


def grid_edges(samples: Sequence[SamplePoint]) -> List[Tuple[SamplePoint, SamplePoint]]:
    """Join each sample point to its right and below neighbours by lattice index."""
    by_index: Dict[Tuple[int, int], SamplePoint] = {(p.row, p.col): p for p in samples}
    edges = []
    for sample in samples:
        right = by_index.get((sample.row, sample.col + 1))
        below = by_index.get((sample.row - 1, sample.col))
        if right is not None:
            edges.append((sample, right))
        if below is not None:
            edges.append((sample, below))
    return edges


def build_grid(points: Sequence[LatLon], spacing: float, shape=GridShape.SQUARE,
               anchor=LatticeAnchor.BBOX, limit: Optional[int] = None) -> GridResult:
    """
    Build every derived entity for a boundary in one pass.

    Fewer than 3 distinct points is not an error: the result is simply empty.
    Self-intersecting boundaries are not rejected; GEOS decides what
    intersects/contains means for them.
    """
    shape = GridShape(shape)
    spacing = validate_spacing(spacing)
    polygon = build_polygon(points)
    if polygon is None:
        return GridResult(shape=shape, spacing=spacing)

    ring = tuple(close_ring(points))
    bbox = bounding_box(polygon)
    area = polygon_area(points)

    if shape == GridShape.SQUARE:
        cells = square_grid(points, spacing, anchor, limit)
        return GridResult(shape=shape, spacing=spacing, polygon=ring, bbox=bbox,
                          cells=tuple(cells), area_m2=area)

    samples = point_grid(points, spacing, anchor, limit)
    return GridResult(
        shape=shape,
        spacing=spacing,
        polygon=ring,
        bbox=bbox,
        points=tuple(samples),
        edges=tuple(grid_edges(samples)),
        area_m2=area,
    )
