import pytest
from shapely.geometry import Point, Polygon, box
from shapely.ops import unary_union

from errors import ErrorKind, GridError
from grid_builder import (
    GridShape,
    LatticeAnchor,
    build_grid,
    build_polygon,
    close_ring,
    grid_edges,
    point_grid,
    polygon_area,
    square_grid,
)

SQUARE = [(0.0, 0.0), (0.0, 2.0), (2.0, 2.0), (2.0, 0.0)]
UNIT = [(0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (1.0, 0.0)]
TRIANGLE = [(0.0, 0.0), (0.0, 4.0), (4.0, 0.0)]


def _shapely(points):
    return Polygon([(lon, lat) for lat, lon in points])


def test_close_ring_appends_first_point_once():
    ring = close_ring(SQUARE)
    assert ring[0] == ring[-1]
    assert len(ring) == 5
    assert close_ring(ring) == ring


@pytest.mark.parametrize("points", [[], [(0.0, 0.0)], [(0.0, 0.0), (1.0, 1.0)]])
def test_too_few_points_give_empty_result(points):
    """Fewer than 3 points is a no-op, not an error."""
    for shape in GridShape:
        result = build_grid(points, 0.5, shape=shape)
        assert result.is_empty
        assert result.bbox is None
        assert result.area_m2 == 0.0
        assert result.edges == ()


def test_duplicate_points_do_not_count_as_distinct():
    assert build_polygon([(0.0, 0.0), (0.0, 0.0), (1.0, 1.0)]) is None
    assert build_grid([(0.0, 0.0), (0.0, 0.0), (1.0, 1.0)], 0.5).is_empty


@pytest.mark.parametrize("spacing", [0, -0.1, float("nan"), float("inf"), "abc"])
def test_invalid_spacing_raises(spacing):
    with pytest.raises(GridError) as exc:
        build_grid(SQUARE, spacing)
    assert exc.value.kind == ErrorKind.INVALID_INPUT


def test_two_degree_square_yields_four_cells():
    result = build_grid(SQUARE, 1.0, shape=GridShape.SQUARE)
    assert len(result.cells) == 4
    polygon = _shapely(SQUARE)
    for cell in result.cells:
        assert len(cell.ring) == 5
        assert cell.ring[0] == cell.ring[-1]
        ring = Polygon([(lon, lat) for lat, lon in cell.ring])
        assert polygon.covers(ring)
    assert {(c.row, c.col) for c in result.cells} == {(0, 0), (0, 1), (1, 0), (1, 1)}


def test_square_cells_stay_in_bbox_and_rejected_cells_miss_polygon():
    spacing = 0.5
    cells = square_grid(TRIANGLE, spacing)
    polygon = _shapely(TRIANGLE)
    kept = {(c.row, c.col) for c in cells}

    for cell in cells:
        for lat, lon in cell.ring:
            assert 0.0 <= lat <= 4.0
            assert 0.0 <= lon <= 4.0

    for row in range(8):
        for col in range(8):
            if (row, col) in kept:
                continue
            lattice_box = box(col * spacing, row * spacing, (col + 1) * spacing, (row + 1) * spacing)
            assert not polygon.intersects(lattice_box)


def test_point_grid_excludes_boundary_points():
    samples = point_grid(SQUARE, 1.0)
    assert [(p.latitude, p.longitude) for p in samples] == [(1.0, 1.0)]


def test_point_grid_points_are_strictly_inside():
    samples = point_grid(TRIANGLE, 0.5)
    polygon = _shapely(TRIANGLE)
    assert samples
    for p in samples:
        assert polygon.contains(Point(p.longitude, p.latitude))


def test_point_grid_edges_join_exact_spacing_neighbours():
    spacing = 0.25
    result = build_grid(UNIT, spacing, shape=GridShape.POINT)
    assert len(result.points) == 9
    assert len(result.edges) == 12

    edges = {frozenset([(a.latitude, a.longitude), (b.latitude, b.longitude)]) for a, b in result.edges}
    coords = [(p.latitude, p.longitude) for p in result.points]
    for i, a in enumerate(coords):
        for b in coords[i + 1:]:
            d_lat, d_lon = abs(a[0] - b[0]), abs(a[1] - b[1])
            adjacent = (d_lat, d_lon) in ((spacing, 0.0), (0.0, spacing))
            assert (frozenset([a, b]) in edges) == adjacent


def test_grid_edges_use_lattice_indices():
    samples = point_grid(UNIT, 0.25)
    by_index = {(p.row, p.col) for p in samples}
    for a, b in grid_edges(samples):
        assert (b.row, b.col) in by_index
        assert (b.row, b.col) in ((a.row, a.col + 1), (a.row - 1, a.col))


def test_build_grid_is_idempotent():
    first = build_grid(TRIANGLE, 0.5, shape=GridShape.POINT)
    second = build_grid(TRIANGLE, 0.5, shape=GridShape.POINT)
    assert first == second


def test_bbox_anchor_follows_boundary_corner():
    shifted = [(0.25, 0.25), (0.25, 2.75), (2.75, 2.75), (2.75, 0.25)]
    cells = square_grid(shifted, 1.0, anchor=LatticeAnchor.BBOX)
    assert len(cells) == 4
    assert cells[0].ring[0] == (0.25, 0.25)


def test_global_anchor_snaps_to_multiples_of_spacing():
    shifted = [(0.25, 0.25), (0.25, 2.75), (2.75, 2.75), (2.75, 0.25)]
    cells = square_grid(shifted, 1.0, anchor=LatticeAnchor.GLOBAL)
    assert len(cells) == 9
    assert cells[0].ring[0] == (0.0, 0.0)
    for cell in cells:
        for lat, lon in cell.ring:
            assert lat == int(lat) and lon == int(lon)

    samples = point_grid(shifted, 1.0, anchor=LatticeAnchor.GLOBAL)
    assert sorted((p.latitude, p.longitude) for p in samples) == [(1.0, 1.0), (1.0, 2.0), (2.0, 1.0), (2.0, 2.0)]


@pytest.mark.parametrize("points", [
    [(0.25, 0.25), (0.25, 2.75), (2.75, 2.75), (2.75, 0.25)],
    [(0.1, 0.3), (0.2, 1.9), (1.7, 1.2)],
    [(-0.75, -1.25), (-0.75, 0.6), (1.3, 0.6), (1.3, -1.25)],
])
def test_global_anchor_cells_cover_polygon(points):
    cells = square_grid(points, 0.5, anchor=LatticeAnchor.GLOBAL)
    covered = unary_union([Polygon([(lon, lat) for lat, lon in c.ring]) for c in cells])
    assert covered.covers(_shapely(points))


def test_global_anchor_is_stable_across_boundaries():
    a = point_grid([(0.1, 0.1), (0.1, 1.9), (1.9, 1.9), (1.9, 0.1)], 0.5, anchor=LatticeAnchor.GLOBAL)
    b = point_grid([(0.3, 0.2), (0.3, 1.7), (1.6, 1.7), (1.6, 0.2)], 0.5, anchor=LatticeAnchor.GLOBAL)
    lattice_a = {(p.latitude, p.longitude) for p in a}
    lattice_b = {(p.latitude, p.longitude) for p in b}
    assert lattice_b <= lattice_a


def test_lattice_limit_raises():
    with pytest.raises(GridError) as exc:
        build_grid(SQUARE, 0.001, limit=1000)
    assert exc.value.kind == ErrorKind.INVALID_INPUT


def test_polygon_area_one_degree_at_equator():
    area = polygon_area(UNIT)
    assert 1.2e10 < area < 1.25e10
    assert build_grid(UNIT, 0.5).area_m2 == pytest.approx(area)


def test_polygon_area_ignores_winding_order():
    assert polygon_area(UNIT) == pytest.approx(polygon_area(list(reversed(UNIT))))


def test_build_grid_carries_derived_entities():
    result = build_grid(TRIANGLE, 1.0, shape=GridShape.SQUARE)
    assert result.polygon[0] == result.polygon[-1]
    assert result.bbox.min_lat == 0.0
    assert result.bbox.max_lon == 4.0
    assert result.bbox.center == (2.0, 2.0)
    assert result.points == ()
    assert len(result) == len(result.cells)
