# export.py
from io import BytesIO

import pandas as pd
from simplekml import Kml

from grid_builder import GridShape

COLUMNS = ["row", "col", "latitude", "longitude"]


def grid_dataframe(grid):
    """One row per sample point, or per cell centre for square grids."""
    if grid.shape == GridShape.SQUARE:
        rows = []
        for cell in grid.cells:
            (south, west), _, (north, east) = cell.ring[:3]
            rows.append((cell.row, cell.col, (south + north) / 2, (west + east) / 2))
    else:
        rows = [(p.row, p.col, p.latitude, p.longitude) for p in grid.points]
    return pd.DataFrame(rows, columns=COLUMNS)


def grid_csv(grid):
    buff = BytesIO()
    grid_dataframe(grid).to_csv(buff, index=False)
    buff.seek(0)
    return buff


def grid_kmz(grid, zone=None):
    kml = Kml(name="Mangrove survey grid")

    if grid.polygon:
        boundary = kml.newpolygon(name="Boundary")
        boundary.outerboundaryis = [(lon, lat) for lat, lon in grid.polygon]
        if zone:
            boundary.description = f"Tide zone: {zone}"

    if grid.shape == GridShape.SQUARE:
        for cell in grid.cells:
            square = kml.newpolygon(name=f"Cell r{cell.row} c{cell.col}")
            square.outerboundaryis = [(lon, lat) for lat, lon in cell.ring]
    else:
        for p in grid.points:
            kml.newpoint(name=f"r{p.row} c{p.col}", coords=[(p.longitude, p.latitude)])

    buff = BytesIO()
    kml.savekmz(buff)
    buff.seek(0)
    return buff
