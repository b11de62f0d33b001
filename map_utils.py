import logging

import folium
import numpy as np
from geopy.exc import GeocoderServiceError, GeocoderTimedOut
from geopy.geocoders import Nominatim

from grid_builder import GridResult, GridShape

logger = logging.getLogger(__name__)

BASEMAPS = {
    "OpenStreetMap": "OpenStreetMap",
    "Esri World Imagery": "https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}",
    "Google Satellite": "https://mt1.google.com/vt/lyrs=s&x={x}&y={y}&z={z}",
}

BOUNDARY_FILL = "#00c800"
CELL_COLOR = "#ff0000"
POINT_COLOR = "#2e7d32"
EDGE_COLOR = "#0000ff"


def search_location(query):
    """Search for a place name using Nominatim geocoding service"""
    try:
        geolocator = Nominatim(user_agent="mangrove_survey_planner", timeout=5)
        location = geolocator.geocode(query)
        if location:
            return location.latitude, location.longitude
    except (GeocoderTimedOut, GeocoderServiceError) as e:
        logger.warning(f"Location search error: {e}")
    return None


def create_map(center, zoom=16, basemap="Esri World Imagery"):
    """Create a Folium map on the selected basemap with a layer switcher."""
    m = folium.Map(location=center, zoom_start=zoom, tiles=None, control_scale=True)
    for name, tiles in BASEMAPS.items():
        folium.TileLayer(
            tiles,
            attr="Basemap provided by respective service",
            name=name,
            show=(name == basemap),
        ).add_to(m)
    folium.LayerControl().add_to(m)
    return m


def add_boundary(m, points):
    """Draw boundary markers, and the polygon once there are 3 or more points."""
    layer = folium.FeatureGroup(name="Boundary")
    for i, point in enumerate(points):
        folium.Marker(
            location=[point.latitude, point.longitude],
            tooltip=f"Pin {i + 1} (click to remove)",
        ).add_to(layer)
    if len(points) > 2:
        folium.Polygon(
            locations=[[p.latitude, p.longitude] for p in points],
            color="#000000",
            weight=2,
            fill=True,
            fill_color=BOUNDARY_FILL,
            fill_opacity=0.3,
        ).add_to(layer)
    layer.add_to(m)
    return layer


def add_grid(m, grid: GridResult):
    """Overlay cells, or sample points and grid lines, depending on the grid shape."""
    layer = folium.FeatureGroup(name="Grid")
    if grid.shape == GridShape.SQUARE:
        for cell in grid.cells:
            folium.PolyLine(
                [list(corner) for corner in cell.ring],
                color=CELL_COLOR,
                weight=1,
                opacity=0.5,
            ).add_to(layer)
    else:
        for a, b in grid.edges:
            folium.PolyLine(
                [[a.latitude, a.longitude], [b.latitude, b.longitude]],
                color=EDGE_COLOR,
                weight=2,
                opacity=0.5,
            ).add_to(layer)
        for p in grid.points:
            folium.CircleMarker(
                location=[p.latitude, p.longitude],
                radius=4,
                color=POINT_COLOR,
                fill=True,
                fill_opacity=0.9,
                tooltip=f"Sample r{p.row} c{p.col}",
            ).add_to(layer)
    layer.add_to(m)
    return layer


def add_position(m, location, compass=None):
    """Mark the surveyor's live position."""
    tooltip = "📍 You are here"
    if compass is not None:
        tooltip += f" · heading {magnetic_heading(compass.x, compass.y):.0f}°"
    folium.Marker(
        location=[location.latitude, location.longitude],
        tooltip=tooltip,
        icon=folium.Icon(color="blue", icon="user"),
    ).add_to(m)


def clicked_latlon(clicked):
    """(lat, lon) from a st_folium click payload, or None."""
    if not clicked:
        return None
    try:
        return float(clicked["lat"]), float(clicked["lng"])
    except (KeyError, TypeError, ValueError):
        return None


def magnetic_heading(x, y):
    """Heading in degrees clockwise from magnetic north, from the horizontal magnetometer axes."""
    heading = np.degrees(np.arctan2(y, x))
    return float((90 - heading) % 360)


def haversine_distance(lat1, lon1, lat2, lon2):
    """
    Calculate the great circle distance between two points
    on the earth (specified in decimal degrees)
    """
    # Convert decimal degrees to radians
    lat1, lon1, lat2, lon2 = map(np.radians, [lat1, lon1, lat2, lon2])

    # Haversine formula
    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = np.sin(dlat / 2)**2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2)**2
    c = 2 * np.arcsin(np.sqrt(a))
    r = 6371000  # Radius of earth in meters
    return float(c * r)


def spacing_in_meters(spacing, latitude):
    """Approximate ground size of a spacing in degrees, as (north-south, east-west) metres."""
    ns = haversine_distance(latitude, 0.0, latitude + spacing, 0.0)
    ew = haversine_distance(latitude, 0.0, latitude, spacing)
    return ns, ew
