import logging
from datetime import datetime

import streamlit as st
from streamlit_folium import st_folium

from config import DEFAULT_CENTER, MAX_SPACING, MIN_SPACING, SPACING_STEP, load_settings
from errors import FieldMapError
from export import grid_csv, grid_kmz
from grid_builder import GridShape, LatticeAnchor
from map_utils import (
    BASEMAPS,
    add_boundary,
    add_grid,
    add_position,
    clicked_latlon,
    create_map,
    magnetic_heading,
    search_location,
    spacing_in_meters,
)
from realtime_store import RealtimeStore
from sensors import PhyphoxSource, ip_location
from survey import LiveFeed, SurveyConfig, SurveySession, TideZone
from tide_client import TideClient, format_local_time
from utils import create_grid_plot, create_tide_plot

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MARKER_CLICK_TOLERANCE = 1e-6

st.set_page_config(page_title="Mangrove Survey Planner", layout="wide")
st.markdown("""
<style>
.block-container {
    padding-top: 0.5rem !important;
    padding-bottom: 1rem !important;
}
.stButton>button {
    background-color: #2e7d32;
    color: white;
    border-radius: 8px;
    border: none;
    font-weight: 600;
}
.stButton>button:hover {
    background-color: #1b5e20;
}
#MainMenu {visibility: hidden;}
@media only screen and (max-width: 768px) {
  .block-container {padding-left:0.5rem;padding-right:0.5rem;}
  iframe {height:420px !important;}
}
section[data-testid="stSidebar"] {display:none;}
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_services():
    settings = load_settings()
    return (
        settings,
        RealtimeStore(settings.firebase_database_url, settings.firebase_auth_token,
                      timeout=settings.request_timeout),
        TideClient(settings.marea_api_token, settings.marea_base_url, timeout=settings.request_timeout),
        PhyphoxSource(settings.phyphox_url),
    )


settings, store, tides, phone = get_services()

if "survey" not in st.session_state:
    st.session_state.update({
        "survey": SurveySession(SurveyConfig(max_lattice_elements=settings.max_lattice_elements)),
        "last_click": None,
        "last_object_click": None,
        "live_feed": None,
        "map_center": None,
    })

survey: SurveySession = st.session_state.survey


# ─────────────── Actions ───────────────
def current_location():
    """Best known position: live feed first, then a one-off IP lookup."""
    if survey.location is not None:
        return survey.location
    if "ip_location" not in st.session_state:
        st.session_state.ip_location = ip_location()
    return st.session_state.ip_location


def upload_markers():
    try:
        zone = survey.zone.value if survey.zone else None
        store.upload_markers(survey.coordinates, zone=zone)
        st.toast("Markers uploaded successfully!")
    except FieldMapError as e:
        logger.error(f"Error uploading markers: {e}")
        st.error(f"Error uploading markers: {e}")


def on_upload_toggle():
    if st.session_state.upload_markers:
        upload_markers()


def fetch_tide_data():
    location = current_location()
    if location is None:
        st.warning("Location not available. Please wait until location data is available.")
        return
    try:
        survey.tide = tides.fetch_summary(location.latitude, location.longitude)
    except FieldMapError as e:
        logger.error(f"Tide fetch failed ({e.kind.value}): {e}")
        st.error(str(e))


def start_live_feed():
    feed = LiveFeed(
        survey,
        store,
        phone.read_location,
        phone.read_compass,
        location_interval=settings.location_interval,
        compass_interval=settings.compass_interval,
        idle_timeout=settings.live_feed_idle_timeout,
    )
    st.session_state.live_feed = feed.start()


def stop_live_feed():
    feed = st.session_state.live_feed
    if feed is not None:
        feed.stop()
    st.session_state.live_feed = None


def on_live_toggle():
    if st.session_state.live_toggle:
        start_live_feed()
    else:
        stop_live_feed()


def check_live_feed():
    """Keep the live feed alive while the page is in use; clean up after it stopped itself."""
    feed = st.session_state.live_feed
    if feed is None:
        return
    if feed.idle:
        stop_live_feed()
        st.session_state.live_toggle = False
        st.toast("Live feed stopped after a period without activity.")
    else:
        feed.touch()


def reload_page():
    stop_live_feed()
    survey.reset()
    st.session_state.pop("ip_location", None)
    st.session_state.update({
        "upload_markers": False,
        "live_toggle": False,
        "map_center": None,
    })


check_live_feed()

# ─────────────── Layout ───────────────
st.title("🌿 Mangrove Survey Planner")

left, right = st.columns([1, 2], gap="large")

with left:
    top1, top2 = st.columns(2)
    with top1:
        st.button("🔄 Reload", on_click=reload_page, use_container_width=True)
    with top2:
        if st.button("🌊 Fetch Tide Data", use_container_width=True):
            fetch_tide_data()

    with st.expander("🛠️ Grid Settings", expanded=True):
        spacing = st.slider(
            "grid size (degrees)",
            min_value=MIN_SPACING,
            max_value=MAX_SPACING,
            value=survey.config.spacing,
            step=SPACING_STEP,
            format="%.4f",
        )
        survey.set_spacing(spacing)
        ref_lat = survey.points[0].latitude if survey.points else DEFAULT_CENTER[0]
        ns, ew = spacing_in_meters(spacing, ref_lat)
        st.caption(f"Grid Size: {spacing:.4f} degrees ≈ {ns:.0f} m × {ew:.0f} m")

        shape = st.radio(
            "grid shape",
            [GridShape.POINT.value, GridShape.SQUARE.value],
            format_func=lambda s: "Sample points" if s == GridShape.POINT.value else "Covering squares",
            index=0 if survey.config.shape == GridShape.POINT else 1,
        )
        survey.set_shape(shape)

        snap = st.checkbox("Snap to global lattice", value=survey.config.anchor == LatticeAnchor.GLOBAL,
                           help="Keep grid lines fixed to multiples of the grid size instead of the boundary corner")
        survey.set_anchor(LatticeAnchor.GLOBAL if snap else LatticeAnchor.BBOX)

        basemap = st.selectbox("basemap", list(BASEMAPS.keys()), index=1)

        location_query = st.text_input("Search Location", "")
        if location_query and location_query != st.session_state.get("last_query"):
            st.session_state.last_query = location_query
            found = search_location(location_query)
            if found:
                st.session_state.map_center = list(found)
                st.success(f"Location found: {location_query}")
            else:
                st.warning("Location not found. Using current map location.")

    if st.button("🧭 Generate Grid", use_container_width=True):
        if not survey.has_polygon:
            st.warning("Drop at least 3 pins on the map first.")
        else:
            try:
                survey.generate_grid()
            except FieldMapError as e:
                logger.error(f"Error generating grid: {e}")
                st.error(f"❌ Error generating grid: {e}")

    st.metric("Polygon Area", f"{survey.area_m2:,.2f} m²")

    if survey.config.upload_enabled:
        st.checkbox("Upload Markers", key="upload_markers", on_change=on_upload_toggle)

    if survey.config.tide_zones_enabled:
        st.markdown("**Tide zone**")
        zone_cols = st.columns(len(TideZone))
        for col, zone in zip(zone_cols, TideZone):
            with col:
                label = f"✅ {zone.value}" if survey.zone == zone else zone.value
                if st.button(label, key=f"zone_{zone.value}", use_container_width=True):
                    survey.classify_zone(zone)
                    st.rerun()

    if survey.config.live_feed_enabled:
        st.toggle("📡 Live position & compass", key="live_toggle", on_change=on_live_toggle,
                  disabled=not settings.phyphox_url,
                  help="Needs PHYPHOX_URL pointing at a phone running phyphox remote access")
        feed = st.session_state.live_feed
        if feed is not None:
            for sub in (feed.location_sub, feed.compass_sub):
                if sub.disabled_reason:
                    st.caption(f"{sub.name} feed off: {sub.disabled_reason}")
            if st.button("↻ Refresh readings"):
                st.rerun()
        if survey.compass is not None:
            c = survey.compass
            st.text(f"Compass Data: X: {c.x:.2f} Y: {c.y:.2f} Z: {c.z:.2f} "
                    f"(heading {magnetic_heading(c.x, c.y):.0f}°)")

    if survey.tide is not None:
        summary = survey.tide
        if summary.has_data:
            st.text("High Tide: " + ", ".join(f"{format_local_time(t.time)}: {t.height} m" for t in summary.high))
            st.text("Low Tide: " + ", ".join(f"{format_local_time(t.time)}: {t.height} m" for t in summary.low))
        else:
            st.info(summary.text)

with right:
    st.subheader("📐 Tap to place pins, tap a pin to remove it")
    if st.session_state.map_center is None:
        if survey.points:
            st.session_state.map_center = list(survey.points[0].coordinate)
        else:
            loc = current_location()
            st.session_state.map_center = [loc.latitude, loc.longitude] if loc else DEFAULT_CENTER

    m = create_map(st.session_state.map_center, basemap=basemap)
    add_boundary(m, survey.points)
    if survey.grid is not None and not survey.grid.is_empty:
        add_grid(m, survey.grid)
    if survey.location is not None:
        add_position(m, survey.location, survey.compass)

    map_output = st_folium(m, height=560, use_container_width=True,
                           returned_objects=["last_clicked", "last_object_clicked"])

    object_click = map_output.get("last_object_clicked") if map_output else None
    map_click = map_output.get("last_clicked") if map_output else None

    if object_click and object_click != st.session_state.last_object_click:
        st.session_state.last_object_click = object_click
        st.session_state.last_click = map_click
        latlon = clicked_latlon(object_click)
        if latlon:
            survey.tap(*latlon, tolerance=MARKER_CLICK_TOLERANCE)
            st.rerun()
    elif map_click and map_click != st.session_state.last_click:
        st.session_state.last_click = map_click
        latlon = clicked_latlon(map_click)
        if latlon:
            survey.add_point(*latlon)
            st.rerun()

    if survey.grid is not None and not survey.grid.is_empty:
        grid = survey.grid
        st.success(f"✅ Generated {len(grid)} {'cells' if grid.shape == GridShape.SQUARE else 'sample points'}")

        with st.expander("📊 Grid preview", expanded=False):
            st.plotly_chart(create_grid_plot(grid), use_container_width=True)

        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        zone = survey.zone.value if survey.zone else None
        dl1, dl2 = st.columns(2)
        with dl1:
            st.download_button("⬇️ CSV", data=grid_csv(grid), file_name=f"survey_grid_{ts}.csv", mime="text/csv")
        with dl2:
            st.download_button("⬇️ KMZ", data=grid_kmz(grid, zone=zone), file_name=f"survey_grid_{ts}.kmz",
                               mime="application/vnd.google-earth.kmz")
    elif survey.grid is not None:
        st.info("No grid elements fall inside the boundary at this grid size.")

    if survey.tide is not None and survey.tide.has_data:
        st.subheader("🌊 Tides")
        st.plotly_chart(create_tide_plot(survey.tide), use_container_width=True)
