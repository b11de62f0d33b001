import streamlit as st

st.set_page_config(page_title="Field Guide", layout="centered")

st.title("📘 Field Guide")
st.markdown("""
How to lay out a mangrove survey with the planner:

- 📍 Drop pins around the stand you want to survey
- 🧭 Generate a grid of sample points or covering squares
- 🌊 Check today's high and low tides before walking in
- 📡 Stream your position and heading back to base
- 🧾 Export the grid as .CSV or .KMZ for your GPS

---

### 🧪 Example: Sampling a Small Stand

1. Open the app on your phone and tap **Search Location** or wait for the map to find you
2. Tap the map at each corner of the stand, in walking order
3. Tap a pin again if you misplaced it, it is removed
4. Set the **grid size** (0.0001° is roughly 11 m)
5. Pick **Sample points** and press **Generate Grid**

✅ The area readout and the sample points update together whenever the boundary changes; regenerate after editing pins.

---

### 🌊 Tides

**Fetch Tide Data** looks up the next 24 hours of extremes for your position
(FES2014 model, heights relative to mean sea level). Tag the stand as a
**high**, **mid** or **low** tide zone before uploading the markers.

---

### 📡 Live feed

Install [phyphox](https://phyphox.org) on the phone, start an experiment with
location and magnetometer, enable *Remote access*, and set `PHYPHOX_URL` to the
address it shows. Position is sent every 5 seconds and the compass twice a second.
""")
