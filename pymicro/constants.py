# pymicro/constants.py

"""
Central repository for the grid, terrain and climate constants shared by the
microclimate engines. Module-specific tuning lives in the *Params dataclasses
of each engine (wind.py, energy.py, clouds.py, ...).
"""

import math

# --- Grid ---
GRID_SIZE = 100  # reference side length (cells)
CELL_SIZE = 6.0  # horizontal spacing used by finite differences (m)
EPSILON = 1e-6

# --- Terrain ---
BASE_ELEVATION = 100.0  # m
LAPSE_RATE = 0.65  # °C per 100 m
SQRT2 = math.sqrt(2.0)

# --- Radiation ---
SOLAR_INTENSITY_FACTOR = 1.5
HILLSHADE_AZIMUTH_DEG = 315.0
HILLSHADE_ALTITUDE_DEG = 45.0

# --- Temperature limits / neutral state ---
ABSOLUTE_MIN_TEMP = -70.0  # °C
ABSOLUTE_MAX_TEMP = 65.0  # °C
NEUTRAL_TEMPERATURE = 20.0  # °C, initial air and soil temperature
NEUTRAL_DEW_POINT = 10.0  # °C
NEUTRAL_HUMIDITY = 0.5
NEUTRAL_HUMIDITY_JITTER = 0.2

# --- Diffusion ---
DIFFUSION_ITERATIONS = 2
DIFFUSION_RATE = 0.08

# --- Fog ---
FOG_WIND_DISSIPATION = 0.02
FOG_SUN_DISSIPATION = 0.5
FOG_TEMP_DISSIPATION = 0.3
FOG_ADVECTION_RATE = 0.1
FOG_DOWNSLOPE_RATE = 0.2
FOG_DIFFUSION_RATE = 0.4

# --- Static indices ---
FOREST_DEPTH_RADIUS = 20  # search radius and sentinel depth (cells)

# --- Baseline climate (index 0 = January) ---
MONTHLY_TEMPS = [-10, -8, -3, 2, 8, 13, 15, 15, 8, 2, -4, -9]  # °C monthly mean
MONTHLY_DAYLIGHT_HOURS = [8.0, 9.5, 11.5, 13.5, 15.0, 16.0, 15.5, 14.0, 12.5, 10.5, 9.0, 8.0]
MONTHLY_DIURNAL_VARIATION = [6, 7, 8, 10, 11, 12, 12, 11, 10, 8, 6, 5]  # °C peak-to-peak
EVENING_WARMTH_FRACTION = 0.15
