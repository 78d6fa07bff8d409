"""
soil.py

One-shot initial soil moisture from terrain, land cover and proximity fields.

Public API:
- SoilParams / get_soil_params_from_env()
- coordinate_hash(x, y) -> float array in [0, 1)
- initialize_soil_moisture(state, params=None) -> soil_moisture (also written to state)

The result is a pure function of the static terrain: the micro-variation is an
integer hash of the cell coordinates, not a draw from the shared generator.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import numpy as np

from pymicro.categories import LandCover
from pymicro.grid import shift_padded
from pymicro.materials import thermal_property_maps


@dataclass
class SoilParams:
    retention_weight: float = 0.5
    base_offset: float = 0.05
    slope_normalizer: float = 20.0  # m of mean neighbour relief for a full slope factor
    slope_penalty: float = 0.3
    shade_bonus: float = 0.1
    water_radius: float = 10.0
    water_bonus: float = 0.3
    forest_radius: float = 5.0
    forest_bonus: float = 0.08
    forest_cover_bonus: float = 0.10
    grassland_bonus: float = 0.03
    urban_penalty: float = 0.15
    settlement_penalty: float = 0.08
    highland_threshold: float = 300.0
    alpine_threshold: float = 700.0
    micro_variation: float = 0.02


def get_soil_params_from_env() -> SoilParams:
    def _f(env: str, default: float) -> float:
        try:
            return float(os.getenv(env, str(default)))
        except Exception:
            return default

    return SoilParams(
        retention_weight=_f("MC_SOIL_RETENTION_WEIGHT", 0.5),
        base_offset=_f("MC_SOIL_BASE_OFFSET", 0.05),
        water_radius=_f("MC_SOIL_WATER_RADIUS", 10.0),
        forest_radius=_f("MC_SOIL_FOREST_RADIUS", 5.0),
        highland_threshold=_f("MC_SOIL_HIGHLAND_M", 300.0),
        alpine_threshold=_f("MC_SOIL_ALPINE_M", 700.0),
        micro_variation=_f("MC_SOIL_MICRO_VAR", 0.02),
    )


def coordinate_hash(x, y) -> np.ndarray:
    """Deterministic 32-bit integer hash of (x, y) mapped to [0, 1)."""
    x = np.asarray(x, dtype=np.uint64)
    y = np.asarray(y, dtype=np.uint64)
    mask = np.uint64(0xFFFFFFFF)
    h = (x * np.uint64(374761393) + y * np.uint64(668265263)) & mask
    h = ((h ^ (h >> np.uint64(13))) * np.uint64(1274126177)) & mask
    h = h ^ (h >> np.uint64(16))
    return h.astype(np.float64) / 4294967296.0


def _mean_neighbour_relief(elevation: np.ndarray) -> np.ndarray:
    """Mean |dz| to the in-grid 8-neighbours of each cell."""
    total = np.zeros(elevation.shape)
    count = np.zeros(elevation.shape)
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dx == 0 and dy == 0:
                continue
            values, valid = shift_padded(elevation, dx, dy, 0.0)
            total += np.where(valid, np.abs(values - elevation), 0.0)
            count += valid
    return np.where(count > 0, total / np.maximum(count, 1), 0.0)


def initialize_soil_moisture(state, params: SoilParams | None = None) -> np.ndarray:
    if params is None:
        params = SoilParams()
    land = state.land_cover
    elev = np.asarray(state.elevation, dtype=float)
    props = thermal_property_maps(land, state.soil_type)
    retention = props.water_retention

    moisture = retention * params.retention_weight + params.base_offset

    slope_factor = np.minimum(1.0, _mean_neighbour_relief(elev) / params.slope_normalizer)
    moisture *= 1.0 - params.slope_penalty * slope_factor

    moisture += (1.0 - np.clip(state.hillshade, 0.0, 1.0)) * params.shade_bonus

    d_water = state.water_distance
    near_water = d_water < params.water_radius
    moisture += np.where(
        near_water,
        (params.water_radius - np.where(near_water, d_water, 0.0)) / params.water_radius
        * params.water_bonus
        * (0.5 + 0.5 * retention),
        0.0,
    )

    d_forest = state.forest_distance
    near_forest = (d_forest > 0.0) & (d_forest < params.forest_radius)
    moisture += np.where(
        near_forest,
        (params.forest_radius - np.where(near_forest, d_forest, 0.0)) / params.forest_radius
        * params.forest_bonus,
        0.0,
    )

    moisture += np.select(
        [
            land == LandCover.FOREST,
            land == LandCover.GRASSLAND,
            land == LandCover.URBAN,
            land == LandCover.SETTLEMENT,
        ],
        [
            params.forest_cover_bonus,
            params.grassland_bonus,
            -params.urban_penalty,
            -params.settlement_penalty,
        ],
        default=0.0,
    )

    # Drainage on high ground
    highland = elev > params.highland_threshold
    moisture -= np.where(highland, np.minimum(0.15, (elev - params.highland_threshold) / 1000.0 * 0.2), 0.0)
    alpine = elev > params.alpine_threshold
    moisture -= np.where(alpine, np.minimum(0.2, (elev - params.alpine_threshold) / 500.0 * 0.15), 0.0)

    yy, xx = state.grid.yy, state.grid.xx
    moisture += (coordinate_hash(xx, yy) * 2.0 - 1.0) * params.micro_variation

    moisture = np.where(land == LandCover.WATER, 1.0, moisture)
    state.soil_moisture[...] = np.clip(moisture, 0.0, 1.0)
    return state.soil_moisture
