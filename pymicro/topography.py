# pymicro/topography.py
"""
Terrain generation for the microclimate grid.

Procedural base elevation (two sinusoidal octaves plus uniform jitter) with
hand-placed features superimposed in fractional coordinates, so the layout
scales with the grid size: ridge, valley, foothills, dune belt, lake, forest
band and a settlement diamond.

Key public functions:
- generate_elevation_map(n, rng, params=None) -> elevation_m
- assign_default_soil(elevation, rng) -> soil_type
- add_terrain_features(state, rng, params=None)
- calculate_hillshade(state) -> hillshade (also written to state)
- initialize_environment(state, rng, params=None)

Notes:
- Feature geometry is authored on a 100 x 100 reference layout; a cell (x, y)
  of an n x n grid sits at reference coordinate (100 x / n, 100 y / n).
- The random generator is consumed in a fixed order with whole-grid draws:
  elevation jitter, default soil, humidity jitter, dune belt, forest band.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import numpy as np

from . import constants
from .categories import LandCover, SoilType
from .regions import compute_distance_fields, label_regions
from .state import MicroclimateState, reset_dynamic_fields

REFERENCE_SIZE = 100.0


@dataclass
class TerrainParams:
    base_elevation: float = constants.BASE_ELEVATION
    low_freq_amplitude: float = 50.0  # m
    high_freq_amplitude: float = 20.0  # m
    jitter_amplitude: float = 10.0  # m, peak-to-peak

    # Ridge (reference coordinates)
    ridge_height: float = 800.0
    ridge_wave_amplitude: float = 200.0
    ridge_falloff: float = 80.0  # m per cell away from the axis
    rock_above: float = 800.0

    # Lake
    lake_elevation: float = 65.0
    lake_radius: float = 6.0

    # Probabilities of the stochastic overrides
    dune_probability: float = 0.7
    forest_probability: float = 0.7

    diag: bool = False


def get_terrain_params_from_env() -> TerrainParams:
    def _f(env: str, default: float) -> float:
        try:
            return float(os.getenv(env, str(default)))
        except Exception:
            return default

    def _b(env: str, default: bool) -> bool:
        try:
            return int(os.getenv(env, "1" if default else "0")) == 1
        except Exception:
            return default

    return TerrainParams(
        base_elevation=_f("MC_BASE_ELEVATION", constants.BASE_ELEVATION),
        low_freq_amplitude=_f("MC_TERRAIN_LOW_AMP", 50.0),
        high_freq_amplitude=_f("MC_TERRAIN_HIGH_AMP", 20.0),
        jitter_amplitude=_f("MC_TERRAIN_JITTER", 10.0),
        ridge_height=_f("MC_RIDGE_HEIGHT", 800.0),
        lake_elevation=_f("MC_LAKE_ELEVATION", 65.0),
        lake_radius=_f("MC_LAKE_RADIUS", 6.0),
        dune_probability=_f("MC_DUNE_PROB", 0.7),
        forest_probability=_f("MC_FOREST_PROB", 0.7),
        diag=_b("MC_TERRAIN_DIAG", False),
    )


def _reference_coords(n: int) -> tuple[np.ndarray, np.ndarray]:
    yy, xx = np.mgrid[0:n, 0:n].astype(float)
    scale = REFERENCE_SIZE / float(n)
    return xx * scale, yy * scale


def generate_elevation_map(
    n: int, rng: np.random.Generator, params: TerrainParams | None = None
) -> np.ndarray:
    """
    base + sin(4 pi x/n) cos(4 pi y/n) * A_low + sin(12 pi x/n) cos(12 pi y/n) * A_high
         + U(-jitter/2, jitter/2)
    """
    if params is None:
        params = TerrainParams()
    yy, xx = np.mgrid[0:n, 0:n].astype(float)
    nx = xx / n * 4.0
    ny = yy / n * 4.0
    jitter = rng.random((n, n))
    return (
        params.base_elevation
        + np.sin(nx * np.pi) * np.cos(ny * np.pi) * params.low_freq_amplitude
        + np.sin(nx * np.pi * 3.0) * np.cos(ny * np.pi * 3.0) * params.high_freq_amplitude
        + (jitter - 0.5) * params.jitter_amplitude
    )


def assign_default_soil(elevation: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Elevation thresholds:
      > 140 m -> Rock
      < 80 m  -> Clay / Loam (50 / 50)
      else    -> Loam 40 %, Sand 30 %, Clay 30 %
    """
    r = rng.random(elevation.shape)
    soil = np.where(r < 0.4, SoilType.LOAM, np.where(r < 0.7, SoilType.SAND, SoilType.CLAY))
    low = elevation < 80.0
    soil = np.where(low, np.where(r > 0.5, SoilType.CLAY, SoilType.LOAM), soil)
    soil = np.where(elevation > 140.0, SoilType.ROCK, soil)
    return soil.astype(np.int8)


def add_terrain_features(
    state: MicroclimateState, rng: np.random.Generator, params: TerrainParams | None = None
) -> None:
    if params is None:
        params = TerrainParams()
    xr, yr = _reference_coords(state.n)
    elev = state.elevation
    soil = state.soil_type
    land = state.land_cover

    ridge_line = params.ridge_height + np.sin(xr / 10.0) * params.ridge_wave_amplitude
    x_band = (xr >= 10.0) & (xr < 90.0)

    # Ridge
    ridge = x_band & (yr >= 40.0) & (yr <= 50.0)
    elev[ridge] = (ridge_line - np.abs(yr - 45.0) * params.ridge_falloff)[ridge]
    soil[ridge & (elev > params.rock_above)] = SoilType.ROCK

    # Valley
    valley = x_band & (yr >= 10.0) & (yr < 30.0)
    lowered = np.maximum(60.0, elev - (10.0 - np.abs(yr - 20.0)) * 5.0)
    elev[valley] = lowered[valley]
    soil[valley & (elev < 80.0)] = SoilType.CLAY

    # Foothills descend from the ridge base (ridge line minus 5 cells of falloff)
    foothills = x_band & (yr >= 51.0) & (yr < 70.0)
    mountain_base = ridge_line - 5.0 * params.ridge_falloff
    elev[foothills] = np.maximum(80.0, mountain_base - (yr - 50.0) * 12.0)[foothills]

    dune_draw = rng.random(state.shape)
    forest_draw = rng.random(state.shape)

    # Dune belt
    dunes = (yr >= 65.0) & (yr < 80.0) & (xr >= 30.0) & (xr < 60.0)
    soil[dunes & (dune_draw > 1.0 - params.dune_probability)] = SoilType.SAND

    # Lake
    lake = np.hypot(xr - 27.0, yr - 20.0) <= params.lake_radius
    land[lake] = LandCover.WATER
    elev[lake] = params.lake_elevation

    # Forest band
    forest = (yr >= 30.0) & (yr < 45.0) & (xr >= 20.0) & (xr < 80.0)
    forest &= forest_draw > 1.0 - params.forest_probability
    land[forest] = LandCover.FOREST
    soil[forest] = SoilType.LOAM

    # Settlement diamond
    settlement = (np.abs(xr - 50.0) + np.abs(yr - 55.0)) < 40.0
    land[settlement] = LandCover.SETTLEMENT


def calculate_hillshade(state: MicroclimateState) -> np.ndarray:
    """
    shade = cos(alt) cos(slope) + sin(alt) sin(slope) cos(az - aspect), clamped [0, 1],
    with slope = atan(|grad z|) and aspect = atan2(dz/dy, dz/dx). Border cells keep
    their previous value.
    """
    az = np.deg2rad(constants.HILLSHADE_AZIMUTH_DEG)
    alt = np.deg2rad(constants.HILLSHADE_ALTITUDE_DEG)
    dzdx, dzdy = state.grid.centered_gradient(state.elevation, step=1)
    slope = np.arctan(np.hypot(dzdx, dzdy))
    aspect = np.arctan2(dzdy, dzdx)
    shade = np.cos(alt) * np.cos(slope) + np.sin(alt) * np.sin(slope) * np.cos(az - aspect)
    interior = state.grid.interior_mask(1)
    state.hillshade[interior] = np.clip(shade, 0.0, 1.0)[interior]
    return state.hillshade


def initialize_environment(
    state: MicroclimateState, rng: np.random.Generator, params: TerrainParams | None = None
) -> MicroclimateState:
    """
    Rebuild the static terrain of `state` and reset every dynamic field to the
    neutral baseline, then label regions, compute distance fields and hillshade.
    """
    if params is None:
        params = TerrainParams()
    state.elevation[...] = generate_elevation_map(state.n, rng, params)
    state.land_cover[...] = LandCover.GRASSLAND
    state.soil_type[...] = assign_default_soil(state.elevation, rng)
    reset_dynamic_fields(state, rng)

    add_terrain_features(state, rng, params)
    label_regions(state)
    compute_distance_fields(state)
    calculate_hillshade(state)

    if params.diag:
        counts = np.bincount(state.land_cover.ravel().astype(int), minlength=len(LandCover))
        summary = ", ".join(f"{lc.name.lower()}={counts[lc]}" for lc in LandCover)
        print(
            f"[Terrain] n={state.n} elev=[{state.elevation.min():.1f},{state.elevation.max():.1f}] m | "
            f"regions={len(state.region_sizes)} | {summary}"
        )
    return state
