"""
wind.py

Per-tick terrain-driven wind field.

This module provides:
- WindParams / get_wind_params_from_env()
- vegetation_drag(land_cover, forest_depth, params) -> drag factor per cell
- update_wind(state, hour, base_wind_speed, wind_dir_deg, wind_gustiness, rng, params=None)
- reset_wind(state)

Effects, in order of application:
1) Katabatic flow: night-time downslope drainage on slopes, rejected across cliffs.
2) Lee-side föhn: warming and a wind-aligned push behind higher upwind terrain.
3) Valley channelling: wind turned along the valley axis with a venturi speed-up.
4) Gusts: zero-mean uniform perturbation scaled by roughness and thermals.
5) Vegetation drag, then a single 3x3 smoothing pass (centre weight 4).

Conventions:
- Wind direction in degrees; the unit wind vector is (sin(dir), -cos(dir)) in
  (x, y) grid components.
- Elevation gradient uses centred differences over +-2 cells, evaluated on
  interior cells [2, n-2).
- `speed` is always recomputed as the magnitude of (u, v).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

import numpy as np

from pymicro import constants
from pymicro.categories import LandCover
from pymicro.grid import local_std_3x3, round_half_up, shift_padded, smooth_interior


def _default_drag() -> dict[int, float]:
    return {
        LandCover.GRASSLAND: 0.85,
        LandCover.FOREST: 0.55,
        LandCover.WATER: 0.95,
        LandCover.URBAN: 0.7,
        LandCover.SETTLEMENT: 0.8,
    }


@dataclass
class WindParams:
    # Katabatic flow
    katabatic_min_angle: float = 0.1  # rad
    katabatic_angle_scale: float = 0.5  # rad for full strength
    katabatic_wind_cutoff: float = 30.0  # base wind that suppresses drainage
    cliff_tolerance: float = 30.0  # m
    katabatic_flow: float = 0.8
    katabatic_vector_scale: float = 5.0
    downslope_scale: float = 1.5

    # Föhn
    foehn_min_wind: float = 10.0
    foehn_min_angle: float = 0.15
    foehn_scan_cells: int = 10
    foehn_rise: float = 20.0  # m above the running maximum
    adiabatic_warming: float = 0.01  # °C per m of descent
    foehn_max: float = 12.0
    foehn_vector_scale: float = 10.0

    # Valley channelling
    valley_radius: int = 5
    valley_rise: float = 25.0
    valley_fraction: float = 0.4
    valley_samples: int = 16
    valley_max_width: int = 15
    valley_width_tolerance: float = 30.0
    venturi_gain: float = 1.2
    valley_contribution: float = 0.8

    # Gusts
    roughness_scale: float = 20.0
    thermal_scale: float = 15.0

    # Drag / smoothing
    drag: dict[int, float] = field(default_factory=_default_drag)
    forest_depth_scale: float = 20.0
    forest_depth_reduction: float = 0.4
    smoothing_center_weight: float = 4.0


def get_wind_params_from_env() -> WindParams:
    def _f(env: str, default: float) -> float:
        try:
            return float(os.getenv(env, str(default)))
        except Exception:
            return default

    def _i(env: str, default: int) -> int:
        try:
            return int(os.getenv(env, str(default)))
        except Exception:
            return default

    return WindParams(
        katabatic_min_angle=_f("MC_KATABATIC_SLOPE", 0.1),
        katabatic_flow=_f("MC_KATABATIC_FLOW", 0.8),
        cliff_tolerance=_f("MC_CLIFF_TOLERANCE", 30.0),
        foehn_min_wind=_f("MC_FOEHN_MIN_WIND", 10.0),
        foehn_scan_cells=_i("MC_FOEHN_SCAN", 10),
        adiabatic_warming=_f("MC_ADIABATIC_WARMING", 0.01),
        valley_radius=_i("MC_VALLEY_RADIUS", 5),
        venturi_gain=_f("MC_VENTURI_GAIN", 1.2),
        smoothing_center_weight=_f("MC_WIND_SMOOTH_CENTER", 4.0),
    )


def is_night_hour(hour: float) -> bool:
    return hour <= 6 or hour >= 19


def wind_unit_vector(wind_dir_deg: float) -> tuple[float, float]:
    rad = np.deg2rad(wind_dir_deg)
    return float(np.sin(rad)), float(-np.cos(rad))


def vegetation_drag(land_cover: np.ndarray, forest_depth: np.ndarray, params: WindParams | None = None) -> np.ndarray:
    if params is None:
        params = WindParams()
    land = np.asarray(land_cover)
    drag = np.full(land.shape, params.drag.get(LandCover.GRASSLAND, 0.85), dtype=float)
    for code, factor in params.drag.items():
        drag[land == code] = factor
    forest = land == LandCover.FOREST
    depth = np.nan_to_num(np.asarray(forest_depth, dtype=float), nan=0.0)
    canopy = 1.0 - np.minimum(1.0, depth / params.forest_depth_scale) * params.forest_depth_reduction
    drag = np.where(forest, drag * np.maximum(0.2, canopy), drag)
    return drag


def reset_wind(state) -> None:
    state.wind.reset()
    state.downslope_wind[...] = 0.0
    state.foehn_effect[...] = 0.0


def _katabatic(state, dzdx, dzdy, inner, base_wind_speed, params: WindParams) -> None:
    elev = state.elevation
    n = state.n
    slope = np.hypot(dzdx, dzdy)
    angle = np.arctan(slope)
    active = inner & (angle > params.katabatic_min_angle)
    if not active.any():
        return

    strength = np.minimum(1.0, angle / params.katabatic_angle_scale) * max(
        0.0, 1.0 - base_wind_speed / params.katabatic_wind_cutoff
    )

    # Reject flow that would cross a cliff or ridgeline within two cells downslope
    surface = np.ones(elev.shape, dtype=bool)
    yy, xx = state.grid.yy, state.grid.xx
    for d in (1, 2):
        cx = round_half_up(xx - dzdx * d)
        cy = round_half_up(yy - dzdy * d)
        valid = state.grid.in_bounds(cx, cy)
        sample = elev[np.clip(cy, 0, n - 1), np.clip(cx, 0, n - 1)]
        surface &= ~(valid & (np.abs(sample - elev) > params.cliff_tolerance))

    flow_cells = active & surface & (slope > constants.EPSILON)
    flow = params.katabatic_flow * strength
    safe_slope = np.where(flow_cells, slope, 1.0)
    state.wind.u[flow_cells] = (-dzdx / safe_slope * flow * params.katabatic_vector_scale)[flow_cells]
    state.wind.v[flow_cells] = (-dzdy / safe_slope * flow * params.katabatic_vector_scale)[flow_cells]
    state.downslope_wind[flow_cells] = (-flow * params.downslope_scale)[flow_cells]


def _foehn(state, dzdx, dzdy, inner, base_wind_speed, wind_dir_deg, params: WindParams) -> None:
    elev = state.elevation
    angle = np.arctan(np.hypot(dzdx, dzdy))
    active = inner & (angle > params.foehn_min_angle)
    if not active.any():
        return
    wx, wy = wind_unit_vector(wind_dir_deg)

    max_upwind = elev.copy()
    lee = np.zeros(elev.shape, dtype=bool)
    for d in range(1, params.foehn_scan_cells + 1):
        ox = int(round_half_up(-wx * d))
        oy = int(round_half_up(-wy * d))
        upwind, valid = shift_padded(elev, ox, oy, -np.inf)
        higher = valid & (upwind > max_upwind + params.foehn_rise)
        lee |= higher
        max_upwind = np.where(higher, upwind, max_upwind)

    lee &= active
    descent = max_upwind - elev
    strength = np.minimum(1.0, descent / 100.0) * (base_wind_speed / 30.0)
    warming = np.minimum(params.foehn_max, descent * params.adiabatic_warming * strength)
    state.foehn_effect[lee] = warming[lee]
    state.wind.u[lee] += (wx * strength * params.foehn_vector_scale)[lee]
    state.wind.v[lee] += (wy * strength * params.foehn_vector_scale)[lee]


def _valley_candidates(state, inner, params: WindParams) -> np.ndarray:
    elev = state.elevation
    r = params.valley_radius
    higher = np.zeros(elev.shape, dtype=int)
    for dy in range(-r, r + 1):
        for dx in range(-r, r + 1):
            if dx == 0 and dy == 0:
                continue
            neighbour, valid = shift_padded(elev, dx, dy, -np.inf)
            higher += valid & (neighbour > elev + params.valley_rise)
    window = (2 * r + 1) ** 2 - 1
    return inner & (higher > window * params.valley_fraction)


def _valley_axis(state, x: int, y: int, params: WindParams) -> tuple[float, float] | None:
    """Unit vector joining the two farthest-apart low exits on the radius circle."""
    elev = state.elevation
    r = params.valley_radius
    exits = []
    for k in range(params.valley_samples):
        theta = 2.0 * np.pi * k / params.valley_samples
        nx = int(round_half_up(x + r * np.cos(theta)))
        ny = int(round_half_up(y + r * np.sin(theta)))
        if state.in_bounds(nx, ny):
            exits.append((float(elev[ny, nx]), nx, ny))
    exits.sort(key=lambda e: e[0])
    lowest = exits[: max(2, len(exits) // 3)]
    if len(lowest) < 2:
        return None

    best = None
    best_dist = 0
    for i in range(len(lowest)):
        for j in range(i + 1, len(lowest)):
            _, x1, y1 = lowest[i]
            _, x2, y2 = lowest[j]
            dist_sq = (x1 - x2) ** 2 + (y1 - y2) ** 2
            if dist_sq > best_dist:
                best_dist = dist_sq
                best = (x2 - x1, y2 - y1)
    if best is None:
        return None
    mag = float(np.hypot(*best))
    if mag <= constants.EPSILON:
        return None
    return best[0] / mag, best[1] / mag


def _valley_width(state, x: int, y: int, axis: tuple[float, float], params: WindParams) -> int:
    elev = state.elevation
    px, py = -axis[1], axis[0]
    width = 0
    limit = params.valley_max_width
    for sign in (-1, 1):
        for d in range(1, limit):
            cx = int(round_half_up(x + px * d * sign))
            cy = int(round_half_up(y + py * d * sign))
            if not state.in_bounds(cx, cy) or elev[cy, cx] > elev[y, x] + params.valley_width_tolerance:
                width += d
                break
            if d == limit - 1:
                width += d
    return width


def _valley_channeling(state, inner, base_wind_speed, wind_dir_deg, params: WindParams) -> None:
    candidates = _valley_candidates(state, inner, params)
    if not candidates.any():
        return
    wx, wy = wind_unit_vector(wind_dir_deg)
    for y, x in zip(*np.nonzero(candidates)):
        axis = _valley_axis(state, int(x), int(y), params)
        if axis is None:
            continue
        width = _valley_width(state, int(x), int(y), axis, params)
        alignment = wx * axis[0] + wy * axis[1]
        narrowness = max(0.0, (params.valley_max_width - width) / params.valley_max_width)
        venturi = 1.0 + narrowness * params.venturi_gain
        channel = 0.4 + narrowness * 0.6
        speed = base_wind_speed * abs(alignment) * venturi
        sign = 1.0 if alignment >= 0 else -1.0
        bx = wx * (1.0 - channel) + axis[0] * sign * channel
        by = wy * (1.0 - channel) + axis[1] * sign * channel
        state.wind.u[y, x] += bx * speed * params.valley_contribution
        state.wind.v[y, x] += by * speed * params.valley_contribution


def _gusts(state, base_wind_speed, wind_gustiness, drag, rng, params: WindParams) -> None:
    # always draw both components so generator consumption does not depend on terrain
    noise = rng.random((2,) + state.shape)
    interior = state.grid.interior_mask(1)
    roughness = local_std_3x3(state.elevation) / params.roughness_scale
    thermal = np.nan_to_num(state.thermal_strength, nan=0.0) / params.thermal_scale
    factor = (wind_gustiness / 100.0) * (1.0 + roughness + thermal)
    local_speed = np.hypot(state.wind.u, state.wind.v) + base_wind_speed
    magnitude = local_speed * factor * 0.5 * drag
    state.wind.u[interior] += ((noise[0] - 0.5) * 2.0 * magnitude)[interior]
    state.wind.v[interior] += ((noise[1] - 0.5) * 2.0 * magnitude)[interior]


def update_wind(
    state,
    hour: float,
    base_wind_speed: float,
    wind_dir_deg: float,
    wind_gustiness: float,
    rng: np.random.Generator | None = None,
    params: WindParams | None = None,
) -> None:
    """Recompute the whole wind field (and downslope / föhn side grids) from scratch."""
    if params is None:
        params = WindParams()
    reset_wind(state)

    dzdx, dzdy = state.grid.centered_gradient(state.elevation, step=2)
    inner = state.grid.interior_mask(2)

    if is_night_hour(hour):
        _katabatic(state, dzdx, dzdy, inner, base_wind_speed, params)
    if base_wind_speed > params.foehn_min_wind:
        _foehn(state, dzdx, dzdy, inner, base_wind_speed, wind_dir_deg, params)
    _valley_channeling(state, inner, base_wind_speed, wind_dir_deg, params)

    drag = vegetation_drag(state.land_cover, state.forest_depth, params)
    if wind_gustiness > 0:
        if rng is None:
            rng = np.random.default_rng()
        _gusts(state, base_wind_speed, wind_gustiness, drag, rng, params)

    state.wind.u *= drag
    state.wind.v *= drag
    state.wind.u[...] = smooth_interior(state.wind.u, params.smoothing_center_weight)
    state.wind.v[...] = smooth_interior(state.wind.v, params.smoothing_center_weight)
    state.wind.refresh_speed()
