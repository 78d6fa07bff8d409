"""
fog.py

Radiation / advection fog density in [0, 1].

update_fog(state, sun_altitude, time_factor, params):
1) Hourly change rate = formation - dissipation, clamped to +-max_hourly_rate.
   Formation: inversion pooling, dew-point proximity, soil moisture, snow,
   nearby open water, calm air. Dissipation: sunshine (less in shaded cells),
   wind, air warmer than the dew point, dry air, föhn, dense-fog self limit,
   strong wind.
2) Transport from the previous snapshot: upwind sampling with exponential
   damping outside the grid, drainage from higher neighbours weighted by the
   height difference, 4-neighbour diffusion with edge replication.
3) Clamp to [0, 1].
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import numpy as np

from pymicro import constants
from pymicro.grid import round_half_up, shift_clamped, shift_padded


@dataclass
class FogParams:
    wind_dissipation: float = constants.FOG_WIND_DISSIPATION
    sun_dissipation: float = constants.FOG_SUN_DISSIPATION
    temp_dissipation: float = constants.FOG_TEMP_DISSIPATION
    advection_rate: float = constants.FOG_ADVECTION_RATE
    downslope_rate: float = constants.FOG_DOWNSLOPE_RATE
    diffusion_rate: float = constants.FOG_DIFFUSION_RATE
    max_hourly_rate: float = 0.6
    water_radius: float = 8.0
    upwind_step: float = 0.2  # cells per unit wind


def get_fog_params_from_env() -> FogParams:
    def _f(env: str, default: float) -> float:
        try:
            return float(os.getenv(env, str(default)))
        except Exception:
            return default

    return FogParams(
        wind_dissipation=_f("MC_FOG_WIND_DISSIPATION", constants.FOG_WIND_DISSIPATION),
        sun_dissipation=_f("MC_FOG_SUN_DISSIPATION", constants.FOG_SUN_DISSIPATION),
        temp_dissipation=_f("MC_FOG_TEMP_DISSIPATION", constants.FOG_TEMP_DISSIPATION),
        advection_rate=_f("MC_FOG_ADVECTION", constants.FOG_ADVECTION_RATE),
        downslope_rate=_f("MC_FOG_DOWNSLOPE", constants.FOG_DOWNSLOPE_RATE),
        diffusion_rate=_f("MC_FOG_DIFFUSION", constants.FOG_DIFFUSION_RATE),
        max_hourly_rate=_f("MC_FOG_MAX_RATE", 0.6),
    )


def boundary_damping(x: np.ndarray, y: np.ndarray, n: int) -> np.ndarray:
    """exp(-overflow / 2) for sample points beyond the grid edge; 1 inside."""
    top = n - 1
    over_x = np.where(x < 0, -x, np.where(x > top, x - top, 0.0))
    over_y = np.where(y < 0, -y, np.where(y > top, y - top, 0.0))
    overflow = over_x + over_y
    return np.where(overflow > 0, np.exp(-overflow * 0.5), 1.0)


def fog_change_rate(state, sun_altitude: float, params: FogParams) -> np.ndarray:
    speed = state.wind.speed
    fog = state.fog_density
    rh = np.clip(state.humidity, 0.0, 1.0)
    dew_diff = state.dew_point - state.temperature.read
    saturation = np.clip((dew_diff + 3.0) / 7.0, 0.0, 1.0)
    calm = np.clip((3.0 - speed) / 3.0, 0.0, 1.0)
    moisture = np.clip(state.soil_moisture, 0.0, 1.0)
    hillshade = np.clip(state.hillshade, 0.0, 1.0)

    formation = np.zeros(state.shape)
    if state.inversion_strength > 0:
        below = state.elevation < state.inversion_height
        depth = np.clip(np.maximum(0.0, state.inversion_height - state.elevation) / 120.0, 0.0, 1.0)
        formation += np.where(below, state.inversion_strength * depth * (0.25 + calm * 0.45), 0.0)

    dew_bonus = np.clip((dew_diff + 3.0) / 6.0, 0.0, 1.0)
    formation += np.where(dew_diff >= -3.0, dew_bonus * (0.35 + rh * 0.65) * (0.5 + calm * 0.5), 0.0)
    formation += moisture * 0.05 * (0.6 + saturation * 0.4)

    snow = state.snow_depth
    formation += np.where(snow > 0, np.clip(snow / 80.0, 0.0, 0.12) * (0.4 + calm * 0.6), 0.0)

    near_water = state.water_distance < params.water_radius
    water_factor = np.clip((params.water_radius - np.where(near_water, state.water_distance, 0.0)) / params.water_radius, 0.0, 1.0)
    nocturnal = 1.2 if sun_altitude <= 0 else 0.6
    formation += np.where(near_water, water_factor * (0.15 + rh * 0.25) * nocturnal * (0.4 + calm * 0.6), 0.0)
    formation += np.where(speed < 2.0, (2.0 - speed) * 0.08 * (0.3 + saturation * 0.7), 0.0)

    dissipation = np.zeros(state.shape)
    if sun_altitude > 0:
        dissipation += sun_altitude * params.sun_dissipation * (0.7 + (1.0 - hillshade) * 0.6)
    dissipation += speed * params.wind_dissipation * (1.0 + speed / 15.0)
    dissipation += np.where(dew_diff < 0, -dew_diff * params.temp_dissipation * (0.7 + (1.0 - rh) * 0.6), 0.0)
    dissipation += (1.0 - rh) * 0.15
    dissipation += np.where(state.downslope_wind > 0, state.downslope_wind * 0.12, 0.0)
    dissipation += np.where(fog > 0.6, (fog - 0.6) * 0.5, 0.0)
    dissipation += np.where(speed >= 6.0, (speed - 6.0) * 0.08, 0.0)

    return np.clip(formation - dissipation, -params.max_hourly_rate, params.max_hourly_rate)


def update_fog(state, sun_altitude: float, time_factor: float, params: FogParams | None = None) -> None:
    if time_factor <= 0:
        return
    if params is None:
        params = FogParams()
    n = state.n
    fog = state.fog_density.copy()
    new = fog + fog_change_rate(state, sun_altitude, params) * time_factor

    # Upwind advection
    u, v, speed = state.wind.u, state.wind.v, state.wind.speed
    raw_x = state.grid.xx - u * params.upwind_step
    raw_y = state.grid.yy - v * params.upwind_step
    ux = np.clip(round_half_up(raw_x), 0, n - 1)
    uy = np.clip(round_half_up(raw_y), 0, n - 1)
    source = fog[uy, ux] * boundary_damping(raw_x, raw_y, n)
    advection = (source - fog) * params.advection_rate * np.minimum(1.0, speed / 10.0)
    new += np.where(speed > 0.5, advection * time_factor, 0.0)

    # Drainage from higher neighbours
    elev = state.elevation
    weighted = np.zeros(state.shape)
    weight_sum = np.zeros(state.shape)
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dx == 0 and dy == 0:
                continue
            n_elev, valid = shift_padded(elev, dx, dy, -np.inf)
            n_fog, _ = shift_padded(fog, dx, dy, 0.0)
            rise = np.where(valid, n_elev - elev, 0.0)
            higher = rise > 0
            weighted += np.where(higher, n_fog * rise, 0.0)
            weight_sum += np.where(higher, rise, 0.0)
    drained = weighted / np.where(weight_sum > 0, weight_sum, 1.0)
    new += np.where(weight_sum > 0, (drained - fog) * params.downslope_rate * time_factor, 0.0)

    # Diffusion
    neighbours = (
        shift_clamped(fog, 0, -1) + shift_clamped(fog, 0, 1) + shift_clamped(fog, -1, 0) + shift_clamped(fog, 1, 0)
    ) / 4.0
    new += (neighbours - fog) * params.diffusion_rate * time_factor

    state.fog_density[...] = np.clip(np.nan_to_num(new, nan=0.0), 0.0, 1.0)
