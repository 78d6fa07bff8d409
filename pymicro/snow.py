"""
snow.py

Snow-cover collaborator of the energy pass.

This module provides:
- SnowParams: configuration loaded from environment variables.
- calculate_snow_effects(state, sun_altitude, params) -> SnowEffects(albedo_effect, insulation_effect)
- update_snow_cover(state, temperature, sun_altitude, time_factor, params):
  degree-day, ground and solar melt (shaded under forest), latent cooling of the
  candidate air temperature, melt infiltration, settling, sublimation and
  refreezing of soil moisture. Mutates snow depth and soil moisture in place,
  and the passed candidate temperature grid.

Units:
- snow depth in cm; melt factors in cm per °C-hour (air / ground) or per unit
  sun altitude (solar).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from pymicro import constants
from pymicro.categories import LandCover
from pymicro.grid import clamp_finite


@dataclass
class SnowParams:
    degree_day_melt: float = 0.35
    solar_melt: float = 1.1
    forest_shade: float = 0.55
    ground_melt: float = 0.18
    melt_to_soil_moisture: float = 0.1
    latent_cooling_per_cm: float = 0.08
    min_air_temp_after_melt: float = -4.0
    sublimation_rate: float = 0.18
    settling_base_rate: float = 0.005
    settling_deep_snow: float = 25.0  # cm
    settling_max_rate: float = 0.02
    refreeze_rate: float = 0.02
    snow_albedo: float = 0.78
    albedo_depth_scale: float = 12.0  # cm
    insulation_depth_scale: float = 18.0  # cm


def get_snow_params_from_env() -> SnowParams:
    def _f(env: str, default: float) -> float:
        try:
            return float(os.getenv(env, str(default)))
        except Exception:
            return default

    return SnowParams(
        degree_day_melt=_f("MC_SNOW_DDF", 0.35),
        solar_melt=_f("MC_SNOW_SOLAR_MELT", 1.1),
        ground_melt=_f("MC_SNOW_GROUND_MELT", 0.18),
        sublimation_rate=_f("MC_SNOW_SUBLIMATION", 0.18),
        refreeze_rate=_f("MC_SNOW_REFREEZE", 0.02),
    )


class SnowEffects(NamedTuple):
    albedo_effect: np.ndarray  # <= 0, cooling from reflected sunshine
    insulation_effect: np.ndarray  # [0, 1)


def calculate_snow_effects(state, sun_altitude: float, params: SnowParams | None = None) -> SnowEffects:
    if params is None:
        params = SnowParams()
    depth = np.maximum(np.nan_to_num(state.snow_depth, nan=0.0), 0.0)
    covered = depth > 0
    albedo_factor = 1.0 - np.exp(-depth / params.albedo_depth_scale)
    albedo = -params.snow_albedo * albedo_factor * sun_altitude * constants.SOLAR_INTENSITY_FACTOR
    insulation = 1.0 - np.exp(-depth / params.insulation_depth_scale)
    return SnowEffects(np.where(covered, albedo, 0.0), np.where(covered, insulation, 0.0))


def update_snow_cover(
    state,
    temperature: np.ndarray,
    sun_altitude: float,
    time_factor: float,
    params: SnowParams | None = None,
) -> None:
    if time_factor <= 0:
        return
    if params is None:
        params = SnowParams()

    depth = state.snow_depth.copy()
    air = temperature.copy()
    soil_temp = state.soil_temperature.read
    moisture = state.soil_moisture
    moisture[...] = clamp_finite(moisture, 0.0)
    humidity = np.clip(np.nan_to_num(state.humidity, nan=0.5), 0.0, 1.0)
    active = (depth > 0) | (sun_altitude > 0)

    # Melt
    covered = active & (depth > 0)
    shade = np.where(state.land_cover == LandCover.FOREST, params.forest_shade, 1.0)
    melt_air = np.maximum(0.0, air) * params.degree_day_melt
    melt_ground = np.maximum(0.0, soil_temp) * params.ground_melt
    melt_sun = sun_altitude * params.solar_melt * shade if sun_altitude > 0 else 0.0
    melt = np.where(covered, np.minimum(depth, (melt_air + melt_ground + melt_sun) * time_factor), 0.0)
    melting = melt > 0
    depth -= melt

    latent = np.minimum(np.maximum(air, 0.0), melt * params.latent_cooling_per_cm)
    temperature[...] = np.where(
        melting, np.maximum(params.min_air_temp_after_melt, temperature - latent), temperature
    )
    capacity = 1.0 - moisture
    infiltration = np.where(melting & (capacity > 0), np.minimum(melt * params.melt_to_soil_moisture, capacity), 0.0)
    moisture += infiltration

    # Settling (compaction, faster for deep packs)
    settling = np.minimum(
        params.settling_max_rate,
        params.settling_base_rate + np.maximum(0.0, depth - params.settling_deep_snow) / 800.0,
    )
    settle = covered & (depth > 0)
    depth = np.where(settle, np.maximum(0.0, depth - depth * settling * time_factor), depth)

    # Sublimation under sunshine below freezing
    if sun_altitude > 0:
        sublimate = active & (depth > 0) & (air <= 0)
        loss = (1.0 - humidity) * sun_altitude * params.sublimation_rate * time_factor
        depth = np.where(sublimate, np.maximum(0.0, depth - loss), depth)

    # Refreezing of soil water
    freezing = active & (air < -1) & (soil_temp < 0) & (moisture > 0)
    potential = np.minimum(
        moisture, (np.abs(air) + np.abs(soil_temp)) * 0.5 * params.refreeze_rate * time_factor
    )
    frozen = np.where(freezing, potential, 0.0)
    moisture -= frozen
    depth += frozen / params.melt_to_soil_moisture

    state.snow_depth[...] = np.maximum(depth, 0.0)
