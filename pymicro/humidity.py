"""
humidity.py

Near-surface relative humidity budget and dew point.

This module provides:
- HumidityParams: configuration loaded from environment variables.
- dew_point(T, rh, params): Magnus approximation (°C).
- surface_evaporation(state, props, wind_speed, params): per-cell evaporation source.
- update_humidity(state, props, wind_speed, precip_rate, precip_type, time_factor, params):
  integrates evaporation minus the rain-out sink, clamps, refreshes dew point.

Conventions:
- humidity: relative humidity in [min_humidity, 1].
- Evaporation and sink are in "percent per hour"; dh = (E - S) * tf / 100.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import numpy as np

from pymicro import constants
from pymicro.categories import LandCover, PrecipitationType
from pymicro.grid import clamp_finite


@dataclass
class HumidityParams:
    magnus_a: float = 17.27
    magnus_b: float = 237.7  # °C
    water_evaporation: float = 2.0
    forest_evaporation: float = 1.0
    temperature_scale: float = 30.0  # °C at which evaporation reaches its nominal rate
    wind_scale: float = 20.0
    precip_sink: float = 10.0
    min_humidity: float = 0.01


def get_humidity_params_from_env() -> HumidityParams:
    def _f(env: str, default: float) -> float:
        try:
            return float(os.getenv(env, str(default)))
        except Exception:
            return default

    return HumidityParams(
        water_evaporation=_f("MC_WATER_EVAP", 2.0),
        forest_evaporation=_f("MC_FOREST_EVAP", 1.0),
        precip_sink=_f("MC_PRECIP_SINK", 10.0),
        min_humidity=_f("MC_MIN_HUMIDITY", 0.01),
    )


def dew_point(temperature, humidity, params: HumidityParams | None = None):
    """
    Magnus formula:
        gamma = ln(rh) + a T / (b + T);  Td = b gamma / (a - gamma)
    Humidity is floored at a tiny positive value so ln() stays finite.
    """
    if params is None:
        params = HumidityParams()
    a, b = params.magnus_a, params.magnus_b
    t = np.asarray(temperature, dtype=float)
    rh = np.clip(np.asarray(humidity, dtype=float), 1e-6, 1.0)
    gamma = np.log(rh) + a * t / (b + t)
    return b * gamma / (a - gamma)


def surface_evaporation(state, props, wind_speed: float, params: HumidityParams | None = None) -> np.ndarray:
    if params is None:
        params = HumidityParams()
    land = state.land_cover
    warmth = np.maximum(0.0, state.temperature.read / params.temperature_scale)
    soil = np.where(state.soil_moisture > 0, state.soil_moisture * props.evaporation * warmth, 0.0)
    return np.select(
        [land == LandCover.WATER, land == LandCover.FOREST],
        [
            params.water_evaporation * warmth * (1.0 + wind_speed / params.wind_scale),
            params.forest_evaporation * warmth,
        ],
        default=soil,
    )


def update_humidity(
    state,
    props,
    wind_speed: float,
    precip_rate: np.ndarray,
    precip_type: np.ndarray,
    time_factor: float,
    params: HumidityParams | None = None,
) -> None:
    if params is None:
        params = HumidityParams()
    evaporation = surface_evaporation(state, props, wind_speed, params)
    liquid = (precip_rate > 0) & (precip_type != PrecipitationType.SNOW)
    sink = np.where(liquid, precip_rate * params.precip_sink, 0.0)
    change = (evaporation - sink) * time_factor / 100.0
    current = clamp_finite(state.humidity, constants.NEUTRAL_HUMIDITY)
    state.humidity[...] = clamp_finite(current + change, constants.NEUTRAL_HUMIDITY, params.min_humidity, 1.0)
    state.dew_point[...] = dew_point(state.temperature.read, state.humidity, params)
