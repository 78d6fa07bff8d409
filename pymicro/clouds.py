"""
clouds.py

Cloud formation, cloud water budget, precipitation and microphysics.

This module provides:
- CloudParams: configuration loaded from environment variables.
- CloudTickParams: per-tick driving inputs (month, hour, wind, time factor).
- orographic_potential / convective_potential: formation mechanisms.
- precipitation_base_rate / calculate_precipitation / classify_precipitation
- cloud_microphysics: freezing, droplet growth, graupel.
- update_cloud_dynamics(state, tick, rng, params): the per-tick pass.
- calculate_cloud_radiation(state, sun_altitude) -> CloudRadiation

All per-cell terms are local, so the pass is evaluated on whole grids. The
strongest mechanism wins in the order orographic (> 0.5), convective (> 0.3),
fog-derived stratus (fog > 0.5); otherwise the cell has no cloud type.
Cloud water lives in [0, max_cloud_water]; coverage = min(1, water).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from pymicro.categories import CloudType, LandCover, PrecipitationType, SoilType
from pymicro.climate import DEFAULT_CLIMATE_OVERRIDES, ClimateOverrides, calculate_base_temperature, sun_altitude_for_hour
from pymicro.grid import clamp_finite, smooth_interior
from pymicro.humidity import HumidityParams, update_humidity
from pymicro.materials import thermal_property_maps
from pymicro.wind import wind_unit_vector


@dataclass
class CloudParams:
    # Orographic
    orographic_min_wind: float = 5.0
    lcl_per_degree: float = 125.0  # m per °C of dew-point deficit
    forced_lift_scale: float = 100.0
    orographic_threshold: float = 0.5
    # Convective
    convective_first_hour: float = 10.0
    convective_last_hour: float = 17.0
    cape_cumulus: float = 500.0
    cape_cumulonimbus: float = 2000.0
    cape_saturation: float = 3000.0
    convective_threshold: float = 0.3
    # Fog-derived stratus
    stratus_fog_threshold: float = 0.5
    # Water budget
    formation_multiplier: float = 2.0
    solar_dissipation: float = 0.8
    precip_water_loss: float = 0.1
    max_cloud_water: float = 1.5
    optical_depth_scale: float = 10.0
    # Precipitation
    max_precipitation: float = 2.0
    min_precipitation: float = 0.01
    rain_above: float = 2.0  # °C
    snow_at_or_below: float = -5.0  # °C
    snow_accumulation: float = 10.0  # cm per unit rate-hour
    snow_latent_heat: float = 0.8
    # Radiation
    longwave_factor: float = 3.0
    # Microphysics
    freezing_scale: float = 10.0  # °C
    graupel_fraction: float = 0.3
    graupel_min_updraft: float = 5.0


def get_cloud_params_from_env() -> CloudParams:
    def _f(env: str, default: float) -> float:
        try:
            return float(os.getenv(env, str(default)))
        except Exception:
            return default

    return CloudParams(
        orographic_min_wind=_f("MC_OROGRAPHIC_MIN_WIND", 5.0),
        cape_cumulus=_f("MC_CAPE_CUMULUS", 500.0),
        cape_cumulonimbus=_f("MC_CAPE_CUMULONIMBUS", 2000.0),
        solar_dissipation=_f("MC_CLOUD_SOLAR_DISSIPATION", 0.8),
        max_cloud_water=_f("MC_MAX_CLOUD_WATER", 1.5),
        max_precipitation=_f("MC_MAX_PRECIP", 2.0),
    )


@dataclass
class CloudTickParams:
    month: float
    hour: float
    wind_speed: float
    wind_dir: float
    time_factor: float
    climate: ClimateOverrides = DEFAULT_CLIMATE_OVERRIDES


class CloudRadiation(NamedTuple):
    solar_transmission: np.ndarray  # (0, 1]
    longwave_warming: np.ndarray  # °C / hour equivalent


class Microphysics(NamedTuple):
    ice: np.ndarray
    droplet_size: np.ndarray  # µm
    precip_efficiency: np.ndarray  # diagnostic only
    graupel: np.ndarray


# base precipitation efficiency per cloud type (before stochastic gating)
PRECIP_EFFICIENCY: dict[int, float] = {
    CloudType.CUMULONIMBUS: 1.5,
    CloudType.NIMBOSTRATUS: 0.9,
    CloudType.CUMULUS: 0.7,
    CloudType.STRATUS: 0.5,
}


def orographic_potential(state, wind_speed: float, wind_dir: float, params: CloudParams | None = None) -> np.ndarray:
    """
    Forced-lift cloud potential in [0, 2] on windward slopes (interior cells):
        lift = (grad z . w) * V / 10,  LCL = 125 (T - Td)
        potential = (100 lift - LCL) / 1000 * rh * clamp(1 - |T - 15| / 20, 0.2, 1)
    """
    if params is None:
        params = CloudParams()
    if wind_speed < params.orographic_min_wind:
        return np.zeros(state.shape)
    wx, wy = wind_unit_vector(wind_dir)
    dzdx, dzdy = state.grid.centered_gradient(state.elevation, step=1)
    along = dzdx * wx + dzdy * wy
    windward = state.grid.interior_mask(1) & (along > 0)

    temp = state.temperature.read
    lift = along * wind_speed / 10.0
    lcl = params.lcl_per_degree * (temp - state.dew_point)
    forced = lift * params.forced_lift_scale
    temp_factor = np.clip(1.0 - np.abs(temp - 15.0) / 20.0, 0.2, 1.0)
    potential = np.clip((forced - lcl) / 1000.0 * state.humidity * temp_factor, 0.0, 2.0)
    return np.where(windward & (forced > lcl), potential, 0.0)


def convective_potential(
    state, month: float, hour: float, climate: ClimateOverrides = DEFAULT_CLIMATE_OVERRIDES, params: CloudParams | None = None
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Returns (development, cloud_type, cape, thermal_strength).

    Thermal excess over the baseline curve is weighted by surface: Urban 1.3,
    Sand soil 1.1, Grassland 1.0, Water / Forest 0.5, others 0.
    """
    if params is None:
        params = CloudParams()
    shape = state.shape
    thermal = np.zeros(shape)
    if params.convective_first_hour <= hour <= params.convective_last_hour:
        excess = state.temperature.read - calculate_base_temperature(month, hour, climate)
        land = state.land_cover
        weight = np.select(
            [
                land == LandCover.URBAN,
                state.soil_type == SoilType.SAND,
                land == LandCover.GRASSLAND,
                (land == LandCover.WATER) | (land == LandCover.FOREST),
            ],
            [1.3, 1.1, 1.0, 0.5],
            default=0.0,
        )
        thermal = excess * weight

    cape = np.maximum(0.0, thermal * state.humidity * 100.0)
    developing = cape > params.cape_cumulus
    development = np.where(developing, np.minimum(1.0, cape / params.cape_saturation), 0.0)
    cloud_type = np.where(
        developing,
        np.where(cape > params.cape_cumulonimbus, CloudType.CUMULONIMBUS, CloudType.CUMULUS),
        CloudType.NONE,
    ).astype(np.int8)
    return development, cloud_type, cape, thermal


def precipitation_base_rate(cloud_water, cloud_type, params: CloudParams | None = None) -> np.ndarray:
    """Cloud water times the type efficiency, capped at max_precipitation."""
    if params is None:
        params = CloudParams()
    water = np.asarray(cloud_water, dtype=float)
    kind = np.asarray(cloud_type)
    efficiency = np.zeros(np.broadcast(water, kind).shape)
    for code, value in PRECIP_EFFICIENCY.items():
        efficiency = np.where(kind == code, value, efficiency)
    return np.minimum(water * efficiency, params.max_precipitation)


def classify_precipitation(rate, temperature, params: CloudParams | None = None) -> tuple[np.ndarray, np.ndarray]:
    """Zero out rates below the threshold; Rain above 2 °C, Snow at or below -5 °C, Sleet between."""
    if params is None:
        params = CloudParams()
    rate = np.asarray(rate, dtype=float)
    falling = rate > params.min_precipitation
    kind = np.select(
        [temperature > params.rain_above, temperature <= params.snow_at_or_below],
        [PrecipitationType.RAIN, PrecipitationType.SNOW],
        default=PrecipitationType.SLEET,
    )
    kind = np.where(falling, kind, PrecipitationType.NONE).astype(np.int8)
    return np.where(falling, rate, 0.0), kind


def calculate_precipitation(
    state, rng: np.random.Generator, params: CloudParams | None = None
) -> tuple[np.ndarray, np.ndarray]:
    """
    Stochastic precipitation from the current cloud water / type.

    With probability min(1, 0.7 W) the base rate is replaced by
    W * (0.6 if W > 0.5 else 0.3) * U(0.7, 1.3). Both random grids are drawn
    every call so generator consumption does not depend on the cloud state.
    """
    if params is None:
        params = CloudParams()
    water = state.cloud_water
    gate = rng.random(state.shape)
    jitter = rng.random(state.shape)

    rate = precipitation_base_rate(water, state.cloud_type, params)
    efficiency = np.where(water > 0.5, 0.6, 0.3)
    triggered = gate < np.minimum(1.0, water * 0.7)
    rate = np.where(triggered, water * efficiency * (0.7 + jitter * 0.6), rate)
    rate = np.minimum(rate, params.max_precipitation)
    return classify_precipitation(rate, state.temperature.read, params)


def cloud_microphysics(state, updraft: np.ndarray, params: CloudParams | None = None) -> Microphysics:
    """
    Below 0 °C a fraction 1 - exp(T / 10) of the cloud water freezes; cloud water
    loses half of the frozen fraction. Graupel (0.3 ice) forms between -10 and
    0 °C with strong updrafts and is added to the ice content. Mutates cloud water.
    """
    if params is None:
        params = CloudParams()
    temp = state.temperature.read
    water = state.cloud_water

    ice = state.ice_content.copy()
    freezing = (temp < 0) & (water > 0)
    fraction = np.where(freezing, 1.0 - np.exp(np.minimum(temp, 0.0) / params.freezing_scale), 0.0)
    ice = np.where(freezing, water * fraction, ice)
    water[...] = water * (1.0 - fraction * 0.5)

    growing = (temp > 0) & (water > 0.3)
    droplet = np.where(growing, 5.0 + updraft * 2.0, 5.0)
    efficiency = np.where(droplet > 20.0, np.minimum(1.0, droplet / 50.0), 0.0)

    graupel_band = (temp > -10.0) & (temp < 0.0) & (updraft > params.graupel_min_updraft)
    graupel = np.where(graupel_band, ice * params.graupel_fraction, 0.0)
    return Microphysics(ice + graupel, droplet, efficiency, graupel)


def update_cloud_dynamics(
    state,
    tick: CloudTickParams,
    rng: np.random.Generator,
    params: CloudParams | None = None,
    humidity_params: HumidityParams | None = None,
) -> None:
    tf = float(tick.time_factor)
    if tf <= 0:
        return
    if params is None:
        params = CloudParams()
    sun = sun_altitude_for_hour(tick.hour)
    elev = state.elevation

    orographic = orographic_potential(state, tick.wind_speed, tick.wind_dir, params) * params.formation_multiplier
    development, convective_type, cape, thermal = convective_potential(
        state, tick.month, tick.hour, tick.climate, params
    )
    convective = development * params.formation_multiplier
    state.convective_energy[...] = cape
    state.thermal_strength[...] = thermal

    is_oro = orographic > params.orographic_threshold
    is_conv = ~is_oro & (convective > params.convective_threshold)
    is_stratus = ~is_oro & ~is_conv & (state.fog_density > params.stratus_fog_threshold)

    state.cloud_type[...] = np.select(
        [is_oro, is_conv, is_stratus], [CloudType.OROGRAPHIC, convective_type, CloudType.STRATUS], default=CloudType.NONE
    )
    formation = np.select([is_oro, is_conv, is_stratus], [orographic, convective, state.fog_density * 0.5], default=0.0)
    state.cloud_base[...] = np.select(
        [is_oro, is_conv, is_stratus], [elev + 100.0, elev + 500.0, elev], default=state.cloud_base
    )
    state.cloud_top[...] = np.select(
        [is_oro, is_conv, is_stratus],
        [elev + 500.0 + orographic * 1000.0, elev + 500.0 + cape, elev + 200.0],
        default=state.cloud_top,
    )

    dissipation = state.cloud_water * sun * params.solar_dissipation if sun > 0 else 0.0
    rate, kind = calculate_precipitation(state, rng, params)
    state.precipitation[...] = rate
    state.precipitation_type[...] = kind

    change = (formation - dissipation - rate * params.precip_water_loss) * tf
    state.cloud_water[...] = np.clip(state.cloud_water + change, 0.0, params.max_cloud_water)
    state.cloud_coverage[...] = np.minimum(1.0, state.cloud_water)
    state.cloud_optical_depth[...] = state.cloud_water * params.optical_depth_scale

    props = thermal_property_maps(state.land_cover, state.soil_type)
    update_humidity(state, props, tick.wind_speed, rate, kind, tf, humidity_params)

    micro = cloud_microphysics(state, state.thermal_strength * 2.0, params)
    state.ice_content[...] = micro.ice

    raining = rate > 0
    snowing = raining & (kind == PrecipitationType.SNOW)
    liquid = raining & ~snowing
    state.snow_depth[...] += np.where(snowing, rate * params.snow_accumulation * tf, 0.0)
    state.latent_heat_effect[...] += np.where(snowing, rate * params.snow_latent_heat, 0.0)
    moisture = clamp_finite(state.soil_moisture, 0.0)
    infiltration = np.minimum(rate * tf, 1.0 - moisture) * props.water_retention
    state.soil_moisture[...] = np.where(liquid, moisture + infiltration, moisture)

    state.cloud_coverage[...] = np.clip(smooth_interior(state.cloud_coverage, center_weight=1.0), 0.0, 1.0)


def calculate_cloud_radiation(state, sun_altitude: float, params: CloudParams | None = None) -> CloudRadiation:
    """
    Beer's-law blend of clear and cloudy fractions:
        transmission = 1 - C + C exp(-tau / max(0.1, sin(sun_altitude)))
    and longwave warming 3 C. Cloud-free cells transmit fully.
    """
    if params is None:
        params = CloudParams()
    coverage = np.nan_to_num(state.cloud_coverage, nan=0.0)
    cloudy = coverage > 0
    path = state.cloud_optical_depth / max(0.1, float(np.sin(sun_altitude)))
    transmission = np.where(cloudy, 1.0 - coverage + coverage * np.exp(-path), 1.0)
    longwave = np.where(cloudy, coverage * params.longwave_factor, 0.0)
    return CloudRadiation(transmission, longwave)
