"""
energy.py

Per-tick surface / near-surface energy balance of the microclimate grid.

This module provides:
- EnergyParams: configuration loaded from environment variables.
- ThermodynamicsOptions: per-tick driving inputs and feature toggles.
- update_inversion_layer(state, hour, wind_speed, cloud_cover, params)
- calculate_solar_insolation(state, sun_altitude, params) -> per-cell intensity
- calculate_physics_rates(state, month, hour, enable_inversions, enable_downslope, climate, params)
- update_thermodynamics(state, options, params)

Budget (per cell, °C per hour before scaling by the time factor):
- soil: absorbed sunshine / heat capacity, night radiative loss (cloud and snow
  reduced), conduction to the air, evaporative loss.
- air: conduction from the soil (doubled over water), night loss, evapotranspiration,
  forest canopy, inversion / katabatic / föhn / wind mixing rates, latent heat
  from snowfall, humidity coupling, relaxation to the lapse-rate temperature.
Each hourly balance is clamped to +-max_hourly_change, integrated, handed to the
snow collaborator, diffused, clamped to the absolute range and committed through
the double buffers. The terms are summed then clamped; energy is not conserved.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import numpy as np

from pymicro import constants
from pymicro.categories import LandCover
from pymicro.climate import (
    DEFAULT_CLIMATE_OVERRIDES,
    ClimateOverrides,
    blend_humidity_towards_target,
    calculate_base_temperature,
    standard_temperature_at_elevation,
)
from pymicro.clouds import calculate_cloud_radiation
from pymicro.grid import clamp_finite, shift_clamped
from pymicro.humidity import dew_point
from pymicro.materials import thermal_property_maps
from pymicro.snow import SnowParams, calculate_snow_effects, update_snow_cover


@dataclass
class EnergyParams:
    # Radiation
    max_solar_intensity: float = 2.4
    min_cloud_transmission: float = 0.2
    snow_surface_albedo: float = 0.8
    night_cooling_base: float = 1.1
    cloud_night_shield: float = 0.75
    air_night_fraction: float = 0.2

    # Exchange
    conduction_factor: float = 0.8
    water_conduction_boost: float = 2.0

    # Inversions
    inversion_wind_threshold: float = 15.0
    inversion_base_offset: float = 60.0
    inversion_depth_scale: float = 180.0
    inversion_relief_scale: float = 120.0
    max_inversion_thickness: float = 280.0
    inversion_cooling: float = -3.2
    warm_belt_multiplier: float = 2.4
    warm_belt_decay: float = 50.0
    warm_belt_thickness: float = 100.0

    # Downslope / mixing
    downslope_rate_min: float = -4.0
    downslope_rate_max: float = 9.0
    wind_mixing_threshold: float = 5.0
    wind_mixing_max: float = 0.35
    wind_mixing_divisor: float = 55.0

    # Humidity coupling
    humidity_relaxation: float = 0.25
    humidity_thermal_sensitivity: float = 0.4
    humidity_latent_coefficient: float = 1.6

    # Relaxation / limits
    turbulence_rate: float = 0.055
    max_hourly_change: float = 7.0
    diffusion_rate: float = constants.DIFFUSION_RATE
    diffusion_iterations: int = constants.DIFFUSION_ITERATIONS
    soil_moisture_depletion: float = 0.005


def get_energy_params_from_env() -> EnergyParams:
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

    return EnergyParams(
        max_solar_intensity=_f("MC_MAX_SOLAR", 2.4),
        night_cooling_base=_f("MC_NIGHT_COOLING", 1.1),
        inversion_cooling=_f("MC_INVERSION_COOLING", -3.2),
        humidity_relaxation=_f("MC_HUMIDITY_RELAXATION", 0.25),
        turbulence_rate=_f("MC_TURBULENCE_RATE", 0.055),
        max_hourly_change=_f("MC_MAX_HOURLY_CHANGE", 7.0),
        diffusion_rate=_f("MC_DIFFUSION_RATE", constants.DIFFUSION_RATE),
        diffusion_iterations=_i("MC_DIFFUSION_ITERATIONS", constants.DIFFUSION_ITERATIONS),
    )


@dataclass
class ThermodynamicsOptions:
    month: float
    hour: float
    sun_altitude: float
    time_factor: float
    enable_diffusion: bool = True
    enable_inversions: bool = True
    enable_downslope: bool = True
    climate: ClimateOverrides = DEFAULT_CLIMATE_OVERRIDES


def update_inversion_layer(
    state, hour: float, wind_speed: float, cloud_cover: float = 0.0, params: EnergyParams | None = None
) -> None:
    """
    Grid-global inversion height / strength. Active only at night with light
    wind and mostly clear skies; otherwise both are reset to zero.
    """
    if params is None:
        params = EnergyParams()
    night = hour <= 6 or hour >= 19
    if not night or wind_speed > params.inversion_wind_threshold or cloud_cover > 0.5:
        state.inversion_height = 0.0
        state.inversion_strength = 0.0
        return

    elev = np.asarray(state.elevation, dtype=float)
    valley = elev < constants.BASE_ELEVATION + 20.0
    valley_avg = float(elev[valley].mean()) if valley.any() else constants.BASE_ELEVATION
    relief = float(elev.max() - elev.min())

    wind_factor = max(0.0, 1.0 - wind_speed / params.inversion_wind_threshold)
    hour_factor = (6.0 - hour) / 6.0 if hour <= 6 else (hour - 19.0) / 5.0

    height = valley_avg + params.inversion_base_offset + params.inversion_depth_scale * wind_factor * hour_factor
    strength = wind_factor * hour_factor * min(1.0, relief / params.inversion_relief_scale)
    if wind_speed > 10 or relief < 30:
        strength *= 0.5

    state.inversion_height = min(height, valley_avg + params.max_inversion_thickness)
    state.inversion_strength = strength


def calculate_solar_insolation(state, sun_altitude: float, params: EnergyParams | None = None) -> np.ndarray:
    """
    Slope / aspect adjusted direct sunshine per cell, reduced by cloud transmission
    (floored at min_cloud_transmission) and capped at max_solar_intensity.
    """
    if params is None:
        params = EnergyParams()
    if sun_altitude <= 0:
        return np.zeros(state.shape)

    dzdx, dzdy = state.grid.edge_gradient(state.elevation)
    slope = np.arctan(np.hypot(dzdx, dzdy))
    aspect = np.arctan2(-dzdy, dzdx)

    sin_alt = float(np.clip(sun_altitude, 0.0, 1.0))
    cos_alt = float(np.sqrt(max(0.0, 1.0 - sin_alt * sin_alt)))
    intensity = np.maximum(0.0, sin_alt * np.cos(slope) + cos_alt * np.sin(slope) * np.cos(aspect - np.pi))

    radiation = calculate_cloud_radiation(state, sun_altitude)
    reduction = np.where(
        state.cloud_coverage > 0, np.maximum(params.min_cloud_transmission, radiation.solar_transmission), 1.0
    )
    return np.minimum(params.max_solar_intensity, intensity * constants.SOLAR_INTENSITY_FACTOR * reduction)


def calculate_physics_rates(
    state,
    month: float,
    hour: float,
    enable_inversions: bool,
    enable_downslope: bool,
    climate: ClimateOverrides = DEFAULT_CLIMATE_OVERRIDES,
    params: EnergyParams | None = None,
) -> np.ndarray:
    """Fill state.inversion_and_downslope_rate (°C / hour) and return it."""
    if params is None:
        params = EnergyParams()
    rate = np.zeros(state.shape)
    elev = np.asarray(state.elevation, dtype=float)

    if enable_inversions and state.inversion_strength > 0:
        h_inv = state.inversion_height
        below = elev < h_inv
        depth = np.maximum(0.0, h_inv - elev)
        denom = h_inv - constants.BASE_ELEVATION + 50.0
        if denom == 0:
            denom = constants.EPSILON
        rate += np.where(below, state.inversion_strength * depth / denom * params.inversion_cooling, 0.0)

        belt = ~below & (elev < h_inv + params.warm_belt_thickness)
        height_above = np.maximum(0.0, elev - h_inv)
        warm = state.inversion_strength * np.exp(-height_above / params.warm_belt_decay) * params.warm_belt_multiplier
        avg4 = np.zeros_like(elev)
        if state.n > 2:
            avg4[1:-1, 1:-1] = (elev[:-2, 1:-1] + elev[2:, 1:-1] + elev[1:-1, :-2] + elev[1:-1, 2:]) / 4.0
        on_slope = state.grid.interior_mask(1) & (np.abs(elev - avg4) < 20.0) & (elev > avg4 - 5.0)
        rate += np.where(belt & on_slope, warm, 0.0)

    if enable_downslope:
        katabatic = np.where(state.downslope_wind < 0, state.downslope_wind, 0.0)
        foehn = np.where(state.foehn_effect > 0, state.foehn_effect, 0.0)
        rate += np.clip(katabatic + foehn, params.downslope_rate_min, params.downslope_rate_max)

        speed = state.wind.speed
        windy = speed > params.wind_mixing_threshold
        if windy.any():
            base = calculate_base_temperature(month, hour, climate)
            mixing = np.minimum(params.wind_mixing_max, speed / params.wind_mixing_divisor)
            rate += np.where(windy, (base - state.temperature.read) * mixing, 0.0)

    state.inversion_and_downslope_rate[...] = rate
    return state.inversion_and_downslope_rate


def diffuse(temperature: np.ndarray, rate: float, iterations: int) -> np.ndarray:
    """Jacobi iterations of T += (mean of 4 edge-clamped neighbours - T) * rate."""
    t = np.array(temperature, dtype=float, copy=True)
    for _ in range(int(iterations)):
        neighbours = (
            shift_clamped(t, 0, -1) + shift_clamped(t, 0, 1) + shift_clamped(t, -1, 0) + shift_clamped(t, 1, 0)
        ) / 4.0
        t = t + (neighbours - t) * rate
    return t


def _clamp_temperature(t: np.ndarray) -> np.ndarray:
    t = np.nan_to_num(
        t, nan=constants.NEUTRAL_TEMPERATURE, posinf=constants.ABSOLUTE_MAX_TEMP, neginf=constants.ABSOLUTE_MIN_TEMP
    )
    return np.clip(t, constants.ABSOLUTE_MIN_TEMP, constants.ABSOLUTE_MAX_TEMP)


def update_thermodynamics(
    state,
    options: ThermodynamicsOptions,
    params: EnergyParams | None = None,
    snow_params: SnowParams | None = None,
) -> None:
    """
    Advance air and soil temperature by one tick. Every term reads the previous
    snapshot (state.temperature.read / state.soil_temperature.read); the new grids
    are staged and committed with a swap after snow, diffusion and clamping.

    Humidity is relaxed towards the climate target first; the dew point is then
    recomputed from the previous air temperature and every humidity-dependent
    term below uses the relaxed value.
    """
    if params is None:
        params = EnergyParams()
    climate = options.climate
    sun = float(options.sun_altitude)
    tf = float(options.time_factor)

    rates = calculate_physics_rates(
        state, options.month, options.hour, options.enable_inversions, options.enable_downslope, climate, params
    )

    air_prev = state.temperature.read
    soil_prev = state.soil_temperature.read
    new_air = air_prev.copy()
    new_soil = soil_prev.copy()

    if tf > 0:
        blend = min(max(tf * params.humidity_relaxation, 0.0), 1.0)
        target = min(max(climate.humidity_target, 0.01), 1.0)
        if blend > 0:
            state.humidity[...] = blend_humidity_towards_target(state.humidity, target, blend)
            state.dew_point[...] = dew_point(air_prev, state.humidity)

        props = thermal_property_maps(state.land_cover, state.soil_type)
        hc = props.heat_capacity
        snow = calculate_snow_effects(state, sun, snow_params)
        shield = 1.0 - snow.insulation_effect

        air = np.zeros(state.shape)
        soil = np.zeros(state.shape)

        if sun > 0:
            insolation = calculate_solar_insolation(state, sun, params)
            albedo = np.where(snow.albedo_effect != 0, params.snow_surface_albedo, props.albedo)
            soil += insolation * (1.0 - albedo) / hc
        else:
            cooling = params.night_cooling_base * (1.0 - np.nan_to_num(state.cloud_coverage) * params.cloud_night_shield)
            soil -= cooling * shield / hc
            air -= cooling * params.air_night_fraction

        exchange = (soil_prev - air_prev) * props.conductivity * params.conduction_factor * shield
        exchange = np.where(props.is_water, exchange * params.water_conduction_boost, exchange)
        air += exchange
        soil -= exchange / hc

        moisture = state.soil_moisture
        moisture[...] = clamp_finite(moisture, 0.0)
        evaporating = (moisture > 0) & (air_prev > 0) & (sun > 0)
        evap_cooling = moisture * props.evaporation * sun
        air -= np.where(evaporating, evap_cooling, 0.0)
        soil -= np.where(evaporating, evap_cooling * 0.5 / hc, 0.0)
        if state.is_simulating:
            depleted = np.maximum(0.0, moisture - props.evaporation * params.soil_moisture_depletion * tf)
            moisture[...] = np.where(evaporating, depleted, moisture)

        forest = state.land_cover == LandCover.FOREST
        depth_factor = np.minimum(1.0, state.forest_depth / 12.0)
        canopy = -1.0 * depth_factor if sun > 0 else 0.3 * depth_factor
        air += np.where(forest, canopy, 0.0)

        air += rates
        air += state.latent_heat_effect

        humidity = np.clip(state.humidity, 0.0, 1.0)
        air -= (humidity - 0.5) * params.humidity_thermal_sensitivity
        latent = (humidity > 0.85) & (air_prev > state.dew_point)
        air -= np.where(latent, (humidity - 0.85) * params.humidity_latent_coefficient, 0.0)
        if sun > 0:
            dry = ~latent & (humidity < 0.3)
            air += np.where(dry, (0.3 - humidity) * params.humidity_latent_coefficient * 0.35, 0.0)

        # lapse-rate relaxation towards the diurnal baseline curve reduced to the cell's
        # elevation, deliberately not a fixed 15 °C standard atmosphere: a fixed anchor
        # drags a 20 °C noon grid below its 21 °C baseline on the first tick
        base = calculate_base_temperature(options.month, options.hour, climate)
        standard = standard_temperature_at_elevation(base, state.elevation)
        air += (standard - air_prev) * params.turbulence_rate

        air = np.clip(np.nan_to_num(air), -params.max_hourly_change, params.max_hourly_change)
        soil = np.clip(np.nan_to_num(soil), -params.max_hourly_change, params.max_hourly_change)
        new_air += air * tf
        new_soil += soil * tf

    update_snow_cover(state, new_air, sun, tf, snow_params)

    if options.enable_diffusion and tf > 0:
        new_air = diffuse(new_air, params.diffusion_rate * min(tf, 1.0), params.diffusion_iterations)

    state.temperature.stage(_clamp_temperature(new_air))
    state.soil_temperature.stage(_clamp_temperature(new_soil))
    state.swap_temperatures()
