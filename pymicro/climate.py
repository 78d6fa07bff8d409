"""
climate.py

Baseline climate curve: monthly tables sampled periodically, a diurnal
temperature shape, sun cycle and humidity relaxation.

Public functions:
- sample_monthly_cycle(month_value, values) -> float   (period len(values), linear)
- daylight_hours_for_month(month) -> float
- sun_cycle_for_month(month) -> SunCycle(daylight_hours, sunrise_hour, sunset_hour)
- calculate_base_temperature(month, hour, overrides=None) -> °C
- sun_altitude_for_hour(hour) -> sine proxy in [0, 1]
- blend_humidity_towards_target(current, target, blend) -> scalar or array

Conventions:
- month is 1..12 (fractional values interpolate, period 12); hour is 0..24 (period 24).
- Non-finite inputs never raise: table gaps fall back to the nearest finite
  sample, non-finite month/hour fall back to January / midnight.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from pymicro import constants
from pymicro.grid import clamp_finite


@dataclass(frozen=True)
class ClimateOverrides:
    base_temperature_offset: float = 0.0  # °C added to the curve
    humidity_target: float = 0.6  # relaxation target of the energy pass
    seasonal_intensity: float = 1.0  # scales monthly departures from the annual mean
    seasonal_shift: float = 0.0  # months


DEFAULT_CLIMATE_OVERRIDES = ClimateOverrides()


class SunCycle(NamedTuple):
    daylight_hours: float
    sunrise_hour: float
    sunset_hour: float


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


def _wrap(value: float, period: float) -> float:
    if period <= 0 or not math.isfinite(value):
        return 0.0
    wrapped = math.fmod(value, period)
    return wrapped + period if wrapped < 0 else wrapped


def _nearest_finite(values, start: int, fallback: float) -> float:
    length = len(values)
    for offset in range(length):
        backward = values[(start - offset) % length]
        if math.isfinite(backward):
            return float(backward)
        forward = values[(start + offset) % length]
        if math.isfinite(forward):
            return float(forward)
    return fallback


def to_month_value(month: float) -> float:
    """1-based calendar month -> 0-based cycle position."""
    if month is None or not math.isfinite(month):
        return 0.0
    return float(month) - 1.0


def sample_monthly_cycle(month_value: float, values) -> float:
    if len(values) == 0:
        return 0.0
    period = len(values)
    wrapped = _wrap(month_value, period)
    lower = int(math.floor(wrapped))
    upper = (lower + 1) % period
    frac = wrapped - lower
    lo = _nearest_finite(values, lower, 0.0)
    hi = _nearest_finite(values, upper, lo)
    return lo + (hi - lo) * frac


def daylight_hours_for_month(month: float) -> float:
    return _clamp(sample_monthly_cycle(to_month_value(month), constants.MONTHLY_DAYLIGHT_HOURS), 0.0, 24.0)


def sun_cycle_for_month(month: float) -> SunCycle:
    daylight = daylight_hours_for_month(month)
    sunrise = _clamp(12.0 - daylight / 2.0, 0.0, 24.0)
    sunset = _clamp(sunrise + daylight, 0.0, 24.0)
    return SunCycle(daylight, sunrise, sunset)


def sun_altitude_for_hour(hour: float) -> float:
    """max(0, sin((hour - 6) pi / 12)): zero at 06:00 and 18:00, one at noon."""
    if not math.isfinite(hour):
        return 0.0
    return max(0.0, math.sin((hour - 6.0) * math.pi / 12.0))


def calculate_base_temperature(month: float, hour: float, overrides: ClimateOverrides | None = None) -> float:
    """
    Baseline near-surface air temperature for a month and hour.

    Daytime rises along a quarter sine from the daily minimum at sunrise to the
    maximum at midday, then decays along a quarter cosine towards an evening
    temperature (mean + 15 % of the diurnal range) at sunset. Night-time damps
    from the evening temperature back to the minimum at the next sunrise.
    """
    if overrides is None:
        overrides = DEFAULT_CLIMATE_OVERRIDES
    month_value = to_month_value(month) + overrides.seasonal_shift

    annual_mean = float(np.mean(constants.MONTHLY_TEMPS))
    average = sample_monthly_cycle(month_value, constants.MONTHLY_TEMPS)
    average = annual_mean + (average - annual_mean) * overrides.seasonal_intensity
    average += overrides.base_temperature_offset

    daylight = _clamp(sample_monthly_cycle(month_value, constants.MONTHLY_DAYLIGHT_HOURS), 0.0, 24.0)
    diurnal = sample_monthly_cycle(month_value, constants.MONTHLY_DIURNAL_VARIATION)

    h = _wrap(hour, 24.0)
    sunrise = 12.0 - daylight / 2.0
    sunset = 12.0 + daylight / 2.0
    midday = (sunrise + sunset) / 2.0
    night_hours = max(24.0 - daylight, 0.1)

    t_max = average + diurnal / 2.0
    t_min = average - diurnal / 2.0
    t_evening = average + diurnal * constants.EVENING_WARMTH_FRACTION

    if sunrise <= h <= sunset and daylight > 0:
        if h <= midday:
            progress = _clamp((h - sunrise) / max(midday - sunrise, 0.1), 0.0, 1.0)
            return t_min + (t_max - t_min) * math.sin(progress * math.pi / 2.0)
        progress = _clamp((h - midday) / max(sunset - midday, 0.1), 0.0, 1.0)
        return t_evening + (t_max - t_evening) * math.cos(progress * math.pi / 2.0)

    since_sunset = h - sunset if h > sunset else h + (24.0 - sunset)
    progress = _clamp(since_sunset / night_hours, 0.0, 1.0)
    return t_min + (t_evening - t_min) * math.cos(progress * math.pi / 2.0)


def standard_temperature_at_elevation(surface_temperature: float, elevation) -> np.ndarray:
    """Lapse-rate reduction of a base-elevation temperature to each cell's elevation."""
    return surface_temperature - (np.asarray(elevation, dtype=float) - constants.BASE_ELEVATION) / 100.0 * constants.LAPSE_RATE


def blend_humidity_towards_target(current, target, blend):
    """current + (target - current) * blend, with all three clamped to [0, 1]; non-finite cells restart from neutral."""
    safe_current = clamp_finite(current, constants.NEUTRAL_HUMIDITY)
    safe_target = np.clip(target, 0.0, 1.0)
    safe_blend = np.clip(blend, 0.0, 1.0)
    return safe_current + (safe_target - safe_current) * safe_blend
