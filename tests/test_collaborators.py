import math

import numpy as np
import pytest

from pymicro.categories import LandCover, SoilType
from pymicro.climate import (
    ClimateOverrides,
    blend_humidity_towards_target,
    calculate_base_temperature,
    sample_monthly_cycle,
    standard_temperature_at_elevation,
    sun_altitude_for_hour,
    sun_cycle_for_month,
)
from pymicro.fog import boundary_damping, update_fog
from pymicro.materials import (
    DEFAULT_THERMAL_PROPERTIES,
    WATER_PROPERTIES,
    get_thermal_properties,
    properties_for,
    thermal_property_maps,
)
from pymicro.snow import calculate_snow_effects, update_snow_cover
from pymicro.state import MicroclimateState, WindField


# ---- climate ----


def test_base_temperature_is_periodic_and_peaks_at_midday():
    assert calculate_base_temperature(7, 12) == pytest.approx(21.0)
    assert calculate_base_temperature(7, 12) == pytest.approx(calculate_base_temperature(7, 36))
    assert calculate_base_temperature(13, 5) == pytest.approx(calculate_base_temperature(1, 5))
    assert calculate_base_temperature(7, 4) < calculate_base_temperature(7, 12)
    warm = ClimateOverrides(base_temperature_offset=3.0)
    assert calculate_base_temperature(7, 12, warm) == pytest.approx(24.0)
    assert math.isfinite(calculate_base_temperature(float("nan"), float("inf")))


def test_sun_cycle_and_altitude():
    cycle = sun_cycle_for_month(7)
    assert cycle.daylight_hours == pytest.approx(15.5)
    assert cycle.sunrise_hour == pytest.approx(4.25)
    assert cycle.sunset_hour == pytest.approx(19.75)
    assert sun_altitude_for_hour(12) == pytest.approx(1.0)
    assert sun_altitude_for_hour(6) == pytest.approx(0.0)
    assert sun_altitude_for_hour(0) == 0.0


def test_monthly_sampling_falls_back_to_finite_values():
    values = [1.0, float("nan"), 3.0]
    assert sample_monthly_cycle(0.0, values) == pytest.approx(1.0)
    assert sample_monthly_cycle(2.5, values) == pytest.approx(2.0)
    assert sample_monthly_cycle(-1.0, values) == pytest.approx(3.0)
    assert sample_monthly_cycle(0.0, []) == 0.0


def test_humidity_blend_and_lapse_rate():
    assert blend_humidity_towards_target(0.2, 0.6, 0.5) == pytest.approx(0.4)
    assert blend_humidity_towards_target(1.4, 0.6, 2.0) == pytest.approx(0.6)
    assert standard_temperature_at_elevation(20.0, 300.0) == pytest.approx(20.0 - 1.3)


# ---- materials ----


def test_material_lookup_and_defaults():
    assert properties_for(LandCover.WATER, SoilType.SAND) is WATER_PROPERTIES
    assert properties_for(LandCover.GRASSLAND, SoilType.SAND).name == "Sand"
    assert properties_for(LandCover.GRASSLAND, 42) is DEFAULT_THERMAL_PROPERTIES
    s = MicroclimateState(n=3)
    assert get_thermal_properties(s, -1, 0) is DEFAULT_THERMAL_PROPERTIES
    assert get_thermal_properties(s, 1, 1).name == "Loam"

    land = np.array([[LandCover.WATER, LandCover.FOREST]], dtype=np.int8)
    soil = np.array([[SoilType.ROCK, 9]], dtype=np.int8)
    maps = thermal_property_maps(land, soil)
    np.testing.assert_allclose(maps.heat_capacity, [[15.0, 1.0]])
    np.testing.assert_array_equal(maps.is_water, [[True, False]])


# ---- snow ----


def test_snow_effects():
    s = MicroclimateState(n=2)
    eff = calculate_snow_effects(s, 1.0)
    assert np.all(eff.albedo_effect == 0.0) and np.all(eff.insulation_effect == 0.0)
    s.snow_depth[...] = 18.0
    eff = calculate_snow_effects(s, 1.0)
    np.testing.assert_allclose(eff.insulation_effect, 1.0 - np.exp(-1.0))
    assert np.all(eff.albedo_effect < 0.0)


def test_snow_melts_cools_air_and_wets_soil():
    s = MicroclimateState(n=3)
    s.snow_depth[...] = 10.0
    air = np.full(s.shape, 10.0)
    update_snow_cover(s, air, 0.0, 1.0)
    assert np.all((s.snow_depth > 0.0) & (s.snow_depth < 10.0))
    assert np.all(air < 10.0) and np.all(air >= -4.0)
    assert np.all(s.soil_moisture > 0.0)


def test_snow_untouched_without_time():
    s = MicroclimateState(n=2)
    s.snow_depth[...] = 5.0
    air = np.full(s.shape, 10.0)
    update_snow_cover(s, air, 1.0, 0.0)
    assert np.all(s.snow_depth == 5.0) and np.all(air == 10.0)


def test_frozen_soil_water_turns_into_snow():
    s = MicroclimateState(n=2, soil_temperature=np.full((2, 2), -5.0))
    s.soil_moisture[...] = 0.5
    air = np.full(s.shape, -10.0)
    update_snow_cover(s, air, 1.0, 1.0)
    assert np.all(s.soil_moisture < 0.5)
    assert np.all(s.snow_depth > 0.0)


# ---- fog ----


def test_boundary_damping():
    x = np.array([0.0, -2.0, 5.0])
    y = np.array([0.0, 0.0, 5.0])
    np.testing.assert_allclose(boundary_damping(x, y, 5), [1.0, np.exp(-1.0), np.exp(-1.0)])


def test_fog_forms_in_calm_saturated_air_and_stays_bounded():
    s = MicroclimateState(n=6)
    s.humidity[...] = 1.0
    s.dew_point[...] = 20.0  # air at its dew point
    update_fog(s, 0.0, 1.0)
    assert np.all(s.fog_density > 0.0)
    assert np.all(s.fog_density <= 1.0)

    s.wind = WindField.from_components(np.full(s.shape, 15.0), np.zeros(s.shape))
    s.humidity[...] = 0.2
    s.dew_point[...] = -5.0
    for _ in range(5):
        update_fog(s, 1.0, 1.0)
    assert np.all(s.fog_density == 0.0)
