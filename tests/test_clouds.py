import numpy as np
import pytest

from pymicro.categories import CloudType, LandCover, PrecipitationType
from pymicro.clouds import (
    CloudTickParams,
    calculate_cloud_radiation,
    calculate_precipitation,
    classify_precipitation,
    cloud_microphysics,
    convective_potential,
    orographic_potential,
    precipitation_base_rate,
    update_cloud_dynamics,
)
from pymicro.humidity import dew_point, update_humidity
from pymicro.materials import thermal_property_maps
from pymicro.state import MicroclimateState


def test_precipitation_base_rate_by_cloud_type():
    assert precipitation_base_rate(0.9, CloudType.CUMULONIMBUS) == pytest.approx(1.35)
    assert precipitation_base_rate(0.9, CloudType.NIMBOSTRATUS) == pytest.approx(0.81)
    assert precipitation_base_rate(0.9, CloudType.CUMULUS) == pytest.approx(0.63)
    assert precipitation_base_rate(0.9, CloudType.STRATUS) == pytest.approx(0.45)
    assert precipitation_base_rate(0.9, CloudType.NONE) == 0.0
    assert precipitation_base_rate(1.5, CloudType.CUMULONIMBUS) == pytest.approx(2.0)


def test_classify_precipitation_thresholds():
    rate = np.array([0.5, 0.5, 0.5, 0.5, 0.005])
    temp = np.array([5.0, 2.0, -5.0, -4.9, 10.0])
    out_rate, kind = classify_precipitation(rate, temp)
    assert list(kind) == [
        PrecipitationType.RAIN,
        PrecipitationType.SLEET,
        PrecipitationType.SNOW,
        PrecipitationType.SLEET,
        PrecipitationType.NONE,
    ]
    assert out_rate[-1] == 0.0


def test_precipitation_always_consumes_two_draws():
    s = MicroclimateState(n=4)
    rng = np.random.default_rng(3)
    rate, kind = calculate_precipitation(s, rng)
    assert np.all(rate == 0.0)
    assert np.all(kind == PrecipitationType.NONE)
    ref = np.random.default_rng(3)
    ref.random(s.shape)
    ref.random(s.shape)
    assert rng.random() == ref.random()


def test_precipitation_capped():
    s = MicroclimateState(n=4)
    s.cloud_water[...] = 1.5
    s.cloud_type[...] = CloudType.CUMULONIMBUS
    rate, kind = calculate_precipitation(s, np.random.default_rng(0))
    assert np.all(rate <= 2.0)
    assert np.all(rate > 0.0)
    assert np.all(kind == PrecipitationType.RAIN)


def test_microphysics_freezing_and_graupel():
    s = MicroclimateState(n=2, temperature=np.full((2, 2), -5.0))
    s.cloud_water[...] = 1.0
    frac = 1.0 - np.exp(-0.5)
    micro = cloud_microphysics(s, np.zeros((2, 2)))
    np.testing.assert_allclose(micro.ice, frac)
    np.testing.assert_allclose(s.cloud_water, 1.0 - 0.5 * frac)
    assert np.all(micro.graupel == 0.0)

    s.cloud_water[...] = 1.0
    strong = cloud_microphysics(s, np.full((2, 2), 6.0))
    np.testing.assert_allclose(strong.graupel, 0.3 * frac)
    np.testing.assert_allclose(strong.ice, 1.3 * frac)


def test_convective_potential_over_hot_urban():
    s = MicroclimateState(n=3, temperature=np.full((3, 3), 40.0))
    s.land_cover[...] = LandCover.URBAN
    s.humidity[...] = 1.0
    development, kind, cape, thermal = convective_potential(s, 7, 14)
    assert np.all(thermal > 0.0)
    assert np.all(cape > 2000.0)
    assert np.all(kind == CloudType.CUMULONIMBUS)
    assert np.all((development > 0.0) & (development <= 1.0))
    # no convection outside the afternoon window
    development, kind, cape, thermal = convective_potential(s, 7, 20)
    assert np.all(cape == 0.0) and np.all(kind == CloudType.NONE)


def test_orographic_needs_wind_and_windward_slope():
    s = MicroclimateState(n=5, temperature=np.full((5, 5), 15.0))
    s.elevation[...] = 100.0 + np.tile(np.arange(5.0) * 60.0, (5, 1))
    s.dew_point[...] = 15.0
    s.humidity[...] = 1.0
    assert np.all(orographic_potential(s, 2.0, 270.0) == 0.0)
    # wind from 90 deg blows towards +x, straight up the slope
    pot = orographic_potential(s, 20.0, 90.0)
    assert np.all(pot[1:-1, 1:-1] > 0.0)
    assert np.all(pot[0, :] == 0.0)
    assert np.all(orographic_potential(s, 20.0, 270.0) == 0.0)


def test_fog_derived_stratus_tick():
    s = MicroclimateState(n=5)
    s.fog_density[...] = 0.8
    tick = CloudTickParams(month=7, hour=12, wind_speed=0.0, wind_dir=0.0, time_factor=1.0)
    update_cloud_dynamics(s, tick, np.random.default_rng(0))
    assert np.all(s.cloud_type == CloudType.STRATUS)
    np.testing.assert_allclose(s.cloud_water, 0.4)
    np.testing.assert_allclose(s.cloud_coverage, 0.4)
    np.testing.assert_allclose(s.cloud_optical_depth, 4.0)
    np.testing.assert_allclose(s.cloud_top, s.elevation + 200.0)
    assert np.all(s.precipitation == 0.0)


def test_zero_time_factor_skips_cloud_pass():
    s = MicroclimateState(n=4)
    s.fog_density[...] = 0.9
    s.cloud_water[...] = 0.3
    update_cloud_dynamics(s, CloudTickParams(7, 12, 0.0, 0.0, 0.0), np.random.default_rng(0))
    assert np.all(s.cloud_type == CloudType.NONE)
    assert np.all(s.cloud_water == 0.3)


def test_cloud_radiation():
    s = MicroclimateState(n=3)
    rad = calculate_cloud_radiation(s, 1.0)
    assert np.all(rad.solar_transmission == 1.0)
    assert np.all(rad.longwave_warming == 0.0)
    s.cloud_coverage[...] = 0.5
    s.cloud_optical_depth[...] = 5.0
    rad = calculate_cloud_radiation(s, 1.0)
    expected = 0.5 + 0.5 * np.exp(-5.0 / np.sin(1.0))
    np.testing.assert_allclose(rad.solar_transmission, expected)
    np.testing.assert_allclose(rad.longwave_warming, 1.5)


def test_dew_point_and_humidity_budget():
    assert dew_point(20.0, 1.0) == pytest.approx(20.0)
    assert dew_point(20.0, 0.5) < 20.0

    s = MicroclimateState(n=3, temperature=np.full((3, 3), 30.0))
    s.land_cover[1, 1] = LandCover.WATER
    props = thermal_property_maps(s.land_cover, s.soil_type)
    zeros = np.zeros(s.shape)
    none = np.zeros(s.shape, dtype=np.int8)
    update_humidity(s, props, 0.0, zeros, none, 1.0)
    # water evaporates 2 %/h at 30 °C; dry soil does not
    assert s.humidity[1, 1] == pytest.approx(0.52)
    assert s.humidity[0, 0] == pytest.approx(0.5)

    rain = np.full(s.shape, 1.0)
    kind = np.full(s.shape, PrecipitationType.RAIN, dtype=np.int8)
    update_humidity(s, props, 0.0, rain, kind, 1.0)
    assert s.humidity[0, 0] == pytest.approx(0.4)


def _raining_state(temperature):
    s = MicroclimateState(n=4, temperature=np.full((4, 4), temperature))
    s.cloud_water[...] = 1.5  # gate probability min(1, 0.7 W) = 1
    s.soil_moisture[...] = 0.2
    return s


def test_snowfall_builds_snow_pack_and_releases_latent_heat():
    s = _raining_state(-10.0)
    update_cloud_dynamics(s, CloudTickParams(7, 22, 0.0, 0.0, 0.5), np.random.default_rng(5))
    assert np.all(s.precipitation_type == PrecipitationType.SNOW)
    assert np.all(s.precipitation > 0.0)
    np.testing.assert_allclose(s.snow_depth, s.precipitation * 10.0 * 0.5)
    np.testing.assert_allclose(s.latent_heat_effect, s.precipitation * 0.8)
    np.testing.assert_allclose(s.soil_moisture, 0.2)


def test_rain_infiltrates_scaled_by_water_retention():
    s = _raining_state(10.0)
    retention = thermal_property_maps(s.land_cover, s.soil_type).water_retention
    update_cloud_dynamics(s, CloudTickParams(7, 22, 0.0, 0.0, 0.5), np.random.default_rng(5))
    assert np.all(s.precipitation_type == PrecipitationType.RAIN)
    np.testing.assert_allclose(s.soil_moisture, 0.2 + s.precipitation * 0.5 * retention)
    assert np.all(s.snow_depth == 0.0)
    assert np.all(s.latent_heat_effect == 0.0)


def test_full_cover_stays_within_unit_range():
    s = MicroclimateState(n=6)
    s.fog_density[...] = 1.0
    s.cloud_water[...] = 1.5
    update_cloud_dynamics(s, CloudTickParams(7, 22, 0.0, 0.0, 1.0), np.random.default_rng(1))
    assert np.all((s.cloud_coverage >= 0.0) & (s.cloud_coverage <= 1.0))
