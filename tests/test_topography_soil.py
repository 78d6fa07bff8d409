import numpy as np

from pymicro.categories import LandCover
from pymicro.soil import coordinate_hash, initialize_soil_moisture
from pymicro.state import MicroclimateState
from pymicro.topography import calculate_hillshade, get_terrain_params_from_env, initialize_environment


def test_hillshade_flat_interior_and_border():
    s = MicroclimateState(n=5)
    shade = calculate_hillshade(s)
    assert np.allclose(shade[1:-1, 1:-1], np.cos(np.deg2rad(45.0)))
    assert np.all(shade[0, :] == 1.0)
    assert np.all((shade >= 0.0) & (shade <= 1.0))


def test_initialize_environment_is_deterministic():
    params = get_terrain_params_from_env()
    a = initialize_environment(MicroclimateState(n=20), np.random.default_rng(7), params)
    b = initialize_environment(MicroclimateState(n=20), np.random.default_rng(7), params)
    for name in ("elevation", "land_cover", "soil_type", "humidity", "region_id", "water_distance", "hillshade"):
        np.testing.assert_array_equal(getattr(a, name), getattr(b, name))
    assert a.region_sizes == b.region_sizes


def test_initialize_environment_builds_features_and_indices():
    s = initialize_environment(MicroclimateState(n=20), np.random.default_rng(3))
    land = s.land_cover
    assert (land == LandCover.WATER).any()
    assert (land == LandCover.SETTLEMENT).any()
    assert np.all(s.water_distance[land == LandCover.WATER] == 0.0)
    assert np.all(s.region_id >= 1)
    assert sum(s.region_sizes.values()) == 20 * 20
    assert s.elevation.max() > 500.0  # ridge
    assert np.allclose(s.temperature.read, 20.0)


def test_coordinate_hash_is_pure_and_bounded():
    yy, xx = np.mgrid[0:16, 0:16]
    h1 = coordinate_hash(xx, yy)
    h2 = coordinate_hash(xx, yy)
    np.testing.assert_array_equal(h1, h2)
    assert np.all((h1 >= 0.0) & (h1 < 1.0))
    assert np.unique(h1).size > 200


def test_soil_moisture_bounds_and_water():
    s = initialize_environment(MicroclimateState(n=20), np.random.default_rng(11))
    m = initialize_soil_moisture(s)
    assert np.all((m >= 0.0) & (m <= 1.0))
    assert np.all(m[s.land_cover == LandCover.WATER] == 1.0)
    # pure function of terrain
    np.testing.assert_array_equal(m, initialize_soil_moisture(s))
