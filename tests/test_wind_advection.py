import numpy as np
import pytest

from pymicro.advection import advect
from pymicro.categories import LandCover
from pymicro.state import MicroclimateState, WindField
from pymicro.wind import WindParams, reset_wind, update_wind, vegetation_drag, wind_unit_vector


def _ramp_state(n=9, rise_per_cell=5.0):
    xx = np.tile(np.arange(n, dtype=float), (n, 1))
    return MicroclimateState(n=n, elevation=100.0 + xx * rise_per_cell)


def test_katabatic_flow_runs_downslope_at_night():
    s = _ramp_state()
    update_wind(s, hour=22, base_wind_speed=0.0, wind_dir_deg=0.0, wind_gustiness=0.0)
    # terrain rises towards +x, so drainage points towards -x
    assert s.wind.u[4, 4] < 0.0
    assert abs(s.wind.v[4, 4]) < 1e-12
    assert s.downslope_wind[4, 4] < 0.0
    np.testing.assert_array_equal(s.wind.speed, np.hypot(s.wind.u, s.wind.v))


def test_no_katabatic_flow_by_day():
    s = _ramp_state()
    update_wind(s, hour=12, base_wind_speed=0.0, wind_dir_deg=0.0, wind_gustiness=0.0)
    assert np.all(s.wind.speed == 0.0)
    assert np.all(s.downslope_wind == 0.0)


def test_reset_wind_zeroes_outputs():
    s = _ramp_state()
    update_wind(s, hour=2, base_wind_speed=0.0, wind_dir_deg=0.0, wind_gustiness=0.0)
    reset_wind(s)
    assert np.all(s.wind.u == 0.0) and np.all(s.wind.speed == 0.0)
    assert np.all(s.downslope_wind == 0.0) and np.all(s.foehn_effect == 0.0)


def test_gusts_are_reproducible_for_a_seed():
    fields = []
    for _ in range(2):
        s = _ramp_state(n=12, rise_per_cell=2.0)
        update_wind(s, 14, 8.0, 270.0, 50.0, np.random.default_rng(5))
        fields.append((s.wind.u.copy(), s.wind.v.copy()))
    np.testing.assert_array_equal(fields[0][0], fields[1][0])
    np.testing.assert_array_equal(fields[0][1], fields[1][1])
    assert np.any(fields[0][0] != 0.0)


def test_vegetation_drag_and_wind_vector():
    land = np.array([[LandCover.GRASSLAND, LandCover.FOREST, LandCover.WATER]], dtype=np.int8)
    depth = np.array([[0.0, 20.0, 0.0]])
    drag = vegetation_drag(land, depth, WindParams())
    np.testing.assert_allclose(drag, [[0.85, 0.55 * 0.6, 0.95]])
    wx, wy = wind_unit_vector(90.0)
    assert np.isclose(wx, 1.0) and abs(wy) < 1e-12


def test_advection_with_zero_wind_is_identity():
    g = np.random.default_rng(0).random((6, 6))
    out = advect(g, WindField.zeros((6, 6)), time_factor=1.0)
    np.testing.assert_allclose(out, g)
    assert out is not g


def test_advection_shifts_by_whole_cells():
    g = np.tile(np.arange(5.0), (5, 1))
    wind = WindField.from_components(np.ones((5, 5)), np.zeros((5, 5)))
    # 0.2 h * 5 cells per unit wind = one cell upwind
    out = advect(g, wind, time_factor=0.2)
    np.testing.assert_allclose(out[:, 1:], g[:, :-1])
    np.testing.assert_allclose(out[:, 0], g[:, 0])


@pytest.mark.parametrize("offset, flows", [(0.0, True), (-10.0, True), (-50.0, False), (50.0, False)])
def test_katabatic_flow_rejected_across_cliffs_and_ridgelines(offset, flows):
    s = _ramp_state()
    # (4, 4) drains towards -x; with 0.83 m/m slope it samples columns 3 and 2
    s.elevation[:, 3] += offset
    update_wind(s, hour=22, base_wind_speed=0.0, wind_dir_deg=0.0, wind_gustiness=0.0)
    if flows:
        assert s.downslope_wind[4, 4] < 0.0
    else:
        assert s.downslope_wind[4, 4] == 0.0


def _ridge_state(n=21, ridge_x=8):
    xx = np.tile(np.arange(n, dtype=float), (n, 1))
    elev = np.maximum(100.0, 400.0 - 30.0 * np.abs(xx - ridge_x))
    return MicroclimateState(n=n, elevation=elev)


def test_foehn_warms_the_lee_side_only():
    s = _ridge_state()
    # 90 deg blows towards +x, so the lee is east of the ridge
    update_wind(s, hour=12, base_wind_speed=20.0, wind_dir_deg=90.0, wind_gustiness=0.0)
    assert np.all(s.foehn_effect[:, :9] == 0.0)
    assert np.all(s.foehn_effect[2:-2, 10:15] > 0.0)
    assert s.foehn_effect.max() <= WindParams().foehn_max


def test_no_foehn_in_light_wind():
    s = _ridge_state()
    update_wind(s, hour=12, base_wind_speed=10.0, wind_dir_deg=90.0, wind_gustiness=0.0)
    assert np.all(s.foehn_effect == 0.0)


def _valley_state(half_width, n=21):
    xx = np.tile(np.arange(n, dtype=float), (n, 1))
    # north-south valley floor at 100 m, walls rising 60 m per cell
    elev = 100.0 + 60.0 * np.maximum(0.0, np.abs(xx - n // 2) - half_width)
    return MicroclimateState(n=n, elevation=elev)


def test_narrow_valley_channels_faster_than_wide_valley():
    # near-identity smoothing isolates the per-cell channelling
    params = WindParams(smoothing_center_weight=1e9)
    narrow = _valley_state(0)
    wide = _valley_state(2)
    for s in (narrow, wide):
        update_wind(s, hour=12, base_wind_speed=10.0, wind_dir_deg=180.0, wind_gustiness=0.0, params=params)
    assert wide.wind.speed[10, 10] > 0.0
    assert narrow.wind.speed[10, 10] > wide.wind.speed[10, 10]
    # flow is turned down-valley with the wind
    assert narrow.wind.v[10, 10] > 0.0 and wide.wind.v[10, 10] > 0.0
