import dataclasses

import numpy as np
import pytest

from pymicro.diagnostics import calculate_simulation_metrics, format_metrics
from pymicro.state import MicroclimateState
from pymicro.world import MicroclimateWorld, SimConfig


def _world(**overrides):
    cfg = SimConfig.from_env()
    params = dict(n=16, seed=42, tick_minutes=30.0, wind_speed=12.0, wind_gustiness=40.0, diag=False)
    params.update(overrides)
    return MicroclimateWorld(dataclasses.replace(cfg, **params))


def test_sim_config_from_env(monkeypatch):
    monkeypatch.setenv("MC_N", "10")
    monkeypatch.setenv("MC_MONTH", "2")
    monkeypatch.setenv("MC_ENABLE_CLOUDS", "0")
    monkeypatch.setenv("MC_WIND_SPEED", "not-a-number")
    cfg = SimConfig.from_env()
    assert cfg.n == 10
    assert cfg.month == 2
    assert cfg.enable_clouds is False
    assert cfg.wind_speed == 5.0
    assert cfg.diag is False  # pinned by conftest


@pytest.mark.parametrize("kwargs", [dict(n=2), dict(month=13), dict(tick_minutes=-1.0), dict(wind_speed=-3.0)])
def test_sim_config_rejects_invalid_values(kwargs):
    with pytest.raises(ValueError):
        SimConfig(**kwargs)


def test_create_default_reads_env_and_applies_overrides(monkeypatch):
    monkeypatch.setenv("MC_N", "10")
    monkeypatch.setenv("MC_MONTH", "3")
    w = MicroclimateWorld.create_default(month=11, seed=7)
    assert w.config.n == 10
    assert w.config.month == 11
    assert w.config.seed == 7
    assert w.state.shape == (10, 10)
    with pytest.raises(ValueError):
        MicroclimateWorld.create_default(month=0)


def test_clock_starts_at_six_and_advances_before_the_tick():
    w = _world()
    assert (w.day, w.hour, w.minute) == (0, 6, 0)
    assert w.sun_altitude == 0.0
    w.step(90.0)
    assert (w.hour, w.minute) == (7, 30)
    assert w.state.is_simulating
    w.step(22 * 60.0 + 30.0)
    assert w.day == 1 and w.hour == 6
    assert w.clock_label() == "day 1 06:00"


def test_same_seed_gives_identical_runs():
    a, b = _world(), _world()
    a.run(6)
    b.run(6)
    fa, fb = a.state.grid_fields(), b.state.grid_fields()
    for name in fa:
        np.testing.assert_array_equal(fa[name], fb[name], err_msg=name)


def test_range_invariants_after_ticks():
    w = _world(month=1, wind_speed=18.0)
    history = w.run(8, minutes=45.0)
    assert len(history) == 8
    s = w.state
    for t in (s.temperature.read, s.soil_temperature.read):
        assert np.all(np.isfinite(t))
        assert np.all((t >= -70.0) & (t <= 65.0))
    for grid in (s.humidity, s.soil_moisture, s.cloud_coverage, s.fog_density):
        assert np.all((grid >= 0.0) & (grid <= 1.0))
    assert np.all(s.snow_depth >= 0.0)
    np.testing.assert_array_equal(s.wind.speed, np.hypot(s.wind.u, s.wind.v))


@pytest.mark.parametrize("enable_clouds", [True, False])
def test_non_finite_moisture_is_clamped_not_spread(enable_clouds):
    w = _world(enable_clouds=enable_clouds)
    s = w.state
    s.humidity[3, 3] = np.nan
    s.soil_moisture[4, 4] = np.nan
    s.cloud_water[5, 5] = np.inf
    w.run(3)
    for name in ("humidity", "soil_moisture", "dew_point", "cloud_water", "cloud_coverage", "fog_density"):
        assert np.all(np.isfinite(getattr(s, name))), name
    assert np.all((s.humidity >= 0.0) & (s.humidity <= 1.0))
    assert np.all((s.soil_moisture >= 0.0) & (s.soil_moisture <= 1.0))
    assert np.all(np.isfinite(s.temperature.read))


def test_disabled_features_reset_their_outputs():
    w = _world(enable_clouds=False, enable_downslope=False, enable_inversions=False)
    w.step()
    s = w.state
    assert np.all(s.cloud_coverage == 0.0) and np.all(s.precipitation == 0.0)
    assert np.all(s.wind.speed == 0.0) and np.all(s.downslope_wind == 0.0)
    assert s.inversion_strength == 0.0 and s.inversion_height == 0.0


def test_metrics_skip_non_finite_cells():
    s = MicroclimateState(n=2, temperature=np.array([[1.0, np.nan], [3.0, 5.0]]))
    s.cloud_top[0, 0] = 750.0
    s.snow_depth[...] = 2.0
    m = calculate_simulation_metrics(s)
    assert m.min_temperature == 1.0 and m.max_temperature == 5.0
    assert m.avg_temperature == pytest.approx(3.0)
    assert m.max_cloud_height == 750.0
    assert m.avg_snow_depth == pytest.approx(2.0)
    assert m.avg_precipitation == 0.0
    assert format_metrics(m).startswith("[Metrics]")

    empty = MicroclimateState(n=1, temperature=np.array([[np.nan]]))
    assert calculate_simulation_metrics(empty).avg_temperature == 0.0


def test_driver_script_runs(capsys):
    from scripts.run_simulation import main

    main(["--ticks", "2", "--size", "12", "--minutes", "30", "--seed", "1"])
    out = capsys.readouterr().out
    assert "[World]" in out
    assert "[Metrics]" in out
