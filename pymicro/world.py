"""
World façade: owns the state, the random generator and the simulation clock,
and runs one tick of the coupled engines in a fixed order:

  latent heat reset -> wind (or reset) -> advection -> non-finite clamp -> clouds (or reset)
  -> inversion layer -> fog -> thermodynamics -> metrics

The clock counts simulated minutes from day 0, starting at 06:00. The clock is
advanced before the tick runs, so hour / sun altitude describe the end of the step.
"""

from __future__ import annotations

import dataclasses
import math
import os
from dataclasses import dataclass

import numpy as np

from pymicro import constants
from pymicro.advection import advect
from pymicro.climate import DEFAULT_CLIMATE_OVERRIDES, ClimateOverrides
from pymicro.clouds import CloudParams, CloudTickParams, get_cloud_params_from_env, update_cloud_dynamics
from pymicro.diagnostics import SimulationMetrics, calculate_simulation_metrics, print_metrics
from pymicro.energy import (
    EnergyParams,
    ThermodynamicsOptions,
    get_energy_params_from_env,
    update_inversion_layer,
    update_thermodynamics,
)
from pymicro.fog import FogParams, get_fog_params_from_env, update_fog
from pymicro.humidity import HumidityParams, get_humidity_params_from_env
from pymicro.snow import SnowParams, get_snow_params_from_env
from pymicro.soil import SoilParams, get_soil_params_from_env, initialize_soil_moisture
from pymicro.state import MicroclimateState
from pymicro.topography import TerrainParams, get_terrain_params_from_env, initialize_environment
from pymicro.wind import WindParams, get_wind_params_from_env, reset_wind, update_wind

MINUTES_PER_DAY = 24 * 60
START_MINUTES = 6 * 60


@dataclass(frozen=True)
class SimConfig:
    """Grid, driving inputs and feature toggles (env-driven via from_env)."""

    n: int = constants.GRID_SIZE
    cell_size: float = constants.CELL_SIZE
    seed: int | None = 0
    tick_minutes: float = 15.0
    month: int = 7
    wind_speed: float = 5.0
    wind_dir: float = 270.0
    wind_gustiness: float = 20.0
    enable_advection: bool = True
    enable_diffusion: bool = True
    enable_inversions: bool = True
    enable_downslope: bool = True
    enable_clouds: bool = True
    diag: bool = True

    def __post_init__(self) -> None:
        if int(self.n) < 3:
            raise ValueError(f"SimConfig: grid size must be >= 3, got {self.n}")
        if not 1 <= int(self.month) <= 12:
            raise ValueError(f"SimConfig: month must be in 1..12, got {self.month}")
        if self.tick_minutes < 0:
            raise ValueError(f"SimConfig: tick_minutes must be >= 0, got {self.tick_minutes}")
        if self.wind_speed < 0 or self.wind_gustiness < 0:
            raise ValueError("SimConfig: wind speed and gustiness must be >= 0")

    @classmethod
    def from_env(cls) -> SimConfig:
        def _ibool(name: str, default: str = "1") -> bool:
            try:
                return int(os.getenv(name, default)) == 1
            except Exception:
                return default == "1"

        def _int(name: str, default: str) -> int:
            try:
                return int(os.getenv(name, default))
            except Exception:
                return int(default)

        def _float(name: str, default: str) -> float:
            try:
                return float(os.getenv(name, default))
            except Exception:
                return float(default)

        seed_raw = os.getenv("MC_SEED", "0").strip()
        try:
            seed = int(seed_raw) if seed_raw else None
        except ValueError:
            seed = 0

        return cls(
            n=_int("MC_N", str(constants.GRID_SIZE)),
            cell_size=_float("MC_CELL_SIZE", str(constants.CELL_SIZE)),
            seed=seed,
            tick_minutes=_float("MC_TICK_MINUTES", "15"),
            month=_int("MC_MONTH", "7"),
            wind_speed=_float("MC_WIND_SPEED", "5"),
            wind_dir=_float("MC_WIND_DIR", "270"),
            wind_gustiness=_float("MC_WIND_GUST", "20"),
            enable_advection=_ibool("MC_ENABLE_ADVECTION", "1"),
            enable_diffusion=_ibool("MC_ENABLE_DIFFUSION", "1"),
            enable_inversions=_ibool("MC_ENABLE_INVERSIONS", "1"),
            enable_downslope=_ibool("MC_ENABLE_DOWNSLOPE", "1"),
            enable_clouds=_ibool("MC_ENABLE_CLOUDS", "1"),
            diag=_ibool("MC_DIAG", "1"),
        )


@dataclass
class PhysicsParams:
    """Parameter bundle handed to the engines."""

    terrain: TerrainParams
    soil: SoilParams
    wind: WindParams
    energy: EnergyParams
    clouds: CloudParams
    humidity: HumidityParams
    snow: SnowParams
    fog: FogParams

    @classmethod
    def defaults(cls) -> PhysicsParams:
        return cls(
            TerrainParams(), SoilParams(), WindParams(), EnergyParams(),
            CloudParams(), HumidityParams(), SnowParams(), FogParams(),
        )

    @classmethod
    def from_env(cls) -> PhysicsParams:
        return cls(
            terrain=get_terrain_params_from_env(),
            soil=get_soil_params_from_env(),
            wind=get_wind_params_from_env(),
            energy=get_energy_params_from_env(),
            clouds=get_cloud_params_from_env(),
            humidity=get_humidity_params_from_env(),
            snow=get_snow_params_from_env(),
            fog=get_fog_params_from_env(),
        )


class MicroclimateWorld:
    """
    Façade orchestrating terrain initialisation and the per-tick engine sequence.

    All randomness (terrain, gusts, precipitation gating) comes from one
    numpy Generator seeded from the config, so equal seeds give equal runs.
    """

    def __init__(
        self,
        config: SimConfig | None = None,
        state: MicroclimateState | None = None,
        rng: np.random.Generator | None = None,
        climate: ClimateOverrides | None = None,
        params: PhysicsParams | None = None,
    ) -> None:
        self.config = config or SimConfig.from_env()
        self.params = params or PhysicsParams.from_env()
        self.climate = climate or DEFAULT_CLIMATE_OVERRIDES
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.simulation_time = float(START_MINUTES)
        if state is None:
            self.state = MicroclimateState(n=self.config.n, cell_size=self.config.cell_size)
            self.reset()
        else:
            if state.n != self.config.n:
                raise ValueError(f"MicroclimateWorld: state size {state.n} != config size {self.config.n}")
            self.state = state

    @classmethod
    def create_default(cls, **overrides) -> MicroclimateWorld:
        """World from MC_* environment settings, with keyword overrides applied on top."""
        return cls(dataclasses.replace(SimConfig.from_env(), **overrides))

    # ---- clock ----
    @property
    def day(self) -> int:
        return int(self.simulation_time // MINUTES_PER_DAY)

    @property
    def minute_of_day(self) -> float:
        return self.simulation_time % MINUTES_PER_DAY

    @property
    def hour(self) -> int:
        return int(math.floor(self.minute_of_day / 60.0))

    @property
    def minute(self) -> int:
        return int(math.floor(self.minute_of_day % 60.0))

    @property
    def sun_altitude(self) -> float:
        return max(0.0, math.sin((self.hour + self.minute / 60.0 - 6.0) * math.pi / 12.0))

    def clock_label(self) -> str:
        return f"day {self.day} {self.hour:02d}:{self.minute:02d}"

    # ---- lifecycle ----
    def reset(self) -> SimulationMetrics:
        """Regenerate terrain, initialise soil moisture, run a zero-length tick."""
        self.simulation_time = float(START_MINUTES)
        self.state.is_simulating = False
        initialize_environment(self.state, self.rng, self.params.terrain)
        initialize_soil_moisture(self.state, self.params.soil)
        return self._tick(0.0)

    def step(self, minutes: float | None = None) -> SimulationMetrics:
        """Advance the clock by `minutes` (default: config.tick_minutes) and run one tick."""
        if minutes is None:
            minutes = self.config.tick_minutes
        minutes = max(0.0, float(minutes))
        self.state.is_simulating = minutes > 0
        self.simulation_time += minutes
        return self._tick(minutes)

    def run(self, n_ticks: int, minutes: float | None = None) -> list[SimulationMetrics]:
        history = []
        for _ in range(int(n_ticks)):
            metrics = self.step(minutes)
            history.append(metrics)
            if self.config.diag and self.minute_of_day % 60 == 0:
                print_metrics(metrics, self.clock_label())
        return history

    def _tick(self, minutes: float) -> SimulationMetrics:
        cfg = self.config
        p = self.params
        state = self.state
        tf = minutes / 60.0
        hour = self.hour
        sun = self.sun_altitude

        state.latent_heat_effect[...] = 0.0

        if cfg.enable_downslope:
            update_wind(state, hour, cfg.wind_speed, cfg.wind_dir, cfg.wind_gustiness, self.rng, p.wind)
        else:
            reset_wind(state)

        if cfg.enable_advection and tf > 0:
            state.temperature.assign(advect(state.temperature.read, state.wind, tf))
            state.humidity[...] = advect(state.humidity, state.wind, tf)
            state.cloud_water[...] = advect(state.cloud_water, state.wind, tf)
        state.clamp_non_finite()

        if cfg.enable_clouds:
            tick = CloudTickParams(cfg.month, hour, cfg.wind_speed, cfg.wind_dir, tf, self.climate)
            update_cloud_dynamics(state, tick, self.rng, p.clouds, p.humidity)
        else:
            state.reset_clouds()

        if cfg.enable_inversions:
            cloud_cover = float(np.mean(state.cloud_coverage))
            update_inversion_layer(state, hour, cfg.wind_speed, cloud_cover, p.energy)
        else:
            state.inversion_height = 0.0
            state.inversion_strength = 0.0

        update_fog(state, sun, tf, p.fog)

        options = ThermodynamicsOptions(
            month=cfg.month,
            hour=hour,
            sun_altitude=sun,
            time_factor=tf,
            enable_diffusion=cfg.enable_diffusion,
            enable_inversions=cfg.enable_inversions,
            enable_downslope=cfg.enable_downslope,
            climate=self.climate,
        )
        update_thermodynamics(state, options, p.energy, p.snow)
        return calculate_simulation_metrics(state)
