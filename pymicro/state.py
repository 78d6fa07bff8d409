from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import DTypeLike

from pymicro import constants
from pymicro.categories import CloudType, LandCover, PrecipitationType, SoilType
from pymicro.grid import SquareGrid, clamp_finite
from pymicro.numerics.double_buffer import DoubleBufferingArray as DBA


@dataclass
class WindField:
    """Per-cell wind vector. `speed` is always the magnitude of (u, v)."""

    u: np.ndarray  # cells per unit time towards +x
    v: np.ndarray  # cells per unit time towards +y (row index)
    speed: np.ndarray

    @classmethod
    def zeros(cls, shape: tuple[int, int]) -> WindField:
        return cls(np.zeros(shape), np.zeros(shape), np.zeros(shape))

    @classmethod
    def from_components(cls, u, v) -> WindField:
        u = np.asarray(u, dtype=float)
        v = np.asarray(v, dtype=float)
        return cls(u.copy(), v.copy(), np.hypot(u, v))

    def refresh_speed(self) -> None:
        self.speed[...] = np.hypot(self.u, self.v)

    def reset(self) -> None:
        self.u[...] = 0.0
        self.v[...] = 0.0
        self.speed[...] = 0.0


# (name, dtype, initial value) of every per-cell grid held by MicroclimateState
_GRID_FIELDS: tuple[tuple[str, DTypeLike, float], ...] = (
    # static terrain
    ("elevation", np.float64, constants.BASE_ELEVATION),
    ("land_cover", np.int8, int(LandCover.GRASSLAND)),
    ("soil_type", np.int8, int(SoilType.LOAM)),
    ("region_id", np.int32, 0),
    ("water_distance", np.float64, np.inf),
    ("nearest_water_region", np.int32, 0),
    ("forest_distance", np.float64, np.inf),
    ("nearest_forest_region", np.int32, 0),
    ("urban_distance", np.float64, np.inf),
    ("forest_depth", np.float64, 0.0),
    ("hillshade", np.float64, 1.0),
    # dynamic surface / atmosphere
    ("soil_moisture", np.float64, 0.0),
    ("snow_depth", np.float64, 0.0),
    ("humidity", np.float64, constants.NEUTRAL_HUMIDITY),
    ("dew_point", np.float64, constants.NEUTRAL_DEW_POINT),
    ("downslope_wind", np.float64, 0.0),
    ("foehn_effect", np.float64, 0.0),
    ("fog_density", np.float64, 0.0),
    ("cloud_coverage", np.float64, 0.0),
    ("cloud_base", np.float64, 0.0),
    ("cloud_top", np.float64, 0.0),
    ("cloud_type", np.int8, int(CloudType.NONE)),
    ("cloud_optical_depth", np.float64, 0.0),
    ("cloud_water", np.float64, 0.0),
    ("ice_content", np.float64, 0.0),
    ("convective_energy", np.float64, 0.0),
    ("thermal_strength", np.float64, 0.0),
    ("latent_heat_effect", np.float64, 0.0),
    ("precipitation", np.float64, 0.0),
    ("precipitation_type", np.int8, int(PrecipitationType.NONE)),
    ("inversion_and_downslope_rate", np.float64, 0.0),
)

# fields cleared when the cloud engine is disabled for a tick
CLOUD_FIELDS = (
    "cloud_coverage",
    "cloud_water",
    "cloud_optical_depth",
    "cloud_base",
    "cloud_top",
    "cloud_type",
    "precipitation",
    "precipitation_type",
    "thermal_strength",
    "convective_energy",
    "ice_content",
)


@dataclass
class MicroclimateState:
    """
    Single arena of same-shaped (n, n) grids, indexed [y, x].

    Grids passed to the constructor are validated against (n, n); any grid left
    as None is allocated with its neutral initial value. Air and soil temperature
    are double-buffered (see DoubleBufferingArray).
    """

    n: int = constants.GRID_SIZE
    cell_size: float = constants.CELL_SIZE

    elevation: np.ndarray | None = None
    land_cover: np.ndarray | None = None
    soil_type: np.ndarray | None = None
    region_id: np.ndarray | None = None
    water_distance: np.ndarray | None = None
    nearest_water_region: np.ndarray | None = None
    forest_distance: np.ndarray | None = None
    nearest_forest_region: np.ndarray | None = None
    urban_distance: np.ndarray | None = None
    forest_depth: np.ndarray | None = None
    hillshade: np.ndarray | None = None

    temperature: DBA | np.ndarray | None = None
    soil_temperature: DBA | np.ndarray | None = None
    soil_moisture: np.ndarray | None = None
    snow_depth: np.ndarray | None = None
    humidity: np.ndarray | None = None
    dew_point: np.ndarray | None = None
    wind: WindField | None = None
    downslope_wind: np.ndarray | None = None
    foehn_effect: np.ndarray | None = None
    fog_density: np.ndarray | None = None
    cloud_coverage: np.ndarray | None = None
    cloud_base: np.ndarray | None = None
    cloud_top: np.ndarray | None = None
    cloud_type: np.ndarray | None = None
    cloud_optical_depth: np.ndarray | None = None
    cloud_water: np.ndarray | None = None
    ice_content: np.ndarray | None = None
    convective_energy: np.ndarray | None = None
    thermal_strength: np.ndarray | None = None
    latent_heat_effect: np.ndarray | None = None
    precipitation: np.ndarray | None = None
    precipitation_type: np.ndarray | None = None
    inversion_and_downslope_rate: np.ndarray | None = None

    region_sizes: dict[int, int] = field(default_factory=dict)
    inversion_height: float = 0.0
    inversion_strength: float = 0.0
    is_simulating: bool = False

    def __post_init__(self) -> None:
        try:
            self.n = int(self.n)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"MicroclimateState: invalid grid size {self.n!r}") from exc
        if self.n < 1:
            raise ValueError(f"MicroclimateState: grid size must be >= 1, got {self.n}")
        self.grid = SquareGrid(self.n, self.cell_size)
        shape = self.grid.shape

        for name, dtype, initial in _GRID_FIELDS:
            value = getattr(self, name)
            if value is None:
                setattr(self, name, np.full(shape, initial, dtype=dtype))
            else:
                arr = np.array(value, dtype=dtype, copy=True)
                self._check_shape(name, arr.shape)
                setattr(self, name, arr)

        for name in ("temperature", "soil_temperature"):
            value = getattr(self, name)
            if value is None:
                setattr(self, name, DBA(shape, dtype=np.float64, initial_value=constants.NEUTRAL_TEMPERATURE))
            elif isinstance(value, DBA):
                self._check_shape(name, value.shape)
            else:
                arr = np.asarray(value, dtype=np.float64)
                self._check_shape(name, arr.shape)
                setattr(self, name, DBA.from_array(arr))

        if self.wind is None:
            self.wind = WindField.zeros(shape)
        else:
            for comp in ("u", "v", "speed"):
                self._check_shape(f"wind.{comp}", np.shape(getattr(self.wind, comp)))
            self.wind.refresh_speed()

    def _check_shape(self, name: str, got) -> None:
        if tuple(got) != (self.n, self.n):
            raise ValueError(
                f"MicroclimateState: field '{name}' has shape {tuple(got)}, expected {(self.n, self.n)}"
            )

    # ---- helpers ----
    @property
    def shape(self) -> tuple[int, int]:
        return (self.n, self.n)

    def in_bounds(self, x: int, y: int) -> bool:
        return bool(self.grid.in_bounds(x, y))

    def reset_clouds(self) -> None:
        """Zero every cloud/precipitation output (cloud engine disabled)."""
        for name in CLOUD_FIELDS:
            getattr(self, name)[...] = 0

    def clamp_non_finite(self) -> None:
        """Reset NaN/inf cells of the advected moisture fields to their neutral values."""
        self.humidity[...] = clamp_finite(self.humidity, constants.NEUTRAL_HUMIDITY)
        self.soil_moisture[...] = clamp_finite(self.soil_moisture, 0.0)
        self.cloud_water[...] = clamp_finite(self.cloud_water, 0.0, 0.0, np.inf)

    def swap_temperatures(self) -> None:
        """Commit staged air and soil temperatures."""
        self.temperature.swap()
        self.soil_temperature.swap()

    def grid_fields(self) -> dict[str, np.ndarray]:
        """Name -> current array for every per-cell grid (temperature reads the snapshot)."""
        out = {name: getattr(self, name) for name, _, _ in _GRID_FIELDS}
        out["temperature"] = self.temperature.read
        out["soil_temperature"] = self.soil_temperature.read
        out["wind_u"] = self.wind.u
        out["wind_v"] = self.wind.v
        out["wind_speed"] = self.wind.speed
        return out


def reset_dynamic_fields(state: MicroclimateState, rng: np.random.Generator) -> None:
    """
    Neutral baseline for every dynamic field: 20 °C air and soil, humidity 0.5 plus
    a uniform jitter in [0, 0.2), dew point 10 °C, everything else zero. Static
    indices are reset to their "not yet computed" sentinels.
    """
    shape = state.shape
    state.temperature.assign(np.full(shape, constants.NEUTRAL_TEMPERATURE))
    state.soil_temperature.assign(np.full(shape, constants.NEUTRAL_TEMPERATURE))
    state.humidity[...] = constants.NEUTRAL_HUMIDITY + rng.random(shape) * constants.NEUTRAL_HUMIDITY_JITTER
    state.dew_point[...] = constants.NEUTRAL_DEW_POINT
    state.hillshade[...] = 1.0
    for name in ("water_distance", "forest_distance", "urban_distance"):
        getattr(state, name)[...] = np.inf
    for name in (
        "region_id",
        "nearest_water_region",
        "nearest_forest_region",
        "forest_depth",
        "soil_moisture",
        "snow_depth",
        "downslope_wind",
        "foehn_effect",
        "fog_density",
        "latent_heat_effect",
        "inversion_and_downslope_rate",
    ):
        getattr(state, name)[...] = 0
    state.wind.reset()
    state.reset_clouds()
    state.region_sizes = {}
    state.inversion_height = 0.0
    state.inversion_strength = 0.0
