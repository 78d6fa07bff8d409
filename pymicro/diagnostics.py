from __future__ import annotations

"""
Per-tick summary metrics of a MicroclimateState.

Notes
- Pure functions: nothing here mutates the state. Callers decide whether to print.
- Non-finite cells are skipped; an aggregate over zero finite cells is 0.
"""

from dataclasses import asdict, dataclass
from typing import Any

import numpy as np


@dataclass(frozen=True)
class SimulationMetrics:
    min_temperature: float
    max_temperature: float
    avg_temperature: float
    avg_precipitation: float
    max_cloud_height: float
    avg_snow_depth: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def _as_array(x: Any) -> np.ndarray:
    """Accept either a DBA-like object with .read or a plain array."""
    if hasattr(x, "read"):
        return np.asarray(x.read)
    return np.asarray(x)


def _finite(x: Any) -> np.ndarray:
    a = _as_array(x).astype(float, copy=False)
    return a[np.isfinite(a)]


def calculate_simulation_metrics(state) -> SimulationMetrics:
    temps = _finite(state.temperature)
    precip = _finite(state.precipitation)
    tops = _finite(state.cloud_top)
    snow = _finite(state.snow_depth)
    return SimulationMetrics(
        min_temperature=float(temps.min()) if temps.size else 0.0,
        max_temperature=float(temps.max()) if temps.size else 0.0,
        avg_temperature=float(temps.mean()) if temps.size else 0.0,
        avg_precipitation=float(precip.sum() / max(1, precip.size)),
        max_cloud_height=float(tops.max()) if tops.size else 0.0,
        avg_snow_depth=float(snow.sum() / max(1, snow.size)),
    )


def format_metrics(metrics: SimulationMetrics, clock: str | None = None) -> str:
    prefix = f"[Metrics] {clock} | " if clock else "[Metrics] "
    return (
        prefix
        + f"T min/avg/max={metrics.min_temperature:+.2f}/{metrics.avg_temperature:+.2f}/{metrics.max_temperature:+.2f} °C"
        + f" | precip={metrics.avg_precipitation:.3f} | cloud_top={metrics.max_cloud_height:.0f} m"
        + f" | snow={metrics.avg_snow_depth:.2f} cm"
    )


def print_metrics(metrics: SimulationMetrics, clock: str | None = None) -> None:
    print(format_metrics(metrics, clock))
