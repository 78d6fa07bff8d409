"""
Semi-Lagrangian transport of a scalar grid along the wind field.

For each destination cell the departure point is traced backwards,
    (x - u * k * tf, y - v * k * tf),   k = 5 cells per unit wind per hour,
clamped into the grid and sampled with bilinear interpolation
(scipy.ndimage.map_coordinates, order=1).
"""

from __future__ import annotations

import numpy as np
from scipy.ndimage import map_coordinates

ADVECTION_MULTIPLIER = 5.0


def advect(grid, wind, time_factor: float, multiplier: float = ADVECTION_MULTIPLIER) -> np.ndarray:
    """
    Args:
        grid: 2D array (read only).
        wind: object with `u` and `v` arrays of the same shape (e.g. WindField).
        time_factor: simulated hours covered by the step.

    Returns:
        New array; the input grid is not modified.
    """
    field = np.asarray(grid, dtype=float)
    n_y, n_x = field.shape
    dt = float(time_factor) * float(multiplier)
    yy, xx = np.mgrid[0:n_y, 0:n_x].astype(float)
    src_x = np.clip(xx - np.asarray(wind.u, dtype=float) * dt, 0.0, n_x - 1)
    src_y = np.clip(yy - np.asarray(wind.v, dtype=float) * dt, 0.0, n_y - 1)
    out = map_coordinates(field, [src_y, src_x], order=1, mode="nearest", prefilter=False)
    return out.reshape(field.shape)
