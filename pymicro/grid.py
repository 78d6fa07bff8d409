# pymicro/grid.py

"""
Defines the square Cartesian grid used by all microclimate fields.

Arrays are indexed [y, x]; x grows to the east, y grows to the south
(row order), so a positive v component moves towards larger row indices.
"""

from __future__ import annotations

import numpy as np
from scipy import ndimage

from . import constants


class SquareGrid:
    """
    Represents an N x N grid with uniform horizontal spacing.
    """

    def __init__(self, n: int, cell_size: float = constants.CELL_SIZE):
        """
        Args:
            n (int): Number of cells per side.
            cell_size (float): Spacing between cell centres used by finite differences.
        """
        if int(n) < 1:
            raise ValueError(f"SquareGrid: side length must be >= 1, got {n}")
        self.n = int(n)
        self.cell_size = float(cell_size)
        # Integer coordinate meshes (row-major)
        self.yy, self.xx = np.mgrid[0 : self.n, 0 : self.n]

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n, self.n)

    def in_bounds(self, x, y):
        """Bounds predicate; works on scalars and integer arrays alike."""
        return (x >= 0) & (x < self.n) & (y >= 0) & (y < self.n)

    def interior_mask(self, margin: int = 1) -> np.ndarray:
        """True on cells with at least `margin` cells to every border."""
        mask = np.zeros(self.shape, dtype=bool)
        if self.n > 2 * margin:
            mask[margin:-margin, margin:-margin] = True
        return mask

    def centered_gradient(self, z: np.ndarray, step: int = 1) -> tuple[np.ndarray, np.ndarray]:
        """
        Centred differences over +-step cells:
            dz/dx = (z[y, x+step] - z[y, x-step]) / (2 * step * cell_size)
        Cells closer than `step` to the border get zero gradient.
        """
        z = np.asarray(z, dtype=float)
        dzdx = np.zeros_like(z)
        dzdy = np.zeros_like(z)
        s = int(step)
        if self.n <= 2 * s:
            return dzdx, dzdy
        denom = 2.0 * s * self.cell_size
        dzdx[s:-s, s:-s] = (z[s:-s, 2 * s :] - z[s:-s, : -2 * s]) / denom
        dzdy[s:-s, s:-s] = (z[2 * s :, s:-s] - z[: -2 * s, s:-s]) / denom
        return dzdx, dzdy

    def edge_gradient(self, z: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Centred differences inside, one-sided differences on the borders."""
        z = np.asarray(z, dtype=float)
        if self.n < 2:
            return np.zeros_like(z), np.zeros_like(z)
        dzdy, dzdx = np.gradient(z, self.cell_size)
        return dzdx, dzdy


def shift_clamped(a: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """Return b with b[y, x] = a[clamp(y+dy), clamp(x+dx)] (edge replication)."""
    n_y, n_x = a.shape
    ys = np.clip(np.arange(n_y) + dy, 0, n_y - 1)
    xs = np.clip(np.arange(n_x) + dx, 0, n_x - 1)
    return a[np.ix_(ys, xs)]


def shift_padded(a: np.ndarray, dx: int, dy: int, fill) -> tuple[np.ndarray, np.ndarray]:
    """
    Return (values, valid) with values[y, x] = a[y+dy, x+dx] where that cell exists,
    `fill` elsewhere; `valid` marks the in-grid samples.
    """
    n_y, n_x = a.shape
    values = np.full(a.shape, fill, dtype=np.result_type(a, type(fill)))
    valid = np.zeros(a.shape, dtype=bool)
    ys_dst = slice(max(0, -dy), min(n_y, n_y - dy))
    xs_dst = slice(max(0, -dx), min(n_x, n_x - dx))
    ys_src = slice(max(0, dy), min(n_y, n_y + dy))
    xs_src = slice(max(0, dx), min(n_x, n_x + dx))
    if ys_dst.start < ys_dst.stop and xs_dst.start < xs_dst.stop:
        values[ys_dst, xs_dst] = a[ys_src, xs_src]
        valid[ys_dst, xs_dst] = True
    return values, valid


def smooth_interior(a: np.ndarray, center_weight: float = 1.0) -> np.ndarray:
    """
    Single 3x3 weighted-average pass (neighbours weight 1) applied to interior
    cells only; border cells keep their values.
    """
    kernel = np.ones((3, 3), dtype=float)
    kernel[1, 1] = float(center_weight)
    kernel /= kernel.sum()
    out = np.array(a, dtype=float, copy=True)
    if a.shape[0] > 2 and a.shape[1] > 2:
        filtered = ndimage.correlate(np.asarray(a, dtype=float), kernel, mode="nearest")
        out[1:-1, 1:-1] = filtered[1:-1, 1:-1]
    return out


def local_std_3x3(z: np.ndarray) -> np.ndarray:
    """Population standard deviation over each 3x3 window (edge-replicated)."""
    z = np.asarray(z, dtype=float)
    mean = ndimage.uniform_filter(z, size=3, mode="nearest")
    mean_sq = ndimage.uniform_filter(z * z, size=3, mode="nearest")
    return np.sqrt(np.maximum(0.0, mean_sq - mean * mean))


def round_half_up(v):
    """Round x.5 away from the floor, matching screen-space rounding of cell coordinates."""
    return np.floor(np.asarray(v, dtype=float) + 0.5).astype(int)


def clamp_finite(a, neutral: float, lo: float = 0.0, hi: float = 1.0) -> np.ndarray:
    """Replace non-finite cells with `neutral`, then clip to [lo, hi]."""
    a = np.asarray(a, dtype=float)
    return np.clip(np.where(np.isfinite(a), a, neutral), lo, hi)
