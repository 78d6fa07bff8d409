"""
DoubleBufferingArray (DBA): two same-shaped buffers with an O(1) swap.

A pass that produces a "new" grid reads the previous snapshot from `.read`,
stages its result into `.write`, and commits with `swap()` only after the whole
pass has completed. Readers never observe a half-written grid.

Magic methods:
  * __getitem__ reads from .read
  * __setitem__ writes to .write (lazily mirrored from .read after a swap)
  * __array__ exposes .read for NumPy interop

Notes:
- Never replace the underlying buffers; always write through slices.
- Use `assign()` for out-of-pass replacement (initialisation, advection),
  which sets both buffers so the next pass starts from a consistent snapshot.
"""

from __future__ import annotations

from typing import Any

import numpy as np


class DoubleBufferingArray:
    """
    Construction:
      dba = DoubleBufferingArray((n, n), dtype=float, initial_value=20.0)

    Use:
      prev = dba.read
      dba.stage(prev + delta)
      dba.swap()
    """

    __slots__ = ("_a", "_b", "_read_idx", "_write_synced")

    def __init__(self, shape: tuple[int, ...], dtype: Any = np.float64, initial_value: Any = 0.0):
        self._a = np.full(shape, initial_value, dtype=dtype)
        self._b = np.full(shape, initial_value, dtype=dtype)
        self._read_idx = 0  # 0 => _a is read, _b is write
        self._write_synced = True

    @classmethod
    def from_array(cls, arr, dtype: Any = np.float64) -> DoubleBufferingArray:
        a = np.asarray(arr, dtype=dtype)
        dba = cls(a.shape, dtype=dtype)
        dba.assign(a)
        return dba

    @property
    def read(self) -> np.ndarray:
        """Current snapshot."""
        return self._a if self._read_idx == 0 else self._b

    @property
    def write(self) -> np.ndarray:
        """Next state, invisible to readers until swap()."""
        return self._b if self._read_idx == 0 else self._a

    @property
    def shape(self) -> tuple[int, ...]:
        return self.read.shape

    @property
    def dtype(self) -> np.dtype:
        return self.read.dtype

    def swap(self) -> None:
        self._read_idx ^= 1
        self._write_synced = False

    def stage(self, values) -> None:
        """Write a complete next-state grid into the write buffer."""
        if values is self:
            raise ValueError("DoubleBufferingArray: self-aliasing write is not allowed.")
        self.write[...] = values
        self._write_synced = True

    def assign(self, values) -> None:
        """Replace the snapshot outside of a pass (both buffers)."""
        if values is self:
            raise ValueError("DoubleBufferingArray: self-aliasing write is not allowed.")
        self.read[...] = values
        self.write[...] = self.read
        self._write_synced = True

    def __getitem__(self, key):
        return self.read[key]

    def __setitem__(self, key, value):
        if value is self:
            raise ValueError("DoubleBufferingArray: self-aliasing write is not allowed.")
        if not self._write_synced:
            self.write[...] = self.read
            self._write_synced = True
        self.write[key] = value

    def __array__(self, dtype=None, copy=None):
        arr = self.read
        if dtype is not None and np.dtype(dtype) != arr.dtype:
            return arr.astype(dtype)
        if copy:
            return arr.copy()
        return arr

    def __repr__(self) -> str:
        return (
            f"DoubleBufferingArray(shape={self.shape}, dtype={self.dtype}, "
            f"read=buf{self._read_idx}, write=buf{1 ^ self._read_idx})"
        )
