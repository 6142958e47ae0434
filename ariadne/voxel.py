"""Voxel helpers: downsampling and a rolling grid of point buckets."""

from __future__ import annotations

from typing import Iterator

import numpy as np


def voxel_downsample(points, leaf_size: float) -> np.ndarray:
    """Replace the points of each cubic voxel by their centroid.

    ``points`` is an (N, C) array whose first three columns are x, y, z; every
    column is averaged. Points with a non-finite coordinate are dropped. The
    result is ordered by voxel with x varying fastest, then y, then z.
    """
    if leaf_size <= 0:
        raise ValueError("leaf_size must be positive")
    pts = np.asarray(points, dtype=float)
    if pts.size == 0:
        columns = pts.shape[1] if pts.ndim == 2 else 4
        return np.empty((0, columns))
    if pts.ndim != 2 or pts.shape[1] < 3:
        raise ValueError("points must be an (N, C) array with C >= 3")
    pts = pts[np.isfinite(pts[:, :3]).all(axis=1)]
    if len(pts) == 0:
        return np.empty((0, pts.shape[1]))
    ijk = np.floor(pts[:, :3] / leaf_size).astype(np.int64)
    _, inverse, counts = np.unique(
        ijk[:, ::-1], axis=0, return_inverse=True, return_counts=True
    )
    inverse = np.asarray(inverse).reshape(-1)
    sums = np.zeros((len(counts), pts.shape[1]))
    np.add.at(sums, inverse, pts)
    return sums / counts[:, None]


def voxel_index(offset, voxel_size: float, half_width: int):
    """Index of the voxel holding ``offset`` in a grid centred on ``half_width``.

    Accepts a scalar or an array of offsets.
    """
    shifted = np.asarray(offset, dtype=float) + voxel_size / 2
    index = np.trunc(shifted / voxel_size).astype(np.int64) + half_width
    index = index - (shifted < 0)
    return int(index) if index.ndim == 0 else index


class RollingVoxelGrid:
    """A square grid of point lists that scrolls to follow the vehicle.

    ``update_counts`` and ``update_times`` are kept per grid slot and do not
    scroll with the point lists.
    """

    def __init__(self, voxel_size: float = 2.0, width: int = 41):
        if voxel_size <= 0:
            raise ValueError("voxel_size must be positive")
        if width < 1 or width % 2 == 0:
            raise ValueError("width must be a positive odd number")
        self.voxel_size = float(voxel_size)
        self.width = width
        self.half_width = (width - 1) // 2
        self.shift_x = 0
        self.shift_y = 0
        self._cells: list[list[list[tuple[float, ...]]]] = [
            self._empty_row() for _ in range(width)
        ]
        self.update_counts = np.zeros((width, width), dtype=np.int64)
        self.update_times = np.zeros((width, width))

    def _empty_row(self) -> list[list[tuple[float, ...]]]:
        return [[] for _ in range(self.width)]

    def recenter(self, x: float, y: float) -> None:
        """Scroll the grid until its centre voxel is within one voxel of (x, y)."""
        size = self.voxel_size
        while x - size * self.shift_x < -size:
            self._cells = [self._empty_row()] + self._cells[:-1]
            self.shift_x -= 1
        while x - size * self.shift_x > size:
            self._cells = self._cells[1:] + [self._empty_row()]
            self.shift_x += 1
        while y - size * self.shift_y < -size:
            self._cells = [[[]] + row[:-1] for row in self._cells]
            self.shift_y -= 1
        while y - size * self.shift_y > size:
            self._cells = [row[1:] + [[]] for row in self._cells]
            self.shift_y += 1

    def add_point(self, point, vehicle_x: float, vehicle_y: float) -> tuple[int, int] | None:
        """Store a point relative to the vehicle; return its cell or None if outside."""
        ix = voxel_index(float(point[0]) - vehicle_x, self.voxel_size, self.half_width)
        iy = voxel_index(float(point[1]) - vehicle_y, self.voxel_size, self.half_width)
        if not (0 <= ix < self.width and 0 <= iy < self.width):
            return None
        self._cells[ix][iy].append(tuple(float(v) for v in point))
        self.update_counts[ix, iy] += 1
        return ix, iy

    def cells(self) -> Iterator[tuple[int, int, list[tuple[float, ...]]]]:
        """Yield (ix, iy, points) for every cell, x outer; the lists are live."""
        for ix, row in enumerate(self._cells):
            for iy, points in enumerate(row):
                yield ix, iy, points