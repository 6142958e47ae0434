"""Line-of-sight collision checks on a 2D occupancy grid."""

from __future__ import annotations

from typing import Iterator, Sequence

import numpy as np


def bresenham_line(start: Sequence[int], end: Sequence[int]) -> Iterator[tuple[int, int]]:
    """Yield the integer cells from ``start`` to ``end`` inclusive."""
    x0, y0 = int(start[0]), int(start[1])
    x1, y1 = int(end[0]), int(end[1])
    dx = abs(x1 - x0)
    dy = abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx - dy
    while True:
        yield x0, y0
        if x0 == x1 and y0 == y1:
            return
        e2 = 2 * err
        if e2 > -dy:
            err -= dy
            x0 += sx
        if e2 < dx:
            err += dx
            y0 += sy


def check_collision_type(map_info, free, occupied, unknown, start, end):
    """Walk the line from ``start`` to ``end`` over a rows x cols grid.

    Returns ``occupied`` or ``unknown`` for the first such cell met, else
    ``free``. Cells outside the grid are ignored; points are ``(x, y)``.
    """
    grid = np.asarray(map_info)
    if grid.ndim != 2:
        raise ValueError("map_info must be a two-dimensional array")
    rows, cols = grid.shape
    for x, y in bresenham_line(start, end):
        if 0 <= x < cols and 0 <= y < rows:
            value = grid[y, x]
            if value == occupied:
                return occupied
            if value == unknown:
                return unknown
    return free