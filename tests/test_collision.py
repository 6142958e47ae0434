import numpy as np
import pytest

from ariadne.collision import bresenham_line, check_collision_type

FREE, OCC, UNK = 0, 100, -1


def test_line_endpoints_and_connectivity():
    cells = list(bresenham_line((0, 0), (7, 3)))
    assert cells[0] == (0, 0)
    assert cells[-1] == (7, 3)
    for (ax, ay), (bx, by) in zip(cells, cells[1:]):
        assert max(abs(ax - bx), abs(ay - by)) == 1


def test_single_point_line():
    assert list(bresenham_line((2, 2), (2, 2))) == [(2, 2)]


def test_reverse_line_same_cells_for_axis():
    forward = set(bresenham_line((0, 0), (5, 0)))
    backward = set(bresenham_line((5, 0), (0, 0)))
    assert forward == backward


def test_free_path():
    grid = np.zeros((5, 5), dtype=int)
    assert check_collision_type(grid, FREE, OCC, UNK, (0, 0), (4, 4)) == FREE


def test_occupied_path():
    grid = np.zeros((5, 5), dtype=int)
    grid[2, 2] = OCC
    assert check_collision_type(grid, FREE, OCC, UNK, (0, 0), (4, 4)) == OCC


def test_unknown_before_occupied():
    grid = np.zeros((1, 6), dtype=int)
    grid[0, 2] = UNK
    grid[0, 4] = OCC
    assert check_collision_type(grid, FREE, OCC, UNK, (0, 0), (5, 0)) == UNK


def test_out_of_bounds_cells_ignored():
    grid = np.zeros((3, 3), dtype=int)
    assert check_collision_type(grid, FREE, OCC, UNK, (-5, 1), (10, 1)) == FREE


def test_rejects_non_2d():
    with pytest.raises(ValueError):
        check_collision_type(np.zeros(4), FREE, OCC, UNK, (0, 0), (1, 0))