import numpy as np
import pytest

from ariadne.voxel import RollingVoxelGrid, voxel_downsample, voxel_index


def test_downsample_merges_points_in_one_voxel():
    pts = np.array([[0.01, 0.02, 0.03, 1.0], [0.05, 0.06, 0.07, 3.0]])
    out = voxel_downsample(pts, 0.1)
    assert out.shape == (1, 4)
    np.testing.assert_allclose(out[0], pts.mean(axis=0))


def test_downsample_keeps_separate_voxels():
    pts = np.array([[0.0, 0.0, 0.0, 0.0], [1.0, 0.0, 0.0, 0.0], [0.0, 1.0, 0.0, 0.0]])
    out = voxel_downsample(pts, 0.1)
    assert len(out) == 3
    assert sorted(map(tuple, out.tolist())) == sorted(map(tuple, pts.tolist()))


def test_downsample_orders_x_fastest():
    pts = np.array([[0.0, 1.0, 0.0], [1.0, 0.0, 0.0]])
    out = voxel_downsample(pts, 0.5)
    np.testing.assert_allclose(out, pts[::-1])


def test_downsample_drops_nan_and_handles_empty():
    pts = np.array([[np.nan, 0.0, 0.0, 1.0], [0.2, 0.2, 0.2, 2.0]])
    out = voxel_downsample(pts, 0.1)
    np.testing.assert_allclose(out, pts[1:])
    assert voxel_downsample(np.empty((0, 4)), 0.1).shape == (0, 4)


def test_downsample_rejects_bad_leaf_size():
    with pytest.raises(ValueError):
        voxel_downsample(np.zeros((1, 4)), 0.0)


def test_voxel_index_centre_and_neighbours():
    assert voxel_index(0.0, 2.0, 20) == 20
    assert voxel_index(0.9, 2.0, 20) == 20
    assert voxel_index(-0.9, 2.0, 20) == 20
    assert voxel_index(1.5, 2.0, 20) == 21
    assert voxel_index(-1.5, 2.0, 20) == 19


def test_voxel_index_array_matches_scalar_and_is_monotonic():
    offsets = np.linspace(-7.3, 7.3, 57)
    arr = voxel_index(offsets, 2.0, 20)
    assert list(arr) == [voxel_index(float(o), 2.0, 20) for o in offsets]
    assert np.all(np.diff(arr) >= 0)


def _occupied(grid):
    return [(ix, iy, list(pts)) for ix, iy, pts in grid.cells() if pts]


def test_add_point_at_vehicle_goes_to_centre():
    grid = RollingVoxelGrid()
    cell = grid.add_point((5.0, 5.0, 0.0, 0.0), 5.0, 5.0)
    assert cell == (grid.half_width, grid.half_width)
    assert grid.update_counts[cell] == 1
    assert _occupied(grid) == [(grid.half_width, grid.half_width, [(5.0, 5.0, 0.0, 0.0)])]


def test_add_point_outside_is_rejected():
    grid = RollingVoxelGrid()
    assert grid.add_point((100.0, 0.0, 0.0, 0.0), 0.0, 0.0) is None
    assert grid.update_counts.sum() == 0
    assert _occupied(grid) == []


def test_recenter_scrolls_along_x():
    grid = RollingVoxelGrid()
    h = grid.half_width
    grid.add_point((0.0, 0.0, 0.0, 0.0), 0.0, 0.0)
    grid.recenter(2.5, 0.0)
    assert grid.shift_x == 1
    assert [(ix, iy) for ix, iy, _ in _occupied(grid)] == [(h - 1, h)]
    grid.recenter(-2.5, 0.0)
    assert grid.shift_x == -1
    assert [(ix, iy) for ix, iy, _ in _occupied(grid)] == [(h + 1, h)]


def test_recenter_scrolls_along_y():
    grid = RollingVoxelGrid()
    h = grid.half_width
    grid.add_point((0.0, 0.0, 0.0, 0.0), 0.0, 0.0)
    grid.recenter(0.0, 2.5)
    assert grid.shift_y == 1
    assert [(ix, iy) for ix, iy, _ in _occupied(grid)] == [(h, h - 1)]
    grid.recenter(0.0, -2.5)
    assert grid.shift_y == -1
    assert [(ix, iy) for ix, iy, _ in _occupied(grid)] == [(h, h + 1)]


def test_far_jump_empties_grid_and_keeps_counts():
    grid = RollingVoxelGrid()
    grid.add_point((0.0, 0.0, 0.0, 0.0), 0.0, 0.0)
    grid.recenter(200.0, 0.0)
    assert _occupied(grid) == []
    assert grid.update_counts.sum() == 1


def test_invalid_grid_parameters():
    with pytest.raises(ValueError):
        RollingVoxelGrid(voxel_size=-1.0)
    with pytest.raises(ValueError):
        RollingVoxelGrid(width=40)