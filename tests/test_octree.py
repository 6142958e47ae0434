import math

import pytest

from ariadne.octree import OccupancyOctree, logodds, probability


def test_logodds_round_trip():
    for p in (0.1, 0.4, 0.5, 0.7, 0.97):
        assert probability(logodds(p)) == pytest.approx(p)
    assert logodds(0.5) == 0.0


def test_key_round_trip():
    tree = OccupancyOctree(resolution=0.4)
    key = tree.coord_to_key((1.3, -2.1, 0.05))
    centre = tree.key_to_coord(key)
    assert tree.coord_to_key(centre) == key
    for c, v in zip(centre, (1.3, -2.1, 0.05)):
        assert abs(c - v) <= 0.2 + 1e-9


def test_key_outside_tree_raises():
    tree = OccupancyOctree(resolution=0.1)
    with pytest.raises(ValueError):
        tree.coord_to_key((1e6, 0, 0))


def test_ray_along_axis_is_contiguous():
    tree = OccupancyOctree(resolution=1.0)
    ray = tree.compute_ray_keys((0.5, 0.5, 0.5), (5.5, 0.5, 0.5))
    start = tree.coord_to_key((0.5, 0.5, 0.5))
    end = tree.coord_to_key((5.5, 0.5, 0.5))
    assert ray[0] == start
    assert end not in ray
    assert [k[0] for k in ray] == list(range(start[0], end[0]))


def test_ray_same_voxel_empty():
    tree = OccupancyOctree(resolution=1.0)
    assert tree.compute_ray_keys((0.1, 0.1, 0.1), (0.2, 0.2, 0.2)) == []


def test_insert_point_cloud_marks_hit_and_free():
    tree = OccupancyOctree(resolution=1.0)
    tree.insert_point_cloud([(4.5, 0.5, 0.5)], (0.5, 0.5, 0.5), -1.0)
    end = tree.coord_to_key((4.5, 0.5, 0.5))
    origin = tree.coord_to_key((0.5, 0.5, 0.5))
    assert tree.is_occupied(end)
    assert tree.occupancy(end) == pytest.approx(0.7)
    assert not tree.is_occupied(origin)
    assert tree.occupancy(origin) == pytest.approx(0.4)


def test_max_range_skips_endpoint():
    tree = OccupancyOctree(resolution=1.0)
    tree.insert_point_cloud([(10.5, 0.5, 0.5)], (0.5, 0.5, 0.5), 3.0)
    assert tree.occupancy(tree.coord_to_key((10.5, 0.5, 0.5))) is None
    assert not any(tree.is_occupied(l.key) for l in
                   tree.leaves_in_box((-5, -5, -5), (20, 5, 5)))


def test_clamping():
    tree = OccupancyOctree(resolution=1.0, clamp_max=0.97)
    key = tree.coord_to_key((0, 0, 0))
    for _ in range(50):
        tree.update_node(key, True)
    assert tree.occupancy(key) == pytest.approx(0.97)
    tree.set_node_value(key, 1000.0)
    assert tree.occupancy(key) == pytest.approx(0.97)


def test_metric_bounds_and_box():
    tree = OccupancyOctree(resolution=1.0)
    tree.set_node_value(tree.coord_to_key((0.5, 0.5, 0.5)), 1.0)
    tree.set_node_value(tree.coord_to_key((2.5, -1.5, 0.5)), 1.0)
    lo, hi = tree.metric_bounds()
    assert lo == (0.0, -2.0, 0.0)
    assert hi == (3.0, 1.0, 1.0)
    leaves = list(tree.leaves_in_box((0, 0, 0), (1, 1, 1)))
    assert [l.center for l in leaves] == [(0.5, 0.5, 0.5)]


def test_update_inner_occupancy_takes_max():
    tree = OccupancyOctree(resolution=1.0)
    a = tree.coord_to_key((0.5, 0.5, 0.5))
    b = tree.coord_to_key((1.5, 0.5, 0.5))
    tree.set_node_value(a, -1.0, True)
    tree.set_node_value(b, 2.0, True)
    tree.update_inner_occupancy()
    assert tree.inner_log_odds(a, 1) == 2.0
    assert tree.inner_log_odds(b, 1) == 2.0
    assert not math.isinf(tree.inner_log_odds(a, 15))