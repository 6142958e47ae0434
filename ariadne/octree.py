"""A probabilistic occupancy octree stored as a sparse map of leaf keys."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator

import numpy as np

TREE_DEPTH = 16
TREE_MAX_VAL = 1 << (TREE_DEPTH - 1)

Key = tuple[int, int, int]


def logodds(probability: float) -> float:
    """Log-odds of a probability."""
    return math.log(probability / (1.0 - probability))


def probability(log_odds: float) -> float:
    """Probability of a log-odds value."""
    return 1.0 - 1.0 / (1.0 + math.exp(log_odds))


@dataclass(frozen=True)
class Leaf:
    """A leaf voxel with its centre, edge length and log-odds value."""

    key: Key
    center: tuple[float, float, float]
    size: float
    log_odds: float

    @property
    def occupancy(self) -> float:
        return probability(self.log_odds)


class OccupancyOctree:
    """Occupancy map with octree keys, log-odds updates and clamping."""

    def __init__(self, resolution=0.1, prob_hit=0.7, prob_miss=0.4,
                 clamp_min=0.1192, clamp_max=0.971, occupancy_threshold=0.5):
        if resolution <= 0:
            raise ValueError("resolution must be positive")
        self.resolution = float(resolution)
        self.prob_hit = prob_hit
        self.prob_miss = prob_miss
        self.clamp_min = clamp_min
        self.clamp_max = clamp_max
        self.occupancy_threshold = occupancy_threshold
        self._leaves: dict[Key, float] = {}
        self._inner: list[dict[Key, float]] = [{} for _ in range(TREE_DEPTH)]

    def __len__(self) -> int:
        return len(self._leaves)

    def coord_to_key(self, point) -> Key:
        """Key of the voxel containing ``point``; ValueError outside the tree."""
        key = []
        for c in point:
            k = int(math.floor(float(c) / self.resolution)) + TREE_MAX_VAL
            if not 0 <= k < 2 * TREE_MAX_VAL:
                raise ValueError(f"coordinate {c} is outside the octree")
            key.append(k)
        return tuple(key)

    def key_to_coord(self, key) -> tuple[float, float, float]:
        """Centre of the voxel with ``key``."""
        return tuple((k - TREE_MAX_VAL + 0.5) * self.resolution for k in key)

    def compute_ray_keys(self, origin, end) -> list[Key]:
        """Keys crossed by the ray from ``origin`` to ``end``, excluding the end voxel."""
        key_origin = self.coord_to_key(origin)
        key_end = self.coord_to_key(end)
        if key_origin == key_end:
            return []
        ray = [key_origin]
        o = np.asarray(origin, dtype=float)
        d = np.asarray(end, dtype=float) - o
        length = float(np.linalg.norm(d))
        d = d / length
        current = list(key_origin)
        step = [0, 0, 0]
        t_max = [math.inf] * 3
        t_delta = [math.inf] * 3
        for i in range(3):
            if d[i] > 0:
                step[i] = 1
            elif d[i] < 0:
                step[i] = -1
            if step[i]:
                border = (current[i] - TREE_MAX_VAL + 0.5) * self.resolution \
                    + step[i] * self.resolution * 0.5
                t_max[i] = (border - o[i]) / d[i]
                t_delta[i] = self.resolution / abs(d[i])
        while True:
            dim = min(range(3), key=t_max.__getitem__)
            current[dim] += step[dim]
            t_max[dim] += t_delta[dim]
            if not 0 <= current[dim] < 2 * TREE_MAX_VAL:
                break
            if tuple(current) == key_end:
                break
            if min(t_max) > length:
                break
            ray.append(tuple(current))
        return ray

    def _clamp(self, value: float) -> float:
        return min(max(value, logodds(self.clamp_min)), logodds(self.clamp_max))

    def _store(self, key: Key, value: float, lazy_eval: bool) -> float:
        key = tuple(int(k) for k in key)
        self._leaves[key] = value
        if not lazy_eval:
            self._propagate(key)
        return value

    def _propagate(self, key: Key) -> None:
        for depth in range(1, TREE_DEPTH):
            parent = tuple(k >> depth for k in key)
            shift = depth
            best = max(
                v for k, v in self._leaves.items()
                if tuple(c >> shift for c in k) == parent
            ) if depth <= 2 else max(
                self._inner[depth - 1].get(tuple((parent[0] << 1) | a for a in ()), -math.inf),
                -math.inf,
            )
            if depth > 2:
                children = [
                    self._inner[depth - 1].get(
                        ((parent[0] << 1) | a, (parent[1] << 1) | b, (parent[2] << 1) | c)
                    )
                    for a in (0, 1) for b in (0, 1) for c in (0, 1)
                ]
                best = max(v for v in children if v is not None)
            self._inner[depth][parent] = best

    def update_node(self, key, occupied: bool, lazy_eval: bool = False) -> float:
        """Apply a hit or miss to a voxel; returns its new log-odds."""
        key = tuple(int(k) for k in key)
        update = logodds(self.prob_hit) if occupied else logodds(self.prob_miss)
        value = self._clamp(self._leaves.get(key, 0.0) + update)
        return self._store(key, value, lazy_eval)

    def set_node_value(self, key, log_odds: float, lazy_eval: bool = False) -> float:
        """Set a voxel's log-odds (clamped); returns the stored value."""
        return self._store(key, self._clamp(float(log_odds)), lazy_eval)

    def insert_point_cloud(self, points, origin, max_range=-1.0, lazy_eval=False) -> None:
        """Integrate a scan: rays are free, in-range endpoints are occupied."""
        o = np.asarray(origin, dtype=float)
        free: set[Key] = set()
        occupied: set[Key] = set()
        for p in np.asarray(points, dtype=float).reshape(-1, 3):
            dist = float(np.linalg.norm(p - o))
            if max_range < 0 or dist <= max_range:
                free.update(self.compute_ray_keys(o, p))
                occupied.add(self.coord_to_key(p))
            else:
                new_end = o + (p - o) / dist * max_range
                free.update(self.compute_ray_keys(o, new_end))
        for key in free - occupied:
            self.update_node(key, False, lazy_eval)
        for key in occupied:
            self.update_node(key, True, lazy_eval)

    def occupancy(self, key) -> float | None:
        """Occupancy probability of a voxel, or None if unknown."""
        value = self._leaves.get(tuple(int(k) for k in key))
        return None if value is None else probability(value)

    def is_occupied(self, key) -> bool:
        """True if the voxel is known and at or above the occupancy threshold."""
        value = self._leaves.get(tuple(int(k) for k in key))
        return value is not None and value >= logodds(self.occupancy_threshold)

    def inner_log_odds(self, key, depth: int) -> float | None:
        """Maximum child log-odds of the inner node at ``depth`` above the leaves."""
        if depth == 0:
            return self._leaves.get(tuple(key))
        return self._inner[depth].get(tuple(k >> depth for k in key))

    def metric_bounds(self):
        """((min_x, min_y, min_z), (max_x, max_y, max_z)) of all known voxels."""
        if not self._leaves:
            return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)
        keys = np.array(list(self._leaves), dtype=np.int64) - TREE_MAX_VAL
        lo = keys.min(axis=0) * self.resolution
        hi = (keys.max(axis=0) + 1) * self.resolution
        return tuple(float(v) for v in lo), tuple(float(v) for v in hi)

    def leaves_in_box(self, min_point, max_point) -> Iterator[Leaf]:
        """Yield the known leaves whose keys lie in the box, in key order."""
        lo = self.coord_to_key(min_point)
        hi = self.coord_to_key(max_point)
        for key in sorted(self._leaves):
            if all(a <= k <= b for a, k, b in zip(lo, key, hi)):
                yield Leaf(key, self.key_to_coord(key), self.resolution, self._leaves[key])

    def update_inner_occupancy(self) -> None:
        """Recompute every inner node from the leaves."""
        self._inner = [{} for _ in range(TREE_DEPTH)]
        level = dict(self._leaves)
        for depth in range(1, TREE_DEPTH):
            parents: dict[Key, float] = {}
            for key, value in level.items():
                parent = tuple(k >> 1 for k in key)
                if value > parents.get(parent, -math.inf):
                    parents[parent] = value
            self._inner[depth] = parents
            level = parents