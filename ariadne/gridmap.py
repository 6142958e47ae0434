"""Fuse terrain and scan clouds into occupancy octrees and a 2D grid map."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field

import numpy as np

from .geometry import Transform
from .octree import Key, Leaf, OccupancyOctree

logger = logging.getLogger(__name__)

FREE = 0
OCCUPIED = 100
UNKNOWN = -1


def _open_probability(p: float) -> float:
    """Keep a clamping probability strictly inside (0, 1)."""
    return min(max(float(p), math.nextafter(0.0, 1.0)), math.nextafter(1.0, 0.0))


def _round_half_away(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


def _as_points(points, columns: int, name: str) -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    if arr.size == 0:
        return np.empty((0, columns))
    if arr.ndim != 2 or arr.shape[1] < columns:
        raise ValueError(f"{name} must be an (N, {columns}) array")
    return arr[:, :columns]


@dataclass
class MapperConfig:
    """Parameters of the grid mapper."""

    grid_size_m: float = 40.0
    z_range: float = 1.5
    resolution: float = 0.1
    sensor_range: float = 20.0
    hit_probability: float = 0.7
    miss_probability: float = 0.4
    only_ground_free: bool = False
    hit_max: float = 1.0
    miss_min: float = 0.1
    remove_dyn_obs: bool = True
    obstacle_height_thr: float = 0.2
    use_bounding_box: bool = False
    bounding_box_min_x: float = -20.0
    bounding_box_max_x: float = 20.0
    bounding_box_min_y: float = -20.0
    bounding_box_max_y: float = 20.0

    def __post_init__(self) -> None:
        if self.resolution <= 0:
            raise ValueError("resolution must be positive")
        if self.grid_size_m <= 0:
            raise ValueError("grid_size_m must be positive")


@dataclass
class OccupancyGrid:
    """A square occupancy grid: -1 unknown, 0 free, 100 occupied."""

    resolution: float
    width: int
    height: int
    origin: tuple[float, float, float]
    data: np.ndarray
    frame_id: str = "map"
    stamp: float = field(default_factory=time.time)

    def cell(self, x: int, y: int) -> int:
        """Value of the cell at column ``x`` and row ``y``."""
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"cell ({x}, {y}) is outside the grid")
        return int(self.data[y, x])


class GridMapper:
    """Keeps obstacle, free-ground and scan octrees and renders a grid map."""

    def __init__(self, config: MapperConfig | None = None):
        self.config = config or MapperConfig()
        cfg = self.config
        self.obstacle_tree = OccupancyOctree(
            resolution=cfg.resolution,
            prob_hit=cfg.hit_probability,
            prob_miss=cfg.miss_probability,
            clamp_min=_open_probability(cfg.miss_min),
            clamp_max=_open_probability(cfg.hit_max),
        )
        self.free_tree = OccupancyOctree(
            resolution=cfg.resolution,
            prob_hit=cfg.hit_probability,
            prob_miss=cfg.miss_probability,
        )
        self.scan_tree = OccupancyOctree(
            resolution=cfg.resolution,
            prob_hit=cfg.hit_probability,
            prob_miss=cfg.miss_probability,
        )
        self.grid_size = int(cfg.grid_size_m / cfg.resolution)
        self.robot_position: tuple[float, float, float] = (0.0, 0.0, 0.0)
        logger.info(
            "Bounding Box: min_x=%f, max_x=%f, min_y=%f, max_y=%f",
            cfg.bounding_box_min_x, cfg.bounding_box_max_x,
            cfg.bounding_box_min_y, cfg.bounding_box_max_y,
        )

    def process(self, terrain_points, scan_points, sensor_pose: Transform) -> OccupancyGrid | None:
        """Integrate one synchronised terrain cloud (x, y, z, intensity) and scan.

        ``sensor_pose`` maps the sensor frame into the map frame. Returns the
        new grid, or None when the terrain cloud is empty.
        """
        start = time.perf_counter()
        cfg = self.config
        self.robot_position = tuple(float(v) for v in sensor_pose.translation)
        robot = np.asarray(self.robot_position)

        scan = _as_points(scan_points, 3, "scan_points")
        in_sensor = sensor_pose.inverse().apply(scan)
        keep = (
            (in_sensor[:, 2] >= -cfg.z_range)
            & (in_sensor[:, 2] <= cfg.z_range)
            & ~np.isnan(in_sensor).any(axis=1)
        )
        scan_cloud = scan[keep]

        terrain = _as_points(terrain_points, 4, "terrain_points")
        if len(terrain) == 0:
            return None
        terrain = terrain[~np.isnan(terrain[:, :3]).any(axis=1)]
        is_free = terrain[:, 3] < cfg.obstacle_height_thr
        free_cloud = terrain[is_free, :3]
        occupied_cloud = terrain[~is_free, :3]

        if cfg.remove_dyn_obs:
            self.insert_free_scan(robot, free_cloud, scan_cloud, self.obstacle_tree)
            self.insert_free_scan(robot, scan_cloud, scan_cloud, self.obstacle_tree)

        self.obstacle_tree.insert_point_cloud(occupied_cloud, robot, cfg.sensor_range, False)
        self.free_tree.insert_point_cloud(free_cloud, robot, cfg.sensor_range, True)
        self.free_tree.update_inner_occupancy()

        if not cfg.only_ground_free:
            self.scan_tree.insert_point_cloud(scan_cloud, robot, cfg.sensor_range, True)
            self.scan_tree.update_inner_occupancy()

        octree_time = time.perf_counter()
        grid = self.build_grid()
        end = time.perf_counter()
        logger.debug("Time taken to convert point cloud to grid map: %f seconds", end - start)
        logger.debug("Time taken to update OctoMap: %f seconds", octree_time - start)
        logger.debug("Time taken to publish grid map: %f seconds", end - octree_time)
        return grid

    def insert_scan(self, robot_position, cloud, tree: OccupancyOctree, free_scan: bool) -> None:
        """Clear rays to each point and mark real endpoints occupied.

        Points beyond the sensor range are cut to it and never marked occupied.
        With ``free_scan`` the last two ray cells are left untouched.
        """
        origin = np.asarray(robot_position, dtype=float)
        max_range = self.config.sensor_range
        free_cells: set[Key] = set()
        occupied_cells: set[Key] = set()
        for point in _as_points(cloud, 3, "cloud"):
            offset = point - origin
            dist = float(np.linalg.norm(offset))
            fake = dist > max_range
            effective = origin + offset / dist * max_range if fake else point
            try:
                ray = tree.compute_ray_keys(origin, effective)
            except ValueError:
                ray = []
            free_cells.update(ray[:-2] if free_scan else ray)
            if not fake and not free_scan:
                try:
                    occupied_cells.add(tree.coord_to_key(point))
                except ValueError:
                    pass
        for key in free_cells - occupied_cells:
            tree.update_node(key, False, True)
        for key in occupied_cells:
            tree.set_node_value(key, 1, True)

    def insert_free_scan(self, robot_position, free_cloud, occupied_cloud,
                         tree: OccupancyOctree) -> None:
        """Apply misses along rays to ``free_cloud``, sparing cells of ``occupied_cloud``."""
        origin = np.asarray(robot_position, dtype=float)
        free_cells: set[Key] = set()
        for point in _as_points(free_cloud, 3, "free_cloud"):
            try:
                free_cells.update(tree.compute_ray_keys(origin, point))
            except ValueError:
                continue
        occupied_cells: set[Key] = set()
        for point in _as_points(occupied_cloud, 3, "occupied_cloud"):
            try:
                occupied_cells.add(tree.coord_to_key(point))
            except ValueError:
                continue
        for key in free_cells - occupied_cells:
            tree.update_node(key, False, False)

    def _stamp(self, data: np.ndarray, leaf: Leaf, origin_x: float, origin_y: float,
               value: int) -> None:
        res = self.config.resolution
        size = self.grid_size
        x = int((leaf.center[0] - origin_x) * (1.0 / res))
        y = int((leaf.center[1] - origin_y) * (1.0 / res))
        if not (0 <= x < size and 0 <= y < size):
            return
        if leaf.size <= res:
            data[y, x] = value
        else:
            half = math.ceil(leaf.size / res) // 2
            data[max(0, y - half):y + half + 1, max(0, x - half):x + half + 1] = value

    def build_grid(self) -> OccupancyGrid:
        """Render the octrees into a grid centred on the robot."""
        cfg = self.config
        res = cfg.resolution
        rx, ry, rz = self.robot_position
        origin_x = _round_half_away(rx / res) * res - cfg.grid_size_m / 2.0
        origin_y = _round_half_away(ry / res) * res - cfg.grid_size_m / 2.0
        far_x = origin_x + cfg.grid_size_m
        far_y = origin_y + cfg.grid_size_m

        (_, _, free_min_z), (_, _, free_max_z) = self.free_tree.metric_bounds()
        (_, _, occ_min_z), (_, _, occ_max_z) = self.obstacle_tree.metric_bounds()
        occ_lo = (origin_x, origin_y, occ_min_z)
        occ_hi = (far_x, far_y, occ_max_z)

        data = np.full((self.grid_size, self.grid_size), UNKNOWN, dtype=np.int8)

        for leaf in self.free_tree.leaves_in_box((origin_x, origin_y, free_min_z),
                                                 (far_x, far_y, free_max_z)):
            self._stamp(data, leaf, origin_x, origin_y, FREE)

        if not cfg.only_ground_free:
            threshold = self.scan_tree.occupancy_threshold
            for leaf in self.scan_tree.leaves_in_box(occ_lo, occ_hi):
                if leaf.occupancy >= threshold:
                    continue
                self._stamp(data, leaf, origin_x, origin_y, FREE)

        for leaf in self.obstacle_tree.leaves_in_box(occ_lo, occ_hi):
            if not self.obstacle_tree.is_occupied(leaf.key):
                continue
            self._stamp(data, leaf, origin_x, origin_y, OCCUPIED)

        return OccupancyGrid(
            resolution=res,
            width=self.grid_size,
            height=self.grid_size,
            origin=(origin_x, origin_y, rz - 0.75),
            data=data,
        )