"""Terrain segmentation: stack scans, estimate ground and label terrain points."""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass

import numpy as np
from scipy.spatial import cKDTree

from .geometry import rpy_from_quaternion
from .voxel import RollingVoxelGrid, voxel_downsample, voxel_index

_TERRAIN_VOXEL_WIDTH = 41
_PLANAR_VOXEL_WIDTH = 101
_STACK_HALF_SPAN = 10
_CONN_SPAN = 10
_MATCH_SQUARED_DISTANCE = 0.001


@dataclass
class TerrainConfig:
    """Parameters of the terrain analyzer."""

    scan_voxel_size: float = 0.1
    decay_time: float = 10.0
    no_decay_dis: float = 0.0
    clearing_dis: float = 30.0
    use_sorting: bool = False
    quantile_z: float = 0.25
    vehicle_height: float = 1.5
    voxel_point_update_thre: int = 100
    voxel_time_update_thre: float = 2.0
    lower_bound_z: float = -1.5
    upper_bound_z: float = 1.0
    dis_ratio_z: float = 0.1
    check_terrain_conn: bool = True
    terrain_under_vehicle: float = -0.75
    terrain_conn_thre: float = 0.5
    ceiling_filtering_thre: float = 2.0
    local_terrain_map_radius: float = 4.0
    terrain_voxel_size: float = 2.0
    planar_voxel_size: float = 0.4

    def __post_init__(self) -> None:
        for name in ("scan_voxel_size", "terrain_voxel_size", "planar_voxel_size"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")


@dataclass
class VehiclePose:
    """Vehicle position and orientation (roll, pitch, yaw in radians)."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


def _as_cloud(points, columns: int, name: str) -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    if arr.size == 0:
        return np.empty((0, columns))
    if arr.ndim != 2 or arr.shape[1] < columns:
        raise ValueError(f"{name} must be an (N, {columns}) array")
    return arr[:, :columns]


class TerrainAnalyzer:
    """Keeps a rolling stack of scans and labels terrain points with elevation."""

    def __init__(self, config: TerrainConfig | None = None):
        self.config = config or TerrainConfig()
        self.pose = VehiclePose()
        self.clearing = False
        self.clearing_dis = self.config.clearing_dis
        self.scan_time = 0.0
        self.grid = RollingVoxelGrid(self.config.terrain_voxel_size, _TERRAIN_VOXEL_WIDTH)
        self._init_time = 0.0
        self._initialised = False
        self._new_cloud = False
        self._crop = np.empty((0, 4))
        self._local_terrain = np.empty((0, 4))

    def update_odometry(self, position, orientation) -> None:
        """Set the vehicle pose from a position and a quaternion (x, y, z, w)."""
        roll, pitch, yaw = rpy_from_quaternion(*orientation)
        x, y, z = (float(v) for v in position)
        self.pose = VehiclePose(x, y, z, roll, pitch, yaw)

    def _distances(self, cloud: np.ndarray) -> np.ndarray:
        return np.hypot(cloud[:, 0] - self.pose.x, cloud[:, 1] - self.pose.y)

    def _in_band(self, z: np.ndarray, dis: np.ndarray) -> np.ndarray:
        cfg = self.config
        dz = z - self.pose.z
        return (dz > cfg.lower_bound_z - cfg.dis_ratio_z * dis) & (
            dz < cfg.upper_bound_z + cfg.dis_ratio_z * dis
        )

    def handle_scan(self, points, stamp: float) -> None:
        """Accept a registered scan (N, 3+) taken at time ``stamp`` in seconds."""
        xyz = _as_cloud(points, 3, "points")
        self.scan_time = float(stamp)
        if not self._initialised:
            self._init_time = self.scan_time
            self._initialised = True
        dis = self._distances(xyz)
        reach = self.config.terrain_voxel_size * (self.grid.half_width + 1)
        keep = self._in_band(xyz[:, 2], dis) & (dis < reach)
        kept = xyz[keep]
        age = np.full((len(kept), 1), self.scan_time - self._init_time)
        self._crop = np.hstack([kept, age])
        self._new_cloud = True

    def set_local_terrain(self, points) -> None:
        """Replace the local terrain map (N, 4) merged in near the vehicle."""
        self._local_terrain = _as_cloud(points, 4, "points").copy()

    def handle_joystick(self, buttons) -> None:
        """Request clearing when the sixth button is pressed."""
        if buttons[5] > 0.5:
            self.clearing = True

    def request_clearing(self, distance: float) -> None:
        """Clear stacked points within ``distance`` on the next update."""
        self.clearing_dis = float(distance)
        self.clearing = True

    def _refresh_cells(self, elapsed: float) -> None:
        cfg = self.config
        grid = self.grid
        for ix, iy, pts in grid.cells():
            due = (
                grid.update_counts[ix, iy] >= cfg.voxel_point_update_thre
                or elapsed - grid.update_times[ix, iy] >= cfg.voxel_time_update_thre
                or self.clearing
            )
            if not due:
                continue
            down = voxel_downsample(np.array(pts), cfg.scan_voxel_size) if pts else np.empty((0, 4))
            dis = self._distances(down)
            keep = (
                self._in_band(down[:, 2], dis)
                & ((elapsed - down[:, 3] < cfg.decay_time) | (dis < cfg.no_decay_dis))
                & ~((dis < self.clearing_dis) & self.clearing)
            )
            pts[:] = [tuple(row) for row in down[keep].tolist()]
            grid.update_counts[ix, iy] = 0
            grid.update_times[ix, iy] = elapsed

    def _stacked_cloud(self) -> np.ndarray:
        half = self.grid.half_width
        lo, hi = half - _STACK_HALF_SPAN, half + _STACK_HALF_SPAN
        rows = [
            p for ix, iy, pts in self.grid.cells()
            if lo <= ix <= hi and lo <= iy <= hi
            for p in pts
        ]
        return np.array(rows, dtype=float).reshape(-1, 4)

    def _planar_indices(self, cloud: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        size = self.config.planar_voxel_size
        half = (_PLANAR_VOXEL_WIDTH - 1) // 2
        ix = voxel_index(cloud[:, 0] - self.pose.x, size, half)
        iy = voxel_index(cloud[:, 1] - self.pose.y, size, half)
        return np.atleast_1d(ix), np.atleast_1d(iy)

    def _ground_elevation(self, cloud: np.ndarray, band: np.ndarray):
        cfg = self.config
        width = _PLANAR_VOXEL_WIDTH
        samples: dict[tuple[int, int], list[float]] = defaultdict(list)
        ixs, iys = self._planar_indices(cloud)
        for ix, iy, z in zip(ixs[band].tolist(), iys[band].tolist(), cloud[band, 2].tolist()):
            for nx in range(ix - 1, ix + 2):
                for ny in range(iy - 1, iy + 2):
                    if 0 <= nx < width and 0 <= ny < width:
                        samples[(nx, ny)].append(z)

        elevation: dict[tuple[int, int], float] = {}
        for cell, zs in samples.items():
            if cfg.use_sorting:
                zs.sort()
                q = min(max(int(cfg.quantile_z * len(zs)), 0), len(zs) - 1)
                elevation[cell] = zs[q]
            else:
                lowest = min(zs)
                elevation[cell] = lowest if lowest < 1000.0 else 0.0
        return samples, elevation

    def _connectivity(self, samples, elevation) -> dict[tuple[int, int], int]:
        cfg = self.config
        width = _PLANAR_VOXEL_WIDTH
        half = (width - 1) // 2
        center = (half, half)
        if center not in samples:
            elevation[center] = self.pose.z + cfg.terrain_under_vehicle
        state = {center: 1}
        queue = deque([center])
        while queue:
            front = queue.popleft()
            state[front] = 2
            fx, fy = front
            front_elev = elevation.get(front, 0.0)
            for nx in range(max(0, fx - _CONN_SPAN), min(width, fx + _CONN_SPAN + 1)):
                for ny in range(max(0, fy - _CONN_SPAN), min(width, fy + _CONN_SPAN + 1)):
                    cell = (nx, ny)
                    if cell in state or cell not in samples:
                        continue
                    diff = abs(front_elev - elevation[cell])
                    if diff < cfg.terrain_conn_thre:
                        queue.append(cell)
                        state[cell] = 1
                    elif diff > cfg.ceiling_filtering_thre:
                        state[cell] = -1
        return state

    def process(self) -> np.ndarray | None:
        """Run one update on the latest scan.

        Returns the scan's terrain points as (N, 4) rows of x, y, z and height
        above the ground estimate, or None when there is no new scan or no
        terrain to match against.
        """
        if not self._new_cloud:
            return None
        self._new_cloud = False
        cfg = self.config
        pose = self.pose
        width = _PLANAR_VOXEL_WIDTH

        self.grid.recenter(pose.x, pose.y)
        for point in self._crop:
            self.grid.add_point(point, pose.x, pose.y)
        self._refresh_cells(self.scan_time - self._init_time)

        terrain = self._stacked_cloud()
        dis = self._distances(terrain)
        band = self._in_band(terrain[:, 2], dis)
        samples, elevation = self._ground_elevation(terrain, band)
        state = self._connectivity(samples, elevation) if cfg.check_terrain_conn else {}

        elev_grid = np.zeros((width, width))
        conn_grid = np.zeros((width, width), dtype=np.int64)
        for cell, value in elevation.items():
            elev_grid[cell] = value
        for cell, value in state.items():
            conn_grid[cell] = value

        ixs, iys = self._planar_indices(terrain)
        candidate = band & (dis > cfg.local_terrain_map_radius) & (ixs >= 0) & (ixs < width) \
            & (iys >= 0) & (iys < width)
        cx, cy = ixs[candidate], iys[candidate]
        picked = terrain[candidate]
        dis_z = np.abs(picked[:, 2] - elev_grid[cx, cy])
        keep = dis_z < cfg.vehicle_height
        if cfg.check_terrain_conn:
            keep &= conn_grid[cx, cy] == 2
        elevated = np.column_stack([picked[keep, :3], dis_z[keep]])

        local = self._local_terrain
        near = local[self._distances(local) <= cfg.local_terrain_map_radius]
        elevated = np.vstack([elevated, near])

        self.clearing = False

        if len(elevated) == 0:
            return None
        if len(self._crop) == 0:
            return np.empty((0, 4))
        tree = cKDTree(elevated[:, :3])
        distance, index = tree.query(self._crop[:, :3], k=1)
        matched = distance ** 2 <= _MATCH_SQUARED_DISTANCE
        return elevated[index[matched]]