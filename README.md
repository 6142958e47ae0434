# ariadne

Mapping building blocks for a ground robot that sees the world through a
registered lidar scan. Clouds are plain NumPy arrays with one row per point.

- `ariadne.terrain.TerrainAnalyzer` does terrain segmentation. It stacks
  scans in a rolling voxel grid (`ariadne.voxel.RollingVoxelGrid`) around
  the vehicle and estimates the ground elevation of each planar cell. It
  then drops cells that are not connected to the ground under the vehicle
  and labels scan points with their height above the terrain.
- `ariadne.octree.OccupancyOctree` is a probabilistic occupancy octree. It
  offers voxel keys, ray casting, log-odds hit and miss updates with
  clamping, and box queries over its leaves.
- `ariadne.gridmap.GridMapper` keeps an obstacle tree, a free-ground tree
  and a scan tree, and flattens them into a robot-centred `OccupancyGrid`.
  Grid cells are `-1` for unknown, `0` for free and `100` for occupied.
- `ariadne.collision.check_collision_type` walks a Bresenham line across an
  integer map. It returns the first occupied or unknown value it meets, or
  the free value when the path is clear. Cells outside the map are skipped.
  `bresenham_line` yields the cells of such a line.
- `ariadne.geometry` holds `Transform`, a rigid transform made of a
  translation and an `(x, y, z, w)` quaternion, with `matrix()`,
  `inverse()` and `apply(points)`. It also has `quaternion_to_matrix` and
  `rpy_from_quaternion`.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Collision checking

```python
import numpy as np
from ariadne.collision import check_collision_type

grid = np.zeros((5, 5), dtype=int)
grid[2, 3] = 100
check_collision_type(grid, 0, 100, -1, (0, 2), (4, 2))  # -> 100
```

Points are `(x, y)`. The map is indexed as `grid[y, x]`.

## Grid mapping

```python
import numpy as np
from ariadne.geometry import Transform
from ariadne.gridmap import GridMapper, MapperConfig

mapper = GridMapper(MapperConfig(grid_size_m=10.0, resolution=0.1))
terrain = np.array([[1.0, 0.0, 0.0, 0.05], [2.0, 0.0, 0.5, 0.6]])  # x, y, z, height
scan = terrain[:, :3]
grid = mapper.process(terrain, scan, Transform())
value = grid.cell(60, 50)  # column 60, row 50
```

`Transform()` is a sensor pose at the origin with no rotation. The sensor
pose maps the sensor frame into the map frame.

- **Terrain cloud.** The fourth column of the terrain array is the point's
  height above the ground. Points below `obstacle_height_thr` go into the
  free-ground tree and the others into the obstacle tree.
- **Scan cloud.** Scan points more than `z_range` above or below the
  sensor are dropped.
- **Return value.** `process` returns `None` when the terrain cloud is
  empty.
- **The grid.** It is `grid_size_m` on a side and centred on the robot
  position, rounded to the resolution. `grid.data` is an `int8` array
  indexed `[row, column]`.

The settings of `MapperConfig` and their defaults:

| Setting | Default |
| --- | --- |
| `grid_size_m` | 40.0 |
| `z_range` | 1.5 |
| `resolution` | 0.1 |
| `sensor_range` | 20.0 |
| `hit_probability` | 0.7 |
| `miss_probability` | 0.4 |
| `only_ground_free` | `False` |
| `hit_max` | 1.0 |
| `miss_min` | 0.1 |
| `remove_dyn_obs` | `True` |
| `obstacle_height_thr` | 0.2 |

The bounding-box settings (`use_bounding_box` and `bounding_box_min_x` and
the like) are accepted and logged, but they do not change the map.

## Terrain segmentation

```python
import numpy as np
from ariadne.terrain import TerrainAnalyzer, TerrainConfig

analyzer = TerrainAnalyzer(TerrainConfig())
analyzer.update_odometry((0.0, 0.0, 0.0), (0.0, 0.0, 0.0, 1.0))
analyzer.handle_scan(points, stamp=0.0)   # points: (N, 3) array of x, y, z
labelled = analyzer.process()             # (M, 4): x, y, z, height above terrain
```

- **When `process` returns `None`.** It does so when no new scan has
  arrived since the last call, or when there is no terrain to match against.
- **Local terrain.** `set_local_terrain(points)` supplies an `(N, 4)` local
  terrain map. It is merged in within `local_terrain_map_radius` of the
  vehicle.
- **Clearing.** `request_clearing(distance)` drops stacked points within
  `distance` of the vehicle on the next update. `handle_joystick(buttons)`
  requests clearing when the sixth button is pressed.

## What this package does not do

This is a library only. It has no command-line program. It does not
subscribe to or publish sensor messages, and it does not look up
transforms. The caller feeds arrays and poses in and takes grids and point
arrays back. Maps live in memory; nothing is saved to disk.