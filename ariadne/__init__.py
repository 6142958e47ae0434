"""Terrain segmentation, occupancy octrees, grid mapping and collision checks for ground robots."""

__version__ = "0.1.0"
__all__ = ["collision", "geometry", "octree", "gridmap", "voxel", "terrain"]