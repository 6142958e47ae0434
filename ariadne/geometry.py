"""Rigid transforms and quaternion helpers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np


def quaternion_to_matrix(x, y, z, w) -> np.ndarray:
    """Return the 3x3 rotation matrix of a quaternion (normalised first)."""
    q = np.array([x, y, z, w], dtype=float)
    n = np.linalg.norm(q)
    if n == 0:
        raise ValueError("zero-length quaternion")
    x, y, z, w = q / n
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ]
    )


def rpy_from_quaternion(x, y, z, w) -> tuple[float, float, float]:
    """Return (roll, pitch, yaw) of a quaternion."""
    roll = math.atan2(2 * (w * x + y * z), 1 - 2 * (x * x + y * y))
    sinp = max(-1.0, min(1.0, 2 * (w * y - z * x)))
    pitch = math.asin(sinp)
    yaw = math.atan2(2 * (w * z + x * y), 1 - 2 * (y * y + z * z))
    return roll, pitch, yaw


def _matrix_to_quaternion(m: np.ndarray) -> tuple[float, float, float, float]:
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0:
        s = math.sqrt(trace + 1.0) * 2
        w = 0.25 * s
        x = (m[2, 1] - m[1, 2]) / s
        y = (m[0, 2] - m[2, 0]) / s
        z = (m[1, 0] - m[0, 1]) / s
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2
        w = (m[2, 1] - m[1, 2]) / s
        x = 0.25 * s
        y = (m[0, 1] + m[1, 0]) / s
        z = (m[0, 2] + m[2, 0]) / s
    elif m[1, 1] > m[2, 2]:
        s = math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2
        w = (m[0, 2] - m[2, 0]) / s
        x = (m[0, 1] + m[1, 0]) / s
        y = 0.25 * s
        z = (m[1, 2] + m[2, 1]) / s
    else:
        s = math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2
        w = (m[1, 0] - m[0, 1]) / s
        x = (m[0, 2] + m[2, 0]) / s
        y = (m[1, 2] + m[2, 1]) / s
        z = 0.25 * s
    return float(x), float(y), float(z), float(w)


@dataclass(frozen=True)
class Transform:
    """A rigid transform: rotation quaternion (x, y, z, w) then translation."""

    translation: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: tuple[float, float, float, float] = field(default=(0.0, 0.0, 0.0, 1.0))

    def matrix(self) -> np.ndarray:
        """Return the homogeneous 4x4 matrix."""
        m = np.eye(4)
        m[:3, :3] = quaternion_to_matrix(*self.rotation)
        m[:3, 3] = self.translation
        return m

    def inverse(self) -> "Transform":
        """Return the inverse transform."""
        r = quaternion_to_matrix(*self.rotation).T
        t = -r @ np.asarray(self.translation, dtype=float)
        return Transform(tuple(float(v) for v in t), _matrix_to_quaternion(r))

    def apply(self, points) -> np.ndarray:
        """Transform an (N, 3) array of points."""
        pts = np.asarray(points, dtype=float).reshape(-1, 3)
        m = self.matrix()
        return pts @ m[:3, :3].T + m[:3, 3]