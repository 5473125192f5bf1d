"""Laser scan -> 2D point cloud in the robot frame."""

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

DEFAULT_LASER_OFFSET = (0.2, 0.0)


@dataclass(frozen=True)
class LaserScan:
    ranges: Sequence[float]
    range_min: float
    range_max: float
    angle_min: float
    angle_max: float


def empty_cloud() -> np.ndarray:
    return np.empty((0, 2), dtype=np.float64)


def project_scan(
    ranges: Sequence[float],
    range_min: float,
    range_max: float,
    angle_min: float,
    angle_max: float,
    laser_offset: Tuple[float, float] = DEFAULT_LASER_OFFSET,
) -> np.ndarray:
    """
    Convert raw range readings into an (N, 2) array of points.

    Beam ``i`` points at ``angle_min + i * (angle_max - angle_min) / (n - 1)``.
    Returns outside the open interval (range_min, range_max), and non-finite
    returns, are dropped. Points are shifted by ``laser_offset`` so they end up
    in the robot base frame.

    Malformed scans (no beams, collapsed or reversed angle span, non-finite
    angles) give an empty cloud.
    """
    r = np.asarray(ranges, dtype=np.float64).reshape(-1)
    n = r.shape[0]
    if n == 0:
        return empty_cloud()
    a_min = float(angle_min)
    a_max = float(angle_max)
    if not (math.isfinite(a_min) and math.isfinite(a_max)):
        return empty_cloud()

    if n == 1:
        angles = np.array([a_min], dtype=np.float64)
    else:
        span = a_max - a_min
        if span <= 0.0:
            return empty_cloud()
        angles = a_min + np.arange(n, dtype=np.float64) * (span / (n - 1))

    with np.errstate(invalid="ignore"):
        valid = np.isfinite(r) & (r > float(range_min)) & (r < float(range_max))
    if not np.any(valid):
        return empty_cloud()

    r = r[valid]
    a = angles[valid]
    pts = np.column_stack([r * np.cos(a), r * np.sin(a)])
    return pts + np.asarray(laser_offset, dtype=np.float64)


def project(scan: LaserScan, laser_offset: Tuple[float, float] = DEFAULT_LASER_OFFSET) -> np.ndarray:
    return project_scan(
        scan.ranges, scan.range_min, scan.range_max, scan.angle_min, scan.angle_max, laser_offset
    )
