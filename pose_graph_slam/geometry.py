"""
2D rigid-body frame utilities.

Poses are immutable ``Pose2D`` values. Two operations move a pose between
frames and are exact inverses of each other:

- ``compose(p, r)``: ``p`` is expressed in the frame of ``r``; return it in
  the frame ``r`` itself lives in (usually the map frame).
- ``relative(p, r)``: ``p`` and ``r`` share a frame; return ``p`` expressed
  in the frame of ``r``.

So ``relative(compose(p, r), r) == p`` up to floating error and angle
wrapping.
"""

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np


def wrap_angle(a: float) -> float:
    """Wrap an angle to (-pi, pi]."""
    return math.pi - (math.pi - float(a)) % (2.0 * math.pi)


def angle_dist(a: float, b: float) -> float:
    """Length of the shorter arc between two headings."""
    return abs(wrap_angle(float(a) - float(b)))


def quat_to_yaw(qx: float, qy: float, qz: float, qw: float) -> float:
    siny_cosp = 2.0 * (qw * qz + qx * qy)
    cosy_cosp = 1.0 - 2.0 * (qy * qy + qz * qz)
    return math.atan2(siny_cosp, cosy_cosp)


@dataclass(frozen=True)
class Pose2D:
    x: float = 0.0
    y: float = 0.0
    angle: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))
        object.__setattr__(self, "angle", wrap_angle(self.angle))

    @classmethod
    def from_translation(cls, translation: Sequence[float], angle: float) -> "Pose2D":
        return cls(float(translation[0]), float(translation[1]), angle)

    @property
    def translation(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)

    def rotation(self) -> np.ndarray:
        c, s = math.cos(self.angle), math.sin(self.angle)
        return np.array([[c, -s], [s, c]], dtype=np.float64)

    def norm(self) -> float:
        return math.hypot(self.x, self.y)

    def is_close(self, other: "Pose2D", tol: float = 1e-9) -> bool:
        return (
            abs(self.x - other.x) <= tol
            and abs(self.y - other.y) <= tol
            and angle_dist(self.angle, other.angle) <= tol
        )


IDENTITY = Pose2D()


def compose(pose_in_src_frame: Pose2D, src_frame_pose_in_map_frame: Pose2D) -> Pose2D:
    """
    Express a pose given in a source frame in the map frame.

    :param pose_in_src_frame: pose measured in the source frame
    :param src_frame_pose_in_map_frame: pose of the source frame in the map frame
    :return: the first pose expressed in the map frame
    """
    ref = src_frame_pose_in_map_frame
    c, s = math.cos(ref.angle), math.sin(ref.angle)
    p = pose_in_src_frame
    return Pose2D(
        ref.x + c * p.x - s * p.y,
        ref.y + s * p.x + c * p.y,
        p.angle + ref.angle,
    )


def relative(pose_in_map_frame: Pose2D, reference_pose_in_map_frame: Pose2D) -> Pose2D:
    """
    Express a map-frame pose in the frame of a reference pose.

    :param pose_in_map_frame: pose to convert
    :param reference_pose_in_map_frame: pose of the reference frame
    :return: the first pose expressed in the reference frame
    """
    ref = reference_pose_in_map_frame
    dx = pose_in_map_frame.x - ref.x
    dy = pose_in_map_frame.y - ref.y
    # rotate by -ref.angle
    c, s = math.cos(ref.angle), math.sin(ref.angle)
    return Pose2D(
        c * dx + s * dy,
        -s * dx + c * dy,
        pose_in_map_frame.angle - ref.angle,
    )


def transform_points(points: np.ndarray, pose: Pose2D) -> np.ndarray:
    """Map an (N, 2) array of points from the frame of ``pose`` into its parent frame."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if pts.shape[0] == 0:
        return np.empty((0, 2), dtype=np.float64)
    return pts @ pose.rotation().T + pose.translation
