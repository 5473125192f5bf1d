"""
Keyframe selection.

The accumulator integrates raw odometry between nodes; the policy looks at it
whenever a scan arrives and decides whether the scan becomes a new node.
"""

import math
from dataclasses import dataclass, field
from typing import Sequence

from .geometry import Pose2D, angle_dist, relative


@dataclass
class OdometryAccumulator:
    last_odom: Pose2D = field(default_factory=Pose2D)
    cumulative_dist: float = 0.0
    last_node_odom: Pose2D = field(default_factory=Pose2D)
    initialized: bool = False

    def observe(self, location: Sequence[float], heading: float) -> None:
        pose = Pose2D.from_translation(location, heading)
        if self.initialized:
            self.cumulative_dist += math.hypot(pose.x - self.last_odom.x, pose.y - self.last_odom.y)
        else:
            # first reading only sets the reference
            self.initialized = True
        self.last_odom = pose

    def displacement(self) -> Pose2D:
        """Odometry motion since the last node, in the frame of that node's odometry pose."""
        return relative(self.last_odom, self.last_node_odom)

    def angular_dist(self) -> float:
        return angle_dist(self.last_odom.angle, self.last_node_odom.angle)

    def record_node(self) -> None:
        self.cumulative_dist = 0.0
        self.last_node_odom = self.last_odom


class NodeAdmissionPolicy:

    def __init__(self, trans_thresh_m: float, rot_thresh_rad: float):
        self.trans_thresh = float(trans_thresh_m)
        self.rot_thresh = float(rot_thresh_rad)

    def should_admit(self, acc: OdometryAccumulator, has_nodes: bool) -> bool:
        """
        :param acc: odometry integrated since the last node
        :param has_nodes: False until node 0 exists; the first scan always becomes a node
        """
        if not has_nodes:
            return True
        return acc.cumulative_dist > self.trans_thresh or acc.angular_dist() > self.rot_thresh
