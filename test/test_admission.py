"""Unit tests for odometry accumulation and node admission."""

import math

import numpy as np

from pose_graph_slam.admission import NodeAdmissionPolicy, OdometryAccumulator
from pose_graph_slam.geometry import Pose2D


def policy():
    return NodeAdmissionPolicy(trans_thresh_m=1.0, rot_thresh_rad=math.pi / 6)


class TestOdometryAccumulator:

    def test_first_reading_adds_no_distance(self):
        acc = OdometryAccumulator()
        acc.observe((5.0, 5.0), 0.0)
        assert acc.cumulative_dist == 0.0
        acc.observe((5.0, 6.0), 0.0)
        assert acc.cumulative_dist == 1.0

    def test_distance_is_path_length(self):
        acc = OdometryAccumulator()
        acc.observe((0.0, 0.0), 0.0)
        acc.observe((1.0, 0.0), 0.0)
        acc.observe((0.0, 0.0), 0.0)
        # back where we started, but 2 m travelled
        assert acc.cumulative_dist == 2.0

    def test_displacement_in_node_frame(self):
        acc = OdometryAccumulator()
        acc.observe((1.0, 1.0), math.pi / 2)
        acc.record_node()
        acc.observe((1.0, 2.0), math.pi / 2)
        assert acc.displacement().is_close(Pose2D(1.0, 0.0, 0.0), tol=1e-12)

    def test_record_node_resets(self):
        acc = OdometryAccumulator()
        acc.observe((0.0, 0.0), 0.0)
        acc.observe((3.0, 0.0), 0.4)
        acc.record_node()
        assert acc.cumulative_dist == 0.0
        assert acc.last_node_odom == Pose2D(3.0, 0.0, 0.4)
        assert acc.angular_dist() == 0.0


class TestNodeAdmissionPolicy:

    def test_first_scan_always_admitted(self):
        assert policy().should_admit(OdometryAccumulator(), has_nodes=False)

    def test_no_motion_no_node(self):
        acc = OdometryAccumulator()
        acc.observe((0.0, 0.0), 0.0)
        assert not policy().should_admit(acc, has_nodes=True)

    def test_translation_threshold_crossed_not_before(self):
        acc = OdometryAccumulator()
        p = policy()
        acc.observe((0.0, 0.0), 0.0)
        admitted = []
        for step in range(1, 8):
            acc.observe((0.25 * step, 0.0), 0.0)
            admitted.append(p.should_admit(acc, has_nodes=True))
        # 1.0 m exactly is not enough; 1.25 m is
        assert admitted[:4] == [False, False, False, False]
        assert admitted[4]

    def test_rotation_threshold(self):
        acc = OdometryAccumulator()
        p = policy()
        acc.observe((0.0, 0.0), 0.0)
        acc.record_node()
        acc.observe((0.0, 0.0), 0.5)
        assert not p.should_admit(acc, has_nodes=True)
        acc.observe((0.0, 0.0), 0.6)
        assert p.should_admit(acc, has_nodes=True)

    def test_rotation_uses_shorter_arc(self):
        acc = OdometryAccumulator()
        acc.observe((0.0, 0.0), 3.1)
        acc.record_node()
        acc.observe((0.0, 0.0), -3.1)
        assert np.isclose(acc.angular_dist(), 2 * math.pi - 6.2)
        assert not policy().should_admit(acc, has_nodes=True)
