"""Shared fakes for the matcher and solver contracts."""

from typing import Callable, Dict, List, Optional

import numpy as np
import pytest

from pose_graph_slam.geometry import Pose2D
from pose_graph_slam.point_cloud import LaserScan
from pose_graph_slam.scan_matching import MatchResult


class ScriptedMatcher:
    """
    Returns the initial guess as the measurement.

    ``converge`` decides per call (call index, source, target, guess) whether
    the match counts as converged.
    """

    def __init__(self, converge: Optional[Callable] = None, sigma: float = 0.1):
        self.converge = converge
        self.cov = np.eye(3) * sigma ** 2
        self.calls: List[tuple] = []

    def match(self, source, target, initial_guess: Pose2D) -> MatchResult:
        idx = len(self.calls)
        self.calls.append((np.array(source), np.array(target), initial_guess))
        ok = True if self.converge is None else bool(self.converge(idx, source, target, initial_guess))
        return MatchResult(initial_guess, self.cov.copy(), ok)


class RecordingSolver:
    """Keeps initial values as the estimate and enforces the no-resubmit contract."""

    def __init__(self):
        self.updates: List[tuple] = []
        self.values: Dict[int, Pose2D] = {}

    def update(self, constraints, initial_values):
        for i in initial_values:
            if i in self.values:
                raise ValueError(f"node {i} submitted twice")
        for c in constraints:
            assert c.from_id in self.values or c.from_id in initial_values
            assert c.to_id in self.values or c.to_id in initial_values
        self.updates.append((list(constraints), dict(initial_values)))
        self.values.update(initial_values)

    def estimate(self):
        return dict(self.values)


def make_scan(n: int = 10, r: float = 2.0) -> LaserScan:
    return LaserScan(
        ranges=[r] * n,
        range_min=0.1,
        range_max=10.0,
        angle_min=-1.0,
        angle_max=1.0,
    )


@pytest.fixture
def scan():
    return make_scan()
