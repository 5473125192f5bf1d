"""
Back-end: gtsam solver handles behind a narrow interface.

Both handles accept only what has not been submitted before:

- ``update(constraints, initial_values)``
- ``estimate() -> {node_id: Pose2D}``

``Isam2Solver`` refines incrementally (online mode); ``BatchSolver`` re-solves
everything it holds with Levenberg-Marquardt (offline pass).
"""

import logging
from typing import Dict, Iterable, Mapping, Optional, Set

import gtsam
from gtsam import symbol

from .geometry import Pose2D
from .pose_graph import Constraint

logger = logging.getLogger(__name__)


def node_key(node_id: int) -> int:
    return symbol('x', int(node_id))


def to_gtsam(pose: Pose2D) -> gtsam.Pose2:
    return gtsam.Pose2(pose.x, pose.y, pose.angle)


def from_gtsam(pose: gtsam.Pose2) -> Pose2D:
    return Pose2D(float(pose.x()), float(pose.y()), float(pose.theta()))


def to_factor(c: Constraint):
    noise = gtsam.noiseModel.Gaussian.Covariance(c.covariance.copy())
    if c.is_prior:
        return gtsam.PriorFactorPose2(node_key(c.to_id), to_gtsam(c.measurement), noise)
    return gtsam.BetweenFactorPose2(node_key(c.from_id), node_key(c.to_id), to_gtsam(c.measurement), noise)


class _SolverBase:

    def __init__(self):
        self._submitted: Set[int] = set()

    @property
    def node_ids(self) -> Set[int]:
        return set(self._submitted)

    def _stage(self, constraints: Iterable[Constraint], initial_values: Mapping[int, Pose2D]):
        """Validate a delta and turn it into a gtsam graph + values."""
        graph = gtsam.NonlinearFactorGraph()  # tmp container for new factors
        values = gtsam.Values()
        for node_id, pose in initial_values.items():
            if node_id in self._submitted:
                raise ValueError(f"Node {node_id} was already submitted to the solver")
            values.insert(node_key(node_id), to_gtsam(pose))
        known = self._submitted | set(initial_values)
        for c in constraints:
            if c.from_id not in known or c.to_id not in known:
                raise ValueError(f"Constraint {c.from_id}->{c.to_id} references a node without a value")
            graph.add(to_factor(c))
        return graph, values


class Isam2Solver(_SolverBase):

    def __init__(
        self,
        relinearize_threshold: float = 0.01,
        relinearize_skip: int = 1,
        isam_params: Optional[gtsam.ISAM2Params] = None,
    ):
        super().__init__()
        params = isam_params if isam_params is not None else gtsam.ISAM2Params()
        if isam_params is None:
            # Relinearize if variables shift more than threshold
            if hasattr(params, 'setRelinearizeThreshold'):
                params.setRelinearizeThreshold(relinearize_threshold)
            else:
                params.relinearizeThreshold = relinearize_threshold
            # Relinearize at least every N updates
            if hasattr(params, 'setRelinearizeSkip'):
                params.setRelinearizeSkip(relinearize_skip)
            else:
                params.relinearizeSkip = relinearize_skip
        # Create iSAM (interactive smoothing and mapping) optimizer
        self._isam = gtsam.ISAM2(params)

    def update(self, constraints: Iterable[Constraint], initial_values: Mapping[int, Pose2D]) -> None:
        graph, values = self._stage(constraints, initial_values)
        if graph.size() == 0 and values.size() == 0:
            return
        self._isam.update(graph, values)
        self._submitted.update(initial_values)
        logger.debug("iSAM2 update: %d factors, %d new values", graph.size(), values.size())

    def estimate(self) -> Dict[int, Pose2D]:
        if not self._submitted:
            return {}
        est = self._isam.calculateEstimate()
        return {i: from_gtsam(est.atPose2(node_key(i))) for i in sorted(self._submitted)}


class BatchSolver(_SolverBase):
    """Holds the whole graph and re-solves it from the latest estimate on every update."""

    def __init__(self, params: Optional[gtsam.LevenbergMarquardtParams] = None):
        super().__init__()
        self._params = params if params is not None else gtsam.LevenbergMarquardtParams()
        self._graph = gtsam.NonlinearFactorGraph()
        self._poses: Dict[int, Pose2D] = {}

    def update(self, constraints: Iterable[Constraint], initial_values: Mapping[int, Pose2D]) -> None:
        graph, _ = self._stage(constraints, initial_values)
        if graph.size() == 0 and not initial_values:
            return
        for i in range(graph.size()):
            self._graph.add(graph.at(i))
        self._poses.update(initial_values)
        self._submitted.update(initial_values)

        initial = gtsam.Values()
        for node_id, pose in self._poses.items():
            initial.insert(node_key(node_id), to_gtsam(pose))
        optimizer = gtsam.LevenbergMarquardtOptimizer(self._graph, initial, self._params)
        result = optimizer.optimize()
        self._poses = {i: from_gtsam(result.atPose2(node_key(i))) for i in self._poses}
        logger.debug(
            "Batch solve: %d factors, %d poses, error %.6g",
            self._graph.size(), len(self._poses), self._graph.error(result),
        )

    def estimate(self) -> Dict[int, Pose2D]:
        return dict(self._poses)
