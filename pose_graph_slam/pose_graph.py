"""Pose graph store: nodes, constraints and the cached node poses."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

import numpy as np

from .geometry import Pose2D

PRIOR = "prior"
ODOMETRY = "odometry"
SUCCESSIVE = "successive"
NON_SUCCESSIVE = "non_successive"


@dataclass(eq=False)
class PoseGraphNode:
    id: int
    estimated_pose: Pose2D
    point_cloud: np.ndarray = field(repr=False)
    # raw odometry at admission time, used to replay successive initial guesses
    odom_pose: Pose2D = field(default_factory=Pose2D)

    def __post_init__(self):
        cloud = np.array(self.point_cloud, dtype=np.float64).reshape(-1, 2)
        cloud.setflags(write=False)
        self.point_cloud = cloud


@dataclass(frozen=True, eq=False)
class Constraint:
    """
    Relative-pose measurement between two nodes.

    ``measurement`` is the pose of ``to_id`` expressed in the frame of
    ``from_id``. For a prior both ids name the anchored node and the
    measurement is its pose in the map frame.
    """
    from_id: int
    to_id: int
    measurement: Pose2D
    covariance: np.ndarray = field(repr=False)
    kind: str = SUCCESSIVE

    @property
    def is_prior(self) -> bool:
        return self.kind == PRIOR


def make_constraint(from_id: int, to_id: int, measurement: Pose2D, covariance, kind: str) -> Constraint:
    cov = np.array(covariance, dtype=np.float64).reshape(3, 3)
    cov.setflags(write=False)
    return Constraint(int(from_id), int(to_id), measurement, cov, kind)


class PoseGraph:
    """
    Ordered nodes plus the constraints between them.

    Nodes and constraints are only ever appended; the batch pass is the one
    caller allowed to swap in a rebuilt constraint set. Node poses change only
    through ``update_poses``.
    """

    def __init__(self):
        self._nodes: List[PoseGraphNode] = []
        self._constraints: List[Constraint] = []

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def nodes(self) -> List[PoseGraphNode]:
        return list(self._nodes)

    @property
    def constraints(self) -> List[Constraint]:
        return list(self._constraints)

    def node(self, node_id: int) -> PoseGraphNode:
        return self._nodes[node_id]

    def has_node(self, node_id: int) -> bool:
        return 0 <= node_id < len(self._nodes)

    def last_node(self):
        return self._nodes[-1] if self._nodes else None

    def next_id(self) -> int:
        return len(self._nodes)

    def add_node(self, node: PoseGraphNode) -> None:
        assert node.id == len(self._nodes), f"node id {node.id} != insertion index {len(self._nodes)}"
        self._nodes.append(node)

    def add_constraint(self, constraint: Constraint) -> None:
        self._check(constraint, self._has_prior())
        self._constraints.append(constraint)

    def add_constraints(self, constraints: Iterable[Constraint]) -> None:
        for c in constraints:
            self.add_constraint(c)

    def replace_constraints(self, constraints: Iterable[Constraint]) -> None:
        rebuilt: List[Constraint] = []
        for c in constraints:
            self._check(c, bool(rebuilt) and rebuilt[0].is_prior)
            rebuilt.append(c)
        self._constraints = rebuilt

    def constraints_between(self, a: int, b: int) -> List[Constraint]:
        return [
            c for c in self._constraints
            if not c.is_prior and {c.from_id, c.to_id} == {a, b}
        ]

    def update_poses(self, poses: Mapping[int, Pose2D]) -> None:
        # one attribute replace per node; readers never see a half-written pose
        for node_id, pose in poses.items():
            if self.has_node(node_id):
                self._nodes[node_id].estimated_pose = pose

    def poses(self) -> Dict[int, Pose2D]:
        return {n.id: n.estimated_pose for n in self._nodes}

    def _has_prior(self) -> bool:
        return bool(self._constraints) and self._constraints[0].is_prior

    def _check(self, c: Constraint, has_prior: bool) -> None:
        assert self.has_node(c.from_id) and self.has_node(c.to_id), (
            f"constraint {c.from_id}->{c.to_id} references a node that does not exist"
        )
        if c.is_prior:
            assert c.from_id == c.to_id == 0, "prior constraints anchor node 0 only"
            assert not has_prior, "node 0 already carries a prior"
        else:
            assert has_prior, "node 0 needs its prior before any other constraint"
