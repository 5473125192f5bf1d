"""
Constraint generation for a newly admitted node.

The same ``ConstraintBuilder.build`` runs online (one node at a time) and in
the batch pass (replaying every node in id order), so both modes always agree
on which constraints exist.
"""

import logging
from typing import List, Sequence

import numpy as np

from .config import SlamConfig
from .geometry import Pose2D, relative
from .pose_graph import (
    NON_SUCCESSIVE,
    ODOMETRY,
    PRIOR,
    SUCCESSIVE,
    Constraint,
    PoseGraphNode,
    make_constraint,
)
from .scan_matching import ScanMatcher

logger = logging.getLogger(__name__)


class ConstraintBuilder:

    def __init__(self, config: SlamConfig, matcher: ScanMatcher):
        self.config = config
        self.matcher = matcher
        self.origin = Pose2D(*config.origin)
        self.prior_cov = np.diag(np.square(np.asarray(config.prior_sigmas, dtype=np.float64)))

    def build(self, earlier_nodes: Sequence[PoseGraphNode], new_node: PoseGraphNode) -> List[Constraint]:
        """
        Constraints that link ``new_node`` into the graph.

        :param earlier_nodes: every node with a smaller id, ordered by id
        :param new_node: the node being admitted
        :return: prior for node 0; otherwise optional odometry, successive and
            non-successive constraints. Nothing is mutated.
        """
        assert len(earlier_nodes) == new_node.id, (
            f"node {new_node.id} built against {len(earlier_nodes)} earlier nodes"
        )
        assert all(n.id == i for i, n in enumerate(earlier_nodes)), "earlier nodes must be ordered by id"

        if new_node.id == 0:
            return [make_constraint(0, 0, self.origin, self.prior_cov, PRIOR)]

        pred = earlier_nodes[-1]
        constraints: List[Constraint] = []
        odom_rel = relative(new_node.odom_pose, pred.odom_pose)

        if self.config.use_odometry_constraints:
            constraints.append(make_constraint(pred.id, new_node.id, odom_rel, self.odometry_covariance(odom_rel), ODOMETRY))

        result = self.matcher.match(new_node.point_cloud, pred.point_cloud, odom_rel)
        if result.converged:
            constraints.append(make_constraint(pred.id, new_node.id, result.pose, result.covariance, SUCCESSIVE))
        else:
            logger.info("Scan match %d->%d did not converge; skipping constraint", pred.id, new_node.id)

        if self.config.non_successive_constraints:
            # nodes not adjacent to the predecessor
            constraints.extend(self._non_successive(earlier_nodes[:-2], pred))
        return constraints

    def odometry_covariance(self, rel: Pose2D) -> np.ndarray:
        c = self.config
        trans = rel.norm()
        rot = abs(rel.angle)
        trans_std = c.motion_model_trans_err_from_trans * trans + c.motion_model_trans_err_from_rot * rot
        rot_std = c.motion_model_rot_err_from_trans * trans + c.motion_model_rot_err_from_rot * rot
        trans_std = max(trans_std, c.min_odom_sigma)
        rot_std = max(rot_std, c.min_odom_sigma)
        return np.diag([trans_std ** 2, trans_std ** 2, rot_std ** 2])

    def _non_successive(self, candidates: Sequence[PoseGraphNode], pred: PoseGraphNode) -> List[Constraint]:
        # Ascending id, first converged matches win; not ranked by distance.
        found: List[Constraint] = []
        limit = int(self.config.max_non_successive_factors)
        if limit <= 0:
            return found
        max_dist = float(self.config.max_non_successive_distance)
        pred_pose = pred.estimated_pose
        for node in candidates:
            if len(found) >= limit:
                break
            cand_pose = node.estimated_pose
            dist = float(np.hypot(cand_pose.x - pred_pose.x, cand_pose.y - pred_pose.y))
            if dist > max_dist:
                continue
            guess = relative(pred_pose, cand_pose)
            result = self.matcher.match(pred.point_cloud, node.point_cloud, guess)
            if not result.converged:
                logger.debug("Non-successive match %d->%d did not converge", node.id, pred.id)
                continue
            found.append(make_constraint(node.id, pred.id, result.pose, result.covariance, NON_SUCCESSIVE))
        if found:
            logger.info(
                "Added %d non-successive constraint(s) to node %d from %s",
                len(found), pred.id, [c.from_id for c in found],
            )
        return found
