"""
Front-end facade: odometry + laser in, trajectory + map out.

Holds:
- the pose graph store
- odometry accumulation and keyframe admission
- constraint generation (scan matching)
- the optimization orchestrator (iSAM2 online, one-shot batch on stop)
"""

import logging
import threading
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .admission import NodeAdmissionPolicy, OdometryAccumulator
from .backend import BatchSolver, Isam2Solver
from .config import SlamConfig
from .constraints import ConstraintBuilder
from .geometry import Pose2D, compose
from .mapping import assemble_map
from .optimization import OptimizationOrchestrator
from .point_cloud import LaserScan, project
from .pose_graph import PoseGraph, PoseGraphNode
from .scan_matching import IcpScanMatcher, ScanMatcher

logger = logging.getLogger(__name__)


class Slam:

    def __init__(
        self,
        config: Optional[SlamConfig] = None,
        matcher: Optional[ScanMatcher] = None,
        solver_factory: Optional[Callable[[], object]] = None,
        batch_solver_factory: Optional[Callable[[], object]] = None,
    ):
        self.config = config if config is not None else SlamConfig()
        cfg = self.config
        self.graph = PoseGraph()
        self.odometry = OdometryAccumulator()
        self.admission = NodeAdmissionPolicy(cfg.trans_thresh_m, cfg.rot_thresh_rad)
        self.matcher = matcher if matcher is not None else IcpScanMatcher.from_config(cfg)
        self.builder = ConstraintBuilder(cfg, self.matcher)

        if solver_factory is None:
            def solver_factory():
                return Isam2Solver(cfg.relinearize_threshold, cfg.relinearize_skip)
        self.optimizer = OptimizationOrchestrator(
            self.builder,
            solver_factory,
            batch_solver_factory if batch_solver_factory is not None else BatchSolver,
        )

        self._lock = threading.RLock()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def observe_odometry(self, location: Sequence[float], heading: float) -> None:
        with self._lock:
            self.odometry.observe(location, heading)

    def observe_laser(self, scan: LaserScan) -> Optional[PoseGraphNode]:
        """
        Decide whether this scan becomes a node; if so, link it into the graph
        and optimize.

        :param scan: input scan
        :return: the new node, or None if the scan was not admitted
        """
        with self._lock:
            if self._stopped:
                return None
            if not self.admission.should_admit(self.odometry, len(self.graph) > 0):
                return None
            return self._add_node(project(scan, self.config.laser_offset))

    def _add_node(self, cloud: np.ndarray) -> PoseGraphNode:
        node_id = self.graph.next_id()
        pred = self.graph.last_node()
        if pred is None:
            initial = self.builder.origin
        else:
            # last node's estimate moved by the odometry since that node
            initial = compose(self.odometry.displacement(), pred.estimated_pose)
        node = PoseGraphNode(node_id, initial, cloud, self.odometry.last_odom)

        # Collaborator calls first; the store only changes once they all succeed.
        constraints = self.builder.build(self.graph.nodes, node)
        poses = self.optimizer.submit(constraints, {node_id: initial})

        self.graph.add_node(node)
        self.graph.add_constraints(constraints)
        self.graph.update_poses(poses)
        self.odometry.record_node()

        logger.info(
            "Added node %d with %d constraint(s) (%d points)",
            node_id, len(constraints), node.point_cloud.shape[0],
        )
        logger.debug("Graph: %d nodes, %d constraints", len(self.graph), len(self.graph.constraints))
        return node

    def get_pose(self) -> Tuple[np.ndarray, float]:
        """Latest robot pose: last node estimate plus odometry since that node."""
        with self._lock:
            last = self.graph.last_node()
            if last is None:
                return np.zeros(2, dtype=np.float64), 0.0
            pose = compose(self.odometry.displacement(), last.estimated_pose)
            return pose.translation, pose.angle

    def get_nodes(self) -> List[Tuple[int, Pose2D]]:
        with self._lock:
            return [(n.id, n.estimated_pose) for n in self.graph.nodes]

    def get_map(self) -> np.ndarray:
        with self._lock:
            return assemble_map(self.graph.nodes)

    def stop_front_end(self) -> bool:
        """
        Stop admitting nodes and run the offline optimization.

        :return: True if this call ran the batch pass, False if it had already run
        """
        with self._lock:
            self._stopped = True
            result = self.optimizer.run_batch(self.graph.nodes)
            if result is None:
                return False
            constraints, poses = result
            self.graph.replace_constraints(constraints)
            self.graph.update_poses(poses)
            return True
