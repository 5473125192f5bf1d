"""
Optimization orchestration: online iSAM2 updates and the one-shot batch pass.
"""

import logging
import threading
from typing import Callable, Dict, List, Mapping, Sequence, Set

from .constraints import ConstraintBuilder
from .geometry import Pose2D
from .pose_graph import Constraint, PoseGraphNode

logger = logging.getLogger(__name__)


class _AnchoredDelta:
    """
    Holds constraints back until they touch the component anchored by the prior.

    A failed successive match leaves the new node with no path to node 0; a
    solver given such a node has an underdetermined system. Those constraints
    (and the node values they need) wait here until a later constraint links
    them to the anchored part of the graph.
    """

    def __init__(self):
        self.anchored: Set[int] = set()
        self._pending: List[Constraint] = []
        self._guesses: Dict[int, Pose2D] = {}

    def push(self, constraints: Sequence[Constraint], guesses: Mapping[int, Pose2D]):
        """
        :return: (constraints ready to submit, initial values for newly anchored
            nodes, constraints still waiting, anchored ids after the push).
            Nothing changes until ``commit``.
        """
        pending = self._pending + list(constraints)
        anchored = set(self.anchored)
        ready: List[Constraint] = []
        progress = True
        while progress:
            progress = False
            waiting: List[Constraint] = []
            for c in pending:
                if c.is_prior or c.from_id in anchored or c.to_id in anchored:
                    anchored.update((c.from_id, c.to_id))
                    ready.append(c)
                    progress = True
                else:
                    waiting.append(c)
            pending = waiting

        new_ids = sorted(anchored - self.anchored)
        known = {**self._guesses, **guesses}
        missing = [i for i in new_ids if i not in known]
        if missing:
            raise ValueError(f"No initial value for node(s) {missing}")
        values = {i: known[i] for i in new_ids}
        return ready, values, pending, anchored

    def commit(
        self,
        pending: List[Constraint],
        anchored: Set[int],
        values: Mapping[int, Pose2D],
        guesses: Mapping[int, Pose2D],
    ) -> None:
        self._pending = pending
        self.anchored = anchored
        self._guesses.update(guesses)
        for i in values:
            self._guesses.pop(i, None)


class OptimizationOrchestrator:
    """
    Feeds graph deltas to a solver and hands back poses to write into the store.

    Nothing is written to the store here; callers apply the returned poses
    once every collaborator call has succeeded.
    """

    def __init__(
        self,
        builder: ConstraintBuilder,
        incremental_factory: Callable[[], object],
        batch_factory: Callable[[], object],
    ):
        self.builder = builder
        self._incremental_factory = incremental_factory
        self._batch_factory = batch_factory
        self.solver = None
        self._delta = None
        self.reset()
        self._batch_lock = threading.Lock()
        self._batch_done = False

    def reset(self) -> None:
        """Discard all solver state and start over with an empty incremental solver."""
        self.solver = self._incremental_factory()
        self._delta = _AnchoredDelta()

    @property
    def batch_done(self) -> bool:
        return self._batch_done

    def submit(self, constraints: Sequence[Constraint], guesses: Mapping[int, Pose2D]) -> Dict[int, Pose2D]:
        """
        Online step: push only the new constraints/values and return the
        solver's current estimate for every node it tracks.

        :param constraints: constraints created for the newly admitted node
        :param guesses: initial pose of the new node (map frame)
        """
        ready, values, pending, anchored = self._delta.push(constraints, guesses)
        if pending:
            logger.info(
                "%d constraint(s) held back until connected to node 0: %s",
                len(pending), [(c.from_id, c.to_id) for c in pending],
            )
        if ready or values:
            self.solver.update(ready, values)
        self._delta.commit(pending, anchored, values, guesses)
        return self.solver.estimate()

    def rebuild(self, nodes: Sequence[PoseGraphNode]) -> List[Constraint]:
        """Replay the constraint builder over every node in id order."""
        constraints: List[Constraint] = []
        for k, node in enumerate(nodes):
            constraints.extend(self.builder.build(nodes[:k], node))
        return constraints

    def run_batch(self, nodes: Sequence[PoseGraphNode]):
        """
        One-shot global refinement.

        Drops the incremental solver, rebuilds all constraints, solves them in a
        fresh batch solver seeded with the nodes' current poses.

        :return: (rebuilt constraints, {node_id: pose}) or None if the pass
            already ran
        """
        with self._batch_lock:
            if self._batch_done:
                logger.info("Offline optimization already ran; ignoring")
                return None
            self._batch_done = True

        self.reset()
        if not nodes:
            logger.info("Offline optimization: empty graph")
            return [], {}

        constraints = self.rebuild(nodes)
        solver = self._batch_factory()
        delta = _AnchoredDelta()
        ready, values, pending, _ = delta.push(constraints, {n.id: n.estimated_pose for n in nodes})
        if pending:
            logger.info("Offline optimization: %d constraint(s) not connected to node 0", len(pending))
        if ready or values:
            solver.update(ready, values)
        poses = solver.estimate()
        logger.info(
            "Offline optimization: %d nodes, %d constraints, %d poses refined",
            len(nodes), len(constraints), len(poses),
        )
        return constraints, poses
