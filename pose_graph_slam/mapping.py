from typing import Iterable

import numpy as np

from .geometry import transform_points
from .point_cloud import empty_cloud
from .pose_graph import PoseGraphNode


def assemble_map(nodes: Iterable[PoseGraphNode]) -> np.ndarray:
    """Every node's cloud pushed through the node's current pose, stacked into one (N, 2) array."""
    parts = [transform_points(n.point_cloud, n.estimated_pose) for n in nodes]
    parts = [p for p in parts if p.shape[0]]
    if not parts:
        return empty_cloud()
    return np.vstack(parts)
