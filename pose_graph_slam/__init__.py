from .config import SlamConfig
from .geometry import Pose2D, compose, relative
from .point_cloud import LaserScan, project_scan
from .pose_graph import Constraint, PoseGraph, PoseGraphNode
from .scan_matching import IcpScanMatcher, MatchResult
from .slam import Slam

__all__ = [
    'Constraint',
    'IcpScanMatcher',
    'LaserScan',
    'MatchResult',
    'Pose2D',
    'PoseGraph',
    'PoseGraphNode',
    'Slam',
    'SlamConfig',
    'compose',
    'project_scan',
    'relative',
]
