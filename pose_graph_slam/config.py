"""Tunables for the pose-graph front end and back end."""

import math
from dataclasses import dataclass, fields
from typing import Any, Dict, Tuple


@dataclass
class SlamConfig:
    # Node admission
    trans_thresh_m: float = 1.0
    rot_thresh_rad: float = math.pi / 6.0

    # Laser mounting: sensor origin in the robot base frame
    laser_offset: Tuple[float, float] = (0.2, 0.0)

    # Anchor for node 0 (x, y, theta) and its uncertainty
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    prior_sigmas: Tuple[float, float, float] = (1e-3, 1e-3, 1e-3)

    # Odometry between-factors (off: constraints come from scan matching only)
    use_odometry_constraints: bool = False
    motion_model_trans_err_from_trans: float = 0.2
    motion_model_trans_err_from_rot: float = 0.1
    motion_model_rot_err_from_trans: float = 0.1
    motion_model_rot_err_from_rot: float = 0.2
    min_odom_sigma: float = 1e-3

    # Non-successive (loop-style) scan constraints
    non_successive_constraints: bool = True
    max_non_successive_factors: int = 3
    max_non_successive_distance: float = 1.5

    # Default ICP scan matcher
    icp_max_iters: int = 50
    icp_max_corr_dist: float = 2.0
    icp_min_points: int = 30
    icp_min_corr: int = 20
    icp_max_points: int = 700
    icp_max_residual: float = 0.5
    icp_max_trans_jump: float = 3.0
    icp_max_rot_jump: float = math.radians(120.0)
    scan_sigmas: Tuple[float, float, float] = (0.1, 0.1, 0.05)
    icp_residual_scale: float = 0.05

    # iSAM2
    relinearize_threshold: float = 0.01
    relinearize_skip: int = 1

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "SlamConfig":
        """
        Build a config from a (partial) mapping of field names to values.

        :raises ValueError: on keys that are not config fields
        """
        names = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - names)
        if unknown:
            raise ValueError(f"Unknown SLAM config keys: {', '.join(unknown)}")
        kwargs = {}
        for k, v in values.items():
            if isinstance(v, list):
                v = tuple(v)
            kwargs[k] = v
        return cls(**kwargs)

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
