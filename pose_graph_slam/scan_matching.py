"""
Scan matcher contract and a default point-to-point ICP implementation.

A matcher aligns a ``source`` cloud to a ``target`` cloud and reports the pose
of the source frame expressed in the target frame, i.e. the transform ``T``
with ``target ~= T(source)``.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence, Tuple

import numpy as np

from .geometry import Pose2D, relative, wrap_angle


@dataclass(frozen=True, eq=False)
class MatchResult:
    pose: Pose2D
    covariance: np.ndarray = field(repr=False)
    converged: bool


class ScanMatcher(Protocol):
    def match(self, source: np.ndarray, target: np.ndarray, initial_guess: Pose2D) -> MatchResult:
        ...


# -----------------------------
# ICP helpers
# -----------------------------

def _best_fit_transform_2d(A: np.ndarray, B: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Compute R,t that best align B to A in LS sense: A ~= R @ B + t."""
    centroid_A = A.mean(axis=0)
    centroid_B = B.mean(axis=0)
    AA = A - centroid_A
    BB = B - centroid_B
    H = BB.T @ AA
    U, _, Vt = np.linalg.svd(H)
    R = Vt.T @ U.T
    # Ensure det(R)=+1
    if np.linalg.det(R) < 0:
        Vt[1, :] *= -1
        R = Vt.T @ U.T
    t = centroid_A - (R @ centroid_B)
    return R, t


def _nearest_neighbor_bruteforce(src: np.ndarray, dst: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """For each point in src, find nearest in dst (O(N*M) brute force)."""
    diff = src[:, None, :] - dst[None, :, :]
    d2 = np.einsum('ijk,ijk->ij', diff, diff)
    idx = np.argmin(d2, axis=1)
    min_d2 = d2[np.arange(d2.shape[0]), idx]
    return idx, min_d2


def _yaw_from_R(R: np.ndarray) -> float:
    return math.atan2(float(R[1, 0]), float(R[0, 0]))


def _subsample(points: np.ndarray, max_points: int) -> np.ndarray:
    if points.shape[0] > max_points:
        return points[::int(math.ceil(points.shape[0] / max_points))]
    return points


# -----------------------------
# Matcher
# -----------------------------

class IcpScanMatcher:
    """
    Point-to-point ICP seeded with the caller's initial guess.

    Deterministic: brute-force correspondences, fixed subsampling stride.
    """

    def __init__(
        self,
        max_iters: int = 50,
        max_corr_dist: float = 2.0,
        min_points: int = 30,
        min_corr: int = 20,
        max_points: int = 700,
        max_residual: float = 0.5,
        max_trans_jump: float = 3.0,
        max_rot_jump: float = math.radians(120.0),
        sigmas: Sequence[float] = (0.1, 0.1, 0.05),
        residual_scale: float = 0.05,
    ):
        self.max_iters = int(max_iters)
        self.max_corr_d2 = float(max_corr_dist) ** 2
        self.min_points = int(min_points)
        self.min_corr = int(min_corr)
        self.max_points = int(max_points)
        self.max_residual = float(max_residual)
        self.max_trans_jump = float(max_trans_jump)
        self.max_rot_jump = float(max_rot_jump)
        self.base_cov = np.diag(np.square(np.asarray(sigmas, dtype=np.float64)))
        self.residual_scale = float(residual_scale)
        self.eps_trans = 1e-4
        self.eps_rot = 1e-4

    @classmethod
    def from_config(cls, config) -> "IcpScanMatcher":
        return cls(
            max_iters=config.icp_max_iters,
            max_corr_dist=config.icp_max_corr_dist,
            min_points=config.icp_min_points,
            min_corr=config.icp_min_corr,
            max_points=config.icp_max_points,
            max_residual=config.icp_max_residual,
            max_trans_jump=config.icp_max_trans_jump,
            max_rot_jump=config.icp_max_rot_jump,
            sigmas=config.scan_sigmas,
            residual_scale=config.icp_residual_scale,
        )

    def match(self, source: np.ndarray, target: np.ndarray, initial_guess: Pose2D) -> MatchResult:
        pose, residual = self._icp(
            np.asarray(source, dtype=np.float64).reshape(-1, 2),
            np.asarray(target, dtype=np.float64).reshape(-1, 2),
            initial_guess,
        )
        if pose is None:
            return MatchResult(initial_guess, self.base_cov.copy(), False)

        scale = max(1.0, residual / self.residual_scale) if self.residual_scale > 0 else 1.0
        cov = self.base_cov * scale

        # Sanity gate against the guess to avoid catastrophic factors
        jump = relative(pose, initial_guess)
        if jump.norm() > self.max_trans_jump or abs(jump.angle) > self.max_rot_jump:
            return MatchResult(pose, cov, False)
        return MatchResult(pose, cov, True)

    def _icp(self, sens: np.ndarray, ref: np.ndarray, guess: Pose2D) -> Tuple[Optional[Pose2D], float]:
        if ref.shape[0] < self.min_points or sens.shape[0] < self.min_points:
            return None, math.inf
        ref = _subsample(ref, self.max_points)
        sens = _subsample(sens, self.max_points)

        # Current estimate of T_ref_sens
        R_total = guess.rotation()
        t_total = guess.translation
        prev_err = None

        for _ in range(self.max_iters):
            sens_tf = (sens @ R_total.T) + t_total

            nn_idx, nn_d2 = _nearest_neighbor_bruteforce(sens_tf, ref)
            good = nn_d2 <= self.max_corr_d2
            if int(np.count_nonzero(good)) < self.min_corr:
                return None, math.inf

            R_inc, t_inc = _best_fit_transform_2d(ref[nn_idx[good]], sens_tf[good])
            R_total = R_inc @ R_total
            t_total = (R_inc @ t_total) + t_inc

            mean_err = float(np.sqrt(nn_d2[good].mean()))
            if prev_err is not None and abs(prev_err - mean_err) < 1e-5:
                prev_err = mean_err
                break
            prev_err = mean_err

            if (abs(float(t_inc[0])) < self.eps_trans and abs(float(t_inc[1])) < self.eps_trans
                    and abs(_yaw_from_R(R_inc)) < self.eps_rot):
                break

        # Quality gate
        if prev_err is None or prev_err > self.max_residual:
            return None, math.inf
        return Pose2D(float(t_total[0]), float(t_total[1]), wrap_angle(_yaw_from_R(R_total))), prev_err
