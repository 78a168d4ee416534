"""
BLE beacon triangulation.

This module estimates a 2D position from ranges to three or more beacons by
Gauss-Newton iteration on the range residuals:

    r_i = ||p - b_i|| - d_i
    J_i = (p - b_i)^T / ||p - b_i||
    (J^T J) δ = J^T r,   p ← p - δ

The normal equations are 2×2 and solved in closed form. Iteration starts at
the beacon centroid and stops after `max_iterations` or when ||δ|| falls to
`convergence_step`. Near-singular J^T J (collinear beacons) aborts the
iteration and keeps the best estimate so far.

Fit quality is scored by the RMSE of the final residuals:

    confidence = min(1, N / N_full) * max(0, 1 - min(1, RMSE / s))
"""

import logging
import math
import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from indoorpos.fusion.types import PositionSource, UserPosition
from indoorpos.rf.beacon import Beacon

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriangulationConfig:
    """
    Solver settings.

    Attributes:
        min_beacons: Fewest usable beacons for a fix.
        max_iterations: Gauss-Newton iteration cap.
        convergence_step: Step size [m] at or below which iteration stops.
        min_jacobian_distance: Distance [m] below which a beacon's Jacobian
            row is zeroed.
        singular_det: det(J^T J) below which the geometry is degenerate.
        full_confidence_beacons: Beacon count that earns full count confidence.
        rmse_scale: RMSE [m] at which the fit confidence reaches zero.
        max_beacons: Most beacons used, highest distance confidence first.
        stale_after_ms: Age after which a beacon reading is ignored.
    """

    min_beacons: int = 3
    max_iterations: int = 10
    convergence_step: float = 0.1
    min_jacobian_distance: float = 0.1
    singular_det: float = 1e-6
    full_confidence_beacons: int = 6
    rmse_scale: float = 10.0
    max_beacons: int = 8
    stale_after_ms: int = 5000

    def __post_init__(self) -> None:
        if self.min_beacons < 3:
            raise ValueError(f"min_beacons must be >= 3, got {self.min_beacons}")
        if self.max_beacons < self.min_beacons:
            raise ValueError(
                f"max_beacons ({self.max_beacons}) must be >= min_beacons ({self.min_beacons})"
            )
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.full_confidence_beacons < 1 or self.rmse_scale <= 0:
            raise ValueError("full_confidence_beacons and rmse_scale must be positive")
        if self.convergence_step < 0 or self.min_jacobian_distance < 0 or self.stale_after_ms < 0:
            raise ValueError("convergence_step, min_jacobian_distance and stale_after_ms "
                             "must be non-negative")


def compute_gdop(
    beacon_positions: np.ndarray,
    position: np.ndarray,
    min_distance: float = 0.1,
) -> float:
    """
    Geometric dilution of precision of a 2D range fix.

    Builds G = Σ u_i u_iᵀ from the unit line-of-sight vectors u_i (zeroed for
    beacons within `min_distance`) and returns sqrt(trace(G⁻¹)) via the
    closed-form 2×2 inverse.

    Args:
        beacon_positions: Beacon positions, shape (N, 2).
        position: Evaluation point, shape (2,).
        min_distance: Distance [m] below which a beacon contributes nothing.

    Returns:
        GDOP, or inf for fewer than 2 beacons or near-singular geometry.

    Example:
        >>> beacons = np.array([[0, 0], [10, 0], [0, 10], [10, 10]])
        >>> gdop = compute_gdop(beacons, np.array([5.0, 5.0]))  # 1.0
    """
    beacon_positions = np.asarray(beacon_positions, dtype=float).reshape(-1, 2)
    position = np.asarray(position, dtype=float)
    if len(beacon_positions) < 2:
        return math.inf

    diff = position - beacon_positions
    dist = np.linalg.norm(diff, axis=1)
    units = np.zeros_like(diff)
    far = dist > min_distance
    units[far] = diff[far] / dist[far, None]

    G = units.T @ units
    det = G[0, 0] * G[1, 1] - G[0, 1] * G[1, 0]
    if not det > 0.001:
        return math.inf
    return math.sqrt((G[0, 0] + G[1, 1]) / det)


class BeaconTriangulator:
    """
    Gauss-Newton multilateration from beacon ranges.

    Attributes:
        config: Solver settings.

    Example:
        >>> beacons = [Beacon("b1", 0, 0, -59, estimated_distance=5.0),
        ...            Beacon("b2", 10, 0, -59, estimated_distance=8.06),
        ...            Beacon("b3", 0, 10, -59, estimated_distance=6.71)]
        >>> position, info = BeaconTriangulator().solve(beacons)
        >>> info['converged']
        True
    """

    def __init__(self, config: Optional[TriangulationConfig] = None):
        self.config = config if config is not None else TriangulationConfig()

    def select_beacons(self, beacons: Sequence[Beacon], now_ms: Optional[int] = None) -> List[Beacon]:
        """
        Usable beacons, highest distance confidence first.

        Drops beacons without a positive range estimate and, when `now_ms` is
        given, beacons not heard within `stale_after_ms`. At most
        `max_beacons` are returned.
        """
        usable = [
            b for b in beacons
            if b.estimated_distance is not None and b.estimated_distance > 0
            and (now_ms is None or not b.is_stale(now_ms, self.config.stale_after_ms))
        ]
        usable.sort(key=lambda b: b.distance_confidence, reverse=True)
        return usable[:self.config.max_beacons]

    def solve(
        self,
        beacons: Sequence[Beacon],
        now_ms: Optional[int] = None,
    ) -> Tuple[UserPosition, Dict]:
        """
        Estimate the receiver position from beacon ranges.

        Args:
            beacons: Candidate beacons with range estimates.
            now_ms: Current time [ms] for staleness filtering and the result
                timestamp. Defaults to the newest beacon reading.

        Returns:
            position: UserPosition with source BLE and accuracy = RMSE [m],
                or the invalid sentinel with fewer than `min_beacons`.
            info: Dictionary with solver information:
                - 'iterations': Gauss-Newton steps taken
                - 'converged': True if the step size fell to convergence_step
                - 'rmse': RMSE of the final residuals [m]
                - 'residuals': final residuals, shape (N,)
                - 'history': position history, shape (iterations + 1, 2)
                - 'beacons_used': number of beacons in the fit
                - 'gdop': geometric dilution of precision at the estimate
                - 'degenerate': True if J^T J was singular
        """
        cfg = self.config
        selected = self.select_beacons(beacons, now_ms)
        if now_ms is None:
            now_ms = max((b.last_seen_ms for b in selected), default=0)

        if len(selected) < cfg.min_beacons:
            _LOGGER.debug("Triangulation needs %d beacons, have %d", cfg.min_beacons, len(selected))
            info = {
                "iterations": 0,
                "converged": False,
                "rmse": math.inf,
                "residuals": np.zeros(0),
                "history": np.zeros((0, 2)),
                "beacons_used": len(selected),
                "gdop": math.inf,
                "degenerate": False,
            }
            return UserPosition.invalid(timestamp=now_ms), info

        anchors = np.array([b.position for b in selected])
        ranges = np.array([b.estimated_distance for b in selected], dtype=float)
        position = anchors.mean(axis=0)

        history = [position.copy()]
        converged = False
        degenerate = False
        iterations = 0

        for _ in range(cfg.max_iterations):
            diff = position - anchors
            dist = np.linalg.norm(diff, axis=1)
            residuals = dist - ranges

            J = np.zeros_like(diff)
            far = dist > cfg.min_jacobian_distance
            J[far] = diff[far] / dist[far, None]

            JtJ = J.T @ J
            Jtr = J.T @ residuals
            det = JtJ[0, 0] * JtJ[1, 1] - JtJ[0, 1] * JtJ[1, 0]
            if math.isnan(det) or det < cfg.singular_det:
                degenerate = True
                warnings.warn(
                    f"Degenerate beacon geometry (det(J^T J) = {det:.2e}), "
                    "keeping current estimate",
                    RuntimeWarning,
                )
                break

            delta = np.array([
                JtJ[1, 1] * Jtr[0] - JtJ[0, 1] * Jtr[1],
                JtJ[0, 0] * Jtr[1] - JtJ[1, 0] * Jtr[0],
            ]) / det
            position = position - delta
            history.append(position.copy())
            iterations += 1

            if np.linalg.norm(delta) <= cfg.convergence_step:
                converged = True
                break

        residuals = np.linalg.norm(position - anchors, axis=1) - ranges
        rmse = float(np.sqrt(np.mean(residuals ** 2)))
        count_factor = min(1.0, len(selected) / cfg.full_confidence_beacons)
        fit_factor = max(0.0, 1.0 - min(1.0, rmse / cfg.rmse_scale))
        gdop = compute_gdop(anchors, position, cfg.min_jacobian_distance)

        _LOGGER.debug("Triangulated (%.2f, %.2f) from %d beacons: %d iterations, rmse %.2f m",
                      position[0], position[1], len(selected), iterations, rmse)

        result = UserPosition(
            x=float(position[0]),
            y=float(position[1]),
            accuracy=rmse,
            timestamp=now_ms,
            source=PositionSource.BLE,
            confidence=count_factor * fit_factor,
        )
        info = {
            "iterations": iterations,
            "converged": converged,
            "rmse": rmse,
            "residuals": residuals,
            "history": np.array(history),
            "beacons_used": len(selected),
            "gdop": gdop,
            "degenerate": degenerate,
        }
        return result, info
