"""
Constant-velocity Kalman filter for 2D position tracking.

State x = [x, y, vx, vy]ᵀ (meters, m/s); measurements are positions only.

Implements:
    - State propagation x_{k|k-1} = F x_{k-1},  F = [[I, dt·I], [0, I]]
    - Covariance propagation P_{k|k-1} = F P F^T + Q·dt
    - Innovation ν = z - H x,  H = [I 0]
    - Innovation covariance S = H P H^T + R,  R = (σ_z / c)² I
    - Gain K = P H^T S^{-1} (closed-form 2×2 inverse)
    - Update x += K ν,  P = (I - K H) P

The measurement noise is inflated by the inverse of the source confidence
c ∈ [0.1, 1], so low-confidence fixes pull the track less. Timestamps are in
milliseconds; a prediction with dt ≤ 0 is a no-op and a near-singular S
skips the correction.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from indoorpos.estimators.base import StateEstimator

_LOGGER = logging.getLogger(__name__)

H = np.hstack((np.eye(2), np.zeros((2, 2))))


@dataclass(frozen=True)
class PositionFilterConfig:
    """
    Noise model of the position filter.

    Attributes:
        process_noise: Diagonal of Q per second for (x, y, vx, vy).
        initial_velocity_variance: Velocity variance at initialization [(m/s)²].
        min_confidence: Lower clamp for measurement confidence.
        singular_det: det(S) below which the update is skipped.
    """

    process_noise: Tuple[float, float, float, float] = (0.01, 0.01, 0.1, 0.1)
    initial_velocity_variance: float = 1.0
    min_confidence: float = 0.1
    singular_det: float = 1e-6

    def __post_init__(self) -> None:
        if len(self.process_noise) != 4:
            raise ValueError(f"process_noise must have 4 entries, got {len(self.process_noise)}")
        if any(q < 0 for q in self.process_noise):
            raise ValueError(f"process_noise must be non-negative, got {self.process_noise}")
        if self.initial_velocity_variance < 0:
            raise ValueError("initial_velocity_variance must be non-negative")
        if not 0.0 < self.min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be in (0, 1], got {self.min_confidence}")


class PositionKalmanFilter(StateEstimator):
    """
    Linear Kalman filter with a constant-velocity motion model.

    One instance per tracked entity. The first `update` on an uninitialized
    filter initializes it from that measurement.

    Attributes:
        config: Noise model.
        Q: Process noise covariance per second (4×4).
        last_update_time: Time of the last predict/update [ms].

    Example:
        >>> kf = PositionKalmanFilter()
        >>> kf.update(5.0, 5.0, measurement_uncertainty=1.0, confidence=1.0, timestamp=0)
        >>> kf.update(5.2, 5.1, measurement_uncertainty=1.0, confidence=1.0, timestamp=100)
        >>> x, y = kf.position
    """

    def __init__(self, config: Optional[PositionFilterConfig] = None):
        super().__init__(state_dim=4)
        self.config = config if config is not None else PositionFilterConfig()
        self.Q = np.diag(np.asarray(self.config.process_noise, dtype=float))
        self.last_update_time = 0
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self, x: float, y: float, position_uncertainty: float, timestamp: int) -> None:
        """
        Start a track at (x, y) with zero velocity.

        Args:
            x, y: Initial position [m].
            position_uncertainty: Initial position standard deviation σ [m].
            timestamp: Time of the initial fix [ms].
        """
        var = position_uncertainty * position_uncertainty
        vel_var = self.config.initial_velocity_variance
        self.state = np.array([x, y, 0.0, 0.0], dtype=float)
        self.covariance = np.diag([var, var, vel_var, vel_var])
        self.last_update_time = timestamp
        self._initialized = True
        _LOGGER.debug("Position filter initialized at (%.2f, %.2f), sigma %.2f m", x, y,
                      position_uncertainty)

    def predict(self, timestamp: int) -> None:
        """
        Propagate the track to `timestamp` [ms].

        No-op if the filter is uninitialized or time does not advance.
        """
        if not self._initialized:
            return
        dt = (timestamp - self.last_update_time) / 1000.0
        if dt <= 0:
            return

        F = np.eye(4)
        F[0, 2] = dt
        F[1, 3] = dt
        self.state = F @ self.state
        self.covariance = F @ self.covariance @ F.T + self.Q * dt
        self.last_update_time = timestamp

    def update(
        self,
        measured_x: float,
        measured_y: float,
        measurement_uncertainty: float,
        confidence: float,
        timestamp: int,
    ) -> None:
        """
        Correct the track with a position fix.

        Args:
            measured_x, measured_y: Measured position [m].
            measurement_uncertainty: Fix standard deviation [m].
            confidence: Source confidence, clamped to [min_confidence, 1].
            timestamp: Time of the fix [ms]. A fix older than the last
                update is applied to the current prediction and does not
                move the filter clock back.
        """
        if not self._initialized:
            self.initialize(measured_x, measured_y, measurement_uncertainty, timestamp)
            return

        self.predict(timestamp)

        c = min(max(confidence, self.config.min_confidence), 1.0)
        sigma = measurement_uncertainty / c
        R = np.eye(2) * sigma * sigma

        innovation = np.array([measured_x, measured_y]) - self.state[:2]
        S = self.covariance[:2, :2] + R
        det = S[0, 0] * S[1, 1] - S[0, 1] * S[1, 0]
        if not det >= self.config.singular_det:
            _LOGGER.debug("Innovation covariance near singular (det=%.3e), skipping update", det)
            return

        S_inv = np.array([[S[1, 1], -S[0, 1]], [-S[1, 0], S[0, 0]]]) / det
        K = self.covariance[:, :2] @ S_inv
        self.state = self.state + K @ innovation
        self.covariance = (np.eye(4) - K @ H) @ self.covariance
        self.last_update_time = max(self.last_update_time, timestamp)

    def reset(self) -> None:
        """Mark the filter uninitialized; the next update re-initializes it."""
        self._initialized = False

    @property
    def position(self) -> Tuple[float, float]:
        self._require_state()
        return float(self.state[0]), float(self.state[1])

    @property
    def velocity(self) -> Tuple[float, float]:
        self._require_state()
        return float(self.state[2]), float(self.state[3])

    @property
    def position_uncertainty(self) -> float:
        """sqrt((Pxx + Pyy) / 2) [m]."""
        self._require_state()
        return math.sqrt((self.covariance[0, 0] + self.covariance[1, 1]) / 2.0)

    @property
    def speed(self) -> float:
        vx, vy = self.velocity
        return math.hypot(vx, vy)

    def get_statistics(self) -> dict:
        return {
            'initialized': self._initialized,
            'state': None if self.state is None else self.state.tolist(),
            'covariance': None if self.covariance is None else self.covariance.tolist(),
            'last_update_time': self.last_update_time,
        }
