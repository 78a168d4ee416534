"""Position fusion of BLE triangulation and pedestrian dead reckoning.

BLE fixes are absolute but noisy; PDR is smooth but drifts. PositionFuser
combines one fix from each source per call, either by adaptive weighted
averaging or through a constant-velocity Kalman filter, and optionally
extrapolates the result along the recent direction of travel.

Key features:
- Source fallback when only one fix is valid
- Confidence, accuracy, recency and consistency weighting
- Adaptive smoothing towards the previous fused position
- Short-horizon prediction from movement history

The caller supplies the current time with every call; no wall clock is read.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from indoorpos.estimators.position_kf import PositionKalmanFilter
from indoorpos.fusion.types import FusionConfig, FusionMethod, PositionSource, UserPosition

_LOGGER = logging.getLogger(__name__)

CONFIDENCE_FACTOR = 0.6
ACCURACY_FACTOR = 0.4
RECENCY_FACTOR = 0.3
CONSISTENCY_FACTOR = 0.7
MOVING_SPEED_THRESHOLD = 0.2  # m/s
MIN_MOVE_DISTANCE = 0.05  # m


@dataclass(frozen=True)
class MovementSample:
    """One fused position with the speed [m/s] at which it was reached."""

    position: UserPosition
    timestamp: int
    speed: float


def position_difference(a: UserPosition, b: UserPosition) -> Tuple[float, float]:
    """Distance [m] between two fixes and the same distance relative to their accuracies."""
    distance = a.distance_to(b)
    return distance, distance / (a.accuracy + b.accuracy + 0.1)


class PositionFuser:
    """Fuses BLE and PDR fixes into one position per call.

    Usage:
        >>> fuser = PositionFuser(FusionConfig(method=FusionMethod.KALMAN_FILTER))
        >>> fused = fuser.fuse(ble_fix, pdr_fix, timestamp_ms=now, is_moving=True)

    Attributes:
        config: Fusion configuration.
        kalman_filter: Track used by the KALMAN_FILTER method.
        last_fused: Latest fused position (before prediction), None after reset.
        history: Latest fused positions with speeds, oldest first.
    """

    def __init__(self, config: Optional[FusionConfig] = None):
        self.config = config if config is not None else FusionConfig()
        self.kalman_filter = PositionKalmanFilter()
        self.last_fused: Optional[UserPosition] = None
        self.history = deque(maxlen=self.config.history_size)
        self._counts = {
            'pdr_only': 0,
            'ble_only': 0,
            'invalid': 0,
            'weighted_average': 0,
            'kalman_filter': 0,
            'predicted': 0,
        }

    def fuse(
        self,
        ble: UserPosition,
        pdr: UserPosition,
        timestamp_ms: int,
        is_moving: bool = False,
        last_ble_ms: Optional[int] = None,
    ) -> UserPosition:
        """Fuse the current BLE and PDR fixes.

        Args:
            ble: Latest BLE fix, or the invalid sentinel.
            pdr: Latest PDR fix, or the invalid sentinel.
            timestamp_ms: Current time [ms].
            is_moving: Whether the user is walking.
            last_ble_ms: Time of the last valid BLE fix [ms], used to age
                PDR-only output.

        Returns:
            Fused position; the invalid sentinel if neither fix is valid.
        """
        ble_valid = ble.is_valid()
        pdr_valid = pdr.is_valid()

        if not ble_valid and not pdr_valid:
            _LOGGER.debug("Both positions invalid")
            self._counts['invalid'] += 1
            return UserPosition.invalid(timestamp=timestamp_ms)

        if not ble_valid:
            _LOGGER.debug("Using PDR position only (BLE invalid)")
            self._counts['pdr_only'] += 1
            fused = self._age_pdr(pdr, timestamp_ms, last_ble_ms)
            self._record(fused, timestamp_ms)
            return fused

        if not pdr_valid:
            _LOGGER.debug("Using BLE position only (PDR invalid)")
            self._counts['ble_only'] += 1
            self._record(ble, timestamp_ms)
            return ble

        if self.config.method is FusionMethod.KALMAN_FILTER:
            self._counts['kalman_filter'] += 1
            fused = self._kalman_fusion(ble, pdr, timestamp_ms, is_moving)
        else:
            self._counts['weighted_average'] += 1
            fused = self._weighted_average_fusion(ble, pdr, timestamp_ms, is_moving)

        self._record(fused, timestamp_ms)

        if (self.config.enable_prediction and is_moving
                and len(self.history) >= 2 and self.is_moving_significantly()):
            predicted = self.predict(self.config.prediction_time_ms, fused, timestamp_ms)
            if predicted is not fused:
                self._counts['predicted'] += 1
            return predicted
        return fused

    def _age_pdr(self, pdr: UserPosition, timestamp_ms: int,
                 last_ble_ms: Optional[int]) -> UserPosition:
        if self.last_fused is None:
            return pdr
        since_ble = timestamp_ms - (last_ble_ms if last_ble_ms is not None else 0)
        decay = min(0.3, since_ble / 30000.0)
        return pdr.with_updates(
            confidence=max(0.3, pdr.confidence * (1.0 - decay)),
            accuracy=pdr.accuracy * (1.0 + decay),
        )

    def compute_weights(
        self,
        ble: UserPosition,
        pdr: UserPosition,
        timestamp_ms: int,
        is_moving: bool,
    ) -> Tuple[float, float]:
        """Normalized (ble_weight, pdr_weight) for weighted averaging."""
        base = self.config.ble_weight
        w_ble = base
        w_pdr = 1.0 - base

        w_ble *= 1.0 + (ble.confidence - 0.5) * CONFIDENCE_FACTOR
        w_pdr *= 1.0 + (pdr.confidence - 0.5) * CONFIDENCE_FACTOR

        w_ble *= max(0.2, 1.0 - ble.accuracy * ACCURACY_FACTOR)
        w_pdr *= max(0.2, 1.0 - pdr.accuracy * ACCURACY_FACTOR)

        ble_age = (timestamp_ms - ble.timestamp) / 1000.0
        pdr_age = (timestamp_ms - pdr.timestamp) / 1000.0
        w_ble *= max(0.1, 1.0 - ble_age * RECENCY_FACTOR)
        w_pdr *= max(0.1, 1.0 - pdr_age * RECENCY_FACTOR)

        if is_moving:
            w_pdr *= 1.2
        else:
            w_ble *= 1.3

        _, relative = position_difference(ble, pdr)
        if relative > 2.0:
            # Inconsistent fixes: favor the more confident source
            if ble.confidence > pdr.confidence:
                w_ble *= 1.0 + CONSISTENCY_FACTOR
            else:
                w_pdr *= 1.0 + CONSISTENCY_FACTOR

        total = w_ble + w_pdr
        if total > 0:
            return w_ble / total, w_pdr / total
        return base, 1.0 - base

    def transition_factor(self, distance: float, is_moving: bool) -> float:
        """Smoothing factor towards the new fix, clamped to [0.05, 0.8]."""
        factor = self.config.transition_factor
        if distance < 1.0:
            factor *= 1.5
        elif distance > 5.0:
            factor *= 0.5
        factor *= 1.2 if is_moving else 0.8
        return min(max(factor, 0.05), 0.8)

    def _weighted_average_fusion(
        self,
        ble: UserPosition,
        pdr: UserPosition,
        timestamp_ms: int,
        is_moving: bool,
    ) -> UserPosition:
        distance, relative = position_difference(ble, pdr)
        w_ble, w_pdr = self.compute_weights(ble, pdr, timestamp_ms, is_moving)
        _LOGGER.debug("Fusion weights: BLE=%.3f, PDR=%.3f (diff=%.2f m)", w_ble, w_pdr, distance)

        x = ble.x * w_ble + pdr.x * w_pdr
        y = ble.y * w_ble + pdr.y * w_pdr
        if self.config.smooth_transition and self.last_fused is not None:
            factor = self.transition_factor(distance, is_moving)
            x = self.last_fused.x * (1.0 - factor) + x * factor
            y = self.last_fused.y * (1.0 - factor) + y * factor

        accuracy = (ble.accuracy * w_ble + pdr.accuracy * w_pdr) * (1.0 - 0.3 * math.exp(-distance / 2.0))
        confidence = (ble.confidence * w_ble + pdr.confidence * w_pdr) * math.exp(-relative / 3.0)
        return UserPosition(
            x=x,
            y=y,
            accuracy=accuracy,
            timestamp=timestamp_ms,
            source=PositionSource.FUSION,
            confidence=min(max(confidence, 0.1), 1.0),
        )

    def _kalman_fusion(
        self,
        ble: UserPosition,
        pdr: UserPosition,
        timestamp_ms: int,
        is_moving: bool,
    ) -> UserPosition:
        kf = self.kalman_filter
        kf.update(ble.x, ble.y, ble.accuracy, ble.confidence, ble.timestamp)
        pdr_confidence = pdr.confidence * (0.8 if is_moving else 0.5)
        kf.update(pdr.x, pdr.y, pdr.accuracy, pdr_confidence, pdr.timestamp)

        x, y = kf.position
        uncertainty = kf.position_uncertainty
        speed = kf.speed

        confidence = 0.9 * math.exp(-uncertainty / 3.0)
        confidence *= 0.7 + 0.3 * math.exp(-ble.distance_to(pdr) / 5.0)
        if is_moving:
            confidence *= 1.1 if 0.5 <= speed <= 3.0 else 0.9

        _LOGGER.debug("Kalman position (%.2f, %.2f), uncertainty %.2f m, speed %.2f m/s",
                      x, y, uncertainty, speed)
        return UserPosition(
            x=x,
            y=y,
            accuracy=uncertainty,
            timestamp=timestamp_ms,
            source=PositionSource.FUSION,
            confidence=min(max(confidence, 0.1), 1.0),
        )

    def _record(self, position: UserPosition, timestamp_ms: int) -> None:
        speed = 0.0
        if self.last_fused is not None:
            dt = (timestamp_ms - self.last_fused.timestamp) / 1000.0
            if dt > 0:
                speed = position.distance_to(self.last_fused) / dt
        self.history.append(MovementSample(position, timestamp_ms, speed))
        self.last_fused = position

    def is_moving_significantly(self) -> bool:
        """Mean speed of the last three history entries above 0.2 m/s."""
        if len(self.history) < 2:
            return False
        recent = list(self.history)[-3:]
        return float(np.mean([s.speed for s in recent])) > MOVING_SPEED_THRESHOLD

    def movement_direction(self) -> Tuple[float, float]:
        """Mean unit direction of the last five moves longer than 5 cm; (1, 0) if none."""
        recent = list(self.history)[-5:]
        sum_x = 0.0
        sum_y = 0.0
        for prev, curr in zip(recent, recent[1:]):
            dx = curr.position.x - prev.position.x
            dy = curr.position.y - prev.position.y
            dist = math.hypot(dx, dy)
            if dist > MIN_MOVE_DISTANCE:
                sum_x += dx / dist
                sum_y += dy / dist
        norm = math.hypot(sum_x, sum_y)
        if norm > 0:
            return sum_x / norm, sum_y / norm
        return 1.0, 0.0

    def predict(self, prediction_time_ms: int, current: UserPosition,
                timestamp_ms: int) -> UserPosition:
        """Extrapolate `current` along the recent direction of travel.

        Returns `current` itself when history is too short or the recent
        mean speed is below 0.1 m/s.
        """
        if len(self.history) < 2:
            return current
        speeds = [s.speed for s in list(self.history)[-5:] if s.speed > 0]
        avg_speed = float(np.mean(speeds)) if speeds else 0.0
        if avg_speed < 0.1:
            return current

        ux, uy = self.movement_direction()
        horizon = prediction_time_ms / 1000.0
        step = avg_speed * horizon
        decay = min(0.5, horizon / 5.0)
        _LOGGER.debug("Predicting %.2f m ahead (speed %.2f m/s, direction %.1f deg)",
                      step, avg_speed, math.degrees(math.atan2(uy, ux)))
        return UserPosition(
            x=current.x + ux * step,
            y=current.y + uy * step,
            accuracy=current.accuracy * (1.0 + 0.5 * decay),
            timestamp=timestamp_ms + prediction_time_ms,
            source=PositionSource.FUSION,
            confidence=max(0.2, current.confidence * (1.0 - decay)),
        )

    def reset(self) -> None:
        """Clear history, the last fused position and the Kalman track."""
        self.last_fused = None
        self.history.clear()
        self.kalman_filter.reset()

    def get_statistics(self) -> dict:
        """Counts of each fusion path since construction."""
        stats = dict(self._counts)
        stats['total'] = sum(self._counts.values())
        stats['history_size'] = len(self.history)
        return stats
