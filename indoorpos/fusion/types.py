"""Data types for position fusion.

This module defines the position value exchanged between every positioning
source (BLE triangulation, PDR, fusion) and its consumers, together with the
fusion configuration.

UserPosition is immutable: every computation produces a new instance. The
"invalid" sentinel (NaN coordinates, accuracy = float max, confidence 0,
source UNKNOWN) stands in for "no fix" instead of an exception.
"""

import math
import sys
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

FLOAT_MAX = sys.float_info.max


class PositionSource(Enum):
    BLE = "BLE"
    WIFI = "WIFI"
    PDR = "PDR"
    FUSION = "FUSION"
    UNKNOWN = "UNKNOWN"
    GROUND_TRUTH = "GROUND_TRUTH"


class FusionMethod(Enum):
    WEIGHTED_AVERAGE = "WEIGHTED_AVERAGE"
    KALMAN_FILTER = "KALMAN_FILTER"


@dataclass(frozen=True)
class UserPosition:
    """2D position estimate in building coordinates.

    Attributes:
        x: East/right coordinate in meters.
        y: North/up coordinate in meters.
        accuracy: Horizontal uncertainty in meters (lower is better).
        timestamp: Time of the estimate in milliseconds.
        source: Which subsystem produced the estimate.
        confidence: Confidence in [0, 1]; clamped on construction.
        sigma_x: Optional per-axis standard deviation [m].
        sigma_y: Optional per-axis standard deviation [m].

    Example:
        >>> a = UserPosition(0.0, 0.0, accuracy=2.0, timestamp=1000)
        >>> b = UserPosition(3.0, 4.0, accuracy=2.0, timestamp=2000)
        >>> a.distance_to(b)
        5.0
    """

    x: float
    y: float
    accuracy: float = 0.0
    timestamp: int = 0
    source: PositionSource = PositionSource.UNKNOWN
    confidence: float = 0.5
    sigma_x: Optional[float] = None
    sigma_y: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate source and clamp confidence to [0, 1]."""
        if not isinstance(self.source, PositionSource):
            raise TypeError(f"source must be PositionSource, got {type(self.source)}")
        if self.accuracy < 0:
            raise ValueError(f"accuracy must be non-negative, got {self.accuracy}")
        confidence = self.confidence
        if math.isnan(confidence):
            confidence = 0.0
        object.__setattr__(self, 'confidence', max(0.0, min(1.0, float(confidence))))

    @classmethod
    def invalid(cls, timestamp: int = 0) -> "UserPosition":
        """Sentinel for "no position": NaN coordinates, max accuracy, zero confidence."""
        return cls(
            x=float("nan"),
            y=float("nan"),
            accuracy=FLOAT_MAX,
            timestamp=timestamp,
            source=PositionSource.UNKNOWN,
            confidence=0.0,
        )

    def is_valid(self) -> bool:
        return not (math.isnan(self.x) or math.isnan(self.y)) and self.accuracy < FLOAT_MAX

    def distance_to(self, other: "UserPosition") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def has_moved_significantly(self, other: "UserPosition", threshold: float = 0.5) -> bool:
        """True if both positions are valid and farther apart than threshold [m]."""
        if not (self.is_valid() and other.is_valid()):
            return False
        return self.distance_to(other) > threshold

    def movement_direction_from(self, other: "UserPosition") -> Optional[float]:
        """Direction of travel from `other` to self, degrees via atan2(dy, dx); None if invalid."""
        if not (self.is_valid() and other.is_valid()):
            return None
        return math.degrees(math.atan2(self.y - other.y, self.x - other.x))

    def weighted_average_to(self, other: "UserPosition", weight: float) -> "UserPosition":
        """Blend towards `other` by weight ∈ [0, 1] (0 = self, 1 = other).

        Coordinates, accuracy and confidence are blended linearly; the result
        is tagged FUSION and carries the later timestamp.
        """
        w = max(0.0, min(1.0, weight))
        return UserPosition(
            x=self.x * (1.0 - w) + other.x * w,
            y=self.y * (1.0 - w) + other.y * w,
            accuracy=self.accuracy * (1.0 - w) + other.accuracy * w,
            timestamp=max(self.timestamp, other.timestamp),
            source=PositionSource.FUSION,
            confidence=self.confidence * (1.0 - w) + other.confidence * w,
        )

    def with_updates(self, **changes) -> "UserPosition":
        """Copy with the given fields replaced (re-validated)."""
        return replace(self, **changes)


@dataclass(frozen=True)
class FusionConfig:
    """Configuration of the BLE/PDR position fuser.

    Attributes:
        method: WEIGHTED_AVERAGE or KALMAN_FILTER.
        ble_weight: Base BLE weight for weighted averaging (PDR gets 1 - w).
        smooth_transition: Ease weighted-average output from the last fused position.
        transition_factor: Base easing factor, adapted to [0.05, 0.8].
        enable_prediction: Extrapolate the fused position while moving.
        prediction_time_ms: Extrapolation horizon.
        history_size: Number of fused positions kept for motion statistics.
    """

    method: FusionMethod = FusionMethod.WEIGHTED_AVERAGE
    ble_weight: float = 0.6
    smooth_transition: bool = True
    transition_factor: float = 0.3
    enable_prediction: bool = True
    prediction_time_ms: int = 100
    history_size: int = 10

    def __post_init__(self) -> None:
        if not isinstance(self.method, FusionMethod):
            raise TypeError(f"method must be FusionMethod, got {type(self.method)}")
        if not 0.0 <= self.ble_weight <= 1.0:
            raise ValueError(f"ble_weight must be in [0, 1], got {self.ble_weight}")
        if not 0.0 < self.transition_factor <= 1.0:
            raise ValueError(f"transition_factor must be in (0, 1], got {self.transition_factor}")
        if self.prediction_time_ms < 0:
            raise ValueError(f"prediction_time_ms must be non-negative, got {self.prediction_time_ms}")
        if self.history_size < 2:
            raise ValueError(f"history_size must be >= 2, got {self.history_size}")
