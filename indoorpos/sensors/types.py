"""
Data structures for inertial and environmental sensor processing.

This module defines the shared types used by step detection, heading
estimation, step length and PDR:
    - Sensor samples (accelerometer, gyroscope, magnetometer, rotation vector)
    - Step-detection state enum and result record
    - Heading accuracy/source enums and result records
    - Frozen configuration dataclasses with validated defaults

Units (as delivered by the sensor source):
    - accelerometer: m/s²
    - gyroscope: rad/s
    - magnetometer: µT
    - rotation vector: unit quaternion (x, y, z, w), scalar last
    - timestamps: monotonic integer nanoseconds

Heading convention:
    Degrees in [0, 360), 0 = North, increasing clockwise (towards East).
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

NANOS_PER_MILLI = 1_000_000
NANOS_PER_SECOND = 1_000_000_000


@dataclass(frozen=True)
class _AxisSample:
    """Three-axis sample with a nanosecond timestamp."""

    x: float
    y: float
    z: float
    timestamp_ns: int = 0

    def magnitude(self) -> float:
        """Euclidean norm sqrt(x² + y² + z²)."""
        return float(np.sqrt(self.x * self.x + self.y * self.y + self.z * self.z))

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    @property
    def timestamp_ms(self) -> int:
        return self.timestamp_ns // NANOS_PER_MILLI

    @classmethod
    def from_array(cls, values, timestamp_ns: int = 0):
        """
        Build a sample from a length-3 vector.

        Raises:
            ValueError: If values does not have shape (3,).
        """
        arr = np.asarray(values, dtype=float)
        if arr.shape != (3,):
            raise ValueError(f"{cls.__name__} values must have shape (3,), got {arr.shape}")
        return cls(float(arr[0]), float(arr[1]), float(arr[2]), int(timestamp_ns))


@dataclass(frozen=True)
class Accelerometer(_AxisSample):
    """Specific force in the device frame [m/s²]."""


@dataclass(frozen=True)
class Gyroscope(_AxisSample):
    """Angular rate in the device frame [rad/s]. Positive z is counter-clockwise."""


@dataclass(frozen=True)
class Magnetometer(_AxisSample):
    """Magnetic field in the device frame [µT]."""


@dataclass(frozen=True)
class RotationVector:
    """
    Device attitude as a unit quaternion (x, y, z, w), scalar last.

    The quaternion rotates device-frame vectors into the East-North-Up world
    frame, as reported by fused platform orientation sensors.
    """

    x: float
    y: float
    z: float
    w: float
    timestamp_ns: int = 0

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z, self.w], dtype=float)

    @property
    def timestamp_ms(self) -> int:
        return self.timestamp_ns // NANOS_PER_MILLI

    @classmethod
    def from_array(cls, values, timestamp_ns: int = 0) -> "RotationVector":
        arr = np.asarray(values, dtype=float)
        if arr.shape != (4,):
            raise ValueError(f"RotationVector values must have shape (4,), got {arr.shape}")
        return cls(float(arr[0]), float(arr[1]), float(arr[2]), float(arr[3]), int(timestamp_ns))


class StepState(Enum):
    """States of the step-detection cycle IDLE→RISING→PEAK→FALLING→VALLEY→IDLE."""

    IDLE = "IDLE"
    RISING = "RISING"
    PEAK = "PEAK"
    FALLING = "FALLING"
    VALLEY = "VALLEY"


class HeadingAccuracy(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class HeadingSource(Enum):
    GYROSCOPE = "GYROSCOPE"
    MAGNETOMETER = "MAGNETOMETER"
    ROTATION_VECTOR = "ROTATION_VECTOR"


@dataclass(frozen=True)
class StepResult:
    """
    Output of one StepDetector call.

    Attributes:
        step_detected: True only on the call that accepted a step.
        step_count: Cumulative accepted steps since construction/reset.
        filtered_acceleration: Low-passed accelerometer magnitude [m/s²].
        filtered_gyro_magnitude: Low-passed gyro magnitude [rad/s], 0 when
            no gyroscope sample was supplied.
        current_state: Name of the state after this call.
        timestamp: Sample timestamp [ns].
    """

    step_detected: bool
    step_count: int
    filtered_acceleration: float
    filtered_gyro_magnitude: float
    current_state: str
    timestamp: int


@dataclass(frozen=True)
class HeadingResult:
    """Complementary-filter heading [deg], its accuracy/source and the gyro increment [deg]."""

    heading: float
    accuracy: HeadingAccuracy
    source: HeadingSource
    gyro_heading_change: float
    timestamp: int


@dataclass(frozen=True)
class KalmanHeadingResult:
    """Kalman heading [deg], heading rate [deg/s], heading variance [rad²] and accuracy bucket."""

    heading: float
    heading_rate: float
    variance: float
    accuracy: HeadingAccuracy
    timestamp: int


def _check_alpha(name: str, value: float) -> None:
    if not 0.0 < value <= 1.0:
        raise ValueError(f"{name} must be in (0, 1], got {value}")


def _check_range(name: str, low: float, high: float) -> None:
    if low < 0 or high < 0:
        raise ValueError(f"{name} bounds must be non-negative, got [{low}, {high}]")
    if low > high:
        raise ValueError(f"{name} minimum {low} exceeds maximum {high}")


@dataclass(frozen=True)
class StepDetectorConfig:
    """
    Tunables for the step-detection state machine.

    Attributes:
        accel_alpha: Low-pass coefficient for accelerometer magnitude.
        gyro_alpha: Low-pass coefficient for gyroscope magnitude.
        peak_threshold: Base threshold to leave IDLE [m/s²].
        valley_threshold: Base threshold to leave PEAK [m/s²].
        min_peak_valley_height: Minimum peak minus valley for a valid step [m/s²].
        min_step_interval_ms: Minimum time between accepted steps.
        max_step_interval_ms: Maximum time between accepted steps.
        gyro_threshold: Minimum filtered gyro magnitude when gyro is present [rad/s].
        min_peak_duration_ms: Minimum peak-to-valley duration.
        max_peak_duration_ms: Maximum peak-to-valley duration, also the PEAK timeout.
        window_size: Capacity of the adaptive-threshold window. Adaptive
            thresholds kick in once the window is half full.

    Example:
        >>> config = StepDetectorConfig.sensitive()
        >>> config.peak_threshold
        10.0
    """

    accel_alpha: float = 0.3
    gyro_alpha: float = 0.2
    peak_threshold: float = 10.5
    valley_threshold: float = 9.5
    min_peak_valley_height: float = 0.7
    min_step_interval_ms: int = 250
    max_step_interval_ms: int = 2000
    gyro_threshold: float = 0.2
    min_peak_duration_ms: int = 60
    max_peak_duration_ms: int = 500
    window_size: int = 50

    def __post_init__(self) -> None:
        """Validate structurally impossible values; zero thresholds are allowed."""
        _check_alpha("accel_alpha", self.accel_alpha)
        _check_alpha("gyro_alpha", self.gyro_alpha)
        _check_range("step interval", self.min_step_interval_ms, self.max_step_interval_ms)
        _check_range("peak duration", self.min_peak_duration_ms, self.max_peak_duration_ms)
        if self.window_size < 2:
            raise ValueError(f"window_size must be >= 2, got {self.window_size}")

    @classmethod
    def walking(cls) -> "StepDetectorConfig":
        """Defaults tuned for normal walking with the phone in hand."""
        return cls()

    @classmethod
    def sensitive(cls) -> "StepDetectorConfig":
        """Lower thresholds for slow or shuffling gaits (more false positives)."""
        return cls(peak_threshold=10.0, valley_threshold=9.6, min_peak_valley_height=0.5)


@dataclass(frozen=True)
class HeadingConfig:
    """Complementary filter: gyro integration weight and blend coefficient alpha."""

    gyro_weight: float = 0.98
    alpha: float = 0.98

    def __post_init__(self) -> None:
        if self.gyro_weight < 0:
            raise ValueError(f"gyro_weight must be non-negative, got {self.gyro_weight}")
        if not 0.0 <= self.alpha <= 1.0:
            raise ValueError(f"alpha must be in [0, 1], got {self.alpha}")


@dataclass(frozen=True)
class KalmanHeadingConfig:
    """
    Base noise parameters for the scalar heading Kalman filter.

    gyro_noise, magnetometer_noise and process_noise are the initial values of
    the adaptive noise model; rot_vector_noise stays fixed. Variances in rad².
    """

    gyro_noise: float = 0.01
    magnetometer_noise: float = 0.05
    rot_vector_noise: float = 0.01
    process_noise: float = 0.001
    initial_variance: float = 10.0
    max_dt: float = 0.1

    def __post_init__(self) -> None:
        for name in ("gyro_noise", "magnetometer_noise", "rot_vector_noise",
                     "process_noise", "initial_variance"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")
        if self.max_dt <= 0:
            raise ValueError(f"max_dt must be positive, got {self.max_dt}")


@dataclass(frozen=True)
class StepLengthConfig:
    """User height [m], calibration factor and history sizes for step length estimation."""

    user_height: float = 1.7
    calibration_factor: float = 1.0
    history_size: int = 5
    pattern_window: int = 20

    def __post_init__(self) -> None:
        if self.user_height <= 0:
            raise ValueError(f"user_height must be positive, got {self.user_height}")
        if self.calibration_factor <= 0:
            raise ValueError(f"calibration_factor must be positive, got {self.calibration_factor}")
        if self.history_size < 1 or self.pattern_window < 10:
            raise ValueError("history_size must be >= 1 and pattern_window >= 10")


@dataclass(frozen=True)
class PdrConfig:
    """Per-step accuracy growth [m] and confidence decay for PDR position updates."""

    accuracy_decay: float = 0.05
    step_confidence: float = 0.9
    confidence_decay: float = 0.01

    def __post_init__(self) -> None:
        if self.accuracy_decay < 0:
            raise ValueError(f"accuracy_decay must be non-negative, got {self.accuracy_decay}")
        if not 0.0 <= self.step_confidence <= 1.0:
            raise ValueError(f"step_confidence must be in [0, 1], got {self.step_confidence}")
        if not 0.0 <= self.confidence_decay <= 1.0:
            raise ValueError(f"confidence_decay must be in [0, 1], got {self.confidence_decay}")

