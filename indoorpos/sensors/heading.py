"""
Heading estimation from gyroscope integration plus absolute references.

Two estimators share the same inputs (gyroscope sample carrying the
timestamp, optional accelerometer+magnetometer pair, optional rotation
vector) and the same reference precedence:

    rotation vector  >  tilt-compensated compass  >  gyro only

HeadingEstimator:
    Complementary filter. Gyro yaw rate is integrated (sign flipped: device
    +z rotation is counter-clockwise, compass heading grows clockwise) and
    pulled towards the absolute reference along the shorter arc:
        ψ += -ω_z · dt · (180/π) · gyro_weight
        ψ += shortest_angle_diff(ψ, ψ_ref) · (1 - α)

KalmanHeadingEstimator:
    Scalar Kalman filter on heading (radians internally) with an adaptive
    noise model driven by rotation intensity and magnetic disturbance.
        predict:  ψ += (rate + ω) · min(dt, dt_max);  rate = ω
                  P += dt² · q + σ²_gyro
        correct:  ν = wrap(ψ_ref - ψ);  K = P / (P + R)  (halved if |ν| > 0.5)
                  ψ += K ν;  P *= (1 - K)

All headings exposed to callers are degrees in [0, 360), 0 = North.
"""

import logging
import math
from typing import Optional, Tuple

import numpy as np

from indoorpos.sensors.orientation import compass_heading, rotation_vector_heading
from indoorpos.sensors.types import (
    NANOS_PER_SECOND,
    Accelerometer,
    Gyroscope,
    HeadingAccuracy,
    HeadingConfig,
    HeadingResult,
    HeadingSource,
    KalmanHeadingConfig,
    KalmanHeadingResult,
    Magnetometer,
    RotationVector,
)
from indoorpos.utils.angles import normalize_heading, shortest_angle_diff, wrap_angle

_LOGGER = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi


def _absolute_reference(
    accel: Optional[Accelerometer],
    mag: Optional[Magnetometer],
    rotation_vector: Optional[RotationVector],
) -> Tuple[float, Optional[HeadingSource]]:
    """Best available absolute heading [deg] and its source, or (NaN, None)."""
    if rotation_vector is not None:
        return rotation_vector_heading(rotation_vector), HeadingSource.ROTATION_VECTOR
    if accel is not None and mag is not None:
        heading = compass_heading(accel, mag)
        if not math.isnan(heading):
            return heading, HeadingSource.MAGNETOMETER
    return float("nan"), None


class HeadingEstimator:
    """
    Complementary-filter heading estimator.

    Attributes:
        config: Default gyro weight and blend coefficient.
        heading: Current heading in degrees [0, 360).

    Example:
        >>> est = HeadingEstimator()
        >>> r = est.update(Gyroscope(0.0, 0.0, 0.0, 0), rotation_vector=RotationVector(0, 0, 0, 1, 0))
        >>> r.heading
        0.0
    """

    def __init__(self, config: Optional[HeadingConfig] = None):
        self.config = config if config is not None else HeadingConfig()
        self.reset()

    def reset(self) -> None:
        self.heading = 0.0
        self.last_timestamp_ns: Optional[int] = None
        self.last_accel: Optional[Accelerometer] = None
        self.last_mag: Optional[Magnetometer] = None

    def update(
        self,
        gyro: Gyroscope,
        accel: Optional[Accelerometer] = None,
        mag: Optional[Magnetometer] = None,
        rotation_vector: Optional[RotationVector] = None,
        config: Optional[HeadingConfig] = None,
    ) -> HeadingResult:
        """
        Integrate one gyroscope sample and blend with the best reference.

        Args:
            gyro: Gyroscope sample; its timestamp drives integration.
            accel: Optional accelerometer sample (needs mag as well).
            mag: Optional magnetometer sample (needs accel as well).
            rotation_vector: Optional rotation-vector sample.
            config: Optional per-call override of gyro weight / alpha.

        Returns:
            HeadingResult with heading in [0, 360).
        """
        cfg = config if config is not None else self.config
        timestamp = gyro.timestamp_ns
        if accel is not None and mag is not None:
            self.last_accel, self.last_mag = accel, mag

        if self.last_timestamp_ns is None:
            self.last_timestamp_ns = timestamp
            reference, source = _absolute_reference(accel, mag, rotation_vector)
            if source is not None:
                self.heading = reference
                _LOGGER.debug("Initial heading %.2f deg from %s", reference, source.name)
            return HeadingResult(
                heading=self.heading,
                accuracy=HeadingAccuracy.LOW,
                source=source if source is not None else HeadingSource.GYROSCOPE,
                gyro_heading_change=0.0,
                timestamp=timestamp,
            )

        dt = (timestamp - self.last_timestamp_ns) / NANOS_PER_SECOND
        if dt <= 0.0:
            _LOGGER.debug("Ignoring non-advancing gyroscope timestamp %d", timestamp)
            return HeadingResult(self.heading, HeadingAccuracy.LOW, HeadingSource.GYROSCOPE,
                                 0.0, timestamp)
        self.last_timestamp_ns = timestamp

        gyro_change = math.degrees(-gyro.z * dt)
        self.heading = normalize_heading(self.heading + gyro_change * cfg.gyro_weight)

        reference, source = _absolute_reference(accel, mag, rotation_vector)
        if source is None:
            source, accuracy = HeadingSource.GYROSCOPE, HeadingAccuracy.LOW
        else:
            diff = shortest_angle_diff(self.heading, reference)
            self.heading = normalize_heading(self.heading + diff * (1.0 - cfg.alpha))
            accuracy = (HeadingAccuracy.HIGH if source is HeadingSource.ROTATION_VECTOR
                        else HeadingAccuracy.MEDIUM)

        _LOGGER.debug("Heading %.2f deg (source %s, accuracy %s)",
                      self.heading, source.name, accuracy.name)
        return HeadingResult(
            heading=self.heading,
            accuracy=accuracy,
            source=source,
            gyro_heading_change=gyro_change,
            timestamp=timestamp,
        )

    def get_statistics(self) -> dict:
        return {
            'heading': self.heading,
            'last_timestamp_ns': self.last_timestamp_ns,
            'last_accel': self.last_accel,
            'last_mag': self.last_mag,
        }


def accuracy_from_variance(variance: float) -> HeadingAccuracy:
    """Bucket heading variance [rad²]: < 0.01 HIGH, < 0.1 MEDIUM, else LOW."""
    if variance < 0.01:
        return HeadingAccuracy.HIGH
    if variance < 0.1:
        return HeadingAccuracy.MEDIUM
    return HeadingAccuracy.LOW


def gyro_noise_for(gyro_magnitude: float) -> float:
    """Gyro noise bucket: > 1.0 rad/s → 0.03, > 0.5 → 0.015, else 0.01."""
    if gyro_magnitude > 1.0:
        return 0.03
    if gyro_magnitude > 0.5:
        return 0.015
    return 0.01


def magnetometer_noise_for(disturbance: float) -> float:
    """Magnetometer noise bucket: disturbance > 5 → 0.2, > 2 → 0.1, else 0.05."""
    if disturbance > 5.0:
        return 0.2
    if disturbance > 2.0:
        return 0.1
    return 0.05


def process_noise_for(gyro_magnitude: float) -> float:
    """Process noise bucket at gyro thresholds 0.1 / 0.3 / 0.7 rad/s."""
    if gyro_magnitude < 0.1:
        return 0.0005
    if gyro_magnitude < 0.3:
        return 0.001
    if gyro_magnitude < 0.7:
        return 0.002
    return 0.005


class KalmanHeadingEstimator:
    """
    Scalar Kalman filter heading estimator with adaptive noise.

    State (radians): heading ψ ∈ [0, 2π), heading rate, variance P and rate
    variance. The adaptive noise model is recomputed on every sample from
    the gyro magnitude and from the smoothed frame-to-frame magnetometer
    change (magnetic disturbance level).

    Attributes:
        config: Base noise parameters.
        heading: Heading in radians [0, 2π).
        heading_rate: Last heading rate in rad/s (clockwise positive).
        variance: Heading variance [rad²].
        rate_variance: Heading-rate variance.
    """

    def __init__(self, config: Optional[KalmanHeadingConfig] = None):
        self.config = config if config is not None else KalmanHeadingConfig()
        self.reset()

    def reset(self) -> None:
        self.heading = 0.0
        self.heading_rate = 0.0
        self.variance = self.config.initial_variance
        self.rate_variance = self.config.initial_variance
        self.last_timestamp_ns: Optional[int] = None
        self.gyro_noise = self.config.gyro_noise
        self.magnetometer_noise = self.config.magnetometer_noise
        self.process_noise = self.config.process_noise
        self.magnetic_disturbance = 0.0
        self.last_mag: Optional[np.ndarray] = None

    def update(
        self,
        gyro: Gyroscope,
        accel: Optional[Accelerometer] = None,
        mag: Optional[Magnetometer] = None,
        rotation_vector: Optional[RotationVector] = None,
    ) -> KalmanHeadingResult:
        """
        Predict with the gyroscope, then correct with the best absolute reference.

        Args:
            gyro: Gyroscope sample; its timestamp drives the prediction.
            accel: Optional accelerometer sample (needs mag as well).
            mag: Optional magnetometer sample; also feeds disturbance detection.
            rotation_vector: Optional rotation-vector sample.

        Returns:
            KalmanHeadingResult with heading in degrees [0, 360).
        """
        timestamp = gyro.timestamp_ns

        if self.last_timestamp_ns is None:
            self.last_timestamp_ns = timestamp
            reference, source = _absolute_reference(accel, mag, rotation_vector)
            if source is not None:
                self.heading = math.radians(reference)
                _LOGGER.debug("Initial Kalman heading %.2f deg from %s", reference, source.name)
            return self._result(timestamp)

        dt = (timestamp - self.last_timestamp_ns) / NANOS_PER_SECOND
        if dt <= 0.0:
            _LOGGER.debug("Ignoring non-advancing gyroscope timestamp %d", timestamp)
            return self._result(timestamp)
        self.last_timestamp_ns = timestamp
        dt = min(dt, self.config.max_dt)

        self._adapt_noise(gyro, mag)

        # Predict
        rate = -gyro.z
        self.heading = (self.heading + (self.heading_rate + rate) * dt) % TWO_PI
        self.heading_rate = rate
        self.variance += dt * dt * self.process_noise + self.gyro_noise
        self.rate_variance += self.process_noise

        # Correct
        reference, source = _absolute_reference(accel, mag, rotation_vector)
        if source is not None:
            noise = (self.config.rot_vector_noise if source is HeadingSource.ROTATION_VECTOR
                     else self.magnetometer_noise)
            innovation = wrap_angle(math.radians(reference) - self.heading)
            gain = self.variance / (self.variance + noise)
            if abs(innovation) > 0.5:
                gain *= 0.5
            self.heading = (self.heading + gain * innovation) % TWO_PI
            self.variance *= (1.0 - gain)
            _LOGGER.debug("Kalman correction from %s: innovation=%.4f, gain=%.4f, variance=%.5f",
                          source.name, innovation, gain, self.variance)

        return self._result(timestamp)

    def _adapt_noise(self, gyro: Gyroscope, mag: Optional[Magnetometer]) -> None:
        gyro_magnitude = gyro.magnitude()
        self.gyro_noise = gyro_noise_for(gyro_magnitude)

        if mag is not None:
            current = mag.as_array()
            if self.last_mag is not None and np.any(self.last_mag != 0.0):
                change = float(np.sum(np.abs(current - self.last_mag)))
                self.magnetic_disturbance = 0.9 * self.magnetic_disturbance + 0.1 * change
                self.magnetometer_noise = magnetometer_noise_for(self.magnetic_disturbance)
            self.last_mag = current

        self.process_noise = process_noise_for(gyro_magnitude)
        _LOGGER.debug("Adaptive noise: gyro=%.4f, mag=%.3f, process=%.4f",
                      self.gyro_noise, self.magnetometer_noise, self.process_noise)

    def _result(self, timestamp: int) -> KalmanHeadingResult:
        return KalmanHeadingResult(
            heading=normalize_heading(math.degrees(self.heading)),
            heading_rate=math.degrees(self.heading_rate),
            variance=self.variance,
            accuracy=accuracy_from_variance(self.variance),
            timestamp=timestamp,
        )

    def noise_state(self) -> dict:
        """Current adaptive noise parameters and magnetic disturbance level."""
        return {
            'gyro_noise': self.gyro_noise,
            'magnetometer_noise': self.magnetometer_noise,
            'process_noise': self.process_noise,
            'magnetic_disturbance': self.magnetic_disturbance,
        }

    def get_statistics(self) -> dict:
        stats = {
            'heading': self.heading,
            'heading_rate': self.heading_rate,
            'variance': self.variance,
            'rate_variance': self.rate_variance,
            'last_timestamp_ns': self.last_timestamp_ns,
            'last_mag': None if self.last_mag is None else self.last_mag.tolist(),
        }
        stats.update(self.noise_state())
        return stats
