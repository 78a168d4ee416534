"""
Unit tests for indoorpos/sensors/heading.py.

Tests cover:
    - Complementary filter: seeding, gyro integration sign, reference blending,
      source precedence and accuracy buckets
    - Kalman heading: seeding in radians, convergence, adaptive noise, reset
    - Heading range [0, 360) under arbitrary inputs
    - Non-advancing timestamps

Run with: pytest tests/indoorpos/sensors/test_heading.py -v
"""

import math
import unittest

import numpy as np

from indoorpos.sensors.heading import (
    HeadingEstimator,
    KalmanHeadingEstimator,
    accuracy_from_variance,
    gyro_noise_for,
    magnetometer_noise_for,
    process_noise_for,
)
from indoorpos.sensors.types import (
    NANOS_PER_MILLI,
    Accelerometer,
    Gyroscope,
    HeadingAccuracy,
    HeadingConfig,
    HeadingSource,
    Magnetometer,
    RotationVector,
)

FLAT = Accelerometer(0.0, 0.0, 9.8)
MAG_NORTH = Magnetometer(0.0, 20.0, -40.0)
MAG_EAST = Magnetometer(-20.0, 0.0, -40.0)


def gyro_at(ms: int, z: float = 0.0) -> Gyroscope:
    return Gyroscope(0.0, 0.0, z, timestamp_ns=ms * NANOS_PER_MILLI)


def yaw(theta_deg: float) -> RotationVector:
    half = math.radians(theta_deg) / 2.0
    return RotationVector(0.0, 0.0, math.sin(half), math.cos(half))


class TestHeadingEstimator(unittest.TestCase):

    def setUp(self) -> None:
        self.estimator = HeadingEstimator()

    def test_first_call_seeds_from_compass(self) -> None:
        result = self.estimator.update(gyro_at(0), FLAT, MAG_EAST)
        assert np.isclose(result.heading, 90.0)
        assert result.source is HeadingSource.MAGNETOMETER
        assert result.accuracy is HeadingAccuracy.LOW
        assert result.gyro_heading_change == 0.0

    def test_first_call_without_reference(self) -> None:
        result = self.estimator.update(gyro_at(0, z=1.0))
        assert result.heading == 0.0
        assert result.source is HeadingSource.GYROSCOPE

    def test_gyro_only_integration(self) -> None:
        """Positive z rate (counter-clockwise) decreases the compass heading."""
        self.estimator.update(gyro_at(0))
        result = self.estimator.update(gyro_at(1000, z=math.radians(10.0)))
        assert np.isclose(result.gyro_heading_change, -10.0)
        assert np.isclose(result.heading, 360.0 - 10.0 * 0.98)
        assert result.source is HeadingSource.GYROSCOPE
        assert result.accuracy is HeadingAccuracy.LOW

    def test_magnetometer_blend_takes_short_arc(self) -> None:
        self.estimator.update(gyro_at(0), FLAT, MAG_NORTH)
        self.estimator.heading = 350.0
        result = self.estimator.update(gyro_at(20), FLAT, Magnetometer(-3.47, 19.7, -40.0))
        # reference ≈ 10°, heading moves 2% of +20° towards it
        assert 350.0 < result.heading < 351.0
        assert result.source is HeadingSource.MAGNETOMETER
        assert result.accuracy is HeadingAccuracy.MEDIUM

    def test_rotation_vector_preferred(self) -> None:
        self.estimator.update(gyro_at(0))
        result = self.estimator.update(gyro_at(20), FLAT, MAG_EAST, rotation_vector=yaw(0.0))
        assert result.source is HeadingSource.ROTATION_VECTOR
        assert result.accuracy is HeadingAccuracy.HIGH
        assert result.heading == 0.0

    def test_degenerate_compass_falls_back_to_gyro(self) -> None:
        self.estimator.update(gyro_at(0))
        result = self.estimator.update(gyro_at(20), Accelerometer(0.0, 0.0, 0.1), MAG_NORTH)
        assert result.source is HeadingSource.GYROSCOPE

    def test_converges_to_reference(self) -> None:
        self.estimator.update(gyro_at(0))
        for k in range(1, 1000):
            result = self.estimator.update(gyro_at(20 * k), FLAT, MAG_EAST)
        assert np.isclose(result.heading, 90.0, atol=0.1)

    def test_per_call_config(self) -> None:
        self.estimator.update(gyro_at(0))
        result = self.estimator.update(gyro_at(20), FLAT, MAG_EAST, config=HeadingConfig(alpha=0.0))
        assert np.isclose(result.heading, 90.0)

    def test_heading_always_in_range(self) -> None:
        rng = np.random.default_rng(1)
        self.estimator.update(gyro_at(0))
        for k in range(1, 500):
            rv = yaw(float(rng.uniform(-720.0, 720.0))) if k % 3 == 0 else None
            result = self.estimator.update(gyro_at(10 * k, z=float(rng.uniform(-20.0, 20.0))),
                                           rotation_vector=rv)
            assert 0.0 <= result.heading < 360.0

    def test_non_advancing_timestamp(self) -> None:
        self.estimator.update(gyro_at(0))
        self.estimator.update(gyro_at(100, z=0.5))
        before = self.estimator.get_statistics()
        result = self.estimator.update(gyro_at(100, z=5.0))
        assert result.heading == before['heading']
        assert self.estimator.get_statistics() == before

    def test_reset_idempotent(self) -> None:
        self.estimator.update(gyro_at(0), FLAT, MAG_EAST)
        self.estimator.reset()
        once = self.estimator.get_statistics()
        self.estimator.reset()
        assert self.estimator.get_statistics() == once
        assert once == HeadingEstimator().get_statistics()


class TestNoiseBuckets(unittest.TestCase):

    def test_accuracy_from_variance(self) -> None:
        assert accuracy_from_variance(0.005) is HeadingAccuracy.HIGH
        assert accuracy_from_variance(0.05) is HeadingAccuracy.MEDIUM
        assert accuracy_from_variance(0.5) is HeadingAccuracy.LOW

    def test_adaptive_buckets(self) -> None:
        assert gyro_noise_for(0.1) == 0.01
        assert gyro_noise_for(0.7) == 0.015
        assert gyro_noise_for(1.5) == 0.03
        assert magnetometer_noise_for(1.0) == 0.05
        assert magnetometer_noise_for(3.0) == 0.1
        assert magnetometer_noise_for(6.0) == 0.2
        assert process_noise_for(0.05) == 0.0005
        assert process_noise_for(0.2) == 0.001
        assert process_noise_for(0.5) == 0.002
        assert process_noise_for(1.0) == 0.005


class TestKalmanHeadingEstimator(unittest.TestCase):

    def setUp(self) -> None:
        self.estimator = KalmanHeadingEstimator()

    def test_seed_from_reference(self) -> None:
        result = self.estimator.update(gyro_at(0), FLAT, MAG_EAST)
        assert np.isclose(result.heading, 90.0)
        assert np.isclose(self.estimator.heading, math.pi / 2)
        assert result.accuracy is HeadingAccuracy.LOW

    def test_converges_and_variance_shrinks(self) -> None:
        self.estimator.update(gyro_at(0))
        for k in range(1, 200):
            result = self.estimator.update(gyro_at(20 * k), rotation_vector=yaw(-45.0))
        assert np.isclose(result.heading, 45.0, atol=0.5)
        assert result.variance < 0.05
        assert result.accuracy in (HeadingAccuracy.HIGH, HeadingAccuracy.MEDIUM)

    def test_wraps_across_north(self) -> None:
        self.estimator.update(gyro_at(0), rotation_vector=yaw(10.0))  # 350°
        for k in range(1, 100):
            result = self.estimator.update(gyro_at(20 * k), rotation_vector=yaw(-10.0))  # 10°
        assert np.isclose(result.heading, 10.0, atol=0.5)

    def test_gyro_prediction_rate(self) -> None:
        self.estimator.update(gyro_at(0))
        result = self.estimator.update(gyro_at(50, z=-1.0))
        assert np.isclose(result.heading_rate, math.degrees(1.0))
        assert np.isclose(result.heading, math.degrees(0.05))

    def test_dt_capped(self) -> None:
        self.estimator.update(gyro_at(0))
        result = self.estimator.update(gyro_at(5000, z=-1.0))
        assert np.isclose(result.heading, math.degrees(0.1))

    def test_magnetic_disturbance_raises_noise(self) -> None:
        self.estimator.update(gyro_at(0))
        for k in range(1, 40):
            field = MAG_NORTH if k % 2 else Magnetometer(30.0, -10.0, -20.0)
            self.estimator.update(gyro_at(20 * k), FLAT, field)
        state = self.estimator.noise_state()
        assert state['magnetic_disturbance'] > 5.0
        assert state['magnetometer_noise'] == 0.2

    def test_heading_always_in_range(self) -> None:
        rng = np.random.default_rng(2)
        self.estimator.update(gyro_at(0))
        for k in range(1, 500):
            rv = yaw(float(rng.uniform(-720.0, 720.0))) if k % 4 == 0 else None
            result = self.estimator.update(gyro_at(10 * k, z=float(rng.uniform(-30.0, 30.0))),
                                           rotation_vector=rv)
            assert 0.0 <= result.heading < 360.0

    def test_non_advancing_timestamp(self) -> None:
        self.estimator.update(gyro_at(0))
        self.estimator.update(gyro_at(20, z=0.3))
        before = self.estimator.get_statistics()
        self.estimator.update(gyro_at(10, z=3.0), FLAT, MAG_EAST)
        assert self.estimator.get_statistics() == before

    def test_reset_restores_noise(self) -> None:
        self.estimator.update(gyro_at(0))
        for k in range(1, 20):
            field = MAG_NORTH if k % 2 else Magnetometer(30.0, -10.0, -20.0)
            self.estimator.update(gyro_at(20 * k, z=2.0), FLAT, field)
        self.estimator.reset()
        once = self.estimator.get_statistics()
        assert once == KalmanHeadingEstimator().get_statistics()
        self.estimator.reset()
        assert self.estimator.get_statistics() == once


if __name__ == "__main__":
    unittest.main()
