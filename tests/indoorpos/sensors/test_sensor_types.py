"""
Unit tests for indoorpos/sensors/types.py.

Tests cover:
    - Sample magnitude, array conversion and timestamp units
    - Shape validation of from_array constructors
    - Configuration defaults, presets and validation

Run with: pytest tests/indoorpos/sensors/test_sensor_types.py -v
"""

import unittest

import numpy as np
import pytest

from indoorpos.sensors.types import (
    Accelerometer,
    Gyroscope,
    HeadingConfig,
    KalmanHeadingConfig,
    Magnetometer,
    PdrConfig,
    RotationVector,
    StepDetectorConfig,
    StepLengthConfig,
)


class TestSensorSamples(unittest.TestCase):

    def test_magnitude(self) -> None:
        assert np.isclose(Accelerometer(3.0, 4.0, 0.0).magnitude(), 5.0)
        assert np.isclose(Gyroscope(0.0, 0.0, -0.5).magnitude(), 0.5)

    def test_timestamp_ms(self) -> None:
        sample = Magnetometer(0.0, 20.0, -40.0, timestamp_ns=1_234_567_890)
        assert sample.timestamp_ms == 1234

    def test_from_array(self) -> None:
        sample = Accelerometer.from_array([0.1, 0.2, 9.8], timestamp_ns=5)
        assert isinstance(sample, Accelerometer)
        np.testing.assert_allclose(sample.as_array(), [0.1, 0.2, 9.8])
        assert sample.timestamp_ns == 5

    def test_from_array_wrong_shape(self) -> None:
        with pytest.raises(ValueError, match="must have shape"):
            Gyroscope.from_array([0.0, 1.0])

    def test_rotation_vector_from_array(self) -> None:
        rv = RotationVector.from_array([0.0, 0.0, 0.0, 1.0], timestamp_ns=2_000_000)
        assert rv.w == 1.0
        assert rv.timestamp_ms == 2
        with pytest.raises(ValueError, match="must have shape"):
            RotationVector.from_array([0.0, 0.0, 1.0])

    def test_samples_are_immutable(self) -> None:
        sample = Accelerometer(0.0, 0.0, 9.8)
        with pytest.raises(AttributeError):
            sample.x = 1.0


class TestStepDetectorConfig(unittest.TestCase):

    def test_defaults(self) -> None:
        config = StepDetectorConfig()
        assert config.accel_alpha == 0.3
        assert config.peak_threshold == 10.5
        assert config.valley_threshold == 9.5
        assert config.min_step_interval_ms == 250
        assert config.max_step_interval_ms == 2000
        assert config.window_size == 50

    def test_presets(self) -> None:
        assert StepDetectorConfig.walking() == StepDetectorConfig()
        sensitive = StepDetectorConfig.sensitive()
        assert sensitive.peak_threshold == 10.0
        assert sensitive.valley_threshold == 9.6
        assert sensitive.min_peak_valley_height == 0.5

    def test_zero_thresholds_allowed(self) -> None:
        config = StepDetectorConfig(peak_threshold=0.0, valley_threshold=0.0,
                                    min_peak_valley_height=0.0)
        assert config.peak_threshold == 0.0

    def test_invalid_alpha(self) -> None:
        with pytest.raises(ValueError, match="accel_alpha"):
            StepDetectorConfig(accel_alpha=0.0)
        with pytest.raises(ValueError, match="gyro_alpha"):
            StepDetectorConfig(gyro_alpha=1.5)

    def test_inverted_range(self) -> None:
        with pytest.raises(ValueError, match="exceeds maximum"):
            StepDetectorConfig(min_step_interval_ms=3000, max_step_interval_ms=2000)

    def test_negative_duration(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            StepDetectorConfig(min_peak_duration_ms=-1)

    def test_window_size(self) -> None:
        with pytest.raises(ValueError, match="window_size"):
            StepDetectorConfig(window_size=1)


class TestOtherConfigs(unittest.TestCase):

    def test_heading_config(self) -> None:
        assert HeadingConfig().alpha == 0.98
        with pytest.raises(ValueError, match="alpha"):
            HeadingConfig(alpha=1.5)

    def test_kalman_heading_config(self) -> None:
        config = KalmanHeadingConfig()
        assert config.magnetometer_noise == 0.05
        with pytest.raises(ValueError, match="gyro_noise"):
            KalmanHeadingConfig(gyro_noise=-0.1)
        with pytest.raises(ValueError, match="max_dt"):
            KalmanHeadingConfig(max_dt=0.0)

    def test_step_length_config(self) -> None:
        with pytest.raises(ValueError, match="user_height"):
            StepLengthConfig(user_height=0.0)

    def test_pdr_config(self) -> None:
        with pytest.raises(ValueError, match="step_confidence"):
            PdrConfig(step_confidence=1.2)


if __name__ == "__main__":
    unittest.main()
