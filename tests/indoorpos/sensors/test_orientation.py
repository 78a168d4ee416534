"""
Unit tests for indoorpos/sensors/orientation.py.

Device lying flat (screen up) so the accelerometer reads (0, 0, g); the
magnetic field points North and down (northern hemisphere).

Run with: pytest tests/indoorpos/sensors/test_orientation.py -v
"""

import math

import numpy as np
import pytest

from indoorpos.sensors.orientation import (
    compass_heading,
    orientation_angles,
    rotation_matrix_from_accel_mag,
    rotation_matrix_from_vector,
    rotation_vector_heading,
)
from indoorpos.sensors.types import Accelerometer, Magnetometer, RotationVector

FLAT = Accelerometer(0.0, 0.0, 9.8)


def z_rotation(theta_deg: float) -> RotationVector:
    half = math.radians(theta_deg) / 2.0
    return RotationVector(0.0, 0.0, math.sin(half), math.cos(half))


class TestRotationMatrixFromAccelMag:

    def test_flat_facing_north_is_identity(self) -> None:
        R = rotation_matrix_from_accel_mag(np.array([0.0, 0.0, 9.8]), np.array([0.0, 20.0, -40.0]))
        np.testing.assert_allclose(R, np.eye(3), atol=1e-12)

    def test_result_is_orthonormal(self) -> None:
        R = rotation_matrix_from_accel_mag(np.array([1.0, 2.0, 9.5]), np.array([10.0, 15.0, -35.0]))
        np.testing.assert_allclose(R @ R.T, np.eye(3), atol=1e-12)
        assert np.isclose(np.linalg.det(R), 1.0)

    def test_free_fall_is_degenerate(self) -> None:
        assert rotation_matrix_from_accel_mag(np.array([0.0, 0.0, 0.5]),
                                              np.array([0.0, 20.0, -40.0])) is None

    def test_field_parallel_to_gravity_is_degenerate(self) -> None:
        assert rotation_matrix_from_accel_mag(np.array([0.0, 0.0, 9.8]),
                                              np.array([0.0, 0.0, -40.0])) is None

    def test_wrong_shape(self) -> None:
        with pytest.raises(ValueError, match="must have shape"):
            rotation_matrix_from_accel_mag(np.array([0.0, 9.8]), np.array([0.0, 20.0, -40.0]))


class TestCompassHeading:

    def test_north(self) -> None:
        assert np.isclose(compass_heading(FLAT, Magnetometer(0.0, 20.0, -40.0)), 0.0)

    def test_east(self) -> None:
        """Field along -x: the device y axis points East."""
        assert np.isclose(compass_heading(FLAT, Magnetometer(-20.0, 0.0, -40.0)), 90.0)

    def test_west(self) -> None:
        assert np.isclose(compass_heading(FLAT, Magnetometer(20.0, 0.0, 40.0)), 270.0)

    def test_degenerate_is_nan(self) -> None:
        assert math.isnan(compass_heading(Accelerometer(0.0, 0.0, 0.0), Magnetometer(0.0, 20.0, -40.0)))


class TestRotationVectorHeading:

    def test_identity(self) -> None:
        assert np.isclose(rotation_vector_heading(RotationVector(0.0, 0.0, 0.0, 1.0)), 0.0)

    def test_counter_clockwise_yaw_decreases_heading(self) -> None:
        for theta in [10.0, 45.0, 90.0, 170.0]:
            heading = rotation_vector_heading(z_rotation(theta))
            assert np.isclose(heading, (360.0 - theta) % 360.0)

    def test_matrix_matches_quaternion(self) -> None:
        R = rotation_matrix_from_vector(z_rotation(90.0))
        expected = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
        np.testing.assert_allclose(R, expected, atol=1e-12)

    def test_orientation_angles_level(self) -> None:
        azimuth, pitch, roll = orientation_angles(np.eye(3))
        assert azimuth == 0.0
        assert np.isclose(pitch, 0.0)
        assert np.isclose(roll, 0.0)
