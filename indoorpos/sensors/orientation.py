"""
Absolute heading references: tilt-compensated compass and rotation vector.

This module converts raw device-frame measurements into a world-frame
attitude and extracts the compass azimuth:
    - Rotation matrix from gravity (accelerometer) + magnetic field
    - Rotation matrix from a rotation-vector quaternion (scipy Rotation)
    - Orientation angles (azimuth, pitch, roll) from a rotation matrix
    - Compass headings in degrees [0, 360), 0 = North, clockwise

Frame Conventions:
    - Device frame: x = right, y = forward (top of screen), z = out of screen
    - World frame: x = East, y = North, z = Up
    - The rotation matrix R maps device-frame vectors into the world frame;
      its rows are the world East, North and Up axes expressed in the
      device frame.

Indoor magnetic disturbances (steel, electronics) corrupt the compass; the
heading estimators blend it with gyro integration instead of trusting it
directly.
"""

import math
from typing import Optional, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from indoorpos.sensors.types import Accelerometer, Magnetometer, RotationVector
from indoorpos.utils.angles import normalize_heading

GRAVITY = 9.81
# Minimum |E × A| for a usable horizontal field [µT·m/s²]
MIN_HORIZONTAL_FIELD = 0.1
# Free fall: |A|² below (0.1 g)² gives no usable gravity direction
FREE_FALL_GRAVITY_SQUARED = 0.01 * GRAVITY * GRAVITY


def rotation_matrix_from_accel_mag(
    accel: np.ndarray,
    mag: np.ndarray,
) -> Optional[np.ndarray]:
    """
    Build the device-to-world rotation matrix from gravity and magnetic field.

    The accelerometer at rest measures the reaction to gravity (pointing Up).
    East is H = E × A (magnetic field cross gravity), North is M = A × H,
    after normalization.

    Args:
        accel: Accelerometer vector in device frame, shape (3,). Units: m/s².
        mag: Magnetometer vector in device frame, shape (3,). Units: µT.

    Returns:
        3×3 rotation matrix with rows [East, North, Up], or None when the
        device is in free fall or the field is (anti)parallel to gravity.

    Example:
        >>> R = rotation_matrix_from_accel_mag(np.array([0, 0, 9.8]), np.array([0, 20, -40]))
        >>> np.allclose(R, np.eye(3))
        True
    """
    a = np.asarray(accel, dtype=float)
    e = np.asarray(mag, dtype=float)
    if a.shape != (3,) or e.shape != (3,):
        raise ValueError(
            f"accel and mag must have shape (3,), got {a.shape} and {e.shape}"
        )

    h = np.cross(e, a)
    norm_h = np.linalg.norm(h)
    if norm_h < MIN_HORIZONTAL_FIELD:
        return None
    if float(a @ a) < FREE_FALL_GRAVITY_SQUARED:
        return None

    h = h / norm_h
    a = a / np.linalg.norm(a)
    m = np.cross(a, h)
    return np.vstack((h, m, a))


def rotation_matrix_from_vector(rotation_vector: RotationVector) -> np.ndarray:
    """
    Rotation matrix from a scalar-last unit quaternion.

    scipy normalizes the quaternion, so slightly non-unit sensor output is
    tolerated.

    Args:
        rotation_vector: Quaternion sample (x, y, z, w).

    Returns:
        3×3 device-to-world rotation matrix.
    """
    return Rotation.from_quat(rotation_vector.as_array()).as_matrix()


def orientation_angles(R: np.ndarray) -> Tuple[float, float, float]:
    """
    Extract (azimuth, pitch, roll) in radians from a rotation matrix.

        azimuth = atan2(R[0,1], R[1,1])
        pitch   = asin(-R[2,1])
        roll    = atan2(-R[2,0], R[2,2])

    Azimuth is the angle from North to the device y axis, positive towards
    East, in [-π, π].
    """
    azimuth = math.atan2(R[0, 1], R[1, 1])
    pitch = math.asin(max(-1.0, min(1.0, -R[2, 1])))
    roll = math.atan2(-R[2, 0], R[2, 2])
    return azimuth, pitch, roll


def compass_heading(accel: Accelerometer, mag: Magnetometer) -> float:
    """
    Tilt-compensated magnetic heading.

    Args:
        accel: Accelerometer sample.
        mag: Magnetometer sample.

    Returns:
        Heading in degrees [0, 360), or NaN when the rotation matrix cannot
        be built (free fall, degenerate field).
    """
    R = rotation_matrix_from_accel_mag(accel.as_array(), mag.as_array())
    if R is None:
        return float("nan")
    azimuth, _, _ = orientation_angles(R)
    return normalize_heading(math.degrees(azimuth))


def rotation_vector_heading(rotation_vector: RotationVector) -> float:
    """Heading in degrees [0, 360) from a rotation-vector sample."""
    azimuth, _, _ = orientation_angles(rotation_matrix_from_vector(rotation_vector))
    return normalize_heading(math.degrees(azimuth))
