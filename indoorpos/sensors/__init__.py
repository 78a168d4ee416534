"""
Inertial and environmental sensor processing.

This package turns raw smartphone sensor samples into pedestrian motion:

Modules:
    types: Sensor samples, state/result records, configuration dataclasses
    orientation: Tilt-compensated compass and rotation-vector heading
    step_detector: Five-state step detection with adaptive thresholds
    heading: Complementary-filter and Kalman heading estimators
    step_length: Height/cadence/pattern step length model
    pdr: Step-by-step position propagation

Example:
    >>> from indoorpos.sensors import StepDetector, HeadingEstimator, Accelerometer, Gyroscope
    >>> detector = StepDetector()
    >>> heading = HeadingEstimator()
    >>> step = detector.update(Accelerometer(0.1, 0.2, 9.8, timestamp_ns=10**9))
    >>> h = heading.update(Gyroscope(0.0, 0.0, 0.01, timestamp_ns=10**9))
"""

from indoorpos.sensors.types import (
    Accelerometer,
    Gyroscope,
    Magnetometer,
    RotationVector,
    StepState,
    StepResult,
    HeadingAccuracy,
    HeadingSource,
    HeadingResult,
    KalmanHeadingResult,
    StepDetectorConfig,
    HeadingConfig,
    KalmanHeadingConfig,
    StepLengthConfig,
    PdrConfig,
)
from indoorpos.sensors.orientation import (
    rotation_matrix_from_accel_mag,
    rotation_matrix_from_vector,
    orientation_angles,
    compass_heading,
    rotation_vector_heading,
)
from indoorpos.sensors.step_detector import (
    StepCycle,
    StepDetector,
    adaptive_thresholds,
    step_transition,
    validate_step,
    detect_steps,
    step_times,
)
from indoorpos.sensors.heading import HeadingEstimator, KalmanHeadingEstimator
from indoorpos.sensors.step_length import StepLengthEstimator, WalkingPattern
from indoorpos.sensors.pdr import PdrTracker, pdr_step_update

__all__ = [
    # Samples and records
    'Accelerometer',
    'Gyroscope',
    'Magnetometer',
    'RotationVector',
    'StepState',
    'StepResult',
    'HeadingAccuracy',
    'HeadingSource',
    'HeadingResult',
    'KalmanHeadingResult',
    # Configuration
    'StepDetectorConfig',
    'HeadingConfig',
    'KalmanHeadingConfig',
    'StepLengthConfig',
    'PdrConfig',
    # Orientation
    'rotation_matrix_from_accel_mag',
    'rotation_matrix_from_vector',
    'orientation_angles',
    'compass_heading',
    'rotation_vector_heading',
    # Step detection
    'StepCycle',
    'StepDetector',
    'adaptive_thresholds',
    'step_transition',
    'validate_step',
    'detect_steps',
    'step_times',
    # Heading
    'HeadingEstimator',
    'KalmanHeadingEstimator',
    # Step length and PDR
    'StepLengthEstimator',
    'WalkingPattern',
    'PdrTracker',
    'pdr_step_update',
]
