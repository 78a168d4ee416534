"""
State estimation for position tracking.

This package provides the recursive estimator interface and the
constant-velocity position Kalman filter used to fuse BLE and PDR fixes.
"""

from indoorpos.estimators.base import StateEstimator
from indoorpos.estimators.position_kf import PositionFilterConfig, PositionKalmanFilter

__all__ = [
    'StateEstimator',
    'PositionFilterConfig',
    'PositionKalmanFilter',
]
