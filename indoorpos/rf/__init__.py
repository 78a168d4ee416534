"""
BLE beacon ranging and positioning.

This package provides:
    - Beacon records with RSSI path-loss ranging
    - Gauss-Newton triangulation from beacon ranges
    - Geometric dilution of precision for beacon layouts
"""

from indoorpos.rf.beacon import Beacon
from indoorpos.rf.triangulation import BeaconTriangulator, TriangulationConfig, compute_gdop

__all__ = [
    'Beacon',
    'BeaconTriangulator',
    'TriangulationConfig',
    'compute_gdop',
]
