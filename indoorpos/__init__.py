"""
indoorpos: sensor-fusion and position-estimation engine for indoor positioning.

Subpackages:
    - utils: angle handling and signal conditioning (low-pass, robust statistics)
    - sensors: sensor samples, orientation, step detection, heading, step length, PDR
    - estimators: position Kalman filter (constant-velocity model)
    - rf: BLE beacons and Gauss-Newton triangulation
    - fusion: UserPosition value type and the BLE/PDR position fuser

All components are synchronous, single-stream accumulators: one instance per
sensor stream or tracked entity.
"""

__version__ = "0.1.0"
