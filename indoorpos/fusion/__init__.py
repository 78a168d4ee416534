"""
Position types and BLE/PDR fusion.

This package provides the UserPosition value shared by every positioning
source and the PositionFuser that combines BLE and PDR fixes.
"""

from indoorpos.fusion.types import (
    FLOAT_MAX,
    FusionConfig,
    FusionMethod,
    PositionSource,
    UserPosition,
)
from indoorpos.fusion.fuser import MovementSample, PositionFuser, position_difference

__all__ = [
    'FLOAT_MAX',
    'FusionConfig',
    'FusionMethod',
    'PositionSource',
    'UserPosition',
    'MovementSample',
    'PositionFuser',
    'position_difference',
]
