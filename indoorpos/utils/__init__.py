"""
Utility functions for the positioning engine.

This module provides angle operations (radian wrapping, compass-heading
normalization, shortest rotation) and the signal-conditioning primitives
used by step detection.
"""

from .angles import (
    wrap_angle,
    normalize_heading,
    shortest_angle_diff,
)
from .signal import (
    low_pass_filter,
    clamp,
    median,
    quartiles,
    stddev,
    SlidingWindow,
)

__all__ = [
    'wrap_angle',
    'normalize_heading',
    'shortest_angle_diff',
    'low_pass_filter',
    'clamp',
    'median',
    'quartiles',
    'stddev',
    'SlidingWindow',
]
