"""
Angle wrapping and heading manipulation utilities.

Two conventions coexist in the positioning engine:
    - Radians wrapped to [-π, π] for filter innovations (Kalman heading).
    - Compass headings in degrees, [0, 360), 0 = North, clockwise-positive,
      for everything exposed to callers.

Critical for:
- Complementary-filter blending along the shorter rotational path
- Angular innovations in the heading Kalman filter
- PDR displacement from heading
"""

import math


def wrap_angle(angle: float) -> float:
    """
    Wrap a heading innovation in radians to [-π, π].

    A compass reading of 359° against a filter heading of 1° is a -2°
    correction, not +358°.

    Example:
        >>> wrap_angle(3.5 * math.pi)
        -1.5707963267948966
    """
    return math.atan2(math.sin(angle), math.cos(angle))


def normalize_heading(heading_deg: float) -> float:
    """
    Normalize a compass heading to [0, 360) degrees.

    Args:
        heading_deg: Heading in degrees (any value, may be negative)

    Returns:
        Equivalent heading in [0, 360).

    Example:
        >>> normalize_heading(-90.0)
        270.0
        >>> normalize_heading(725.0)
        5.0
    """
    result = math.fmod(heading_deg, 360.0)
    if result < 0.0:
        result += 360.0
    # fmod of a tiny negative value can round up to exactly 360
    if result >= 360.0:
        result = 0.0
    return result


def shortest_angle_diff(from_deg: float, to_deg: float) -> float:
    """
    Signed rotation (degrees) that takes heading `from_deg` onto `to_deg`.

    The result is wrapped into [-180, 180], so that blending
    ``heading + k * shortest_angle_diff(heading, target)`` always moves
    along the shorter arc.

    Args:
        from_deg: Current heading in degrees.
        to_deg: Target heading in degrees.

    Returns:
        Difference in [-180, 180] with
        ``(from_deg + diff) % 360 == to_deg % 360``.

    Example:
        >>> shortest_angle_diff(350.0, 10.0)
        20.0
        >>> shortest_angle_diff(10.0, 350.0)
        -20.0
    """
    diff = math.fmod(to_deg - from_deg, 360.0)
    if diff > 180.0:
        diff -= 360.0
    elif diff < -180.0:
        diff += 360.0
    return diff
