"""
Pedestrian Dead Reckoning (PDR) position propagation.

This module advances a 2D position by one step at a time:
    - pdr_step_update: displacement of one step along a compass heading
    - PdrTracker: stateful PDR position with growing uncertainty

Heading convention (compass):
    0° = North (+y), 90° = East (+x), increasing clockwise:
        p_k = p_{k-1} + L · [sin(ψ), cos(ψ)]

Each step adds a fixed amount to the position uncertainty and multiplies
the confidence by (1 - decay) · step_confidence, so a pure-PDR track loses
credibility until an absolute fix (BLE) re-anchors it.
"""

import logging
import math
from typing import Optional

import numpy as np

from indoorpos.fusion.types import PositionSource, UserPosition
from indoorpos.sensors.types import PdrConfig

_LOGGER = logging.getLogger(__name__)


def pdr_step_update(
    p_prev_xy: np.ndarray,
    step_len: float,
    heading_deg: float,
) -> np.ndarray:
    """
    Advance a 2D position by one step.

    Args:
        p_prev_xy: Previous position [x, y]. Shape (2,). Units: m.
        step_len: Step length L. Units: m. Must be non-negative.
        heading_deg: Compass heading in degrees (0 = North, clockwise).

    Returns:
        Updated position [x, y]. Shape (2,).

    Example:
        >>> pdr_step_update(np.array([0.0, 0.0]), 0.7, 90.0)  # one step East
        array([0.7, 0. ])
    """
    p_prev_xy = np.asarray(p_prev_xy, dtype=float)
    if p_prev_xy.shape != (2,):
        raise ValueError(f"p_prev_xy must have shape (2,), got {p_prev_xy.shape}")
    if step_len < 0:
        raise ValueError(f"step_len must be non-negative, got {step_len}")

    psi = math.radians(heading_deg)
    return p_prev_xy + step_len * np.array([math.sin(psi), math.cos(psi)])


class PdrTracker:
    """
    Stateful PDR position.

    The tracker starts from the first valid `initial_position` it is given
    and advances on every detected step.

    Example:
        >>> tracker = PdrTracker()
        >>> start = UserPosition(0.0, 0.0, accuracy=1.0, source=PositionSource.BLE, confidence=0.8)
        >>> p = tracker.update(True, 0.7, 0.0, timestamp_ms=1000, initial_position=start)
        >>> round(p.y, 2)
        0.7
    """

    def __init__(self, config: Optional[PdrConfig] = None):
        self.config = config if config is not None else PdrConfig()
        self.position: Optional[UserPosition] = None

    def reset(self) -> None:
        self.position = None

    def update(
        self,
        step_detected: bool,
        step_length: float,
        heading_deg: float,
        timestamp_ms: int,
        initial_position: Optional[UserPosition] = None,
    ) -> UserPosition:
        """
        Apply one step-detector output.

        Args:
            step_detected: Whether a step was accepted on this sample.
            step_length: Length of the step [m].
            heading_deg: Compass heading at the step [deg].
            timestamp_ms: Time of the update [ms].
            initial_position: Starting fix used while the tracker has no
                position of its own.

        Returns:
            The current PDR position, or the invalid sentinel if there is
            no starting point yet.
        """
        current = self.position
        if current is None or not current.is_valid():
            current = initial_position

        if current is None or not current.is_valid():
            return UserPosition.invalid(timestamp_ms)
        if not step_detected:
            return current

        x, y = pdr_step_update(np.array([current.x, current.y]), step_length, heading_deg)
        cfg = self.config
        confidence = current.confidence * (1.0 - cfg.confidence_decay) * cfg.step_confidence
        self.position = UserPosition(
            x=float(x),
            y=float(y),
            accuracy=current.accuracy + cfg.accuracy_decay,
            timestamp=timestamp_ms,
            source=PositionSource.PDR,
            confidence=confidence,
        )
        _LOGGER.debug("PDR position (%.2f, %.2f), heading %.1f deg, step %.2f m",
                      x, y, heading_deg, step_length)
        return self.position
