"""
Step length estimation from user height, step vigor and cadence.

Model:
    L_raw = 0.4 · h · f_accel · f_freq · f_pattern · calibration
    f_accel   = clamp(sqrt(a) / 3, 0.7, 1.3)     (a: acceleration magnitude at the step)
    f_freq    = clamp(f_step / 2, 0.7, 1.3)      (1.0 until a cadence is known)
    f_pattern = 1 + (k_pattern - 1) · confidence

The reported length is the mean of the last few raw lengths, bounded to a
height-relative interval that depends on the recognized walking pattern.

Walking pattern recognition uses the mean and standard deviation of the
recent acceleration and gyro magnitudes plus the cadence. A new pattern is
adopted only once it is confirmed (confidence > 0.5 or seen more than five
times in a row).
"""

import logging
import math
from collections import deque
from enum import Enum
from typing import Optional

import numpy as np

from indoorpos.sensors.types import StepLengthConfig
from indoorpos.utils.signal import clamp

_LOGGER = logging.getLogger(__name__)


class WalkingPattern(Enum):
    RUNNING = "RUNNING"
    FAST = "FAST"
    NORMAL = "NORMAL"
    SLOW = "SLOW"
    IRREGULAR = "IRREGULAR"


# pattern -> (length factor, min length / height, max length / height)
PATTERN_FACTORS = {
    WalkingPattern.RUNNING: (1.4, 0.5, 1.1),
    WalkingPattern.FAST: (1.2, 0.4, 0.9),
    WalkingPattern.NORMAL: (1.0, 0.3, 0.8),
    WalkingPattern.SLOW: (0.8, 0.2, 0.6),
    WalkingPattern.IRREGULAR: (0.9, 0.25, 0.7),
}

MIN_PATTERN_SAMPLES = 10


def classify_walking_pattern(
    accel_mean: float,
    accel_std: float,
    gyro_std: float,
    step_frequency: float,
) -> WalkingPattern:
    """
    Map motion statistics to a walking pattern.

    Args:
        accel_mean: Mean acceleration magnitude [m/s²].
        accel_std: Std of acceleration magnitude [m/s²].
        gyro_std: Std of gyro magnitude [rad/s].
        step_frequency: Cadence [Hz], 0 if unknown.
    """
    if accel_mean > 15.0 and step_frequency > 2.5 and accel_std > 5.0:
        return WalkingPattern.RUNNING
    if accel_mean > 10.0 and step_frequency > 2.0:
        return WalkingPattern.FAST
    if accel_mean < 5.0 and step_frequency < 1.5 and accel_std < 2.0:
        return WalkingPattern.SLOW
    if accel_std > 4.0 and gyro_std > 1.5:
        return WalkingPattern.IRREGULAR
    return WalkingPattern.NORMAL


class StepLengthEstimator:
    """
    Per-step length estimator with cadence and walking-pattern adaptation.

    Call `estimate` once per detected step.

    Attributes:
        config: Height, calibration and history sizes.
        pattern: Currently adopted walking pattern.
        pattern_confidence: Confidence in the adopted pattern, [0, 1].
        step_frequency: Last measured cadence [Hz].
    """

    def __init__(self, config: Optional[StepLengthConfig] = None):
        self.config = config if config is not None else StepLengthConfig()
        self.reset()

    def reset(self) -> None:
        self.last_step_ms: Optional[int] = None
        self.step_frequency = 0.0
        self.lengths = deque(maxlen=self.config.history_size)
        self.accel_history = deque(maxlen=self.config.pattern_window)
        self.gyro_history = deque(maxlen=self.config.pattern_window)
        self.pattern = WalkingPattern.NORMAL
        self.candidate_pattern = WalkingPattern.NORMAL
        self.pattern_confidence = 0.0
        self.consecutive_pattern_count = 0

    def estimate(self, accel_magnitude: float, gyro_magnitude: float, timestamp_ms: int) -> float:
        """
        Length of the step detected at `timestamp_ms`.

        Args:
            accel_magnitude: Acceleration magnitude at the step [m/s²].
            gyro_magnitude: Gyro magnitude at the step [rad/s].
            timestamp_ms: Step time [ms].

        Returns:
            Smoothed, pattern-bounded step length [m].
        """
        if self.last_step_ms is not None and timestamp_ms > self.last_step_ms:
            self.step_frequency = 1000.0 / (timestamp_ms - self.last_step_ms)
        self.last_step_ms = timestamp_ms

        self.accel_history.append(accel_magnitude)
        self.gyro_history.append(gyro_magnitude)
        self._update_pattern()

        raw = self._raw_length(accel_magnitude)
        self.lengths.append(raw)
        length = self._bound(float(np.mean(self.lengths)))
        _LOGGER.debug("Step length %.3f m (freq %.2f Hz, accel %.2f, pattern %s, confidence %.2f)",
                      length, self.step_frequency, accel_magnitude, self.pattern.name,
                      self.pattern_confidence)
        return length

    def _update_pattern(self) -> None:
        if len(self.accel_history) < MIN_PATTERN_SAMPLES:
            return
        accel = np.asarray(self.accel_history)
        gyro = np.asarray(self.gyro_history)
        candidate = classify_walking_pattern(
            float(accel.mean()), float(accel.std()), float(gyro.std()), self.step_frequency
        )
        if candidate is self.candidate_pattern:
            self.consecutive_pattern_count += 1
            self.pattern_confidence = min(1.0, self.pattern_confidence + 0.1)
        else:
            self.candidate_pattern = candidate
            self.consecutive_pattern_count = 1
            self.pattern_confidence = 0.3
        if self.pattern_confidence > 0.5 or self.consecutive_pattern_count > 5:
            self.pattern = candidate

    def _raw_length(self, accel_magnitude: float) -> float:
        cfg = self.config
        accel_factor = clamp(math.sqrt(max(accel_magnitude, 0.0)) / 3.0, 0.7, 1.3)
        freq_factor = clamp(self.step_frequency / 2.0, 0.7, 1.3) if self.step_frequency > 0 else 1.0
        factor = PATTERN_FACTORS[self.pattern][0]
        pattern_factor = 1.0 + (factor - 1.0) * self.pattern_confidence
        return 0.4 * cfg.user_height * accel_factor * freq_factor * pattern_factor * cfg.calibration_factor

    def _bound(self, length: float) -> float:
        _, low, high = PATTERN_FACTORS[self.pattern]
        h = self.config.user_height
        return clamp(length, low * h, high * h)
