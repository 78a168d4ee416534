"""
Step detection with a five-state machine over filtered acceleration magnitude.

Pipeline per accelerometer sample:
    1. Magnitudes of accelerometer (and optional gyroscope) vectors
    2. First-order low-pass filtering of both magnitudes
    3. Push filtered acceleration into a fixed-size sliding window
    4. Adaptive peak/valley thresholds once the window is half full:
           thr = median ± (1.2·IQR + 0.8·σ) / 2, clamped to [0.6·base, 1.4·base]
    5. Drive IDLE→RISING→PEAK→FALLING→VALLEY→IDLE and validate the candidate
       step in VALLEY against height, step interval, peak duration and gyro.

The transition table (`step_transition`) and the validator (`validate_step`)
are pure functions; `StepDetector` owns the mutable state and wires them
together.

Timing:
    Timestamps arrive in nanoseconds and are compared in milliseconds.
    Samples whose timestamp does not advance are ignored.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np

from indoorpos.sensors.types import (
    NANOS_PER_MILLI,
    Accelerometer,
    Gyroscope,
    StepDetectorConfig,
    StepResult,
    StepState,
)
from indoorpos.utils.signal import SlidingWindow, clamp, low_pass_filter, median, quartiles, stddev

_LOGGER = logging.getLogger(__name__)

PEAK_DECREASE_FACTOR = 0.95
VALLEY_INCREASE_FACTOR = 1.05
IQR_WEIGHT = 1.2
STD_DEV_WEIGHT = 0.8
MIN_THRESHOLD_FACTOR = 0.6
MAX_THRESHOLD_FACTOR = 1.4


@dataclass(frozen=True)
class StepCycle:
    """Peak/valley accumulators of the step cycle in progress (times in ms)."""

    peak_value: float = 0.0
    peak_time_ms: int = 0
    valley_value: float = 0.0
    valley_time_ms: int = 0

    @property
    def height(self) -> float:
        return self.peak_value - self.valley_value

    @property
    def peak_duration_ms(self) -> int:
        return self.valley_time_ms - self.peak_time_ms


def adaptive_thresholds(
    values: Sequence[float],
    base_peak: float,
    base_valley: float,
    min_samples: int,
) -> Tuple[float, float]:
    """
    Peak and valley thresholds adapted to the recent signal.

    Args:
        values: Recent filtered acceleration magnitudes.
        base_peak: Base peak threshold [m/s²].
        base_valley: Base valley threshold [m/s²].
        min_samples: Below this many values the base thresholds are returned.

    Returns:
        (peak_threshold, valley_threshold). Each adapted value is clamped to
        [0.6·base, 1.4·base] of its own base.
    """
    if len(values) < min_samples:
        return base_peak, base_valley

    med = median(values)
    q = quartiles(values)
    sd = stddev(values)
    if med is None or q is None or sd is None:
        return base_peak, base_valley

    spread = ((q[1] - q[0]) * IQR_WEIGHT + sd * STD_DEV_WEIGHT) / 2.0
    peak = clamp(med + spread, base_peak * MIN_THRESHOLD_FACTOR, base_peak * MAX_THRESHOLD_FACTOR)
    valley = clamp(med - spread, base_valley * MIN_THRESHOLD_FACTOR,
                   base_valley * MAX_THRESHOLD_FACTOR)
    return peak, valley


def step_transition(
    state: StepState,
    cycle: StepCycle,
    magnitude: float,
    time_ms: int,
    peak_threshold: float,
    valley_threshold: float,
    max_peak_duration_ms: int,
) -> Tuple[StepState, StepCycle, bool]:
    """
    One transition of the step state machine.

    Args:
        state: Current state.
        cycle: Current peak/valley accumulators.
        magnitude: Filtered acceleration magnitude [m/s²].
        time_ms: Sample time [ms].
        peak_threshold: Threshold to leave IDLE.
        valley_threshold: Threshold to leave PEAK.
        max_peak_duration_ms: PEAK timeout.

    Returns:
        (new_state, new_cycle, candidate_ready). candidate_ready is True on
        the VALLEY call, where the caller validates `cycle` (the accumulators
        as they were before the reset); the returned cycle is then cleared.
    """
    if state is StepState.IDLE:
        if magnitude > peak_threshold:
            return StepState.RISING, cycle, False
        return state, cycle, False

    if state is StepState.RISING:
        if magnitude > cycle.peak_value:
            cycle = replace(cycle, peak_value=magnitude, peak_time_ms=time_ms)
        if magnitude < cycle.peak_value * PEAK_DECREASE_FACTOR:
            return StepState.PEAK, cycle, False
        return state, cycle, False

    if state is StepState.PEAK:
        new_state = StepState.FALLING if magnitude < valley_threshold else state
        if time_ms - cycle.peak_time_ms > max_peak_duration_ms:
            _LOGGER.debug("Peak held %d ms, resetting to IDLE", time_ms - cycle.peak_time_ms)
            return StepState.IDLE, replace(cycle, peak_value=0.0, valley_value=0.0), False
        return new_state, cycle, False

    if state is StepState.FALLING:
        if magnitude < cycle.valley_value or cycle.valley_value == 0.0:
            cycle = replace(cycle, valley_value=magnitude, valley_time_ms=time_ms)
        if magnitude > cycle.valley_value * VALLEY_INCREASE_FACTOR:
            return StepState.VALLEY, cycle, False
        return state, cycle, False

    # VALLEY: always back to IDLE with cleared accumulators
    return StepState.IDLE, replace(cycle, peak_value=0.0, valley_value=0.0), True


def validate_step(
    cycle: StepCycle,
    time_since_last_ms: Optional[int],
    gyro_magnitude: float,
    config: StepDetectorConfig,
) -> Tuple[bool, List[str]]:
    """
    Check a candidate step against all four criteria.

    Args:
        cycle: Accumulators of the candidate cycle.
        time_since_last_ms: Time since the previous accepted step, or None
            if no step has been accepted yet (criterion satisfied).
        gyro_magnitude: Filtered gyro magnitude; 0 means no gyro data.
        config: Detector configuration.

    Returns:
        (valid, reasons) where reasons lists every failed criterion.
    """
    reasons = []
    if cycle.height < config.min_peak_valley_height:
        reasons.append(
            f"insufficient peak-valley height ({cycle.height:.3f} < {config.min_peak_valley_height})"
        )
    if time_since_last_ms is not None and not (
        config.min_step_interval_ms <= time_since_last_ms <= config.max_step_interval_ms
    ):
        reasons.append(f"invalid timing ({time_since_last_ms} ms since last step)")
    duration = cycle.peak_duration_ms
    if not config.min_peak_duration_ms <= duration <= config.max_peak_duration_ms:
        reasons.append(f"invalid peak duration ({duration} ms)")
    if gyro_magnitude != 0.0 and gyro_magnitude < config.gyro_threshold:
        reasons.append(
            f"insufficient gyro magnitude ({gyro_magnitude:.3f} < {config.gyro_threshold})"
        )
    return not reasons, reasons


class StepDetector:
    """
    Stateful step counter over accelerometer (+ optional gyroscope) samples.

    One instance per sensor stream. Samples must be delivered in
    increasing timestamp order; a sample that does not advance time is
    ignored and reported with step_detected=False.

    Attributes:
        config: Default configuration, overridable per call.
        state: Current StepState.
        step_count: Accepted steps since construction/reset.

    Example:
        >>> detector = StepDetector()
        >>> result = detector.update(Accelerometer(0.0, 0.0, 9.8, 1_000_000_000))
        >>> result.current_state
        'IDLE'
    """

    def __init__(self, config: Optional[StepDetectorConfig] = None):
        self.config = config if config is not None else StepDetectorConfig()
        if not isinstance(self.config, StepDetectorConfig):
            raise TypeError(f"config must be StepDetectorConfig, got {type(self.config)}")
        self._window = SlidingWindow(self.config.window_size)
        self.reset()

    def reset(self) -> None:
        """Return to IDLE with zero steps and empty filters/window."""
        self.state = StepState.IDLE
        self.step_count = 0
        self.cycle = StepCycle()
        self.last_step_time_ms: Optional[int] = None
        self.filtered_accel: Optional[float] = None
        self.filtered_gyro = 0.0
        self.last_timestamp_ns: Optional[int] = None
        self._window.clear()

    def update(
        self,
        accel: Accelerometer,
        gyro: Optional[Gyroscope] = None,
        config: Optional[StepDetectorConfig] = None,
    ) -> StepResult:
        """
        Process one accelerometer sample.

        Args:
            accel: Accelerometer sample (carries the timestamp).
            gyro: Optional gyroscope sample for step validation.
            config: Optional per-call override of the detector configuration.

        Returns:
            StepResult for this sample.
        """
        cfg = config if config is not None else self.config
        timestamp = accel.timestamp_ns

        if self.last_timestamp_ns is not None and timestamp <= self.last_timestamp_ns:
            _LOGGER.debug("Ignoring non-advancing accelerometer timestamp %d", timestamp)
            return self._result(False, timestamp)
        self.last_timestamp_ns = timestamp

        accel_mag = accel.magnitude()
        if self.filtered_accel is None:
            self.filtered_accel = accel_mag
        else:
            self.filtered_accel = low_pass_filter(accel_mag, self.filtered_accel, cfg.accel_alpha)
        if gyro is not None:
            self.filtered_gyro = low_pass_filter(gyro.magnitude(), self.filtered_gyro, cfg.gyro_alpha)
            gyro_value = self.filtered_gyro
        else:
            gyro_value = 0.0

        self._window.push(self.filtered_accel)
        peak_thr, valley_thr = adaptive_thresholds(
            self._window.values(),
            cfg.peak_threshold,
            cfg.valley_threshold,
            min_samples=self._window.capacity // 2,
        )

        time_ms = timestamp // NANOS_PER_MILLI
        previous = self.state
        candidate = self.cycle
        self.state, self.cycle, ready = step_transition(
            self.state, self.cycle, self.filtered_accel, time_ms,
            peak_thr, valley_thr, cfg.max_peak_duration_ms,
        )
        if self.state is not previous:
            _LOGGER.debug("State transition: %s -> %s at %d ms (accel %.3f)",
                          previous.name, self.state.name, time_ms, self.filtered_accel)

        step_detected = False
        if ready:
            step_detected = self._evaluate(candidate, time_ms, gyro_value, cfg)

        return self._result(step_detected, timestamp, gyro_value)

    def _evaluate(self, candidate: StepCycle, time_ms: int, gyro_value: float,
                  cfg: StepDetectorConfig) -> bool:
        since_last = None if self.last_step_time_ms is None else time_ms - self.last_step_time_ms
        valid, reasons = validate_step(candidate, since_last, gyro_value, cfg)
        if valid:
            self.step_count += 1
            self.last_step_time_ms = time_ms
            _LOGGER.debug(
                "Step detected at %d ms, height %.3f, peak duration %d ms, gyro %.3f, total %d",
                time_ms, candidate.height, candidate.peak_duration_ms, gyro_value, self.step_count,
            )
            return True

        for reason in reasons:
            _LOGGER.debug("Step rejected: %s", reason)
        if since_last is not None and since_last > cfg.max_step_interval_ms and len(reasons) == 1:
            # walking resumed after a pause: next step is timed from here
            self.last_step_time_ms = time_ms
        return False

    def _result(self, step_detected: bool, timestamp: int,
                gyro_value: Optional[float] = None) -> StepResult:
        return StepResult(
            step_detected=step_detected,
            step_count=self.step_count,
            filtered_acceleration=self.filtered_accel if self.filtered_accel is not None else 0.0,
            filtered_gyro_magnitude=self.filtered_gyro if gyro_value is None else gyro_value,
            current_state=self.state.name,
            timestamp=timestamp,
        )

    def get_statistics(self) -> dict:
        """Snapshot of the detector state for diagnostics and comparison."""
        return {
            'state': self.state.name,
            'step_count': self.step_count,
            'cycle': self.cycle,
            'last_step_time_ms': self.last_step_time_ms,
            'filtered_accel': self.filtered_accel,
            'filtered_gyro': self.filtered_gyro,
            'last_timestamp_ns': self.last_timestamp_ns,
            'window': self._window.values().tolist(),
        }


def detect_steps(
    accel_samples: Sequence[Accelerometer],
    gyro_samples: Optional[Sequence[Optional[Gyroscope]]] = None,
    config: Optional[StepDetectorConfig] = None,
) -> List[StepResult]:
    """
    Run a fresh StepDetector over a recorded sequence.

    Args:
        accel_samples: Accelerometer samples in time order.
        gyro_samples: Optional gyroscope samples aligned by index with
            accel_samples (entries may be None).
        config: Detector configuration.

    Returns:
        One StepResult per accelerometer sample.

    Example:
        >>> results = detect_steps(samples)
        >>> n_steps = results[-1].step_count
    """
    if gyro_samples is not None and len(gyro_samples) != len(accel_samples):
        raise ValueError(
            f"gyro_samples must match accel_samples length, "
            f"got {len(gyro_samples)} and {len(accel_samples)}"
        )
    detector = StepDetector(config)
    results = []
    for i, accel in enumerate(accel_samples):
        gyro = gyro_samples[i] if gyro_samples is not None else None
        results.append(detector.update(accel, gyro))
    return results


def step_times(results: Sequence[StepResult]) -> np.ndarray:
    """Timestamps [s] of the accepted steps in a result sequence."""
    return np.array([r.timestamp / 1e9 for r in results if r.step_detected], dtype=float)
