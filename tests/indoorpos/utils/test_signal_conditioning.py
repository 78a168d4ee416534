"""
Unit tests for indoorpos/utils/signal.py.

Run with: pytest tests/indoorpos/utils/test_signal_conditioning.py -v
"""

import numpy as np
import pytest

from indoorpos.utils.signal import (
    SlidingWindow,
    clamp,
    low_pass_filter,
    median,
    quartiles,
    stddev,
)


class TestLowPassFilter:

    def test_weighted_blend(self) -> None:
        assert np.isclose(low_pass_filter(10.0, 0.0, 0.3), 3.0)
        assert np.isclose(low_pass_filter(10.64, 9.8, 0.3), 10.052)

    def test_alpha_one_passes_through(self) -> None:
        assert low_pass_filter(4.2, -7.0, 1.0) == 4.2

    def test_converges_to_constant_input(self) -> None:
        value = 0.0
        for _ in range(100):
            value = low_pass_filter(9.8, value, 0.2)
        assert np.isclose(value, 9.8, atol=1e-6)


class TestStatistics:

    def test_empty_inputs_return_none(self) -> None:
        assert median([]) is None
        assert quartiles([]) is None
        assert stddev([]) is None

    def test_median_odd_and_even(self) -> None:
        assert median([3.0, 1.0, 2.0]) == 2.0
        assert median([4.0, 1.0, 3.0, 2.0]) == 2.5

    def test_quartiles_index_based(self) -> None:
        assert quartiles([1.0, 2.0, 3.0, 4.0]) == (2.0, 4.0)
        assert quartiles([5.0, 1.0, 4.0, 2.0, 3.0]) == (2.0, 4.0)

    def test_quartiles_single_value(self) -> None:
        assert quartiles([7.0]) == (7.0, 7.0)

    def test_tighter_spread_smaller_iqr(self) -> None:
        wide = np.linspace(5.0, 15.0, 50)
        narrow = np.linspace(9.0, 11.0, 50)
        q_wide = quartiles(wide)
        q_narrow = quartiles(narrow)
        assert q_narrow[1] - q_narrow[0] < q_wide[1] - q_wide[0]

    def test_population_stddev(self) -> None:
        assert np.isclose(stddev([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]), 2.0)

    def test_clamp(self) -> None:
        assert clamp(5.0, 0.0, 1.0) == 1.0
        assert clamp(-5.0, 0.0, 1.0) == 0.0
        assert clamp(0.5, 0.0, 1.0) == 0.5


class TestSlidingWindow:

    def test_fills_then_evicts_oldest(self) -> None:
        window = SlidingWindow(3)
        for v in [1.0, 2.0]:
            window.push(v)
        assert len(window) == 2
        assert not window.is_full()
        np.testing.assert_array_equal(window.values(), [1.0, 2.0])

        for v in [3.0, 4.0, 5.0]:
            window.push(v)
        assert window.is_full()
        assert len(window) == 3
        np.testing.assert_array_equal(window.values(), [3.0, 4.0, 5.0])

    def test_values_is_copy(self) -> None:
        window = SlidingWindow(2)
        window.push(1.0)
        values = window.values()
        values[0] = 99.0
        assert window.values()[0] == 1.0

    def test_clear(self) -> None:
        window = SlidingWindow(2)
        window.push(1.0)
        window.push(2.0)
        window.clear()
        assert len(window) == 0
        assert window.values().size == 0

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError, match="capacity"):
            SlidingWindow(0)
