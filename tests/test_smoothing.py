# ABOUTME: Tests the trailing moving average used before regression.
# ABOUTME: Checks the shrinking start window and constant-series idempotence.

import pytest

from src.common.errors import InvalidInputError
from src.dropout.smoothing import moving_average


def test_window_shrinks_at_start():
    smoothed = moving_average([90, 85, 60, 40, 20], 3)
    assert smoothed == pytest.approx([90.0, 87.5, 78.3333333, 61.6666667, 40.0])


@pytest.mark.parametrize("window", [1, 2, 3, 5, 10])
def test_constant_series_is_unchanged(window):
    assert moving_average([7, 7, 7, 7, 7, 7], window) == [7, 7, 7, 7, 7, 7]


def test_window_of_one_is_identity():
    assert moving_average([3, 1, 4, 1, 5], 1) == [3, 1, 4, 1, 5]


def test_empty_series():
    assert moving_average([], 3) == []


def test_invalid_window_rejected():
    with pytest.raises(InvalidInputError):
        moving_average([1, 2, 3], 0)
