# ABOUTME: Trailing moving average used to smooth completion-rate curves.
# ABOUTME: The window shrinks at the start of the series instead of padding.

from __future__ import annotations

from typing import List, Sequence

from src.common.errors import InvalidInputError


def moving_average(series: Sequence[float], window: int = 3) -> List[float]:
    """
    Mean of each point and up to ``window - 1`` points before it.

    >>> moving_average([90, 85, 60], 3)
    [90.0, 87.5, 78.33333333333333]
    """

    if window < 1:
        raise InvalidInputError(f"Moving average window must be >= 1, got {window}")

    values = [float(v) for v in series]
    smoothed: List[float] = []
    for i in range(len(values)):
        chunk = values[max(0, i - window + 1) : i + 1]
        smoothed.append(sum(chunk) / len(chunk))
    return smoothed
