# ABOUTME: Pure normalization helpers shared by every score model.
# ABOUTME: Clamps, caps, weighted percentages and threshold lookups; never raises.

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, TypeVar

C = TypeVar("C")


@dataclass(frozen=True)
class MetricWeight:
    """Weight of one metric inside a composite score and its normalization cap."""

    weight: float
    cap: Optional[float] = None


def round_half_up(value: float) -> int:
    """Round halves away from zero for positive values (0.5 -> 1, 10.5 -> 11)."""

    return int(math.floor(value + 0.5))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    if value != value:  # NaN
        return low
    return max(low, min(value, high))


def normalize(value: float, cap: float) -> float:
    """Scale ``value`` into [0, 1] against ``cap``; a zero cap yields 0."""

    if not cap or cap <= 0:
        return 0.0
    return clamp(value / cap, 0.0, 1.0)


def weighted_percentage(parts: Iterable[Tuple[float, float]]) -> int:
    """Combine (normalized value, weight) pairs into a 0-100 integer score."""

    total = sum(clamp(value, 0.0, 1.0) * weight for value, weight in parts)
    return int(clamp(round_half_up(total * 100), 0, 100))


def categorize(score: float, thresholds: Sequence[Tuple[float, C]], default: C) -> C:
    """Return the category of the first threshold ``score`` reaches.

    ``thresholds`` must be ordered highest first.
    """

    for threshold, category in thresholds:
        if score >= threshold:
            return category
    return default
