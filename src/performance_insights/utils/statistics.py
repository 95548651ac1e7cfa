"""Small numeric helpers shared by the analyzers."""

import math
from typing import Iterable, Sequence


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean; 0 for an empty sequence."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def population_std_dev(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    return math.sqrt(sum((v - avg) ** 2 for v in values) / len(values))


def coefficient_of_variation(values: Sequence[float]) -> float:
    avg = mean(values)
    if avg == 0:
        return 0.0
    return population_std_dev(values) / avg


def linear_trend(values: Sequence[float]) -> float:
    """Least-squares slope of ``values`` against their index 0..n-1.

    Returns 0 for fewer than two points or a degenerate denominator.
    """
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * y for i, y in enumerate(values))
    sum_x2 = sum(i * i for i in range(n))

    denominator = n * sum_x2 - sum_x ** 2
    if abs(denominator) < 1e-12:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def half_split_delta(values: Sequence[float]) -> float:
    """Mean of the second half minus mean of the first half."""
    if len(values) < 2:
        return 0.0
    midpoint = len(values) // 2
    return mean(values[midpoint:]) - mean(values[:midpoint])


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    return max(lower, min(upper, value))


def all_finite(values: Iterable[float]) -> bool:
    return all(math.isfinite(v) for v in values)
