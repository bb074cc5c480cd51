"""Rounding helpers used for scores and dashboard percentages."""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    Python's `round` uses banker's rounding (`round(0.5) == 0`); dashboard
    numbers are expected to round 0.5 up.
    """
    return int(math.floor(value + 0.5))


def percent(part: float, whole: float) -> int:
    """Return `part / whole` as a rounded percentage, or 0 when `whole` is 0."""
    if not whole:
        return 0
    return round_half_up(part / whole * 100)


def mean_rounded(values) -> int:
    """Unweighted rounded mean of `values`; 0 for an empty sequence."""
    values = list(values)
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))
