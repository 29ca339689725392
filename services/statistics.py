"""Order-statistics primitives shared by the analytics engine."""

from __future__ import annotations

import math
from typing import Iterable, List, Sequence, Union

Number = Union[int, float]

__all__ = ["median", "percentile", "sorted_sample"]


def sorted_sample(values: Iterable[Number]) -> List[float]:
    return sorted(float(value) for value in values)


def _interpolate(ordered: Sequence[float], p: Number) -> float:
    n = len(ordered)
    if n == 0:
        return 0.0
    if n == 1:
        return ordered[0]
    rank = p / 100.0 * (n - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return ordered[lower]
    fraction = rank - lower
    return ordered[lower] + (ordered[upper] - ordered[lower]) * fraction


def percentile(sample: Iterable[Number], p: Number) -> float:
    """Return the ``p``-th percentile of ``sample`` by linear interpolation.

    The sample is sorted ascending and the value is interpolated between the
    ranks ``floor(R)`` and ``ceil(R)`` where ``R = p / 100 * (n - 1)``. An empty
    sample yields ``0.0`` and a single observation is every percentile.

    Raises
    ------
    ValueError
        If ``p`` lies outside ``[0, 100]``.
    """
    if isinstance(p, bool) or not 0 <= p <= 100:
        raise ValueError(f"percentile must be between 0 and 100, got {p!r}")
    return _interpolate(sorted_sample(sample), p)


def median(sample: Iterable[Number]) -> float:
    return percentile(sample, 50)
