"""Automatic epsilon selection for DBSCAN.

Uses the k-distance knee: for every point take the distance to its k-th
nearest point (counting the point itself, so k matches ``min_pts``), sort
those distances ascending, and pick the value farthest from the straight
line joining the first and last of them. The result is clamped so that a
project of near-duplicate prompts still clusters and a project of unrelated
prompts does not collapse into one blob.
"""

from __future__ import annotations

from collections.abc import Sequence
from math import hypot
from typing import Final

import numpy as np

from .dbscan import DistanceFn, Vector, pairwise_distances

MIN_EPSILON: Final[float] = 0.05
MAX_EPSILON: Final[float] = 0.5


def _clamp(value: float) -> float:
    return max(MIN_EPSILON, min(MAX_EPSILON, value))


def k_distances(
    points: Sequence[Vector],
    k: int,
    distance_fn: DistanceFn | None = None,
    *,
    distances: np.ndarray | None = None,
) -> list[float]:
    """Sorted distance from each point to its k-th nearest point (itself being the first)."""
    if len(points) < 2:
        return []
    if distances is None:
        distances = pairwise_distances(points, distance_fn)
    # Index of the k-th nearest *other* point; falls back to the farthest one.
    rank = max(1, min(k - 1, len(points) - 1)) - 1
    others = distances.copy()
    np.fill_diagonal(others, np.inf)
    return sorted(np.sort(others, axis=1)[:, rank].tolist())


def find_knee(values: Sequence[float]) -> float:
    """Return the value of an ascending curve farthest from its end-to-end chord."""
    if not values:
        return 0.0
    if len(values) < 3:
        return values[-1]

    last = len(values) - 1
    x0, y0 = 0.0, values[0]
    x1, y1 = float(last), values[-1]
    chord = hypot(x1 - x0, y1 - y0)
    if y1 == y0:
        return values[0]

    best_index = 0
    best_distance = -1.0
    for index, value in enumerate(values):
        distance = abs((y1 - y0) * index - (x1 - x0) * value + x1 * y0 - y1 * x0) / chord
        if distance > best_distance:
            best_distance = distance
            best_index = index
    return values[best_index]


def tune_epsilon(
    points: Sequence[Vector],
    min_pts: int,
    distance_fn: DistanceFn | None = None,
    *,
    distances: np.ndarray | None = None,
) -> float:
    """Pick a DBSCAN epsilon for ``points`` without manual input.

    Always returns a value in ``[MIN_EPSILON, MAX_EPSILON]``; inputs with
    fewer than two points get ``MIN_EPSILON``.
    """
    k_dist = k_distances(points, min_pts, distance_fn, distances=distances)
    if not k_dist:
        return MIN_EPSILON
    return _clamp(find_knee(k_dist))


__all__ = [
    "MAX_EPSILON",
    "MIN_EPSILON",
    "find_knee",
    "k_distances",
    "tune_epsilon",
]
