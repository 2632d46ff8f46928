"""Density-based clustering (DBSCAN) over embedding vectors.

Points are scanned in input order. A point with at least ``min_pts``
neighbours within ``epsilon`` (itself included) is a core point and seeds a
cluster, which grows breadth-first through other core points. Points first
marked as noise are reclaimed as border members if a cluster reaches them.

Neighbourhoods are read from a pairwise distance matrix computed once per
call. Cosine distances come from a single normalized matrix product; a
custom ``distance_fn`` is evaluated pair by pair instead.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from math import sqrt
from typing import Final

import numpy as np

Vector = Sequence[float]
DistanceFn = Callable[[Vector, Vector], float]

_UNVISITED: Final[int] = -2
_NOISE: Final[int] = -1


@dataclass
class DBSCANResult:
    """Clusters as lists of input indices, plus the indices left as noise."""

    clusters: list[list[int]] = field(default_factory=list)
    noise: list[int] = field(default_factory=list)


def cosine_similarity(vec_a: Vector, vec_b: Vector) -> float:
    """Compute cosine similarity between two vectors; 0.0 for zero or mismatched vectors."""
    if len(vec_a) != len(vec_b) or not vec_a:
        return 0.0
    dot = sum(a * b for a, b in zip(vec_a, vec_b, strict=False))
    norm_a = sqrt(sum(a * a for a in vec_a))
    norm_b = sqrt(sum(b * b for b in vec_b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def cosine_distance(vec_a: Vector, vec_b: Vector) -> float:
    """``1 - cosine_similarity``, clamped to [0, 2]."""
    return max(0.0, min(2.0, 1.0 - cosine_similarity(vec_a, vec_b)))


def cosine_distance_matrix(points: Sequence[Vector]) -> np.ndarray:
    """All-pairs cosine distance as an ``(n, n)`` array.

    Zero vectors are at distance 1.0 from everything, matching
    :func:`cosine_distance`.
    """
    if len(points) == 0:
        return np.zeros((0, 0))
    matrix = np.asarray(points, dtype=np.float64).reshape(len(points), -1)

    # Normalize rows so the dot product is the cosine similarity
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms = np.where(norms == 0, 1, norms)
    normalized = matrix / norms

    similarity = normalized @ normalized.T
    return np.clip(1.0 - similarity, 0.0, 2.0)


def pairwise_distances(
    points: Sequence[Vector], distance_fn: DistanceFn | None = None
) -> np.ndarray:
    """Distance matrix for ``points``; cosine unless ``distance_fn`` is given."""
    if distance_fn is None:
        return cosine_distance_matrix(points)
    size = len(points)
    distances = np.zeros((size, size))
    for i in range(size):
        for j in range(i + 1, size):
            distances[i, j] = distances[j, i] = distance_fn(points[i], points[j])
    return distances


def _region_query(distances: np.ndarray, index: int, epsilon: float) -> list[int]:
    within = distances[index] <= epsilon
    within[index] = True
    return np.flatnonzero(within).tolist()


def dbscan(
    points: Sequence[Vector],
    epsilon: float,
    min_pts: int,
    distance_fn: DistanceFn | None = None,
    *,
    distances: np.ndarray | None = None,
) -> DBSCANResult:
    """Partition ``points`` into clusters and noise.

    Every index ends up in exactly one cluster or in ``noise``. Cluster ids
    follow first-discovery order, and members are listed in the order the
    expansion reached them, so identical input gives identical output.

    ``distances`` may carry a precomputed matrix (see
    :func:`pairwise_distances`) to avoid computing it again.
    """
    if distances is None:
        distances = pairwise_distances(points, distance_fn)

    labels = [_UNVISITED] * len(points)
    clusters: list[list[int]] = []

    for index in range(len(points)):
        if labels[index] != _UNVISITED:
            continue

        neighbours = _region_query(distances, index, epsilon)
        if len(neighbours) < min_pts:
            labels[index] = _NOISE
            continue

        cluster_id = len(clusters)
        members = [index]
        labels[index] = cluster_id

        frontier = deque(neighbours)
        queued = set(neighbours)
        while frontier:
            current = frontier.popleft()
            if labels[current] == _NOISE:
                # Border point: joins the cluster but does not expand it.
                labels[current] = cluster_id
                members.append(current)
                continue
            if labels[current] != _UNVISITED:
                continue

            labels[current] = cluster_id
            members.append(current)

            current_neighbours = _region_query(distances, current, epsilon)
            if len(current_neighbours) >= min_pts:
                for neighbour in current_neighbours:
                    if neighbour not in queued:
                        queued.add(neighbour)
                        frontier.append(neighbour)

        clusters.append(members)

    noise = [index for index, label in enumerate(labels) if label == _NOISE]
    return DBSCANResult(clusters=clusters, noise=noise)


__all__ = [
    "DBSCANResult",
    "DistanceFn",
    "cosine_distance",
    "cosine_distance_matrix",
    "cosine_similarity",
    "dbscan",
    "pairwise_distances",
]
