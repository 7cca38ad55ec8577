# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Nearest-centroid search with missing-dimension scaling.

Missing values are NaN. Squared differences are summed only over the
dimensions a point actually has; when ``0 < p < D`` dimensions are present
the partial sum is scaled by ``D / p``, as if each missing dimension
contributed the average error of the present ones.
"""

from collections import namedtuple
from typing import Optional, Tuple

import numpy as np

ClusterDist = namedtuple("ClusterDist", ["cluster", "dist"])
ClusterDist.__doc__ = "Nearest cluster index and the squared distance to it."

#: Cluster index reported for a point with no usable dimensions.
UNASSIGNED = -1


def closest_all(
    clusters: np.ndarray, points: np.ndarray, count: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find the nearest of the first ``count`` clusters for every point.

    Parameters
    ----------
    clusters : np.ndarray
        Centroids, shape (k, D).
    points : np.ndarray
        Points, shape (n, D). NaN marks a missing value.
    count : int, optional
        Only the first ``count`` centroids are considered (default: all).

    Returns
    -------
    (np.ndarray, np.ndarray)
        Cluster indices (int64, ``UNASSIGNED`` for points without any
        present dimension) and scaled squared distances (float64, 0 for
        unassigned points).
    """
    clusters = np.asarray(clusters, dtype=np.float64)
    points = np.asarray(points, dtype=np.float64)
    if points.ndim == 1:
        points = points.reshape(1, -1)
    if count is None:
        count = len(clusters)

    n, dim = points.shape
    valid = ~np.isnan(points)
    pts = valid.sum(axis=1)
    scale = np.ones(n)
    partial = (pts > 0) & (pts < dim)
    scale[partial] = dim / pts[partial]
    filled = np.where(valid, points, 0.0)

    best = np.full(n, UNASSIGNED, dtype=np.int64)
    best_sqr = np.full(n, np.inf)
    for cluster in range(count):
        delta = np.where(valid, filled - clusters[cluster], 0.0)
        sqr = np.einsum("ij,ij->i", delta, delta) * scale
        # NaN never compares smaller, so degenerate centroids are skipped
        closer = sqr < best_sqr
        best[closer] = cluster
        best_sqr[closer] = sqr[closer]

    best[pts == 0] = UNASSIGNED
    best_sqr[best == UNASSIGNED] = 0.0
    return best, best_sqr


def closest(clusters: np.ndarray, point: np.ndarray, count: Optional[int] = None) -> ClusterDist:
    """Return the nearest cluster and squared distance for one point."""
    best, best_sqr = closest_all(clusters, point, count)
    return ClusterDist(int(best[0]), float(best_sqr[0]))


def min_sqr(clusters: np.ndarray, point: np.ndarray, count: Optional[int] = None) -> float:
    """Squared distance from one point to its nearest cluster."""
    return closest(clusters, point, count).dist
