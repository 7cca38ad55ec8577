# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Map/reduce passes over a partitioned frame.

Every task holds a read-only snapshot of the centroids, maps one partition to
an accumulator and combines two accumulators associatively. ``do_all`` runs
the task over a whole :class:`~scalablekmeans.clusterer.frame.Frame`.

- :class:`SumSqr` - total minimum squared distance to the centroids.
- :class:`Sampler` - k-means|| oversampling of poorly covered rows.
- :class:`Lloyds` - one assignment/update pass with per-cluster variances.
"""

import logging
from collections import namedtuple

import numpy as np

from .distance import UNASSIGNED, closest_all

logger = logging.getLogger(__name__)

_SEED_MASK = (1 << 64) - 1


def partition_seed(seed: int, start: int) -> int:
    """
    Derive the random seed of the partition starting at row ``start``.

    The result depends only on the global seed and the row offset, so sampling
    does not depend on scheduling order or on the degree of parallelism.
    """
    return (int(seed) + int(start)) & _SEED_MASK


def _snapshot(clusters) -> np.ndarray:
    clusters = np.array(clusters, dtype=np.float64)
    if clusters.ndim != 2:
        raise ValueError("clusters must be 2-dimensional, got shape %s" % (clusters.shape,))
    clusters.setflags(write=False)
    return clusters


class _Task(object):
    def __init__(self, clusters, normalizer):
        self.clusters = _snapshot(clusters)
        self.normalizer = normalizer

    def map(self, block):
        raise NotImplementedError

    def reduce(self, left, right):
        raise NotImplementedError

    def do_all(self, frame):
        return frame.map_reduce(self.map, self.reduce)


class SumSqr(_Task):
    """Sum over all rows of the squared distance to the nearest centroid."""

    def map(self, block) -> float:
        values = self.normalizer.transform(block.values)
        _, dist = closest_all(self.clusters, values)
        return float(dist.sum())

    def reduce(self, left: float, right: float) -> float:
        return left + right


class Sampler(_Task):
    """
    Draw rows with probability ``min(1, probability * d / sqr)``.

    Parameters
    ----------
    clusters : array-like
        Current centroids, in comparison space.
    normalizer : Normalizer
        Transform applied to raw rows.
    sqr : float
        Total minimum squared error of ``clusters`` (see :class:`SumSqr`).
    probability : float
        Oversampling factor.
    seed : int
        Global seed, combined with each partition's row offset.
    """

    def __init__(self, clusters, normalizer, sqr: float, probability: float, seed: int):
        super(Sampler, self).__init__(clusters, normalizer)
        self.sqr = float(sqr)
        self.probability = float(probability)
        self.seed = int(seed)

    def map(self, block) -> np.ndarray:
        rand = np.random.default_rng(partition_seed(self.seed, block.start))
        values = self.normalizer.transform(block.values)
        _, dist = closest_all(self.clusters, values)
        draws = rand.random(len(values))
        return values[self.probability * dist > draws * self.sqr]

    def reduce(self, left: np.ndarray, right: np.ndarray) -> np.ndarray:
        return np.concatenate([left, right])


class ClusterStats(namedtuple("ClusterStats", ["means", "sqrs", "rows", "sqr", "unassigned"])):
    """
    Per-cluster partial statistics of a Lloyd's pass.

    ``means`` and ``sqrs`` are (k, D) arrays holding, for the rows seen so
    far, each cluster's mean and sum of squared deviations from that mean.
    ``rows`` counts rows per cluster, ``sqr`` is the total squared error and
    ``unassigned`` counts rows without any present dimension.
    """

    __slots__ = ()

    def combine(self, other: "ClusterStats") -> "ClusterStats":
        """Merge two partial results with the pairwise mean/variance update."""
        rows = self.rows + other.rows
        ratio = np.divide(
            other.rows, rows, out=np.zeros(len(rows), dtype=np.float64), where=rows > 0
        )
        delta = other.means - self.means
        means = self.means + delta * ratio[:, None]
        sqrs = self.sqrs + other.sqrs + delta * delta * (self.rows * ratio)[:, None]
        return ClusterStats(
            means, sqrs, rows, self.sqr + other.sqr, self.unassigned + other.unassigned
        )

    def centers(self) -> np.ndarray:
        """Cluster means; clusters without rows are NaN."""
        centers = self.means.copy()
        centers[self.rows == 0] = np.nan
        return centers

    def variances(self) -> np.ndarray:
        """Per-cluster sum of squared deviations over all columns."""
        return self.sqrs.sum(axis=1)

    def empty_clusters(self):
        return [int(i) for i in np.flatnonzero(self.rows == 0)]


class Lloyds(_Task):
    """Assign rows to their nearest centroid and recompute centroids."""

    def map(self, block) -> ClusterStats:
        k, dim = self.clusters.shape
        values = self.normalizer.transform(block.values)
        best, dist = closest_all(self.clusters, values)

        assigned = best != UNASSIGNED
        clusters = best[assigned]
        points = values[assigned]
        rows = np.bincount(clusters, minlength=k).astype(np.int64)
        sums = np.zeros((k, dim))
        np.add.at(sums, clusters, points)
        means = np.divide(sums, rows[:, None], out=np.zeros((k, dim)), where=rows[:, None] > 0)

        # Second pass for in-cluster variances
        delta = points - means[clusters]
        sqrs = np.zeros((k, dim))
        np.add.at(sqrs, clusters, delta * delta)

        return ClusterStats(means, sqrs, rows, float(dist.sum()), int(len(values) - len(points)))

    def reduce(self, left: ClusterStats, right: ClusterStats) -> ClusterStats:
        return left.combine(right)
