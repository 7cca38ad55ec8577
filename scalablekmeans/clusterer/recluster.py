# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Initialization policies and re-clustering of an oversampled candidate pool.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum

import numpy as np

from .distance import closest_all
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Initialization(Enum):
    """
    How initial centroids are chosen.

    - ``NONE``: k independent random rows.
    - ``PLUS_PLUS``: k-means|| oversampling, then k-means++ re-clustering.
    - ``FURTHEST``: k-means|| oversampling, then farthest-point re-clustering.
    """

    NONE = "none"
    PLUS_PLUS = "plusPlus"
    FURTHEST = "furthest"

    @classmethod
    def parse(cls, value) -> "Initialization":
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ConfigurationError(
            "Unknown initialization %r, expected one of: %s"
            % (value, ", ".join(member.value for member in cls))
        )


class Selection(ABC):
    """Picks ``k`` centroids out of a candidate pool, starting from the first one."""

    def select(self, points: np.ndarray, k: int, rand: np.random.Generator) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)
        if len(points) == 0:
            raise ValueError("Cannot re-cluster an empty candidate pool")
        if len(points) < k:
            logger.warning("Only %d candidates to choose %d centroids from", len(points), k)
        chosen = np.empty((k, points.shape[1]))
        chosen[0] = points[0]
        for count in range(1, k):
            _, dist = closest_all(chosen, points, count)
            chosen[count] = points[self.next_index(dist, rand)]
        return chosen

    @abstractmethod
    def next_index(self, dist: np.ndarray, rand: np.random.Generator) -> int:
        """Index of the next centroid given each candidate's distance to the chosen ones."""


class PlusPlusSelection(Selection):
    """k-means++: roulette-wheel draw weighted by squared distance."""

    def next_index(self, dist, rand):
        total = dist.sum()
        if not total > 0:
            # every candidate coincides with a chosen centroid
            return int(rand.integers(len(dist)))
        index = np.searchsorted(np.cumsum(dist), rand.random() * total, side="right")
        return int(min(index, len(dist) - 1))


class FurthestSelection(Selection):
    """Deterministic: the candidate farthest from every chosen centroid."""

    def next_index(self, dist, rand):
        # first maximum wins ties
        return int(np.argmax(dist))


_SELECTIONS = {
    Initialization.PLUS_PLUS: PlusPlusSelection,
    Initialization.FURTHEST: FurthestSelection,
}


def selection_for(initialization) -> Selection:
    initialization = Initialization.parse(initialization)
    try:
        return _SELECTIONS[initialization]()
    except KeyError:
        raise ConfigurationError(
            "Initialization %r does not re-cluster" % initialization.value
        ) from None


def recluster(points: np.ndarray, k: int, rand: np.random.Generator, initialization) -> np.ndarray:
    """Reduce an oversampled candidate pool to exactly ``k`` centroids."""
    return selection_for(initialization).select(points, k, rand)
