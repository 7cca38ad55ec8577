# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Per-column mean imputation and z-score normalization.
"""

from typing import Sequence

import numpy as np

#: Columns whose standard deviation does not exceed this are only centered.
SIGMA_THRESHOLD = 1e-6


class Normalizer(object):
    """
    Maps raw column values into the space distances are computed in.

    Missing values are always replaced by the column mean. When
    ``normalize`` is set, values are additionally centered and divided by
    the column standard deviation; near-constant columns are only centered.

    Parameters
    ----------
    means : sequence of float
        Column means.
    sigmas : sequence of float
        Column standard deviations.
    normalize : bool, default=False
        Whether to z-score values.
    """

    def __init__(self, means: Sequence[float], sigmas: Sequence[float], normalize: bool = False):
        self.means = np.asarray(means, dtype=np.float64)
        self.sigmas = np.asarray(sigmas, dtype=np.float64)
        if self.means.shape != self.sigmas.shape:
            raise ValueError(
                "means and sigmas must have the same shape, got %s and %s"
                % (self.means.shape, self.sigmas.shape)
            )
        self.enabled = bool(normalize)
        self.divisors = np.where(self.sigmas > SIGMA_THRESHOLD, self.sigmas, 1.0)

    @classmethod
    def from_frame(cls, frame, normalize: bool = False) -> "Normalizer":
        """Build a normalizer from a frame's column statistics."""
        return cls(frame.means, frame.sigmas, normalize)

    @property
    def dimension(self) -> int:
        return len(self.means)

    def impute(self, values: np.ndarray) -> np.ndarray:
        values = np.asarray(values, dtype=np.float64)
        return np.where(np.isnan(values), self.means, values)

    def normalize(self, values: np.ndarray) -> np.ndarray:
        """Forward z-score; identity when normalization is off. NaN is kept."""
        values = np.asarray(values, dtype=np.float64)
        if not self.enabled:
            return values.copy()
        return (values - self.means) / self.divisors

    def denormalize(self, values: np.ndarray) -> np.ndarray:
        """Inverse of :meth:`normalize`."""
        values = np.asarray(values, dtype=np.float64)
        if not self.enabled:
            return values.copy()
        return values * self.divisors + self.means

    def transform(self, values: np.ndarray) -> np.ndarray:
        """Impute then scale raw data rows (1-D or 2-D)."""
        return self.normalize(self.impute(values))
