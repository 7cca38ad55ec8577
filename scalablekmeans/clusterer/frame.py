# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Column-partitioned datasets.

A :class:`Frame` is an ordered set of named numeric columns whose rows are
split into disjoint partitions. The clusterer only talks to a frame through
this interface: column statistics, single-value reads, and a parallel
``map_reduce`` that applies a function to every partition and folds the
results pairwise.
"""

import logging
import warnings
from abc import ABC, abstractmethod
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Mapping, Optional, Sequence, TypeVar

import numpy as np

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PartitionBlock = namedtuple("PartitionBlock", ["index", "start", "values"])
PartitionBlock.__doc__ = """
Rows of one partition.

``index`` is the partition number, ``start`` the global row offset of the
first row and ``values`` a float64 array of shape (rows, columns).
"""


def tree_reduce(results: Sequence[T], reduce_fn: Callable[[T, T], T]) -> T:
    """Fold partition results pairwise, level by level."""
    level = list(results)
    if not level:
        raise ValueError("Cannot reduce an empty sequence of partition results")
    while len(level) > 1:
        merged = [reduce_fn(level[i], level[i + 1]) for i in range(0, len(level) - 1, 2)]
        if len(level) % 2:
            merged.append(level[-1])
        level = merged
    return level[0]


class Frame(ABC):
    """Contract of a partitioned dataset as consumed by the clusterer."""

    @property
    @abstractmethod
    def names(self) -> List[str]:
        """Column names, in order."""

    @property
    @abstractmethod
    def num_rows(self) -> int:
        """Total number of rows."""

    @property
    @abstractmethod
    def means(self) -> np.ndarray:
        """Per-column mean over present (non-NaN) values."""

    @property
    @abstractmethod
    def sigmas(self) -> np.ndarray:
        """Per-column sample standard deviation over present values."""

    @abstractmethod
    def value_at(self, row: int, col: int) -> float:
        """Read a single raw value (NaN when missing)."""

    @abstractmethod
    def select(self, names: Sequence[str]) -> "Frame":
        """Frame restricted to the given columns, in the given order."""

    @abstractmethod
    def map_reduce(self, map_fn: Callable[[PartitionBlock], T], reduce_fn: Callable[[T, T], T]) -> T:
        """Apply ``map_fn`` to every partition and combine the results."""

    @property
    def num_cols(self) -> int:
        return len(self.names)

    def row(self, row: int) -> np.ndarray:
        """Read a full raw row across all columns."""
        return np.array([self.value_at(row, col) for col in range(self.num_cols)], dtype=np.float64)


def column_stats(columns: Sequence[np.ndarray]):
    """NaN-ignoring means and sample standard deviations of 1-D columns."""
    means, sigmas = [], []
    with warnings.catch_warnings():
        # all-missing columns have NaN stats
        warnings.simplefilter("ignore", category=RuntimeWarning)
        for column in columns:
            means.append(np.nanmean(column) if len(column) else np.nan)
            present = np.count_nonzero(~np.isnan(column))
            sigmas.append(np.nanstd(column, ddof=1) if present > 1 else 0.0)
    return np.array(means, dtype=np.float64), np.array(sigmas, dtype=np.float64)


class ArrayFrame(Frame):
    """
    In-process frame backed by numpy columns.

    Partitions are contiguous row ranges of roughly equal size. ``map_reduce``
    runs the map function for each partition on a thread pool and folds
    results with :func:`tree_reduce`.

    Parameters
    ----------
    data : array-like
        2-D array of shape (rows, columns). ``None`` is read as missing.
    names : sequence of str, optional
        Column names (default: ``"c0"``, ``"c1"``, ...).
    num_partitions : int, default=4
        Number of row partitions (capped at the number of rows).
    max_workers : int, optional
        Thread pool size (default: one thread per partition).

    Examples
    --------
    >>> frame = ArrayFrame([[0.0, 1.0], [2.0, float("nan")]], names=["x", "y"])
    >>> frame.num_rows, frame.names
    (2, ['x', 'y'])
    """

    def __init__(
        self,
        data,
        names: Optional[Sequence[str]] = None,
        num_partitions: int = 4,
        max_workers: Optional[int] = None,
    ):
        array = np.array(data, dtype=np.float64)
        if array.ndim != 2:
            raise ConfigurationError("data must be 2-dimensional, got shape %s" % (array.shape,))
        if names is None:
            names = ["c%d" % i for i in range(array.shape[1])]
        self._init(
            [np.ascontiguousarray(array[:, i]) for i in range(array.shape[1])],
            names,
            num_partitions,
            max_workers,
        )

    @classmethod
    def from_columns(
        cls,
        columns: Mapping[str, Sequence[float]],
        num_partitions: int = 4,
        max_workers: Optional[int] = None,
    ) -> "ArrayFrame":
        """Build a frame from a mapping of column name to values."""
        frame = cls.__new__(cls)
        frame._init(
            [np.array(values, dtype=np.float64) for values in columns.values()],
            list(columns.keys()),
            num_partitions,
            max_workers,
        )
        return frame

    def _init(self, columns, names, num_partitions, max_workers):
        names = list(names)
        if len(names) != len(columns):
            raise ConfigurationError("Expected %d column names, got %d" % (len(columns), len(names)))
        lengths = {len(column) for column in columns}
        if len(lengths) > 1:
            raise ConfigurationError("All columns must have the same length, got %s" % sorted(lengths))
        if num_partitions < 1:
            raise ConfigurationError("num_partitions must be >= 1, got %d" % num_partitions)
        self._columns = columns
        self._names = names
        self._num_rows = lengths.pop() if lengths else 0
        self._num_partitions = num_partitions
        self._max_workers = max_workers
        self._means, self._sigmas = column_stats(columns)
        parts = max(1, min(num_partitions, self._num_rows))
        bounds = np.linspace(0, self._num_rows, parts + 1).astype(np.int64)
        self._bounds = [(int(bounds[i]), int(bounds[i + 1])) for i in range(parts)]
        logger.debug("ArrayFrame with %d rows in %d partitions", self._num_rows, len(self._bounds))

    @property
    def names(self) -> List[str]:
        return list(self._names)

    @property
    def num_rows(self) -> int:
        return self._num_rows

    @property
    def num_partitions(self) -> int:
        return len(self._bounds)

    @property
    def means(self) -> np.ndarray:
        return self._means.copy()

    @property
    def sigmas(self) -> np.ndarray:
        return self._sigmas.copy()

    def value_at(self, row: int, col: int) -> float:
        return float(self._columns[col][row])

    def select(self, names: Sequence[str]) -> "ArrayFrame":
        missing = [name for name in names if name not in self._names]
        if missing:
            raise ConfigurationError("Unknown columns: %s" % ", ".join(missing))
        return ArrayFrame.from_columns(
            {name: self._columns[self._names.index(name)] for name in names},
            num_partitions=self._num_partitions,
            max_workers=self._max_workers,
        )

    def partitions(self) -> List[PartitionBlock]:
        return [
            PartitionBlock(index, start, np.column_stack([column[start:end] for column in self._columns]))
            for index, (start, end) in enumerate(self._bounds)
        ]

    def map_reduce(self, map_fn, reduce_fn):
        blocks = self.partitions()
        with ThreadPoolExecutor(max_workers=self._max_workers or len(blocks)) as pool:
            results = list(pool.map(map_fn, blocks))
        return tree_reduce(results, reduce_fn)
