# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Frame over a Spark DataFrame.

Each RDD partition of the selected columns is one frame partition. Maps run
on the executors through ``mapPartitionsWithIndex`` and are combined with
``treeReduce``.
"""

import bisect
import logging
from itertools import islice
from typing import List, Optional, Sequence

import numpy as np
from pyspark.sql import DataFrame
from pyspark.sql import functions as F

from .errors import ConfigurationError
from .frame import Frame, PartitionBlock

logger = logging.getLogger(__name__)


def _to_floats(row):
    return [float("nan") if value is None else float(value) for value in row]


class SparkFrame(Frame):
    """
    Frame view of numeric DataFrame columns.

    Parameters
    ----------
    df : DataFrame
        Source data.
    names : sequence of str, optional
        Columns to use (default: all columns of ``df``).
    tree_depth : int, default=2
        Depth of the ``treeReduce`` used to combine partition results.

    Notes
    -----
    The selected rows are cached; partition offsets and column statistics
    are computed once, when the frame is built.
    """

    def __init__(self, df: DataFrame, names: Optional[Sequence[str]] = None, tree_depth: int = 2):
        names = list(df.columns if names is None else names)
        missing = [name for name in names if name not in df.columns]
        if missing:
            raise ConfigurationError("Unknown columns: %s" % ", ".join(missing))
        self._df = df
        self._names = names
        self._tree_depth = tree_depth
        self._rdd = df.select(*names).rdd.map(_to_floats).cache()

        sizes = self._rdd.mapPartitionsWithIndex(lambda index, rows: [(index, sum(1 for _ in rows))]).collect()
        sizes.sort()
        self._starts = []
        total = 0
        for _, size in sizes:
            self._starts.append(total)
            total += size
        self._num_rows = total

        aggregates = []
        for name in names:
            present = F.when(~F.isnan(F.col(name).cast("double")), F.col(name).cast("double"))
            aggregates.append(F.mean(present))
            aggregates.append(F.stddev_samp(present))
        stats = df.agg(*aggregates).first() if names else []
        self._means = np.array([np.nan if v is None else v for v in stats[0::2]], dtype=np.float64)
        self._sigmas = np.array([0.0 if v is None or np.isnan(v) else v for v in stats[1::2]], dtype=np.float64)
        logger.debug("SparkFrame with %d rows in %d partitions", self._num_rows, len(self._starts))

    @property
    def names(self) -> List[str]:
        return list(self._names)

    @property
    def num_rows(self) -> int:
        return self._num_rows

    @property
    def means(self) -> np.ndarray:
        return self._means.copy()

    @property
    def sigmas(self) -> np.ndarray:
        return self._sigmas.copy()

    @property
    def dataframe(self) -> DataFrame:
        return self._df

    def row(self, row: int) -> np.ndarray:
        if not 0 <= row < self._num_rows:
            raise IndexError("row %d out of range [0, %d)" % (row, self._num_rows))
        partition = bisect.bisect_right(self._starts, row) - 1
        offset = row - self._starts[partition]
        values = self._rdd.context.runJob(
            self._rdd, lambda rows: islice(rows, offset, offset + 1), [partition]
        )
        return np.array(values[0], dtype=np.float64)

    def value_at(self, row: int, col: int) -> float:
        return float(self.row(row)[col])

    def select(self, names: Sequence[str]) -> "SparkFrame":
        return SparkFrame(self._df, names, self._tree_depth)

    def map_reduce(self, map_fn, reduce_fn):
        starts = list(self._starts)
        width = len(self._names)

        def run(index, rows):
            values = np.array(list(rows), dtype=np.float64).reshape(-1, width)
            yield map_fn(PartitionBlock(index, starts[index], values))

        return self._rdd.mapPartitionsWithIndex(run).treeReduce(reduce_fn, depth=self._tree_depth)
