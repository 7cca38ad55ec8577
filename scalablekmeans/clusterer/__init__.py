# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Scalable K-Means Clustering
===========================

K-Means with k-means|| (oversampled) initialization over column-partitioned
datasets, with missing-value handling and optional per-column normalization.
Every pass is a map/reduce over the dataset's partitions, run on a local
thread pool (:class:`ArrayFrame`) or on Spark (:class:`SparkFrame`).

Classes:
    ScalableKMeans: Estimator for k-means|| clustering
    ScalableKMeansModel: Fitted clustering model
    KMeansDriver: Initialization and Lloyd's refinement loop
    KMeansJob: Checkpoint, progress and cancellation handle

Example:
    >>> from scalablekmeans.clusterer import ArrayFrame, ScalableKMeans
    >>>
    >>> frame = ArrayFrame(
    ...     [[0.0, 0.0], [1.0, 1.0], [9.0, 8.0], [8.0, 9.0]],
    ...     names=["x", "y"],
    ... )
    >>>
    >>> # Train model
    >>> kmeans = ScalableKMeans(k=2, maxIter=20, initialization="plusPlus", seed=42)
    >>> model = kmeans.fit(frame)
    >>>
    >>> # Cluster of every row
    >>> assignments = model.transform(frame)
"""

from .distance import ClusterDist, closest, closest_all, min_sqr
from .errors import ClustererError, ConfigurationError, UnsupportedOperationError
from .frame import ArrayFrame, Frame, PartitionBlock, tree_reduce
from .kmeans import KMeansDriver, KMeansJob, ScalableKMeans, ScalableKMeansModel
from .normalization import Normalizer
from .recluster import (
    FurthestSelection,
    Initialization,
    PlusPlusSelection,
    Selection,
    recluster,
)
from .spark_frame import SparkFrame
from .state import (
    CheckpointStore,
    FileCheckpointStore,
    MemoryCheckpointStore,
    ModelState,
    Phase,
)
from .tasks import ClusterStats, Lloyds, Sampler, SumSqr, partition_seed

__all__ = [
    "ArrayFrame",
    "CheckpointStore",
    "ClusterDist",
    "ClusterStats",
    "ClustererError",
    "ConfigurationError",
    "FileCheckpointStore",
    "Frame",
    "FurthestSelection",
    "Initialization",
    "KMeansDriver",
    "KMeansJob",
    "Lloyds",
    "MemoryCheckpointStore",
    "ModelState",
    "Normalizer",
    "PartitionBlock",
    "Phase",
    "PlusPlusSelection",
    "Sampler",
    "ScalableKMeans",
    "ScalableKMeansModel",
    "Selection",
    "SparkFrame",
    "SumSqr",
    "UnsupportedOperationError",
    "closest",
    "closest_all",
    "min_sqr",
    "partition_seed",
    "recluster",
    "tree_reduce",
]
