# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Scalable K-Means++ (k-means||) over partitioned frames.

The driver seeds centroids with oversampling (Bahmani et al., "Scalable
K-Means++", VLDB 2012), re-clusters the candidate pool down to k and refines
it with Lloyd's iterations. Every pass is a map/reduce over the frame's
partitions; the model snapshot is checkpointed after each completed pass.
"""

import logging
import threading
import uuid
from typing import List, Optional

import numpy as np

from pyspark import keyword_only
from pyspark.ml import Estimator, Model
from pyspark.ml.param import Param, Params, TypeConverters
from pyspark.ml.param.shared import HasInputCols, HasMaxIter, HasPredictionCol, HasSeed
from pyspark.sql import DataFrame
from pyspark.sql import functions as F
from pyspark.sql.types import IntegerType

from .distance import closest, closest_all
from .errors import ConfigurationError, UnsupportedOperationError
from .frame import Frame
from .normalization import Normalizer
from .recluster import Initialization, recluster
from .spark_frame import SparkFrame
from .state import CheckpointStore, MemoryCheckpointStore, ModelState, Phase
from .tasks import Lloyds, Sampler, SumSqr, partition_seed

logger = logging.getLogger(__name__)

#: Number of k-means|| sampling rounds.
SEEDING_ROUNDS = 5

#: Expected candidates sampled per round, as a multiple of k.
OVERSAMPLING = 3

EMPTY_CLUSTER_STRATEGIES = ("leave", "reseedRandom")


class KMeansJob(object):
    """
    Handle on a running fit: checkpoint location, progress and cancellation.

    Parameters
    ----------
    key : str, optional
        Checkpoint key (default: a random UUID).
    store : CheckpointStore, optional
        Where snapshots are written (default: in memory).

    Examples
    --------
    >>> job = KMeansJob()
    >>> job.progress()
    0.0
    >>> job.cancel()
    >>> job.cancelled
    True
    """

    def __init__(self, key: Optional[str] = None, store: Optional[CheckpointStore] = None):
        self.key = key or uuid.uuid4().hex
        self.store = store if store is not None else MemoryCheckpointStore()
        self._cancelled = threading.Event()

    def cancel(self):
        """Request a stop at the next pass boundary."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def state(self) -> Optional[ModelState]:
        """Last checkpointed snapshot, if any."""
        return self.store.get(self.key)

    def progress(self) -> float:
        state = self.state()
        return 0.0 if state is None else state.progress()


class KMeansDriver(object):
    """
    Runs initialization and Lloyd's refinement over a frame.

    Parameters
    ----------
    k : int
        Number of clusters (>= 2).
    max_iter : int
        Number of Lloyd's passes to run (>= 1).
    initialization : str or Initialization, default="none"
        ``"none"`` picks k random rows; ``"plusPlus"`` and ``"furthest"``
        run k-means|| seeding and re-cluster with the named policy.
    normalize : bool, default=False
        Cluster z-scored columns. Reported centroids are always denormalized.
    seed : int, default=0
        Random seed.
    empty_cluster_strategy : str, default="leave"
        ``"leave"`` keeps a cluster that received no rows as NaN,
        ``"reseedRandom"`` replaces it with a random row.
    job : KMeansJob, optional
        Checkpoint and cancellation handle.
    """

    def __init__(
        self,
        k: int,
        max_iter: int,
        initialization="none",
        normalize: bool = False,
        seed: int = 0,
        empty_cluster_strategy: str = "leave",
        job: Optional[KMeansJob] = None,
    ):
        if k is None or k < 2:
            raise ConfigurationError("k must be >= 2, got %r" % (k,))
        if max_iter is None or max_iter < 1:
            raise ConfigurationError("max_iter must be >= 1, got %r" % (max_iter,))
        if empty_cluster_strategy not in EMPTY_CLUSTER_STRATEGIES:
            raise ConfigurationError(
                "Unknown empty cluster strategy %r, expected one of: %s"
                % (empty_cluster_strategy, ", ".join(EMPTY_CLUSTER_STRATEGIES))
            )
        self.k = int(k)
        self.max_iter = int(max_iter)
        self.initialization = Initialization.parse(initialization)
        self.normalize = bool(normalize)
        self.seed = int(seed)
        self.empty_cluster_strategy = empty_cluster_strategy
        self.job = job if job is not None else KMeansJob()

    def run(self, frame: Frame) -> ModelState:
        """Cluster ``frame`` and return the final snapshot."""
        if frame.num_cols == 0:
            raise ConfigurationError("No columns selected")
        if frame.num_rows == 0:
            raise ConfigurationError("Cannot cluster an empty frame")

        normalizer = Normalizer.from_frame(frame, self.normalize)
        # -1 to differ from every partition offset (C.f. Sampler)
        rand = np.random.default_rng(partition_seed(self.seed, -1))
        state = ModelState(
            key=self.job.key,
            clusters=np.empty((0, frame.num_cols)),
            max_iter=self.max_iter,
            normalized=self.normalize,
        )

        if self.initialization is Initialization.NONE:
            clusters = np.array([self._random_row(frame, rand, normalizer) for _ in range(self.k)])
        else:
            clusters = self._random_row(frame, rand, normalizer)[None, :]
            for _ in range(SEEDING_ROUNDS):
                if self.job.cancelled:
                    return self._checkpoint(state.evolve(phase=Phase.CANCELLED))
                sqr = SumSqr(clusters, normalizer).do_all(frame)
                sampled = Sampler(clusters, normalizer, sqr, self.k * OVERSAMPLING, self.seed).do_all(frame)
                clusters = np.concatenate([clusters, sampled])
                state = self._checkpoint(
                    state.evolve(
                        phase=Phase.SEEDING,
                        clusters=normalizer.denormalize(clusters),
                        error=sqr,
                        seeding_rounds=state.seeding_rounds + 1,
                    )
                )
                logger.info(
                    "Seeding round %d: error=%.6g, %d new candidates, %d total",
                    state.seeding_rounds, sqr, len(sampled), len(clusters),
                )

            clusters = recluster(clusters, self.k, rand, self.initialization)
            state = self._checkpoint(
                state.evolve(phase=Phase.RECLUSTERING, clusters=normalizer.denormalize(clusters))
            )

        while True:
            stats = Lloyds(clusters, normalizer).do_all(frame)
            clusters = stats.centers()
            empty = stats.empty_clusters()
            if empty:
                logger.warning("Clusters without rows after pass %d: %s", state.iterations + 1, empty)
                if self.empty_cluster_strategy == "reseedRandom":
                    for cluster in empty:
                        clusters[cluster] = self._random_row(frame, rand, normalizer)
            if stats.unassigned:
                logger.warning("%d rows have no present values and were not assigned", stats.unassigned)

            state = self._checkpoint(
                state.evolve(
                    phase=Phase.REFINING,
                    clusters=normalizer.denormalize(clusters),
                    error=stats.sqr,
                    cluster_variances=stats.variances(),
                    iterations=state.iterations + 1,
                    cluster_rows=stats.rows,
                    unassigned_rows=stats.unassigned,
                    empty_clusters=empty,
                )
            )
            logger.info("Lloyds pass %d/%d: error=%.6g", state.iterations, self.max_iter, stats.sqr)
            if state.iterations >= self.max_iter:
                return self._checkpoint(state.evolve(phase=Phase.DONE))
            if self.job.cancelled:
                logger.info("Cancelled after %d passes", state.iterations)
                return self._checkpoint(state.evolve(phase=Phase.CANCELLED))

    def _checkpoint(self, state: ModelState) -> ModelState:
        self.job.store.put(self.job.key, state)
        return state

    @staticmethod
    def _random_row(frame: Frame, rand: np.random.Generator, normalizer: Normalizer) -> np.ndarray:
        row = int(rand.random() * frame.num_rows)
        return normalizer.transform(frame.row(row))


def _as_frame(dataset, names: Optional[List[str]]) -> Frame:
    if isinstance(dataset, Frame):
        return dataset.select(names) if names else dataset
    if isinstance(dataset, DataFrame):
        return SparkFrame(dataset, names)
    raise TypeError("Expected a Frame or a DataFrame, got %s" % type(dataset).__name__)


class ScalableKMeansParams(HasInputCols, HasPredictionCol, HasMaxIter, HasSeed):
    """
    Params for ScalableKMeans and ScalableKMeansModel.

    Parameters
    ----------
    k : int, default=2
        Number of clusters to create (k > 1).

    initialization : str, default="none"
        Initialization algorithm.
        Options: "none", "plusPlus", "furthest"

    normalize : bool, default=False
        Whether columns are z-scored before clustering.

    emptyClusterStrategy : str, default="leave"
        How to handle clusters that receive no rows.
        Options: "leave", "reseedRandom"

    inputCols : list of str, optional
        Columns to cluster on. Defaults to every column.

    predictionCol : str, default="prediction"
        Prediction column name.

    maxIter : int, default=100
        Number of Lloyd's iterations (>= 1).

    seed : int, optional
        Random seed.
    """

    k = Param(
        Params._dummy(),
        "k",
        "Number of clusters to create (must be > 1).",
        typeConverter=TypeConverters.toInt,
    )

    initialization = Param(
        Params._dummy(),
        "initialization",
        "Initialization mode: none, plusPlus, furthest",
        typeConverter=TypeConverters.toString,
    )

    normalize = Param(
        Params._dummy(),
        "normalize",
        "Whether data should be normalized",
        typeConverter=TypeConverters.toBoolean,
    )

    emptyClusterStrategy = Param(
        Params._dummy(),
        "emptyClusterStrategy",
        "Empty cluster handling: leave, reseedRandom",
        typeConverter=TypeConverters.toString,
    )

    def __init__(self, *args):
        super(ScalableKMeansParams, self).__init__(*args)
        self._setDefault(
            k=2,
            initialization="none",
            normalize=False,
            emptyClusterStrategy="leave",
            predictionCol="prediction",
            maxIter=100,
        )

    def getK(self) -> int:
        """Gets the value of k or its default value."""
        return self.getOrDefault(self.k)

    def getInitialization(self) -> str:
        """Gets the value of initialization or its default value."""
        return self.getOrDefault(self.initialization)

    def getNormalize(self) -> bool:
        """Gets the value of normalize or its default value."""
        return self.getOrDefault(self.normalize)

    def getEmptyClusterStrategy(self) -> str:
        """Gets the value of emptyClusterStrategy or its default value."""
        return self.getOrDefault(self.emptyClusterStrategy)

    def _input_names(self) -> Optional[List[str]]:
        return self.getInputCols() if self.isDefined(self.inputCols) else None


class ScalableKMeans(Estimator, ScalableKMeansParams):
    """
    K-Means clustering with k-means|| initialization.

    Each pass over the data is a map/reduce over the dataset's partitions:
    oversampled seeding (5 rounds of cost + sampling), re-clustering of the
    candidates down to k, then Lloyd's iterations. Missing values are
    imputed with the column mean.

    Parameters
    ----------
    k : int, default=2
        Number of clusters to create.

    initialization : str, default="none"
        - "none": k random rows
        - "plusPlus": k-means|| seeding, k-means++ re-clustering
        - "furthest": k-means|| seeding, farthest-point re-clustering

    maxIter : int, default=100
        Number of Lloyd's iterations.

    normalize : bool, default=False
        Cluster on z-scored columns.

    seed : int, optional
        Random seed for reproducibility.

    Examples
    --------
    >>> from scalablekmeans.clusterer import ArrayFrame, ScalableKMeans
    >>>
    >>> frame = ArrayFrame([[0.0, 0.0], [1.0, 1.0], [9.0, 8.0], [8.0, 9.0]])
    >>> kmeans = ScalableKMeans(k=2, maxIter=10, initialization="furthest", seed=42)
    >>> model = kmeans.fit(frame)
    >>> model.clusterCenters().shape
    (2, 2)

    Notes
    -----
    - ``fit`` accepts a :class:`Frame` or a Spark DataFrame.
    - Attach a :class:`KMeansJob` with :meth:`setJob` to follow progress,
      persist checkpoints or cancel a long run from another thread.
    """

    @keyword_only
    def __init__(
        self,
        *,
        k: int = 2,
        initialization: str = "none",
        normalize: bool = False,
        emptyClusterStrategy: str = "leave",
        inputCols: Optional[List[str]] = None,
        predictionCol: str = "prediction",
        maxIter: int = 100,
        seed: Optional[int] = None,
    ):
        """
        Initialize ScalableKMeans estimator.
        """
        super(ScalableKMeans, self).__init__()
        self._job = None
        kwargs = self._input_kwargs
        self.setParams(**kwargs)

    @keyword_only
    def setParams(
        self,
        *,
        k: int = 2,
        initialization: str = "none",
        normalize: bool = False,
        emptyClusterStrategy: str = "leave",
        inputCols: Optional[List[str]] = None,
        predictionCol: str = "prediction",
        maxIter: int = 100,
        seed: Optional[int] = None,
    ):
        """
        Set parameters for ScalableKMeans.
        """
        kwargs = self._input_kwargs
        return self._set(**kwargs)

    def setK(self, value: int):
        """Sets the value of k."""
        return self._set(k=value)

    def setInitialization(self, value: str):
        """Sets the value of initialization."""
        return self._set(initialization=value)

    def setNormalize(self, value: bool):
        """Sets the value of normalize."""
        return self._set(normalize=value)

    def setEmptyClusterStrategy(self, value: str):
        """Sets the value of emptyClusterStrategy."""
        return self._set(emptyClusterStrategy=value)

    def setInputCols(self, value: List[str]):
        """Sets the value of inputCols."""
        return self._set(inputCols=value)

    def setPredictionCol(self, value: str):
        """Sets the value of predictionCol."""
        return self._set(predictionCol=value)

    def setMaxIter(self, value: int):
        """Sets the value of maxIter."""
        return self._set(maxIter=value)

    def setSeed(self, value: int):
        """Sets the value of seed."""
        return self._set(seed=value)

    def setJob(self, job: KMeansJob):
        """Attach the job used for checkpoints and cancellation of the next fit."""
        self._job = job
        return self

    def _driver(self) -> KMeansDriver:
        return KMeansDriver(
            k=self.getK(),
            max_iter=self.getMaxIter(),
            initialization=self.getInitialization(),
            normalize=self.getNormalize(),
            seed=self.getSeed() or 0,
            empty_cluster_strategy=self.getEmptyClusterStrategy(),
            job=self._job,
        )

    def _fit(self, dataset):
        driver = self._driver()
        frame = _as_frame(dataset, self._input_names())
        state = driver.run(frame)
        model = ScalableKMeansModel(state, frame.names)
        return self._copyValues(model)


class ScalableKMeansModel(Model, ScalableKMeansParams):
    """
    Model fitted by ScalableKMeans.

    Attributes
    ----------
    state : ModelState
        Final snapshot of the run.

    Examples
    --------
    >>> centers = model.clusterCenters()
    >>> model.error, model.iterations
    >>>
    >>> # One-hot assignment of row 3, using the frame's column statistics
    >>> model.score(frame, 3)
    >>>
    >>> # Assignments of every row
    >>> model.transform(frame)
    """

    def __init__(self, state: ModelState, names: Optional[List[str]] = None):
        super(ScalableKMeansModel, self).__init__()
        self._state = state
        self._names = list(names) if names is not None else None

    @property
    def state(self) -> ModelState:
        return self._state

    def clusterCenters(self) -> np.ndarray:
        """
        Get the cluster centers as a NumPy array.

        Returns
        -------
        np.ndarray
            Array of shape (k, d), denormalized. Clusters left empty by the
            last pass are NaN.
        """
        return self._state.clusters.copy()

    @property
    def numClusters(self) -> int:
        return len(self._state.clusters)

    @property
    def numFeatures(self) -> int:
        return self._state.clusters.shape[1]

    @property
    def error(self) -> float:
        """Sum of squared distances of the last pass."""
        return self._state.error

    @property
    def iterations(self) -> int:
        return self._state.iterations

    @property
    def clusterVariances(self) -> np.ndarray:
        """Per-cluster sum of squared deviations from the centroid."""
        return self._state.cluster_variances.copy()

    @property
    def progress(self) -> float:
        return self._state.progress()

    def _normalizer(self, frame: Frame) -> Normalizer:
        if frame.num_cols != self.numFeatures:
            raise ConfigurationError(
                "Model has %d features but the dataset has %d columns"
                % (self.numFeatures, frame.num_cols)
            )
        return Normalizer.from_frame(frame, self._state.normalized)

    def _frame(self, dataset) -> Frame:
        names = self._input_names() or self._names
        if isinstance(dataset, Frame):
            if names and dataset.names != names:
                return dataset.select(names)
            return dataset
        return _as_frame(dataset, names)

    def score(self, frame: Frame, row: int) -> np.ndarray:
        """
        One-hot nearest-cluster assignment of one row of ``frame``.

        The row is imputed and normalized with the frame's column statistics.
        """
        normalizer = self._normalizer(frame)
        clusters = normalizer.normalize(self._state.clusters)
        preds = np.zeros(self.numClusters, dtype=np.float32)
        cluster = closest(clusters, normalizer.transform(frame.row(row))).cluster
        if cluster >= 0:
            preds[cluster] = 1
        return preds

    def predict(self, value):
        """Not supported: scoring needs the column statistics of a dataset, use :meth:`score`."""
        raise UnsupportedOperationError(
            "Scoring a single row needs dataset column statistics; use score(frame, row)"
        )

    def computeCost(self, dataset) -> float:
        """Sum of squared distances of ``dataset`` rows to their nearest center."""
        frame = self._frame(dataset)
        normalizer = self._normalizer(frame)
        return SumSqr(normalizer.normalize(self._state.clusters), normalizer).do_all(frame)

    def _transform(self, dataset):
        frame = self._frame(dataset)
        normalizer = self._normalizer(frame)
        clusters = normalizer.normalize(self._state.clusters)

        if isinstance(frame, SparkFrame):
            def assign_row(*values):
                point = np.array([np.nan if v is None else v for v in values], dtype=np.float64)
                return closest(clusters, normalizer.transform(point)).cluster

            udf = F.udf(assign_row, IntegerType())
            df = dataset.dataframe if isinstance(dataset, SparkFrame) else dataset
            return df.withColumn(self.getPredictionCol(), udf(*[F.col(name) for name in frame.names]))

        def assign(block):
            best, _ = closest_all(clusters, normalizer.transform(block.values))
            return [(block.start, best)]

        parts = frame.map_reduce(assign, lambda left, right: left + right)
        return np.concatenate([best for _, best in sorted(parts, key=lambda part: part[0])])
