# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Checkpointed model snapshots.

A :class:`ModelState` is immutable; the driver derives the next snapshot with
:meth:`ModelState.evolve`, which bumps ``version``, and hands it to a
:class:`CheckpointStore` at the end of every completed pass.
"""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional

import numpy as np


class Phase(Enum):
    UNINITIALIZED = "uninitialized"
    SEEDING = "seeding"
    RECLUSTERING = "reclustering"
    REFINING = "refining"
    DONE = "done"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (Phase.DONE, Phase.CANCELLED)


def _array_to_json(values):
    if values is None:
        return None
    return np.where(np.isnan(values), None, values).tolist()


def _array_from_json(values):
    if values is None:
        return None
    return np.array(values, dtype=np.float64)


@dataclass(frozen=True, eq=False)
class ModelState:
    """
    Snapshot of a k-means run.

    Attributes
    ----------
    key : str
        Checkpoint key.
    clusters : np.ndarray
        Centroids, always denormalized. While seeding this holds the
        candidate pool.
    error : float
        Sum of minimum squared distances of the last pass.
    iterations : int
        Completed Lloyd's passes.
    cluster_variances : np.ndarray, optional
        Per-cluster sum of squared deviations from the centroid.
    normalized : bool
        Whether distances were computed on normalized data.
    max_iter : int
        Iteration bound.
    phase : Phase
        Driver state when the snapshot was taken.
    version : int
        Incremented on every new snapshot.
    seeding_rounds : int
        Completed k-means|| sampling rounds.
    cluster_rows : np.ndarray, optional
        Rows assigned to each cluster in the last pass.
    unassigned_rows : int
        Rows of the last pass with no present dimension.
    empty_clusters : list of int
        Clusters that received no rows in the last pass.
    """

    key: str
    clusters: np.ndarray
    max_iter: int
    normalized: bool = False
    error: float = float("nan")
    iterations: int = 0
    cluster_variances: Optional[np.ndarray] = None
    phase: Phase = Phase.UNINITIALIZED
    version: int = 0
    seeding_rounds: int = 0
    cluster_rows: Optional[np.ndarray] = None
    unassigned_rows: int = 0
    empty_clusters: List[int] = field(default_factory=list)

    def evolve(self, **changes) -> "ModelState":
        """Next snapshot with ``changes`` applied."""
        return replace(self, version=self.version + 1, **changes)

    def progress(self) -> float:
        return min(1.0, self.iterations / float(self.max_iter))

    def to_dict(self) -> Dict:
        return {
            "key": self.key,
            "clusters": _array_to_json(self.clusters),
            "dimension": int(self.clusters.shape[1]),
            "max_iter": self.max_iter,
            "normalized": self.normalized,
            "error": None if np.isnan(self.error) else self.error,
            "iterations": self.iterations,
            "cluster_variances": _array_to_json(self.cluster_variances),
            "phase": self.phase.value,
            "version": self.version,
            "seeding_rounds": self.seeding_rounds,
            "cluster_rows": None if self.cluster_rows is None else [int(r) for r in self.cluster_rows],
            "unassigned_rows": self.unassigned_rows,
            "empty_clusters": list(self.empty_clusters),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ModelState":
        return cls(
            key=data["key"],
            clusters=_array_from_json(data["clusters"]).reshape(-1, data["dimension"]),
            max_iter=data["max_iter"],
            normalized=data["normalized"],
            error=float("nan") if data["error"] is None else data["error"],
            iterations=data["iterations"],
            cluster_variances=_array_from_json(data["cluster_variances"]),
            phase=Phase(data["phase"]),
            version=data["version"],
            seeding_rounds=data["seeding_rounds"],
            cluster_rows=None if data["cluster_rows"] is None else np.array(data["cluster_rows"], dtype=np.int64),
            unassigned_rows=data["unassigned_rows"],
            empty_clusters=list(data["empty_clusters"]),
        )


class CheckpointStore(ABC):
    """Persists model snapshots under a caller supplied key."""

    @abstractmethod
    def put(self, key: str, state: ModelState) -> None:
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[ModelState]:
        pass


class MemoryCheckpointStore(CheckpointStore):
    def __init__(self):
        self._states = {}
        self._lock = threading.Lock()

    def put(self, key, state):
        with self._lock:
            self._states[key] = state

    def get(self, key):
        with self._lock:
            return self._states.get(key)


class FileCheckpointStore(CheckpointStore):
    """
    One JSON document per key inside ``directory``.

    Documents are written to a temporary file and moved into place, so a
    reader never observes a partially written checkpoint.
    """

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, key):
        return os.path.join(self.directory, "%s.json" % key)

    def put(self, key, state):
        fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(state.to_dict(), f)
            os.replace(tmp, self._path(key))
        except BaseException:
            os.unlink(tmp)
            raise

    def get(self, key):
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path) as f:
            return ModelState.from_dict(json.load(f))
