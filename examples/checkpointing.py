#!/usr/bin/env python
# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Checkpointing example - following progress of a long run and cancelling it.
"""

import logging
import shutil
import tempfile
import threading

import numpy as np

from scalablekmeans.clusterer import (
    ArrayFrame,
    FileCheckpointStore,
    KMeansJob,
    ScalableKMeans,
)


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")

    # 100k rows around 5 centers, 16 partitions
    rand = np.random.default_rng(0)
    centers = rand.uniform(-50, 50, size=(5, 3))
    points = np.concatenate([c + rand.normal(size=(20000, 3)) for c in centers])
    frame = ArrayFrame(points, names=["a", "b", "c"], num_partitions=16)

    temp_dir = tempfile.mkdtemp()
    try:
        job = KMeansJob(key="example", store=FileCheckpointStore(temp_dir))
        kmeans = ScalableKMeans(
            k=5,
            initialization="furthest",
            normalize=True,
            maxIter=1000,
            seed=42,
        ).setJob(job)

        # Stop after about a second; the last completed pass is kept
        timer = threading.Timer(1.0, job.cancel)
        timer.start()
        model = kmeans.fit(frame)
        timer.cancel()

        print(f"\nFinished in phase {model.state.phase.value}")
        print(f"  Iterations: {model.iterations}")
        print(f"  Progress: {job.progress():.1%}")
        print(f"  Error: {model.error:.4f}")

        # The checkpoint on disk is the same snapshot
        restored = job.state()
        print(f"\nCheckpoint version {restored.version}:")
        for i, center in enumerate(restored.clusters):
            print(f"  Cluster {i}: {center}")
    finally:
        shutil.rmtree(temp_dir)


if __name__ == "__main__":
    main()
