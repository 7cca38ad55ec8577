# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Tests for ScalableKMeans, KMeansDriver and checkpointing.
"""

import shutil
import tempfile
import unittest

import numpy as np

from scalablekmeans.clusterer import (
    ArrayFrame,
    ConfigurationError,
    FileCheckpointStore,
    KMeansDriver,
    KMeansJob,
    MemoryCheckpointStore,
    ModelState,
    Phase,
    ScalableKMeans,
    ScalableKMeansModel,
    UnsupportedOperationError,
)

CENTERS = np.array([[0.0, 0.0], [10.0, 0.0], [5.0, 10.0]])


def three_blobs(seed=0, per_cluster=100, sigma=0.1):
    rand = np.random.default_rng(seed)
    points = np.concatenate([center + rand.normal(scale=sigma, size=(per_cluster, 2)) for center in CENTERS])
    return points[rand.permutation(len(points))]


class RecordingStore(MemoryCheckpointStore):
    """Keeps every snapshot it is given."""

    def __init__(self):
        super(RecordingStore, self).__init__()
        self.history = []

    def put(self, key, state):
        self.history.append(state)
        super(RecordingStore, self).put(key, state)


class CancellingStore(RecordingStore):
    """Cancels the job once a given number of passes of one phase is checkpointed."""

    def __init__(self, after, phase=Phase.REFINING):
        super(CancellingStore, self).__init__()
        self.after = after
        self.phase = phase
        self.job = None

    def put(self, key, state):
        super(CancellingStore, self).put(key, state)
        passes = state.seeding_rounds if self.phase is Phase.SEEDING else state.iterations
        if state.phase is self.phase and passes == self.after:
            self.job.cancel()


class SelectCountingFrame(ArrayFrame):
    """Counts column selections."""

    selects = 0

    def select(self, names):
        self.selects += 1
        return super(SelectCountingFrame, self).select(names)


class ScalableKMeansTest(unittest.TestCase):
    """Test cases for ScalableKMeans."""

    def setUp(self):
        self.points = three_blobs()
        self.frame = ArrayFrame(self.points, names=["x", "y"], num_partitions=4)

    def assertCentersNear(self, centers, expected, tolerance):
        unmatched = list(range(len(centers)))
        for target in expected:
            distances = [np.linalg.norm(centers[i] - target) for i in unmatched]
            best = int(np.argmin(distances))
            self.assertLess(distances[best], tolerance, "no center near %s in %s" % (target, centers))
            unmatched.pop(best)

    def _fit(self, store=None, **params):
        job = KMeansJob(key="blobs", store=store)
        model = ScalableKMeans(**params).setJob(job).fit(self.frame)
        return model, job

    def test_converges_on_separated_blobs(self):
        store = RecordingStore()
        model, job = self._fit(store, k=3, maxIter=20, initialization="furthest", seed=42)

        self.assertEqual(model.numClusters, 3)
        self.assertEqual(model.numFeatures, 2)
        self.assertCentersNear(model.clusterCenters(), CENTERS, 0.5)

        errors = [s.error for s in store.history if s.phase is Phase.REFINING]
        self.assertEqual(len(errors), 20)
        for previous, current in zip(errors, errors[1:]):
            self.assertLessEqual(current, previous * (1 + 1e-12) + 1e-12)

        self.assertEqual(model.iterations, 20)
        self.assertEqual(model.state.phase, Phase.DONE)
        self.assertEqual(model.state.seeding_rounds, 5)
        self.assertEqual(job.progress(), 1.0)
        self.assertEqual(model.clusterVariances.shape, (3,))

    def test_plus_plus_initialization(self):
        model, _ = self._fit(k=3, maxIter=10, initialization="plusPlus", seed=7)
        self.assertCentersNear(model.clusterCenters(), CENTERS, 0.5)

    def test_normalized_centers_are_denormalized(self):
        model, _ = self._fit(k=3, maxIter=10, initialization="furthest", normalize=True, seed=3)
        self.assertTrue(model.state.normalized)
        self.assertCentersNear(model.clusterCenters(), CENTERS, 0.5)

    def test_checkpoint_phases_and_versions(self):
        store = RecordingStore()
        self._fit(store, k=3, maxIter=3, initialization="plusPlus", seed=1)

        phases = [s.phase for s in store.history]
        self.assertEqual(
            phases,
            [Phase.SEEDING] * 5 + [Phase.RECLUSTERING] + [Phase.REFINING] * 3 + [Phase.DONE],
        )
        versions = [s.version for s in store.history]
        self.assertEqual(versions, sorted(set(versions)))
        self.assertEqual(len(store.history[5].clusters), 3)

    def test_cancellation_after_third_pass(self):
        store = CancellingStore(after=3)
        job = KMeansJob(store=store)
        store.job = job

        model = ScalableKMeans(k=3, maxIter=10, seed=5).setJob(job).fit(self.frame)

        self.assertEqual(model.iterations, 3)
        self.assertEqual(model.state.phase, Phase.CANCELLED)
        refining = [s.iterations for s in store.history if s.phase is Phase.REFINING]
        self.assertEqual(refining, [1, 2, 3])
        self.assertEqual(job.state().iterations, 3)
        self.assertAlmostEqual(job.progress(), 0.3)

    def test_cancellation_before_seeding(self):
        job = KMeansJob()
        job.cancel()
        model = ScalableKMeans(k=3, initialization="plusPlus", seed=5).setJob(job).fit(self.frame)

        self.assertEqual(model.state.phase, Phase.CANCELLED)
        self.assertEqual(model.state.seeding_rounds, 0)
        self.assertEqual(model.iterations, 0)

    def test_cancellation_after_second_seeding_round(self):
        store = CancellingStore(after=2, phase=Phase.SEEDING)
        job = KMeansJob(store=store)
        store.job = job

        model = ScalableKMeans(k=3, maxIter=10, initialization="plusPlus", seed=5).setJob(job).fit(self.frame)

        self.assertEqual(model.state.phase, Phase.CANCELLED)
        self.assertEqual(model.state.seeding_rounds, 2)
        self.assertEqual(model.iterations, 0)
        phases = [s.phase for s in store.history]
        self.assertEqual(phases, [Phase.SEEDING, Phase.SEEDING, Phase.CANCELLED])
        self.assertNotIn(Phase.RECLUSTERING, phases)
        self.assertNotIn(Phase.REFINING, phases)

    def test_transform_reuses_frame_with_model_columns(self):
        model, _ = self._fit(k=3, maxIter=2, initialization="furthest", seed=2)
        frame = SelectCountingFrame(self.points, names=["x", "y"])

        model.transform(frame)
        model.computeCost(frame)

        self.assertEqual(frame.selects, 0)

    def test_reproducibility(self):
        first, _ = self._fit(k=3, maxIter=5, initialization="plusPlus", seed=11)
        second, _ = self._fit(k=3, maxIter=5, initialization="plusPlus", seed=11)
        np.testing.assert_array_equal(first.clusterCenters(), second.clusterCenters())
        np.testing.assert_array_equal(first.transform(self.frame), second.transform(self.frame))

    def test_transform_and_score(self):
        model, _ = self._fit(k=3, maxIter=5, initialization="furthest", seed=2)

        assignments = model.transform(self.frame)
        self.assertEqual(len(assignments), len(self.points))
        self.assertTrue(np.all((assignments >= 0) & (assignments < 3)))

        for row in (0, 17, 299):
            preds = model.score(self.frame, row)
            self.assertEqual(preds.sum(), 1)
            self.assertEqual(int(np.argmax(preds)), assignments[row])

    def test_single_row_prediction_unsupported(self):
        model, _ = self._fit(k=3, maxIter=2, seed=2)
        with self.assertRaises(UnsupportedOperationError):
            model.predict(np.array([0.0, 0.0]))
        with self.assertRaises(NotImplementedError):
            model.predict(np.array([0.0, 0.0]))

    def test_compute_cost(self):
        model, _ = self._fit(k=3, maxIter=5, initialization="furthest", seed=2)
        cost = model.computeCost(self.frame)
        self.assertGreaterEqual(cost, 0.0)
        self.assertLessEqual(cost, model.error * (1 + 1e-12) + 1e-12)

    def test_missing_values(self):
        points = self.points.copy()
        points[::7, 0] = np.nan
        points[::11, 1] = np.nan
        frame = ArrayFrame(points, num_partitions=3)

        model = ScalableKMeans(k=3, maxIter=10, initialization="furthest", seed=4).fit(frame)

        self.assertFalse(np.isnan(model.clusterCenters()).any())
        self.assertEqual(model.state.unassigned_rows, 0)
        self.assertEqual(int(model.state.cluster_rows.sum()), len(points))

    def test_input_cols(self):
        extra = np.column_stack([self.points, np.arange(len(self.points), dtype=np.float64)])
        frame = ArrayFrame(extra, names=["x", "y", "id"])

        model = ScalableKMeans(k=3, maxIter=5, initialization="furthest", inputCols=["x", "y"], seed=1).fit(frame)

        self.assertEqual(model.numFeatures, 2)
        self.assertEqual(len(model.transform(frame)), len(self.points))

    def test_empty_cluster_left_degenerate(self):
        frame = ArrayFrame([[0.0, 0.0]] * 5 + [[10.0, 10.0]] * 5, num_partitions=2)
        model = ScalableKMeans(k=3, maxIter=1, seed=0).fit(frame)

        self.assertTrue(model.state.empty_clusters)
        for cluster in model.state.empty_clusters:
            self.assertTrue(np.all(np.isnan(model.clusterCenters()[cluster])))

    def test_empty_cluster_reseeded(self):
        frame = ArrayFrame([[0.0, 0.0]] * 5 + [[10.0, 10.0]] * 5, num_partitions=2)
        model = ScalableKMeans(k=3, maxIter=1, seed=0, emptyClusterStrategy="reseedRandom").fit(frame)

        self.assertTrue(model.state.empty_clusters)
        self.assertFalse(np.isnan(model.clusterCenters()).any())

    def test_parameter_getters(self):
        kmeans = ScalableKMeans(k=5, initialization="furthest", normalize=True, maxIter=30, seed=3)

        self.assertEqual(kmeans.getK(), 5)
        self.assertEqual(kmeans.getInitialization(), "furthest")
        self.assertTrue(kmeans.getNormalize())
        self.assertEqual(kmeans.getMaxIter(), 30)
        self.assertEqual(kmeans.getSeed(), 3)
        self.assertEqual(kmeans.getEmptyClusterStrategy(), "leave")
        self.assertEqual(kmeans.getPredictionCol(), "prediction")

    def test_parameter_setters(self):
        kmeans = ScalableKMeans()

        kmeans.setK(7)
        self.assertEqual(kmeans.getK(), 7)

        kmeans.setInitialization("plusPlus")
        self.assertEqual(kmeans.getInitialization(), "plusPlus")

        kmeans.setMaxIter(50)
        self.assertEqual(kmeans.getMaxIter(), 50)

        kmeans.setNormalize(True).setEmptyClusterStrategy("reseedRandom")
        self.assertTrue(kmeans.getNormalize())
        self.assertEqual(kmeans.getEmptyClusterStrategy(), "reseedRandom")

    def test_model_copies_params(self):
        model, _ = self._fit(k=3, maxIter=2, initialization="furthest", seed=2)
        self.assertIsInstance(model, ScalableKMeansModel)
        self.assertEqual(model.getK(), 3)
        self.assertEqual(model.getInitialization(), "furthest")


class ConfigurationTest(unittest.TestCase):
    """Invalid configurations are rejected before any pass runs."""

    def setUp(self):
        self.frame = ArrayFrame(three_blobs(per_cluster=5))

    def test_invalid_k(self):
        with self.assertRaises(ConfigurationError):
            ScalableKMeans(k=1).fit(self.frame)
        with self.assertRaises(ValueError):
            KMeansDriver(k=0, max_iter=5)

    def test_invalid_max_iter(self):
        with self.assertRaises(ConfigurationError):
            ScalableKMeans(k=2, maxIter=0).fit(self.frame)

    def test_invalid_policies(self):
        with self.assertRaises(ConfigurationError):
            ScalableKMeans(k=2, initialization="random").fit(self.frame)
        with self.assertRaises(ConfigurationError):
            ScalableKMeans(k=2, emptyClusterStrategy="drop").fit(self.frame)

    def test_nothing_checkpointed_on_rejection(self):
        job = KMeansJob()
        with self.assertRaises(ConfigurationError):
            ScalableKMeans(k=1).setJob(job).fit(self.frame)
        self.assertIsNone(job.state())
        self.assertEqual(job.progress(), 0.0)

    def test_empty_frame(self):
        with self.assertRaises(ConfigurationError):
            KMeansDriver(k=2, max_iter=1).run(ArrayFrame(np.empty((0, 2))))

    def test_unsupported_dataset(self):
        with self.assertRaises(TypeError):
            ScalableKMeans(k=2).fit([[0.0, 1.0]])


class CheckpointStoreTest(unittest.TestCase):
    """Test cases for ModelState persistence."""

    def setUp(self):
        self.state = ModelState(
            key="model",
            clusters=np.array([[1.0, 2.0], [np.nan, np.nan]]),
            max_iter=10,
            normalized=True,
            error=3.5,
            iterations=4,
            cluster_variances=np.array([0.5, 0.0]),
            phase=Phase.REFINING,
            version=9,
            seeding_rounds=5,
            cluster_rows=np.array([12, 0]),
            empty_clusters=[1],
        )

    def test_progress(self):
        self.assertAlmostEqual(self.state.progress(), 0.4)
        self.assertEqual(self.state.evolve(iterations=25).progress(), 1.0)

    def test_evolve_bumps_version(self):
        evolved = self.state.evolve(iterations=5)
        self.assertEqual(evolved.version, 10)
        self.assertEqual(evolved.iterations, 5)
        self.assertEqual(self.state.iterations, 4)

    def test_file_store_round_trip(self):
        directory = tempfile.mkdtemp()
        try:
            store = FileCheckpointStore(directory)
            self.assertIsNone(store.get("model"))
            store.put("model", self.state)
            loaded = store.get("model")
        finally:
            shutil.rmtree(directory)

        np.testing.assert_array_equal(loaded.clusters, self.state.clusters)
        np.testing.assert_array_equal(loaded.cluster_variances, self.state.cluster_variances)
        np.testing.assert_array_equal(loaded.cluster_rows, self.state.cluster_rows)
        self.assertEqual(loaded.phase, Phase.REFINING)
        self.assertEqual(loaded.version, 9)
        self.assertEqual(loaded.error, 3.5)
        self.assertEqual(loaded.empty_clusters, [1])
        self.assertTrue(loaded.normalized)

    def test_job_reads_file_store(self):
        directory = tempfile.mkdtemp()
        try:
            job = KMeansJob(key="blobs", store=FileCheckpointStore(directory))
            ScalableKMeans(k=3, maxIter=4, initialization="furthest", seed=1).setJob(job).fit(
                ArrayFrame(three_blobs(per_cluster=20))
            )
            state = job.state()
        finally:
            shutil.rmtree(directory)

        self.assertEqual(state.phase, Phase.DONE)
        self.assertEqual(state.iterations, 4)
        self.assertEqual(state.clusters.shape, (3, 2))

    def test_file_store_keeps_dimension_of_empty_clusters(self):
        directory = tempfile.mkdtemp()
        try:
            job = KMeansJob(key="cancelled", store=FileCheckpointStore(directory))
            job.cancel()
            model = ScalableKMeans(k=3, initialization="furthest", seed=1).setJob(job).fit(
                ArrayFrame(np.random.default_rng(0).random((20, 3)))
            )
            state = job.state()
        finally:
            shutil.rmtree(directory)

        self.assertEqual(model.state.clusters.shape, (0, 3))
        self.assertEqual(state.phase, Phase.CANCELLED)
        self.assertEqual(state.clusters.shape, (0, 3))
        self.assertEqual(ScalableKMeansModel(state).numFeatures, 3)


if __name__ == "__main__":
    unittest.main()
