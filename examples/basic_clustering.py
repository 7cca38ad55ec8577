#!/usr/bin/env python
# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Basic clustering example using ScalableKMeans on a Spark DataFrame.
"""

from pyspark.sql import SparkSession

from scalablekmeans.clusterer import ScalableKMeans


def main():
    # Create Spark session
    spark = (
        SparkSession.builder.appName("BasicClustering")
        .config("spark.ui.enabled", "false")
        .getOrCreate()
    )
    spark.sparkContext.setLogLevel("WARN")

    # Create sample data - two well-separated clusters, one missing value
    data = spark.createDataFrame(
        [
            (0.0, 0.0),
            (1.0, 1.0),
            (0.5, None),
            (9.0, 8.0),
            (8.0, 9.0),
            (8.5, 8.5),
        ],
        "x double, y double",
    )

    print("Input data:")
    data.show()

    # Create and train clustering model
    kmeans = ScalableKMeans(
        k=2,
        initialization="plusPlus",
        maxIter=20,
        seed=42,
    )

    print("\nTraining model...")
    model = kmeans.fit(data)

    # Display cluster centers
    print(f"\nNumber of clusters: {model.numClusters}")
    print(f"Number of features: {model.numFeatures}")
    print("\nCluster centers:")
    for i, center in enumerate(model.clusterCenters()):
        print(f"  Cluster {i}: {center}")

    # Make predictions
    predictions = model.transform(data)
    print("\nPredictions:")
    predictions.show()

    print(f"\nWithin-cluster sum of squares: {model.error:.4f}")
    print(f"Per-cluster variances: {model.clusterVariances}")

    spark.stop()


if __name__ == "__main__":
    main()
