#!/usr/bin/env python
# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Setup configuration for scalablekmeans-clusterer package.
"""

from setuptools import setup, find_packages
import os

# Read version from package
with open(os.path.join("scalablekmeans", "__init__.py")) as f:
    for line in f:
        if line.startswith("__version__"):
            version = line.split("=")[1].strip().strip('"').strip("'")
            break

# Read long description from README
long_description = """
# Scalable K-Means Clusterer

K-Means clustering with k-means|| (scalable k-means++) initialization over
column-partitioned datasets, locally with NumPy or distributed with PySpark.

## Features

- **k-means|| Initialization**: Oversampled seeding re-clustered with k-means++
  or farthest-point selection
- **Partitioned Map/Reduce**: Every pass runs per partition and merges results
  associatively (thread pool or Spark `treeReduce`)
- **Missing Values**: Mean imputation and missing-dimension distance scaling
- **Normalization**: Optional per-column z-scoring, centroids always reported
  in the original value space
- **Reproducible**: Per-partition random streams derived from the seed and the
  partition row offset
- **Checkpoints & Cancellation**: Versioned model snapshots after every pass

## Installation

```bash
pip install scalablekmeans-clusterer
```

## Quick Start

```python
from scalablekmeans.clusterer import ArrayFrame, ScalableKMeans

frame = ArrayFrame(
    [[0.0, 0.0], [1.0, 1.0], [9.0, 8.0], [8.0, 9.0]],
    names=["x", "y"],
)

kmeans = ScalableKMeans(k=2, maxIter=20, initialization="plusPlus", seed=42)
model = kmeans.fit(frame)

print(model.clusterCenters())
print(f"Within-cluster sum of squares: {model.error}")
```
"""

setup(
    name="scalablekmeans-clusterer",
    version=version,
    description="Scalable K-Means (k-means||) clustering over partitioned datasets",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="MassiveDataScience",
    author_email="support@massivedatascience.com",
    license="Apache License 2.0",
    packages=find_packages(include=["scalablekmeans", "scalablekmeans.*"]),
    python_requires=">=3.8",
    install_requires=[
        "pyspark>=3.4.0",
        "numpy>=1.20.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=3.0.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=3.0.0",
            "black>=22.0.0",
            "flake8>=4.0.0",
            "mypy>=0.950",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering",
        "Topic :: Software Development :: Libraries",
    ],
    keywords="pyspark clustering kmeans kmeans-parallel machine-learning",
)
