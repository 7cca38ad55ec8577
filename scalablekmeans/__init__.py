# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Scalable K-Means
================

K-Means clustering with k-means|| initialization over partitioned datasets.
"""

__version__ = "0.1.0"
__all__ = ["clusterer"]
