# Copyright (c) 2025 massivedatascience
# Licensed under the Apache License, Version 2.0

"""
Exceptions raised by the clusterer.
"""


class ClustererError(Exception):
    """Base class for all clusterer errors."""


class ConfigurationError(ClustererError, ValueError):
    """Invalid parameters, rejected before any pass over the data runs."""


class UnsupportedOperationError(ClustererError, NotImplementedError):
    """Operation that needs dataset context which was not provided."""
