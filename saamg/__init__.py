"""Smoothed aggregation AMG setup kernels on top of PyAMG."""

from .aggregation import smoothed_aggregation_solver

__version__ = "0.1.0"

__all__ = ["smoothed_aggregation_solver", "__version__"]
