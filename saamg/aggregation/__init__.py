"""Aggregation-based AMG."""

from .smoothed_aggregation import smoothed_aggregation_solver

__all__ = ["smoothed_aggregation_solver"]
