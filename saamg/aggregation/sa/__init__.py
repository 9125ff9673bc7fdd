"""Smoothed-aggregation setup internals.

This package contains the building blocks of the smoothed-aggregation solver
(`saamg.aggregation.smoothed_aggregation`).

Modules
-------
strength
    Symmetric strength-of-connection filtering.
aggregate
    Standard and naive aggregation of the strength graph.
tentative
    Tentative prolongator fit (per-aggregate QR of the candidates).
incomplete
    Sparse block matrix product restricted to a fixed output pattern.
constraints
    Gram matrices of the candidates and the near-nullspace projection.
smooth
    Constrained energy minimization of the tentative prolongator.
coarsening
    Translation of method specs into the per-level setup steps.
hierarchy
    Coarse operator construction and extension of the hierarchy.
dtypes, checks
    Supported index/value types and structural precondition checks.
types
    Shared aliases, the node state enum, and per-level configuration.
stats
    Per-level timing and diagnostic reporting.
"""

from __future__ import annotations

from . import (
    aggregate,
    checks,
    coarsening,
    constraints,
    dtypes,
    hierarchy,
    incomplete,
    smooth,
    stats,
    strength,
    tentative,
    types,
)

__all__ = [
    "strength",
    "aggregate",
    "tentative",
    "incomplete",
    "constraints",
    "smooth",
    "coarsening",
    "hierarchy",
    "dtypes",
    "checks",
    "types",
    "stats",
]
