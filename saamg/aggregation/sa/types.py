"""Typed containers and aliases used throughout the smoothed-aggregation setup.

Containers
----------
NodeState
    Explicit per-node state used by the aggregation kernels while passes are
    running:
      - UNMARKED : not yet assigned
      - CORE     : member of an aggregate seeded in pass 1 or pass 3
      - ATTACHED : joined a neighbouring core aggregate in pass 2
      - ISOLATED : no off-diagonal neighbours; never aggregated
    Only CORE nodes may attract attachments in pass 2. On completion the state
    collapses to the public contract ``x[i] = aggregate id`` or ``-1``.

SAConfig
    Per-level setup parameters for extending the hierarchy by one level.

SALevel
    Structural type documenting the attributes a level carries after setup.

Invariants
----------
- Aggregate ids are 0-based and contiguous, ``0 <= id < n_aggs``.
- ``roots[k]`` is a fine node that belongs to aggregate ``k``.
- Pattern/operator index arrays are int32 or int64 numpy arrays.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Protocol

import numpy as np
from scipy.sparse import spmatrix

try:
    from scipy.sparse import sparray  # type: ignore
except Exception:  # pragma: no cover
    sparray = spmatrix  # type: ignore

SparseLike = spmatrix | sparray
MethodSpec = str | tuple[str, dict[str, Any]] | None

UNAGGREGATED = -1


class NodeState(IntEnum):
    """Aggregation state of one fine node during the aggregation passes."""

    UNMARKED = 0
    CORE = 1
    ATTACHED = 2
    ISOLATED = 3


@dataclass(slots=True, frozen=True)
class SAConfig:
    """Configuration for extending a smoothed-aggregation hierarchy by one level.

    Attributes
    ----------
    strength : MethodSpec
        Strength-of-connection method, e.g. ``('symmetric', {'theta': 0.0})``.
    aggregate : MethodSpec
        Aggregation method, e.g. ``'standard'`` or ``'naive'``.
    smooth : MethodSpec
        Prolongation smoother, e.g. ``('energy', {'maxiter': 4})`` or None for
        the tentative prolongator.
    tol : float
        Drop tolerance for numerically dependent candidates in the tentative fit.
    print_info : bool
        Whether to print per-level diagnostics via `sa.stats`.
    """

    strength: MethodSpec
    aggregate: MethodSpec
    smooth: MethodSpec
    tol: float
    print_info: bool


class SALevel(Protocol):
    """Structural type for a PyAMG multilevel `Level` after one SA extension.

    Documents the attributes written by `sa.hierarchy._sa_extend_hierarchy`.
    """

    # Operators on this level
    A: SparseLike
    B: np.ndarray

    # Coarsening data
    C: SparseLike
    AggOp: SparseLike
    Cpts: np.ndarray
    n_aggs: int

    # Transfer operators
    T: SparseLike
    P: SparseLike
    R: SparseLike
