"""Strength, aggregation, tentative fit and smoothing steps for one SA level.

This module turns PyAMG-style method specs into calls of the setup kernels.
A spec is either a method name or a ``(name, kwargs)`` pair.

Main responsibilities
---------------------
1) Strength-of-connection:
   Constructs the node graph C used for aggregation.
     - 'symmetric'  : `sa.strength.symmetric_strength_of_connection`
     - 'predefined' : ``kwargs['C']``
     - None         : the (amalgamated) graph of A

2) Aggregation:
   Builds AggOp (n_nodes x n_aggs) and the root nodes Cpts.
     - 'standard', 'naive' : `sa.aggregate`
     - 'predefined'        : ``kwargs['AggOp']`` (no Cpts)

3) Tentative prolongator:
   Fits the candidates B over the aggregates with `sa.tentative.fit_candidates`.

4) Prolongation smoothing:
     - 'energy' : `sa.smooth.energy_prolongation_smoother`, with C as Atilde
     - None     : keep the tentative prolongator
"""

from __future__ import annotations

from typing import Any

import numpy as np
from scipy.sparse import csr_array

from .aggregate import naive_aggregation, standard_aggregation
from .smooth import energy_prolongation_smoother
from .strength import symmetric_strength_of_connection
from .tentative import fit_candidates


def _sa_unpack_arg(v: Any) -> tuple[Any, dict[str, Any]]:
    """Normalize a PyAMG-style method spec into (name, kwargs).

    Parameters
    ----------
    v
        Either:
          - a string name like "standard", "symmetric", ...
          - a pair (name, kwargs) like ("symmetric", {"theta": 0.0})
          - None

    Returns
    -------
    name, kwargs
        `name` is the method identifier, `kwargs` is a dict of keyword arguments.
    """
    if isinstance(v, tuple):
        return v[0], dict(v[1])
    return v, {}


def _sa_build_strength(*, A, strength_spec: Any) -> csr_array:
    """Compute the node-level strength-of-connection matrix C from a strength spec.

    Parameters
    ----------
    A
        Operator on this level (CSR or BSR).
    strength_spec
        PyAMG-style spec (string or (string, kwargs)).

    Returns
    -------
    C
        CSR strength matrix with one row per node (block row of A).
    """
    name, kwargs = _sa_unpack_arg(strength_spec)

    if name == "symmetric":
        C = symmetric_strength_of_connection(A, **kwargs)
    elif name == "predefined":
        C = csr_array(kwargs["C"])
    elif name is None:
        # graph of A; the theta = 0 filter keeps every entry
        C = symmetric_strength_of_connection(A, theta=0.0)
    else:
        raise ValueError(f"Unrecognized strength-of-connection method: {name!r}")

    C = C.tocsr()
    C.eliminate_zeros()
    return C


def _sa_build_aggop(*, C, aggregate_spec: Any) -> tuple[csr_array, np.ndarray | None]:
    """Build the aggregation operator AggOp from an aggregation spec.

    Parameters
    ----------
    C
        Node-level strength matrix (CSR).
    aggregate_spec
        PyAMG-style aggregation spec: 'standard', 'naive', or
        ('predefined', {'AggOp': ...}).

    Returns
    -------
    AggOp, Cpts
        AggOp is CSR with shape (n_nodes, n_aggs). Cpts holds the root node of
        each aggregate, or None for a predefined AggOp.
    """
    name, kwargs = _sa_unpack_arg(aggregate_spec)

    if name == "standard":
        AggOp, Cpts = standard_aggregation(C, **kwargs)
    elif name == "naive":
        AggOp, Cpts = naive_aggregation(C, **kwargs)
    elif name == "predefined":
        AggOp = csr_array(kwargs["AggOp"])
        Cpts = None
        if AggOp.shape[0] != C.shape[0]:
            raise ValueError(
                f"predefined AggOp has {AggOp.shape[0]} rows, expected {C.shape[0]}"
            )
    else:
        raise ValueError(f"Unrecognized aggregation method: {name!r}")

    return AggOp.tocsr(), Cpts


def _sa_fit_tentative(*, AggOp, B, tol: float):
    """Fit the candidates B over AggOp; returns (T, B_coarse)."""
    return fit_candidates(AggOp, B, tol=tol)


def _sa_smooth_prolongator(*, A, T, C, B_coarse, smooth_spec: Any):
    """Smooth the tentative prolongator T according to a smoothing spec.

    Parameters
    ----------
    A
        Operator on this level.
    T
        Tentative prolongator (BSR).
    C
        Strength matrix, used as the pattern-expanding Atilde.
    B_coarse
        Coarse-level candidates from the tentative fit.
    smooth_spec
        ('energy', kwargs), 'energy', or None.

    Returns
    -------
    P
        Prolongator (BSR).
    """
    name, kwargs = _sa_unpack_arg(smooth_spec)

    if name == "energy":
        return energy_prolongation_smoother(A, T, C, B_coarse, **kwargs)
    if name is None:
        return T
    raise ValueError(f"Unrecognized prolongation smoother: {name!r}")
