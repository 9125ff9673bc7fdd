"""Hierarchy extension for smoothed aggregation.

This module provides:
  - the Galerkin coarse operator ``R @ A @ P``,
  - appending the next multigrid level,
  - the orchestration routine that builds one additional level.

The public entrypoint used by `smoothed_aggregation.py` is `_sa_extend_hierarchy`.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from pyamg.multilevel import MultilevelSolver

from .types import SAConfig, SparseLike


def _sa_coarsen_operator(*, A: SparseLike, P: SparseLike, R: SparseLike) -> SparseLike:
    """Form the Galerkin coarse operator ``A_c = R @ A @ P``.

    Parameters
    ----------
    A
        Fine-level operator (CSR or BSR).
    P, R
        Prolongation (BSR, blocksize (K1, K2)) and restriction (R = P^H).

    Returns
    -------
    A_c
        CSR if the coarse blocksize K2 is 1, otherwise BSR with blocksize (K2, K2).
    """
    K2 = P.blocksize[1] if P.format == "bsr" else 1
    A_c = R @ (A @ P)
    if K2 == 1:
        A_c = A_c.tocsr()
    else:
        A_c = A_c.tobsr(blocksize=(K2, K2))
    A_c.sort_indices()
    _sa_downcast_indices(A_c)
    return A_c


def _sa_downcast_indices(M: SparseLike) -> None:
    """Store the index arrays of a CSR/BSR array as int32 when they fit.

    pyamg's compiled relaxation only accepts int32 index arrays, and sparse
    products may promote indices to int64.
    """
    limit = np.iinfo(np.int32).max
    if M.indptr.dtype == np.int32 and M.indices.dtype == np.int32:
        return
    if M.indptr[-1] > limit or max(M.shape) > limit:
        return
    M.indptr = M.indptr.astype(np.int32)
    M.indices = M.indices.astype(np.int32)


def _sa_fit_rank(R_fit: np.ndarray, n_aggs: int) -> np.ndarray:
    """Number of independent candidates kept per aggregate by the tentative fit."""
    K2 = R_fit.shape[1]
    blocks = R_fit.reshape(n_aggs, K2, K2)
    return np.count_nonzero(np.diagonal(blocks, axis1=1, axis2=2), axis=1)


def _sa_append_next_level(*, levels: list[Any], A: SparseLike, B: np.ndarray) -> MultilevelSolver.Level:
    """Append a new multigrid level and store A/B and density metadata.

    Parameters
    ----------
    levels
        List of MultilevelSolver levels. Mutated by appending one new Level().
    A, B
        Coarse-level operator and candidates to store on the new level.

    Returns
    -------
    next_level
        The newly created and appended `MultilevelSolver.Level` instance.
    """
    levels.append(MultilevelSolver.Level())
    nxt = levels[-1]
    nxt.A = A
    nxt.B = B
    nxt.density = A.nnz / (A.shape[0] ** 2)
    return nxt


def _sa_extend_hierarchy(*, levels: list[Any], config: SAConfig) -> bool:
    """Extend the multigrid hierarchy by one level.

    Parameters
    ----------
    levels
        List of `MultilevelSolver.Level` objects. The routine reads the
        current finest-unprocessed level as `levels[-1]` (fields `A`, `B`) and
        appends a new coarse level at the end.
    config
        Strength, aggregation and smoothing specs for this level, plus the
        tentative-fit tolerance and the print flag.

    Returns
    -------
    stop
        True if aggregation produced no aggregates; nothing is appended and
        `levels[-1]` becomes the coarsest level.

    Side effects
    ------------
    - Sets `C`, `AggOp`, `Cpts`, `n_aggs`, `T`, `P`, `R` on `levels[-1]`.
    - Appends the coarse level via `_sa_append_next_level`.
    """
    from .coarsening import (
        _sa_build_aggop,
        _sa_build_strength,
        _sa_fit_tentative,
        _sa_smooth_prolongator,
    )
    from .stats import (
        SALevelStats,
        _sa_finalize_level_stats,
        _sa_print_level_summary,
    )

    level = levels[-1]
    A = level.A
    B = level.B

    stats = SALevelStats(level=len(levels) - 1, n_fine=A.shape[0])

    # ---- strength-of-connection ----
    with stats.timeit("strength"):
        C = _sa_build_strength(A=A, strength_spec=config.strength)

    # ---- aggregation ----
    with stats.timeit("aggregate"):
        AggOp, Cpts = _sa_build_aggop(C=C, aggregate_spec=config.aggregate)

    n_aggs = AggOp.shape[1] if AggOp.nnz > 0 else 0
    if n_aggs == 0:
        return True

    level.C = C
    level.AggOp = AggOp
    level.Cpts = Cpts
    level.n_aggs = n_aggs

    # ---- tentative prolongator ----
    with stats.timeit("tentative"):
        T, B_c = _sa_fit_tentative(AggOp=AggOp, B=B, tol=config.tol)
    level.T = T
    level.R_fit_rank = _sa_fit_rank(B_c, n_aggs)

    # ---- prolongation smoothing ----
    with stats.timeit("smooth"):
        P = _sa_smooth_prolongator(A=A, T=T, C=C, B_coarse=B_c, smooth_spec=config.smooth)
    _sa_downcast_indices(P)
    level.P = P
    level.R = P.T.conj().tobsr()
    _sa_downcast_indices(level.R)

    # ---- coarse operator ----
    fine_sym = getattr(A, "symmetry", None)

    with stats.timeit("coarsen"):
        A_c = _sa_coarsen_operator(A=A, P=level.P, R=level.R)

        if fine_sym is not None:
            A_c.symmetry = fine_sym

    _sa_finalize_level_stats(stats=stats, level=level, n_coarse=A_c.shape[0])
    _sa_print_level_summary(stats, print_info=config.print_info)

    _sa_append_next_level(levels=levels, A=A_c, B=B_c)
    return False

