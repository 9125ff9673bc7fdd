"""Tentative prolongator from aggregates and near-nullspace candidates.

Given an aggregation operator ``AggOp`` (n_fine x n_aggs) and candidates ``B``
stored in the columns of an (n_fine*K1 x K2) array, this module computes

    Q : block-orthonormal tentative prolongator, BSR with blocksize (K1, K2)
    R : coarse-level candidates, (n_aggs*K2 x K2), upper triangular per aggregate

such that ``B = Q @ R`` and ``Q^H Q = I`` on every aggregated row.

Per aggregate, the candidate rows of the member nodes are copied into the
aggregate's block column and orthonormalized with modified Gram-Schmidt in
increasing column order. A column whose norm after orthogonalization is at or
below ``tol`` times its norm before orthogonalization is treated as
numerically dependent: it is zeroed and its diagonal entry of R is set to 0.
Coefficients above that diagonal entry are kept as computed. Aggregates with
fewer degrees of freedom than candidates therefore produce zero columns; this
is expected and not an error.

The Gram-Schmidt sweep runs once per aggregate in Python, vectorized over
the aggregate's rows.
"""

from __future__ import annotations

import numpy as np
from scipy.sparse import bsr_array

from .checks import check_compressed, require_format
from .dtypes import conj_dot, norm_squared, resolve_types, upcast_value_type


def fit_candidates_kernel(n_row, n_col, K1, K2, Ap, Ai, Ax, B, R, tol) -> None:
    """Fill the tentative prolongator data ``Ax`` and coarse candidates ``R`` in place.

    Parameters
    ----------
    n_row, n_col
        Number of fine nodes and number of aggregates.
    K1, K2
        Row blocksize (dofs per node) and column blocksize (candidates).
    Ap, Ai
        CSC structure of AggOp: ``Ai[Ap[j]:Ap[j+1]]`` are the nodes of aggregate j.
    Ax
        Output, flat, ``nnz(AggOp) * K1 * K2`` entries; block ``ii`` is the
        row-major (K1 x K2) block for node ``Ai[ii]``.
    B
        Flat row-major candidates, ``n_row * K1 * K2`` entries.
    R
        Output, flat, ``n_col * K2 * K2`` entries; zero-filled on entry.
    tol
        Relative drop tolerance.
    """
    nnz = int(Ap[n_col])
    Ax_blocks = Ax.reshape(-1, K1, K2)
    B_blocks = B.reshape(n_row, K1, K2)
    R_blocks = R.reshape(n_col, K2, K2)

    R_blocks[:] = 0
    Ax_blocks[:nnz] = B_blocks[Ai[:nnz]]

    for j in range(n_col):
        # dense (|aggregate|*K1 x K2) view of this aggregate's block column
        Q = Ax_blocks[Ap[j] : Ap[j + 1]].reshape(-1, K2)
        Rj = R_blocks[j]

        for bj in range(K2):
            threshold_j = tol * np.sqrt(norm_squared(Q[:, bj]).sum())

            for bi in range(bj):
                dot_prod = conj_dot(Q[:, bi], Q[:, bj])
                Q[:, bj] -= dot_prod * Q[:, bi]
                Rj[bi, bj] = dot_prod

            norm_j = np.sqrt(norm_squared(Q[:, bj]).sum())
            if norm_j > threshold_j:
                Q[:, bj] *= 1.0 / norm_j
                Rj[bj, bj] = norm_j
            else:
                Q[:, bj] = 0
                Rj[bj, bj] = 0


def fit_candidates(AggOp, B, tol: float = 1e-10) -> tuple[bsr_array, np.ndarray]:
    """Fit near-nullspace candidates to form the tentative prolongator.

    Parameters
    ----------
    AggOp
        CSR aggregation operator of shape (n_fine, n_aggs), at most one
        nonzero per row.
    B
        Candidates, array of shape (n_fine*K1, K2).
    tol
        Threshold for dropping candidates that are locally linearly dependent.

    Returns
    -------
    Q
        BSR array of shape (n_fine*K1, n_aggs*K2), blocksize (K1, K2).
    R
        Array of shape (n_aggs*K2, K2); coarse-level candidates.

    Raises
    ------
    TypeError
        If ``AggOp`` is not CSR.
    ValueError
        If ``B`` is not 2D, or its row count is not a multiple of the number of
        fine nodes.

    Notes
    -----
    Rows of AggOp without a nonzero (unaggregated nodes) give zero rows of Q;
    ``B = Q @ R`` then holds only on the aggregated rows.

    Examples
    --------
    >>> import numpy as np
    >>> from scipy.sparse import csr_array
    >>> from saamg.aggregation.sa.tentative import fit_candidates
    >>> AggOp = csr_array(np.array([[1, 0], [1, 0], [0, 1], [0, 1]]))
    >>> Q, R = fit_candidates(AggOp, np.ones((4, 1)))
    >>> np.round(Q.toarray(), 4)
    array([[0.7071, 0.    ],
           [0.7071, 0.    ],
           [0.    , 0.7071],
           [0.    , 0.7071]])
    >>> np.round(R, 4)
    array([[1.4142],
           [1.4142]])
    """
    require_format(AggOp, ("csr",), name="AggOp")

    B = np.asarray(B)
    if B.dtype.kind not in "fc":
        B = B.astype(np.float64)
    B = B.astype(upcast_value_type(B.dtype), copy=False)

    if B.ndim != 2:
        raise ValueError("expected 2D array for argument B")

    n_fine, n_coarse = AggOp.shape
    if n_fine == 0 or B.shape[0] % n_fine != 0:
        raise ValueError("dimensions of AggOp and B are incompatible")

    check_compressed(AggOp.indptr, AggOp.indices, n_fine, name="AggOp")

    K1 = B.shape[0] // n_fine
    K2 = B.shape[1]

    AggOp_csc = AggOp.tocsc()
    AggOp_csc.sort_indices()
    resolve_types(AggOp_csc.indptr, B)

    R = np.empty((n_coarse, K2, K2), dtype=B.dtype)
    Qx = np.empty((AggOp_csc.nnz, K1, K2), dtype=B.dtype)

    fit_candidates_kernel(
        n_fine,
        n_coarse,
        K1,
        K2,
        AggOp_csc.indptr,
        AggOp_csc.indices,
        Qx.reshape(-1),
        np.ascontiguousarray(B).reshape(-1),
        R.reshape(-1),
        tol,
    )

    # Qx holds the blocks of Q^T in CSC order; transpose into BSR form for Q
    Qt = bsr_array(
        (Qx.swapaxes(1, 2).copy(), AggOp_csc.indices, AggOp_csc.indptr),
        shape=(K2 * n_coarse, K1 * n_fine),
    )
    Q = Qt.T.tobsr(blocksize=(K1, K2))
    return Q, R.reshape(-1, K2)
