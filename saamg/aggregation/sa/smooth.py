"""Energy-minimizing smoothing of the tentative prolongator.

The tentative prolongator ``T`` interpolates the candidates exactly but has
high energy. This module lowers ``tr(P^H A P)`` by a few steps of
diagonally-preconditioned conjugate gradients over the Frobenius inner
product, with two restrictions on every search direction:

1) Sparsity: directions live in the pattern ``Atilde^degree * pattern(T)``.
   Products with A are formed only at that pattern with
   `sa.incomplete.incomplete_mat_mult`.
2) Constraints: every direction ``U`` satisfies ``U @ B = 0`` for the coarse
   candidates ``B`` (see `sa.constraints`), so ``P @ B = T @ B`` holds for
   the result.

Row scaling by a diagonal weighting preserves the row-wise constraints, so
preconditioned residuals need no second projection.
"""

from __future__ import annotations

import numpy as np
from scipy.sparse import bsr_array, csr_array

from .checks import require_format, require_square
from .constraints import compute_BtBinv, satisfy_constraints
from .incomplete import incomplete_mat_mult


def _node_pattern(M) -> csr_array:
    """Block-level structure of a BSR (or CSR) array as a CSR array of ones."""
    R, C = M.blocksize if M.format == "bsr" else (1, 1)
    pattern = csr_array(
        (np.ones(M.indices.shape[0]), M.indices.copy(), M.indptr.copy()),
        shape=(M.shape[0] // R, M.shape[1] // C),
    )
    pattern.sum_duplicates()
    pattern.data[:] = 1.0
    return pattern


def _identity_pattern(n: int) -> csr_array:
    """CSR identity used to force the diagonal into Atilde."""
    return csr_array(
        (np.ones(n), np.arange(n, dtype=np.int32), np.arange(n + 1, dtype=np.int32)),
        shape=(n, n),
    )


def _weighting_inverse(A, weighting: str) -> np.ndarray:
    """Inverse of the diagonal preconditioner, one entry per scalar row of A.

    'diagonal' uses ``diag(A)``; 'local' uses the absolute row sums ``|A| @ 1``.
    Zero entries give a zero weight.
    """
    if weighting == "diagonal":
        D = np.real(A.diagonal())
    elif weighting == "local":
        D = np.real(abs(A) @ np.ones(A.shape[1], dtype=np.real(A.data).dtype))
    else:
        raise ValueError(f"Unrecognized weighting for energy smoothing: {weighting!r}")

    Dinv = np.zeros_like(D, dtype=float)
    nz = D != 0
    Dinv[nz] = 1.0 / D[nz]
    return Dinv


def energy_prolongation_smoother(
    A,
    T,
    Atilde,
    B,
    maxiter: int = 4,
    tol: float = 1e-8,
    degree: int = 1,
    weighting: str = "local",
):
    """Minimize the energy of the columns of a tentative prolongator.

    Parameters
    ----------
    A
        Square CSR or BSR operator, Hermitian positive (semi-)definite.
    T
        Tentative prolongator, BSR with blocksize (K1, K2) where K1 is the
        blocksize of A.
    Atilde
        Node-level (n_nodes x n_nodes) sparse matrix whose structure expands
        the allowed pattern of P, typically the strength matrix. None uses the
        block structure of A.
    B
        Coarse-level candidates, (T.shape[1] x NullDim).
    maxiter
        Number of CG iterations.
    tol
        Relative residual (Frobenius norm) at which iteration stops early.
    degree
        Number of times the pattern of T is expanded by Atilde.
    weighting
        Diagonal preconditioner, 'local' or 'diagonal'.

    Returns
    -------
    P
        Smoothed prolongator, BSR with the same blocksize as T, satisfying
        ``P @ B = T @ B``.

    Raises
    ------
    TypeError
        If T is not BSR or A is not CSR/BSR.
    ValueError
        If ``maxiter < 0``, ``degree < 0``, the weighting is unknown, or the
        shapes of A, T, Atilde and B do not agree.

    Notes
    -----
    Inputs are not modified.
    """
    require_format(A, ("csr", "bsr"))
    require_format(T, ("bsr",), name="T")
    require_square(A)

    if maxiter < 0:
        raise ValueError("maxiter must be >= 0")
    if degree < 0:
        raise ValueError("degree must be >= 0")

    K1, K2 = T.blocksize
    if A.shape[0] != T.shape[0]:
        raise ValueError(f"A{A.shape} and T{T.shape} have incompatible shapes")
    B = np.asarray(B)
    if B.ndim != 2 or B.shape[0] != T.shape[1]:
        raise ValueError(f"B must have {T.shape[1]} rows, got shape {B.shape}")

    n_brow = T.shape[0] // K1
    dtype = np.result_type(A.dtype, T.dtype, B.dtype)
    A_bsr = A.tobsr(blocksize=(K1, K1)).astype(dtype)
    T = T.astype(dtype)
    B = B.astype(dtype, copy=False)

    if Atilde is None:
        Atilde = _node_pattern(A_bsr)
    else:
        Atilde = _node_pattern(Atilde.tocsr())
        if Atilde.shape != (n_brow, n_brow):
            raise ValueError(f"Atilde must have shape {(n_brow, n_brow)}, got {Atilde.shape}")
    Atilde = (Atilde + _identity_pattern(n_brow)).tocsr()

    pattern = _node_pattern(T)
    for _ in range(degree):
        pattern = (Atilde @ pattern).tocsr()
    pattern.sort_indices()

    BtBinv = compute_BtBinv(B, pattern)

    def on_pattern(data):
        return bsr_array(
            (data, pattern.indices, pattern.indptr),
            shape=T.shape,
            blocksize=(K1, K2),
        )

    block_rows = np.repeat(np.arange(n_brow), np.diff(pattern.indptr))
    row_scale = _weighting_inverse(A_bsr, weighting).reshape(n_brow, K1)[block_rows]
    row_scale = row_scale[:, :, None]

    # Initial residual: -(A @ T) on the pattern, with R @ B = 0
    Res = on_pattern(np.zeros((pattern.nnz, K1, K2), dtype=dtype))
    incomplete_mat_mult(A_bsr, T, Res)
    Res.data *= -1.0
    satisfy_constraints(Res, B, BtBinv)

    resid0 = np.sqrt(np.vdot(Res.data, Res.data).real)
    if resid0 == 0.0:
        return T

    update = np.zeros_like(Res.data)
    AP = on_pattern(np.zeros_like(Res.data))
    direction = None
    oldsum = None

    for _ in range(maxiter):
        Z = Res.data * row_scale
        newsum = np.vdot(Res.data, Z)
        if abs(newsum) < tol:
            break

        if direction is None:
            direction = Z
        else:
            direction = Z + (newsum / oldsum) * direction
        oldsum = newsum

        # A @ direction on the pattern, with AP @ B = 0
        AP.data[:] = 0.0
        incomplete_mat_mult(A_bsr, on_pattern(direction), AP)
        satisfy_constraints(AP, B, BtBinv)

        alpha = newsum / np.vdot(direction, AP.data)
        update += alpha * direction
        Res.data -= alpha * AP.data

        if np.sqrt(np.vdot(Res.data, Res.data).real) <= tol * resid0:
            break

    P = T + on_pattern(update)
    return P.tobsr(blocksize=(K1, K2))
