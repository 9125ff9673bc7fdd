"""Symmetric strength-of-connection for smoothed aggregation.

A nonzero off-diagonal entry ``A[i,j]`` is a strong connection if

    |A[i,j]| >= theta * sqrt(|A[i,i]| * |A[j,j]|)

which is evaluated without the square root as

    |A[i,j]|^2 >= theta^2 * |A[i,i]| * |A[j,j]|.

Diagonal entries are always retained, so the strength matrix ``S`` is a
structural subset of ``A`` that contains every stored diagonal entry. Values
are copied from ``A`` unchanged; only the structure carries information for
aggregation.
"""

from __future__ import annotations

import numpy as np
from scipy.sparse import csr_array

from .checks import check_compressed, require_format, require_square
from .dtypes import norm, norm_squared, resolve_types


def symmetric_strength_of_connection_kernel(n_row, theta, Ap, Aj, Ax, Sp, Sj, Sx) -> int:
    """Fill ``(Sp, Sj, Sx)`` with the strong entries of the CSR matrix ``(Ap, Aj, Ax)``.

    Parameters
    ----------
    n_row
        Number of rows in A.
    theta
        Strength tolerance, ``theta >= 0``.
    Ap, Aj, Ax
        CSR structure and values of A.
    Sp, Sj, Sx
        Output buffers. ``Sp`` has length ``n_row + 1``; ``Sj`` and ``Sx`` must
        hold at least ``nnz(A)`` entries.

    Returns
    -------
    nnz
        Number of entries written to ``Sj``/``Sx``.

    Notes
    -----
    Duplicate diagonal entries are summed before taking the magnitude. Each
    row is independent of every other row, and the kept entries keep their
    order within the row.
    """
    nnz_A = int(Ap[n_row])
    rows = np.repeat(np.arange(n_row, dtype=Ap.dtype), np.diff(Ap[: n_row + 1]))
    cols = Aj[:nnz_A]
    vals = Ax[:nnz_A]

    on_diag = cols == rows
    diag = np.zeros(n_row, dtype=Ax.dtype)
    np.add.at(diag, rows[on_diag], vals[on_diag])
    diags = norm(diag)

    eps = (theta * theta) * diags
    strong = on_diag | (norm_squared(vals) >= eps[rows] * diags[cols])

    nnz = int(np.count_nonzero(strong))
    Sj[:nnz] = cols[strong]
    Sx[:nnz] = vals[strong]

    Sp[0] = 0
    Sp[1 : n_row + 1] = np.cumsum(np.bincount(rows[strong], minlength=n_row))
    return nnz


def _amalgamate(A) -> csr_array:
    """Collapse a BSR matrix to a node-level CSR graph of block Frobenius norms."""
    R, C = A.blocksize
    vals = np.linalg.norm(A.data.reshape(-1, R * C), axis=1)
    return csr_array(
        (vals, A.indices.copy(), A.indptr.copy()),
        shape=(A.shape[0] // R, A.shape[1] // C),
    )


def symmetric_strength_of_connection(A, theta: float = 0.0) -> csr_array:
    """Compute the symmetric strength-of-connection matrix of ``A``.

    Parameters
    ----------
    A
        Square CSR or BSR sparse array. A BSR input is amalgamated first, so
        the result is a node (block) graph.
    theta
        Non-negative strength tolerance. ``theta = 0`` keeps every entry.

    Returns
    -------
    S
        CSR array with the same number of (node) rows as ``A`` and
        ``nnz(S) <= nnz(A)``.

    Raises
    ------
    TypeError
        If ``A`` is not CSR/BSR, or has an unsupported dtype combination.
    ValueError
        If ``theta < 0`` or ``A`` is not square.
    """
    require_format(A, ("csr", "bsr"))
    require_square(A)
    if theta < 0:
        raise ValueError(f"expected a non-negative theta, got {theta}")

    if A.format == "bsr":
        if A.blocksize[0] != A.blocksize[1]:
            raise ValueError(f"expected square blocks, got {A.blocksize}")
        A = _amalgamate(A)

    n = A.shape[0]
    check_compressed(A.indptr, A.indices, n, name="A")
    types = resolve_types(A.indptr, A.data)

    Sp = np.empty(n + 1, dtype=types.index)
    Sj = np.empty(A.indptr[-1], dtype=types.index)
    Sx = np.empty(A.indptr[-1], dtype=types.value)

    nnz = symmetric_strength_of_connection_kernel(
        n, types.real.type(theta), A.indptr, A.indices, A.data, Sp, Sj, Sx
    )
    return csr_array((Sx[:nnz], Sj[:nnz], Sp), shape=A.shape)
