"""Near-nullspace constraints for energy-minimizing prolongation smoothing.

The energy smoother updates the tentative prolongator ``T`` with a correction
``U`` that lives in a fixed block sparsity pattern and must not disturb the
interpolation of the coarse candidates, i.e. ``U @ B = 0`` where ``B`` are the
coarse-level candidates. Row by row this is a small least-squares projection:

    U_i <- U_i - (U_i B_i) (B_i^H B_i)^+ B_i^H

with ``B_i`` the candidates restricted to the block columns of row i.

Kernels
-------
calc_BtB
    Assembles the Gram matrices ``B_i^H B_i`` (one per block row, column-major).
satisfy_constraints_helper
    Applies the projection to the stored blocks of U, given ``U @ B`` and the
    pseudo-inverted Gram matrices.

Wrappers
--------
compute_BtBinv, satisfy_constraints
    Build the kernel inputs from sparse arrays and the candidate array. The
    pseudo-inverse between the two kernels is a dense Hermitian solve done with
    numpy.
"""

from __future__ import annotations

import numpy as np

from .checks import check_compressed, require_format
from .dtypes import resolve_types


def calc_BtB(NullDim, Nnodes, ColsPerBlock, Bsq, BsqCols, BtB, Sp, Sj) -> None:
    """Fill ``BtB`` with the per-row Gram matrices of the candidates.

    Parameters
    ----------
    NullDim
        Number of candidates (columns of B).
    Nnodes
        Number of block rows of the pattern S.
    ColsPerBlock
        Columns per block of S.
    Bsq
        Flat row-major (n_rows_B x BsqCols) array of pairwise candidate
        products: column ``c`` holds ``conj(B[:, m]) * B[:, n]`` for the c-th
        pair ``(m, n)``, ``m <= n``, in the order
        (0,0), (0,1), ..., (0,NullDim-1), (1,1), (1,2), ...
    BsqCols
        ``NullDim * (NullDim + 1) / 2``.
    BtB
        Output, flat, ``Nnodes * NullDim**2`` entries. Block i receives
        ``B_i^H B_i`` in column-major order, where ``B_i`` is B restricted to
        the absolute rows spanned by the block columns of row i of S.
    Sp, Sj
        Block row pointer and block column indices of S.
    """
    Bsq_rows = Bsq.reshape(-1, BsqCols)
    BtB_blocks = BtB.reshape(Nnodes, NullDim, NullDim)
    upper = np.triu_indices(NullDim)
    lower = np.tril_indices(NullDim, -1)
    offsets = np.arange(ColsPerBlock)

    for i in range(Nnodes):
        cols = Sj[Sp[i] : Sp[i + 1]]
        rows = (cols[:, None] * ColsPerBlock + offsets).ravel()
        summed = Bsq_rows[rows].sum(axis=0)

        G = np.zeros((NullDim, NullDim), dtype=BtB.dtype)
        G[upper] = summed
        G[lower] = np.conjugate(G.T[lower])

        # column-major: the transpose stored row-major
        BtB_blocks[i] = G.T


def satisfy_constraints_helper(
    RowsPerBlock, ColsPerBlock, num_block_rows, NullDim, Bconj, UB, BtBinv, Sp, Sj, Sx
) -> None:
    """Subtract ``UB[i] @ BtBinv[i] @ B[j]^H`` from every stored block (i, j) of S.

    Parameters
    ----------
    RowsPerBlock, ColsPerBlock
        Block dimensions of S.
    num_block_rows
        Number of block rows of S.
    NullDim
        Number of candidates.
    Bconj
        Conjugated candidates, flat row-major; block j is (ColsPerBlock x NullDim).
    UB
        ``S @ B``, flat row-major; block i is (RowsPerBlock x NullDim).
    BtBinv
        Pseudo-inverted Gram matrices, flat row-major; block i is (NullDim x NullDim).
    Sp, Sj, Sx
        BSR structure and flat data of S; ``Sx`` is updated in place.
    """
    Bt_blocks = Bconj.reshape(-1, ColsPerBlock, NullDim)
    UB_blocks = UB.reshape(num_block_rows, RowsPerBlock, NullDim)
    BtBinv_blocks = BtBinv.reshape(num_block_rows, NullDim, NullDim)
    S_blocks = Sx.reshape(-1, RowsPerBlock, ColsPerBlock)

    nnz = int(Sp[num_block_rows])
    rows = np.repeat(np.arange(num_block_rows), np.diff(Sp[: num_block_rows + 1]))
    cols = Sj[:nnz]

    # C = BtBinv[i] @ B[j]^H, (nnz x NullDim x ColsPerBlock)
    C = BtBinv_blocks[rows] @ Bt_blocks[cols].swapaxes(1, 2)
    S_blocks[:nnz] -= UB_blocks[rows] @ C


def compute_BtBinv(B, C) -> np.ndarray:
    """Pseudo-inverses of ``B_i^H B_i`` for every block row i of the pattern ``C``.

    Parameters
    ----------
    B
        Coarse-level candidates, array of shape (n_coarse*ColsPerBlock, NullDim).
    C
        Sparsity pattern, CSR (node level) or BSR. Only the structure is used;
        for CSR the blocksize is taken as (1, B.shape[0] // C.shape[1]).

    Returns
    -------
    BtBinv
        Array of shape (Nnodes, NullDim, NullDim); ``BtBinv[i]`` is the
        Hermitian pseudo-inverse of ``B_i^H B_i``, row-major.
    """
    require_format(C, ("csr", "bsr"), name="C")
    B = np.asarray(B)

    if C.format == "bsr":
        RowsPerBlock, ColsPerBlock = C.blocksize
    else:
        RowsPerBlock, ColsPerBlock = 1, B.shape[0] // C.shape[1]

    Nnodes = C.shape[0] // RowsPerBlock
    NullDim = B.shape[1]
    check_compressed(C.indptr, C.indices, Nnodes, name="C")
    resolve_types(C.indptr, B)

    BsqCols = NullDim * (NullDim + 1) // 2
    Bsq = np.zeros((B.shape[0], BsqCols), dtype=B.dtype)
    counter = 0
    for i in range(NullDim):
        for j in range(i, NullDim):
            Bsq[:, counter] = np.conjugate(B[:, i]) * B[:, j]
            counter += 1

    BtB = np.zeros((Nnodes, NullDim, NullDim), dtype=B.dtype)
    calc_BtB(
        NullDim,
        Nnodes,
        ColsPerBlock,
        Bsq.reshape(-1),
        BsqCols,
        BtB.reshape(-1),
        C.indptr,
        C.indices,
    )

    # calc_BtB emits column-major blocks
    BtB = np.ascontiguousarray(BtB.swapaxes(1, 2))
    return np.linalg.pinv(BtB, hermitian=True)


def satisfy_constraints(U, B, BtBinv):
    """Update ``U`` in place so that ``U @ B = 0`` block row by block row.

    Parameters
    ----------
    U
        BSR array, blocksize (RowsPerBlock, ColsPerBlock).
    B
        Coarse-level candidates, (U.shape[1] x NullDim).
    BtBinv
        Output of `compute_BtBinv` for U's block pattern.

    Returns
    -------
    U
        The same object with its data modified.
    """
    require_format(U, ("bsr",), name="U")
    RowsPerBlock, ColsPerBlock = U.blocksize
    num_block_rows = U.shape[0] // RowsPerBlock
    B = np.asarray(B)

    if B.shape[0] != U.shape[1]:
        raise ValueError(f"B has {B.shape[0]} rows, expected {U.shape[1]}")
    if BtBinv.shape != (num_block_rows, B.shape[1], B.shape[1]):
        raise ValueError(f"BtBinv has shape {BtBinv.shape}, incompatible with U and B")

    if not U.data.flags.c_contiguous:
        U.data = np.ascontiguousarray(U.data)

    UB = np.ravel(U @ B)
    satisfy_constraints_helper(
        RowsPerBlock,
        ColsPerBlock,
        num_block_rows,
        B.shape[1],
        np.conjugate(np.ravel(B)),
        UB,
        np.ravel(BtBinv),
        U.indptr,
        U.indices,
        U.data.reshape(-1),
    )
    return U

