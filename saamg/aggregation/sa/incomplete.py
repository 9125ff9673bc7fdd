"""Exact but incomplete sparse block matrix product.

Computes ``S = A @ B`` only at the entries already present in the sparsity
pattern of ``S`` (SMMP restricted to a fixed output pattern). A, B and S are
BSR, may be rectangular, and need not have sorted indices. Products that land
outside S's pattern are skipped; pattern entries never reached keep whatever
value they held on entry, so callers normally zero ``S.data`` first.

The smoothed-aggregation setup uses this to form ``A @ T`` restricted to the
allowed prolongator pattern, which bounds the cost by the size of the output
pattern instead of the full product.

The kernel loops over block rows in Python and gathers every contributing
block pair of a row in one vectorized step, so the per-row interpreter cost
is paid once per block row of A.
"""

from __future__ import annotations

import numpy as np

from .checks import check_block_product, check_compressed, require_format
from .dtypes import resolve_types

_ABSENT = -1


def incomplete_mat_mult_bsr(
    Ap, Aj, Ax, Bp, Bj, Bx, Sp, Sj, Sx, n_brow, n_bcol, brow_A, bcol_A, bcol_B
) -> None:
    """Accumulate ``A @ B`` into ``Sx`` at the stored blocks of S.

    Parameters
    ----------
    Ap, Aj, Ax
        BSR structure and flat data of A, blocks (brow_A x bcol_A).
    Bp, Bj, Bx
        BSR structure and flat data of B, blocks (bcol_A x bcol_B).
    Sp, Sj, Sx
        BSR structure and flat data of S, blocks (brow_A x bcol_B); ``Sx`` is
        updated in place.
    n_brow
        Number of block rows of A (and S).
    n_bcol
        Number of block columns of S.
    brow_A, bcol_A, bcol_B
        Block dimensions.

    Notes
    -----
    For each block row i, ``lookup[k]`` holds the offset of block (i, k) in
    ``Sx`` or -1 if S has no such block. The table is filled from S's row i
    before the row is processed and cleared again afterwards.
    """
    scalar = brow_A == 1 and bcol_A == 1 and bcol_B == 1

    if not scalar:
        A_blocks = Ax.reshape(-1, brow_A, bcol_A)
        B_blocks = Bx.reshape(-1, bcol_A, bcol_B)
        S_blocks = Sx.reshape(-1, brow_A, bcol_B)

    lookup = np.full(n_bcol, _ABSENT, dtype=np.intp)

    for i in range(n_brow):
        a_start, a_end = Ap[i], Ap[i + 1]
        if a_start == a_end:
            continue
        s_start, s_end = Sp[i], Sp[i + 1]
        lookup[Sj[s_start:s_end]] = np.arange(s_start, s_end)

        # all (A block, B block) pairs contributing to block row i at once
        a_idx = np.arange(a_start, a_end)
        b_start = Bp[Aj[a_idx]]
        counts = Bp[Aj[a_idx] + 1] - b_start
        a_src = np.repeat(a_idx, counts)
        b_src = np.arange(counts.sum()) + np.repeat(b_start - (np.cumsum(counts) - counts), counts)

        slots = lookup[Bj[b_src]]
        hit = slots != _ABSENT
        if hit.any():
            targets = slots[hit]
            a_src = a_src[hit]
            b_src = b_src[hit]
            if scalar:
                np.add.at(Sx, targets, Ax[a_src] * Bx[b_src])
            else:
                np.add.at(S_blocks, targets, A_blocks[a_src] @ B_blocks[b_src])

        lookup[Sj[s_start:s_end]] = _ABSENT


def incomplete_mat_mult(A, B, S):
    """Overwrite ``S.data`` with ``S + A @ B`` restricted to S's sparsity pattern.

    Parameters
    ----------
    A, B, S
        BSR arrays with compatible block sizes:
        ``A.blocksize[0] == S.blocksize[0]``,
        ``A.blocksize[1] == B.blocksize[0]``,
        ``B.blocksize[1] == S.blocksize[1]``.

    Returns
    -------
    S
        The same object, updated in place.

    Raises
    ------
    TypeError
        If an operand is not BSR or the dtypes are not supported.
    ValueError
        If block sizes or shapes are incompatible, or an index structure is
        malformed.

    Examples
    --------
    >>> import numpy as np
    >>> from scipy.sparse import bsr_array
    >>> from saamg.aggregation.sa.incomplete import incomplete_mat_mult
    >>> A = bsr_array(np.array([[1., 2.], [3., 4.]]), blocksize=(1, 1))
    >>> S = bsr_array(np.eye(2), blocksize=(1, 1))
    >>> S.data[:] = 0.0
    >>> incomplete_mat_mult(A, A, S).toarray()
    array([[ 7.,  0.],
           [ 0., 22.]])
    """
    for name, M in (("A", A), ("B", B), ("S", S)):
        require_format(M, ("bsr",), name=name)
    check_block_product(A, B, S)

    brow_A, bcol_A = A.blocksize
    bcol_B = B.blocksize[1]
    n_brow = A.shape[0] // brow_A
    n_bcol = S.shape[1] // bcol_B

    check_compressed(A.indptr, A.indices, n_brow, name="A")
    check_compressed(B.indptr, B.indices, B.shape[0] // bcol_A, name="B")
    check_compressed(S.indptr, S.indices, n_brow, name="S")

    types = resolve_types(S.indptr, S.data)
    if not np.can_cast(np.result_type(A.data, B.data), types.value, casting="same_kind"):
        raise TypeError(f"S ({types.value}) cannot hold the values of A @ B")

    if not S.data.flags.c_contiguous:
        S.data = np.ascontiguousarray(S.data)
    Sx = S.data.reshape(-1)
    incomplete_mat_mult_bsr(
        A.indptr,
        A.indices,
        A.data.reshape(-1),
        B.indptr,
        B.indices,
        B.data.reshape(-1),
        S.indptr,
        S.indices,
        Sx,
        n_brow,
        n_bcol,
        brow_A,
        bcol_A,
        bcol_B,
    )
    return S
