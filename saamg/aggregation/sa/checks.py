"""Structural precondition checks for the compressed-row kernel inputs.

The kernels trust their inputs. These helpers are called by the wrappers
before any computation so that malformed pointers or incompatible block sizes
are reported to the caller as a contract violation instead of producing
garbage or an ``IndexError`` halfway through a kernel.
"""

from __future__ import annotations

import numpy as np
from scipy.sparse import issparse


def check_compressed(indptr, indices, n_rows: int, *, name: str = "matrix") -> None:
    """Validate a compressed-row (or compressed-block-row) index structure.

    Parameters
    ----------
    indptr
        Row pointer of length ``n_rows + 1``.
    indices
        Column index array; must hold at least ``indptr[-1]`` entries.
    n_rows
        Number of (block) rows.
    name
        Label used in error messages.

    Raises
    ------
    ValueError
        If the pointer has the wrong length, does not start at zero, decreases,
        or points past the end of ``indices``.
    """
    indptr = np.asarray(indptr)
    if indptr.ndim != 1 or indptr.shape[0] != n_rows + 1:
        raise ValueError(
            f"{name}: row pointer must have length {n_rows + 1}, got {indptr.shape}"
        )
    if indptr[0] != 0:
        raise ValueError(f"{name}: row pointer must start at 0")
    if np.any(np.diff(indptr) < 0):
        raise ValueError(f"{name}: row pointer must be non-decreasing")
    if indptr[-1] > np.asarray(indices).shape[0]:
        raise ValueError(f"{name}: row pointer exceeds the number of stored indices")


def require_format(A, formats: tuple[str, ...], *, name: str = "A") -> None:
    """Raise ``TypeError`` unless ``A`` is a scipy sparse object in one of ``formats``."""
    if not issparse(A) or A.format not in formats:
        raise TypeError(f"{name} must be a sparse array in format {' or '.join(formats)}")


def require_square(A, *, name: str = "A") -> None:
    """Raise ``ValueError`` unless ``A`` is square."""
    if A.shape[0] != A.shape[1]:
        raise ValueError(f"expected square matrix for {name}, got shape {A.shape}")


def check_block_product(A, B, S) -> None:
    """Check that BSR operands are compatible for ``S = A @ B`` at S's pattern.

    Requires ``A.blocksize[0] == S.blocksize[0]``,
    ``A.blocksize[1] == B.blocksize[0]``, ``B.blocksize[1] == S.blocksize[1]``
    and matching outer shapes.
    """
    ra, ca = A.blocksize
    rb, cb = B.blocksize
    rs, cs = S.blocksize
    if ra != rs or ca != rb or cb != cs:
        raise ValueError(
            "incompatible block sizes for incomplete product: "
            f"A{A.blocksize} B{B.blocksize} S{S.blocksize}"
        )
    if A.shape[1] != B.shape[0] or A.shape[0] != S.shape[0] or B.shape[1] != S.shape[1]:
        raise ValueError(
            f"incompatible shapes for incomplete product: A{A.shape} B{B.shape} S{S.shape}"
        )
