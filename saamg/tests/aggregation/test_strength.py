"""Tests for symmetric strength of connection."""

from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_array_equal
from scipy.sparse import bsr_array, csr_array

from pyamg.gallery import poisson, stencil_grid
from pyamg.gallery.diffusion import diffusion_stencil_2d
from pyamg.strength import symmetric_strength_of_connection as pyamg_symmetric_strength

from saamg.aggregation.sa.strength import (
    symmetric_strength_of_connection,
    symmetric_strength_of_connection_kernel,
)


def _pattern(S) -> set[tuple[int, int]]:
    S = csr_array(S)
    S.sum_duplicates()
    S.eliminate_zeros()
    rows = np.repeat(np.arange(S.shape[0]), np.diff(S.indptr))
    return set(zip(rows.tolist(), S.indices.tolist()))


def test_weak_entries_dropped() -> None:
    A = csr_array(np.array([[4.0, -1.0, -0.1],
                            [-1.0, 4.0, -1.0],
                            [-0.1, -1.0, 4.0]]))
    S = symmetric_strength_of_connection(A, theta=0.1)

    expected = {(0, 0), (0, 1), (1, 0), (1, 1), (1, 2), (2, 1), (2, 2)}
    assert _pattern(S) == expected
    # kept values are the values of A
    assert S.toarray()[0, 1] == -1.0


def test_theta_zero_keeps_everything() -> None:
    A = poisson((5, 5), format="csr")
    S = symmetric_strength_of_connection(A, theta=0.0)
    assert S.nnz == A.nnz
    assert _pattern(S) == _pattern(A)


def test_diagonal_always_kept() -> None:
    # the diagonal survives even when theta would reject everything
    A = csr_array(np.array([[1.0, -1e-3],
                            [-1e-3, 1.0]]))
    S = symmetric_strength_of_connection(A, theta=10.0)
    assert _pattern(S) == {(0, 0), (1, 1)}


def test_kernel_sums_duplicate_diagonal() -> None:
    # row 0 stores its diagonal as 1 + 3 = 4
    Ap = np.array([0, 3, 5], dtype=np.int32)
    Aj = np.array([0, 0, 1, 0, 1], dtype=np.int32)
    Ax = np.array([1.0, 3.0, -1.0, -1.0, 4.0])

    Sp = np.empty(3, dtype=np.int32)
    Sj = np.empty(5, dtype=np.int32)
    Sx = np.empty(5)

    # |a01|^2 = 1 >= theta^2 * 4 * 4 only for theta <= 1/4
    nnz = symmetric_strength_of_connection_kernel(2, 0.25, Ap, Aj, Ax, Sp, Sj, Sx)
    assert nnz == 5
    assert_array_equal(Sp, [0, 3, 5])

    nnz = symmetric_strength_of_connection_kernel(2, 0.3, Ap, Aj, Ax, Sp, Sj, Sx)
    assert nnz == 3
    assert_array_equal(Sp, [0, 2, 3])
    assert_array_equal(Sj[:nnz], [0, 0, 1])
    assert_array_equal(Sx[:nnz], [1.0, 3.0, 4.0])


def test_empty_rows() -> None:
    A = csr_array((np.array([2.0]), np.array([1]), np.array([0, 0, 1, 1])), shape=(3, 3))
    S = symmetric_strength_of_connection(A, theta=0.5)
    assert_array_equal(S.indptr, [0, 0, 1, 1])
    assert S.nnz == 1


@pytest.mark.parametrize("dtype", [np.float32, np.float64, np.complex64, np.complex128])
def test_dtypes(dtype) -> None:
    A = poisson((4, 4), format="csr").astype(dtype)
    if np.iscomplexobj(A.data):
        A = A * (1.0 + 1.0j)
    # off-diagonals are 1/4 of the diagonal in magnitude, clear of the 0.2 threshold
    S = symmetric_strength_of_connection(A, theta=0.2)
    assert S.dtype == np.dtype(dtype)
    assert _pattern(S) == _pattern(A)

    weak = symmetric_strength_of_connection(A, theta=0.3)
    assert weak.dtype == np.dtype(dtype)
    assert _pattern(weak) == {(i, i) for i in range(A.shape[0])}


@pytest.mark.parametrize("epsilon", [0.01, 0.1])
@pytest.mark.parametrize("theta", [0.0, 0.25, 0.5])
def test_matches_pyamg_pattern(epsilon, theta) -> None:
    stencil = diffusion_stencil_2d(epsilon=epsilon, theta=np.pi / 6, type="FD")
    A = stencil_grid(stencil, (12, 12), format="csr")

    S = symmetric_strength_of_connection(A, theta=theta)
    S_ref = pyamg_symmetric_strength(A, theta=theta)
    assert _pattern(S) == _pattern(S_ref)


def test_bsr_is_amalgamated() -> None:
    A = poisson((4, 4), format="csr")
    A2 = bsr_array(np.kron(A.toarray(), np.ones((2, 2))), blocksize=(2, 2))
    S = symmetric_strength_of_connection(A2, theta=0.0)
    assert S.shape == A.shape
    assert _pattern(S) == _pattern(A)


def test_bad_input() -> None:
    A = poisson((3, 3), format="csr")
    with pytest.raises(ValueError):
        symmetric_strength_of_connection(A, theta=-1.0)
    with pytest.raises(ValueError):
        symmetric_strength_of_connection(csr_array(np.ones((2, 3))))
    with pytest.raises(TypeError):
        symmetric_strength_of_connection(A.toarray())
    with pytest.raises(TypeError):
        symmetric_strength_of_connection(A.astype(np.int64))
