"""Tests for the structural checks guarding the kernel wrappers."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import bsr_array, csr_array

from pyamg.gallery import poisson

from saamg.aggregation.sa.aggregate import naive_aggregation, standard_aggregation
from saamg.aggregation.sa.checks import check_compressed
from saamg.aggregation.sa.incomplete import incomplete_mat_mult
from saamg.aggregation.sa.strength import symmetric_strength_of_connection
from saamg.aggregation.sa.tentative import fit_candidates


def _broken_pointers(indptr: np.ndarray, nnz: int):
    """Yield (label, pointer) pairs that each violate one structural rule."""
    decreasing = indptr.copy()
    decreasing[2] = 0
    yield "decreasing", decreasing

    yield "short", indptr[:-1].copy()

    shifted = indptr.copy()
    shifted[0] = 1
    yield "nonzero start", shifted

    past_end = indptr.copy()
    past_end[-1] = nnz + 5
    yield "past end", past_end


def test_accepts_valid_structure() -> None:
    A = poisson((4, 4), format="csr")
    check_compressed(A.indptr, A.indices, A.shape[0])
    check_compressed(np.zeros(4, dtype=np.int32), np.zeros(0, dtype=np.int32), 3)


@pytest.mark.parametrize("case", ["decreasing", "short", "nonzero start", "past end"])
def test_rejects_malformed_pointer(case) -> None:
    A = poisson((4, 4), format="csr")
    broken = dict(_broken_pointers(A.indptr, A.nnz))[case]
    with pytest.raises(ValueError, match="row pointer"):
        check_compressed(broken, A.indices, A.shape[0], name="A")


@pytest.mark.parametrize("aggregate", [standard_aggregation, naive_aggregation])
def test_aggregation_rejects_malformed_pointer(aggregate) -> None:
    C = poisson((4, 4), format="csr")
    C.indptr[2] = 0
    with pytest.raises(ValueError, match="row pointer"):
        aggregate(C)


def test_strength_rejects_malformed_pointer() -> None:
    A = poisson((4, 4), format="csr")
    A.indptr[0] = 1
    with pytest.raises(ValueError, match="row pointer"):
        symmetric_strength_of_connection(A, theta=0.1)


def test_fit_candidates_rejects_malformed_pointer() -> None:
    C = poisson((4, 4), format="csr")
    AggOp, _ = standard_aggregation(C)
    AggOp = AggOp.copy()
    AggOp.indptr[2] = 0
    with pytest.raises(ValueError, match="row pointer"):
        fit_candidates(AggOp, np.ones((C.shape[0], 1)))


@pytest.mark.parametrize("operand", ["A", "B", "S"])
def test_incomplete_product_rejects_malformed_pointer(operand) -> None:
    dense = poisson((3, 3), format="csr").toarray()
    mats = {name: bsr_array(dense, blocksize=(1, 1)) for name in ("A", "B", "S")}
    mats[operand].indptr[2] = 0
    with pytest.raises(ValueError, match="row pointer"):
        incomplete_mat_mult(mats["A"], mats["B"], mats["S"])


def test_empty_matrix_structure() -> None:
    C = csr_array((0, 0))
    check_compressed(C.indptr, C.indices, 0)
