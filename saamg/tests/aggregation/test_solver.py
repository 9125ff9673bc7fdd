"""End-to-end tests for the smoothed aggregation solver."""

from __future__ import annotations

import warnings

import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy.sparse import SparseEfficiencyWarning, csr_array

from pyamg.gallery import linear_elasticity, poisson
from pyamg.multilevel import MultilevelSolver

from saamg.aggregation.sa.aggregate import standard_aggregation
from saamg.aggregation.smoothed_aggregation import smoothed_aggregation_solver


def _relative_residual(A, x, b) -> float:
    return float(np.linalg.norm(b - A @ x) / np.linalg.norm(b))


@pytest.fixture
def poisson_2d():
    return poisson((40, 40), format="csr")


def test_poisson_converges(poisson_2d) -> None:
    A = poisson_2d
    ml = smoothed_aggregation_solver(A, max_coarse=10)
    assert isinstance(ml, MultilevelSolver)
    assert len(ml.levels) > 2
    assert ml.levels[-1].A.shape[0] <= 10 or len(ml.levels) == 10

    rng = np.random.default_rng(0)
    b = rng.standard_normal(A.shape[0])
    residuals: list[float] = []
    x = ml.solve(b, maxiter=40, residuals=residuals)
    assert _relative_residual(A, x, b) < 1e-5

    # a V-cycle with energy-smoothed P reduces the error substantially per cycle
    factor = (residuals[-1] / residuals[0]) ** (1.0 / (len(residuals) - 1))
    assert factor < 0.5


def test_levels_carry_setup_data(poisson_2d) -> None:
    A = poisson_2d
    ml = smoothed_aggregation_solver(A, max_coarse=10)

    for fine, coarse in zip(ml.levels[:-1], ml.levels[1:]):
        for attr in ("C", "AggOp", "Cpts", "T", "P", "R"):
            assert hasattr(fine, attr)
        assert fine.P.shape == (fine.A.shape[0], coarse.A.shape[0])
        assert_allclose(fine.R.toarray(), fine.P.T.conj().toarray())
        assert_allclose((fine.R @ fine.A @ fine.P).toarray(), coarse.A.toarray(), atol=1e-12)
        # the prolongator interpolates the candidates exactly
        assert_allclose(fine.P @ coarse.B, fine.B, atol=1e-10)
        assert coarse.A.format == "csr"


def test_first_level_uses_standard_aggregation(poisson_2d) -> None:
    A = poisson_2d
    ml = smoothed_aggregation_solver(A)
    AggOp, Cpts = standard_aggregation(ml.levels[0].C)
    assert_allclose(ml.levels[0].AggOp.toarray(), AggOp.toarray())
    assert_allclose(ml.levels[0].Cpts, Cpts)


@pytest.mark.parametrize("aggregate", ["standard", "naive"])
@pytest.mark.parametrize("smooth", [("energy", {"maxiter": 2, "degree": 1}), None])
def test_options(poisson_2d, aggregate, smooth) -> None:
    A = poisson_2d
    ml = smoothed_aggregation_solver(A, aggregate=aggregate, smooth=smooth,
                                     strength=("symmetric", {"theta": 0.1}))
    b = np.ones(A.shape[0])
    x = ml.solve(b, maxiter=200, accel="cg")
    assert _relative_residual(A, x, b) < 1e-4

    if smooth is None:
        assert_allclose(ml.levels[0].P.toarray(), ml.levels[0].T.toarray())


def test_elasticity_multiple_candidates() -> None:
    A, B = linear_elasticity((20, 20), format="bsr")
    ml = smoothed_aggregation_solver(A, B=B, max_coarse=20)

    assert ml.levels[1].A.format == "bsr"
    assert ml.levels[1].A.blocksize == (3, 3)
    assert ml.levels[1].B.shape[1] == 3

    b = np.random.default_rng(1).standard_normal(A.shape[0])
    x = ml.solve(b, maxiter=100, accel="cg")
    assert _relative_residual(A, x, b) < 1e-5


def test_predefined_strength_and_aggregation(poisson_2d) -> None:
    A = poisson_2d
    C = csr_array(A)
    AggOp, _ = standard_aggregation(C)
    ml = smoothed_aggregation_solver(A,
                                     strength=("predefined", {"C": C}),
                                     aggregate=("predefined", {"AggOp": AggOp}))
    assert len(ml.levels) == 2
    assert ml.levels[0].Cpts is None
    assert ml.levels[0].P.shape == (A.shape[0], AggOp.shape[1])


def test_complex_hermitian() -> None:
    A = poisson((20, 20), format="csr").astype(np.complex128)
    ml = smoothed_aggregation_solver(A, max_coarse=10)
    b = np.ones(A.shape[0], dtype=np.complex128)
    x = ml.solve(b, maxiter=50)
    assert _relative_residual(A, x, b) < 1e-5


def test_dense_input_warns() -> None:
    A = poisson((6, 6), format="csr").toarray()
    with pytest.warns(SparseEfficiencyWarning):
        ml = smoothed_aggregation_solver(A)
    assert ml.levels[0].A.format == "csr"


def test_fewer_candidates_than_blocksize_warns() -> None:
    A, _ = linear_elasticity((6, 6), format="bsr")
    with pytest.warns(UserWarning, match="less target vectors"):
        smoothed_aggregation_solver(A, B=np.ones((A.shape[0], 1)))


def test_no_warnings_for_csr(poisson_2d) -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error", SparseEfficiencyWarning)
        smoothed_aggregation_solver(poisson_2d)


def test_isolated_problem_stops_coarsening() -> None:
    # a diagonal operator has no off-diagonal connections, so no aggregates
    A = csr_array(np.diag(np.arange(1.0, 21.0)))
    ml = smoothed_aggregation_solver(A, max_coarse=1)
    assert len(ml.levels) == 1


def test_bad_input(poisson_2d) -> None:
    with pytest.raises(ValueError):
        smoothed_aggregation_solver(poisson_2d, symmetry="nonsymmetric")
    with pytest.raises(ValueError):
        smoothed_aggregation_solver(csr_array(np.ones((3, 4))))
    with pytest.raises(ValueError):
        smoothed_aggregation_solver(poisson_2d, B=np.ones((5, 1)))
    with pytest.raises(ValueError):
        smoothed_aggregation_solver(poisson_2d, aggregate="lloyd")
    with pytest.raises(ValueError):
        smoothed_aggregation_solver(poisson_2d, smooth="jacobi")
    with pytest.raises(TypeError), warnings.catch_warnings():
        warnings.simplefilter("ignore")
        smoothed_aggregation_solver(object())


def test_print_info(poisson_2d, capsys) -> None:
    smoothed_aggregation_solver(poisson_2d, max_coarse=10, print_info=True)
    out = capsys.readouterr().out
    assert "level=0" in out
    assert "timing:" in out
    assert "smoother_setup" in out


def test_quiet_by_default(poisson_2d, capsys) -> None:
    smoothed_aggregation_solver(poisson_2d)
    assert capsys.readouterr().out == ""


@pytest.mark.parametrize("smooth", [("energy", {"maxiter": 2}), None])
def test_coarse_levels_use_int32_indices(smooth) -> None:
    # pyamg's compiled relaxation rejects int64 index arrays
    A = poisson((20, 20), format="csr")
    ml = smoothed_aggregation_solver(A, smooth=smooth, max_coarse=5)
    assert len(ml.levels) > 2
    for lvl in ml.levels:
        assert lvl.A.indptr.dtype == np.int32
        assert lvl.A.indices.dtype == np.int32
    for lvl in ml.levels[:-1]:
        assert lvl.P.indices.dtype == np.int32
        assert lvl.R.indices.dtype == np.int32

    b = np.ones(A.shape[0])
    x = ml.solve(b, maxiter=10)
    assert _relative_residual(A, x, b) < 1.0


def test_downcast_indices_keeps_values() -> None:
    from saamg.aggregation.sa.hierarchy import _sa_downcast_indices

    M = csr_array(np.array([[2.0, -1.0], [-1.0, 2.0]]))
    M.indptr = M.indptr.astype(np.int64)
    M.indices = M.indices.astype(np.int64)
    _sa_downcast_indices(M)
    assert M.indptr.dtype == np.int32
    assert M.indices.dtype == np.int32
    assert_allclose(M.toarray(), [[2.0, -1.0], [-1.0, 2.0]])
