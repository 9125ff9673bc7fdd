"""Smoothed aggregation AMG with energy-minimizing prolongation smoothing.

The setup is assembled from the kernels in `saamg.aggregation.sa`:
strength of connection, aggregation, tentative prolongator fit, and
constrained energy minimization of the prolongator. Cycling, relaxation and
the coarse-grid solve are provided by `pyamg.multilevel.MultilevelSolver`.
"""

from __future__ import annotations

from warnings import warn
import time

import numpy as np
from scipy.sparse import csr_array, issparse, SparseEfficiencyWarning

from pyamg.multilevel import MultilevelSolver
from pyamg.relaxation.smoothing import change_smoothers
from pyamg.util.utils import asfptype, \
    levelize_strength_or_aggregation, levelize_smooth_or_improve_candidates

from .sa.hierarchy import _sa_extend_hierarchy
from .sa.stats import _sa_print_setup_summary
from .sa.types import SAConfig


def smoothed_aggregation_solver(A, B=None,
                                symmetry='hermitian',
                                strength=('symmetric', {'theta': 0.0}),
                                aggregate='standard',
                                smooth=('energy', {'maxiter': 4}),
                                presmoother=('gauss_seidel',
                                             {'sweep': 'symmetric'}),
                                postsmoother=('gauss_seidel',
                                              {'sweep': 'symmetric'}),
                                max_levels=10,
                                max_coarse=10,
                                tol=1e-10,
                                print_info=False,
                                **kwargs):
    """Create a multilevel solver using smoothed aggregation.

    Parameters
    ----------
    A : csr_array, bsr_array
        Square, Hermitian (or real symmetric) positive (semi-)definite
        operator. Other sparse or dense inputs are converted to CSR with a
        `SparseEfficiencyWarning`.
    B : array, optional
        Near-nullspace candidates, shape (A.shape[0], k). Defaults to the
        constant vector per block component, i.e. ``kron(ones, eye(blocksize))``.
    symmetry : str
        'symmetric' or 'hermitian'. The energy smoother is a CG method and
        needs one of the two.
    strength : str, tuple, list
        Strength-of-connection method: 'symmetric', ('symmetric',
        {'theta': ...}), ('predefined', {'C': ...}) or None. A list gives one
        entry per level.
    aggregate : str, tuple, list
        Aggregation method: 'standard', 'naive' or ('predefined', {'AggOp':
        ...}). A list gives one entry per level.
    smooth : str, tuple, list
        Prolongation smoother: 'energy', ('energy', {...}) or None. Options of
        the energy smoother are `maxiter`, `tol`, `degree` and `weighting`.
    presmoother, postsmoother : str, tuple, list
        Relaxation specs passed to `pyamg.relaxation.smoothing.change_smoothers`.
    max_levels : int
        Maximum number of levels.
    max_coarse : int
        Stop coarsening once the operator has at most this many rows.
    tol : float
        Relative drop tolerance for dependent candidates in the tentative fit.
    print_info : bool
        Print per-level setup diagnostics and timings.
    **kwargs
        Passed to `MultilevelSolver`, e.g. ``coarse_solver='pinv'``.

    Returns
    -------
    ml : MultilevelSolver
        Multigrid hierarchy. Levels carry ``C``, ``AggOp``, ``Cpts``, ``T``,
        ``P`` and ``R`` from the setup.

    Raises
    ------
    TypeError
        If A cannot be converted to a sparse array.
    ValueError
        If A is not square, `symmetry` is not supported, or B has the wrong
        number of rows.

    Examples
    --------
    >>> import numpy as np
    >>> from pyamg.gallery import poisson
    >>> from saamg.aggregation.smoothed_aggregation import smoothed_aggregation_solver
    >>> A = poisson((50, 50), format='csr')
    >>> ml = smoothed_aggregation_solver(A, max_coarse=10)
    >>> b = np.ones(A.shape[0])
    >>> x = ml.solve(b, tol=1e-8)
    >>> bool(np.linalg.norm(b - A @ x) < 1e-6 * np.linalg.norm(b))
    True
    """
    if not issparse(A) or A.format not in ('csr', 'bsr'):
        try:
            A = csr_array(A)
            warn('Implicit conversion of A to CSR', SparseEfficiencyWarning)
        except Exception as e:
            raise TypeError('Argument A must have type csr_array or bsr_array, '
                            'or be convertible to csr_array') from e

    A = asfptype(A)
    A.sort_indices()

    if symmetry not in ('symmetric', 'hermitian'):
        raise ValueError('Expected "symmetric" or "hermitian" '
                         'for the symmetry parameter')
    A.symmetry = symmetry

    if A.shape[0] != A.shape[1]:
        raise ValueError('expected square matrix')

    blocksize = A.blocksize[0] if A.format == 'bsr' else 1

    # Default candidates: constant in every block component
    if B is None:
        B = np.kron(np.ones((A.shape[0] // blocksize, 1), dtype=A.dtype),
                    np.eye(blocksize, dtype=A.dtype))
    else:
        B = np.asarray(B, dtype=A.dtype)
        if B.ndim == 1:
            B = B.reshape(-1, 1)
        if B.shape[0] != A.shape[0]:
            raise ValueError('The near null-space modes B have incorrect '
                             'dimensions for matrix A')
        if B.shape[1] < blocksize:
            warn('Having less target vectors, B.shape[1], than '
                 'blocksize of A can degrade convergence factors.')

    # Levelize the user parameters, so that they become lists describing the
    # desired user option on each level.
    max_levels, max_coarse, strength =\
        levelize_strength_or_aggregation(strength, max_levels, max_coarse)
    max_levels, max_coarse, aggregate =\
        levelize_strength_or_aggregation(aggregate, max_levels, max_coarse)
    smooth = levelize_smooth_or_improve_candidates(smooth, max_levels)

    # Construct multilevel structure
    levels = []
    levels.append(MultilevelSolver.Level())
    levels[-1].A = A          # Operator
    levels[-1].B = B          # Near null-space modes
    levels[-1].density = A.nnz / (A.shape[0] ** 2)

    lvl = 0
    while len(levels) < max_levels and \
            levels[-1].A.shape[0] > max_coarse:
        config = SAConfig(
            strength=strength[lvl],
            aggregate=aggregate[lvl],
            smooth=smooth[lvl],
            tol=tol,
            print_info=print_info,
        )
        if _sa_extend_hierarchy(levels=levels, config=config):
            break
        lvl += 1

    ml = MultilevelSolver(levels, **kwargs)

    t0 = time.perf_counter()
    change_smoothers(ml, presmoother, postsmoother)
    t1 = time.perf_counter()
    _sa_print_setup_summary(smoother_setup_time=t1 - t0, print_info=print_info)

    return ml
