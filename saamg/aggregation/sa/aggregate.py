"""Graph aggregation for smoothed aggregation.

Two interchangeable strategies partition the nodes of a (strength) graph given
in CSR form into aggregates. Both write the same output contract:

    x[i]  aggregate id of node i, or -1 if node i is never aggregated
    y[k]  root (representative) node of aggregate k, for k < n_aggs

and return ``n_aggs``. Nodes are visited in increasing index order in every
pass, and the first rule that applies to a node wins. The result therefore
depends on the node numbering; it is deterministic for a fixed numbering.

standard
    Three passes. (1) A node with at least one off-diagonal neighbour, none of
    which is marked yet, seeds an aggregate containing itself and all of its
    neighbours. A node without off-diagonal neighbours is isolated. (2) Nodes
    still unmarked join the aggregate of their first core neighbour. (3) Nodes
    still unmarked seed a new aggregate together with their unmarked
    neighbours; isolated nodes are reported as -1.

naive
    One pass. An unmarked node seeds an aggregate with its unmarked
    neighbours. Every node ends up aggregated (isolated nodes become
    singletons), usually with more and smaller aggregates than `standard`.

Both kernels walk the nodes one at a time in Python; the visiting order is
what defines the result. Setup time for large graphs is dominated by this
per-node loop.
"""

from __future__ import annotations

import numpy as np
from scipy.sparse import coo_array, csr_array

from .checks import check_compressed, require_format, require_square
from .types import UNAGGREGATED, NodeState


def standard_aggregation_kernel(n_row, Ap, Aj, x, y) -> int:
    """Standard (three-pass) aggregation of the CSR graph ``(Ap, Aj)``.

    Parameters
    ----------
    n_row
        Number of nodes.
    Ap, Aj
        CSR row pointer and column indices. Self loops are allowed.
    x
        Output, length ``n_row``: aggregate id per node, ``-1`` if isolated.
    y
        Output, length ``n_row``: ``y[k]`` is the root node of aggregate ``k``.

    Returns
    -------
    n_aggs
        Number of aggregates.
    """
    state = np.full(n_row, NodeState.UNMARKED, dtype=np.int8)
    agg = np.full(n_row, UNAGGREGATED, dtype=np.int64)
    n_aggs = 0

    # Pass 1: seed aggregates from nodes whose whole neighbourhood is free
    for i in range(n_row):
        if state[i] != NodeState.UNMARKED:
            continue

        row = Aj[Ap[i] : Ap[i + 1]]
        neighbors = row[row != i]
        if neighbors.size == 0:
            state[i] = NodeState.ISOLATED
            continue
        if np.any(state[neighbors] != NodeState.UNMARKED):
            continue

        state[i] = NodeState.CORE
        agg[i] = n_aggs
        state[neighbors] = NodeState.CORE
        agg[neighbors] = n_aggs
        y[n_aggs] = i
        n_aggs += 1

    # Pass 2: attach leftovers to the first neighbouring core aggregate
    for i in range(n_row):
        if state[i] != NodeState.UNMARKED:
            continue

        row = Aj[Ap[i] : Ap[i + 1]]
        core = row[state[row] == NodeState.CORE]
        if core.size:
            state[i] = NodeState.ATTACHED
            agg[i] = agg[core[0]]

    # Pass 3: anything still unmarked seeds a new aggregate
    for i in range(n_row):
        if state[i] != NodeState.UNMARKED:
            continue

        row = Aj[Ap[i] : Ap[i + 1]]
        free = row[state[row] == NodeState.UNMARKED]
        state[i] = NodeState.CORE
        agg[i] = n_aggs
        state[free] = NodeState.CORE
        agg[free] = n_aggs
        y[n_aggs] = i
        n_aggs += 1

    x[:n_row] = agg
    return n_aggs


def naive_aggregation_kernel(n_row, Ap, Aj, x, y) -> int:
    """Naive (single-pass) aggregation of the CSR graph ``(Ap, Aj)``.

    Same output contract as `standard_aggregation_kernel`, except that no
    node is ever reported as ``-1``.
    """
    marked = np.zeros(n_row, dtype=bool)
    n_aggs = 0

    for i in range(n_row):
        if marked[i]:
            continue

        row = Aj[Ap[i] : Ap[i + 1]]
        free = row[~marked[row]]
        x[i] = n_aggs
        x[free] = n_aggs
        marked[i] = True
        marked[free] = True
        y[n_aggs] = i
        n_aggs += 1

    return n_aggs


def _aggop_from_labels(x, n_aggs: int, index_type) -> csr_array:
    """Build the (n_fine x n_aggs) 0/1 aggregation operator from node labels."""
    num_rows = x.shape[0]
    shape = (num_rows, n_aggs)

    if num_rows and x.min() == UNAGGREGATED:
        # some nodes not aggregated; their rows stay empty
        mask = x != UNAGGREGATED
        row = np.arange(num_rows, dtype=index_type)[mask]
        col = x[mask]
        data = np.ones(len(col), dtype=np.int8)
        return coo_array((data, (row, col)), shape=shape).tocsr()

    Tp = np.arange(num_rows + 1, dtype=index_type)
    Tx = np.ones(num_rows, dtype=np.int8)
    return csr_array((Tx, x, Tp), shape=shape)


def _run_aggregation(kernel, C) -> tuple[csr_array, np.ndarray]:
    """Validate ``C``, run an aggregation kernel and package its output."""
    require_format(C, ("csr",), name="C")
    require_square(C, name="C")

    num_rows = C.shape[0]
    check_compressed(C.indptr, C.indices, num_rows, name="C")

    index_type = C.indptr.dtype
    x = np.empty(num_rows, dtype=index_type)
    y = np.empty(num_rows, dtype=index_type)

    n_aggs = kernel(num_rows, C.indptr, C.indices, x, y)
    Cpts = y[:n_aggs].copy()

    if n_aggs == 0:
        return csr_array((num_rows, 1), dtype=np.int8), np.array([], dtype=index_type)

    return _aggop_from_labels(x, n_aggs, index_type), Cpts


def standard_aggregation(C) -> tuple[csr_array, np.ndarray]:
    """Compute the sparsity pattern of the tentative prolongator by standard aggregation.

    Parameters
    ----------
    C
        Square CSR strength-of-connection matrix (symmetric structure expected).

    Returns
    -------
    AggOp
        CSR aggregation operator of shape (n_fine, n_aggs) with one unit entry
        per aggregated row; rows of isolated nodes are empty.
    Cpts
        Root node of each aggregate.

    Examples
    --------
    >>> from scipy.sparse import csr_array
    >>> from saamg.aggregation.sa.aggregate import standard_aggregation
    >>> A = csr_array([[ 2, -1,  0,  0],
    ...                [-1,  2, -1,  0],
    ...                [ 0, -1,  2, -1],
    ...                [ 0,  0, -1,  2]])
    >>> standard_aggregation(A)[0].toarray()
    array([[1, 0],
           [1, 0],
           [0, 1],
           [0, 1]], dtype=int8)
    """
    return _run_aggregation(standard_aggregation_kernel, C)


def naive_aggregation(C) -> tuple[csr_array, np.ndarray]:
    """Compute the sparsity pattern of the tentative prolongator by naive aggregation.

    Every node is aggregated; a node without neighbours becomes a singleton.
    See `standard_aggregation` for the return values.
    """
    return _run_aggregation(naive_aggregation_kernel, C)
