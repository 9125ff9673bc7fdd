"""Timing and diagnostic reporting for smoothed-aggregation setup.

Each call to `_sa_extend_hierarchy` fills one `SALevelStats`:

    stats = SALevelStats(level=ell, n_fine=A.shape[0])
    with stats.timeit("aggregate"):
        ... do aggregation ...
    with stats.timeit("smooth"):
        ... smooth the tentative prolongator ...
    _sa_finalize_level_stats(stats=stats, level=level, n_coarse=...)
    _sa_print_level_summary(stats, print_info=print_info)

The finalized object is kept on the level as ``level.sa_stats``.
Printing of setup diagnostics happens here and nowhere else.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
import time

import numpy as np

from .types import SALevel

# Setup phases in the order they run on a level.
PHASES = ("strength", "aggregate", "tentative", "smooth", "coarsen")

Triple = tuple[float, float, float]


@dataclass(slots=True)
class SALevelStats:
    """Per-level setup timings and aggregate diagnostics.

    Attributes
    ----------
    level
        Multigrid level index (0 = finest).
    n_fine
        Fine dimension on this level.
    n_aggs, n_coarse
        Number of aggregates and coarse dimension (filled in finalize).
    timings
        Seconds spent per phase, keyed by the names in `PHASES`.
    agg_size, fit_rank
        (min, median, max) aggregate size and number of candidates kept by
        the tentative fit per aggregate.
    unaggregated
        Number of fine nodes left out of every aggregate.
    p_fill
        ``nnz(P) / nnz(T)``, the fill added by prolongation smoothing.
    """

    level: int
    n_fine: int
    n_aggs: int | None = None
    n_coarse: int | None = None
    timings: dict[str, float] = field(default_factory=dict)
    agg_size: Triple | None = None
    fit_rank: Triple | None = None
    unaggregated: int | None = None
    p_fill: float | None = None

    @contextmanager
    def timeit(self, phase: str):
        """Add the wall time of the ``with`` body to `timings[phase]`."""
        start = time.perf_counter()
        try:
            yield self
        finally:
            elapsed = time.perf_counter() - start
            self.timings[phase] = self.timings.get(phase, 0.0) + elapsed

    @property
    def coarsening_ratio(self) -> float | None:
        if self.n_coarse is None:
            return None
        return self.n_fine / self.n_coarse if self.n_coarse else float("inf")

    @property
    def total_time(self) -> float:
        return float(sum(self.timings.values()))


def _summary(values) -> Triple | None:
    """(min, median, max) of ``values``, or None when empty."""
    a = np.asarray(values, dtype=float).ravel()
    if a.size == 0:
        return None
    lo, med, hi = np.percentile(a, [0, 50, 100])
    return float(lo), float(med), float(hi)


def _sa_finalize_level_stats(*, stats: SALevelStats, level: SALevel, n_coarse: int) -> None:
    """Fill the derived fields of ``stats`` from a completed level.

    Parameters
    ----------
    stats
        The stats object for this level (mutated in-place).
    level
        The level just processed; reads `AggOp`, `n_aggs`, `T`, `P` and
        `R_fit_rank` when present.
    n_coarse
        Dimension of the coarse space produced at this level.
    """
    stats.n_aggs = getattr(level, "n_aggs", None)
    stats.n_coarse = int(n_coarse)

    AggOp = getattr(level, "AggOp", None)
    if AggOp is not None:
        stats.agg_size = _summary(np.bincount(AggOp.indices, minlength=AggOp.shape[1]))
        stats.unaggregated = int(np.count_nonzero(np.diff(AggOp.indptr) == 0))

    T = getattr(level, "T", None)
    P = getattr(level, "P", None)
    if T is not None and P is not None and T.nnz > 0:
        stats.p_fill = P.nnz / T.nnz

    rank = getattr(level, "R_fit_rank", None)
    if rank is not None:
        stats.fit_rank = _summary(rank)

    level.sa_stats = stats


def _num(x: float | None) -> str:
    """Compact scalar format, scientific outside [1e-2, 1e4)."""
    if x is None:
        return "n/a"
    ax = abs(x)
    if ax != 0.0 and (ax < 1e-2 or ax >= 1e4):
        return f"{x:.2e}"
    return f"{x:.3g}"


def _triple(t: Triple | None) -> str:
    """Format a (min, med, max) triple as ``min/med/max``."""
    return "n/a" if t is None else "/".join(_num(v) for v in t)


def _seconds(t: float) -> str:
    """Right-aligned duration, in ms below one second."""
    return f"{t * 1e3:7.1f}ms" if t < 1.0 else f"{t:7.2f}s"


def _sa_print_level_summary(
    stats: SALevelStats,
    *,
    print_info: bool,
    prefix: str = "SA",
    indent: str = "",
) -> None:
    """Print a compact per-level summary of setup diagnostics and timings.

    Parameters
    ----------
    stats
        Per-level stats object that has already been finalized.
    print_info
        If False, does nothing.
    prefix
        Short label printed on the first line.
    indent
        Prepended to every line.
    """
    if not print_info:
        return

    n_c = "?" if stats.n_coarse is None else stats.n_coarse
    lines = [
        f"{prefix:<3}  level={stats.level:<2d}  n={stats.n_fine:<7d} -> {n_c:<7}"
        f"  cr={_num(stats.coarsening_ratio)}",
        "     aggregates (min/med/max):",
        f"       size  : {_triple(stats.agg_size)}",
        f"       rank  : {_triple(stats.fit_rank)}",
    ]
    if stats.unaggregated is not None:
        lines.append(f"       unagg : {stats.unaggregated}")
    if stats.p_fill is not None:
        lines.append(f"     nnz(P)/nnz(T): {_num(stats.p_fill)}")

    lines.append("     timing:")
    lines += [f"       {k:<11} {_seconds(stats.timings[k])}" for k in PHASES if k in stats.timings]
    lines.append(f"       {'total':<11} {_seconds(stats.total_time)}")
    print("\n".join(indent + line for line in lines))


def _sa_print_setup_summary(*, smoother_setup_time: float, print_info: bool, indent: str = "") -> None:
    """Print the time spent attaching pre/post smoothers to the hierarchy."""
    if print_info:
        print(f"{indent}SA   smoother_setup  {_seconds(float(smoother_setup_time))}")
