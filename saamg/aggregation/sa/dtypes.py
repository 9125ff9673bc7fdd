"""Scalar-type dispatch and scalar helpers shared by the setup kernels.

The kernels in this package are written once over numpy arrays and work for
every supported index/value combination. What varies per combination is the
real "norm" type that magnitudes are accumulated in (``float32`` for
``complex64``, ``float64`` for ``complex128``, and so on). That mapping lives in
a small registration table which wrappers consult once per call, never per
element.

Supported combinations
----------------------
index : int32, int64
value : float32, float64, complex64, complex128
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(slots=True, frozen=True)
class KernelTypes:
    """Resolved dtypes for one kernel invocation.

    Attributes
    ----------
    index
        Integer dtype of row pointers and column indices.
    value
        Scalar dtype of the stored values (real or complex).
    real
        Real dtype used for norms and squared norms of ``value`` entries.
    """

    index: np.dtype
    value: np.dtype
    real: np.dtype


_INDEX_TYPES = (np.dtype(np.int32), np.dtype(np.int64))

_VALUE_TO_REAL = {
    np.dtype(np.float32): np.dtype(np.float32),
    np.dtype(np.float64): np.dtype(np.float64),
    np.dtype(np.complex64): np.dtype(np.float32),
    np.dtype(np.complex128): np.dtype(np.float64),
}

KERNEL_TYPES: dict[tuple[np.dtype, np.dtype], KernelTypes] = {
    (i, v): KernelTypes(index=i, value=v, real=r)
    for i in _INDEX_TYPES
    for v, r in _VALUE_TO_REAL.items()
}


def resolve_types(index_array: np.ndarray, value_array: np.ndarray) -> KernelTypes:
    """Look up the registered type combination for an index/value array pair.

    Raises
    ------
    TypeError
        If the pair is not a registered combination.
    """
    key = (np.asarray(index_array).dtype, np.asarray(value_array).dtype)
    try:
        return KERNEL_TYPES[key]
    except KeyError:
        raise TypeError(
            f"Unsupported index/value type combination: {key[0]}/{key[1]}"
        ) from None


def upcast_value_type(*dtypes) -> np.dtype:
    """Return the smallest registered value dtype that holds all ``dtypes``."""
    t = np.result_type(*dtypes, np.float32)
    if t not in _VALUE_TO_REAL:
        t = np.result_type(t, np.float64)
    if t not in _VALUE_TO_REAL:
        raise TypeError(f"No supported value type for {t}")
    return t


def norm(x):
    """Magnitude of a real or complex scalar (or elementwise over an array)."""
    return np.abs(x)


def norm_squared(x):
    """Squared magnitude, computed without a square root for complex input."""
    x = np.asarray(x)
    if np.iscomplexobj(x):
        return x.real * x.real + x.imag * x.imag
    return x * x


def conj_dot(x, y):
    """Hermitian inner product ``sum(conj(x) * y)``."""
    return np.vdot(x, y)
