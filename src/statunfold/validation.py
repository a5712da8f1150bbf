"""
Input validation and normalization of kernels, data and data errors.

Array-likes (including pandas objects) are converted to float arrays and
the data errors are brought to a single covariance matrix before any
numerical work.
"""
from __future__ import annotations

from typing import Any, Sequence, Tuple

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError, DimensionError


def make_sym(A: np.ndarray) -> np.ndarray:
    """Return the symmetric part ``(A + A.T) / 2``."""
    return (A + A.T) / 2


def _to_numpy(value: Any, name: str) -> np.ndarray:
    if isinstance(value, (pd.DataFrame, pd.Series)):
        value = value.to_numpy()
    try:
        arr = np.array(value, dtype=float)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} cannot be converted to a numeric array: {exc}") from exc
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains non-finite values")
    return arr


def as_vector(value: Any, name: str) -> np.ndarray:
    """Convert ``value`` to a 1D float array."""
    arr = _to_numpy(value, name)
    if arr.ndim != 1:
        raise DimensionError(f"{name} must be 1D, got shape {arr.shape}")
    return arr


def as_matrix(value: Any, name: str) -> np.ndarray:
    """Convert ``value`` to a 2D float array."""
    arr = _to_numpy(value, name)
    if arr.ndim != 2:
        raise DimensionError(f"{name} must be 2D, got shape {arr.shape}")
    return arr


def as_omegas(omegas: Sequence[Any]) -> Tuple[np.ndarray, int]:
    """
    Validate a regularization set.

    Parameters
    ----------
    omegas : Sequence[array-like]
        Square regularization matrices of equal size.

    Returns
    -------
    Tuple[np.ndarray, int]
        Symmetrized matrices stacked into shape ``(k, n, n)`` and ``n``.

    Raises
    ------
    ConfigurationError
        If the set is empty or the matrices are not square of equal size.
    """
    if isinstance(omegas, np.ndarray) and omegas.ndim == 2:
        omegas = [omegas]
    if omegas is None or len(omegas) == 0:
        raise ConfigurationError("At least one regularization matrix is required")

    stacked = []
    for i, omega in enumerate(omegas):
        try:
            mat = as_matrix(omega, f"omegas[{i}]")
        except DimensionError as exc:
            raise ConfigurationError(str(exc)) from exc
        if mat.shape[0] != mat.shape[1]:
            raise ConfigurationError(
                f"omegas[{i}] must be square, got shape {mat.shape}"
            )
        if stacked and mat.shape != stacked[0].shape:
            raise ConfigurationError(
                f"omegas[{i}] has shape {mat.shape}, "
                f"expected {stacked[0].shape} like omegas[0]"
            )
        stacked.append(make_sym(mat))
    return np.stack(stacked), stacked[0].shape[0]


def as_parameter_vector(value: Any, k: int, name: str) -> np.ndarray:
    """Convert a per-alpha parameter (scalar or sequence) to length ``k``."""
    arr = np.array(value, dtype=float)
    if arr.ndim == 0:
        arr = np.full(k, float(arr))
    if arr.ndim != 1 or len(arr) != k:
        raise ConfigurationError(
            f"{name} must have one entry per regularization matrix ({k}), "
            f"got shape {arr.shape}"
        )
    if not np.all(np.isfinite(arr)):
        raise ConfigurationError(f"{name} contains non-finite values")
    return arr


def normalize_data_errors(data_errors: Any, m: int) -> np.ndarray:
    """
    Bring data errors to an ``m x m`` covariance matrix.

    Parameters
    ----------
    data_errors : array-like
        Either a vector of ``m`` variances or a full ``m x m`` covariance.
    m : int
        Number of observations.

    Returns
    -------
    np.ndarray
        Symmetric covariance matrix.

    Raises
    ------
    DimensionError
        If the shape matches neither representation.
    ValueError
        If variances are negative.
    """
    errors = _to_numpy(data_errors, "data_errors")
    if errors.ndim == 1:
        if len(errors) != m:
            raise DimensionError(
                f"data_errors has {len(errors)} entries but data has {m}"
            )
        if np.any(errors < 0):
            raise ValueError("data_errors variances must be non-negative")
        return np.diag(errors)
    if errors.ndim == 2:
        if errors.shape != (m, m):
            raise DimensionError(
                f"data_errors covariance must have shape ({m}, {m}), "
                f"got {errors.shape}"
            )
        if np.any(np.diag(errors) < 0):
            raise ValueError("data_errors covariance has negative variances")
        return make_sym(errors)
    raise DimensionError(
        f"data_errors must be a vector or a matrix, got shape {errors.shape}"
    )


def check_problem(
    kernel: Any, data: Any, data_errors: Any, n: int
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Validate a discrete unfolding problem.

    Parameters
    ----------
    kernel : array-like or pd.DataFrame
        Kernel matrix of shape ``(m, n)``.
    data : array-like or pd.Series
        Observations of length ``m``. A Series is aligned to the row labels
        of a DataFrame kernel.
    data_errors : array-like
        Variances of length ``m`` or an ``m x m`` covariance.
    n : int
        Number of coefficients expected by the regularization set.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray, np.ndarray]
        Kernel, data and covariance as float arrays.
    """
    if isinstance(kernel, pd.DataFrame) and isinstance(data, pd.Series):
        missing = kernel.index.difference(data.index)
        if len(missing) > 0:
            raise DimensionError(
                f"data has no values for kernel rows: {list(missing)}"
            )
        data = data.reindex(kernel.index)
        if isinstance(data_errors, pd.Series):
            data_errors = data_errors.reindex(kernel.index)

    K = as_matrix(kernel, "kernel")
    y = as_vector(data, "data")
    m = K.shape[0]
    if K.shape[1] != n:
        raise DimensionError(
            f"kernel has {K.shape[1]} columns but the regularization "
            f"matrices are {n} x {n}"
        )
    if len(y) != m:
        raise DimensionError(f"data has {len(y)} entries but kernel has {m} rows")
    sigma = normalize_data_errors(data_errors, m)
    return K, y, sigma
