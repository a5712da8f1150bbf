"""Configuration of the Gaussian-error matrix unfolder."""
from __future__ import annotations

from enum import Enum
import logging
from typing import Any, Optional, Sequence

import numpy as np

from .exceptions import ConfigurationError
from .validation import as_omegas, as_parameter_vector

logger = logging.getLogger(__name__)

DEFAULT_LOW = 1e-10
DEFAULT_HIGH = 1e10
DEFAULT_ALPHA0 = 1.0


class Method(str, Enum):
    """Selection method for the regularization constants."""

    EMPIRICAL_BAYES = "EmpiricalBayes"
    USER = "User"

    @classmethod
    def parse(cls, value: Any) -> "Method":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            options = ", ".join(repr(m.value) for m in cls)
            raise ConfigurationError(
                f"Unknown method {value!r}, expected one of: {options}"
            ) from None


class MatrixUnfolderConfig:
    """
    Regularization set and alpha selection settings.

    Parameters
    ----------
    omegas : Sequence[array-like]
        Regularization matrices, all ``n x n``. A single 2D array is accepted
        as a set of one.
    method : str or Method, optional
        ``"EmpiricalBayes"`` (default) chooses alphas by maximizing the
        evidence; ``"User"`` takes them from ``alphas``.
    alphas : Sequence[float], optional
        Regularization constants, required when ``method="User"``.
    low, high : Sequence[float] or float, optional
        Bounds of the alpha search, default: 1e-10 and 1e10.
    alpha0 : Sequence[float] or float, optional
        Starting point of the alpha search, default: 1.0 clipped into the
        bounds.
    max_iterations : int, optional
        Iteration cap of the alpha search, default: 1000.
    tolerance : float, optional
        Relative tolerance of the alpha search, default: 1e-10.

    Raises
    ------
    ConfigurationError
        If the method is unknown, alphas are missing in ``User`` mode, or
        any per-alpha vector does not match the number of omegas.

    Notes
    -----
    The configuration is immutable. Solving never stores the selected
    alphas here; use :meth:`with_alphas` to keep them for later solves.

    Examples
    --------
    >>> import numpy as np
    >>> config = MatrixUnfolderConfig([np.eye(3)], method="User", alphas=[0.1])
    >>> config.n
    3
    """

    def __init__(
        self,
        omegas: Sequence[Any],
        method: str | Method = Method.EMPIRICAL_BAYES,
        alphas: Optional[Sequence[float]] = None,
        low: Optional[Sequence[float] | float] = None,
        high: Optional[Sequence[float] | float] = None,
        alpha0: Optional[Sequence[float] | float] = None,
        max_iterations: int = 1000,
        tolerance: float = 1e-10,
    ):
        self._omegas, self._n = as_omegas(omegas)
        self._method = Method.parse(method)
        k = len(self._omegas)

        if self._method is Method.USER:
            if alphas is None:
                raise ConfigurationError("alphas must be provided when method='User'")
            self._alphas = as_parameter_vector(alphas, k, "alphas")
            if np.any(self._alphas < 0):
                raise ConfigurationError("alphas must be non-negative")
        else:
            self._alphas = None

        self._low = as_parameter_vector(DEFAULT_LOW if low is None else low, k, "low")
        self._high = as_parameter_vector(DEFAULT_HIGH if high is None else high, k, "high")
        if np.any(self._low <= 0):
            raise ConfigurationError("low must be strictly positive")
        if np.any(self._high < self._low):
            raise ConfigurationError("high must not be smaller than low")

        if alpha0 is None:
            self._alpha0 = np.clip(np.full(k, DEFAULT_ALPHA0), self._low, self._high)
        else:
            self._alpha0 = as_parameter_vector(alpha0, k, "alpha0")
            if np.any(self._alpha0 < self._low) or np.any(self._alpha0 > self._high):
                raise ConfigurationError("alpha0 must lie within [low, high]")

        if int(max_iterations) < 1:
            raise ConfigurationError("max_iterations must be a positive integer")
        if tolerance <= 0:
            raise ConfigurationError("tolerance must be positive")
        self._max_iterations = int(max_iterations)
        self._tolerance = float(tolerance)

        for arr in (self._omegas, self._alphas, self._low, self._high, self._alpha0):
            if arr is not None:
                arr.setflags(write=False)
        logger.info("MatrixUnfolderConfig is created")

    def __repr__(self) -> str:
        alphas = None if self._alphas is None else self._alphas.tolist()
        return (
            f"MatrixUnfolderConfig(n={self.n}, n_omegas={self.n_omegas}, "
            f"method={self._method.value!r}, alphas={alphas})"
        )

    @property
    def omegas(self) -> np.ndarray:
        """Symmetrized regularization matrices, shape ``(k, n, n)``."""
        return self._omegas

    @property
    def n(self) -> int:
        """Size of the regularization matrices."""
        return self._n

    @property
    def n_omegas(self) -> int:
        """Number of regularization matrices (and alphas)."""
        return len(self._omegas)

    @property
    def method(self) -> Method:
        return self._method

    @property
    def alphas(self) -> Optional[np.ndarray]:
        return self._alphas

    @property
    def low(self) -> np.ndarray:
        return self._low

    @property
    def high(self) -> np.ndarray:
        return self._high

    @property
    def alpha0(self) -> np.ndarray:
        return self._alpha0

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @property
    def tolerance(self) -> float:
        return self._tolerance

    def with_alphas(self, alphas: Sequence[float]) -> "MatrixUnfolderConfig":
        """
        Return a ``User`` configuration with fixed ``alphas``.

        Omegas, bounds and optimizer settings are carried over, so the new
        configuration reproduces a previous Empirical Bayes solve without
        repeating the search.
        """
        return MatrixUnfolderConfig(
            self._omegas,
            method=Method.USER,
            alphas=alphas,
            low=self._low,
            high=self._high,
            alpha0=self._alpha0,
            max_iterations=self._max_iterations,
            tolerance=self._tolerance,
        )
