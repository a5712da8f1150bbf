"""Interface of the basis used to discretize continuous problems."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

import numpy as np


class Basis(ABC):
    """
    Set of ``n`` basis functions onto which continuous problems are projected.

    Concrete bases (splines, polynomials, ...) live outside this package and
    only need to provide the methods below.
    """

    @abstractmethod
    def __len__(self) -> int:
        """Number of basis functions."""

    @abstractmethod
    def discretize_kernel(
        self, kernel: Callable[[float, float], float], points: np.ndarray
    ) -> np.ndarray:
        """
        Project a continuous kernel onto the basis.

        Parameters
        ----------
        kernel : Callable[[float, float], float]
            Kernel ``K(x, y)`` with ``x`` in the basis domain and ``y`` an
            observation point.
        points : np.ndarray
            Observation points ``y``.

        Returns
        -------
        np.ndarray
            Matrix of shape ``(len(points), len(self))``.
        """

    @abstractmethod
    def evaluate(self, points: np.ndarray) -> np.ndarray:
        """Values of every basis function at ``points``, shape ``(len(points), len(self))``."""

    def omega(self, degree: int) -> np.ndarray:
        """Regularization matrix of the ``degree``-th derivative."""
        raise NotImplementedError(
            f"{type(self).__name__} does not provide regularization matrices"
        )
