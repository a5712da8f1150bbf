"""
Numerical core of the Gaussian-error unfolding: regularized solve and
Empirical Bayes selection of the regularization constants.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Sequence, Tuple

import numpy as np
from scipy.optimize import minimize

from .exceptions import ConfigurationError
from .validation import make_sym

logger = logging.getLogger(__name__)


def _weighted_sum(alphas: np.ndarray, omegas: np.ndarray) -> np.ndarray:
    return np.tensordot(alphas, omegas, axes=1)


def _range_basis(A: np.ndarray) -> np.ndarray:
    """Orthonormal basis of the range of a symmetric PSD matrix."""
    w, V = np.linalg.eigh(A)
    tol = max(A.shape) * np.finfo(float).eps * np.max(np.abs(w), initial=0.0)
    return V[:, w > tol]


def _projected_inv_logdet(A: np.ndarray, U: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Pseudoinverse and log-determinant of ``A`` restricted to the span of ``U``.

    The rank is fixed by ``U``, so the log-determinant stays continuous in
    the entries of ``A``. It is ``-inf`` when ``A`` is singular on that span.
    """
    if U.shape[1] == 0:
        return np.zeros_like(A), 0.0
    M = make_sym(U.T @ A @ U)
    sign, logdet = np.linalg.slogdet(M)
    if sign <= 0:
        return make_sym(U @ np.linalg.pinv(M, hermitian=True) @ U.T), -np.inf
    return make_sym(U @ np.linalg.inv(M) @ U.T), float(logdet)


def regularized_solve(
    B: np.ndarray,
    b: np.ndarray,
    omegas: Sequence[np.ndarray] | np.ndarray,
    alphas: Sequence[float] | np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Solve the regularized normal equations.

    Parameters
    ----------
    B : np.ndarray
        Symmetric ``n x n`` matrix ``K.T @ inv(Sigma) @ K``.
    b : np.ndarray
        Vector ``K.T @ inv(Sigma) @ data`` of length ``n``.
    omegas : Sequence[np.ndarray]
        Regularization matrices, each ``n x n``.
    alphas : Sequence[float]
        One weight per regularization matrix.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        coefficients : solution vector of length ``n``
        covariance : symmetric ``n x n`` pseudoinverse of the regularized
        matrix

    Notes
    -----
    A singular regularized matrix is not an error: the Moore-Penrose
    pseudoinverse returns the least-norm solution instead.
    """
    omegas = np.asarray(omegas, dtype=float)
    alphas = np.asarray(alphas, dtype=float)
    Ba = make_sym(np.asarray(B, dtype=float) + _weighted_sum(alphas, omegas))
    covariance = make_sym(np.linalg.pinv(Ba, hermitian=True))
    coefficients = covariance @ np.asarray(b, dtype=float)
    return coefficients, covariance


class _EvidenceObjective:
    """
    Negative log evidence as a function of ``log(alphas)``.

    ``B``, ``b`` and the stacked omegas are converted once and shared by all
    evaluations. The ranges of the prior ``sum(omegas)`` and of the posterior
    ``B + sum(omegas)`` are also fixed here: for positive alphas they do not
    depend on the alphas, so both determinants are taken on fixed subspaces.
    The best point seen so far is kept so that an interrupted search can
    still return it.
    """

    def __init__(self, B, b, omegas, low, high):
        self.B = make_sym(np.asarray(B, dtype=float))
        self.b = np.asarray(b, dtype=float)
        self.omegas = np.asarray(omegas, dtype=float)
        self.low = low
        self.high = high
        omega_sum = self.omegas.sum(axis=0)
        self.prior_range = _range_basis(omega_sum)
        self.posterior_range = _range_basis(make_sym(self.B + omega_sum))
        self.best_alphas = None
        self.best_value = np.inf
        self.n_evaluations = 0

    def evidence(self, alphas: np.ndarray) -> Tuple[float, np.ndarray]:
        """Log evidence and its gradient with respect to ``alphas``."""
        alpha_omega = make_sym(_weighted_sum(alphas, self.omegas))
        inv_prior, logdet_prior = _projected_inv_logdet(alpha_omega, self.prior_range)
        inv_post, logdet_post = _projected_inv_logdet(
            make_sym(self.B + alpha_omega), self.posterior_range
        )
        r = inv_post @ self.b

        value = 0.5 * (logdet_prior - logdet_post + self.b @ r)
        grad = 0.5 * (
            np.einsum("jk,ijk->i", inv_prior - inv_post, self.omegas)
            - np.einsum("j,ijk,k->i", r, self.omegas, r)
        )
        return float(value), grad

    def __call__(self, log_alphas: np.ndarray) -> Tuple[float, np.ndarray]:
        alphas = np.clip(np.exp(log_alphas), self.low, self.high)
        value, grad = self.evidence(alphas)
        self.n_evaluations += 1
        if -value < self.best_value:
            self.best_value = -value
            self.best_alphas = alphas.copy()
        return -value, -grad * alphas


def log_evidence(
    B: np.ndarray,
    b: np.ndarray,
    omegas: Sequence[np.ndarray] | np.ndarray,
    alphas: Sequence[float] | np.ndarray,
) -> float:
    """
    Empirical Bayes log evidence up to an alpha-independent constant.

    ``0.5 * (logdet(sum(alpha_i * omega_i)) - logdet(B_alpha) + b.T @ pinv(B_alpha) @ b)``
    where both determinants are taken over the ranges of ``sum(omega_i)`` and
    ``B + sum(omega_i)``. A zero alpha makes the prior improper and the
    evidence ``-inf``.
    """
    alphas = np.asarray(alphas, dtype=float)
    objective = _EvidenceObjective(B, b, omegas, alphas, alphas)
    return objective.evidence(alphas)[0]


def find_optimal_alpha(
    B: np.ndarray,
    b: np.ndarray,
    omegas: Sequence[np.ndarray] | np.ndarray,
    alpha0: Sequence[float] | np.ndarray,
    low: Sequence[float] | np.ndarray,
    high: Sequence[float] | np.ndarray,
    max_iterations: int = 1000,
    tolerance: float = 1e-10,
) -> Dict[str, Any]:
    """
    Choose regularization constants by maximizing the Empirical Bayes evidence.

    The search runs L-BFGS-B over ``log(alphas)`` inside the box
    ``[log(low), log(high)]``; every candidate is clipped to ``[low, high]``
    before it is evaluated.

    Parameters
    ----------
    B : np.ndarray
        Symmetric ``n x n`` normal matrix.
    b : np.ndarray
        Right-hand side of length ``n``.
    omegas : Sequence[np.ndarray]
        ``k`` regularization matrices.
    alpha0 : Sequence[float]
        Starting point, ``low <= alpha0 <= high``.
    low, high : Sequence[float]
        Strictly positive bounds.
    max_iterations : int, optional
        Iteration cap of the optimizer, default: 1000.
    tolerance : float, optional
        Relative objective tolerance, default: 1e-10.

    Returns
    -------
    Dict[str, Any]
        ``alphas`` (best point found), ``evidence``, ``converged``,
        ``iterations``, ``evaluations`` and ``message``.

    Raises
    ------
    ConfigurationError
        If the regularization set is empty or bounds do not match it.
    """
    omegas = np.asarray(omegas, dtype=float)
    if omegas.ndim != 3 or omegas.shape[0] == 0:
        raise ConfigurationError("At least one regularization matrix is required")
    k = omegas.shape[0]
    alpha0, low, high = (
        np.asarray(v, dtype=float) for v in (alpha0, low, high)
    )
    for name, v in (("alpha0", alpha0), ("low", low), ("high", high)):
        if v.shape != (k,):
            raise ConfigurationError(
                f"{name} must have {k} entries, got shape {v.shape}"
            )
    if np.any(low <= 0) or np.any(high < low):
        raise ConfigurationError("Bounds must satisfy 0 < low <= high")

    objective = _EvidenceObjective(B, b, omegas, low, high)
    x0 = np.log(np.clip(alpha0, low, high))
    bounds = list(zip(np.log(low), np.log(high)))
    result = minimize(
        objective,
        x0,
        method="L-BFGS-B",
        jac=True,
        bounds=bounds,
        options={"maxiter": max_iterations, "ftol": tolerance, "gtol": tolerance},
    )
    logger.debug(
        "Alpha search: %s after %d iterations", result.message, result.nit
    )

    alphas = objective.best_alphas
    if alphas is None:
        alphas = np.clip(np.exp(result.x), low, high)
    return {
        "alphas": alphas,
        "evidence": -objective.best_value,
        "converged": bool(result.success),
        "iterations": int(result.nit),
        "evaluations": objective.n_evaluations,
        "message": str(result.message),
    }


def derivative_omega(n: int, degree: int = 2) -> np.ndarray:
    """
    Regularization matrix ``L.T @ L`` of a finite-difference operator.

    Parameters
    ----------
    n : int
        Number of grid points.
    degree : int, optional
        0 (identity), 1 (first derivative) or 2 (second derivative),
        default: 2.

    Returns
    -------
    np.ndarray
        Symmetric ``n x n`` matrix.
    """
    if degree not in (0, 1, 2):
        raise ValueError("degree must be one of: 0, 1, 2")
    if n < degree + 1:
        raise ValueError(f"derivative of degree {degree} requires at least {degree + 1} points")
    L = np.diff(np.eye(n), n=degree, axis=0)
    return L.T @ L
