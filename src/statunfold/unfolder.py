"""Unfolders for discrete and continuous problems with Gaussian errors."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Union
import warnings

import numpy as np

from .basis import Basis
from .config import MatrixUnfolderConfig, Method
from .exceptions import ConfigurationError, ConvergenceWarning, DimensionError
from .observers import LoggingObserver, UnfoldObserver
from .unfolding_helpers import find_optimal_alpha, regularized_solve
from .validation import as_vector, check_problem, make_sym


ArrayOrCallable = Union[np.ndarray, Callable[..., Any]]


@dataclass(frozen=True)
class SolveResult:
    """
    Outcome of a single solve.

    Attributes
    ----------
    coefficients : np.ndarray
        Unfolded coefficients, length ``n``.
    covariance : np.ndarray
        Symmetric ``n x n`` covariance of the coefficients.
    alphas : np.ndarray
        Regularization constants used for the solve.
    converged : bool
        False only if the alpha search stopped without converging.
    """

    coefficients: np.ndarray
    covariance: np.ndarray
    alphas: np.ndarray
    converged: bool = True

    _KEYS = {
        "coeff": "coefficients",
        "coefficients": "coefficients",
        "covariance": "covariance",
        "errors": "covariance",
        "uncertainties": "uncertainties",
        "alphas": "alphas",
    }

    @property
    def uncertainties(self) -> np.ndarray:
        """Standard deviations of the coefficients."""
        return np.sqrt(np.clip(np.diag(self.covariance), 0.0, None))

    def __getitem__(self, key: str) -> np.ndarray:
        try:
            return getattr(self, self._KEYS[key])
        except KeyError:
            raise KeyError(key) from None


@dataclass(frozen=True)
class Reconstruction:
    """Unfolded function evaluated at ``points`` with its standard errors."""

    points: np.ndarray
    values: np.ndarray
    errors: np.ndarray


@dataclass(frozen=True)
class DiscreteInputs:
    """Kernel matrix, data vector and data errors."""

    kernel: Any
    data: Any
    data_errors: Any


@dataclass(frozen=True)
class ContinuousInputs:
    """
    Callable kernel with data given at (or as functions of) ``points``.

    ``data`` and ``data_errors`` are either callables evaluated at each
    point or arrays already sampled there.
    """

    kernel: Callable[[float, float], float]
    data: ArrayOrCallable
    data_errors: ArrayOrCallable
    points: np.ndarray


class MatrixUnfolder:
    """
    Unfolder for a discrete kernel with Gaussian data errors.

    Parameters
    ----------
    config : MatrixUnfolderConfig
        Regularization set and alpha selection settings.
    observer : UnfoldObserver, optional
        Receives progress events, default: :class:`LoggingObserver`.

    Examples
    --------
    >>> import numpy as np
    >>> config = MatrixUnfolderConfig([np.eye(2)], method="User", alphas=[1.0])
    >>> result = MatrixUnfolder(config).solve(np.eye(2), [1.0, 2.0], [1.0, 1.0])
    >>> result.coefficients
    array([0.5, 1. ])
    """

    def __init__(
        self,
        config: MatrixUnfolderConfig,
        observer: Optional[UnfoldObserver] = None,
    ):
        if not isinstance(config, MatrixUnfolderConfig):
            raise ConfigurationError(
                f"config must be a MatrixUnfolderConfig, got {type(config).__name__}"
            )
        self.config = config
        self.observer = observer if observer is not None else LoggingObserver()

    def __repr__(self) -> str:
        return f"MatrixUnfolder({self.config!r})"

    def solve(self, kernel: Any, data: Any, data_errors: Any) -> SolveResult:
        """
        Unfold ``data`` observed through ``kernel``.

        Parameters
        ----------
        kernel : array-like or pd.DataFrame
            Kernel matrix of shape ``(m, n)``.
        data : array-like or pd.Series
            Observations, length ``m``.
        data_errors : array-like
            Variances of length ``m`` or an ``m x m`` covariance matrix.

        Returns
        -------
        SolveResult
            Coefficients, covariance and the alphas used.

        Raises
        ------
        DimensionError
            If the shapes of the inputs are incompatible.
        ConfigurationError
            If the configured method is not supported.
        """
        config = self.config
        name = type(self).__name__
        self.observer.on_start(name, method=config.method.value)
        K, y, sigma = check_problem(kernel, data, data_errors, config.n)

        sigma_inv = make_sym(np.linalg.pinv(sigma, hermitian=True))
        B = make_sym(K.T @ sigma_inv @ K)
        b = K.T @ sigma_inv @ y

        converged = True
        if config.method is Method.EMPIRICAL_BAYES:
            search = find_optimal_alpha(
                B,
                b,
                config.omegas,
                config.alpha0,
                config.low,
                config.high,
                max_iterations=config.max_iterations,
                tolerance=config.tolerance,
            )
            alphas = search["alphas"]
            converged = search["converged"]
            if not converged:
                message = (
                    f"alpha search did not converge ({search['message']}); "
                    f"using best alphas found: {alphas.tolist()}"
                )
                self.observer.on_warn(name, message)
                warnings.warn(message, ConvergenceWarning, stacklevel=2)
        elif config.method is Method.USER:
            alphas = np.array(config.alphas, dtype=float)
        else:
            raise ConfigurationError(f"Unknown method {config.method!r}")

        coefficients, covariance = regularized_solve(B, b, config.omegas, alphas)
        self.observer.on_complete(name, alphas=alphas.tolist(), converged=converged)
        return SolveResult(
            coefficients=coefficients,
            covariance=covariance,
            alphas=alphas,
            converged=converged,
        )


class Unfolder:
    """
    Unfolder for a continuous kernel projected onto a basis.

    Parameters
    ----------
    basis : Basis
        Basis of the reconstructed function, ``len(basis) == config.n``.
    config : MatrixUnfolderConfig
        Regularization set and alpha selection settings.
    observer : UnfoldObserver, optional
        Receives progress events, default: :class:`LoggingObserver`.
    """

    def __init__(
        self,
        basis: Basis,
        config: MatrixUnfolderConfig,
        observer: Optional[UnfoldObserver] = None,
    ):
        self.solver = MatrixUnfolder(config, observer)
        if len(basis) != config.n:
            raise DimensionError(
                f"basis has {len(basis)} functions but the regularization "
                f"matrices are {config.n} x {config.n}"
            )
        self.basis = basis

    def __repr__(self) -> str:
        return f"Unfolder(basis={type(self.basis).__name__}, {self.config!r})"

    @property
    def config(self) -> MatrixUnfolderConfig:
        return self.solver.config

    @property
    def observer(self) -> UnfoldObserver:
        return self.solver.observer

    @staticmethod
    def make_inputs(
        kernel: ArrayOrCallable,
        data: ArrayOrCallable,
        data_errors: ArrayOrCallable,
        points: Optional[Any] = None,
    ) -> Union[DiscreteInputs, ContinuousInputs]:
        """
        Classify the arguments of :meth:`solve`.

        Raises
        ------
        ConfigurationError
            If a continuous kernel comes without ``points`` or a discrete
            kernel comes with callable data or errors.
        """
        if callable(kernel):
            if points is None:
                raise ConfigurationError("points are required for a continuous kernel")
            return ContinuousInputs(kernel, data, data_errors, as_vector(points, "points"))
        if callable(data) or callable(data_errors):
            raise ConfigurationError(
                "data and data_errors must be arrays when the kernel is a matrix"
            )
        return DiscreteInputs(kernel, data, data_errors)

    def discretize(self, inputs: ContinuousInputs) -> DiscreteInputs:
        """Project continuous inputs onto the basis."""
        points = inputs.points
        kernel = np.asarray(self.basis.discretize_kernel(inputs.kernel, points), dtype=float)
        if kernel.shape != (len(points), len(self.basis)):
            raise DimensionError(
                f"discretized kernel has shape {kernel.shape}, "
                f"expected ({len(points)}, {len(self.basis)})"
            )

        def sample(value, name):
            if callable(value):
                return np.array([value(p) for p in points], dtype=float)
            try:
                arr = np.asarray(value, dtype=float)
            except (TypeError, ValueError) as exc:
                raise DimensionError(f"{name} is neither callable nor an array: {exc}") from exc
            if arr.ndim == 0 or arr.shape[0] != len(points):
                raise DimensionError(
                    f"{name} has shape {arr.shape} but {len(points)} points were given"
                )
            return arr

        return DiscreteInputs(
            kernel,
            sample(inputs.data, "data"),
            sample(inputs.data_errors, "data_errors"),
        )

    def solve_inputs(self, inputs: Union[DiscreteInputs, ContinuousInputs]) -> SolveResult:
        """Solve already classified inputs."""
        if isinstance(inputs, ContinuousInputs):
            inputs = self.discretize(inputs)
        elif not isinstance(inputs, DiscreteInputs):
            raise ConfigurationError(
                f"inputs must be DiscreteInputs or ContinuousInputs, got {type(inputs).__name__}"
            )
        return self.solver.solve(inputs.kernel, inputs.data, inputs.data_errors)

    def solve(
        self,
        kernel: ArrayOrCallable,
        data: ArrayOrCallable,
        data_errors: ArrayOrCallable,
        points: Optional[Any] = None,
    ) -> SolveResult:
        """
        Unfold discrete or continuous inputs.

        Parameters
        ----------
        kernel : array-like or Callable[[float, float], float]
            Kernel matrix, or continuous kernel ``K(x, y)``.
        data : array-like or Callable[[float], float]
            Observations, or a function evaluated at ``points``.
        data_errors : array-like or Callable[[float], float]
            Variances (or covariance matrix), or a function returning the
            variance at each point.
        points : array-like, optional
            Observation points, required for a continuous kernel.

        Returns
        -------
        SolveResult
            Coefficients of the basis functions, their covariance and alphas.
        """
        inputs = self.make_inputs(kernel, data, data_errors, points)
        return self.solve_inputs(inputs)

    def reconstruct(self, result: SolveResult, points: Any) -> Reconstruction:
        """
        Evaluate the unfolded function and its standard errors at ``points``.
        """
        points = as_vector(points, "points")
        phi = np.asarray(self.basis.evaluate(points), dtype=float)
        if phi.shape != (len(points), len(self.basis)):
            raise DimensionError(
                f"basis values have shape {phi.shape}, "
                f"expected ({len(points)}, {len(self.basis)})"
            )
        values = phi @ result.coefficients
        variances = np.einsum("ij,jk,ik->i", phi, result.covariance, phi)
        return Reconstruction(points, values, np.sqrt(np.clip(variances, 0.0, None)))
