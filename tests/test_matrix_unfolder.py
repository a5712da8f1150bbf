import warnings

import numpy as np
import pandas as pd
import pytest

from statunfold import (
    ConfigurationError,
    ConvergenceWarning,
    DimensionError,
    MatrixUnfolder,
    MatrixUnfolderConfig,
    NullObserver,
    UnfoldObserver,
    derivative_omega,
    log_evidence,
)
import statunfold.unfolder as unfolder_module


class RecordingObserver(UnfoldObserver):
    def __init__(self):
        self.events = []

    def on_start(self, name, **info):
        self.events.append(("start", name))

    def on_complete(self, name, **info):
        self.events.append(("complete", name))

    def on_warn(self, name, message):
        self.events.append(("warn", message))


def user_unfolder(alphas, n=2):
    config = MatrixUnfolderConfig([np.eye(n)], method="User", alphas=alphas)
    return MatrixUnfolder(config, observer=NullObserver())


def test_unregularized_identity_problem():
    result = user_unfolder([0.0]).solve(np.eye(2), [1.0, 2.0], [1.0, 1.0])
    np.testing.assert_allclose(result.coefficients, [1.0, 2.0])
    np.testing.assert_allclose(result.covariance, np.eye(2))
    np.testing.assert_array_equal(result.alphas, [0.0])
    assert result.converged


def test_regularized_identity_problem():
    result = user_unfolder([1.0]).solve(np.eye(2), [1.0, 2.0], [1.0, 1.0])
    np.testing.assert_allclose(result.coefficients, [0.5, 1.0])
    np.testing.assert_allclose(result.covariance, 0.5 * np.eye(2))
    np.testing.assert_allclose(result.uncertainties, np.sqrt([0.5, 0.5]))


def test_result_supports_key_access():
    result = user_unfolder([1.0]).solve(np.eye(2), [1.0, 2.0], [1.0, 1.0])
    assert result["coeff"] is result.coefficients
    assert result["errors"] is result.covariance
    assert result["alphas"] is result.alphas
    with pytest.raises(KeyError):
        result["phi"]


def test_user_alphas_returned_exactly():
    alphas = [0.123456789]
    result = user_unfolder(alphas).solve(np.eye(2), [1.0, 2.0], [0.5, 2.0])
    assert result.alphas.tolist() == alphas


def test_user_solve_is_idempotent(smooth_problem):
    kernel, data, variances, _ = smooth_problem
    config = MatrixUnfolderConfig(
        [derivative_omega(kernel.shape[1], 2)], method="User", alphas=[1e-3]
    )
    unfolder = MatrixUnfolder(config, observer=NullObserver())
    first = unfolder.solve(kernel, data, variances)
    second = unfolder.solve(kernel, data, variances)
    assert np.array_equal(first.coefficients, second.coefficients)
    assert np.array_equal(first.covariance, second.covariance)


def test_full_covariance_matches_variance_vector():
    unfolder = user_unfolder([0.5])
    kernel = np.array([[1.0, 0.5], [0.2, 1.0], [0.3, 0.3]])
    data = [1.0, 2.0, 0.5]
    variances = np.array([0.5, 2.0, 1.0])
    from_vector = unfolder.solve(kernel, data, variances)
    from_matrix = unfolder.solve(kernel, data, np.diag(variances))
    np.testing.assert_allclose(from_vector.coefficients, from_matrix.coefficients)
    np.testing.assert_allclose(from_vector.covariance, from_matrix.covariance)


def test_empirical_bayes_finds_known_alpha():
    config = MatrixUnfolderConfig([np.eye(2)], low=[1e-6], high=[1e6])
    result = MatrixUnfolder(config, observer=NullObserver()).solve(
        np.eye(2), [2.0, 2.0], [1.0, 1.0]
    )
    assert result.converged
    assert result.alphas[0] == pytest.approx(1 / 3, rel=1e-3)
    np.testing.assert_allclose(result.coefficients, [1.5, 1.5], rtol=1e-3)


def test_empirical_bayes_respects_bounds_and_keeps_config(smooth_problem):
    kernel, data, variances, truth = smooth_problem
    n = kernel.shape[1]
    config = MatrixUnfolderConfig(
        [derivative_omega(n, 2), np.eye(n)], low=[1e-4, 1e-6], high=[1e4, 1e2]
    )
    result = MatrixUnfolder(config, observer=NullObserver()).solve(kernel, data, variances)
    assert np.all(result.alphas >= config.low)
    assert np.all(result.alphas <= config.high)
    assert config.alphas is None
    assert np.array_equal(result.covariance, result.covariance.T)
    assert np.linalg.norm(result.coefficients - truth) < 0.5 * np.linalg.norm(truth)


def test_with_alphas_reproduces_empirical_bayes_solve(smooth_problem):
    kernel, data, variances, _ = smooth_problem
    config = MatrixUnfolderConfig([derivative_omega(kernel.shape[1], 2)])
    first = MatrixUnfolder(config, observer=NullObserver()).solve(kernel, data, variances)
    second = MatrixUnfolder(
        config.with_alphas(first.alphas), observer=NullObserver()
    ).solve(kernel, data, variances)
    np.testing.assert_allclose(second.coefficients, first.coefficients)
    np.testing.assert_array_equal(second.alphas, first.alphas)


def test_non_convergence_warns_and_returns_best(monkeypatch):
    def fake_search(B, b, omegas, alpha0, low, high, **kwargs):
        return {
            "alphas": np.array([0.7]),
            "evidence": log_evidence(B, b, omegas, [0.7]),
            "converged": False,
            "iterations": 1,
            "evaluations": 2,
            "message": "STOP: TOTAL NO. OF ITERATIONS REACHED LIMIT",
        }

    monkeypatch.setattr(unfolder_module, "find_optimal_alpha", fake_search)
    observer = RecordingObserver()
    unfolder = MatrixUnfolder(MatrixUnfolderConfig([np.eye(2)]), observer=observer)
    with pytest.warns(ConvergenceWarning):
        result = unfolder.solve(np.eye(2), [1.0, 2.0], [1.0, 1.0])
    assert not result.converged
    np.testing.assert_array_equal(result.alphas, [0.7])
    assert [event[0] for event in observer.events] == ["start", "warn", "complete"]


def test_observer_receives_start_and_complete():
    observer = RecordingObserver()
    config = MatrixUnfolderConfig([np.eye(2)], method="User", alphas=[1.0])
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        MatrixUnfolder(config, observer=observer).solve(np.eye(2), [1.0, 2.0], [1.0, 1.0])
    assert observer.events == [("start", "MatrixUnfolder"), ("complete", "MatrixUnfolder")]


def test_pandas_data_is_aligned_to_kernel_rows():
    kernel = pd.DataFrame(
        [[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]], index=["a", "b", "c"]
    )
    data = pd.Series({"c": 3.0, "a": 1.0, "b": 2.0})
    unfolder = user_unfolder([0.0])
    result = unfolder.solve(kernel, data, [1.0, 1.0, 1.0])
    np.testing.assert_allclose(result.coefficients, [1.0, 2.0])


def test_pandas_data_with_missing_rows_raises():
    kernel = pd.DataFrame(np.eye(2), index=["a", "b"])
    data = pd.Series({"a": 1.0})
    with pytest.raises(DimensionError):
        user_unfolder([0.0]).solve(kernel, data, [1.0, 1.0])


@pytest.mark.parametrize(
    "kernel, data, errors",
    [
        (np.eye(3), [1.0, 2.0, 3.0], [1.0, 1.0, 1.0]),
        (np.eye(2), [1.0, 2.0, 3.0], [1.0, 1.0]),
        (np.eye(2), [1.0, 2.0], [1.0, 1.0, 1.0]),
        (np.eye(2), [1.0, 2.0], np.eye(3)),
        (np.eye(2), [[1.0, 2.0]], [1.0, 1.0]),
        (np.ones(2), [1.0, 2.0], [1.0, 1.0]),
        (np.eye(2), [1.0, 2.0], np.ones((2, 2, 2))),
    ],
)
def test_dimension_errors(kernel, data, errors):
    with pytest.raises(DimensionError):
        user_unfolder([1.0]).solve(kernel, data, errors)


def test_negative_variances_raise():
    with pytest.raises(ValueError):
        user_unfolder([1.0]).solve(np.eye(2), [1.0, 2.0], [1.0, -1.0])


def test_non_config_is_rejected():
    with pytest.raises(ConfigurationError):
        MatrixUnfolder({"omegas": [np.eye(2)]})
