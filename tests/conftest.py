import numpy as np
import pytest

from statunfold import Basis, derivative_omega


class HistogramBasis(Basis):
    """Piecewise-constant basis on equal bins, integrated with the midpoint rule."""

    def __init__(self, a, b, n):
        self.edges = np.linspace(a, b, n + 1)
        self.centers = (self.edges[:-1] + self.edges[1:]) / 2
        self.widths = np.diff(self.edges)

    def __len__(self):
        return len(self.centers)

    def discretize_kernel(self, kernel, points):
        return np.array(
            [[kernel(x, y) * w for x, w in zip(self.centers, self.widths)] for y in points]
        )

    def evaluate(self, points):
        points = np.asarray(points, dtype=float)
        idx = np.clip(np.searchsorted(self.edges, points, side="right") - 1, 0, len(self) - 1)
        values = np.zeros((len(points), len(self)))
        values[np.arange(len(points)), idx] = 1.0
        return values

    def omega(self, degree):
        return derivative_omega(len(self), degree)


@pytest.fixture
def histogram_basis():
    return HistogramBasis(0.0, 1.0, 10)


@pytest.fixture
def smooth_problem():
    """Gaussian-smeared smooth spectrum observed on 30 channels."""
    rng = np.random.default_rng(7)
    n, m = 20, 30
    x = np.linspace(0, 1, n)
    y = np.linspace(0, 1, m)
    kernel = np.exp(-0.5 * ((y[:, None] - x[None, :]) / 0.1) ** 2) / n
    truth = np.exp(-0.5 * ((x - 0.5) / 0.15) ** 2)
    variances = np.full(m, 1e-4)
    data = kernel @ truth + rng.normal(0, np.sqrt(variances))
    return kernel, data, variances, truth
