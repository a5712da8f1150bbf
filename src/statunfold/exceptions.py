"""Exceptions and warnings raised by statunfold."""
from __future__ import annotations


class UnfoldingError(ValueError):
    """Base class for invalid unfolding problems."""


class ConfigurationError(UnfoldingError):
    """
    Unfolder configuration is inconsistent.

    Raised for unknown methods, missing alphas in ``User`` mode, length
    mismatches between omegas, alphas and bounds, or incoherent
    continuous/discrete inputs.
    """


class DimensionError(UnfoldingError):
    """Kernel, data or data errors have incompatible shapes."""


class ConvergenceWarning(RuntimeWarning):
    """Alpha optimization stopped before reporting convergence."""
