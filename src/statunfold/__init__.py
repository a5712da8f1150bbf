# statunfold/__init__.py
__all__ = [
    "Basis",
    "ConfigurationError",
    "ContinuousInputs",
    "ConvergenceWarning",
    "DimensionError",
    "DiscreteInputs",
    "LoggingObserver",
    "MatrixUnfolder",
    "MatrixUnfolderConfig",
    "Method",
    "NullObserver",
    "Reconstruction",
    "SolveResult",
    "UnfoldObserver",
    "Unfolder",
    "UnfoldingError",
    "derivative_omega",
    "find_optimal_alpha",
    "log_evidence",
    "regularized_solve",
]

from .basis import Basis
from .config import MatrixUnfolderConfig, Method
from .exceptions import (
    ConfigurationError,
    ConvergenceWarning,
    DimensionError,
    UnfoldingError,
)
from .observers import LoggingObserver, NullObserver, UnfoldObserver
from .unfolder import (
    ContinuousInputs,
    DiscreteInputs,
    MatrixUnfolder,
    Reconstruction,
    SolveResult,
    Unfolder,
)
from .unfolding_helpers import (
    derivative_omega,
    find_optimal_alpha,
    log_evidence,
    regularized_solve,
)
