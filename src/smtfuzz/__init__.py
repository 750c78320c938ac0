"""smtfuzz: model-based API fuzzing of SMT solvers."""

__version__ = "0.1.0"

from .exceptions import (
    ConfigError,
    DeltaDebugError,
    RegistryError,
    SmtFuzzError,
    SolverError,
    TraceError,
    UnknownIdError,
)
from .rng import RNGenerator
from .theory import SortKind, Theory

__all__ = [
    "ConfigError",
    "DeltaDebugError",
    "RNGenerator",
    "RegistryError",
    "SmtFuzzError",
    "SolverError",
    "SortKind",
    "Theory",
    "TraceError",
    "UnknownIdError",
    "__version__",
]
