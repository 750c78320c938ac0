"""Solver backends.

Note: the Python Z3 bindings are optional. Importing this package does not
require Z3 unless the Z3 backend is selected.
"""

from typing import Iterable, Optional, TextIO, Tuple

from ..exceptions import ConfigError
from ..rng import RNGenerator
from ..theory import Theory, resolve_theories
from .base import Solver
from .option import (
    SolverOption,
    SolverOptionBool,
    SolverOptionInt,
    SolverOptionList,
    SolverOptions,
)
from .result import SolverResult
from .smt2_solver import Smt2Solver, Smt2SolverManager

try:
    from .z3_solver import Z3Solver, Z3SolverManager  # type: ignore
except Exception:  # pragma: no cover
    Z3Solver = None  # type: ignore
    Z3SolverManager = None  # type: ignore

# Backends the command line knows about. Only some are built into this
# package; the rest are rejected as not configured.
KNOWN_SOLVERS = ("z3", "smt2", "cvc5", "bitwuzla", "boolector", "yices")


def is_configured(name: str) -> bool:
    if name == "z3":
        return Z3Solver is not None
    return name == "smt2"


def create_backend(name: str,
                   rng: RNGenerator,
                   theories: Iterable[Theory] = (),
                   uf: bool = False,
                   linear: bool = False,
                   smt2_out: Optional[TextIO] = None,
                   smt2_online_cmd: Optional[str] = None) -> Tuple[Solver, object]:
    """Create a solver backend and the solver manager bound to it.

    Args:
        name: One of KNOWN_SOLVERS
        rng: Random source shared with the FSM
        theories: Requested theories; empty selects everything the backend supports
        uf: Add uninterpreted functions to the requested theories
        linear: Restrict arithmetic to linear operators
        smt2_out: Dump target of the smt2 backend
        smt2_online_cmd: External solver command driven by the smt2 backend

    Returns:
        (solver, solver manager)

    Raises:
        ConfigError: Unknown or unconfigured backend
    """
    if name not in KNOWN_SOLVERS:
        raise ConfigError(f"unknown solver '{name}'")
    if not is_configured(name):
        raise ConfigError(f"solver '{name}' not configured")
    if name == "z3":
        solver = Z3Solver()
        manager_cls = Z3SolverManager
    else:
        solver = Smt2Solver(out=smt2_out, online_cmd=smt2_online_cmd)
        manager_cls = Smt2SolverManager
    enabled = resolve_theories(theories, solver.supported_theories(), uf=uf)
    return solver, manager_cls(rng, enabled, linear=linear)


__all__ = [
    "KNOWN_SOLVERS",
    "Smt2Solver",
    "Smt2SolverManager",
    "Solver",
    "SolverOption",
    "SolverOptionBool",
    "SolverOptionInt",
    "SolverOptionList",
    "SolverOptions",
    "SolverResult",
    "Z3Solver",
    "Z3SolverManager",
    "create_backend",
    "is_configured",
]
