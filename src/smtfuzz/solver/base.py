"""
Abstract interface for SMT solver backends driven by the fuzzer.
"""
from typing import Protocol, Any, List, Sequence, Set

from ..theory import SortKind, Theory
from .option import SolverOptions
from .result import SolverResult


class Solver(Protocol):
    """Protocol defining the API surface the FSM drives.

    This allows pluggable solver implementations (Z3, SMT-LIB2 dump, ...)
    while keeping the FSM and trace layers free of backend types. Sort and
    term handles are opaque to everything but the backend itself.
    """

    def get_name(self) -> str:
        """Name of the backend (as used on the command line)."""
        ...

    def new(self) -> None:
        """Create the underlying solver instance."""
        ...

    def delete(self) -> None:
        """Destroy the underlying solver instance."""
        ...

    def is_initialized(self) -> bool:
        ...

    def supported_theories(self) -> Set[Theory]:
        ...

    def get_option_model(self) -> SolverOptions:
        """Describe the options this backend can be configured with."""
        ...

    def set_opt(self, name: str, value: str) -> None:
        ...

    def models_enabled(self) -> bool:
        """True if model values may be queried after a sat answer."""
        ...

    def mk_sort(self, kind: SortKind, params: Sequence[Any]) -> Any:
        """Create a sort.

        Args:
            kind: Sort kind
            params: Integer parameters (BV, FP) or sort handles (ARRAY, FUN)

        Returns:
            Backend sort handle
        """
        ...

    def mk_const(self, sort: Any, name: str) -> Any:
        ...

    def mk_var(self, sort: Any, name: str) -> Any:
        """Create a variable that may be bound by a quantifier."""
        ...

    def mk_value(self, sort: Any, kind: SortKind, literal: str) -> Any:
        """Create a value of the given sort from its textual literal."""
        ...

    def mk_term(self, op: str, args: Sequence[Any], indices: Sequence[int]) -> Any:
        """Create a term by applying operator `op` (an Op kind) to `args`."""
        ...

    def get_sort(self, term: Any) -> Any:
        ...

    def assert_formula(self, term: Any) -> None:
        ...

    def check_sat(self) -> SolverResult:
        ...

    def check_sat_assuming(self, assumptions: Sequence[Any]) -> SolverResult:
        ...

    def get_value(self, terms: Sequence[Any]) -> List[str]:
        """Return model values of `terms`, rendered as text."""
        ...

    def push(self, n_levels: int) -> None:
        ...

    def pop(self, n_levels: int) -> None:
        ...

    def reset_assertions(self) -> None:
        ...
