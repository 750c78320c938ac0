"""
Z3 SMT solver backend implementation.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Set, Tuple
import z3

from ..exceptions import SolverError
from ..rng import RNGenerator
from ..solver_manager import SolverManager
from ..theory import PARAMLESS_SORT_KINDS, SortKind, Theory, sort_kind_for_theory
from .option import (
    SolverOptionBool,
    SolverOptionInt,
    SolverOptionList,
    SolverOptions,
)
from .result import SolverResult

SUPPORTED_THEORIES = {
    Theory.ARRAY,
    Theory.BOOL,
    Theory.BV,
    Theory.FP,
    Theory.INT,
    Theory.QUANT,
    Theory.REAL,
    Theory.STRING,
    Theory.UF,
}


@dataclass(frozen=True)
class Z3FunSort:
    """Function sort; z3 has no sort object for uninterpreted functions."""
    domain: Tuple[Any, ...]
    codomain: Any


class Z3Key:
    """Registry key of a z3 AST.

    Compares structurally through `AstRef.eq`; `==` on z3 expressions builds
    a new term instead. ASTs of different contexts never compare equal.
    """
    __slots__ = ("ast",)

    def __init__(self, ast: Any):
        self.ast = ast

    def __hash__(self) -> int:
        return self.ast.hash()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Z3Key):
            return NotImplemented
        return self.ast.ctx is other.ast.ctx and self.ast.eq(other.ast)


def z3_sort_hash(sort: Any) -> Hashable:
    if isinstance(sort, Z3FunSort):
        return ("fun",) + tuple(Z3Key(s) for s in sort.domain) + (Z3Key(sort.codomain),)
    return Z3Key(sort)


def z3_term_hash(term: Any) -> Hashable:
    return Z3Key(term)


def _to_param(value: str) -> Any:
    if value in ("true", "false"):
        return value == "true"
    try:
        return int(value)
    except ValueError:
        return value


_OPS: Dict[str, Callable[[List[Any], List[int], Any], Any]] = {
    "not": lambda a, i, c: z3.Not(a[0]),
    "and": lambda a, i, c: z3.And(*a),
    "or": lambda a, i, c: z3.Or(*a),
    "xor": lambda a, i, c: z3.Xor(a[0], a[1]),
    "=>": lambda a, i, c: z3.Implies(a[0], a[1]),
    "=": lambda a, i, c: a[0] == a[1],
    "distinct": lambda a, i, c: z3.Distinct(*a),
    "ite": lambda a, i, c: z3.If(a[0], a[1], a[2]),
    "bvnot": lambda a, i, c: ~a[0],
    "bvneg": lambda a, i, c: -a[0],
    "bvadd": lambda a, i, c: a[0] + a[1],
    "bvsub": lambda a, i, c: a[0] - a[1],
    "bvmul": lambda a, i, c: a[0] * a[1],
    "bvand": lambda a, i, c: a[0] & a[1],
    "bvor": lambda a, i, c: a[0] | a[1],
    "bvxor": lambda a, i, c: a[0] ^ a[1],
    "bvudiv": lambda a, i, c: z3.UDiv(a[0], a[1]),
    "bvurem": lambda a, i, c: z3.URem(a[0], a[1]),
    "bvshl": lambda a, i, c: a[0] << a[1],
    "bvlshr": lambda a, i, c: z3.LShR(a[0], a[1]),
    "bvashr": lambda a, i, c: a[0] >> a[1],
    "bvult": lambda a, i, c: z3.ULT(a[0], a[1]),
    "bvule": lambda a, i, c: z3.ULE(a[0], a[1]),
    "bvugt": lambda a, i, c: z3.UGT(a[0], a[1]),
    "bvuge": lambda a, i, c: z3.UGE(a[0], a[1]),
    "bvslt": lambda a, i, c: a[0] < a[1],
    "bvsle": lambda a, i, c: a[0] <= a[1],
    "bvsgt": lambda a, i, c: a[0] > a[1],
    "bvsge": lambda a, i, c: a[0] >= a[1],
    "concat": lambda a, i, c: z3.Concat(a[0], a[1]),
    "extract": lambda a, i, c: z3.Extract(i[0], i[1], a[0]),
    "zero_extend": lambda a, i, c: z3.ZeroExt(i[0], a[0]),
    "sign_extend": lambda a, i, c: z3.SignExt(i[0], a[0]),
    "repeat": lambda a, i, c: z3.RepeatBitVec(i[0], a[0]),
    "int.abs": lambda a, i, c: z3.If(a[0] >= 0, a[0], -a[0]),
    "int.div": lambda a, i, c: a[0] / a[1],
    "int.mod": lambda a, i, c: a[0] % a[1],
    "real.div": lambda a, i, c: a[0] / a[1],
    "select": lambda a, i, c: z3.Select(a[0], a[1]),
    "store": lambda a, i, c: z3.Store(a[0], a[1], a[2]),
    "apply": lambda a, i, c: a[0](*a[1:]),
    "str.++": lambda a, i, c: z3.Concat(*a),
    "str.len": lambda a, i, c: z3.Length(a[0]),
    "str.prefixof": lambda a, i, c: z3.PrefixOf(a[0], a[1]),
    "str.suffixof": lambda a, i, c: z3.SuffixOf(a[0], a[1]),
    "str.contains": lambda a, i, c: z3.Contains(a[0], a[1]),
    "fp.abs": lambda a, i, c: z3.fpAbs(a[0], ctx=c),
    "fp.neg": lambda a, i, c: z3.fpNeg(a[0], ctx=c),
    "fp.add": lambda a, i, c: z3.fpAdd(z3.RNE(c), a[0], a[1], ctx=c),
    "fp.mul": lambda a, i, c: z3.fpMul(z3.RNE(c), a[0], a[1], ctx=c),
    "fp.lt": lambda a, i, c: z3.fpLT(a[0], a[1], ctx=c),
    "fp.leq": lambda a, i, c: z3.fpLEQ(a[0], a[1], ctx=c),
    "fp.eq": lambda a, i, c: z3.fpEQ(a[0], a[1], ctx=c),
    "fp.isNaN": lambda a, i, c: z3.fpIsNaN(a[0], ctx=c),
    "fp.isZero": lambda a, i, c: z3.fpIsZero(a[0], ctx=c),
    "forall": lambda a, i, c: z3.ForAll([a[0]], a[1]),
    "exists": lambda a, i, c: z3.Exists([a[0]], a[1]),
}

for _prefix in ("int", "real"):
    _OPS.update({
        f"{_prefix}.neg": lambda a, i, c: -a[0],
        f"{_prefix}.add": lambda a, i, c: z3.Sum(*a),
        f"{_prefix}.sub": lambda a, i, c: a[0] - a[1],
        f"{_prefix}.mul": lambda a, i, c: a[0] * a[1],
        f"{_prefix}.lt": lambda a, i, c: a[0] < a[1],
        f"{_prefix}.le": lambda a, i, c: a[0] <= a[1],
        f"{_prefix}.gt": lambda a, i, c: a[0] > a[1],
        f"{_prefix}.ge": lambda a, i, c: a[0] >= a[1],
    })


class Z3Solver:
    """Z3 solver backend wrapper.
    
    Each solver instance owns a private z3.Context so that independent
    instances never share term tables.
    """

    def __init__(self):
        self.ctx: Optional[z3.Context] = None
        self.solver: Optional[z3.Solver] = None

    def get_name(self) -> str:
        return "z3"

    def new(self) -> None:
        if self.solver is not None:
            raise SolverError("z3 solver already initialized")
        self.ctx = z3.Context()
        self.solver = z3.Solver(ctx=self.ctx)

    def delete(self) -> None:
        self.solver = None
        self.ctx = None

    def is_initialized(self) -> bool:
        return self.solver is not None

    def supported_theories(self) -> Set[Theory]:
        return set(SUPPORTED_THEORIES)

    def get_option_model(self) -> SolverOptions:
        return SolverOptions([
            SolverOptionBool("unsat_core"),
            SolverOptionBool("smt.core.minimize", depends=["unsat_core"]),
            SolverOptionInt("smt.random_seed", min=0, max=1000),
            SolverOptionInt("timeout", min=1000, max=10000),
            SolverOptionBool("smt.mbqi"),
            SolverOptionInt("smt.mbqi.max_iterations", depends=["smt.mbqi"], min=1, max=1000),
            SolverOptionBool("smt.ematching", conflicts=["smt.mbqi"]),
            SolverOptionInt("smt.relevancy", min=0, max=2),
            SolverOptionList("smt.arith.solver", values=["2", "6"]),
        ])

    def set_opt(self, name: str, value: str) -> None:
        self._check_init()
        try:
            self.solver.set(name, _to_param(value))
        except z3.Z3Exception as e:
            raise SolverError(f"z3: cannot set option {name}={value}: {e}") from e

    def models_enabled(self) -> bool:
        return True

    def mk_sort(self, kind: SortKind, params: Sequence[Any]) -> Any:
        self._check_init()
        ctx = self.ctx
        if kind == SortKind.BOOL:
            return z3.BoolSort(ctx)
        if kind == SortKind.BV:
            return z3.BitVecSort(params[0], ctx)
        if kind == SortKind.INT:
            return z3.IntSort(ctx)
        if kind == SortKind.REAL:
            return z3.RealSort(ctx)
        if kind == SortKind.STRING:
            return z3.StringSort(ctx)
        if kind == SortKind.FP:
            return z3.FPSort(params[0], params[1], ctx)
        if kind == SortKind.ARRAY:
            return z3.ArraySort(params[0], params[1])
        if kind == SortKind.FUN:
            return Z3FunSort(tuple(params[:-1]), params[-1])
        raise SolverError(f"z3: unsupported sort kind {kind.value}")

    def mk_const(self, sort: Any, name: str) -> Any:
        self._check_init()
        if isinstance(sort, Z3FunSort):
            return z3.Function(name, *sort.domain, sort.codomain)
        return z3.Const(name, sort)

    def mk_var(self, sort: Any, name: str) -> Any:
        self._check_init()
        return z3.Const(name, sort)

    def mk_value(self, sort: Any, kind: SortKind, literal: str) -> Any:
        self._check_init()
        ctx = self.ctx
        if kind == SortKind.BOOL:
            return z3.BoolVal(literal == "true", ctx)
        if kind == SortKind.BV:
            return z3.BitVecVal(int(literal[2:], 2), sort)
        if kind == SortKind.INT:
            return z3.IntVal(int(literal), ctx)
        if kind == SortKind.REAL:
            return z3.RealVal(literal, ctx)
        if kind == SortKind.STRING:
            return z3.StringVal(literal[1:-1], ctx)
        if kind == SortKind.FP:
            return z3.FPVal(float(literal), None, sort, ctx)
        raise SolverError(f"z3: cannot create values of sort kind {kind.value}")

    def mk_term(self, op: str, args: Sequence[Any], indices: Sequence[int]) -> Any:
        self._check_init()
        try:
            fun = _OPS[op]
        except KeyError:
            raise SolverError(f"z3: unsupported operator '{op}'") from None
        return fun(list(args), list(indices), self.ctx)

    def get_sort(self, term: Any) -> Any:
        if isinstance(term, z3.FuncDeclRef):
            return Z3FunSort(tuple(term.domain(i) for i in range(term.arity())),
                             term.range())
        return term.sort()

    def assert_formula(self, term: Any) -> None:
        self._check_init()
        self.solver.add(term)

    def check_sat(self) -> SolverResult:
        self._check_init()
        return self._result(self.solver.check())

    def check_sat_assuming(self, assumptions: Sequence[Any]) -> SolverResult:
        self._check_init()
        return self._result(self.solver.check(*assumptions))

    def get_value(self, terms: Sequence[Any]) -> List[str]:
        self._check_init()
        model = self.solver.model()
        return [str(model.eval(t, model_completion=True)) for t in terms]

    def push(self, n_levels: int) -> None:
        """Push `n_levels` assertion scopes."""
        self._check_init()
        for _ in range(n_levels):
            self.solver.push()

    def pop(self, n_levels: int) -> None:
        """Pop `n_levels` assertion scopes."""
        self._check_init()
        self.solver.pop(n_levels)

    def reset_assertions(self) -> None:
        self._check_init()
        self.solver.reset()

    def _result(self, res: Any) -> SolverResult:
        if res == z3.sat:
            return SolverResult.SAT
        if res == z3.unsat:
            return SolverResult.UNSAT
        return SolverResult.UNKNOWN

    def _check_init(self) -> None:
        if self.solver is None:
            raise SolverError("z3 solver not initialized")


class Z3SolverManager(SolverManager):
    """Solver manager for the Z3 backend."""

    def __init__(self, rng: RNGenerator, enabled_theories: Iterable[Theory], linear: bool = False):
        super().__init__(rng, enabled_theories,
                         term_hash=z3_term_hash,
                         sort_hash=z3_sort_hash,
                         linear=linear)

    def configure(self) -> None:
        self.enabled_theories &= SUPPORTED_THEORIES

    def get_sort(self, term: Any) -> Any:
        return self.get_solver().get_sort(term)

    def ensure_sort(self, theory: Theory) -> int:
        kind = sort_kind_for_theory(theory)
        if kind is None or kind not in PARAMLESS_SORT_KINDS:
            raise ValueError(f"no canonical sort for theory '{theory.value}'")
        solver = self.get_solver()
        return self._ensure_canonical_sort(kind, lambda: solver.mk_sort(kind, ()))

    def copy_term(self, term: Any) -> Any:
        return term

    def copy_sort(self, sort: Any) -> Any:
        return sort
