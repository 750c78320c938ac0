"""
Operator table.

Every operator the FSM may apply when creating composite terms, together
with the sort constraints on its arguments and its result.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .theory import SortKind, Theory

N_ARY = -1

# Argument placeholder: a term of any (non-function) sort.
ANY = None


@dataclass(frozen=True)
class Op:
    """An SMT operator.

    Attributes:
        kind: Operator tag as it appears in traces
        smt2: SMT-LIB symbol of the operator
        theory: Theory the operator belongs to
        arity: Number of arguments, or N_ARY
        nidx: Number of integer indices (e.g. 2 for extract)
        args: Sort kind per argument position; the last entry repeats for
              n-ary operators. ANY means any sort.
        result: Result sort kind; None means the sort of the first argument
                (or a sort computed from the arguments for special ops)
        nonlinear: Excluded when arithmetic is restricted to linear terms
    """
    kind: str
    smt2: str
    theory: Theory
    arity: int
    nidx: int = 0
    args: Tuple[Optional[SortKind], ...] = ()
    result: Optional[SortKind] = None
    nonlinear: bool = False

    def theories(self) -> Set[Theory]:
        """All theories that must be enabled for this operator."""
        ths = {self.theory}
        for k in self.args:
            if k is not None:
                ths.add(k.theory)
        if self.result is not None:
            ths.add(self.result.theory)
        return ths


_B = SortKind.BOOL
_BV = SortKind.BV
_I = SortKind.INT
_R = SortKind.REAL
_S = SortKind.STRING
_F = SortKind.FP
_A = SortKind.ARRAY
_FUN = SortKind.FUN


def _ops() -> List[Op]:
    ops = [
        # Core
        Op("not", "not", Theory.BOOL, 1, args=(_B,)),
        Op("and", "and", Theory.BOOL, N_ARY, args=(_B,)),
        Op("or", "or", Theory.BOOL, N_ARY, args=(_B,)),
        Op("xor", "xor", Theory.BOOL, 2, args=(_B,)),
        Op("=>", "=>", Theory.BOOL, 2, args=(_B,)),
        Op("=", "=", Theory.BOOL, 2, args=(ANY,), result=_B),
        Op("distinct", "distinct", Theory.BOOL, N_ARY, args=(ANY,), result=_B),
        Op("ite", "ite", Theory.BOOL, 3, args=(_B, ANY, ANY)),
    ]

    for k in ("bvnot", "bvneg"):
        ops.append(Op(k, k, Theory.BV, 1, args=(_BV,)))
    for k in ("bvadd", "bvsub", "bvmul", "bvand", "bvor", "bvxor",
              "bvudiv", "bvurem", "bvshl", "bvlshr", "bvashr"):
        ops.append(Op(k, k, Theory.BV, 2, args=(_BV,)))
    for k in ("bvult", "bvule", "bvugt", "bvuge",
              "bvslt", "bvsle", "bvsgt", "bvsge"):
        ops.append(Op(k, k, Theory.BV, 2, args=(_BV,), result=_B))
    ops.extend([
        Op("concat", "concat", Theory.BV, 2, args=(_BV,)),
        Op("extract", "extract", Theory.BV, 1, nidx=2, args=(_BV,)),
        Op("zero_extend", "zero_extend", Theory.BV, 1, nidx=1, args=(_BV,)),
        Op("sign_extend", "sign_extend", Theory.BV, 1, nidx=1, args=(_BV,)),
        Op("repeat", "repeat", Theory.BV, 1, nidx=1, args=(_BV,)),
    ])

    for th, kind, prefix in ((Theory.INT, _I, "int"), (Theory.REAL, _R, "real")):
        ops.extend([
            Op(f"{prefix}.neg", "-", th, 1, args=(kind,)),
            Op(f"{prefix}.add", "+", th, N_ARY, args=(kind,)),
            Op(f"{prefix}.sub", "-", th, 2, args=(kind,)),
            Op(f"{prefix}.mul", "*", th, 2, args=(kind,), nonlinear=True),
            Op(f"{prefix}.lt", "<", th, 2, args=(kind,), result=_B),
            Op(f"{prefix}.le", "<=", th, 2, args=(kind,), result=_B),
            Op(f"{prefix}.gt", ">", th, 2, args=(kind,), result=_B),
            Op(f"{prefix}.ge", ">=", th, 2, args=(kind,), result=_B),
        ])
    ops.extend([
        Op("int.abs", "abs", Theory.INT, 1, args=(_I,)),
        Op("int.div", "div", Theory.INT, 2, args=(_I,), nonlinear=True),
        Op("int.mod", "mod", Theory.INT, 2, args=(_I,), nonlinear=True),
        Op("real.div", "/", Theory.REAL, 2, args=(_R,), nonlinear=True),
    ])

    ops.extend([
        Op("select", "select", Theory.ARRAY, 2, args=(_A, ANY)),
        Op("store", "store", Theory.ARRAY, 3, args=(_A, ANY, ANY)),
        Op("apply", "apply", Theory.UF, N_ARY, args=(_FUN, ANY)),
        Op("str.++", "str.++", Theory.STRING, N_ARY, args=(_S,)),
        Op("str.len", "str.len", Theory.STRING, 1, args=(_S,), result=_I),
        Op("str.prefixof", "str.prefixof", Theory.STRING, 2, args=(_S,), result=_B),
        Op("str.suffixof", "str.suffixof", Theory.STRING, 2, args=(_S,), result=_B),
        Op("str.contains", "str.contains", Theory.STRING, 2, args=(_S,), result=_B),
        Op("fp.abs", "fp.abs", Theory.FP, 1, args=(_F,)),
        Op("fp.neg", "fp.neg", Theory.FP, 1, args=(_F,)),
        Op("fp.add", "fp.add", Theory.FP, 2, args=(_F,)),
        Op("fp.mul", "fp.mul", Theory.FP, 2, args=(_F,)),
        Op("fp.lt", "fp.lt", Theory.FP, 2, args=(_F,), result=_B),
        Op("fp.leq", "fp.leq", Theory.FP, 2, args=(_F,), result=_B),
        Op("fp.eq", "fp.eq", Theory.FP, 2, args=(_F,), result=_B),
        Op("fp.isNaN", "fp.isNaN", Theory.FP, 1, args=(_F,), result=_B),
        Op("fp.isZero", "fp.isZero", Theory.FP, 1, args=(_F,), result=_B),
        Op("forall", "forall", Theory.QUANT, 2, args=(ANY, _B), result=_B),
        Op("exists", "exists", Theory.QUANT, 2, args=(ANY, _B), result=_B),
    ])
    return ops


OPS: Dict[str, Op] = {op.kind: op for op in _ops()}

# Stable ordering, used for statistics layout and for random picks.
OP_KINDS: Tuple[str, ...] = tuple(OPS)

# Rounding mode applied by the binary FP arithmetic operators.
FP_ROUNDING_OPS = frozenset({"fp.add", "fp.mul"})


def get_op(kind: str) -> Op:
    try:
        return OPS[kind]
    except KeyError:
        raise KeyError(f"unknown operator '{kind}'") from None


def enabled_ops(theories: Iterable[Theory], linear: bool = False) -> List[Op]:
    """Operators legal under the given theory set and restrictions."""
    ths = set(theories)
    res = []
    for kind in OP_KINDS:
        op = OPS[kind]
        if not op.theories() <= ths:
            continue
        if linear and op.nonlinear:
            continue
        res.append(op)
    return res
