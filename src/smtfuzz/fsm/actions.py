"""
FSM actions.

An action is one solver API call. Each action can
  - decide whether it is legal in the current solver state (enabled),
  - draw its arguments from the RNG and execute (generate),
  - parse its arguments from a trace line (parse),
  - execute with literal arguments, tracing itself (run).
generate() and replay both end up in run(), so a replayed trace issues the
same calls as the run that recorded it.
"""
import re
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence, Tuple

from ..exceptions import RegistryError
from ..op import N_ARY, Op, get_op
from ..solver.result import SolverResult
from ..solver_manager import LeafKind
from ..theory import PARAMLESS_SORT_KINDS, SortKind, Theory, sort_kinds_of

if TYPE_CHECKING:
    from ..trace.player import TracePlayer
    from .fsm import FSM

Created = List[Tuple[str, int]]

# Every sort kind but functions; terms of these kinds are first-class.
DATA_KINDS = tuple(k for k in SortKind if k != SortKind.FUN)
VALUE_KINDS = (SortKind.BOOL, SortKind.BV, SortKind.FP, SortKind.INT,
               SortKind.REAL, SortKind.STRING)

MAX_BV_WIDTH = 64
FP_FORMATS = ((5, 11), (8, 24), (11, 53))
MAX_NARY = 4
MAX_FUN_ARITY = 3
MAX_EXTEND = 32
MAX_REPEAT = 4
MAX_PUSH = 3
MAX_QUERY_TERMS = 3
MAX_STRING_LEN = 8

_VALUE_PATTERNS = {
    SortKind.BOOL: re.compile(r"true|false"),
    SortKind.BV: re.compile(r"#b[01]+"),
    SortKind.INT: re.compile(r"-?\d+"),
    SortKind.REAL: re.compile(r"-?\d+(/\d+)?"),
    SortKind.STRING: re.compile(r'"[a-z0-9]*"'),
    SortKind.FP: re.compile(r"-?\d+\.\d+"),
}


class Action:
    """Base class of all actions."""

    kind = ""
    traced = True

    def __init__(self, fsm: "FSM"):
        self.fsm = fsm

    @property
    def smgr(self):
        return self.fsm.smgr

    @property
    def solver(self):
        return self.fsm.solver

    @property
    def rng(self):
        return self.fsm.rng

    def trace(self, *args: Any) -> None:
        self.fsm.tracer.trace(self.kind, *args)

    def trace_return(self, *ids: str) -> None:
        self.fsm.tracer.trace_return(*ids)

    def enabled(self) -> bool:
        return self.solver.is_initialized()

    def generate(self) -> Created:
        return self.run()

    def parse(self, player: "TracePlayer", tokens: Sequence[str]) -> Tuple[Any, ...]:
        if tokens:
            raise player.fail(f"'{self.kind}' takes no arguments")
        return ()

    def run(self, *args: Any) -> Created:
        raise NotImplementedError

    def __repr__(self) -> str:
        return self.kind


class Transition(Action):
    """Untraced move to another state, optionally guarded."""

    kind = "transition"
    traced = False

    def __init__(self, fsm: "FSM", precondition: Optional[Callable[[], bool]] = None):
        super().__init__(fsm)
        self._precondition = precondition

    def enabled(self) -> bool:
        return self._precondition is None or self._precondition()

    def run(self) -> Created:
        return []


class New(Action):
    kind = "new"

    def enabled(self) -> bool:
        return not self.solver.is_initialized()

    def run(self) -> Created:
        self.trace()
        self.solver.new()
        return []


class Delete(Action):
    kind = "delete"

    def run(self) -> Created:
        self.trace()
        self.solver.delete()
        self.smgr.clear()
        return []


class SetOption(Action):
    """Activate a solver option.

    Only options whose dependencies are active and that are not in conflict
    with an active option are picked. Options must be set before the first
    sort or term exists.
    """

    kind = "set-option"

    def _legal(self):
        return self.fsm.option_model.legal(self.smgr.active_options)

    def enabled(self) -> bool:
        return (self.solver.is_initialized()
                and self.smgr.n_sorts == 0
                and self.smgr.n_terms == 0
                and bool(self._legal()))

    def generate(self) -> Created:
        opt = self.rng.pick(self._legal())
        return self.run(opt.get_name(), opt.pick_value(self.rng))

    def parse(self, player, tokens):
        if len(tokens) != 2:
            raise player.fail("'set-option' expects <name> <value>")
        return tokens[0], tokens[1]

    def run(self, name: str, value: str) -> Created:
        self.trace(name, value)
        self.solver.set_opt(name, value)
        self.smgr.active_options[name] = value
        return []


class MkSort(Action):
    kind = "mk-sort"

    def _kinds(self) -> List[SortKind]:
        kinds = sorted(sort_kinds_of(self.smgr.enabled_theories), key=lambda k: k.value)
        if not self.smgr.has_sort(DATA_KINDS):
            kinds = [k for k in kinds if k not in (SortKind.ARRAY, SortKind.FUN)]
        return kinds

    def enabled(self) -> bool:
        return self.solver.is_initialized() and bool(self._kinds())

    def generate(self) -> Created:
        kind = self.rng.pick(self._kinds())
        params: Tuple[int, ...] = ()
        if kind == SortKind.BV:
            params = (self.rng.pick_int32(1, MAX_BV_WIDTH),)
        elif kind == SortKind.FP:
            params = self.rng.pick(FP_FORMATS)
        elif kind == SortKind.ARRAY:
            params = (self.smgr.pick_sort(DATA_KINDS), self.smgr.pick_sort(DATA_KINDS))
        elif kind == SortKind.FUN:
            arity = self.rng.pick_int32(1, MAX_FUN_ARITY)
            params = tuple(self.smgr.pick_sort(DATA_KINDS) for _ in range(arity + 1))
        return self.run(kind, params)

    def parse(self, player, tokens):
        try:
            kind = SortKind(tokens[0])
        except ValueError:
            raise player.fail(f"unknown sort kind '{tokens[0]}'") from None
        rest = tokens[1:]
        if kind == SortKind.BV:
            params = (player.parse_int(rest[0]),)
        elif kind == SortKind.FP:
            params = (player.parse_int(rest[0]), player.parse_int(rest[1]))
        elif kind == SortKind.ARRAY:
            params = (player.sort_index(rest[0]), player.sort_index(rest[1]))
        elif kind == SortKind.FUN:
            if len(rest) < 2:
                raise player.fail("function sort needs a domain and a codomain")
            params = tuple(player.sort_index(t) for t in rest)
        else:
            params = ()
        if len(rest) != len(params):
            raise player.fail(f"wrong number of parameters for sort kind '{kind.value}'")
        return kind, params

    def run(self, kind: SortKind, params: Tuple[int, ...]) -> Created:
        if kind in (SortKind.ARRAY, SortKind.FUN):
            self.trace(kind.value, *(f"s{p}" for p in params))
            handles = [self.smgr.sort_handle(p) for p in params]
        else:
            self.trace(kind.value, *params)
            handles = list(params)
        sort = self.solver.mk_sort(kind, handles)
        idx = self.smgr.add_sort(sort, kind, params)
        self.trace_return(f"s{idx}")
        return [("s", idx)]


class MkConst(Action):
    kind = "mk-const"
    leaf = LeafKind.CONST
    prefix = "x"

    def enabled(self) -> bool:
        return self.solver.is_initialized() and self.smgr.has_sort()

    def generate(self) -> Created:
        sort = self.smgr.pick_sort()
        return self.run(sort, self.smgr.new_symbol(self.prefix))

    def parse(self, player, tokens):
        if len(tokens) != 2:
            raise player.fail(f"'{self.kind}' expects <sort> <symbol>")
        return player.sort_index(tokens[0]), tokens[1]

    def _make(self, sort: Any, name: str) -> Any:
        return self.solver.mk_const(sort, name)

    def run(self, sort: int, name: str) -> Created:
        self.trace(f"s{sort}", name)
        term = self._make(self.smgr.sort_handle(sort), name)
        idx = self.smgr.add_term(term, sort, leaf=self.leaf)
        self.trace_return(f"t{idx}")
        return [("t", idx)]


class MkVar(MkConst):
    """Create a variable that quantifiers may bind."""

    kind = "mk-var"
    leaf = LeafKind.VAR
    prefix = "v"

    def enabled(self) -> bool:
        return (self.solver.is_initialized()
                and Theory.QUANT in self.smgr.enabled_theories
                and self.smgr.has_sort(DATA_KINDS))

    def generate(self) -> Created:
        sort = self.smgr.pick_sort(DATA_KINDS)
        return self.run(sort, self.smgr.new_symbol(self.prefix))

    def _make(self, sort: Any, name: str) -> Any:
        return self.solver.mk_var(sort, name)


class MkValue(Action):
    kind = "mk-value"

    def enabled(self) -> bool:
        return self.solver.is_initialized() and self.smgr.has_sort(VALUE_KINDS)

    def generate(self) -> Created:
        sort = self.smgr.pick_sort(VALUE_KINDS)
        return self.run(sort, self._pick_literal(self.smgr.get_sort_data(sort)))

    def _pick_literal(self, data) -> str:
        rng = self.rng
        kind = data.kind
        if kind == SortKind.BOOL:
            return "true" if rng.flip_coin() else "false"
        if kind == SortKind.BV:
            return "#b" + rng.pick_bin_str(data.params[0])
        if kind == SortKind.INT:
            return str(rng.pick_int32(-1000, 1000))
        if kind == SortKind.REAL:
            num = rng.pick_int32(-1000, 1000)
            if rng.flip_coin():
                return str(num)
            return f"{num}/{rng.pick_int32(1, 100)}"
        if kind == SortKind.STRING:
            return '"' + rng.pick_string(MAX_STRING_LEN) + '"'
        sign = "-" if rng.flip_coin() else ""
        return f"{sign}{rng.pick_int32(0, 1000)}.{rng.pick_int32(0, 99)}"

    def parse(self, player, tokens):
        if len(tokens) != 2:
            raise player.fail("'mk-value' expects <sort> <literal>")
        sort = player.sort_index(tokens[0])
        data = self.smgr.get_sort_data(sort)
        pattern = _VALUE_PATTERNS.get(data.kind)
        if pattern is None or not pattern.fullmatch(tokens[1]):
            raise player.fail(f"invalid {data.kind.value} literal '{tokens[1]}'")
        if data.kind == SortKind.BV and len(tokens[1]) - 2 != data.params[0]:
            raise player.fail(f"literal '{tokens[1]}' does not fit s{sort}")
        return sort, tokens[1]

    def run(self, sort: int, literal: str) -> Created:
        self.trace(f"s{sort}", literal)
        data = self.smgr.get_sort_data(sort)
        term = self.solver.mk_value(data.handle, data.kind, literal)
        idx = self.smgr.add_term(term, sort, leaf=LeafKind.VALUE)
        self.trace_return(f"t{idx}")
        return [("t", idx)]


class MkTerm(Action):
    """Apply an operator to tracked terms."""

    kind = "mk-term"

    # -- candidate selection ----------------------------------------------

    def _bv_sorts(self, max_width: int = MAX_BV_WIDTH) -> List[int]:
        return [s for s in self.smgr.sorts_with_terms([SortKind.BV])
                if self.smgr.get_sort_data(s).params[0] <= max_width]

    def _arrays(self, store: bool) -> List[int]:
        res = []
        for s in self.smgr.sorts_with_terms([SortKind.ARRAY]):
            index, element = self.smgr.get_sort_data(s).params
            if not self.smgr.has_term(sort=index):
                continue
            if store and not self.smgr.has_term(sort=element):
                continue
            res.append(s)
        return res

    def _funs(self) -> List[int]:
        res = []
        for t in self.smgr.terms(kinds=[SortKind.FUN]):
            params = self.smgr.get_sort_data(self.smgr.get_term_data(t).sort).params
            if all(self.smgr.has_term(sort=d) for d in params[:-1]):
                res.append(t)
        return res

    def _applicable(self, op: Op) -> bool:
        smgr = self.smgr
        k = op.kind
        if k in ("=", "distinct"):
            return bool(smgr.sorts_with_terms(DATA_KINDS))
        if k == "ite":
            return (smgr.has_term(kinds=[SortKind.BOOL])
                    and bool(smgr.sorts_with_terms(DATA_KINDS)))
        if k == "select":
            return bool(self._arrays(store=False))
        if k == "store":
            return bool(self._arrays(store=True))
        if k == "apply":
            return bool(self._funs())
        if k in ("forall", "exists"):
            return (smgr.has_term(leaf=LeafKind.VAR)
                    and smgr.has_term(kinds=[SortKind.BOOL]))
        if op.args[0] == SortKind.BV:
            return bool(self._bv_sorts())
        return smgr.has_term(kinds=[op.args[0]])

    def candidates(self) -> List[Op]:
        return [op for op in self.fsm.ops if self._applicable(op)]

    def enabled(self) -> bool:
        return self.solver.is_initialized() and bool(self.candidates())

    def generate(self) -> Created:
        ops = self.candidates()
        # Pick the theory first so that theories with many operators do not
        # crowd out the others.
        theories = sorted({op.theory for op in ops}, key=lambda t: t.value)
        theory = self.rng.pick(theories)
        op = self.rng.pick([o for o in ops if o.theory == theory])
        args, indices = self._pick_args(op)
        return self.run(op.kind, args, indices)

    def _n_args(self, op: Op) -> int:
        if op.arity == N_ARY:
            return self.rng.pick_int32(2, MAX_NARY)
        return op.arity

    def _pick_args(self, op: Op) -> Tuple[List[int], List[int]]:
        smgr = self.smgr
        rng = self.rng
        k = op.kind
        indices: List[int] = []
        if k in ("=", "distinct"):
            sort = smgr.pick_sort_with_terms(DATA_KINDS)
            args = [smgr.pick_term(sort) for _ in range(self._n_args(op))]
        elif k == "ite":
            cond = smgr.pick_term(kinds=[SortKind.BOOL])
            sort = smgr.pick_sort_with_terms(DATA_KINDS)
            args = [cond, smgr.pick_term(sort), smgr.pick_term(sort)]
        elif k == "concat":
            sorts = self._bv_sorts()
            args = [smgr.pick_term(rng.pick(sorts)), smgr.pick_term(rng.pick(sorts))]
        elif k in ("select", "store"):
            sort = rng.pick(self._arrays(store=k == "store"))
            index, element = smgr.get_sort_data(sort).params
            args = [smgr.pick_term(sort), smgr.pick_term(index)]
            if k == "store":
                args.append(smgr.pick_term(element))
        elif k == "apply":
            fun = rng.pick(self._funs())
            params = smgr.get_sort_data(smgr.get_term_data(fun).sort).params
            args = [fun] + [smgr.pick_term(d) for d in params[:-1]]
        elif k in ("forall", "exists"):
            args = [smgr.pick_term(leaf=LeafKind.VAR), smgr.pick_term(kinds=[SortKind.BOOL])]
        else:
            if op.args[0] == SortKind.BV:
                sort = rng.pick(self._bv_sorts())
            else:
                sort = smgr.pick_sort_with_terms([op.args[0]])
            args = [smgr.pick_term(sort) for _ in range(self._n_args(op))]
            if k == "extract":
                width = smgr.get_sort_data(sort).params[0]
                hi = rng.pick_int32(0, width - 1)
                indices = [hi, rng.pick_int32(0, hi)]
            elif k in ("zero_extend", "sign_extend"):
                indices = [rng.pick_int32(0, MAX_EXTEND)]
            elif k == "repeat":
                indices = [rng.pick_int32(1, MAX_REPEAT)]
        return args, indices

    # -- execution ---------------------------------------------------------

    def parse(self, player, tokens):
        try:
            op = get_op(tokens[0])
        except KeyError:
            raise player.fail(f"unknown operator '{tokens[0]}'") from None
        n = player.parse_int(tokens[1])
        args = [player.term_index(t) for t in tokens[2:2 + n]]
        if len(args) != n:
            raise player.fail(f"'{op.kind}' lists {len(args)} arguments, expected {n}")
        nidx = player.parse_int(tokens[2 + n])
        indices = [player.parse_int(t) for t in tokens[3 + n:3 + n + nidx]]
        if len(indices) != nidx or len(tokens) != 3 + n + nidx:
            raise player.fail(f"malformed indices for '{op.kind}'")
        if op.arity != N_ARY and n != op.arity:
            raise player.fail(f"'{op.kind}' expects {op.arity} arguments, got {n}")
        if nidx != op.nidx:
            raise player.fail(f"'{op.kind}' expects {op.nidx} indices, got {nidx}")
        return op.kind, args, indices

    def run(self, op_kind: str, args: List[int], indices: List[int]) -> Created:
        op = get_op(op_kind)
        self.trace(op_kind, len(args), *(f"t{a}" for a in args), len(indices), *indices)
        handles = [self.smgr.term_handle(a) for a in args]
        term = self.solver.mk_term(op_kind, handles, indices)
        sort = self._result_sort(op, args, indices, term)
        idx = self.smgr.add_term(term, sort, theory=op.theory, children=args)
        if self.fsm.stats is not None:
            self.fsm.stats.inc_op(op_kind)
        self.trace_return(f"t{idx}", f"s{sort}")
        return [("t", idx), ("s", sort)]

    def _result_sort(self, op: Op, args: List[int], indices: List[int], term: Any) -> int:
        smgr = self.smgr
        handle = smgr.get_sort(term)
        found = smgr.find_sort(handle)
        if found is not None:
            return found
        arg_sorts = [smgr.get_sort_data(smgr.get_term_data(a).sort) for a in args]
        if op.result is not None:
            kind = op.result
        elif op.kind == "ite":
            kind = arg_sorts[1].kind
        else:
            kind = arg_sorts[0].kind
        if kind in PARAMLESS_SORT_KINDS:
            idx = smgr.ensure_sort(kind.theory)
            if smgr.find_sort(handle) != idx:
                raise RegistryError(f"backend returned an unexpected {kind.value} sort")
            return idx
        if kind == SortKind.BV:
            widths = [s.params[0] for s in arg_sorts if s.kind == SortKind.BV]
            if op.kind == "concat":
                width = widths[0] + widths[1]
            elif op.kind == "extract":
                width = indices[0] - indices[1] + 1
            elif op.kind in ("zero_extend", "sign_extend"):
                width = widths[0] + indices[0]
            elif op.kind == "repeat":
                width = widths[0] * indices[0]
            else:
                width = widths[0]
            return smgr.add_sort(handle, SortKind.BV, (width,))
        raise RegistryError(f"result sort of '{op.kind}' is not registered")


class AssertFormula(Action):
    kind = "assert-formula"

    def enabled(self) -> bool:
        return self.solver.is_initialized() and self.smgr.has_term(kinds=[SortKind.BOOL])

    def generate(self) -> Created:
        return self.run(self.smgr.pick_term(kinds=[SortKind.BOOL]))

    def parse(self, player, tokens):
        if len(tokens) != 1:
            raise player.fail("'assert-formula' expects one term")
        return (player.term_index(tokens[0]),)

    def run(self, term: int) -> Created:
        self.trace(f"t{term}")
        self.solver.assert_formula(self.smgr.term_handle(term))
        self.smgr.n_assertions += 1
        self.smgr.reset_sat()
        return []


class CheckSat(Action):
    kind = "check-sat"

    def run(self) -> Created:
        self.trace()
        self._record(self.solver.check_sat())
        return []

    def _record(self, res: SolverResult) -> None:
        self.smgr.sat_called = True
        self.smgr.sat_result = res
        if self.fsm.stats is not None:
            self.fsm.stats.inc_result(res)


class CheckSatAssuming(CheckSat):
    """check-sat under assumptions; assumptions are Boolean constants."""

    kind = "check-sat-assuming"

    def enabled(self) -> bool:
        return (self.solver.is_initialized()
                and self.smgr.has_term(kinds=[SortKind.BOOL], leaf=LeafKind.CONST))

    def generate(self) -> Created:
        n = self.rng.pick_int32(1, MAX_QUERY_TERMS)
        return self.run([self.smgr.pick_term(kinds=[SortKind.BOOL], leaf=LeafKind.CONST)
                         for _ in range(n)])

    def parse(self, player, tokens):
        return (_parse_term_list(player, tokens),)

    def run(self, terms: List[int]) -> Created:
        self.trace(len(terms), *(f"t{t}" for t in terms))
        self._record(self.solver.check_sat_assuming([self.smgr.term_handle(t) for t in terms]))
        return []


class GetValue(Action):
    kind = "get-value"

    def enabled(self) -> bool:
        smgr = self.smgr
        return (self.solver.is_initialized()
                and smgr.sat_called
                and smgr.sat_result == SolverResult.SAT
                and self.solver.models_enabled()
                and smgr.has_term(kinds=DATA_KINDS))

    def generate(self) -> Created:
        n = self.rng.pick_int32(1, MAX_QUERY_TERMS)
        return self.run([self.smgr.pick_term(kinds=DATA_KINDS) for _ in range(n)])

    def parse(self, player, tokens):
        return (_parse_term_list(player, tokens),)

    def run(self, terms: List[int]) -> Created:
        self.trace(len(terms), *(f"t{t}" for t in terms))
        self.solver.get_value([self.smgr.term_handle(t) for t in terms])
        return []


class Push(Action):
    kind = "push"

    def generate(self) -> Created:
        return self.run(self.rng.pick_int32(1, MAX_PUSH))

    def parse(self, player, tokens):
        if len(tokens) != 1:
            raise player.fail("'push' expects <n>")
        return (player.parse_int(tokens[0]),)

    def run(self, n_levels: int) -> Created:
        self.trace(n_levels)
        self.solver.push(n_levels)
        self.smgr.n_push_levels += n_levels
        self.smgr.reset_sat()
        return []


class Pop(Push):
    kind = "pop"

    def enabled(self) -> bool:
        return self.solver.is_initialized() and self.smgr.n_push_levels > 0

    def generate(self) -> Created:
        return self.run(self.rng.pick_int32(1, self.smgr.n_push_levels))

    def run(self, n_levels: int) -> Created:
        self.trace(n_levels)
        self.solver.pop(n_levels)
        self.smgr.n_push_levels = max(0, self.smgr.n_push_levels - n_levels)
        self.smgr.reset_sat()
        return []


class ResetAssertions(Action):
    kind = "reset-assertions"

    def run(self) -> Created:
        self.trace()
        self.solver.reset_assertions()
        self.smgr.n_push_levels = 0
        self.smgr.n_assertions = 0
        self.smgr.reset_sat()
        return []


def _parse_term_list(player: "TracePlayer", tokens: Sequence[str]) -> List[int]:
    n = player.parse_int(tokens[0])
    if n < 1 or len(tokens) != n + 1:
        raise player.fail(f"expected {n} terms, got {len(tokens) - 1}")
    return [player.term_index(t) for t in tokens[1:]]


# Traced action kinds, in a fixed order (statistics layout depends on it).
ACTION_KINDS: Tuple[str, ...] = (
    New.kind,
    Delete.kind,
    SetOption.kind,
    MkSort.kind,
    MkConst.kind,
    MkVar.kind,
    MkValue.kind,
    MkTerm.kind,
    AssertFormula.kind,
    CheckSat.kind,
    CheckSatAssuming.kind,
    GetValue.kind,
    Push.kind,
    Pop.kind,
    ResetAssertions.kind,
)
