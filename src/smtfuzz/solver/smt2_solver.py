"""SMT-LIBv2 backend.

Every API call is rendered as an SMT-LIBv2 command and written to an output
stream. Optionally, the commands are also fed to an external solver binary
over pipes (online mode) with `:print-success` enabled, so that each command
is answered before the next one is sent.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, TextIO, Tuple

from ..exceptions import SolverError
from ..op import FP_ROUNDING_OPS, get_op
from ..rng import RNGenerator
from ..solver_manager import SolverManager
from ..theory import PARAMLESS_SORT_KINDS, SortKind, Theory, sort_kind_for_theory
from .option import SolverOptionBool, SolverOptionInt, SolverOptions
from .result import SolverResult

log = logging.getLogger(__name__)

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

_PARAMLESS = {
    SortKind.BOOL: "Bool",
    SortKind.INT: "Int",
    SortKind.REAL: "Real",
    SortKind.STRING: "String",
}


def split_sexprs(text: str) -> List[str]:
    """Split a parenthesized list `(a (b c) d)` into its top-level elements."""
    s = text.strip()
    if not (s.startswith("(") and s.endswith(")")):
        raise ValueError(f"not a list: {text!r}")
    s = s[1:-1]
    items: List[str] = []
    depth = 0
    cur: List[str] = []
    in_str = False
    for ch in s:
        if ch == '"':
            in_str = not in_str
        if not in_str:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
            elif ch.isspace() and depth == 0:
                if cur:
                    items.append("".join(cur))
                    cur = []
                continue
        cur.append(ch)
    if cur:
        items.append("".join(cur))
    return items


def _paren_balance(text: str) -> int:
    bal = 0
    in_str = False
    for ch in text:
        if ch == '"':
            in_str = not in_str
        elif not in_str:
            if ch == "(":
                bal += 1
            elif ch == ")":
                bal -= 1
    return bal


class Smt2Solver:
    """Backend that speaks SMT-LIBv2 text."""

    def __init__(self, out: Optional[TextIO] = None, online_cmd: Optional[str] = None):
        self._out = out
        self._online_cmd = online_cmd
        self._proc: Optional[subprocess.Popen] = None
        self._initialized = False
        self._logic_set = False
        self._options: Dict[str, str] = {}
        # sort text -> (kind, params); params hold sort texts for ARRAY/FUN
        self._sort_info: Dict[str, Tuple[SortKind, Tuple[Any, ...]]] = {}
        self._term_sorts: Dict[str, str] = {}

    def get_name(self) -> str:
        return "smt2"

    @property
    def online(self) -> bool:
        return self._online_cmd is not None

    def new(self) -> None:
        if self._initialized:
            raise SolverError("smt2 solver already initialized")
        self._initialized = True
        self._logic_set = False
        self._options = {}
        if self._online_cmd is not None:
            argv = shlex.split(self._online_cmd)
            log.debug("starting online solver: %s", argv)
            try:
                self._proc = subprocess.Popen(
                    argv,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    text=True,
                    bufsize=1,
                )
            except OSError as e:
                raise SolverError(f"cannot start solver '{self._online_cmd}': {e}") from e
            self._send("(set-option :print-success true)")
        self._send("(set-option :global-declarations true)")

    def delete(self) -> None:
        if not self._initialized:
            return
        self._dump("(exit)")
        if self._proc is not None:
            try:
                self._proc.stdin.write("(exit)\n")
                self._proc.stdin.flush()
            except (BrokenPipeError, OSError) as e:
                log.debug("solver already gone: %s", e)
            try:
                self._proc.stdin.close()
            except (BrokenPipeError, OSError) as e:
                log.debug("closing solver input: %s", e)
            self._proc.wait()
            self._proc.stdout.close()
            self._proc = None
        self._initialized = False
        self._sort_info.clear()
        self._term_sorts.clear()

    def is_initialized(self) -> bool:
        return self._initialized

    def supported_theories(self) -> Set[Theory]:
        return set(SUPPORTED_THEORIES)

    def get_option_model(self) -> SolverOptions:
        return SolverOptions([
            SolverOptionBool("produce-models"),
            SolverOptionBool("produce-unsat-cores"),
            SolverOptionBool("produce-unsat-assumptions"),
            SolverOptionBool("produce-assignments"),
            SolverOptionBool("produce-proofs", conflicts=["produce-unsat-cores"]),
            SolverOptionInt("random-seed", min=0, max=1000),
            SolverOptionInt("reproducible-resource-limit", min=0, max=100000),
        ])

    def set_opt(self, name: str, value: str) -> None:
        self._check_init()
        self._send(f"(set-option :{name} {value})")
        self._options[name] = value

    def models_enabled(self) -> bool:
        return self._options.get("produce-models") == "true"

    # -- sorts and terms ---------------------------------------------------

    def mk_sort(self, kind: SortKind, params: Sequence[Any]) -> str:
        self._check_init()
        params = tuple(params)
        if kind in _PARAMLESS:
            text = _PARAMLESS[kind]
        elif kind == SortKind.BV:
            text = f"(_ BitVec {params[0]})"
        elif kind == SortKind.FP:
            text = f"(_ FloatingPoint {params[0]} {params[1]})"
        elif kind == SortKind.ARRAY:
            text = f"(Array {params[0]} {params[1]})"
        elif kind == SortKind.FUN:
            text = f"(-> {' '.join(params)})"
        else:
            raise SolverError(f"smt2: unsupported sort kind {kind.value}")
        self._sort_info[text] = (kind, params)
        return text

    def mk_const(self, sort: str, name: str) -> str:
        self._check_init()
        self._set_logic()
        kind, params = self._sort_info[sort]
        if kind == SortKind.FUN:
            domain = " ".join(params[:-1])
            self._send(f"(declare-fun {name} ({domain}) {params[-1]})")
        else:
            self._send(f"(declare-const {name} {sort})")
        self._term_sorts[name] = sort
        return name

    def mk_var(self, sort: str, name: str) -> str:
        # Declared globally so free occurrences stay well-formed; a
        # quantifier binding the same symbol shadows the declaration.
        return self.mk_const(sort, name)

    def mk_value(self, sort: str, kind: SortKind, literal: str) -> str:
        self._check_init()
        if kind in (SortKind.BOOL, SortKind.BV, SortKind.STRING):
            text = literal
        elif kind in (SortKind.INT, SortKind.REAL):
            neg = literal.startswith("-")
            mag = literal[1:] if neg else literal
            if "/" in mag:
                num, den = mag.split("/", 1)
                mag = f"(/ {num} {den})" if kind == SortKind.REAL else mag
            elif kind == SortKind.REAL and "." not in mag:
                mag = f"{mag}.0"
            text = f"(- {mag})" if neg else mag
        elif kind == SortKind.FP:
            _, (eb, sb) = self._sort_info[sort]
            neg = literal.startswith("-")
            mag = literal[1:] if neg else literal
            num = f"(- {mag})" if neg else mag
            text = f"((_ to_fp {eb} {sb}) RNE {num})"
        else:
            raise SolverError(f"smt2: cannot create values of sort kind {kind.value}")
        self._term_sorts[text] = sort
        return text

    def mk_term(self, op: str, args: Sequence[str], indices: Sequence[int]) -> str:
        self._check_init()
        try:
            sym = get_op(op).smt2
        except KeyError:
            raise SolverError(f"smt2: unsupported operator '{op}'") from None
        args = list(args)
        if op == "apply":
            text = f"({' '.join(args)})"
        elif op in ("forall", "exists"):
            var = args[0]
            text = f"({sym} (({var} {self._term_sorts[var]})) {args[1]})"
        elif indices:
            idx = " ".join(str(i) for i in indices)
            text = f"((_ {sym} {idx}) {' '.join(args)})"
        elif op in FP_ROUNDING_OPS:
            text = f"({sym} RNE {' '.join(args)})"
        else:
            text = f"({sym} {' '.join(args)})"
        self._term_sorts[text] = self._result_sort(op, args, list(indices))
        return text

    def get_sort(self, term: str) -> str:
        try:
            return self._term_sorts[term]
        except KeyError:
            raise SolverError(f"smt2: unknown term {term}") from None

    def _bv_width(self, term: str) -> int:
        kind, params = self._sort_info[self._term_sorts[term]]
        return params[0]

    def _result_sort(self, op: str, args: List[str], indices: List[int]) -> str:
        o = get_op(op)
        if o.result is not None:
            return self.mk_sort(o.result, ())
        if op == "ite":
            return self._term_sorts[args[1]]
        if op == "concat":
            return self.mk_sort(SortKind.BV, (self._bv_width(args[0]) + self._bv_width(args[1]),))
        if op == "extract":
            return self.mk_sort(SortKind.BV, (indices[0] - indices[1] + 1,))
        if op in ("zero_extend", "sign_extend"):
            return self.mk_sort(SortKind.BV, (self._bv_width(args[0]) + indices[0],))
        if op == "repeat":
            return self.mk_sort(SortKind.BV, (self._bv_width(args[0]) * indices[0],))
        if op == "select":
            _, (_, element) = self._sort_info[self._term_sorts[args[0]]]
            return element
        if op == "apply":
            _, params = self._sort_info[self._term_sorts[args[0]]]
            return params[-1]
        return self._term_sorts[args[0]]

    # -- commands ----------------------------------------------------------

    def assert_formula(self, term: str) -> None:
        self._check_init()
        self._set_logic()
        self._send(f"(assert {term})")

    def check_sat(self) -> SolverResult:
        self._check_init()
        self._set_logic()
        return self._sat_result(self._send("(check-sat)", expect=None))

    def check_sat_assuming(self, assumptions: Sequence[str]) -> SolverResult:
        self._check_init()
        self._set_logic()
        resp = self._send(f"(check-sat-assuming ({' '.join(assumptions)}))", expect=None)
        return self._sat_result(resp)

    def get_value(self, terms: Sequence[str]) -> List[str]:
        self._check_init()
        resp = self._send(f"(get-value ({' '.join(terms)}))", expect=None)
        if resp is None:
            return []
        return [split_sexprs(pair)[-1] for pair in split_sexprs(resp)]

    def push(self, n_levels: int) -> None:
        self._check_init()
        self._set_logic()
        self._send(f"(push {n_levels})")

    def pop(self, n_levels: int) -> None:
        self._check_init()
        self._send(f"(pop {n_levels})")

    def reset_assertions(self) -> None:
        self._check_init()
        self._send("(reset-assertions)")

    # -- i/o ---------------------------------------------------------------

    def _set_logic(self) -> None:
        if not self._logic_set:
            self._logic_set = True
            self._send("(set-logic ALL)")

    def _dump(self, cmd: str) -> None:
        if self._out is not None:
            self._out.write(cmd + "\n")
            self._out.flush()

    def _send(self, cmd: str, expect: Optional[str] = "success") -> Optional[str]:
        self._dump(cmd)
        if self._proc is None:
            return None
        try:
            self._proc.stdin.write(cmd + "\n")
            self._proc.stdin.flush()
        except (BrokenPipeError, OSError) as e:
            raise SolverError(f"solver terminated unexpectedly on '{cmd}'") from e
        resp = self._read_response(cmd)
        if resp.startswith("(error"):
            raise SolverError(f"solver error on '{cmd}': {resp}")
        if expect is not None and resp != expect:
            raise SolverError(f"unexpected solver response on '{cmd}': {resp}")
        return resp

    def _read_response(self, cmd: str) -> str:
        lines: List[str] = []
        while True:
            line = self._proc.stdout.readline()
            if not line:
                code = self._proc.wait()
                raise SolverError(
                    f"solver terminated unexpectedly on '{cmd}' (exit code {code})")
            if not line.strip() and not lines:
                continue
            lines.append(line.strip())
            text = " ".join(lines)
            if _paren_balance(text) <= 0:
                return text

    def _sat_result(self, resp: Optional[str]) -> SolverResult:
        if resp is None:
            return SolverResult.UNKNOWN
        try:
            return SolverResult(resp)
        except ValueError:
            raise SolverError(f"unexpected check-sat response: {resp}") from None

    def _check_init(self) -> None:
        if not self._initialized:
            raise SolverError("smt2 solver not initialized")


class Smt2SolverManager(SolverManager):
    """Solver manager for the SMT-LIBv2 backend; handles are SMT-LIB text."""

    def __init__(self, rng: RNGenerator, enabled_theories: Iterable[Theory], linear: bool = False):
        super().__init__(rng, enabled_theories, term_hash=str, sort_hash=str, linear=linear)

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
