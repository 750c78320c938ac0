"""
Weighted finite state machine that drives a test run.

Each state holds weighted transitions (action, weight, next state). At each
step the legal transitions of the current state are those whose action is
enabled; one is picked proportionally to its weight, executed, and the
machine moves to the transition's next state.
"""
from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TextIO, Tuple

from ..exceptions import SmtFuzzError
from ..op import enabled_ops
from ..rng import RNGenerator
from ..solver_manager import SolverManager
from ..theory import SortKind
from ..trace.player import TracePlayer
from ..trace.tracer import Tracer
from .actions import (
    Action,
    AssertFormula,
    CheckSat,
    CheckSatAssuming,
    Created,
    Delete,
    GetValue,
    MkConst,
    MkSort,
    MkTerm,
    MkValue,
    MkVar,
    New,
    Pop,
    Push,
    ResetAssertions,
    SetOption,
    Transition,
)

log = logging.getLogger(__name__)

S_NEW = "new"
S_OPT = "opt"
S_SORTS = "sorts"
S_INPUTS = "inputs"
S_TERMS = "terms"
S_ASSERT = "assert"
S_CHECK_SAT = "check_sat"
S_MODEL = "model"
S_PUSH_POP = "push_pop"
S_DELETE = "delete"
S_FINAL = "final"


@dataclass
class State:
    """An FSM state and its outgoing weighted transitions."""

    name: str
    final: bool = False
    transitions: List[Tuple[Action, int, Optional["State"]]] = field(default_factory=list)

    def add_action(self, action: Action, weight: int, next_state: Optional["State"] = None) -> None:
        if weight <= 0:
            raise ValueError(f"weight of '{action.kind}' in state '{self.name}' must be positive")
        self.transitions.append((action, weight, next_state))

    def legal(self) -> List[Tuple[Action, int, Optional["State"]]]:
        return [t for t in self.transitions if t[0].enabled()]


class FSM:
    """Drives one solver instance through a random (or replayed) API sequence.

    Args:
        rng: Random source for all decisions
        solver: Solver backend
        smgr: Registry bound to the backend
        tracer: Destination of the API trace
        max_actions: Upper bound on traced actions (0 = unbounded); the
            terminal delete counts towards the bound
        time_limit: Wall clock bound in seconds (0 = unbounded)
        stats: Optional statistics sink
    """

    def __init__(self,
                 rng: RNGenerator,
                 solver: Any,
                 smgr: SolverManager,
                 tracer: Tracer,
                 max_actions: int = 0,
                 time_limit: float = 0.0,
                 stats: Any = None):
        if max_actions and max_actions < 2:
            raise ValueError("max_actions must allow at least 'new' and 'delete'")
        self.rng = rng
        self.solver = solver
        self.smgr = smgr
        self.tracer = tracer
        self.max_actions = max_actions
        self.time_limit = time_limit
        self.stats = stats
        self.n_actions = 0

        smgr.set_solver(solver)
        self.option_model = solver.get_option_model()
        self.ops = enabled_ops(smgr.enabled_theories, smgr.linear)

        self._actions: Dict[str, Action] = {}
        self._states: Dict[str, State] = {}
        self.configure()

    # -- construction ------------------------------------------------------

    def new_action(self, cls: type, *args: Any) -> Action:
        action = cls(self, *args)
        if action.traced:
            self._actions.setdefault(action.kind, action)
        return action

    def new_state(self, name: str, final: bool = False) -> State:
        if name in self._states:
            raise ValueError(f"duplicate state '{name}'")
        state = State(name, final)
        self._states[name] = state
        return state

    def transition(self, precondition: Optional[Callable[[], bool]] = None) -> Action:
        return self.new_action(Transition, precondition)

    def configure(self) -> None:
        """Build the states and weighted transitions."""
        smgr = self.smgr

        new = self.new_state(S_NEW)
        opt = self.new_state(S_OPT)
        sorts = self.new_state(S_SORTS)
        inputs = self.new_state(S_INPUTS)
        terms = self.new_state(S_TERMS)
        assrt = self.new_state(S_ASSERT)
        check_sat = self.new_state(S_CHECK_SAT)
        model = self.new_state(S_MODEL)
        push_pop = self.new_state(S_PUSH_POP)
        delete = self.new_state(S_DELETE)
        final = self.new_state(S_FINAL, final=True)

        a_new = self.new_action(New)
        a_delete = self.new_action(Delete)
        a_set_option = self.new_action(SetOption)
        a_mk_sort = self.new_action(MkSort)
        a_mk_const = self.new_action(MkConst)
        a_mk_var = self.new_action(MkVar)
        a_mk_value = self.new_action(MkValue)
        a_mk_term = self.new_action(MkTerm)
        a_assert = self.new_action(AssertFormula)
        a_check_sat = self.new_action(CheckSat)
        a_check_sat_assuming = self.new_action(CheckSatAssuming)
        a_get_value = self.new_action(GetValue)
        a_push = self.new_action(Push)
        a_pop = self.new_action(Pop)
        a_reset = self.new_action(ResetAssertions)

        new.add_action(a_new, 1, opt)

        opt.add_action(a_set_option, 10, opt)
        opt.add_action(self.transition(), 2, sorts)

        sorts.add_action(a_mk_sort, 10, sorts)
        sorts.add_action(self.transition(smgr.has_sort), 2, inputs)

        inputs.add_action(a_mk_sort, 1, sorts)
        inputs.add_action(a_mk_const, 10, inputs)
        inputs.add_action(a_mk_value, 5, inputs)
        inputs.add_action(a_mk_var, 2, inputs)
        inputs.add_action(self.transition(smgr.has_term), 2, terms)

        terms.add_action(a_mk_term, 20, terms)
        terms.add_action(a_mk_const, 2, terms)
        terms.add_action(a_mk_value, 1, terms)
        terms.add_action(
            self.transition(lambda: smgr.has_term(kinds=[SortKind.BOOL])), 2, assrt)
        terms.add_action(self.transition(), 1, push_pop)

        assrt.add_action(a_assert, 10, assrt)
        assrt.add_action(self.transition(), 2, check_sat)
        assrt.add_action(self.transition(), 1, terms)

        check_sat.add_action(a_check_sat, 10, model)
        check_sat.add_action(a_check_sat_assuming, 3, model)
        check_sat.add_action(self.transition(), 1, terms)

        model.add_action(a_get_value, 10, model)
        model.add_action(self.transition(), 3, terms)
        model.add_action(self.transition(), 1, push_pop)
        model.add_action(self.transition(), 1, delete)

        push_pop.add_action(a_push, 5, terms)
        push_pop.add_action(a_pop, 5, terms)
        push_pop.add_action(a_reset, 1, terms)

        delete.add_action(a_delete, 1, final)

    # -- queries -----------------------------------------------------------

    def get_action(self, kind: str) -> Optional[Action]:
        return self._actions.get(kind)

    def get_state(self, name: str) -> State:
        return self._states[name]

    @property
    def states(self) -> List[State]:
        return list(self._states.values())

    # -- execution ---------------------------------------------------------

    def _execute(self, action: Action, fn: Callable[[], Created]) -> Created:
        created = fn()
        self.n_actions += 1
        if self.stats is not None:
            self.stats.inc_action(action.kind)
        return created

    def _limit_reached(self, deadline: Optional[float]) -> bool:
        # Reserve one action for the terminal delete.
        if self.max_actions and self.n_actions >= self.max_actions - 1:
            return True
        return deadline is not None and time.monotonic() >= deadline

    def run(self) -> None:
        """Run the machine from 'new' to 'final'."""
        deadline = time.monotonic() + self.time_limit if self.time_limit > 0 else None
        self.tracer.trace_seed(self.rng.seed)
        state = self._states[S_NEW]
        while not state.final:
            if state.name not in (S_NEW, S_DELETE) and self._limit_reached(deadline):
                log.debug("limit reached after %d actions", self.n_actions)
                state = self._states[S_DELETE if self.solver.is_initialized() else S_FINAL]
                continue
            legal = state.legal()
            if not legal:
                fallback = self._states[S_CHECK_SAT if self.solver.is_initialized() else S_FINAL]
                if fallback is state:
                    raise SmtFuzzError(f"no legal transition in state '{state.name}'")
                log.debug("no legal transition in state '%s', moving to '%s'",
                          state.name, fallback.name)
                state = fallback
                continue
            action, _, next_state = self.rng.pick_weighted(legal, [w for _, w, _ in legal])
            if action.traced:
                self._execute(action, action.generate)
            else:
                action.generate()
            if next_state is not None:
                state = next_state
        log.debug("run finished after %d actions", self.n_actions)

    def begin_replay(self, seed: int) -> None:
        self.tracer.trace_seed(seed)

    def replay_action(self, action: Action, args: Tuple[Any, ...]) -> Created:
        return self._execute(action, lambda: action.run(*args))

    def untrace(self, path: str) -> None:
        """Replay the API trace stored at `path`."""
        TracePlayer(self).play_file(path)

    def print_fsm(self, out: TextIO = sys.stdout) -> None:
        out.write("theories: %s\n" % " ".join(
            sorted(t.value for t in self.smgr.enabled_theories)))
        out.write("operators: %s\n" % " ".join(op.kind for op in self.ops))
        for state in self._states.values():
            out.write(f"state {state.name}{' (final)' if state.final else ''}\n")
            for action, weight, next_state in state.transitions:
                target = next_state.name if next_state is not None else state.name
                out.write(f"  {action.kind:<20} weight {weight:>3} -> {target}\n")
