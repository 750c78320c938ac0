"""Replay of recorded API traces.

Replay is literal: every action is re-issued with the arguments recorded in
the trace and no random draws are made. Sort and term ids in the trace are
mapped to the ids the registry assigns during replay, which is what lets the
delta debugger drop lines without renumbering the rest of the trace.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Tuple

from ..exceptions import TraceError
from ..solver_manager import parse_id
from .tracer import RETURN_KIND, Trace, TraceLine, parse_trace, read_trace

if TYPE_CHECKING:
    from ..fsm.fsm import FSM

log = logging.getLogger(__name__)


class TracePlayer:
    """Re-issues the actions of a trace through an FSM's actions."""

    def __init__(self, fsm: "FSM"):
        self._fsm = fsm
        self._sorts: Dict[int, int] = {}
        self._terms: Dict[int, int] = {}
        self._line_no = 0

    # -- id translation used by Action.parse ------------------------------

    def sort_index(self, token: str) -> int:
        try:
            idx = parse_id(token, "s")
        except ValueError as e:
            raise TraceError(str(e), self._line_no) from None
        if idx not in self._sorts:
            raise TraceError(f"unknown sort id '{token}'", self._line_no)
        return self._sorts[idx]

    def term_index(self, token: str) -> int:
        try:
            idx = parse_id(token, "t")
        except ValueError as e:
            raise TraceError(str(e), self._line_no) from None
        if idx not in self._terms:
            raise TraceError(f"unknown term id '{token}'", self._line_no)
        return self._terms[idx]

    def parse_int(self, token: str) -> int:
        try:
            return int(token)
        except ValueError:
            raise TraceError(f"expected integer, got '{token}'", self._line_no) from None

    def fail(self, msg: str) -> TraceError:
        return TraceError(msg, self._line_no)

    # -- replay ------------------------------------------------------------

    def play_file(self, path: str | Path) -> Trace:
        trace = read_trace(path)
        self.play(trace)
        return trace

    def play_lines(self, lines: Iterable[str]) -> Trace:
        trace = parse_trace(lines)
        self.play(trace)
        return trace

    def play(self, trace: Trace) -> None:
        """Replay `trace`; raises TraceError on malformed or invalid lines."""
        self._fsm.begin_replay(trace.seed)
        lines = trace.lines
        i = 0
        while i < len(lines):
            line = lines[i]
            self._line_no = line.line_no
            if line.kind == RETURN_KIND:
                raise TraceError("'return' without preceding action", line.line_no)
            action = self._fsm.get_action(line.kind)
            if action is None:
                raise TraceError(f"unknown action '{line.kind}'", line.line_no)
            try:
                args = action.parse(self, line.tokens)
            except IndexError:
                raise TraceError(
                    f"missing arguments for '{line.kind}'", line.line_no) from None
            log.debug("untrace: %s", line.text())
            created = self._fsm.replay_action(action, args)
            i += 1
            if created:
                if i >= len(lines) or lines[i].kind != RETURN_KIND:
                    raise TraceError(f"expected 'return' after '{line.kind}'", line.line_no)
                self._map_return(lines[i], created)
                i += 1

    def _map_return(self, ret: TraceLine, created: List[Tuple[str, int]]) -> None:
        if len(ret.tokens) != len(created):
            raise TraceError(
                f"'return' lists {len(ret.tokens)} ids, action created {len(created)}",
                ret.line_no)
        for token, (prefix, live) in zip(ret.tokens, created):
            try:
                idx = parse_id(token, prefix)
            except ValueError as e:
                raise TraceError(str(e), ret.line_no) from None
            if prefix == "s":
                self._sorts[idx] = live
            else:
                self._terms[idx] = live
