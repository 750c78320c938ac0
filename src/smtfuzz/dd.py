"""
Delta debugging of failing traces.

A trace is reduced action by action (an action line together with its
`return` line) with ddmin: the trace is split into n chunks, removing a chunk
is kept whenever the reduced trace still fails the same way, and n grows up to
the number of remaining actions. The result is 1-minimal: no single action
can be removed without losing the failure.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from .exceptions import DeltaDebugError
from .run.errors import normalize_error
from .run.fuzzer import Fuzzer, RunOutcome, RunResult
from .trace.tracer import Trace, TraceLine, read_trace

log = logging.getLogger(__name__)

Unit = List[TraceLine]


def split_chunks(length: int, n: int) -> List[Tuple[int, int]]:
    """Split [0..length) into n contiguous ranges, returning [(start,end),...]."""
    if length == 0:
        return []
    n = max(1, min(n, length))
    base, rem = divmod(length, n)
    chunks = []
    start = 0
    for i in range(n):
        end = start + base + (1 if i < rem else 0)
        chunks.append((start, end))
        start = end
    return chunks


def ddmin(items: Sequence, test: Callable[[list], bool]) -> list:
    """Zeller-style ddmin for ordered lists; `items` must fail `test`."""
    n = 2
    current = list(items)
    while len(current) >= 2:
        reduced = False
        for start, end in split_chunks(len(current), n):
            candidate = current[:start] + current[end:]
            if test(candidate):
                current = candidate
                n = max(2, n - 1)
                reduced = True
                break
        if reduced:
            continue
        if n >= len(current):
            break
        n = min(len(current), n * 2)
    return current


class DeltaDebugger:
    """Minimizes failing traces, using a Fuzzer's forked runs as the oracle."""

    def __init__(self, fuzzer: Fuzzer):
        self.fuzzer = fuzzer
        self.n_tests = 0
        self._seed = 0
        self._golden: Optional[RunOutcome] = None
        self._match_out: Optional[str] = None
        self._match_err: Optional[str] = None
        self._ignore_out = False
        self._ignore_err = False
        self._candidate: Optional[Path] = None

    def run(self,
            seed: Optional[int],
            untrace_file: str,
            out_file: Optional[str] = None,
            match_out: Optional[str] = None,
            match_err: Optional[str] = None,
            ignore_out: bool = False,
            ignore_err: bool = False) -> Path:
        """Minimize `untrace_file` and write the result to `out_file`.

        Args:
            seed: Seed the trace was generated with (default: the trace's)
            untrace_file: Failing trace
            out_file: Destination (default: smtfuzz-dd-<input name> in the
                output directory)
            match_out: Substring stdout must contain for a reduction to count
            match_err: Substring stderr must contain for a reduction to count
            ignore_out: Do not compare stdout against the original failure
            ignore_err: Do not compare stderr against the original failure

        Returns:
            Path of the minimized trace

        Raises:
            DeltaDebugError: The input trace does not fail as required
        """
        trace = read_trace(untrace_file)
        self._seed = trace.seed if seed is None else seed
        self._match_out = match_out
        self._match_err = match_err
        self._ignore_out = ignore_out
        self._ignore_err = ignore_err
        if out_file is None:
            out_path = self.fuzzer.out_dir / f"smtfuzz-dd-{Path(untrace_file).name}"
        else:
            out_path = Path(out_file)
        self._candidate = self.fuzzer.tmp_dir / "dd-candidate.trace"

        log.info("golden run of %s", untrace_file)
        self._golden = None
        golden = self._run(trace)
        if golden.result == RunResult.OK:
            raise DeltaDebugError(f"'{untrace_file}' does not fail")
        if golden.result == RunResult.ERROR_CONFIG:
            raise DeltaDebugError(f"'{untrace_file}' fails with a configuration error")
        self._golden = golden
        if not self._reproduces(golden):
            raise DeltaDebugError(
                f"output of '{untrace_file}' does not contain the expected strings")

        units = trace.actions()
        n_lines = len(trace.lines)
        self._write(trace, out_path)

        def test(candidate: List[Unit]) -> bool:
            reduced = _to_trace(trace.seed, candidate)
            if not self._reproduces(self._run(reduced)):
                return False
            self._write(reduced, out_path)
            log.info("reduced to %d actions", len(candidate))
            return True

        result = ddmin(units, test)
        n_result = sum(len(u) for u in result)
        print(f"delta debugging: {n_lines} -> {n_result} lines in {self.n_tests} tests, "
              f"written to {out_path}")
        return out_path

    def _run(self, trace: Trace) -> RunOutcome:
        self.n_tests += 1
        self._candidate.write_text(trace.format_trace(), encoding="utf-8")
        return self.fuzzer.run(self._seed, untrace_file=str(self._candidate))

    def _reproduces(self, outcome: RunOutcome) -> bool:
        if self._match_out is not None or self._match_err is not None:
            if self._match_out is not None and self._match_out not in outcome.stdout:
                return False
            if self._match_err is not None and self._match_err not in outcome.stderr:
                return False
            return outcome.result != RunResult.OK
        golden = self._golden
        if golden is None:
            return True
        if outcome.result != golden.result:
            return False
        if not self._ignore_out and self._norm(outcome.stdout) != self._norm(golden.stdout):
            return False
        if not self._ignore_err and self._norm(outcome.stderr) != self._norm(golden.stderr):
            return False
        return outcome.returncode == golden.returncode

    def _norm(self, text: str) -> str:
        return normalize_error(text, self._seed, self.fuzzer.tmp_dir)

    @staticmethod
    def _write(trace: Trace, path: Path) -> None:
        tmp = path.with_name(path.name + ".tmp")
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(trace.format_trace(), encoding="utf-8")
        os.replace(tmp, path)


def _to_trace(seed: int, units: Sequence[Unit]) -> Trace:
    return Trace(seed, [line for unit in units for line in unit])
