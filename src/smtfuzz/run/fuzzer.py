"""Run orchestration.

A run executes one FSM session (or one trace replay) either directly in this
process or in a worker subprocess (`python -m smtfuzz --worker ...`) whose
stdout/stderr are captured to files and which is killed when it exceeds its
wall clock budget.
"""

from __future__ import annotations

import logging
import os
import random
import shutil
import signal
import subprocess
import sys
import tempfile
import threading
import time
from contextlib import ExitStack
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, TextIO

from ..config import STDOUT, Options
from ..exceptions import ConfigError, DeltaDebugError
from ..fsm import FSM
from ..rng import RNGenerator
from ..solver import create_backend
from ..trace.tracer import Tracer
from .errors import ErrorMap, normalize_error
from .statistics import Statistics, StatisticsFile

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_ERROR_CONFIG = 2

# Worker budget when no per-run time limit is set.
DEFAULT_RUN_TIMEOUT = 30.0
# Time a worker gets on top of the time limit to shut down cleanly.
KILL_GRACE = 2.0

# Directory that holds the smtfuzz package; workers import from it.
_PACKAGE_ROOT = Path(__file__).resolve().parents[2]


class RunResult(Enum):
    OK = "ok"
    ERROR = "error"
    ERROR_CONFIG = "config error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class RunOutcome:
    """Outcome of one run."""
    result: RunResult
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    time_ms: float = 0.0

    @property
    def signal_name(self) -> Optional[str]:
        if self.returncode >= 0 or self.result == RunResult.TIMEOUT:
            return None
        try:
            return signal.Signals(-self.returncode).name
        except ValueError:
            return f"signal {-self.returncode}"

    def error_text(self) -> str:
        """Error message of a failed run: the signal (if any) plus stderr.

        Falls back to stdout if nothing was written to stderr.
        """
        parts = []
        if self.signal_name is not None:
            parts.append(f"terminated by {self.signal_name}")
        if self.stderr.strip():
            parts.append(self.stderr.strip())
        elif self.stdout.strip():
            parts.append(self.stdout.strip())
        elif not parts:
            parts.append(f"exit code {self.returncode}")
        return "\n".join(parts)


def classify(returncode: int) -> RunResult:
    if returncode == EXIT_OK:
        return RunResult.OK
    if returncode == EXIT_ERROR_CONFIG:
        return RunResult.ERROR_CONFIG
    return RunResult.ERROR


class Fuzzer:
    """Runs sessions, collects errors and owns the temporary directory."""

    def __init__(self, options: Options):
        self.options = options
        self.errors = ErrorMap()
        self.out_dir = Path(options.out_dir) if options.out_dir else Path.cwd()
        self._tmp_dir: Optional[Path] = None
        self._stats_file: Optional[StatisticsFile] = None
        self.n_runs = 0

    # -- resources ---------------------------------------------------------

    @property
    def tmp_dir(self) -> Path:
        if self._tmp_dir is None:
            base = self.options.tmp_dir
            if base is not None:
                Path(base).mkdir(parents=True, exist_ok=True)
            self._tmp_dir = Path(tempfile.mkdtemp(prefix="smtfuzz-", dir=base))
            log.debug("temporary directory: %s", self._tmp_dir)
        return self._tmp_dir

    def _statistics_file(self) -> StatisticsFile:
        if self._stats_file is None:
            if self.options.stats_file is not None:
                self._stats_file = StatisticsFile.open(self.options.stats_file)
            else:
                self._stats_file = StatisticsFile.create(self.tmp_dir / "stats")
        return self._stats_file

    @property
    def stats(self) -> Statistics:
        return self._statistics_file().stats

    @property
    def stats_path(self) -> Path:
        return self._statistics_file().path

    def cleanup(self) -> None:
        """Release the statistics mapping and remove the temporary directory."""
        if self._stats_file is not None:
            self._stats_file.close()
            self._stats_file = None
        if self._tmp_dir is not None:
            shutil.rmtree(self._tmp_dir, ignore_errors=True)
            self._tmp_dir = None

    # -- single runs -------------------------------------------------------

    def run_session(self,
                    seed: int,
                    untrace_file: Optional[str] = None,
                    trace_file: Optional[str] = None) -> None:
        """Run one session in this process. Errors propagate."""
        opts = self.options
        with ExitStack() as stack:
            trace_out = _open_output(stack, trace_file)
            smt2_out = None
            if opts.solver == "smt2":
                smt2_file = opts.smt2_file
                if smt2_file is None and opts.smt2_online is None:
                    smt2_file = STDOUT
                smt2_out = _open_output(stack, smt2_file)
            rng = RNGenerator(seed)
            solver, smgr = create_backend(
                opts.solver, rng, opts.enabled_theories(),
                uf=opts.uf, linear=opts.linear,
                smt2_out=smt2_out, smt2_online_cmd=opts.smt2_online)
            fsm = FSM(rng, solver, smgr, Tracer(trace_out),
                      max_actions=opts.max_actions,
                      time_limit=opts.time,
                      stats=self.stats)
            try:
                if untrace_file is not None:
                    log.info("replaying %s", untrace_file)
                    fsm.untrace(untrace_file)
                else:
                    log.info("running seed %d", seed)
                    fsm.run()
            finally:
                if solver.is_initialized():
                    solver.delete()

    def worker_args(self,
                    seed: int,
                    untrace_file: Optional[str] = None,
                    trace_file: Optional[str] = None) -> List[str]:
        """Command line of a worker process replicating this configuration."""
        opts = self.options
        argv = [sys.executable, "-m", "smtfuzz", "--worker", "--seed", str(seed)]
        if opts.solver == "smt2":
            argv.append("--smt2")
            if opts.smt2_file is not None:
                argv.append(opts.smt2_file)
            if opts.smt2_online is not None:
                argv.extend(["--smt2-online", opts.smt2_online])
        else:
            argv.append(f"--{opts.solver}")
        for theory in opts.theories:
            argv.extend(["--theory", theory])
        if opts.linear:
            argv.append("--linear")
        if opts.uf:
            argv.append("--uf")
        if opts.max_actions:
            argv.extend(["--max-actions", str(opts.max_actions)])
        if opts.time:
            argv.extend(["--time", str(opts.time)])
        if trace_file is not None:
            argv.extend(["--trace", trace_file])
        if untrace_file is not None:
            argv.extend(["--untrace", untrace_file])
        argv.extend(["--stats-file", str(self.stats_path)])
        return argv

    def run(self,
            seed: int,
            untrace_file: Optional[str] = None,
            trace_file: Optional[str] = None,
            run_forked: bool = True) -> RunOutcome:
        """Execute one run.

        Args:
            seed: Seed of the run (ignored when replaying)
            untrace_file: Trace to replay instead of generating actions
            trace_file: Where to record the trace
            run_forked: Isolate the run in a worker process

        Returns:
            RunOutcome of the run; in direct mode errors propagate instead
        """
        self.n_runs += 1
        t0 = time.monotonic()
        if not run_forked:
            self.run_session(seed, untrace_file, trace_file)
            self.stats.runs += 1
            return RunOutcome(RunResult.OK, time_ms=(time.monotonic() - t0) * 1000.0)

        argv = self.worker_args(seed, untrace_file, trace_file)
        timeout = self.options.time + KILL_GRACE if self.options.time > 0 else DEFAULT_RUN_TIMEOUT
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(
            p for p in (str(_PACKAGE_ROOT), env.get("PYTHONPATH")) if p)
        out_path = self.tmp_dir / "run.out"
        err_path = self.tmp_dir / "run.err"
        log.debug("worker: %s", " ".join(argv))
        with open(out_path, "w") as out, open(err_path, "w") as err:
            # A session of its own, so that a timeout also reaches the
            # solver processes the worker started.
            p = subprocess.Popen(argv, stdout=out, stderr=err, stdin=subprocess.DEVNULL,
                                 env=env, start_new_session=True)
            try:
                returncode = p.wait(timeout=timeout)
                result = classify(returncode)
            except subprocess.TimeoutExpired:
                _kill_group(p)
                returncode = -signal.SIGKILL
                result = RunResult.TIMEOUT
            except BaseException:
                _kill_group(p)
                raise
        dt_ms = (time.monotonic() - t0) * 1000.0

        stats = self.stats
        stats.runs += 1
        if result == RunResult.TIMEOUT:
            stats.timeouts += 1
        elif result == RunResult.ERROR:
            stats.errors += 1
        return RunOutcome(
            result=result,
            stdout=out_path.read_text(errors="replace"),
            stderr=err_path.read_text(errors="replace"),
            returncode=returncode,
            time_ms=dt_ms,
        )

    def signature(self, outcome: RunOutcome, seed: int) -> str:
        return normalize_error(outcome.error_text(), seed, self.tmp_dir)

    # -- continuous mode ---------------------------------------------------

    def report(self, seed: int, outcome: RunOutcome, trace_path: Path) -> Optional[Path]:
        """Record a failed run; returns the saved trace if the error is new."""
        if outcome.result == RunResult.OK:
            return None
        if outcome.result == RunResult.ERROR_CONFIG:
            raise ConfigError(f"worker rejected the configuration: {outcome.stderr.strip()}")
        if outcome.result == RunResult.TIMEOUT:
            log.info("seed %d: timeout after %.0f ms", seed, outcome.time_ms)
            return None
        if not self.errors.add(outcome.error_text(), seed, self.tmp_dir):
            log.info("seed %d: known error", seed)
            return None
        self.out_dir.mkdir(parents=True, exist_ok=True)
        dest = self.out_dir / f"smtfuzz-{seed}.trace"
        shutil.copy(trace_path, dest)
        print(f"seed {seed}: new error, trace written to {dest}")
        return dest

    def test(self) -> int:
        """Fuzz continuously until --max-runs is reached or interrupted."""
        opts = self.options
        entropy = random.SystemRandom()
        trace_path = self.tmp_dir / "run.trace"
        previous = None
        if threading.current_thread() is threading.main_thread():
            previous = signal.signal(signal.SIGINT, self._on_interrupt)
        t_start = time.monotonic()
        try:
            n = 0
            while not opts.max_runs or n < opts.max_runs:
                seed = entropy.getrandbits(32)
                outcome = self.run(seed, trace_file=str(trace_path))
                n += 1
                saved = self.report(seed, outcome, trace_path)
                if saved is not None and opts.dd:
                    from ..dd import DeltaDebugger
                    try:
                        DeltaDebugger(self).run(
                            seed, str(saved), str(self.out_dir / f"smtfuzz-dd-{saved.name}"),
                            match_out=opts.dd_match_out, match_err=opts.dd_match_err,
                            ignore_out=opts.dd_ignore_out, ignore_err=opts.dd_ignore_err)
                    except DeltaDebugError as e:
                        log.warning("seed %d: delta debugging failed: %s", seed, e)
                elapsed = time.monotonic() - t_start
                log.info("%d runs, %d errors, %.1f runs/s",
                         n, len(self.errors), n / elapsed if elapsed > 0 else 0.0)
        finally:
            if previous is not None:
                signal.signal(signal.SIGINT, previous)
        self.print_summary(sys.stdout)
        return EXIT_OK

    def _on_interrupt(self, signum, frame) -> None:
        print("\ninterrupted")
        self.print_summary(sys.stdout)
        self.cleanup()
        raise SystemExit(EXIT_OK)

    def print_summary(self, out: TextIO) -> None:
        self.errors.print_summary(out)
        if self.options.stats and self._stats_file is not None:
            out.write("\n")
            self.stats.print_summary(out)
        out.flush()


def _kill_group(p: subprocess.Popen) -> None:
    """Kill a worker and every process in its session, then reap it."""
    try:
        os.killpg(p.pid, signal.SIGKILL)
    except ProcessLookupError:
        log.debug("worker %d already gone", p.pid)
    p.wait()


def _open_output(stack: ExitStack, path: Optional[str]) -> Optional[TextIO]:
    if path is None:
        return None
    if path == STDOUT:
        return sys.stdout
    return stack.enter_context(open(path, "w", encoding="utf-8"))
