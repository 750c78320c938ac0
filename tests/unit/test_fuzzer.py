"""
Tests for run orchestration: direct and forked runs, continuous mode.
"""
import io
import os
import signal
import time

import pytest

from smtfuzz.exceptions import ConfigError, SolverError
from smtfuzz.run import EXIT_OK, Fuzzer, RunOutcome, RunResult
from smtfuzz.run.fuzzer import classify

from conftest import smt2_options


@pytest.fixture
def fuzzer_factory():
    fuzzers = []

    def make(options):
        fuzzer = Fuzzer(options)
        fuzzers.append(fuzzer)
        return fuzzer

    yield make
    for f in fuzzers:
        f.cleanup()


def test_classify():
    assert classify(0) == RunResult.OK
    assert classify(2) == RunResult.ERROR_CONFIG
    assert classify(1) == RunResult.ERROR
    assert classify(-6) == RunResult.ERROR


def test_outcome_error_text():
    """Signals are named; stderr is preferred over stdout."""
    crashed = RunOutcome(RunResult.ERROR, stdout="out", stderr="", returncode=-6)
    assert crashed.signal_name == "SIGABRT"
    assert crashed.error_text() == "terminated by SIGABRT\nout"
    failed = RunOutcome(RunResult.ERROR, stdout="out", stderr="err\n", returncode=1)
    assert failed.signal_name is None
    assert failed.error_text() == "err"
    assert RunOutcome(RunResult.ERROR, returncode=3).error_text() == "exit code 3"


def test_direct_run(tmp_path, fuzzer_factory):
    """A direct run records its trace and counts actions."""
    trace = tmp_path / "run.trace"
    fuzzer = fuzzer_factory(smt2_options(tmp_path, seed=42))
    outcome = fuzzer.run(42, trace_file=str(trace), run_forked=False)
    assert outcome.result == RunResult.OK
    lines = trace.read_text().splitlines()
    assert lines[0] == "set-seed 42"
    assert lines[-1] == "delete"
    assert fuzzer.stats.runs == 1
    assert fuzzer.stats.n_action("new") == 1
    assert fuzzer.stats.n_action("delete") == 1


def test_direct_run_propagates_errors(tmp_path, fake_solver, fuzzer_factory):
    """In direct mode solver failures are raised, not classified."""
    trace = tmp_path / "crash.trace"
    trace.write_text("set-seed 1\nnew\nmk-sort bv 8\nreturn s1\nmk-const s1 x0\nreturn t1\n"
                     "mk-term bvmul 2 t1 t1 0\nreturn t2 s1\n"
                     "mk-term = 2 t2 t1 0\nreturn t3 s2\nassert-formula t3\n")
    fuzzer = fuzzer_factory(smt2_options(tmp_path, smt2_file=None, smt2_online=fake_solver))
    with pytest.raises(SolverError):
        fuzzer.run(1, untrace_file=str(trace), run_forked=False)


def test_forked_run_ok(tmp_path, fuzzer_factory):
    """A forked run of a healthy configuration succeeds and shares statistics."""
    trace = tmp_path / "run.trace"
    fuzzer = fuzzer_factory(smt2_options(tmp_path))
    outcome = fuzzer.run(7, trace_file=str(trace))
    assert outcome.result == RunResult.OK, outcome.stderr
    assert trace.read_text().startswith("set-seed 7\n")
    assert fuzzer.stats.runs == 1
    assert fuzzer.stats.n_action("new") == 1


def test_forked_run_crash(tmp_path, fake_solver, fuzzer_factory):
    """A crashing solver yields an ERROR outcome carrying its stderr."""
    trace = tmp_path / "crash.trace"
    trace.write_text("set-seed 1\nnew\nmk-sort bv 8\nreturn s1\nmk-const s1 x0\nreturn t1\n"
                     "mk-term bvmul 2 t1 t1 0\nreturn t2 s1\n"
                     "mk-term = 2 t2 t1 0\nreturn t3 s2\nassert-formula t3\n")
    fuzzer = fuzzer_factory(smt2_options(tmp_path, smt2_file=None, smt2_online=fake_solver))
    outcome = fuzzer.run(1, untrace_file=str(trace))
    assert outcome.result == RunResult.ERROR
    assert "assertion failure at 0x55d0c0ffee" in outcome.stderr
    assert "terminated unexpectedly" in outcome.stderr
    assert fuzzer.stats.errors == 1

    saved = fuzzer.report(1, outcome, trace)
    assert saved == tmp_path / "out" / "smtfuzz-1.trace"
    assert saved.read_text() == trace.read_text()
    assert fuzzer.report(1, outcome, trace) is None
    assert len(fuzzer.errors) == 1


def test_forked_run_timeout(tmp_path, fuzzer_factory):
    """A hanging solver is killed once the time limit plus grace expires."""
    fuzzer = fuzzer_factory(smt2_options(tmp_path, smt2_file=None, smt2_online="sleep 10",
                                         time=0.5))
    outcome = fuzzer.run(3)
    assert outcome.result == RunResult.TIMEOUT
    assert outcome.signal_name is None
    assert fuzzer.stats.timeouts == 1
    assert fuzzer.report(3, outcome, tmp_path / "none") is None
    assert len(fuzzer.errors) == 0


def _alive(pid):
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    stat_file = f"/proc/{pid}/stat"
    if os.path.exists(stat_file):
        with open(stat_file) as f:
            return f.read().rsplit(")", 1)[1].split()[0] != "Z"
    return True


def test_timeout_kills_online_solver(tmp_path, fuzzer_factory):
    """A timeout also kills the solver process the worker started."""
    pid_file = tmp_path / "solver.pid"
    online = f"sh -c 'echo $$ > {pid_file}; exec sleep 30'"
    fuzzer = fuzzer_factory(smt2_options(tmp_path, smt2_file=None, smt2_online=online,
                                         time=0.5))
    outcome = fuzzer.run(3)
    assert outcome.result == RunResult.TIMEOUT
    pid = int(pid_file.read_text())
    deadline = time.monotonic() + 5.0
    while _alive(pid) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert not _alive(pid)


def test_report_config_error(tmp_path, fuzzer_factory):
    """A worker rejecting its configuration aborts the session."""
    fuzzer = fuzzer_factory(smt2_options(tmp_path))
    outcome = RunOutcome(RunResult.ERROR_CONFIG, stderr="bad", returncode=2)
    with pytest.raises(ConfigError):
        fuzzer.report(5, outcome, tmp_path / "none")


def test_worker_args(tmp_path, fuzzer_factory):
    """The worker command line replicates the configuration."""
    fuzzer = fuzzer_factory(smt2_options(tmp_path, theories=["bv"], linear=True, time=2.0))
    argv = fuzzer.worker_args(9, trace_file="t.trace")
    assert argv[1:6] == ["-m", "smtfuzz", "--worker", "--seed", "9"]
    assert argv[argv.index("--smt2") + 1] == os.devnull
    assert argv[argv.index("--theory") + 1] == "bv"
    assert "--linear" in argv
    assert argv[argv.index("--trace") + 1] == "t.trace"
    assert argv[argv.index("--stats-file") + 1] == str(fuzzer.stats_path)


def test_continuous_mode(tmp_path, capsys, fuzzer_factory):
    """Continuous mode stops after --max-runs and prints a summary."""
    fuzzer = fuzzer_factory(smt2_options(tmp_path, max_runs=2, stats=True))
    assert fuzzer.test() == EXIT_OK
    assert fuzzer.stats.runs == 2
    out = capsys.readouterr().out
    assert "no errors found" in out
    assert "runs: 2" in out


def test_cleanup_removes_tmp_dir(tmp_path):
    """cleanup() removes the temporary directory."""
    fuzzer = Fuzzer(smt2_options(tmp_path))
    tmp = fuzzer.tmp_dir
    assert tmp.is_dir()
    assert tmp.parent == tmp_path / "tmp"
    fuzzer.stats.runs += 1
    fuzzer.cleanup()
    assert not tmp.exists()


def test_interrupt_prints_summary_and_cleans_up(tmp_path, capsys):
    """SIGINT prints the error summary, removes the temp dir and exits with 0."""
    fuzzer = Fuzzer(smt2_options(tmp_path))
    tmp = fuzzer.tmp_dir
    fuzzer.errors.add("assertion failure at 0x1234", 11)
    with pytest.raises(SystemExit) as exc:
        fuzzer._on_interrupt(signal.SIGINT, None)
    assert exc.value.code == EXIT_OK
    out = capsys.readouterr().out
    assert "interrupted" in out
    assert "1 distinct error(s)" in out
    assert "seeds: 11" in out
    assert not tmp.exists()
