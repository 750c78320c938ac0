"""
Tests for trace recording, parsing and replay.
"""
import io

import pytest

from smtfuzz.exceptions import TraceError
from smtfuzz.trace import Trace, TracePlayer, Tracer, parse_trace, read_trace, write_trace

from conftest import make_fsm

HEADER = ["set-seed 5", "new", "mk-sort bv 8", "return s1"]


def _play(lines):
    smt2 = io.StringIO()
    fsm, out = make_fsm(0, smt2_out=smt2)
    TracePlayer(fsm).play_lines(lines)
    return out.getvalue(), smt2.getvalue()


def test_tracer_flushes_lines():
    """Every traced line reaches the stream immediately."""
    out = io.StringIO()
    tracer = Tracer(out)
    tracer.trace_seed(9)
    tracer.trace("mk-sort", "bv", 8)
    tracer.trace_return("s1")
    assert out.getvalue() == "set-seed 9\nmk-sort bv 8\nreturn s1\n"
    assert tracer.n_lines == 3


def test_parse_trace_groups_actions():
    """Return lines are attached to the action before them."""
    trace = parse_trace(["# comment", "set-seed 17", "", "new", "mk-sort bool", "return s1",
                         "check-sat"])
    assert trace.seed == 17
    assert [[l.kind for l in g] for g in trace.actions()] == [
        ["new"], ["mk-sort", "return"], ["check-sat"]]
    assert trace.lines[1].line_no == 5
    assert trace.format_trace() == "set-seed 17\nnew\nmk-sort bool\nreturn s1\ncheck-sat\n"


def test_read_write_trace(tmp_path):
    """Traces survive a write/read cycle."""
    trace = parse_trace(HEADER)
    path = write_trace(trace, tmp_path / "t.trace")
    again = read_trace(path)
    assert again.seed == 5
    assert [l.text() for l in again.lines] == ["new", "mk-sort bv 8", "return s1"]


@pytest.mark.parametrize("lines", [
    ["set-seed 1", "new", "set-seed 2"],
    ["set-seed x"],
])
def test_malformed_seed_line(lines):
    """The seed line must appear once, first, with a numeric seed."""
    with pytest.raises(TraceError):
        parse_trace(lines)


def test_ids_are_remapped():
    """Trace ids need not match the ids assigned during replay."""
    retrace, smt2 = _play([
        "set-seed 5",
        "new",
        "mk-sort bv 8",
        "return s7",
        "mk-const s7 x0",
        "return t30",
        "mk-const s7 x1",
        "return t31",
        "mk-term bvadd 2 t30 t31 0",
        "return t32 s7",
        "mk-term bvult 2 t32 t31 0",
        "return t33 s9",
        "assert-formula t33",
        "delete",
    ])
    assert retrace.splitlines() == [
        "set-seed 5",
        "new",
        "mk-sort bv 8",
        "return s1",
        "mk-const s1 x0",
        "return t1",
        "mk-const s1 x1",
        "return t2",
        "mk-term bvadd 2 t1 t2 0",
        "return t3 s1",
        "mk-term bvult 2 t3 t2 0",
        "return t4 s2",
        "assert-formula t4",
        "delete",
    ]
    assert "(assert (bvult (bvadd x0 x1) x1))" in smt2


@pytest.mark.parametrize("lines, message", [
    (HEADER + ["frobnicate"], "unknown action"),
    (HEADER + ["mk-const s9 x0", "return t1"], "unknown sort id"),
    (HEADER + ["mk-const s1 x0", "return t1", "assert-formula t2"], "unknown term id"),
    (HEADER + ["mk-const s1 x0"], "expected 'return'"),
    (["set-seed 1", "return s1"], "without preceding action"),
    (HEADER + ["mk-sort"], "missing arguments"),
    (HEADER + ["mk-sort matrix 3", "return s2"], "unknown sort kind"),
    (HEADER + ["mk-value s1 #b102", "return t1"], "invalid bv literal"),
    (HEADER + ["mk-value s1 #b1", "return t1"], "does not fit"),
    (HEADER + ["mk-const s1 x0", "return t1", "mk-term bvadd 3 t1 t1 0", "return t2 s1"],
     "expected t<n>"),
    (HEADER + ["mk-const s1 x0", "return t1", "mk-term bvnot 2 t1 t1 0", "return t2 s1"],
     "expects 1 arguments"),
    (HEADER + ["mk-const s1 x0", "return t1", "mk-term extract 1 t1 2 3", "return t2 s1"],
     "malformed indices"),
    (HEADER + ["mk-const s1 x0", "return t1 t2"], "lists 2 ids"),
    (HEADER + ["push x"], "expected integer"),
    (["set-seed 1", "new", "check-sat now"], "takes no arguments"),
])
def test_replay_errors(lines, message):
    """Malformed traces raise TraceError naming the offending line."""
    with pytest.raises(TraceError, match=message) as e:
        _play(lines)
    assert e.value.line_no > 0
    assert "trace line" in str(e.value)


def test_empty_trace_replays():
    """A trace without actions replays to an empty run."""
    retrace, smt2 = _play(["set-seed 3"])
    assert retrace == "set-seed 3\n"
    assert smt2 == ""
    assert Trace(3).actions() == []
