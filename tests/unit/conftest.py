"""
Pytest configuration and fixtures for smtfuzz tests.
"""
import io
import os
import stat
import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from smtfuzz.config import Options
from smtfuzz.fsm import FSM
from smtfuzz.rng import RNGenerator
from smtfuzz.solver import create_backend
from smtfuzz.trace.tracer import Tracer

# Stand-in for a solver binary: answers SMT-LIB commands with print-success
# semantics and dies on the first command mentioning bvmul.
FAKE_SOLVER = """#!/bin/sh
while IFS= read -r line; do
  case "$line" in
    *bvmul*) echo "assertion failure at 0x55d0c0ffee" >&2; exit 134 ;;
    "(exit)") exit 0 ;;
    "(check-sat"*) echo sat ;;
    "(get-value"*) echo "((x0 #x00))" ;;
    *) echo success ;;
  esac
done
"""


@pytest.fixture
def fake_solver(tmp_path):
    path = tmp_path / "fake-solver.sh"
    path.write_text(FAKE_SOLVER)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


def make_fsm(seed, solver="smt2", theories=(), max_actions=0, uf=False, linear=False,
             smt2_out=None, trace_out=None):
    """Build an FSM over a fresh backend; returns (fsm, trace stream)."""
    if trace_out is None:
        trace_out = io.StringIO()
    if smt2_out is None and solver == "smt2":
        smt2_out = io.StringIO()
    rng = RNGenerator(seed)
    slv, smgr = create_backend(solver, rng, theories, uf=uf, linear=linear, smt2_out=smt2_out)
    fsm = FSM(rng, slv, smgr, Tracer(trace_out), max_actions=max_actions)
    return fsm, trace_out


def smt2_options(tmp_path, **kwargs):
    """Options for runs against the offline smt2 backend."""
    values = dict(
        solver="smt2",
        smt2_file=os.devnull,
        max_actions=40,
        tmp_dir=str(tmp_path / "tmp"),
        out_dir=str(tmp_path / "out"),
    )
    values.update(kwargs)
    return Options(**values)
