"""
Tests for the shared statistics record.
"""
import io

import pytest

from smtfuzz.run import Statistics, StatisticsFile
from smtfuzz.solver import SolverResult


def test_counters():
    """Counters are addressed by action kind, operator and result."""
    stats = Statistics()
    stats.inc_action("mk-term")
    stats.inc_action("mk-term")
    stats.inc_op("bvadd")
    stats.inc_result(SolverResult.SAT)
    assert stats.n_action("mk-term") == 2
    assert stats.n_action("new") == 0
    assert stats.n_op("bvadd") == 1
    assert stats.n_result(SolverResult.SAT) == 1
    with pytest.raises(KeyError):
        stats.inc_action("no-such-action")


def test_file_is_shared(tmp_path):
    """Two mappings of one file see each other's updates."""
    path = tmp_path / "stats"
    with StatisticsFile.create(path) as owner, StatisticsFile.open(path) as worker:
        worker.stats.runs += 3
        worker.stats.inc_action("check-sat")
        assert owner.stats.runs == 3
        assert owner.stats.n_action("check-sat") == 1


def test_open_rejects_foreign_file(tmp_path):
    """A file of the wrong size is not a statistics record."""
    path = tmp_path / "stats"
    path.write_bytes(b"\0" * 3)
    with pytest.raises(ValueError):
        StatisticsFile.open(path)


def test_print_summary():
    """Only operators that were used are listed."""
    stats = Statistics()
    stats.runs = 2
    stats.inc_op("bvmul")
    out = io.StringIO()
    stats.print_summary(out)
    text = out.getvalue()
    assert "runs: 2" in text
    assert "bvmul" in text
    assert "bvadd" not in text
    assert "unknown" in text
