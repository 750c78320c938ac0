"""
Tests for the command-line interface and configuration files.
"""
import os

import pytest

from smtfuzz.cli import create_parser, main, parse_options
from smtfuzz.config import load_config
from smtfuzz.exceptions import ConfigError


@pytest.fixture(autouse=True)
def in_tmp_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_solver_flags_are_exclusive():
    """Selecting two solvers is a usage error."""
    with pytest.raises(SystemExit) as e:
        main(["--z3", "--cvc5"])
    assert e.value.code == 2


def test_invalid_seed_is_usage_error():
    with pytest.raises(SystemExit) as e:
        main(["-s", "5000000000"])
    assert e.value.code == 2


@pytest.mark.parametrize("argv", [
    ["--cvc5"],
    ["--smt2", "--theory", "sets"],
    ["--smt2-online", "z3 -in"],
    ["--smt2", "--max-actions", "1"],
    ["--smt2", "--dd-match-out", "boom"],
    ["--smt2", "-u", "missing.trace"],
    ["--smt2", "-t", "-1"],
])
def test_config_errors(argv, capsys):
    """Inconsistent options exit with the configuration error code."""
    assert main(argv) == 2
    assert "smtfuzz: error:" in capsys.readouterr().err


def test_trace_and_untrace_must_differ(tmp_path):
    trace = tmp_path / "a.trace"
    trace.write_text("set-seed 1\n")
    assert main(["--smt2", "-u", str(trace), "-a", str(trace)]) == 2


def test_smt2_flag_selects_backend():
    options = parse_options(["--smt2", "out.smt2", "--theory", "bv", "--uf"])
    assert options.solver == "smt2"
    assert options.smt2_file == "out.smt2"
    assert options.theories == ["bv"]
    assert options.uf
    assert parse_options(["--smt2"]).smt2_file is None


def test_print_fsm(capsys):
    assert main(["--smt2", "--theory", "bv", "--print-fsm"]) == 0
    out = capsys.readouterr().out
    assert "theories: bool bv" in out
    assert "state new" in out


def test_seed_run_and_replay(tmp_path):
    """A seeded run can be replayed from its trace with identical solver calls."""
    trace = tmp_path / "run.trace"
    first = tmp_path / "first.smt2"
    second = tmp_path / "second.smt2"
    assert main(["--smt2", str(first), "-s", "42", "--max-actions", "30",
                 "-a", str(trace)]) == 0
    assert trace.read_text().startswith("set-seed 42\n")
    assert first.read_text().startswith("(set-option :global-declarations true)\n")
    assert main(["--smt2", str(second), "-u", str(trace)]) == 0
    assert second.read_text() == first.read_text()


def test_seed_run_stats(capsys):
    assert main(["--smt2", os.devnull, "-s", "7", "--max-actions", "20", "--stats"]) == 0
    out = capsys.readouterr().out
    assert "runs: 1" in out
    assert f"{'new':<20} 1" in out


def test_dd_seed_without_error(capsys, tmp_path):
    """Delta debugging a seed that does not fail is a no-op."""
    assert main(["--smt2", os.devnull, "-d", "-s", "42", "--max-actions", "20",
                 "--tmp-dir", str(tmp_path / "tmp")]) == 0
    assert "seed 42: no error, nothing to minimize" in capsys.readouterr().out


def test_continuous_mode(capsys, tmp_path):
    assert main(["--smt2", os.devnull, "-m", "2", "--max-actions", "20",
                 "--out-dir", str(tmp_path / "out")]) == 0
    assert "no errors found" in capsys.readouterr().out


def test_config_file_values(tmp_path):
    """Values from smtfuzz.toml apply unless overridden on the command line."""
    (tmp_path / "smtfuzz.toml").write_text(
        'max-actions = 10\ntheories = ["bv", "int"]\nlinear = true\n')
    options = parse_options(["--smt2"])
    assert options.max_actions == 10
    assert options.theories == ["bv", "int"]
    assert options.linear
    assert parse_options(["--smt2", "--max-actions", "20"]).max_actions == 20


def test_pyproject_table(tmp_path):
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "x"\n\n[tool.smtfuzz]\nsolver = "smt2"\nstats = true\n')
    assert load_config() == {"solver": "smt2", "stats": True}
    options = parse_options([])
    assert options.solver == "smt2"
    assert options.stats


def test_explicit_config_file(tmp_path):
    path = tmp_path / "custom.toml"
    path.write_text("[tool.smtfuzz]\nmax-runs = 3\n")
    assert parse_options(["--smt2", "--config", str(path)]).max_runs == 3


@pytest.mark.parametrize("content", [
    "bogus = 1\n",
    "max-actions = \"many\"\n",
    "linear = 1\n",
    "worker = true\n",
    "max-actions = [\n",
])
def test_bad_config_file(tmp_path, content):
    (tmp_path / "smtfuzz.toml").write_text(content)
    with pytest.raises(ConfigError):
        parse_options(["--smt2"])
    assert main(["--smt2"]) == 2


def test_missing_config_file():
    assert main(["--smt2", "--config", "nowhere.toml"]) == 2


def test_help_lists_hidden_flags_nowhere():
    text = create_parser().format_help()
    assert "--worker" not in text
    assert "--stats-file" not in text
    assert "--dd-match-err" in text
