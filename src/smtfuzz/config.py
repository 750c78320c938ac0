"""Run configuration.

Options are collected from (in increasing priority) built-in defaults, a TOML
configuration file and the command line. Configuration files:
  - the file given with --config,
  - otherwise `smtfuzz.toml` in the working directory,
  - otherwise the `[tool.smtfuzz]` table of `pyproject.toml` in the working
    directory.
"""
from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConfigError
from .solver import KNOWN_SOLVERS, is_configured
from .theory import Theory, parse_theory

CONFIG_FILES = [
    "smtfuzz.toml",
    "pyproject.toml",
]

# Trace destination meaning "standard output".
STDOUT = "-"

# Options only the command line may set.
_CLI_ONLY = {"config", "stats_file", "worker"}

_TYPES: Dict[str, tuple] = {
    "seed": (int,),
    "time": (int, float),
    "verbosity": (int,),
    "max_runs": (int,),
    "max_actions": (int,),
    "trace_file": (str,),
    "untrace_file": (str,),
    "dd": (bool,),
    "dd_match_out": (str,),
    "dd_match_err": (str,),
    "dd_ignore_out": (bool,),
    "dd_ignore_err": (bool,),
    "dd_out_file": (str,),
    "solver": (str,),
    "smt2_file": (str,),
    "smt2_online": (str,),
    "theories": (list,),
    "linear": (bool,),
    "uf": (bool,),
    "tmp_dir": (str,),
    "out_dir": (str,),
    "stats": (bool,),
    "print_fsm": (bool,),
}


@dataclass
class Options:
    """All settings of one smtfuzz invocation."""
    seed: Optional[int] = None
    # Per-run wall clock limit in seconds (0 = none).
    time: float = 0.0
    verbosity: int = 0
    max_runs: int = 0
    max_actions: int = 0
    trace_file: Optional[str] = None
    untrace_file: Optional[str] = None
    dd: bool = False
    dd_match_out: Optional[str] = None
    dd_match_err: Optional[str] = None
    dd_ignore_out: bool = False
    dd_ignore_err: bool = False
    dd_out_file: Optional[str] = None
    solver: str = "z3"
    smt2_file: Optional[str] = None
    smt2_online: Optional[str] = None
    theories: List[str] = field(default_factory=list)
    linear: bool = False
    uf: bool = False
    tmp_dir: Optional[str] = None
    out_dir: Optional[str] = None
    stats: bool = False
    print_fsm: bool = False
    config: Optional[str] = None
    stats_file: Optional[str] = None
    worker: bool = False

    def enabled_theories(self) -> List[Theory]:
        res = []
        for name in self.theories:
            try:
                res.append(parse_theory(name))
            except ValueError:
                raise ConfigError(f"unknown theory '{name}'") from None
        return res

    def update(self, data: Dict[str, Any], source: str = "command line") -> None:
        known = {f.name for f in fields(self)}
        for key, value in data.items():
            if key not in known:
                raise ConfigError(f"{source}: unknown option '{key}'")
            setattr(self, key, value)

    def validate(self) -> None:
        """Check option consistency; raises ConfigError."""
        if self.solver not in KNOWN_SOLVERS:
            raise ConfigError(f"unknown solver '{self.solver}'")
        if not is_configured(self.solver):
            raise ConfigError(f"solver '{self.solver}' not configured")
        if self.smt2_online is not None and self.solver != "smt2":
            raise ConfigError("--smt2-online requires --smt2")
        if self.time < 0:
            raise ConfigError("time limit must not be negative")
        if self.max_runs < 0:
            raise ConfigError("maximum number of runs must not be negative")
        if self.max_actions < 0 or self.max_actions == 1:
            raise ConfigError("maximum number of actions must be 0 or at least 2")
        if self.seed is not None and not 0 <= self.seed <= 0xFFFFFFFF:
            raise ConfigError(f"seed {self.seed} is not a 32-bit unsigned integer")
        if (self.untrace_file is not None
                and self.trace_file not in (None, STDOUT)
                and Path(self.untrace_file).resolve() == Path(self.trace_file).resolve()):
            raise ConfigError("trace file and untrace file must not be the same file")
        if self.untrace_file is not None and not Path(self.untrace_file).is_file():
            raise ConfigError(f"untrace file '{self.untrace_file}' does not exist")
        if (self.dd_match_out or self.dd_match_err or self.dd_out_file
                or self.dd_ignore_out or self.dd_ignore_err) and not self.dd:
            raise ConfigError("delta debugging options require --dd")
        self.enabled_theories()


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Find the configuration file in `start_dir` (default: cwd)."""
    if start_dir is None:
        start_dir = Path.cwd()
    for name in CONFIG_FILES:
        path = start_dir / name
        if not path.is_file():
            continue
        if name == "pyproject.toml" and "smtfuzz" not in _read_toml(path).get("tool", {}):
            continue
        return path
    return None


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"cannot read config file '{path}': {e}") from e


def load_config(config_path: Path | None = None,
                start_dir: Path | None = None) -> Dict[str, Any]:
    """Load the option table of a configuration file.

    Args:
        config_path: Explicit path to a config file (must exist)
        start_dir: Directory to search for a config file

    Returns:
        Option values keyed by Options field name (empty if no file)
    """
    if config_path is None:
        config_path = find_config_file(start_dir)
        if config_path is None:
            return {}
    elif not config_path.is_file():
        raise ConfigError(f"config file '{config_path}' does not exist")

    data = _read_toml(config_path)
    if config_path.name == "pyproject.toml":
        data = data.get("tool", {}).get("smtfuzz", {})
    else:
        data = data.get("tool", {}).get("smtfuzz", data)

    res = {}
    for key, value in data.items():
        name = key.replace("-", "_")
        if name not in _TYPES or name in _CLI_ONLY:
            raise ConfigError(f"{config_path}: unknown option '{key}'")
        if isinstance(value, bool) and bool not in _TYPES[name]:
            raise ConfigError(f"{config_path}: invalid value for '{key}'")
        if not isinstance(value, _TYPES[name]):
            raise ConfigError(f"{config_path}: invalid value for '{key}'")
        res[name] = list(value) if isinstance(value, list) else value
    return res
