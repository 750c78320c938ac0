"""Command-line interface.

Modes:
1. Continuous fuzzing (default): random seeds, each run in a worker process
2. Single run: smtfuzz -s SEED
3. Replay: smtfuzz -u TRACE
4. Delta debugging: smtfuzz -d (-u TRACE | -s SEED)
"""
from __future__ import annotations

import argparse
import random
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import STDOUT, Options, load_config
from .dd import DeltaDebugger
from .exceptions import ConfigError, DeltaDebugError
from .fsm import FSM
from .log import configure
from .rng import RNGenerator
from .run import EXIT_ERROR, EXIT_ERROR_CONFIG, EXIT_OK, Fuzzer, RunResult
from .solver import create_backend
from .trace.tracer import Tracer


def _seed(text: str) -> int:
    try:
        value = int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid seed '{text}'") from None
    if not 0 <= value <= 0xFFFFFFFF:
        raise argparse.ArgumentTypeError(f"seed {value} is not a 32-bit unsigned integer")
    return value


def create_parser() -> argparse.ArgumentParser:
    # Options not given on the command line stay absent from the namespace so
    # that configuration file values are not overridden by parser defaults.
    parser = argparse.ArgumentParser(
        prog="smtfuzz",
        description="Model-based API fuzzer for SMT solvers",
        argument_default=argparse.SUPPRESS,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fuzz z3 until interrupted
  smtfuzz --z3
  # Fuzz bit-vectors only, 100 runs
  smtfuzz --z3 --theory bv -m 100
  # Reproduce a run and print its trace
  smtfuzz --z3 -s 42 -a
  # Minimize a failing trace
  smtfuzz --z3 -d -u smtfuzz-42.trace
        """,
    )
    parser.add_argument("--version", action="version", version=f"smtfuzz {__version__}")

    run = parser.add_argument_group("run control")
    run.add_argument("-s", "--seed", type=_seed, help="Seed of a single run")
    run.add_argument("-t", "--time", type=float, metavar="SECONDS",
                     help="Time limit per run (default: none)")
    run.add_argument("-v", "--verbosity", action="count",
                     help="Increase verbosity (repeatable)")
    run.add_argument("-m", "--max-runs", type=int, dest="max_runs", metavar="N",
                     help="Number of runs in continuous mode (default: unbounded)")
    run.add_argument("--max-actions", type=int, dest="max_actions", metavar="N",
                     help="Maximum number of actions per run (default: unbounded)")

    trace = parser.add_argument_group("tracing")
    trace.add_argument("-a", "--trace", dest="trace_file", nargs="?", const=STDOUT,
                       metavar="FILE", help="Write the API trace to FILE (default: stdout)")
    trace.add_argument("-u", "--untrace", dest="untrace_file", metavar="FILE",
                       help="Replay the API trace in FILE")

    dd = parser.add_argument_group("delta debugging")
    dd.add_argument("-d", "--dd", action="store_true", help="Minimize a failing trace")
    dd.add_argument("--dd-match-out", dest="dd_match_out", metavar="STR",
                    help="Reductions must keep STR in stdout")
    dd.add_argument("--dd-match-err", dest="dd_match_err", metavar="STR",
                    help="Reductions must keep STR in stderr")
    dd.add_argument("--dd-ignore-out", dest="dd_ignore_out", action="store_true",
                    help="Do not compare stdout with the original failure")
    dd.add_argument("--dd-ignore-err", dest="dd_ignore_err", action="store_true",
                    help="Do not compare stderr with the original failure")
    dd.add_argument("-D", "--dd-out", dest="dd_out_file", metavar="FILE",
                    help="Minimized trace (default: smtfuzz-dd-<input name>)")

    solvers = parser.add_argument_group("solver").add_mutually_exclusive_group()
    solvers.add_argument("--z3", dest="solver", action="store_const", const="z3",
                         help="Test z3 (default)")
    solvers.add_argument("--smt2", dest="smt2_file", nargs="?", const=None, metavar="FILE",
                         help="Emit SMT-LIBv2 to FILE (default: stdout)")
    for name in ("cvc5", "bitwuzla", "boolector", "yices"):
        solvers.add_argument(f"--{name}", dest="solver", action="store_const", const=name,
                             help=f"Test {name}")
    parser.add_argument("--smt2-online", dest="smt2_online", metavar="CMD",
                        help="Drive solver CMD interactively (with --smt2)")

    theories = parser.add_argument_group("theories")
    theories.add_argument("--theory", dest="theories", action="append", metavar="NAME",
                          help="Enable theory NAME (repeatable; default: all supported)")
    theories.add_argument("--linear", action="store_true",
                          help="Restrict arithmetic to linear terms")
    theories.add_argument("--uf", action="store_true",
                          help="Enable uninterpreted functions")

    misc = parser.add_argument_group("misc")
    misc.add_argument("--tmp-dir", dest="tmp_dir", metavar="DIR",
                      help="Parent of the temporary directory")
    misc.add_argument("--out-dir", dest="out_dir", metavar="DIR",
                      help="Where failing traces are saved (default: cwd)")
    misc.add_argument("--stats", action="store_true", help="Print statistics")
    misc.add_argument("--print-fsm", dest="print_fsm", action="store_true",
                      help="Print the FSM configuration and exit")
    misc.add_argument("--config", metavar="FILE", help="Configuration file")
    misc.add_argument("--stats-file", dest="stats_file", help=argparse.SUPPRESS)
    misc.add_argument("--worker", action="store_true", help=argparse.SUPPRESS)
    return parser


def parse_options(argv: Optional[List[str]] = None) -> Options:
    """Parse the command line (plus configuration file) into Options.

    Raises:
        ConfigError: Invalid configuration
    """
    args = vars(create_parser().parse_args(argv))
    if "smt2_file" in args:
        args["solver"] = "smt2"
    options = Options()
    if not args.get("worker", False):
        config = args.get("config")
        options.update(load_config(Path(config) if config else None), source="config file")
    options.update(args)
    options.validate()
    return options


def print_fsm(options: Options) -> None:
    rng = RNGenerator(options.seed or 0)
    solver, smgr = create_backend(
        options.solver, rng, options.enabled_theories(),
        uf=options.uf, linear=options.linear, smt2_online_cmd=options.smt2_online)
    FSM(rng, solver, smgr, Tracer()).print_fsm(sys.stdout)


def delta_debug(fuzzer: Fuzzer, options: Options) -> int:
    seed = options.seed
    untrace_file = options.untrace_file
    if untrace_file is None:
        if seed is None:
            seed = random.SystemRandom().getrandbits(32)
        trace_path = fuzzer.tmp_dir / f"smtfuzz-{seed}.trace"
        outcome = fuzzer.run(seed, trace_file=str(trace_path))
        if outcome.result == RunResult.OK:
            print(f"seed {seed}: no error, nothing to minimize")
            return EXIT_OK
        untrace_file = str(trace_path)
    DeltaDebugger(fuzzer).run(
        seed, untrace_file, options.dd_out_file,
        match_out=options.dd_match_out,
        match_err=options.dd_match_err,
        ignore_out=options.dd_ignore_out,
        ignore_err=options.dd_ignore_err)
    return EXIT_OK


def run(options: Options) -> int:
    """Dispatch to the mode selected by `options`."""
    if options.print_fsm:
        print_fsm(options)
        return EXIT_OK
    fuzzer = Fuzzer(options)
    try:
        if options.worker:
            fuzzer.run_session(options.seed or 0, options.untrace_file, options.trace_file)
            return EXIT_OK
        if options.dd and (options.untrace_file is not None or options.seed is not None):
            return delta_debug(fuzzer, options)
        if options.untrace_file is not None or options.seed is not None:
            fuzzer.run(options.seed or 0, options.untrace_file, options.trace_file,
                       run_forked=False)
            if options.stats:
                fuzzer.stats.print_summary(sys.stdout)
            return EXIT_OK
        return fuzzer.test()
    finally:
        fuzzer.cleanup()


def main(argv: Optional[List[str]] = None) -> int:
    try:
        options = parse_options(argv)
    except ConfigError as e:
        print(f"smtfuzz: error: {e}", file=sys.stderr)
        return EXIT_ERROR_CONFIG
    configure(options.verbosity)
    try:
        return run(options)
    except ConfigError as e:
        print(f"smtfuzz: error: {e}", file=sys.stderr)
        return EXIT_ERROR_CONFIG
    except DeltaDebugError as e:
        print(f"smtfuzz: delta debugging failed: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
