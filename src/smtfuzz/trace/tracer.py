"""API trace representation, recording and parsing."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, TextIO

from ..exceptions import TraceError

SEED_KIND = "set-seed"
RETURN_KIND = "return"


@dataclass
class TraceLine:
    """One parsed trace line: an action tag and its literal arguments."""

    line_no: int
    kind: str
    tokens: List[str]

    def text(self) -> str:
        return " ".join([self.kind, *self.tokens])


@dataclass
class Trace:
    """An API trace: the originating seed plus the ordered trace lines."""

    seed: int
    lines: List[TraceLine] = field(default_factory=list)

    def actions(self) -> List[List[TraceLine]]:
        """Group lines into actions; a `return` line belongs to its action."""
        groups: List[List[TraceLine]] = []
        for line in self.lines:
            if line.kind == RETURN_KIND:
                if not groups:
                    raise TraceError("'return' without preceding action", line.line_no)
                groups[-1].append(line)
            else:
                groups.append([line])
        return groups

    def format_trace(self) -> str:
        out = [f"{SEED_KIND} {self.seed}"]
        out.extend(line.text() for line in self.lines)
        return "\n".join(out) + "\n"


def parse_trace(lines: Iterable[str]) -> Trace:
    """Parse trace text. Blank lines and lines starting with '#' are skipped."""
    seed: Optional[int] = None
    parsed: List[TraceLine] = []
    for line_no, raw in enumerate(lines, start=1):
        s = raw.strip()
        if not s or s.startswith("#"):
            continue
        kind, *tokens = s.split()
        if kind == SEED_KIND:
            if seed is not None or parsed:
                raise TraceError("'set-seed' must appear once, before any action", line_no)
            if len(tokens) != 1 or not tokens[0].isdigit():
                raise TraceError(f"malformed seed line '{s}'", line_no)
            seed = int(tokens[0])
            continue
        parsed.append(TraceLine(line_no, kind, tokens))
    return Trace(seed if seed is not None else 0, parsed)


def read_trace(path: str | Path) -> Trace:
    with open(path, "r", encoding="utf-8") as fp:
        return parse_trace(fp)


def write_trace(trace: Trace, path: str | Path) -> Path:
    out_path = Path(path)
    out_path.write_text(trace.format_trace(), encoding="utf-8")
    return out_path


class Tracer:
    """Appends trace lines to a stream, flushing after every line.

    Lines are flushed immediately so that a crash in the solver call that
    follows a line still leaves the line in the trace.
    """

    def __init__(self, out: Optional[TextIO] = None):
        self._out = out
        self.n_lines = 0

    def trace_seed(self, seed: int) -> None:
        self._write(f"{SEED_KIND} {seed}")

    def trace(self, kind: str, *args: object) -> None:
        self._write(" ".join([kind, *(str(a) for a in args)]))

    def trace_return(self, *ids: str) -> None:
        self.trace(RETURN_KIND, *ids)

    def _write(self, line: str) -> None:
        self.n_lines += 1
        if self._out is not None:
            self._out.write(line + "\n")
            self._out.flush()
