"""
Error normalization and deduplication.

Two failures are considered the same error if their output is identical after
volatile substrings (addresses, the seed, temporary paths, process ids) have
been replaced by placeholders.
"""
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, TextIO, Union

_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]+")
_PID_RE = re.compile(r"\b(pid|process)(\s*[=:]?\s*)\d+", re.IGNORECASE)
_TMP_NAME_RE = re.compile(r"smtfuzz-[A-Za-z0-9_]{6,}")
# Prefix of a number that is a seed whatever its length.
_SEED_CONTEXT = r"(\bseed\s*[=:]?\s*|(?<!\S)(?:-s|--seed)(?:=|\s+))"

# Seeds shorter than this are not distinguishable from ordinary numbers.
_MIN_SEED_DIGITS = 4


def normalize_error(text: str,
                    seed: Optional[int] = None,
                    tmp_dir: Union[str, Path, None] = None) -> str:
    """Return the dedup signature of an error message."""
    s = text
    if tmp_dir is not None:
        s = s.replace(str(tmp_dir), "<tmp>")
    s = _TMP_NAME_RE.sub("smtfuzz-<tmp>", s)
    if seed is not None:
        s = re.sub(rf"0x0*{seed:x}\b", "<seed>", s, flags=re.IGNORECASE)
        s = re.sub(rf"{_SEED_CONTEXT}{seed}\b", r"\1<seed>", s, flags=re.IGNORECASE)
        if len(str(seed)) >= _MIN_SEED_DIGITS:
            s = re.sub(rf"\b{seed}\b", "<seed>", s)
    s = _ADDRESS_RE.sub("0x<addr>", s)
    s = _PID_RE.sub(r"\1\2<pid>", s)
    lines = [line.rstrip() for line in s.strip().splitlines()]
    return "\n".join(line for line in lines if line)


@dataclass
class ErrorEntry:
    """One distinct error: its first raw message and all seeds hitting it."""
    signature: str
    message: str
    seeds: List[int] = field(default_factory=list)


class ErrorMap:
    """Normalized error signature -> ErrorEntry."""

    def __init__(self):
        self._entries: Dict[str, ErrorEntry] = {}

    def add(self, err: str, seed: int, tmp_dir: Union[str, Path, None] = None) -> bool:
        """Record an error; returns True if its signature was not seen before."""
        sig = normalize_error(err, seed, tmp_dir)
        entry = self._entries.get(sig)
        if entry is not None:
            entry.seeds.append(seed)
            return False
        self._entries[sig] = ErrorEntry(sig, err, [seed])
        return True

    def get(self, signature: str) -> Optional[ErrorEntry]:
        return self._entries.get(signature)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ErrorEntry]:
        return iter(self._entries.values())

    def __contains__(self, signature: object) -> bool:
        return signature in self._entries

    def print_summary(self, out: TextIO) -> None:
        if not self._entries:
            out.write("no errors found\n")
            return
        out.write(f"{len(self._entries)} distinct error(s):\n")
        for i, entry in enumerate(self._entries.values(), start=1):
            seeds = " ".join(str(s) for s in entry.seeds)
            out.write(f"\n[{i}] {len(entry.seeds)} occurrence(s), seeds: {seeds}\n")
            out.write(entry.message.rstrip() + "\n")
