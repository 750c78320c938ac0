"""
Run statistics shared between the driver and its worker processes.

The record is a fixed-layout ctypes structure placed in a memory-mapped file.
Every counter is a single machine word that only the process currently
running writes, so no locking is needed; counters are aggregated by
addition.
"""
from __future__ import annotations

import ctypes
import logging
import mmap
import os
from pathlib import Path
from typing import TextIO, Union

from ..fsm.actions import ACTION_KINDS
from ..op import OP_KINDS
from ..solver.result import SolverResult

log = logging.getLogger(__name__)

_RESULTS = tuple(SolverResult)
_ACTION_INDEX = {k: i for i, k in enumerate(ACTION_KINDS)}
_OP_INDEX = {k: i for i, k in enumerate(OP_KINDS)}
_RESULT_INDEX = {r: i for i, r in enumerate(_RESULTS)}


class Statistics(ctypes.Structure):
    _fields_ = [
        ("runs", ctypes.c_uint64),
        ("errors", ctypes.c_uint64),
        ("timeouts", ctypes.c_uint64),
        ("actions", ctypes.c_uint64 * len(ACTION_KINDS)),
        ("ops", ctypes.c_uint64 * len(OP_KINDS)),
        ("results", ctypes.c_uint64 * len(_RESULTS)),
    ]

    def inc_action(self, kind: str) -> None:
        self.actions[_ACTION_INDEX[kind]] += 1

    def inc_op(self, kind: str) -> None:
        self.ops[_OP_INDEX[kind]] += 1

    def inc_result(self, result: SolverResult) -> None:
        self.results[_RESULT_INDEX[result]] += 1

    def n_action(self, kind: str) -> int:
        return self.actions[_ACTION_INDEX[kind]]

    def n_op(self, kind: str) -> int:
        return self.ops[_OP_INDEX[kind]]

    def n_result(self, result: SolverResult) -> int:
        return self.results[_RESULT_INDEX[result]]

    def print_summary(self, out: TextIO) -> None:
        out.write(f"runs: {self.runs}\n")
        out.write(f"errors: {self.errors}\n")
        out.write(f"timeouts: {self.timeouts}\n")
        out.write("actions:\n")
        for kind in ACTION_KINDS:
            out.write(f"  {kind:<20} {self.n_action(kind)}\n")
        out.write("operators:\n")
        for kind in OP_KINDS:
            n = self.n_op(kind)
            if n:
                out.write(f"  {kind:<20} {n}\n")
        out.write("results:\n")
        for res in _RESULTS:
            out.write(f"  {res.value:<20} {self.n_result(res)}\n")


class StatisticsFile:
    """Maps a Statistics record onto a file.

    `create` zero-initializes the file; `open` attaches to an existing one.
    References to `stats` must be dropped before close().
    """

    def __init__(self, path: Union[str, Path], create: bool = False):
        self.path = Path(path)
        size = ctypes.sizeof(Statistics)
        if create:
            with open(self.path, "wb") as f:
                f.write(b"\0" * size)
        elif self.path.stat().st_size != size:
            raise ValueError(f"statistics file '{self.path}' has an unexpected size")
        fd = os.open(self.path, os.O_RDWR)
        try:
            self._mm = mmap.mmap(fd, size)
        finally:
            os.close(fd)
        self.stats = Statistics.from_buffer(self._mm)

    @classmethod
    def create(cls, path: Union[str, Path]) -> "StatisticsFile":
        return cls(path, create=True)

    @classmethod
    def open(cls, path: Union[str, Path]) -> "StatisticsFile":
        return cls(path)

    def close(self) -> None:
        if self._mm.closed:
            return
        self.stats = None
        try:
            self._mm.close()
        except BufferError:
            # A live Statistics view still exists; the mapping goes with it.
            log.debug("statistics mapping %s still referenced", self.path)

    def __enter__(self) -> "StatisticsFile":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
