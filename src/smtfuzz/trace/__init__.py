from .player import TracePlayer
from .tracer import Trace, TraceLine, Tracer, parse_trace, read_trace, write_trace

__all__ = [
    "Trace",
    "TraceLine",
    "TracePlayer",
    "Tracer",
    "parse_trace",
    "read_trace",
    "write_trace",
]
