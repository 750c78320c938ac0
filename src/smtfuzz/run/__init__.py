from .errors import ErrorEntry, ErrorMap, normalize_error
from .fuzzer import (
    EXIT_ERROR,
    EXIT_ERROR_CONFIG,
    EXIT_OK,
    Fuzzer,
    RunOutcome,
    RunResult,
)
from .statistics import Statistics, StatisticsFile

__all__ = [
    "EXIT_ERROR",
    "EXIT_ERROR_CONFIG",
    "EXIT_OK",
    "ErrorEntry",
    "ErrorMap",
    "Fuzzer",
    "RunOutcome",
    "RunResult",
    "Statistics",
    "StatisticsFile",
    "normalize_error",
]
