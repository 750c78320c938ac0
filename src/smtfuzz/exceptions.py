"""
Exception classes for finer grained error handling.
"""


class SmtFuzzError(Exception):
    """Parent class for all our exceptions"""
    pass


class ConfigError(SmtFuzzError):
    """Raised on invalid configuration (bad flags, unconfigured backend, ...)"""
    pass


class SolverError(SmtFuzzError):
    """Raised when a solver backend reports a failure"""
    pass


class RegistryError(SmtFuzzError):
    """Raised when the solver manager registry invariants are violated"""
    pass


class UnknownIdError(RegistryError, KeyError):
    """Raised when a sort or term index is not known to the registry"""
    pass


class TraceError(SmtFuzzError):
    """Raised when a trace file is malformed or references unknown ids"""

    def __init__(self, msg: str, line_no: int = 0):
        if line_no:
            msg = f"{msg} (trace line {line_no})"
        super().__init__(msg)
        self.line_no = line_no


class DeltaDebugError(SmtFuzzError):
    """Raised when a trace cannot be minimized (e.g. it does not fail)"""
    pass
