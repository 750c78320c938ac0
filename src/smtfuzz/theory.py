"""
Theories and sort kinds.
"""
from enum import Enum
from typing import Iterable, Optional, Set


class Theory(Enum):
    """SMT theories gating which actions are legal."""
    ARRAY = "array"
    BOOL = "bool"
    BV = "bv"
    FP = "fp"
    INT = "int"
    QUANT = "quant"
    REAL = "real"
    STRING = "string"
    UF = "uf"


class SortKind(Enum):
    """Kinds of sorts; each kind belongs to exactly one theory."""
    ARRAY = "array"
    BOOL = "bool"
    BV = "bv"
    FP = "fp"
    FUN = "fun"
    INT = "int"
    REAL = "real"
    STRING = "string"

    @property
    def theory(self) -> Theory:
        return _SORT_KIND_THEORY[self]


_SORT_KIND_THEORY = {
    SortKind.ARRAY: Theory.ARRAY,
    SortKind.BOOL: Theory.BOOL,
    SortKind.BV: Theory.BV,
    SortKind.FP: Theory.FP,
    SortKind.FUN: Theory.UF,
    SortKind.INT: Theory.INT,
    SortKind.REAL: Theory.REAL,
    SortKind.STRING: Theory.STRING,
}

# Sort kinds that take no parameters; the solver manager keeps one
# canonical sort per such kind.
PARAMLESS_SORT_KINDS = (SortKind.BOOL, SortKind.INT, SortKind.REAL, SortKind.STRING)


def sort_kinds_of(theories: Iterable[Theory]) -> Set[SortKind]:
    """Return the sort kinds that belong to the given theories."""
    ths = set(theories)
    return {k for k in SortKind if k.theory in ths}


def sort_kind_for_theory(theory: Theory) -> Optional[SortKind]:
    for kind, th in _SORT_KIND_THEORY.items():
        if th == theory:
            return kind
    return None


def parse_theory(name: str) -> Theory:
    """Parse a theory name as given on the command line."""
    aliases = {
        "arrays": Theory.ARRAY,
        "bitvectors": Theory.BV,
        "bit-vectors": Theory.BV,
        "fp": Theory.FP,
        "floating-point": Theory.FP,
        "ints": Theory.INT,
        "integers": Theory.INT,
        "quantifiers": Theory.QUANT,
        "reals": Theory.REAL,
        "strings": Theory.STRING,
    }
    key = name.strip().lower()
    if key in aliases:
        return aliases[key]
    return Theory(key)


def resolve_theories(requested: Iterable[Theory],
                     supported: Iterable[Theory],
                     uf: bool = False) -> Set[Theory]:
    """Compute the enabled theory set.

    An empty request enables everything the backend supports. BOOL is always
    enabled; `uf` adds uninterpreted functions on top of the request.
    """
    supported = set(supported)
    enabled = set(requested) or set(supported)
    if uf:
        enabled.add(Theory.UF)
    enabled.add(Theory.BOOL)
    return enabled & (supported | {Theory.BOOL})
