"""
Generic registry of the sorts and terms a solver backend creates.

The registry never stores backend handles as dictionary keys directly. Each
backend supplies two hash functors (term handle -> hashable key, sort handle
-> hashable key) that define what identity means for its opaque handles.
Everything outside the backend addresses sorts and terms by the stable
integer index assigned here.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Hashable, Iterable, List, Optional, Set, Tuple

from .exceptions import RegistryError, UnknownIdError
from .rng import RNGenerator
from .theory import SortKind, Theory

if TYPE_CHECKING:
    from .solver.result import SolverResult

log = logging.getLogger(__name__)

HashFunc = Callable[[Any], Hashable]


class LeafKind(Enum):
    """How a term came to be."""
    CONST = "const"
    VALUE = "value"
    VAR = "var"
    COMPOSITE = "composite"


@dataclass
class SortData:
    index: int
    handle: Any
    kind: SortKind
    params: Tuple[Any, ...] = ()

    @property
    def theory(self) -> Theory:
        return self.kind.theory

    @property
    def id(self) -> str:
        return f"s{self.index}"


@dataclass
class TermData:
    index: int
    handle: Any
    sort: int
    theory: Theory
    leaf: LeafKind = LeafKind.COMPOSITE
    children: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def id(self) -> str:
        return f"t{self.index}"


def parse_id(token: str, prefix: str) -> int:
    """Parse a sort ('s12') or term ('t12') id into its index."""
    if len(token) < 2 or token[0] != prefix or not token[1:].isdigit():
        raise ValueError(f"expected {prefix}<n>, got '{token}'")
    return int(token[1:])


class SolverManager(ABC):
    """Registry of live sorts/terms plus the state of the active solver.

    Subclasses bind the registry to one backend by providing the hash
    functors and the get_sort / ensure_sort / copy_term / copy_sort /
    configure hooks.
    """

    def __init__(self,
                 rng: RNGenerator,
                 enabled_theories: Iterable[Theory],
                 term_hash: HashFunc,
                 sort_hash: HashFunc,
                 linear: bool = False):
        self.rng = rng
        self.enabled_theories: Set[Theory] = set(enabled_theories)
        self.linear = linear
        self._term_hash = term_hash
        self._sort_hash = sort_hash
        self._solver: Any = None

        self._sorts: Dict[int, SortData] = {}
        self._sort_ids: Dict[Hashable, int] = {}
        self._terms: Dict[int, TermData] = {}
        self._term_ids: Dict[Hashable, int] = {}
        self._terms_by_sort: Dict[int, List[int]] = {}
        self._canonical_sorts: Dict[SortKind, int] = {}
        self._n_symbols = 0

        self.sat_called = False
        self.sat_result: Optional[SolverResult] = None
        self.n_push_levels = 0
        self.n_assertions = 0
        self.active_options: Dict[str, str] = {}

        self.configure()

    # -- solver ------------------------------------------------------------

    def set_solver(self, solver: Any) -> None:
        """Install the active solver; anything tracked so far is dropped."""
        if self._sorts or self._terms:
            log.debug("replacing solver, dropping %d sorts and %d terms",
                      len(self._sorts), len(self._terms))
            self.clear()
        self._solver = solver

    def get_solver(self) -> Any:
        return self._solver

    # -- backend hooks -----------------------------------------------------

    @abstractmethod
    def get_sort(self, term: Any) -> Any:
        """Return the backend sort handle of a backend term handle."""
        ...

    @abstractmethod
    def ensure_sort(self, theory: Theory) -> int:
        """Make sure a sort of `theory` is registered; return its index."""
        ...

    @abstractmethod
    def copy_term(self, term: Any) -> Any:
        """Return a handle to `term` the registry may retain."""
        ...

    @abstractmethod
    def copy_sort(self, sort: Any) -> Any:
        """Return a handle to `sort` the registry may retain."""
        ...

    def configure(self) -> None:
        """Backend specific setup, called once on construction."""
        pass

    # -- registration ------------------------------------------------------

    def add_sort(self, sort: Any, kind: SortKind, params: Tuple[Any, ...] = ()) -> int:
        """Register a sort handle and return its index.

        Registering a handle that is already known returns the existing index
        if the metadata agrees, and raises RegistryError otherwise.
        """
        key = self._sort_hash(sort)
        params = tuple(params)
        if key in self._sort_ids:
            data = self._sorts[self._sort_ids[key]]
            if data.kind != kind or (params and data.params and data.params != params):
                raise RegistryError(
                    f"sort {data.id} already registered as {data.kind.value}"
                    f"{list(data.params)}, not {kind.value}{list(params)}")
            return data.index
        for p in params:
            if kind in (SortKind.ARRAY, SortKind.FUN) and p not in self._sorts:
                raise UnknownIdError(f"unknown sort s{p}")
        index = len(self._sorts) + 1
        self._sorts[index] = SortData(index, self.copy_sort(sort), kind, params)
        self._sort_ids[key] = index
        self._terms_by_sort[index] = []
        return index

    def add_term(self,
                 term: Any,
                 sort: int,
                 leaf: LeafKind = LeafKind.COMPOSITE,
                 theory: Optional[Theory] = None,
                 children: Iterable[int] = ()) -> int:
        """Register a term handle of a registered sort and return its index.

        All children of a composite term must already be registered.
        """
        if sort not in self._sorts:
            raise UnknownIdError(f"unknown sort s{sort}")
        children = tuple(children)
        for c in children:
            if c not in self._terms:
                raise UnknownIdError(f"unknown term t{c}")
        key = self._term_hash(term)
        if key in self._term_ids:
            data = self._terms[self._term_ids[key]]
            if data.sort != sort:
                raise RegistryError(
                    f"term {data.id} already registered with sort s{data.sort}, "
                    f"not s{sort}")
            return data.index
        if theory is None:
            theory = self._sorts[sort].theory
        index = len(self._terms) + 1
        self._terms[index] = TermData(index, self.copy_term(term), sort, theory,
                                      leaf, children)
        self._term_ids[key] = index
        self._terms_by_sort[sort].append(index)
        return index

    def _ensure_canonical_sort(self, kind: SortKind, make: Callable[[], Any]) -> int:
        if kind not in self._canonical_sorts:
            self._canonical_sorts[kind] = self.add_sort(make(), kind)
        return self._canonical_sorts[kind]

    # -- lookup ------------------------------------------------------------

    def find_sort(self, sort: Any) -> Optional[int]:
        return self._sort_ids.get(self._sort_hash(sort))

    def find_term(self, term: Any) -> Optional[int]:
        return self._term_ids.get(self._term_hash(term))

    def get_sort_data(self, index: int) -> SortData:
        try:
            return self._sorts[index]
        except KeyError:
            raise UnknownIdError(f"unknown sort s{index}") from None

    def get_term_data(self, index: int) -> TermData:
        try:
            return self._terms[index]
        except KeyError:
            raise UnknownIdError(f"unknown term t{index}") from None

    def sort_handle(self, index: int) -> Any:
        return self.get_sort_data(index).handle

    def term_handle(self, index: int) -> Any:
        return self.get_term_data(index).handle

    @property
    def n_sorts(self) -> int:
        return len(self._sorts)

    @property
    def n_terms(self) -> int:
        return len(self._terms)

    # -- queries for the FSM ----------------------------------------------

    def sorts(self, kinds: Optional[Iterable[SortKind]] = None) -> List[int]:
        ks = None if kinds is None else set(kinds)
        return [i for i, d in self._sorts.items() if ks is None or d.kind in ks]

    def has_sort(self, kinds: Optional[Iterable[SortKind]] = None) -> bool:
        return bool(self.sorts(kinds))

    def pick_sort(self, kinds: Optional[Iterable[SortKind]] = None) -> int:
        return self.rng.pick(self.sorts(kinds))

    def terms(self,
              sort: Optional[int] = None,
              kinds: Optional[Iterable[SortKind]] = None,
              leaf: Optional[LeafKind] = None) -> List[int]:
        if sort is not None:
            candidates = self._terms_by_sort.get(sort, [])
        else:
            candidates = list(self._terms)
        ks = None if kinds is None else set(kinds)
        res = []
        for i in candidates:
            d = self._terms[i]
            if ks is not None and self._sorts[d.sort].kind not in ks:
                continue
            if leaf is not None and d.leaf != leaf:
                continue
            res.append(i)
        return res

    def has_term(self,
                 sort: Optional[int] = None,
                 kinds: Optional[Iterable[SortKind]] = None,
                 leaf: Optional[LeafKind] = None) -> bool:
        return bool(self.terms(sort, kinds, leaf))

    def pick_term(self,
                  sort: Optional[int] = None,
                  kinds: Optional[Iterable[SortKind]] = None,
                  leaf: Optional[LeafKind] = None) -> int:
        return self.rng.pick(self.terms(sort, kinds, leaf))

    def sorts_with_terms(self, kinds: Optional[Iterable[SortKind]] = None) -> List[int]:
        return [s for s in self.sorts(kinds) if self._terms_by_sort[s]]

    def pick_sort_with_terms(self, kinds: Optional[Iterable[SortKind]] = None) -> int:
        return self.rng.pick(self.sorts_with_terms(kinds))

    def new_symbol(self, prefix: str = "x") -> str:
        sym = f"{prefix}{self._n_symbols}"
        self._n_symbols += 1
        return sym

    # -- solver state ------------------------------------------------------

    def reset_sat(self) -> None:
        self.sat_called = False
        self.sat_result = None

    def clear(self) -> None:
        """Release all tracked sorts, terms and solver state."""
        self._sorts.clear()
        self._sort_ids.clear()
        self._terms.clear()
        self._term_ids.clear()
        self._terms_by_sort.clear()
        self._canonical_sorts.clear()
        self._n_symbols = 0
        self.reset_sat()
        self.n_push_levels = 0
        self.n_assertions = 0
        self.active_options.clear()
