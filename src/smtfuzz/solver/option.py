"""
Solver configuration options.

Options are passive data plus value generators. Whether an option may be
activated given the options that are already active is decided by the
caller (see SolverOptions.legal()), never by the option itself.
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Iterator, List, Mapping, Sequence, Set

from ..rng import RNGenerator


class SolverOption(ABC):
    """A named solver option with dependency and conflict sets."""

    def __init__(self,
                 name: str,
                 depends: Iterable[str] = (),
                 conflicts: Iterable[str] = ()):
        self._name = name
        self._depends: Set[str] = set(depends)
        self._conflicts: Set[str] = set(conflicts)

    def get_name(self) -> str:
        return self._name

    def get_depends(self) -> Set[str]:
        return self._depends

    def get_conflicts(self) -> Set[str]:
        return self._conflicts

    def add_depends(self, opt_name: str) -> None:
        self._depends.add(opt_name)

    def add_conflict(self, opt_name: str) -> None:
        self._conflicts.add(opt_name)

    @abstractmethod
    def pick_value(self, rng: RNGenerator) -> str:
        """Pick a random value from this option's domain, as text."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._name!r})"


class SolverOptionBool(SolverOption):

    def pick_value(self, rng: RNGenerator) -> str:
        return "true" if rng.flip_coin() else "false"


class SolverOptionInt(SolverOption):

    def __init__(self,
                 name: str,
                 depends: Iterable[str] = (),
                 conflicts: Iterable[str] = (),
                 min: int = 0,
                 max: int = 0):
        super().__init__(name, depends, conflicts)
        if min > max:
            raise ValueError(f"option '{name}': min {min} > max {max}")
        self.min = min
        self.max = max

    def pick_value(self, rng: RNGenerator) -> str:
        return str(rng.pick_int32(self.min, self.max))


class SolverOptionList(SolverOption):

    def __init__(self,
                 name: str,
                 depends: Iterable[str] = (),
                 conflicts: Iterable[str] = (),
                 values: Sequence[str] = ()):
        super().__init__(name, depends, conflicts)
        if not values:
            raise ValueError(f"option '{name}': empty value list")
        self.values: List[str] = list(values)

    def pick_value(self, rng: RNGenerator) -> str:
        return self.values[rng.pick_uint32() % len(self.values)]


class SolverOptions(Mapping[str, SolverOption]):
    """The option model of a backend, keyed by option name."""

    def __init__(self, options: Iterable[SolverOption] = ()):
        self._options: Dict[str, SolverOption] = {}
        for opt in options:
            self.add(opt)

    def add(self, option: SolverOption) -> None:
        if option.get_name() in self._options:
            raise ValueError(f"duplicate solver option '{option.get_name()}'")
        self._options[option.get_name()] = option

    def __getitem__(self, name: str) -> SolverOption:
        return self._options[name]

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._options))

    def __len__(self) -> int:
        return len(self._options)

    def legal(self, active: Iterable[str]) -> List[SolverOption]:
        """Return the options that may be activated next.

        An option is legal if it is not active yet, all of its dependencies
        are active, it conflicts with no active option and no active option
        conflicts with it.
        """
        active = set(active)
        res = []
        for name in self:
            opt = self._options[name]
            if name in active:
                continue
            if not opt.get_depends() <= active:
                continue
            if opt.get_conflicts() & active:
                continue
            if any(name in self._options[a].get_conflicts()
                   for a in active if a in self._options):
                continue
            res.append(opt)
        return res
