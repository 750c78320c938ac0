"""
Tests for the solver option model.
"""
import pytest

from smtfuzz.rng import RNGenerator
from smtfuzz.solver.option import (
    SolverOptionBool,
    SolverOptionInt,
    SolverOptionList,
    SolverOptions,
)


def _model():
    return SolverOptions([
        SolverOptionBool("a"),
        SolverOptionBool("b", depends=["a"]),
        SolverOptionBool("c", conflicts=["a"]),
        SolverOptionInt("n", min=1, max=3),
    ])


def test_legal_without_active_options():
    """Options without dependencies are legal initially."""
    legal = {o.get_name() for o in _model().legal([])}
    assert legal == {"a", "c", "n"}


def test_dependency_enables_option():
    """An option becomes legal once all its dependencies are active."""
    legal = {o.get_name() for o in _model().legal(["a"])}
    assert "b" in legal
    assert "a" not in legal


def test_conflicts_are_symmetric():
    """Conflicts exclude an option in both directions."""
    model = _model()
    assert "c" not in {o.get_name() for o in model.legal(["a"])}
    assert "a" not in {o.get_name() for o in model.legal(["c"])}


def test_added_conflict_and_dependency():
    """Dependencies and conflicts can be added after construction."""
    opt = SolverOptionBool("x")
    opt.add_depends("y")
    opt.add_conflict("z")
    assert opt.get_depends() == {"y"}
    assert opt.get_conflicts() == {"z"}


def test_values_in_domain():
    """Picked values come from the option's domain."""
    rng = RNGenerator(11)
    b = SolverOptionBool("b")
    i = SolverOptionInt("i", min=-2, max=2)
    lst = SolverOptionList("l", values=["x", "y"])
    for _ in range(50):
        assert b.pick_value(rng) in ("true", "false")
        assert -2 <= int(i.pick_value(rng)) <= 2
        assert lst.pick_value(rng) in ("x", "y")


def test_invalid_definitions():
    """Empty domains and duplicate names are rejected."""
    with pytest.raises(ValueError):
        SolverOptionInt("i", min=3, max=2)
    with pytest.raises(ValueError):
        SolverOptionList("l", values=[])
    with pytest.raises(ValueError):
        SolverOptions([SolverOptionBool("a"), SolverOptionBool("a")])


def test_mapping_interface():
    """The model behaves like a read-only mapping ordered by name."""
    model = _model()
    assert len(model) == 4
    assert list(model) == ["a", "b", "c", "n"]
    assert model["n"].max == 3
