"""
Tests for Z3 solver backend.
"""
import pytest

z3 = pytest.importorskip("z3")

from smtfuzz.exceptions import SolverError
from smtfuzz.rng import RNGenerator
from smtfuzz.solver import SolverResult, Z3Solver, Z3SolverManager
from smtfuzz.theory import SortKind, Theory


def _solver():
    solver = Z3Solver()
    solver.new()
    return solver


def test_z3_solver_unsat():
    """Test that Z3 correctly identifies unsatisfiable constraints."""
    solver = _solver()
    i = solver.mk_sort(SortKind.INT, ())
    x = solver.mk_const(i, "x")
    ten = solver.mk_value(i, SortKind.INT, "10")
    five = solver.mk_value(i, SortKind.INT, "5")
    solver.assert_formula(solver.mk_term("int.gt", [x, ten], []))
    solver.assert_formula(solver.mk_term("int.lt", [x, five], []))
    assert solver.check_sat() == SolverResult.UNSAT


def test_z3_solver_bitvector_model():
    """Test Z3 with bitvector constraints and model values."""
    solver = _solver()
    bv8 = solver.mk_sort(SortKind.BV, (8,))
    x = solver.mk_const(bv8, "x")
    one = solver.mk_value(bv8, SortKind.BV, "#b00000001")
    solver.assert_formula(solver.mk_term("=", [solver.mk_term("bvadd", [x, one], []), one], []))
    assert solver.check_sat() == SolverResult.SAT
    assert solver.get_value([x]) == ["0"]


def test_z3_solver_push_pop():
    """Test Z3 push/pop for backtracking."""
    solver = _solver()
    b = solver.mk_sort(SortKind.BOOL, ())
    p = solver.mk_const(b, "p")
    solver.assert_formula(p)
    solver.push(2)
    solver.assert_formula(solver.mk_term("not", [p], []))
    assert solver.check_sat() == SolverResult.UNSAT
    solver.pop(2)
    assert solver.check_sat() == SolverResult.SAT
    np = solver.mk_term("not", [p], [])
    assert solver.check_sat_assuming([np]) == SolverResult.UNSAT
    solver.reset_assertions()
    assert solver.check_sat_assuming([np]) == SolverResult.SAT


def test_z3_indexed_and_function_terms():
    """Indexed bit-vector operators and function application."""
    solver = _solver()
    bv8 = solver.mk_sort(SortKind.BV, (8,))
    x = solver.mk_const(bv8, "x")
    assert solver.get_sort(solver.mk_term("extract", [x], [3, 0])).size() == 4
    assert solver.get_sort(solver.mk_term("zero_extend", [x], [8])).size() == 16
    assert solver.get_sort(solver.mk_term("repeat", [x], [3])).size() == 24
    i = solver.mk_sort(SortKind.INT, ())
    fsort = solver.mk_sort(SortKind.FUN, (i, bv8))
    f = solver.mk_const(fsort, "f")
    assert solver.get_sort(f) == fsort
    app = solver.mk_term("apply", [f, solver.mk_const(i, "y")], [])
    assert solver.get_sort(app).eq(bv8)


def test_z3_options():
    """Options from the option model can be set; bad ones are rejected."""
    solver = _solver()
    model = solver.get_option_model()
    assert "smt.core.minimize" in model
    assert model["smt.core.minimize"].get_depends() == {"unsat_core"}
    solver.set_opt("smt.random_seed", "17")
    solver.set_opt("unsat_core", "true")
    with pytest.raises(SolverError):
        solver.set_opt("no.such.option", "1")


def test_z3_instances_are_independent():
    """Each solver instance has its own context."""
    a = _solver()
    b = _solver()
    assert a.ctx is not b.ctx
    a.delete()
    assert not a.is_initialized()
    assert b.is_initialized()
    with pytest.raises(SolverError):
        a.check_sat()


def test_z3_manager_registry():
    """Hash-consed z3 handles map to one registry index."""
    solver = _solver()
    mgr = Z3SolverManager(RNGenerator(0), [Theory.BV, Theory.BOOL])
    mgr.set_solver(solver)
    s1 = mgr.add_sort(solver.mk_sort(SortKind.BV, (8,)), SortKind.BV, (8,))
    s2 = mgr.add_sort(solver.mk_sort(SortKind.BV, (8,)), SortKind.BV, (8,))
    assert s1 == s2
    t1 = mgr.add_term(solver.mk_const(mgr.sort_handle(s1), "x"), s1)
    t2 = mgr.add_term(solver.mk_const(mgr.sort_handle(s1), "x"), s1)
    assert t1 == t2
    b = mgr.ensure_sort(Theory.BOOL)
    assert mgr.find_sort(z3.BoolSort(solver.ctx)) == b


def test_z3_fp_terms_stay_in_solver_context():
    """Floating-point terms are built in the solver's own context."""
    solver = _solver()
    fp = solver.mk_sort(SortKind.FP, (8, 24))
    x = solver.mk_const(fp, "x0")
    for op in ("fp.abs", "fp.neg", "fp.isNaN", "fp.isZero"):
        assert solver.mk_term(op, [x], []).ctx is solver.ctx
    for op in ("fp.add", "fp.mul", "fp.lt", "fp.leq", "fp.eq"):
        assert solver.mk_term(op, [x, x], []).ctx is solver.ctx


def test_z3_manager_distinct_terms_get_distinct_indices():
    """Structurally different terms of different sorts never share an index."""
    solver = _solver()
    mgr = Z3SolverManager(RNGenerator(0), [Theory.REAL, Theory.FP, Theory.BOOL])
    mgr.set_solver(solver)
    real = mgr.add_sort(solver.mk_sort(SortKind.REAL, ()), SortKind.REAL)
    fp = mgr.add_sort(solver.mk_sort(SortKind.FP, (8, 24)), SortKind.FP, (8, 24))
    t_real = mgr.add_term(solver.mk_value(mgr.sort_handle(real), SortKind.REAL, "253/43"), real)
    x = mgr.add_term(solver.mk_const(mgr.sort_handle(fp), "x0"), fp)
    x_handle = mgr.term_handle(x)
    t_add = mgr.add_term(solver.mk_term("fp.add", [x_handle, x_handle], []), fp)
    assert len({t_real, x, t_add}) == 3
    assert mgr.get_term_data(t_add).sort == fp
    assert mgr.find_term(solver.mk_term("fp.add", [x_handle, x_handle], [])) == t_add
    assert mgr.find_term(solver.mk_value(mgr.sort_handle(real), SortKind.REAL, "253/43")) == t_real


def test_z3_keys_compare_structurally():
    """Registry keys of equal ASTs are equal; keys of other contexts are not."""
    from smtfuzz.solver.z3_solver import z3_term_hash

    a = _solver()
    b = _solver()
    bv8_a = a.mk_sort(SortKind.BV, (8,))
    bv8_b = b.mk_sort(SortKind.BV, (8,))
    assert z3_term_hash(a.mk_const(bv8_a, "x")) == z3_term_hash(a.mk_const(bv8_a, "x"))
    assert z3_term_hash(a.mk_const(bv8_a, "x")) != z3_term_hash(a.mk_const(bv8_a, "y"))
    assert z3_term_hash(a.mk_const(bv8_a, "x")) != z3_term_hash(b.mk_const(bv8_b, "x"))
