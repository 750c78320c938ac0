"""
Basic test to verify package setup is correct.
"""

def test_package_imports():
    """Test that the package can be imported."""
    import smtfuzz
    assert smtfuzz.__version__ == "0.1.0"
    assert hasattr(smtfuzz, '__version__')


def test_package_structure():
    """Test that the subpackages are accessible."""
    from smtfuzz import fsm, run, solver, trace
    assert hasattr(fsm, "FSM")
    assert hasattr(run, "Fuzzer")
    assert "z3" in solver.KNOWN_SOLVERS
    assert hasattr(trace, "TracePlayer")
