"""
Tests for the seeded random number generator.
"""
import pytest
from hypothesis import given, strategies as st

from smtfuzz.rng import RNGenerator

seeds = st.integers(min_value=0, max_value=0xFFFFFFFF)


@given(seeds)
def test_same_seed_same_sequence(seed):
    """Two generators with the same seed produce the same draws."""
    a = RNGenerator(seed)
    b = RNGenerator(seed)
    draws_a = [a.pick_uint32() for _ in range(20)] + [a.pick_string(8), a.pick_bin_str(16)]
    draws_b = [b.pick_uint32() for _ in range(20)] + [b.pick_string(8), b.pick_bin_str(16)]
    assert draws_a == draws_b


@given(seeds, st.integers(-1000, 1000), st.integers(0, 1000))
def test_pick_int32_in_range(seed, lo, span):
    """pick_int32 stays within the inclusive bounds."""
    rng = RNGenerator(seed)
    hi = lo + span
    for _ in range(10):
        assert lo <= rng.pick_int32(lo, hi) <= hi


@given(seeds, st.lists(st.integers(0, 5), min_size=1, max_size=8))
def test_pick_weighted_never_picks_zero_weight(seed, weights):
    """Items with weight zero are never selected."""
    if sum(weights) == 0:
        weights[0] = 1
    rng = RNGenerator(seed)
    items = list(range(len(weights)))
    for _ in range(20):
        assert weights[rng.pick_weighted(items, weights)] > 0


def test_seed_is_truncated_to_32_bits():
    """Seeds are taken modulo 2^32."""
    assert RNGenerator(0x1_0000_0005).seed == 5
    assert RNGenerator(42).seed == 42


def test_pick_with_prob_extremes():
    """Probability 0 never fires, probability 1 always fires."""
    rng = RNGenerator(7)
    assert not any(rng.pick_with_prob(0.0) for _ in range(100))
    assert all(rng.pick_with_prob(1.0) for _ in range(100))


def test_pick_bin_str():
    """Binary strings have the requested width and only 0/1 digits."""
    rng = RNGenerator(1)
    s = rng.pick_bin_str(33)
    assert len(s) == 33
    assert set(s) <= {"0", "1"}


def test_pick_string_alphabet():
    """Random strings use lower case letters and digits."""
    rng = RNGenerator(3)
    for _ in range(50):
        s = rng.pick_string(8)
        assert len(s) <= 8
        assert all(c.islower() or c.isdigit() for c in s)


def test_invalid_arguments():
    """Empty ranges and empty candidate lists are rejected."""
    rng = RNGenerator(0)
    with pytest.raises(ValueError):
        rng.pick_int32(5, 4)
    with pytest.raises(ValueError):
        rng.pick([])
    with pytest.raises(ValueError):
        rng.pick_weighted([1, 2], [0, 0])
    with pytest.raises(ValueError):
        rng.pick_weighted([1, 2], [1])
