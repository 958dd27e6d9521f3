import numpy as np
import pytest

from poresummary.abasic import detect_abasic_level, is_low_abasic_level


def test_abasic_level_skips_top_percent():
    means = np.arange(1, 101, dtype=float)
    np.random.default_rng(0).shuffle(means)
    # rank floor(100 * 0.99) = 99 of the sorted means
    assert detect_abasic_level(means, top_percent=1.0) == 100.0
    assert detect_abasic_level(means, top_percent=10.0) == 91.0


def test_abasic_level_with_offset():
    means = [10.0, 20.0, 30.0, 40.0]
    assert detect_abasic_level(means, top_percent=25.0, top_offset=2.5) == 42.5


def test_abasic_level_open_pore_block():
    means = np.full(1000, 50.0)
    means[480:495] = 150.0
    assert detect_abasic_level(means) == 150.0


def test_abasic_level_zero_percent_is_max():
    assert detect_abasic_level([3.0, 1.0, 2.0], top_percent=0.0) == 3.0


def test_abasic_level_empty():
    with pytest.raises(ValueError):
        detect_abasic_level([])


def test_low_abasic_level():
    assert is_low_abasic_level(0.0)
    assert is_low_abasic_level(1.0)
    assert not is_low_abasic_level(1.5)
