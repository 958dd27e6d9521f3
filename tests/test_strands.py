import numpy as np

from poresummary.config import SummaryConfig
from poresummary.models import StrandBounds
from poresummary.strands import bounds_from_hairpin, detect_strand_bounds, select_hairpin_island


def _means(n: int, *islands: tuple) -> np.ndarray:
    means = np.full(n, 50.0)
    for a, b in islands:
        means[a:b] = 150.0
    return means


def test_hairpin_in_middle_splits_read():
    bounds = detect_strand_bounds(_means(1000, (495, 505)), 150.0, SummaryConfig())
    assert bounds == StrandBounds(50, 445, 555, 950)


def test_hairpin_block_before_middle():
    bounds = detect_strand_bounds(_means(1000, (480, 495)), 150.0, SummaryConfig())
    assert bounds == StrandBounds(50, 430, 545, 950)


def test_island_outside_middle_third_is_not_a_hairpin():
    bounds = detect_strand_bounds(_means(1000, (0, 10)), 150.0, SummaryConfig())
    assert bounds == StrandBounds(50, 950, 0, 0)


def test_no_islands_gives_template_only():
    bounds = detect_strand_bounds(_means(1000), 150.0, SummaryConfig())
    assert bounds == StrandBounds(50, 950, 0, 0)
    assert not bounds.has_strand(1)


def test_template_only_setting_ignores_hairpin():
    cfg = SummaryConfig(template_only=True)
    bounds = detect_strand_bounds(_means(1000, (495, 505)), 150.0, cfg)
    assert bounds == StrandBounds(50, 950, 0, 0)


def test_open_pore_at_read_start_moves_template_start():
    bounds = detect_strand_bounds(_means(1000, (0, 8), (495, 505)), 150.0, SummaryConfig())
    assert bounds.template_start == 8
    assert bounds.template_end == 445


def test_open_pore_at_read_end_moves_complement_end():
    bounds = detect_strand_bounds(_means(1000, (495, 505), (995, 1000)), 150.0, SummaryConfig())
    assert bounds == StrandBounds(50, 445, 555, 995)


def test_sliding_mode_finds_broken_hairpin():
    means = np.full(1000, 50.0)
    means[[495, 496, 498, 499, 501]] = 150.0

    exact = detect_strand_bounds(means, 150.0, SummaryConfig())
    assert exact == StrandBounds(50, 950, 0, 0)

    sliding = detect_strand_bounds(means, 150.0, SummaryConfig(island_mode="sliding"))
    assert sliding == StrandBounds(50, 445, 552, 950)


def test_select_hairpin_island_middle_third_edge():
    assert select_hairpin_island([(666, 670)], 1000) == (666, 670)
    assert select_hairpin_island([(667, 670)], 1000) is None
    assert select_hairpin_island([], 1000) is None


def test_select_hairpin_island_tie_goes_to_first():
    assert select_hairpin_island([(490, 495), (505, 510)], 1000) == (490, 495)


def test_complement_clamped_away_is_absent():
    cfg = SummaryConfig(trim_margins=(50, 50, 50, 200))
    bounds = bounds_from_hairpin([(400, 410), (600, 800)], (400, 410), 1000, cfg)
    # trailing island pulls the complement end before its start
    assert bounds == StrandBounds(50, 350, 0, 0)
