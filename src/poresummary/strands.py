from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from .config import SummaryConfig
from .islands import Island, find_islands, merge_islands
from .models import StrandBounds

logger = logging.getLogger(__name__)


def _fmt_islands(islands: Sequence[Island]) -> str:
    return " ".join(f"[{a},{b})" for a, b in islands)


def template_only_bounds(num_events: int, config: SummaryConfig) -> StrandBounds:
    return StrandBounds(config.trim_start, num_events - config.trim_end, 0, 0)


def select_hairpin_island(islands: Sequence[Island], num_events: int) -> Optional[Island]:
    """Return the island closest to the middle of the read, if it lies in the middle third.

    The distance of an island to the middle is measured from whichever of its edges is
    closer; ties go to the earliest island.
    """
    if not islands:
        return None
    middle = num_events // 2

    def dist_to_middle(island: Island) -> int:
        return min(abs(island[0] - middle), abs(island[1] - middle))

    best = min(islands, key=dist_to_middle)
    if dist_to_middle(best) > num_events // 6:
        return None
    return best


def bounds_from_hairpin(
    islands: Sequence[Island],
    hairpin: Island,
    num_events: int,
    config: SummaryConfig,
) -> StrandBounds:
    """Template ends before the hairpin island, complement starts after it.

    An island touching the read start (or end) is open-pore signal, so the template
    starts after it (the complement ends before it).
    """
    template_start = config.trim_start
    if islands[0][0] < config.trim_start + config.trim_before_hairpin:
        template_start = islands[0][1]
    template_end = hairpin[0] - config.trim_before_hairpin

    complement_start = hairpin[1] + config.trim_after_hairpin
    complement_end = num_events - config.trim_end
    if islands[-1][1] > num_events - (config.trim_end + config.trim_after_hairpin):
        complement_end = islands[-1][0]
    if complement_end <= complement_start:
        complement_start = complement_end = 0

    return StrandBounds(template_start, template_end, complement_start, complement_end)


def detect_strand_bounds(
    means: Sequence[float] | np.ndarray,
    abasic_level: float,
    config: SummaryConfig,
    *,
    read_id: str = "",
) -> StrandBounds:
    """Split a read into template and complement around its hairpin.

    Returns template-only bounds when no credible hairpin is found. The caller must
    check that the template range is not empty.
    """
    num_events = len(means)
    if config.template_only:
        return template_only_bounds(num_events, config)

    logger.debug("num_events=%d abasic_level=%g", num_events, abasic_level)
    window_size, min_count = config.island_window
    islands: List[Island] = find_islands(
        means, abasic_level, window_size=window_size, min_count=min_count
    )
    islands = merge_islands(
        islands, max(config.trim_before_hairpin, config.trim_after_hairpin)
    )
    logger.debug("final_islands: %s", _fmt_islands(islands))

    if not islands:
        logger.info("template_only read_id=[%s]", read_id)
        return template_only_bounds(num_events, config)

    hairpin = select_hairpin_island(islands, num_events)
    if hairpin is None:
        logger.info(
            "no hairpin in middle third read_id=[%s] islands=[%s]",
            read_id,
            _fmt_islands(islands),
        )
        return template_only_bounds(num_events, config)

    logger.debug("hairpin_island [%d,%d)", hairpin[0], hairpin[1])
    return bounds_from_hairpin(islands, hairpin, num_events, config)
