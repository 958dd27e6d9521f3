from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

Island = Tuple[int, int]


def find_islands(
    means: Sequence[float] | np.ndarray,
    threshold: float,
    *,
    window_size: int,
    min_count: int,
) -> List[Island]:
    """Find runs of high-current events ("islands").

    An event is high when its mean is ``>= threshold``. The scan keeps a window of at
    most ``window_size`` events that never starts on a low event. As soon as the window
    holds ``min_count`` high events, an island opens at the window start, is extended
    over the high events that immediately follow, and the scan restarts after it.

    With ``window_size == min_count`` this returns exactly the maximal contiguous runs
    of at least ``min_count`` high events; a larger window tolerates short dips.
    In that sliding case an island ends after the high run that follows the point
    where the count is reached, not at that point itself; once islands are merged
    both endings give the same strand bounds.

    Returns ordered, disjoint, half-open ``(start, end)`` ranges.
    """
    if min_count < 1 or window_size < min_count:
        raise ValueError("window must satisfy 1 <= min_count <= window_size")

    high = np.asarray(means, dtype=float) >= threshold
    n = int(high.size)

    islands: List[Island] = []
    window_start = 0
    window_count = 0
    i = 0
    while i < n:
        if high[i]:
            # slide the window so that it ends at i
            while window_start + window_size <= i:
                if high[window_start]:
                    window_count -= 1
                window_start += 1
            while window_start < i and not high[window_start]:
                window_start += 1
            window_count += 1
            if window_count >= min_count:
                end = i + 1
                while end < n and high[end]:
                    end += 1
                islands.append((window_start, end))
                logger.debug("island [%d,%d)", window_start, end)
                window_start = end
                window_count = 0
                i = end
                continue
        i += 1
    return islands


def merge_islands(islands: Sequence[Island], radius: int) -> List[Island]:
    """Merge consecutive islands separated by at most ``radius`` events.

    Merging restarts from the beginning after every merge, so no two islands of the
    result are within ``radius`` of each other.
    """
    out = list(islands)
    i = 1
    while i < len(out):
        prev, cur = out[i - 1], out[i]
        if cur[0] - prev[1] <= radius:
            logger.debug(
                "merge_islands [%d,%d) with [%d,%d)", prev[0], prev[1], cur[0], cur[1]
            )
            out[i - 1] = (prev[0], max(prev[1], cur[1]))
            del out[i]
            i = 1
        else:
            i += 1
    return out
