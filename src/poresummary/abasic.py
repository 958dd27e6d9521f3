from __future__ import annotations

import math
from typing import Sequence

import numpy as np

# Abasic levels at or below this indicate a broken or empty channel.
LOW_ABASIC_LEVEL_CUTOFF = 1.0


def detect_abasic_level(
    means: Sequence[float] | np.ndarray,
    *,
    top_percent: float = 1.0,
    top_offset: float = 0.0,
) -> float:
    """Crude estimate of the open-pore (abasic) current level of a read.

    The top ``top_percent`` percent of event means are treated as outliers; the
    highest remaining mean, plus ``top_offset``, is the abasic level.
    """
    s = np.sort(np.asarray(means, dtype=float))
    if s.size == 0:
        raise ValueError("cannot detect abasic level without events")
    rank = int(math.floor(s.size * (1.0 - top_percent / 100.0)))
    rank = min(max(rank, 0), s.size - 1)
    return float(s[rank]) + top_offset


def is_low_abasic_level(level: float) -> bool:
    return level <= LOW_ABASIC_LEVEL_CUTOFF
