from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np

from .models import COMPLEMENT, TEMPLATE, CalibratedEvent, EventSequence, StrandBounds

# Events noisier than this are dropped.
MAX_EVENT_STDV = 4.0


def filter_mask(raw_events: np.ndarray, abasic_level: float) -> np.ndarray:
    """Boolean mask of events below the abasic level and not too noisy."""
    return (raw_events["mean"] < abasic_level) & (raw_events["stdv"] <= MAX_EVENT_STDV)


def filter_event(raw_event: np.void, abasic_level: float) -> bool:
    return bool(raw_event["mean"] < abasic_level and raw_event["stdv"] <= MAX_EVENT_STDV)


def _first_kept(keep: np.ndarray, start: int, end: int) -> Optional[int]:
    if end <= start:
        return None
    idx = np.flatnonzero(keep[start:end])
    if idx.size == 0:
        return None
    return start + int(idx[0])


def calibrate_strands(
    raw_events: np.ndarray,
    bounds: StrandBounds,
    abasic_level: float,
    sampling_rate: float,
    *,
    scale_strands_together: bool = False,
) -> Tuple[EventSequence, EventSequence]:
    """Build the filtered, time-calibrated event sequence of each strand.

    Event start times are measured from the first kept event of the strand, or of the
    template strand for both strands when they are scaled together (so that relative
    timing between strands is preserved).
    """
    keep = filter_mask(raw_events, abasic_level)
    out: List[EventSequence] = []
    for st in (TEMPLATE, COMPLEMENT):
        start, end = bounds.strand(st)
        if end <= start:
            out.append(())
            continue
        origin_start, origin_end = bounds.strand(TEMPLATE if scale_strands_together else st)
        origin = _first_kept(keep, origin_start, origin_end)
        if origin is None:
            origin = origin_start
        t0 = float(raw_events["start"][origin])

        events = []
        for j in range(start, end):
            if not keep[j]:
                continue
            e = raw_events[j]
            events.append(
                CalibratedEvent(
                    mean=float(e["mean"]),
                    corrected_mean=float(e["mean"]),
                    stdev=float(e["stdv"]),
                    start=(float(e["start"]) - t0) / sampling_rate,
                    length=float(e["length"]) / sampling_rate,
                )
            )
        out.append(tuple(events))
    return out[TEMPLATE], out[COMPLEMENT]


def time_length(events: EventSequence) -> float:
    """Time from the sequence origin to the end of its last event, in seconds."""
    if not events:
        return 0.0
    return events[-1].start + events[-1].length


def mean_stdev(values: np.ndarray | List[float]) -> Tuple[float, float]:
    """Mean and population standard deviation."""
    a = np.asarray(values, dtype=float)
    if a.size == 0:
        raise ValueError("mean_stdev of empty sequence")
    return float(a.mean()), float(a.std())


def event_means(events: EventSequence) -> np.ndarray:
    return np.fromiter((ev.mean for ev in events), dtype=float, count=len(events))
