from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Tuple


ISLAND_MODES = ("exact", "sliding")


@dataclass(frozen=True)
class SummaryConfig:
    """Settings shared by every read of a batch.

    Attributes
    ----------
    min_events:
        Minimum number of events a strand needs to be scaled (and, together with the
        start/end trims, the minimum number of raw events a read needs at all).
    max_events:
        Only the first ``max_events`` raw events of a read are used.
    event_detection_run:
        Event-detection analysis to read (``EventDetection_<run>``).
    abasic_top_percent:
        Percent of highest-current events ignored when estimating the abasic level.
    abasic_top_offset:
        Added to the estimated abasic level.
    hairpin_window_size, hairpin_window_load:
        Window used by the sliding island finder: an island needs ``load`` high
        events within ``size`` consecutive events.
    island_mode:
        ``"exact"`` (contiguous runs of ``exact_island_length`` high events) or
        ``"sliding"`` (hairpin window size/load).
    template_only:
        Do not look for a hairpin; the whole read is template.
    trim_margins:
        Events trimmed after read start, before read end, before hairpin start and
        after hairpin end.
    scale_strands_together:
        Estimate one shared scaling for both strands when both are long enough.
    """

    min_events: int = 10
    max_events: int = 100_000
    event_detection_run: str = "000"
    abasic_top_percent: float = 1.0
    abasic_top_offset: float = 0.0
    hairpin_window_size: int = 10
    hairpin_window_load: int = 5
    island_mode: str = "exact"
    exact_island_length: int = 5
    template_only: bool = False
    trim_margins: Tuple[int, int, int, int] = (50, 50, 50, 50)
    scale_strands_together: bool = False
    min_sampling_rate: float = 1000.0
    max_sampling_rate: float = 10000.0
    annotation_prefix: str = "Poresummary_"

    def __post_init__(self) -> None:
        # Accept any sequence of margins (e.g. a list from argparse).
        object.__setattr__(self, "trim_margins", tuple(int(m) for m in self.trim_margins))

        if self.min_events < 1:
            raise ValueError("min_events must be >= 1")
        if self.max_events < self.min_events:
            raise ValueError("max_events must be >= min_events")
        if not 0.0 <= self.abasic_top_percent < 100.0:
            raise ValueError("abasic_top_percent must be in [0, 100)")
        if self.hairpin_window_load < 1 or self.hairpin_window_size < self.hairpin_window_load:
            raise ValueError("hairpin window must satisfy 1 <= load <= size")
        if self.exact_island_length < 1:
            raise ValueError("exact_island_length must be >= 1")
        if self.island_mode not in ISLAND_MODES:
            raise ValueError(f"island_mode must be one of {', '.join(ISLAND_MODES)}")
        if len(self.trim_margins) != 4 or any(m < 0 for m in self.trim_margins):
            raise ValueError("trim_margins must be 4 non-negative integers")
        if self.min_sampling_rate > self.max_sampling_rate:
            raise ValueError("min_sampling_rate must be <= max_sampling_rate")
        if not self.event_detection_run:
            raise ValueError("event_detection_run must not be empty")

    @property
    def trim_start(self) -> int:
        return self.trim_margins[0]

    @property
    def trim_end(self) -> int:
        return self.trim_margins[1]

    @property
    def trim_before_hairpin(self) -> int:
        return self.trim_margins[2]

    @property
    def trim_after_hairpin(self) -> int:
        return self.trim_margins[3]

    @property
    def island_window(self) -> Tuple[int, int]:
        """(window size, minimum high events in window) for the configured island mode."""
        if self.island_mode == "exact":
            return self.exact_island_length, self.exact_island_length
        return self.hairpin_window_size, self.hairpin_window_load

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["trim_margins"] = list(self.trim_margins)
        return d
