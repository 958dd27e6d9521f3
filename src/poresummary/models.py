from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import NamedTuple, Optional, Tuple

import numpy as np

TEMPLATE = 0
COMPLEMENT = 1
STRAND_NAMES = ("template", "complement")

# Event-detection table as stored by the device (start/length in sample ticks).
RAW_EVENT_DTYPE = np.dtype(
    [("mean", "<f8"), ("stdv", "<f8"), ("start", "<u8"), ("length", "<u8")]
)


class RejectReason(str, enum.Enum):
    """Why a read ended up with ``num_events == 0``."""

    MISSING_METADATA = "missing_metadata"
    OUT_OF_RANGE_SAMPLING_RATE = "out_of_range_sampling_rate"
    INSUFFICIENT_EVENTS = "insufficient_events"
    LOW_ABASIC_LEVEL = "low_abasic_level"
    NO_STRAND_DETECTED = "no_strand_detected"
    SIGNAL_SOURCE_ERROR = "signal_source_error"


def _safe_log(x: float) -> float:
    return math.log(x) if x > 0 else -math.inf


@dataclass(frozen=True)
class CalibratedEvent:
    """A filtered event with times converted to seconds.

    ``corrected_mean`` starts out equal to ``mean``; a decoder may later build
    drift-corrected copies.
    """

    mean: float
    corrected_mean: float
    stdev: float
    start: float
    length: float
    log_mean: float = field(init=False)
    log_stdev: float = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "log_mean", _safe_log(self.mean))
        object.__setattr__(self, "log_stdev", _safe_log(self.stdev))

    @property
    def end(self) -> float:
        return self.start + self.length


EventSequence = Tuple[CalibratedEvent, ...]


class StrandBounds(NamedTuple):
    """Raw-event index ranges of both strands, half-open.

    A strand whose end is not past its start is absent.
    """

    template_start: int
    template_end: int
    complement_start: int
    complement_end: int

    @classmethod
    def empty(cls) -> "StrandBounds":
        return cls(0, 0, 0, 0)

    def strand(self, st: int) -> Tuple[int, int]:
        return self[2 * st], self[2 * st + 1]

    def length(self, st: int) -> int:
        start, end = self.strand(st)
        return max(0, end - start)

    def has_strand(self, st: int) -> bool:
        return self.length(st) > 0


@dataclass
class ModelParameters:
    """Pore-model scaling for one read; only scale/shift are estimated here."""

    scale: float = 0.0
    shift: float = 0.0
    drift: float = 0.0
    var: float = 0.0
    scale_sd: float = 0.0
    var_sd: float = 0.0

    def as_tuple(self) -> Tuple[float, ...]:
        return (self.scale, self.shift, self.drift, self.var, self.scale_sd, self.var_sd)


@dataclass
class TransitionParameters:
    """State-transition parameters, filled in by the decoder."""

    p_stay: float = 0.0
    p_skip: float = 0.0

    def as_tuple(self) -> Tuple[float, ...]:
        return (self.p_stay, self.p_skip)


ModelKey = Tuple[str, str]


@dataclass
class CalibrationCandidate:
    """Initial scaling of one pore model (or model pair) against a read.

    ``key`` holds the template and complement model names; the slot of a strand
    scaled without a model is ``""``.
    """

    key: ModelKey
    params: ModelParameters
    transitions: Tuple[Optional[TransitionParameters], Optional[TransitionParameters]] = (None, None)

    @property
    def joint(self) -> bool:
        return bool(self.key[TEMPLATE]) and bool(self.key[COMPLEMENT])
