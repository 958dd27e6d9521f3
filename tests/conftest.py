from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import numpy as np
import pytest

from poresummary.models import RAW_EVENT_DTYPE, CalibratedEvent, ModelParameters
from poresummary.pore_model import PoreModel
from poresummary.source import SignalSource, SourceOpenError, SourceReadError, SourceWriteError


def make_raw_events(means: Sequence[float], *, stdv: float = 1.0, length: int = 10) -> np.ndarray:
    n = len(means)
    ev = np.zeros(n, dtype=RAW_EVENT_DTYPE)
    ev["mean"] = means
    ev["stdv"] = stdv
    ev["start"] = np.arange(n, dtype=np.uint64) * length + 100
    ev["length"] = length
    return ev


def hairpin_means(
    n: int = 1000,
    island: Tuple[int, int] = (480, 495),
    *,
    low: Tuple[float, float] = (45.0, 55.0),
    high: float = 150.0,
) -> np.ndarray:
    """Alternating low means with one block of high (open pore) means."""
    means = np.where(np.arange(n) % 2 == 0, low[0], low[1]).astype(float)
    means[island[0] : island[1]] = high
    return means


def unit_model(name: str, strand: int = 2) -> PoreModel:
    """A model whose level means have mean 0 and stdev 1."""
    return PoreModel(
        name=name,
        strand=strand,
        kmers=["AA", "CC"],
        level_mean=np.array([-1.0, 1.0]),
        level_stdv=np.array([1.0, 1.0]),
        sd_mean=np.array([1.0, 1.0]),
        sd_stdv=np.array([0.1, 0.1]),
    )


@dataclass
class FakeRead:
    """In-memory stand-in for one signal file."""

    events: Optional[np.ndarray]
    sampling_rate: Optional[float] = 4000.0
    read_id: str = "read-1"
    tags: Set[str] = field(default_factory=set)
    fail_open: bool = False
    fail_read: bool = False
    fail_write: bool = False
    event_loads: int = 0
    opens: int = 0
    closes: int = 0
    written: List[Tuple[str, int, str, Any]] = field(default_factory=list)

    def opener(self, path: str, writable: bool = False) -> "FakeSource":
        if self.fail_open:
            raise SourceOpenError(f"{path}: cannot open", path=path)
        self.opens += 1
        return FakeSource(path, self, writable)


class FakeSource(SignalSource):
    def __init__(self, path: str, read: FakeRead, writable: bool) -> None:
        self.path = path
        self.read = read
        self.writable = writable

    def has_sampling_rate(self) -> bool:
        return self.read.sampling_rate is not None

    def get_sampling_rate(self) -> float:
        assert self.read.sampling_rate is not None
        return self.read.sampling_rate

    def has_event_detection_run(self, run_id: str) -> bool:
        return self.read.events is not None

    def get_event_detection_params(self, run_id: str) -> Dict[str, Any]:
        return {"read_id": self.read.read_id, "read_number": 1}

    def get_event_detection_events(self, run_id: str) -> np.ndarray:
        if self.read.fail_read:
            raise SourceReadError(f"{self.path}: cannot read events", path=self.path)
        assert self.read.events is not None
        self.read.event_loads += 1
        return self.read.events.copy()

    def list_annotation_tags(self) -> Set[str]:
        return set(self.read.tags)

    def _record(self, kind: str, strand: int, tag: str, payload: Any) -> None:
        if not self.writable or self.read.fail_write:
            raise SourceWriteError(f"{self.path}: cannot write {kind}", path=self.path)
        self.read.written.append((kind, strand, tag, payload))

    def write_sequence(self, strand: int, tag: str, name: str, seq: str, default_qual: int = 33) -> None:
        self._record("sequence", strand, tag, (name, seq))

    def write_events(self, strand: int, tag: str, events: Sequence[CalibratedEvent]) -> None:
        self._record("events", strand, tag, list(events))

    def write_model(self, strand: int, tag: str, states: np.ndarray) -> None:
        self._record("model", strand, tag, states)

    def write_model_params(self, strand: int, tag: str, params: ModelParameters) -> None:
        self._record("model_params", strand, tag, params)

    def close(self) -> None:
        self.read.closes += 1


@pytest.fixture
def fake_read():
    return FakeRead


@pytest.fixture
def raw_events():
    return make_raw_events


@pytest.fixture
def models():
    return {"t": unit_model("t", 0), "c": unit_model("c", 1)}
