from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np

from .abasic import detect_abasic_level, is_low_abasic_level
from .config import SummaryConfig
from .events import calibrate_strands, event_means, mean_stdev, time_length
from .models import (
    COMPLEMENT,
    STRAND_NAMES,
    TEMPLATE,
    CalibratedEvent,
    CalibrationCandidate,
    EventSequence,
    ModelKey,
    ModelParameters,
    RejectReason,
    StrandBounds,
    TransitionParameters,
)
from .pore_model import PoreModel
from .scaling import estimate_joint_candidates, estimate_strand_candidates
from .source import SOURCE_LOCK, SignalSource, SignalSourceError, SourceOpener, open_fast5
from .strands import detect_strand_bounds

logger = logging.getLogger(__name__)

ANNOTATION_TAG_SLOTS = 1000

_FIXED_COLUMNS = [
    "file_name",
    "read_name",
    "num_events",
    "abasic_level",
    "template_start",
    "template_end",
    "complement_start",
    "complement_end",
]
_STRAND_COLUMNS = [
    "model_name",
    "scale",
    "shift",
    "drift",
    "var",
    "scale_sd",
    "var_sd",
    "p_stay",
    "p_skip",
]
TSV_COLUMNS = _FIXED_COLUMNS + [
    f"{strand}_{col}" for strand in STRAND_NAMES for col in _STRAND_COLUMNS
]


class AnnotationTagExhaustedError(RuntimeError):
    """Raised when every annotation tag slot of a file is already used."""


def pick_annotation_tag(used: Set[str], prefix: str) -> str:
    """First ``<prefix>NNN`` tag (NNN = 000..999) not in ``used``."""
    for i in range(ANNOTATION_TAG_SLOTS):
        tag = f"{prefix}{i:03d}"
        if tag not in used:
            return tag
    raise AnnotationTagExhaustedError(
        f"no available annotation tag with prefix {prefix!r} "
        f"({ANNOTATION_TAG_SLOTS} slots in use)"
    )


def base_file_name(file_name: str) -> str:
    name = Path(file_name).name
    if name.endswith(".fast5"):
        name = name[: -len(".fast5")]
    return name


def _fmt(x: float) -> str:
    return f"{x:g}"


def tsv_header() -> str:
    return "\t".join(TSV_COLUMNS)


class ReadSummary:
    """Summary of one read: identity, strand bounds and initial model scalings.

    ``summarize()`` runs the analysis once and then drops the per-event data; a later
    stage rebuilds it with ``load_events()`` (from the file, the strand bounds and the
    abasic level) and frees it again with ``drop_events()``.

    A read that cannot be used keeps ``num_events == 0`` and records why in
    ``reject_reason``.
    """

    def __init__(
        self,
        file_name: str | Path,
        config: Optional[SummaryConfig] = None,
        *,
        opener: SourceOpener = open_fast5,
    ) -> None:
        self.file_name = str(file_name)
        self.base_file_name = base_file_name(self.file_name)
        self.config = config if config is not None else SummaryConfig()
        self._opener = opener
        self.valid = False
        self._reset()

    def _reset(self) -> None:
        self.read_id = self.base_file_name
        self.sampling_rate = 0.0
        self.abasic_level = 0.0
        self.num_events = 0
        self.strand_bounds = StrandBounds.empty()
        self.time_length: List[float] = [0.0, 0.0]
        self.scale_strands_together = False
        self.candidates: Dict[ModelKey, CalibrationCandidate] = {}
        self.preferred_model: List[Optional[ModelKey]] = [None, None]
        self.annotation_tag: Optional[str] = None
        self.reject_reason: Optional[RejectReason] = None
        self._raw_events: Optional[np.ndarray] = None
        self._events: Optional[Tuple[EventSequence, EventSequence]] = None

    @classmethod
    def from_file(
        cls,
        file_name: str | Path,
        models: Mapping[str, PoreModel],
        config: Optional[SummaryConfig] = None,
        *,
        opener: SourceOpener = open_fast5,
    ) -> "ReadSummary":
        summary = cls(file_name, config, opener=opener)
        summary.summarize(models)
        return summary

    @property
    def accepted(self) -> bool:
        return self.valid and self.num_events > 0

    @property
    def status(self) -> str:
        if not self.valid:
            return "unprocessed"
        if self.reject_reason is not None:
            return self.reject_reason.value
        return "accepted"

    # -----------------
    # summarization
    # -----------------

    def summarize(self, models: Mapping[str, PoreModel]) -> bool:
        """Analyze the read; return True if it was accepted.

        Every problem with the read itself ends in a rejection. Only
        :class:`AnnotationTagExhaustedError` is raised to the caller.
        """
        self.valid = True
        self._reset()
        try:
            reason = self._summarize(models)
        finally:
            self.drop_events()
            self._raw_events = None
        if reason is not None:
            self.reject_reason = reason
            self.num_events = 0
            return False
        return True

    def _summarize(self, models: Mapping[str, PoreModel]) -> Optional[RejectReason]:
        cfg = self.config
        try:
            with SOURCE_LOCK:
                with self._opener(self.file_name) as source:
                    reason = self._read_metadata(source)
                    if reason is not None:
                        return reason
                    raw = source.get_event_detection_events(cfg.event_detection_run)
                    used_tags = source.list_annotation_tags()
        except SignalSourceError as e:
            logger.warning("%s: signal source error: %s", self.file_name, e)
            return RejectReason.SIGNAL_SOURCE_ERROR

        self._raw_events = self._bound_raw_events(raw)
        if self.num_events < cfg.trim_start + cfg.trim_end + cfg.min_events:
            logger.info("%s: not enough eventdetection events: %d", self.file_name, self.num_events)
            return RejectReason.INSUFFICIENT_EVENTS

        means = self._raw_events["mean"]
        self.abasic_level = detect_abasic_level(
            means, top_percent=cfg.abasic_top_percent, top_offset=cfg.abasic_top_offset
        )
        if is_low_abasic_level(self.abasic_level):
            logger.info("%s: abasic level too low: %g", self.file_name, self.abasic_level)
            return RejectReason.LOW_ABASIC_LEVEL

        bounds = detect_strand_bounds(means, self.abasic_level, cfg, read_id=self.read_id)
        if bounds.template_end <= bounds.template_start:
            logger.info("%s: no template strand detected", self.file_name)
            return RejectReason.NO_STRAND_DETECTED
        self.strand_bounds = bounds
        self.scale_strands_together = (
            cfg.scale_strands_together
            and bounds.length(TEMPLATE) >= cfg.min_events
            and bounds.length(COMPLEMENT) >= cfg.min_events
        )

        self.load_events()
        for st in (TEMPLATE, COMPLEMENT):
            if len(self.events(st)) >= cfg.min_events:
                self.time_length[st] = time_length(self.events(st))
        self._estimate_scalings(models)

        self.annotation_tag = pick_annotation_tag(used_tags, cfg.annotation_prefix)
        return None

    def _read_metadata(self, source: SignalSource) -> Optional[RejectReason]:
        cfg = self.config
        if not source.has_sampling_rate():
            logger.info("%s: missing sampling rate", self.file_name)
            return RejectReason.MISSING_METADATA
        self.sampling_rate = source.get_sampling_rate()
        if not cfg.min_sampling_rate <= self.sampling_rate <= cfg.max_sampling_rate:
            logger.warning("%s: unexpected sampling rate: %g", self.file_name, self.sampling_rate)
            return RejectReason.OUT_OF_RANGE_SAMPLING_RATE
        if not source.has_event_detection_run(cfg.event_detection_run):
            logger.info("%s: missing eventdetection events", self.file_name)
            return RejectReason.MISSING_METADATA
        params = source.get_event_detection_params(cfg.event_detection_run)
        read_id = params.get("read_id")
        if read_id:
            self.read_id = str(read_id)
        return None

    def _bound_raw_events(self, raw: np.ndarray) -> np.ndarray:
        # The first load fixes num_events; reloads reuse it.
        if self.num_events == 0:
            if len(raw) > self.config.max_events:
                logger.info(
                    "%s: using only %d of %d events",
                    self.file_name,
                    self.config.max_events,
                    len(raw),
                )
                self.num_events = self.config.max_events
            else:
                self.num_events = len(raw)
        return raw[: self.num_events]

    def _estimate_scalings(self, models: Mapping[str, PoreModel]) -> None:
        min_events = self.config.min_events
        if self.scale_strands_together:
            if all(len(self.events(st)) >= min_events for st in (TEMPLATE, COMPLEMENT)):
                stats0 = mean_stdev(event_means(self.events(TEMPLATE)))
                stats1 = mean_stdev(event_means(self.events(COMPLEMENT)))
                self.candidates.update(
                    estimate_joint_candidates(stats0, stats1, models, read_id=self.read_id)
                )
                return
            logger.info("%s: too few filtered events to scale strands together", self.file_name)
            self.scale_strands_together = False
        for st in (TEMPLATE, COMPLEMENT):
            if len(self.events(st)) < min_events:
                continue
            stats = mean_stdev(event_means(self.events(st)))
            self.candidates.update(
                estimate_strand_candidates(st, stats, models, read_id=self.read_id)
            )

    # -----------------
    # event data
    # -----------------

    @property
    def events_loaded(self) -> bool:
        return self._events is not None

    def load_events(self) -> None:
        """Build the calibrated event sequences; no-op if loaded or if the read is rejected.

        Raises :class:`SignalSourceError` if the raw events have to be re-read and the
        file cannot be read.
        """
        if not self.accepted or self._events is not None:
            return
        raw = self._raw_events
        if raw is None:
            raw = self._read_raw_events()
        self._events = calibrate_strands(
            raw,
            self.strand_bounds,
            self.abasic_level,
            self.sampling_rate,
            scale_strands_together=self.scale_strands_together,
        )

    def _read_raw_events(self) -> np.ndarray:
        with SOURCE_LOCK:
            with self._opener(self.file_name) as source:
                raw = source.get_event_detection_events(self.config.event_detection_run)
        return self._bound_raw_events(raw)

    def drop_events(self) -> None:
        self._events = None

    def events(self, st: int) -> EventSequence:
        if self._events is None:
            raise RuntimeError(f"{self.file_name}: events not loaded")
        return self._events[st]

    # -----------------
    # model selection and write-back
    # -----------------

    def select_model(self, st: int, key: ModelKey) -> None:
        """Mark the candidate ``key`` as the model used for strand ``st``."""
        if key not in self.candidates:
            raise KeyError(f"{self.read_id}: no calibration candidate {key}")
        if not key[st]:
            raise ValueError(f"{self.read_id}: candidate {key} has no model for strand {st}")
        self.preferred_model[st] = key

    def _write_back(self, what: str, write: Callable[[SignalSource, str], None]) -> None:
        if self.annotation_tag is None:
            logger.warning("%s: no annotation tag reserved, not writing %s", self.file_name, what)
            return
        try:
            with self._opener(self.file_name, writable=True) as source:
                write(source, self.annotation_tag)
        except SignalSourceError as e:
            logger.warning("%s: cannot write %s: %s", self.file_name, what, e)

    def write_sequence(self, st: int, name: str, seq: str, default_qual: int = 33) -> None:
        self._write_back(
            "sequence", lambda src, tag: src.write_sequence(st, tag, name, seq, default_qual)
        )

    def write_events(self, st: int, events: Sequence[CalibratedEvent]) -> None:
        self._write_back("events", lambda src, tag: src.write_events(st, tag, events))

    def write_model(self, st: int, model: PoreModel) -> None:
        self._write_back("model", lambda src, tag: src.write_model(st, tag, model.to_records()))

    def write_model_params(self, st: int, params: ModelParameters) -> None:
        self._write_back(
            "model parameters", lambda src, tag: src.write_model_params(st, tag, params)
        )

    # -----------------
    # output
    # -----------------

    def _strand_fields(self, st: int) -> List[str]:
        key = self.preferred_model[st]
        if key is None:
            name = "."
            params = ModelParameters()
            transitions = TransitionParameters()
        else:
            cand = self.candidates[key]
            name = key[st]
            params = cand.params
            transitions = cand.transitions[st] or TransitionParameters()
        return [name] + [_fmt(v) for v in params.as_tuple() + transitions.as_tuple()]

    def to_tsv_fields(self) -> List[str]:
        fields = [
            self.base_file_name,
            self.read_id,
            str(self.num_events),
            _fmt(self.abasic_level),
        ]
        fields += [str(b) for b in self.strand_bounds]
        for st in (TEMPLATE, COMPLEMENT):
            fields += self._strand_fields(st)
        return fields

    def to_tsv_row(self) -> str:
        return "\t".join(self.to_tsv_fields())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file_name,
            "read_id": self.read_id,
            "status": self.status,
            "num_events": self.num_events,
            "sampling_rate": self.sampling_rate,
            "abasic_level": self.abasic_level,
            "strand_bounds": list(self.strand_bounds),
            "time_length": list(self.time_length),
            "scale_strands_together": self.scale_strands_together,
            "annotation_tag": self.annotation_tag,
            "candidates": {
                "+".join(k): {"scale": c.params.scale, "shift": c.params.shift}
                for k, c in sorted(self.candidates.items())
            },
        }

    def __str__(self) -> str:
        s = f"[base_file_name={self.base_file_name} valid={int(self.valid)}"
        if self.valid:
            s += f" num_events={self.num_events}"
            if self.num_events > 0:
                b = self.strand_bounds
                s += (
                    f" read_id={self.read_id} abasic_level={self.abasic_level:g}"
                    f" strand_bounds=[{b[0]},{b[1]},{b[2]},{b[3]}]"
                    f" time_length=[{self.time_length[0]:g},{self.time_length[1]:g}]"
                )
        return s + "]"
