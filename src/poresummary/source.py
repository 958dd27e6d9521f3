"""Access to per-read signal files.

The summarizer only talks to the :class:`SignalSource` interface; :class:`Fast5File`
implements it for legacy single-read FAST5 (HDF5) files using h5py.

Layout used
-----------
- sampling rate: attribute ``sampling_rate`` of ``/UniqueGlobalKey/channel_id``
- event detection: ``/Analyses/EventDetection_<run>/Reads/Read_<n>/Events`` with the
  read parameters (``read_id``, ...) stored as attributes of ``Read_<n>``
- annotations: one ``/Analyses/Basecall_<tag>`` group per tag, with outputs under
  ``BaseCalled_template`` / ``BaseCalled_complement``

HDF5 builds without thread-safety cannot be read from several threads at once, so
opening a file and reading its event table is done under :data:`SOURCE_LOCK`.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Set

import h5py
import numpy as np

from .models import RAW_EVENT_DTYPE, STRAND_NAMES, CalibratedEvent, ModelParameters

logger = logging.getLogger(__name__)

SOURCE_LOCK = threading.Lock()

_CHANNEL_ID = "UniqueGlobalKey/channel_id"
_ANALYSES = "Analyses"
_BASECALL_PREFIX = "Basecall_"

_H5_ERRORS = (OSError, KeyError, ValueError, TypeError)

_CALIBRATED_EVENT_DTYPE = np.dtype(
    [
        ("mean", "<f8"),
        ("corrected_mean", "<f8"),
        ("stdv", "<f8"),
        ("start", "<f8"),
        ("length", "<f8"),
    ]
)


class SignalSourceError(RuntimeError):
    """Raised when a signal file cannot be opened, read or written."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class SourceOpenError(SignalSourceError):
    pass


class SourceReadError(SignalSourceError):
    pass


class SourceWriteError(SignalSourceError):
    pass


class SignalSource(ABC):
    """Capabilities the summarizer needs from a per-read signal file."""

    path: str

    @abstractmethod
    def has_sampling_rate(self) -> bool: ...

    @abstractmethod
    def get_sampling_rate(self) -> float: ...

    @abstractmethod
    def has_event_detection_run(self, run_id: str) -> bool: ...

    @abstractmethod
    def get_event_detection_params(self, run_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    def get_event_detection_events(self, run_id: str) -> np.ndarray:
        """Return the raw events as an array of :data:`RAW_EVENT_DTYPE`."""

    @abstractmethod
    def list_annotation_tags(self) -> Set[str]: ...

    @abstractmethod
    def write_sequence(
        self, strand: int, tag: str, name: str, seq: str, default_qual: int = 33
    ) -> None: ...

    @abstractmethod
    def write_events(self, strand: int, tag: str, events: Sequence[CalibratedEvent]) -> None: ...

    @abstractmethod
    def write_model(self, strand: int, tag: str, states: np.ndarray) -> None: ...

    @abstractmethod
    def write_model_params(self, strand: int, tag: str, params: ModelParameters) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    def __enter__(self) -> "SignalSource":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


SourceOpener = Callable[..., SignalSource]


def _attr_value(v: Any) -> Any:
    if isinstance(v, bytes):
        return v.decode("utf-8", errors="replace")
    if isinstance(v, np.generic):
        return v.item()
    return v


class Fast5File(SignalSource):
    """A FAST5 file opened read-only, or read-write with ``writable=True``."""

    def __init__(self, path: str, writable: bool = False) -> None:
        self.path = str(path)
        self.writable = writable
        try:
            self._h5 = h5py.File(self.path, "r+" if writable else "r")
        except _H5_ERRORS as e:
            raise SourceOpenError(f"{self.path}: cannot open: {e}", path=self.path) from e
        logger.debug("Opened %s (writable=%s)", self.path, writable)

    # -----------------
    # reading
    # -----------------

    @contextmanager
    def _reading(self, what: str) -> Iterator[None]:
        try:
            yield
        except SignalSourceError:
            raise
        except _H5_ERRORS as e:
            raise SourceReadError(f"{self.path}: cannot read {what}: {e}", path=self.path) from e

    def has_sampling_rate(self) -> bool:
        with self._reading("channel id"):
            return _CHANNEL_ID in self._h5 and "sampling_rate" in self._h5[_CHANNEL_ID].attrs

    def get_sampling_rate(self) -> float:
        with self._reading("sampling rate"):
            return float(self._h5[_CHANNEL_ID].attrs["sampling_rate"])

    def _reads_group_path(self, run_id: str) -> str:
        return f"{_ANALYSES}/EventDetection_{run_id}/Reads"

    def _read_group(self, run_id: str) -> Optional[h5py.Group]:
        path = self._reads_group_path(run_id)
        if path not in self._h5:
            return None
        reads = self._h5[path]
        for name in sorted(reads.keys()):
            grp = reads[name]
            if isinstance(grp, h5py.Group) and "Events" in grp:
                return grp
        return None

    def has_event_detection_run(self, run_id: str) -> bool:
        with self._reading("event detection reads"):
            return self._read_group(run_id) is not None

    def get_event_detection_params(self, run_id: str) -> Dict[str, Any]:
        with self._reading("event detection params"):
            grp = self._read_group(run_id)
            if grp is None:
                raise KeyError(f"no event detection run {run_id}")
            return {k: _attr_value(v) for k, v in grp.attrs.items()}

    def get_event_detection_events(self, run_id: str) -> np.ndarray:
        with self._reading("event detection events"):
            grp = self._read_group(run_id)
            if grp is None:
                raise KeyError(f"no event detection run {run_id}")
            table = grp["Events"][()]
            events = np.zeros(len(table), dtype=RAW_EVENT_DTYPE)
            for name in RAW_EVENT_DTYPE.names:
                events[name] = table[name]
            return events

    def list_annotation_tags(self) -> Set[str]:
        with self._reading("annotation tags"):
            if _ANALYSES not in self._h5:
                return set()
            return {
                name[len(_BASECALL_PREFIX) :]
                for name in self._h5[_ANALYSES].keys()
                if name.startswith(_BASECALL_PREFIX)
            }

    # -----------------
    # writing
    # -----------------

    @contextmanager
    def _writing(self, strand: int, tag: str, what: str) -> Iterator[h5py.Group]:
        if not self.writable:
            raise SourceWriteError(f"{self.path}: opened read-only", path=self.path)
        try:
            grp = self._h5.require_group(
                f"{_ANALYSES}/{_BASECALL_PREFIX}{tag}/BaseCalled_{STRAND_NAMES[strand]}"
            )
            yield grp
        except SignalSourceError:
            raise
        except _H5_ERRORS as e:
            raise SourceWriteError(f"{self.path}: cannot write {what}: {e}", path=self.path) from e

    @staticmethod
    def _replace_dataset(grp: h5py.Group, name: str, data: Any, **kwargs: Any) -> None:
        if name in grp:
            del grp[name]
        grp.create_dataset(name, data=data, **kwargs)

    def write_sequence(
        self, strand: int, tag: str, name: str, seq: str, default_qual: int = 33
    ) -> None:
        fastq = f"@{name}\n{seq}\n+\n{chr(default_qual) * len(seq)}\n"
        with self._writing(strand, tag, "sequence") as grp:
            self._replace_dataset(grp, "Fastq", fastq, dtype=h5py.string_dtype())

    def write_events(self, strand: int, tag: str, events: Sequence[CalibratedEvent]) -> None:
        table = np.zeros(len(events), dtype=_CALIBRATED_EVENT_DTYPE)
        for i, ev in enumerate(events):
            table[i] = (ev.mean, ev.corrected_mean, ev.stdev, ev.start, ev.length)
        with self._writing(strand, tag, "events") as grp:
            self._replace_dataset(grp, "Events", table)

    def write_model(self, strand: int, tag: str, states: np.ndarray) -> None:
        with self._writing(strand, tag, "model") as grp:
            self._replace_dataset(grp, "Model", states)

    def write_model_params(self, strand: int, tag: str, params: ModelParameters) -> None:
        with self._writing(strand, tag, "model parameters") as grp:
            for key in ("scale", "shift", "drift", "var", "scale_sd", "var_sd"):
                grp.attrs[key] = float(getattr(params, key))

    def close(self) -> None:
        self._h5.close()


def open_fast5(path: str, writable: bool = False) -> SignalSource:
    return Fast5File(path, writable=writable)
