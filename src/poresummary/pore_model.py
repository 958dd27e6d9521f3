from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import numpy as np

from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

STRAND_ANY = 2

_COLUMNS = ("level_mean", "level_stdv", "sd_mean", "sd_stdv")


@dataclass
class PoreModel:
    """Expected current per k-mer, for one strand or for either strand.

    ``strand`` is 0 (template), 1 (complement) or 2 (either).
    """

    name: str
    strand: int
    kmers: List[str]
    level_mean: np.ndarray
    level_stdv: np.ndarray
    sd_mean: np.ndarray
    sd_stdv: np.ndarray
    mean: float = field(init=False)
    stdev: float = field(init=False)

    def __post_init__(self) -> None:
        if self.strand not in (0, 1, STRAND_ANY):
            raise ValueError(f"model {self.name}: strand must be 0, 1 or 2")
        if len(self.kmers) == 0:
            raise ValueError(f"model {self.name}: no states")
        self.level_mean = np.asarray(self.level_mean, dtype=float)
        self.level_stdv = np.asarray(self.level_stdv, dtype=float)
        self.sd_mean = np.asarray(self.sd_mean, dtype=float)
        self.sd_stdv = np.asarray(self.sd_stdv, dtype=float)
        self.mean = float(self.level_mean.mean())
        self.stdev = float(self.level_mean.std())
        if self.stdev <= 0:
            raise ValueError(f"model {self.name}: level means have zero spread")

    @property
    def kmer_size(self) -> int:
        return len(self.kmers[0])

    def fits_strand(self, st: int) -> bool:
        return self.strand == st or self.strand == STRAND_ANY

    def to_records(self) -> np.ndarray:
        """State table as a structured array (fixed-width byte k-mers, HDF5-friendly)."""
        dtype = np.dtype(
            [("kmer", f"S{self.kmer_size}")] + [(c, "<f8") for c in _COLUMNS]
        )
        table = np.zeros(len(self.kmers), dtype=dtype)
        table["kmer"] = [k.encode("ascii") for k in self.kmers]
        for c in _COLUMNS:
            table[c] = getattr(self, c)
        return table


PoreModelDict = Dict[str, PoreModel]


def load_pore_model(
    path: str | Path,
    *,
    name: Optional[str] = None,
    strand: int = STRAND_ANY,
) -> PoreModel:
    """Load a tab-separated pore model.

    The file has a header line naming at least ``kmer``, ``level_mean``,
    ``level_stdv``, ``sd_mean`` and ``sd_stdv``; lines starting with ``#`` are ignored.
    The model name defaults to the file name without ``.model``/``.tsv``.
    """
    p = Path(path)
    if name is None:
        name = p.name
        for suffix in (".gz", ".model", ".tsv", ".txt"):
            if name.endswith(suffix):
                name = name[: -len(suffix)]

    header: Optional[List[str]] = None
    rows: List[List[str]] = []
    with open_textmaybe_gzip(p, "rt") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            fields = line.split("\t")
            if header is None:
                header = fields
                missing = [c for c in ("kmer",) + _COLUMNS if c not in header]
                if missing:
                    raise ValueError(f"{p}: pore model missing columns: {', '.join(missing)}")
                continue
            rows.append(fields)

    if header is None or not rows:
        raise ValueError(f"{p}: empty pore model")

    col = {c: header.index(c) for c in ("kmer",) + _COLUMNS}
    try:
        values = {c: [float(r[col[c]]) for r in rows] for c in _COLUMNS}
    except (IndexError, ValueError) as e:
        raise ValueError(f"{p}: malformed pore model row: {e}") from e

    model = PoreModel(
        name=name,
        strand=strand,
        kmers=[r[col["kmer"]] for r in rows],
        **values,
    )
    logger.info(
        "Loaded pore model %s (strand=%d, %d states, mean=%.3f, stdev=%.3f)",
        model.name,
        model.strand,
        len(model.kmers),
        model.mean,
        model.stdev,
    )
    return model


def build_model_dict(models: Iterable[PoreModel]) -> PoreModelDict:
    out: PoreModelDict = {}
    for m in models:
        if m.name in out:
            raise ValueError(f"Duplicate pore model name: {m.name}")
        out[m.name] = m
    return out


def write_pore_model(path: str | Path, model: PoreModel) -> None:
    with open_textmaybe_gzip(path, "wt") as f:
        f.write("\t".join(("kmer",) + _COLUMNS) + "\n")
        for i, kmer in enumerate(model.kmers):
            f.write(
                f"{kmer}\t{model.level_mean[i]:.6f}\t{model.level_stdv[i]:.6f}\t"
                f"{model.sd_mean[i]:.6f}\t{model.sd_stdv[i]:.6f}\n"
            )
