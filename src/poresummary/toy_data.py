from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Dict, List, Optional

import h5py
import numpy as np

from .models import RAW_EVENT_DTYPE
from .pore_model import PoreModel, write_pore_model
from .utils import ensure_outdir, write_json

TOY_SAMPLING_RATE = 4000.0
TOY_OPEN_PORE_LEVEL = 150.0


def write_fast5_read(
    path: str | Path,
    events: np.ndarray,
    *,
    sampling_rate: Optional[float] = TOY_SAMPLING_RATE,
    read_id: str = "",
    read_number: int = 0,
    run_id: str = "000",
) -> Path:
    """Write a minimal single-read FAST5 file holding an event-detection table."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(path, "w") as f:
        channel = f.create_group("UniqueGlobalKey/channel_id")
        if sampling_rate is not None:
            channel.attrs["sampling_rate"] = float(sampling_rate)
        grp = f.create_group(f"Analyses/EventDetection_{run_id}/Reads/Read_{read_number}")
        grp.attrs["read_id"] = read_id
        grp.attrs["read_number"] = int(read_number)
        grp.create_dataset("Events", data=np.asarray(events, dtype=RAW_EVENT_DTYPE))
    return path


def make_events(
    means: np.ndarray,
    rng: np.random.Generator,
    *,
    stdv: float = 1.5,
) -> np.ndarray:
    """Wrap event means into a raw event table with random durations."""
    n = len(means)
    lengths = rng.integers(20, 120, size=n)
    starts = np.concatenate([[0], np.cumsum(lengths)[:-1]]) + 1000
    events = np.zeros(n, dtype=RAW_EVENT_DTYPE)
    events["mean"] = means
    events["stdv"] = np.abs(rng.normal(stdv, 0.3, size=n))
    events["start"] = starts
    events["length"] = lengths
    return events


def make_toy_model(name: str, strand: int, rng: np.random.Generator, *, k: int = 3) -> PoreModel:
    kmers = ["".join(p) for p in itertools.product("ACGT", repeat=k)]
    n = len(kmers)
    return PoreModel(
        name=name,
        strand=strand,
        kmers=kmers,
        level_mean=rng.uniform(45.0, 75.0, size=n),
        level_stdv=rng.uniform(0.8, 1.6, size=n),
        sd_mean=rng.uniform(0.8, 1.4, size=n),
        sd_stdv=rng.uniform(0.2, 0.4, size=n),
    )


def _strand_means(model: PoreModel, n: int, rng: np.random.Generator, scale: float, shift: float) -> np.ndarray:
    states = rng.integers(0, len(model.kmers), size=n)
    return model.level_mean[states] * scale + shift + rng.normal(0.0, 1.0, size=n)


def make_toy_data(*, outdir: str | Path, seed: int = 7) -> Dict[str, Any]:
    """Create a few FAST5 reads and two pore models for quick demos/tests.

    The outputs include:
    - template.model / complement.model (3-mer pore models)
    - reads/two_strand_*.fast5 (template + hairpin + complement)
    - reads/template_only.fast5
    - reads/no_sampling_rate.fast5 and reads/too_short.fast5 (rejected reads)

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    reads_dir = ensure_outdir(outdir_p / "reads")
    rng = np.random.default_rng(seed)

    template_model = make_toy_model("toy_template", 0, rng)
    complement_model = make_toy_model("toy_complement", 1, rng)
    template_path = outdir_p / "template.model"
    complement_path = outdir_p / "complement.model"
    write_pore_model(template_path, template_model)
    write_pore_model(complement_path, complement_model)

    reads: List[str] = []
    hairpin = np.full(15, TOY_OPEN_PORE_LEVEL)
    for i in range(4):
        parts = [
            _strand_means(template_model, 560, rng, scale=1.1, shift=5.0),
            hairpin,
            _strand_means(complement_model, 520, rng, scale=1.1, shift=5.0),
        ]
        if i % 2 == 1:
            # open pore right at the start of the read
            parts.insert(0, np.full(6, TOY_OPEN_PORE_LEVEL))
        means = np.concatenate(parts)
        p = write_fast5_read(
            reads_dir / f"two_strand_{i}.fast5",
            make_events(means, rng),
            read_id=f"toy-read-{i}",
            read_number=i,
        )
        reads.append(str(p))

    means = _strand_means(template_model, 800, rng, scale=1.0, shift=0.0)
    reads.append(
        str(
            write_fast5_read(
                reads_dir / "template_only.fast5",
                make_events(means, rng),
                read_id="toy-read-template-only",
                read_number=4,
            )
        )
    )
    reads.append(
        str(
            write_fast5_read(
                reads_dir / "no_sampling_rate.fast5",
                make_events(means, rng),
                sampling_rate=None,
                read_number=5,
            )
        )
    )
    reads.append(
        str(
            write_fast5_read(
                reads_dir / "too_short.fast5",
                make_events(means[:80], rng),
                read_number=6,
            )
        )
    )

    summary = {
        "outdir": str(outdir_p),
        "reads_dir": str(reads_dir),
        "template_model": str(template_path),
        "complement_model": str(complement_path),
        "reads": reads,
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
