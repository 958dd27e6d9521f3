from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

import numpy as np
from tqdm import tqdm

from .config import SummaryConfig
from .models import COMPLEMENT, TEMPLATE, RejectReason
from .pore_model import PoreModel
from .source import SourceOpener, open_fast5
from .summary import AnnotationTagExhaustedError, ReadSummary, tsv_header
from .utils import ensure_outdir, open_textmaybe_gzip, write_json

logger = logging.getLogger(__name__)


def iter_fast5_paths(inputs: Iterable[str | Path]) -> List[str]:
    """Expand files and directories (searched recursively for ``*.fast5``)."""
    out: List[str] = []
    for inp in inputs:
        p = Path(inp)
        if p.is_dir():
            out.extend(sorted(str(x) for x in p.rglob("*.fast5")))
        elif p.exists():
            out.append(str(p))
        else:
            raise FileNotFoundError(f"Input does not exist: {p}")
    return out


def summarize_read(
    path: str,
    *,
    models: Mapping[str, PoreModel],
    config: SummaryConfig,
    opener: SourceOpener = open_fast5,
) -> ReadSummary:
    """Summarize one file; tag exhaustion is logged and leaves the read untagged."""
    summary = ReadSummary(path, config, opener=opener)
    try:
        summary.summarize(models)
    except AnnotationTagExhaustedError as e:
        logger.error("%s: %s", path, e)
    return summary


def _histogram(values: List[float], bins: int) -> Dict[str, List[float]]:
    if not values:
        return {"bin_edges": [], "counts": []}
    counts, edges = np.histogram(np.asarray(values, dtype=float), bins=bins)
    return {"bin_edges": edges.tolist(), "counts": counts.tolist()}


def summarize_files(
    paths: List[str],
    *,
    models: Mapping[str, PoreModel],
    config: SummaryConfig,
    outdir: str | Path,
    threads: int = 1,
    summaries_tsv: Optional[str] = None,
    opener: SourceOpener = open_fast5,
    progress: bool = True,
) -> Dict[str, object]:
    """Main workhorse: summarize every read, write the TSV, and return a summary dict.

    Reads are processed by a thread pool; rows are written in input order.
    """
    t0 = time.time()
    outdir_path = ensure_outdir(outdir)
    if threads < 1:
        raise ValueError("threads must be >= 1")

    if summaries_tsv is None:
        summaries_tsv = str(outdir_path / "read_summaries.tsv")

    counts: Dict[str, int] = {
        "reads_total": 0,
        "reads_accepted": 0,
        "reads_template_only": 0,
        "reads_two_strands": 0,
        "reads_scaled_together": 0,
        "reads_without_tag": 0,
        "candidates_total": 0,
    }
    for reason in RejectReason:
        counts[f"rejected_{reason.value}"] = 0

    abasic_levels: List[float] = []
    strand_events: Dict[str, List[int]] = {"template": [], "complement": []}

    def work(path: str) -> ReadSummary:
        return summarize_read(path, models=models, config=config, opener=opener)

    with ThreadPoolExecutor(max_workers=threads) as pool, open_textmaybe_gzip(
        summaries_tsv, "wt"
    ) as tsv_fh:
        tsv_fh.write(tsv_header() + "\n")

        it: Iterator[ReadSummary] = pool.map(work, paths)
        if progress:
            it = tqdm(it, total=len(paths), unit="read", desc="Summarizing reads")

        for summary in it:
            counts["reads_total"] += 1
            tsv_fh.write(summary.to_tsv_row() + "\n")

            if summary.reject_reason is not None:
                counts[f"rejected_{summary.reject_reason.value}"] += 1
                continue

            counts["reads_accepted"] += 1
            bounds = summary.strand_bounds
            if bounds.has_strand(COMPLEMENT):
                counts["reads_two_strands"] += 1
            else:
                counts["reads_template_only"] += 1
            if summary.scale_strands_together:
                counts["reads_scaled_together"] += 1
            if summary.annotation_tag is None:
                counts["reads_without_tag"] += 1
            counts["candidates_total"] += len(summary.candidates)

            abasic_levels.append(summary.abasic_level)
            strand_events["template"].append(bounds.length(TEMPLATE))
            strand_events["complement"].append(bounds.length(COMPLEMENT))

    dt = time.time() - t0

    run = {
        "inputs": len(paths),
        "models": sorted(models),
        "config": config.to_dict(),
        "threads": int(threads),
        "summaries_tsv": str(summaries_tsv),
        "counts": counts,
        "abasic_level_hist": _histogram(abasic_levels, bins=40),
        "strand_events": strand_events,
        "runtime_seconds": float(dt),
    }

    write_json(outdir_path / "summary.json", run)
    logger.info(
        "Summarized %d reads (%d accepted) in %.1fs",
        counts["reads_total"],
        counts["reads_accepted"],
        dt,
    )
    return run
