from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt

from .models import RejectReason

logger = logging.getLogger(__name__)


def plot_status_counts(
    *,
    counts: Dict[str, int],
    out_png: str | Path,
    title: str = "Read status",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = ["two strands", "template only"]
    values = [
        int(counts.get("reads_two_strands", 0)),
        int(counts.get("reads_template_only", 0)),
    ]
    for reason in RejectReason:
        labels.append(reason.value.replace("_", " "))
        values.append(int(counts.get(f"rejected_{reason.value}", 0)))

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Read count")
    plt.title(title)
    plt.xticks(rotation=30, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_abasic_hist(
    *,
    bin_edges: List[float],
    counts: List[int],
    out_png: str | Path,
    title: str = "Abasic level distribution",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    widths = [bin_edges[i + 1] - bin_edges[i] for i in range(len(counts))]
    centers = [bin_edges[i] + widths[i] / 2.0 for i in range(len(counts))]

    plt.figure()
    if counts:
        plt.bar(centers, counts, width=widths, align="center")
    plt.xlabel("Abasic level (pA)")
    plt.ylabel("Read count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_strand_events(
    *,
    strand_events: Dict[str, List[int]],
    out_png: str | Path,
    title: str = "Events per strand",
    nbins: int = 30,
) -> None:
    """Overlayed histograms of raw-event counts inside the template and complement bounds.

    Template-only reads contribute a zero to the complement histogram.
    """
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    for name in ("template", "complement"):
        values = strand_events.get(name, [])
        if values:
            plt.hist(values, bins=nbins, alpha=0.6, label=name)
    plt.xlabel("Events in strand bounds")
    plt.ylabel("Read count")
    plt.title(title)
    if any(strand_events.get(name) for name in ("template", "complement")):
        plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
