"""poresummary: per-read summarization of nanopore event-detection data.

Each read is turned into a calibrated, strand-separated summary (abasic level,
hairpin-based strand bounds, initial pore-model scalings) ready for a
downstream decoder. Most users should use the CLI:

    poresummary summarize reads/ --model template.model --outdir results/

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"
