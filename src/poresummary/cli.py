from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .batch import iter_fast5_paths, summarize_files
from .config import ISLAND_MODES, SummaryConfig
from .plotting import plot_abasic_hist, plot_status_counts, plot_strand_events
from .pore_model import STRAND_ANY, PoreModel, build_model_dict, load_pore_model
from .report import render_report
from .source import SignalSourceError
from .toy_data import make_toy_data
from .utils import ensure_outdir


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, SignalSourceError):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="poresummary",
        description=(
            "poresummary: per-read summarization of nanopore FAST5 event data "
            "(abasic level, hairpin/strand detection, initial pore-model scaling)."
        ),
    )
    p.add_argument("--version", action="version", version=f"poresummary {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a few small FAST5 reads and pore models for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--seed", type=int, default=7, help="Random seed.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # summarize
    # -----------------
    s = sub.add_parser(
        "summarize",
        help="Summarize FAST5 reads: strand bounds and initial model scalings per read.",
    )
    s.add_argument(
        "inputs",
        nargs="+",
        type=_path_exists,
        help="FAST5 files or directories (searched recursively for *.fast5).",
    )
    s.add_argument("--outdir", required=True, help="Output directory.")

    # Pore models
    s.add_argument(
        "--model",
        action="append",
        default=[],
        type=_path_exists,
        help="Pore model usable on either strand (repeatable).",
    )
    s.add_argument(
        "--template-model",
        action="append",
        default=[],
        type=_path_exists,
        help="Template-strand pore model (repeatable).",
    )
    s.add_argument(
        "--complement-model",
        action="append",
        default=[],
        type=_path_exists,
        help="Complement-strand pore model (repeatable).",
    )

    # Summarization settings
    defaults = SummaryConfig()
    s.add_argument("--min-events", type=int, default=defaults.min_events, help="Minimum events per strand.")
    s.add_argument("--max-events", type=int, default=defaults.max_events, help="Use at most this many events per read.")
    s.add_argument(
        "--ed-group",
        default=defaults.event_detection_run,
        help="Event-detection run to read (EventDetection_<run>).",
    )
    s.add_argument(
        "--abasic-top-percent",
        type=float,
        default=defaults.abasic_top_percent,
        help="Percent of highest events ignored when estimating the abasic level.",
    )
    s.add_argument(
        "--abasic-top-offset",
        type=float,
        default=defaults.abasic_top_offset,
        help="Offset added to the estimated abasic level.",
    )
    s.add_argument(
        "--island-mode",
        choices=list(ISLAND_MODES),
        default=defaults.island_mode,
        help="Hairpin island detection: exact runs or sliding window.",
    )
    s.add_argument(
        "--hairpin-window-size",
        type=int,
        default=defaults.hairpin_window_size,
        help="Sliding-window size for hairpin islands.",
    )
    s.add_argument(
        "--hairpin-window-load",
        type=int,
        default=defaults.hairpin_window_load,
        help="High events needed within the sliding window.",
    )
    s.add_argument(
        "--trim-margins",
        type=int,
        nargs=4,
        default=list(defaults.trim_margins),
        metavar=("START", "END", "HP_START", "HP_END"),
        help="Events trimmed after start, before end, before hairpin, after hairpin.",
    )
    s.add_argument("--template-only", action="store_true", help="Do not split reads into strands.")
    s.add_argument(
        "--scale-strands-together",
        action="store_true",
        help="Estimate one scaling shared by both strands.",
    )

    # Execution / outputs
    s.add_argument("--threads", type=int, default=1, help="Reads summarized in parallel.")
    s.add_argument(
        "--summaries-tsv",
        default=None,
        help="Optional path for the per-read TSV (default: outdir/read_summaries.tsv).",
    )
    s.add_argument("--no-report", action="store_true", help="Skip plots and the HTML report.")
    s.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    s.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")
    s.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "poresummary quickstart (copy/paste):",
        "",
        "1) Try it on toy data:",
        "   poresummary make-toy-data --outdir toy/",
        "   poresummary summarize toy/reads \\",
        "     --template-model toy/template.model \\",
        "     --complement-model toy/complement.model \\",
        "     --outdir toy_results/",
        "",
        "2) Real reads, shared scaling for both strands:",
        "   poresummary summarize fast5_dir/ \\",
        "     --template-model template.model \\",
        "     --complement-model complement.model \\",
        "     --scale-strands-together --threads 8 \\",
        "     --outdir results/",
        "   Outputs: results/read_summaries.tsv, results/summary.json, results/report.html",
        "",
        "3) 1D reads (no hairpin):",
        "   poresummary summarize fast5_dir/ --model template.model --template-only --outdir results/",
        "",
        "Tip: use --dry-run to validate inputs and list the reads that would be summarized.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir, seed=int(args.seed))
    print(json.dumps(summary, indent=2))
    return 0


def _config_from_args(args: argparse.Namespace) -> SummaryConfig:
    return SummaryConfig(
        min_events=int(args.min_events),
        max_events=int(args.max_events),
        event_detection_run=str(args.ed_group),
        abasic_top_percent=float(args.abasic_top_percent),
        abasic_top_offset=float(args.abasic_top_offset),
        hairpin_window_size=int(args.hairpin_window_size),
        hairpin_window_load=int(args.hairpin_window_load),
        island_mode=str(args.island_mode),
        template_only=bool(args.template_only),
        trim_margins=tuple(args.trim_margins),
        scale_strands_together=bool(args.scale_strands_together),
    )


def _load_models(args: argparse.Namespace) -> List[PoreModel]:
    models = [load_pore_model(p, strand=STRAND_ANY) for p in args.model]
    models += [load_pore_model(p, strand=0) for p in args.template_model]
    models += [load_pore_model(p, strand=1) for p in args.complement_model]
    return models


def cmd_summarize(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "summarize.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("poresummary")
    logger.info("poresummary %s", __version__)

    try:
        config = _config_from_args(args)
        models = build_model_dict(_load_models(args))
        if not models:
            logger.warning("No pore models given; reads will be summarized without scalings.")
        paths = iter_fast5_paths(args.inputs)

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Reads: {len(paths)}")
            print(f"Pore models: {', '.join(sorted(models)) or 'none'}")
            print("Planned outputs:")
            print(f"  read_summaries.tsv -> {args.summaries_tsv or outdir / 'read_summaries.tsv'}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            if not args.no_report:
                print(f"  report.html -> {outdir / 'report.html'}")
            return 0

        outdir = ensure_outdir(outdir)

        if args.resume and (outdir / "summary.json").exists():
            logger.info("Resume enabled: summary.json already exists in %s", outdir)
            print(str(outdir / "summary.json"))
            return 0

        run = summarize_files(
            paths,
            models=models,
            config=config,
            outdir=outdir,
            threads=int(args.threads),
            summaries_tsv=args.summaries_tsv,
            progress=True,
        )

        if args.no_report:
            print(str(run["summaries_tsv"]))
            return 0

        plots_dir = outdir / "plots"
        plots_dir.mkdir(parents=True, exist_ok=True)

        status_png = plots_dir / "status_counts.png"
        abasic_png = plots_dir / "abasic_hist.png"
        strands_png = plots_dir / "strand_events.png"

        plot_status_counts(counts=run["counts"], out_png=status_png)
        plot_abasic_hist(
            bin_edges=run["abasic_level_hist"]["bin_edges"],
            counts=run["abasic_level_hist"]["counts"],
            out_png=abasic_png,
        )
        plot_strand_events(strand_events=run["strand_events"], out_png=strands_png)

        plots_rel = {
            "status_counts": str(Path("plots") / status_png.name),
            "abasic_hist": str(Path("plots") / abasic_png.name),
            "strand_events": str(Path("plots") / strands_png.name),
        }

        report_path = render_report(outdir=outdir, version=__version__, run=run, plots=plots_rel)

        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None if args.dry_run else log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "summarize":
        return cmd_summarize(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
