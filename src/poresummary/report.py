from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>poresummary Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>poresummary Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Files</th><td>{{ inputs }}</td></tr>
      <tr><th>Pore models</th><td>{% for m in models %}<code>{{ m }}</code> {% else %}none{% endfor %}</td></tr>
      <tr><th>Threads</th><td>{{ threads }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Settings</h3>
    <table>
      <tr><th>Event detection run</th><td>{{ config.event_detection_run }}</td></tr>
      <tr><th>Min / max events</th><td>{{ config.min_events }} / {{ config.max_events }}</td></tr>
      <tr><th>Abasic top percent / offset</th><td>{{ config.abasic_top_percent }} / {{ config.abasic_top_offset }}</td></tr>
      <tr><th>Island mode</th><td>{{ config.island_mode }}</td></tr>
      <tr><th>Trim margins</th><td>{{ config.trim_margins | join(", ") }}</td></tr>
      <tr><th>Template only</th><td>{{ config.template_only }}</td></tr>
      <tr><th>Scale strands together</th><td>{{ config.scale_strands_together }}</td></tr>
    </table>
  </div>
</div>

<h2>Reads</h2>
<table>
  <tr><th>Total reads</th><td>{{ counts.reads_total }}</td></tr>
  <tr><th>Accepted</th><td>{{ counts.reads_accepted }}</td></tr>
  <tr><th>Two strands</th><td>{{ counts.reads_two_strands }}</td></tr>
  <tr><th>Template only</th><td>{{ counts.reads_template_only }}</td></tr>
  <tr><th>Scaled together</th><td>{{ counts.reads_scaled_together }}</td></tr>
  <tr><th>Without annotation tag</th><td>{{ counts.reads_without_tag }}</td></tr>
  <tr><th>Calibration candidates</th><td>{{ counts.candidates_total }}</td></tr>
  {% for name, value in rejected %}
  <tr><th>Rejected: {{ name }}</th><td>{{ value }}</td></tr>
  {% endfor %}
</table>

<h2>Plots</h2>

<div class="grid">
  <div class="card">
    <h3>Read status</h3>
    <img src="{{ plots.status_counts }}" alt="status counts">
  </div>
  <div class="card">
    <h3>Abasic levels</h3>
    <img src="{{ plots.abasic_hist }}" alt="abasic level histogram">
  </div>
</div>

<div class="grid" style="margin-top:16px;">
  <div class="card">
    <h3>Events per strand</h3>
    <img src="{{ plots.strand_events }}" alt="strand event histogram">
  </div>
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ summaries_tsv }}</code> (per-read summaries)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<hr>
<p class="small">poresummary {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    counts = run.get("counts", {})
    rejected = [
        (k[len("rejected_") :].replace("_", " "), v)
        for k, v in sorted(counts.items())
        if k.startswith("rejected_")
    ]

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        inputs=run.get("inputs"),
        models=run.get("models", []),
        threads=run.get("threads"),
        config=run.get("config", {}),
        summaries_tsv=run.get("summaries_tsv"),
        counts=counts,
        rejected=rejected,
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.debug("Report rendered to %s", out_path)
    return out_path
