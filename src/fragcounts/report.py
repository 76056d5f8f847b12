from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

from .aggregator import sample_stats_table

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>FragCounts Report</title>
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

<h1>FragCounts Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<table>
  <tr><th>Fragments</th><td><code>{{ fragments_path }}</code> ({{ summary.n_fragments }} fragments)</td></tr>
  <tr><th>Mode</th><td>{{ summary.mode }}</td></tr>
  {% if summary.flank_size %}
  <tr><th>Flank size</th><td>{{ summary.flank_size }} bp</td></tr>
  {% endif %}
  <tr><th>Samples</th><td>{{ summary.samples | length }}</td></tr>
</table>

<h2>Per-sample reads</h2>
<table>
  <tr>
    <th>Sample</th><th>Records</th><th>Unmapped</th><th>Secondary skipped</th>
    <th>Supplementary skipped</th><th>Duplicates</th><th>Assigned</th><th>Unassigned</th>
    <th>Unknown contig</th><th>Fragments with reads</th>
  </tr>
  {% for row in rows %}
  <tr>
    <td><code>{{ row.sample }}</code></td>
    <td>{{ row.records_total }}</td>
    <td>{{ row.records_unmapped }}</td>
    <td>{{ row.records_skipped_secondary }}</td>
    <td>{{ row.records_skipped_supplementary }}</td>
    <td>{{ row.reads_skipped_duplicates }}</td>
    <td>{{ row.reads_assigned }}</td>
    <td>{{ row.reads_unassigned }}</td>
    <td>{{ row.reads_unknown_contig }}</td>
    <td>{{ summary.fragments_with_reads[row.sample] }}</td>
  </tr>
  {% endfor %}
</table>

<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Read fates</h3>
    <img src="{{ plots.read_fates }}" alt="read fates">
  </div>
  <div class="card">
    <h3>Reads per fragment</h3>
    <img src="{{ plots.fragment_hist }}" alt="reads per fragment">
  </div>
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ counts_path }}</code> (fragment x sample counts)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>Each read is placed by its 5' end: leftmost base on the forward strand, rightmost on the reverse strand.</li>
  <li>Reads flagged as duplicates are never counted.</li>
  {% if summary.mode == "flank" %}
  <li>Both end windows of a fragment add up into one count; fragments narrower than the flank size are counted once per read.</li>
  {% endif %}
  <li>Where fragments overlap, a read goes to the fragment listed first.</li>
</ul>

<hr>
<p class="small">FragCounts {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    summary: Dict[str, Any],
    fragments_path: str,
    counts_path: str,
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        summary=summary,
        rows=sample_stats_table(summary.get("read_stats", {})),
        fragments_path=fragments_path,
        counts_path=counts_path,
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
