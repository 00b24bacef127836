"""Reporting utilities for pred-review.

Builds per-group metrics, plots recall by method, and writes Markdown/HTML
reports plus the dashboard table printed by the CLI.
"""

import base64
import os
from dataclasses import asdict

import pandas as pd
import matplotlib.pyplot as plt
from tabulate import tabulate

from .catalog import Catalog
from .data import tag_label
from .filters import FilterStore
from .grader import GroupMetrics, dump_metrics, group_metrics
from .session import SetSummary

_COLUMNS = [
  'set_name',
  'method_name',
  'records',
  'selected',
  'recall',
  'true_positives',
  'false_negatives',
  'false_positives',
  'annotated',
]


def collect_metrics(
  catalog: Catalog, filters: FilterStore
) -> list[GroupMetrics]:
  """Metrics for every group under its set's active filters."""
  return [
    group_metrics(g, filters.active_tags(g.set_name))
    for set_name in catalog.set_names()
    for g in catalog.groups_for_set(set_name)
  ]


def metrics_frame(metrics: list[GroupMetrics]) -> pd.DataFrame:
  """One row per group, tag counts spread into `tag:<name>` columns."""
  rows = []
  for m in metrics:
    row = {k: v for k, v in asdict(m).items() if k != 'tag_counts'}
    for tag, n in m.tag_counts.items():
      row[f'tag:{tag_label(tag)}'] = n
    rows.append(row)
  df = pd.DataFrame(rows, columns=None if rows else _COLUMNS)
  tag_cols = sorted(c for c in df.columns if c not in _COLUMNS)
  if tag_cols:
    # Groups without a tag count zero for it.
    df[tag_cols] = df[tag_cols].fillna(0).astype(int)
  return df[_COLUMNS + tag_cols]


def format_dashboard(cards: list[SetSummary]) -> str:
  """Plain-text dashboard: one recall table per set."""
  blocks = []
  for card in cards:
    table = tabulate(
      [
        [
          m.method_name,
          m.records,
          f'{m.recall:.2f}%',
          'read-only' if m.read_only else '',
        ]
        for m in card.methods
      ],
      headers=['method', 'rows', 'avg recall', ''],
      tablefmt='github',
    )
    tags = ', '.join(
      f'[{"x" if t in card.active_tags else " "}] {tag_label(t)}'
      for t in card.tags
    )
    blocks.append(
      f'## {card.set_name}\n\n{table}\n\nFilter by tags: {tags or "-"}'
    )
  return '\n\n'.join(blocks)


def _embed_image_base64(path: str) -> str:
  """Read an image file and return a `data:` URL with base64-encoded bytes."""
  with open(path, 'rb') as f:
    b64 = base64.b64encode(f.read()).decode('ascii')
  ext = os.path.splitext(path)[1].lstrip('.') or 'png'
  return f'data:image/{ext};base64,{b64}'


def _plot_recall(df: pd.DataFrame, path: str) -> None:
  """Bar chart of recall per set/method."""
  labels = [f'{s}/{m}' for s, m in zip(df['set_name'], df['method_name'])]
  plt.figure()
  plt.bar(labels, df['recall'].tolist())
  plt.ylabel('Avg Recall (%)')
  plt.ylim(0, 100)
  plt.title('Recall by Method')
  plt.xticks(rotation=30, ha='right')
  plt.tight_layout()
  plt.savefig(path, dpi=160)
  plt.close()


def render_report(
  catalog: Catalog,
  filters: FilterStore,
  out_dir: str,
  basename: str = 'report',
) -> list[GroupMetrics]:
  """Aggregate metrics and write named metrics + chart + Markdown + HTML.

  Files written:
    metrics_{basename}.json
    recall_{basename}.png
    report_{basename}.md
    report_{basename}.html
  """
  metrics = collect_metrics(catalog, filters)
  os.makedirs(out_dir, exist_ok=True)
  dump_metrics(metrics, os.path.join(out_dir, f'metrics_{basename}.json'))
  df = metrics_frame(metrics)

  chart_path = os.path.join(out_dir, f'recall_{basename}.png')
  if not df.empty:
    _plot_recall(df, chart_path)

  active = {
    s: sorted(tag_label(t) for t in filters.active_tags(s))
    for s in catalog.set_names()
  }
  filter_lines = [
    f'- **{s}:** {", ".join(tags) if tags else "(none)"}'
    for s, tags in active.items()
  ]

  # Markdown report
  lines = ['# Prediction Review Report\n']
  lines.append(f'**Groups:** {len(metrics)}  ')
  lines.append(f'**Records:** {sum(m.records for m in metrics)}\n')
  lines.append('## Active filters\n')
  lines.extend(filter_lines or ['(none)'])
  lines.append('\n## Recall by Method\n')
  lines.append(
    tabulate(
      df, headers='keys', tablefmt='github', showindex=False, floatfmt='.2f'
    )
  )
  if os.path.exists(chart_path):
    lines.append(f'\n![Recall by Method](recall_{basename}.png)\n')
  with open(os.path.join(out_dir, f'report_{basename}.md'), 'w') as f:
    f.write('\n'.join(lines))

  # HTML report (embed chart)
  img_data = (
    _embed_image_base64(chart_path) if os.path.exists(chart_path) else ''
  )
  img_tag = (
    f'<img alt="Recall by Method" src="{img_data}" style="max-width:100%;height:auto;"/>'
    if img_data
    else ''
  )
  table_html = df.to_html(index=False, float_format=lambda x: f'{x:.2f}')
  filters_html = ''.join(
    f'<li><strong>{s}:</strong> {", ".join(tags) if tags else "(none)"}</li>'
    for s, tags in active.items()
  )
  html = f"""
  <!doctype html>
  <html lang="en"><head><meta charset="utf-8"/>
  <title>Prediction Review - {basename}</title>
  <style>
    body{{font-family:system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial,sans-serif;max-width:1000px;margin:40px auto;padding:0 16px;}}
    table{{border-collapse:collapse;width:100%;}}
    th,td{{border:1px solid #ddd;padding:6px 8px;text-align:left;}}
    th{{background:#f7f7f7;}}
  </style></head>
  <body>
    <header>
      <h1>Prediction Review Report</h1>
      <p><strong>Run:</strong> {basename}</p>
      <p><strong>Groups:</strong> {len(metrics)}</p>
    </header>
    <section>
      <h2>Active filters</h2>
      <ul>{filters_html}</ul>
    </section>
    <section>
      <h2>Recall by Method</h2>
      {img_tag}
      {table_html}
    </section>
  </body></html>
  """
  with open(
    os.path.join(out_dir, f'report_{basename}.html'), 'w', encoding='utf-8'
  ) as f:
    f.write(html)
  return metrics
