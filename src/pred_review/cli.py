"""pred-review command-line interface.

Supports manifest generation, the recall dashboard, row inspection,
annotation with write-back, and report rendering.
"""

import argparse
import asyncio
import contextlib
import datetime
import sys
from collections.abc import Iterator

from .catalog import Catalog
from .config import Config, load_config
from .data import Record, tag_label
from .errors import ReviewError
from .grader import classify, record_recall
from .logs import ReviewLogger
from .report import format_dashboard, render_report
from .session import ReviewSession
from .sources import (
  DirectorySource,
  ManifestSource,
  RetryConfig,
  write_manifest,
)


def _timestamp() -> str:
  return datetime.datetime.now().strftime('%Y%m%d_%H%M%S')


def _logger(args: argparse.Namespace, cfg: Config) -> ReviewLogger:
  return ReviewLogger(
    path=cfg.log_path,
    enabled=bool(cfg.log_path) or args.verbose,
    echo=args.verbose,
    stdout_format=cfg.log_format,
  )


def _source(
  args: argparse.Namespace, cfg: Config
) -> DirectorySource | ManifestSource:
  """Read-only manifest when a URL applies, else the local directory."""
  url = None
  if hasattr(args, 'url') and not args.dir:
    url = args.url or cfg.manifest_url
  if url:
    return ManifestSource(
      url,
      suffix=cfg.suffix,
      timeout=cfg.http_timeout,
      retry=RetryConfig(max_retries=cfg.http_max_retries),
    )
  return DirectorySource(args.dir or cfg.data_dir, suffix=cfg.suffix)


def _parse_filters(specs: list[str] | None) -> list[tuple[str, str]]:
  """Parse `SET:TAG` arguments."""
  out = []
  for spec in specs or []:
    set_name, sep, tag = spec.partition(':')
    if not sep or not set_name or not tag:
      raise argparse.ArgumentTypeError(
        f'filter must look like SET:TAG, got {spec!r}'
      )
    out.append((set_name, tag))
  return out


@contextlib.contextmanager
def _open_session(args: argparse.Namespace) -> Iterator[ReviewSession]:
  """Load the catalog and apply any --filter flags; closes the event log on exit."""
  cfg = load_config()
  with _logger(args, cfg) as logger:
    catalog = Catalog()
    failures = catalog.load(_source(args, cfg), logger)
    for e in failures:
      print(f'skipped {e.source_id}: {e}', file=sys.stderr)
    session = ReviewSession(catalog=catalog, logger=logger)
    for set_name, tag in _parse_filters(getattr(args, 'filter', None)):
      session.toggle_filter(set_name, tag)
    yield session


def _select_row(session: ReviewSession, args: argparse.Namespace) -> Record:
  """Open set/method and move to the 1-based --row."""
  group = session.open(args.set, args.method)
  if not 1 <= args.row <= len(group.records):
    raise ReviewError(
      f'row {args.row} out of range (1..{len(group.records)}) '
      f'for {group.source_id}'
    )
  session.go_to(args.row - 1)
  return group.records[session.row_index]


def cmd_manifest(args: argparse.Namespace) -> None:
  """CLI: index a data directory into manifest.json."""
  cfg = load_config()
  files = write_manifest(args.dir or cfg.data_dir, suffix=cfg.suffix)
  print(f'Indexed {len(files)} files to manifest.json')


def cmd_dashboard(args: argparse.Namespace) -> None:
  """CLI: average recall per set and method."""
  with _open_session(args) as session:
    print(format_dashboard(session.dashboard()))


def cmd_show(args: argparse.Namespace) -> None:
  """CLI: one row with its TP/FN/FP partition and annotations."""
  with _open_session(args) as session:
    record = _select_row(session, args)
    group = session.current_group()
  b = classify(record)
  print(
    f'{group.set_name} / {group.method_name}  '
    f'entry {args.row} / {len(group)}'
  )
  print(f'\nQuestion: {record.question or "-"}')
  print(f'Recall:   {record_recall(record) * 100:.2f}%')
  for title, items in (
    ('TRUE POSITIVES', b.true_positives),
    ('FALSE NEGATIVES', b.false_negatives),
    ('FALSE POSITIVES', b.false_positives),
  ):
    print(f'\n{title} ({len(items)})')
    for item in items:
      print(f'  - {item}')
  print(f'\nNotes: {record.note or "-"}')
  tags = [
    f'[{"x" if record.tags.get(t) else " "}] {tag_label(t)}'
    for t in group.known_tags
  ]
  print(f'Tags:  {", ".join(tags) or "-"}')


def cmd_note(args: argparse.Namespace) -> None:
  """CLI: set a row's note and save."""
  with _open_session(args) as session:
    _select_row(session, args)
    session.set_note(args.text)
    asyncio.run(session.save())
  print(f'Changes successfully saved to {session.current_group().source_id}')


def cmd_tag_define(args: argparse.Namespace) -> None:
  """CLI: define a tag on a group and save."""
  with _open_session(args) as session:
    session.open(args.set, args.method)
    tag = session.define_tag(args.name)
    asyncio.run(session.save())
  print(f'Defined {tag} on {session.current_group().source_id}')


def cmd_tag_toggle(args: argparse.Namespace) -> None:
  """CLI: flip a tag on a row and save."""
  with _open_session(args) as session:
    _select_row(session, args)
    value = session.toggle_tag(args.name)
    asyncio.run(session.save())
  print(f'{tag_label(args.name)} = {value} on row {args.row}')


def cmd_report(args: argparse.Namespace) -> None:
  """CLI: write metrics, chart and Markdown/HTML reports."""
  basename = args.name or _timestamp()
  with _open_session(args) as session:
    render_report(session.catalog, session.filters, args.out, basename=basename)
  print(f'Wrote report to {args.out}')


def _add_source_args(p: argparse.ArgumentParser) -> None:
  g = p.add_mutually_exclusive_group()
  g.add_argument('--dir', type=str, default=None, help='Data directory')
  g.add_argument(
    '--url',
    type=str,
    default=None,
    help='Base URL serving manifest.json (read-only)',
  )


def _add_row_args(p: argparse.ArgumentParser, row: bool = True) -> None:
  p.add_argument('--set', type=str, required=True, help='Set name')
  p.add_argument('--method', type=str, required=True, help='Method name')
  if row:
    p.add_argument(
      '--row', type=int, required=True, help='Entry number (1-based)'
    )


def main(argv: list[str] | None = None) -> int:
  """Entry point for pred-review CLI."""
  ap = argparse.ArgumentParser(
    prog='pred-review', description='Review and annotate prediction files'
  )
  ap.add_argument(
    '--verbose', action='store_true', help='Echo session events to stdout'
  )
  sub = ap.add_subparsers(dest='cmd', required=True)

  m = sub.add_parser(
    'manifest', help='Write manifest.json for a data directory'
  )
  m.add_argument('--dir', type=str, default=None, help='Data directory')
  m.set_defaults(func=cmd_manifest)

  d = sub.add_parser('dashboard', help='Average recall per set and method')
  _add_source_args(d)
  d.add_argument(
    '--filter', action='append', metavar='SET:TAG', help='Activate a tag filter'
  )
  d.set_defaults(func=cmd_dashboard)

  s = sub.add_parser('show', help='Show one row')
  _add_source_args(s)
  _add_row_args(s)
  s.set_defaults(func=cmd_show)

  n = sub.add_parser('note', help='Set a row note and save')
  n.add_argument('--dir', type=str, default=None, help='Data directory')
  _add_row_args(n)
  n.add_argument('--text', type=str, required=True, help='Note text')
  n.set_defaults(func=cmd_note)

  t = sub.add_parser('tag', help='Define or toggle tags')
  tsub = t.add_subparsers(dest='tag_cmd', required=True)
  td = tsub.add_parser('define', help='Define a new tag on a group and save')
  td.add_argument('--dir', type=str, default=None, help='Data directory')
  _add_row_args(td, row=False)
  td.add_argument('--name', type=str, required=True, help='Tag name')
  td.set_defaults(func=cmd_tag_define)
  tt = tsub.add_parser('toggle', help='Flip a tag on a row and save')
  tt.add_argument('--dir', type=str, default=None, help='Data directory')
  _add_row_args(tt)
  tt.add_argument('--name', type=str, required=True, help='Tag name')
  tt.set_defaults(func=cmd_tag_toggle)

  r = sub.add_parser('report', help='Write metrics, chart and reports')
  _add_source_args(r)
  r.add_argument('--out', type=str, required=True, help='Output directory')
  r.add_argument('--name', type=str, default=None, help='Report basename')
  r.add_argument(
    '--filter', action='append', metavar='SET:TAG', help='Activate a tag filter'
  )
  r.set_defaults(func=cmd_report)

  args = ap.parse_args(argv)
  try:
    args.func(args)
  except argparse.ArgumentTypeError as e:
    ap.error(str(e))
  except (ReviewError, KeyError) as e:
    print(f'error: {e}', file=sys.stderr)
    return 1
  return 0
