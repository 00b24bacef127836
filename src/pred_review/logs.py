"""Event logging for review sessions.

Every ingest, filter, annotation and save event is written as one JSON line
to an optional log file and echoed to the console.
"""

import json
import os
import sys
import time
from dataclasses import dataclass, field
from typing import Any, TextIO

_ANSI = {'dim': '2', 'red': '31', 'green': '32', 'magenta': '35', 'cyan': '36'}

# event -> (console label, colour)
_LABELS: dict[str, tuple[str, str | None]] = {
  'ingest': ('LOAD', 'green'),
  'ingest_error': ('LOAD FAILED', 'red'),
  'open': ('OPEN', None),
  'filter': ('FILTER', 'cyan'),
  'note': ('NOTE', None),
  'tag_defined': ('TAG NEW', 'cyan'),
  'tag_toggled': ('TAG', 'cyan'),
  'persist': ('SAVED', 'green'),
  'persist_error': ('SAVE FAILED', 'red'),
}


def console_mode(stdout_format: str, stream: TextIO | None = None) -> tuple[bool, bool]:
  """Resolve (pretty, colour) for a console stream.

  `auto` means pretty on a terminal and JSON when piped. Colour also needs a
  terminal, no NO_COLOR and a TERM other than `dumb`.
  """
  tty = (stream or sys.stdout).isatty()
  pretty = {'pretty': True, 'json': False}.get(stdout_format, tty)
  colour = (
    pretty
    and tty
    and 'NO_COLOR' not in os.environ
    and os.environ.get('TERM', 'dumb') != 'dumb'
  )
  return pretty, colour


def elapsed(seconds: float) -> str:
  """`mm:ss.s` since the logger started."""
  minutes, rest = divmod(max(seconds, 0.0), 60)
  return f'{int(minutes):02d}:{rest:04.1f}'


def shorten(text: str, width: int) -> str:
  """Cut `text` to `width` characters, marking the cut with an ellipsis."""
  if width <= 0 or len(text) <= width:
    return text
  return text[: width - 1].rstrip() + '…'


def paint(text: str, colour: str | None, on: bool, bold: bool = False) -> str:
  if not on:
    return text
  codes = ['1'] if bold else []
  if colour in _ANSI:
    codes.append(_ANSI[colour])
  return f'\033[{";".join(codes)}m{text}\033[0m' if codes else text


@dataclass(slots=True)
class ReviewLogger:
  """Tee logger: JSON lines to a file, pretty or JSON lines to stdout.

  Usable as a context manager so the log file is closed when a command ends.
  """

  path: str | None = None
  enabled: bool = True
  echo: bool = True
  stdout_format: str = 'auto'  # "auto" | "json" | "pretty"
  max_text: int = 72
  _fh: TextIO | None = field(init=False, default=None)
  _started: float = field(init=False, default_factory=time.monotonic)
  _count: int = field(init=False, default=0)
  _pretty: bool = field(init=False, default=False)
  _colour: bool = field(init=False, default=False)

  def __post_init__(self) -> None:
    self._pretty, self._colour = console_mode(self.stdout_format)
    if self.enabled and self.path:
      self._fh = open(self.path, 'a', encoding='utf-8')

  def __enter__(self) -> 'ReviewLogger':
    return self

  def __exit__(self, *exc_info: object) -> None:
    self.close()

  @property
  def closed(self) -> bool:
    return self._fh is None

  def log(self, record: dict[str, Any]) -> None:
    if not self.enabled:
      return
    encoded = json.dumps(record, ensure_ascii=False)
    if self._fh is not None:
      print(encoded, file=self._fh, flush=True)
    if self.echo:
      shown = self.render(record) if self._pretty else encoded
      print(shown, flush=True)

  def close(self) -> None:
    if self._fh is not None:
      fh, self._fh = self._fh, None
      fh.close()

  def render(self, r: dict[str, Any]) -> str:
    """One human-readable console line for an event."""
    self._count += 1
    event = r.get('event', 'info')
    head = paint(
      f'[{self._count:>3}] {elapsed(time.monotonic() - self._started)}',
      'dim',
      self._colour,
    )
    if event not in _LABELS:
      return f'{head} {json.dumps(r, ensure_ascii=False)}'

    text, colour = _LABELS[event]
    label = paint(text, colour, self._colour, bold=colour is not None)
    where = paint(self._where(r), 'magenta', self._colour)
    return f'{head} {label}  {where}  {self._detail(event, r)}'.rstrip()

  def _where(self, r: dict[str, Any]) -> str:
    parts = [p for p in (r.get('set'), r.get('method')) if p]
    return '/'.join(parts) if parts else str(r.get('source', '-'))

  def _detail(self, event: str, r: dict[str, Any]) -> str:
    if event == 'ingest':
      tags = ','.join(r.get('tags', [])) or '-'
      return f'{r.get("records", 0)} rows  tags={tags}'
    if event == 'persist':
      return f'{r.get("records", 0)} rows'
    if event.endswith('_error'):
      return paint(str(r.get('error', 'unknown error')), 'red', self._colour)
    if event == 'note':
      return f'#{r.get("row")}  "{shorten(str(r.get("text", "")), self.max_text)}"'
    if event in ('tag_defined', 'tag_toggled', 'filter'):
      value = r.get('value')
      if value is None:
        return str(r.get('tag'))
      return f'{r.get("tag")} = {paint(str(value), "cyan", self._colour, bold=True)}'
    return ''


def null_logger() -> ReviewLogger:
  """A logger that drops every event."""
  return ReviewLogger(enabled=False)
