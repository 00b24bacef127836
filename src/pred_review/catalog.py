"""Ingest of prediction files and the in-memory catalog of groups."""

import json
from collections.abc import Iterable, Iterator
from typing import Any, Protocol

from .data import (
  GOLDS_KEY,
  NOTES_KEY,
  PREDS_KEY,
  QUESTION_KEY,
  Group,
  Record,
  WriteBack,
  is_tag_key,
)
from .errors import MalformedRecordError
from .logs import ReviewLogger, null_logger

DEFAULT_SUFFIX = '_preds2.jsonl'


def parse_source_id(
  source_id: str, suffix: str = DEFAULT_SUFFIX
) -> tuple[str, str]:
  """Split `<set>_<method...><suffix>` into (set name, method name)."""
  stem = source_id
  if suffix and stem.endswith(suffix):
    stem = stem[: -len(suffix)]
  parts = stem.split('_')
  return parts[0], '_'.join(parts[1:])


def _id_list(
  row: dict[str, Any], key: str, source_id: str, line_no: int
) -> list:
  value = row.get(key)
  if value is None:
    return []
  if not isinstance(value, list):
    raise MalformedRecordError(
      source_id, line_no, f'"{key}" must be a list, got {type(value).__name__}'
    )
  for i, item in enumerate(value):
    if not isinstance(item, str):
      raise MalformedRecordError(
        source_id,
        line_no,
        f'"{key}"[{i}] must be a string id, got {type(item).__name__}',
      )
  return list(value)


def parse_record(line: str, source_id: str, line_no: int) -> Record:
  """Parse one JSONL line into a Record."""
  try:
    row = json.loads(line)
  except json.JSONDecodeError as e:
    raise MalformedRecordError(
      source_id, line_no, f'invalid JSON: {e.msg}'
    ) from e
  if not isinstance(row, dict):
    raise MalformedRecordError(source_id, line_no, 'line is not a JSON object')

  predicted = _id_list(row, PREDS_KEY, source_id, line_no)
  gold = _id_list(row, GOLDS_KEY, source_id, line_no)
  note = row.get(NOTES_KEY)
  if note is not None and not isinstance(note, str):
    raise MalformedRecordError(
      source_id, line_no, f'"{NOTES_KEY}" must be a string'
    )

  tags: dict[str, bool] = {}
  extra: dict[str, Any] = {}
  for key, value in row.items():
    if key in (PREDS_KEY, GOLDS_KEY, NOTES_KEY, QUESTION_KEY):
      continue
    if is_tag_key(key):
      if not isinstance(value, bool):
        raise MalformedRecordError(
          source_id, line_no, f'tag "{key}" must be a boolean'
        )
      tags[key] = value
    else:
      extra[key] = value

  question = row.get(QUESTION_KEY)
  return Record(
    predicted=predicted,
    gold=gold,
    question=question,
    note=note or '',
    tags=tags,
    extra=extra,
    had_question=QUESTION_KEY in row,
    had_note=NOTES_KEY in row,
    blank_note=None if note is None else '',
  )


def ingest(
  source_id: str,
  raw_lines: Iterable[str],
  write_back: WriteBack | None = None,
  suffix: str = DEFAULT_SUFFIX,
) -> Group:
  """Build a Group from one source; any malformed line aborts the whole source."""
  set_name, method_name = parse_source_id(source_id, suffix)
  records: list[Record] = []
  known_tags: list[str] = []
  for line_no, line in enumerate(raw_lines, start=1):
    if not line.strip():
      continue
    record = parse_record(line, source_id, line_no)
    for tag in record.tags:
      if tag not in known_tags:
        known_tags.append(tag)
    records.append(record)
  # Every record exposes the full vocabulary.
  for r in records:
    for tag in known_tags:
      r.tags.setdefault(tag, False)
  return Group(
    set_name=set_name,
    method_name=method_name,
    source_id=source_id,
    records=records,
    known_tags=known_tags,
    write_back=write_back,
  )


class Source(Protocol):
  """Where prediction files come from."""

  suffix: str

  def entries(self) -> list[str]: ...

  def read(self, entry: str) -> str: ...

  def writer(self, entry: str) -> WriteBack | None: ...


class Catalog:
  """All loaded groups, addressed by (set name, method name)."""

  def __init__(self, groups: Iterable[Group] = ()) -> None:
    self._groups: dict[tuple[str, str], Group] = {}
    for g in groups:
      self.add(g)

  def add(self, group: Group) -> None:
    self._groups[group.key] = group

  def get(self, set_name: str, method_name: str) -> Group:
    try:
      return self._groups[(set_name, method_name)]
    except KeyError:
      raise KeyError(
        f'no group for set={set_name!r} method={method_name!r}'
      ) from None

  def __contains__(self, key: tuple[str, str]) -> bool:
    return key in self._groups

  def __iter__(self) -> Iterator[Group]:
    return iter(self._groups.values())

  def __len__(self) -> int:
    return len(self._groups)

  def set_names(self) -> list[str]:
    """Set names in first-loaded order."""
    return list(dict.fromkeys(s for s, _ in self._groups))

  def groups_for_set(self, set_name: str) -> list[Group]:
    return [g for g in self._groups.values() if g.set_name == set_name]

  def methods_for_set(self, set_name: str) -> list[str]:
    return [g.method_name for g in self.groups_for_set(set_name)]

  def tags_for_set(self, set_name: str) -> list[str]:
    """Union of the known tags of every group in a set."""
    tags: dict[str, None] = {}
    for g in self.groups_for_set(set_name):
      tags.update(dict.fromkeys(g.known_tags))
    return list(tags)

  def load(
    self, source: Source, logger: ReviewLogger | None = None
  ) -> list[MalformedRecordError]:
    """Ingest every entry of a source; malformed sources are skipped and returned."""
    logger = logger or null_logger()
    failures: list[MalformedRecordError] = []
    for entry in source.entries():
      text = source.read(entry)
      try:
        group = ingest(
          entry, text.split('\n'), source.writer(entry), suffix=source.suffix
        )
      except MalformedRecordError as e:
        logger.log({'event': 'ingest_error', 'source': entry, 'error': str(e)})
        failures.append(e)
        continue
      self.add(group)
      logger.log(
        {
          'event': 'ingest',
          'source': entry,
          'set': group.set_name,
          'method': group.method_name,
          'records': len(group.records),
          'tags': list(group.known_tags),
          'read_only': group.read_only,
        }
      )
    return failures
