"""Annotation mutations and write-back for groups.

All mutations validate their arguments before touching state, so a rejected
call leaves `records` and `known_tags` exactly as they were.
"""

import json
from collections.abc import Iterable

from .data import TAG_PREFIX, Group, Record, is_tag_key
from .errors import (
  DuplicateTagError,
  PersistenceError,
  ReadOnlyGroupError,
  UnknownTagError,
  WriteInProgressError,
)


def _record_at(group: Group, index: int) -> Record:
  if not 0 <= index < len(group.records):
    raise IndexError(
      f'row {index} out of range for {group.source_id} ({len(group.records)} rows)'
    )
  return group.records[index]


def set_note(group: Group, index: int, text: str) -> None:
  """Overwrite the note on one record."""
  _record_at(group, index).note = text


def define_tag(group: Group, tag: str) -> None:
  """Add a tag to the group and backfill False on every record."""
  if not is_tag_key(tag):
    raise ValueError(f'tag ids must start with {TAG_PREFIX!r}: {tag}')
  if tag in group.known_tags:
    raise DuplicateTagError(tag)
  group.known_tags.append(tag)
  for r in group.records:
    r.tags.setdefault(tag, False)


def toggle_tag(group: Group, index: int, tag: str) -> bool:
  """Flip a known tag on one record and return the new value."""
  if tag not in group.known_tags:
    raise UnknownTagError(tag)
  record = _record_at(group, index)
  record.tags[tag] = not record.tags.get(tag, False)
  return record.tags[tag]


def dumps_records(records: Iterable[Record]) -> str:
  """Serialize records as newline-joined JSON objects."""
  return '\n'.join(
    json.dumps(r.to_row(), ensure_ascii=False) for r in records
  )


async def persist(group: Group) -> None:
  """Flush the group's current records through its write-back capability.

  Only one write per group may be pending; a second call fails right away
  with WriteInProgressError. In-memory state is left untouched whether the
  write succeeds or not.
  """
  if group.write_back is None:
    raise ReadOnlyGroupError(f'{group.source_id} is read-only')
  if group.writing:
    raise WriteInProgressError(f'{group.source_id} is already being saved')
  group.writing = True
  try:
    payload = dumps_records(group.records).encode('utf-8')
    await group.write_back(payload)
  except OSError as e:
    raise PersistenceError(f'could not save {group.source_id}: {e}') from e
  finally:
    group.writing = False
