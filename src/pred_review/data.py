"""Core data structures for pred-review.

Defines the record and group schema plus the JSONL line mapping.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

PREDS_KEY = 'preds'
GOLDS_KEY = 'golds'
QUESTION_KEY = 'question'
NOTES_KEY = 'notes'
TAG_PREFIX = 'tag_'

# Receives the full serialized group and durably stores it.
WriteBack = Callable[[bytes], Awaitable[None]]


def is_tag_key(key: str) -> bool:
  """Return True if a line key holds a boolean annotation."""
  return key.startswith(TAG_PREFIX)


def tag_label(tag: str) -> str:
  """Display name of a tag id (prefix stripped)."""
  return tag[len(TAG_PREFIX) :] if is_tag_key(tag) else tag


def tag_id(name: str) -> str:
  """Tag id for a user-entered name; names already prefixed pass through."""
  return name if is_tag_key(name) else f'{TAG_PREFIX}{name}'


@dataclass
class Record:
  """One gold/prediction comparison plus its annotations."""

  predicted: list[str] = field(default_factory=list)
  gold: list[str] = field(default_factory=list)
  question: str | None = None
  note: str = ''
  tags: dict[str, bool] = field(default_factory=dict)
  # Keys the engine does not interpret, kept for write-back.
  extra: dict[str, Any] = field(default_factory=dict)
  had_question: bool = field(default=False, compare=False)
  had_note: bool = field(default=False, compare=False)
  # How an untouched empty note was stored in the source ('' or null).
  blank_note: str | None = field(default='', compare=False)

  def to_row(self) -> dict[str, Any]:
    """Map back to one JSONL object, passthrough keys included."""
    row: dict[str, Any] = dict(self.extra)
    if self.had_question or self.question is not None:
      row[QUESTION_KEY] = self.question
    row[PREDS_KEY] = list(self.predicted)
    row[GOLDS_KEY] = list(self.gold)
    if self.note:
      row[NOTES_KEY] = self.note
    elif self.had_note:
      row[NOTES_KEY] = self.blank_note
    row.update(self.tags)
    return row


@dataclass
class Group:
  """Records of one (set, method) source file."""

  set_name: str
  method_name: str
  source_id: str
  records: list[Record] = field(default_factory=list)
  known_tags: list[str] = field(default_factory=list)
  write_back: WriteBack | None = None
  writing: bool = field(default=False, compare=False)

  @property
  def key(self) -> tuple[str, str]:
    return (self.set_name, self.method_name)

  @property
  def read_only(self) -> bool:
    return self.write_back is None

  def __len__(self) -> int:
    return len(self.records)
