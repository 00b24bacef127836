"""Typed exceptions raised by ingest, annotation and persistence."""


class ReviewError(Exception):
  """Base class for pred-review errors."""


class MalformedRecordError(ReviewError, ValueError):
  """Raised when a source line cannot be parsed into a record."""

  def __init__(self, source_id: str, line_no: int, reason: str) -> None:
    super().__init__(f'{source_id}:{line_no}: {reason}')
    self.source_id = source_id
    self.line_no = line_no
    self.reason = reason


class DuplicateTagError(ReviewError):
  """Raised when defining a tag the group already knows."""

  def __init__(self, tag: str) -> None:
    super().__init__(f'tag already defined: {tag}')
    self.tag = tag


class UnknownTagError(ReviewError):
  """Raised when toggling a tag the group does not know."""

  def __init__(self, tag: str) -> None:
    super().__init__(f'unknown tag: {tag}')
    self.tag = tag


class WriteInProgressError(ReviewError):
  """Raised when a group is persisted while its previous write is pending."""


class PersistenceError(ReviewError):
  """Raised when writing a group back to storage fails."""


class ReadOnlyGroupError(PersistenceError):
  """Raised when persisting a group that has no write-back capability."""


class SourceError(ReviewError):
  """Raised when a source cannot be enumerated or read."""
