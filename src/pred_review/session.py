"""Review session state: selection, navigation, filters and annotation.

`ReviewSession` is the single owner of what the reviewer is looking at. All
engine calls receive the group, record index and filter store they act on
explicitly; the session only decides which ones.
"""

from dataclasses import dataclass, field

from . import annotate
from .catalog import Catalog
from .data import Group, Record, tag_id
from .errors import PersistenceError
from .filters import FilterStore
from .grader import Breakdown, calculate_recall, classify
from .logs import ReviewLogger, null_logger


@dataclass
class MethodSummary:
  """One dashboard line."""

  method_name: str
  records: int
  recall: float
  read_only: bool


@dataclass
class SetSummary:
  """Dashboard card for one set."""

  set_name: str
  methods: list[MethodSummary]
  tags: list[str]
  active_tags: set[str]


@dataclass
class ReviewSession:
  """Controller for browsing and annotating a catalog."""

  catalog: Catalog
  filters: FilterStore = field(default_factory=FilterStore)
  logger: ReviewLogger = field(default_factory=null_logger)
  selected_set: str | None = None
  selected_method: str | None = None
  row_index: int = 0

  # ---------- Dashboard ----------

  def dashboard(self) -> list[SetSummary]:
    """Recall of every method, under each set's own active filters."""
    cards = []
    for set_name in self.catalog.set_names():
      active = self.filters.active_tags(set_name)
      methods = [
        MethodSummary(
          method_name=g.method_name,
          records=len(g.records),
          recall=calculate_recall(g.records, active),
          read_only=g.read_only,
        )
        for g in self.catalog.groups_for_set(set_name)
      ]
      cards.append(
        SetSummary(
          set_name=set_name,
          methods=methods,
          tags=self.catalog.tags_for_set(set_name),
          active_tags=active,
        )
      )
    return cards

  def toggle_filter(self, set_name: str, tag: str) -> bool:
    value = self.filters.toggle(set_name, tag_id(tag))
    self.logger.log(
      {'event': 'filter', 'set': set_name, 'tag': tag_id(tag), 'value': value}
    )
    return value

  # ---------- Selection & navigation ----------

  def open(self, set_name: str, method_name: str | None = None) -> Group:
    """Select a set (and a method, defaulting to its first)."""
    methods = self.catalog.methods_for_set(set_name)
    if not methods:
      raise KeyError(f'unknown set: {set_name!r}')
    if method_name is None:
      method_name = methods[0]
    group = self.catalog.get(set_name, method_name)
    self.selected_set = set_name
    self.selected_method = method_name
    self.row_index = self._clamp(self.row_index, group)
    self.logger.log({'event': 'open', 'set': set_name, 'method': method_name})
    return group

  def close(self) -> None:
    """Back to the dashboard."""
    self.selected_set = None
    self.selected_method = None
    self.row_index = 0

  def select_method(self, method_name: str) -> Group:
    if self.selected_set is None:
      raise RuntimeError('no set selected')
    return self.open(self.selected_set, method_name)

  def methods(self) -> list[str]:
    if self.selected_set is None:
      return []
    return self.catalog.methods_for_set(self.selected_set)

  def current_group(self) -> Group | None:
    if self.selected_set is None or self.selected_method is None:
      return None
    return self.catalog.get(self.selected_set, self.selected_method)

  def current_record(self) -> Record | None:
    group = self.current_group()
    if group is None or not group.records:
      return None
    return group.records[self.row_index]

  def current_breakdown(self) -> Breakdown | None:
    record = self.current_record()
    return classify(record) if record is not None else None

  def go_to(self, index: int) -> int:
    group = self._require_group()
    self.row_index = self._clamp(index, group)
    return self.row_index

  def next_row(self) -> int:
    return self.go_to(self.row_index + 1)

  def prev_row(self) -> int:
    return self.go_to(self.row_index - 1)

  # ---------- Annotation ----------

  def set_note(self, text: str) -> None:
    group = self._require_group()
    annotate.set_note(group, self.row_index, text)
    self.logger.log(
      {
        'event': 'note',
        'set': group.set_name,
        'method': group.method_name,
        'row': self.row_index,
        'text': text,
      }
    )

  def define_tag(self, name: str) -> str:
    """Define a tag on the current group; bare names get the tag prefix."""
    group = self._require_group()
    tag = tag_id(name)
    annotate.define_tag(group, tag)
    self.logger.log(
      {
        'event': 'tag_defined',
        'set': group.set_name,
        'method': group.method_name,
        'tag': tag,
      }
    )
    return tag

  def toggle_tag(self, name: str) -> bool:
    group = self._require_group()
    tag = tag_id(name)
    value = annotate.toggle_tag(group, self.row_index, tag)
    self.logger.log(
      {
        'event': 'tag_toggled',
        'set': group.set_name,
        'method': group.method_name,
        'row': self.row_index,
        'tag': tag,
        'value': value,
      }
    )
    return value

  async def save(self) -> None:
    """Write the current group back to its source."""
    group = self._require_group()
    await save_group(group, self.logger)

  # ---------- Helpers ----------

  def _require_group(self) -> Group:
    group = self.current_group()
    if group is None:
      raise RuntimeError('no group selected')
    return group

  @staticmethod
  def _clamp(index: int, group: Group) -> int:
    return max(0, min(index, len(group.records) - 1))


async def save_group(group: Group, logger: ReviewLogger | None = None) -> None:
  """Persist a group and log the outcome; failures are re-raised."""
  logger = logger or null_logger()
  where = {'set': group.set_name, 'method': group.method_name}
  try:
    await annotate.persist(group)
  except PersistenceError as e:
    logger.log({'event': 'persist_error', **where, 'error': str(e)})
    raise
  logger.log({'event': 'persist', **where, 'records': len(group.records)})
