"""Per-set tag filter state."""

from dataclasses import dataclass, field


@dataclass
class FilterStore:
  """Maps set name -> tag id -> active flag.

  Filters never leak between sets, even when two sets share a tag id. A tag
  missing from a set's mapping is inactive.
  """

  _by_set: dict[str, dict[str, bool]] = field(default_factory=dict)

  def toggle(self, set_name: str, tag: str) -> bool:
    """Flip a tag's flag for one set and return the new value."""
    flags = self._by_set.setdefault(set_name, {})
    flags[tag] = not flags.get(tag, False)
    return flags[tag]

  def set_active(self, set_name: str, tag: str, active: bool) -> None:
    """Set a tag's flag explicitly (checkbox semantics)."""
    self._by_set.setdefault(set_name, {})[tag] = bool(active)

  def is_active(self, set_name: str, tag: str) -> bool:
    return self._by_set.get(set_name, {}).get(tag, False)

  def active_tags(self, set_name: str) -> set[str]:
    """Tags currently flagged True for a set."""
    return {t for t, on in self._by_set.get(set_name, {}).items() if on}
