"""Scoring utilities for pred-review.

Provides the per-record TP/FN/FP partition, filtered recall, and aggregate
group metrics.
"""

import json
from collections.abc import Collection, Iterable
from dataclasses import asdict, dataclass

from .data import Group, Record

# Gold lists longer than this are scored as if they had this many items.
MAX_GOLD_DENOMINATOR = 100


@dataclass
class Breakdown:
  """Classification of one record's items."""

  true_positives: list[str]
  false_negatives: list[str]
  false_positives: list[str]


def classify(record: Record) -> Breakdown:
  """Split predicted/gold items into true/false positives and misses.

  Membership is list-level: every occurrence of a predicted item is kept,
  so duplicates count once per occurrence.
  """
  gold = set(record.gold)
  predicted = set(record.predicted)
  return Breakdown(
    true_positives=[p for p in record.predicted if p in gold],
    false_negatives=[g for g in record.gold if g not in predicted],
    false_positives=[p for p in record.predicted if p not in gold],
  )


def record_recall(record: Record) -> float:
  """Recall of one record as a fraction (not a percentage).

  Counts gold items found among the predictions, so repeated predictions
  never push a record past 1.0.
  """
  predicted = set(record.predicted)
  matches = sum(1 for g in record.gold if g in predicted)
  return matches / min(MAX_GOLD_DENOMINATOR, max(1, len(record.gold)))


def passes_filter(record: Record, active_tags: Collection[str]) -> bool:
  """True if every active tag is set on the record."""
  return all(record.tags.get(tag) is True for tag in active_tags)


def select_records(
  records: Iterable[Record], active_tags: Collection[str]
) -> list[Record]:
  """Records that satisfy the conjunction of active tags."""
  return [r for r in records if passes_filter(r, active_tags)]


def calculate_recall(
  records: Iterable[Record], active_tags: Collection[str] = ()
) -> float:
  """Average recall percentage (two decimals) over the filtered records.

  An empty selection scores 0.0.
  """
  selected = select_records(records, active_tags)
  if not selected:
    return 0.0
  total = sum(record_recall(r) for r in selected)
  return round(total / len(selected) * 100, 2)


@dataclass
class GroupMetrics:
  """Aggregated metrics for one group under a filter."""

  set_name: str
  method_name: str
  records: int
  selected: int
  recall: float
  true_positives: int
  false_negatives: int
  false_positives: int
  annotated: int
  tag_counts: dict[str, int]


def group_metrics(
  group: Group, active_tags: Collection[str] = ()
) -> GroupMetrics:
  """Compute recall, partition totals and annotation counts for a group."""
  selected = select_records(group.records, active_tags)
  tp = fn = fp = 0
  for r in selected:
    b = classify(r)
    tp += len(b.true_positives)
    fn += len(b.false_negatives)
    fp += len(b.false_positives)
  return GroupMetrics(
    set_name=group.set_name,
    method_name=group.method_name,
    records=len(group.records),
    selected=len(selected),
    recall=calculate_recall(selected),
    true_positives=tp,
    false_negatives=fn,
    false_positives=fp,
    annotated=sum(1 for r in group.records if r.note.strip()),
    tag_counts={
      tag: sum(1 for r in group.records if r.tags.get(tag) is True)
      for tag in group.known_tags
    },
  )


def dump_metrics(metrics: list[GroupMetrics], path: str) -> None:
  """Write metrics JSON to disk."""
  with open(path, 'w') as f:
    json.dump([asdict(m) for m in metrics], f, indent=2)
