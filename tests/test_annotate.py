import asyncio
import copy
import json

import pytest

from pred_review.annotate import (
  define_tag,
  dumps_records,
  persist,
  set_note,
  toggle_tag,
)
from pred_review.catalog import ingest
from pred_review.errors import (
  DuplicateTagError,
  PersistenceError,
  ReadOnlyGroupError,
  UnknownTagError,
  WriteInProgressError,
)

LINES = [
  '{"question": "q1", "preds": ["a", "b"], "golds": ["a"], "tag_hard": true, "score": 0.5}',
  '{"question": "q2", "preds": [], "golds": ["c"]}',
]


def _group(write_back=None):
  return ingest('set1_model_a_preds2.jsonl', LINES, write_back)


def test_set_note_overwrites():
  g = _group()
  set_note(g, 1, 'first')
  set_note(g, 1, 'second')
  assert g.records[1].note == 'second'
  assert g.records[0].note == ''


def test_set_note_out_of_range_leaves_state():
  g = _group()
  before = copy.deepcopy(g.records)
  with pytest.raises(IndexError):
    set_note(g, 5, 'x')
  assert g.records == before


def test_define_tag_backfills_false():
  g = _group()
  define_tag(g, 'tag_check_later')
  assert g.known_tags == ['tag_hard', 'tag_check_later']
  assert all(r.tags['tag_check_later'] is False for r in g.records)


def test_define_duplicate_tag_leaves_snapshot_unchanged():
  g = _group()
  tags_before = list(g.known_tags)
  records_before = copy.deepcopy(g.records)
  with pytest.raises(DuplicateTagError):
    define_tag(g, 'tag_hard')
  assert g.known_tags == tags_before
  assert g.records == records_before


def test_define_tag_requires_prefix():
  g = _group()
  with pytest.raises(ValueError):
    define_tag(g, 'nope')
  assert g.known_tags == ['tag_hard']


def test_toggle_twice_restores_value():
  g = _group()
  define_tag(g, 'tag_new')
  assert toggle_tag(g, 0, 'tag_new') is True
  assert toggle_tag(g, 0, 'tag_new') is False
  assert g.records[0].tags['tag_new'] is False
  assert g.records[1].tags['tag_new'] is False


def test_toggle_unknown_tag_fails():
  g = _group()
  before = copy.deepcopy(g.records)
  with pytest.raises(UnknownTagError):
    toggle_tag(g, 0, 'tag_missing')
  assert g.records == before


def test_dumps_records_keeps_unknown_keys():
  g = _group()
  rows = [json.loads(line) for line in dumps_records(g.records).split('\n')]
  assert rows[0]['score'] == 0.5
  assert rows[0]['question'] == 'q1'
  assert rows[1]['tag_hard'] is False
  assert 'notes' not in rows[1]


def test_dumps_records_keeps_null_keys():
  g = ingest(
    's_m_preds2.jsonl',
    ['{"question": null, "notes": null, "preds": [], "golds": []}'],
  )
  row = json.loads(dumps_records(g.records))
  assert row == {'question': None, 'notes': None, 'preds': [], 'golds': []}

  set_note(g, 0, 'seen')
  assert json.loads(dumps_records(g.records))['notes'] == 'seen'
  set_note(g, 0, '')
  assert json.loads(dumps_records(g.records))['notes'] is None


def test_persist_writes_snapshot_and_roundtrips():
  written = []

  async def write_back(payload: bytes) -> None:
    written.append(payload)

  g = _group(write_back)
  define_tag(g, 'tag_seen')
  toggle_tag(g, 1, 'tag_seen')
  set_note(g, 0, 'looks wrong')
  asyncio.run(persist(g))

  assert len(written) == 1
  text = written[0].decode('utf-8')
  assert not text.endswith('\n')
  again = ingest(g.source_id, text.split('\n'))
  assert again.records == g.records
  assert again.known_tags == g.known_tags
  assert g.writing is False


def test_persist_rejects_concurrent_write():
  async def scenario():
    release = asyncio.Event()
    calls = []

    async def write_back(payload: bytes) -> None:
      calls.append(payload)
      await release.wait()

    g = _group(write_back)
    first = asyncio.create_task(persist(g))
    await asyncio.sleep(0)
    assert g.writing is True
    with pytest.raises(WriteInProgressError):
      await persist(g)
    release.set()
    await first
    assert g.writing is False
    await persist(g)
    return calls

  calls = asyncio.run(scenario())
  assert len(calls) == 2


def test_persist_failure_keeps_state_and_allows_retry():
  attempts = []

  async def flaky(payload: bytes) -> None:
    attempts.append(payload)
    if len(attempts) == 1:
      raise PermissionError('write permission revoked')

  g = _group(flaky)
  set_note(g, 0, 'keep me')
  before = copy.deepcopy(g.records)
  with pytest.raises(PersistenceError):
    asyncio.run(persist(g))
  assert g.records == before
  assert g.writing is False
  asyncio.run(persist(g))
  assert attempts[0] == attempts[1]


def test_persist_read_only_group():
  g = _group()
  with pytest.raises(ReadOnlyGroupError):
    asyncio.run(persist(g))
