import pytest

from pred_review.catalog import Catalog, ingest, parse_source_id
from pred_review.errors import MalformedRecordError


class _MemorySource:
  suffix = '_preds2.jsonl'

  def __init__(self, files):
    self.files = files

  def entries(self):
    return list(self.files)

  def read(self, entry):
    return self.files[entry]

  def writer(self, entry):
    return None


def test_parse_source_id():
  assert parse_source_id('hotpot_gpt4_rerank_preds2.jsonl') == ('hotpot', 'gpt4_rerank')
  assert parse_source_id('nq_bm25_preds2.jsonl') == ('nq', 'bm25')
  assert parse_source_id('solo_preds2.jsonl') == ('solo', '')


def test_ingest_defaults_missing_lists():
  g = ingest('s_m_preds2.jsonl', ['{"question": "q"}', '', '{"preds": ["a"]}'])
  assert len(g.records) == 2
  assert g.records[0].predicted == [] and g.records[0].gold == []
  assert g.records[1].predicted == ['a'] and g.records[1].gold == []


def test_ingest_known_tags_union_and_backfill():
  g = ingest(
    's_m_preds2.jsonl',
    [
      '{"preds": [], "golds": [], "tag_a": true}',
      '{"preds": [], "golds": [], "tag_b": true}',
    ],
  )
  assert g.known_tags == ['tag_a', 'tag_b']
  assert g.records[0].tags == {'tag_a': True, 'tag_b': False}
  assert g.records[1].tags == {'tag_a': False, 'tag_b': True}


def test_ingest_reports_line_number():
  with pytest.raises(MalformedRecordError) as exc:
    ingest('s_m_preds2.jsonl', ['{"preds": []}', '', '{not json'])
  assert exc.value.line_no == 3
  assert exc.value.source_id == 's_m_preds2.jsonl'


@pytest.mark.parametrize(
  'line',
  [
    '[1, 2]',
    '{"preds": "a,b"}',
    '{"golds": {"a": 1}}',
    '{"tag_x": "yes"}',
    '{"notes": 3}',
    '{"preds": [["x"]], "golds": ["a"]}',
    '{"preds": ["a"], "golds": ["a", 7]}',
  ],
)
def test_ingest_rejects_structurally_invalid_lines(line):
  with pytest.raises(MalformedRecordError):
    ingest('s_m_preds2.jsonl', [line])


def test_catalog_grouping():
  c = Catalog(
    [
      ingest('a_m1_preds2.jsonl', ['{"tag_x": false}']),
      ingest('b_m1_preds2.jsonl', ['{}']),
      ingest('a_m2_preds2.jsonl', ['{"tag_y": true}']),
    ]
  )
  assert len(c) == 3
  assert c.set_names() == ['a', 'b']
  assert c.methods_for_set('a') == ['m1', 'm2']
  assert c.tags_for_set('a') == ['tag_x', 'tag_y']
  assert c.get('a', 'm2').source_id == 'a_m2_preds2.jsonl'
  assert ('b', 'm1') in c
  with pytest.raises(KeyError):
    c.get('b', 'm2')


def test_load_drops_only_malformed_sources():
  src = _MemorySource(
    {
      'a_good_preds2.jsonl': '{"preds": ["x"], "golds": ["x"]}\n',
      'a_bad_preds2.jsonl': '{"preds": ["x"]}\n{oops\n',
      'b_fine_preds2.jsonl': '{"preds": [], "golds": ["y"]}',
    }
  )
  c = Catalog()
  failures = c.load(src)
  assert [f.source_id for f in failures] == ['a_bad_preds2.jsonl']
  assert failures[0].line_no == 2
  assert ('a', 'bad') not in c
  assert c.methods_for_set('a') == ['good']
  assert c.get('b', 'fine').read_only
