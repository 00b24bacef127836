import json

import pytest

from pred_review.cli import main
from pred_review.logs import ReviewLogger


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
  for var in ('PRED_REVIEW_MANIFEST_URL', 'PRED_REVIEW_LOG', 'PRED_REVIEW_SUFFIX'):
    monkeypatch.delenv(var, raising=False)
  rows = [
    {'question': 'who?', 'preds': ['a', 'b', 'c'], 'golds': ['a', 'c', 'd']},
    {'question': 'what?', 'preds': ['x'], 'golds': ['x'], 'source': 'dev'},
  ]
  (tmp_path / 'hotpot_gpt4_preds2.jsonl').write_text(
    '\n'.join(json.dumps(r) for r in rows), encoding='utf-8'
  )
  return tmp_path


def _rows(path):
  return [json.loads(line) for line in path.read_text(encoding='utf-8').split('\n')]


def test_dashboard(data_dir, capsys):
  assert main(['dashboard', '--dir', str(data_dir)]) == 0
  out = capsys.readouterr().out
  assert '## hotpot' in out and 'gpt4' in out and '83.33%' in out


def test_show(data_dir, capsys):
  assert main(['show', '--dir', str(data_dir), '--set', 'hotpot', '--method', 'gpt4', '--row', '1']) == 0
  out = capsys.readouterr().out
  assert 'TRUE POSITIVES (2)' in out
  assert 'FALSE NEGATIVES (1)' in out
  assert 'FALSE POSITIVES (1)' in out


def test_note_and_tags_are_saved(data_dir):
  path = data_dir / 'hotpot_gpt4_preds2.jsonl'
  base = ['--dir', str(data_dir), '--set', 'hotpot', '--method', 'gpt4']
  assert main(['note', *base, '--row', '2', '--text', 'fine']) == 0
  assert main(['tag', 'define', *base, '--name', 'check']) == 0
  assert main(['tag', 'toggle', *base, '--row', '1', '--name', 'check']) == 0

  rows = _rows(path)
  assert rows[1]['notes'] == 'fine'
  assert rows[1]['source'] == 'dev'
  assert rows[0]['tag_check'] is True
  assert rows[1]['tag_check'] is False

  assert main(['dashboard', '--dir', str(data_dir), '--filter', 'hotpot:check']) == 0


def test_errors_exit_nonzero(data_dir, capsys):
  base = ['--dir', str(data_dir), '--set', 'hotpot', '--method', 'gpt4']
  assert main(['tag', 'toggle', *base, '--row', '1', '--name', 'missing']) == 1
  assert main(['note', *base, '--row', '9', '--text', 'x']) == 1
  assert 'error:' in capsys.readouterr().err


def test_manifest(data_dir):
  assert main(['manifest', '--dir', str(data_dir)]) == 0
  assert json.loads((data_dir / 'manifest.json').read_text()) == [
    'hotpot_gpt4_preds2.jsonl'
  ]


def test_event_log_is_written_and_closed(data_dir, tmp_path, monkeypatch):
  log_path = tmp_path / 'events.log'
  monkeypatch.setenv('PRED_REVIEW_LOG', str(log_path))
  closed = []
  real_close = ReviewLogger.close

  def close(self):
    closed.append(self.path)
    real_close(self)

  monkeypatch.setattr(ReviewLogger, 'close', close)
  base = ['--dir', str(data_dir), '--set', 'hotpot', '--method', 'gpt4']
  assert main(['note', *base, '--row', '1', '--text', 'ok']) == 0
  assert main(['note', *base, '--row', '9', '--text', 'x']) == 1

  assert closed == [str(log_path), str(log_path)]
  events = [json.loads(line)['event'] for line in log_path.read_text().splitlines()]
  assert events == ['ingest', 'open', 'note', 'persist', 'ingest', 'open']
