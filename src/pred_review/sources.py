"""Sources of prediction files.

Includes a writable local directory and a read-only HTTP manifest.
"""

import asyncio
import json
import os
import random
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path

import requests

from .catalog import DEFAULT_SUFFIX
from .data import WriteBack
from .errors import SourceError

MANIFEST_NAME = 'manifest.json'


# -----------------------
# Local directory
# -----------------------


def _atomic_write(path: Path, payload: bytes) -> None:
  """Replace a file's contents via a temp file in the same directory."""
  with tempfile.NamedTemporaryFile(
    mode='wb', dir=path.parent, delete=False, suffix='.tmp'
  ) as tmp:
    tmp.write(payload)
    tmp.flush()
    os.fsync(tmp.fileno())
    tmp_path = Path(tmp.name)
  try:
    tmp_path.replace(path)
  except OSError:
    tmp_path.unlink(missing_ok=True)
    raise


class DirectorySource:
  """Prediction files in a local directory; every file can be written back."""

  def __init__(self, path: str | Path, suffix: str = DEFAULT_SUFFIX) -> None:
    self.path = Path(path)
    self.suffix = suffix

  def entries(self) -> list[str]:
    """Matching file names, sorted."""
    try:
      names = os.listdir(self.path)
    except OSError as e:
      raise SourceError(f'cannot list {self.path}: {e}') from e
    return sorted(
      n for n in names if n.endswith(self.suffix) and (self.path / n).is_file()
    )

  def read(self, entry: str) -> str:
    try:
      return (self.path / entry).read_text(encoding='utf-8')
    except OSError as e:
      raise SourceError(f'cannot read {entry}: {e}') from e

  def writer(self, entry: str) -> WriteBack:
    """Capability that overwrites `entry` with a new serialized group."""
    target = self.path / entry

    async def _write(payload: bytes) -> None:
      await asyncio.to_thread(_atomic_write, target, payload)

    return _write


def write_manifest(path: str | Path, suffix: str = DEFAULT_SUFFIX) -> list[str]:
  """Index the matching files of a directory into manifest.json."""
  files = DirectorySource(path, suffix).entries()
  out = Path(path) / MANIFEST_NAME
  out.write_text(json.dumps(files, indent=2), encoding='utf-8')
  return files


# -----------------------
# HTTP manifest (read-only)
# -----------------------


@dataclass
class RetryConfig:
  """Retry/backoff configuration."""

  max_retries: int = 4
  backoff_base: float = 0.8  # exponential base
  backoff_cap: float = 8.0  # seconds max per sleep


def _should_retry(status: int | None) -> bool:
  """Return True if HTTP status suggests a transient failure."""
  if status is None:
    return True
  return status in (408, 409, 425, 429, 500, 502, 503, 504)


@dataclass
class ManifestSource:
  """Files listed in `<base_url>/manifest.json`; groups loaded from here are read-only."""

  base_url: str
  suffix: str = DEFAULT_SUFFIX
  timeout: float = 30.0
  retry: RetryConfig = field(default_factory=RetryConfig)

  def _url(self, name: str) -> str:
    return f'{self.base_url.rstrip("/")}/{name}'

  def _get(self, url: str) -> requests.Response:
    """GET with retries on transient failures."""
    for attempt in range(1, self.retry.max_retries + 2):  # retries + 1
      status = None
      try:
        resp = requests.get(url, timeout=self.timeout)
        status = resp.status_code
        resp.raise_for_status()
        return resp
      except requests.RequestException as e:
        if attempt <= self.retry.max_retries and _should_retry(status):
          sleep = min(
            self.retry.backoff_cap,
            (self.retry.backoff_base**attempt) + random.random() * 0.25,
          )
          time.sleep(sleep)
          continue
        raise SourceError(f'GET {url} failed: {e}') from e
    raise SourceError(f'GET {url} failed')

  def entries(self) -> list[str]:
    """File names listed by the manifest."""
    resp = self._get(self._url(MANIFEST_NAME))
    try:
      names = resp.json()
    except ValueError as e:
      raise SourceError(f'{MANIFEST_NAME} is not valid JSON') from e
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
      raise SourceError(f'{MANIFEST_NAME} must be a list of file names')
    return names

  def read(self, entry: str) -> str:
    resp = self._get(self._url(entry))
    resp.encoding = resp.encoding or 'utf-8'
    return resp.text

  def writer(self, entry: str) -> WriteBack | None:
    return None
