"""Configuration loader for pred-review.

Reads environment variables (optionally from .env) and exposes a typed config.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Config:
  """Holds runtime configuration loaded from environment."""

  data_dir: str
  manifest_url: str | None
  suffix: str
  log_path: str | None
  log_format: str
  http_timeout: float
  http_max_retries: int


def load_config() -> Config:
  """Load configuration from environment variables."""
  return Config(
    data_dir=os.getenv('PRED_REVIEW_DATA_DIR', os.path.join('public', 'data')),
    manifest_url=os.getenv('PRED_REVIEW_MANIFEST_URL'),
    suffix=os.getenv('PRED_REVIEW_SUFFIX', '_preds2.jsonl'),
    log_path=os.getenv('PRED_REVIEW_LOG'),
    log_format=os.getenv('PRED_REVIEW_LOG_FORMAT', 'auto'),
    http_timeout=float(os.getenv('PRED_REVIEW_HTTP_TIMEOUT', '30')),
    http_max_retries=int(os.getenv('PRED_REVIEW_HTTP_RETRIES', '4')),
  )
