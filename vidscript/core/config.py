"""
Application configuration manager.
Stores settings in a JSON file under the application support directory.
Credentials are never stored here; they come from the environment.
"""

import json
import logging
import os
from pathlib import Path

from vidscript.core.constants import (
    CONFIG_PATH, DB_PATH, DEFAULT_OUTPUT_ROOT, ErrorPolicy,
    DEFAULT_ANALYZER_ID, DEFAULT_API_VERSION,
    ENV_ANALYSIS_KEY, ENV_BLOB_SAS,
    POLL_INTERVAL_SEC, POLL_BACKOFF_FACTOR, MAX_POLL_INTERVAL_SEC,
    MAX_POLL_ATTEMPTS, MAX_PROCESSING_SEC,
    REQUEST_TIMEOUT_SEC, MAX_REQUEST_RETRIES,
)

logger = logging.getLogger(__name__)

# Validation bounds: key -> (type, min, max, default)
_NUMERIC_BOUNDS = {
    'poll_interval_sec': (float, 0.0, 300.0, POLL_INTERVAL_SEC),
    'poll_backoff_factor': (float, 1.0, 4.0, POLL_BACKOFF_FACTOR),
    'max_poll_interval_sec': (float, 0.0, 3600.0, MAX_POLL_INTERVAL_SEC),
    'max_poll_attempts': (int, 1, 100_000, MAX_POLL_ATTEMPTS),
    'max_processing_sec': (float, 1.0, 86_400.0, MAX_PROCESSING_SEC),
    'request_timeout_sec': (float, 1.0, 600.0, REQUEST_TIMEOUT_SEC),
    'max_request_retries': (int, 0, 10, MAX_REQUEST_RETRIES),
}

_DEFAULTS = {
    'analysis_endpoint': '',
    'analyzer_id': DEFAULT_ANALYZER_ID,
    'api_version': DEFAULT_API_VERSION,
    'blob_container_url': '',
    # No default: strict vs lenient must be chosen explicitly
    'error_policy': None,
    'upload_fallback_local': True,
    'output_root': str(DEFAULT_OUTPUT_ROOT),
    'db_path': str(DB_PATH),
    **{key: bounds[3] for key, bounds in _NUMERIC_BOUNDS.items()},
}


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None):
        self.path = config_path or CONFIG_PATH
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                for key, value in saved.items():
                    self._data[key] = self._validate(key, value)
            except (OSError, ValueError, AttributeError) as e:
                logger.warning("Failed to load config: %s", e)

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key in _NUMERIC_BOUNDS:
            kind, low, high, default = _NUMERIC_BOUNDS[key]
            try:
                value = kind(value)
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r — using default", key, value)
                return default
            return max(low, min(high, value))

        if key == 'error_policy':
            if value is not None and value not in ErrorPolicy.ALL:
                logger.warning("Invalid error_policy %r — leaving unset", value)
                return None

        if key == 'upload_fallback_local':
            return bool(value)

        return value

    def as_dict(self) -> dict:
        return dict(self._data)

    @property
    def error_policy(self) -> str | None:
        return self._data.get('error_policy')

    @property
    def output_root(self) -> Path:
        return Path(self._data.get('output_root') or DEFAULT_OUTPUT_ROOT)

    @property
    def db_path(self) -> Path:
        return Path(self._data.get('db_path') or DB_PATH)

    # ── Injected credentials ──────────────────────────────────────────

    @staticmethod
    def analysis_api_key() -> str | None:
        return os.environ.get(ENV_ANALYSIS_KEY) or None

    @staticmethod
    def blob_sas_token() -> str:
        return os.environ.get(ENV_BLOB_SAS, '')
