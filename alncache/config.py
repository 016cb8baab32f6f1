"""Cache configuration.

Settings are read from a small YAML document, either a local file or an
http(s) URL:

.. code-block:: yaml

    window_capacity: 100000
    store_directory: ${TMPDIR}/alncache
    max_entry_lifetime_seconds: 7200
    max_in_memory_entries: 300000
    read_filter:
      min_mapping_quality: 10
      skip_duplicates: true
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from alncache import (
    DEFAULT_MAX_ENTRY_LIFETIME_SECONDS,
    DEFAULT_MAX_IN_MEMORY_ENTRIES,
    DEFAULT_WINDOW_CAPACITY,
)
from alncache.errors import ConfigurationError
from alncache.utils.paths import get_default_store_directory


@dataclasses.dataclass
class CacheConfig:
    window_capacity: int = DEFAULT_WINDOW_CAPACITY
    store_directory: Path = dataclasses.field(default_factory=get_default_store_directory)
    max_entry_lifetime_seconds: int = DEFAULT_MAX_ENTRY_LIFETIME_SECONDS
    max_in_memory_entries: int = DEFAULT_MAX_IN_MEMORY_ENTRIES
    read_filter: Dict[str, Any] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        self.store_directory = Path(os.path.expandvars(str(self.store_directory))).expanduser()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigurationError: If a setting is out of range.
        """
        for name in ("window_capacity", "max_entry_lifetime_seconds", "max_in_memory_entries"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        if not isinstance(self.read_filter, dict):
            raise ConfigurationError(
                f"read_filter must be a mapping, got {type(self.read_filter).__name__}"
            )

    def ensure_store_directory(self) -> Path:
        """Create the spool directory.

        Raises:
            ConfigurationError: If the directory cannot be created.
        """
        try:
            self.store_directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create store directory {self.store_directory}: {e}"
            ) from e
        if not self.store_directory.is_dir():
            raise ConfigurationError(f"Store path is not a directory: {self.store_directory}")
        return self.store_directory

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["store_directory"] = str(self.store_directory)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration key(s): {', '.join(sorted(unknown))}")
        config = cls(**data)
        config.validate()
        return config


def load_config(path_or_url: str) -> CacheConfig:
    """Load configuration from a local YAML file or URL.

    For URLs we expect a simple HTTP GET; callers can supply a local path for
    offline use.
    """
    if path_or_url.startswith("http://") or path_or_url.startswith("https://"):
        import requests

        resp = requests.get(path_or_url, timeout=30)
        resp.raise_for_status()
        content = resp.text
    else:
        path = Path(path_or_url).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        content = path.read_text()

    try:
        data = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path_or_url}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {path_or_url} must be a YAML mapping")
    return CacheConfig.from_dict(data)
