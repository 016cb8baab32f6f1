"""Exceptions raised by alncache."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid configuration or an unusable store directory."""


class WindowCapacityError(ValueError):
    """A window was requested that is larger than the configured capacity."""


class StoreError(RuntimeError):
    """A record could not be written to a record store."""


class CacheDisposedError(RuntimeError):
    """The cache was queried after it had been disposed."""
