"""Utility module for handling project paths and environment variables.

This module provides the location of the default spool directory, which can
be moved with the ``ALNCACHE_HOME`` environment variable (useful on cluster
nodes where the working directory sits on a slow network share).
"""

import os
from pathlib import Path

SPOOL_DIR_NAME = ".alncache"


def get_alncache_home() -> Path:
    """Get the ALNCACHE_HOME directory, falling back to the working directory."""
    if "ALNCACHE_HOME" in os.environ:
        return Path(os.environ["ALNCACHE_HOME"]).expanduser()
    return Path.cwd()


def get_default_store_directory() -> Path:
    """Default directory into which record stores spill."""
    return get_alncache_home() / SPOOL_DIR_NAME
