"""Simple Deploy: keep a deployment directory in step with a source tree.

This package watches a source directory, mirrors it into a target directory
with rsync whenever it changes, and runs dependency maintenance (``npm update``
then ``npm prune`` by default) in the target after each successful mirror.
Bursts of changes collapse into a single pending run, and mirror and
maintenance never overlap.
"""

from . import (
    config,
    constants,
    daemon,
    maintenance,
    mirror,
    paths,
    scheduler,
    watcher,
)
from .scheduler import ConfigurationError, SyncScheduler, SyncState

__all__ = [
    "ConfigurationError",
    "SyncScheduler",
    "SyncState",
    "config",
    "constants",
    "daemon",
    "maintenance",
    "mirror",
    "paths",
    "scheduler",
    "watcher",
]
