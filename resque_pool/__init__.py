"""
resque-pool: a manager process that keeps a configured number of queue
workers running, reloading its configuration on HUP.
"""

from .config import CustomLoader, FileOrHashLoader
from .exceptions import AlreadyRunningError, ConfigError
from .global_config import pool_globals
from .hooks import HookRegistry
from .queue_spec import QueueSpec
from .supervisor import Pool, WorkerHandle, WorkerState, WorkerType
from .worker import CommandWorker


def after_prefork(hook):
    """Registers a process-wide hook run in every forked worker (usable as a decorator)."""
    return pool_globals.after_prefork.append(hook)


__all__ = [
    "Pool",
    "WorkerHandle",
    "WorkerState",
    "WorkerType",
    "QueueSpec",
    "HookRegistry",
    "CommandWorker",
    "CustomLoader",
    "FileOrHashLoader",
    "ConfigError",
    "AlreadyRunningError",
    "pool_globals",
    "after_prefork",
]
