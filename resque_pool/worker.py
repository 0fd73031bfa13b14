"""
The default job-processing collaborator run inside each forked worker.

The pool itself never processes jobs. Once the after_prefork hooks have run,
the forked child hands control to a worker runner: any callable taking the
worker's handle. `CommandWorker` replaces the child process with an external
worker command (by default `rq worker`), passing the queue names both as
arguments and as a comma-joined QUEUES environment variable.
"""

import os
import shlex
import logging
from typing import Any, List, NoReturn, Optional, Sequence, Union

import resque_pool.settings as default_settings

log = logging.getLogger(__name__)


class CommandWorker:
    """Execs a worker command for the handle's queues."""

    def __init__(self, command: Optional[Union[str, Sequence[str]]] = None) -> None:
        if command is None:
            command = default_settings.WORKER_COMMAND
        self.command: List[str] = shlex.split(command) if isinstance(command, str) else list(command)
        if not self.command:
            raise ValueError("Worker command must not be empty.")

    def build_args(self, worker: Any) -> List[str]:
        return [*self.command, *worker.queues]

    def build_env(self, worker: Any) -> dict:
        env = dict(os.environ)
        env[default_settings.QUEUES_ENV_VAR] = ",".join(worker.queues)
        return env

    def __call__(self, worker: Any) -> NoReturn:
        args = self.build_args(worker)
        log.info(f"Worker {os.getpid()} executing: {' '.join(args)}")
        os.execvpe(args[0], args, self.build_env(worker))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({' '.join(self.command)!r})"
