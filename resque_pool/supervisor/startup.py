import os
import logging
import setproctitle
from pathlib import Path
from typing import TYPE_CHECKING, Optional
import resque_pool.settings as default_settings
from resque_pool.exceptions import AlreadyRunningError
from resque_pool.supervisor import persistence, process_utils

if TYPE_CHECKING:
    from .supervisor import Pool
    from .worker_type import WorkerHandle

log = logging.getLogger(__name__)


def check_if_already_running(pid_file: Optional[Path]) -> None:
    """
    Refuses to start when the pidfile names another live manager.

    :param pid_file: The pidfile location, or None when no pidfile is used.
    :raises AlreadyRunningError: If the recorded process is still alive.
    """
    if pid_file is None:
        return
    pid = persistence.read_pid_file(pid_file)
    if pid and pid != os.getpid() and process_utils.pid_exists(pid):
        log.error(f"resque-pool appears to be running (PID {pid}, pidfile '{pid_file}').")
        raise AlreadyRunningError(pid)


def manager_title(manager: "Pool") -> str:
    pids = " ".join(str(pid) for pid in sorted(manager.worker_pids()))
    title = f"{default_settings.MANAGER_TITLE_PREFIX}[{default_settings.APP_NAME}]: managing [{pids}]"
    if manager.shutting_down:
        title += f" ({manager.shutting_down} shutdown)"
    return title


def worker_title(handle: "WorkerHandle") -> str:
    return f"{default_settings.WORKER_TITLE_PREFIX}[{default_settings.APP_NAME}]: {handle.queue_spec.key}"


def update_manager_title(manager: "Pool") -> None:
    """Refreshes the manager's process title with its current worker PIDs."""
    title = manager_title(manager)
    if title != setproctitle.getproctitle():
        setproctitle.setproctitle(title)


def set_worker_title(handle: "WorkerHandle") -> None:
    setproctitle.setproctitle(worker_title(handle))
