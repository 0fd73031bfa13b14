import os
import signal
import psutil
import logging
from typing import Callable, List, NoReturn, Tuple

log = logging.getLogger(__name__)


#* --- Process Status & Monitoring ---
def pid_exists(pid: int) -> bool:
    """A wrapper for psutil.pid_exists for easy testing/mocking if needed."""
    return psutil.pid_exists(pid)

def describe_exit(status: int) -> str:
    """Turns a raw waitpid status into a short human-readable reason."""
    if os.WIFSIGNALED(status):
        signum = os.WTERMSIG(status)
        try:
            return f"killed by {signal.Signals(signum).name}"
        except ValueError:
            return f"killed by signal {signum}"
    if os.WIFEXITED(status):
        return f"exited with status {os.WEXITSTATUS(status)}"
    return f"stopped with raw status {status}"

def reap_children() -> List[Tuple[int, int]]:
    """
    Collects every child that has exited, without blocking.

    :return: A list of (pid, raw status) pairs, empty if nothing has exited.
    """
    reaped: List[Tuple[int, int]] = []
    while True:
        try:
            pid, status = os.waitpid(-1, os.WNOHANG)
        except ChildProcessError:
            break
        if pid == 0:
            break
        reaped.append((pid, status))
    return reaped


#* --- Signalling ---
def send_signal(pid: int, sig: int) -> bool:
    """
    Sends `sig` to a worker process.

    :return: True if delivered, False if the process had already gone away.
    """
    try:
        psutil.Process(pid).send_signal(sig)
        return True
    except psutil.NoSuchProcess:
        log.warning(f"Worker {pid} no longer exists, skipping {signal.Signals(sig).name}.")
        return False
    except psutil.AccessDenied:
        log.error(f"Not permitted to send {signal.Signals(sig).name} to worker {pid}.")
        return False

def force_kill(pids: List[int]) -> None:
    """Forcefully kills workers that did not shut down in time."""
    if not pids:
        return

    log.warning(f"{len(pids)} workers did not terminate in time. Forcing shutdown...")
    for pid in pids:
        try:
            log.warning(f"Killing stubborn worker (PID {pid}).")
            psutil.Process(pid).kill()
        except psutil.NoSuchProcess:
            log.warning(f"Worker {pid} no longer exists, skipping forceful kill.")
            continue


#* --- Process Creation ---
def fork_worker(run_child: Callable[[], NoReturn]) -> int:
    """
    Forks a new worker process.

    In the child, `run_child` is called and must never return (it ends with
    `os._exit`). Should it return or raise anyway, the child still exits here
    with status 1 and never unwinds back into the caller.

    :raises OSError: If the fork itself fails.
    """
    pid = os.fork()
    if pid == 0:
        try:
            run_child()
        finally:
            os._exit(1)
    return pid

def exit_child(code: int) -> NoReturn:
    """Leaves a forked worker immediately, skipping the manager's cleanup handlers."""
    os._exit(code)
