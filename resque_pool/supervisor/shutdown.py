import time
import signal
import logging
from typing import TYPE_CHECKING, Tuple
import resque_pool.settings as default_settings
from resque_pool.supervisor import process_utils
from resque_pool.supervisor.worker_type import WorkerState

if TYPE_CHECKING:
    from .supervisor import Pool

log = logging.getLogger(__name__)

GRACEFUL = "graceful"
IMMEDIATE = "immediate"


def plan_shutdown(signal_name: str, term_behavior: str) -> Tuple[str, int]:
    """
    Maps a manager shutdown signal to a shutdown mode and the signal forwarded to workers.

    QUIT drains gracefully (workers get QUIT and finish their current job).
    INT stops immediately (workers get INT). TERM follows `term_behavior`.

    :param signal_name: 'QUIT', 'INT' or 'TERM'.
    :param term_behavior: 'immediate' or 'graceful'.
    :return: A (mode, worker signal number) pair.
    """
    if signal_name == "QUIT" or (signal_name == "TERM" and term_behavior == GRACEFUL):
        return GRACEFUL, signal.SIGQUIT
    if signal_name == "INT":
        return IMMEDIATE, signal.SIGINT
    return IMMEDIATE, signal.SIGTERM


def begin_shutdown(manager: "Pool", signal_name: str) -> None:
    """
    Signals every worker to stop. The manager keeps dispatching (and reaping)
    until no handles remain.

    A later shutdown signal re-signals all workers and may upgrade a graceful
    shutdown to an immediate one, never the reverse: once immediate, workers
    keep receiving the immediate signal they were first sent.

    :param manager: The Pool instance.
    :param signal_name: The signal that requested the shutdown.
    """
    mode, worker_signal = plan_shutdown(signal_name, manager.term_behavior)
    if manager.shutting_down == IMMEDIATE and mode != IMMEDIATE:
        mode, worker_signal = IMMEDIATE, manager.shutdown_signal
    manager.shutting_down = mode
    manager.shutdown_signal = worker_signal
    if mode == IMMEDIATE and manager.kill_deadline is None:
        manager.kill_deadline = time.monotonic() + default_settings.GRACEFUL_SHUTDOWN_TIMEOUT

    handles = manager.all_handles()
    if not handles:
        log.info(f"{signal_name}: no workers running. Exiting.")
        return

    log.info(f"{signal_name}: {mode} shutdown, sending {signal.Signals(worker_signal).name} to {len(handles)} workers.")
    for handle in handles:
        handle.transition(WorkerState.STOPPING)
        process_utils.send_signal(handle.pid, worker_signal)


def enforce_kill_deadline(manager: "Pool") -> None:
    """
    Force-kills every remaining worker once an immediate shutdown has waited
    longer than GRACEFUL_SHUTDOWN_TIMEOUT.

    :param manager: The Pool instance.
    """
    if manager.kill_deadline is None or time.monotonic() < manager.kill_deadline:
        return
    process_utils.force_kill([handle.pid for handle in manager.all_handles()])
    manager.kill_deadline = None
