import os
import signal
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, NoReturn, Optional, Tuple, Union
import resque_pool.settings as default_settings
from resque_pool.config import Configuration, build_config_loader, resolve_environment
from resque_pool.global_config import pool_globals
from resque_pool.hooks import HookRegistry
from resque_pool.log.setup import reopen_logs
from resque_pool.worker import CommandWorker
from resque_pool.supervisor import persistence, process_utils, shutdown, startup
from resque_pool.supervisor.signals import SignalRelay, new_signal_queue
from resque_pool.supervisor.worker_type import WorkerHandle, WorkerState, WorkerType

log = logging.getLogger(__name__)

WorkerRunner = Callable[[WorkerHandle], Any]

# Signals forwarded verbatim to live workers, with the paused flag they imply.
FORWARDED_SIGNALS = {"USR1": True, "USR2": False, "CONT": False}


class Pool:
    """
    Supervises a fleet of forked queue workers.

    The pool owns the current configuration (queue spec -> desired worker
    count), one WorkerType per configured spec, the queue of pending OS
    signals and the after_prefork hooks. Signal handlers only enqueue signal
    names; `handle_sig_queue()` is the single place that acts on them, and
    `reconcile()` is the single place that starts or stops workers.
    """

    def __init__(
        self,
        config: Any = None,
        *,
        hooks: Optional[HookRegistry] = None,
        worker_runner: Optional[WorkerRunner] = None,
        term_behavior: Optional[str] = None,
        handle_winch: Optional[bool] = None,
        pid_file: Optional[Union[str, Path]] = None,
    ) -> None:
        """
        Builds the pool and performs the initial configuration load.

        :param config: None (default file lookup), a file path, a mapping, or a custom resolver.
        :param hooks: The after_prefork hooks; defaults to the process-wide registry.
        :param worker_runner: Called in each forked worker once hooks have run.
        :param term_behavior: 'immediate' or 'graceful' handling of TERM.
        :param handle_winch: Whether WINCH stops all workers.
        :param pid_file: Where to record the manager PID while running.
        :raises ConfigError: If the initial configuration cannot be loaded.
        """
        self.config_loader = build_config_loader(config)
        self.hooks = hooks if hooks is not None else pool_globals.after_prefork
        self.worker_runner: WorkerRunner = worker_runner if worker_runner is not None else CommandWorker()
        self.term_behavior = (term_behavior or pool_globals.term_behavior).lower()
        if self.term_behavior not in default_settings.TERM_BEHAVIORS:
            raise ValueError(f"Unknown term behavior '{self.term_behavior}'.")
        self.handle_winch = pool_globals.handle_winch if handle_winch is None else handle_winch
        self.pid_file = Path(pid_file) if pid_file else None

        self.config: Configuration = {}
        self.environment: Optional[str] = None
        self.worker_types: Dict[str, WorkerType] = {}
        self.sig_queue = new_signal_queue()
        self.signal_relay = SignalRelay(self.sig_queue)
        self.shutting_down: Optional[str] = None
        self.kill_deadline: Optional[float] = None
        self.shutdown_signal: Optional[int] = None
        self._workers: Dict[int, Tuple[WorkerHandle, WorkerType]] = {}
        self._signal_handlers: Dict[str, Callable[[str], None]] = {
            "HUP": self._handle_hup,
            "QUIT": self._handle_shutdown,
            "INT": self._handle_shutdown,
            "TERM": self._handle_shutdown,
            "USR1": self._handle_forwarded,
            "USR2": self._handle_forwarded,
            "CONT": self._handle_forwarded,
            "WINCH": self._handle_winch,
            "CHLD": self._handle_chld,
        }

        self.load_config()

    @classmethod
    def create_configured(cls, **kwargs: Any) -> "Pool":
        """Builds a pool from the process-wide config loader, or the default file lookup."""
        return cls(pool_globals.config_loader, **kwargs)

    #* --- Configuration ---
    def load_config(self) -> Configuration:
        """
        Resolves the environment and replaces the configuration wholesale.
        On failure the current configuration is left untouched.
        """
        environment = resolve_environment()
        config = self.config_loader.resolve(environment)
        self.environment = environment
        self.config = config
        log.info(f"Loaded pool configuration for environment {environment!r}: {config}")
        return config

    def reset_config(self) -> Configuration:
        """Lets the loader drop any cached state, then loads the configuration again."""
        self.config_loader.reset()
        return self.load_config()

    #* --- Worker Bookkeeping ---
    def all_handles(self) -> List[WorkerHandle]:
        return [handle for handle, _ in self._workers.values()]

    def live_handles(self) -> List[WorkerHandle]:
        return [handle for handle in self.all_handles() if handle.live]

    def worker_pids(self) -> List[int]:
        return list(self._workers)

    def call_after_prefork(self, worker: Any) -> None:
        self.hooks.run(worker)

    #* --- Reconciliation ---
    def reconcile(self) -> None:
        """
        Starts or stops workers until every configured spec has its desired
        number of live workers. Stopping is asynchronous; exits are observed
        when children are reaped.
        """
        if self.shutting_down:
            return

        for key, desired in self.config.items():
            worker_type = self.worker_types.get(key)
            if worker_type is None:
                worker_type = self.worker_types[key] = WorkerType(key)
            worker_type.desired_count = desired

            delta = desired - worker_type.live_count
            if delta > 0:
                log.info(f"Spawning {delta} worker(s) for '{key}' (desired {desired}).")
                try:
                    for _ in range(delta):
                        self.spawn_worker(worker_type)
                except OSError:
                    # Retried on the next reconciliation pass.
                    continue
            elif delta < 0:
                log.info(f"Stopping {-delta} worker(s) for '{key}' (desired {desired}).")
                for handle in worker_type.newest_live(-delta):
                    self.stop_worker(handle)

        for key in [key for key in self.worker_types if key not in self.config]:
            worker_type = self.worker_types[key]
            worker_type.desired_count = 0
            for handle in worker_type.live_handles():
                self.stop_worker(handle)
            if worker_type.drained:
                log.info(f"Removed worker type '{key}'.")
                del self.worker_types[key]

    def stop_worker(self, handle: WorkerHandle, sig: int = signal.SIGQUIT) -> None:
        """Asks one worker to finish its current job and exit."""
        handle.transition(WorkerState.STOPPING)
        process_utils.send_signal(handle.pid, sig)

    #* --- Process Creation ---
    def spawn_worker(self, worker_type: WorkerType) -> WorkerHandle:
        """
        Forks one worker for `worker_type` and records it as running.

        :raises OSError: If the fork fails.
        """
        try:
            pid = process_utils.fork_worker(lambda: self._run_worker(worker_type))
        except OSError as e:
            log.error(f"Failed to fork a worker for '{worker_type.key}': {e}")
            raise

        handle = WorkerHandle(pid, worker_type.queue_spec)
        worker_type.add(handle)
        self._workers[pid] = (handle, worker_type)
        handle.transition(WorkerState.RUNNING)
        log.info(f"Spawned worker {pid} for queues '{worker_type.key}'.")
        return handle

    def _run_worker(self, worker_type: WorkerType) -> NoReturn:
        """Body of a freshly forked worker. Never returns."""
        handle = WorkerHandle(os.getpid(), worker_type.queue_spec)
        code = 0
        try:
            self.signal_relay.reset_in_child()
            startup.set_worker_title(handle)
            self.call_after_prefork(handle)
            handle.transition(WorkerState.RUNNING)
            self.worker_runner(handle)
        except SystemExit as e:
            code = e.code if isinstance(e.code, int) else int(e.code is not None)
        except BaseException:
            # Includes CancelledError and GreenletExit; nothing may unwind into the manager's stack.
            log.exception(f"Worker {handle.pid} for '{worker_type.key}' failed")
            code = default_settings.WORKER_BOOT_ERROR
        process_utils.exit_child(code)

    #* --- Reaping ---
    def reap_all_workers(self) -> List[WorkerHandle]:
        """
        Collects every exited child and retires its handle. A worker type that
        is no longer configured is purged once its last worker is gone.

        :return: The handles that were terminated.
        """
        reaped: List[WorkerHandle] = []
        for pid, status in process_utils.reap_children():
            entry = self._workers.pop(pid, None)
            if entry is None:
                log.debug(f"Reaped unknown child {pid} ({process_utils.describe_exit(status)}).")
                continue

            handle, worker_type = entry
            reason = process_utils.describe_exit(status)
            if handle.live and not self.shutting_down:
                log.warning(f"Worker {pid} for '{worker_type.key}' {reason} unexpectedly.")
            else:
                log.info(f"Worker {pid} for '{worker_type.key}' {reason}.")
            handle.exit_status = status
            handle.transition(WorkerState.TERMINATED)
            worker_type.remove(handle)
            reaped.append(handle)

            if worker_type.drained and worker_type.key not in self.config:
                if self.worker_types.get(worker_type.key) is worker_type:
                    log.info(f"Removed worker type '{worker_type.key}'.")
                    del self.worker_types[worker_type.key]
        return reaped

    #* --- Signal Dispatch ---
    def handle_sig_queue(self) -> List[str]:
        """
        Dispatches queued signals in arrival order until the queue is empty,
        including any that arrive while this runs.

        :return: The signal names that were dispatched.
        """
        handled: List[str] = []
        while self.sig_queue:
            name = self.sig_queue.popleft()
            self.dispatch_signal(name)
            handled.append(name)
        return handled

    def dispatch_signal(self, name: str) -> None:
        handler = self._signal_handlers.get(name)
        if handler is None:
            log.debug(f"Ignoring unrecognized signal {name!r}.")
            return
        handler(name)

    def _handle_hup(self, name: str) -> None:
        if self.shutting_down:
            log.info("HUP: ignored, shutdown in progress.")
            return
        # Before any logging: a stale WatchedFileHandler raises on emit.
        reopened = reopen_logs()
        log.info(f"HUP: reopened {reopened} logfile(s), resetting configuration")
        try:
            self.reset_config()
        except Exception as e:
            log.error(f"HUP: failed to reload configuration, keeping the current one: {e}", exc_info=True)
            return
        self.reconcile()

    def _handle_shutdown(self, name: str) -> None:
        shutdown.begin_shutdown(self, name)

    def _handle_forwarded(self, name: str) -> None:
        handles = self.live_handles()
        log.info(f"{name}: sending to {len(handles)} workers")
        sig = getattr(signal, f"SIG{name}")
        for handle in handles:
            process_utils.send_signal(handle.pid, sig)
            handle.paused = FORWARDED_SIGNALS[name]

    def _handle_winch(self, name: str) -> None:
        if not self.handle_winch:
            log.debug("WINCH: ignored, handle_winch is disabled.")
            return
        if self.shutting_down:
            return
        log.info("WINCH: gracefully stopping all workers")
        self.config = {}
        self.reconcile()

    def _handle_chld(self, name: str) -> None:
        self.reap_all_workers()

    #* --- Main Loop ---
    def start(self) -> None:
        """
        Runs the manager until every worker has exited after a shutdown signal.

        :raises AlreadyRunningError: If the pidfile names another live manager.
        """
        startup.check_if_already_running(self.pid_file)
        self.signal_relay.install()
        if self.pid_file:
            persistence.write_pid_file(self.pid_file)
        log.info(f"resque-pool manager started (PID {os.getpid()}, environment {self.environment!r}).")

        try:
            self.reconcile()
            self.join()
        except Exception as e:
            log.critical(f"Critical error in manager loop: {e}", exc_info=True)
            shutdown.begin_shutdown(self, "TERM")
            raise
        finally:
            self.signal_relay.restore()
            if self.pid_file:
                persistence.remove_pid_file(self.pid_file)
        log.info("resque-pool manager finished.")

    def join(self) -> None:
        """
        The dispatch loop: handle queued signals, keep the fleet reconciled,
        and sleep until the next signal or the sleep interval.
        """
        while True:
            self.handle_sig_queue()
            if self.shutting_down:
                if not self._workers:
                    break
                shutdown.enforce_kill_deadline(self)
            else:
                self.reconcile()
            startup.update_manager_title(self)
            if not self.sig_queue:
                self.signal_relay.wait(default_settings.MASTER_SLEEP_INTERVAL)

    def __repr__(self) -> str:
        return f"Pool(environment={self.environment!r}, config={self.config!r}, workers={len(self._workers)})"
