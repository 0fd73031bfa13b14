import os
import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Optional, Union

import resque_pool.settings as default_settings

log = logging.getLogger(__name__)


class MainFormatter(logging.Formatter):
    """
    A formatter that labels each record with the role of the process that
    emitted it: the manager, or one of its forked workers.
    """

    def __init__(self, manager_pid: Optional[int] = None) -> None:
        super().__init__()
        self.manager_pid = os.getpid() if manager_pid is None else manager_pid
        self._formatters = {
            role: logging.Formatter(default_settings.LOG_FORMAT.format(role=role))
            for role in (default_settings.MANAGER_TITLE_PREFIX, default_settings.WORKER_TITLE_PREFIX)
        }

    def role_for(self, record: logging.LogRecord) -> str:
        if record.process == self.manager_pid:
            return default_settings.MANAGER_TITLE_PREFIX
        return default_settings.WORKER_TITLE_PREFIX

    def format(self, record: logging.LogRecord) -> str:
        return self._formatters[self.role_for(record)].format(record)


def setup_logging(console_level: int = logging.INFO, log_file: Optional[Union[str, Path]] = None) -> None:
    """
    Configures the root logger for the pool manager.
    This sets up a console handler and, optionally, a log file handler,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param log_file: An optional file that also receives every record.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    formatter = MainFormatter()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # --- File Handler (conditional) ---
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # WatchedFileHandler reopens the file if logrotate moves it away
        file_handler = logging.handlers.WatchedFileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        root_logger.debug(f"Logging to file {log_path}.")


def reopen_logs() -> int:
    """
    Closes and reopens every file handler on the root logger, so that workers
    forked afterwards inherit fresh file descriptors.

    A handler whose file can no longer be opened (e.g. its directory was
    removed) is detached from the root logger instead of raising, since it
    would otherwise fail on every later record.

    :return: The number of handlers reopened.
    """
    root_logger = logging.getLogger()
    reopened = 0
    failed = []
    for handler in list(root_logger.handlers):
        if not isinstance(handler, logging.FileHandler):
            continue
        handler.acquire()
        try:
            if handler.stream:
                handler.stream.close()
                handler.stream = None
            handler.stream = handler._open()
            reopened += 1
        except OSError as e:
            failed.append((handler, e))
        finally:
            handler.release()

    for handler, error in failed:
        root_logger.removeHandler(handler)
        handler.close()
        log.error(f"Could not reopen log file '{handler.baseFilename}', detaching its handler: {error}")
    return reopened
