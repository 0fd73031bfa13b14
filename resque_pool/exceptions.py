"""Exceptions raised by the resque-pool manager."""


class ConfigError(ValueError):
    """Raised when a pool configuration cannot be read or is malformed."""


class AlreadyRunningError(RuntimeError):
    """Raised when the pidfile names a manager process that is still alive."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"resque-pool is already running with PID {pid}.")
        self.pid = pid
