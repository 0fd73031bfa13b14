"""
Relays OS signals to the pool's signal queue.

The installed handler does nothing but append a precomputed signal name to
the queue. Everything the signal means is decided later by the dispatch loop.
A self-pipe registered with `signal.set_wakeup_fd` lets the loop's `select()`
return as soon as any signal arrives.
"""

import os
import select
import signal
import logging
from collections import deque
from typing import Any, Deque, Dict, Optional, Tuple

log = logging.getLogger(__name__)

QUEUE_SIGNALS = ("QUIT", "INT", "TERM", "USR1", "USR2", "CONT", "HUP", "WINCH", "CHLD")


def _signal_number(name: str) -> Optional[int]:
    return getattr(signal, f"SIG{name}", None)


class SignalRelay:
    """Owns the signal handlers and the wakeup pipe for one Pool."""

    def __init__(self, sig_queue: Deque[str], names: Tuple[str, ...] = QUEUE_SIGNALS) -> None:
        self.sig_queue = sig_queue
        self._names: Dict[int, str] = {}
        for name in names:
            signum = _signal_number(name)
            if signum is not None:
                self._names[signum] = name
        self._previous_handlers: Dict[int, Any] = {}
        self._previous_wakeup_fd: Optional[int] = None
        self._pipe: Optional[Tuple[int, int]] = None

    @property
    def installed(self) -> bool:
        return self._pipe is not None

    def _handle(self, signum: int, frame: Any) -> None:
        self.sig_queue.append(self._names[signum])

    def install(self) -> None:
        """Installs the relay handler for every queued signal."""
        if self.installed:
            return
        read_fd, write_fd = os.pipe()
        for fd in (read_fd, write_fd):
            os.set_blocking(fd, False)
            os.set_inheritable(fd, False)
        self._pipe = (read_fd, write_fd)
        self._previous_wakeup_fd = signal.set_wakeup_fd(write_fd)

        for signum in self._names:
            self._previous_handlers[signum] = signal.signal(signum, self._handle)
        log.debug(f"Signal relay installed for: {', '.join(self._names.values())}")

    def restore(self) -> None:
        """Puts back the handlers and wakeup fd that were active before install()."""
        if not self.installed:
            return
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()
        signal.set_wakeup_fd(self._previous_wakeup_fd if self._previous_wakeup_fd is not None else -1)
        self._close_pipe()

    def reset_in_child(self) -> None:
        """
        Gives a freshly forked worker default signal dispositions and drops the
        manager's pending signals and wakeup pipe.
        """
        for signum in self._names:
            signal.signal(signum, signal.SIG_DFL)
        self._previous_handlers.clear()
        if self.installed:
            signal.set_wakeup_fd(-1)
            self._close_pipe()
        self.sig_queue.clear()

    def wait(self, timeout: float) -> bool:
        """
        Blocks until a signal arrives or `timeout` seconds pass.

        :return: True if woken by a signal, False on timeout.
        """
        if not self.installed:
            return False
        read_fd = self._pipe[0]
        try:
            ready, _, _ = select.select([read_fd], [], [], timeout)
        except InterruptedError:
            return True
        if ready:
            self._drain_pipe()
            return True
        return False

    def _drain_pipe(self) -> None:
        try:
            while os.read(self._pipe[0], 1024):
                pass
        except BlockingIOError:
            pass

    def _close_pipe(self) -> None:
        for fd in self._pipe:
            os.close(fd)
        self._pipe = None


def new_signal_queue() -> Deque[str]:
    return deque()
