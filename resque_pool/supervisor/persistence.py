import os
import logging
from pathlib import Path
from typing import Optional

log = logging.getLogger(__name__)


def read_pid_file(pid_file: Path) -> Optional[int]:
    """
    Reads the manager PID from disk.

    :param pid_file: The pidfile location.
    :return: The PID if the file exists and is valid, else None.
    """
    if not pid_file.exists():
        return None
    try:
        return int(pid_file.read_text().strip())
    except (ValueError, OSError):
        log.warning(f"Ignoring unreadable pidfile '{pid_file}'.")
        return None

def write_pid_file(pid_file: Path, pid: Optional[int] = None) -> None:
    """
    Atomically writes the manager PID to the pidfile.

    :param pid_file: The pidfile location.
    :param pid: The PID to record, defaults to the current process.
    """
    pid = os.getpid() if pid is None else pid
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    temp_pid_path = pid_file.with_suffix(pid_file.suffix + ".tmp")
    try:
        temp_pid_path.write_text(f"{pid}\n")
        temp_pid_path.replace(pid_file)
        log.debug(f"Wrote PID {pid} to '{pid_file}'.")
    finally:
        temp_pid_path.unlink(missing_ok=True)

def remove_pid_file(pid_file: Path) -> None:
    """Removes the pidfile if it still names this process."""
    if read_pid_file(pid_file) == os.getpid():
        pid_file.unlink(missing_ok=True)
        log.debug(f"Removed pidfile '{pid_file}'.")
