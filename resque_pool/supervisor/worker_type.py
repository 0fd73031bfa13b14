import time
import logging
from enum import Enum
from typing import List, Optional

from resque_pool.queue_spec import QueueSpec

log = logging.getLogger(__name__)


class WorkerState(Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    TERMINATED = "terminated"


LIVE_STATES = (WorkerState.STARTING, WorkerState.RUNNING)

# Allowed transitions; TERMINATED is reachable from every state because a
# worker may exit (or crash) at any point.
_TRANSITIONS = {
    WorkerState.STARTING: {WorkerState.RUNNING, WorkerState.STOPPING, WorkerState.TERMINATED},
    WorkerState.RUNNING: {WorkerState.STOPPING, WorkerState.TERMINATED},
    WorkerState.STOPPING: {WorkerState.TERMINATED},
    WorkerState.TERMINATED: set(),
}


class WorkerHandle:
    """The manager's record of one forked worker process."""

    def __init__(self, pid: int, queue_spec: QueueSpec, started_at: Optional[float] = None) -> None:
        self.pid = pid
        self.queue_spec = queue_spec
        self.state = WorkerState.STARTING
        self.paused = False
        self.started_at = time.time() if started_at is None else started_at
        self.exit_status: Optional[int] = None

    @property
    def live(self) -> bool:
        return self.state in LIVE_STATES

    @property
    def queues(self) -> List[str]:
        return list(self.queue_spec)

    def transition(self, state: WorkerState) -> None:
        """Moves the handle to `state`, rejecting moves the lifecycle does not allow."""
        if state is self.state:
            return
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Worker {self.pid} cannot move from {self.state.value} to {state.value}.")
        log.debug(f"Worker {self.pid} ({self.queue_spec}) {self.state.value} -> {state.value}")
        self.state = state

    def __repr__(self) -> str:
        return f"WorkerHandle(pid={self.pid}, queues={self.queue_spec.key!r}, state={self.state.value})"


class WorkerType:
    """
    The desired worker count for one queue spec together with the handles of
    the workers currently draining it, in the order they were started.
    """

    def __init__(self, key: str, desired_count: int = 0) -> None:
        self.key = key
        self.queue_spec = QueueSpec.parse(key)
        self.desired_count = desired_count
        self.handles: List[WorkerHandle] = []

    def live_handles(self) -> List[WorkerHandle]:
        return [handle for handle in self.handles if handle.live]

    @property
    def live_count(self) -> int:
        return len(self.live_handles())

    @property
    def drained(self) -> bool:
        return not self.handles

    def add(self, handle: WorkerHandle) -> None:
        self.handles.append(handle)

    def remove(self, handle: WorkerHandle) -> None:
        if handle in self.handles:
            self.handles.remove(handle)

    def newest_live(self, count: int) -> List[WorkerHandle]:
        """Returns up to `count` live handles, most recently started first."""
        if count <= 0:
            return []
        return list(reversed(self.live_handles()))[:count]

    def __repr__(self) -> str:
        return f"WorkerType({self.key!r}, desired={self.desired_count}, live={self.live_count}, total={len(self.handles)})"
