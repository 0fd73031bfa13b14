"""
Integration tests that fork real worker processes.

Tests the full worker lifecycle including:
- after_prefork hooks running in the child
- Reaping children that exit on their own
- A complete start() run ended by a QUIT sent from a worker
"""

import os
import signal
import time
from unittest.mock import patch

import pytest

from resque_pool.hooks import HookRegistry
from resque_pool.supervisor import Pool, WorkerState, startup

pytestmark = pytest.mark.integration


def reap_until_empty(pool, timeout=10.0):
    """Reaps until every worker has exited, or fails after `timeout` seconds."""
    reaped = []
    deadline = time.monotonic() + timeout
    while pool.all_handles():
        if time.monotonic() > deadline:
            pytest.fail(f"Workers still running: {pool.worker_pids()}")
        reaped.extend(pool.reap_all_workers())
        time.sleep(0.05)
    return reaped


class TestForkLifecycle:
    """Test spawning and reaping real children."""

    def test_hooks_run_in_child_and_worker_is_reaped(self, tmp_path):
        """Test each forked worker runs the hooks once and exits cleanly."""
        marker_dir = tmp_path / "markers"
        marker_dir.mkdir()
        hooks = HookRegistry()

        @hooks.append
        def write_marker(worker):
            (marker_dir / f"{worker.pid}-{worker.queue_spec.key}").write_text(str(os.getppid()))

        pool = Pool({"foo,bar": 2}, hooks=hooks, worker_runner=lambda worker: None)
        with patch.object(startup, "set_worker_title"):
            pool.reconcile()
        pids = sorted(pool.worker_pids())
        assert len(pids) == 2

        reaped = reap_until_empty(pool)

        assert sorted(handle.pid for handle in reaped) == pids
        assert all(handle.state is WorkerState.TERMINATED for handle in reaped)
        assert all(handle.exit_status == 0 for handle in reaped)
        assert sorted(path.name for path in marker_dir.iterdir()) == [f"{pid}-foo,bar" for pid in pids]
        assert {path.read_text() for path in marker_dir.iterdir()} == {str(os.getpid())}

    def test_failing_runner_exit_status(self):
        """Test a crashing worker exits with status 1."""
        def runner(worker):
            raise RuntimeError("boom")

        pool = Pool({"foo": 1}, hooks=HookRegistry(), worker_runner=runner)
        with patch.object(startup, "set_worker_title"):
            pool.reconcile()

        (handle,) = reap_until_empty(pool)

        assert os.WIFEXITED(handle.exit_status)
        assert os.WEXITSTATUS(handle.exit_status) == 1

    def test_start_until_quit(self, tmp_path):
        """Test start() runs until a QUIT drains every worker, then cleans up."""
        pid_file = tmp_path / "pool.pid"

        def runner(worker):
            os.kill(os.getppid(), signal.SIGQUIT)

        pool = Pool({"foo": 1}, hooks=HookRegistry(), worker_runner=runner, pid_file=pid_file)
        with patch.object(startup, "update_manager_title"), patch.object(startup, "set_worker_title"):
            pool.start()

        assert pool.shutting_down == "graceful"
        assert pool.all_handles() == []
        assert not pid_file.exists()
        assert not pool.signal_relay.installed
